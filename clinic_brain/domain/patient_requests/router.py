"""Patient request router - professional reviews portal requests"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Professional
from ...tenant_scope import get_current_professional
from ..messaging.service import MessagingService, get_messaging_service
from .schemas import PatientRequestResponse, PatientRequestReview, PatientRequestReviewed
from .service import PatientRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patient-requests", tags=["Patient Requests"])


def get_patient_request_service(
    db: Session = Depends(get_db),
    messaging: MessagingService = Depends(get_messaging_service),
) -> PatientRequestService:
    """Dependency injection for PatientRequestService"""
    return PatientRequestService(db, messaging)


@router.get("/pending", response_model=list[PatientRequestResponse])
async def list_pending_requests(
    professional: Professional = Depends(get_current_professional),
    service: PatientRequestService = Depends(get_patient_request_service),
):
    """Requests waiting for the professional's decision, newest first"""
    return service.list_pending(professional)


@router.post("/{request_id}/review", response_model=PatientRequestReviewed)
async def review_request(
    request_id: str,
    data: PatientRequestReview,
    professional: Professional = Depends(get_current_professional),
    service: PatientRequestService = Depends(get_patient_request_service),
):
    return await service.review(professional, request_id, data.action, data.reason)


__all__ = ["router"]
