"""Patient portal router - self-service availability, booking and reschedule requests"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Patient, Professional
from ...shared.clock import utcnow
from ...tenant_scope import get_current_patient, get_current_professional
from ..scheduling.availability_service import AvailabilityService
from ..scheduling.schemas import PortalAvailabilityResponse
from .router import get_patient_request_service
from .schemas import (
    PatientRequestSubmitted,
    PortalBookingRequest,
    PortalCancelRequest,
    PortalCancelResponse,
)
from .service import PatientRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["Patient Portal"])


@router.get("/availability", response_model=PortalAvailabilityResponse)
async def get_availability(
    month: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    professional: Professional = Depends(get_current_professional),
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    """Open 50-minute slots for a month; invalid month/year fall back to the current month"""
    service = AvailabilityService(db, professional.timezone)
    return service.list_open_slots(
        professional.id, utcnow(), month=_to_int(month), year=_to_int(year)
    )


@router.post("/bookings", response_model=PatientRequestSubmitted, status_code=201)
async def request_booking(
    data: PortalBookingRequest,
    professional: Professional = Depends(get_current_professional),
    patient: Patient = Depends(get_current_patient),
    service: PatientRequestService = Depends(get_patient_request_service),
):
    return await service.submit_booking_request(professional, patient, data.startsAt, data.endsAt)


@router.post("/reschedule-active", response_model=PatientRequestSubmitted, status_code=201)
async def request_reschedule(
    data: PortalBookingRequest,
    professional: Professional = Depends(get_current_professional),
    patient: Patient = Depends(get_current_patient),
    service: PatientRequestService = Depends(get_patient_request_service),
):
    """Request a move of the patient's next active appointment"""
    return await service.submit_reschedule_request(professional, patient, data.startsAt, data.endsAt)


@router.post("/cancel-appointment", response_model=PortalCancelResponse)
async def cancel_appointment(
    data: PortalCancelRequest,
    professional: Professional = Depends(get_current_professional),
    patient: Patient = Depends(get_current_patient),
    service: PatientRequestService = Depends(get_patient_request_service),
):
    return await service.cancel_from_portal(professional, patient, data.appointmentId, data.reason)


def _to_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


__all__ = ["router"]
