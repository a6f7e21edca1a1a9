"""Scheduling router - FastAPI endpoints for the professional's agenda"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Professional
from ...shared.clock import ensure_utc
from ...tenant_scope import get_current_professional
from ..messaging.service import MessagingService, get_messaging_service
from .appointment_service import AppointmentService
from .block_service import AvailabilityBlockService
from .manual_action_service import ManualActionService
from .schemas import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusResponse,
    AvailabilityBlockCreate,
    AvailabilityBlockCreateResponse,
    AvailabilityBlockResponse,
    ManualActionRequest,
    ManualActionResponse,
    RescheduleResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(
    professional: Professional = Depends(get_current_professional),
    db: Session = Depends(get_db),
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, professional.timezone)


def get_block_service(db: Session = Depends(get_db)) -> AvailabilityBlockService:
    return AvailabilityBlockService(db)


def get_manual_action_service(
    db: Session = Depends(get_db),
    messaging: MessagingService = Depends(get_messaging_service),
) -> ManualActionService:
    return ManualActionService(db, messaging)


def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.get("", response_model=list[AppointmentResponse])
async def list_appointments(
    startsAtFrom: Optional[datetime] = Query(None),
    startsAtTo: Optional[datetime] = Query(None),
    professional: Professional = Depends(get_current_professional),
    service: AppointmentService = Depends(get_appointment_service),
):
    """List the professional's appointments, optionally filtered by start"""
    return service.list_appointments(
        professional.id, _optional_utc(startsAtFrom), _optional_utc(startsAtTo)
    )


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    professional: Professional = Depends(get_current_professional),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.create_appointment(
        professional.id, data.patientId, data.startsAt, data.endsAt, notes=data.notes
    )


@router.patch("/{appointment_id}/reschedule", response_model=RescheduleResponse)
async def reschedule_appointment(
    appointment_id: str,
    data: AppointmentReschedule,
    professional: Professional = Depends(get_current_professional),
    service: AppointmentService = Depends(get_appointment_service),
):
    old, new = service.reschedule_appointment(professional.id, appointment_id, data.startsAt, data.endsAt)
    return RescheduleResponse(old_appointment_id=old.id, new_appointment_id=new.id)


@router.patch("/{appointment_id}/cancel", response_model=AppointmentStatusResponse)
async def cancel_appointment(
    appointment_id: str,
    data: Optional[AppointmentCancel] = None,
    professional: Professional = Depends(get_current_professional),
    service: AppointmentService = Depends(get_appointment_service),
):
    reason = data.reason if data else None
    appointment = service.cancel_appointment(professional.id, appointment_id, reason=reason)
    return AppointmentStatusResponse(id=appointment.id, status=appointment.status)


@router.patch("/{appointment_id}/confirm-presence", response_model=AppointmentStatusResponse)
async def confirm_presence(
    appointment_id: str,
    professional: Professional = Depends(get_current_professional),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.confirm_presence(professional.id, appointment_id)
    return AppointmentStatusResponse(id=appointment.id, status=appointment.status)


# ============================================================================
# MANUAL PROFESSIONAL ACTIONS
# ============================================================================


@router.post("/manual-action", response_model=ManualActionResponse)
async def manual_action(
    data: ManualActionRequest,
    response: Response,
    professional: Professional = Depends(get_current_professional),
    service: ManualActionService = Depends(get_manual_action_service),
):
    """Book, reschedule or cancel on behalf of a patient and notify them on WhatsApp"""
    result = await service.perform(professional, data)
    if data.action == "BOOK":
        response.status_code = 201
    return result


# ============================================================================
# AVAILABILITY BLOCKS
# ============================================================================


@router.get("/availability-blocks", response_model=list[AvailabilityBlockResponse])
async def list_availability_blocks(
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
    professional: Professional = Depends(get_current_professional),
    service: AvailabilityBlockService = Depends(get_block_service),
):
    return service.list_blocks(professional, _optional_utc(from_), _optional_utc(to))


@router.post("/availability-blocks", response_model=AvailabilityBlockCreateResponse, status_code=201)
async def create_availability_blocks(
    data: AvailabilityBlockCreate,
    professional: Professional = Depends(get_current_professional),
    service: AvailabilityBlockService = Depends(get_block_service),
):
    blocks = service.create_blocks(professional, data)
    return AvailabilityBlockCreateResponse(
        message=f"{len(blocks)} bloqueio(s) de agenda criado(s) com sucesso.",
        blocks=[AvailabilityBlockResponse.model_validate(block) for block in blocks],
    )


@router.delete("/availability-blocks/{block_id}")
async def delete_availability_block(
    block_id: str,
    professional: Professional = Depends(get_current_professional),
    service: AvailabilityBlockService = Depends(get_block_service),
):
    service.delete_block(professional, block_id)
    return {"message": "Bloqueio de agenda removido com sucesso."}


__all__ = ["router"]
