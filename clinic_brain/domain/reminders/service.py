"""
Appointment reminder cycle.

Each cycle looks at active appointments starting in the next 48 hours and
sends the D-1 and 2-hour reminders whose window contains ``now``. A sent
reminder is recorded as a BOT interaction carrying a deterministic external
id, which is what makes repeated cycles at the same instant idempotent.
"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import DeliveryError, ValidationError
from ...models import Appointment, MessageType
from ...shared.clock import ensure_utc, to_local, utcnow
from ..conversation.repository import ConversationRepository
from ..messaging.service import MessagingService
from ..scheduling.repository import AppointmentRepository
from .windows import (
    CANDIDATE_HORIZON,
    REMINDER_2H,
    REMINDER_D1,
    build_reminder_external_id,
    build_reminder_message,
    is_in_reminder_window,
)

logger = logging.getLogger(__name__)


class ReminderCycleResult(BaseModel):
    candidates: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def _reminder_enabled(kind: str, appointment: Appointment) -> bool:
    professional = appointment.professional
    if kind == REMINDER_D1:
        return bool(professional.reminder_d1_enabled)
    return bool(professional.reminder_2h_enabled)


async def send_reminder(
    db: Session,
    messaging: MessagingService,
    kind: str,
    appointment: Appointment,
    now: datetime,
) -> bool:
    """
    Send one reminder unless another run already claimed it.

    The BOT interaction carrying the reminder external id is committed before
    the message goes out; the unique external id lets only one sweep win the
    claim. When delivery fails the claim is removed so a later cycle in the
    same window can retry. Returns True when this call sent the reminder.
    """
    professional = appointment.professional
    patient = appointment.patient
    appointment_id = appointment.id
    phone_number = patient.phone_number
    external_id = build_reminder_external_id(kind, appointment_id, appointment.starts_at)

    if ConversationRepository.external_message_exists(db, professional.id, external_id):
        return False

    message = build_reminder_message(
        kind, patient.name, professional.name, professional.confirmation_message
    )
    claim = ConversationRepository.stage_interaction(
        db,
        professional_id=professional.id,
        patient_id=patient.id,
        appointment_id=appointment_id,
        message_text=message,
        message_type=MessageType.BOT,
        external_message_id=external_id,
        created_at=now,
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"🔄 Reminder {external_id} already claimed by another run")
        return False

    try:
        await messaging.send_message(phone_number, message, professional=professional)
    except (ValidationError, DeliveryError):
        db.delete(claim)
        db.commit()
        raise

    logger.info(f"✅ Reminder {kind} sent for appointment {appointment_id}")
    return True


async def run_reminder_cycle(
    db: Session,
    messaging: MessagingService,
    now: Optional[datetime] = None,
) -> ReminderCycleResult:
    """Run one sweep at ``now`` (defaults to the current instant)"""
    now = ensure_utc(now or utcnow())
    appointments = AppointmentRepository.list_reminder_candidates(db, now, now + CANDIDATE_HORIZON)
    result = ReminderCycleResult(candidates=len(appointments))

    for appointment in appointments:
        zone_name = appointment.professional.timezone
        now_local = to_local(now, zone_name)
        starts_at_local = to_local(appointment.starts_at, zone_name)

        for kind in (REMINDER_D1, REMINDER_2H):
            if not _reminder_enabled(kind, appointment):
                continue
            if not is_in_reminder_window(kind, now_local, starts_at_local):
                continue

            try:
                if await send_reminder(db, messaging, kind, appointment, now):
                    result.sent += 1
                else:
                    result.skipped += 1
            except (ValidationError, DeliveryError) as e:
                result.failed += 1
                logger.error(f"❌ Reminder {kind} failed for appointment {appointment.id}: {e.message}")

    if result.sent or result.failed:
        logger.info(
            f"🔄 Reminder cycle: {result.sent} sent, {result.skipped} skipped, {result.failed} failed"
        )
    return result
