"""Appointment service - lifecycle of appointments (create, reschedule, cancel, confirm)"""

import json
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import InvalidStateTransitionError, NotFoundError, SlotConflictError
from ...models import APPOINTMENT_OVERLAP_CONSTRAINT, Appointment, AppointmentStatus
from ...shared.clock import utcnow
from .availability_service import AvailabilityService
from .repository import AppointmentRepository, PatientRepository
from .time_calculator import validate_time_range

logger = logging.getLogger(__name__)

EXCLUSION_VIOLATION_PGCODE = "23P01"


def is_overlap_violation(error: IntegrityError) -> bool:
    """True when the storage overlap constraint rejected the write"""
    original = getattr(error, "orig", None)
    if getattr(original, "pgcode", None) == EXCLUSION_VIOLATION_PGCODE:
        return True
    return APPOINTMENT_OVERLAP_CONSTRAINT in str(original if original is not None else error)


def build_cancellation_notes(previous_notes: Optional[str], reason: Optional[str], canceled_at: datetime) -> str:
    """JSON audit record kept in ``notes`` when an appointment is canceled"""
    record = {}
    if previous_notes:
        record["previousNotes"] = previous_notes
    record["cancellation"] = {
        "canceledAt": canceled_at.isoformat().replace("+00:00", "Z"),
        "reason": (reason or "").strip() or None,
    }
    return json.dumps(record, ensure_ascii=False)


class AppointmentService:
    """
    Service layer for appointment business logic.

    Every mutation is one transaction. Callers that must write more rows in
    the same transaction pass ``commit=False`` and commit themselves.
    """

    def __init__(self, db: Session, zone_name: Optional[str] = None):
        self.db = db
        self.repo = AppointmentRepository()
        self.patients = PatientRepository()
        self.availability = AvailabilityService(db, zone_name)

    def _save(self, commit: bool) -> None:
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    def list_appointments(
        self,
        professional_id: str,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
    ) -> list[Appointment]:
        return self.repo.list_appointments(self.db, professional_id, starts_from, starts_to)

    def get_appointment(self, professional_id: str, appointment_id: str) -> Appointment:
        appointment = self.repo.get_appointment(self.db, professional_id, appointment_id)
        if not appointment:
            raise NotFoundError("Agendamento não encontrado")
        return appointment

    def create_appointment(
        self,
        professional_id: str,
        patient_id: str,
        starts_at: datetime,
        ends_at: datetime,
        notes: Optional[str] = None,
        commit: bool = True,
    ) -> Appointment:
        """Book a new AGENDADO appointment"""
        starts_at, ends_at = validate_time_range(starts_at, ends_at)

        self.availability.ensure_available(professional_id, starts_at, ends_at)

        patient = self.patients.get_patient(self.db, professional_id, patient_id)
        if not patient:
            raise NotFoundError("Paciente não encontrado para este profissional")

        try:
            appointment = self.repo.add_appointment(
                self.db,
                professional_id=professional_id,
                patient_id=patient.id,
                starts_at=starts_at,
                ends_at=ends_at,
                notes=(notes or "").strip() or None,
                status=AppointmentStatus.SCHEDULED,
            )
            self._save(commit)
        except IntegrityError as e:
            self.db.rollback()
            if is_overlap_violation(e):
                logger.warning(f"⚠️ Overlap constraint rejected booking for professional {professional_id}")
                raise SlotConflictError("Horário já ocupado para este profissional") from e
            raise
        self.db.refresh(appointment)

        logger.info(f"✅ Appointment {appointment.id} created for professional {professional_id}")
        return appointment

    def reschedule_appointment(
        self,
        professional_id: str,
        appointment_id: str,
        starts_at: datetime,
        ends_at: datetime,
        commit: bool = True,
    ) -> tuple[Appointment, Appointment]:
        """
        Move an appointment to a new window.

        The original row becomes REMARCADO and a new AGENDADO row points back
        to it. The original is retired before the new row is written so a
        move into an overlapping window is not rejected by its own old slot.
        """
        starts_at, ends_at = validate_time_range(starts_at, ends_at)

        current = self.get_appointment(professional_id, appointment_id)
        if current.status not in AppointmentStatus.ACTIVE:
            if current.status == AppointmentStatus.CANCELED:
                raise InvalidStateTransitionError("Não é possível remarcar um agendamento cancelado")
            raise InvalidStateTransitionError(
                f"Não é possível remarcar um agendamento com status {current.status}"
            )

        self.availability.ensure_available(professional_id, starts_at, ends_at, exclude_id=current.id)

        try:
            current.status = AppointmentStatus.RESCHEDULED
            self.db.flush()

            new_appointment = self.repo.add_appointment(
                self.db,
                professional_id=professional_id,
                patient_id=current.patient_id,
                starts_at=starts_at,
                ends_at=ends_at,
                status=AppointmentStatus.SCHEDULED,
                rescheduled_from_id=current.id,
            )
            self._save(commit)
        except IntegrityError as e:
            self.db.rollback()
            if is_overlap_violation(e):
                logger.warning(f"⚠️ Overlap constraint rejected reschedule of {appointment_id}")
                raise SlotConflictError("Novo horário já ocupado para este profissional") from e
            raise
        self.db.refresh(current)
        self.db.refresh(new_appointment)

        logger.info(f"🔄 Appointment {current.id} rescheduled to {new_appointment.id}")
        return current, new_appointment

    def cancel_appointment(
        self, professional_id: str, appointment_id: str, reason: Optional[str] = None, commit: bool = True
    ) -> Appointment:
        """Cancel an active appointment; canceling twice is a no-op"""
        appointment = self.get_appointment(professional_id, appointment_id)

        if appointment.status == AppointmentStatus.CANCELED:
            return appointment
        if appointment.status in AppointmentStatus.TERMINAL:
            raise InvalidStateTransitionError(
                f"Não é possível cancelar um agendamento com status {appointment.status}"
            )

        appointment.notes = build_cancellation_notes(appointment.notes, reason, utcnow())
        appointment.status = AppointmentStatus.CANCELED
        self._save(commit)
        self.db.refresh(appointment)

        logger.info(f"❌ Appointment {appointment.id} canceled")
        return appointment

    def confirm_presence(self, professional_id: str, appointment_id: str) -> Appointment:
        appointment = self.get_appointment(professional_id, appointment_id)

        if appointment.status == AppointmentStatus.CONFIRMED:
            return appointment
        if appointment.status == AppointmentStatus.CANCELED:
            raise InvalidStateTransitionError("Não é possível confirmar presença em agendamento cancelado")
        if appointment.status in AppointmentStatus.TERMINAL:
            raise InvalidStateTransitionError(
                f"Não é possível confirmar presença em agendamento com status {appointment.status}"
            )

        appointment.status = AppointmentStatus.CONFIRMED
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(f"✅ Presence confirmed for appointment {appointment.id}")
        return appointment
