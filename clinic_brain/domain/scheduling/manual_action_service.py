"""Manual action service - professional books, reschedules or cancels for a patient"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import ConflictError, InvalidStateTransitionError, NotFoundError, ValidationError
from ...models import AppointmentStatus, Professional
from ...shared.clock import format_local
from ...shared.validators import validate_patient_phone
from ..messaging.service import MessagingService
from .appointment_service import AppointmentService
from .repository import PatientRepository
from .schemas import ManualActionRequest, ManualActionResponse
from .time_calculator import validate_manual_schedule_window

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _professional_message_suffix(message: Optional[str]) -> str:
    message = _clean(message)
    return f"\nMensagem da profissional: {message}" if message else ""


class ManualActionService:
    """Applies the fixed agenda policy, writes the change and notifies the patient"""

    def __init__(self, db: Session, messaging: MessagingService):
        self.db = db
        self.messaging = messaging
        self.patients = PatientRepository()

    async def perform(self, professional: Professional, data: ManualActionRequest) -> ManualActionResponse:
        try:
            phone_number = validate_patient_phone(data.patient.phoneNumber)
        except ValueError as e:
            raise ValidationError("Telefone do paciente inválido") from e

        if data.action == "BOOK":
            starts_at, ends_at = self._require_window(data)
            validate_manual_schedule_window(starts_at, ends_at, professional.timezone)
            patient = self.patients.upsert_patient(
                self.db, professional.id, phone_number, data.patient.name, data.patient.email
            )
        else:
            patient = self.patients.get_patient_by_phone(self.db, professional.id, phone_number)

        if not patient:
            raise NotFoundError("Paciente não encontrado com os dados informados")

        appointments = AppointmentService(self.db, professional.timezone)

        if data.action == "BOOK":
            return await self._book(professional, patient, appointments, data)

        if not data.appointmentId:
            raise ValidationError("appointmentId é obrigatório")

        current = appointments.get_appointment(professional.id, data.appointmentId)
        if current.patient_id != patient.id:
            raise ConflictError("A consulta informada não pertence ao paciente selecionado")

        if data.action == "RESCHEDULE":
            return await self._reschedule(professional, patient, appointments, current, data)

        return await self._cancel(professional, patient, appointments, current, data)

    def _require_window(self, data: ManualActionRequest):
        if data.startsAt is None or data.endsAt is None:
            raise ValidationError("startsAt e endsAt são obrigatórios")
        return data.startsAt, data.endsAt

    async def _book(self, professional, patient, appointments, data) -> ManualActionResponse:
        starts_at, ends_at = data.startsAt, data.endsAt
        appointments.availability.ensure_available(professional.id, starts_at, ends_at)
        appointments.availability.ensure_patient_available(professional.id, patient.id, starts_at, ends_at)

        created = appointments.create_appointment(
            professional.id, patient.id, starts_at, ends_at, notes=data.notes
        )

        text = (
            "✅ Sua consulta foi marcada pela profissional.\n"
            f"📅 Data e horário: {format_local(created.starts_at, professional.timezone)}"
            f"{_professional_message_suffix(data.message)}"
        )
        warning = await self.messaging.deliver(patient.phone_number, text, professional=professional)

        logger.info(f"✅ Manual booking {created.id} for patient {patient.id}")
        return ManualActionResponse(
            action=data.action,
            appointment_id=created.id,
            status=created.status,
            message=warning or "Consulta marcada com sucesso.",
            delivery_warning=warning,
        )

    async def _reschedule(self, professional, patient, appointments, current, data) -> ManualActionResponse:
        if current.status not in AppointmentStatus.ACTIVE:
            raise InvalidStateTransitionError(
                "Somente consultas agendadas ou confirmadas podem ser remarcadas"
            )

        starts_at, ends_at = self._require_window(data)
        validate_manual_schedule_window(starts_at, ends_at, professional.timezone)

        appointments.availability.ensure_available(
            professional.id, starts_at, ends_at, exclude_id=current.id
        )
        appointments.availability.ensure_patient_available(
            professional.id, patient.id, starts_at, ends_at, exclude_id=current.id
        )

        previous_starts_at = current.starts_at
        old, new = appointments.reschedule_appointment(professional.id, current.id, starts_at, ends_at)

        text = (
            "🔄 Sua consulta foi remarcada pela profissional.\n"
            f"📅 Horário anterior: {format_local(previous_starts_at, professional.timezone)}\n"
            f"🕒 Novo horário: {format_local(new.starts_at, professional.timezone)}"
            f"{_professional_message_suffix(data.message)}"
        )
        warning = await self.messaging.deliver(patient.phone_number, text, professional=professional)

        return ManualActionResponse(
            action=data.action,
            old_appointment_id=old.id,
            new_appointment_id=new.id,
            appointment_id=new.id,
            status=new.status,
            message=warning or "Consulta remarcada com sucesso.",
            delivery_warning=warning,
        )

    async def _cancel(self, professional, patient, appointments, current, data) -> ManualActionResponse:
        canceled = appointments.cancel_appointment(professional.id, current.id, reason=data.reason)

        reason = _clean(data.reason)
        text = (
            "❌ Sua consulta foi cancelada pela profissional.\n"
            f"📅 Horário: {format_local(canceled.starts_at, professional.timezone)}"
            + (f"\nMotivo: {reason}" if reason else "")
            + _professional_message_suffix(data.message)
        )
        warning = await self.messaging.deliver(patient.phone_number, text, professional=professional)

        return ManualActionResponse(
            action=data.action,
            appointment_id=canceled.id,
            status=canceled.status,
            message=warning or "Consulta cancelada com sucesso.",
            delivery_warning=warning,
        )
