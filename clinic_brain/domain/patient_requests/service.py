"""Patient request service - portal requests waiting for the professional's approval"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import InvalidStateTransitionError, NotFoundError, ValidationError
from ...models import (
    AppointmentStatus,
    MessageType,
    Patient,
    PatientRequest,
    PatientRequestStatus,
    PatientRequestType,
    Professional,
)
from ...shared.clock import ensure_utc, format_local, utcnow
from ..conversation.repository import ConversationRepository
from ..messaging.service import MessagingService
from ..scheduling.appointment_service import AppointmentService
from ..scheduling.availability_service import AvailabilityService
from ..scheduling.repository import AppointmentRepository
from ..scheduling.time_calculator import validate_time_range
from .repository import PatientRequestRepository
from .schemas import PatientRequestReviewed, PatientRequestSubmitted, PortalCancelResponse

logger = logging.getLogger(__name__)

PORTAL_SOURCE = "PATIENT_PORTAL"


def build_review_message(action: str, request_type: str, reason: Optional[str] = None) -> str:
    """Patient notification after the professional reviews a request"""
    request_label = "agendamento" if request_type == PatientRequestType.BOOK else "remarcação"
    status_label = "aprovada" if action == "APPROVE" else "rejeitada"
    reason = (reason or "").strip()
    reason_text = f"\nMotivo: {reason}" if reason else ""
    return f"Sua solicitação de {request_label} foi {status_label} pela profissional.{reason_text}"


class PatientRequestService:
    """Service layer for portal requests"""

    def __init__(self, db: Session, messaging: MessagingService):
        self.db = db
        self.messaging = messaging
        self.repo = PatientRequestRepository()
        self.conversations = ConversationRepository()
        self.appointments = AppointmentRepository()

    async def _notify(
        self, professional: Professional, phone_number: Optional[str], text: str, warnings: list[str]
    ) -> None:
        warning = await self.messaging.deliver(phone_number or "", text, professional=professional)
        if warning:
            warnings.append(warning)

    async def _notify_professional(self, professional: Professional, text: str, warnings: list[str]) -> None:
        if not professional.phone_number:
            warnings.append(
                "A solicitação foi registrada, mas a profissional não possui telefone "
                "cadastrado para notificação automática."
            )
            return
        await self._notify(professional, professional.phone_number, text, warnings)

    # ========================================================================
    # SUBMISSION (patient portal)
    # ========================================================================

    async def submit_booking_request(
        self, professional: Professional, patient: Patient, starts_at: datetime, ends_at: datetime
    ) -> PatientRequestSubmitted:
        """Ask the professional to approve a new appointment"""
        starts_at, ends_at = validate_time_range(starts_at, ends_at)
        AvailabilityService(self.db, professional.timezone).ensure_available(professional.id, starts_at, ends_at)

        requested = format_local(starts_at, professional.timezone)

        patient_request = self.repo.stage_request(
            self.db,
            professional_id=professional.id,
            patient_id=patient.id,
            request_type=PatientRequestType.BOOK,
            status=PatientRequestStatus.PENDING,
            source=PORTAL_SOURCE,
            requested_starts_at=starts_at,
            requested_ends_at=ends_at,
        )
        self.conversations.stage_interaction(
            self.db,
            professional_id=professional.id,
            patient_id=patient.id,
            message_text=f"Solicitação de agendamento pelo portal para {requested}",
            message_type=MessageType.PATIENT,
        )
        self.db.commit()
        logger.info(f"📥 Booking request {patient_request.id} submitted by patient {patient.id}")

        warnings: list[str] = []
        await self._notify(
            professional,
            patient.phone_number,
            "📝 Recebi sua solicitação de agendamento.\n"
            f"📅 Horário solicitado: {requested}\n"
            "A profissional irá analisar e aprovar no painel.",
            warnings,
        )
        await self._notify_professional(
            professional,
            "🔔 Nova solicitação de agendamento no portal.\n"
            f"Paciente: {patient.name}\n"
            f"Horário solicitado: {requested}",
            warnings,
        )

        delivery_warning = " ".join(warnings) or None
        return PatientRequestSubmitted(
            request_id=patient_request.id,
            status=patient_request.status,
            message=delivery_warning or "Solicitação de agendamento enviada para aprovação da profissional.",
            delivery_warning=delivery_warning,
        )

    async def submit_reschedule_request(
        self,
        professional: Professional,
        patient: Patient,
        starts_at: datetime,
        ends_at: datetime,
        now: Optional[datetime] = None,
    ) -> PatientRequestSubmitted:
        """Ask the professional to move the patient's next active appointment"""
        starts_at, ends_at = validate_time_range(starts_at, ends_at)
        now = ensure_utc(now) if now else utcnow()

        current = self.appointments.next_active_for_patient(self.db, professional.id, patient.id, now)
        if not current:
            raise NotFoundError("Consulta não encontrada para remarcação")

        AvailabilityService(self.db, professional.timezone).ensure_available(
            professional.id, starts_at, ends_at, exclude_id=current.id
        )

        current_text = format_local(current.starts_at, professional.timezone)
        requested = format_local(starts_at, professional.timezone)

        patient_request = self.repo.stage_request(
            self.db,
            professional_id=professional.id,
            patient_id=patient.id,
            appointment_id=current.id,
            request_type=PatientRequestType.RESCHEDULE,
            status=PatientRequestStatus.PENDING,
            source=PORTAL_SOURCE,
            requested_starts_at=starts_at,
            requested_ends_at=ends_at,
            current_starts_at=current.starts_at,
            current_ends_at=current.ends_at,
        )
        self.conversations.stage_interaction(
            self.db,
            professional_id=professional.id,
            patient_id=patient.id,
            appointment_id=current.id,
            message_text=f"Solicitação de remarcação pelo portal: {current_text} para {requested}",
            message_type=MessageType.PATIENT,
        )
        self.db.commit()
        logger.info(f"📥 Reschedule request {patient_request.id} submitted for appointment {current.id}")

        warnings: list[str] = []
        await self._notify(
            professional,
            patient.phone_number,
            "📝 Recebi sua solicitação de remarcação.\n"
            f"📅 Horário atual: {current_text}\n"
            f"🕒 Novo horário solicitado: {requested}\n"
            "A profissional irá analisar e aprovar no painel.",
            warnings,
        )
        await self._notify_professional(
            professional,
            "🔔 Nova solicitação de remarcação no portal.\n"
            f"Paciente: {patient.name}\n"
            f"Horário atual: {current_text}\n"
            f"Novo horário solicitado: {requested}",
            warnings,
        )

        delivery_warning = " ".join(warnings) or None
        return PatientRequestSubmitted(
            request_id=patient_request.id,
            status=patient_request.status,
            message=delivery_warning or "Solicitação de remarcação enviada para aprovação da profissional.",
            delivery_warning=delivery_warning,
        )

    async def cancel_from_portal(
        self,
        professional: Professional,
        patient: Patient,
        appointment_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PortalCancelResponse:
        """Patient cancels one of their own upcoming appointments; the professional is notified"""
        now = ensure_utc(now) if now else utcnow()
        appointment = self.appointments.get_appointment(self.db, professional.id, appointment_id)
        if (
            not appointment
            or appointment.patient_id != patient.id
            or appointment.status not in AppointmentStatus.ACTIVE
            or appointment.starts_at < now
        ):
            raise NotFoundError("Consulta não encontrada para cancelamento")

        try:
            canceled = AppointmentService(self.db, professional.timezone).cancel_appointment(
                professional.id, appointment.id, reason=reason, commit=False
            )

            when = format_local(canceled.starts_at, professional.timezone)
            reason = (reason or "").strip()
            self.conversations.stage_interaction(
                self.db,
                professional_id=professional.id,
                patient_id=patient.id,
                appointment_id=canceled.id,
                message_text=f"Cancelamento pelo portal da consulta de {when}"
                + (f". Motivo: {reason}" if reason else ""),
                message_type=MessageType.PATIENT,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        warnings: list[str] = []
        await self._notify_professional(
            professional,
            "🚨 Cancelamento no portal do paciente\n"
            f"Paciente: {patient.name}\n"
            f"Consulta: {when}" + (f"\nMotivo informado: {reason}" if reason else ""),
            warnings,
        )

        delivery_warning = " ".join(warnings) or None
        return PortalCancelResponse(
            appointment_id=canceled.id,
            status=canceled.status,
            message=delivery_warning or "Consulta cancelada com sucesso e profissional notificada.",
            delivery_warning=delivery_warning,
        )

    # ========================================================================
    # REVIEW (professional)
    # ========================================================================

    def list_pending(self, professional: Professional) -> list[PatientRequest]:
        return self.repo.list_pending(self.db, professional.id)

    async def review(
        self, professional: Professional, request_id: str, action: str, reason: Optional[str] = None
    ) -> PatientRequestReviewed:
        """
        Approve or reject a pending request.

        Approval runs the regular create/reschedule path, so a slot taken in the
        meantime still fails with a conflict and the request stays pending.
        The appointment change and the review are committed together.
        """
        patient_request = self.repo.get_request(self.db, professional.id, request_id)
        if not patient_request:
            raise NotFoundError("Solicitação não encontrada")

        if patient_request.status != PatientRequestStatus.PENDING:
            raise InvalidStateTransitionError("Solicitação já processada ou inválida")

        reason = (reason or "").strip() or None
        notification_text = build_review_message(action, patient_request.request_type, reason)

        try:
            appointment_id = patient_request.appointment_id
            if action == "APPROVE":
                appointment_id = self._apply_approval(professional, patient_request)

            patient_request.status = (
                PatientRequestStatus.APPROVED if action == "APPROVE" else PatientRequestStatus.REJECTED
            )
            patient_request.reviewed_at = utcnow()
            patient_request.review_reason = reason
            patient_request.appointment_id = appointment_id
            self.conversations.stage_interaction(
                self.db,
                professional_id=professional.id,
                patient_id=patient_request.patient_id,
                appointment_id=appointment_id,
                message_text=notification_text,
                message_type=MessageType.BOT,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"✅ Patient request {patient_request.id} {patient_request.status}")

        delivery_warning = await self.messaging.deliver(
            patient_request.patient.phone_number, notification_text, professional=professional
        )

        return PatientRequestReviewed(
            request_id=patient_request.id,
            status=patient_request.status,
            appointment_id=appointment_id,
            delivery_warning=delivery_warning,
        )

    def _apply_approval(self, professional: Professional, patient_request: PatientRequest) -> str:
        """Create or move the appointment for an approved request without committing"""
        appointments = AppointmentService(self.db, professional.timezone)
        if patient_request.request_type == PatientRequestType.BOOK:
            created = appointments.create_appointment(
                professional.id,
                patient_request.patient_id,
                patient_request.requested_starts_at,
                patient_request.requested_ends_at,
                notes="Solicitação aprovada no portal do paciente",
                commit=False,
            )
            return created.id

        if not patient_request.appointment_id:
            raise ValidationError("Dados da solicitação de remarcação inválidos")
        _, new = appointments.reschedule_appointment(
            professional.id,
            patient_request.appointment_id,
            patient_request.requested_starts_at,
            patient_request.requested_ends_at,
            commit=False,
        )
        return new.id
