"""Patient request tests: portal submissions, professional review and portal cancellation"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from clinic_brain.domain.patient_requests.service import PatientRequestService, build_review_message
from clinic_brain.domain.scheduling.appointment_service import AppointmentService
from clinic_brain.errors import InvalidStateTransitionError, NotFoundError, SlotConflictError
from clinic_brain.models import (
    Appointment,
    AppointmentStatus,
    Interaction,
    MessageType,
    PatientRequest,
    PatientRequestStatus,
    PatientRequestType,
)

from .conftest import MONDAY_10H, utc

FIFTY_MINUTES = timedelta(minutes=50)
ZONE = "America/Sao_Paulo"
NOW = utc(2030, 3, 1, 12)


@pytest.fixture
def service(db, messaging):
    return PatientRequestService(db, messaging)


@pytest.fixture
def booked(db, professional, patient):
    return AppointmentService(db, ZONE).create_appointment(
        professional.id, patient.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES
    )


class TestSubmission:
    @pytest.mark.asyncio
    async def test_booking_request_is_pending(self, db, service, professional, patient, messaging):
        result = await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)

        assert result.status == PatientRequestStatus.PENDING
        assert result.delivery_warning is None
        request = db.query(PatientRequest).one()
        assert request.request_type == PatientRequestType.BOOK
        assert request.requested_starts_at == MONDAY_10H
        assert db.query(Appointment).count() == 0

        logged = db.query(Interaction).one()
        assert logged.message_type == MessageType.PATIENT
        assert "04/03/2030 10:00" in logged.message_text

        # Patient and professional are both notified
        recipients = [call.args[0] for call in messaging.deliver.await_args_list]
        assert recipients == [patient.phone_number, professional.phone_number]

    @pytest.mark.asyncio
    async def test_booking_request_on_taken_slot(self, service, professional, patient, booked):
        with pytest.raises(SlotConflictError):
            await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)

    @pytest.mark.asyncio
    async def test_professional_without_phone_adds_warning(self, db, service, professional, patient):
        professional.phone_number = None
        db.commit()

        result = await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)

        assert "não possui telefone" in result.delivery_warning

    @pytest.mark.asyncio
    async def test_reschedule_request_targets_next_active(self, db, service, professional, patient, booked):
        new_start = MONDAY_10H + timedelta(days=1)

        result = await service.submit_reschedule_request(
            professional, patient, new_start, new_start + FIFTY_MINUTES, now=NOW
        )

        request = db.query(PatientRequest).filter(PatientRequest.id == result.request_id).one()
        assert request.request_type == PatientRequestType.RESCHEDULE
        assert request.appointment_id == booked.id
        assert request.current_starts_at == MONDAY_10H

    @pytest.mark.asyncio
    async def test_reschedule_request_without_appointment(self, service, professional, patient):
        with pytest.raises(NotFoundError):
            await service.submit_reschedule_request(
                professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES, now=NOW
            )


class TestReview:
    @pytest.mark.asyncio
    async def test_approve_booking_creates_appointment(self, db, service, professional, patient, messaging):
        submitted = await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)
        messaging.deliver.reset_mock()

        reviewed = await service.review(professional, submitted.request_id, "APPROVE")

        assert reviewed.status == PatientRequestStatus.APPROVED
        appointment = db.query(Appointment).one()
        assert reviewed.appointment_id == appointment.id
        assert appointment.status == AppointmentStatus.SCHEDULED
        assert service.list_pending(professional) == []

        bot = db.query(Interaction).filter(Interaction.message_type == MessageType.BOT).one()
        assert bot.message_text == "Sua solicitação de agendamento foi aprovada pela profissional."
        messaging.deliver.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_approve_reschedule_moves_appointment(self, db, service, professional, patient, booked):
        new_start = MONDAY_10H + timedelta(days=1)
        submitted = await service.submit_reschedule_request(
            professional, patient, new_start, new_start + FIFTY_MINUTES, now=NOW
        )

        reviewed = await service.review(professional, submitted.request_id, "APPROVE")

        db.refresh(booked)
        assert booked.status == AppointmentStatus.RESCHEDULED
        new = db.query(Appointment).filter(Appointment.id == reviewed.appointment_id).one()
        assert new.starts_at == new_start
        assert new.rescheduled_from_id == booked.id

    @pytest.mark.asyncio
    async def test_reject_keeps_agenda(self, db, service, professional, patient):
        submitted = await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)

        reviewed = await service.review(professional, submitted.request_id, "REJECT", reason=" Agenda cheia ")

        assert reviewed.status == PatientRequestStatus.REJECTED
        assert db.query(Appointment).count() == 0
        request = db.query(PatientRequest).one()
        assert request.review_reason == "Agenda cheia"
        assert request.reviewed_at is not None

    @pytest.mark.asyncio
    async def test_second_review_is_refused(self, service, professional, patient):
        submitted = await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)
        await service.review(professional, submitted.request_id, "REJECT")

        with pytest.raises(InvalidStateTransitionError):
            await service.review(professional, submitted.request_id, "APPROVE")

    @pytest.mark.asyncio
    async def test_approval_of_taken_slot_stays_pending(self, db, service, professional, patient):
        submitted = await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)
        AppointmentService(db, ZONE).create_appointment(
            professional.id, patient.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES
        )

        with pytest.raises(SlotConflictError):
            await service.review(professional, submitted.request_id, "APPROVE")

        assert db.query(PatientRequest).one().status == PatientRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_request(self, service, professional):
        with pytest.raises(NotFoundError):
            await service.review(professional, "missing", "APPROVE")

    @pytest.mark.asyncio
    async def test_failed_review_write_keeps_agenda_untouched(self, db, service, professional, patient):
        submitted = await service.submit_booking_request(professional, patient, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)

        with patch.object(service.conversations, "stage_interaction", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                await service.review(professional, submitted.request_id, "APPROVE")

        assert db.query(Appointment).count() == 0
        assert db.query(PatientRequest).one().status == PatientRequestStatus.PENDING

    def test_review_messages(self):
        assert build_review_message("REJECT", PatientRequestType.RESCHEDULE, "Viagem") == (
            "Sua solicitação de remarcação foi rejeitada pela profissional.\nMotivo: Viagem"
        )


class TestPortalCancel:
    @pytest.mark.asyncio
    async def test_patient_cancels_own_appointment(self, db, service, professional, patient, booked, messaging):
        result = await service.cancel_from_portal(professional, patient, booked.id, reason="Doente", now=NOW)

        assert result.status == AppointmentStatus.CANCELED
        logged = db.query(Interaction).one()
        assert logged.message_type == MessageType.PATIENT
        assert "Motivo: Doente" in logged.message_text
        assert messaging.deliver.await_args.args[0] == professional.phone_number

    @pytest.mark.asyncio
    async def test_past_appointment_cannot_be_canceled(self, service, professional, patient, booked):
        with pytest.raises(NotFoundError):
            await service.cancel_from_portal(professional, patient, booked.id, now=MONDAY_10H + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_failed_log_write_keeps_appointment_active(self, db, service, professional, patient, booked):
        with patch.object(service.conversations, "stage_interaction", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                await service.cancel_from_portal(professional, patient, booked.id, now=NOW)

        db.refresh(booked)
        assert booked.status == AppointmentStatus.SCHEDULED
