"""
Appointment lifecycle tests against a real SQLite database.

Covers availability checks, create/reschedule/cancel/confirm and the
storage-level overlap trigger (including two concurrent bookings).
"""

import json
import threading
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from clinic_brain.domain.scheduling.appointment_service import (
    AppointmentService,
    build_cancellation_notes,
    is_overlap_violation,
)
from clinic_brain.domain.scheduling.availability_service import (
    CONFLICT_APPOINTMENT,
    CONFLICT_BLOCK,
    AvailabilityService,
)
from clinic_brain.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from clinic_brain.models import Appointment, AppointmentStatus, AvailabilityBlock

from .conftest import MONDAY_10H, utc

FIFTY_MINUTES = timedelta(minutes=50)
ZONE = "America/Sao_Paulo"


@pytest.fixture
def service(db):
    return AppointmentService(db, ZONE)


@pytest.fixture
def booked(service, professional, patient):
    return service.create_appointment(professional.id, patient.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)


class TestAvailability:
    def test_free_window_has_no_conflict(self, db, professional):
        availability = AvailabilityService(db, ZONE)
        assert availability.check_conflict(professional.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES) is None

    def test_overlapping_appointment_is_reported(self, db, professional, booked):
        conflict = AvailabilityService(db, ZONE).check_conflict(
            professional.id, MONDAY_10H + timedelta(minutes=30), MONDAY_10H + timedelta(minutes=80)
        )

        assert conflict.kind == CONFLICT_APPOINTMENT
        assert "04/03/2030 10:00" in conflict.reason

    def test_adjacent_window_is_free(self, db, professional, booked):
        starts_at = MONDAY_10H + FIFTY_MINUTES
        assert AvailabilityService(db, ZONE).check_conflict(professional.id, starts_at, starts_at + FIFTY_MINUTES) is None

    def test_block_is_reported_with_reason(self, db, professional):
        db.add(
            AvailabilityBlock(
                professional_id=professional.id,
                starts_at=utc(2030, 3, 4, 11),
                ends_at=utc(2030, 3, 4, 21),
                reason="Congresso",
            )
        )
        db.commit()

        conflict = AvailabilityService(db, ZONE).check_conflict(professional.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)

        assert conflict.kind == CONFLICT_BLOCK
        assert conflict.reason.endswith("Motivo: Congresso")

    def test_excluded_appointment_is_ignored(self, db, professional, booked):
        conflict = AvailabilityService(db, ZONE).check_conflict(
            professional.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES, exclude_id=booked.id
        )
        assert conflict is None

    def test_canceled_appointment_frees_the_slot(self, db, service, professional, booked):
        service.cancel_appointment(professional.id, booked.id)
        assert AvailabilityService(db, ZONE).check_conflict(professional.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES) is None

    def test_open_slots_exclude_booked_slot(self, db, professional, booked):
        result = AvailabilityService(db, ZONE).list_open_slots(professional.id, utc(2030, 3, 1, 12), month=3, year=2030)

        starts = [slot["starts_at"] for slot in result["slots"]]
        assert MONDAY_10H not in starts
        assert result["slot_duration_minutes"] == 50
        assert result["timezone"] == ZONE
        assert "2030-03-04" in result["available_days"]
        assert len(result["slots_by_day"]["2030-03-04"]) == 9


class TestCreate:
    def test_create_appointment(self, service, professional, patient):
        appointment = service.create_appointment(
            professional.id, patient.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES, notes="  primeira consulta "
        )

        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.starts_at == MONDAY_10H
        assert appointment.notes == "primeira consulta"

    def test_overlapping_create_is_conflict(self, service, professional, patient, booked):
        with pytest.raises(SlotConflictError):
            service.create_appointment(
                professional.id, patient.id, MONDAY_10H + timedelta(minutes=10), MONDAY_10H + timedelta(minutes=60)
            )

    def test_invalid_range(self, service, professional, patient):
        with pytest.raises(ValidationError):
            service.create_appointment(professional.id, patient.id, MONDAY_10H, MONDAY_10H)

    def test_unknown_patient(self, service, professional):
        with pytest.raises(NotFoundError):
            service.create_appointment(professional.id, "missing", MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)


class TestOverlapConstraint:
    def test_storage_rejects_overlap_without_precheck(self, db, professional, patient, booked):
        db.add(
            Appointment(
                professional_id=professional.id,
                patient_id=patient.id,
                starts_at=MONDAY_10H + timedelta(minutes=20),
                ends_at=MONDAY_10H + timedelta(minutes=70),
                status=AppointmentStatus.SCHEDULED,
            )
        )
        with pytest.raises(IntegrityError) as exc_info:
            db.commit()
        db.rollback()

        assert is_overlap_violation(exc_info.value)

    def test_inactive_rows_may_overlap(self, db, professional, patient, booked):
        db.add(
            Appointment(
                professional_id=professional.id,
                patient_id=patient.id,
                starts_at=MONDAY_10H,
                ends_at=MONDAY_10H + FIFTY_MINUTES,
                status=AppointmentStatus.CANCELED,
            )
        )
        db.commit()

    def test_concurrent_creates_for_one_slot(self, session_factory, professional, patient):
        professional_id, patient_id = professional.id, patient.id
        barrier = threading.Barrier(2)
        outcomes = []

        def book():
            session = session_factory()
            try:
                service = AppointmentService(session, ZONE)
                barrier.wait()
                service.create_appointment(professional_id, patient_id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)
                outcomes.append("created")
            except SlotConflictError:
                outcomes.append("conflict")
            finally:
                session.close()

        threads = [threading.Thread(target=book) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert sorted(outcomes) == ["conflict", "created"]

        session = session_factory()
        try:
            count = (
                session.query(Appointment)
                .filter(
                    Appointment.professional_id == professional_id,
                    Appointment.starts_at == MONDAY_10H,
                    Appointment.status.in_(AppointmentStatus.ACTIVE),
                )
                .count()
            )
        finally:
            session.close()
        assert count == 1


class TestReschedule:
    def test_reschedule_creates_new_row_and_retires_old(self, db, service, professional, patient, booked):
        new_start = MONDAY_10H + timedelta(days=1)

        old, new = service.reschedule_appointment(professional.id, booked.id, new_start, new_start + FIFTY_MINUTES)

        assert old.id == booked.id
        assert old.status == AppointmentStatus.RESCHEDULED
        assert new.status == AppointmentStatus.SCHEDULED
        assert new.patient_id == patient.id
        assert new.rescheduled_from_id == old.id
        assert db.query(Appointment).filter(Appointment.status == AppointmentStatus.SCHEDULED).count() == 1

    def test_reschedule_into_overlapping_own_slot(self, service, professional, booked):
        new_start = MONDAY_10H + timedelta(minutes=20)

        _, new = service.reschedule_appointment(professional.id, booked.id, new_start, new_start + FIFTY_MINUTES)

        assert new.starts_at == new_start

    def test_reschedule_onto_taken_slot(self, service, professional, patient, booked):
        other_start = MONDAY_10H + timedelta(hours=2)
        service.create_appointment(professional.id, patient.id, other_start, other_start + FIFTY_MINUTES)

        with pytest.raises(SlotConflictError):
            service.reschedule_appointment(professional.id, booked.id, other_start, other_start + FIFTY_MINUTES)

        assert service.get_appointment(professional.id, booked.id).status == AppointmentStatus.SCHEDULED

    def test_canceled_cannot_be_rescheduled(self, service, professional, booked):
        service.cancel_appointment(professional.id, booked.id)
        new_start = MONDAY_10H + timedelta(days=1)

        with pytest.raises(InvalidStateTransitionError):
            service.reschedule_appointment(professional.id, booked.id, new_start, new_start + FIFTY_MINUTES)

    def test_unknown_appointment(self, service, professional):
        with pytest.raises(NotFoundError):
            service.reschedule_appointment(professional.id, "missing", MONDAY_10H, MONDAY_10H + FIFTY_MINUTES)


class TestCancelAndConfirm:
    def test_cancel_records_audit_in_notes(self, service, professional, patient):
        appointment = service.create_appointment(
            professional.id, patient.id, MONDAY_10H, MONDAY_10H + FIFTY_MINUTES, notes="retorno"
        )

        canceled = service.cancel_appointment(professional.id, appointment.id, reason="Viagem")

        assert canceled.status == AppointmentStatus.CANCELED
        notes = json.loads(canceled.notes)
        assert notes["previousNotes"] == "retorno"
        assert notes["cancellation"]["reason"] == "Viagem"
        assert notes["cancellation"]["canceledAt"].endswith("Z")

    def test_cancel_twice_is_a_no_op(self, service, professional, booked):
        first = service.cancel_appointment(professional.id, booked.id, reason="Viagem")
        notes = first.notes

        second = service.cancel_appointment(professional.id, booked.id, reason="Outro motivo")

        assert second.status == AppointmentStatus.CANCELED
        assert second.notes == notes

    def test_rescheduled_cannot_be_canceled(self, service, professional, booked):
        new_start = MONDAY_10H + timedelta(days=1)
        service.reschedule_appointment(professional.id, booked.id, new_start, new_start + FIFTY_MINUTES)

        with pytest.raises(InvalidStateTransitionError):
            service.cancel_appointment(professional.id, booked.id)

    def test_confirm_presence(self, service, professional, booked):
        confirmed = service.confirm_presence(professional.id, booked.id)
        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert service.confirm_presence(professional.id, booked.id).status == AppointmentStatus.CONFIRMED

    def test_confirm_canceled_is_refused(self, service, professional, booked):
        service.cancel_appointment(professional.id, booked.id)
        with pytest.raises(InvalidStateTransitionError):
            service.confirm_presence(professional.id, booked.id)

    def test_cancellation_notes_without_previous_notes(self):
        notes = json.loads(build_cancellation_notes(None, "  ", utc(2030, 3, 1, 12)))

        assert "previousNotes" not in notes
        assert notes["cancellation"] == {"canceledAt": "2030-03-01T12:00:00Z", "reason": None}
