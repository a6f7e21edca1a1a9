"""HTTP surface tests through the FastAPI test client"""

from datetime import timedelta

from clinic_brain.domain.conversation.state_machine import INITIAL, MAIN_MENU
from clinic_brain.models import AppointmentStatus, PatientRequestStatus

from .conftest import MONDAY_10H

FIFTY_MINUTES = timedelta(minutes=50)


def window(starts_at, duration=FIFTY_MINUTES):
    return {"startsAt": starts_at.isoformat(), "endsAt": (starts_at + duration).isoformat()}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


class TestAppointmentsApi:
    def test_missing_professional_header(self, client):
        response = client.get("/appointments")
        assert response.status_code == 401

    def test_unknown_professional(self, client):
        response = client.get("/appointments", headers={"X-Professional-Id": "missing"})
        assert response.status_code == 404

    def test_appointment_lifecycle(self, client, professional_headers, patient):
        created = client.post(
            "/appointments",
            json={"patientId": patient.id, **window(MONDAY_10H), "notes": "Primeira consulta"},
            headers=professional_headers,
        )
        assert created.status_code == 201
        appointment_id = created.json()["id"]
        assert created.json()["status"] == AppointmentStatus.SCHEDULED

        listed = client.get("/appointments", headers=professional_headers).json()
        assert [item["id"] for item in listed] == [appointment_id]
        assert listed[0]["patient"]["name"] == "Maria Silva"

        moved = client.patch(
            f"/appointments/{appointment_id}/reschedule",
            json=window(MONDAY_10H + timedelta(days=1)),
            headers=professional_headers,
        )
        assert moved.status_code == 200
        new_id = moved.json()["new_appointment_id"]
        assert moved.json()["old_appointment_id"] == appointment_id

        confirmed = client.patch(f"/appointments/{new_id}/confirm-presence", headers=professional_headers)
        assert confirmed.json() == {"id": new_id, "status": AppointmentStatus.CONFIRMED}

        canceled = client.patch(
            f"/appointments/{new_id}/cancel", json={"reason": "Viagem"}, headers=professional_headers
        )
        assert canceled.json()["status"] == AppointmentStatus.CANCELED

    def test_overlap_is_a_slot_conflict(self, client, professional_headers, patient):
        client.post("/appointments", json={"patientId": patient.id, **window(MONDAY_10H)}, headers=professional_headers)

        response = client.post(
            "/appointments",
            json={"patientId": patient.id, **window(MONDAY_10H + timedelta(minutes=20))},
            headers=professional_headers,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "slot_conflict"

    def test_reversed_window_is_rejected(self, client, professional_headers, patient):
        response = client.post(
            "/appointments",
            json={"patientId": patient.id, **window(MONDAY_10H, duration=-FIFTY_MINUTES)},
            headers=professional_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_malformed_date_is_a_validation_error(self, client, professional_headers, patient):
        response = client.post(
            "/appointments",
            json={"patientId": patient.id, "startsAt": "not-a-date", "endsAt": (MONDAY_10H + FIFTY_MINUTES).isoformat()},
            headers=professional_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_date_without_offset_is_rejected(self, client, professional_headers, patient):
        response = client.patch(
            "/appointments/any/reschedule",
            json={"startsAt": "2030-03-04T13:00:00", "endsAt": "2030-03-04T13:50:00"},
            headers=professional_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_portal_booking_without_offset_is_rejected(self, client, patient_headers):
        response = client.post(
            "/portal/bookings",
            json={"startsAt": "2030-03-04T13:00:00", "endsAt": "2030-03-04T13:50:00"},
            headers=patient_headers,
        )

        assert response.status_code == 400

    def test_unknown_appointment(self, client, professional_headers):
        response = client.patch("/appointments/missing/confirm-presence", headers=professional_headers)
        assert response.status_code == 404

    def test_manual_booking(self, client, professional_headers, messaging):
        response = client.post(
            "/appointments/manual-action",
            json={
                "action": "BOOK",
                "patient": {"name": "João Souza", "phoneNumber": "11977776666"},
                **window(MONDAY_10H),
            },
            headers=professional_headers,
        )

        assert response.status_code == 201
        assert response.json()["status"] == AppointmentStatus.SCHEDULED
        messaging.deliver.assert_awaited_once()

    def test_manual_booking_outside_hours(self, client, professional_headers):
        response = client.post(
            "/appointments/manual-action",
            json={
                "action": "BOOK",
                "patient": {"name": "João Souza", "phoneNumber": "11977776666"},
                **window(MONDAY_10H + timedelta(hours=9)),
            },
            headers=professional_headers,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "business_hours_violation"


class TestAvailabilityBlocksApi:
    def test_create_list_and_delete(self, client, professional_headers):
        created = client.post(
            "/appointments/availability-blocks",
            json={
                "fromDate": "2030-03-04",
                "toDate": "2030-03-08",
                "startTime": "12:00",
                "endTime": "13:00",
                "weekdays": [1, 3],
                "reason": "Almoço",
            },
            headers=professional_headers,
        )
        assert created.status_code == 201
        blocks = created.json()["blocks"]
        assert len(blocks) == 2

        listed = client.get("/appointments/availability-blocks", headers=professional_headers).json()
        assert len(listed) == 2

        deleted = client.delete(f"/appointments/availability-blocks/{blocks[0]['id']}", headers=professional_headers)
        assert deleted.status_code == 200
        assert len(client.get("/appointments/availability-blocks", headers=professional_headers).json()) == 1

    def test_invalid_time_format(self, client, professional_headers):
        response = client.post(
            "/appointments/availability-blocks",
            json={"fromDate": "2030-03-04", "toDate": "2030-03-04", "startTime": "25:00", "endTime": "13:00"},
            headers=professional_headers,
        )
        assert response.status_code == 400

    def test_blocked_period_refuses_booking(self, client, professional_headers, patient):
        client.post(
            "/appointments/availability-blocks",
            json={"fromDate": "2030-03-04", "toDate": "2030-03-04", "startTime": "09:00", "endTime": "12:00"},
            headers=professional_headers,
        )

        response = client.post(
            "/appointments", json={"patientId": patient.id, **window(MONDAY_10H)}, headers=professional_headers
        )

        assert response.status_code == 409
        assert response.json()["code"] == "slot_conflict"

    def test_delete_unknown_block(self, client, professional_headers):
        response = client.delete("/appointments/availability-blocks/missing", headers=professional_headers)
        assert response.status_code == 404


class TestPortalApi:
    def test_patient_header_required(self, client, professional_headers):
        response = client.get("/portal/availability", headers=professional_headers)
        assert response.status_code == 401

    def test_availability_excludes_taken_slot(self, client, patient_headers, professional_headers, patient):
        client.post("/appointments", json={"patientId": patient.id, **window(MONDAY_10H)}, headers=professional_headers)

        data = client.get("/portal/availability?month=3&year=2030", headers=patient_headers).json()

        assert data["timezone"] == "America/Sao_Paulo"
        assert data["slot_duration_minutes"] == 50
        starts = [slot["starts_at"] for slot in data["slots"]]
        assert not any(start.startswith("2030-03-04T13:00") for start in starts)
        assert "2030-03-05" in data["available_days"]
        assert "2030-03-02" not in data["available_days"]

    def test_booking_request_then_review(self, client, patient_headers, professional_headers):
        submitted = client.post("/portal/bookings", json=window(MONDAY_10H), headers=patient_headers)
        assert submitted.status_code == 201
        request_id = submitted.json()["request_id"]

        pending = client.get("/patient-requests/pending", headers=professional_headers).json()
        assert [item["id"] for item in pending] == [request_id]

        reviewed = client.post(
            f"/patient-requests/{request_id}/review", json={"action": "APPROVE"}, headers=professional_headers
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["status"] == PatientRequestStatus.APPROVED
        assert reviewed.json()["appointment_id"] is not None

    def test_reschedule_without_active_appointment(self, client, patient_headers):
        response = client.post("/portal/reschedule-active", json=window(MONDAY_10H), headers=patient_headers)
        assert response.status_code == 404

    def test_cancel_own_appointment(self, client, patient_headers, professional_headers, patient):
        created = client.post(
            "/appointments", json={"patientId": patient.id, **window(MONDAY_10H)}, headers=professional_headers
        ).json()

        response = client.post(
            "/portal/cancel-appointment", json={"appointmentId": created["id"]}, headers=patient_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == AppointmentStatus.CANCELED


class TestConversationApi:
    def test_simulate_greeting(self, client):
        response = client.post(
            "/conversation/simulate", json={"currentState": INITIAL, "input": "oi", "doctorName": "Dra. Ana"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["next_state"] == MAIN_MENU
        assert "Dra. Ana" in data["response_message"]
        assert data["should_end"] is False

    def test_simulate_input_too_long(self, client):
        response = client.post("/conversation/simulate", json={"input": "x" * 2001})
        assert response.status_code == 400
