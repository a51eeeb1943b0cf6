"""HTTP-level tests: routing, auth, error rendering and the payment webhook."""

import json
import time
from datetime import datetime

from carebook.domain.schedules import webhook_router
from carebook.models import Appointment, AppointmentStatus, Role, SlotStatus
from carebook.payments import compute_stripe_signature

SLOT_START = datetime(2030, 6, 4, 9, 0)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuth:
    def test_missing_token(self, client):
        response = client.get("/appointments")
        assert response.status_code in (401, 403)

    def test_patient_cannot_manage_templates(self, client, patient, doctor):
        client.act_as(patient)
        response = client.put(f"/slots/templates/{doctor.id}", json={"durationMinutes": 20})
        assert response.status_code == 403

    def test_jobs_are_admin_only(self, client, doctor, admin):
        client.act_as(doctor.user)
        assert client.post("/jobs/archive-appointments").status_code == 403
        client.act_as(admin)
        response = client.post("/jobs/archive-appointments")
        assert response.status_code == 200
        assert response.json() == {"job": "archive_appointments", "processed": 0}


class TestSlotBookingApi:
    """Book, conflict, cancel and list over HTTP."""

    def test_list_doctor_slots(self, client, patient, doctor, make_availability, make_slot):
        availability = make_availability(doctor, SLOT_START, datetime(2030, 6, 4, 12, 0))
        make_slot(doctor, SLOT_START, availability=availability)
        make_slot(doctor, datetime(2030, 6, 4, 9, 30), availability=availability, status=SlotStatus.BOOKED)
        client.act_as(patient)

        response = client.get(f"/slots/doctor/{doctor.id}", params={"status": SlotStatus.AVAILABLE})
        assert response.status_code == 200
        slots = response.json()
        assert len(slots) == 1
        assert slots[0]["status"] == SlotStatus.AVAILABLE

    def test_double_booking_returns_conflict(self, client, patient, make_user, doctor, make_slot):
        slot = make_slot(doctor, SLOT_START)
        client.act_as(patient)

        first = client.post("/appointments/slot", json={"slotId": slot.id, "notes": "Back pain"})
        assert first.status_code == 201
        body = first.json()
        assert body["status"] == AppointmentStatus.PENDING
        assert body["slotId"] == slot.id

        client.act_as(make_user(Role.PATIENT))
        second = client.post("/appointments/slot", json={"slotId": slot.id})
        assert second.status_code == 409
        assert second.json() == {
            "error": {"code": "CONFLICT_ERROR", "message": "Slot is not available for booking"}
        }

    def test_unknown_slot_is_not_found(self, client, patient):
        client.act_as(patient)
        response = client.post("/appointments/slot", json={"slotId": 999})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_cancel_returns_refund(self, client, patient, doctor, make_slot):
        slot = make_slot(doctor, SLOT_START)
        client.act_as(patient)
        appointment_id = client.post("/appointments/slot", json={"slotId": slot.id}).json()["id"]

        response = client.post(f"/appointments/{appointment_id}/cancel", json={"reason": "Feeling better"})
        assert response.status_code == 200
        body = response.json()
        assert body["appointment"]["status"] == AppointmentStatus.CANCELLED
        assert body["appointment"]["cancelledBy"] == Role.PATIENT
        assert body["refund"]["type"] == "FULL"

        again = client.post(f"/appointments/{appointment_id}/cancel", json={})
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_patients_only_list_their_own(self, client, patient, make_user, doctor, make_slot):
        client.act_as(patient)
        client.post("/appointments/slot", json={"slotId": make_slot(doctor, SLOT_START).id})
        client.act_as(make_user(Role.PATIENT))
        client.post("/appointments/slot", json={"slotId": make_slot(doctor, datetime(2030, 6, 4, 10, 0)).id})

        client.act_as(patient)
        listed = client.get("/appointments").json()
        assert [a["patientId"] for a in listed] == [patient.id]

        client.act_as(doctor.user)
        assert len(client.get("/appointments").json()) == 2


class TestScheduleApi:
    """Capacity windows, paid booking and the payment webhook."""

    def test_windows(self, client, patient, doctor, make_schedule):
        schedule = make_schedule(doctor, max_patients=3)
        client.act_as(patient)

        response = client.get("/schedules/windows", params={"doctorId": doctor.id, "date": "2030-06-04"})
        assert response.status_code == 200
        [window] = response.json()
        assert window["scheduleId"] == schedule.id
        assert window["remaining"] == 3
        assert window["isBookable"] is True
        assert window["disabledReasonCode"] is None

    def test_paid_booking_confirmed_by_webhook(self, client, db_session, patient, doctor, make_schedule, monkeypatch):
        schedule = make_schedule(doctor)
        client.act_as(patient)
        started = client.post("/schedules/bookings/start", json={"scheduleId": schedule.id})
        assert started.status_code == 200
        intent_id = started.json()["paymentIntentId"]
        assert started.json()["clientSecret"] == f"{intent_id}_secret"

        monkeypatch.setattr(webhook_router, "STRIPE_WEBHOOK_SECRET", "whsec_test")
        body = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"id": intent_id}}}).encode()
        timestamp = str(int(time.time()))
        signature = f"t={timestamp},v1={compute_stripe_signature('whsec_test', timestamp, body)}"

        rejected = client.post("/webhooks/stripe", content=body, headers={"stripe-signature": "t=1,v1=bad"})
        assert rejected.status_code == 401

        response = client.post("/webhooks/stripe", content=body, headers={"stripe-signature": signature})
        assert response.status_code == 200
        assert response.json() == {"status": "success", "event_type": "payment_intent.succeeded"}

        db_session.expire_all()
        appointment = db_session.get(Appointment, started.json()["appointmentId"])
        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.queue_number == 1

    def test_webhook_without_secret_is_unavailable(self, client, monkeypatch):
        monkeypatch.setattr(webhook_router, "STRIPE_WEBHOOK_SECRET", None)
        response = client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})
        assert response.status_code == 503

    def test_manual_booking_requires_admin(self, client, patient, admin, doctor, make_schedule):
        schedule = make_schedule(doctor)
        client.act_as(patient)
        payload = {"scheduleId": schedule.id, "patientId": patient.id}
        assert client.post("/schedules/bookings/manual", json=payload).status_code == 403

        client.act_as(admin)
        response = client.post("/schedules/bookings/manual", json=payload)
        assert response.status_code == 201
        assert response.json()["status"] == AppointmentStatus.CONFIRMED
        assert response.json()["queueNumber"] == 1
