"""Tests for capacity-based schedules, windows and paid bookings."""

from datetime import date, datetime, timedelta

import pytest

from carebook.domain.schedules.schemas import ScheduleCreate, ScheduleUpdate
from carebook.domain.schedules.service import ScheduleService
from carebook.errors import AppError, ConflictError, NotFoundError, ServiceUnavailableError, ValidationError
from carebook.models import Appointment, AppointmentStatus, PaymentProvider, PaymentStatus, Reminder

from conftest import FakePaymentGateway, as_actor


def window(start="09:00", end="12:00", on="2030-06-04", max_patients=5, doctor_id=None):
    return ScheduleCreate(doctorId=doctor_id, date=on, startTime=start, endTime=end, maxPatients=max_patients)


def confirm(db, schedule, patient, n=1):
    for _ in range(n):
        db.add(
            Appointment(
                patient_id=patient.id, doctor_id=schedule.doctor_id, schedule_id=schedule.id,
                start_time=datetime.combine(schedule.date, datetime.min.time()),
                end_time=datetime.combine(schedule.date, datetime.max.time()),
                status=AppointmentStatus.CONFIRMED, payment_status=PaymentStatus.PAID,
            )
        )
    db.commit()


class TestCreateSchedule:
    """Overlap and duplicate rules are scoped to doctor and date."""

    def test_same_window_for_two_doctors(self, db_session, make_doctor, now):
        first, second = make_doctor(), make_doctor()
        service = ScheduleService(db_session, FakePaymentGateway())
        service.create_schedule(window(), as_actor(first.user), now)
        service.create_schedule(window(), as_actor(second.user), now)

    def test_exact_duplicate_already_exists(self, db_session, doctor_actor, now):
        service = ScheduleService(db_session, FakePaymentGateway())
        service.create_schedule(window(), doctor_actor, now)
        with pytest.raises(ConflictError, match="already exists") as exc:
            service.create_schedule(window(), doctor_actor, now)
        assert exc.value.status_code == 409

    def test_overlap_on_same_date(self, db_session, doctor_actor, now):
        service = ScheduleService(db_session, FakePaymentGateway())
        service.create_schedule(window(), doctor_actor, now)
        with pytest.raises(ConflictError, match="overlaps"):
            service.create_schedule(window("11:00", "13:00"), doctor_actor, now)

    def test_touching_windows_and_other_dates_are_fine(self, db_session, doctor_actor, now):
        service = ScheduleService(db_session, FakePaymentGateway())
        service.create_schedule(window(), doctor_actor, now)
        service.create_schedule(window("12:00", "14:00"), doctor_actor, now)
        service.create_schedule(window(on="2030-06-05"), doctor_actor, now)

    def test_field_validation(self, db_session, doctor_actor, now):
        service = ScheduleService(db_session, FakePaymentGateway())
        with pytest.raises(ValidationError, match="HH:mm"):
            service.create_schedule(window("9am", "12:00"), doctor_actor, now)
        with pytest.raises(ValidationError, match="startTime must be before endTime"):
            service.create_schedule(window("12:00", "09:00"), doctor_actor, now)
        with pytest.raises(ValidationError, match="YYYY-MM-DD"):
            service.create_schedule(window(on="04/06/2030"), doctor_actor, now)
        with pytest.raises(ValidationError):
            service.create_schedule(window(max_patients=0), doctor_actor, now)

    def test_past_window_is_rejected(self, db_session, doctor_actor, now):
        with pytest.raises(ValidationError):
            ScheduleService(db_session, FakePaymentGateway()).create_schedule(
                window("06:00", "07:00", on="2030-06-03"), doctor_actor, now
            )


class TestWindows:
    """get_availability_windows capacity arithmetic."""

    def test_empty_window_is_bookable(self, db_session, doctor, make_schedule, now):
        make_schedule(doctor, max_patients=5)
        (w,) = ScheduleService(db_session, FakePaymentGateway()).get_availability_windows(doctor.id, "2030-06-04", now)
        assert w.remaining == 5
        assert w.is_bookable
        assert w.disabled_reason_code is None

    def test_full_window(self, db_session, doctor, patient, make_schedule, now):
        schedule = make_schedule(doctor, max_patients=2)
        confirm(db_session, schedule, patient, 2)
        (w,) = ScheduleService(db_session, FakePaymentGateway()).get_availability_windows(doctor.id, "2030-06-04", now)
        assert w.confirmed_count == 2
        assert w.remaining == 0
        assert not w.is_bookable
        assert w.disabled_reason_code == "FULL"

    def test_pending_payments_do_not_consume_capacity(self, db_session, doctor, patient, make_schedule, now):
        schedule = make_schedule(doctor, max_patients=1)
        db_session.add(
            Appointment(
                patient_id=patient.id, doctor_id=doctor.id, schedule_id=schedule.id, start_time=now, end_time=now,
                status=AppointmentStatus.PENDING_PAYMENT,
            )
        )
        db_session.commit()
        (w,) = ScheduleService(db_session, FakePaymentGateway()).get_availability_windows(doctor.id, "2030-06-04", now)
        assert w.remaining == 1

    def test_ended_window(self, db_session, doctor, make_schedule, now):
        make_schedule(doctor, on_date=date(2030, 6, 3), start="06:00", end="07:00")
        (w,) = ScheduleService(db_session, FakePaymentGateway()).get_availability_windows(doctor.id, "2030-06-03", now)
        assert not w.is_bookable
        assert w.disabled_reason_code is not None

    def test_unpriced_doctor_cannot_take_payments(self, db_session, make_doctor, make_schedule, now):
        free_doctor = make_doctor(price=None)
        make_schedule(free_doctor)
        (w,) = ScheduleService(db_session, FakePaymentGateway()).get_availability_windows(
            free_doctor.id, "2030-06-04", now
        )
        assert not w.is_bookable

    def test_upcoming_dates_and_next_schedule(self, db_session, doctor, make_doctor, make_schedule, now):
        make_schedule(doctor, on_date=date(2030, 6, 3), start="06:00", end="07:00")
        later = make_schedule(doctor, on_date=date(2030, 6, 6))
        make_schedule(doctor, on_date=date(2030, 6, 6), start="14:00", end="16:00")
        idle = make_doctor()
        service = ScheduleService(db_session, FakePaymentGateway())
        assert service.get_upcoming_schedule_dates(doctor.id, 30, now) == [date(2030, 6, 6)]
        upcoming = service.get_next_upcoming_schedule([doctor.id, idle.id], now)
        assert upcoming[doctor.id].id == later.id
        assert upcoming[idle.id] is None


class TestUpdateDelete:
    """update_schedule and delete_schedule."""

    def test_cannot_shrink_below_confirmed(self, db_session, doctor, doctor_actor, patient, make_schedule, now):
        schedule = make_schedule(doctor, max_patients=5)
        confirm(db_session, schedule, patient, 3)
        service = ScheduleService(db_session, FakePaymentGateway())
        with pytest.raises(ConflictError):
            service.update_schedule(schedule.id, ScheduleUpdate(maxPatients=2), doctor_actor, now)
        assert service.update_schedule(schedule.id, ScheduleUpdate(maxPatients=3), doctor_actor, now).max_patients == 3

    def test_update_ignores_own_window_in_overlap_check(self, db_session, doctor, doctor_actor, make_schedule, now):
        schedule = make_schedule(doctor)
        updated = ScheduleService(db_session, FakePaymentGateway()).update_schedule(
            schedule.id, ScheduleUpdate(endTime="13:00"), doctor_actor, now
        )
        assert updated.end_time == "13:00"

    def test_delete_refused_with_confirmed_bookings(self, db_session, doctor, doctor_actor, patient, make_schedule):
        schedule = make_schedule(doctor)
        confirm(db_session, schedule, patient)
        with pytest.raises(ConflictError):
            ScheduleService(db_session, FakePaymentGateway()).delete_schedule(schedule.id, doctor_actor)

    def test_delete(self, db_session, doctor, doctor_actor, make_schedule):
        schedule = make_schedule(doctor)
        service = ScheduleService(db_session, FakePaymentGateway())
        service.delete_schedule(schedule.id, doctor_actor)
        with pytest.raises(NotFoundError):
            service.get_schedule(schedule.id)


class TestStartBooking:
    """Paid booking start."""

    def test_creates_pending_payment_appointment(self, db_session, doctor, patient_actor, make_schedule, now):
        schedule = make_schedule(doctor)
        gateway = FakePaymentGateway()
        result = ScheduleService(db_session, gateway).start_booking(schedule.id, patient_actor, now=now)
        appointment = db_session.get(Appointment, result["appointmentId"])
        assert appointment.status == AppointmentStatus.PENDING_PAYMENT
        assert appointment.payment_intent_id == result["paymentIntentId"]
        assert result["clientSecret"].endswith("_secret")
        assert gateway.intents[0]["amount"] == 5000

    def test_full_schedule_is_rejected(self, db_session, doctor, patient, patient_actor, make_schedule, now):
        schedule = make_schedule(doctor, max_patients=1)
        confirm(db_session, schedule, patient)
        with pytest.raises(ConflictError, match="full"):
            ScheduleService(db_session, FakePaymentGateway()).start_booking(schedule.id, patient_actor, now=now)

    def test_unconfigured_payments(self, db_session, doctor, patient_actor, make_schedule, now):
        schedule = make_schedule(doctor)
        with pytest.raises(ServiceUnavailableError) as exc:
            ScheduleService(db_session, FakePaymentGateway(configured=False)).start_booking(
                schedule.id, patient_actor, now=now
            )
        assert exc.value.code == "STRIPE_NOT_CONFIGURED"

    def test_zero_price(self, db_session, make_doctor, patient_actor, make_schedule, now):
        schedule = make_schedule(make_doctor(price=0))
        with pytest.raises(AppError) as exc:
            ScheduleService(db_session, FakePaymentGateway()).start_booking(schedule.id, patient_actor, now=now)
        assert exc.value.code == "INVALID_AMOUNT"

    def test_past_schedule(self, db_session, doctor, patient_actor, make_schedule, now):
        schedule = make_schedule(doctor, on_date=date(2030, 6, 2))
        with pytest.raises(ValidationError, match="in the past"):
            ScheduleService(db_session, FakePaymentGateway()).start_booking(schedule.id, patient_actor, now=now)


class TestManualBooking:
    """Admin walk-in bookings."""

    def test_queue_numbers_increase(self, db_session, doctor, make_user, admin_actor, make_schedule, notifier, now):
        schedule = make_schedule(doctor, max_patients=3)
        service = ScheduleService(db_session, FakePaymentGateway(), notifier)
        first = service.create_manual_booking(schedule.id, make_user().id, admin_actor, now=now)
        second = service.create_manual_booking(
            schedule.id, make_user().id, admin_actor, PaymentProvider.ESEWA, now=now
        )
        assert (first.queue_number, second.queue_number) == (1, 2)
        assert first.status == AppointmentStatus.CONFIRMED
        assert first.payment_status == PaymentStatus.PAID
        assert notifier.booked_ids == [first.id, second.id]
        assert db_session.query(Reminder).count() == 2

    def test_full_schedule(self, db_session, doctor, patient, admin_actor, make_schedule, now):
        schedule = make_schedule(doctor, max_patients=1)
        service = ScheduleService(db_session, FakePaymentGateway())
        service.create_manual_booking(schedule.id, patient.id, admin_actor, now=now)
        with pytest.raises(ConflictError, match="full"):
            service.create_manual_booking(schedule.id, patient.id, admin_actor, now=now)

    def test_admin_only(self, db_session, doctor, patient, doctor_actor, make_schedule, now):
        schedule = make_schedule(doctor)
        with pytest.raises(ValidationError):
            ScheduleService(db_session, FakePaymentGateway()).create_manual_booking(
                schedule.id, patient.id, doctor_actor, now=now
            )


class TestPaymentOutcome:
    """Webhook-driven confirmation."""

    def _start(self, db, schedule, actor, now):
        return ScheduleService(db, FakePaymentGateway()).start_booking(schedule.id, actor, now=now)

    def test_success_confirms_with_queue_number(self, db_session, doctor, patient_actor, make_schedule, notifier, now):
        schedule = make_schedule(doctor)
        started = self._start(db_session, schedule, patient_actor, now)
        appointment = ScheduleService(db_session, FakePaymentGateway(), notifier).handle_payment_succeeded(
            started["paymentIntentId"], now
        )
        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.queue_number == 1
        assert appointment.paid_at == now
        assert notifier.booked_ids == [appointment.id]

    def test_success_after_window_filled_is_overflow(
        self, db_session, doctor, patient, patient_actor, make_schedule, notifier, now
    ):
        schedule = make_schedule(doctor, max_patients=1)
        started = self._start(db_session, schedule, patient_actor, now)
        confirm(db_session, schedule, patient)
        appointment = ScheduleService(db_session, FakePaymentGateway(), notifier).handle_payment_succeeded(
            started["paymentIntentId"], now
        )
        assert appointment.status == AppointmentStatus.OVERFLOW
        assert appointment.payment_status == PaymentStatus.PAID
        assert appointment.queue_number is None
        assert notifier.booked_ids == []

    def test_repeated_delivery_is_ignored(self, db_session, doctor, patient_actor, make_schedule, now):
        schedule = make_schedule(doctor)
        started = self._start(db_session, schedule, patient_actor, now)
        service = ScheduleService(db_session, FakePaymentGateway())
        assert service.handle_payment_succeeded(started["paymentIntentId"], now) is not None
        assert service.handle_payment_succeeded(started["paymentIntentId"], now) is None
        assert service.handle_payment_succeeded("pi_unknown", now) is None

    def test_failure_cancels_pending_payment(self, db_session, doctor, patient_actor, make_schedule, now):
        schedule = make_schedule(doctor)
        started = self._start(db_session, schedule, patient_actor, now)
        appointment = ScheduleService(db_session, FakePaymentGateway()).handle_payment_failed(
            started["paymentIntentId"]
        )
        assert appointment.status == AppointmentStatus.CANCELLED
        assert appointment.payment_status == PaymentStatus.UNPAID
