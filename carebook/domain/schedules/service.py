"""
Schedule service - Capacity-based booking windows

A schedule is date + HH:mm window + maxPatients. Remaining capacity is never
stored; it is recomputed from CONFIRMED appointments on every read and checked
again under the schedule row lock before a seat is handed out.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ... import config
from ...auth import CurrentUser
from ...errors import AppError, ConflictError, NotFoundError, ServiceUnavailableError, ValidationError
from ...models import AppointmentStatus, Doctor, PaymentProvider, PaymentStatus, Schedule
from ...payments import PaymentGateway
from ..appointments.repository import AppointmentRepository
from ..reminders.service import ReminderService
from ..scheduling.time_calculator import (
    combine,
    normalize_time_string,
    parse_date,
    parse_time_to_minutes,
    times_overlap,
    utcnow,
)
from .repository import ScheduleRepository
from .schemas import ScheduleCreate, ScheduleUpdate

logger = logging.getLogger(__name__)

DISABLED_REASONS = {
    "PAST": "This window has already ended.",
    "FULL": "This window is full.",
    "PAYMENT_NOT_CONFIGURED": "Booking is unavailable (payment not configured).",
}


@dataclass(frozen=True)
class ScheduleWindow:
    schedule_id: int
    doctor_id: int
    date: date
    start_time: str
    end_time: str
    max_patients: int
    confirmed_count: int
    remaining: int
    is_bookable: bool
    disabled_reason_code: Optional[str] = None
    disabled_reason: Optional[str] = None


def schedule_bounds(schedule: Schedule) -> tuple[datetime, datetime]:
    return combine(schedule.date, schedule.start_time), combine(schedule.date, schedule.end_time)


def disabled_reason_code(window_end: datetime, confirmed: int, max_patients: int, payment_ready: bool, now: datetime):
    """First matching blocker wins: PAST, then FULL, then PAYMENT_NOT_CONFIGURED"""
    if window_end <= now:
        return "PAST"
    if confirmed >= max_patients:
        return "FULL"
    if not payment_ready:
        return "PAYMENT_NOT_CONFIGURED"
    return None


def validate_schedule_fields(start_time: str, end_time: str, max_patients: int) -> None:
    if max_patients is None or max_patients < 1:
        raise ValidationError("maxPatients must be at least 1")
    if parse_time_to_minutes(start_time) >= parse_time_to_minutes(end_time):
        raise ValidationError("startTime must be before endTime")


class ScheduleService:
    """Service layer for capacity-based schedules and their bookings"""

    def __init__(self, db: Session, payment_gateway: Optional[PaymentGateway] = None, notifier=None):
        self.db = db
        self.repo = ScheduleRepository()
        self.appointment_repo = AppointmentRepository()
        self.reminders = ReminderService(db)
        self.payment_gateway = payment_gateway or PaymentGateway()
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_doctor_id(self, requested_doctor_id: Optional[int], actor: CurrentUser) -> int:
        if actor.is_doctor:
            if requested_doctor_id is not None and requested_doctor_id != actor.doctor_id:
                raise ValidationError("You can only manage your own schedules")
            doctor_id = actor.doctor_id
        elif actor.is_admin:
            if requested_doctor_id is None:
                raise ValidationError("doctorId is required")
            doctor_id = requested_doctor_id
        else:
            raise ValidationError("Only doctors and admins can manage schedules")

        if not self.db.query(Doctor.id).filter(Doctor.id == doctor_id).first():
            raise NotFoundError("Doctor")
        return doctor_id

    def _assert_owner(self, schedule: Schedule, actor: CurrentUser) -> None:
        if actor.is_admin:
            return
        if not actor.is_doctor or actor.doctor_id != schedule.doctor_id:
            raise ValidationError("You can only manage your own schedules")

    def _assert_no_overlap(
        self, doctor_id: int, on_date: date, start_time: str, end_time: str, exclude_id: Optional[int] = None
    ) -> None:
        existing = self.repo.list_for_doctor_on_date(self.db, doctor_id, on_date, exclude_id)
        for schedule in existing:
            if schedule.start_time == start_time and schedule.end_time == end_time:
                raise ConflictError("A schedule with this time window already exists for this doctor on this date")

        new_start, new_end = parse_time_to_minutes(start_time), parse_time_to_minutes(end_time)
        for schedule in existing:
            if times_overlap(
                new_start,
                new_end,
                parse_time_to_minutes(schedule.start_time),
                parse_time_to_minutes(schedule.end_time),
            ):
                raise ConflictError(
                    "This time window overlaps with an existing schedule for the same doctor on this date"
                )

    def is_payment_ready(self, doctor: Optional[Doctor]) -> bool:
        price = doctor.appointment_price if doctor else None
        return self.payment_gateway.is_configured() and bool(price and price > 0)

    def _run_side_effect(self, name: str, func, *args) -> None:
        try:
            func(*args)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ {name} failed: {e}")

    def _after_confirmed(self, appointment, now: datetime) -> None:
        self._run_side_effect(
            f"Reminder scheduling for appointment {appointment.id}",
            self.reminders.schedule_for_appointment,
            appointment,
            now,
        )
        if self.notifier is not None:
            self._run_side_effect(
                f"Booking notification for appointment {appointment.id}", self.notifier.booked, appointment
            )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_schedule(self, data: ScheduleCreate, actor: CurrentUser, now: Optional[datetime] = None) -> Schedule:
        now = now or utcnow()
        doctor_id = self._resolve_doctor_id(data.doctorId, actor)
        on_date = parse_date(data.date)
        start_time = normalize_time_string(data.startTime)
        end_time = normalize_time_string(data.endTime)
        validate_schedule_fields(start_time, end_time, data.maxPatients)
        if combine(on_date, end_time) <= now:
            raise ValidationError("Cannot create a schedule for a time window that has already ended")

        self._assert_no_overlap(doctor_id, on_date, start_time, end_time)

        try:
            schedule = self.repo.create_schedule(
                self.db,
                doctor_id=doctor_id,
                date=on_date,
                start_time=start_time,
                end_time=end_time,
                max_patients=data.maxPatients,
                created_by_id=actor.id,
            )
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("A schedule with this time window already exists for this doctor on this date")

        logger.info(
            f"📅 Schedule {schedule.id} created: doctor {doctor_id} {on_date} {start_time}-{end_time} "
            f"(max {data.maxPatients})"
        )
        return schedule

    def get_schedule(self, schedule_id: int) -> Schedule:
        schedule = self.repo.get_schedule(self.db, schedule_id)
        if not schedule:
            raise NotFoundError("Schedule")
        return schedule

    def list_schedules(
        self, doctor_id: Optional[int] = None, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> list[Schedule]:
        return self.repo.list_schedules(
            self.db,
            doctor_id=doctor_id,
            date_from=parse_date(date_from) if date_from else None,
            date_to=parse_date(date_to) if date_to else None,
        )

    def count_confirmed_for_schedule(self, schedule_id: int) -> int:
        return self.appointment_repo.count_confirmed_for_schedule(self.db, schedule_id)

    def update_schedule(
        self, schedule_id: int, data: ScheduleUpdate, actor: CurrentUser, now: Optional[datetime] = None
    ) -> Schedule:
        now = now or utcnow()
        schedule = self.get_schedule(schedule_id)
        self._assert_owner(schedule, actor)

        on_date = parse_date(data.date) if data.date else schedule.date
        start_time = normalize_time_string(data.startTime) if data.startTime else schedule.start_time
        end_time = normalize_time_string(data.endTime) if data.endTime else schedule.end_time
        max_patients = data.maxPatients if data.maxPatients is not None else schedule.max_patients
        validate_schedule_fields(start_time, end_time, max_patients)
        if combine(on_date, end_time) <= now:
            raise ValidationError("Cannot move a schedule to a time window that has already ended")

        confirmed = self.count_confirmed_for_schedule(schedule.id)
        if max_patients < confirmed:
            raise ConflictError(f"maxPatients cannot be lower than the {confirmed} confirmed bookings")

        self._assert_no_overlap(schedule.doctor_id, on_date, start_time, end_time, exclude_id=schedule.id)

        try:
            return self.repo.update_schedule(
                self.db,
                schedule,
                date=on_date,
                start_time=start_time,
                end_time=end_time,
                max_patients=max_patients,
            )
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("A schedule with this time window already exists for this doctor on this date")

    def delete_schedule(self, schedule_id: int, actor: CurrentUser) -> dict:
        schedule = self.get_schedule(schedule_id)
        self._assert_owner(schedule, actor)
        confirmed = self.count_confirmed_for_schedule(schedule.id)
        if confirmed:
            raise ConflictError(
                f"Cannot delete schedule: {confirmed} confirmed appointment(s) exist. Cancel them first."
            )
        self.repo.delete_schedule(self.db, schedule)
        logger.info(f"🗑️ Schedule {schedule_id} deleted")
        return {"message": "Schedule deleted"}

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def get_availability_windows(
        self, doctor_id: int, on_date, now: Optional[datetime] = None
    ) -> list[ScheduleWindow]:
        """Remaining capacity and bookability for each schedule of a doctor on a date"""
        now = now or utcnow()
        on_date = parse_date(on_date)
        doctor = self.appointment_repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor")
        payment_ready = self.is_payment_ready(doctor)

        windows = []
        for schedule in self.repo.list_for_doctor_on_date(self.db, doctor_id, on_date):
            confirmed = self.count_confirmed_for_schedule(schedule.id)
            _, window_end = schedule_bounds(schedule)
            code = disabled_reason_code(window_end, confirmed, schedule.max_patients, payment_ready, now)
            windows.append(
                ScheduleWindow(
                    schedule_id=schedule.id,
                    doctor_id=schedule.doctor_id,
                    date=schedule.date,
                    start_time=schedule.start_time,
                    end_time=schedule.end_time,
                    max_patients=schedule.max_patients,
                    confirmed_count=confirmed,
                    remaining=max(0, schedule.max_patients - confirmed),
                    is_bookable=code is None,
                    disabled_reason_code=code,
                    disabled_reason=DISABLED_REASONS.get(code),
                )
            )
        return windows

    def get_upcoming_schedule_dates(
        self, doctor_id: int, days: int = 30, now: Optional[datetime] = None
    ) -> list[date]:
        """Distinct dates in the next `days` days that still have a window ending in the future"""
        now = now or utcnow()
        schedules = self.repo.list_schedules(
            self.db, doctor_id=doctor_id, date_from=now.date(), date_to=now.date() + timedelta(days=days)
        )
        dates = []
        for schedule in schedules:
            if schedule_bounds(schedule)[1] > now and schedule.date not in dates:
                dates.append(schedule.date)
        return dates

    def get_next_upcoming_schedule(
        self, doctor_ids: list[int], now: Optional[datetime] = None
    ) -> dict[int, Optional[Schedule]]:
        """Per doctor, the earliest schedule that has not ended yet"""
        now = now or utcnow()
        result: dict[int, Optional[Schedule]] = {doctor_id: None for doctor_id in doctor_ids}
        if not doctor_ids:
            return result
        for schedule in self.repo.list_schedules(self.db, doctor_ids=doctor_ids, date_from=now.date()):
            if result.get(schedule.doctor_id) is None and schedule_bounds(schedule)[1] > now:
                result[schedule.doctor_id] = schedule
        return result

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def start_booking(
        self,
        schedule_id: int,
        actor: CurrentUser,
        patient_id: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Reserve a paid booking attempt: creates a PENDING_PAYMENT appointment
        and a payment intent. No capacity is consumed until payment succeeds.
        """
        now = now or utcnow()
        if actor.is_patient:
            patient_id = actor.id
        elif patient_id is None:
            raise ValidationError("patientId is required")

        schedule = self.get_schedule(schedule_id)
        start_at, end_at = schedule_bounds(schedule)
        if end_at <= now:
            raise ValidationError("This schedule is in the past. Please choose an upcoming date.")

        confirmed = self.count_confirmed_for_schedule(schedule.id)
        if confirmed >= schedule.max_patients:
            raise ConflictError("This schedule window is full. Please choose another time.")

        if not self.payment_gateway.is_configured():
            raise ServiceUnavailableError("Payments are not configured", code="STRIPE_NOT_CONFIGURED")

        doctor = self.appointment_repo.get_doctor(self.db, schedule.doctor_id)
        price = doctor.appointment_price if doctor else None
        if not price or price <= 0:
            raise AppError("Appointment price must be greater than zero", code="INVALID_AMOUNT", status_code=422)

        if not self.appointment_repo.get_user(self.db, patient_id):
            raise NotFoundError("Patient")

        intent = self.payment_gateway.create_payment_intent(
            amount_cents=int(round(price * 100)),
            currency=config.PAYMENT_CURRENCY,
            metadata={"scheduleId": schedule.id, "doctorId": schedule.doctor_id, "patientId": patient_id},
        )

        try:
            appointment = self.appointment_repo.add_appointment(
                self.db,
                patient_id=patient_id,
                doctor_id=schedule.doctor_id,
                schedule_id=schedule.id,
                start_time=start_at,
                end_time=end_at,
                status=AppointmentStatus.PENDING_PAYMENT,
                payment_status=PaymentStatus.UNPAID,
                payment_provider=PaymentProvider.STRIPE,
                payment_intent_id=intent.id,
                notes=notes,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"💳 Booking started: appointment {appointment.id} on schedule {schedule.id} ({intent.id})")
        return {"clientSecret": intent.client_secret, "appointmentId": appointment.id, "paymentIntentId": intent.id}

    def create_manual_booking(
        self,
        schedule_id: int,
        patient_id: int,
        actor: CurrentUser,
        payment_provider: str = PaymentProvider.CASH,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ):
        """Walk-in / cash booking: CONFIRMED and PAID immediately with the next queue number"""
        now = now or utcnow()
        if not actor.is_admin:
            raise ValidationError("Only admins can create manual bookings")
        if payment_provider not in (PaymentProvider.CASH, PaymentProvider.ESEWA, PaymentProvider.STRIPE):
            raise ValidationError(f"Unsupported payment provider: {payment_provider}")

        try:
            schedule = self.repo.get_schedule_for_update(self.db, schedule_id)
            if not schedule:
                raise NotFoundError("Schedule")
            start_at, end_at = schedule_bounds(schedule)
            if end_at <= now:
                raise ValidationError("This schedule is in the past. Please choose an upcoming date.")
            if not self.appointment_repo.get_user(self.db, patient_id):
                raise NotFoundError("Patient")

            confirmed = self.appointment_repo.count_confirmed_for_schedule(self.db, schedule.id)
            if confirmed >= schedule.max_patients:
                raise ConflictError("This schedule window is full.")

            appointment = self.appointment_repo.add_appointment(
                self.db,
                patient_id=patient_id,
                doctor_id=schedule.doctor_id,
                schedule_id=schedule.id,
                start_time=start_at,
                end_time=end_at,
                status=AppointmentStatus.CONFIRMED,
                payment_status=PaymentStatus.PAID,
                payment_provider=payment_provider,
                paid_at=now,
                queue_number=confirmed + 1,
                notes=notes,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"✅ Manual booking {appointment.id} on schedule {schedule_id}: queue #{appointment.queue_number}"
        )
        self._after_confirmed(appointment, now)
        return appointment

    # ------------------------------------------------------------------
    # Payment outcomes
    # ------------------------------------------------------------------

    def handle_payment_succeeded(self, payment_intent_id: str, now: Optional[datetime] = None):
        """Assign a queue number, or mark OVERFLOW when the window filled up meanwhile"""
        now = now or utcnow()
        try:
            appointment = self.appointment_repo.get_by_payment_intent_for_update(self.db, payment_intent_id)
            if not appointment:
                logger.warning(f"⚠️ No appointment for payment intent {payment_intent_id}")
                return None
            if appointment.status != AppointmentStatus.PENDING_PAYMENT:
                logger.info(f"Payment intent {payment_intent_id} already processed ({appointment.status})")
                return None

            schedule = self.repo.get_schedule_for_update(self.db, appointment.schedule_id)
            if not schedule:
                logger.error(f"❌ Schedule {appointment.schedule_id} missing for payment {payment_intent_id}")
                return None

            confirmed = self.appointment_repo.count_confirmed_for_schedule(self.db, schedule.id)
            appointment.payment_status = PaymentStatus.PAID
            appointment.paid_at = now
            if confirmed >= schedule.max_patients:
                appointment.status = AppointmentStatus.OVERFLOW
                logger.warning(
                    f"⚠️ OVERFLOW after payment: appointment {appointment.id} on schedule {schedule.id} "
                    f"({confirmed}/{schedule.max_patients})"
                )
            else:
                appointment.status = AppointmentStatus.CONFIRMED
                appointment.queue_number = confirmed + 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        if appointment.status == AppointmentStatus.CONFIRMED:
            logger.info(f"✅ Appointment {appointment.id} confirmed with queue #{appointment.queue_number}")
            self._after_confirmed(appointment, now)
        return appointment

    def handle_payment_failed(self, payment_intent_id: str):
        try:
            appointment = self.appointment_repo.get_by_payment_intent_for_update(self.db, payment_intent_id)
            if not appointment or appointment.status != AppointmentStatus.PENDING_PAYMENT:
                return None
            appointment.status = AppointmentStatus.CANCELLED
            appointment.payment_status = PaymentStatus.UNPAID
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Appointment {appointment.id} cancelled after failed payment {payment_intent_id}")
        return appointment
