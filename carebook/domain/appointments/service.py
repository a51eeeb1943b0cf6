"""
Appointment service - Booking and the appointment lifecycle

Booking paths:
- from a generated slot (slot flips AVAILABLE -> BOOKED in the same transaction)
- free-form with explicit times (checked against availability and existing bookings)

Lifecycle: status updates, cancellation and rescheduling. Side effects
(reminder, email, webhook) run after commit and never undo the booking.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models import Appointment, AppointmentStatus, ExceptionType, Slot, SlotStatus
from ..availability.repository import AvailabilityRepository
from ..availability.service import availability_covers
from ..reminders.service import ReminderService
from ..schedule_exceptions.filter import exception_applies_to_doctor, is_slot_blocked
from ..schedule_exceptions.repository import ScheduleExceptionRepository
from ..scheduling.time_calculator import combine, utcnow
from ..slots.repository import SlotRepository
from .repository import AppointmentRepository
from .schemas import AppointmentCreate
from .status_rules import (
    RefundDecision,
    assert_can_cancel,
    assert_can_reschedule,
    assert_valid_status_transition,
    compute_refund_decision,
)

logger = logging.getLogger(__name__)

MIN_APPOINTMENT_LENGTH = timedelta(minutes=15)
MAX_APPOINTMENT_LENGTH = timedelta(hours=24)


def append_cancellation_reason(notes: Optional[str], reason: Optional[str]) -> Optional[str]:
    if not reason:
        return notes
    line = f"Cancellation reason: {reason}"
    return f"{notes}\n\n{line}" if notes else line


class _Window:
    """Minimal slot-shaped object for closure checks on free-form bookings"""

    def __init__(self, start_time: datetime, end_time: datetime):
        self.start_time = start_time
        self.end_time = end_time


class AppointmentService:
    """Service layer for appointment booking and lifecycle"""

    def __init__(self, db: Session, notifier=None, cancellation_policies: Optional[dict] = None):
        self.db = db
        self.repo = AppointmentRepository()
        self.slot_repo = SlotRepository()
        self.availability_repo = AvailabilityRepository()
        self.exception_repo = ScheduleExceptionRepository()
        self.reminders = ReminderService(db)
        self.notifier = notifier
        self.cancellation_policies = cancellation_policies

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_patient_id(self, requested_patient_id: Optional[int], actor: CurrentUser) -> int:
        if actor.is_patient:
            if requested_patient_id is not None and requested_patient_id != actor.id:
                raise ValidationError("You can only book appointments for yourself")
            return actor.id
        if requested_patient_id is None:
            raise ValidationError("patientId is required")
        return requested_patient_id

    def _is_closed(self, doctor_id: int, window) -> bool:
        closures = self.exception_repo.list_exceptions(
            self.db,
            doctor_id=doctor_id,
            date_from=window.start_time.date(),
            date_to=window.start_time.date(),
            exception_type=ExceptionType.UNAVAILABLE,
        )
        return is_slot_blocked(window, closures, doctor_id)

    def _covered_by_extra_hours(self, doctor_id: int, start_time: datetime, end_time: datetime) -> bool:
        extra_hours = self.exception_repo.list_exceptions(
            self.db,
            doctor_id=doctor_id,
            date_from=start_time.date(),
            date_to=start_time.date(),
            exception_type=ExceptionType.AVAILABLE,
        )
        for exception in extra_hours:
            if not exception_applies_to_doctor(exception, doctor_id):
                continue
            day = start_time.date()
            if combine(day, exception.start_time) <= start_time and end_time <= combine(day, exception.end_time):
                return True
        return False

    def _run_side_effect(self, name: str, func, *args) -> None:
        try:
            func(*args)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ {name} failed: {e}")

    def _after_booking(self, appointment: Appointment, now: datetime) -> None:
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

    def _check_visible(self, appointment: Appointment, actor: CurrentUser) -> None:
        if actor.is_admin:
            return
        if actor.is_patient and appointment.patient_id == actor.id:
            return
        if actor.is_doctor and appointment.doctor_id == actor.doctor_id:
            return
        raise NotFoundError("Appointment")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: int, actor: Optional[CurrentUser] = None) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment")
        if actor is not None:
            self._check_visible(appointment, actor)
        return appointment

    def list_for_patient(
        self, patient_id: int, status: Optional[str] = None, include_archived: bool = False
    ) -> list[Appointment]:
        return self.repo.list_appointments(
            self.db, patient_id=patient_id, status=status, include_archived=include_archived
        )

    def list_for_doctor(
        self,
        doctor_id: int,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_archived: bool = False,
    ) -> list[Appointment]:
        return self.repo.list_appointments(
            self.db, doctor_id=doctor_id, status=status, start=start, end=end, include_archived=include_archived
        )

    def list_appointments(self, actor: CurrentUser, **filters) -> list[Appointment]:
        """Appointments visible to the caller"""
        if actor.is_patient:
            filters["patient_id"] = actor.id
        elif actor.is_doctor:
            filters["doctor_id"] = actor.doctor_id
        return self.repo.list_appointments(self.db, **filters)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def create_appointment_from_slot(
        self,
        slot_id: int,
        actor: CurrentUser,
        patient_id: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Appointment:
        """
        Book a slot. Exactly one concurrent caller wins a given slot.

        The slot is read under a row lock and then claimed with a conditional
        UPDATE guarded on status AVAILABLE, so a stale read still loses.
        """
        now = now or utcnow()
        patient_id = self._resolve_patient_id(patient_id, actor)

        try:
            slot = self.slot_repo.get_slot_for_update(self.db, slot_id)
            if not slot:
                raise NotFoundError("Slot")
            if slot.status != SlotStatus.AVAILABLE:
                raise ConflictError("Slot is not available for booking")
            if slot.start_time <= now:
                raise ValidationError("Appointment must be scheduled in the future")
            if self._is_closed(slot.doctor_id, slot):
                raise ConflictError("Slot is not available for booking")

            if not self.repo.get_user(self.db, patient_id):
                raise NotFoundError("Patient")

            if not self.slot_repo.claim_slot(self.db, slot.id):
                logger.warning(f"⚠️ Slot {slot.id} was booked concurrently")
                raise ConflictError("Slot is not available for booking")

            appointment = self.repo.add_appointment(
                self.db,
                patient_id=patient_id,
                doctor_id=slot.doctor_id,
                availability_id=slot.availability_id,
                slot_id=slot.id,
                start_time=slot.start_time,
                end_time=slot.end_time,
                status=AppointmentStatus.PENDING,
                notes=notes,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        self.db.expire(slot)
        logger.info(f"✅ Appointment {appointment.id} booked on slot {slot_id} for patient {patient_id}")
        self._after_booking(appointment, now)
        return appointment

    def create_appointment(
        self, data: AppointmentCreate, actor: CurrentUser, now: Optional[datetime] = None
    ) -> Appointment:
        """Free-form booking inside the doctor's availability"""
        now = now or utcnow()
        patient_id = self._resolve_patient_id(data.patientId, actor)
        start_time, end_time = data.startTime, data.endTime

        if end_time <= start_time:
            raise ValidationError("End time must be after start time")
        if end_time - start_time < MIN_APPOINTMENT_LENGTH:
            raise ValidationError("Appointment must be at least 15 minutes long")
        if end_time - start_time > MAX_APPOINTMENT_LENGTH:
            raise ValidationError("Appointment cannot exceed 24 hours")
        if start_time <= now:
            raise ValidationError("Appointment must be scheduled in the future")

        try:
            # Doctor row lock: containment and conflict checks see a stable snapshot
            doctor = self.repo.get_doctor_for_update(self.db, data.doctorId)
            if not doctor:
                raise NotFoundError("Doctor")
            if not self.repo.get_user(self.db, patient_id):
                raise NotFoundError("Patient")

            availabilities = self.availability_repo.list_for_doctor(self.db, doctor.id)
            covered = any(availability_covers(a, start_time, end_time) for a in availabilities)
            if not covered and not self._covered_by_extra_hours(doctor.id, start_time, end_time):
                raise ValidationError("Appointment time is not within doctor's availability")
            if self._is_closed(doctor.id, _Window(start_time, end_time)):
                raise ValidationError("Doctor is unavailable at this time")

            if self.repo.find_conflicting(self.db, doctor.id, start_time, end_time):
                raise ConflictError("This time slot conflicts with an existing appointment")

            appointment = self.repo.add_appointment(
                self.db,
                patient_id=patient_id,
                doctor_id=doctor.id,
                start_time=start_time,
                end_time=end_time,
                status=AppointmentStatus.PENDING,
                notes=data.notes,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(f"✅ Free-form appointment {appointment.id} booked with doctor {data.doctorId}")
        self._after_booking(appointment, now)
        return appointment

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def update_appointment_status(
        self, appointment_id: int, next_status: str, actor: CurrentUser, now: Optional[datetime] = None
    ) -> Appointment:
        now = now or utcnow()
        if next_status == AppointmentStatus.CANCELLED:
            return self.cancel_appointment(appointment_id, actor, now=now)

        appointment = self.get_appointment(appointment_id, actor)
        if actor.is_patient:
            raise ValidationError("Patients cannot change appointment status")

        assert_valid_status_transition(
            appointment.status, next_status, appointment.start_time, appointment.end_time, now
        )
        if appointment.status == next_status:
            return appointment

        previous = appointment.status
        appointment.status = next_status
        appointment = self.repo.save(self.db, appointment)
        logger.info(f"✅ Appointment {appointment.id} status {previous} → {next_status}")
        return appointment

    def cancel_appointment(
        self,
        appointment_id: int,
        actor: CurrentUser,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Appointment:
        now = now or utcnow()
        self.get_appointment(appointment_id, actor)

        try:
            appointment = self.repo.get_appointment_for_update(self.db, appointment_id)
            assert_can_cancel(appointment, actor, now, self.cancellation_policies)
            assert_valid_status_transition(
                appointment.status,
                AppointmentStatus.CANCELLED,
                appointment.start_time,
                appointment.end_time,
                now,
            )

            appointment.status = AppointmentStatus.CANCELLED
            appointment.cancelled_by = actor.role
            appointment.cancelled_at = now
            appointment.notes = append_cancellation_reason(appointment.notes, reason)
            if appointment.slot_id:
                self.slot_repo.release_slot(self.db, appointment.slot_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} cancelled by {actor.role} {actor.id}")

        self._run_side_effect(
            f"Reminder cancellation for appointment {appointment.id}",
            self.reminders.cancel_reminder,
            appointment.id,
            now,
        )
        if self.notifier is not None:
            self._run_side_effect(
                f"Cancellation notification for appointment {appointment.id}",
                self.notifier.cancelled,
                appointment,
                reason,
            )
        return appointment

    def reschedule_appointment(
        self,
        appointment_id: int,
        new_slot_id: int,
        actor: CurrentUser,
        now: Optional[datetime] = None,
    ) -> Appointment:
        """
        Move an appointment to another slot of the same doctor.

        Old slot release, new slot claim and the appointment update commit
        together or not at all.
        """
        now = now or utcnow()
        self.get_appointment(appointment_id, actor)

        try:
            appointment = self.repo.get_appointment_for_update(self.db, appointment_id)
            assert_can_reschedule(appointment, actor, now, self.cancellation_policies)
            if appointment.schedule_id is not None:
                raise ValidationError("Capacity-based appointments cannot be moved to a slot")

            new_slot: Optional[Slot] = self.slot_repo.get_slot_for_update(self.db, new_slot_id)
            if not new_slot:
                raise NotFoundError("Slot")
            if new_slot.id == appointment.slot_id:
                raise ValidationError("Appointment is already booked in this slot")
            if new_slot.status != SlotStatus.AVAILABLE:
                raise ConflictError("Slot is not available for booking")
            if new_slot.doctor_id != appointment.doctor_id:
                raise ValidationError("Cannot reschedule to a slot of a different doctor")
            if new_slot.start_time <= now:
                raise ValidationError("Appointment must be scheduled in the future")
            if self._is_closed(new_slot.doctor_id, new_slot):
                raise ConflictError("Slot is not available for booking")

            if not self.slot_repo.claim_slot(self.db, new_slot.id):
                raise ConflictError("Slot is not available for booking")
            old_slot_id = appointment.slot_id
            if old_slot_id:
                self.slot_repo.release_slot(self.db, old_slot_id)

            previous_start = appointment.start_time
            appointment.slot_id = new_slot.id
            appointment.availability_id = new_slot.availability_id
            appointment.start_time = new_slot.start_time
            appointment.end_time = new_slot.end_time
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        self.db.expire(new_slot)
        logger.info(
            f"✅ Appointment {appointment.id} rescheduled from slot {old_slot_id} to slot {new_slot_id}"
        )

        self._run_side_effect(
            f"Reminder update for appointment {appointment.id}",
            self.reminders.update_reminder_for_reschedule,
            appointment.id,
            appointment.start_time,
            now,
        )
        if self.notifier is not None:
            self._run_side_effect(
                f"Reschedule notification for appointment {appointment.id}",
                self.notifier.rescheduled,
                appointment,
                previous_start,
            )
        return appointment

    def get_refund_policy(
        self, appointment_id: int, actor: CurrentUser, now: Optional[datetime] = None
    ) -> RefundDecision:
        """Refund the caller would get if they cancelled now (or when they did)"""
        appointment = self.get_appointment(appointment_id, actor)
        if appointment.status == AppointmentStatus.CANCELLED and appointment.cancelled_by:
            return compute_refund_decision(
                appointment.cancelled_by, appointment.cancelled_at, appointment.start_time
            )
        return compute_refund_decision(actor.role, now or utcnow(), appointment.start_time)
