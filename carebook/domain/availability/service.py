"""Availability service - Doctor availability windows and the slots derived from them"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models import Availability, Doctor
from ..scheduling.time_calculator import day_of_week_index, utcnow
from ..slots.repository import SlotRepository
from ..slots.service import SlotService
from .repository import AvailabilityRepository
from .schemas import AvailabilityCreate, AvailabilityUpdate

logger = logging.getLogger(__name__)

MIN_WINDOW = timedelta(minutes=15)
MAX_WINDOW = timedelta(hours=24)


def validate_window(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")
    if end_time - start_time < MIN_WINDOW:
        raise ValidationError("Availability must be at least 15 minutes long")
    if end_time - start_time > MAX_WINDOW:
        raise ValidationError("Availability cannot exceed 24 hours")


def validate_recurrence(
    is_recurring: bool,
    day_of_week: Optional[int],
    valid_from: Optional[datetime],
    valid_to: Optional[datetime],
) -> None:
    if not is_recurring:
        return
    if day_of_week is None or not 0 <= day_of_week <= 6:
        raise ValidationError("Day of week must be between 0 (Sunday) and 6 (Saturday)")
    if valid_from is None:
        raise ValidationError("validFrom is required for recurring schedules")
    if valid_to is not None and valid_to < valid_from:
        raise ValidationError("validTo must be after validFrom")


def availability_covers(availability: Availability, start_time: datetime, end_time: datetime) -> bool:
    """True when [start_time, end_time) lies inside the availability window"""
    if not availability.is_recurring:
        return availability.start_time <= start_time and end_time <= availability.end_time

    if day_of_week_index(start_time) != availability.day_of_week:
        return False
    if availability.valid_from and start_time.date() < availability.valid_from.date():
        return False
    if availability.valid_to and start_time.date() > availability.valid_to.date():
        return False

    window_start = datetime.combine(start_time.date(), availability.start_time.time())
    window_end = datetime.combine(start_time.date(), availability.end_time.time())
    if window_end <= window_start:
        window_end += timedelta(days=1)
    return window_start <= start_time and end_time <= window_end


class AvailabilityService:
    """Service layer for availability business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AvailabilityRepository()
        self.slot_repo = SlotRepository()

    def _resolve_doctor_id(self, requested_doctor_id: Optional[int], actor: CurrentUser) -> int:
        if actor.is_doctor:
            if requested_doctor_id is not None and requested_doctor_id != actor.doctor_id:
                raise ValidationError("You can only manage your own availability")
            doctor_id = actor.doctor_id
        elif actor.is_admin:
            if requested_doctor_id is None:
                raise ValidationError("doctorId is required")
            doctor_id = requested_doctor_id
        else:
            raise ValidationError("Only doctors and admins can manage availability")

        if not self.db.query(Doctor.id).filter(Doctor.id == doctor_id).first():
            raise NotFoundError("Doctor")
        return doctor_id

    def _assert_owner(self, availability: Availability, actor: CurrentUser) -> None:
        if actor.is_admin:
            return
        if not actor.is_doctor or actor.doctor_id != availability.doctor_id:
            raise ValidationError("You can only manage your own availability")

    def _regenerate_slots(self, availability: Availability, now: datetime) -> None:
        """Slot generation is best effort; the availability itself is already saved"""
        try:
            SlotService(self.db).generate_slots_for_availability(availability, now)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Slot generation failed for availability {availability.id}: {e}")

    def get_availability(self, availability_id: int) -> Availability:
        availability = self.repo.get_availability(self.db, availability_id)
        if not availability:
            raise NotFoundError("Availability")
        return availability

    def list_for_doctor(self, doctor_id: int) -> list[Availability]:
        return self.repo.list_for_doctor(self.db, doctor_id)

    def create_availability(
        self, data: AvailabilityCreate, actor: CurrentUser, now: Optional[datetime] = None
    ) -> Availability:
        now = now or utcnow()
        doctor_id = self._resolve_doctor_id(data.doctorId, actor)

        validate_window(data.startTime, data.endTime)
        validate_recurrence(data.isRecurring, data.dayOfWeek, data.validFrom, data.validTo)

        # Read-then-write: concurrent creates may both pass, see DESIGN.md
        if not data.isRecurring and self.repo.find_overlapping_one_time(
            self.db, doctor_id, data.startTime, data.endTime
        ):
            raise ConflictError("This time slot overlaps with an existing availability")

        try:
            availability = self.repo.create_availability(
                self.db,
                doctor_id=doctor_id,
                start_time=data.startTime,
                end_time=data.endTime,
                is_recurring=data.isRecurring,
                day_of_week=data.dayOfWeek if data.isRecurring else None,
                valid_from=data.validFrom if data.isRecurring else None,
                valid_to=data.validTo if data.isRecurring else None,
            )
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Availability already exists")

        logger.info(f"📅 Availability {availability.id} created for doctor {doctor_id}")
        self._regenerate_slots(availability, now)
        return availability

    def update_availability(
        self,
        availability_id: int,
        data: AvailabilityUpdate,
        actor: CurrentUser,
        now: Optional[datetime] = None,
    ) -> Availability:
        now = now or utcnow()
        availability = self.get_availability(availability_id)
        self._assert_owner(availability, actor)

        fields = data.model_dump(exclude_unset=True)
        start_time = fields.get("startTime", availability.start_time)
        end_time = fields.get("endTime", availability.end_time)
        is_recurring = fields.get("isRecurring", availability.is_recurring)
        day_of_week = fields.get("dayOfWeek", availability.day_of_week)
        valid_from = fields.get("validFrom", availability.valid_from)
        valid_to = fields.get("validTo", availability.valid_to)

        validate_window(start_time, end_time)
        validate_recurrence(is_recurring, day_of_week, valid_from, valid_to)

        if not is_recurring and self.repo.find_overlapping_one_time(
            self.db, availability.doctor_id, start_time, end_time, exclude_id=availability.id
        ):
            raise ConflictError("This time slot overlaps with an existing availability")

        availability = self.repo.update_availability(
            self.db,
            availability,
            start_time=start_time,
            end_time=end_time,
            is_recurring=is_recurring,
            day_of_week=day_of_week if is_recurring else None,
            valid_from=valid_from if is_recurring else None,
            valid_to=valid_to if is_recurring else None,
        )

        removed = self.slot_repo.delete_available_slots_for_availability(self.db, availability.id, now)
        logger.info(f"📅 Availability {availability.id} updated; {removed} available slots cleared for regeneration")
        self._regenerate_slots(availability, now)
        return availability

    def delete_availability(self, availability_id: int, actor: CurrentUser) -> dict:
        availability = self.get_availability(availability_id)
        self._assert_owner(availability, actor)

        slot_ids = self.slot_repo.slot_ids_for_availability(self.db, availability.id)
        active = self.slot_repo.count_active_appointments(self.db, slot_ids)
        if active:
            noun = "appointment exists" if active == 1 else "appointments exist"
            raise ConflictError(
                f"Cannot delete schedule: {active} {noun} in this period. Cancel or reschedule them first."
            )

        try:
            deleted_slots = self.slot_repo.delete_slots_for_availability(self.db, availability.id)
            self.repo.delete_availability(self.db, availability)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Availability {availability_id} deleted with {deleted_slots} slots")
        return {"message": "Availability deleted", "deletedSlots": deleted_slots}
