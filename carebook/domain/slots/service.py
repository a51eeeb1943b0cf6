"""Slot service - Template management, slot generation and doctor-side slot operations"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models import Availability, Doctor, ExceptionType, ScheduleException, Slot, SlotStatus, SlotTemplate
from ..availability.repository import AvailabilityRepository
from ..schedule_exceptions.filter import filter_blocked_slots
from ..schedule_exceptions.repository import ScheduleExceptionRepository
from ..scheduling.time_calculator import utcnow
from .generator import (
    DEFAULT_ADVANCE_BOOKING_DAYS,
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_DURATION_MINUTES,
    SlotCandidate,
    expand_availability,
    expand_exception_window,
    select_new_candidates,
)
from .repository import SlotRepository
from .schemas import SlotTemplateUpsert

logger = logging.getLogger(__name__)

MIN_SLOT_DURATION_MINUTES = 5
MAX_SLOT_DURATION_MINUTES = 8 * 60


def validate_template_values(duration_minutes: int, buffer_minutes: int, advance_booking_days: int) -> None:
    if duration_minutes < MIN_SLOT_DURATION_MINUTES:
        raise ValidationError("Slot duration must be at least 5 minutes")
    if duration_minutes > MAX_SLOT_DURATION_MINUTES:
        raise ValidationError("Slot duration cannot exceed 8 hours")
    if buffer_minutes < 0:
        raise ValidationError("Buffer minutes cannot be negative")
    if advance_booking_days < 1:
        raise ValidationError("Advance booking days must be at least 1 day")


class SlotService:
    """Service layer for slot templates and slots"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SlotRepository()
        self.availability_repo = AvailabilityRepository()
        self.exception_repo = ScheduleExceptionRepository()

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_or_create_template(self, doctor_id: int) -> SlotTemplate:
        template = self.repo.get_template(self.db, doctor_id)
        if template:
            return template
        logger.info(f"📅 Creating default slot template for doctor {doctor_id}")
        return self.repo.create_template(
            self.db,
            doctor_id,
            duration_minutes=DEFAULT_DURATION_MINUTES,
            buffer_minutes=DEFAULT_BUFFER_MINUTES,
            advance_booking_days=DEFAULT_ADVANCE_BOOKING_DAYS,
        )

    def upsert_template(self, doctor_id: int, data: SlotTemplateUpsert, actor: CurrentUser) -> SlotTemplate:
        if actor.is_doctor and actor.doctor_id != doctor_id:
            raise ValidationError("You can only manage your own slot template")

        template = self.get_or_create_template(doctor_id)
        duration = data.durationMinutes if data.durationMinutes is not None else template.duration_minutes
        buffer = data.bufferMinutes if data.bufferMinutes is not None else template.buffer_minutes
        horizon = (
            data.advanceBookingDays if data.advanceBookingDays is not None else template.advance_booking_days
        )
        validate_template_values(duration, buffer, horizon)

        return self.repo.update_template(
            self.db,
            template,
            duration_minutes=duration,
            buffer_minutes=buffer,
            advance_booking_days=horizon,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _drop_closed(self, candidates: list[SlotCandidate], doctor_id: int) -> list[SlotCandidate]:
        """Remove candidates that fall inside a closure for this doctor"""
        if not candidates:
            return candidates
        closures = self.exception_repo.list_exceptions(
            self.db,
            doctor_id=doctor_id,
            date_from=min(c.start_time for c in candidates).date(),
            date_to=max(c.start_time for c in candidates).date(),
            exception_type=ExceptionType.UNAVAILABLE,
        )
        return filter_blocked_slots(candidates, closures, doctor_id)

    def generate_slots_for_availability(self, availability: Availability, now: Optional[datetime] = None) -> int:
        """Expand an availability into new slots; returns the number created"""
        now = now or utcnow()
        template = self.get_or_create_template(availability.doctor_id)

        candidates = expand_availability(availability, template, now)
        existing = self.repo.get_existing_windows(
            self.db, availability.doctor_id, now, availability_id=availability.id
        )
        new_candidates = self._drop_closed(select_new_candidates(candidates, existing, now), availability.doctor_id)

        created = self.repo.bulk_create_slots(self.db, new_candidates)
        logger.info(
            f"📅 Generated {created} slots for availability {availability.id} (doctor {availability.doctor_id})"
        )
        return created

    def generate_slots_for_exception(self, exception: ScheduleException, now: Optional[datetime] = None) -> int:
        """Extra-hours slots for an AVAILABLE exception, for its doctor or for every doctor"""
        now = now or utcnow()
        if exception.type != ExceptionType.AVAILABLE:
            return 0

        if exception.doctor_id is not None:
            doctor_ids = [exception.doctor_id]
        else:
            doctor_ids = [row.id for row in self.db.query(Doctor.id).all()]

        created = 0
        for doctor_id in doctor_ids:
            template = self.get_or_create_template(doctor_id)
            candidates = expand_exception_window(exception, doctor_id, template)
            existing = self.repo.get_existing_windows(
                self.db, doctor_id, now, schedule_exception_id=exception.id
            )
            new_candidates = self._drop_closed(select_new_candidates(candidates, existing, now), doctor_id)
            created += self.repo.bulk_create_slots(self.db, new_candidates)

        logger.info(f"📅 Generated {created} extra-hours slots for exception {exception.id}")
        return created

    def generate_slots_for_doctor(self, doctor_id: int, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        created = 0
        for availability in self.availability_repo.list_active(self.db, now, doctor_id=doctor_id):
            created += self.generate_slots_for_availability(availability, now)
        return created

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_slot(self, slot_id: int) -> Slot:
        slot = self.repo.get_slot(self.db, slot_id)
        if not slot:
            raise NotFoundError("Slot")
        return slot

    def get_slots_by_doctor(
        self,
        doctor_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[Slot]:
        """
        Slots for a doctor, hiding orphans and slots inside closures.

        When the doctor has no slots at all in the range, generation runs once
        for their active availabilities before answering.
        """
        now = now or utcnow()
        slots = self.repo.list_slots_for_doctor(self.db, doctor_id, start, end, status)
        if not slots:
            logger.info(f"📅 No slots found for doctor {doctor_id}, generating from availability")
            if self.generate_slots_for_doctor(doctor_id, now):
                slots = self.repo.list_slots_for_doctor(self.db, doctor_id, start, end, status)

        if not slots:
            return []

        closures = self.exception_repo.list_exceptions(
            self.db,
            doctor_id=doctor_id,
            date_from=slots[0].start_time.date(),
            date_to=slots[-1].start_time.date(),
            exception_type=ExceptionType.UNAVAILABLE,
        )
        return filter_blocked_slots(slots, closures, doctor_id)

    # ------------------------------------------------------------------
    # Doctor-side operations
    # ------------------------------------------------------------------

    def _get_owned_slot(self, slot_id: int, actor: CurrentUser, action: str) -> Slot:
        slot = self.get_slot(slot_id)
        if not actor.is_admin and actor.doctor_id != slot.doctor_id:
            raise ValidationError(f"You can only {action} your own slots")
        return slot

    def block_slot(self, slot_id: int, actor: CurrentUser) -> Slot:
        slot = self._get_owned_slot(slot_id, actor, "block")
        if slot.status == SlotStatus.BOOKED:
            raise ConflictError("Cannot block a booked slot")
        if slot.status == SlotStatus.BLOCKED:
            return slot
        logger.info(f"📅 Blocking slot {slot.id} for doctor {slot.doctor_id}")
        return self.repo.set_status(self.db, slot, SlotStatus.BLOCKED)

    def unblock_slot(self, slot_id: int, actor: CurrentUser) -> Slot:
        slot = self._get_owned_slot(slot_id, actor, "unblock")
        if slot.status != SlotStatus.BLOCKED:
            raise ValidationError("Slot is not blocked")
        logger.info(f"📅 Unblocking slot {slot.id} for doctor {slot.doctor_id}")
        return self.repo.set_status(self.db, slot, SlotStatus.AVAILABLE)

    def delete_slot(self, slot_id: int, actor: CurrentUser) -> dict:
        slot = self._get_owned_slot(slot_id, actor, "delete")
        if self.repo.count_active_appointments(self.db, [slot.id]):
            raise ConflictError("Cannot delete a slot with existing appointments")
        self.repo.delete_slot(self.db, slot)
        return {"message": "Slot deleted"}

    def cleanup_old_slots(self, before: Optional[datetime] = None) -> int:
        """Delete AVAILABLE slots that ended before the cutoff (default: one day ago)"""
        before = before or utcnow() - timedelta(days=1)
        deleted = self.repo.cleanup_old_slots(self.db, before)
        logger.info(f"🧹 Cleaned up {deleted} old slots ended before {before.isoformat()}")
        return deleted
