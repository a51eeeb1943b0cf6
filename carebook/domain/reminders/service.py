"""Reminder service - One reminder per appointment, 24h or 1h before it starts"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ...models import Reminder, ReminderType
from ..scheduling.time_calculator import utcnow
from .repository import ReminderRepository

logger = logging.getLogger(__name__)

REMINDER_OFFSETS = {
    ReminderType.TWENTY_FOUR_HOUR: timedelta(hours=24),
    ReminderType.ONE_HOUR: timedelta(hours=1),
}


def plan_reminder(start_time: datetime, now: datetime) -> tuple[str, datetime]:
    """24h reminder when there is still time for it, otherwise a 1h reminder"""
    day_before = start_time - REMINDER_OFFSETS[ReminderType.TWENTY_FOUR_HOUR]
    if day_before >= now:
        return ReminderType.TWENTY_FOUR_HOUR, day_before
    return ReminderType.ONE_HOUR, start_time - REMINDER_OFFSETS[ReminderType.ONE_HOUR]


def is_processed(reminder: Reminder) -> bool:
    return reminder.sent_at is not None or reminder.cancelled_at is not None


class ReminderService:
    """Service layer for appointment reminders"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ReminderRepository()

    def create_reminder(
        self,
        appointment_id: int,
        scheduled_for: datetime,
        reminder_type: str = ReminderType.TWENTY_FOUR_HOUR,
        now: Optional[datetime] = None,
    ) -> Reminder:
        now = now or utcnow()
        if scheduled_for < now:
            raise ValidationError("Reminder must be scheduled in the future")
        if self.repo.get_by_appointment(self.db, appointment_id):
            raise ValidationError("A reminder already exists for this appointment")

        reminder = self.repo.create_reminder(
            self.db,
            appointment_id=appointment_id,
            reminder_type=reminder_type,
            scheduled_for=scheduled_for,
        )
        logger.info(f"🔔 Reminder {reminder.id} scheduled for appointment {appointment_id} at {scheduled_for}")
        return reminder

    def schedule_for_appointment(self, appointment, now: Optional[datetime] = None) -> Reminder:
        now = now or utcnow()
        reminder_type, scheduled_for = plan_reminder(appointment.start_time, now)
        return self.create_reminder(appointment.id, scheduled_for, reminder_type, now)

    def cancel_reminder(self, appointment_id: int, now: Optional[datetime] = None) -> Optional[Reminder]:
        """Cancel a pending reminder; None when there is nothing left to cancel"""
        reminder = self.repo.get_by_appointment(self.db, appointment_id)
        if not reminder or is_processed(reminder):
            return None
        reminder.cancelled_at = now or utcnow()
        logger.info(f"🔔 Reminder {reminder.id} cancelled for appointment {appointment_id}")
        return self.repo.save(self.db, reminder)

    def update_reminder_for_reschedule(
        self, appointment_id: int, new_start_time: datetime, now: Optional[datetime] = None
    ) -> Optional[Reminder]:
        now = now or utcnow()
        reminder_type, scheduled_for = plan_reminder(new_start_time, now)
        reminder = self.repo.get_by_appointment(self.db, appointment_id)

        if not reminder:
            if scheduled_for < now:
                return None
            return self.create_reminder(appointment_id, scheduled_for, reminder_type, now)

        if scheduled_for < now:
            if not is_processed(reminder):
                reminder.cancelled_at = now
                self.repo.save(self.db, reminder)
            return None

        # Re-arm in place: the appointment keeps a single reminder row
        if is_processed(reminder):
            logger.info(f"🔔 Re-arming processed reminder {reminder.id} after reschedule")
            reminder.sent_at = None

        reminder.reminder_type = reminder_type
        reminder.scheduled_for = scheduled_for
        reminder.cancelled_at = None
        logger.info(f"🔔 Reminder {reminder.id} moved to {scheduled_for}")
        return self.repo.save(self.db, reminder)

    def get_due_reminders(self, now: Optional[datetime] = None, limit: int = 100) -> list[Reminder]:
        return self.repo.get_due_reminders(self.db, now or utcnow(), limit)

    def mark_reminder_as_sent(self, reminder_id: int, now: Optional[datetime] = None) -> Reminder:
        """Idempotent: an already sent reminder keeps its original timestamp"""
        reminder = self.repo.get_reminder(self.db, reminder_id)
        if not reminder:
            raise NotFoundError("Reminder")
        if reminder.sent_at is None:
            reminder.sent_at = now or utcnow()
            self.repo.save(self.db, reminder)
        return reminder

    def mark_reminder_as_cancelled(self, reminder_id: int, now: Optional[datetime] = None) -> Reminder:
        reminder = self.repo.get_reminder(self.db, reminder_id)
        if not reminder:
            raise NotFoundError("Reminder")
        if reminder.cancelled_at is None:
            reminder.cancelled_at = now or utcnow()
            self.repo.save(self.db, reminder)
        return reminder
