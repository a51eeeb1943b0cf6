"""Reminder repository - Database operations for appointment reminders"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Reminder


class ReminderRepository:
    """Repository for reminder database operations"""

    @staticmethod
    def get_reminder(db: Session, reminder_id: int) -> Optional[Reminder]:
        return db.query(Reminder).filter(Reminder.id == reminder_id).first()

    @staticmethod
    def get_by_appointment(db: Session, appointment_id: int) -> Optional[Reminder]:
        return db.query(Reminder).filter(Reminder.appointment_id == appointment_id).first()

    @staticmethod
    def create_reminder(db: Session, **data) -> Reminder:
        reminder = Reminder(**data)
        db.add(reminder)
        db.commit()
        db.refresh(reminder)
        return reminder

    @staticmethod
    def save(db: Session, reminder: Reminder) -> Reminder:
        db.commit()
        db.refresh(reminder)
        return reminder

    @staticmethod
    def get_due_reminders(db: Session, now: datetime, limit: int = 100) -> list[Reminder]:
        """Unsent, uncancelled reminders scheduled at or before now"""
        return (
            db.query(Reminder)
            .filter(
                Reminder.scheduled_for <= now,
                Reminder.sent_at.is_(None),
                Reminder.cancelled_at.is_(None),
            )
            .order_by(Reminder.scheduled_for.asc())
            .limit(limit)
            .all()
        )
