"""Reminder sweep: send due reminders and mark them sent"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.appointments.repository import AppointmentRepository
from ..domain.reminders.service import REMINDER_OFFSETS, ReminderService
from ..domain.scheduling.time_calculator import utcnow
from ..email_service import send_appointment_reminder_email
from ..models import AppointmentStatus
from ..notifications import build_notice

logger = logging.getLogger(__name__)

SKIP_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW)


async def process_reminders(
    db: Session,
    now: Optional[datetime] = None,
    limit: int = 100,
    send_reminder=send_appointment_reminder_email,
) -> int:
    """
    Deliver due reminders.

    Reminders whose appointment vanished are marked sent; reminders for
    cancelled or completed appointments are cancelled. A failed send leaves the
    reminder untouched so the next sweep retries it.
    """
    now = now or utcnow()
    service = ReminderService(db)
    appointments = AppointmentRepository()
    processed = 0

    due = service.get_due_reminders(now, limit)
    logger.info(f"🔔 Processing {len(due)} due reminders")

    for reminder in due:
        try:
            appointment = appointments.get_appointment(db, reminder.appointment_id)
            if not appointment:
                service.mark_reminder_as_sent(reminder.id, now)
                processed += 1
                continue

            if appointment.status in SKIP_STATUSES:
                service.mark_reminder_as_cancelled(reminder.id, now)
                processed += 1
                continue

            hours = int(REMINDER_OFFSETS[reminder.reminder_type].total_seconds() // 3600)
            result = await send_reminder(build_notice(appointment), hours)
            if result and result.get("success"):
                service.mark_reminder_as_sent(reminder.id, now)
                processed += 1
                logger.info(f"✅ Reminder {reminder.id} sent for appointment {appointment.id}")
            else:
                error = result.get("error") if result else "no result"
                logger.warning(f"⚠️ Reminder {reminder.id} not sent, will retry: {error}")
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error processing reminder {reminder.id}: {e}")

    logger.info(f"🔔 Reminder sweep done: {processed}/{len(due)} processed")
    return processed
