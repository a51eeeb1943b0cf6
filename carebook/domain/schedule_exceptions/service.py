"""Schedule exception service - Holidays, partial closures and extra hours"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models import Doctor, ExceptionType, ScheduleException
from ..scheduling.time_calculator import normalize_time_string, parse_date, utcnow, validate_time_range
from ..slots.repository import SlotRepository
from ..slots.service import SlotService
from .repository import ScheduleExceptionRepository
from .schemas import ScheduleExceptionCreate

logger = logging.getLogger(__name__)

SCOPE_ALL_DOCTORS = "ALL_DOCTORS"
SCOPE_SELECTED_DOCTORS = "SELECTED_DOCTORS"

DEFAULT_REASONS = {
    ExceptionType.UNAVAILABLE: "HOLIDAY",
    ExceptionType.AVAILABLE: "EXTRA_HOURS",
}


class ScheduleExceptionService:
    """Service layer for schedule exceptions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleExceptionRepository()
        self.slot_repo = SlotRepository()

    def create_exceptions(
        self, data: ScheduleExceptionCreate, actor: CurrentUser, now: Optional[datetime] = None
    ) -> list[ScheduleException]:
        """Create one row for all doctors, or one row per selected doctor"""
        now = now or utcnow()
        if not actor.is_admin:
            raise ValidationError("Only admins can manage schedule exceptions")

        date_from = parse_date(data.dateFrom)
        date_to = parse_date(data.dateTo)
        if date_to < date_from:
            raise ValidationError("End date must be on or after start date")

        if data.type not in (ExceptionType.UNAVAILABLE, ExceptionType.AVAILABLE):
            raise ValidationError("Type must be UNAVAILABLE or AVAILABLE")

        start_time = normalize_time_string(data.startTime) if data.startTime else None
        end_time = normalize_time_string(data.endTime) if data.endTime else None
        if data.type == ExceptionType.AVAILABLE:
            if not start_time or not end_time:
                raise ValidationError("Extra hours require start time and end time")
        elif bool(start_time) != bool(end_time):
            raise ValidationError("Partial closure requires start time and end time")
        validate_time_range(start_time, end_time)

        if data.scope == SCOPE_ALL_DOCTORS:
            doctor_ids: list[Optional[int]] = [None]
        elif data.scope == SCOPE_SELECTED_DOCTORS:
            if not data.doctorIds:
                raise ValidationError("At least one doctor must be selected")
            doctor_ids = list(dict.fromkeys(data.doctorIds))
            known = {row.id for row in self.db.query(Doctor.id).filter(Doctor.id.in_(doctor_ids)).all()}
            missing = [d for d in doctor_ids if d not in known]
            if missing:
                raise NotFoundError(f"Doctor {missing[0]}")
        else:
            raise ValidationError("Scope must be ALL_DOCTORS or SELECTED_DOCTORS")

        rows = [
            {
                "doctor_id": doctor_id,
                "date_from": date_from,
                "date_to": date_to,
                "start_time": start_time,
                "end_time": end_time,
                "type": data.type,
                "reason": data.reason or DEFAULT_REASONS[data.type],
                "label": data.label,
                "created_by_id": actor.id,
            }
            for doctor_id in doctor_ids
        ]
        exceptions = self.repo.create_exceptions(self.db, rows)
        logger.info(f"📅 Created {len(exceptions)} {data.type} exception(s) for {date_from} → {date_to}")

        if data.type == ExceptionType.AVAILABLE:
            slot_service = SlotService(self.db)
            for exception in exceptions:
                try:
                    slot_service.generate_slots_for_exception(exception, now)
                except Exception as e:
                    self.db.rollback()
                    logger.error(f"❌ Extra-hours slot generation failed for exception {exception.id}: {e}")
        return exceptions

    def get_exception(self, exception_id: int) -> ScheduleException:
        exception = self.repo.get_exception(self.db, exception_id)
        if not exception:
            raise NotFoundError("Schedule exception")
        return exception

    def list_exceptions(
        self,
        doctor_id: Optional[int] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        exception_type: Optional[str] = None,
    ) -> list[ScheduleException]:
        return self.repo.list_exceptions(
            self.db,
            doctor_id=doctor_id,
            date_from=parse_date(date_from) if date_from else None,
            date_to=parse_date(date_to) if date_to else None,
            exception_type=exception_type,
        )

    def get_exceptions_for_slot_generation(
        self, doctor_id: int, date_from: date, date_to: date
    ) -> list[ScheduleException]:
        """Closures and extra hours that touch a doctor's generation range"""
        return self.repo.list_exceptions(self.db, doctor_id=doctor_id, date_from=date_from, date_to=date_to)

    def delete_exception(self, exception_id: int, actor: CurrentUser) -> dict:
        if not actor.is_admin:
            raise ValidationError("Only admins can manage schedule exceptions")
        exception = self.get_exception(exception_id)

        if exception.type == ExceptionType.AVAILABLE:
            slot_ids = self.slot_repo.slot_ids_for_exception(self.db, exception.id)
            active = self.slot_repo.count_active_appointments(self.db, slot_ids)
            if active:
                noun = "appointment is" if active == 1 else "appointments are"
                raise ConflictError(
                    f"Cannot delete extra hours: {active} {noun} booked in them. Cancel or reschedule them first."
                )

        deleted_slots = 0
        try:
            if exception.type == ExceptionType.AVAILABLE:
                deleted_slots = self.slot_repo.delete_slots_for_exception(self.db, exception.id)
            self.repo.delete_exception(self.db, exception)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Schedule exception {exception_id} deleted ({deleted_slots} extra-hours slots removed)")
        return {"message": "Schedule exception deleted", "deletedSlots": deleted_slots}
