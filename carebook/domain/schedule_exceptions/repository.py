"""Schedule exception repository - Database operations for closures and extra hours"""

from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import ScheduleException


class ScheduleExceptionRepository:
    """Repository for schedule exception database operations"""

    @staticmethod
    def create_exceptions(db: Session, rows: list[dict]) -> list[ScheduleException]:
        """Create one or more exceptions in a single commit"""
        exceptions = [ScheduleException(**row) for row in rows]
        db.add_all(exceptions)
        db.commit()
        for exception in exceptions:
            db.refresh(exception)
        return exceptions

    @staticmethod
    def get_exception(db: Session, exception_id: int) -> Optional[ScheduleException]:
        return db.query(ScheduleException).filter(ScheduleException.id == exception_id).first()

    @staticmethod
    def list_exceptions(
        db: Session,
        doctor_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        exception_type: Optional[str] = None,
    ) -> list[ScheduleException]:
        """List exceptions; a doctor filter also returns all-doctor rows"""
        query = db.query(ScheduleException)
        if doctor_id is not None:
            query = query.filter(
                or_(ScheduleException.doctor_id == doctor_id, ScheduleException.doctor_id.is_(None))
            )
        if date_from is not None:
            query = query.filter(ScheduleException.date_to >= date_from)
        if date_to is not None:
            query = query.filter(ScheduleException.date_from <= date_to)
        if exception_type:
            query = query.filter(ScheduleException.type == exception_type)
        return query.order_by(ScheduleException.date_from.asc(), ScheduleException.id.asc()).all()

    @staticmethod
    def delete_exception(db: Session, exception: ScheduleException) -> None:
        db.delete(exception)
        db.commit()
