"""Schedule repository - Database operations for capacity-based schedule windows"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Schedule


class ScheduleRepository:
    """Repository for schedule database operations"""

    @staticmethod
    def create_schedule(db: Session, **data) -> Schedule:
        schedule = Schedule(**data)
        db.add(schedule)
        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def get_schedule(db: Session, schedule_id: int) -> Optional[Schedule]:
        return db.query(Schedule).filter(Schedule.id == schedule_id).first()

    @staticmethod
    def get_schedule_for_update(db: Session, schedule_id: int) -> Optional[Schedule]:
        """Row lock that serializes capacity checks for one schedule window"""
        return (
            db.query(Schedule)
            .filter(Schedule.id == schedule_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def list_for_doctor_on_date(
        db: Session, doctor_id: int, on_date: date, exclude_id: Optional[int] = None
    ) -> list[Schedule]:
        query = db.query(Schedule).filter(Schedule.doctor_id == doctor_id, Schedule.date == on_date)
        if exclude_id is not None:
            query = query.filter(Schedule.id != exclude_id)
        return query.order_by(Schedule.start_time.asc()).all()

    @staticmethod
    def list_schedules(
        db: Session,
        doctor_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        doctor_ids: Optional[list[int]] = None,
    ) -> list[Schedule]:
        query = db.query(Schedule)
        if doctor_id is not None:
            query = query.filter(Schedule.doctor_id == doctor_id)
        if doctor_ids is not None:
            query = query.filter(Schedule.doctor_id.in_(doctor_ids))
        if date_from is not None:
            query = query.filter(Schedule.date >= date_from)
        if date_to is not None:
            query = query.filter(Schedule.date <= date_to)
        return query.order_by(Schedule.date.asc(), Schedule.start_time.asc()).all()

    @staticmethod
    def update_schedule(db: Session, schedule: Schedule, **updates) -> Schedule:
        for key, value in updates.items():
            if value is not None and hasattr(schedule, key):
                setattr(schedule, key, value)
        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def delete_schedule(db: Session, schedule: Schedule) -> None:
        db.delete(schedule)
        db.commit()
