"""Availability repository - Database operations for doctor availability windows"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ...models import Availability


class AvailabilityRepository:
    """Repository for availability database operations"""

    @staticmethod
    def create_availability(db: Session, **data) -> Availability:
        availability = Availability(**data)
        db.add(availability)
        db.commit()
        db.refresh(availability)
        return availability

    @staticmethod
    def get_availability(db: Session, availability_id: int) -> Optional[Availability]:
        return db.query(Availability).filter(Availability.id == availability_id).first()

    @staticmethod
    def list_for_doctor(db: Session, doctor_id: int) -> list[Availability]:
        return (
            db.query(Availability)
            .filter(Availability.doctor_id == doctor_id)
            .order_by(Availability.is_recurring.desc(), Availability.day_of_week, Availability.start_time)
            .all()
        )

    @staticmethod
    def update_availability(db: Session, availability: Availability, **updates) -> Availability:
        for key, value in updates.items():
            if hasattr(availability, key):
                setattr(availability, key, value)
        db.commit()
        db.refresh(availability)
        return availability

    @staticmethod
    def find_overlapping_one_time(
        db: Session,
        doctor_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_id: Optional[int] = None,
    ) -> Optional[Availability]:
        query = db.query(Availability).filter(
            Availability.doctor_id == doctor_id,
            Availability.is_recurring.is_(False),
            Availability.start_time < end_time,
            Availability.end_time > start_time,
        )
        if exclude_id is not None:
            query = query.filter(Availability.id != exclude_id)
        return query.first()

    @staticmethod
    def list_active(db: Session, now: datetime, doctor_id: Optional[int] = None) -> list[Availability]:
        """Recurring windows still valid and one-time windows that have not ended"""
        query = db.query(Availability).filter(
            or_(
                and_(
                    Availability.is_recurring.is_(True),
                    or_(Availability.valid_to.is_(None), Availability.valid_to >= now),
                ),
                and_(Availability.is_recurring.is_(False), Availability.end_time > now),
            )
        )
        if doctor_id is not None:
            query = query.filter(Availability.doctor_id == doctor_id)
        return query.all()

    @staticmethod
    def delete_availability(db: Session, availability: Availability) -> None:
        """Does not commit"""
        db.delete(availability)
