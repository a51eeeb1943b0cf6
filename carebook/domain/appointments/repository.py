"""Appointment repository - Database operations for appointments"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, AppointmentStatus, Doctor, User


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.patient), joinedload(Appointment.doctor).joinedload(Doctor.user))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def get_appointment_for_update(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def get_by_payment_intent_for_update(db: Session, payment_intent_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.payment_intent_id == payment_intent_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def add_appointment(db: Session, **data) -> Appointment:
        """Stage a new appointment inside the caller's transaction. Does not commit."""
        appointment = Appointment(**data)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def get_doctor_for_update(db: Session, doctor_id: int) -> Optional[Doctor]:
        """Lock the doctor row so free-form bookings for one doctor serialize"""
        return db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()

    @staticmethod
    def find_conflicting(
        db: Session,
        doctor_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """A non-cancelled appointment for the doctor overlapping [start, end)"""
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.start_time < end_time,
            Appointment.end_time > start_time,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.first()

    @staticmethod
    def list_appointments(
        db: Session,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_archived: bool = False,
    ) -> list[Appointment]:
        query = db.query(Appointment)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if status:
            query = query.filter(Appointment.status == status)
        if start is not None:
            query = query.filter(Appointment.start_time >= start)
        if end is not None:
            query = query.filter(Appointment.start_time < end)
        if not include_archived:
            query = query.filter(Appointment.is_archived.is_(False))
        return query.order_by(Appointment.start_time.asc()).all()

    @staticmethod
    def count_confirmed_for_schedule(db: Session, schedule_id: int) -> int:
        return (
            db.query(Appointment)
            .filter(
                Appointment.schedule_id == schedule_id,
                Appointment.status == AppointmentStatus.CONFIRMED,
            )
            .count()
        )

    @staticmethod
    def archive_expired(db: Session, now: datetime) -> int:
        archived = (
            db.query(Appointment)
            .filter(Appointment.end_time < now, Appointment.is_archived.is_(False))
            .update({Appointment.is_archived: True}, synchronize_session=False)
        )
        db.commit()
        return archived

    @staticmethod
    def save(db: Session, appointment: Appointment) -> Appointment:
        db.commit()
        db.refresh(appointment)
        return appointment
