"""Slot repository - Database operations for slots and slot templates"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Appointment, AppointmentStatus, Slot, SlotStatus, SlotTemplate
from .generator import SlotCandidate


class SlotRepository:
    """Repository for slot database operations"""

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    @staticmethod
    def get_template(db: Session, doctor_id: int) -> Optional[SlotTemplate]:
        return db.query(SlotTemplate).filter(SlotTemplate.doctor_id == doctor_id).first()

    @staticmethod
    def create_template(db: Session, doctor_id: int, **values) -> SlotTemplate:
        template = SlotTemplate(doctor_id=doctor_id, **values)
        db.add(template)
        db.commit()
        db.refresh(template)
        return template

    @staticmethod
    def update_template(db: Session, template: SlotTemplate, **updates) -> SlotTemplate:
        for key, value in updates.items():
            if value is not None and hasattr(template, key):
                setattr(template, key, value)
        db.commit()
        db.refresh(template)
        return template

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    @staticmethod
    def get_slot(db: Session, slot_id: int) -> Optional[Slot]:
        return db.query(Slot).filter(Slot.id == slot_id).first()

    @staticmethod
    def get_slot_for_update(db: Session, slot_id: int) -> Optional[Slot]:
        """Read a slot under a row lock (no-op on SQLite) with fresh column values"""
        return (
            db.query(Slot)
            .filter(Slot.id == slot_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def list_slots_for_doctor(
        db: Session,
        doctor_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> list[Slot]:
        """Slots that still belong to an availability or an extra-hours exception"""
        query = db.query(Slot).filter(
            Slot.doctor_id == doctor_id,
            or_(Slot.availability_id.isnot(None), Slot.schedule_exception_id.isnot(None)),
        )
        if start is not None:
            query = query.filter(Slot.start_time >= start)
        if end is not None:
            query = query.filter(Slot.start_time < end)
        if status:
            query = query.filter(Slot.status == status)
        return query.order_by(Slot.start_time.asc()).all()

    @staticmethod
    def get_existing_windows(
        db: Session,
        doctor_id: int,
        since: datetime,
        availability_id: Optional[int] = None,
        schedule_exception_id: Optional[int] = None,
    ) -> set[tuple[datetime, datetime]]:
        """(start, end) pairs of future slots already stored for the same source"""
        query = db.query(Slot.start_time, Slot.end_time).filter(
            Slot.doctor_id == doctor_id, Slot.start_time >= since
        )
        if availability_id is not None:
            query = query.filter(Slot.availability_id == availability_id)
        if schedule_exception_id is not None:
            query = query.filter(Slot.schedule_exception_id == schedule_exception_id)
        return {(row.start_time, row.end_time) for row in query.all()}

    @staticmethod
    def bulk_create_slots(db: Session, candidates: Iterable[SlotCandidate]) -> int:
        slots = [
            Slot(
                doctor_id=c.doctor_id,
                availability_id=c.availability_id,
                schedule_exception_id=c.schedule_exception_id,
                start_time=c.start_time,
                end_time=c.end_time,
                status=c.status,
            )
            for c in candidates
        ]
        if not slots:
            return 0
        db.add_all(slots)
        db.commit()
        return len(slots)

    @staticmethod
    def claim_slot(db: Session, slot_id: int) -> bool:
        """
        Flip AVAILABLE -> BOOKED only if the slot is still AVAILABLE.

        Returns False when another transaction got there first. Does not commit.
        """
        updated = (
            db.query(Slot)
            .filter(Slot.id == slot_id, Slot.status == SlotStatus.AVAILABLE)
            .update({Slot.status: SlotStatus.BOOKED}, synchronize_session=False)
        )
        return updated == 1

    @staticmethod
    def release_slot(db: Session, slot_id: int) -> None:
        """BOOKED -> AVAILABLE. Does not commit."""
        db.query(Slot).filter(Slot.id == slot_id, Slot.status == SlotStatus.BOOKED).update(
            {Slot.status: SlotStatus.AVAILABLE}, synchronize_session=False
        )

    @staticmethod
    def set_status(db: Session, slot: Slot, status: str) -> Slot:
        slot.status = status
        db.commit()
        db.refresh(slot)
        return slot

    @staticmethod
    def count_active_appointments(db: Session, slot_ids: list[int]) -> int:
        """Non-cancelled appointments holding any of the given slots"""
        if not slot_ids:
            return 0
        return (
            db.query(Appointment)
            .filter(
                Appointment.slot_id.in_(slot_ids),
                Appointment.status != AppointmentStatus.CANCELLED,
            )
            .count()
        )

    @staticmethod
    def delete_slot(db: Session, slot: Slot) -> None:
        db.delete(slot)
        db.commit()

    @staticmethod
    def slot_ids_for_availability(db: Session, availability_id: int) -> list[int]:
        rows = db.query(Slot.id).filter(Slot.availability_id == availability_id).all()
        return [row.id for row in rows]

    @staticmethod
    def delete_slots_for_availability(db: Session, availability_id: int) -> int:
        """Does not commit"""
        return (
            db.query(Slot)
            .filter(Slot.availability_id == availability_id)
            .delete(synchronize_session=False)
        )

    @staticmethod
    def delete_available_slots_for_availability(db: Session, availability_id: int, since: datetime) -> int:
        """Future AVAILABLE slots of an availability; booked and blocked ones stay. Commits."""
        deleted = (
            db.query(Slot)
            .filter(
                Slot.availability_id == availability_id,
                Slot.start_time >= since,
                Slot.status == SlotStatus.AVAILABLE,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    @staticmethod
    def slot_ids_for_exception(db: Session, schedule_exception_id: int) -> list[int]:
        rows = db.query(Slot.id).filter(Slot.schedule_exception_id == schedule_exception_id).all()
        return [row.id for row in rows]

    @staticmethod
    def delete_slots_for_exception(db: Session, schedule_exception_id: int) -> int:
        """Does not commit"""
        return (
            db.query(Slot)
            .filter(Slot.schedule_exception_id == schedule_exception_id)
            .delete(synchronize_session=False)
        )

    @staticmethod
    def cleanup_old_slots(db: Session, before: datetime) -> int:
        deleted = (
            db.query(Slot)
            .filter(Slot.status == SlotStatus.AVAILABLE, Slot.end_time < before)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted
