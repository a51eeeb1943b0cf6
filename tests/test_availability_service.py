"""Tests for availability management."""

from datetime import datetime, timedelta

import pytest

from carebook.domain.availability.schemas import AvailabilityCreate, AvailabilityUpdate
from carebook.domain.availability.service import AvailabilityService, availability_covers
from carebook.errors import ConflictError, NotFoundError, ValidationError
from carebook.models import Appointment, AppointmentStatus, Availability, Slot, SlotStatus

from conftest import as_actor

TUESDAY_9 = datetime(2030, 6, 4, 9, 0)


def one_time(start=TUESDAY_9, hours=2, **extra):
    return AvailabilityCreate(startTime=start, endTime=start + timedelta(hours=hours), **extra)


class TestCreate:
    """create_availability."""

    def test_creates_and_generates_slots(self, db_session, doctor, doctor_actor, now):
        availability = AvailabilityService(db_session).create_availability(one_time(), doctor_actor, now)
        assert availability.doctor_id == doctor.id
        assert db_session.query(Slot).filter(Slot.availability_id == availability.id).count() == 4

    def test_admin_must_name_the_doctor(self, db_session, doctor, admin_actor, now):
        with pytest.raises(ValidationError, match="doctorId is required"):
            AvailabilityService(db_session).create_availability(one_time(), admin_actor, now)
        availability = AvailabilityService(db_session).create_availability(
            one_time(doctorId=doctor.id), admin_actor, now
        )
        assert availability.doctor_id == doctor.id

    def test_patients_cannot_manage_availability(self, db_session, patient_actor, now):
        with pytest.raises(ValidationError):
            AvailabilityService(db_session).create_availability(one_time(), patient_actor, now)

    def test_overlapping_one_time_window_conflicts(self, db_session, doctor_actor, now):
        service = AvailabilityService(db_session)
        service.create_availability(one_time(), doctor_actor, now)
        with pytest.raises(ConflictError, match="overlaps with an existing availability"):
            service.create_availability(one_time(start=TUESDAY_9 + timedelta(hours=1)), doctor_actor, now)

    def test_adjacent_windows_are_fine(self, db_session, doctor_actor, now):
        service = AvailabilityService(db_session)
        service.create_availability(one_time(), doctor_actor, now)
        service.create_availability(one_time(start=TUESDAY_9 + timedelta(hours=2)), doctor_actor, now)
        assert db_session.query(Availability).count() == 2

    @pytest.mark.parametrize(
        "start, end, message",
        [
            (TUESDAY_9, TUESDAY_9, "End time must be after start time"),
            (TUESDAY_9, TUESDAY_9 + timedelta(minutes=10), "at least 15 minutes"),
            (TUESDAY_9, TUESDAY_9 + timedelta(hours=25), "cannot exceed 24 hours"),
        ],
    )
    def test_window_length_rules(self, db_session, doctor_actor, now, start, end, message):
        with pytest.raises(ValidationError, match=message):
            AvailabilityService(db_session).create_availability(
                AvailabilityCreate(startTime=start, endTime=end), doctor_actor, now
            )

    def test_recurring_requires_day_and_valid_from(self, db_session, doctor_actor, now):
        service = AvailabilityService(db_session)
        with pytest.raises(ValidationError, match="Day of week"):
            service.create_availability(one_time(isRecurring=True, dayOfWeek=7, validFrom=now), doctor_actor, now)
        with pytest.raises(ValidationError, match="validFrom is required"):
            service.create_availability(one_time(isRecurring=True, dayOfWeek=2), doctor_actor, now)
        with pytest.raises(ValidationError, match="validTo must be after validFrom"):
            service.create_availability(
                one_time(isRecurring=True, dayOfWeek=2, validFrom=now, validTo=now - timedelta(days=1)),
                doctor_actor,
                now,
            )

    def test_aware_datetimes_are_stored_as_utc(self, db_session, doctor_actor, now):
        data = AvailabilityCreate(startTime="2030-06-04T11:00:00+02:00", endTime="2030-06-04T12:00:00+02:00")
        availability = AvailabilityService(db_session).create_availability(data, doctor_actor, now)
        assert availability.start_time == TUESDAY_9


class TestUpdateDelete:
    """update_availability and delete_availability."""

    def test_update_regenerates_open_slots_and_keeps_booked_and_blocked(self, db_session, doctor_actor, now):
        service = AvailabilityService(db_session)
        availability = service.create_availability(one_time(hours=1), doctor_actor, now)
        booked = db_session.query(Slot).filter(Slot.start_time == TUESDAY_9).one()
        booked.status = SlotStatus.BOOKED
        blocked = db_session.query(Slot).filter(Slot.start_time == TUESDAY_9 + timedelta(minutes=30)).one()
        blocked.status = SlotStatus.BLOCKED
        db_session.commit()

        service.update_availability(
            availability.id, AvailabilityUpdate(endTime=TUESDAY_9 + timedelta(hours=2)), doctor_actor, now
        )
        slots = db_session.query(Slot).filter(Slot.availability_id == availability.id).order_by(Slot.start_time).all()
        assert len(slots) == 4
        assert slots[0].status == SlotStatus.BOOKED
        assert [s.status for s in slots[1:]] == [SlotStatus.BLOCKED, SlotStatus.AVAILABLE, SlotStatus.AVAILABLE]
        assert slots[1].id == blocked.id

    def test_other_doctor_cannot_update(self, db_session, doctor_actor, make_doctor, now):
        availability = AvailabilityService(db_session).create_availability(one_time(), doctor_actor, now)
        other = as_actor(make_doctor().user)
        with pytest.raises(ValidationError, match="your own availability"):
            AvailabilityService(db_session).update_availability(
                availability.id, AvailabilityUpdate(endTime=TUESDAY_9 + timedelta(hours=3)), other, now
            )

    def test_delete_removes_slots(self, db_session, doctor_actor, now):
        service = AvailabilityService(db_session)
        availability = service.create_availability(one_time(), doctor_actor, now)
        result = service.delete_availability(availability.id, doctor_actor)
        assert result["deletedSlots"] == 4
        assert db_session.query(Slot).count() == 0
        with pytest.raises(NotFoundError):
            service.get_availability(availability.id)

    def test_delete_refused_while_appointments_exist(self, db_session, doctor, patient, doctor_actor, now):
        service = AvailabilityService(db_session)
        availability = service.create_availability(one_time(), doctor_actor, now)
        slot = db_session.query(Slot).first()
        db_session.add(
            Appointment(
                patient_id=patient.id, doctor_id=doctor.id, slot_id=slot.id, availability_id=availability.id,
                start_time=slot.start_time, end_time=slot.end_time, status=AppointmentStatus.PENDING,
            )
        )
        db_session.commit()
        with pytest.raises(ConflictError, match="1 appointment exists"):
            service.delete_availability(availability.id, doctor_actor)


class TestCovers:
    """availability_covers."""

    def test_one_time(self):
        availability = Availability(start_time=TUESDAY_9, end_time=TUESDAY_9 + timedelta(hours=2), is_recurring=False)
        assert availability_covers(availability, TUESDAY_9, TUESDAY_9 + timedelta(hours=1))
        assert not availability_covers(availability, TUESDAY_9 + timedelta(hours=1), TUESDAY_9 + timedelta(hours=3))

    def test_recurring(self):
        availability = Availability(
            start_time=datetime(2030, 1, 1, 9, 0),
            end_time=datetime(2030, 1, 1, 17, 0),
            is_recurring=True,
            day_of_week=2,
            valid_from=datetime(2030, 1, 1),
        )
        assert availability_covers(availability, datetime(2030, 6, 4, 10, 0), datetime(2030, 6, 4, 10, 30))
        assert not availability_covers(availability, datetime(2030, 6, 5, 10, 0), datetime(2030, 6, 5, 10, 30))
        assert not availability_covers(availability, datetime(2030, 6, 4, 16, 45), datetime(2030, 6, 4, 17, 15))
