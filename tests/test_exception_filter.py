"""Tests for closure filtering of slots."""

from datetime import date, datetime
from types import SimpleNamespace

from carebook.domain.schedule_exceptions.filter import (
    filter_blocked_slots,
    is_slot_blocked,
    slot_blocked_by_exception,
)
from carebook.models import ExceptionType


def slot(start, end):
    return SimpleNamespace(start_time=start, end_time=end)


def closure(date_from, date_to, start=None, end=None, doctor_id=None, type=ExceptionType.UNAVAILABLE):
    return SimpleNamespace(
        doctor_id=doctor_id, date_from=date_from, date_to=date_to, start_time=start, end_time=end, type=type
    )


MORNING = slot(datetime(2030, 6, 4, 9, 0), datetime(2030, 6, 4, 9, 30))
AFTERNOON = slot(datetime(2030, 6, 4, 14, 0), datetime(2030, 6, 4, 14, 30))


class TestSlotBlockedByException:
    """Single exception against a single slot."""

    def test_full_day_closure_blocks_every_slot_on_date(self):
        holiday = closure(date(2030, 6, 4), date(2030, 6, 4))
        assert slot_blocked_by_exception(MORNING, holiday, 1)
        assert slot_blocked_by_exception(AFTERNOON, holiday, 1)

    def test_dates_outside_range_are_not_blocked(self):
        holiday = closure(date(2030, 6, 5), date(2030, 6, 7))
        assert not slot_blocked_by_exception(MORNING, holiday, 1)

    def test_partial_closure_blocks_only_overlapping_slots(self):
        lunch_meeting = closure(date(2030, 6, 4), date(2030, 6, 4), "13:30", "14:15")
        assert not slot_blocked_by_exception(MORNING, lunch_meeting, 1)
        assert slot_blocked_by_exception(AFTERNOON, lunch_meeting, 1)

    def test_partial_closure_touching_slot_does_not_block(self):
        before = closure(date(2030, 6, 4), date(2030, 6, 4), "08:00", "09:00")
        assert not slot_blocked_by_exception(MORNING, before, 1)

    def test_doctor_specific_closure_only_applies_to_that_doctor(self):
        leave = closure(date(2030, 6, 4), date(2030, 6, 4), doctor_id=2)
        assert slot_blocked_by_exception(MORNING, leave, 2)
        assert not slot_blocked_by_exception(MORNING, leave, 1)


class TestFiltering:
    """Lists of slots and exceptions."""

    def test_extra_hours_never_block(self):
        extra = closure(date(2030, 6, 4), date(2030, 6, 4), "09:00", "10:00", type=ExceptionType.AVAILABLE)
        assert not is_slot_blocked(MORNING, [extra], 1)

    def test_filter_removes_blocked_slots(self):
        morning_off = closure(date(2030, 6, 4), date(2030, 6, 4), "08:00", "12:00")
        assert filter_blocked_slots([MORNING, AFTERNOON], [morning_off], 1) == [AFTERNOON]

    def test_filter_without_closures_keeps_everything(self):
        assert filter_blocked_slots([MORNING, AFTERNOON], [], 1) == [MORNING, AFTERNOON]
