"""Decide whether a slot is suppressed by a closure (UNAVAILABLE schedule exception)"""

from datetime import datetime
from typing import Iterable, Optional

from ...models import ExceptionType
from ..scheduling.time_calculator import MINUTES_PER_DAY, minutes_of_day, parse_time_to_minutes, times_overlap


def exception_applies_to_doctor(exception, doctor_id: Optional[int]) -> bool:
    return exception.doctor_id is None or exception.doctor_id == doctor_id


def slot_blocked_by_exception(slot, exception, doctor_id: Optional[int]) -> bool:
    """
    True when the exception covers the slot for this doctor.

    The slot's date must fall inside [date_from, date_to]. Full-day exceptions
    (no start/end time) block the whole date; partial ones block slots whose
    [start, end) overlaps the exception's [start_time, end_time).
    """
    if not exception_applies_to_doctor(exception, doctor_id):
        return False

    slot_start: datetime = slot.start_time
    slot_end: datetime = slot.end_time
    slot_date = slot_start.date()
    if slot_date < exception.date_from or slot_date > exception.date_to:
        return False

    if not exception.start_time or not exception.end_time:
        return True

    start_minutes = minutes_of_day(slot_start)
    end_minutes = minutes_of_day(slot_end) + (slot_end.date() - slot_date).days * MINUTES_PER_DAY
    return times_overlap(
        start_minutes,
        end_minutes,
        parse_time_to_minutes(exception.start_time),
        parse_time_to_minutes(exception.end_time),
    )


def is_slot_blocked(slot, exceptions: Iterable, doctor_id: Optional[int]) -> bool:
    """Only UNAVAILABLE exceptions suppress bookability"""
    return any(
        slot_blocked_by_exception(slot, exception, doctor_id)
        for exception in exceptions
        if exception.type == ExceptionType.UNAVAILABLE
    )


def filter_blocked_slots(slots: Iterable, exceptions: Iterable, doctor_id: Optional[int]) -> list:
    closures = [e for e in exceptions if e.type == ExceptionType.UNAVAILABLE]
    if not closures:
        return list(slots)
    return [s for s in slots if not is_slot_blocked(s, closures, doctor_id)]
