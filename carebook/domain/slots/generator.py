"""
Slot generator - expands availability windows into bookable slots.

Pure functions only: no database access. Everything emitted is AVAILABLE;
blocking by closures or bookings is applied by the caller.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from ...models import SlotStatus
from ..scheduling.time_calculator import combine, day_of_week_index, iter_dates

DEFAULT_DURATION_MINUTES = 30
DEFAULT_BUFFER_MINUTES = 0
DEFAULT_ADVANCE_BOOKING_DAYS = 30


@dataclass(frozen=True)
class SlotCandidate:
    doctor_id: int
    start_time: datetime
    end_time: datetime
    availability_id: Optional[int] = None
    schedule_exception_id: Optional[int] = None
    status: str = SlotStatus.AVAILABLE

    @property
    def window(self) -> tuple[datetime, datetime]:
        return self.start_time, self.end_time


def lay_out_windows(
    window_start: datetime, window_end: datetime, duration_minutes: int, buffer_minutes: int
) -> list[tuple[datetime, datetime]]:
    """Back-to-back slots of fixed duration separated by the buffer, never past window_end"""
    if duration_minutes <= 0:
        return []

    duration = timedelta(minutes=duration_minutes)
    buffer = timedelta(minutes=max(buffer_minutes, 0))
    windows = []
    current = window_start
    while current + duration <= window_end:
        slot_end = current + duration
        windows.append((current, slot_end))
        current = slot_end + buffer
    return windows


def lay_out_single_window(
    window_start: datetime, window_end: datetime, duration_minutes: int, buffer_minutes: int
) -> list[tuple[datetime, datetime]]:
    """Like lay_out_windows, but a window shorter than one slot becomes one slot covering it"""
    if window_end <= window_start:
        return []
    if window_end - window_start < timedelta(minutes=duration_minutes):
        return [(window_start, window_end)]
    return lay_out_windows(window_start, window_end, duration_minutes, buffer_minutes)


def recurring_date_range(availability, template, now: datetime) -> tuple[date, date]:
    """
    Dates walked for a recurring availability.

    Runs from valid_from to valid_to (or now + advance_booking_days when open
    ended), clipped to [today, today + advance_booking_days].
    """
    horizon = (now + timedelta(days=template.advance_booking_days)).date()
    first = availability.valid_from.date() if availability.valid_from else now.date()
    last = availability.valid_to.date() if availability.valid_to else horizon
    return max(first, now.date()), min(last, horizon)


def expand_recurring(availability, template, now: datetime) -> list[SlotCandidate]:
    first, last = recurring_date_range(availability, template, now)
    start_of_day = availability.start_time.time()
    end_of_day = availability.end_time.time()

    candidates = []
    for day in iter_dates(first, last):
        if day_of_week_index(day) != availability.day_of_week:
            continue
        window_start = datetime.combine(day, start_of_day)
        window_end = datetime.combine(day, end_of_day)
        if window_end <= window_start:
            # Overnight window ends on the following day
            window_end += timedelta(days=1)
        for start, end in lay_out_windows(
            window_start, window_end, template.duration_minutes, template.buffer_minutes
        ):
            candidates.append(
                SlotCandidate(
                    doctor_id=availability.doctor_id,
                    availability_id=availability.id,
                    start_time=start,
                    end_time=end,
                )
            )
    return candidates


def expand_one_time(availability, template) -> list[SlotCandidate]:
    return [
        SlotCandidate(
            doctor_id=availability.doctor_id,
            availability_id=availability.id,
            start_time=start,
            end_time=end,
        )
        for start, end in lay_out_single_window(
            availability.start_time,
            availability.end_time,
            template.duration_minutes,
            template.buffer_minutes,
        )
    ]


def expand_availability(availability, template, now: datetime) -> list[SlotCandidate]:
    """Candidate slots for an availability, ordered by start time"""
    if availability.is_recurring:
        return expand_recurring(availability, template, now)
    return expand_one_time(availability, template)


def expand_exception_window(exception, doctor_id: int, template) -> list[SlotCandidate]:
    """Extra-hours slots for each date covered by an AVAILABLE schedule exception"""
    candidates = []
    for day in iter_dates(exception.date_from, exception.date_to):
        for start, end in lay_out_single_window(
            combine(day, exception.start_time),
            combine(day, exception.end_time),
            template.duration_minutes,
            template.buffer_minutes,
        ):
            candidates.append(
                SlotCandidate(
                    doctor_id=doctor_id,
                    schedule_exception_id=exception.id,
                    start_time=start,
                    end_time=end,
                )
            )
    return candidates


def select_new_candidates(
    candidates: Iterable[SlotCandidate],
    existing_windows: set[tuple[datetime, datetime]],
    now: datetime,
) -> list[SlotCandidate]:
    """Drop candidates that already exist, start in the past or have no duration"""
    seen = set(existing_windows)
    selected = []
    for candidate in candidates:
        if candidate.end_time <= candidate.start_time:
            continue
        if candidate.start_time < now:
            continue
        if candidate.window in seen:
            continue
        seen.add(candidate.window)
        selected.append(candidate)
    return selected
