"""Time parsing and calculations shared by the scheduling domains"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from ...errors import ValidationError

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
DATE_FORMAT = "%Y-%m-%d"

MINUTES_PER_DAY = 24 * 60


def utcnow() -> datetime:
    """Naive UTC now, matching how datetimes are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_time_to_minutes(value: str) -> int:
    """Parse HH:mm into minutes since midnight"""
    match = TIME_PATTERN.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time format: {value}. Use HH:mm")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time_string(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time_string(value: str) -> str:
    """'9:05' -> '09:05'"""
    return minutes_to_time_string(parse_time_to_minutes(value))


def parse_time_of_day(value: str) -> time:
    minutes = parse_time_to_minutes(value)
    return time(minutes // 60, minutes % 60)


def times_overlap(a_start, a_end, b_start, b_end) -> bool:
    """Half-open interval overlap; touching endpoints do not overlap"""
    return a_start < b_end and a_end > b_start


def parse_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")


def count_days_inclusive(date_from, date_to) -> int:
    """
    Inclusive number of calendar days between two YYYY-MM-DD dates.

    Returns 0 for unparseable or inverted input instead of raising.
    """
    try:
        start = parse_date(date_from)
        end = parse_date(date_to)
    except ValidationError:
        return 0
    if end < start:
        return 0
    return (end - start).days + 1


def validate_time_range(start_time: Optional[str], end_time: Optional[str]) -> None:
    """Validate an optional HH:mm range; skipped when either side is missing"""
    if start_time is None or end_time is None:
        return
    if parse_time_to_minutes(end_time) <= parse_time_to_minutes(start_time):
        raise ValidationError("End time must be after start time")


def day_of_week_index(value: Union[date, datetime]) -> int:
    """Weekday number with 0 = Sunday ... 6 = Saturday"""
    return (value.weekday() + 1) % 7


def combine(day: date, hhmm: str) -> datetime:
    """Datetime for a calendar date at an HH:mm time of day"""
    return datetime.combine(day, parse_time_of_day(hhmm))


def minutes_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def iter_dates(start: date, end: date):
    """Yield every calendar date in [start, end]"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def hours_until(moment: datetime, now: datetime) -> float:
    return (moment - now).total_seconds() / 3600


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC already"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
