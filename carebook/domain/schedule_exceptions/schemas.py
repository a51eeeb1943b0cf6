"""Schedule exception schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel


class ScheduleExceptionCreate(BaseModel):
    """Closure (UNAVAILABLE) or extra hours (AVAILABLE) over an inclusive date range"""

    scope: str = "ALL_DOCTORS"  # ALL_DOCTORS or SELECTED_DOCTORS
    doctorIds: Optional[list[int]] = None
    dateFrom: str  # YYYY-MM-DD
    dateTo: str
    startTime: Optional[str] = None  # HH:mm, null = full day
    endTime: Optional[str] = None
    type: str = "UNAVAILABLE"
    reason: Optional[str] = None
    label: Optional[str] = None


class ScheduleExceptionResponse(BaseModel):
    id: int
    doctorId: Optional[int] = None
    dateFrom: date
    dateTo: date
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    type: str
    reason: Optional[str] = None
    label: Optional[str] = None
    days: int
    created_at: Optional[datetime] = None


def exception_to_response(exception, days: int) -> ScheduleExceptionResponse:
    return ScheduleExceptionResponse(
        id=exception.id,
        doctorId=exception.doctor_id,
        dateFrom=exception.date_from,
        dateTo=exception.date_to,
        startTime=exception.start_time,
        endTime=exception.end_time,
        type=exception.type,
        reason=exception.reason,
        label=exception.label,
        days=days,
        created_at=exception.created_at,
    )
