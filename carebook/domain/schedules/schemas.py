"""Schedule domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel


class ScheduleCreate(BaseModel):
    """Schema for a capacity-based schedule window"""

    doctorId: Optional[int] = None
    date: str  # YYYY-MM-DD
    startTime: str  # HH:mm
    endTime: str  # HH:mm
    maxPatients: int


class ScheduleUpdate(BaseModel):
    date: Optional[str] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    maxPatients: Optional[int] = None


class ScheduleResponse(BaseModel):
    id: int
    doctorId: int
    date: date
    startTime: str
    endTime: str
    maxPatients: int
    created_at: Optional[datetime] = None


class AvailabilityWindowResponse(BaseModel):
    scheduleId: int
    doctorId: int
    date: date
    startTime: str
    endTime: str
    maxPatients: int
    confirmedCount: int
    remaining: int
    isBookable: bool
    disabledReasonCode: Optional[str] = None
    disabledReason: Optional[str] = None


class StartBookingRequest(BaseModel):
    scheduleId: int
    patientId: Optional[int] = None
    notes: Optional[str] = None


class StartBookingResponse(BaseModel):
    clientSecret: str
    appointmentId: int
    paymentIntentId: str


class ManualBookingRequest(BaseModel):
    scheduleId: int
    patientId: int
    paymentProvider: str = "CASH"
    notes: Optional[str] = None


def schedule_to_response(schedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=schedule.id,
        doctorId=schedule.doctor_id,
        date=schedule.date,
        startTime=schedule.start_time,
        endTime=schedule.end_time,
        maxPatients=schedule.max_patients,
        created_at=schedule.created_at,
    )


def window_to_response(window) -> AvailabilityWindowResponse:
    return AvailabilityWindowResponse(
        scheduleId=window.schedule_id,
        doctorId=window.doctor_id,
        date=window.date,
        startTime=window.start_time,
        endTime=window.end_time,
        maxPatients=window.max_patients,
        confirmedCount=window.confirmed_count,
        remaining=window.remaining,
        isBookable=window.is_bookable,
        disabledReasonCode=window.disabled_reason_code,
        disabledReason=window.disabled_reason,
    )
