"""Availability domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ..scheduling.time_calculator import to_naive_utc


class AvailabilityCreate(BaseModel):
    """Schema for declaring a bookable window"""

    doctorId: Optional[int] = None  # admins create on behalf of a doctor
    startTime: datetime
    endTime: datetime
    isRecurring: bool = False
    dayOfWeek: Optional[int] = None
    validFrom: Optional[datetime] = None
    validTo: Optional[datetime] = None

    @field_validator("startTime", "endTime", "validFrom", "validTo")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class AvailabilityUpdate(BaseModel):
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    isRecurring: Optional[bool] = None
    dayOfWeek: Optional[int] = None
    validFrom: Optional[datetime] = None
    validTo: Optional[datetime] = None

    @field_validator("startTime", "endTime", "validFrom", "validTo")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class AvailabilityResponse(BaseModel):
    id: int
    doctorId: int
    startTime: datetime
    endTime: datetime
    isRecurring: bool
    dayOfWeek: Optional[int] = None
    validFrom: Optional[datetime] = None
    validTo: Optional[datetime] = None


def availability_to_response(availability) -> AvailabilityResponse:
    return AvailabilityResponse(
        id=availability.id,
        doctorId=availability.doctor_id,
        startTime=availability.start_time,
        endTime=availability.end_time,
        isRecurring=availability.is_recurring,
        dayOfWeek=availability.day_of_week,
        validFrom=availability.valid_from,
        validTo=availability.valid_to,
    )
