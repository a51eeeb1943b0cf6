"""Slot domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SlotTemplateUpsert(BaseModel):
    """Schema for creating or updating a doctor's slot template"""

    durationMinutes: Optional[int] = None
    bufferMinutes: Optional[int] = None
    advanceBookingDays: Optional[int] = None


class SlotTemplateResponse(BaseModel):
    id: int
    doctorId: int
    durationMinutes: int
    bufferMinutes: int
    advanceBookingDays: int


class SlotResponse(BaseModel):
    id: int
    doctorId: int
    availabilityId: Optional[int] = None
    scheduleExceptionId: Optional[int] = None
    startTime: datetime
    endTime: datetime
    status: str


class GenerateSlotsResponse(BaseModel):
    created: int


def template_to_response(template) -> SlotTemplateResponse:
    return SlotTemplateResponse(
        id=template.id,
        doctorId=template.doctor_id,
        durationMinutes=template.duration_minutes,
        bufferMinutes=template.buffer_minutes,
        advanceBookingDays=template.advance_booking_days,
    )


def slot_to_response(slot) -> SlotResponse:
    return SlotResponse(
        id=slot.id,
        doctorId=slot.doctor_id,
        availabilityId=slot.availability_id,
        scheduleExceptionId=slot.schedule_exception_id,
        startTime=slot.start_time,
        endTime=slot.end_time,
        status=slot.status,
    )
