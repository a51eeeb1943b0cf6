"""Appointment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ..scheduling.time_calculator import to_naive_utc


class SlotBookingCreate(BaseModel):
    """Book a generated slot"""

    slotId: int
    patientId: Optional[int] = None  # admins and doctors book on behalf of a patient
    notes: Optional[str] = None


class AppointmentCreate(BaseModel):
    """Free-form booking with explicit times"""

    doctorId: int
    patientId: Optional[int] = None
    startTime: datetime
    endTime: datetime
    notes: Optional[str] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class AppointmentStatusUpdate(BaseModel):
    status: str


class AppointmentCancel(BaseModel):
    reason: Optional[str] = None


class AppointmentReschedule(BaseModel):
    newSlotId: int


class RefundDecisionResponse(BaseModel):
    eligible: bool
    type: str
    reason: str


class AppointmentResponse(BaseModel):
    id: int
    patientId: int
    doctorId: int
    availabilityId: Optional[int] = None
    slotId: Optional[int] = None
    scheduleId: Optional[int] = None
    startTime: datetime
    endTime: datetime
    status: str
    notes: Optional[str] = None
    isArchived: bool = False
    queueNumber: Optional[int] = None
    paymentStatus: Optional[str] = None
    paymentProvider: Optional[str] = None
    paidAt: Optional[datetime] = None
    cancelledBy: Optional[str] = None
    cancelledAt: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CancelAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    refund: RefundDecisionResponse


def appointment_to_response(appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patientId=appointment.patient_id,
        doctorId=appointment.doctor_id,
        availabilityId=appointment.availability_id,
        slotId=appointment.slot_id,
        scheduleId=appointment.schedule_id,
        startTime=appointment.start_time,
        endTime=appointment.end_time,
        status=appointment.status,
        notes=appointment.notes,
        isArchived=appointment.is_archived,
        queueNumber=appointment.queue_number,
        paymentStatus=appointment.payment_status,
        paymentProvider=appointment.payment_provider,
        paidAt=appointment.paid_at,
        cancelledBy=appointment.cancelled_by,
        cancelledAt=appointment.cancelled_at,
        created_at=appointment.created_at,
    )


def refund_to_response(decision) -> RefundDecisionResponse:
    return RefundDecisionResponse(eligible=decision.eligible, type=decision.type, reason=decision.reason)
