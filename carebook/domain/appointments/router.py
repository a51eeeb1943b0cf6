"""Appointment router - FastAPI endpoints for booking and the appointment lifecycle"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user
from ...database import get_db
from ...notifications import AppointmentNotifier
from ...rate_limiter import booking_rate_limit
from ..scheduling.time_calculator import to_naive_utc
from .schemas import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusUpdate,
    CancelAppointmentResponse,
    RefundDecisionResponse,
    SlotBookingCreate,
    appointment_to_response,
    refund_to_response,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(
    background_tasks: BackgroundTasks, db: Session = Depends(get_db)
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, notifier=AppointmentNotifier(background_tasks))


# ============================================================================
# BOOKING
# ============================================================================


@router.post(
    "/slot",
    response_model=AppointmentResponse,
    status_code=201,
    dependencies=[Depends(booking_rate_limit)],
)
async def book_slot(
    data: SlotBookingCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book a generated slot. Concurrent attempts on the same slot get 409 except one."""
    appointment = service.create_appointment_from_slot(
        data.slotId, current_user, patient_id=data.patientId, notes=data.notes
    )
    return appointment_to_response(appointment)


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=201,
    dependencies=[Depends(booking_rate_limit)],
)
async def create_appointment(
    data: AppointmentCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Free-form booking inside a doctor's availability"""
    return appointment_to_response(service.create_appointment(data, current_user))


# ============================================================================
# READS
# ============================================================================


@router.get("", response_model=list[AppointmentResponse])
async def list_appointments(
    status: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    doctorId: Optional[int] = Query(None),
    patientId: Optional[int] = Query(None),
    includeArchived: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Appointments visible to the caller (patients see their own, doctors their practice)"""
    appointments = service.list_appointments(
        current_user,
        status=status,
        start=to_naive_utc(start),
        end=to_naive_utc(end),
        doctor_id=doctorId,
        patient_id=patientId,
        include_archived=includeArchived,
    )
    return [appointment_to_response(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return appointment_to_response(service.get_appointment(appointment_id, current_user))


@router.get("/{appointment_id}/refund-policy", response_model=RefundDecisionResponse)
async def get_refund_policy(
    appointment_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return refund_to_response(service.get_refund_policy(appointment_id, current_user))


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.update_appointment_status(appointment_id, data.status, current_user)
    return appointment_to_response(appointment)


@router.post("/{appointment_id}/cancel", response_model=CancelAppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: AppointmentCancel,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Cancel an appointment; the response carries the refund decision"""
    appointment = service.cancel_appointment(appointment_id, current_user, reason=data.reason)
    refund = service.get_refund_policy(appointment.id, current_user)
    return CancelAppointmentResponse(
        appointment=appointment_to_response(appointment), refund=refund_to_response(refund)
    )


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: AppointmentReschedule,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.reschedule_appointment(appointment_id, data.newSlotId, current_user)
    return appointment_to_response(appointment)
