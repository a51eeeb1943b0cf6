"""Schedule router - FastAPI endpoints for capacity-based schedules and bookings"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user, require_roles
from ...database import get_db
from ...models import Role
from ...notifications import AppointmentNotifier
from ...payments import PaymentGateway, get_payment_gateway
from ...rate_limiter import booking_rate_limit
from ..appointments.schemas import AppointmentResponse, appointment_to_response
from .schemas import (
    AvailabilityWindowResponse,
    ManualBookingRequest,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
    StartBookingRequest,
    StartBookingResponse,
    schedule_to_response,
    window_to_response,
)
from .service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])

staff_only = require_roles(Role.DOCTOR, Role.ADMIN)
admin_only = require_roles(Role.ADMIN)


def get_schedule_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db, payment_gateway=payment_gateway, notifier=AppointmentNotifier(background_tasks))


# ============================================================================
# SCHEDULE CRUD
# ============================================================================


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    current_user: CurrentUser = Depends(staff_only),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create a schedule window with a patient capacity"""
    return schedule_to_response(service.create_schedule(data, current_user))


@router.get("", response_model=list[ScheduleResponse])
async def list_schedules(
    doctorId: Optional[int] = Query(None),
    dateFrom: Optional[str] = Query(None),
    dateTo: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    return [schedule_to_response(s) for s in service.list_schedules(doctorId, dateFrom, dateTo)]


@router.get("/windows", response_model=list[AvailabilityWindowResponse])
async def get_availability_windows(
    doctorId: int = Query(...),
    date: str = Query(..., description="YYYY-MM-DD"),
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Remaining capacity per schedule window, with the reason a window cannot be booked"""
    return [window_to_response(w) for w in service.get_availability_windows(doctorId, date)]


@router.get("/upcoming-dates/{doctor_id}")
async def get_upcoming_schedule_dates(
    doctor_id: int,
    days: int = Query(30, ge=1, le=365),
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    dates = service.get_upcoming_schedule_dates(doctor_id, days)
    return {"doctorId": doctor_id, "dates": [d.isoformat() for d in dates]}


@router.get("/next-upcoming")
async def get_next_upcoming_schedules(
    doctorIds: list[int] = Query(...),
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Earliest schedule that has not ended yet, per doctor"""
    upcoming = service.get_next_upcoming_schedule(doctorIds)
    return {
        str(doctor_id): schedule_to_response(schedule) if schedule else None
        for doctor_id, schedule in upcoming.items()
    }


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    return schedule_to_response(service.get_schedule(schedule_id))


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    current_user: CurrentUser = Depends(staff_only),
    service: ScheduleService = Depends(get_schedule_service),
):
    return schedule_to_response(service.update_schedule(schedule_id, data, current_user))


@router.delete("/{schedule_id}")
async def delete_schedule(
    schedule_id: int,
    current_user: CurrentUser = Depends(staff_only),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.delete_schedule(schedule_id, current_user)


# ============================================================================
# BOOKINGS
# ============================================================================


@router.post(
    "/bookings/start",
    response_model=StartBookingResponse,
    dependencies=[Depends(booking_rate_limit)],
)
async def start_booking(
    data: StartBookingRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Start a paid booking; the appointment is confirmed by the payment webhook"""
    result = service.start_booking(data.scheduleId, current_user, data.patientId, data.notes)
    return StartBookingResponse(**result)


@router.post("/bookings/manual", response_model=AppointmentResponse, status_code=201)
async def create_manual_booking(
    data: ManualBookingRequest,
    current_user: CurrentUser = Depends(admin_only),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Walk-in or cash booking, confirmed immediately"""
    appointment = service.create_manual_booking(
        data.scheduleId, data.patientId, current_user, data.paymentProvider, data.notes
    )
    return appointment_to_response(appointment)
