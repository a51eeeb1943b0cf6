"""Availability router - FastAPI endpoints for doctor availability"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user, require_roles
from ...database import get_db
from ...models import Role
from .schemas import AvailabilityCreate, AvailabilityResponse, AvailabilityUpdate, availability_to_response
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])

staff_only = require_roles(Role.DOCTOR, Role.ADMIN)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


@router.post("", response_model=AvailabilityResponse, status_code=201)
async def create_availability(
    data: AvailabilityCreate,
    current_user: CurrentUser = Depends(staff_only),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Declare a recurring or one-time availability window; slots are generated right away"""
    return availability_to_response(service.create_availability(data, current_user))


@router.get("/doctor/{doctor_id}", response_model=list[AvailabilityResponse])
async def list_doctor_availability(
    doctor_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    return [availability_to_response(a) for a in service.list_for_doctor(doctor_id)]


@router.get("/{availability_id}", response_model=AvailabilityResponse)
async def get_availability(
    availability_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    return availability_to_response(service.get_availability(availability_id))


@router.patch("/{availability_id}", response_model=AvailabilityResponse)
async def update_availability(
    availability_id: int,
    data: AvailabilityUpdate,
    current_user: CurrentUser = Depends(staff_only),
    service: AvailabilityService = Depends(get_availability_service),
):
    return availability_to_response(service.update_availability(availability_id, data, current_user))


@router.delete("/{availability_id}")
async def delete_availability(
    availability_id: int,
    current_user: CurrentUser = Depends(staff_only),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Delete an availability and its slots (refused while appointments reference them)"""
    return service.delete_availability(availability_id, current_user)
