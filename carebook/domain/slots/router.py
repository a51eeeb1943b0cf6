"""Slot router - FastAPI endpoints for slot templates and slots"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user, require_roles
from ...database import get_db
from ...models import Role
from ..availability.service import AvailabilityService
from ..scheduling.time_calculator import to_naive_utc
from .schemas import (
    GenerateSlotsResponse,
    SlotResponse,
    SlotTemplateResponse,
    SlotTemplateUpsert,
    slot_to_response,
    template_to_response,
)
from .service import SlotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["Slots"])

staff_only = require_roles(Role.DOCTOR, Role.ADMIN)


def get_slot_service(db: Session = Depends(get_db)) -> SlotService:
    """Dependency injection for SlotService"""
    return SlotService(db)


# ============================================================================
# TEMPLATES
# ============================================================================


@router.get("/templates/{doctor_id}", response_model=SlotTemplateResponse)
async def get_slot_template(
    doctor_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    """Get a doctor's slot template (created with defaults on first access)"""
    return template_to_response(service.get_or_create_template(doctor_id))


@router.put("/templates/{doctor_id}", response_model=SlotTemplateResponse)
async def upsert_slot_template(
    doctor_id: int,
    data: SlotTemplateUpsert,
    current_user: CurrentUser = Depends(staff_only),
    service: SlotService = Depends(get_slot_service),
):
    """Create or update a doctor's slot template"""
    return template_to_response(service.upsert_template(doctor_id, data, current_user))


# ============================================================================
# SLOTS
# ============================================================================


@router.get("/doctor/{doctor_id}", response_model=list[SlotResponse])
async def get_doctor_slots(
    doctor_id: int,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    status: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    """List a doctor's bookable slots"""
    slots = service.get_slots_by_doctor(doctor_id, to_naive_utc(start), to_naive_utc(end), status)
    return [slot_to_response(s) for s in slots]


@router.post("/generate/{availability_id}", response_model=GenerateSlotsResponse)
async def generate_slots(
    availability_id: int,
    current_user: CurrentUser = Depends(staff_only),
    db: Session = Depends(get_db),
):
    """Generate slots for one availability"""
    availability = AvailabilityService(db).get_availability(availability_id)
    return GenerateSlotsResponse(created=SlotService(db).generate_slots_for_availability(availability))


@router.get("/{slot_id}", response_model=SlotResponse)
async def get_slot(
    slot_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    return slot_to_response(service.get_slot(slot_id))


@router.post("/{slot_id}/block", response_model=SlotResponse)
async def block_slot(
    slot_id: int,
    current_user: CurrentUser = Depends(staff_only),
    service: SlotService = Depends(get_slot_service),
):
    """Take an available slot out of booking"""
    return slot_to_response(service.block_slot(slot_id, current_user))


@router.post("/{slot_id}/unblock", response_model=SlotResponse)
async def unblock_slot(
    slot_id: int,
    current_user: CurrentUser = Depends(staff_only),
    service: SlotService = Depends(get_slot_service),
):
    return slot_to_response(service.unblock_slot(slot_id, current_user))


@router.delete("/{slot_id}")
async def delete_slot(
    slot_id: int,
    current_user: CurrentUser = Depends(staff_only),
    service: SlotService = Depends(get_slot_service),
):
    return service.delete_slot(slot_id, current_user)
