"""
Admin triggers for the periodic sweeps
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import CurrentUser, require_roles
from ..database import get_db
from ..models import Role
from .archive import archive_expired_appointments
from .reminders import process_reminders
from .slot_generation import run_slot_generation_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])

admin_only = require_roles(Role.ADMIN)


class JobRunResponse(BaseModel):
    job: str
    processed: int


@router.post("/process-reminders", response_model=JobRunResponse)
async def run_process_reminders(
    current_user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)
):
    logger.info(f"▶️ Reminder sweep triggered by admin {current_user.id}")
    return JobRunResponse(job="process_reminders", processed=await process_reminders(db))


@router.post("/generate-slots", response_model=JobRunResponse)
async def run_generate_slots(current_user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
    logger.info(f"▶️ Slot generation triggered by admin {current_user.id}")
    return JobRunResponse(job="slot_generation", processed=run_slot_generation_job(db))


@router.post("/archive-appointments", response_model=JobRunResponse)
async def run_archive_appointments(
    current_user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)
):
    logger.info(f"▶️ Archive sweep triggered by admin {current_user.id}")
    return JobRunResponse(job="archive_appointments", processed=archive_expired_appointments(db))
