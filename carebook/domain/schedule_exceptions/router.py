"""Schedule exception router - FastAPI endpoints for closures and extra hours"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user, require_roles
from ...database import get_db
from ...models import Role
from ..scheduling.time_calculator import count_days_inclusive
from .schemas import ScheduleExceptionCreate, ScheduleExceptionResponse, exception_to_response
from .service import ScheduleExceptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedule-exceptions", tags=["Schedule Exceptions"])

admin_only = require_roles(Role.ADMIN)


def get_exception_service(db: Session = Depends(get_db)) -> ScheduleExceptionService:
    """Dependency injection for ScheduleExceptionService"""
    return ScheduleExceptionService(db)


def _to_response(exception) -> ScheduleExceptionResponse:
    return exception_to_response(exception, count_days_inclusive(exception.date_from, exception.date_to))


@router.post("", response_model=list[ScheduleExceptionResponse], status_code=201)
async def create_schedule_exception(
    data: ScheduleExceptionCreate,
    current_user: CurrentUser = Depends(admin_only),
    service: ScheduleExceptionService = Depends(get_exception_service),
):
    """Create a holiday / closure or extra hours for all or selected doctors"""
    return [_to_response(e) for e in service.create_exceptions(data, current_user)]


@router.get("", response_model=list[ScheduleExceptionResponse])
async def list_schedule_exceptions(
    doctorId: Optional[int] = Query(None),
    dateFrom: Optional[str] = Query(None),
    dateTo: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleExceptionService = Depends(get_exception_service),
):
    exceptions = service.list_exceptions(doctorId, dateFrom, dateTo, type)
    return [_to_response(e) for e in exceptions]


@router.get("/{exception_id}", response_model=ScheduleExceptionResponse)
async def get_schedule_exception(
    exception_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: ScheduleExceptionService = Depends(get_exception_service),
):
    return _to_response(service.get_exception(exception_id))


@router.delete("/{exception_id}")
async def delete_schedule_exception(
    exception_id: int,
    current_user: CurrentUser = Depends(admin_only),
    service: ScheduleExceptionService = Depends(get_exception_service),
):
    return service.delete_exception(exception_id, current_user)
