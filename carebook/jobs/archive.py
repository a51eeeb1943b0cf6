"""Archive sweep: flag appointments whose end time has passed"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.appointments.repository import AppointmentRepository
from ..domain.scheduling.time_calculator import utcnow

logger = logging.getLogger(__name__)


def archive_expired_appointments(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    try:
        archived = AppointmentRepository.archive_expired(db, now)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error archiving appointments: {e}")
        raise
    logger.info(f"✅ Archived {archived} expired appointments")
    return archived
