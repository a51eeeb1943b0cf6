"""Slot generation sweep: keep every active availability generated up to its horizon"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.availability.repository import AvailabilityRepository
from ..domain.scheduling.time_calculator import utcnow
from ..domain.slots.service import SlotService

logger = logging.getLogger(__name__)


def run_slot_generation_job(db: Session, now: Optional[datetime] = None) -> int:
    """Generate slots for all active availabilities, then drop stale open slots"""
    now = now or utcnow()
    slot_service = SlotService(db)
    availabilities = AvailabilityRepository.list_active(db, now)
    logger.info(f"📅 Slot generation job: {len(availabilities)} active availabilities")

    created = 0
    for availability in availabilities:
        try:
            created += slot_service.generate_slots_for_availability(availability, now)
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Slot generation failed for availability {availability.id}: {e}")

    try:
        slot_service.cleanup_old_slots(now - timedelta(days=1))
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Slot cleanup failed: {e}")

    logger.info(f"✅ Slot generation job created {created} slots")
    return created
