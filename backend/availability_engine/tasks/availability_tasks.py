# backend/availability_engine/tasks/availability_tasks.py
"""
Background slot precompute.

precompute_organizer_slots runs one organizer's precompute and always clears
its in-flight marker. It does not retry itself: the periodic
precompute_active_organizers pass schedules every active organizer again.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import SessionLocal
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..services.slot_cache_service import PRECOMPUTE_STARTED, SlotCacheService
from ..services.slot_service import SlotService
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="availability_engine.tasks.availability_tasks.precompute_organizer_slots",
    bind=True,
    autoretry_for=(),
)
def precompute_organizer_slots(self: Any, organizer_id: str, days_ahead: int) -> Dict[str, Any]:
    """Fill the slot cache for one organizer."""
    logger.info(f"Starting slot precompute for organizer {organizer_id} ({days_ahead} days)")

    db: Session = SessionLocal()
    cache = SlotCacheService(db)
    try:
        entries = SlotService(db, cache=cache).precompute_organizer(organizer_id, days_ahead)
        prometheus_metrics.inc_precompute("completed")
        return {
            "status": "success",
            "organizer_id": organizer_id,
            "entries": entries,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
    except Exception as e:
        prometheus_metrics.inc_precompute("failed")
        logger.error(f"Slot precompute failed for organizer {organizer_id}: {str(e)}")
        raise
    finally:
        cache.release_precompute(organizer_id)
        db.close()


@celery_app.task(
    name="availability_engine.tasks.availability_tasks.precompute_active_organizers",
    bind=True,
)
def precompute_active_organizers(self: Any, days_ahead: Optional[int] = None) -> Dict[str, Any]:
    """Periodic pass: schedule precompute for every active organizer."""
    days = days_ahead or settings.default_precompute_days
    db: Session = SessionLocal()
    try:
        organizer_ids = RepositoryFactory.create_organizer_repository(db).list_active_ids()
        cache = SlotCacheService(db)
        started = sum(
            1
            for organizer_id in organizer_ids
            if cache.schedule_precompute(organizer_id, days) == PRECOMPUTE_STARTED
        )
        logger.info(
            f"Precompute pass scheduled {started} of {len(organizer_ids)} active organizers"
        )
        return {"status": "success", "organizers": len(organizer_ids), "scheduled": started}
    finally:
        db.close()
