# backend/availability_engine/tasks/beat_schedule.py
"""
Celery Beat schedule for the availability engine.

The periodic precompute pass refreshes every active organizer's slot cache;
it is also how a failed or never-enqueued precompute gets retried.
"""

from datetime import timedelta
from typing import Any, Dict

from ..core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    """
    Returns:
        Mapping of schedule entry name to Celery beat configuration dict
    """
    return {
        "precompute-active-organizers": {
            "task": "availability_engine.tasks.availability_tasks.precompute_active_organizers",
            "schedule": timedelta(minutes=settings.precompute_beat_interval_minutes),
            "kwargs": {"days_ahead": settings.default_precompute_days},
            "options": {"queue": "availability", "priority": 3},
        },
    }
