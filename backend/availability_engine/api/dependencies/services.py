# backend/availability_engine/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_stats_service import AvailabilityStatsService
from ...services.cache_service import SlotCacheBackend, get_cache_backend
from ...services.rule_store_service import RuleStoreService
from ...services.slot_cache_service import SlotCacheService
from ...services.slot_service import SlotService
from .database import get_db


def get_cache_backend_dep() -> SlotCacheBackend:
    """Process-wide slot cache store."""
    return get_cache_backend()


def get_slot_cache_service(
    db: Session = Depends(get_db),
    backend: SlotCacheBackend = Depends(get_cache_backend_dep),
) -> SlotCacheService:
    return SlotCacheService(db, backend=backend)


def get_rule_store_service(db: Session = Depends(get_db)) -> RuleStoreService:
    return RuleStoreService(db)


def get_slot_service(
    db: Session = Depends(get_db),
    cache: SlotCacheService = Depends(get_slot_cache_service),
) -> SlotService:
    """
    Get slot service instance.

    Args:
        db: Database session
        cache: Slot cache sharing the same session

    Returns:
        SlotService instance
    """
    return SlotService(db, cache=cache)


def get_stats_service(
    db: Session = Depends(get_db),
    cache: SlotCacheService = Depends(get_slot_cache_service),
) -> AvailabilityStatsService:
    return AvailabilityStatsService(db, cache=cache)
