"""
Service layer for the availability engine.

- RuleStoreService: validated rule CRUD; every mutation bumps the rules generation
- SlotService: slot queries, multi-invitee ranking, precompute, booking-change hook
- SlotCacheService: generation-stamped slot cache and precompute coordination
- AvailabilityStatsService: dashboard statistics
"""

from .availability_stats_service import AvailabilityStatsService
from .base import BaseService
from .rule_store_service import RuleStoreService
from .slot_cache_service import SlotCacheService
from .slot_service import SlotService

__all__ = [
    "AvailabilityStatsService",
    "BaseService",
    "RuleStoreService",
    "SlotCacheService",
    "SlotService",
]
