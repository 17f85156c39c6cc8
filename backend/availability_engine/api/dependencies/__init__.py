# backend/availability_engine/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_organizer
from .database import get_db
from .services import (
    get_cache_backend_dep,
    get_rule_store_service,
    get_slot_cache_service,
    get_slot_service,
    get_stats_service,
)

__all__ = [
    # Auth
    "get_current_organizer",
    # Database
    "get_db",
    # Services
    "get_cache_backend_dep",
    "get_rule_store_service",
    "get_slot_cache_service",
    "get_slot_service",
    "get_stats_service",
]
