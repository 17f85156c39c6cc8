# backend/availability_engine/repositories/__init__.py
"""
Repository layer for the availability engine.

Key Components:
- BaseRepository: generic CRUD with RepositoryException on database errors
- OrganizerRepository / EventTypeRepository: organizers, event types, rules generation
- Rule repositories: weekly rules, date overrides, blocked times, recurring blocks, buffers
- BookingRepository: read-only confirmed bookings
- RuleSetRepository: immutable rule snapshots for slot computation
- RepositoryFactory: factory for creating repository instances

Usage:
    from availability_engine.repositories import RepositoryFactory

    repository = RepositoryFactory.create_organizer_repository(db)
    organizer = repository.get_by_slug("jane")
"""

from .availability_rule_repository import (
    AvailabilityRuleRepository,
    BlockedTimeRepository,
    BufferTimeRepository,
    DateOverrideRepository,
    RecurringBlockedTimeRepository,
)
from .base_repository import BaseRepository, IRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .organizer_repository import EventTypeRepository, OrganizerRepository
from .rule_set_repository import RuleSetRepository

__all__ = [
    "AvailabilityRuleRepository",
    "BaseRepository",
    "BlockedTimeRepository",
    "BookingRepository",
    "BufferTimeRepository",
    "DateOverrideRepository",
    "EventTypeRepository",
    "IRepository",
    "OrganizerRepository",
    "RecurringBlockedTimeRepository",
    "RepositoryFactory",
    "RuleSetRepository",
]
