# backend/availability_engine/models/__init__.py
"""
SQLAlchemy models.

Importing this package registers every table on Base.metadata.
"""

from .availability import (
    AvailabilityRule,
    BlockedTime,
    BufferTime,
    DateOverrideRule,
    RecurringBlockedTime,
)
from .booking import Booking
from .event_type import EventType
from .organizer import Organizer

__all__ = [
    "AvailabilityRule",
    "BlockedTime",
    "Booking",
    "BufferTime",
    "DateOverrideRule",
    "EventType",
    "Organizer",
    "RecurringBlockedTime",
]
