# backend/availability_engine/repositories/factory.py
"""
Repository Factory for the availability engine

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session


# Avoid circular imports
if TYPE_CHECKING:
    from .availability_rule_repository import (
        AvailabilityRuleRepository,
        BlockedTimeRepository,
        BufferTimeRepository,
        DateOverrideRepository,
        RecurringBlockedTimeRepository,
    )
    from .booking_repository import BookingRepository
    from .organizer_repository import EventTypeRepository, OrganizerRepository
    from .rule_set_repository import RuleSetRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_organizer_repository(db: Session) -> "OrganizerRepository":
        from .organizer_repository import OrganizerRepository

        return OrganizerRepository(db)

    @staticmethod
    def create_event_type_repository(db: Session) -> "EventTypeRepository":
        from .organizer_repository import EventTypeRepository

        return EventTypeRepository(db)

    @staticmethod
    def create_availability_rule_repository(db: Session) -> "AvailabilityRuleRepository":
        from .availability_rule_repository import AvailabilityRuleRepository

        return AvailabilityRuleRepository(db)

    @staticmethod
    def create_date_override_repository(db: Session) -> "DateOverrideRepository":
        from .availability_rule_repository import DateOverrideRepository

        return DateOverrideRepository(db)

    @staticmethod
    def create_blocked_time_repository(db: Session) -> "BlockedTimeRepository":
        from .availability_rule_repository import BlockedTimeRepository

        return BlockedTimeRepository(db)

    @staticmethod
    def create_recurring_blocked_time_repository(db: Session) -> "RecurringBlockedTimeRepository":
        from .availability_rule_repository import RecurringBlockedTimeRepository

        return RecurringBlockedTimeRepository(db)

    @staticmethod
    def create_buffer_time_repository(db: Session) -> "BufferTimeRepository":
        from .availability_rule_repository import BufferTimeRepository

        return BufferTimeRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for reading confirmed bookings."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_rule_set_repository(db: Session) -> "RuleSetRepository":
        """Create the snapshot loader used by slot computation."""
        from .rule_set_repository import RuleSetRepository

        return RuleSetRepository(db)
