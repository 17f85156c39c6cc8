# backend/availability_engine/repositories/availability_rule_repository.py
"""
Rule entity repositories.

One organizer-scoped repository per rule table. Lookups by id always filter
on the owning organizer so one organizer can never touch another's rules.
"""

from datetime import datetime
from typing import List, Optional, TypeVar

from sqlalchemy.orm import Query, Session, selectinload

from ..core.timezone_utils import ensure_utc
from ..models.availability import (
    AvailabilityRule,
    BlockedTime,
    BufferTime,
    DateOverrideRule,
    RecurringBlockedTime,
)
from .base_repository import BaseRepository

R = TypeVar("R")


class OrganizerScopedRepository(BaseRepository[R]):
    """CRUD for rule rows owned by one organizer."""

    order_by: tuple = ()

    def list_for_organizer(self, organizer_id: str, active_only: bool = False) -> List[R]:
        query = self._apply_eager_loading(
            self._build_query().filter(self.model.organizer_id == organizer_id)
        )
        if active_only:
            query = query.filter(self.model.is_active.is_(True))
        return self._execute_query(query.order_by(*self.order_by))

    def get_for_organizer(self, id: str, organizer_id: str) -> Optional[R]:
        rows = self._execute_query(
            self._apply_eager_loading(
                self._build_query().filter(
                    self.model.id == id, self.model.organizer_id == organizer_id
                )
            ).limit(1)
        )
        return rows[0] if rows else None


class AvailabilityRuleRepository(OrganizerScopedRepository[AvailabilityRule]):
    order_by = (AvailabilityRule.day_of_week, AvailabilityRule.start_time)

    def __init__(self, db: Session):
        super().__init__(db, AvailabilityRule)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(selectinload(AvailabilityRule.event_types))


class DateOverrideRepository(OrganizerScopedRepository[DateOverrideRule]):
    order_by = (DateOverrideRule.date, DateOverrideRule.start_time)

    def __init__(self, db: Session):
        super().__init__(db, DateOverrideRule)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(selectinload(DateOverrideRule.event_types))


class BlockedTimeRepository(OrganizerScopedRepository[BlockedTime]):
    order_by = (BlockedTime.start_datetime,)

    def __init__(self, db: Session):
        super().__init__(db, BlockedTime)

    def list_active_in_window(
        self,
        organizer_id: str,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> List[BlockedTime]:
        query = self._build_query().filter(
            BlockedTime.organizer_id == organizer_id, BlockedTime.is_active.is_(True)
        )
        if window_start is not None:
            query = query.filter(BlockedTime.end_datetime > ensure_utc(window_start))
        if window_end is not None:
            query = query.filter(BlockedTime.start_datetime < ensure_utc(window_end))
        return self._execute_query(query.order_by(BlockedTime.start_datetime))


class RecurringBlockedTimeRepository(OrganizerScopedRepository[RecurringBlockedTime]):
    order_by = (RecurringBlockedTime.day_of_week, RecurringBlockedTime.start_time)

    def __init__(self, db: Session):
        super().__init__(db, RecurringBlockedTime)


class BufferTimeRepository(BaseRepository[BufferTime]):
    def __init__(self, db: Session):
        super().__init__(db, BufferTime)

    def get_for_organizer(self, organizer_id: str) -> Optional[BufferTime]:
        return self.find_one_by(organizer_id=organizer_id)

    def get_or_create(self, organizer_id: str, default_slot_interval: int) -> BufferTime:
        existing = self.get_for_organizer(organizer_id)
        if existing:
            return existing
        return self.create(organizer_id=organizer_id, slot_interval_minutes=default_slot_interval)
