# backend/availability_engine/repositories/rule_set_repository.py
"""
Builds immutable RuleSet snapshots from the rule tables.

Rows are validated again while loading; a stored row that no longer forms a
valid window (e.g. written before validation existed) is skipped with a
warning instead of failing slot queries.
"""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import InvalidConfigurationException
from ..core.timezone_utils import ensure_utc
from ..domain.rules import (
    AbsoluteBlock,
    BufferSettings,
    DateOverride,
    RecurringBlock,
    RuleSet,
    WeeklyRule,
    window_minutes,
)
from ..models.organizer import Organizer
from .availability_rule_repository import (
    AvailabilityRuleRepository,
    BlockedTimeRepository,
    BufferTimeRepository,
    DateOverrideRepository,
    RecurringBlockedTimeRepository,
)

logger = logging.getLogger(__name__)


class RuleSetRepository:
    def __init__(self, db: Session):
        self.db = db
        self.rules = AvailabilityRuleRepository(db)
        self.overrides = DateOverrideRepository(db)
        self.recurring = RecurringBlockedTimeRepository(db)
        self.blocked = BlockedTimeRepository(db)
        self.buffers = BufferTimeRepository(db)

    def load(
        self,
        organizer: Organizer,
        generation: int,
        *,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        default_slot_interval: int = 15,
    ) -> RuleSet:
        """
        Snapshot the organizer's active rules.

        The caller reads the generation before calling so the snapshot can
        never be newer than its stamp.
        """
        weekly = []
        for row in self.rules.list_for_organizer(organizer.id, active_only=True):
            try:
                start, end = window_minutes(row.start_time, row.end_time, row.spans_midnight)
            except InvalidConfigurationException:
                logger.warning(f"Skipping malformed availability rule {row.id} for {organizer.id}")
                continue
            weekly.append(
                WeeklyRule(
                    day_of_week=row.day_of_week,
                    start_minutes=start,
                    end_minutes=end,
                    event_type_ids=frozenset(et.id for et in row.event_types),
                )
            )

        overrides = []
        for row in self.overrides.list_for_organizer(organizer.id, active_only=True):
            start = end = None
            if row.is_available:
                if row.start_time is None or row.end_time is None:
                    logger.warning(f"Skipping available override {row.id} without hours")
                    continue
                try:
                    start, end = window_minutes(row.start_time, row.end_time, row.spans_midnight)
                except InvalidConfigurationException:
                    logger.warning(f"Skipping malformed date override {row.id} for {organizer.id}")
                    continue
            overrides.append(
                DateOverride(
                    date=row.date,
                    is_available=row.is_available,
                    start_minutes=start,
                    end_minutes=end,
                    event_type_ids=frozenset(et.id for et in row.event_types),
                )
            )

        recurring = []
        for row in self.recurring.list_for_organizer(organizer.id, active_only=True):
            try:
                start, end = window_minutes(row.start_time, row.end_time, row.spans_midnight)
            except InvalidConfigurationException:
                logger.warning(f"Skipping malformed recurring block {row.id} for {organizer.id}")
                continue
            recurring.append(
                RecurringBlock(
                    day_of_week=row.day_of_week,
                    start_minutes=start,
                    end_minutes=end,
                    start_date=row.start_date,
                    end_date=row.end_date,
                )
            )

        blocks = [
            AbsoluteBlock(ensure_utc(row.start_datetime), ensure_utc(row.end_datetime))
            for row in self.blocked.list_active_in_window(organizer.id, window_start, window_end)
            if ensure_utc(row.end_datetime) > ensure_utc(row.start_datetime)
        ]

        buffer_row = self.buffers.get_for_organizer(organizer.id)
        if buffer_row:
            buffers = BufferSettings(
                buffer_before=buffer_row.default_buffer_before,
                buffer_after=buffer_row.default_buffer_after,
                minimum_gap=buffer_row.minimum_gap,
                slot_interval_minutes=buffer_row.slot_interval_minutes,
            )
        else:
            buffers = BufferSettings(slot_interval_minutes=default_slot_interval)

        return RuleSet(
            organizer_id=organizer.id,
            timezone=organizer.timezone,
            generation=generation,
            weekly_rules=tuple(weekly),
            overrides=tuple(overrides),
            blocks=tuple(blocks),
            recurring_blocks=tuple(recurring),
            buffers=buffers,
        )
