"""
Immutable rule-set snapshot.

A RuleSet is the versioned aggregate the engine computes from: every rule
entity of one organizer plus the generation stamp read before the rules were
loaded. Times are stored as minutes after local midnight; an end value above
1440 means the window runs into the next calendar date.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, FrozenSet, Optional, Tuple

from ..core.exceptions import InvalidConfigurationException
from ..utils.time_utils import MINUTES_PER_DAY, time_to_minutes


def window_minutes(
    start_time: time,
    end_time: time,
    spans_midnight: bool,
    *,
    field_prefix: str = "",
) -> Tuple[int, int]:
    """
    Convert a wall-clock window to (start, end) minutes after local midnight.

    end_time 00:00 means end of day, so 00:00-00:00 is a full day. An end at or
    before the start is only valid when the window is marked as spanning midnight.

    Raises:
        InvalidConfigurationException: zero-length or reversed window without spans_midnight
    """
    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time, is_end_time=True)
    if end > start:
        return start, end
    if not spans_midnight:
        raise InvalidConfigurationException(
            f"End time {end_time.strftime('%H:%M')} must be after start time "
            f"{start_time.strftime('%H:%M')} unless the window spans midnight",
            field=f"{field_prefix}end_time",
        )
    # Wraparound: end on the following day; equal times mean a full 24 hours
    return start, time_to_minutes(end_time) + MINUTES_PER_DAY


def _applies(scope: FrozenSet[str], event_type_id: Optional[str]) -> bool:
    if not scope:
        return True
    return event_type_id is not None and event_type_id in scope


@dataclass(frozen=True)
class WeeklyRule:
    day_of_week: int
    start_minutes: int
    end_minutes: int
    event_type_ids: FrozenSet[str] = frozenset()
    is_active: bool = True

    def applies_to(self, event_type_id: Optional[str]) -> bool:
        return self.is_active and _applies(self.event_type_ids, event_type_id)


@dataclass(frozen=True)
class DateOverride:
    date: date
    is_available: bool
    start_minutes: Optional[int] = None
    end_minutes: Optional[int] = None
    event_type_ids: FrozenSet[str] = frozenset()
    is_active: bool = True

    def applies_to(self, event_type_id: Optional[str]) -> bool:
        return self.is_active and _applies(self.event_type_ids, event_type_id)


@dataclass(frozen=True)
class AbsoluteBlock:
    start: datetime
    end: datetime
    is_active: bool = True


@dataclass(frozen=True)
class RecurringBlock:
    day_of_week: int
    start_minutes: int
    end_minutes: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True

    def applies_on(self, local_date: date) -> bool:
        if not self.is_active or local_date.weekday() != self.day_of_week:
            return False
        if self.start_date and local_date < self.start_date:
            return False
        if self.end_date and local_date > self.end_date:
            return False
        return True


@dataclass(frozen=True)
class BufferSettings:
    buffer_before: int = 0
    buffer_after: int = 0
    minimum_gap: int = 0
    slot_interval_minutes: int = 15


@dataclass(frozen=True)
class EventTypeSpec:
    """What the slot generator needs to know about an event type."""

    id: str
    slug: str
    duration: int
    max_attendees: int = 1
    is_group_event: bool = False
    min_scheduling_notice: int = 0  # minutes
    max_scheduling_horizon: int = 60  # days
    buffer_time_before: Optional[int] = None
    buffer_time_after: Optional[int] = None
    slot_interval_minutes: Optional[int] = None
    max_bookings_per_day: Optional[int] = None

    def effective_buffers(self, defaults: BufferSettings) -> BufferSettings:
        """Event-type values win over organizer defaults when set."""
        return BufferSettings(
            buffer_before=(
                self.buffer_time_before
                if self.buffer_time_before is not None
                else defaults.buffer_before
            ),
            buffer_after=(
                self.buffer_time_after
                if self.buffer_time_after is not None
                else defaults.buffer_after
            ),
            minimum_gap=defaults.minimum_gap,
            slot_interval_minutes=self.slot_interval_minutes or defaults.slot_interval_minutes,
        )

    def computation_inputs(self) -> Dict[str, Any]:
        """Fields that shape generated slots; notice and horizon apply at serve time."""
        return {
            "id": self.id,
            "duration": self.duration,
            "max_attendees": self.max_attendees,
            "is_group_event": self.is_group_event,
            "buffer_time_before": self.buffer_time_before,
            "buffer_time_after": self.buffer_time_after,
            "slot_interval_minutes": self.slot_interval_minutes,
            "max_bookings_per_day": self.max_bookings_per_day,
        }


@dataclass(frozen=True)
class BookedMeeting:
    start: datetime
    end: datetime
    event_type_id: Optional[str] = None
    attendee_count: int = 1


@dataclass(frozen=True)
class RuleSet:
    organizer_id: str
    timezone: str
    generation: int
    weekly_rules: Tuple[WeeklyRule, ...] = ()
    overrides: Tuple[DateOverride, ...] = ()
    blocks: Tuple[AbsoluteBlock, ...] = ()
    recurring_blocks: Tuple[RecurringBlock, ...] = ()
    buffers: BufferSettings = field(default_factory=BufferSettings)

    def overrides_on(
        self, local_date: date, event_type_id: Optional[str]
    ) -> Tuple[DateOverride, ...]:
        return tuple(
            o for o in self.overrides if o.date == local_date and o.applies_to(event_type_id)
        )

    def weekly_rules_on(
        self, weekday: int, event_type_id: Optional[str]
    ) -> Tuple[WeeklyRule, ...]:
        return tuple(
            r
            for r in self.weekly_rules
            if r.day_of_week == weekday and r.applies_to(event_type_id)
        )
