"""
Interval resolver.

Turns a RuleSet into open (bookable) UTC intervals, before buffers and slot
slicing. Per organizer-local calendar date:

1. Applicable date overrides replace the weekly rules of that date. Any
   unavailable override blocks the whole date; otherwise override windows
   are unioned.
2. Without overrides, active weekly rules for the weekday whose scope is
   "all" or includes the event type are unioned.
3. Absolute blocks, recurring blocks and any extra blocks (bookings) are
   subtracted.
4. The result is merged, clipped to the requested window and returned as
   one continuous, ordered list. resolve_by_day() splits it at midnights
   for per-day views.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
from typing import Dict, Iterable, List, Optional

import pytz

from ..core.timezone_utils import local_day_bounds, local_minutes_to_utc, resolve_timezone
from .intervals import Interval, clip, normalize, split_at, subtract
from .rules import RuleSet

logger = logging.getLogger(__name__)


class IntervalResolver:
    """Resolve one organizer's rule set into open UTC intervals."""

    def __init__(self, rule_set: RuleSet):
        self.rule_set = rule_set
        self.tz: pytz.BaseTzInfo = resolve_timezone(rule_set.timezone)

    def _window(self, local_date: date, start_minutes: int, end_minutes: int) -> Interval:
        return Interval(
            local_minutes_to_utc(local_date, start_minutes, self.tz),
            local_minutes_to_utc(local_date, end_minutes, self.tz),
        )

    def open_windows_for_date(
        self, local_date: date, event_type_id: Optional[str]
    ) -> List[Interval]:
        """Rule windows starting on local_date (may run past its midnight)."""
        overrides = self.rule_set.overrides_on(local_date, event_type_id)
        if overrides:
            if any(not o.is_available for o in overrides):
                return []
            return normalize(
                self._window(local_date, o.start_minutes, o.end_minutes)
                for o in overrides
                if o.start_minutes is not None and o.end_minutes is not None
            )

        rules = self.rule_set.weekly_rules_on(local_date.weekday(), event_type_id)
        return normalize(self._window(local_date, r.start_minutes, r.end_minutes) for r in rules)

    def blocked_windows_for_date(
        self, local_date: date, event_type_id: Optional[str]
    ) -> List[Interval]:
        """Recurring blocks starting on local_date plus whole-date blocking overrides."""
        blocked = [
            self._window(local_date, b.start_minutes, b.end_minutes)
            for b in self.rule_set.recurring_blocks
            if b.applies_on(local_date)
        ]
        overrides = self.rule_set.overrides_on(local_date, event_type_id)
        if any(not o.is_available for o in overrides):
            start, end = local_day_bounds(local_date, self.tz)
            blocked.append(Interval(start, end))
        return blocked

    def _local_dates(self, window: Interval) -> List[date]:
        # One extra leading day picks up windows spanning midnight into the range
        first = window.start.astimezone(self.tz).date() - timedelta(days=1)
        last = window.end.astimezone(self.tz).date()
        return [first + timedelta(days=n) for n in range((last - first).days + 1)]

    def resolve(
        self,
        window_start: datetime,
        window_end: datetime,
        event_type_id: Optional[str],
        extra_blocks: Iterable[Interval] = (),
    ) -> List[Interval]:
        """Open intervals inside [window_start, window_end)."""
        window = Interval(window_start, window_end)
        if window.is_empty:
            return []

        open_windows: List[Interval] = []
        blocked: List[Interval] = [
            Interval(b.start, b.end) for b in self.rule_set.blocks if b.is_active
        ]
        for local_date in self._local_dates(window):
            open_windows.extend(self.open_windows_for_date(local_date, event_type_id))
            blocked.extend(self.blocked_windows_for_date(local_date, event_type_id))
        blocked.extend(extra_blocks)

        return clip(subtract(open_windows, blocked), window)

    def resolve_by_day(
        self,
        start_date: date,
        end_date: date,
        event_type_id: Optional[str],
        tz: Optional[pytz.BaseTzInfo] = None,
    ) -> Dict[date, List[Interval]]:
        """Open intervals per calendar date of tz (default: the organizer's), split at midnight."""
        bucket_tz = tz or self.tz
        days = [start_date + timedelta(days=n) for n in range((end_date - start_date).days + 1)]
        bounds = {day: local_day_bounds(day, bucket_tz) for day in days}
        range_start = bounds[days[0]][0]
        range_end = bounds[days[-1]][1]
        midnights = [start for start, _ in bounds.values()]

        pieces = split_at(self.resolve(range_start, range_end, event_type_id), midnights)
        by_day: Dict[date, List[Interval]] = {day: [] for day in days}
        for piece in pieces:
            by_day[piece.start.astimezone(bucket_tz).date()].append(piece)
        return by_day
