"""Per-day slot computation shared by the cold path, the cache and precompute."""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional, Sequence

import pytz

from ..core.timezone_utils import local_day_bounds
from .interval_resolver import IntervalResolver
from .intervals import Interval, intersect_all
from .rules import BookedMeeting, EventTypeSpec
from .slot_generator import GeneratedSlot, SlotGenerator

DAY_PADDING = timedelta(days=1)


def padded_day_window(day: date, tz: pytz.BaseTzInfo) -> Interval:
    """The local day in tz, widened by a day on each side."""
    start, end = local_day_bounds(day, tz)
    return Interval(start - DAY_PADDING, end + DAY_PADDING)


def compute_day_slots(
    resolver: IntervalResolver,
    event_type: EventTypeSpec,
    bookings: Sequence[BookedMeeting],
    day: date,
    tz: pytz.BaseTzInfo,
    constraints: Optional[Sequence[Sequence[Interval]]] = None,
) -> List[GeneratedSlot]:
    """
    Slots starting on one calendar day of tz, before serve-time filters.

    The day is resolved over a padded window so intervals crossing either
    midnight are walked whole; the same inputs always give the same slots
    whichever neighbouring days are computed with it.

    Args:
        resolver: Interval resolver for the organizer's rule set
        event_type: Event type being booked
        bookings: Confirmed organizer bookings near the day
        day: Calendar day in tz
        tz: Requested timezone
        constraints: Extra interval sets every slot must also lie in
            (other invitees' open time)
    """
    window = padded_day_window(day, tz)
    open_intervals = resolver.resolve(window.start, window.end, event_type.id)
    if constraints:
        open_intervals = intersect_all([open_intervals, *constraints])
    if not open_intervals:
        return []

    generator = SlotGenerator(
        event_type,
        event_type.effective_buffers(resolver.rule_set.buffers),
        resolver.tz,
    )
    day_start, day_end = local_day_bounds(day, tz)
    return generator.generate(open_intervals, bookings, Interval(day_start, day_end))
