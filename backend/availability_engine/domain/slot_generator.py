"""
Slot generation.

Slices open intervals into bookable slots:

- Confirmed bookings are subtracted from the open intervals, so buffers apply
  against every edge: rule boundaries, blocks and existing bookings alike.
- A candidate start T is valid iff [T - buffer_before, T + duration + buffer_after]
  fits inside one open interval. The walk starts at interval.start + buffer_before
  and advances by slot_interval_minutes.
- minimum_gap is checked against the nearest previous and next booked meeting.
- Group events: bookings of the same event type that start exactly at T do not
  block T; they consume spots instead.
- max_bookings_per_day removes every slot of an organizer-local day whose
  booked meetings reached the cap.

Notice and horizon filtering happen later, at serve time (see filter_bookable).
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import pytz

from ..core.timezone_utils import ensure_utc
from .intervals import Interval, subtract
from .rules import BookedMeeting, BufferSettings, EventTypeSpec


@dataclass(frozen=True)
class GeneratedSlot:
    start: datetime
    end: datetime
    duration_minutes: int
    available_spots: Optional[int] = None

    def to_cache(self) -> Dict[str, Any]:
        return {
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
            "duration_minutes": self.duration_minutes,
            "available_spots": self.available_spots,
        }

    @classmethod
    def from_cache(cls, data: Dict[str, Any]) -> "GeneratedSlot":
        return cls(
            start=ensure_utc(datetime.fromisoformat(data["start_time"])),
            end=ensure_utc(datetime.fromisoformat(data["end_time"])),
            duration_minutes=int(data["duration_minutes"]),
            available_spots=data.get("available_spots"),
        )


class SlotGenerator:
    """Generate slots for one event type with effective buffer settings."""

    def __init__(
        self,
        event_type: EventTypeSpec,
        buffers: BufferSettings,
        organizer_tz: pytz.BaseTzInfo,
    ):
        self.event_type = event_type
        self.buffers = buffers
        self.organizer_tz = organizer_tz
        self.duration = timedelta(minutes=event_type.duration)
        self.before = timedelta(minutes=buffers.buffer_before)
        self.after = timedelta(minutes=buffers.buffer_after)
        self.gap = timedelta(minutes=buffers.minimum_gap)
        self.step = timedelta(minutes=max(1, buffers.slot_interval_minutes))

    def _is_joinable(self, booking: BookedMeeting) -> bool:
        return self.event_type.is_group_event and booking.event_type_id == self.event_type.id

    def _full_days(self, bookings: Iterable[BookedMeeting]) -> Set[date]:
        cap = self.event_type.max_bookings_per_day
        if not cap:
            return set()
        # One meeting per distinct start; group attendees share a meeting
        meetings = {
            b.start for b in bookings if b.event_type_id == self.event_type.id
        }
        per_day = Counter(start.astimezone(self.organizer_tz).date() for start in meetings)
        return {day for day, count in per_day.items() if count >= cap}

    def generate(
        self,
        open_intervals: Sequence[Interval],
        bookings: Sequence[BookedMeeting],
        start_window: Interval,
    ) -> List[GeneratedSlot]:
        """
        Generate slots whose start falls inside start_window.

        Args:
            open_intervals: Resolved open intervals (UTC), before bookings
            bookings: Confirmed bookings overlapping the intervals
            start_window: Only slots starting in [start, end) are returned

        Returns:
            Ordered, non-overlapping slots
        """
        joinable = [b for b in bookings if self._is_joinable(b)]
        blocking = sorted(
            (b for b in bookings if not self._is_joinable(b)), key=lambda b: b.start
        )
        free = subtract(open_intervals, (Interval(b.start, b.end) for b in blocking))

        booked_ends = sorted(b.end for b in blocking)
        booked_starts = [b.start for b in blocking]

        attendees_at: Dict[datetime, int] = defaultdict(int)
        for booking in joinable:
            attendees_at[booking.start] += booking.attendee_count
        joinable_ranges = [Interval(b.start, b.end) for b in joinable]

        full_days = self._full_days(bookings)

        slots: List[GeneratedSlot] = []
        for interval in free:
            candidate = interval.start + self.before
            while candidate + self.duration + self.after <= interval.end:
                if candidate >= start_window.end:
                    break
                if candidate >= start_window.start:
                    slot = self._evaluate(
                        candidate,
                        booked_ends,
                        booked_starts,
                        attendees_at,
                        joinable_ranges,
                        full_days,
                    )
                    if slot is not None:
                        slots.append(slot)
                candidate += self.step
        return slots

    def _evaluate(
        self,
        start: datetime,
        booked_ends: List[datetime],
        booked_starts: List[datetime],
        attendees_at: Dict[datetime, int],
        joinable_ranges: List[Interval],
        full_days: Set[date],
    ) -> Optional[GeneratedSlot]:
        end = start + self.duration

        if full_days and start.astimezone(self.organizer_tz).date() in full_days:
            return None

        if self.gap:
            idx = bisect_right(booked_ends, start)
            if idx and start - booked_ends[idx - 1] < self.gap:
                return None
            idx = bisect_left(booked_starts, end)
            if idx < len(booked_starts) and booked_starts[idx] - end < self.gap:
                return None

        if not self.event_type.is_group_event:
            return GeneratedSlot(start, end, self.event_type.duration)

        # A joinable booking covering part of this slot but starting elsewhere is a conflict
        window = Interval(start, end)
        for booked in joinable_ranges:
            if booked.start != start and booked.overlaps(window):
                return None
        spots = self.event_type.max_attendees - attendees_at.get(start, 0)
        if spots <= 0:
            return None
        return GeneratedSlot(start, end, self.event_type.duration, spots)


def filter_bookable(
    slots: Iterable[GeneratedSlot],
    *,
    now: datetime,
    min_notice_minutes: int,
    horizon_days: int,
    organizer_tz: pytz.BaseTzInfo,
    attendee_count: int = 1,
) -> List[GeneratedSlot]:
    """
    Apply serve-time filters: scheduling notice, horizon and requested spots.

    The horizon is counted in organizer-local calendar days from today.
    """
    earliest = now + timedelta(minutes=min_notice_minutes)
    last_day = now.astimezone(organizer_tz).date() + timedelta(days=horizon_days)
    result = []
    for slot in slots:
        if slot.start < earliest:
            continue
        if slot.start.astimezone(organizer_tz).date() > last_day:
            continue
        if slot.available_spots is not None and slot.available_spots < attendee_count:
            continue
        result.append(slot)
    return result
