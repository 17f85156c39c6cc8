"""
Multi-invitee fairness scoring.

Each invitee has a timezone and a reasonable-hours window (local hours,
end may be below start for windows running past midnight). A slot's deviation
for one invitee is the number of hours its local span sits outside that window,
measured on a 24h clock so 23:00-00:00 is one hour from a 00:00 window start.
Each deviation is scaled by the largest one that invitee can have for the
slot length, half the hours outside the window plus half the slot. The slot
score is 1 minus the largest scaled deviation, so 0.0 means some invitee is
as far from their reasonable hours as possible.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Sequence, Tuple

import pytz

from ..core.timezone_utils import resolve_timezone
from .slot_generator import GeneratedSlot


@dataclass(frozen=True)
class InviteeProfile:
    timezone: str
    reasonable_hours_start: int = 9
    reasonable_hours_end: int = 17

    @property
    def tz(self) -> pytz.BaseTzInfo:
        return resolve_timezone(self.timezone, field="invitee_timezones")


@dataclass(frozen=True)
class RankedSlot:
    slot: GeneratedSlot
    fairness_score: float
    invitee_times: Dict[str, Dict[str, object]]


def _local_hours(moment: datetime, tz: pytz.BaseTzInfo) -> float:
    local = moment.astimezone(tz)
    return local.hour + local.minute / 60.0


def _window(invitee: InviteeProfile) -> Tuple[float, float]:
    window_start = float(invitee.reasonable_hours_start)
    window_end = float(invitee.reasonable_hours_end)
    if window_end <= window_start:
        window_end += 24.0
    return window_start, window_end


def invitee_deviation(slot: GeneratedSlot, invitee: InviteeProfile) -> float:
    """Hours the slot spends outside the invitee's reasonable hours."""
    window_start, window_end = _window(invitee)
    if window_end - window_start >= 24.0:
        return 0.0
    start = _local_hours(slot.start, invitee.tz)
    end = start + slot.duration_minutes / 60.0

    best = None
    for shift in (-24.0, 0.0, 24.0):
        deviation = max(window_start - (start + shift), (end + shift) - window_end, 0.0)
        best = deviation if best is None else min(best, deviation)
    return best


def max_invitee_deviation(duration_minutes: int, invitee: InviteeProfile) -> float:
    """Deviation of a slot starting as far from the window as the clock allows."""
    window_start, window_end = _window(invitee)
    if window_end - window_start >= 24.0:
        return 0.0
    outside = 24.0 - (window_end - window_start)
    return (outside + duration_minutes / 60.0) / 2.0


def fairness_score(slot: GeneratedSlot, invitees: Sequence[InviteeProfile]) -> float:
    worst = 0.0
    for invitee in invitees:
        limit = max_invitee_deviation(slot.duration_minutes, invitee)
        if limit > 0:
            worst = max(worst, invitee_deviation(slot, invitee) / limit)
    return round(min(1.0, max(0.0, 1.0 - worst)), 3)


def invitee_times(
    slot: GeneratedSlot, invitees: Iterable[InviteeProfile]
) -> Dict[str, Dict[str, object]]:
    times: Dict[str, Dict[str, object]] = {}
    for invitee in invitees:
        local_start = slot.start.astimezone(invitee.tz)
        local_end = slot.end.astimezone(invitee.tz)
        times[invitee.timezone] = {
            "start_time": local_start.isoformat(),
            "end_time": local_end.isoformat(),
            "start_hour": local_start.hour,
            "end_hour": local_end.hour,
        }
    return times


def rank_slots(
    slots: Iterable[GeneratedSlot], invitees: Sequence[InviteeProfile]
) -> List[RankedSlot]:
    """Score every slot; best score first, earliest start breaking ties."""
    ranked = [
        RankedSlot(slot, fairness_score(slot, invitees), invitee_times(slot, invitees))
        for slot in slots
    ]

    def sort_key(item: RankedSlot) -> Tuple[float, datetime]:
        return (-item.fairness_score, item.slot.start)

    return sorted(ranked, key=sort_key)
