"""
Half-open UTC interval algebra used by the resolver and slot generator.

All intervals are [start, end) with aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Sequence


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


def normalize(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort, merge overlapping or adjacent intervals, and drop empty ones."""
    ordered = sorted(i for i in intervals if not i.is_empty)
    merged: List[Interval] = []
    for current in ordered:
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)
    return merged


def subtract(intervals: Iterable[Interval], blocks: Iterable[Interval]) -> List[Interval]:
    """Remove every block from the interval set."""
    remaining = normalize(intervals)
    cuts = normalize(blocks)
    if not cuts:
        return remaining

    result: List[Interval] = []
    for interval in remaining:
        cursor = interval.start
        for block in cuts:
            if block.end <= cursor:
                continue
            if block.start >= interval.end:
                break
            if block.start > cursor:
                result.append(Interval(cursor, block.start))
            cursor = max(cursor, block.end)
            if cursor >= interval.end:
                break
        if cursor < interval.end:
            result.append(Interval(cursor, interval.end))
    return result


def intersect(left: Iterable[Interval], right: Iterable[Interval]) -> List[Interval]:
    """Two-pointer intersection of two interval sets."""
    a = normalize(left)
    b = normalize(right)
    result: List[Interval] = []
    i = j = 0
    while i < len(a) and j < len(b):
        start = max(a[i].start, b[j].start)
        end = min(a[i].end, b[j].end)
        if start < end:
            result.append(Interval(start, end))
        if a[i].end < b[j].end:
            i += 1
        else:
            j += 1
    return result


def intersect_all(interval_sets: Sequence[Iterable[Interval]]) -> List[Interval]:
    """Intersection across any number of sets; an empty sequence yields nothing."""
    if not interval_sets:
        return []
    result = normalize(interval_sets[0])
    for other in interval_sets[1:]:
        result = intersect(result, other)
        if not result:
            break
    return result


def clip(intervals: Iterable[Interval], window: Interval) -> List[Interval]:
    return intersect(intervals, [window])


def split_at(intervals: Iterable[Interval], boundaries: Sequence[datetime]) -> List[Interval]:
    """Split intervals at each boundary instant (e.g. local midnights)."""
    points = sorted(boundaries)
    result: List[Interval] = []
    for interval in normalize(intervals):
        cursor = interval.start
        for point in points:
            if cursor < point < interval.end:
                result.append(Interval(cursor, point))
                cursor = point
        result.append(Interval(cursor, interval.end))
    return result
