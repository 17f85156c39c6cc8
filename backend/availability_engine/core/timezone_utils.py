"""
Timezone utilities for the availability engine.

Rules:
- All interval arithmetic: UTC
- Rule times: organizer wall-clock time, localised per calendar date
- API responses: UTC plus the requested timezone's local times
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional

import pytz

from .exceptions import InvalidTimezoneException


@lru_cache(maxsize=512)
def _load_timezone(tz_name: str) -> pytz.BaseTzInfo:
    return pytz.timezone(tz_name)


def resolve_timezone(tz_name: Optional[str], *, field: str = "timezone") -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone identifier.

    Raises:
        InvalidTimezoneException: If the identifier is empty or unknown
    """
    if not tz_name or not tz_name.strip():
        raise InvalidTimezoneException(tz_name, field=field)
    try:
        return _load_timezone(tz_name.strip())
    except pytz.UnknownTimeZoneError:
        raise InvalidTimezoneException(tz_name, field=field)


def local_to_utc(local_date: date, local_time: time, tz: pytz.BaseTzInfo) -> datetime:
    """
    Convert a wall-clock date/time to an aware UTC datetime.

    Uses the timezone rules valid on local_date. Ambiguous times (fall back)
    resolve to the first occurrence; non-existent times (spring forward)
    move forward past the gap.
    """
    naive_dt = datetime.combine(local_date, local_time)  # Intentionally naive for pytz.localize()
    try:
        local_dt = tz.localize(naive_dt, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        local_dt = tz.localize(naive_dt, is_dst=True)
    except pytz.exceptions.NonExistentTimeError:
        local_dt = tz.normalize(tz.localize(naive_dt, is_dst=False))
    return local_dt.astimezone(timezone.utc)


def local_minutes_to_utc(
    local_date: date, minutes: int, tz: pytz.BaseTzInfo
) -> datetime:
    """
    Convert minutes-after-local-midnight (may exceed 1440) to UTC.

    Values past midnight roll into the following calendar dates, each
    localised with its own offset.
    """
    day_offset, remainder = divmod(minutes, 24 * 60)
    target_date = local_date + timedelta(days=day_offset)
    return local_to_utc(target_date, time(remainder // 60, remainder % 60), tz)


def local_day_bounds(local_date: date, tz: pytz.BaseTzInfo) -> tuple[datetime, datetime]:
    """Return the UTC instants of local midnight and the following local midnight."""
    return (
        local_to_utc(local_date, time(0, 0), tz),
        local_to_utc(local_date + timedelta(days=1), time(0, 0), tz),
    )


def utc_to_local(utc_dt: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    return ensure_utc(utc_dt).astimezone(tz)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (as returned by SQLite) and normalise aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_today(tz: pytz.BaseTzInfo, now: Optional[datetime] = None) -> date:
    """Get 'today' in the given timezone."""
    return utc_to_local(now or utc_now(), tz).date()
