# backend/availability_engine/schemas/availability_rules.py
"""
Availability rule schemas.

Request bodies validate field shapes only. Window semantics (end before start,
spans_midnight, available overrides without hours) are checked by the rule
store service so they surface as INVALID_CONFIGURATION errors naming the field.
"""

from datetime import date, datetime, time
from datetime import date as date_type
from typing import Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, model_validator

from ..core.constants import (
    DAYS_OF_WEEK,
    MAX_BUFFER_MINUTES,
    MAX_MINIMUM_GAP_MINUTES,
    MAX_SLOT_INTERVAL_MINUTES,
    MIN_SLOT_INTERVAL_MINUTES,
)
from .base import StandardizedModel, StrictModel

BlockedTimeSource = Literal[
    "manual", "google_calendar", "outlook_calendar", "apple_calendar", "external_sync"
]

SOURCE_DISPLAY = {
    "manual": "Manual",
    "google_calendar": "Google Calendar",
    "outlook_calendar": "Outlook Calendar",
    "apple_calendar": "Apple Calendar",
    "external_sync": "External Sync",
}


# Weekly rules


class AvailabilityRuleCreate(StrictModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday")
    start_time: time
    end_time: time
    spans_midnight: bool = False
    event_types: List[str] = Field(
        default_factory=list, description="Event type ids; empty means all event types"
    )
    is_active: bool = True


class AvailabilityRuleUpdate(StrictModel):
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    spans_midnight: Optional[bool] = None
    event_types: Optional[List[str]] = None
    is_active: Optional[bool] = None


class AvailabilityRuleResponse(StandardizedModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    day_of_week: int
    day_of_week_display: str
    start_time: time
    end_time: time
    event_types: List[str]
    event_types_count: int
    spans_midnight: bool
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, rule) -> "AvailabilityRuleResponse":
        event_type_ids = [et.id for et in rule.event_types]
        return cls(
            id=rule.id,
            day_of_week=rule.day_of_week,
            day_of_week_display=DAYS_OF_WEEK[rule.day_of_week],
            start_time=rule.start_time,
            end_time=rule.end_time,
            event_types=event_type_ids,
            event_types_count=len(event_type_ids),
            spans_midnight=rule.spans_midnight,
            is_active=rule.is_active,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


# Date overrides


class DateOverrideCreate(StrictModel):
    date: date_type
    is_available: bool = False
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    spans_midnight: bool = False
    reason: str = Field("", max_length=255)
    event_types: List[str] = Field(default_factory=list)
    is_active: bool = True


class DateOverrideUpdate(StrictModel):
    date: Optional[date_type] = None
    is_available: Optional[bool] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    spans_midnight: Optional[bool] = None
    reason: Optional[str] = Field(None, max_length=255)
    event_types: Optional[List[str]] = None
    is_active: Optional[bool] = None


class DateOverrideResponse(StandardizedModel):
    id: str
    date: date_type
    is_available: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    event_types: List[str]
    event_types_count: int
    spans_midnight: bool
    reason: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, override) -> "DateOverrideResponse":
        event_type_ids = [et.id for et in override.event_types]
        return cls(
            id=override.id,
            date=override.date,
            is_available=override.is_available,
            start_time=override.start_time,
            end_time=override.end_time,
            event_types=event_type_ids,
            event_types_count=len(event_type_ids),
            spans_midnight=override.spans_midnight,
            reason=override.reason or "",
            is_active=override.is_active,
            created_at=override.created_at,
            updated_at=override.updated_at,
        )


# Blocked times


class BlockedTimeCreate(StrictModel):
    start_datetime: datetime
    end_datetime: datetime
    reason: str = Field("", max_length=255)
    source: BlockedTimeSource = "manual"
    external_id: str = Field("", max_length=255)
    external_updated_at: Optional[datetime] = None
    is_active: bool = True


class BlockedTimeUpdate(StrictModel):
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    reason: Optional[str] = Field(None, max_length=255)
    source: Optional[BlockedTimeSource] = None
    external_id: Optional[str] = Field(None, max_length=255)
    external_updated_at: Optional[datetime] = None
    is_active: Optional[bool] = None


class BlockedTimeResponse(StandardizedModel):
    id: str
    start_datetime: datetime
    end_datetime: datetime
    reason: str
    source: str
    source_display: str
    external_id: str
    external_updated_at: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, block) -> "BlockedTimeResponse":
        return cls(
            id=block.id,
            start_datetime=block.start_datetime,
            end_datetime=block.end_datetime,
            reason=block.reason or "",
            source=block.source,
            source_display=SOURCE_DISPLAY.get(block.source, block.source),
            external_id=block.external_id or "",
            external_updated_at=block.external_updated_at,
            is_active=block.is_active,
            created_at=block.created_at,
            updated_at=block.updated_at,
        )


# Recurring blocks


class RecurringBlockedTimeCreate(StrictModel):
    name: str = Field(..., min_length=1, max_length=255)
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    spans_midnight: bool = False
    is_active: bool = True


class RecurringBlockedTimeUpdate(StrictModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    spans_midnight: Optional[bool] = None
    is_active: Optional[bool] = None


class RecurringBlockedTimeResponse(StandardizedModel):
    id: str
    name: str
    day_of_week: int
    day_of_week_display: str
    start_time: time
    end_time: time
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    spans_midnight: bool
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, block) -> "RecurringBlockedTimeResponse":
        return cls(
            id=block.id,
            name=block.name,
            day_of_week=block.day_of_week,
            day_of_week_display=DAYS_OF_WEEK[block.day_of_week],
            start_time=block.start_time,
            end_time=block.end_time,
            start_date=block.start_date,
            end_date=block.end_date,
            spans_midnight=block.spans_midnight,
            is_active=block.is_active,
            created_at=block.created_at,
            updated_at=block.updated_at,
        )


# Buffer settings


class BufferTimeUpdate(StrictModel):
    default_buffer_before: Optional[int] = Field(None, ge=0, le=MAX_BUFFER_MINUTES)
    default_buffer_after: Optional[int] = Field(None, ge=0, le=MAX_BUFFER_MINUTES)
    minimum_gap: Optional[int] = Field(None, ge=0, le=MAX_MINIMUM_GAP_MINUTES)
    slot_interval_minutes: Optional[int] = Field(
        None, ge=MIN_SLOT_INTERVAL_MINUTES, le=MAX_SLOT_INTERVAL_MINUTES
    )

    @model_validator(mode="after")
    def _not_empty(self) -> "BufferTimeUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one buffer setting must be provided")
        return self


class BufferTimeResponse(StandardizedModel):
    model_config = ConfigDict(from_attributes=True)

    default_buffer_before: int
    default_buffer_after: int
    minimum_gap: int
    slot_interval_minutes: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Statistics and cache actions


class AvailabilityStats(StandardizedModel):
    total_rules: int
    active_rules: int
    total_overrides: int
    total_blocks: int
    total_recurring_blocks: int
    average_weekly_hours: float
    busiest_day: str
    daily_hours: Dict[str, float]
    cache_hit_rate: float


class CacheClearResponse(StandardizedModel):
    message: str
    organizer_id: str
    generation: int


class PrecomputeRequest(StrictModel):
    days_ahead: Optional[int] = Field(None, ge=1)


class PrecomputeResponse(StandardizedModel):
    message: str
    organizer_id: str
    days_ahead: int
    status: Literal["started", "already_running"]
