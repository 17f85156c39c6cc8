# backend/availability_engine/schemas/slots.py
"""
Slot query schemas.

AvailableSlot and AvailabilityResponse mirror the shapes the booking pages
consume: UTC ISO-8601 start/end plus local times in the requested timezone.
"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .base import StandardizedModel, StrictModel


class InviteeLocalTime(BaseModel):
    start_time: str
    end_time: str
    start_hour: int
    end_hour: int


class AvailableSlot(StandardizedModel):
    start_time: str
    end_time: str
    duration_minutes: int
    local_start_time: Optional[str] = None
    local_end_time: Optional[str] = None
    available_spots: Optional[int] = None
    invitee_times: Optional[Dict[str, InviteeLocalTime]] = None
    fairness_score: Optional[float] = None


class AvailabilityResponse(StandardizedModel):
    organizer_slug: str
    event_type_slug: str
    start_date: date
    end_date: date
    invitee_timezone: str
    attendee_count: int
    available_slots: List[AvailableSlot]
    cache_hit: bool
    total_slots: int
    computation_time_ms: float
    multi_invitee_mode: bool = False
    invitee_timezones: Optional[List[str]] = None
    partial: bool = False
    computed_end_date: Optional[date] = None


class InviteeSpec(StrictModel):
    timezone: str = Field(..., min_length=1)
    reasonable_hours_start: Optional[int] = Field(None, ge=0, le=23)
    reasonable_hours_end: Optional[int] = Field(None, ge=0, le=24)
    organizer_slug: Optional[str] = Field(
        None, description="Invitee who is also an organizer; their published rules constrain slots"
    )


class MultiInviteeRequest(StrictModel):
    start_date: date
    end_date: date
    timezone: str = "UTC"
    attendee_count: int = Field(1, ge=1)
    invitees: List[InviteeSpec] = Field(..., min_length=1)

    @field_validator("invitees")
    @classmethod
    def _unique_timezones(cls, v: List[InviteeSpec]) -> List[InviteeSpec]:
        seen = set()
        for invitee in v:
            if invitee.timezone in seen:
                raise ValueError(f"Duplicate invitee timezone: {invitee.timezone}")
            seen.add(invitee.timezone)
        return v
