from .availability_rules import (
    AvailabilityRuleCreate,
    AvailabilityRuleResponse,
    AvailabilityRuleUpdate,
    AvailabilityStats,
    BlockedTimeCreate,
    BlockedTimeResponse,
    BlockedTimeUpdate,
    BufferTimeResponse,
    BufferTimeUpdate,
    CacheClearResponse,
    DateOverrideCreate,
    DateOverrideResponse,
    DateOverrideUpdate,
    PrecomputeRequest,
    PrecomputeResponse,
    RecurringBlockedTimeCreate,
    RecurringBlockedTimeResponse,
    RecurringBlockedTimeUpdate,
)
from .slots import AvailabilityResponse, AvailableSlot, InviteeSpec, MultiInviteeRequest

__all__ = [
    "AvailabilityResponse",
    "AvailabilityRuleCreate",
    "AvailabilityRuleResponse",
    "AvailabilityRuleUpdate",
    "AvailabilityStats",
    "AvailableSlot",
    "BlockedTimeCreate",
    "BlockedTimeResponse",
    "BlockedTimeUpdate",
    "BufferTimeResponse",
    "BufferTimeUpdate",
    "CacheClearResponse",
    "DateOverrideCreate",
    "DateOverrideResponse",
    "DateOverrideUpdate",
    "InviteeSpec",
    "MultiInviteeRequest",
    "PrecomputeRequest",
    "PrecomputeResponse",
    "RecurringBlockedTimeCreate",
    "RecurringBlockedTimeResponse",
    "RecurringBlockedTimeUpdate",
]
