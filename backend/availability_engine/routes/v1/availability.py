# backend/availability_engine/routes/v1/availability.py
"""
Availability management routes - API v1

Versioned rule management endpoints under /api/v1/availability, acting for the
organizer named by the X-Organizer-Id header. All business logic delegated to
RuleStoreService, SlotCacheService and AvailabilityStatsService.

Endpoints:
    GET/POST /rules/                      → List / create weekly rules
    PATCH/DELETE /rules/{id}/             → Update / delete a weekly rule
    GET/POST /overrides/                  → List / create date overrides
    PATCH/DELETE /overrides/{id}/         → Update / delete a date override
    GET/POST /blocked/                    → List / create blocked times
    PATCH/DELETE /blocked/{id}/           → Update / delete a blocked time
    GET/POST /recurring-blocks/           → List / create recurring blocks
    PATCH/DELETE /recurring-blocks/{id}/  → Update / delete a recurring block
    GET/PATCH /buffer/                    → Buffer settings
    GET /stats/                           → Dashboard statistics
    POST /cache/clear/                    → Invalidate cached slots
    POST /cache/precompute/               → Schedule a background precompute
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Response, status

from ...api.dependencies import (
    get_current_organizer,
    get_rule_store_service,
    get_slot_cache_service,
    get_stats_service,
)
from ...core.config import settings
from ...core.exceptions import DomainException
from ...models.organizer import Organizer
from ...schemas.availability_rules import (
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
from ...services.availability_stats_service import AvailabilityStatsService
from ...services.rule_store_service import RuleStoreService
from ...services.slot_cache_service import PRECOMPUTE_ALREADY_RUNNING, SlotCacheService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["availability-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ============================================================================
# Weekly rules
# ============================================================================


@router.get("/rules/", response_model=List[AvailabilityRuleResponse])
async def list_rules(
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> List[AvailabilityRuleResponse]:
    rules = await asyncio.to_thread(service.list_rules, organizer.id)
    return [AvailabilityRuleResponse.from_model(rule) for rule in rules]


@router.post(
    "/rules/", response_model=AvailabilityRuleResponse, status_code=status.HTTP_201_CREATED
)
async def create_rule(
    payload: AvailabilityRuleCreate,
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> AvailabilityRuleResponse:
    """
    Create a weekly availability rule.

    Raises:
        HTTPException: 400 for malformed windows or unknown event types
    """
    try:
        rule = await asyncio.to_thread(service.create_rule, organizer.id, payload.model_dump())
    except DomainException as e:
        handle_domain_exception(e)
    return AvailabilityRuleResponse.from_model(rule)


@router.patch("/rules/{rule_id}/", response_model=AvailabilityRuleResponse)
async def update_rule(
    payload: AvailabilityRuleUpdate,
    rule_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> AvailabilityRuleResponse:
    try:
        rule = await asyncio.to_thread(
            service.update_rule, organizer.id, rule_id, payload.model_dump(exclude_unset=True)
        )
    except DomainException as e:
        handle_domain_exception(e)
    return AvailabilityRuleResponse.from_model(rule)


@router.delete("/rules/{rule_id}/", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> Response:
    try:
        await asyncio.to_thread(service.delete_rule, organizer.id, rule_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Date overrides
# ============================================================================


@router.get("/overrides/", response_model=List[DateOverrideResponse])
async def list_overrides(
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> List[DateOverrideResponse]:
    overrides = await asyncio.to_thread(service.list_overrides, organizer.id)
    return [DateOverrideResponse.from_model(override) for override in overrides]


@router.post(
    "/overrides/", response_model=DateOverrideResponse, status_code=status.HTTP_201_CREATED
)
async def create_override(
    payload: DateOverrideCreate,
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> DateOverrideResponse:
    """
    Create a date override.

    Available overrides need start and end times; unavailable overrides block
    the whole date and ignore any hours given.
    """
    try:
        override = await asyncio.to_thread(
            service.create_override, organizer.id, payload.model_dump()
        )
    except DomainException as e:
        handle_domain_exception(e)
    return DateOverrideResponse.from_model(override)


@router.patch("/overrides/{override_id}/", response_model=DateOverrideResponse)
async def update_override(
    payload: DateOverrideUpdate,
    override_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> DateOverrideResponse:
    try:
        override = await asyncio.to_thread(
            service.update_override,
            organizer.id,
            override_id,
            payload.model_dump(exclude_unset=True),
        )
    except DomainException as e:
        handle_domain_exception(e)
    return DateOverrideResponse.from_model(override)


@router.delete("/overrides/{override_id}/", status_code=status.HTTP_204_NO_CONTENT)
async def delete_override(
    override_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> Response:
    try:
        await asyncio.to_thread(service.delete_override, organizer.id, override_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Blocked times
# ============================================================================


@router.get("/blocked/", response_model=List[BlockedTimeResponse])
async def list_blocked_times(
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> List[BlockedTimeResponse]:
    blocks = await asyncio.to_thread(service.list_blocked_times, organizer.id)
    return [BlockedTimeResponse.from_model(block) for block in blocks]


@router.post("/blocked/", response_model=BlockedTimeResponse, status_code=status.HTTP_201_CREATED)
async def create_blocked_time(
    payload: BlockedTimeCreate,
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> BlockedTimeResponse:
    try:
        block = await asyncio.to_thread(
            service.create_blocked_time, organizer.id, payload.model_dump()
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BlockedTimeResponse.from_model(block)


@router.patch("/blocked/{block_id}/", response_model=BlockedTimeResponse)
async def update_blocked_time(
    payload: BlockedTimeUpdate,
    block_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> BlockedTimeResponse:
    try:
        block = await asyncio.to_thread(
            service.update_blocked_time,
            organizer.id,
            block_id,
            payload.model_dump(exclude_unset=True),
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BlockedTimeResponse.from_model(block)


@router.delete("/blocked/{block_id}/", status_code=status.HTTP_204_NO_CONTENT)
async def delete_blocked_time(
    block_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> Response:
    try:
        await asyncio.to_thread(service.delete_blocked_time, organizer.id, block_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Recurring blocks
# ============================================================================


@router.get("/recurring-blocks/", response_model=List[RecurringBlockedTimeResponse])
async def list_recurring_blocks(
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> List[RecurringBlockedTimeResponse]:
    blocks = await asyncio.to_thread(service.list_recurring_blocks, organizer.id)
    return [RecurringBlockedTimeResponse.from_model(block) for block in blocks]


@router.post(
    "/recurring-blocks/",
    response_model=RecurringBlockedTimeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_recurring_block(
    payload: RecurringBlockedTimeCreate,
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> RecurringBlockedTimeResponse:
    try:
        block = await asyncio.to_thread(
            service.create_recurring_block, organizer.id, payload.model_dump()
        )
    except DomainException as e:
        handle_domain_exception(e)
    return RecurringBlockedTimeResponse.from_model(block)


@router.patch("/recurring-blocks/{block_id}/", response_model=RecurringBlockedTimeResponse)
async def update_recurring_block(
    payload: RecurringBlockedTimeUpdate,
    block_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> RecurringBlockedTimeResponse:
    try:
        block = await asyncio.to_thread(
            service.update_recurring_block,
            organizer.id,
            block_id,
            payload.model_dump(exclude_unset=True),
        )
    except DomainException as e:
        handle_domain_exception(e)
    return RecurringBlockedTimeResponse.from_model(block)


@router.delete("/recurring-blocks/{block_id}/", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recurring_block(
    block_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> Response:
    try:
        await asyncio.to_thread(service.delete_recurring_block, organizer.id, block_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Buffer settings and statistics
# ============================================================================


@router.get("/buffer/", response_model=BufferTimeResponse)
async def get_buffer_settings(
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> BufferTimeResponse:
    try:
        buffer_time = await asyncio.to_thread(service.get_buffer_settings, organizer.id)
    except DomainException as e:
        handle_domain_exception(e)
    return BufferTimeResponse.model_validate(buffer_time)


@router.patch("/buffer/", response_model=BufferTimeResponse)
async def update_buffer_settings(
    payload: BufferTimeUpdate,
    organizer: Organizer = Depends(get_current_organizer),
    service: RuleStoreService = Depends(get_rule_store_service),
) -> BufferTimeResponse:
    try:
        buffer_time = await asyncio.to_thread(
            service.update_buffer_settings, organizer.id, payload.model_dump(exclude_unset=True)
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BufferTimeResponse.model_validate(buffer_time)


@router.get("/stats/", response_model=AvailabilityStats)
async def get_availability_stats(
    organizer: Organizer = Depends(get_current_organizer),
    service: AvailabilityStatsService = Depends(get_stats_service),
) -> AvailabilityStats:
    try:
        return await asyncio.to_thread(service.get_stats, organizer.id)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# Cache actions
# ============================================================================


@router.post("/cache/clear/", response_model=CacheClearResponse)
async def clear_cache(
    organizer: Organizer = Depends(get_current_organizer),
    cache: SlotCacheService = Depends(get_slot_cache_service),
) -> CacheClearResponse:
    """Drop every cached slot of the organizer; the next query recomputes."""
    try:
        generation = await asyncio.to_thread(
            cache.invalidate, organizer.id, "cache_clear", True
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CacheClearResponse(
        message="Slot cache cleared",
        organizer_id=organizer.id,
        generation=generation,
    )


@router.post("/cache/precompute/", response_model=PrecomputeResponse)
async def precompute_cache(
    payload: Optional[PrecomputeRequest] = Body(default=None),
    organizer: Organizer = Depends(get_current_organizer),
    cache: SlotCacheService = Depends(get_slot_cache_service),
) -> PrecomputeResponse:
    """
    Schedule a background precompute of the organizer's slots.

    Fire-and-forget: the response only says whether a run was started or one
    was already in flight. Requests are capped at precompute_max_days.
    """
    requested = payload.days_ahead if payload and payload.days_ahead else None
    days_ahead = min(requested or settings.default_precompute_days, settings.precompute_max_days)

    outcome = await asyncio.to_thread(cache.schedule_precompute, organizer.id, days_ahead)
    if outcome == PRECOMPUTE_ALREADY_RUNNING:
        message = "Precompute already running"
    else:
        message = f"Precompute started for the next {days_ahead} days"
    return PrecomputeResponse(
        message=message,
        organizer_id=organizer.id,
        days_ahead=days_ahead,
        status=outcome,
    )
