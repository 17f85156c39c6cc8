# backend/availability_engine/routes/v1/events.py
"""
Public slot routes - API v1

Versioned slot query endpoints under /api/v1/events. No organizer header is
required: invitees look slots up by organizer and event type slug.

Endpoints:
    GET /slots/{organizer_slug}/{event_type_slug}/                 → Available slots
    POST /slots/{organizer_slug}/{event_type_slug}/multi-invitee/  → Ranked multi-invitee slots
"""

import asyncio
from datetime import date
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from ...api.dependencies import get_slot_service
from ...core.config import settings
from ...core.exceptions import DomainException
from ...domain.multi_invitee import InviteeProfile
from ...schemas.slots import AvailabilityResponse, MultiInviteeRequest
from ...services.slot_service import InviteeQuery, SlotService
from .availability import handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["events-v1"])

SLUG_PATTERN = r"^[A-Za-z0-9_-]{1,100}$"


def _split_timezones(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    names = [part.strip() for part in raw.split(",") if part.strip()]
    return names or None


@router.get(
    "/slots/{organizer_slug}/{event_type_slug}/",
    response_model=AvailabilityResponse,
    response_model_exclude_none=True,
)
async def get_available_slots(
    organizer_slug: str = Path(..., pattern=SLUG_PATTERN),
    event_type_slug: str = Path(..., pattern=SLUG_PATTERN),
    start_date: date = Query(..., description="First calendar day, in timezone"),
    end_date: date = Query(..., description="Last calendar day (inclusive)"),
    timezone: str = Query("UTC", description="IANA timezone of the invitee"),
    attendee_count: int = Query(1, ge=1),
    invitee_timezones: Optional[str] = Query(
        None, description="Comma-separated IANA timezones; enables multi-invitee mode"
    ),
    slot_service: SlotService = Depends(get_slot_service),
) -> AvailabilityResponse:
    """
    Available slots for an event type.

    Returns an empty list (not an error) when nothing is open. A response with
    partial=true covers start_date..computed_end_date only.

    Raises:
        HTTPException: 400 for unknown timezones or windows beyond the horizon,
            404 for unknown organizer or event type
    """
    try:
        return await asyncio.to_thread(
            slot_service.get_available_slots,
            organizer_slug,
            event_type_slug,
            start_date,
            end_date,
            timezone=timezone,
            attendee_count=attendee_count,
            invitee_timezones=_split_timezones(invitee_timezones),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/slots/{organizer_slug}/{event_type_slug}/multi-invitee/",
    response_model=AvailabilityResponse,
    response_model_exclude_none=True,
)
async def get_multi_invitee_slots(
    payload: MultiInviteeRequest,
    organizer_slug: str = Path(..., pattern=SLUG_PATTERN),
    event_type_slug: str = Path(..., pattern=SLUG_PATTERN),
    slot_service: SlotService = Depends(get_slot_service),
) -> AvailabilityResponse:
    """Slots every invitee can attend, ordered by fairness score."""
    invitees = [
        InviteeQuery(
            profile=InviteeProfile(
                timezone=invitee.timezone,
                reasonable_hours_start=(
                    invitee.reasonable_hours_start
                    if invitee.reasonable_hours_start is not None
                    else settings.default_reasonable_hours_start
                ),
                reasonable_hours_end=(
                    invitee.reasonable_hours_end
                    if invitee.reasonable_hours_end is not None
                    else settings.default_reasonable_hours_end
                ),
            ),
            organizer_slug=invitee.organizer_slug,
        )
        for invitee in payload.invitees
    ]
    try:
        return await asyncio.to_thread(
            slot_service.get_multi_invitee_slots,
            organizer_slug,
            event_type_slug,
            payload.start_date,
            payload.end_date,
            invitees,
            timezone=payload.timezone,
            attendee_count=payload.attendee_count,
        )
    except DomainException as e:
        handle_domain_exception(e)
