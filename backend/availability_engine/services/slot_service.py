# backend/availability_engine/services/slot_service.py
"""
Slot Service

Answers slot queries for one organizer and event type:

1. Validate the request (timezone, attendee count, date window against
   max_query_days and the event type's scheduling horizon).
2. Read the organizer's rules generation, then serve each requested day from
   the slot cache when an entry with that generation exists, computing and
   storing it otherwise.
3. Apply serve-time filters (notice, horizon, attendee count) and project
   slots into the requested timezone.

Days are computed in order under a time budget. When the budget runs out the
days computed so far are returned with partial=True instead of failing.

Multi-invitee queries intersect the host's open time with every invitee who
is also an organizer, rank slots by fairness and bypass the cache.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException, OutOfRangeException, ValidationException
from ..core.timezone_utils import local_day_bounds, local_today, resolve_timezone, utc_now
from ..domain.interval_resolver import IntervalResolver
from ..domain.intervals import Interval, normalize
from ..domain.multi_invitee import InviteeProfile, rank_slots
from ..domain.pipeline import compute_day_slots
from ..domain.rules import BookedMeeting, EventTypeSpec, RuleSet
from ..domain.slot_generator import GeneratedSlot, filter_bookable
from ..models.event_type import EventType
from ..models.organizer import Organizer
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..schemas.slots import AvailabilityResponse, AvailableSlot
from .base import BaseService
from .slot_cache_service import SlotCacheService

logger = logging.getLogger(__name__)

# Bookings and blocks are loaded this far around the requested days so every
# day sees the same inputs whichever range it is computed in
LOAD_PADDING = timedelta(days=2)


@dataclass
class InviteeQuery:
    profile: InviteeProfile
    organizer_slug: Optional[str] = None


@dataclass
class _Computation:
    slots: List[GeneratedSlot]
    computed_days: List[date]
    cache_hit: bool
    partial: bool


def _date_range(start: date, end: date) -> List[date]:
    return [start + timedelta(days=n) for n in range((end - start).days + 1)]


def event_type_spec(event_type: EventType) -> EventTypeSpec:
    return EventTypeSpec(
        id=event_type.id,
        slug=event_type.slug,
        duration=event_type.duration,
        max_attendees=event_type.max_attendees or 1,
        is_group_event=bool(event_type.is_group_event),
        min_scheduling_notice=event_type.min_scheduling_notice or 0,
        max_scheduling_horizon=event_type.max_scheduling_horizon,
        buffer_time_before=event_type.buffer_time_before,
        buffer_time_after=event_type.buffer_time_after,
        slot_interval_minutes=event_type.slot_interval_minutes,
        max_bookings_per_day=event_type.max_bookings_per_day,
    )


class SlotService(BaseService):
    """Slot queries, precompute and booking-change invalidation."""

    def __init__(
        self,
        db: Session,
        cache: Optional[SlotCacheService] = None,
        budget_ms: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self.cache = cache or SlotCacheService(db)
        self.budget_ms = budget_ms if budget_ms is not None else settings.slot_computation_budget_ms
        self.clock = clock
        self.organizer_repository = RepositoryFactory.create_organizer_repository(db)
        self.event_type_repository = RepositoryFactory.create_event_type_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.rule_set_repository = RepositoryFactory.create_rule_set_repository(db)

    # Lookups

    def _get_organizer(self, organizer_slug: str) -> Organizer:
        organizer = self.organizer_repository.get_by_slug(organizer_slug)
        if not organizer:
            raise NotFoundException(
                f"Organizer '{organizer_slug}' not found",
                code="ORGANIZER_NOT_FOUND",
                details={"organizer_slug": organizer_slug},
            )
        return organizer

    def _get_event_type(self, organizer: Organizer, event_type_slug: str) -> EventType:
        event_type = self.event_type_repository.get_by_slug(organizer.id, event_type_slug)
        if not event_type:
            raise NotFoundException(
                f"Event type '{event_type_slug}' not found",
                code="EVENT_TYPE_NOT_FOUND",
                details={"organizer_slug": organizer.slug, "event_type_slug": event_type_slug},
            )
        return event_type

    def _load_rule_set(
        self, organizer: Organizer, generation: int, window_start: datetime, window_end: datetime
    ) -> RuleSet:
        with self.measure_operation_context("load_rule_set"):
            return self.rule_set_repository.load(
                organizer,
                generation,
                window_start=window_start,
                window_end=window_end,
                default_slot_interval=settings.default_slot_interval_minutes,
            )

    def _load_window(self, days: Sequence[date], tz) -> Tuple[datetime, datetime]:
        start, _ = local_day_bounds(days[0], tz)
        _, end = local_day_bounds(days[-1], tz)
        return start - LOAD_PADDING, end + LOAD_PADDING

    # Validation

    def _validate_query(
        self,
        organizer: Organizer,
        event_type: EventType,
        start_date: date,
        end_date: date,
        attendee_count: int,
        now: datetime,
    ) -> None:
        if end_date < start_date:
            raise OutOfRangeException(
                "end_date must not be before start_date",
                boundary=start_date.isoformat(),
                organizer_slug=organizer.slug,
                event_type_slug=event_type.slug,
            )
        span = (end_date - start_date).days + 1
        if span > settings.max_query_days:
            raise OutOfRangeException(
                f"Date range of {span} days exceeds the maximum of {settings.max_query_days}",
                boundary=(start_date + timedelta(days=settings.max_query_days - 1)).isoformat(),
                organizer_slug=organizer.slug,
                event_type_slug=event_type.slug,
            )
        organizer_tz = resolve_timezone(organizer.timezone)
        horizon_end = local_today(organizer_tz, now) + timedelta(
            days=event_type.max_scheduling_horizon
        )
        if end_date > horizon_end:
            raise OutOfRangeException(
                f"end_date is beyond the scheduling horizon of "
                f"{event_type.max_scheduling_horizon} days",
                boundary=horizon_end.isoformat(),
                organizer_slug=organizer.slug,
                event_type_slug=event_type.slug,
            )
        if attendee_count < 1:
            raise ValidationException(
                "attendee_count must be at least 1",
                code="INVALID_ATTENDEE_COUNT",
                details={"field": "attendee_count", "event_type_slug": event_type.slug},
            )
        max_attendees = event_type.max_attendees if event_type.is_group_event else 1
        if attendee_count > max_attendees:
            raise ValidationException(
                f"attendee_count exceeds the maximum of {max_attendees} for this event type",
                code="INVALID_ATTENDEE_COUNT",
                details={
                    "field": "attendee_count",
                    "organizer_slug": organizer.slug,
                    "event_type_slug": event_type.slug,
                    "max_attendees": max_attendees,
                },
            )

    # Computation

    def _over_budget(self, started: float) -> bool:
        return (time.perf_counter() - started) * 1000 > self.budget_ms

    def _compute_days(
        self,
        organizer: Organizer,
        spec: EventTypeSpec,
        days: List[date],
        tz_name: str,
        generation: int,
        started: float,
    ) -> _Computation:
        tz = resolve_timezone(tz_name)
        slots: List[GeneratedSlot] = []
        computed: List[date] = []
        cache_hit = True
        resolver: Optional[IntervalResolver] = None
        bookings: List[BookedMeeting] = []
        fingerprint = self.cache.fingerprint(spec, organizer.timezone)

        for index, day in enumerate(days):
            cached = self.cache.get(
                organizer.id, spec.id, day, tz_name, generation, fingerprint
            )
            if cached is not None:
                day_slots = cached
            else:
                cache_hit = False
                if resolver is None:
                    window_start, window_end = self._load_window(days, tz)
                    resolver = IntervalResolver(
                        self._load_rule_set(organizer, generation, window_start, window_end)
                    )
                    bookings = self.booking_repository.get_booked_meetings(
                        organizer.id, window_start, window_end
                    )
                day_slots = compute_day_slots(resolver, spec, bookings, day, tz)
                self.cache.put(
                    organizer.id, spec.id, day, tz_name, generation, day_slots, fingerprint
                )

            slots.extend(day_slots)
            computed.append(day)
            if index < len(days) - 1 and self._over_budget(started):
                return _Computation(slots, computed, cache_hit, partial=True)

        return _Computation(slots, computed, cache_hit, partial=False)

    @staticmethod
    def _present(
        slot: GeneratedSlot,
        tz,
        fairness_score: Optional[float] = None,
        invitee_times: Optional[Dict[str, Dict[str, object]]] = None,
    ) -> AvailableSlot:
        return AvailableSlot(
            start_time=slot.start.isoformat(),
            end_time=slot.end.isoformat(),
            duration_minutes=slot.duration_minutes,
            local_start_time=slot.start.astimezone(tz).isoformat(),
            local_end_time=slot.end.astimezone(tz).isoformat(),
            available_spots=slot.available_spots,
            fairness_score=fairness_score,
            invitee_times=invitee_times,
        )

    # Public API

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self,
        organizer_slug: str,
        event_type_slug: str,
        start_date: date,
        end_date: date,
        timezone: str = "UTC",
        attendee_count: int = 1,
        invitee_timezones: Optional[List[str]] = None,
    ) -> AvailabilityResponse:
        """
        Available slots for the event type between start_date and end_date.

        Dates are calendar days in timezone. invitee_timezones switches to
        multi-invitee mode with default reasonable hours for each invitee.

        Raises:
            InvalidTimezoneException: Unknown timezone
            OutOfRangeException: Window beyond horizon or max_query_days
            ValidationException: attendee_count outside 1..max_attendees
            NotFoundException: Unknown organizer or event type
        """
        if invitee_timezones:
            invitees = [
                InviteeQuery(
                    InviteeProfile(
                        timezone=name,
                        reasonable_hours_start=settings.default_reasonable_hours_start,
                        reasonable_hours_end=settings.default_reasonable_hours_end,
                    )
                )
                for name in dict.fromkeys(invitee_timezones)
            ]
            return self.get_multi_invitee_slots(
                organizer_slug,
                event_type_slug,
                start_date,
                end_date,
                invitees,
                timezone=timezone,
                attendee_count=attendee_count,
            )

        started = time.perf_counter()
        tz = resolve_timezone(timezone)
        organizer = self._get_organizer(organizer_slug)
        event_type = self._get_event_type(organizer, event_type_slug)
        now = self.clock()
        self._validate_query(organizer, event_type, start_date, end_date, attendee_count, now)

        # Generation first: the rules read afterwards can only be as new or newer
        generation = self.organizer_repository.get_generation(organizer.id)
        spec = event_type_spec(event_type)
        result = self._compute_days(
            organizer, spec, _date_range(start_date, end_date), timezone, generation, started
        )

        bookable = filter_bookable(
            result.slots,
            now=now,
            min_notice_minutes=spec.min_scheduling_notice,
            horizon_days=spec.max_scheduling_horizon,
            organizer_tz=resolve_timezone(organizer.timezone),
            attendee_count=attendee_count,
        )
        self.cache.record_lookup(organizer.id, result.cache_hit)
        elapsed = time.perf_counter() - started
        prometheus_metrics.observe_slot_computation(elapsed, mode="single")
        if result.partial:
            prometheus_metrics.inc_degraded_query()
            self.logger.warning(
                f"Slot computation budget exceeded for {organizer.slug}/{event_type.slug}; "
                f"returning {len(result.computed_days)} of "
                f"{(end_date - start_date).days + 1} days"
            )
        self.logger.debug(
            f"Slots for {organizer.slug}/{event_type.slug} {start_date}..{end_date} "
            f"({timezone}): {len(bookable)} slots, cache_hit={result.cache_hit}"
        )

        return AvailabilityResponse(
            organizer_slug=organizer.slug,
            event_type_slug=event_type.slug,
            start_date=start_date,
            end_date=end_date,
            invitee_timezone=timezone,
            attendee_count=attendee_count,
            available_slots=[self._present(slot, tz) for slot in bookable],
            cache_hit=result.cache_hit,
            total_slots=len(bookable),
            computation_time_ms=round(elapsed * 1000, 2),
            partial=result.partial,
            computed_end_date=result.computed_days[-1] if result.partial else None,
        )

    def _invitee_constraint(
        self, invitee: InviteeQuery, window_start: datetime, window_end: datetime
    ) -> List[Interval]:
        """Open time of an invitee who publishes rules, minus their bookings."""
        other = self._get_organizer(invitee.organizer_slug)
        generation = self.organizer_repository.get_generation(other.id)
        resolver = IntervalResolver(
            self._load_rule_set(other, generation, window_start, window_end)
        )
        booked = self.booking_repository.get_booked_meetings(other.id, window_start, window_end)
        return resolver.resolve(
            window_start,
            window_end,
            None,
            extra_blocks=normalize(Interval(b.start, b.end) for b in booked),
        )

    @BaseService.measure_operation("get_multi_invitee_slots")
    def get_multi_invitee_slots(
        self,
        organizer_slug: str,
        event_type_slug: str,
        start_date: date,
        end_date: date,
        invitees: List[InviteeQuery],
        timezone: str = "UTC",
        attendee_count: int = 1,
    ) -> AvailabilityResponse:
        """
        Slots every invitee can attend, best fairness first.

        Invitees that are also organizers constrain the slots with their own
        published availability; every invitee contributes to the score.
        """
        started = time.perf_counter()
        tz = resolve_timezone(timezone)
        for invitee in invitees:
            resolve_timezone(invitee.profile.timezone, field="invitees")
        organizer = self._get_organizer(organizer_slug)
        event_type = self._get_event_type(organizer, event_type_slug)
        now = self.clock()
        self._validate_query(organizer, event_type, start_date, end_date, attendee_count, now)

        days = _date_range(start_date, end_date)
        window_start, window_end = self._load_window(days, tz)
        generation = self.organizer_repository.get_generation(organizer.id)
        rule_set = self._load_rule_set(organizer, generation, window_start, window_end)
        resolver = IntervalResolver(rule_set)
        bookings = self.booking_repository.get_booked_meetings(
            organizer.id, window_start, window_end
        )
        constraints = [
            self._invitee_constraint(invitee, window_start, window_end)
            for invitee in invitees
            if invitee.organizer_slug
        ]

        spec = event_type_spec(event_type)
        slots: List[GeneratedSlot] = []
        computed: List[date] = []
        partial = False
        for index, day in enumerate(days):
            slots.extend(compute_day_slots(resolver, spec, bookings, day, tz, constraints))
            computed.append(day)
            if index < len(days) - 1 and self._over_budget(started):
                partial = True
                break

        bookable = filter_bookable(
            slots,
            now=now,
            min_notice_minutes=spec.min_scheduling_notice,
            horizon_days=spec.max_scheduling_horizon,
            organizer_tz=resolver.tz,
            attendee_count=attendee_count,
        )
        profiles = [invitee.profile for invitee in invitees]
        ranked = rank_slots(bookable, profiles)

        elapsed = time.perf_counter() - started
        prometheus_metrics.observe_slot_computation(elapsed, mode="multi_invitee")
        if partial:
            prometheus_metrics.inc_degraded_query()
            self.logger.warning(
                f"Multi-invitee budget exceeded for {organizer.slug}/{event_type.slug}; "
                f"returning {len(computed)} of {len(days)} days"
            )

        return AvailabilityResponse(
            organizer_slug=organizer.slug,
            event_type_slug=event_type.slug,
            start_date=start_date,
            end_date=end_date,
            invitee_timezone=timezone,
            attendee_count=attendee_count,
            available_slots=[
                self._present(item.slot, tz, item.fairness_score, item.invitee_times)
                for item in ranked
            ],
            cache_hit=False,
            total_slots=len(ranked),
            computation_time_ms=round(elapsed * 1000, 2),
            multi_invitee_mode=True,
            invitee_timezones=[p.timezone for p in profiles],
            partial=partial,
            computed_end_date=computed[-1] if partial else None,
        )

    @BaseService.measure_operation("precompute_organizer")
    def precompute_organizer(self, organizer_id: str, days_ahead: int) -> int:
        """
        Compute and store cache entries for the organizer's active event types
        across its own timezone and the common timezones.

        Returns:
            Number of cache entries written
        """
        organizer = self.organizer_repository.get_by_id(organizer_id, load_relationships=False)
        if not organizer or not organizer.is_active:
            self.logger.info(f"Skipping precompute for missing organizer {organizer_id}")
            return 0

        organizer_tz = resolve_timezone(organizer.timezone)
        timezones = list(dict.fromkeys([organizer.timezone, *settings.precompute_common_timezones]))
        days_ahead = max(1, min(days_ahead, settings.precompute_max_days))
        today = local_today(organizer_tz, self.clock())

        written = 0
        for event_type in self.event_type_repository.list_active(organizer.id):
            spec = event_type_spec(event_type)
            last_day = min(
                today + timedelta(days=days_ahead - 1),
                today + timedelta(days=spec.max_scheduling_horizon),
            )
            if last_day < today:
                continue
            days = _date_range(today, last_day)
            for tz_name in timezones:
                try:
                    resolve_timezone(tz_name)
                except ValidationException:
                    self.logger.warning(f"Skipping unknown precompute timezone {tz_name!r}")
                    continue
                generation = self.organizer_repository.get_generation(organizer.id)
                written += self._precompute_entries(organizer, spec, days, tz_name, generation)

        self.logger.info(
            f"Precomputed {written} slot cache entries for organizer {organizer_id} "
            f"({days_ahead} days)"
        )
        return written

    def _precompute_entries(
        self,
        organizer: Organizer,
        spec: EventTypeSpec,
        days: List[date],
        tz_name: str,
        generation: int,
    ) -> int:
        tz = resolve_timezone(tz_name)
        window_start, window_end = self._load_window(days, tz)
        resolver = IntervalResolver(
            self._load_rule_set(organizer, generation, window_start, window_end)
        )
        bookings = self.booking_repository.get_booked_meetings(
            organizer.id, window_start, window_end
        )
        fingerprint = self.cache.fingerprint(spec, organizer.timezone)
        written = 0
        for day in days:
            day_slots = compute_day_slots(resolver, spec, bookings, day, tz)
            if self.cache.put(
                organizer.id, spec.id, day, tz_name, generation, day_slots, fingerprint
            ):
                written += 1
        return written

    def notify_bookings_changed(self, organizer_id: str) -> int:
        """Hook for the booking store: bookings changed, cached slots are stale."""
        return self.cache.invalidate(organizer_id, reason="bookings_changed")
