# backend/availability_engine/services/slot_cache_service.py
"""
Slot cache layer.

Entries are keyed by (organizer, event type, date, timezone) and stamped with
the organizer's rules generation at the time the rules were read, plus a
fingerprint of the event type fields and organizer timezone they were computed
with. A read only hits when both match, so bumping the generation invalidates
every entry of that organizer at once; stale entries are simply overwritten
on the next computation.

Entries hold slots before notice, horizon and attendee filtering; those
filters run on every read so a hit serves exactly what a cold computation
would.
"""

from datetime import date
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..domain.rules import EventTypeSpec
from ..domain.slot_generator import GeneratedSlot
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.organizer_repository import OrganizerRepository
from .base import BaseService
from .cache_service import CacheKeyBuilder, SlotCacheBackend, get_cache_backend

logger = logging.getLogger(__name__)

PRECOMPUTE_STARTED = "started"
PRECOMPUTE_ALREADY_RUNNING = "already_running"


class SlotCacheService(BaseService):
    """Read-through slot cache with generation-stamp invalidation."""

    def __init__(
        self,
        db: Session,
        backend: Optional[SlotCacheBackend] = None,
        organizer_repository: Optional[OrganizerRepository] = None,
    ):
        super().__init__(db)
        self.backend = backend or get_cache_backend()
        self.organizer_repository = (
            organizer_repository or RepositoryFactory.create_organizer_repository(db)
        )
        self.key_builder = CacheKeyBuilder()

    # Keys

    def entry_key(self, organizer_id: str, event_type_id: str, day: date, timezone: str) -> str:
        return self.key_builder.build("slots", organizer_id, event_type_id, day, timezone)

    def marker_key(self, organizer_id: str) -> str:
        return self.key_builder.build("precompute", organizer_id, "inflight")

    def stats_key(self, organizer_id: str) -> str:
        return self.key_builder.build("stats", organizer_id)

    def fingerprint(self, event_type: EventTypeSpec, organizer_timezone: str) -> str:
        """Hash of the non-rule inputs an entry depends on."""
        return self.key_builder.hash_complex_key(
            {**event_type.computation_inputs(), "organizer_timezone": organizer_timezone}
        )

    # Entries

    def get(
        self,
        organizer_id: str,
        event_type_id: str,
        day: date,
        timezone: str,
        generation: int,
        fingerprint: str = "",
    ) -> Optional[List[GeneratedSlot]]:
        """
        Cached slots for the key, else None.

        An entry only hits when it carries both the current generation and the
        fingerprint of the event type and organizer fields it was computed from.
        """
        key = self.entry_key(organizer_id, event_type_id, day, timezone)
        entry = self.backend.get(key)
        if entry is None:
            return None
        if entry.get("generation") != generation or entry.get("fingerprint", "") != fingerprint:
            logger.debug(f"Stale slot cache entry {key} (current generation {generation})")
            prometheus_metrics.inc_cache_request("stale")
            return None
        return [GeneratedSlot.from_cache(item) for item in entry.get("slots", [])]

    def put(
        self,
        organizer_id: str,
        event_type_id: str,
        day: date,
        timezone: str,
        generation: int,
        slots: List[GeneratedSlot],
        fingerprint: str = "",
    ) -> bool:
        key = self.entry_key(organizer_id, event_type_id, day, timezone)
        return self.backend.set(
            key,
            {
                "generation": generation,
                "fingerprint": fingerprint,
                "slots": [slot.to_cache() for slot in slots],
            },
            settings.slot_cache_ttl_seconds,
        )

    def record_lookup(self, organizer_id: str, hit: bool) -> None:
        """Count one query-level lookup for the organizer's hit rate."""
        self.backend.incr_stat(self.stats_key(organizer_id), "hits" if hit else "misses")
        prometheus_metrics.inc_cache_request("hit" if hit else "miss")

    def hit_rate(self, organizer_id: str) -> float:
        """Percentage of slot queries served from cache."""
        stats = self.backend.get_stats(self.stats_key(organizer_id))
        hits = stats.get("hits", 0)
        total = hits + stats.get("misses", 0)
        return round(hits / total * 100, 2) if total else 0.0

    # Invalidation

    @BaseService.measure_operation("invalidate_slot_cache")
    def invalidate(
        self, organizer_id: str, reason: str = "cache_clear", purge: bool = False
    ) -> int:
        """
        Bump the organizer's rules generation; every cached entry becomes stale.

        Stale entries are overwritten lazily. purge also deletes them from the
        store now, which scans the keyspace and is kept to explicit cache clears.

        Returns:
            The new generation
        """
        with self.transaction():
            generation = self.organizer_repository.bump_generation(organizer_id)
        evicted = 0
        if purge:
            evicted = self.backend.delete_pattern(
                self.key_builder.build("slots", organizer_id, "*")
            )
        prometheus_metrics.inc_cache_invalidation(reason)
        self.logger.info(
            f"Invalidated slot cache for organizer {organizer_id} "
            f"(generation {generation}, reason={reason}, evicted {evicted})"
        )
        return generation

    # Precompute coordination

    def schedule_precompute(self, organizer_id: str, days_ahead: int) -> str:
        """
        Start a background precompute unless one is already in flight.

        Never raises for scheduling problems: an enqueue failure is logged and
        the periodic precompute pass picks the organizer up again.
        """
        if not self.backend.acquire_marker(
            self.marker_key(organizer_id), settings.precompute_inflight_ttl_seconds
        ):
            prometheus_metrics.inc_precompute("coalesced")
            self.logger.info(f"Precompute already running for organizer {organizer_id}")
            return PRECOMPUTE_ALREADY_RUNNING

        from ..tasks.availability_tasks import precompute_organizer_slots

        try:
            precompute_organizer_slots.delay(organizer_id, days_ahead)
        except Exception as e:
            self.release_precompute(organizer_id)
            prometheus_metrics.inc_precompute("enqueue_failed")
            self.logger.error(
                f"Failed to enqueue precompute for organizer {organizer_id}: {e}", exc_info=True
            )
            return PRECOMPUTE_STARTED

        prometheus_metrics.inc_precompute("scheduled")
        self.logger.info(f"Scheduled precompute for organizer {organizer_id} ({days_ahead} days)")
        return PRECOMPUTE_STARTED

    def release_precompute(self, organizer_id: str) -> None:
        self.backend.delete(self.marker_key(organizer_id))

    def is_precompute_running(self, organizer_id: str) -> bool:
        return self.backend.get(self.marker_key(organizer_id)) is not None
