# backend/tests/integration/test_slot_cache_service.py
"""SlotCacheService: generation stamps, hit rate and precompute coordination."""

from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from availability_engine.domain.rules import EventTypeSpec
from availability_engine.domain.slot_generator import GeneratedSlot
from availability_engine.repositories import RepositoryFactory
from availability_engine.services.slot_cache_service import (
    PRECOMPUTE_ALREADY_RUNNING,
    PRECOMPUTE_STARTED,
    SlotCacheService,
)
from availability_engine.tasks.availability_tasks import precompute_organizer_slots

DAY = date(2026, 1, 5)
SLOTS = [
    GeneratedSlot(
        datetime(2026, 1, 5, 9, tzinfo=timezone.utc),
        datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc),
        30,
    ),
    GeneratedSlot(
        datetime(2026, 1, 5, 10, tzinfo=timezone.utc),
        datetime(2026, 1, 5, 11, tzinfo=timezone.utc),
        60,
        available_spots=3,
    ),
]


@pytest.fixture
def cache(db, cache_backend):
    return SlotCacheService(db, backend=cache_backend)


class TestEntries:
    def test_miss(self, cache, organizer):
        assert cache.get(organizer.id, "et", DAY, "UTC", 0) is None

    def test_round_trip_under_same_generation(self, cache, organizer):
        assert cache.put(organizer.id, "et", DAY, "UTC", 4, SLOTS)
        assert cache.get(organizer.id, "et", DAY, "UTC", 4) == SLOTS

    def test_other_generation_is_stale(self, cache, organizer):
        cache.put(organizer.id, "et", DAY, "UTC", 4, SLOTS)
        assert cache.get(organizer.id, "et", DAY, "UTC", 5) is None

    def test_keys_include_timezone_and_event_type(self, cache, organizer):
        cache.put(organizer.id, "et", DAY, "UTC", 0, SLOTS)
        assert cache.get(organizer.id, "et", DAY, "Asia/Tokyo", 0) is None
        assert cache.get(organizer.id, "other", DAY, "UTC", 0) is None

    def test_empty_day_is_cached(self, cache, organizer):
        cache.put(organizer.id, "et", DAY, "UTC", 0, [])
        assert cache.get(organizer.id, "et", DAY, "UTC", 0) == []

    def test_other_fingerprint_is_stale(self, cache, organizer):
        spec = EventTypeSpec(id="et", slug="intro-call", duration=30)
        before = cache.fingerprint(spec, "UTC")
        cache.put(organizer.id, "et", DAY, "UTC", 0, SLOTS, before)

        longer = cache.fingerprint(EventTypeSpec(id="et", slug="intro-call", duration=60), "UTC")
        moved = cache.fingerprint(spec, "Europe/Paris")

        assert cache.get(organizer.id, "et", DAY, "UTC", 0, before) == SLOTS
        assert cache.get(organizer.id, "et", DAY, "UTC", 0, longer) is None
        assert cache.get(organizer.id, "et", DAY, "UTC", 0, moved) is None

    def test_serve_time_fields_keep_fingerprint(self, cache):
        spec = EventTypeSpec(id="et", slug="intro-call", duration=30)
        stricter = EventTypeSpec(
            id="et", slug="intro-call", duration=30, min_scheduling_notice=120
        )
        assert cache.fingerprint(spec, "UTC") == cache.fingerprint(stricter, "UTC")


class TestInvalidation:
    def test_bump_leaves_entries_stale(self, db, cache, cache_backend, organizer):
        cache.put(organizer.id, "et", DAY, "UTC", 0, SLOTS)

        generation = cache.invalidate(organizer.id, reason="bookings_changed")

        assert generation == 1
        assert RepositoryFactory.create_organizer_repository(db).get_generation(organizer.id) == 1
        assert cache.get(organizer.id, "et", DAY, "UTC", 1) is None
        assert cache_backend.get(cache.entry_key(organizer.id, "et", DAY, "UTC")) is not None

    def test_purge_evicts(self, cache, cache_backend, organizer):
        cache.put(organizer.id, "et", DAY, "UTC", 0, SLOTS)

        cache.invalidate(organizer.id, reason="cache_clear", purge=True)

        assert cache_backend.get(cache.entry_key(organizer.id, "et", DAY, "UTC")) is None

    def test_other_organizers_keep_entries(self, cache, seed, organizer):
        bob = seed.organizer(slug="bob")
        cache.put(bob.id, "et", DAY, "UTC", 0, SLOTS)

        cache.invalidate(organizer.id)

        assert cache.get(bob.id, "et", DAY, "UTC", 0) == SLOTS


class TestHitRate:
    def test_no_lookups(self, cache, organizer):
        assert cache.hit_rate(organizer.id) == 0.0

    def test_percentage_of_hits(self, cache, organizer):
        cache.record_lookup(organizer.id, True)
        cache.record_lookup(organizer.id, True)
        cache.record_lookup(organizer.id, False)
        assert cache.hit_rate(organizer.id) == 66.67


class TestPrecomputeScheduling:
    def test_schedules_once(self, cache, organizer):
        with patch.object(precompute_organizer_slots, "delay") as delay:
            first = cache.schedule_precompute(organizer.id, 7)
            second = cache.schedule_precompute(organizer.id, 7)

        assert first == PRECOMPUTE_STARTED
        assert second == PRECOMPUTE_ALREADY_RUNNING
        delay.assert_called_once_with(organizer.id, 7)
        assert cache.is_precompute_running(organizer.id)

    def test_release_allows_next_run(self, cache, organizer):
        with patch.object(precompute_organizer_slots, "delay") as delay:
            cache.schedule_precompute(organizer.id, 7)
            cache.release_precompute(organizer.id)
            assert not cache.is_precompute_running(organizer.id)
            assert cache.schedule_precompute(organizer.id, 7) == PRECOMPUTE_STARTED

        assert delay.call_count == 2

    def test_enqueue_failure_releases_marker(self, cache, organizer):
        with patch.object(
            precompute_organizer_slots, "delay", side_effect=RuntimeError("broker down")
        ):
            status = cache.schedule_precompute(organizer.id, 7)

        assert status == PRECOMPUTE_STARTED
        assert not cache.is_precompute_running(organizer.id)
