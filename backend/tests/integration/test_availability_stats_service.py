# backend/tests/integration/test_availability_stats_service.py
from datetime import date, datetime, time, timezone

import pytest

from availability_engine.services.availability_stats_service import AvailabilityStatsService


@pytest.fixture
def stats_service(db):
    return AvailabilityStatsService(db)


def test_workweek(stats_service, organizer):
    stats = stats_service.get_stats(organizer.id)

    assert stats.total_rules == 5
    assert stats.active_rules == 5
    assert stats.average_weekly_hours == 40.0
    assert stats.daily_hours["Monday"] == 8.0
    assert stats.daily_hours["Sunday"] == 0.0
    # Ties go to the earliest weekday
    assert stats.busiest_day == "Monday"
    assert stats.cache_hit_rate == 0.0


def test_overlapping_rules_count_once(stats_service, seed, organizer):
    seed.weekly_rule(organizer, 1, time(16), time(19))

    stats = stats_service.get_stats(organizer.id)

    assert stats.daily_hours["Tuesday"] == 10.0
    assert stats.average_weekly_hours == 42.0
    assert stats.busiest_day == "Tuesday"


def test_inactive_rules(stats_service, seed, organizer):
    seed.weekly_rule(organizer, 6, time(9), time(12), is_active=False)

    stats = stats_service.get_stats(organizer.id)

    assert stats.total_rules == 6
    assert stats.active_rules == 5
    assert stats.daily_hours["Sunday"] == 0.0


def test_midnight_rule_counts_on_start_day(stats_service, seed, organizer):
    seed.weekly_rule(organizer, 5, time(22), time(2), spans_midnight=True)

    stats = stats_service.get_stats(organizer.id)

    assert stats.daily_hours["Saturday"] == 4.0


def test_counts(stats_service, seed, organizer):
    seed.override(organizer, date(2026, 12, 25), is_available=False)
    seed.blocked_time(
        organizer,
        datetime(2026, 1, 5, 9, tzinfo=timezone.utc),
        datetime(2026, 1, 5, 10, tzinfo=timezone.utc),
    )
    seed.recurring_block(organizer, 0, time(12), time(13))
    seed.recurring_block(organizer, 2, time(12), time(13))

    stats = stats_service.get_stats(organizer.id)

    assert stats.total_overrides == 1
    assert stats.total_blocks == 1
    assert stats.total_recurring_blocks == 2


def test_no_rules(stats_service, seed):
    empty = seed.organizer(slug="empty")

    stats = stats_service.get_stats(empty.id)

    assert stats.total_rules == 0
    assert stats.average_weekly_hours == 0.0
    assert stats.busiest_day == ""


def test_cache_hit_rate(stats_service, organizer):
    stats_service.cache.record_lookup(organizer.id, True)
    stats_service.cache.record_lookup(organizer.id, False)

    assert stats_service.get_stats(organizer.id).cache_hit_rate == 50.0
