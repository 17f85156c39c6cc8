# backend/tests/integration/test_slot_service.py
"""
SlotService against SQLite and the in-memory cache.

The organizer fixture is a UTC organizer open Monday-Friday 09:00-17:00 with
30-minute steps; the clock is pinned to Monday 2026-01-05 06:00 UTC.
"""

from datetime import date, datetime, time, timedelta, timezone

from hypothesis import HealthCheck, given, settings, strategies as st
import pytest

from availability_engine.core.exceptions import (
    InvalidTimezoneException,
    NotFoundException,
    OutOfRangeException,
    ValidationException,
)
from availability_engine.domain.multi_invitee import InviteeProfile
from availability_engine.services.cache_service import InMemoryCacheBackend
from availability_engine.services.rule_store_service import RuleStoreService
from availability_engine.services.slot_cache_service import SlotCacheService
from availability_engine.services.slot_service import InviteeQuery, SlotService


MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)
FRIDAY = date(2026, 1, 9)
NOON = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def monday(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 5, hour, minute, tzinfo=timezone.utc)


def iso(moment: datetime) -> str:
    return moment.isoformat()


def starts(response):
    return [slot.start_time for slot in response.available_slots]


@pytest.fixture
def service(db, clock):
    return SlotService(db, clock=clock)


class TestSingleQuery:
    def test_workday_slots(self, service, organizer, event_type):
        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        assert response.total_slots == 16
        assert starts(response)[0] == iso(monday(9))
        assert starts(response)[-1] == iso(monday(16, 30))
        assert response.cache_hit is False
        assert response.partial is False
        assert response.computed_end_date is None
        slot = response.available_slots[0]
        assert slot.duration_minutes == 30
        assert slot.end_time == iso(monday(9, 30))
        assert slot.local_start_time == iso(monday(9))
        assert slot.available_spots is None

    def test_buffers_shift_the_walk(self, service, seed, organizer, event_type):
        RuleStoreService(seed.db).update_buffer_settings(
            organizer.id, {"default_buffer_before": 10, "default_buffer_after": 10}
        )

        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        assert starts(response)[0] == iso(monday(9, 10))
        assert starts(response)[-1] == iso(monday(16, 10))

    def test_weekend_is_empty_not_an_error(self, service, organizer, event_type):
        saturday = date(2026, 1, 10)
        response = service.get_available_slots("alice", "intro-call", saturday, saturday)
        assert response.available_slots == []
        assert response.total_slots == 0

    def test_week_in_order(self, service, organizer, event_type):
        response = service.get_available_slots("alice", "intro-call", MONDAY, FRIDAY)
        assert response.total_slots == 5 * 16
        assert starts(response) == sorted(starts(response))

    def test_requested_timezone_days(self, service, organizer, event_type):
        # Tuesday in Tokyo runs from Monday 15:00 to Tuesday 15:00 UTC
        response = service.get_available_slots(
            "alice", "intro-call", TUESDAY, TUESDAY, timezone="Asia/Tokyo"
        )

        assert response.total_slots == 4 + 12
        first = response.available_slots[0]
        assert first.start_time == iso(monday(15))
        assert first.local_start_time == "2026-01-06T00:00:00+09:00"
        assert response.invitee_timezone == "Asia/Tokyo"

    def test_bookings_remove_slots(self, service, seed, organizer, event_type):
        seed.booking(organizer, event_type, monday(10))
        seed.booking(organizer, event_type, monday(14), status="cancelled")

        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        assert iso(monday(10)) not in starts(response)
        assert iso(monday(14)) in starts(response)
        assert response.total_slots == 15

    def test_unavailable_override_closes_the_day(self, service, seed, organizer, event_type):
        seed.override(organizer, MONDAY, is_available=False)

        response = service.get_available_slots("alice", "intro-call", MONDAY, TUESDAY)

        assert all(start.startswith("2026-01-06") for start in starts(response))
        assert response.total_slots == 16

    def test_blocked_time_and_recurring_block(self, service, seed, organizer, event_type):
        seed.blocked_time(organizer, monday(9), monday(10))
        seed.recurring_block(organizer, 0, time(12), time(13))

        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        for blocked in (monday(9), monday(9, 30), monday(12), monday(12, 30)):
            assert iso(blocked) not in starts(response)
        assert response.total_slots == 12

    def test_minimum_notice(self, service, seed, organizer):
        seed.event_type(organizer, slug="consult", min_scheduling_notice=240)

        response = service.get_available_slots("alice", "consult", MONDAY, MONDAY)

        # 06:00 now plus four hours
        assert starts(response)[0] == iso(monday(10))
        assert response.total_slots == 14

    def test_event_type_scoped_rule(self, service, seed, organizer, event_type):
        other = seed.event_type(organizer, slug="deep-dive")
        seed.weekly_rule(organizer, 5, time(10), time(12), event_types=[other])

        saturday = date(2026, 1, 10)
        scoped = service.get_available_slots("alice", "deep-dive", saturday, saturday)
        unscoped = service.get_available_slots("alice", "intro-call", saturday, saturday)

        assert scoped.total_slots == 4
        assert unscoped.total_slots == 0


class TestGroupEvents:
    @pytest.fixture
    def workshop(self, seed, organizer):
        return seed.event_type(
            organizer, slug="workshop", duration=60, is_group_event=True, max_attendees=5
        )

    def test_remaining_spots(self, service, seed, organizer, workshop):
        seed.booking(organizer, workshop, monday(10), attendee_count=3)

        response = service.get_available_slots(
            "alice", "workshop", MONDAY, MONDAY, attendee_count=2
        )

        spots = {slot.start_time: slot.available_spots for slot in response.available_slots}
        assert spots[iso(monday(10))] == 2
        assert spots[iso(monday(9))] == 5
        assert iso(monday(9, 30)) not in spots
        assert iso(monday(10, 30)) not in spots

    def test_attendee_count_above_remaining(self, service, seed, organizer, workshop):
        seed.booking(organizer, workshop, monday(10), attendee_count=3)

        response = service.get_available_slots(
            "alice", "workshop", MONDAY, MONDAY, attendee_count=3
        )

        assert iso(monday(10)) not in starts(response)
        assert iso(monday(11)) in starts(response)

    def test_attendee_count_above_capacity(self, service, workshop):
        with pytest.raises(ValidationException) as exc_info:
            service.get_available_slots("alice", "workshop", MONDAY, MONDAY, attendee_count=6)
        assert exc_info.value.code == "INVALID_ATTENDEE_COUNT"
        assert exc_info.value.details["max_attendees"] == 5

    def test_single_event_allows_one_attendee(self, service, event_type):
        with pytest.raises(ValidationException) as exc_info:
            service.get_available_slots("alice", "intro-call", MONDAY, MONDAY, attendee_count=2)
        assert exc_info.value.code == "INVALID_ATTENDEE_COUNT"


class TestQueryValidation:
    def test_end_before_start(self, service, event_type):
        with pytest.raises(OutOfRangeException):
            service.get_available_slots("alice", "intro-call", TUESDAY, MONDAY)

    def test_window_longer_than_max_query_days(self, service, event_type):
        with pytest.raises(OutOfRangeException) as exc_info:
            service.get_available_slots(
                "alice", "intro-call", MONDAY, MONDAY + timedelta(days=90)
            )
        assert "exceeds the maximum" in exc_info.value.message

    def test_beyond_scheduling_horizon(self, service, event_type):
        with pytest.raises(OutOfRangeException) as exc_info:
            service.get_available_slots(
                "alice", "intro-call", MONDAY, MONDAY + timedelta(days=61)
            )
        assert exc_info.value.code == "OUT_OF_RANGE"
        assert exc_info.value.details["boundary"] == "2026-03-06"
        assert exc_info.value.details["field"] == "end_date"

    def test_last_horizon_day_is_allowed(self, service, event_type):
        last = MONDAY + timedelta(days=60)
        response = service.get_available_slots("alice", "intro-call", last, last)
        assert response.total_slots == 16

    def test_unknown_timezone(self, service, event_type):
        with pytest.raises(InvalidTimezoneException) as exc_info:
            service.get_available_slots(
                "alice", "intro-call", MONDAY, MONDAY, timezone="Mars/Olympus_Mons"
            )
        assert exc_info.value.code == "INVALID_TIMEZONE"

    def test_unknown_organizer(self, service, event_type):
        with pytest.raises(NotFoundException) as exc_info:
            service.get_available_slots("nobody", "intro-call", MONDAY, MONDAY)
        assert exc_info.value.code == "ORGANIZER_NOT_FOUND"

    def test_unknown_event_type(self, service, event_type):
        with pytest.raises(NotFoundException) as exc_info:
            service.get_available_slots("alice", "missing", MONDAY, MONDAY)
        assert exc_info.value.code == "EVENT_TYPE_NOT_FOUND"

    def test_inactive_event_type_is_not_found(self, service, seed, organizer):
        seed.event_type(organizer, slug="retired", is_active=False)
        with pytest.raises(NotFoundException):
            service.get_available_slots("alice", "retired", MONDAY, MONDAY)


class TestBudget:
    def test_exhausted_budget_returns_partial_prefix(self, db, clock, organizer, event_type):
        service = SlotService(db, budget_ms=0, clock=clock)

        response = service.get_available_slots("alice", "intro-call", MONDAY, FRIDAY)

        assert response.partial is True
        assert response.computed_end_date == MONDAY
        assert response.end_date == FRIDAY
        assert response.total_slots == 16
        assert all(start.startswith("2026-01-05") for start in starts(response))

    def test_single_day_is_never_partial(self, db, clock, organizer, event_type):
        service = SlotService(db, budget_ms=0, clock=clock)
        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)
        assert response.partial is False


class TestCaching:
    def test_second_query_hits_cache(self, service, organizer, event_type):
        cold = service.get_available_slots("alice", "intro-call", MONDAY, FRIDAY)
        warm = service.get_available_slots("alice", "intro-call", MONDAY, FRIDAY)

        assert cold.cache_hit is False
        assert warm.cache_hit is True
        assert warm.available_slots == cold.available_slots

    def test_rule_change_invalidates(self, service, db, organizer, event_type):
        service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)
        RuleStoreService(db).create_blocked_time(
            organizer.id, {"start_datetime": monday(12), "end_datetime": monday(13)}
        )

        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        assert response.cache_hit is False
        assert iso(monday(12)) not in starts(response)
        assert response.total_slots == 14

    def test_booking_change_notification(self, service, seed, organizer, event_type):
        service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)
        seed.booking(organizer, event_type, monday(10))

        generation = service.notify_bookings_changed(organizer.id)
        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        assert generation == 1
        assert response.cache_hit is False
        assert iso(monday(10)) not in starts(response)

    def test_serve_time_filters_apply_to_cached_days(self, db, clock, seed, organizer):
        seed.event_type(organizer, slug="consult", min_scheduling_notice=240)
        early = SlotService(db, clock=clock)
        early.get_available_slots("alice", "consult", MONDAY, MONDAY)

        later = SlotService(db, clock=lambda: NOON)
        response = later.get_available_slots("alice", "consult", MONDAY, MONDAY)

        assert response.cache_hit is True
        # 12:00 now plus four hours
        assert starts(response)[0] == iso(monday(16))

    def test_timezones_are_cached_separately(self, service, organizer, event_type):
        service.get_available_slots("alice", "intro-call", TUESDAY, TUESDAY)
        response = service.get_available_slots(
            "alice", "intro-call", TUESDAY, TUESDAY, timezone="Asia/Tokyo"
        )
        assert response.cache_hit is False

    def test_lookups_feed_hit_rate(self, service, organizer, event_type):
        service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)
        service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)
        assert service.cache.hit_rate(organizer.id) == 50.0

    def test_event_type_change_recomputes(self, service, db, organizer, event_type):
        service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)
        event_type.duration = 60
        db.commit()

        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        assert response.cache_hit is False
        assert response.total_slots == 15
        assert {slot.duration_minutes for slot in response.available_slots} == {60}

    def test_organizer_timezone_change_recomputes(self, service, db, organizer, event_type):
        service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)
        organizer.timezone = "America/New_York"
        db.commit()

        response = service.get_available_slots("alice", "intro-call", MONDAY, MONDAY)

        assert response.cache_hit is False
        # 09:00 in New York
        assert starts(response)[0] == iso(monday(14))


@pytest.fixture
def busy_organizer(seed, organizer, event_type):
    seed.recurring_block(organizer, 2, time(12), time(13, 30))
    seed.booking(organizer, event_type, monday(11))
    seed.blocked_time(
        organizer,
        datetime(2026, 1, 8, 14, tzinfo=timezone.utc),
        datetime(2026, 1, 8, 16, tzinfo=timezone.utc),
    )
    seed.override(
        organizer, date(2026, 1, 17), is_available=True, start_time=time(10), end_time=time(12)
    )
    return organizer


@settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(
    offset=st.integers(min_value=0, max_value=20),
    length=st.integers(min_value=1, max_value=7),
    tz_name=st.sampled_from(["UTC", "Asia/Tokyo", "America/New_York", "Pacific/Kiritimati"]),
)
def test_cached_response_matches_cold_computation(
    db, clock, busy_organizer, offset, length, tz_name
):
    start = MONDAY + timedelta(days=offset)
    end = start + timedelta(days=length - 1)
    warm = SlotService(db, clock=clock)
    cold = SlotService(
        db, cache=SlotCacheService(db, backend=InMemoryCacheBackend()), clock=clock
    )

    warm.get_available_slots("alice", "intro-call", start, end, timezone=tz_name)
    served = warm.get_available_slots("alice", "intro-call", start, end, timezone=tz_name)
    computed = cold.get_available_slots("alice", "intro-call", start, end, timezone=tz_name)

    assert served.cache_hit is True
    assert served.available_slots == computed.available_slots


class TestMultiInvitee:
    def test_invitee_timezones_rank_by_fairness(self, service, organizer, event_type):
        response = service.get_available_slots(
            "alice",
            "intro-call",
            MONDAY,
            MONDAY,
            invitee_timezones=["UTC", "Etc/GMT-3"],
        )

        assert response.multi_invitee_mode is True
        assert response.cache_hit is False
        assert response.invitee_timezones == ["UTC", "Etc/GMT-3"]
        scores = [slot.fairness_score for slot in response.available_slots]
        assert scores == sorted(scores, reverse=True)
        best, worst = response.available_slots[0], response.available_slots[-1]
        assert best.start_time == iso(monday(9))
        assert best.fairness_score == 1.0
        # 19:30 local in UTC+3, three of at most 8.25 hours late
        assert worst.start_time == iso(monday(16, 30))
        assert worst.fairness_score == 0.636
        assert set(best.invitee_times) == {"UTC", "Etc/GMT-3"}
        assert best.invitee_times["Etc/GMT-3"].start_hour == 12

    def test_multi_invitee_does_not_touch_cache(self, service, organizer, event_type):
        service.get_available_slots(
            "alice", "intro-call", MONDAY, MONDAY, invitee_timezones=["UTC", "Asia/Tokyo"]
        )
        assert service.cache.get(organizer.id, event_type.id, MONDAY, "UTC", 0) is None

    def test_invitee_organizer_constrains_slots(self, service, seed, organizer, event_type):
        bob = seed.organizer(slug="bob")
        seed.weekly_rule(bob, 0, time(14), time(22))
        bob_type = seed.event_type(bob)
        seed.booking(bob, bob_type, monday(15))

        response = service.get_multi_invitee_slots(
            "alice",
            "intro-call",
            MONDAY,
            MONDAY,
            [InviteeQuery(InviteeProfile("UTC"), organizer_slug="bob")],
        )

        assert sorted(starts(response)) == [
            iso(monday(14)),
            iso(monday(14, 30)),
            iso(monday(15, 30)),
            iso(monday(16)),
            iso(monday(16, 30)),
        ]

    def test_unknown_invitee_organizer(self, service, event_type):
        with pytest.raises(NotFoundException):
            service.get_multi_invitee_slots(
                "alice",
                "intro-call",
                MONDAY,
                MONDAY,
                [InviteeQuery(InviteeProfile("UTC"), organizer_slug="ghost")],
            )

    def test_unknown_invitee_timezone(self, service, event_type):
        with pytest.raises(InvalidTimezoneException) as exc_info:
            service.get_multi_invitee_slots(
                "alice", "intro-call", MONDAY, MONDAY, [InviteeQuery(InviteeProfile("Nowhere"))]
            )
        assert exc_info.value.details["field"] == "invitees"


class TestPrecompute:
    def test_writes_one_entry_per_day(self, service, organizer, event_type):
        assert service.precompute_organizer(organizer.id, 3) == 3

        response = service.get_available_slots(
            "alice", "intro-call", MONDAY, MONDAY + timedelta(days=2)
        )
        assert response.cache_hit is True

    def test_every_event_type_and_timezone(self, service, seed):
        ny = seed.organizer(slug="nyc", timezone_name="America/New_York")
        seed.workweek(ny)
        seed.event_type(ny, slug="one")
        seed.event_type(ny, slug="two")

        # America/New_York plus UTC
        assert service.precompute_organizer(ny.id, 2) == 2 * 2 * 2

    def test_inactive_event_types_are_skipped(self, service, seed, organizer, event_type):
        seed.event_type(organizer, slug="retired", is_active=False)
        assert service.precompute_organizer(organizer.id, 1) == 1

    def test_missing_organizer(self, service):
        assert service.precompute_organizer("01HZZZZZZZZZZZZZZZZZZZZZZZ", 5) == 0
