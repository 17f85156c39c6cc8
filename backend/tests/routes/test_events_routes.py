# backend/tests/routes/test_events_routes.py
"""
Public slot routes under /api/v1/events.

Routes run on the real clock, so dates are picked relative to today.
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

BASE = "/api/v1/events/slots"


def next_monday() -> date:
    today = datetime.now(timezone.utc).date()
    return today + timedelta(days=7 - today.weekday())


@pytest.fixture
def monday(event_type) -> str:
    return next_monday().isoformat()


def slots_url(organizer_slug: str = "alice", event_type_slug: str = "intro-call") -> str:
    return f"{BASE}/{organizer_slug}/{event_type_slug}/"


class TestGetSlots:
    def test_workday(self, client, monday):
        response = client.get(slots_url(), params={"start_date": monday, "end_date": monday})

        assert response.status_code == 200
        body = response.json()
        assert body["total_slots"] == 16
        assert body["cache_hit"] is False
        assert body["partial"] is False
        assert "computed_end_date" not in body
        first = body["available_slots"][0]
        assert first["start_time"] == f"{monday}T09:00:00+00:00"
        assert first["duration_minutes"] == 30
        assert "fairness_score" not in first

    def test_repeat_is_served_from_cache(self, client, monday):
        params = {"start_date": monday, "end_date": monday}
        first = client.get(slots_url(), params=params).json()
        second = client.get(slots_url(), params=params).json()

        assert second["cache_hit"] is True
        assert second["available_slots"] == first["available_slots"]

    def test_rule_change_through_api_is_visible(self, client, organizer_headers, monday):
        params = {"start_date": monday, "end_date": monday}
        client.get(slots_url(), params=params)

        client.post(
            "/api/v1/availability/blocked/",
            json={
                "start_datetime": f"{monday}T09:00:00Z",
                "end_datetime": f"{monday}T12:00:00Z",
            },
            headers=organizer_headers,
        )
        body = client.get(slots_url(), params=params).json()

        assert body["cache_hit"] is False
        assert body["total_slots"] == 10

    def test_local_times(self, client, monday):
        response = client.get(
            slots_url(),
            params={"start_date": monday, "end_date": monday, "timezone": "America/Los_Angeles"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["invitee_timezone"] == "America/Los_Angeles"
        assert all(
            slot["local_start_time"].startswith(monday) for slot in body["available_slots"]
        )

    def test_unknown_timezone(self, client, monday):
        response = client.get(
            slots_url(), params={"start_date": monday, "end_date": monday, "timezone": "Moon/Base"}
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_TIMEZONE"

    def test_end_before_start(self, client, monday):
        earlier = (date.fromisoformat(monday) - timedelta(days=1)).isoformat()
        response = client.get(slots_url(), params={"start_date": monday, "end_date": earlier})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "OUT_OF_RANGE"

    def test_beyond_horizon(self, client, monday):
        far = (date.fromisoformat(monday) + timedelta(days=70)).isoformat()
        response = client.get(slots_url(), params={"start_date": monday, "end_date": far})

        assert response.status_code == 400
        assert "boundary" in response.json()["detail"]["details"]

    def test_unknown_organizer(self, client, monday):
        response = client.get(
            slots_url("nobody"), params={"start_date": monday, "end_date": monday}
        )
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ORGANIZER_NOT_FOUND"

    def test_unknown_event_type(self, client, monday):
        response = client.get(
            slots_url(event_type_slug="missing"), params={"start_date": monday, "end_date": monday}
        )
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "EVENT_TYPE_NOT_FOUND"

    def test_malformed_slug(self, client, monday):
        response = client.get(
            slots_url("al.ice"), params={"start_date": monday, "end_date": monday}
        )
        assert response.status_code == 422

    def test_attendee_count_must_be_positive(self, client, monday):
        response = client.get(
            slots_url(), params={"start_date": monday, "end_date": monday, "attendee_count": 0}
        )
        assert response.status_code == 422

    def test_attendee_count_above_capacity(self, client, monday):
        response = client.get(
            slots_url(), params={"start_date": monday, "end_date": monday, "attendee_count": 2}
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_ATTENDEE_COUNT"

    def test_missing_dates(self, client, monday):
        assert client.get(slots_url()).status_code == 422

    def test_invitee_timezones(self, client, monday):
        response = client.get(
            slots_url(),
            params={
                "start_date": monday,
                "end_date": monday,
                "invitee_timezones": "UTC, Etc/GMT-3",
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["multi_invitee_mode"] is True
        assert body["invitee_timezones"] == ["UTC", "Etc/GMT-3"]
        assert body["cache_hit"] is False
        scores = [slot["fairness_score"] for slot in body["available_slots"]]
        assert scores == sorted(scores, reverse=True)
        assert set(body["available_slots"][0]["invitee_times"]) == {"UTC", "Etc/GMT-3"}


class TestMultiInviteeSlots:
    def test_ranked(self, client, monday):
        response = client.post(
            f"{slots_url()}multi-invitee/",
            json={
                "start_date": monday,
                "end_date": monday,
                "invitees": [
                    {"timezone": "UTC"},
                    {"timezone": "Etc/GMT-3", "reasonable_hours_start": 8},
                ],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["multi_invitee_mode"] is True
        best = body["available_slots"][0]
        assert best["fairness_score"] == 1.0
        assert best["invitee_times"]["Etc/GMT-3"]["start_hour"] == 12

    def test_invitee_organizer(self, client, seed, monday):
        bob = seed.organizer(slug="bob")
        # 00:00 closes at the end of the day
        seed.weekly_rule(bob, 0, time(14), time(0))

        response = client.post(
            f"{slots_url()}multi-invitee/",
            json={
                "start_date": monday,
                "end_date": monday,
                "invitees": [{"timezone": "UTC", "organizer_slug": "bob"}],
            },
        )

        assert response.status_code == 200
        starts = sorted(slot["start_time"] for slot in response.json()["available_slots"])
        assert starts[0] == f"{monday}T14:00:00+00:00"
        assert len(starts) == 6

    def test_duplicate_timezones(self, client, monday):
        response = client.post(
            f"{slots_url()}multi-invitee/",
            json={
                "start_date": monday,
                "end_date": monday,
                "invitees": [{"timezone": "UTC"}, {"timezone": "UTC"}],
            },
        )
        assert response.status_code == 422

    def test_no_invitees(self, client, monday):
        response = client.post(
            f"{slots_url()}multi-invitee/",
            json={"start_date": monday, "end_date": monday, "invitees": []},
        )
        assert response.status_code == 422

    def test_unknown_invitee_timezone(self, client, monday):
        response = client.post(
            f"{slots_url()}multi-invitee/",
            json={"start_date": monday, "end_date": monday, "invitees": [{"timezone": "Nope"}]},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["details"]["field"] == "invitees"
