# backend/tests/routes/test_operational_routes.py
from availability_engine.core.constants import API_TITLE


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["service"] == API_TITLE


def test_metrics_exposition(client, organizer, event_type):
    client.get(
        "/api/v1/events/slots/alice/intro-call/",
        params={"start_date": "2026-01-05", "end_date": "2026-01-05", "timezone": "Nowhere"},
    )

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["content-type"].startswith("text/plain")
    assert "availability_prometheus_scrapes_total" in response.text
    assert "availability_service_operation_duration_seconds" in response.text
