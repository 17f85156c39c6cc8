# backend/tests/conftest.py
"""
Pytest configuration for the availability engine.

Tests run against an in-memory SQLite database (one shared connection via
StaticPool) and the in-memory slot cache backend. Environment variables are
set before any availability_engine import so Settings picks them up.
"""

import os

# Set test configuration BEFORE any availability_engine imports
os.environ.setdefault("CI", "1")  # skip backend/.env
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["ENVIRONMENT"] = "test"
os.environ["SLOT_COMPUTATION_BUDGET_MS"] = "60000"

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from availability_engine import models  # noqa: F401
from availability_engine.api.dependencies.database import get_db
from availability_engine.core.config import settings
from availability_engine.database import Base, SessionLocal, engine
from availability_engine.main import app
from availability_engine.models import (
    AvailabilityRule,
    BlockedTime,
    Booking,
    BufferTime,
    DateOverrideRule,
    EventType,
    Organizer,
    RecurringBlockedTime,
)
from availability_engine.services.cache_service import (
    InMemoryCacheBackend,
    configure_cache_backend,
)
from availability_engine.tasks.celery_app import celery_app

settings.is_testing = True

# Monday 2026-01-05 06:00 UTC
FIXED_NOW = datetime(2026, 1, 5, 6, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture(scope="session", autouse=True)
def _celery_eager():
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = False
    yield
    celery_app.conf.task_always_eager = False


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def cache_backend() -> InMemoryCacheBackend:
    backend = InMemoryCacheBackend()
    configure_cache_backend(backend)
    yield backend
    backend.clear()
    configure_cache_backend(None)


@pytest.fixture
def db(_schema) -> Session:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    """TestClient whose requests share the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class Seeder:
    """Creates committed rows for tests."""

    def __init__(self, db: Session):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def organizer(
        self,
        slug: str = "alice",
        timezone_name: str = "UTC",
        **kwargs,
    ) -> Organizer:
        return self._save(Organizer(slug=slug, timezone=timezone_name, **kwargs))

    def event_type(self, organizer: Organizer, slug: str = "intro-call", **kwargs) -> EventType:
        values = {
            "duration": 30,
            "min_scheduling_notice": 0,
            "max_scheduling_horizon": 60,
        }
        values.update(kwargs)
        return self._save(EventType(organizer_id=organizer.id, slug=slug, **values))

    def weekly_rule(
        self,
        organizer: Organizer,
        day_of_week: int,
        start: time,
        end: time,
        event_types: Iterable[EventType] = (),
        **kwargs,
    ) -> AvailabilityRule:
        rule = AvailabilityRule(
            organizer_id=organizer.id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            **kwargs,
        )
        rule.event_types = list(event_types)
        return self._save(rule)

    def workweek(self, organizer: Organizer, start: time = time(9), end: time = time(17)) -> None:
        for day in range(5):
            self.weekly_rule(organizer, day, start, end)

    def override(self, organizer: Organizer, on: date, is_available: bool, **kwargs):
        return self._save(
            DateOverrideRule(
                organizer_id=organizer.id, date=on, is_available=is_available, **kwargs
            )
        )

    def blocked_time(self, organizer: Organizer, start: datetime, end: datetime, **kwargs):
        return self._save(
            BlockedTime(
                organizer_id=organizer.id, start_datetime=start, end_datetime=end, **kwargs
            )
        )

    def recurring_block(
        self, organizer: Organizer, day_of_week: int, start: time, end: time, **kwargs
    ) -> RecurringBlockedTime:
        values = {"name": "Lunch"}
        values.update(kwargs)
        return self._save(
            RecurringBlockedTime(
                organizer_id=organizer.id,
                day_of_week=day_of_week,
                start_time=start,
                end_time=end,
                **values,
            )
        )

    def buffers(self, organizer: Organizer, **kwargs) -> BufferTime:
        values = {"slot_interval_minutes": 30}
        values.update(kwargs)
        return self._save(BufferTime(organizer_id=organizer.id, **values))

    def booking(
        self,
        organizer: Organizer,
        event_type: EventType,
        start: datetime,
        minutes: Optional[int] = None,
        **kwargs,
    ) -> Booking:
        length = minutes if minutes is not None else event_type.duration
        return self._save(
            Booking(
                organizer_id=organizer.id,
                event_type_id=event_type.id,
                start_time=start,
                end_time=start + timedelta(minutes=length),
                **kwargs,
            )
        )


@pytest.fixture
def seed(db: Session) -> Seeder:
    return Seeder(db)


@pytest.fixture
def organizer(seed: Seeder) -> Organizer:
    """UTC organizer available Monday-Friday 09:00-17:00 with 30-minute slot steps."""
    org = seed.organizer()
    seed.workweek(org)
    seed.buffers(org)
    return org


@pytest.fixture
def event_type(seed: Seeder, organizer: Organizer) -> EventType:
    return seed.event_type(organizer)


@pytest.fixture
def organizer_headers(organizer: Organizer) -> dict:
    return {"X-Organizer-Id": organizer.id}


@pytest.fixture
def clock():
    """Clock pinned to FIXED_NOW."""
    return fixed_clock
