# backend/tests/unit/services/test_cache_backends.py
"""Unit tests for the slot cache backends, key builder and circuit breaker."""

from datetime import date
import json
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from availability_engine.services.cache_service import (
    CacheKeyBuilder,
    CircuitBreaker,
    CircuitState,
    InMemoryCacheBackend,
    RedisCacheBackend,
    create_cache_backend,
)


class TestCacheKeyBuilder:
    def test_slot_key(self):
        key = CacheKeyBuilder.build("slots", "org1", "et1", date(2026, 1, 5), "UTC")
        assert key == "slots:org1:et1:2026-01-05:UTC"

    def test_stats_prefix_is_mapped(self):
        assert CacheKeyBuilder.build("stats", "org1") == "slotstats:org1"


class TestInMemoryBackend:
    def test_set_get_delete(self):
        backend = InMemoryCacheBackend()
        assert backend.get("k") is None
        backend.set("k", {"generation": 1, "slots": []}, ttl=60)
        assert backend.get("k") == {"generation": 1, "slots": []}
        assert backend.delete("k") is True
        assert backend.get("k") is None

    def test_values_are_copies(self):
        backend = InMemoryCacheBackend()
        backend.set("k", {"slots": [1]}, ttl=60)
        backend.get("k")["slots"].append(2)
        assert backend.get("k") == {"slots": [1]}

    def test_expired_entry_is_a_miss(self):
        backend = InMemoryCacheBackend()
        backend.set("k", "v", ttl=0)
        assert backend.get("k") is None

    def test_expired_keys_are_swept_on_write(self):
        backend = InMemoryCacheBackend(sweep_interval_seconds=0)
        backend.set("slots:org1:et:2026-01-04:UTC", [], ttl=0)
        backend.set("slots:org1:et:2026-01-05:UTC", [], ttl=60)
        assert "slots:org1:et:2026-01-04:UTC" not in backend._values
        assert "slots:org1:et:2026-01-05:UTC" in backend._values

    def test_markers_sweep_too(self):
        backend = InMemoryCacheBackend(sweep_interval_seconds=0)
        backend.set("old", 1, ttl=0)
        backend.acquire_marker("m", ttl=60)
        assert set(backend._values) == {"m"}

    def test_sweep_waits_for_interval(self):
        backend = InMemoryCacheBackend(sweep_interval_seconds=3600)
        backend.set("old", 1, ttl=0)
        backend.set("new", 1, ttl=60)
        assert "old" in backend._values
        assert backend.get("old") is None

    def test_delete_pattern(self):
        backend = InMemoryCacheBackend()
        backend.set("slots:org1:a", 1, ttl=60)
        backend.set("slots:org1:b", 1, ttl=60)
        backend.set("slots:org2:a", 1, ttl=60)
        assert backend.delete_pattern("slots:org1:*") == 2
        assert backend.get("slots:org2:a") == 1

    def test_marker_is_exclusive_until_released(self):
        backend = InMemoryCacheBackend()
        assert backend.acquire_marker("m", ttl=60) is True
        assert backend.acquire_marker("m", ttl=60) is False
        backend.delete("m")
        assert backend.acquire_marker("m", ttl=60) is True

    def test_stats(self):
        backend = InMemoryCacheBackend()
        backend.incr_stat("s", "hits")
        backend.incr_stat("s", "hits")
        backend.incr_stat("s", "misses")
        assert backend.get_stats("s") == {"hits": 2, "misses": 1}
        backend.clear()
        assert backend.get_stats("s") == {}


class TestRedisBackend:
    def test_get_decodes_json(self):
        client = MagicMock()
        client.get.return_value = json.dumps({"generation": 3})
        assert RedisCacheBackend(client).get("k") == {"generation": 3}

    def test_set_uses_ttl(self):
        client = MagicMock()
        assert RedisCacheBackend(client).set("k", {"a": 1}, ttl=30) is True
        client.setex.assert_called_once_with("k", 30, json.dumps({"a": 1}))

    def test_errors_become_misses(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        client.setex.side_effect = RedisConnectionError("down")
        backend = RedisCacheBackend(client)
        assert backend.get("k") is None
        assert backend.set("k", 1, ttl=30) is False

    def test_marker_uses_set_nx(self):
        client = MagicMock()
        client.set.return_value = None
        assert RedisCacheBackend(client).acquire_marker("m", ttl=600) is False
        _, kwargs = client.set.call_args
        assert kwargs == {"nx": True, "ex": 600}

    def test_unreachable_store_lets_precompute_proceed(self):
        client = MagicMock()
        client.set.side_effect = RedisConnectionError("down")
        assert RedisCacheBackend(client).acquire_marker("m", ttl=600) is True

    def test_stats_are_ints(self):
        client = MagicMock()
        client.hgetall.return_value = {"hits": "4", "misses": "1"}
        assert RedisCacheBackend(client).get_stats("s") == {"hits": 4, "misses": 1}


class TestCircuitBreaker:
    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)

        def failing():
            raise RedisConnectionError("down")

        with pytest.raises(RedisConnectionError):
            breaker.call(failing)
        assert breaker.call(failing) is None
        assert breaker.state == CircuitState.OPEN
        assert breaker.call(lambda: "value") is None

    def test_half_open_recovers_on_success(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)

        def failing():
            raise RedisConnectionError("down")

        assert breaker.call(failing) is None
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.call(lambda: "value") == "value"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


def test_memory_backend_is_selected_by_name():
    assert isinstance(create_cache_backend("memory"), InMemoryCacheBackend)
