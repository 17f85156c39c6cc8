# backend/availability_engine/services/cache_service.py
"""
Slot cache storage.

Two interchangeable backends behind SlotCacheBackend:
- RedisCacheBackend: shared store, JSON values, circuit breaker protection
- InMemoryCacheBackend: process-local dict with expiry, used in tests and
  when CACHE_BACKEND=memory

Backends also hold per-organizer precompute in-flight markers and hit/miss
counters. A failing backend degrades to cache misses; it never fails a query.
The active backend is a process-level provider that tests and workers can
replace with configure_cache_backend().
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from enum import Enum
import fnmatch
import hashlib
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import redis
from redis import Redis
from redis.exceptions import RedisError

from ..core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """
    Circuit breaker pattern implementation for cache resilience.

    Prevents cascading failures when the cache store is unavailable.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: type[BaseException] = RedisError,
    ) -> None:
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            recovery_timeout: Seconds before attempting recovery
            expected_exception: Exception type to catch
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self._failure_count: int = 0
        self._last_failure_time: Optional[datetime] = None
        self._state: CircuitState = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._last_failure_time:
                time_since_failure = (datetime.now() - self._last_failure_time).total_seconds()
                if time_since_failure >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
            return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        """
        Execute function with circuit breaker protection.

        Returns:
            Function result or None if circuit is open

        Raises:
            The expected exception while the circuit is still closed
        """
        if self.state == CircuitState.OPEN:
            logger.warning(f"Circuit breaker is OPEN, skipping {func.__name__}")
            return None

        try:
            result = func(*args, **kwargs)
            self._on_success()
            return result
        except self.expected_exception:
            self._on_failure()
            if self.state == CircuitState.CLOSED:
                # Still under threshold, propagate error
                raise
            return None

    def _on_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("Circuit breaker recovered, closing circuit")

    def _on_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now()

            if self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker opened after {self._failure_count} failures")


class CacheKeyBuilder:
    """Standardized cache key generation."""

    PREFIXES = {
        "slots": "slots",
        "precompute": "precompute",
        "stats": "slotstats",
    }

    @staticmethod
    def build(*parts: Union[str, int, date]) -> str:
        """
        Build a cache key from parts.

        Examples:
            build('slots', 'org1', 'et1', date(2025, 6, 18), 'UTC')
                -> 'slots:org1:et1:2025-06-18:UTC'
        """
        formatted_parts = []
        for part in parts:
            if isinstance(part, (date, datetime, time)):
                formatted_parts.append(part.isoformat())
            else:
                formatted_parts.append(str(part))

        if parts:
            first = parts[0]
            if isinstance(first, str) and first in CacheKeyBuilder.PREFIXES:
                formatted_parts[0] = CacheKeyBuilder.PREFIXES[first]

        return ":".join(formatted_parts)

    @staticmethod
    def hash_complex_key(data: Dict[str, Any]) -> str:
        """Generate a hash for complex cache keys."""
        sorted_data = json.dumps(data, sort_keys=True, default=str)
        return hashlib.md5(sorted_data.encode()).hexdigest()[:12]


class SlotCacheBackend(ABC):
    """Storage interface for the slot cache."""

    name: str = "abstract"

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value or None on a miss."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int) -> bool:
        """Store a JSON-serialisable value for ttl seconds."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove one key."""

    @abstractmethod
    def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching a glob pattern."""

    @abstractmethod
    def acquire_marker(self, key: str, ttl: int) -> bool:
        """Set key only if absent; True when this caller now holds it."""

    @abstractmethod
    def incr_stat(self, key: str, field: str) -> None:
        """Increment a counter field under key."""

    @abstractmethod
    def get_stats(self, key: str) -> Dict[str, int]:
        """Read all counter fields under key."""


class InMemoryCacheBackend(SlotCacheBackend):
    """Process-local backend; safe for concurrent threads."""

    name = "memory"

    def __init__(self, sweep_interval_seconds: int = 60) -> None:
        self._lock = threading.Lock()
        self._values: Dict[str, str] = {}
        self._expiry: Dict[str, datetime] = {}
        self._stats: Dict[str, Dict[str, int]] = {}
        self.sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._next_sweep = datetime.now() + self.sweep_interval

    def _expired(self, key: str) -> bool:
        expires_at = self._expiry.get(key)
        return expires_at is not None and datetime.now() >= expires_at

    def _sweep(self) -> None:
        # Caller holds the lock. Keys for past days are never read again.
        now = datetime.now()
        if now < self._next_sweep:
            return
        for key in [k for k, expires_at in self._expiry.items() if now >= expires_at]:
            self._values.pop(key, None)
            self._expiry.pop(key, None)
        self._next_sweep = now + self.sweep_interval

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self._values:
                return None
            if self._expired(key):
                self._values.pop(key, None)
                self._expiry.pop(key, None)
                return None
            # Stored serialised so callers never share mutable state
            return json.loads(self._values[key])

    def set(self, key: str, value: Any, ttl: int) -> bool:
        serialized = json.dumps(value, default=str)
        with self._lock:
            self._sweep()
            self._values[key] = serialized
            self._expiry[key] = datetime.now() + timedelta(seconds=ttl)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = key in self._values
            self._values.pop(key, None)
            self._expiry.pop(key, None)
            return existed

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._values if fnmatch.fnmatch(k, pattern)]
            for key in keys:
                self._values.pop(key, None)
                self._expiry.pop(key, None)
            return len(keys)

    def acquire_marker(self, key: str, ttl: int) -> bool:
        with self._lock:
            self._sweep()
            if key in self._values and not self._expired(key):
                return False
            self._values[key] = json.dumps(datetime.now().isoformat())
            self._expiry[key] = datetime.now() + timedelta(seconds=ttl)
            return True

    def incr_stat(self, key: str, field: str) -> None:
        with self._lock:
            counters = self._stats.setdefault(key, {})
            counters[field] = counters.get(field, 0) + 1

    def get_stats(self, key: str) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats.get(key, {}))

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._expiry.clear()
            self._stats.clear()


class RedisCacheBackend(SlotCacheBackend):
    """Redis-backed store with circuit breaker; errors become misses."""

    name = "redis"

    def __init__(self, redis_client: Optional[Redis] = None):
        self.redis: Redis = redis_client or redis.from_url(
            settings.redis_url or "redis://localhost:6379",
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
            max_connections=50,
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5, recovery_timeout=60, expected_exception=RedisError
        )

    def _guarded(self, operation: str, func: Callable[[], T], default: T) -> T:
        try:
            result = self.circuit_breaker.call(func)
        except RedisError as e:
            logger.error(f"Slot cache {operation} failed: {e}")
            return default
        return default if result is None else result

    def get(self, key: str) -> Optional[Any]:
        def _get() -> Optional[Any]:
            value = self.redis.get(key)
            return json.loads(value) if value is not None else None

        return self._guarded("get", _get, None)

    def set(self, key: str, value: Any, ttl: int) -> bool:
        serialized = json.dumps(value, default=str)

        def _set() -> bool:
            self.redis.setex(key, ttl, serialized)
            return True

        return self._guarded("set", _set, False)

    def delete(self, key: str) -> bool:
        return self._guarded("delete", lambda: bool(self.redis.delete(key)), False)

    def delete_pattern(self, pattern: str) -> int:
        def _delete_pattern() -> int:
            count = 0
            for key in self.redis.scan_iter(match=pattern):
                if self.redis.delete(key):
                    count += 1
            return count

        return self._guarded("delete_pattern", _delete_pattern, 0)

    def acquire_marker(self, key: str, ttl: int) -> bool:
        def _acquire() -> bool:
            marker = json.dumps(datetime.now().isoformat())
            return bool(self.redis.set(key, marker, nx=True, ex=ttl))

        # An unreachable store cannot coordinate; let the caller proceed
        return self._guarded("acquire_marker", _acquire, True)

    def incr_stat(self, key: str, field: str) -> None:
        self._guarded("incr_stat", lambda: self.redis.hincrby(key, field, 1), 0)

    def get_stats(self, key: str) -> Dict[str, int]:
        def _stats() -> Dict[str, int]:
            raw = self.redis.hgetall(key) or {}
            return {k: int(v) for k, v in raw.items()}

        return self._guarded("get_stats", _stats, {})


_backend: Optional[SlotCacheBackend] = None
_backend_lock = threading.Lock()


def create_cache_backend(kind: Optional[str] = None) -> SlotCacheBackend:
    kind = kind or settings.cache_backend
    if kind == "memory":
        return InMemoryCacheBackend()
    return RedisCacheBackend()


def get_cache_backend() -> SlotCacheBackend:
    """Process-level slot cache backend, created on first use."""
    global _backend
    if _backend is None:
        with _backend_lock:
            if _backend is None:
                _backend = create_cache_backend()
                logger.info(f"Slot cache backend: {_backend.name}")
    return _backend


def configure_cache_backend(backend: Optional[SlotCacheBackend]) -> None:
    """Replace the process-level backend (None resets to the configured default)."""
    global _backend
    with _backend_lock:
        _backend = backend
