"""
Prometheus metrics module for the availability engine.

Service operation timings come from the @measure_operation decorator; slot
computation, cache and precompute counters are recorded by the slot service
and the cache layer. Names follow Prometheus conventions.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "availability_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "availability_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "availability_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

slot_computation_seconds = Histogram(
    "availability_slot_computation_seconds",
    "Wall time spent computing slots for one query",
    ["mode"],  # single | multi_invitee
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

slot_queries_degraded_total = Counter(
    "availability_slot_queries_degraded_total",
    "Slot queries answered with partial results after exceeding the computation budget",
    registry=REGISTRY,
)

slot_cache_requests_total = Counter(
    "availability_slot_cache_requests_total",
    "Slot cache lookups by outcome",
    ["result"],  # hit | miss | stale
    registry=REGISTRY,
)

slot_cache_invalidations_total = Counter(
    "availability_slot_cache_invalidations_total",
    "Generation bumps invalidating an organizer's cached slots",
    ["reason"],  # rule_change | cache_clear | bookings_changed
    registry=REGISTRY,
)

precompute_runs_total = Counter(
    "availability_precompute_runs_total",
    "Precompute requests and runs by outcome",
    ["status"],  # scheduled | coalesced | enqueue_failed | completed | failed
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'SlotService')
            operation: Operation/method name (e.g., 'get_available_slots')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_slot_computation(duration: float, mode: str = "single") -> None:
        slot_computation_seconds.labels(mode=mode).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_degraded_query() -> None:
        slot_queries_degraded_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_cache_request(result: str) -> None:
        slot_cache_requests_total.labels(result=result).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_cache_invalidation(reason: str) -> None:
        slot_cache_invalidations_total.labels(reason=reason).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_precompute(status: str) -> None:
        precompute_runs_total.labels(status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        ttl = PrometheusMetrics._cache_ttl_seconds
        if payload is not None and ts is not None and (now - ts) <= ttl:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
