"""Prometheus metrics for the aggregate caches and event emitters.

Collectors live in the default registry; exposing them is left to the
host process.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

# ---------------------------------------------------------------------------
# Cache metrics
# ---------------------------------------------------------------------------

CACHE_HITS = Counter(
    "permit_aggregate_cache_hits_total",
    "Aggregate cache lookups served from a stored entry",
    ["namespace"],
)

CACHE_MISSES = Counter(
    "permit_aggregate_cache_misses_total",
    "Aggregate cache lookups that invoked the factory",
    ["namespace"],
)

CACHE_EVICTIONS = Counter(
    "permit_aggregate_cache_evictions_total",
    "Entries removed by cleanup",
    ["namespace", "reason"],  # reason: expired | overflow
)

CACHE_ENTRIES = Gauge(
    "permit_aggregate_cache_entries",
    "Entries currently held",
    ["namespace"],
)

# ---------------------------------------------------------------------------
# Emitter metrics
# ---------------------------------------------------------------------------

EMISSIONS_TOTAL = Counter(
    "permit_emitter_emissions_total",
    "Events delivered to at least one listener",
)

LISTENER_FAILURES = Counter(
    "permit_emitter_listener_failures_total",
    "Listener invocations that raised",
)

UNHANDLED_ERRORS = Counter(
    "permit_emitter_unhandled_errors_total",
    "Error events emitted with no listener registered",
)

_enabled = True


def set_metrics_enabled(enabled: bool) -> None:
    """Turn metric recording on or off process-wide."""
    global _enabled
    _enabled = enabled


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------


def record_cache_hit(namespace: str) -> None:
    if _enabled:
        CACHE_HITS.labels(namespace=namespace).inc()


def record_cache_miss(namespace: str) -> None:
    if _enabled:
        CACHE_MISSES.labels(namespace=namespace).inc()


def record_cache_eviction(namespace: str, reason: str, count: int = 1) -> None:
    """Record entries dropped by an expiry or overflow pass."""
    if _enabled and count:
        CACHE_EVICTIONS.labels(namespace=namespace, reason=reason).inc(count)


def update_cache_entries(namespace: str, size: int) -> None:
    if _enabled:
        CACHE_ENTRIES.labels(namespace=namespace).set(size)


def record_emission() -> None:
    if _enabled:
        EMISSIONS_TOTAL.inc()


def record_listener_failure() -> None:
    if _enabled:
        LISTENER_FAILURES.inc()


def record_unhandled_error() -> None:
    if _enabled:
        UNHANDLED_ERRORS.inc()
