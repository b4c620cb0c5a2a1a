"""Shared fixtures for the permit-core test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from permit_core.cache.aggregate_cache import AggregateCache
from permit_core.core.clock import SimClock
from permit_core.events.emitter import Emitter


class RecordingFactory:
    """Aggregate factory that records every build."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, Any, dict[str, Any]]] = []

    def __call__(self, identifier: Any, client: Any, options: dict[str, Any]) -> dict:
        self.calls.append((identifier, client, options))
        return {"identifier": identifier, "build": len(self.calls)}


class FakeClient:
    """Stand-in for the data-access client handle."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"FakeClient({self.name!r})"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    """Return a SimClock starting at 2024-06-01 00:00 UTC."""
    return SimClock(start=datetime(2024, 6, 1, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@pytest.fixture
def factory() -> RecordingFactory:
    return RecordingFactory()


@pytest.fixture
def client() -> FakeClient:
    return FakeClient("primary")


@pytest.fixture
def other_client() -> FakeClient:
    return FakeClient("secondary")


@pytest.fixture
def dashboard_cache(factory: RecordingFactory, sim_clock: SimClock) -> AggregateCache:
    """Return a dashboard cache with default TTL and size limits."""
    return AggregateCache(factory, namespace="dashboard", clock=sim_clock)


# ---------------------------------------------------------------------------
# Emitter
# ---------------------------------------------------------------------------

@pytest.fixture
def emitter() -> Emitter:
    """Return a fresh Emitter with the default listener ceiling."""
    return Emitter()
