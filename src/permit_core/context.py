"""CoreContext: the explicitly constructed owner of the aggregate caches.

Built once at process start and passed to whatever renders screens; the
caches it holds are never recreated behind the caller's back.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from .cache.aggregate_cache import AggregateCache, AggregateFactory
from .cache.named import build_aggregate_caches
from .cache.sweeper import CacheSweeper
from .core.clock import IClock, WallClock
from .core.config import Settings
from .events.bus import EventBus, create_event_bus
from .observability import metrics
from .observability.logger import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class CoreContext:
    settings: Settings
    clock: IClock
    caches: dict[str, AggregateCache]
    sweeper: CacheSweeper
    event_buses: list[EventBus] = field(default_factory=list)

    def cache(self, name: str) -> AggregateCache:
        return self.caches[name]

    def new_event_bus(self) -> EventBus:
        """Create an event bus for one aggregate and track it for shutdown."""
        bus = create_event_bus(self.settings.emitter.bus_max_listeners)
        self.event_buses.append(bus)
        return bus

    async def start(self) -> None:
        if self.settings.cache.sweep_enabled:
            await self.sweeper.start()

    async def stop(self) -> None:
        """Stop sweeping and wait for in-flight bus emissions."""
        await self.sweeper.stop()
        for bus in self.event_buses:
            await bus.drain()

    def clear_all(self) -> None:
        for cache in self.caches.values():
            cache.clear()


def configure_observability(settings: Settings) -> None:
    """Apply logging and metrics settings process-wide.

    Called once by the host process, before ``build_context``.
    """
    obs = settings.observability
    setup_logging(level=obs.log_level, format=obs.log_format)
    metrics.set_metrics_enabled(obs.metrics_enabled)


def build_context(
    settings: Settings,
    factories: Mapping[str, AggregateFactory],
    clock: IClock | None = None,
) -> CoreContext:
    """Wire caches and sweeper from *settings*."""
    settings.validate_limits()
    metrics.set_metrics_enabled(settings.observability.metrics_enabled)
    clock = clock or WallClock()

    caches = build_aggregate_caches(factories, settings, clock)
    sweeper = CacheSweeper(
        caches.values(),
        interval_seconds=settings.cache.sweep_interval_seconds,
    )
    logger.info(
        "Core context built (caches=%s, ttl_ms=%d, max_entries=%d)",
        sorted(caches),
        settings.cache.default_ttl_ms,
        settings.cache.max_entries,
    )
    return CoreContext(
        settings=settings, clock=clock, caches=caches, sweeper=sweeper,
    )
