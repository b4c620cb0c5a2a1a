"""Periodic cleanup of aggregate caches.

Insertion already triggers a cleanup pass, but an idle cache would otherwise
hold expired aggregates until the next miss.  The sweeper runs
:meth:`AggregateCache.cleanup` on a fixed interval from an asyncio task that
its owner starts and stops explicitly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .aggregate_cache import AggregateCache

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Background loop calling ``cleanup()`` on every registered cache.

    Parameters
    ----------
    caches:
        Caches to sweep.  More can be added with :meth:`register`.
    interval_seconds:
        Delay between sweeps (default 60).
    """

    def __init__(
        self,
        caches: Iterable[AggregateCache] = (),
        interval_seconds: float = 60.0,
    ) -> None:
        self._caches: list[AggregateCache] = list(caches)
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._running: bool = False

    @property
    def running(self) -> bool:
        return self._running

    def register(self, cache: AggregateCache) -> None:
        if cache not in self._caches:
            self._caches.append(cache)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._running:
            logger.warning("CacheSweeper is already running")
            return
        self._running = True
        self._task = asyncio.create_task(
            self._run_loop(), name="aggregate-cache-sweeper"
        )
        logger.info(
            "CacheSweeper started (interval=%ss, caches=%d)",
            self._interval,
            len(self._caches),
        )

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to exit."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("CacheSweeper stopped")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Cache sweep failed")

    def sweep_once(self) -> int:
        """Run one cleanup pass over every cache; return entries removed."""
        removed = 0
        for cache in self._caches:
            removed += cache.cleanup()
        return removed
