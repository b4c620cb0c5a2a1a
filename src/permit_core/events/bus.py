"""Event bus handed to aggregate modules.

Aggregate modules announce state changes (``"sector:created"``,
``"permitType:list:loaded"`` ...) without waiting for the screens that
react to them.  :meth:`EventBus.emit` keeps a reference to each emission
task and logs its failures instead of handing them back to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .emitter import ERROR_EVENT, Emitter, Listener

logger = logging.getLogger(__name__)

DEFAULT_BUS_MAX_LISTENERS = 100


class EventBus:
    """Fire-and-forget facade over an :class:`Emitter`.

    Must be used from inside a running event loop when emitting.
    """

    def __init__(self, emitter: Emitter) -> None:
        self._emitter = emitter
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def emitter(self) -> Emitter:
        return self._emitter

    @property
    def pending(self) -> int:
        """Number of background emissions still in flight."""
        return len(self._pending)

    def on(self, event: str, callback: Listener) -> Callable[[], None]:
        """Subscribe *callback*; return a function that unsubscribes it."""
        self._emitter.on(event, callback)

        def unsubscribe() -> None:
            self._emitter.off(event, callback)

        return unsubscribe

    def once(self, event: str, callback: Listener) -> None:
        self._emitter.once(event, callback)

    def off(self, event: str, callback: Listener | None = None) -> None:
        self._emitter.off(event, callback)

    def clear(self, event: str | None = None) -> None:
        self._emitter.clear(event)

    def remove_all_listeners(self) -> None:
        self._emitter.clear()

    def listener_count(self, event: str) -> int:
        return self._emitter.listener_count(event)

    def emit(self, event: str, data: Any = None) -> asyncio.Task[None] | None:
        """Schedule delivery of *data* and return the background task.

        Returns ``None`` when nobody listens.  Listener failures are logged
        when the task finishes rather than raised here.

        Raises
        ------
        UnhandledErrorEvent
            If *event* is ``"error"`` and nobody listens.
        """
        if event != ERROR_EVENT and event not in self._emitter:
            return None

        # The emitter raises UnhandledErrorEvent before touching the loop.
        task: asyncio.Task[None] = self._emitter.emit(event, data)  # type: ignore[assignment]
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background emission %s failed", task.get_name(), exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait until every scheduled emission has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def create_event_bus(max_listeners: int = DEFAULT_BUS_MAX_LISTENERS) -> EventBus:
    """Create an event bus with its own emitter."""
    return EventBus(Emitter(max_listeners=max_listeners))
