"""Named-event emitter with concurrent async delivery.

Design goals
------------
1.  **Ordered registry**: listeners for one event name are kept in
    registration order; that order is the order in which deliveries are
    started.  A listener may be registered at most once per name.
2.  **Once-listeners**: listeners added with :meth:`Emitter.once` are pruned
    from the registry by the first :meth:`Emitter.emit` that reaches them.
    Pruning happens after the snapshot, so it never changes who receives the
    current emission.
3.  **Fan-out, then join**: every snapshotted listener runs in its own task.
    A failing listener does not stop the others; once all have settled the
    first failure is re-raised to whoever awaited the emission.
4.  **Leak guard**: going past ``max_listeners`` raises
    :class:`MaxListenersExceededError` *after* the listener was added, so the
    caller is warned but the subscription stays live.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from permit_core.core.errors import (
    DuplicateListenerError,
    EventNameRequiredError,
    MaxListenersExceededError,
    UnhandledErrorEvent,
)
from permit_core.observability import metrics

logger = logging.getLogger(__name__)

ERROR_EVENT = "error"
DEFAULT_MAX_LISTENERS = 10

# Listeners may be plain callables or coroutine functions.
Listener = Callable[[Any], Any]


@dataclass
class _Registration:
    on: list[Listener] = field(default_factory=list)
    once: set[Listener] = field(default_factory=set)


class _Settled:
    """Awaitable returned when nobody listens; awaiting it yields ``None``."""

    __slots__ = ()

    def __await__(self):
        return iter(())


_SETTLED = _Settled()


class Emitter:
    """Publish/subscribe registry keyed by event name.

    Parameters
    ----------
    max_listeners
        Per-event ceiling.  Registering past it raises
        :class:`MaxListenersExceededError` but keeps the listener.
    """

    def __init__(self, max_listeners: int = DEFAULT_MAX_LISTENERS) -> None:
        self._events: dict[str, _Registration] = {}
        self._max_listeners = max_listeners

    @property
    def max_listeners(self) -> int:
        return self._max_listeners

    # -- Delivery ----------------------------------------------------------

    def emit(self, event_name: str, value: Any = None) -> Awaitable[None]:
        """Deliver *value* to every listener of *event_name*.

        The listener snapshot, once-pruning and one delivery task per
        listener are all created at call time, so the deliveries run whether
        or not the result is awaited.  The returned task completes when every
        listener has settled.  Cancelling it does not cancel the listeners.

        Raises
        ------
        UnhandledErrorEvent
            Immediately, if *event_name* is ``"error"`` and nobody listens.
        RuntimeError
            If there are listeners but no running event loop.
        """
        event = self._events.get(event_name)
        if event is None:
            if event_name != ERROR_EVENT:
                return _SETTLED
            metrics.record_unhandled_error()
            raise UnhandledErrorEvent(value)

        loop = asyncio.get_running_loop()
        listeners = list(event.on)
        if event.once:
            remaining = [fn for fn in event.on if fn not in event.once]
            if remaining:
                self._events[event_name] = _Registration(on=remaining)
            else:
                del self._events[event_name]

        metrics.record_emission()
        tasks = [
            loop.create_task(self._invoke(listener, value))
            for listener in listeners
        ]
        return loop.create_task(
            self._join(event_name, tasks), name=f"emit-{event_name}",
        )

    async def _join(
        self, event_name: str, tasks: list[asyncio.Task[None]],
    ) -> None:
        # shield: a cancelled waiter must not cancel the listeners
        results = await asyncio.shield(
            asyncio.gather(*tasks, return_exceptions=True),
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            return
        for _ in failures:
            metrics.record_listener_failure()
        for exc in failures[1:]:
            logger.error(
                "Additional listener failure on %s", event_name, exc_info=exc,
            )
        raise failures[0]

    @staticmethod
    async def _invoke(listener: Listener, value: Any) -> None:
        result = listener(value)
        if inspect.isawaitable(result):
            await result

    # -- Registration ------------------------------------------------------

    def on(self, event_name: str, listener: Listener) -> None:
        """Register a persistent listener."""
        self._add_listener(event_name, listener, once=False)

    def once(self, event_name: str, listener: Listener) -> None:
        """Register a listener that is dropped after its first delivery."""
        self._add_listener(event_name, listener, once=True)

    def _add_listener(
        self, event_name: str, listener: Listener, *, once: bool,
    ) -> None:
        event = self._events.get(event_name)
        if event is None:
            event = self._events[event_name] = _Registration()
        elif listener in event.on:
            raise DuplicateListenerError(event_name)

        event.on.append(listener)
        if once:
            event.once.add(listener)

        # Checked after the add: the listener stays registered.
        if len(event.on) > self._max_listeners:
            raise MaxListenersExceededError(
                event_name, self._max_listeners, len(event.on),
            )

    def off(self, event_name: str, listener: Listener | None = None) -> None:
        """Remove *listener*, or every listener of *event_name* when omitted."""
        if listener is None:
            self._events.pop(event_name, None)
            return
        event = self._events.get(event_name)
        if event is None:
            return
        if listener in event.on:
            event.on.remove(listener)
        event.once.discard(listener)
        if not event.on:
            del self._events[event_name]

    def clear(self, event_name: str | None = None) -> None:
        if not event_name:
            self._events.clear()
            return
        self._events.pop(event_name, None)

    # -- Introspection -----------------------------------------------------

    def listener_count(self, event_name: str) -> int:
        if not event_name:
            raise EventNameRequiredError()
        event = self._events.get(event_name)
        return len(event.on) if event else 0

    def event_names(self) -> list[str]:
        return list(self._events)

    def __contains__(self, event_name: object) -> bool:
        return event_name in self._events
