"""The aggregate caches the permit screens use.

- ``dashboard``: ``dashboard:<event_id>``, event id required.
- ``review``: ``review:<event_id>``, event id required.
- ``event``: ``<event_id|list>:<origin_type>:<shuttle_type>``.  The event id
  may be omitted for the event list view, and one event id fans out into a
  key per origin/shuttle combination.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from permit_core.core.clock import IClock
from permit_core.core.config import Settings
from permit_core.core.errors import ConfigError
from permit_core.observability import metrics

from .aggregate_cache import AggregateCache, AggregateFactory

DASHBOARD = "dashboard"
REVIEW = "review"
EVENT = "event"

NAMESPACES = (DASHBOARD, REVIEW, EVENT)


def event_key(identifier: Any, options: dict[str, Any]) -> str:
    origin_type = options.get("originType") or "default"
    shuttle_type = options.get("shuttleType") or "default"
    scope = identifier or "list"
    return f"{scope}:{origin_type}:{shuttle_type}"


class EventAggregateCache(AggregateCache):
    """Event aggregate cache keyed by event id plus origin/shuttle type.

    ``clear(event_id)`` drops every variant cached for that event unless the
    options pin a single ``originType`` / ``shuttleType`` combination.
    """

    def __init__(self, factory: AggregateFactory, **kwargs: Any) -> None:
        kwargs.setdefault("namespace", EVENT)
        kwargs.setdefault("require_identifier", False)
        super().__init__(factory, key_builder=event_key, **kwargs)

    def clear(
        self,
        identifier: Any = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        opts = options or {}
        if not identifier or opts.get("originType") or opts.get("shuttleType"):
            super().clear(identifier, opts)
            return

        prefix = f"{identifier}:"
        for key in self.keys():
            if key.startswith(prefix):
                self._entries.pop(key, None)
        metrics.update_cache_entries(self.namespace, len(self))


def build_aggregate_caches(
    factories: Mapping[str, AggregateFactory],
    settings: Settings,
    clock: IClock | None = None,
) -> dict[str, AggregateCache]:
    """Construct one cache per factory, sized from *settings*.

    Raises
    ------
    ConfigError
        If *factories* names a cache that does not exist.
    """
    unknown = set(factories) - set(NAMESPACES)
    if unknown:
        raise ConfigError(f"Unknown aggregate caches: {sorted(unknown)}")

    limits: dict[str, Any] = {
        "clock": clock,
        "default_ttl_ms": settings.cache.default_ttl_ms,
        "max_entries": settings.cache.max_entries,
    }
    caches: dict[str, AggregateCache] = {}
    for name, factory in factories.items():
        if name == EVENT:
            caches[name] = EventAggregateCache(factory, **limits)
        else:
            caches[name] = AggregateCache(factory, namespace=name, **limits)
    return caches
