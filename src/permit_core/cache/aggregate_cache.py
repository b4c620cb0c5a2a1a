"""Bounded, age-expiring memo store for per-entity aggregates.

An aggregate is the expensive view-model object a screen builds for one
permit event (dashboard stats, review queue, event detail).  Screens ask
the cache for it on every render; the cache builds it once per
``(key, client)`` pair and hands back the same object until it is cleared,
expires, or is pushed out by newer entries.

Expiry is age based (``now - created_at > ttl``) and is only enforced by
:meth:`AggregateCache.cleanup`, never on the read path.  Cleanup runs after
every insertion and on the :class:`~permit_core.cache.sweeper.CacheSweeper`
tick.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from permit_core.core.clock import IClock, WallClock
from permit_core.core.errors import IdentifierRequiredError
from permit_core.observability import metrics
from permit_core.observability.logger import aggregate_scope

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 5 * 60 * 1000  # 5 minutes
DEFAULT_MAX_ENTRIES = 50
GLOBAL_SCOPE = "global"

# (identifier, client, options) -> aggregate
AggregateFactory = Callable[[Any, Any, dict[str, Any]], Any]
# (identifier, options) -> cache key
KeyBuilder = Callable[[Any, dict[str, Any]], str]


@dataclass
class CacheEntry:
    """One stored aggregate and the client that built it."""

    key: str
    value: Any
    client: Any
    created_at: int
    last_access: int
    ttl: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms - self.created_at > self.ttl


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expired: int = 0
    evicted: int = 0


class AggregateCache:
    """Memoizes aggregates built by *factory*.

    Parameters
    ----------
    factory
        ``(identifier, client, options) -> aggregate``.  Called on every miss;
        its result is stored by reference.
    namespace
        Key prefix and metrics label (``"dashboard"``, ``"review"`` ...).
    clock
        Time source for ``created_at`` / ``last_access``.  Defaults to
        :class:`WallClock`.
    default_ttl_ms
        Entry lifetime when the caller does not pass ``options["ttl"]``.
    max_entries
        Size ceiling enforced by the overflow pass of :meth:`cleanup`.
    require_identifier
        When ``True``, :meth:`get` rejects an empty identifier instead of
        falling back to the ``"global"`` scope.
    key_builder
        Overrides the default ``"<namespace>:<identifier>"`` key.
    """

    def __init__(
        self,
        factory: AggregateFactory,
        *,
        namespace: str,
        clock: IClock | None = None,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        require_identifier: bool = True,
        key_builder: KeyBuilder | None = None,
    ) -> None:
        self._factory = factory
        self._namespace = namespace
        self._clock: IClock = clock or WallClock()
        self._default_ttl_ms = default_ttl_ms
        self._max_entries = max_entries
        self._require_identifier = require_identifier
        self._key_builder = key_builder
        self._entries: dict[str, CacheEntry] = {}
        self._stats = CacheStats()

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def max_entries(self) -> int:
        return self._max_entries

    # -- Keys --------------------------------------------------------------

    def build_key(
        self, identifier: Any, options: dict[str, Any] | None = None,
    ) -> str:
        if self._key_builder is not None:
            return self._key_builder(identifier, options or {})
        return f"{self._namespace}:{identifier or GLOBAL_SCOPE}"

    # -- Core API ----------------------------------------------------------

    def get(
        self,
        identifier: Any,
        client: Any,
        options: dict[str, Any] | None = None,
    ) -> Any:
        """Return the aggregate for *identifier*, building it on a miss.

        A stored entry only counts as a hit when it was built with the very
        same *client* object; otherwise it is rebuilt and overwritten.

        Raises
        ------
        IdentifierRequiredError
            If the cache requires an identifier and none was given.
        """
        if self._require_identifier and not identifier:
            raise IdentifierRequiredError(self._namespace)

        opts = options or {}
        key = self.build_key(identifier, opts)

        entry = self._entries.get(key)
        if entry is not None and entry.client is client:
            entry.last_access = self._clock.now_ms()
            self._stats.hits += 1
            metrics.record_cache_hit(self._namespace)
            return entry.value

        self._stats.misses += 1
        metrics.record_cache_miss(self._namespace)
        if entry is not None:
            logger.debug("Client changed for %s, rebuilding aggregate", key)

        with aggregate_scope(self._namespace, identifier):
            logger.debug("Building aggregate %s", key)
            value = self._factory(identifier, client, opts)
        now = self._clock.now_ms()
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            client=client,
            created_at=now,
            last_access=now,
            ttl=opts.get("ttl") or self._default_ttl_ms,
        )
        self.cleanup()
        return value

    def clear(
        self,
        identifier: Any = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        """Drop the entry for *identifier*, or everything when omitted."""
        if not identifier:
            self._entries.clear()
        else:
            self._entries.pop(self.build_key(identifier, options), None)
        metrics.update_cache_entries(self._namespace, len(self._entries))

    def cleanup(self) -> int:
        """Run the expiry pass then the overflow pass.

        Returns the number of entries removed.
        """
        now = self._clock.now_ms()

        expired = [
            key for key, entry in list(self._entries.items())
            if entry.is_expired(now)
        ]
        for key in expired:
            self._entries.pop(key, None)

        evicted: list[str] = []
        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            # sorted() is stable, so equal last_access keeps insertion order
            ordered = sorted(
                self._entries.items(), key=lambda item: item[1].last_access,
            )
            evicted = [key for key, _ in ordered[:overflow]]
            for key in evicted:
                self._entries.pop(key, None)

        self._stats.expired += len(expired)
        self._stats.evicted += len(evicted)
        metrics.record_cache_eviction(self._namespace, "expired", len(expired))
        metrics.record_cache_eviction(self._namespace, "overflow", len(evicted))
        metrics.update_cache_entries(self._namespace, len(self._entries))

        removed = len(expired) + len(evicted)
        if removed:
            logger.debug(
                "Cache %s cleanup removed %d expired, %d overflow",
                self._namespace,
                len(expired),
                len(evicted),
            )
        return removed

    # -- Introspection -----------------------------------------------------

    def peek(self, key: str) -> CacheEntry | None:
        """Return the raw entry without touching ``last_access``."""
        return self._entries.get(key)

    def keys(self) -> list[str]:
        return list(self._entries)

    def stats(self) -> CacheStats:
        s = self._stats
        return CacheStats(
            hits=s.hits, misses=s.misses, expired=s.expired, evicted=s.evicted,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
