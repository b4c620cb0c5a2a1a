"""Aggregate caches and their background sweeper."""

from .aggregate_cache import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_TTL_MS,
    AggregateCache,
    AggregateFactory,
    CacheEntry,
    CacheStats,
)
from .named import EventAggregateCache, build_aggregate_caches
from .sweeper import CacheSweeper

__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "DEFAULT_TTL_MS",
    "AggregateCache",
    "AggregateFactory",
    "CacheEntry",
    "CacheStats",
    "CacheSweeper",
    "EventAggregateCache",
    "build_aggregate_caches",
]
