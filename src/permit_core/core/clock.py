"""Clock abstraction for cache timestamps.

Cache entries are stamped in integer milliseconds, so both clocks expose
``now_ms()``; ``now()`` is kept for log lines and debugging.

WallClock: real time, used by running front-end processes
SimClock: manually advanced time, used to test expiry without sleeping
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Protocol


class IClock(Protocol):
    """Time source injected into every cache."""

    def now_ms(self) -> int:
        """Milliseconds since epoch."""
        ...

    def now(self) -> datetime:
        """The same instant as a UTC datetime."""
        ...


def _to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class WallClock:
    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000

    def now(self) -> datetime:
        return _to_datetime(self.now_ms())


class SimClock:
    """Clock that only moves when told to.

    Starts at 2024-01-01 UTC unless *start* is given.
    """

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._ms = int(start.timestamp() * 1000)

    def now_ms(self) -> int:
        return self._ms

    def now(self) -> datetime:
        return _to_datetime(self._ms)

    def set_time(self, t: datetime) -> None:
        """Jump to *t*. Raises ValueError if *t* is in the past."""
        ms = int(t.timestamp() * 1000)
        if ms < self._ms:
            raise ValueError(
                f"SimClock cannot go backwards: {t} < {self.now()}"
            )
        self._ms = ms

    def advance_ms(self, ms: int) -> None:
        if ms < 0:
            raise ValueError(f"SimClock cannot go backwards: advance_ms({ms})")
        self._ms += ms
