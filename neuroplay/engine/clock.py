"""
Clock abstraction.

The phase state machine and the lifecycle manager read time only through a
Clock, so tests advance a ManualClock instead of waiting on wall time.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int:
        """Monotonic milliseconds, used for phase timers and rate limits."""
        ...

    def utcnow(self) -> datetime:
        """Timezone-aware wall time, used for persisted timestamps."""
        ...


class SystemClock:
    """Real clock backed by time.monotonic() and the system wall clock."""

    def now_ms(self) -> int:
        return int(time.monotonic() * 1000)

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep_ms(self, ms: int) -> None:
        if ms > 0:
            time.sleep(ms / 1000.0)


class ManualClock:
    """Clock that only moves when advanced. Both readings move together."""

    def __init__(self, start: datetime | None = None, start_ms: int = 0):
        self._ms = int(start_ms)
        self._wall = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now_ms(self) -> int:
        return self._ms

    def utcnow(self) -> datetime:
        return self._wall

    def advance(self, ms: int) -> None:
        if ms < 0:
            raise ValueError("ManualClock cannot go backwards")
        self._ms += int(ms)
        self._wall += timedelta(milliseconds=ms)

    def sleep_ms(self, ms: int) -> None:
        self.advance(max(0, int(ms)))
