from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Time source for reveal timing and message timestamps."""

    @abstractmethod
    def now_ms(self) -> float:
        """Monotonic milliseconds, used for elapsed-time rules."""

    @abstractmethod
    def utcnow(self) -> datetime:
        """Timezone-aware wall-clock time, used for message timestamps."""


class SystemClock(Clock):
    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """Clock advanced explicitly by the caller."""

    def __init__(self, start_ms: float = 0.0, start: datetime | None = None):
        self._ms = start_ms
        self._wall = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        if self._wall.tzinfo is None:
            raise ValueError("ManualClock start must be timezone-aware")

    def advance(self, ms: float) -> None:
        self._ms += ms
        self._wall += timedelta(milliseconds=ms)

    def now_ms(self) -> float:
        return self._ms

    def utcnow(self) -> datetime:
        return self._wall
