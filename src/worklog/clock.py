"""Time sources used by lifecycle transitions."""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], int]


def now_millis() -> int:
    """Return the current UTC time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()
    return int(value.astimezone(timezone.utc).timestamp() * 1000)


def from_millis(timestamp: int) -> datetime:
    """Return a local, timezone-aware datetime for ``timestamp``."""
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).astimezone()


class FixedClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: int = 0) -> None:
        self.current = start

    def __call__(self) -> int:
        return self.current

    def advance(self, milliseconds: int) -> int:
        self.current += milliseconds
        return self.current

    def set(self, timestamp: int) -> None:
        self.current = timestamp


def day_range(day: date) -> tuple[int, int]:
    """Return ``[start, end)`` in milliseconds for a local calendar day."""
    start = datetime.combine(day, datetime.min.time()).astimezone()
    end = datetime.combine(day + timedelta(days=1), datetime.min.time()).astimezone()
    return to_millis(start), to_millis(end)
