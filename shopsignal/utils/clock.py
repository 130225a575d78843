# ==============================================================================
# Clock Helpers
# ==============================================================================
"""
Millisecond time helpers.

All timestamps in the engine are Unix epoch milliseconds (ints). Components
take a ``clock`` callable so tests can drive time explicitly.
"""

import time
from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], int]


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def to_datetime(timestamp_ms: int) -> datetime:
    """Convert Unix milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc)


def to_iso(timestamp_ms: int) -> str:
    """Convert Unix milliseconds to an ISO-8601 UTC string."""
    return to_datetime(timestamp_ms).isoformat()


class ManualClock:
    """A clock that only moves when told to. Used for replay and tests."""

    def __init__(self, start_ms: int = 0):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward and return the new time."""
        self.now += delta_ms
        return self.now

    def set(self, timestamp_ms: int) -> None:
        """Jump to ``timestamp_ms``; never moves backwards."""
        self.now = max(self.now, timestamp_ms)
