"""
Datetime utilities.

Timezone-aware "now" plus a monotonic stopwatch for attempt durations.
"""

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime with timezone info."""
    return datetime.now(UTC)


def monotonic_ms() -> float:
    """Monotonic clock reading in milliseconds."""
    return time.monotonic() * 1000


def elapsed_ms(started: float) -> int:
    """
    Milliseconds elapsed since a monotonic_ms() reading.

    Args:
        started: Value previously returned by monotonic_ms()

    Returns:
        Whole milliseconds, never negative
    """
    return max(0, int(monotonic_ms() - started))
