"""
Time helpers.

All timestamps in the system are integer milliseconds since the Unix epoch,
matching what browsers and the wire format use.
"""
import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def seconds_since(timestamp_ms: int | None, now: int) -> int | None:
    """Whole seconds elapsed since ``timestamp_ms``; None when it was never set."""
    if timestamp_ms is None:
        return None
    return max(0, (now - timestamp_ms) // 1000)
