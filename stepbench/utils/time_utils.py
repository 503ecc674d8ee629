# stepbench/utils/time_utils.py
"""
stepbench Time Utilities
------------------------
Epoch and window helpers used by the duration retrieval paths.

 - utc_now for wall-clock sampling
 - to_epoch_ms for SDK datetimes (boto3 returns tz-aware datetimes)
 - lookback_window() producing the epoch-second window for log queries
 - Deadline: monotonic budget for bounded polling
"""

from __future__ import annotations

import time
import datetime
from typing import Optional, Tuple


def now_ts() -> float:
    """Unix timestamp (UTC) with float seconds."""
    return time.time()


def monotonic_ts() -> float:
    """Monotonic timestamp (not affected by system clock changes)."""
    return time.monotonic()


def utc_now() -> datetime.datetime:
    """Timezone-aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def to_epoch_ms(dt: datetime.datetime) -> int:
    """Convert a datetime to integer epoch milliseconds. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return int(round(dt.timestamp() * 1000))


def lookback_window(hours: float, now: Optional[float] = None) -> Tuple[int, int]:
    """
    Return (start, end) epoch seconds covering the last `hours` up to now.
    Seconds are floored, matching the granularity log stores accept.
    """
    if hours < 0:
        raise ValueError("lookback hours must be >= 0")
    end_ms = int((now if now is not None else now_ts()) * 1000)
    start_ms = end_ms - int(hours * 3600 * 1000)
    return start_ms // 1000, end_ms // 1000


class Deadline:
    """Monotonic time budget. `Deadline(None)` never expires."""

    def __init__(self, seconds: Optional[float]):
        self.seconds = seconds
        self._start = monotonic_ts()

    def elapsed(self) -> float:
        return monotonic_ts() - self._start

    def expired(self) -> bool:
        return self.seconds is not None and self.elapsed() >= self.seconds
