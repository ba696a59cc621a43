"""Dual-window throttle for outbound generative provider calls."""

import threading
import time
from dataclasses import dataclass
from typing import Callable

MINUTE_SECONDS = 60.0
DAY_SECONDS = 86400.0


@dataclass(frozen=True)
class RemainingQuota:
    per_minute: int
    per_day: int

    def as_dict(self) -> dict:
        return {"per_minute": self.per_minute, "per_day": self.per_day}


class RateLimiter:
    """
    Process-local per-minute and per-day call counters.

    Each window has a reset deadline. When a check finds the deadline passed,
    the counter is zeroed and the deadline moves to now + window; missed
    windows are not replayed. ``admit`` only reads; ``record_usage`` is called
    after a provider call succeeds, so failed calls do not consume quota.
    Counters live in memory and start from zero on restart.
    """

    def __init__(
        self,
        per_minute_limit: int = 60,
        per_day_limit: int = 1500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.per_minute_limit = per_minute_limit
        self.per_day_limit = per_day_limit
        self._clock = clock
        self._lock = threading.Lock()

        now = clock()
        self._minute_count = 0
        self._day_count = 0
        self._minute_reset_at = now + MINUTE_SECONDS
        self._day_reset_at = now + DAY_SECONDS

    def _roll_windows(self) -> None:
        # Caller holds self._lock
        now = self._clock()
        if now > self._minute_reset_at:
            self._minute_count = 0
            self._minute_reset_at = now + MINUTE_SECONDS
        if now > self._day_reset_at:
            self._day_count = 0
            self._day_reset_at = now + DAY_SECONDS

    def admit(self) -> bool:
        """True if a new outbound call is currently permitted."""
        with self._lock:
            self._roll_windows()
            return (
                self._minute_count < self.per_minute_limit
                and self._day_count < self.per_day_limit
            )

    def record_usage(self) -> None:
        """Count one completed outbound call against both windows."""
        with self._lock:
            self._roll_windows()
            self._minute_count += 1
            self._day_count += 1

    def remaining(self) -> RemainingQuota:
        with self._lock:
            self._roll_windows()
            return RemainingQuota(
                per_minute=max(0, self.per_minute_limit - self._minute_count),
                per_day=max(0, self.per_day_limit - self._day_count),
            )
