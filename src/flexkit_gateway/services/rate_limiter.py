"""In-process request ceiling for outbound upstream calls."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from flexkit_gateway.errors import RateLimitExceeded

MINUTE = 60
DAY = 24 * 60 * 60


@dataclass
class _Window:
    name: str
    length: float
    limit: int
    started_at: float | None = None
    count: int = 0

    def roll(self, now: float) -> None:
        if self.started_at is None or now - self.started_at >= self.length:
            self.started_at = now
            self.count = 0


class RequestRateLimiter:
    """Fixed per-minute and per-day ceilings.

    A window starts at the first call after the previous one elapsed.  A call
    is admitted only if every window has room; admitted calls count against
    all windows.  Counters are shared across threads.
    """

    def __init__(
        self,
        per_minute: int = 1000,
        per_day: int = 2000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._windows = (
            _Window("minute", MINUTE, per_minute),
            _Window("day", DAY, per_day),
        )
        self._clock = clock
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Count one call, or raise :class:`RateLimitExceeded`."""
        with self._lock:
            now = self._clock()
            for window in self._windows:
                window.roll(now)
            for window in self._windows:
                if window.count >= window.limit:
                    raise RateLimitExceeded(
                        f"Rate limit exceeded: too many requests per {window.name}",
                        extra={"retry_after": int(window.started_at + window.length - now) + 1},
                    )
            for window in self._windows:
                window.count += 1

    def remaining(self) -> dict[str, int]:
        with self._lock:
            now = self._clock()
            for window in self._windows:
                window.roll(now)
            return {w.name: max(w.limit - w.count, 0) for w in self._windows}
