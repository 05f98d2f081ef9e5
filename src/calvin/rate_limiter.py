"""
Calvin — Request Admission

Fixed-window request counting per key (the caller's e-mail, or
"anonymous"). The HTTP layer consults a limiter before doing any work;
the assistant core never sees it.

State is process-local. Deployments with several workers should provide
another RateLimiter implementation backed by shared storage.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger("calvin.rate_limiter")


@dataclass
class RateLimitResult:
    allowed: bool
    reset_time: float  # epoch seconds when the current window ends
    remaining: int
    retry_after: int = 0  # whole seconds until reset, set on rejection (at least 1)


class RateLimiter(Protocol):
    def check_and_consume(self, key: str) -> RateLimitResult: ...


@dataclass
class _Window:
    count: int
    reset_time: float


class InMemoryRateLimiter:
    """At most ``max_requests`` per ``window_seconds`` for each key.

    The first request for a key opens its window; the window is replaced
    once its reset time has passed.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check_and_consume(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_time:
                window = _Window(count=1, reset_time=now + self.window_seconds)
                self._windows[key] = window
                return RateLimitResult(True, window.reset_time, self.max_requests - 1)

            if window.count >= self.max_requests:
                logger.warning(f"Rate limit exceeded for {key}")
                retry_after = max(1, math.ceil(window.reset_time - now))
                return RateLimitResult(False, window.reset_time, 0, retry_after)

            window.count += 1
            return RateLimitResult(True, window.reset_time, self.max_requests - window.count)

    def cleanup(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, w in self._windows.items() if now >= w.reset_time]
            for key in expired:
                del self._windows[key]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired rate-limit windows")
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
