"""Token bucket pacing for supplier API calls."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimitTimeout(Exception):
    """Raised when tokens do not become available within the allowed wait."""

    pass


class TokenBucket:
    """Thread-safe token bucket.

    Holds up to ``capacity`` tokens and refills at ``rate`` tokens per second.
    A rate of zero or less disables pacing.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rate = float(rate)
        self.capacity = max(1, int(capacity))
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    @property
    def unlimited(self) -> bool:
        return self.rate <= 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def available(self) -> float:
        """Tokens available right now."""
        with self._lock:
            self._refill()
            return self._tokens

    def wait_time(self, tokens: int = 1) -> float:
        """Seconds until ``tokens`` would be available (0 if available now)."""
        if self.unlimited:
            return 0.0
        with self._lock:
            self._refill()
            deficit = tokens - self._tokens
            return max(0.0, deficit / self.rate)

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available, without waiting."""
        if self.unlimited:
            return True
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def acquire(self, tokens: int = 1, timeout: float | None = None) -> float:
        """Block until tokens are available and take them.

        Returns the total seconds spent waiting.
        """
        if tokens > self.capacity:
            raise ValueError(f"Cannot acquire {tokens} tokens from a bucket of {self.capacity}")
        if self.unlimited:
            return 0.0

        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return waited
                delay = (tokens - self._tokens) / self.rate

            if timeout is not None and waited + delay > timeout:
                raise RateLimitTimeout(f"Rate limit wait of {delay:.2f}s exceeds {timeout}s")
            logger.debug(f"Rate limited, waiting {delay:.2f}s")
            self._sleep(delay)
            waited += delay
