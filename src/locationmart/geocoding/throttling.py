"""
Rate limiting implementations for controlling API request rates.

Provides thread-safe rate limiters so that each adapter stays under its
provider's published request ceiling. Every adapter owns its own limiter;
limiters never share state, so exhausting one never blocks another.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .base import RateLimiter
from .models import RateLimit

logger = logging.getLogger(__name__)

DEFAULT_RPS = 10.0


class TokenBucket(RateLimiter):
    """
    Token bucket rate limiter.

    Tracks the theoretical arrival time of the next request. Each request
    reserves its slot under the lock, in arrival order, then sleeps outside
    the lock until that slot comes up, so admission is FIFO and waiting
    callers never hold the lock.

    Across any 1-second window at most ``rate`` requests are admitted, plus
    at most ``burst`` extra when the bucket has been idle.
    """

    def __init__(
        self,
        rate: float,
        burst: int = 0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize token bucket.

        Args:
            rate: Tokens per second (i.e., requests per second allowed)
            burst: Extra requests admitted back-to-back after an idle period
            clock: Monotonic clock, injectable for tests
            sleep: Sleep function, injectable for tests
        """
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if burst < 0:
            raise ValueError("burst must be >= 0")

        self.rate = float(rate)
        self.burst = int(burst)
        self.interval = 1.0 / self.rate
        self._clock = clock
        self._sleep = sleep
        self._next_free = clock()
        self.lock = threading.Lock()

    def reserve(self, count: int = 1) -> float:
        """
        Reserve ``count`` slots and return how long the caller must wait.

        Never blocks; ``acquire`` is reserve-then-sleep.
        """
        if count <= 0:
            raise ValueError("count must be > 0")

        with self.lock:
            now = self._clock()
            tat = max(self._next_free, now)
            allowed_at = tat - self.burst * self.interval
            delay = max(0.0, allowed_at - now)
            self._next_free = tat + count * self.interval
        return delay

    def acquire(self, count: int = 1) -> None:
        """
        Acquire one or more tokens.

        Blocks until the requested number of tokens are available.

        Args:
            count: Number of tokens to acquire
        """
        delay = self.reserve(count)
        if delay > 0:
            self._sleep(delay)


class SimpleRateGate(RateLimiter):
    """
    Simple rate gate with fixed inter-request delay.

    Less sophisticated than token bucket but simpler and useful
    for low-volume rate limiting.
    """

    def __init__(
        self,
        requests_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be > 0")

        self.dt = 1.0 / float(requests_per_second)
        self._clock = clock
        self._sleep = sleep
        self.next_time = clock()
        self.lock = threading.Lock()

    def acquire(self, count: int = 1) -> None:
        """
        Acquire one or more request slots.

        Args:
            count: Number of requests to acquire
        """
        with self.lock:
            now = self._clock()
            slot = max(self.next_time, now)
            self.next_time = slot + (self.dt * count)
        delay = slot - now
        if delay > 0:
            self._sleep(delay)


class NoOpRateLimiter(RateLimiter):
    """
    Rate limiter that does nothing (for testing and local adapters).

    Useful when you want to disable rate limiting without changing code.
    """

    def acquire(self, count: int = 1) -> None:
        """Do nothing."""
        pass


def limiter_for(rate_limit: Optional[RateLimit], default_rps: float = DEFAULT_RPS) -> RateLimiter:
    """
    Build the limiter for an adapter's declared ``RateLimit``.

    Adapters that declare nothing get a ``default_rps`` bucket.
    """
    if rate_limit is None:
        return TokenBucket(default_rps)
    return TokenBucket(rate_limit.rps, burst=rate_limit.burst)
