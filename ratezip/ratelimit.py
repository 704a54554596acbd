"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
Token bucket throughput governor.

A TokenBucket holds at most ``capacity`` tokens and refills continuously at
``rate`` tokens per second. Moving ``n`` bytes costs ``n`` tokens. A bucket
starts full, so up to one capacity's worth of bytes moves without delay
after an idle period; beyond that, callers are put to sleep until the
tokens they spent have been paid back.

The bucket is not thread-safe: one bucket serves one sequential call.
"""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

_clock = time.monotonic
_sleep = time.sleep


class TokenBucket:
    """Continuous-refill token bucket.

    Example:
        bucket = TokenBucket(100 * 1024)  # 100 KiB/s, 100 KiB burst
        bucket.take(len(chunk))           # sleeps when over budget
    """

    def __init__(
        self,
        rate: float,
        capacity: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Create a full bucket.

        Args:
            rate: Refill rate in tokens (bytes) per second. Must be positive.
            capacity: Maximum tokens held; defaults to ``rate`` (one second
                of burst).
            clock: Monotonic time source in seconds (time.monotonic).
            sleep: Function used to block; receives a duration in seconds
                (time.sleep).

        Raises:
            ValueError: If rate or capacity is not positive.
        """
        if rate <= 0:
            raise ValueError(f"Rate must be positive, got {rate}")
        if capacity is None:
            capacity = rate
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")

        self.rate = float(rate)
        self.capacity = float(capacity)
        self._clock = clock or _clock
        self._sleep = sleep or _sleep
        self._tokens = self.capacity
        self._last = self._clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last = now

    @property
    def available(self) -> float:
        """Tokens available right now (negative while in debt)."""
        self._refill()
        return self._tokens

    def wait_time(self, n: int) -> float:
        """Seconds take(n) would sleep if called now."""
        self._refill()
        deficit = n - self._tokens
        return deficit / self.rate if deficit > 0 else 0.0

    def take(self, n: int) -> float:
        """Consume n tokens, sleeping until the bucket can cover them.

        Requests larger than the capacity are allowed: the bucket goes into
        debt and the caller waits for the whole amount to accrue.

        Returns:
            Seconds slept (0.0 when no wait was needed).
        """
        if n <= 0:
            return 0.0

        self._refill()
        self._tokens -= n
        if self._tokens >= 0:
            return 0.0

        delay = -self._tokens / self.rate
        logger.debug("ratelimit: sleeping %.3fs for %d bytes", delay, n)
        self._sleep(delay)
        return delay

    def take_available(self, n: int) -> int:
        """Consume up to n tokens without blocking.

        Returns:
            Number of tokens actually consumed (0 while in debt).
        """
        self._refill()
        granted = int(min(n, max(self._tokens, 0)))
        self._tokens -= granted
        return granted


def new_bucket(
    rate_bytes: Optional[int],
    clock: Optional[Callable[[], float]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> Optional[TokenBucket]:
    """Return a bucket for rate_bytes, or None when throttling is disabled.

    A rate of None, zero or a negative number disables throttling.
    """
    if rate_bytes is None or rate_bytes <= 0:
        return None
    return TokenBucket(rate_bytes, clock=clock, sleep=sleep)
