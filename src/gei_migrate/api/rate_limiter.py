"""Rate limiting for GitHub API calls."""

import asyncio
import time


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, requests_per_second: float = 10.0, clock=time.monotonic):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second allowed
            clock: Monotonic time source
        """
        self.requests_per_second = requests_per_second
        self.tokens = requests_per_second
        self._clock = clock
        self.last_update = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self.last_update
        self.tokens = min(
            self.requests_per_second,
            self.tokens + elapsed * self.requests_per_second,
        )
        self.last_update = now

    async def acquire(self) -> None:
        """Wait until a request may be sent."""
        async with self._lock:
            self._refill()
            if self.tokens < 1:
                await asyncio.sleep((1 - self.tokens) / self.requests_per_second)
                self._refill()
            self.tokens = max(self.tokens - 1, 0.0)

    def time_until_next_request(self) -> float:
        """Seconds until a request can be made without waiting."""
        self._refill()
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.requests_per_second
