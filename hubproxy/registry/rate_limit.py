"""Client-side rate limiting for Docker Hub requests.

Docker Hub allows 100 pulls per hour anonymously and 200 when authenticated.
The limiter keeps a one-hour sliding window of request timestamps, bounds the
number of requests in flight, and backs off exponentially after a 429.
"""

import asyncio
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Deque, Dict, Any

from pydantic import BaseModel

from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.exceptions import RateLimited

logger = configure_module_logging("rate_limit")

WINDOW_SECONDS = 3600

DOCKERHUB_HOURLY_LIMITS = {
    "anonymous": 100,
    "authenticated": 200,
}


class RateLimitStats(BaseModel):
    requests_this_hour: int
    requests_in_flight: int
    requests_completed: int
    requests_failed: int
    average_response_time: float
    current_backoff: float
    hourly_quota_used: float


class RateLimiter:
    """Sliding-window quota, concurrency cap and 429 backoff."""

    def __init__(
        self,
        max_requests_per_hour: int = 180,
        max_concurrent_requests: int = 5,
        backoff_multiplier: float = 2.0,
        max_backoff: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests_per_hour = max_requests_per_hour
        self.max_concurrent_requests = max_concurrent_requests
        self.backoff_multiplier = backoff_multiplier
        self.max_backoff = max_backoff

        self._clock = clock
        self._timestamps: Deque[float] = deque()
        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._in_flight = 0
        self._completed = 0
        self._failed = 0
        self._average_response_time = 0.0
        self._backoff = 0.0
        self._backoff_until = 0.0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one request slot for the duration of an upstream call.

        Raises:
            RateLimited: The hourly quota is spent
        """
        self._prune()
        if len(self._timestamps) >= self.max_requests_per_hour:
            raise RateLimited(
                f"Local quota of {self.max_requests_per_hour} requests per hour exhausted"
            )

        wait = self._backoff_until - self._clock()
        if wait > 0:
            logger.info(f"Backing off {wait:.1f}s before next request")
            await asyncio.sleep(wait)

        async with self._semaphore:
            start = self._clock()
            self._timestamps.append(start)
            self._in_flight += 1
            try:
                yield
            except Exception:
                self._failed += 1
                raise
            else:
                self._completed += 1
                self._record_response_time(self._clock() - start)
                self._backoff = 0.0
            finally:
                self._in_flight -= 1

    def record_rate_limited(self) -> None:
        """Grow the backoff after upstream answered 429."""
        if self._backoff == 0:
            self._backoff = 1.0
        else:
            self._backoff = min(self._backoff * self.backoff_multiplier, self.max_backoff)
        self._backoff_until = self._clock() + self._backoff
        logger.warning(f"Rate limit hit, backing off for {self._backoff:.1f}s")

    def update_limits(self, authenticated: bool) -> None:
        """Set the hourly quota to 90% of Docker Hub's published limit."""
        key = "authenticated" if authenticated else "anonymous"
        self.max_requests_per_hour = int(DOCKERHUB_HOURLY_LIMITS[key] * 0.9)
        logger.info(
            f"Rate limits updated for {key} user: {self.max_requests_per_hour}/hour"
        )

    def hourly_quota_used(self) -> float:
        """Percentage of the hourly quota consumed."""
        self._prune()
        return len(self._timestamps) / self.max_requests_per_hour * 100

    def stats(self) -> RateLimitStats:
        self._prune()
        return RateLimitStats(
            requests_this_hour=len(self._timestamps),
            requests_in_flight=self._in_flight,
            requests_completed=self._completed,
            requests_failed=self._failed,
            average_response_time=self._average_response_time,
            current_backoff=self._backoff,
            hourly_quota_used=self.hourly_quota_used(),
        )

    def health(self) -> Dict[str, Any]:
        quota_used = self.hourly_quota_used()

        if quota_used > 90:
            return {
                "status": "overloaded",
                "message": "Rate limit quota nearly exhausted",
                "recommendations": [
                    "Rely on cached responses",
                    "Reduce request frequency",
                    "Configure a credential for the higher authenticated limit",
                ],
            }

        if quota_used > 70 or self._in_flight >= self.max_concurrent_requests:
            return {
                "status": "throttled",
                "message": "Rate limiting is actively managing request flow",
                "recommendations": ["Requests may experience delays"],
            }

        return {
            "status": "healthy",
            "message": "Rate limiting is operating normally",
            "recommendations": [],
        }

    def _prune(self) -> None:
        cutoff = self._clock() - WINDOW_SECONDS
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _record_response_time(self, duration: float) -> None:
        n = self._completed
        self._average_response_time = (
            self._average_response_time * (n - 1) + duration
        ) / n
