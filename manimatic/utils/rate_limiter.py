"""Outbound request throttling for the API client."""

import asyncio
import logging
from collections import Counter
from typing import Any, Coroutine, Dict, TypeVar
from aiolimiter import AsyncLimiter

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RateLimitedClient:
    """
    Base class for clients that throttle their outbound requests.

    In-flight requests are bounded by a semaphore and the start rate by an
    AsyncLimiter. The long-lived event stream bypasses both.
    """

    def __init__(self, max_concurrent: int = 4, max_per_minute: int = 60):
        """
        Args:
            max_concurrent: Maximum number of requests in flight
            max_per_minute: Maximum requests started per minute
        """
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.rate_limiter = AsyncLimiter(max_per_minute, 60)

        self._in_flight = 0
        self._peak = 0
        self._failed = 0
        self._by_endpoint: Counter = Counter()

    async def _execute_with_limits(self, coro: Coroutine[Any, Any, T], label: str = "request") -> T:
        """
        Await a request coroutine once a slot and a rate token are free.

        Args:
            coro: The request coroutine
            label: Name the request is counted under, e.g. "POST /generate"

        Returns:
            The result of the coroutine
        """
        async with self.semaphore:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)
            try:
                if not self.rate_limiter.has_capacity():
                    logger.debug("Rate limit reached, %s waits for a slot", label)
                async with self.rate_limiter:
                    self._by_endpoint[label] += 1
                    try:
                        return await coro
                    except Exception:
                        self._failed += 1
                        raise
            finally:
                self._in_flight -= 1

    def get_stats(self) -> Dict[str, Any]:
        """Request counters: totals, failures, concurrency and per-endpoint counts."""
        return {
            "total_requests": sum(self._by_endpoint.values()),
            "failed_requests": self._failed,
            "concurrent_peak": self._peak,
            "current_concurrent": self._in_flight,
            "by_endpoint": dict(self._by_endpoint),
        }
