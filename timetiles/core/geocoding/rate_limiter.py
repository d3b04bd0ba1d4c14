"""Per-provider request pacing for external geocoding APIs."""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable

from timetiles.core.geocoding.metrics import RATE_LIMITER_WAITS

logger = logging.getLogger(__name__)

MIN_REQUESTS_PER_SECOND = 1.0


class ProviderRateLimiter:
    """Space out requests to each provider independently.

    Each provider gets a minimum interval of ``1 / requests_per_second``
    seconds between requests. Configured rates below one request per second
    are raised to that floor, and unconfigured providers use it too.

    Args:
        clock: Monotonic clock in seconds
        sleep: Coroutine used to wait, injectable for simulated time
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.clock = clock
        self.sleep = sleep
        self._rates: dict[str, float] = {}
        self._last_request: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def configure(self, provider: str, requests_per_second: float) -> None:
        self._rates[provider] = max(requests_per_second, MIN_REQUESTS_PER_SECOND)

    def get_rate(self, provider: str) -> float:
        return self._rates.get(provider, MIN_REQUESTS_PER_SECOND)

    def _interval(self, provider: str) -> float:
        return 1.0 / self.get_rate(provider)

    def _remaining(self, provider: str) -> float:
        last = self._last_request.get(provider)
        if last is None:
            return 0.0
        return max(0.0, last + self._interval(provider) - self.clock())

    def can_make_request(self, provider: str) -> bool:
        return self._remaining(provider) <= 0

    def get_time_until_allowed(self, provider: str) -> int:
        """Milliseconds until the next request is allowed (0 if now)."""
        remaining = self._remaining(provider)
        return math.ceil(remaining * 1000) if remaining > 0 else 0

    def _lock(self, provider: str) -> asyncio.Lock:
        if provider not in self._locks:
            self._locks[provider] = asyncio.Lock()
        return self._locks[provider]

    async def wait_for_slot(self, provider: str) -> None:
        """Wait for the provider's next slot and claim it.

        Waiters on the same provider are serialized so a freed slot goes to
        exactly one caller.
        """
        async with self._lock(provider):
            remaining = self._remaining(provider)
            if remaining > 0:
                RATE_LIMITER_WAITS.labels(provider=provider).inc()
                logger.debug(f"Waiting {remaining:.3f}s for {provider} rate limit")
                await self.sleep(remaining)
            self._last_request[provider] = self.clock()

    def reset(self, provider: str | None = None) -> None:
        """Forget request history for one provider or all of them."""
        if provider is None:
            self._last_request.clear()
        else:
            self._last_request.pop(provider, None)
