"""Geocoding fixtures: scripted providers and simulated time."""

import asyncio
from typing import Any

import pytest

from timetiles.core.geocoding.cache import LocationCache
from timetiles.core.geocoding.models import GeocodeComponents, RawGeocodeResult
from timetiles.core.geocoding.providers import GeocodeProvider
from timetiles.core.geocoding.rate_limiter import ProviderRateLimiter
from timetiles.core.geocoding.service import GeocodingService


def make_raw(
    latitude: float = 40.7128,
    longitude: float = -74.0060,
    formatted_address: str = "123 Main St, New York, NY, USA",
    **extra: Any,
) -> RawGeocodeResult:
    return RawGeocodeResult(
        latitude=latitude,
        longitude=longitude,
        formatted_address=formatted_address,
        components=GeocodeComponents(
            street_number="123",
            street_name="Main St",
            city="New York",
            country="USA",
        ),
        extra=extra,
    )


class FakeProvider(GeocodeProvider):
    """Provider answering from a script keyed by address.

    Script values are a list of raw results, or an exception instance to
    raise. Unknown addresses return ``default``.
    """

    def __init__(
        self,
        name: str = "fake",
        script: dict[str, Any] | None = None,
        default: Any = None,
    ):
        self.name = name
        self.script = script or {}
        self.default = [make_raw()] if default is None else default
        self.calls: list[str] = []

    async def geocode(self, address: str) -> list[RawGeocodeResult]:
        self.calls.append(address)
        await asyncio.sleep(0)
        answer = self.script.get(address, self.default)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeTime:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def rate_limiter(fake_time: FakeTime) -> ProviderRateLimiter:
    return ProviderRateLimiter(clock=fake_time.clock, sleep=fake_time.sleep)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def location_cache(memory_store, fixed_clock) -> LocationCache:
    return LocationCache(memory_store, stale_days=90, min_hits=3, clock=fixed_clock)


@pytest.fixture
def geocoding_service(
    fake_provider: FakeProvider,
    location_cache: LocationCache,
    rate_limiter: ProviderRateLimiter,
) -> GeocodingService:
    return GeocodingService(
        [fake_provider],
        cache=location_cache,
        rate_limiter=rate_limiter,
        config={"min_confidence": 0.3, "batch_concurrency": 4, "rate_limits": {}},
    )
