"""Tests for per-provider rate limiting."""

import asyncio

import pytest

from timetiles.core.geocoding.rate_limiter import ProviderRateLimiter


def test_rates_have_a_floor(rate_limiter: ProviderRateLimiter):
    rate_limiter.configure("nominatim", 0.2)
    rate_limiter.configure("google", 50)

    assert rate_limiter.get_rate("nominatim") == 1.0
    assert rate_limiter.get_rate("google") == 50
    assert rate_limiter.get_rate("unconfigured") == 1.0


@pytest.mark.asyncio
async def test_first_request_is_immediate(rate_limiter, fake_time):
    assert rate_limiter.can_make_request("nominatim")
    await rate_limiter.wait_for_slot("nominatim")
    assert fake_time.sleeps == []


@pytest.mark.asyncio
async def test_requests_are_spaced(rate_limiter, fake_time):
    rate_limiter.configure("nominatim", 1)
    await rate_limiter.wait_for_slot("nominatim")

    assert not rate_limiter.can_make_request("nominatim")
    assert rate_limiter.get_time_until_allowed("nominatim") == 1000

    fake_time.now += 0.25
    assert rate_limiter.get_time_until_allowed("nominatim") == 750


@pytest.mark.asyncio
async def test_concurrent_waiters_are_serialized(rate_limiter, fake_time):
    rate_limiter.configure("nominatim", 1)
    granted: list[float] = []

    async def request() -> None:
        await rate_limiter.wait_for_slot("nominatim")
        granted.append(fake_time.now)

    await asyncio.gather(*(request() for _ in range(3)))

    assert len(granted) == 3
    assert granted[1] - granted[0] >= 1.0
    assert granted[2] - granted[1] >= 1.0


@pytest.mark.asyncio
async def test_providers_are_independent(rate_limiter, fake_time):
    rate_limiter.configure("nominatim", 1)
    await rate_limiter.wait_for_slot("nominatim")

    assert rate_limiter.can_make_request("google")
    await rate_limiter.wait_for_slot("google")
    assert fake_time.sleeps == []


@pytest.mark.asyncio
async def test_reset(rate_limiter):
    await rate_limiter.wait_for_slot("nominatim")
    await rate_limiter.wait_for_slot("google")

    rate_limiter.reset("nominatim")
    assert rate_limiter.can_make_request("nominatim")
    assert not rate_limiter.can_make_request("google")

    rate_limiter.reset()
    assert rate_limiter.can_make_request("google")
