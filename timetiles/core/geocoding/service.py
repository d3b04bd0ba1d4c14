"""Geocoding service for import jobs.

This module resolves free-text addresses to coordinates:
- Consults the location cache before calling any provider
- Tries providers in order (Google when configured, then Nominatim)
- Paces provider calls through the shared rate limiter
- Scores and validates every provider result before accepting it
- Geocodes batches concurrently without letting one failure abort the rest
"""

import asyncio
import logging
from typing import Any

from timetiles.core.config import Settings, settings
from timetiles.core.geocoding.cache import LocationCache, normalize_address
from timetiles.core.geocoding.metrics import GEOCODING_REQUESTS
from timetiles.core.geocoding.models import (
    BatchGeocodeResult,
    BatchSummary,
    GeocodeResult,
    GeocodingError,
    RawGeocodeResult,
)
from timetiles.core.geocoding.providers import GeocodeProvider, build_providers
from timetiles.core.geocoding.rate_limiter import ProviderRateLimiter
from timetiles.core.geocoding.scoring import ConfidenceScorer
from timetiles.core.store import DataStore
from timetiles.geospatial.validation import is_valid_latitude, is_valid_longitude

logger = logging.getLogger(__name__)


class GeocodingService:
    """Resolve addresses through a cache and a provider fallback chain.

    Args:
        providers: Providers in fallback order
        cache: Location cache, or None to disable caching
        rate_limiter: Shared limiter; providers are configured on it by name
        scorer: Confidence scorer for raw provider results
        config: Optional overrides (``min_confidence``, ``batch_concurrency``,
            ``rate_limits``); anything missing falls back to settings
    """

    def __init__(
        self,
        providers: list[GeocodeProvider],
        cache: LocationCache | None = None,
        rate_limiter: ProviderRateLimiter | None = None,
        scorer: ConfidenceScorer | None = None,
        config: dict[str, Any] | None = None,
    ):
        if not providers:
            raise ValueError("At least one geocoding provider is required")

        self.config = config or {}
        self.providers = providers
        self.cache = cache
        self.rate_limiter = rate_limiter or ProviderRateLimiter()
        self.scorer = scorer or ConfidenceScorer()
        self.min_confidence = self.config.get(
            "min_confidence", settings.GEOCODING_MIN_CONFIDENCE
        )
        self.batch_concurrency = self.config.get(
            "batch_concurrency", settings.GEOCODING_BATCH_CONCURRENCY
        )

        rate_limits = self.config.get(
            "rate_limits",
            {
                "google": settings.GOOGLE_RATE_LIMIT,
                "nominatim": settings.NOMINATIM_RATE_LIMIT,
            },
        )
        for name, rate in rate_limits.items():
            self.rate_limiter.configure(name, rate)

    @classmethod
    def from_settings(
        cls,
        store: DataStore,
        config: Settings = settings,
        rate_limiter: ProviderRateLimiter | None = None,
    ) -> "GeocodingService":
        """Build the service with providers and cache taken from settings."""
        cache = None
        if config.GEOCODING_CACHE_ENABLED:
            cache = LocationCache(
                store,
                stale_days=config.GEOCODING_CACHE_STALE_DAYS,
                min_hits=config.GEOCODING_CACHE_MIN_HITS,
            )
        return cls(
            build_providers(config),
            cache=cache,
            rate_limiter=rate_limiter,
            config={
                "min_confidence": config.GEOCODING_MIN_CONFIDENCE,
                "batch_concurrency": config.GEOCODING_BATCH_CONCURRENCY,
                "rate_limits": {
                    "google": config.GOOGLE_RATE_LIMIT,
                    "nominatim": config.NOMINATIM_RATE_LIMIT,
                },
            },
        )

    def _to_result(
        self, raw: RawGeocodeResult, provider: str, address: str
    ) -> GeocodeResult:
        """Validate and score a raw match.

        Raises:
            GeocodingError: If coordinates are out of range or confidence is
                below the acceptance threshold
        """
        if not (is_valid_latitude(raw.latitude) and is_valid_longitude(raw.longitude)):
            raise GeocodingError(
                f"{provider} returned out-of-range coordinates "
                f"({raw.latitude}, {raw.longitude})",
                "INVALID_RESULT",
            )

        confidence = self.scorer.score(raw, provider)
        if confidence < self.min_confidence:
            raise GeocodingError(
                f"{provider} result confidence {confidence:.2f} below "
                f"{self.min_confidence:.2f}",
                "LOW_CONFIDENCE",
            )

        return GeocodeResult(
            latitude=raw.latitude,
            longitude=raw.longitude,
            confidence=confidence,
            provider=provider,
            normalized_address=raw.formatted_address or normalize_address(address),
            components=raw.components,
            metadata={"extra": raw.extra},
        )

    async def _geocode_with(self, provider: GeocodeProvider, address: str) -> GeocodeResult:
        await self.rate_limiter.wait_for_slot(provider.name)
        matches = await provider.geocode(address)
        if not matches:
            raise GeocodingError(f"{provider.name} returned no results", "NO_RESULTS")
        return self._to_result(matches[0], provider.name, address)

    async def geocode(self, address: str) -> GeocodeResult:
        """Resolve one address.

        Raises:
            GeocodingError: If the address is empty or every provider fails
        """
        if not address or not address.strip():
            raise GeocodingError("Address must not be empty", "INVALID_ADDRESS")

        if self.cache is not None:
            cached = await self.cache.get(address)
            if cached is not None:
                return cached

        retryable = False
        for provider in self.providers:
            try:
                result = await self._geocode_with(provider, address)
            except GeocodingError as e:
                GEOCODING_REQUESTS.labels(provider=provider.name, status="rejected").inc()
                logger.warning(f"Geocoding with {provider.name} rejected: {e}")
                continue
            except Exception as e:
                # Transient provider failure; fall through to the next provider
                retryable = True
                GEOCODING_REQUESTS.labels(provider=provider.name, status="failed").inc()
                logger.warning(f"Geocoding failed with {provider.name}: {e}")
                continue

            GEOCODING_REQUESTS.labels(provider=provider.name, status="success").inc()
            if self.cache is not None:
                await self.cache.put(address, result)
            return result

        raise GeocodingError(
            "All geocoding providers failed", "ALL_PROVIDERS_FAILED", retryable
        )

    async def batch_geocode(
        self,
        addresses: list[str],
        concurrency: int | None = None,
        results: dict[str, GeocodeResult | GeocodingError] | None = None,
    ) -> BatchGeocodeResult:
        """Geocode many addresses with bounded concurrency.

        Each address's outcome is written to ``results`` as soon as it is
        known, so a caller that cancels the batch keeps every finished entry.

        Args:
            addresses: Addresses to resolve; duplicates are resolved once
            concurrency: Maximum in-flight geocodes (defaults to config)
            results: Optional dict to fill in place
        """
        results = {} if results is None else results
        unique = list(dict.fromkeys(addresses))
        summary = BatchSummary(total=len(unique))
        semaphore = asyncio.Semaphore(max(1, concurrency or self.batch_concurrency))

        async def run(address: str) -> None:
            async with semaphore:
                try:
                    result = await self.geocode(address)
                except GeocodingError as e:
                    results[address] = e
                    summary.failed += 1
                    return
                except Exception as e:
                    logger.warning(f"Unexpected error geocoding {address!r}: {e}")
                    results[address] = GeocodingError(
                        f"Geocoding failed: {e}", "UNKNOWN_ERROR", retryable=True
                    )
                    summary.failed += 1
                    return
                results[address] = result
                summary.successful += 1
                if result.from_cache:
                    summary.cached += 1

        await asyncio.gather(*(run(address) for address in unique))
        return BatchGeocodeResult(results=results, summary=summary)

    async def cleanup_cache(self) -> int:
        """Remove stale, unpopular cache entries. Never raises."""
        if self.cache is None:
            return 0
        return await self.cache.cleanup()
