"""Geocoding: providers, cache, rate limiting and the resolving service."""

from timetiles.core.geocoding.cache import LocationCache, normalize_address
from timetiles.core.geocoding.models import (
    BatchGeocodeResult,
    BatchSummary,
    GeocodeComponents,
    GeocodeResult,
    GeocodingError,
    RawGeocodeResult,
)
from timetiles.core.geocoding.providers import (
    GeocodeProvider,
    GoogleProvider,
    NominatimProvider,
    build_providers,
)
from timetiles.core.geocoding.rate_limiter import ProviderRateLimiter
from timetiles.core.geocoding.scoring import ConfidenceScorer, ScoringWeights
from timetiles.core.geocoding.service import GeocodingService

__all__ = [
    "BatchGeocodeResult",
    "BatchSummary",
    "ConfidenceScorer",
    "GeocodeComponents",
    "GeocodeProvider",
    "GeocodeResult",
    "GeocodingError",
    "GeocodingService",
    "GoogleProvider",
    "LocationCache",
    "NominatimProvider",
    "ProviderRateLimiter",
    "RawGeocodeResult",
    "ScoringWeights",
    "build_providers",
    "normalize_address",
]
