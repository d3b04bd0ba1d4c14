"""Prometheus metrics for geocoding."""

from prometheus_client import REGISTRY, Counter

GEOCODING_REQUESTS = Counter(
    "timetiles_geocoding_requests_total",
    "Total number of provider geocoding requests",
    ["provider", "status"],  # success, failed, rejected
)

GEOCODING_CACHE = Counter(
    "timetiles_geocoding_cache_total",
    "Total number of location cache lookups",
    ["result"],  # hit, miss, error
)

RATE_LIMITER_WAITS = Counter(
    "timetiles_rate_limiter_waits_total",
    "Total number of times a caller waited for a provider slot",
    ["provider"],
)


def register_metrics() -> None:
    """Register metrics with Prometheus."""
    for metric in (GEOCODING_REQUESTS, GEOCODING_CACHE, RATE_LIMITER_WAITS):
        try:
            REGISTRY.register(metric)
        except ValueError:
            # Metric already registered
            pass


# Register metrics on module import
register_metrics()
