"""Geocoding providers behind one async interface.

geopy geocoders are synchronous, so calls run in a worker thread to keep the
event loop free. Provider errors (timeouts, service errors) propagate to the
caller; an empty list means the provider genuinely found nothing.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from geopy.geocoders import GoogleV3, Nominatim
from geopy.location import Location

from timetiles.core.config import Settings
from timetiles.core.geocoding.models import GeocodeComponents, RawGeocodeResult

logger = logging.getLogger(__name__)


class GeocodeProvider(ABC):
    """A named source of geocoding results."""

    name: str = "unknown"

    @abstractmethod
    async def geocode(self, address: str) -> list[RawGeocodeResult]:
        """Return matches for ``address``, best first."""


class GoogleProvider(GeocodeProvider):
    name = "google"

    def __init__(self, api_key: str, timeout: int = 10, geocoder: Any = None):
        self.geocoder = geocoder or GoogleV3(api_key=api_key, timeout=timeout)

    async def geocode(self, address: str) -> list[RawGeocodeResult]:
        locations = await asyncio.to_thread(
            self.geocoder.geocode, address, exactly_one=False
        )
        return [self._convert(location) for location in locations or []]

    @staticmethod
    def _component(raw: dict[str, Any], kind: str, short: bool = False) -> str | None:
        for component in raw.get("address_components", []):
            if kind in component.get("types", []):
                return component.get("short_name" if short else "long_name")
        return None

    def _convert(self, location: Location) -> RawGeocodeResult:
        raw = location.raw or {}
        geometry = raw.get("geometry", {})
        return RawGeocodeResult(
            latitude=location.latitude,
            longitude=location.longitude,
            formatted_address=raw.get("formatted_address") or location.address or "",
            components=GeocodeComponents(
                street_number=self._component(raw, "street_number"),
                street_name=self._component(raw, "route"),
                city=self._component(raw, "locality"),
                region=self._component(raw, "administrative_area_level_1", short=True),
                postal_code=self._component(raw, "postal_code"),
                country=self._component(raw, "country"),
            ),
            extra={
                "place_id": raw.get("place_id"),
                "location_type": geometry.get("location_type"),
                "partial_match": bool(raw.get("partial_match", False)),
                "types": raw.get("types", []),
            },
        )


class NominatimProvider(GeocodeProvider):
    name = "nominatim"

    def __init__(
        self,
        user_agent: str,
        domain: str = "nominatim.openstreetmap.org",
        timeout: int = 10,
        geocoder: Any = None,
    ):
        self.geocoder = geocoder or Nominatim(
            user_agent=user_agent, domain=domain, timeout=timeout
        )

    async def geocode(self, address: str) -> list[RawGeocodeResult]:
        locations = await asyncio.to_thread(
            self.geocoder.geocode, address, exactly_one=False, addressdetails=True
        )
        return [self._convert(location) for location in locations or []]

    def _convert(self, location: Location) -> RawGeocodeResult:
        raw = location.raw or {}
        address = raw.get("address", {})
        return RawGeocodeResult(
            latitude=location.latitude,
            longitude=location.longitude,
            formatted_address=raw.get("display_name") or location.address or "",
            components=GeocodeComponents(
                street_number=address.get("house_number"),
                street_name=address.get("road"),
                city=address.get("city") or address.get("town") or address.get("village"),
                region=address.get("state"),
                postal_code=address.get("postcode"),
                country=address.get("country"),
            ),
            extra={
                "osm_id": raw.get("osm_id"),
                "osm_type": raw.get("osm_type"),
                "importance": raw.get("importance"),
                "class": raw.get("class"),
                "type": raw.get("type"),
            },
        )


def build_providers(config: Settings) -> list[GeocodeProvider]:
    """Providers in fallback order.

    Google is primary only when an API key is configured; Nominatim is always
    available as the fallback (or sole) provider.
    """
    providers: list[GeocodeProvider] = []
    if config.GOOGLE_MAPS_API_KEY:
        providers.append(
            GoogleProvider(config.GOOGLE_MAPS_API_KEY, timeout=config.GEOCODING_TIMEOUT)
        )
        logger.info("Google geocoder enabled as primary provider")
    providers.append(
        NominatimProvider(
            config.NOMINATIM_USER_AGENT,
            domain=config.NOMINATIM_DOMAIN,
            timeout=config.GEOCODING_TIMEOUT,
        )
    )
    return providers
