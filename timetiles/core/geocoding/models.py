"""Geocoding result types."""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GeocodingError(Exception):
    """Raised when an address cannot be resolved.

    Attributes:
        code: Machine-readable failure code
        retryable: Whether trying again later may succeed
    """

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR", retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable

    def __repr__(self) -> str:
        return f"GeocodingError({self.message!r}, code={self.code!r}, retryable={self.retryable})"


class GeocodeComponents(BaseModel):
    street_number: str | None = None
    street_name: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None

    model_config = ConfigDict(frozen=True)


class RawGeocodeResult(BaseModel):
    """One match as returned by a provider, before scoring."""

    latitude: float
    longitude: float
    formatted_address: str = ""
    components: GeocodeComponents = Field(default_factory=GeocodeComponents)
    extra: dict[str, Any] = Field(default_factory=dict)


class GeocodeResult(BaseModel):
    """A scored, validated geocode. Never mutated after creation."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    confidence: float = Field(..., ge=0, le=1)
    provider: str
    normalized_address: str
    components: GeocodeComponents = Field(default_factory=GeocodeComponents)
    metadata: dict[str, Any] = Field(default_factory=dict)
    from_cache: bool = False

    model_config = ConfigDict(frozen=True)


class BatchSummary(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    cached: int = 0


@dataclass
class BatchGeocodeResult:
    """Per-address outcomes of a batch: a result or the error that stopped it."""

    results: dict[str, GeocodeResult | GeocodingError]
    summary: BatchSummary
