"""Coordinate and bounds models with range validation."""

import json
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BoundsValidationError(ValueError):
    """Raised when a bounds parameter cannot be parsed."""


class Coordinate(BaseModel):
    """A point in decimal degrees."""

    latitude: float = Field(..., description="Latitude in decimal degrees")
    longitude: float = Field(..., description="Longitude in decimal degrees")

    model_config = ConfigDict(frozen=True)


class MapBounds(BaseModel):
    """Map viewport rectangle.

    Only field types are validated; north >= south is not enforced, so
    callers must not assume the box is normalized.
    """

    north: float = Field(..., description="Northern latitude boundary")
    south: float = Field(..., description="Southern latitude boundary")
    east: float = Field(..., description="Eastern longitude boundary")
    west: float = Field(..., description="Western longitude boundary")

    model_config = ConfigDict(frozen=True)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


def is_valid_latitude(lat: Any) -> bool:
    return _is_number(lat) and -90 <= lat <= 90


def is_valid_longitude(lon: Any) -> bool:
    return _is_number(lon) and -180 <= lon <= 180


def is_valid_coordinate(lat: Any, lon: Any) -> bool:
    """Range-check a pair and reject the null-island point (0, 0)."""
    if not (is_valid_latitude(lat) and is_valid_longitude(lon)):
        return False
    return not (lat == 0 and lon == 0)


def is_within_bounds(point: Coordinate, bounds: MapBounds) -> bool:
    """Inclusive box test against the bounds as given."""
    return (
        bounds.south <= point.latitude <= bounds.north
        and bounds.west <= point.longitude <= bounds.east
    )


def is_valid_bounds(value: Any) -> bool:
    """Check that a decoded object has numeric north/south/east/west fields."""
    if not isinstance(value, dict):
        return False
    return all(
        _is_number(value.get(key)) for key in ("north", "south", "east", "west")
    )


def parse_bounds_parameter(raw: str | None) -> MapBounds | None:
    """Parse a JSON bounds query parameter.

    Args:
        raw: JSON object string such as ``{"north": 1, "south": 0, ...}``

    Returns:
        MapBounds, or None when no bounds were supplied

    Raises:
        BoundsValidationError: If the value is not valid JSON or a field is
            missing or not numeric
    """
    if raw is None or not raw.strip():
        return None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BoundsValidationError(f"Invalid bounds format: {e.msg}") from e
    if not is_valid_bounds(decoded):
        raise BoundsValidationError(
            "Invalid bounds format. Expected: "
            "{north: number, south: number, east: number, west: number}"
        )
    return MapBounds(
        north=decoded["north"],
        south=decoded["south"],
        east=decoded["east"],
        west=decoded["west"],
    )
