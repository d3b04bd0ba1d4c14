"""Validation of parsed coordinate pairs, including swapped-axis repair."""

import logging
import math
from dataclasses import dataclass
from typing import Any

from timetiles.geospatial.detection import (
    COMMA_PAIR_RE,
    SPACE_PAIR_RE,
    geojson_point,
    match_pair,
)
from timetiles.geospatial.validation import is_valid_latitude, is_valid_longitude

logger = logging.getLogger(__name__)

VALID = "valid"
OUT_OF_RANGE = "out_of_range"
SUSPICIOUS_ZERO = "suspicious_zero"
SWAPPED = "swapped"
INVALID = "invalid"


@dataclass(frozen=True)
class ValidatedCoordinates:
    latitude: float
    longitude: float
    is_valid: bool
    validation_status: str
    confidence: float
    was_swapped: bool = False


@dataclass(frozen=True)
class CoordinateExtraction:
    latitude: float | None
    longitude: float | None
    format: str
    is_valid: bool


def _looks_swapped(lat: float, lon: float) -> bool:
    return 90 < abs(lat) <= 180 and abs(lon) <= 90


class CoordinateValidator:
    """Classify coordinate pairs and extract them from combined columns."""

    def validate_coordinates(
        self, lat: float | None, lon: float | None, auto_fix: bool = True
    ) -> ValidatedCoordinates:
        """Validate a pair.

        Checks run in order: missing values, the (0, 0) placeholder, swapped
        axes, then plain range checks.

        Args:
            lat: Latitude as parsed from the source
            lon: Longitude as parsed from the source
            auto_fix: Swap the axes back when they look transposed

        Returns:
            ValidatedCoordinates with a status and confidence
        """
        if lat is None or lon is None or math.isnan(lat) or math.isnan(lon):
            return ValidatedCoordinates(0.0, 0.0, False, INVALID, 0.0)

        if lat == 0 and lon == 0:
            return ValidatedCoordinates(lat, lon, False, SUSPICIOUS_ZERO, 0.1)

        if _looks_swapped(lat, lon):
            if auto_fix:
                return ValidatedCoordinates(lon, lat, True, SWAPPED, 0.8, was_swapped=True)
            return ValidatedCoordinates(lat, lon, False, SWAPPED, 0.3)

        if not (is_valid_latitude(lat) and is_valid_longitude(lon)):
            return ValidatedCoordinates(lat, lon, False, OUT_OF_RANGE, 0.0)

        return ValidatedCoordinates(lat, lon, True, VALID, 1.0)

    def detect_swapped_coordinates(self, samples: list[tuple[float, float]]) -> bool:
        """Whether more than 70% of (lat, lon) samples look transposed."""
        if not samples:
            return False
        swapped = sum(1 for lat, lon in samples if _looks_swapped(lat, lon))
        return swapped > len(samples) * 0.7

    def extract_from_combined(self, value: Any, format: str) -> CoordinateExtraction:
        """Pull a validated pair out of a combined column value."""
        if value is None or value == "":
            return CoordinateExtraction(None, None, format, False)

        if format == "geojson":
            return self._build(geojson_point(value), "geojson")

        text = str(value).strip()
        if format == "combined_comma":
            return self._build(match_pair(COMMA_PAIR_RE, text), "combined_comma")
        if format == "combined_space":
            return self._build(match_pair(SPACE_PAIR_RE, text), "combined_space")
        return self._auto_detect(text)

    def _build(
        self, pair: tuple[float, float] | None, format: str
    ) -> CoordinateExtraction:
        if pair is None:
            return CoordinateExtraction(None, None, format, False)
        validated = self.validate_coordinates(*pair)
        return CoordinateExtraction(
            validated.latitude, validated.longitude, format, validated.is_valid
        )

    def _auto_detect(self, text: str) -> CoordinateExtraction:
        for pattern, name in (
            (COMMA_PAIR_RE, "combined_comma"),
            (SPACE_PAIR_RE, "combined_space"),
        ):
            result = self._build(match_pair(pattern, text), name)
            if result.is_valid:
                return result

        # [lat, lon]
        parts = text.replace("[", "").replace("]", "").split(",")
        if len(parts) == 2:
            try:
                pair = (float(parts[0].strip()), float(parts[1].strip()))
            except ValueError:
                logger.debug(f"Unrecognised coordinate value: {text!r}")
            else:
                return self._build(pair, "brackets")

        return CoordinateExtraction(None, None, "unknown", False)
