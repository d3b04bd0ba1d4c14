"""Detect how combined latitude/longitude values are written in a column."""

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from timetiles.geospatial.validation import is_valid_coordinate

DETECTION_THRESHOLD = 0.7

COMMA_PAIR_RE = re.compile(r"^(-?\d{1,3}\.?\d{0,10}),\s{0,5}(-?\d{1,3}\.?\d{0,10})$")
SPACE_PAIR_RE = re.compile(r"^(-?\d{1,3}\.?\d{0,10})\s{1,5}(-?\d{1,3}\.?\d{0,10})$")


@dataclass(frozen=True)
class FormatDetectionResult:
    """Detected format name and the share of samples that matched it."""

    format: str
    confidence: float


def _non_empty(samples: Iterable[Any]) -> list[Any]:
    return [
        s for s in samples if s is not None and not (isinstance(s, str) and not s.strip())
    ]


def _sample_text(sample: Any) -> str:
    if isinstance(sample, bool):
        return ""
    if isinstance(sample, (str, int, float)):
        return str(sample).strip()
    return ""


def match_pair(pattern: re.Pattern[str], text: str) -> tuple[float, float] | None:
    """Match ``text`` against a lat/lon pair pattern and return the floats."""
    match = pattern.match(text)
    if not match:
        return None
    try:
        return float(match.group(1)), float(match.group(2))
    except ValueError:
        # "-." style fragments satisfy the pattern but are not numbers
        return None


def geojson_point(sample: Any) -> tuple[float, float] | None:
    """Return (lat, lon) from a GeoJSON Point dict or JSON string."""
    parsed = sample
    if isinstance(sample, str):
        try:
            parsed = json.loads(sample)
        except json.JSONDecodeError:
            return None
    if not isinstance(parsed, dict) or parsed.get("type") != "Point":
        return None
    coordinates = parsed.get("coordinates")
    if not isinstance(coordinates, list) or len(coordinates) < 2:
        return None
    lon, lat = coordinates[0], coordinates[1]
    if not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in (lat, lon)
    ):
        return None
    return float(lat), float(lon)


def _score(
    samples: Iterable[Any], format_name: str, extract
) -> FormatDetectionResult | None:
    candidates = _non_empty(samples)
    if not candidates:
        return None
    hits = 0
    for sample in candidates:
        pair = extract(sample)
        if pair is not None and is_valid_coordinate(*pair):
            hits += 1
    ratio = hits / len(candidates)
    if ratio >= DETECTION_THRESHOLD:
        return FormatDetectionResult(format=format_name, confidence=ratio)
    return None


def check_comma_format(samples: Iterable[Any]) -> FormatDetectionResult | None:
    """Detect ``"lat, lon"`` values."""
    return _score(
        samples, "combined_comma", lambda s: match_pair(COMMA_PAIR_RE, _sample_text(s))
    )


def check_space_format(samples: Iterable[Any]) -> FormatDetectionResult | None:
    """Detect ``"lat lon"`` values."""
    return _score(
        samples, "combined_space", lambda s: match_pair(SPACE_PAIR_RE, _sample_text(s))
    )


def check_geojson_format(samples: Iterable[Any]) -> FormatDetectionResult | None:
    """Detect GeoJSON points. Note GeoJSON orders coordinates [lon, lat]."""
    return _score(samples, "geojson", geojson_point)


def detect_coordinate_format(samples: Iterable[Any]) -> FormatDetectionResult | None:
    """Run every detector and keep the most confident match."""
    samples = list(samples)
    results = [
        result
        for result in (
            check_comma_format(samples),
            check_space_format(samples),
            check_geojson_format(samples),
        )
        if result is not None
    ]
    if not results:
        return None
    return max(results, key=lambda r: r.confidence)
