"""Parse coordinates written in the formats found in real spreadsheets.

Supported inputs, tried in this order:

- decimal degrees: ``"40.7128"``, ``"-74.0060"``, ``"1.5e1"``
- degrees/minutes/seconds: ``40°26'46"N``, ``"40 26 46 N"``
- degrees and decimal minutes: ``"40°42.768'N"``
- directional decimal: ``"40.7128 N"``, ``"74.0060 W"``

A trailing ``S`` or ``W`` or a leading minus makes the value negative; minutes
and seconds always add to the magnitude of the degrees.
"""

import math
import re
from typing import Any

DECIMAL_RE = re.compile(r"^-?(?:\d+(?:\.\d+)?|\.\d+)([eE][+-]?\d+)?$")
DMS_RE = re.compile(
    r"^(-?\d{1,3})[°\s]\s*(\d{1,2})['′\s]\s*(\d{1,2}\.?\d{0,6})[\"″\s]?\s*([NSEW])?$",
    re.IGNORECASE,
)
DM_RE = re.compile(r"^(-?\d{1,3})[°\s](\d{1,3}\.?\d{0,6})['′\s]?([NSEW])?$", re.IGNORECASE)
DIRECTIONAL_RE = re.compile(r"^(-?\d{1,3}\.?\d{0,10})\s{0,2}([NSEW])$", re.IGNORECASE)


def _is_negative_direction(direction: str | None) -> bool:
    return bool(direction) and direction.upper() in ("S", "W")


def _signed(degrees: str, fraction: float, direction: str | None) -> float:
    """Add minutes/seconds to the degree magnitude, then apply the sign."""
    magnitude = abs(float(degrees)) + fraction
    negative = degrees.startswith("-") or _is_negative_direction(direction)
    return -magnitude if negative else magnitude


def try_parse_decimal(text: str) -> float | None:
    trimmed = text.strip()
    if not DECIMAL_RE.match(trimmed):
        return None
    value = float(trimmed)
    return value if math.isfinite(value) else None


def parse_dms_format(text: str) -> float | None:
    match = DMS_RE.match(text)
    if not match:
        return None
    degrees, minutes, seconds, direction = match.groups()
    return _signed(degrees, float(minutes) / 60 + float(seconds) / 3600, direction)


def parse_degrees_minutes_format(text: str) -> float | None:
    match = DM_RE.match(text)
    if not match:
        return None
    degrees, minutes, direction = match.groups()
    return _signed(degrees, float(minutes) / 60, direction)


def parse_directional_format(text: str) -> float | None:
    match = DIRECTIONAL_RE.match(text)
    if not match:
        return None
    value = float(match.group(1))
    return -value if _is_negative_direction(match.group(2)) else value


def _normalize_input(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def parse_coordinate(value: Any) -> float | None:
    """Parse a single coordinate component into decimal degrees.

    Returns None for anything that is not recognisably a coordinate;
    never raises for malformed input.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None

    text = _normalize_input(value)
    if text is None:
        return None

    for parser in (
        try_parse_decimal,
        parse_dms_format,
        parse_degrees_minutes_format,
        parse_directional_format,
    ):
        result = parser(text)
        if result is not None:
            return result
    return None
