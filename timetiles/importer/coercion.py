"""Value coercion helpers shared by the transform engines.

Imported rows come from spreadsheets and CSV exports produced by tools with
loose, JavaScript-style typing, so "cast" semantics here follow those rules:
an empty string is the number 0, any non-empty string is truthy, and so on.
"""

import math
import re
from datetime import date, datetime
from typing import Any

import pandas as pd

_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_RADIX_RE = re.compile(r"^0([xXoObB])([0-9a-fA-F]+)$")
_RADIX = {"x": 16, "o": 8, "b": 2}

TYPE_TAGS = ("string", "number", "boolean", "null", "array", "date", "object")


def get_type_tag(value: Any) -> str:
    """Runtime type tag of a JSON-like value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, (datetime, date)):
        return "date"
    return "object"


def _tidy_number(value: float) -> int | float:
    if math.isfinite(value) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


def _number_from_text(text: str) -> int | float:
    text = text.strip()
    if text == "":
        return 0
    if _DECIMAL_RE.match(text):
        return _tidy_number(float(text))
    radix = _RADIX_RE.match(text)
    if radix:
        try:
            return int(radix.group(2), _RADIX[radix.group(1).lower()])
        except ValueError:
            return math.nan
    if text in ("Infinity", "+Infinity"):
        return math.inf
    if text == "-Infinity":
        return -math.inf
    return math.nan


def to_number(value: Any) -> int | float:
    """Loose numeric conversion. Unconvertible input yields NaN."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        return _number_from_text(value)
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if isinstance(value, list) and len(value) <= 1:
        return to_number(value[0]) if value else 0
    return math.nan


def to_string(value: Any) -> str:
    """Loose string conversion."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return str(_tidy_number(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else to_string(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def is_truthy(value: Any) -> bool:
    """Loose truthiness: only None, False, 0, NaN and "" are falsy."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def parse_boolean(value: Any) -> bool:
    """Strict boolean parsing of yes/no style strings.

    Raises:
        ValueError: If the value is not one of true/1/yes/false/0/no
    """
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    raise ValueError(f'Cannot parse "{to_string(value)}" as boolean')


def parse_number(value: Any) -> int | float:
    """Numeric parsing that fails instead of returning NaN.

    Raises:
        ValueError: If the value does not represent a number
    """
    number = to_number(value)
    if isinstance(number, float) and math.isnan(number):
        raise ValueError(f'Cannot parse "{to_string(value)}" as number')
    return number


def format_iso(timestamp: pd.Timestamp) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2024-01-15T00:00:00.000Z."""
    timestamp = timestamp.tz_convert("UTC")
    return timestamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{timestamp.microsecond // 1000:03d}Z"


def parse_date(value: Any) -> str:
    """Parse a date-like value into a UTC ISO-8601 string.

    Raises:
        ValueError: If the value cannot be interpreted as a date
    """
    text = value if isinstance(value, (datetime, date)) else to_string(value).strip()
    try:
        timestamp = pd.to_datetime(text, utc=True)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f'Cannot parse "{to_string(value)}" as date') from e
    if pd.isna(timestamp):
        raise ValueError(f'Cannot parse "{to_string(value)}" as date')
    return format_iso(timestamp)
