"""Pure geospatial helpers: validation, distance, parsing and format detection."""

from timetiles.geospatial.detection import (
    FormatDetectionResult,
    check_comma_format,
    check_geojson_format,
    check_space_format,
    detect_coordinate_format,
)
from timetiles.geospatial.distance import (
    EmptyInputError,
    calculate_centroid,
    calculate_distance,
    find_max_distance,
)
from timetiles.geospatial.parsing import parse_coordinate
from timetiles.geospatial.validation import (
    BoundsValidationError,
    Coordinate,
    MapBounds,
    is_valid_coordinate,
    is_valid_latitude,
    is_valid_longitude,
    is_within_bounds,
    parse_bounds_parameter,
)

__all__ = [
    "BoundsValidationError",
    "Coordinate",
    "EmptyInputError",
    "FormatDetectionResult",
    "MapBounds",
    "calculate_centroid",
    "calculate_distance",
    "check_comma_format",
    "check_geojson_format",
    "check_space_format",
    "detect_coordinate_format",
    "find_max_distance",
    "is_valid_coordinate",
    "is_valid_latitude",
    "is_valid_longitude",
    "is_within_bounds",
    "parse_bounds_parameter",
    "parse_coordinate",
]
