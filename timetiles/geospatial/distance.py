"""Great-circle distance helpers."""

import math
from collections.abc import Sequence

from timetiles.geospatial.validation import Coordinate

EARTH_RADIUS_KM = 6371.0


class EmptyInputError(ValueError):
    """Raised when an aggregate is requested over no points."""


def calculate_distance(p1: Coordinate, p2: Coordinate) -> float:
    """Haversine distance between two points in kilometres."""
    lat1 = math.radians(p1.latitude)
    lat2 = math.radians(p2.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(p2.longitude - p1.longitude)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def calculate_centroid(points: Sequence[Coordinate]) -> Coordinate:
    """Arithmetic mean of latitudes and longitudes.

    Raises:
        EmptyInputError: If ``points`` is empty
    """
    if not points:
        raise EmptyInputError("Cannot calculate centroid of empty point list")
    return Coordinate(
        latitude=sum(p.latitude for p in points) / len(points),
        longitude=sum(p.longitude for p in points) / len(points),
    )


def find_max_distance(points: Sequence[Coordinate]) -> float:
    """Largest pairwise distance in kilometres, 0 for fewer than two points."""
    max_distance = 0.0
    for i in range(len(points)):
        for j in range(i + 1, len(points)):
            max_distance = max(max_distance, calculate_distance(points[i], points[j]))
    return max_distance
