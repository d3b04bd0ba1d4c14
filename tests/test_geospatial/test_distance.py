"""Tests for distance helpers."""

import pytest

from timetiles.geospatial.distance import (
    EmptyInputError,
    calculate_centroid,
    calculate_distance,
    find_max_distance,
)
from timetiles.geospatial.validation import Coordinate

NEW_YORK = Coordinate(latitude=40.7128, longitude=-74.0060)
LONDON = Coordinate(latitude=51.5074, longitude=-0.1278)
PARIS = Coordinate(latitude=48.8566, longitude=2.3522)


def test_new_york_to_london():
    assert calculate_distance(NEW_YORK, LONDON) == pytest.approx(5570, abs=50)


def test_distance_is_symmetric():
    assert calculate_distance(LONDON, PARIS) == pytest.approx(
        calculate_distance(PARIS, LONDON)
    )


def test_distance_to_self_is_zero():
    assert calculate_distance(PARIS, PARIS) == 0


def test_centroid_is_arithmetic_mean():
    centroid = calculate_centroid(
        [Coordinate(latitude=0, longitude=10), Coordinate(latitude=10, longitude=20)]
    )
    assert centroid == Coordinate(latitude=5, longitude=15)


def test_centroid_of_empty_list_raises():
    with pytest.raises(EmptyInputError):
        calculate_centroid([])


def test_max_distance():
    assert find_max_distance([]) == 0
    assert find_max_distance([PARIS]) == 0
    assert find_max_distance([LONDON, PARIS, NEW_YORK]) == pytest.approx(
        calculate_distance(PARIS, NEW_YORK)
    )
