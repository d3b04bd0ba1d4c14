"""Tests for combined coordinate format detection."""

import pytest

from timetiles.geospatial.detection import (
    FormatDetectionResult,
    check_comma_format,
    check_geojson_format,
    check_space_format,
    detect_coordinate_format,
    geojson_point,
)


def test_comma_format_detected():
    samples = ["40.7128, -74.0060", "34.0522,-118.2437", "51.5074, -0.1278"]
    assert check_comma_format(samples) == FormatDetectionResult("combined_comma", 1.0)


def test_comma_format_below_threshold():
    samples = ["40.7128, -74.0060", "nonsense", "also nonsense"]
    assert check_comma_format(samples) is None


def test_threshold_is_inclusive_at_seventy_percent():
    samples = ["40.7, -74.0"] * 7 + ["bad"] * 3
    result = check_comma_format(samples)
    assert result is not None
    assert result.confidence == pytest.approx(0.7)


def test_out_of_range_pairs_do_not_count():
    assert check_comma_format(["120.0, 40.0", "95.5, 10.0"]) is None


def test_empty_samples_are_ignored():
    samples = ["40.7128 -74.0060", "", None, "34.0522 -118.2437"]
    assert check_space_format(samples) == FormatDetectionResult("combined_space", 1.0)


def test_all_empty_samples_detect_nothing():
    assert detect_coordinate_format(["", None, "  "]) is None


def test_geojson_dicts_and_strings():
    samples = [
        {"type": "Point", "coordinates": [-74.0060, 40.7128]},
        '{"type": "Point", "coordinates": [-118.2437, 34.0522]}',
    ]
    assert check_geojson_format(samples) == FormatDetectionResult("geojson", 1.0)


def test_geojson_point_orders_lat_lon():
    assert geojson_point({"type": "Point", "coordinates": [-74.0, 40.7]}) == (40.7, -74.0)
    assert geojson_point({"type": "LineString", "coordinates": [[0, 0]]}) is None
    assert geojson_point("{not json") is None


def test_detect_picks_most_confident():
    samples = ["40.7128, -74.0060", "34.0522, -118.2437", "51.5074 -0.1278"]
    # 2/3 comma is below threshold; space matches 1/3
    assert detect_coordinate_format(samples) is None

    samples = ["40.7128, -74.0060"] * 9 + ["51.5074 -0.1278"]
    result = detect_coordinate_format(samples)
    assert result.format == "combined_comma"
    assert result.confidence == pytest.approx(0.9)
