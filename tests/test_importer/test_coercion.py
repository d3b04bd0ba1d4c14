"""Tests for loose value coercion."""

import math

import pytest

from timetiles.importer.coercion import (
    get_type_tag,
    is_truthy,
    parse_boolean,
    parse_date,
    parse_number,
    to_number,
    to_string,
)


@pytest.mark.parametrize(
    "value, tag",
    [
        (None, "null"),
        (True, "boolean"),
        (3, "number"),
        (2.5, "number"),
        ("x", "string"),
        ([1], "array"),
        ({"a": 1}, "object"),
    ],
)
def test_type_tags(value, tag):
    assert get_type_tag(value) == tag


class TestToNumber:
    def test_strings(self):
        assert to_number("25") == 25
        assert isinstance(to_number("25"), int)
        assert to_number(" 2.5 ") == 2.5
        assert to_number("") == 0
        assert to_number("0x1F") == 31
        assert to_number("-Infinity") == -math.inf

    def test_unconvertible_is_nan(self):
        assert math.isnan(to_number("abc"))
        assert math.isnan(to_number({"a": 1}))

    def test_other_values(self):
        assert to_number(None) == 0
        assert to_number(True) == 1
        assert to_number([]) == 0
        assert to_number(["7"]) == 7


class TestToString:
    def test_scalars(self):
        assert to_string(None) == "null"
        assert to_string(False) == "false"
        assert to_string(25.0) == "25"
        assert to_string(math.nan) == "NaN"

    def test_containers(self):
        assert to_string([1, None, "a"]) == "1,,a"
        assert to_string({"a": 1}) == "[object Object]"


def test_truthiness():
    assert not is_truthy("")
    assert not is_truthy(0)
    assert not is_truthy(math.nan)
    assert is_truthy("false")
    assert is_truthy([])


class TestStrictParsing:
    @pytest.mark.parametrize("text", ["true", "YES", " 1 "])
    def test_true_values(self, text):
        assert parse_boolean(text) is True

    @pytest.mark.parametrize("text", ["false", "No", "0"])
    def test_false_values(self, text):
        assert parse_boolean(text) is False

    def test_bad_boolean(self):
        with pytest.raises(ValueError, match='Cannot parse "maybe" as boolean'):
            parse_boolean("maybe")

    def test_parse_number(self):
        assert parse_number("42") == 42
        with pytest.raises(ValueError, match="as number"):
            parse_number("not-a-number")

    def test_parse_date(self):
        assert parse_date("2024-01-15") == "2024-01-15T00:00:00.000Z"
        assert parse_date("2024-01-15T10:30:00+02:00") == "2024-01-15T08:30:00.000Z"

    def test_bad_date(self):
        with pytest.raises(ValueError, match="as date"):
            parse_date("not a date")
