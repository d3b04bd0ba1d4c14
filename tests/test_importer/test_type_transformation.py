"""Tests for per-field type transformation rules."""

import pytest

from timetiles.importer.type_transformation import (
    TypeMismatchError,
    TypeTransformationRule,
    TypeTransformationService,
    cast_value,
    parse_value,
)


def rule(path, from_type, to_type, strategy, custom=None, enabled=True) -> dict:
    return {
        "fieldPath": path,
        "fromType": from_type,
        "toType": to_type,
        "transformStrategy": strategy,
        "customTransform": custom,
        "enabled": enabled,
    }


class TestParseStrategy:
    def test_string_to_number(self):
        service = TypeTransformationService([rule("age", "string", "number", "parse")])
        result = service.transform_record({"age": "25"})

        assert result.transformed == {"age": 25}
        assert len(result.changes) == 1
        change = result.changes[0]
        assert (change.path, change.old_value, change.new_value) == ("age", "25", 25)
        assert not change.failed

    def test_unparseable_number_records_error(self):
        service = TypeTransformationService([rule("age", "string", "number", "parse")])
        result = service.transform_record({"age": "not-a-number"})

        assert result.transformed == {"age": "not-a-number"}
        assert len(result.errors) == 1
        assert result.errors[0].old_value == "not-a-number"
        assert result.errors[0].new_value is None
        assert "Cannot parse" in result.errors[0].error

    def test_nested_date(self):
        service = TypeTransformationService(
            [rule("event.when", "string", "date", "parse")]
        )
        result = service.transform_record({"event": {"when": "2024-01-15"}})
        assert result.transformed["event"]["when"] == "2024-01-15T00:00:00.000Z"


class TestRuleSelection:
    def test_type_mismatch_skips_rule(self):
        service = TypeTransformationService([rule("age", "string", "number", "parse")])
        result = service.transform_record({"age": 25})

        assert result.transformed == {"age": 25}
        assert result.changes == []

    def test_missing_and_null_values_are_skipped(self):
        service = TypeTransformationService([rule("age", "string", "number", "parse")])
        assert service.transform_record({}).changes == []
        assert service.transform_record({"age": None}).changes == []

    def test_disabled_rule(self):
        service = TypeTransformationService(
            [rule("age", "string", "number", "parse", enabled=False)]
        )
        assert service.transform_record({"age": "25"}).transformed == {"age": "25"}

    def test_rules_apply_in_order(self):
        service = TypeTransformationService(
            [
                rule("flag", "string", "number", "cast"),
                rule("flag", "number", "boolean", "cast"),
            ]
        )
        result = service.transform_record({"flag": "0"})
        assert result.transformed == {"flag": False}
        assert len(result.changes) == 2

    def test_input_is_not_mutated(self):
        record = {"age": "25"}
        TypeTransformationService([rule("age", "string", "number", "parse")]).transform_record(
            record
        )
        assert record == {"age": "25"}


class TestOtherStrategies:
    def test_cast(self):
        service = TypeTransformationService([rule("n", "string", "number", "cast")])
        result = service.transform_record({"n": ""})
        assert result.transformed == {"n": 0}

    def test_custom(self):
        service = TypeTransformationService(
            [rule("name", "string", "string", "custom", custom="return value.upper()")]
        )
        assert service.transform_record({"name": "ada"}).transformed == {"name": "ADA"}

    def test_custom_failure_is_recorded(self):
        service = TypeTransformationService(
            [rule("n", "string", "number", "custom", custom="value / 0")]
        )
        result = service.transform_record({"n": "x"})
        assert result.errors[0].error.startswith("Custom transform failed")

    def test_reject_records_mismatch(self):
        service = TypeTransformationService([rule("n", "string", "number", "reject")])
        result = service.transform_record({"n": "x"})
        assert result.errors[0].error == "Type mismatch: expected number, got string"

    def test_reject_can_raise(self):
        service = TypeTransformationService(
            [rule("n", "string", "number", "reject")], raise_on_reject=True
        )
        with pytest.raises(TypeMismatchError):
            service.transform_record({"n": "x"})


def test_rules_accept_models_and_snake_case():
    model = TypeTransformationRule(
        field_path="a", from_type="string", to_type="number", transform_strategy="parse"
    )
    service = TypeTransformationService([model])
    assert service.transform_records([{"a": "1"}, {"a": "2"}])[1].transformed == {"a": 2}


def test_value_helpers_reject_unknown_types():
    with pytest.raises(ValueError):
        parse_value("x", "array")
    with pytest.raises(ValueError):
        cast_value("x", "date")
