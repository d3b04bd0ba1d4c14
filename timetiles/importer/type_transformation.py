"""Per-field type coercion rules applied to imported records.

Rules are applied in declaration order to a deep copy of the record. A rule
only fires when the value at its path is present and its runtime type tag
equals the rule's ``fromType``; otherwise it is skipped silently.
"""

import copy
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from timetiles.importer.coercion import (
    get_type_tag,
    is_truthy,
    parse_boolean,
    parse_date,
    parse_number,
    to_number,
    to_string,
)
from timetiles.importer.paths import MISSING, get_by_path, set_by_path
from timetiles.importer.sandbox import run_custom_transform

logger = logging.getLogger(__name__)

TransformStrategy = Literal["parse", "cast", "custom", "reject"]


class TypeMismatchError(ValueError):
    """Raised by the ``reject`` strategy when a value has the wrong type."""

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"Type mismatch: expected {expected}, got {actual}")


class TypeTransformationRule(BaseModel):
    """One coercion rule as stored on a dataset."""

    field_path: str = Field(..., alias="fieldPath", min_length=1)
    from_type: str = Field(..., alias="fromType")
    to_type: str = Field(..., alias="toType")
    transform_strategy: TransformStrategy = Field(..., alias="transformStrategy")
    custom_transform: str | None = Field(default=None, alias="customTransform")
    enabled: bool = True

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TransformationChange(BaseModel):
    """Outcome of one applied rule."""

    path: str
    old_value: Any = None
    new_value: Any = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class TransformResult(BaseModel):
    transformed: dict[str, Any]
    changes: list[TransformationChange] = Field(default_factory=list)

    @property
    def errors(self) -> list[TransformationChange]:
        return [change for change in self.changes if change.failed]


def parse_value(value: Any, to_type: str) -> Any:
    """Semantic conversion that fails loudly on bad input."""
    if to_type == "number":
        return parse_number(value)
    if to_type == "boolean":
        return parse_boolean(value)
    if to_type == "date":
        return parse_date(value)
    if to_type == "string":
        return to_string(value)
    raise ValueError(f"Cannot parse to type: {to_type}")


def cast_value(value: Any, to_type: str) -> Any:
    """Blunt coercion without validation."""
    if to_type == "string":
        return to_string(value)
    if to_type == "number":
        return to_number(value)
    if to_type == "boolean":
        return is_truthy(value)
    raise ValueError(f"Cannot cast to type: {to_type}")


class TypeTransformationService:
    """Apply an ordered list of type transformation rules to records.

    Args:
        rules: Rules in declaration order; disabled rules are ignored
        raise_on_reject: Propagate ``TypeMismatchError`` from ``reject`` rules
            instead of recording it as a failed change
    """

    def __init__(
        self,
        rules: list[TypeTransformationRule | dict[str, Any]],
        raise_on_reject: bool = False,
    ):
        self.rules = [
            rule
            if isinstance(rule, TypeTransformationRule)
            else TypeTransformationRule.model_validate(rule)
            for rule in rules
        ]
        self.raise_on_reject = raise_on_reject

    def transform_record(self, record: dict[str, Any]) -> TransformResult:
        """Transform a copy of ``record``; the input is never mutated."""
        transformed = copy.deepcopy(record)
        changes: list[TransformationChange] = []

        for rule in self.rules:
            if not rule.enabled:
                continue
            try:
                change = self._apply(transformed, rule)
            except TypeMismatchError as e:
                if self.raise_on_reject:
                    raise
                change = self._failure(record, rule, str(e))
            except Exception as e:
                # Failures are reported per field and never abort the record
                change = self._failure(record, rule, str(e))
            if change is not None:
                changes.append(change)

        return TransformResult(transformed=transformed, changes=changes)

    def transform_records(self, records: list[dict[str, Any]]) -> list[TransformResult]:
        return [self.transform_record(record) for record in records]

    def _failure(
        self, original: dict[str, Any], rule: TypeTransformationRule, message: str
    ) -> TransformationChange:
        logger.debug(f"Transform failed for {rule.field_path}: {message}")
        old_value = get_by_path(original, rule.field_path)
        return TransformationChange(
            path=rule.field_path,
            old_value=None if old_value is MISSING else old_value,
            new_value=None,
            error=message,
        )

    def _apply(
        self, record: dict[str, Any], rule: TypeTransformationRule
    ) -> TransformationChange | None:
        value = get_by_path(record, rule.field_path)
        if value is MISSING or value is None:
            return None

        actual_type = get_type_tag(value)
        if actual_type != rule.from_type:
            return None

        strategy = rule.transform_strategy
        if strategy == "parse":
            new_value = parse_value(value, rule.to_type)
        elif strategy == "cast":
            new_value = cast_value(value, rule.to_type)
        elif strategy == "custom":
            new_value = run_custom_transform(rule.custom_transform or "", value)
        elif strategy == "reject":
            raise TypeMismatchError(rule.field_path, rule.to_type, actual_type)
        else:
            raise ValueError(f"Unknown transform strategy: {strategy}")

        set_by_path(record, rule.field_path, new_value)
        return TransformationChange(
            path=rule.field_path, old_value=value, new_value=new_value
        )
