"""Import transforms applied to raw rows before schema detection.

Each dataset owns an ordered rule set. Rules are applied in order to a deep
copy of every row; inactive rules stay in the set for history but are
skipped. ``rename`` is the workhorse; the remaining types cover the other
clean-up steps offered in the import wizard.
"""

import copy
import logging
import re
import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from timetiles.importer.coercion import get_type_tag, to_string
from timetiles.importer.paths import MISSING, delete_by_path, get_by_path, set_by_path
from timetiles.importer.sandbox import run_custom_transform
from timetiles.importer.type_transformation import (
    TypeMismatchError,
    cast_value,
    parse_value,
)

logger = logging.getLogger(__name__)

TransformType = Literal[
    "rename", "date-parse", "string-op", "concatenate", "split", "type-cast"
]
CastableType = Literal["string", "number", "boolean", "date", "array", "object", "null"]


class BaseTransform(BaseModel):
    """Fields shared by every transform type."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    active: bool = True
    added_at: datetime | None = Field(default=None, alias="addedAt")
    added_by: str | None = Field(default=None, alias="addedBy")
    confidence: float | None = Field(default=None, ge=0, le=1)
    auto_detected: bool = Field(default=False, alias="autoDetected")

    model_config = ConfigDict(populate_by_name=True)


class RenameTransform(BaseTransform):
    type: Literal["rename"] = "rename"
    from_path: str = Field(default="", alias="from")
    to_path: str = Field(default="", alias="to")


class DateParseTransform(BaseTransform):
    type: Literal["date-parse"] = "date-parse"
    from_path: str = Field(default="", alias="from")
    input_format: str = Field(default="", alias="inputFormat")
    output_format: str = Field(default="YYYY-MM-DD", alias="outputFormat")
    timezone: str | None = None


class StringOpTransform(BaseTransform):
    type: Literal["string-op"] = "string-op"
    from_path: str = Field(default="", alias="from")
    operation: Literal["uppercase", "lowercase", "trim", "replace"] = "trim"
    pattern: str | None = None
    replacement: str | None = None


class ConcatenateTransform(BaseTransform):
    type: Literal["concatenate"] = "concatenate"
    from_fields: list[str] = Field(default_factory=list, alias="fromFields")
    separator: str = " "
    to_path: str = Field(default="", alias="to")


class SplitTransform(BaseTransform):
    type: Literal["split"] = "split"
    from_path: str = Field(default="", alias="from")
    delimiter: str = ","
    to_fields: list[str] = Field(default_factory=list, alias="toFields")


class TypeCastTransform(BaseTransform):
    type: Literal["type-cast"] = "type-cast"
    from_path: str = Field(default="", alias="from")
    from_type: CastableType = Field(default="string", alias="fromType")
    to_type: CastableType = Field(default="number", alias="toType")
    strategy: Literal["parse", "cast", "custom", "reject"] = "parse"
    custom_function: str | None = Field(default=None, alias="customFunction")


ImportTransform = Annotated[
    Union[
        RenameTransform,
        DateParseTransform,
        StringOpTransform,
        ConcatenateTransform,
        SplitTransform,
        TypeCastTransform,
    ],
    Field(discriminator="type"),
]

_transform_list = TypeAdapter(list[ImportTransform])
_TRANSFORM_CLASSES: dict[str, type[BaseTransform]] = {
    "rename": RenameTransform,
    "date-parse": DateParseTransform,
    "string-op": StringOpTransform,
    "concatenate": ConcatenateTransform,
    "split": SplitTransform,
    "type-cast": TypeCastTransform,
}


def parse_transforms(raw: list[dict[str, Any]]) -> list[BaseTransform]:
    """Validate stored transform dicts into models."""
    return list(_transform_list.validate_python(raw))


def create_transform(type: TransformType) -> BaseTransform:
    """Blank transform of the given type, active and not auto-detected."""
    return _TRANSFORM_CLASSES[type]()


def is_transform_valid(transform: BaseTransform) -> bool:
    """Whether a transform carries everything it needs to run."""
    if isinstance(transform, RenameTransform):
        return bool(transform.from_path and transform.to_path)
    if isinstance(transform, DateParseTransform):
        return bool(
            transform.from_path and transform.input_format and transform.output_format
        )
    if isinstance(transform, StringOpTransform):
        return bool(transform.from_path and transform.operation)
    if isinstance(transform, ConcatenateTransform):
        return len(transform.from_fields) >= 2 and bool(transform.to_path)
    if isinstance(transform, SplitTransform):
        return bool(
            transform.from_path and transform.delimiter and len(transform.to_fields) >= 1
        )
    if isinstance(transform, TypeCastTransform):
        return bool(transform.from_path) and (
            transform.strategy != "custom" or bool(transform.custom_function)
        )
    return False


# Date format tokens, longest first
_DATE_TOKEN_RE = re.compile(r"YYYY|MMMM|MM|DD|M|D")
_STRPTIME_TOKENS = {
    "YYYY": "%Y",
    "MMMM": "%B",
    "MM": "%m",
    "DD": "%d",
    "M": "%m",
    "D": "%d",
}


def _to_strptime(fmt: str) -> str:
    escaped = fmt.replace("%", "%%")
    return _DATE_TOKEN_RE.sub(lambda m: _STRPTIME_TOKENS[m.group(0)], escaped)


def _format_date(value: datetime, fmt: str) -> str:
    tokens = {
        "YYYY": f"{value.year:04d}",
        "MMMM": value.strftime("%B"),
        "MM": f"{value.month:02d}",
        "DD": f"{value.day:02d}",
        "M": str(value.month),
        "D": str(value.day),
    }
    return _DATE_TOKEN_RE.sub(lambda m: tokens[m.group(0)], fmt)


def _parse_date_text(text: str, input_format: str, timezone: str | None) -> datetime | None:
    if input_format:
        try:
            return datetime.strptime(text, _to_strptime(input_format))
        except ValueError:
            pass
    try:
        timestamp = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(timestamp):
        return None
    if timezone and timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert(timezone)
    return timestamp.to_pydatetime()


def _apply_rename(data: dict[str, Any], transform: RenameTransform) -> None:
    if transform.from_path == transform.to_path:
        return
    value = get_by_path(data, transform.from_path)
    if value is MISSING:
        return
    delete_by_path(data, transform.from_path)
    set_by_path(data, transform.to_path, value)


def _apply_date_parse(data: dict[str, Any], transform: DateParseTransform) -> None:
    value = get_by_path(data, transform.from_path)
    if not isinstance(value, str):
        return
    parsed = _parse_date_text(value.strip(), transform.input_format, transform.timezone)
    if parsed is None:
        return
    set_by_path(
        data,
        transform.from_path,
        _format_date(parsed, transform.output_format or "YYYY-MM-DD"),
    )


def _apply_string_op(data: dict[str, Any], transform: StringOpTransform) -> None:
    value = get_by_path(data, transform.from_path)
    if not isinstance(value, str):
        return
    if transform.operation == "uppercase":
        result = value.upper()
    elif transform.operation == "lowercase":
        result = value.lower()
    elif transform.operation == "trim":
        result = value.strip()
    elif transform.pattern:
        result = value.replace(transform.pattern, transform.replacement or "")
    else:
        result = value
    set_by_path(data, transform.from_path, result)


def _apply_concatenate(data: dict[str, Any], transform: ConcatenateTransform) -> None:
    values = []
    for field in transform.from_fields:
        value = get_by_path(data, field)
        if value is not MISSING and value is not None:
            values.append(to_string(value))
    if values:
        set_by_path(data, transform.to_path, transform.separator.join(values))


def _apply_split(data: dict[str, Any], transform: SplitTransform) -> None:
    value = get_by_path(data, transform.from_path)
    if not isinstance(value, str) or not transform.delimiter:
        return
    for target, part in zip(transform.to_fields, value.split(transform.delimiter)):
        if target:
            set_by_path(data, target, part.strip())


def _apply_type_cast(data: dict[str, Any], transform: TypeCastTransform) -> None:
    value = get_by_path(data, transform.from_path)
    if value is MISSING or value is None:
        return
    actual_type = get_type_tag(value)
    if actual_type != transform.from_type:
        return

    try:
        if transform.strategy == "parse":
            new_value = parse_value(value, transform.to_type)
        elif transform.strategy == "cast":
            new_value = cast_value(value, transform.to_type)
        elif transform.strategy == "custom":
            new_value = run_custom_transform(transform.custom_function or "", value)
        else:
            raise TypeMismatchError(transform.from_path, transform.to_type, actual_type)
    except Exception as e:
        # The original value is kept when a cast fails
        logger.warning(
            f"Type cast transform {transform.id} failed on {transform.from_path}: {e}"
        )
        return
    set_by_path(data, transform.from_path, new_value)


_APPLIERS = {
    "rename": _apply_rename,
    "date-parse": _apply_date_parse,
    "string-op": _apply_string_op,
    "concatenate": _apply_concatenate,
    "split": _apply_split,
    "type-cast": _apply_type_cast,
}


def apply_transforms(
    record: dict[str, Any], transforms: list[BaseTransform]
) -> dict[str, Any]:
    """Apply active transforms in order to a deep copy of ``record``."""
    result = copy.deepcopy(record)
    for transform in transforms:
        if transform.active:
            _APPLIERS[transform.type](result, transform)
    return result


def apply_transforms_batch(
    records: list[dict[str, Any]], transforms: list[BaseTransform]
) -> list[dict[str, Any]]:
    """Apply transforms to every record independently."""
    return [apply_transforms(record, transforms) for record in records]


class TransformRuleSet:
    """Ordered, mutable collection of a dataset's import transforms."""

    def __init__(self, transforms: list[BaseTransform | dict[str, Any]] | None = None):
        self.transforms: list[BaseTransform] = []
        for transform in transforms or []:
            self.add(transform)

    def __len__(self) -> int:
        return len(self.transforms)

    def __iter__(self):
        return iter(self.transforms)

    def get(self, transform_id: str) -> BaseTransform | None:
        return next((t for t in self.transforms if t.id == transform_id), None)

    def add(self, transform: BaseTransform | dict[str, Any]) -> BaseTransform:
        if isinstance(transform, dict):
            transform = parse_transforms([transform])[0]
        if self.get(transform.id) is not None:
            raise ValueError(f"Transform {transform.id} already exists")
        self.transforms.append(transform)
        return transform

    def update(self, transform_id: str, **changes: Any) -> BaseTransform:
        """Replace fields of a transform, re-validating the result.

        Raises:
            KeyError: If no transform has ``transform_id``
        """
        for index, transform in enumerate(self.transforms):
            if transform.id == transform_id:
                data = {**transform.model_dump(), **changes, "id": transform_id}
                updated = type(transform).model_validate(data)
                self.transforms[index] = updated
                return updated
        raise KeyError(transform_id)

    def delete(self, transform_id: str) -> bool:
        before = len(self.transforms)
        self.transforms = [t for t in self.transforms if t.id != transform_id]
        return len(self.transforms) < before

    def active(self) -> list[BaseTransform]:
        return [t for t in self.transforms if t.active]

    def apply(self, record: dict[str, Any]) -> dict[str, Any]:
        return apply_transforms(record, self.transforms)

    def apply_batch(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return apply_transforms_batch(records, self.transforms)

    def to_list(self) -> list[dict[str, Any]]:
        """Serialize with the stored (camelCase) field names."""
        return [t.model_dump(by_alias=True, mode="json") for t in self.transforms]
