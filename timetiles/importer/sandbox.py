"""Restricted evaluation of user-supplied custom transforms.

A custom transform is a single expression evaluated with two names in
scope: ``value`` (the field value) and ``context``. ``context.parse``
offers ``date``, ``number`` and ``boolean`` helpers and ``context.logger``
exposes ``debug``, ``info``, ``warning`` and ``error``. A leading
``return`` is accepted so that one-line function bodies work unchanged::

    return value.strip().title()
    context.parse.number(value) * 100

Evaluation goes through simpleeval, so there is no access to builtins,
imports, dunder attributes or the filesystem.
"""

import logging
import re
from types import SimpleNamespace
from typing import Any

from simpleeval import DEFAULT_FUNCTIONS, EvalWithCompoundTypes

from timetiles.importer.coercion import is_truthy, parse_date, to_number, to_string

custom_logger = logging.getLogger("timetiles.custom_transform")

_RETURN_RE = re.compile(r"^return\b\s*")

SAFE_FUNCTIONS: dict[str, Any] = {
    **{name: fn for name, fn in DEFAULT_FUNCTIONS.items() if name in ("int", "float", "str")},
    "abs": abs,
    "bool": bool,
    "len": len,
    "max": max,
    "min": min,
    "round": round,
    "String": to_string,
    "Number": to_number,
    "Boolean": is_truthy,
}


class CustomTransformError(Exception):
    """Raised when a custom transform cannot be evaluated."""


def build_transform_context() -> SimpleNamespace:
    """Build the ``context`` object handed to custom code."""
    return SimpleNamespace(
        logger=SimpleNamespace(
            debug=custom_logger.debug,
            info=custom_logger.info,
            warning=custom_logger.warning,
            error=custom_logger.error,
        ),
        parse=SimpleNamespace(
            date=parse_date,
            number=to_number,
            boolean=is_truthy,
        ),
    )


def normalize_code(code: str) -> str:
    expression = code.strip().rstrip(";").strip()
    return _RETURN_RE.sub("", expression, count=1).strip()


def run_custom_transform(code: str, value: Any) -> Any:
    """Evaluate ``code`` against ``value``.

    Raises:
        CustomTransformError: With message "Custom transform failed: <reason>"
    """
    expression = normalize_code(code)
    if not expression:
        raise CustomTransformError("Custom transform failed: no code provided")

    evaluator = EvalWithCompoundTypes(
        names={"value": value, "context": build_transform_context()},
        functions=SAFE_FUNCTIONS,
    )
    try:
        return evaluator.eval(expression)
    except Exception as e:
        raise CustomTransformError(f"Custom transform failed: {e}") from e
