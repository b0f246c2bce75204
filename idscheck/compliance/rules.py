"""Constraint evaluation against one flattened element."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel

from idscheck.compiler.rules import PropertyConstraint
from idscheck.extraction.values import format_primitive
from idscheck.models.element import FlattenedElement

DataFamily = Literal["numeric", "boolean", "string", "unknown"]

_BOOLEAN_TYPES = {"IFCBOOLEAN", "IFCLOGICAL"}
_NUMERIC_TYPE = re.compile(
    r"REAL|INTEGER|NUMBER|MEASURE|RATIO|COUNT|AREA|VOLUME|LENGTH|MASS|PRESSURE|"
    r"POWER|TIME|FREQUENCY|TEMPERATURE|FORCE|MOMENT|THICKNESS|WIDTH|HEIGHT|"
    r"DEPTH|DENSITY|ENERGY|SPEED|COEFFICIENT|FACTOR|ANGLE"
)
_STRING_TYPE = re.compile(r"TEXT|LABEL|IDENTIFIER|STRING|URI")
# Descriptive measures are free text despite the MEASURE suffix
_TEXT_MEASURES = {"IFCDESCRIPTIVEMEASURE"}
# Date and time values are ISO strings, not numbers
_UNCHECKED_TYPES = {"IFCDATE", "IFCDATETIME", "IFCTIME", "IFCDURATION"}

_NUMBER = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?$")
_TRUE_TOKENS = {"true", "t", "yes", "y", "1", "on"}
_FALSE_TOKENS = {"false", "f", "no", "n", "0", "off"}


class ConstraintResult(BaseModel):
    """Outcome of one constraint against one element."""

    status: Literal["PASSED", "FAILED"]
    actual: str = ""
    reason: str | None = None

    @property
    def passed(self) -> bool:
        return self.status == "PASSED"


def classify_data_type(token: str | None) -> DataFamily:
    """Map an IFC data type token to the family its values must belong to."""
    if not token:
        return "unknown"
    upper = token.strip().upper()
    if not upper:
        return "unknown"
    if upper in _BOOLEAN_TYPES:
        return "boolean"
    if upper in _TEXT_MEASURES:
        return "string"
    if upper in _UNCHECKED_TYPES:
        return "unknown"
    if _NUMERIC_TYPE.search(upper):
        return "numeric"
    if _STRING_TYPE.search(upper):
        return "string"
    return "unknown"


def _parse_number(text: str) -> float | None:
    # Decimal commas are common in exported models
    candidate = text.strip().replace(",", ".")
    if not _NUMBER.match(candidate):
        return None
    return float(candidate)


def _boolean_token(text: str) -> str | None:
    lowered = text.strip().lower()
    if lowered in _TRUE_TOKENS:
        return "TRUE"
    if lowered in _FALSE_TOKENS:
        return "FALSE"
    return None


def normalize_typed_value(value: str, data_type: str | None) -> str | None:
    """Return the comparison form of *value* under *data_type*.

    Numbers render canonically (``"2,50"`` -> ``"2.5"``), booleans as
    ``TRUE``/``FALSE``, everything else trimmed.  *None* means the value is
    outside the data type's family.
    """
    family = classify_data_type(data_type)
    if family == "numeric":
        number = _parse_number(value)
        return None if number is None else format_primitive(number)
    if family == "boolean":
        return _boolean_token(value)
    return value.strip()


def check_data_type(actual: str, data_type: str | None) -> tuple[str | None, str]:
    """Check *actual* against *data_type*'s family.

    Returns
    -------
    tuple[str | None, str]
        A failure reason (or *None*) and the value to compare expected
        values against.
    """
    normalized = normalize_typed_value(actual, data_type)
    if normalized is not None:
        return None, normalized
    if classify_data_type(data_type) == "numeric":
        return f"Value is not numeric (expected {data_type})", actual
    return f"Value is not a valid boolean (expected {data_type})", actual


def evaluate_constraint(element: FlattenedElement, constraint: PropertyConstraint) -> ConstraintResult:
    """Evaluate a single constraint against element data.

    Parameters
    ----------
    element:
        The flattened element.
    constraint:
        The property constraint to check.

    Returns
    -------
    ConstraintResult
        The evaluation result for this constraint.
    """
    actual = (element.get(constraint.path) or "").strip()
    cardinality = constraint.cardinality

    if not actual:
        if cardinality is not None and cardinality.allows_absence:
            return ConstraintResult(status="PASSED", actual=actual)
        return ConstraintResult(status="FAILED", actual=actual, reason="Property missing")

    if cardinality is not None and cardinality.is_prohibited:
        return ConstraintResult(status="FAILED", actual=actual, reason="Property is prohibited")

    comparison = actual
    accepted = constraint.expected_values or []
    if constraint.data_type:
        reason, comparison = check_data_type(actual, constraint.data_type)
        if reason:
            return ConstraintResult(status="FAILED", actual=actual, reason=reason)
        # Expected values are read in the same family as the actual value
        accepted = [
            normalize_typed_value(v, constraint.data_type) or v.strip() for v in accepted
        ]

    if accepted and comparison not in accepted:
        expected = ", ".join(constraint.expected_values)
        return ConstraintResult(
            status="FAILED",
            actual=actual,
            reason=f"Value does not match expected list ({expected})",
        )

    return ConstraintResult(status="PASSED", actual=actual)
