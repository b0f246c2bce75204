"""Rule evaluation: compiled rules against flattened elements."""

from idscheck.compliance.engine import ValidationExecutor, check_element
from idscheck.compliance.report import DetailRow, RuleSummary, ValidationResult
from idscheck.compliance.rules import (
    ConstraintResult,
    classify_data_type,
    evaluate_constraint,
    normalize_typed_value,
)

__all__ = [
    "ConstraintResult",
    "DetailRow",
    "RuleSummary",
    "ValidationExecutor",
    "ValidationResult",
    "check_element",
    "classify_data_type",
    "evaluate_constraint",
    "normalize_typed_value",
]
