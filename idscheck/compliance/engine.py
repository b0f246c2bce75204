"""ValidationExecutor: main entry point for rule evaluation.

Usage::

    from idscheck.compliance import ValidationExecutor

    result = ValidationExecutor().evaluate(rules, elements)
"""

from __future__ import annotations

import logging

from idscheck.compiler.rules import CompiledRule
from idscheck.compliance.report import DetailRow, RuleSummary, ValidationResult
from idscheck.compliance.rules import evaluate_constraint
from idscheck.config import VALIDATION_CHUNK_SIZE
from idscheck.models.element import FlattenedElement
from idscheck.progress import CancelToken, ProgressCallback, ProgressTracker, check_cancelled

logger = logging.getLogger(__name__)

NOT_APPLICABLE = "Entity not applicable"
NO_CHECKS = "No property checks produced a result"


def _na_row(rule: CompiledRule, element: FlattenedElement, reason: str) -> DetailRow:
    return DetailRow(
        rule_id=rule.id,
        rule_title=rule.title,
        global_id=element.global_id,
        entity_class=element.entity_class,
        status="NA",
        reason=reason,
    )


def check_element(
    rule: CompiledRule,
    classes: frozenset[str],
    element: FlattenedElement,
) -> tuple[str, list[DetailRow]]:
    """Evaluate *rule* against one element.

    Returns
    -------
    tuple[str, list[DetailRow]]
        The element's status for the rule (``PASSED``, ``FAILED`` or ``NA``)
        and the rows it produced.
    """
    if classes and element.entity_class.lower() not in classes:
        return "NA", [_na_row(rule, element, NOT_APPLICABLE)]
    if not rule.properties:
        return "NA", [_na_row(rule, element, NO_CHECKS)]

    passed: list[DetailRow] = []
    failed: list[DetailRow] = []
    for constraint in rule.properties:
        outcome = evaluate_constraint(element, constraint)
        row = DetailRow(
            rule_id=rule.id,
            rule_title=rule.title,
            global_id=element.global_id,
            entity_class=element.entity_class,
            property_path=constraint.path,
            expected=constraint.describe(),
            actual=outcome.actual,
            reason=None if outcome.passed else (outcome.reason or constraint.description),
            status=outcome.status,
        )
        (passed if outcome.passed else failed).append(row)

    if failed:
        return "FAILED", failed
    return "PASSED", passed


class ValidationExecutor:
    """Evaluate compiled rules against flattened elements.

    Parameters
    ----------
    chunk_size:
        Elements evaluated between progress reports and cancellation checks.
    """

    def __init__(self, chunk_size: int = VALIDATION_CHUNK_SIZE) -> None:
        self.chunk_size = max(1, chunk_size)

    def evaluate(
        self,
        rules: list[CompiledRule],
        elements: list[FlattenedElement],
        *,
        on_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ValidationResult:
        """Run every rule against every element.

        Rows are rule-major, then in element order.

        Raises
        ------
        CancelledError
            *cancel* was set between two chunks; no partial result is returned.
        """
        summaries = [RuleSummary(id=r.id, title=r.title) for r in rules]
        rows_by_rule: list[list[DetailRow]] = [[] for _ in rules]
        classes = [frozenset(c.lower() for c in r.applicability.entity_classes) for r in rules]
        tracker = ProgressTracker(on_progress, total=len(elements))

        for start in range(0, len(elements), self.chunk_size):
            check_cancelled(cancel)
            chunk = elements[start : start + self.chunk_size]
            for index, rule in enumerate(rules):
                summary = summaries[index]
                for element in chunk:
                    status, rows = check_element(rule, classes[index], element)
                    if status == "PASSED":
                        summary.passed_ids.append(element.global_id)
                    elif status == "FAILED":
                        summary.failed_ids.append(element.global_id)
                    else:
                        summary.na_ids.append(element.global_id)
                    rows_by_rule[index].extend(rows)
            tracker.advance(len(chunk))

        check_cancelled(cancel)
        tracker.finish(len(elements))
        rows = [row for rule_rows in rows_by_rule for row in rule_rows]
        logger.info(
            "Evaluated %d rules against %d elements: %d rows",
            len(rules),
            len(elements),
            len(rows),
        )
        return ValidationResult(rules=summaries, rows=rows)
