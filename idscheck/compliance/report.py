"""Validation result models and Markdown report generation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RowStatus = Literal["PASSED", "FAILED", "NA"]


class RuleSummary(BaseModel):
    """Per-rule aggregate: which elements passed, failed, or were not applicable."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    passed_ids: list[str] = Field(default_factory=list, alias="passedIds")
    failed_ids: list[str] = Field(default_factory=list, alias="failedIds")
    na_ids: list[str] = Field(default_factory=list, alias="naIds")


class DetailRow(BaseModel):
    """One (rule, element[, constraint]) outcome."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    rule_id: str = Field(alias="ruleId")
    rule_title: str = Field(alias="ruleTitle")
    global_id: str = Field(alias="globalId")
    entity_class: str = Field(alias="ifcClass")
    property_path: str | None = Field(default=None, alias="propertyPath")
    expected: str | None = None
    actual: str | None = None
    reason: str | None = None
    status: RowStatus

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase dict form used for export."""
        return self.model_dump(by_alias=True)


class ValidationResult(BaseModel):
    """Full result of evaluating a rule set against a set of elements."""

    rules: list[RuleSummary] = Field(default_factory=list)
    rows: list[DetailRow] = Field(default_factory=list)

    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    """Timestamp of the validation run."""

    @property
    def failed_rows(self) -> list[DetailRow]:
        return [r for r in self.rows if r.status == "FAILED"]

    def to_markdown(self) -> str:
        """Render the result as a Markdown document."""
        lines: list[str] = []

        lines.append("# IDS Validation Report")
        lines.append("")
        lines.append(f"**Checked:** {self.checked_at.strftime('%Y-%m-%d %H:%M UTC')}")
        lines.append(f"**Rules:** {len(self.rules)}")
        lines.append("")

        if self.rules:
            lines.append("## Rule Summary")
            lines.append("")
            lines.append("| Rule | Title | Passed | Failed | N/A |")
            lines.append("|------|-------|--------|--------|-----|")
            for rule in self.rules:
                title = rule.title.replace("|", "\\|")
                lines.append(
                    f"| {rule.id} | {title} | {len(rule.passed_ids)} "
                    f"| {len(rule.failed_ids)} | {len(rule.na_ids)} |"
                )
            lines.append("")

        failures = self.failed_rows
        if failures:
            lines.append("## Failures")
            lines.append("")
            for row in failures:
                lines.append(f"- **{row.rule_id}** `{row.global_id}` ({row.entity_class})")
                lines.append(f"  {row.property_path or ''}: {row.reason or 'failed'}")
                if row.expected:
                    lines.append(f"  *Expected:* {row.expected}")
                if row.actual:
                    lines.append(f"  *Actual:* {row.actual}")
                lines.append("")

        return "\n".join(lines)
