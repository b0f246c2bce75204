"""Compiled rule model and cardinality parsing."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

_CARDINALITY_KEYWORDS: dict[str, tuple[int, int | None]] = {
    "required": (1, None),
    "optional": (0, None),
    "prohibited": (0, 0),
    "forbidden": (0, 0),
    "excluded": (0, 0),
}

_UNBOUNDED = {"*", "unbounded", "n", ""}

_INT = re.compile(r"^\d+$")


class Cardinality(BaseModel):
    """Occurrence constraint on a property's presence."""

    min: int = 1
    max: int | None = None
    """Upper bound; *None* means unbounded."""

    @property
    def is_required(self) -> bool:
        return self.min >= 1

    @property
    def allows_absence(self) -> bool:
        return self.min == 0

    @property
    def is_prohibited(self) -> bool:
        return self.max == 0

    def admits(self, occurrences: int) -> bool:
        """Return True if *occurrences* lies within ``min:max``."""
        if occurrences < self.min:
            return False
        return self.max is None or occurrences <= self.max

    def __str__(self) -> str:
        upper = "*" if self.max is None else str(self.max)
        return f"{self.min}:{upper}"


class PropertyConstraint(BaseModel):
    """A single requirement: one property path and what it must satisfy."""

    path: str
    """Normalized ``"Pset_Name.PropertyName"`` or ``"Attributes.Name"``."""

    expected_values: list[str] | None = None
    """Allowed values; *None* means any value is accepted."""

    cardinality: Cardinality | None = None
    """*None* means no cardinality was declared (treated as required)."""

    description: str | None = None

    data_type: str | None = None
    """Declared IFC data type, upper-cased, e.g. ``'IFCLABEL'``."""

    def describe(self) -> str | None:
        """Human-readable summary of the expectation, or *None*."""
        parts: list[str] = []
        if self.expected_values:
            parts.append(f"Values: {', '.join(self.expected_values)}")
        if self.data_type:
            parts.append(f"Type: {self.data_type}")
        if self.cardinality is not None:
            parts.append(f"Cardinality: {self.cardinality}")
        return " | ".join(parts) if parts else None


class Applicability(BaseModel):
    """Which elements a rule evaluates."""

    entity_classes: list[str] = Field(default_factory=list)
    """Entity classes the rule applies to; empty means every element."""


class CompiledRule(BaseModel):
    """One specification in normalized form."""

    id: str
    title: str
    applicability: Applicability = Field(default_factory=Applicability)
    properties: list[PropertyConstraint] = Field(default_factory=list)


def parse_cardinality(text: str | None) -> Cardinality | None:
    """Parse a cardinality keyword or ``"min:max"`` string.

    ``'required'`` -> ``1:*``, ``'optional'`` -> ``0:*``, ``'prohibited'``
    -> ``0:0``.  A ``*`` or ``unbounded`` max means unbounded.  Returns
    *None* for missing or malformed input.
    """
    if text is None:
        return None
    normalized = text.strip().lower()
    if not normalized:
        return None
    if normalized in _CARDINALITY_KEYWORDS:
        low, high = _CARDINALITY_KEYWORDS[normalized]
        return Cardinality(min=low, max=high)

    parts = normalized.split(":")
    if len(parts) > 2:
        return None
    min_part = parts[0].strip()
    if not _INT.match(min_part):
        return None
    max_part = parts[1].strip() if len(parts) == 2 else "*"
    if max_part in _UNBOUNDED:
        return Cardinality(min=int(min_part), max=None)
    if not _INT.match(max_part):
        return None
    low, high = int(min_part), int(max_part)
    if high < low:
        return None
    return Cardinality(min=low, max=high)


def parse_occurs(min_occurs: str | None, max_occurs: str | None) -> Cardinality | None:
    """Build a cardinality from ``minOccurs``/``maxOccurs`` attributes."""
    if min_occurs is None and max_occurs is None:
        return None
    low = (min_occurs or "1").strip()
    high = (max_occurs or "unbounded").strip()
    return parse_cardinality(f"{low}:{high}")
