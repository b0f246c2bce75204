"""Rule-document dialects.

Two historical encodings are understood:

* **Wrapper dialect**: written by the rule authoring panel: ``Specification``
  elements whose ``Applicability`` and ``Requirements`` children carry
  JSON-serialized arrays.
* **IDS dialect**: buildingSMART IDS documents (any namespace or version):
  ``specification`` elements with ``applicability`` entity facets and
  ``requirements`` property/attribute facets.

Each compiler takes a parsed document root and a :class:`SpecCounter` shared
across the batch so positional ids (``spec-N``) stay unique.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from lxml import etree

from idscheck.compiler.nodes import (
    attribute,
    child_named,
    children_named,
    first_leaf_text,
    iter_named,
    local_name,
    read_values,
)
from idscheck.compiler.rules import (
    Applicability,
    Cardinality,
    CompiledRule,
    PropertyConstraint,
    parse_cardinality,
    parse_occurs,
)
from idscheck.tokens import normalize_token, property_path

logger = logging.getLogger(__name__)

_WRAPPER_OPERATORS = {"exists", "equals"}


class SpecCounter:
    """Running 1-based position of specifications within one compile batch."""

    def __init__(self) -> None:
        self.value = 0

    def next_id(self) -> str:
        self.value += 1
        return f"spec-{self.value}"


# ---------------------------------------------------------------------------
# Wrapper dialect
# ---------------------------------------------------------------------------


def _json_array(node: etree._Element | None) -> list[Any] | None:
    if node is None:
        return None
    text = (node.text or "").strip()
    if not text.startswith("["):
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Malformed serialized array in <%s>", local_name(node))
        return None
    return parsed if isinstance(parsed, list) else None


def _wrapper_specs(root: etree._Element) -> list[etree._Element]:
    found: list[etree._Element] = []
    for node in root.iter():
        if local_name(node) != "Specification":
            continue
        for child in node:
            if local_name(child) in ("Applicability", "Requirements") and (
                child.text or ""
            ).strip().startswith("["):
                found.append(node)
                break
    return found


def _wrapper_entity_class(entry: Any) -> str | None:
    if isinstance(entry, str):
        return entry.strip() or None
    if not isinstance(entry, dict):
        return None
    for key in ("ifcClass", "IfcClass", "entity", "Entity"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    sample = entry.get("sample")
    if isinstance(sample, dict):
        for key in ("ifcClass", "IfcClass", "type", "Type"):
            value = sample.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _wrapper_path(raw: str) -> str:
    set_name, _, prop_name = raw.partition(".")
    if not prop_name:
        return normalize_token(raw)
    return property_path(set_name, prop_name)


def _wrapper_constraint(entry: Any, spec_id: str) -> PropertyConstraint | None:
    if not isinstance(entry, dict) or "propertyPath" not in entry:
        # Legacy snapshot entries carry no checkable rule
        return None
    path = _wrapper_path(str(entry.get("propertyPath") or ""))
    if not path:
        return None
    operator = str(entry.get("operator") or "exists").strip().lower()
    if operator not in _WRAPPER_OPERATORS:
        logger.warning(
            "Specification %s: unsupported operator %r on %s skipped",
            spec_id,
            operator,
            path,
        )
        return None
    expected: list[str] | None = None
    if operator == "equals":
        value = entry.get("value")
        if value is None or not str(value).strip():
            return None
        expected = [str(value).strip()]
    return PropertyConstraint(path=path, expected_values=expected)


def is_wrapper_document(root: etree._Element) -> bool:
    """True if *root* holds any wrapper-dialect specification."""
    return bool(_wrapper_specs(root))


def compile_wrapper(root: etree._Element, counter: SpecCounter) -> list[CompiledRule]:
    """Compile wrapper-dialect specifications found under *root*."""
    rules: list[CompiledRule] = []
    for node in _wrapper_specs(root):
        positional = counter.next_id()
        spec_id = attribute(node, "id") or positional
        name_node = child_named(node, "Name")
        title = attribute(node, "name") or (
            first_leaf_text(name_node) if name_node is not None else None
        ) or spec_id

        applicability = _json_array(child_named(node, "Applicability")) or []
        requirements = _json_array(child_named(node, "Requirements")) or []

        classes = [c for c in (_wrapper_entity_class(e) for e in applicability) if c]
        constraints = [
            c for c in (_wrapper_constraint(e, spec_id) for e in requirements) if c
        ]
        if not constraints:
            logger.info("Specification %s produced no property checks; dropped", spec_id)
            continue
        rules.append(
            CompiledRule(
                id=spec_id,
                title=title,
                applicability=Applicability(entity_classes=list(dict.fromkeys(classes))),
                properties=constraints,
            )
        )
    return rules


# ---------------------------------------------------------------------------
# IDS dialect
# ---------------------------------------------------------------------------


def _entity_classes(applicability: etree._Element | None) -> list[str]:
    if applicability is None:
        return []
    classes: list[str] = []
    for facet in applicability:
        if local_name(facet).lower() != "entity":
            continue
        name_node = child_named(facet, "name")
        classes.extend(v.strip() for v in read_values(name_node if name_node is not None else facet))
    return [c for c in dict.fromkeys(classes) if c]


def _facet_text(facet: etree._Element, *names: str) -> str | None:
    node = child_named(facet, *names)
    if node is None:
        return None
    return first_leaf_text(node)


def _facet_cardinality(facet: etree._Element) -> Cardinality | None:
    text = attribute(facet, "cardinality")
    if text is None:
        node = child_named(facet, "cardinality")
        text = first_leaf_text(node) if node is not None else None
    if text is not None:
        return parse_cardinality(text)
    return parse_occurs(attribute(facet, "minOccurs"), attribute(facet, "maxOccurs"))


def _facet_common(facet: etree._Element) -> dict[str, Any]:
    value_node = child_named(facet, "value")
    expected = read_values(value_node) if value_node is not None else []
    data_type = attribute(facet, "dataType", "datatype")
    description = attribute(facet, "instructions") or _facet_text(
        facet, "description", "instructions"
    )
    return {
        "expected_values": expected or None,
        "cardinality": _facet_cardinality(facet),
        "description": description,
        "data_type": data_type.upper() if data_type else None,
    }


def _property_constraint(facet: etree._Element) -> PropertyConstraint | None:
    set_name = _facet_text(facet, "propertySet")
    base_name = _facet_text(facet, "baseName") or _facet_text(facet, "name")
    if not set_name or not base_name:
        return None
    path = property_path(set_name, base_name)
    if not path:
        return None
    return PropertyConstraint(path=path, **_facet_common(facet))


def _attribute_constraint(facet: etree._Element) -> PropertyConstraint | None:
    name = normalize_token(_facet_text(facet, "name"))
    if not name:
        return None
    return PropertyConstraint(path=f"Attributes.{name}", **_facet_common(facet))


def _requirement_constraints(spec: etree._Element) -> list[PropertyConstraint]:
    containers = children_named(spec, "requirements", "requirement")
    if not containers:
        # Facets placed directly on the specification, minus its applicability
        containers = [
            child
            for child in spec
            if local_name(child).lower() not in ("applicability", "name", "description")
        ]
    constraints: list[PropertyConstraint] = []
    for container in containers:
        for node in container.iter():
            kind = local_name(node).lower()
            if kind == "property":
                constraint = _property_constraint(node)
            elif kind == "attribute":
                constraint = _attribute_constraint(node)
            else:
                continue
            if constraint is not None:
                constraints.append(constraint)
    return constraints


def compile_ids(root: etree._Element, counter: SpecCounter) -> list[CompiledRule]:
    """Compile every ``specification`` node found under *root*."""
    rules: list[CompiledRule] = []
    for spec in iter_named(root, "specification"):
        positional = counter.next_id()
        spec_id = attribute(spec, "identifier", "id") or positional
        title = attribute(spec, "name") or _facet_text(spec, "name") or spec_id
        constraints = _requirement_constraints(spec)
        if not constraints:
            logger.info("Specification %s produced no property checks; dropped", spec_id)
            continue
        rules.append(
            CompiledRule(
                id=spec_id,
                title=title,
                applicability=Applicability(
                    entity_classes=_entity_classes(child_named(spec, "applicability"))
                ),
                properties=constraints,
            )
        )
    return rules
