"""Namespace-agnostic helpers over ``lxml`` element trees."""

from __future__ import annotations

from typing import Iterator

from lxml import etree


def local_name(node: etree._Element) -> str:
    """Return the tag of *node* without namespace, or '' for comments/PIs."""
    if not isinstance(node.tag, str):
        return ""
    return etree.QName(node).localname


def iter_named(root: etree._Element, name: str) -> Iterator[etree._Element]:
    """Yield nodes under *root* (inclusive, depth-first) whose local name
    equals *name* case-insensitively."""
    wanted = name.lower()
    for node in root.iter():
        if local_name(node).lower() == wanted:
            yield node


def children_named(node: etree._Element, *names: str) -> list[etree._Element]:
    """Direct children of *node* matching any of *names* (case-insensitive)."""
    wanted = {n.lower() for n in names}
    return [child for child in node if local_name(child).lower() in wanted]


def child_named(node: etree._Element, *names: str) -> etree._Element | None:
    found = children_named(node, *names)
    return found[0] if found else None


def attribute(node: etree._Element, *names: str) -> str | None:
    """First non-empty attribute among *names*, matched without namespace
    and case-insensitively."""
    wanted = [n.lower() for n in names]
    by_local = {}
    for key, value in node.attrib.items():
        local = etree.QName(key).localname.lower()
        by_local.setdefault(local, value)
    for name in wanted:
        value = by_local.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def first_leaf_text(node: etree._Element) -> str | None:
    """Walk *node* depth-first to the first leaf carrying text.

    A leaf's ``value`` attribute counts as its text, which covers
    ``<xs:enumeration value="..."/>`` style restrictions.
    """
    for current in node.iter():
        if not isinstance(current.tag, str):
            continue
        has_children = any(isinstance(child.tag, str) for child in current)
        if has_children:
            continue
        text = (current.text or "").strip()
        if text:
            return text
        value = attribute(current, "value")
        if value:
            return value
    return None


def read_values(node: etree._Element) -> list[str]:
    """Return every value a facet parameter allows.

    Enumerations contribute one value each; otherwise the first leaf text is
    the single value.  Restrictions without enumerations (patterns, bounds,
    lengths) cannot be reduced to a value list and yield nothing.
    """
    enumerated = [
        value
        for value in (attribute(e, "value") for e in iter_named(node, "enumeration"))
        if value
    ]
    if enumerated:
        return list(dict.fromkeys(enumerated))
    if next(iter_named(node, "restriction"), None) is not None:
        return []
    text = first_leaf_text(node)
    return [text] if text else []
