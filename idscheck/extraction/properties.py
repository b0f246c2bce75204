"""Flatten raw element graphs into ``{"Pset.Property": value}`` maps.

Entry point: ``flatten(raw, known_class=None)``

Property sets are discovered by an ordered list of named strategies, each
yielding ``(set_name, set_object)`` pairs.  A set object either exposes a
properties collection (``HasProperties`` and friends) or is a plain mapping
whose own fields are its properties.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

from idscheck.config import (
    PROPERTY_COLLECTION_KEYS,
    PSET_CONTAINER_KEYS,
    PSET_METADATA_KEYS,
)
from idscheck.errors import IdentityMissing
from idscheck.extraction.identity import resolve_entity_class, resolve_identity
from idscheck.extraction.values import property_value, scalar_or_none
from idscheck.models.element import FlattenedElement
from idscheck.tokens import normalize_token

logger = logging.getLogger(__name__)

_RELATION_TARGET_KEYS = ("RelatingPropertyDefinition", "relatingPropertyDefinition")
_ROOT_SET_PREFIXES = ("pset_", "qto_")
_NAME_KEYS = frozenset({"Name", "name"})

PsetStrategy = Callable[[dict[str, Any]], Iterator[tuple[str, list[Any]]]]


def _text(value: Any) -> str | None:
    text = scalar_or_none(value)
    return text if text else None


def _pset_name(pset: dict[str, Any], fallback: str | None = None) -> str:
    for key in ("Name", "name"):
        name = _text(pset.get(key))
        if name:
            return name
    if fallback:
        return fallback
    for key in ("GlobalId", "GlobalID", "id"):
        name = _text(pset.get(key))
        if name:
            return name
    return "Property Set"


def _relation_target(item: dict[str, Any]) -> dict[str, Any]:
    """Step through an ``IfcRelDefinesByProperties``-style relation object."""
    for key in _RELATION_TARGET_KEYS:
        target = item.get(key)
        if isinstance(target, dict):
            return target
    return item


def _container_entries(value: Any) -> Iterator[tuple[str | None, dict[str, Any]]]:
    """Yield ``(key, set_object)`` from an array- or object-shaped container."""
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                yield None, _relation_target(item)
    elif isinstance(value, dict):
        if any(key in value for key in PROPERTY_COLLECTION_KEYS):
            # A single set object rather than a name -> set mapping
            yield None, _relation_target(value)
            return
        for key, item in value.items():
            if isinstance(item, dict):
                yield str(key), _relation_target(item)


# ---------------------------------------------------------------------------
# Property-set discovery strategies
# ---------------------------------------------------------------------------


def _from_relation_containers(raw: dict[str, Any]) -> Iterator[tuple[str, list[Any]]]:
    for key in PSET_CONTAINER_KEYS:
        if key not in raw:
            continue
        for name_key, pset in _container_entries(raw[key]):
            yield _named_set(pset, name_key)


def _from_root_set_keys(raw: dict[str, Any]) -> Iterator[tuple[str, list[Any]]]:
    for key, value in raw.items():
        if str(key).lower().startswith(_ROOT_SET_PREFIXES) and isinstance(value, dict):
            yield _named_set(value, str(key))


PSET_STRATEGIES: list[tuple[str, PsetStrategy]] = [
    ("relation_containers", _from_relation_containers),
    ("root_set_keys", _from_root_set_keys),
]


# ---------------------------------------------------------------------------
# Properties of one set
# ---------------------------------------------------------------------------


def _has_collection(pset: dict[str, Any]) -> bool:
    return any(isinstance(pset.get(key), (list, dict)) for key in PROPERTY_COLLECTION_KEYS)


def _own_fields(pset: dict[str, Any], skip: frozenset[str]) -> list[Any]:
    return [
        {"Name": key, "NominalValue": value}
        for key, value in pset.items()
        if key not in skip
    ]


def _property_collection(pset: dict[str, Any]) -> list[Any]:
    """Return the set's properties, synthesizing them from own fields if needed."""
    collected: list[Any] = []
    found = False
    for key in PROPERTY_COLLECTION_KEYS:
        value = pset.get(key)
        if isinstance(value, list):
            collected.extend(value)
            found = True
        elif isinstance(value, dict):
            collected.extend(
                {"Name": name, "NominalValue": entry} for name, entry in value.items()
            )
            found = True
    if found:
        return collected
    return _own_fields(pset, PSET_METADATA_KEYS)


def _named_set(pset: dict[str, Any], key: str | None) -> tuple[str, list[Any]]:
    """Name one discovered set and list its properties.

    A set reached through a ``name -> set`` mapping and holding its
    properties as plain fields is named by the mapping key; its ``Name``
    field is then an ordinary property.
    """
    if key and not _has_collection(pset):
        return key, _own_fields(pset, PSET_METADATA_KEYS - _NAME_KEYS)
    return _pset_name(pset, fallback=key), _property_collection(pset)


def _property_name(prop: dict[str, Any], index: int) -> str:
    for key in ("Name", "PropertyName", "name"):
        name = _text(prop.get(key))
        if name:
            return name
    return f"Property {index + 1}"


def extract_property_rows(raw: dict[str, Any]) -> list[tuple[str, str, str]]:
    """Return ``(set_name, property_name, value)`` rows in discovery order."""
    rows: list[tuple[str, str, str]] = []
    for strategy_name, strategy in PSET_STRATEGIES:
        for set_name, props in strategy(raw):
            for index, prop in enumerate(props):
                if not isinstance(prop, dict):
                    continue
                rows.append((set_name, _property_name(prop, index), property_value(prop)))
        logger.debug("Strategy %s: %d rows so far", strategy_name, len(rows))
    return rows


def flatten_psets(rows: list[tuple[str, str, str]]) -> dict[str, str]:
    """Flatten rows into ``{"Pset_Name.Property": value}``.

    The first value seen for a path wins; later duplicates are ignored.
    """
    flat: dict[str, str] = {}
    for set_name, prop_name, value in rows:
        pset_token = normalize_token(set_name)
        prop_token = normalize_token(prop_name)
        if not pset_token or not prop_token:
            continue
        path = f"{pset_token}.{prop_token}"
        if path in flat:
            if flat[path] != value:
                logger.debug("Duplicate property %s: keeping first value", path)
            continue
        flat[path] = value
    return flat


def extract_attributes(raw: dict[str, Any]) -> dict[str, str]:
    """Top-level scalar fields as ``{"Attributes.<Name>": value}``."""
    attributes: dict[str, str] = {}
    for key, value in raw.items():
        text = scalar_or_none(value)
        if text is None:
            continue
        token = normalize_token(str(key))
        if token:
            attributes.setdefault(f"Attributes.{token}", text)
    return attributes


def flatten(
    raw: Any,
    known_class: str | None = None,
    *,
    global_id: str | None = None,
) -> FlattenedElement | None:
    """Flatten one raw element graph.

    Parameters
    ----------
    raw:
        The element's raw data graph.
    known_class:
        Entity class already known to the caller; wins over the graph.
    global_id:
        Identity already known to the caller; wins over the graph.

    Returns
    -------
    FlattenedElement | None
        *None* when no identity can be derived; the element is dropped.
    """
    if not isinstance(raw, dict):
        logger.debug("Dropping element: raw data is %s, not a mapping", type(raw).__name__)
        return None
    try:
        identity = global_id.strip() if global_id and global_id.strip() else resolve_identity(raw)
    except IdentityMissing:
        logger.debug("Dropping element without GlobalId", exc_info=True)
        return None

    entity_class = resolve_entity_class(raw, known_class)

    properties = flatten_psets(extract_property_rows(raw))
    properties["GlobalId"] = identity
    properties["ifcClass"] = entity_class
    properties["Attributes.ifcClass"] = entity_class
    for path, value in extract_attributes(raw).items():
        properties.setdefault(path, value)

    return FlattenedElement(
        global_id=identity,
        entity_class=entity_class,
        properties=properties,
    )
