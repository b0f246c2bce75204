"""Reduce arbitrary property values to scalar strings."""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from typing import Any

from idscheck.config import MAX_UNWRAP_DEPTH, MAX_VALUE_LENGTH, PROPERTY_VALUE_KEYS

# Wrapper keys that hold the real value of a value-holder object
_WRAPPER_KEYS = ("value", "Value", "wrappedValue", "WrappedValue")


def format_primitive(value: Any) -> str:
    """Render a primitive the way the source data spells it.

    Integral floats drop their ``.0`` so ``60.0`` and ``60`` compare equal as
    text; non-finite numbers render as ''.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    return _capped_json(value)


def _capped_json(value: Any) -> str:
    try:
        text = json.dumps(value, sort_keys=True, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        text = str(value)
    if len(text) > MAX_VALUE_LENGTH:
        return text[:MAX_VALUE_LENGTH] + "…"
    return text


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _vector(value: Any) -> list[Any] | None:
    if isinstance(value, dict):
        if all(_is_number(value.get(axis)) for axis in ("x", "y", "z")):
            return [value["x"], value["y"], value["z"]]
        return None
    if isinstance(value, (list, tuple)) and len(value) == 3 and all(map(_is_number, value)):
        return list(value)
    return None


def unwrap_value(value: Any, depth: int = 0) -> str:
    """Unwrap chained value-holder wrappers down to a primitive string.

    ``{"value": {"value": 3.0}}`` -> ``"3"``; ``{"x": 1, "y": 2, "z": 0}`` ->
    ``"1, 2, 0"``; lists join their non-empty members with ``", "``;
    anything else falls back to capped JSON.
    """
    if value is None:
        return ""
    if depth > MAX_UNWRAP_DEPTH:
        return _capped_json(value)
    if isinstance(value, dict):
        for key in _WRAPPER_KEYS:
            if key in value:
                return unwrap_value(value[key], depth + 1)
        vector = _vector(value)
        if vector is not None:
            return ", ".join(format_primitive(v) for v in vector)
        return _capped_json(value)
    if isinstance(value, (list, tuple)):
        vector = _vector(value)
        if vector is not None:
            return ", ".join(format_primitive(v) for v in vector)
        parts = [unwrap_value(entry, depth + 1) for entry in value]
        return ", ".join(p for p in parts if p)
    return format_primitive(value)


def property_value(prop: Any) -> str:
    """Extract the value text of one property object.

    The first present, non-null key of :data:`PROPERTY_VALUE_KEYS` wins.
    A bare primitive is its own value.
    """
    if not isinstance(prop, dict):
        return unwrap_value(prop)
    for key in PROPERTY_VALUE_KEYS:
        if key in prop and prop[key] is not None:
            return unwrap_value(prop[key])
    return ""


def scalar_or_none(value: Any) -> str | None:
    """Return the text of *value* if it is a scalar or a wrapped scalar."""
    if isinstance(value, dict):
        for key in _WRAPPER_KEYS:
            if key in value:
                inner = value[key]
                if isinstance(inner, (str, int, float, bool)):
                    return format_primitive(inner)
        return None
    if isinstance(value, (str, int, float, bool)):
        return format_primitive(value)
    return None
