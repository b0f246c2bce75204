"""Normalization of property-set, property and attribute names into path tokens."""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")
_QUOTES = re.compile(r"[\"'`]")
_ILLEGAL = re.compile(r"[^a-zA-Z0-9_.:\-]+")
_UNDERSCORES = re.compile(r"_{2,}")


def normalize_token(value: str | None) -> str:
    """Return *value* as a path token.

    Whitespace becomes ``_``, quotes are stripped, any other character outside
    ``[a-zA-Z0-9_.:-]`` becomes ``_``; runs of underscores collapse and leading
    or trailing underscores are trimmed.

    Example: ``normalize_token(" Fire Rating (min) ")`` returns
    ``"Fire_Rating_min"``.
    """
    if not value:
        return ""
    text = _WHITESPACE.sub("_", value.strip())
    text = _QUOTES.sub("", text)
    text = _ILLEGAL.sub("_", text)
    text = _UNDERSCORES.sub("_", text)
    return text.strip("_")


def property_path(set_name: str, property_name: str) -> str:
    """Join a set name and a property name into a ``Set.Property`` path.

    Returns an empty string when either side normalizes to nothing.
    """
    left = normalize_token(set_name)
    right = normalize_token(property_name)
    if not left or not right:
        return ""
    return f"{left}.{right}"
