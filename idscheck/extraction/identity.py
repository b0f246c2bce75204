"""Element identity and entity-class resolution.

Raw element graphs spell their identity and class in many ways.  Each way is
a small named strategy; resolution tries them in priority order and stops at
the first hit, so a new source shape means one more strategy rather than
another branch in a long conditional.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Any, Callable, Iterable

from idscheck.config import (
    CATEGORY_KEYS,
    CLASS_KEYS,
    CLASS_KEYWORDS,
    DEFAULT_ENTITY_CLASS,
    GLOBAL_ID_KEYS,
    GLOBAL_ID_KEYWORDS,
    NON_ENTITY_CLASS_PATTERNS,
)
from idscheck.errors import IdentityMissing
from idscheck.extraction.values import scalar_or_none

logger = logging.getLogger(__name__)

_NON_ENTITY = re.compile(
    r"^(?:" + "|".join(NON_ENTITY_CLASS_PATTERNS) + r")$", re.IGNORECASE
)
_CLASS_LIKE = re.compile(r"^ifc[a-z0-9_]+$", re.IGNORECASE)

Strategy = Callable[[dict[str, Any]], "str | None"]


def is_entity_class_token(value: str) -> bool:
    """False for value-type tokens such as ``IFCLABEL`` or ``IFCLENGTHMEASURE``."""
    text = value.strip() if value else ""
    return bool(text) and not text.isdigit() and not _NON_ENTITY.match(text)


def find_by_keywords(
    source: Any,
    keywords: Iterable[str],
    accept: Callable[[str], bool] | None = None,
) -> str | None:
    """Breadth-first search for the first scalar under a key containing a keyword.

    Keys are matched case-insensitively by substring.  Wrapped scalars
    (``{"value": ...}``) count.  Values rejected by *accept* are skipped and
    the search continues.
    """
    if not isinstance(source, (dict, list)):
        return None
    lowered = [k.lower() for k in keywords]
    seen: set[int] = set()
    queue: deque[Any] = deque([source])
    while queue:
        current = queue.popleft()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, list):
            queue.extend(v for v in current if isinstance(v, (dict, list)))
            continue
        for key, value in current.items():
            key_lower = str(key).lower()
            if any(k in key_lower for k in lowered):
                text = scalar_or_none(value)
                if text and (accept is None or accept(text)):
                    return text
            if isinstance(value, (dict, list)):
                queue.append(value)
    return None


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


def _identity_from_known_fields(raw: dict[str, Any]) -> str | None:
    for key in GLOBAL_ID_KEYS:
        if key in raw:
            text = scalar_or_none(raw[key])
            if text:
                return text
    return None


def _identity_from_keywords(raw: dict[str, Any]) -> str | None:
    return find_by_keywords(raw, GLOBAL_ID_KEYWORDS)


IDENTITY_STRATEGIES: list[tuple[str, Strategy]] = [
    ("known_fields", _identity_from_known_fields),
    ("keyword_search", _identity_from_keywords),
]


def resolve_identity(raw: Any) -> str:
    """Return the element's GlobalId or raise :class:`IdentityMissing`."""
    if isinstance(raw, dict):
        for name, strategy in IDENTITY_STRATEGIES:
            found = strategy(raw)
            if found:
                logger.debug("Identity %s resolved by %s", found, name)
                return found
    raise IdentityMissing("No GlobalId found in element data")


def extract_global_id(raw: Any) -> str | None:
    """Like :func:`resolve_identity` but returns *None* when absent."""
    try:
        return resolve_identity(raw)
    except IdentityMissing:
        return None


# ---------------------------------------------------------------------------
# Entity class
# ---------------------------------------------------------------------------


def _accept_class(text: str | None) -> str | None:
    if text and is_entity_class_token(text):
        return text.strip()
    return None


def _class_from_explicit_field(raw: dict[str, Any]) -> str | None:
    for key in CLASS_KEYS:
        found = _accept_class(scalar_or_none(raw.get(key)))
        if found:
            return found
    for holder_key, key in (("attributes", "ifcClass"), ("Attributes", "IfcClass")):
        holder = raw.get(holder_key)
        if isinstance(holder, dict):
            found = _accept_class(scalar_or_none(holder.get(key)))
            if found:
                return found
    return None


def _class_from_category(raw: dict[str, Any]) -> str | None:
    for key in CATEGORY_KEYS:
        found = _accept_class(scalar_or_none(raw.get(key)))
        if found:
            return found
    return None


def _looks_like_class(text: str) -> bool:
    return is_entity_class_token(text) and bool(_CLASS_LIKE.match(text.strip()))


def _class_from_keywords(raw: dict[str, Any]) -> str | None:
    # Free-text "type" fields (PredefinedType, ObjectType) only count when
    # they name an IFC class
    return _accept_class(find_by_keywords(raw, CLASS_KEYWORDS, accept=_looks_like_class))


CLASS_STRATEGIES: list[tuple[str, Strategy]] = [
    ("explicit_field", _class_from_explicit_field),
    ("category_wrapper", _class_from_category),
    ("keyword_search", _class_from_keywords),
]


def resolve_entity_class(raw: Any, known_class: str | None = None) -> str:
    """Return the entity class of *raw*.

    Order: *known_class*, explicit class field, ``category`` wrapper, keyword
    search, then :data:`DEFAULT_ENTITY_CLASS`.
    """
    known = _accept_class(known_class)
    if known:
        return known
    if isinstance(raw, dict):
        for _name, strategy in CLASS_STRATEGIES:
            found = strategy(raw)
            if found:
                return found
    return DEFAULT_ENTITY_CLASS
