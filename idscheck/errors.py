"""Exception taxonomy.

Only :class:`NoRulesError`, :class:`NoElementsError`,
:class:`ExtractionSourceError` and :class:`CancelledError` reach callers of a
validation run.  The others are raised where the condition is detected and
absorbed by the component that degrades: the compiler skips a document, the
flattener drops an element, the cache reports a miss.
"""

from __future__ import annotations


class IdsCheckError(Exception):
    """Base class for all idscheck errors."""


class DocumentParseError(IdsCheckError):
    """One rule document could not be parsed."""

    def __init__(self, message: str, index: int = 0) -> None:
        super().__init__(message)
        self.index = index


class ExtractionSourceError(IdsCheckError):
    """The element source failed and no extraction strategy recovered."""


class IdentityMissing(IdsCheckError):
    """A raw element graph carries no usable GlobalId."""


class CacheError(IdsCheckError):
    """A persistence operation of the properties cache failed."""


class CancelledError(IdsCheckError):
    """A run observed cooperative cancellation."""


class NoRulesError(IdsCheckError):
    """No usable rule content was loaded."""


class NoElementsError(IdsCheckError):
    """The element source yielded zero elements."""
