"""Shared data models."""

from idscheck.models.element import FlattenedElement, RawElementRecord

__all__ = ["FlattenedElement", "RawElementRecord"]
