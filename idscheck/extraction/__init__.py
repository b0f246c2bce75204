"""Element extraction: raw element graphs to flattened property maps."""

from idscheck.extraction.identity import extract_global_id, resolve_entity_class, resolve_identity
from idscheck.extraction.pipeline import ExtractionPipeline
from idscheck.extraction.properties import flatten
from idscheck.extraction.sources import ElementSource, InMemorySource

__all__ = [
    "ElementSource",
    "ExtractionPipeline",
    "InMemorySource",
    "extract_global_id",
    "flatten",
    "resolve_entity_class",
    "resolve_identity",
]
