"""idscheck: validate building-model elements against IDS requirement documents."""

__version__ = "1.0.0"

from idscheck.cache import MemoryCache, PropertiesCache, RuleCache, compute_scan_key
from idscheck.compiler import CompiledRule, compile_rules, merge_documents, split_documents
from idscheck.compliance import DetailRow, RuleSummary, ValidationExecutor, ValidationResult
from idscheck.errors import (
    CancelledError,
    ExtractionSourceError,
    IdsCheckError,
    NoElementsError,
    NoRulesError,
)
from idscheck.export import to_csv, to_json, write_csv, write_json
from idscheck.extraction import ElementSource, ExtractionPipeline, InMemorySource, flatten
from idscheck.models import FlattenedElement, RawElementRecord
from idscheck.progress import CancelToken, ScanProgress
from idscheck.session import DocumentSource, Phase, ValidationSession

__all__ = [
    "CancelToken",
    "CancelledError",
    "CompiledRule",
    "DetailRow",
    "DocumentSource",
    "ElementSource",
    "ExtractionPipeline",
    "ExtractionSourceError",
    "FlattenedElement",
    "IdsCheckError",
    "InMemorySource",
    "MemoryCache",
    "NoElementsError",
    "NoRulesError",
    "Phase",
    "PropertiesCache",
    "RawElementRecord",
    "RuleCache",
    "RuleSummary",
    "ScanProgress",
    "ValidationExecutor",
    "ValidationResult",
    "ValidationSession",
    "compile_rules",
    "compute_scan_key",
    "flatten",
    "merge_documents",
    "split_documents",
    "to_csv",
    "to_json",
    "write_csv",
    "write_json",
]
