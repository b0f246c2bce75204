"""Rule compiler: IDS rule documents to normalized rules."""

from idscheck.compiler.parser import (
    compile_rules,
    merge_documents,
    recover_documents,
    split_documents,
)
from idscheck.compiler.rules import (
    Applicability,
    Cardinality,
    CompiledRule,
    PropertyConstraint,
)

__all__ = [
    "Applicability",
    "Cardinality",
    "CompiledRule",
    "PropertyConstraint",
    "compile_rules",
    "merge_documents",
    "recover_documents",
    "split_documents",
]
