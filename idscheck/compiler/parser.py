"""Rule compiler entry point: rule-document text -> ``list[CompiledRule]``.

Usage::

    from idscheck.compiler import compile_rules

    rules = compile_rules(merge_documents([ids_a, ids_b]))
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from lxml import etree

from idscheck.compiler.dialects import (
    SpecCounter,
    compile_ids,
    compile_wrapper,
    is_wrapper_document,
)
from idscheck.compiler.rules import CompiledRule
from idscheck.errors import DocumentParseError

logger = logging.getLogger(__name__)

_PROLOGUE = re.compile(r"<\?xml[^>]*\?>")
# Markup tokens, in the order they must be tried
_MARKUP = re.compile(
    r"<!--.*?-->"
    r"|<!\[CDATA\[.*?\]\]>"
    r"|<\?.*?\?>"
    r"|<!(?:[^>\[]|\[[^\]]*\])*>"
    r"|</[^>]*>"
    r"|<(?:\"[^\"]*\"|'[^']*'|[^'\">])*>",
    re.DOTALL,
)
_START_TAG = re.compile(r"<([\w.:-]+)")
_BOM = "\ufeff"

_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
    huge_tree=True,
)


def merge_documents(texts: Iterable[str]) -> str:
    """Join several rule-document buffers into one text for compilation."""
    cleaned = [t.replace(_BOM, "").strip() for t in texts]
    return "\n\n".join(t for t in cleaned if t)


def _top_level_documents(text: str) -> list[str]:
    """Cut *text* after every element that closes at nesting depth zero.

    Prologues and comments before a root stay with that root.  An unclosed
    trailing root is returned as the last piece.
    """
    documents: list[str] = []
    depth = 0
    piece_start = 0
    for match in _MARKUP.finditer(text):
        token = match.group(0)
        if token.startswith(("<!", "<?")):
            continue
        if token.startswith("</"):
            depth = max(0, depth - 1)
        elif not token.endswith("/>"):
            depth += 1
            continue
        if depth == 0:
            documents.append(text[piece_start : match.end()].strip())
            piece_start = match.end()
    tail = text[piece_start:].strip()
    if tail:
        documents.append(tail)
    return [d for d in documents if d]


def split_documents(text: str) -> list[str]:
    """Cut a merged buffer back into its top-level XML documents.

    Documents are separated by their ``<?xml ...?>`` prologues, then by
    every root element that closes, whatever its name.
    """
    stripped = text.replace(_BOM, "").strip()
    if not stripped:
        return []

    starts = [m.start() for m in _PROLOGUE.finditer(stripped)]
    if not starts or starts[0] != 0:
        starts.insert(0, 0)
    pieces = [
        stripped[start:end].strip()
        for start, end in zip(starts, starts[1:] + [len(stripped)])
    ]

    documents: list[str] = []
    for piece in pieces:
        if piece:
            documents.extend(_top_level_documents(piece))
    return documents


def recover_documents(piece: str) -> list[str]:
    """Split an unparsable piece at each line that reopens its root element.

    A truncated document swallows the documents that follow it; every line
    starting with the same root element, under any namespace prefix, begins
    a new candidate document.
    """
    first = tag = None
    for match in _MARKUP.finditer(piece):
        tag = _START_TAG.match(match.group(0))
        if tag is not None:
            first = match
            break
    if first is None or tag is None:
        return [piece]
    local = tag.group(1).rpartition(":")[2]
    reopen = re.compile(
        rf"^[ \t]*<(?:[\w.-]+:)?{re.escape(local)}(?![\w.:-])", re.MULTILINE
    )
    starts = [0] + [m.start() for m in reopen.finditer(piece) if m.start() > first.start()]
    if len(starts) < 2:
        return [piece]
    return [
        piece[start:end].strip()
        for start, end in zip(starts, starts[1:] + [len(piece)])
    ]


def parse_document(text: str, index: int = 0) -> etree._Element:
    """Parse one document; raise :class:`DocumentParseError` on failure."""
    try:
        root = etree.fromstring(text.encode("utf-8"), parser=_PARSER)
    except etree.XMLSyntaxError as exc:
        raise DocumentParseError(f"Document {index + 1}: {exc}", index) from exc
    if root is None:
        raise DocumentParseError(f"Document {index + 1}: empty document", index)
    return root


def _parse_all(documents: list[str]) -> list[etree._Element]:
    roots: list[etree._Element] = []
    for index, document in enumerate(documents):
        try:
            roots.append(parse_document(document, index))
            continue
        except DocumentParseError as exc:
            candidates = recover_documents(document)
            if len(candidates) < 2:
                logger.warning("Skipping rule document: %s", exc)
                continue
        logger.info("Document %d is malformed; retrying as %d documents", index + 1, len(candidates))
        for candidate in candidates:
            try:
                roots.append(parse_document(candidate, index))
            except DocumentParseError as exc:
                logger.warning("Skipping rule document: %s", exc)
    return roots


def compile_rules(text: str | Iterable[str]) -> list[CompiledRule]:
    """Compile rule-document text into normalized rules.

    Parameters
    ----------
    text:
        One rule-document buffer, or an iterable of buffers.  Each buffer
        may hold several documents, e.g. the output of
        :func:`merge_documents`.

    Returns
    -------
    list[CompiledRule]
        Rules in document order.  Specifications without any usable
        constraint are left out; a document that fails to parse is logged
        and skipped without affecting the others.
    """
    buffers = [text] if isinstance(text, str) else list(text)
    documents = [d for buffer in buffers for d in split_documents(buffer)]
    roots = _parse_all(documents)

    counter = SpecCounter()
    compiled: list[CompiledRule] = []
    for root in roots:
        if is_wrapper_document(root):
            rules = compile_wrapper(root, counter)
        else:
            rules = compile_ids(root, counter)
        compiled.extend(rules)
    logger.debug("Compiled %d rules from %d documents", len(compiled), len(documents))
    return compiled
