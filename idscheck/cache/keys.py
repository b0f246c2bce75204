"""Content-addressed cache keys using stdlib hashlib (SHA-256)."""

from __future__ import annotations

import hashlib
from typing import Iterable


def hash_text(text: str) -> str:
    """Return the SHA-256 hex digest of *text*."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_scan_key(identities: Iterable[str], count: int | None = None) -> str:
    """Return the cache key of a scan over *identities*.

    Identities are sorted so the key does not depend on source order.  The
    optional element *count* is mixed in so a source that reports a different
    size under the same identities gets its own entry.
    """
    h = hashlib.sha256()
    h.update("|".join(sorted(identities)).encode("utf-8"))
    if count is not None:
        h.update(f"#{count}".encode("utf-8"))
    return h.hexdigest()
