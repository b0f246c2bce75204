"""PropertiesCache: SQLite-backed store of flattened scans.

Uses stdlib sqlite3 only.  Every persistence failure is turned into
:class:`CacheError` internally, logged, and degraded to a miss or a no-op so
a broken cache file never fails a validation run.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from idscheck.errors import CacheError
from idscheck.models.element import FlattenedElement

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS scans (
    key TEXT PRIMARY KEY,
    elements TEXT NOT NULL,
    element_count INTEGER NOT NULL,
    timestamp REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_scans_timestamp ON scans(timestamp);
"""


class CacheEntry(BaseModel):
    """One cached scan."""

    elements: list[FlattenedElement] = Field(default_factory=list)
    timestamp: float = 0.0
    count: int = 0


class PropertiesCache:
    """Persistent ``scan key -> list[FlattenedElement]`` store.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Use ``':memory:'`` for an
        in-memory database (useful for testing).
    clock:
        Source of timestamps, ``time.time`` by default.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = str(db_path)
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        """Lazy-initialise and return the database connection."""
        if self._conn is None:
            try:
                if self._db_path != ":memory:":
                    Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self._db_path, check_same_thread=False)
                conn.executescript(_SCHEMA_SQL)
                conn.commit()
            except (sqlite3.Error, OSError) as exc:
                raise CacheError(f"Cannot open cache {self._db_path}: {exc}") from exc
            self._conn = conn
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> PropertiesCache:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _execute(self, sql: str, params: tuple[Any, ...] = (), *, commit: bool = False) -> sqlite3.Cursor:
        with self._lock:
            try:
                cur = self.conn.execute(sql, params)
                if commit:
                    self.conn.commit()
                return cur
            except sqlite3.Error as exc:
                raise CacheError(str(exc)) from exc

    # -- Entries -------------------------------------------------------------

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the full entry for *key*, or *None* on a miss or failure."""
        try:
            row = self._execute(
                "SELECT elements, element_count, timestamp FROM scans WHERE key = ?",
                (key,),
            ).fetchone()
        except CacheError as exc:
            logger.warning("Properties cache read failed: %s", exc)
            return None
        if row is None:
            return None
        try:
            payload = json.loads(row[0])
            elements = [FlattenedElement.model_validate(e) for e in payload]
        except (json.JSONDecodeError, TypeError, ValidationError):
            logger.warning("Discarding corrupt cache entry %s", key[:12])
            self.remove(key)
            return None
        return CacheEntry(elements=elements, count=row[1], timestamp=row[2])

    def get(self, key: str) -> list[FlattenedElement] | None:
        entry = self.get_entry(key)
        return entry.elements if entry is not None else None

    def set(self, key: str, elements: list[FlattenedElement]) -> bool:
        """Store *elements* under *key*.  Returns False if the write failed."""
        payload = json.dumps([e.to_dict() for e in elements], ensure_ascii=False)
        try:
            self._execute(
                "INSERT OR REPLACE INTO scans (key, elements, element_count, timestamp) "
                "VALUES (?, ?, ?, ?)",
                (key, payload, len(elements), self._clock()),
                commit=True,
            )
        except CacheError as exc:
            logger.warning("Properties cache write failed: %s", exc)
            return False
        return True

    def remove(self, key: str) -> bool:
        try:
            cur = self._execute("DELETE FROM scans WHERE key = ?", (key,), commit=True)
        except CacheError as exc:
            logger.warning("Properties cache delete failed: %s", exc)
            return False
        return cur.rowcount > 0

    def keys(self) -> list[str]:
        try:
            rows = self._execute("SELECT key FROM scans ORDER BY timestamp").fetchall()
        except CacheError as exc:
            logger.warning("Properties cache listing failed: %s", exc)
            return []
        return [r[0] for r in rows]

    def purge_older_than(self, max_age_seconds: float) -> int:
        """Delete entries older than *max_age_seconds*; return how many."""
        cutoff = self._clock() - max_age_seconds
        try:
            cur = self._execute(
                "DELETE FROM scans WHERE timestamp < ?", (cutoff,), commit=True
            )
        except CacheError as exc:
            logger.warning("Properties cache purge failed: %s", exc)
            return 0
        if cur.rowcount:
            logger.info("Purged %d cached scans", cur.rowcount)
        return cur.rowcount

    def clear(self) -> None:
        try:
            self._execute("DELETE FROM scans", commit=True)
        except CacheError as exc:
            logger.warning("Properties cache clear failed: %s", exc)
