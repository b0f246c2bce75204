"""ValidationSession: one scan/validate cycle at a time over loaded rule documents.

Usage::

    from idscheck import InMemorySource, ValidationSession

    session = ValidationSession()
    session.set_rule_text(ids_xml)
    result = session.run_check(InMemorySource(graphs))
    failures = session.filter_rows(lambda row: row.status == "FAILED")

The session owns no module-level state.  Its caches are passed in (or
created per session) and dropped with :meth:`invalidate_caches`.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable

from pydantic import BaseModel, Field

from idscheck.cache.memory import MemoryCache, RuleCache
from idscheck.cache.store import PropertiesCache
from idscheck.compiler import merge_documents
from idscheck.compliance.engine import ValidationExecutor
from idscheck.compliance.report import DetailRow, RuleSummary, ValidationResult
from idscheck.config import DEFAULT_CACHE_PATH
from idscheck.errors import CancelledError, IdsCheckError, NoElementsError, NoRulesError
from idscheck.extraction.pipeline import ExtractionPipeline
from idscheck.extraction.sources import ElementSource
from idscheck.progress import CancelToken, ProgressCallback, ScanProgress

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "IDLE"
    BUILDING_PROPERTIES = "BUILDING_PROPERTIES"
    CHECKING_IDS = "CHECKING_IDS"
    COMPARING_DATA = "COMPARING_DATA"
    FINALIZING = "FINALIZING"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class DocumentSource:
    """One loaded rule document."""

    name: str
    content: str


RowPredicate = Callable[[DetailRow], bool]


class SessionState(BaseModel):
    """Snapshot of a session, safe to hand to observers."""

    rule_text: str = ""
    documents: list[str] = Field(default_factory=list)
    file_names: list[str] = Field(default_factory=list)
    is_checking: bool = False
    phase: Phase = Phase.IDLE
    progress: ScanProgress | None = None
    rules: list[RuleSummary] = Field(default_factory=list)
    rows: list[DetailRow] = Field(default_factory=list)
    filtered_rows: list[DetailRow] = Field(default_factory=list)
    filter_description: str | None = None
    error: str | None = None
    last_run_at: float | None = None


class ValidationSession:
    """Hold rule documents and run single-flight validation checks.

    Parameters
    ----------
    pipeline:
        Extraction pipeline.  When omitted, one is created with a memo and a
        persistent properties cache at *cache_path*.
    executor:
        Validation executor; the default chunk size is used when omitted.
    rule_cache:
        Memo of compiled rules keyed by rule-text hash.
    cache_path:
        SQLite file of the default pipeline's properties cache; *None*
        keeps extracted elements in memory only.  Ignored with *pipeline*.
    """

    def __init__(
        self,
        pipeline: ExtractionPipeline | None = None,
        executor: ValidationExecutor | None = None,
        rule_cache: RuleCache | None = None,
        *,
        cache_path: str | Path | None = DEFAULT_CACHE_PATH,
    ) -> None:
        if pipeline is None:
            cache = PropertiesCache(cache_path) if cache_path is not None else None
            pipeline = ExtractionPipeline(cache=cache, memory=MemoryCache())
        self.pipeline = pipeline
        self.executor = executor or ValidationExecutor()
        self.rule_cache = rule_cache if rule_cache is not None else RuleCache()
        self._state = SessionState()
        self._state_lock = threading.RLock()
        self._run_lock = threading.Lock()
        self._inflight: Future[ValidationResult] | None = None
        self._cancel: CancelToken | None = None
        self._listeners: list[Callable[[SessionState], None]] = []

    # -- State ---------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state.model_copy(deep=True)

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """Call *listener* with a fresh snapshot on every state change.

        Returns a function that removes the listener.
        """
        with self._state_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._state_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes: object) -> None:
        with self._state_lock:
            self._state = self._state.model_copy(update=changes)
            snapshot = self._state
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.warning("Session listener failed", exc_info=True)

    def _reset_results(self) -> None:
        self._update(
            rules=[],
            rows=[],
            filtered_rows=[],
            filter_description=None,
            is_checking=False,
            phase=Phase.IDLE,
            progress=None,
        )

    # -- Rule documents ------------------------------------------------------

    def set_rule_text(self, text: str, file_names: list[str] | None = None) -> None:
        """Replace the loaded rule text; previous results are discarded."""
        self._set_documents([text], list(file_names or []))

    def _set_documents(self, documents: list[str], file_names: list[str]) -> None:
        # Buffers are compiled one by one so a malformed one stays isolated
        kept = [d for d in documents if d.strip()]
        self._update(
            rule_text=merge_documents(kept),
            documents=kept,
            file_names=file_names,
            error=None,
        )
        self._reset_results()

    def append_documents(self, sources: Iterable[DocumentSource]) -> None:
        """Append rule documents to the loaded text."""
        sources = list(sources)
        if not sources:
            return
        current = self.state
        self._set_documents(
            current.documents + [s.content for s in sources],
            current.file_names + [s.name for s in sources],
        )

    # -- Results -------------------------------------------------------------

    def clear_results(self) -> None:
        self._reset_results()

    def filter_rows(self, predicate: RowPredicate | None, description: str | None = None) -> list[DetailRow]:
        """Narrow the visible rows; *None* shows every row again.

        A predicate that raises keeps the row.
        """
        rows = self.state.rows
        if predicate is None:
            self._update(filtered_rows=list(rows), filter_description=None)
            return list(rows)

        filtered: list[DetailRow] = []
        for row in rows:
            try:
                keep = predicate(row)
            except Exception:
                logger.warning("Row filter predicate failed", exc_info=True)
                keep = True
            if keep:
                filtered.append(row)
        self._update(filtered_rows=filtered, filter_description=description)
        return filtered

    def invalidate_caches(self) -> None:
        """Drop memoized elements and compiled rules."""
        if self.pipeline.memory is not None:
            self.pipeline.memory.clear()
        self.rule_cache.clear()
        self._update(is_checking=False, phase=Phase.IDLE, progress=None)
        logger.info("Session caches invalidated")

    # -- Running -------------------------------------------------------------

    def cancel(self) -> bool:
        """Request cancellation of the in-flight run.  Returns False if idle."""
        with self._run_lock:
            token = self._cancel
        if token is None:
            return False
        token.cancel()
        logger.info("Validation cancellation requested")
        return True

    def run_check(
        self,
        source: ElementSource,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> ValidationResult:
        """Extract, evaluate and store one validation run.

        A call made while another run is in flight waits for that run and
        returns its result.

        Raises
        ------
        NoRulesError
            No usable rule content is loaded.
        NoElementsError
            The source yielded zero elements.
        ExtractionSourceError
            Extraction failed.
        CancelledError
            :meth:`cancel` was called; no rules or rows are kept.
        """
        with self._run_lock:
            inflight = self._inflight
            if inflight is None:
                future: Future[ValidationResult] = Future()
                self._inflight = future
                self._cancel = CancelToken()
                token = self._cancel
        if inflight is not None:
            logger.debug("Joining in-flight validation run")
            return inflight.result()

        try:
            result = self._run(source, token, on_progress)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._run_lock:
                self._inflight = None
                self._cancel = None

    def _progress_hook(self, on_progress: ProgressCallback | None) -> ProgressCallback:
        def hook(progress: ScanProgress) -> None:
            self._update(progress=progress)
            if on_progress is not None:
                on_progress(progress)

        return hook

    def _run(
        self,
        source: ElementSource,
        cancel: CancelToken,
        on_progress: ProgressCallback | None,
    ) -> ValidationResult:
        documents = self.state.documents
        try:
            if not documents:
                raise NoRulesError("Load at least one IDS document before running the check")

            self._update(
                is_checking=True,
                phase=Phase.BUILDING_PROPERTIES,
                progress=None,
                error=None,
                rules=[],
                rows=[],
                filtered_rows=[],
                filter_description=None,
            )
            hook = self._progress_hook(on_progress)
            elements = self.pipeline.run(source, on_progress=hook, cancel=cancel)
            cancel.raise_if_cancelled()
            if not elements:
                raise NoElementsError("No elements with a GlobalId were found in the model")

            self._update(phase=Phase.CHECKING_IDS, progress=None)
            rules = self.rule_cache.compile(documents)
            if not rules:
                raise NoRulesError("The loaded documents contain no usable specifications")
            cancel.raise_if_cancelled()

            self._update(phase=Phase.COMPARING_DATA)
            result = self.executor.evaluate(rules, elements, on_progress=hook, cancel=cancel)

            self._update(phase=Phase.FINALIZING)
            cancel.raise_if_cancelled()
        except CancelledError:
            logger.info("Validation cancelled")
            self._update(
                is_checking=False,
                phase=Phase.IDLE,
                progress=None,
                rules=[],
                rows=[],
                filtered_rows=[],
                error="Validation cancelled",
            )
            raise
        except IdsCheckError as exc:
            logger.warning("Validation failed: %s", exc)
            self._update(is_checking=False, phase=Phase.ERROR, progress=None, error=str(exc))
            raise
        except Exception as exc:
            logger.error("Validation run crashed", exc_info=True)
            self._update(is_checking=False, phase=Phase.ERROR, progress=None, error=str(exc))
            raise

        self._update(
            is_checking=False,
            phase=Phase.DONE,
            progress=None,
            rules=result.rules,
            rows=result.rows,
            filtered_rows=result.rows,
            filter_description=None,
            error=None,
            last_run_at=time.time(),
        )
        logger.info(
            "Validation done: %d rules, %d elements, %d rows",
            len(rules),
            len(elements),
            len(result.rows),
        )
        return result
