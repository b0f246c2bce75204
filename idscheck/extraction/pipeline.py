"""Extraction pipeline: element source -> ``list[FlattenedElement]``.

Entry point: ``ExtractionPipeline().run(source)``

Lookup order for one scan:

1. the in-process memo, keyed by the scan key;
2. the persistent :class:`~idscheck.cache.PropertiesCache`;
3. streaming extraction through the worker pool, when the source supports it;
4. direct extraction (concurrent ``fetch`` per identity), also the fallback
   whenever streaming fails or yields nothing.

Output is all-or-nothing: a cancelled or failed scan caches and returns
nothing.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from idscheck.cache.keys import compute_scan_key
from idscheck.cache.memory import MemoryCache
from idscheck.cache.store import PropertiesCache
from idscheck.config import FETCH_CONCURRENCY, STREAM_BATCH_SIZE, TASK_QUEUE_SIZE, WORKER_COUNT
from idscheck.errors import CancelledError, ExtractionSourceError
from idscheck.extraction.identity import extract_global_id
from idscheck.extraction.properties import flatten
from idscheck.extraction.sources import ElementSource
from idscheck.extraction.workers import BatchFailed, BatchRequest, BatchResult, WorkerMessage, WorkerPool
from idscheck.models.element import FlattenedElement
from idscheck.progress import CancelToken, ProgressCallback, ProgressTracker, check_cancelled

logger = logging.getLogger(__name__)


def _copies(elements: list[FlattenedElement]) -> list[FlattenedElement]:
    """Deep-copy *elements* so callers never share memo entries."""
    return [element.model_copy(deep=True) for element in elements]


class ExtractionPipeline:
    """Batched, cached, cancellable element extraction.

    Parameters
    ----------
    cache:
        Persistent scan cache; *None* disables persistence.
    memory:
        In-process memo of finished scans; *None* disables it.
    batch_size:
        Records per streaming batch, identities per direct chunk.
    worker_count:
        Worker processes for streaming; ``0`` flattens in-process.
    fetch_concurrency:
        Concurrent ``fetch`` calls during direct extraction.
    """

    def __init__(
        self,
        cache: PropertiesCache | None = None,
        memory: MemoryCache[list[FlattenedElement]] | None = None,
        *,
        batch_size: int = STREAM_BATCH_SIZE,
        worker_count: int = WORKER_COUNT,
        fetch_concurrency: int = FETCH_CONCURRENCY,
        queue_size: int = TASK_QUEUE_SIZE,
    ) -> None:
        self.cache = cache
        self.memory = memory
        self.batch_size = max(1, batch_size)
        self.worker_count = max(0, worker_count)
        self.fetch_concurrency = max(1, fetch_concurrency)
        self.queue_size = max(1, queue_size)

    def run(
        self,
        source: ElementSource,
        *,
        on_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> list[FlattenedElement]:
        """Extract every element of *source*.

        Raises
        ------
        ExtractionSourceError
            The source cannot list identities, or both extraction strategies
            failed.
        CancelledError
            *cancel* was set; nothing was cached.
        """
        check_cancelled(cancel)
        try:
            identities = source.list_identities()
        except ExtractionSourceError:
            raise
        except Exception as exc:
            raise ExtractionSourceError(f"Cannot list element identities: {exc}") from exc
        identities = list(dict.fromkeys(i for i in identities if i))
        if not identities:
            logger.info("Source lists no elements")
            return []

        count = self._count(source)
        key = compute_scan_key(identities, count)
        tracker = ProgressTracker(on_progress, total=count or len(identities))

        cached = self._lookup(key)
        if cached is not None:
            tracker.finish(len(cached))
            return cached

        elements = self._extract(source, identities, tracker, cancel)
        check_cancelled(cancel)

        if self.cache is not None and elements:
            self.cache.set(key, elements)
        if self.memory is not None:
            self.memory.put(key, _copies(elements))
        tracker.finish(len(elements))
        logger.info("Extraction complete: %d elements", len(elements))
        return elements

    # -- Lookup --------------------------------------------------------------

    @staticmethod
    def _count(source: ElementSource) -> int | None:
        try:
            return source.count_elements()
        except Exception:
            logger.debug("count_elements failed", exc_info=True)
            return None

    def _lookup(self, key: str) -> list[FlattenedElement] | None:
        if self.memory is not None:
            hit = self.memory.get(key)
            if hit is not None:
                logger.debug("Memo hit for scan %s", key[:12])
                return _copies(hit)
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                logger.info("Loaded %d elements from properties cache", len(hit))
                if self.memory is not None:
                    self.memory.put(key, _copies(hit))
                return list(hit)
        return None

    # -- Strategies ----------------------------------------------------------

    def _extract(
        self,
        source: ElementSource,
        identities: list[str],
        tracker: ProgressTracker,
        cancel: CancelToken | None,
    ) -> list[FlattenedElement]:
        if source.supports_streaming:
            try:
                streamed = self._run_streaming(source, tracker, cancel)
            except CancelledError:
                raise
            except Exception:
                logger.warning("Streaming extraction failed; falling back to direct", exc_info=True)
            else:
                if streamed:
                    return streamed
                logger.warning("Streaming extraction yielded nothing; falling back to direct")
        return self._run_direct(source, identities, tracker, cancel)

    def _run_streaming(
        self,
        source: ElementSource,
        tracker: ProgressTracker,
        cancel: CancelToken | None,
    ) -> list[FlattenedElement]:
        seen: set[str] = set()
        collected: dict[int, tuple[FlattenedElement, ...]] = {}

        def consume(messages: list[WorkerMessage]) -> None:
            for message in messages:
                if isinstance(message, BatchFailed):
                    raise ExtractionSourceError(
                        f"Batch {message.batch_id} failed: {message.error}"
                    )
                if isinstance(message, BatchResult):
                    collected[message.batch_id] = message.elements
                    tracker.advance(message.requested)

        with WorkerPool(self.worker_count, self.queue_size) as pool:
            batch_id = 0
            for batch in source.iter_batches(self.batch_size):
                check_cancelled(cancel)
                items = []
                for record in batch:
                    identity = extract_global_id(record.data)
                    if identity is None:
                        logger.debug("Skipping record %d without GlobalId", record.local_id)
                        continue
                    if identity in seen:
                        continue
                    seen.add(identity)
                    items.append((identity, record))
                if items:
                    pool.submit(BatchRequest(batch_id=batch_id, items=tuple(items)))
                    batch_id += 1
                consume(pool.poll())
            pool.close()
            for message in pool.messages():
                check_cancelled(cancel)
                consume([message])

        # Reassemble in submission order
        return [e for bid in sorted(collected) for e in collected[bid]]

    def _run_direct(
        self,
        source: ElementSource,
        identities: list[str],
        tracker: ProgressTracker,
        cancel: CancelToken | None,
    ) -> list[FlattenedElement]:
        results: list[FlattenedElement | None] = [None] * len(identities)
        failures = 0
        with ThreadPoolExecutor(max_workers=self.fetch_concurrency) as pool:
            for start in range(0, len(identities), self.batch_size):
                check_cancelled(cancel)
                futures = {
                    pool.submit(_fetch_and_flatten, source, identity): start + offset
                    for offset, identity in enumerate(identities[start : start + self.batch_size])
                }
                for future in as_completed(futures):
                    index = futures[future]
                    try:
                        results[index] = future.result()
                    except Exception:
                        failures += 1
                        logger.debug("Fetching %s failed", identities[index], exc_info=True)
                    tracker.advance()

        elements = [e for e in results if e is not None]
        if not elements and failures:
            raise ExtractionSourceError(
                f"Direct extraction failed for all {failures} fetched elements"
            )
        if failures:
            logger.warning("Skipped %d elements that could not be fetched", failures)
        return elements


def _fetch_and_flatten(source: ElementSource, identity: str) -> FlattenedElement | None:
    record = source.fetch(identity)
    if record is None:
        logger.debug("Source has no record for %s", identity)
        return None
    return flatten(record.data, global_id=identity)
