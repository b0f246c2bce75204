"""Worker pool for streaming extraction.

The orchestrator posts immutable :class:`BatchRequest` messages on a bounded
task queue.  A fixed set of worker processes flatten each batch and answer
with :class:`BatchResult` or :class:`BatchFailed`; every worker finishes
with one :class:`WorkerDone`.  Nothing is shared between processes except
these messages.

With ``worker_count=0`` the pool flattens in the calling process and
delivers the same messages, which keeps tests and small runs cheap.
"""

from __future__ import annotations

import logging
import multiprocessing
import queue
from collections import deque
from dataclasses import dataclass
from typing import Iterator, Union

from idscheck.config import TASK_QUEUE_SIZE
from idscheck.errors import ExtractionSourceError
from idscheck.extraction.properties import flatten
from idscheck.models.element import FlattenedElement, RawElementRecord

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.2


@dataclass(frozen=True)
class BatchRequest:
    """One batch of ``(identity, record)`` pairs to flatten."""

    batch_id: int
    items: tuple[tuple[str, RawElementRecord], ...]


@dataclass(frozen=True)
class BatchResult:
    batch_id: int
    elements: tuple[FlattenedElement, ...]
    requested: int


@dataclass(frozen=True)
class BatchFailed:
    batch_id: int
    error: str


@dataclass(frozen=True)
class WorkerDone:
    worker_id: int


WorkerMessage = Union[BatchResult, BatchFailed, WorkerDone]


def process_batch(request: BatchRequest) -> BatchResult:
    """Flatten every record of *request*; records without identity are dropped."""
    elements: list[FlattenedElement] = []
    for identity, record in request.items:
        try:
            element = flatten(record.data, global_id=identity)
        except Exception:
            logger.debug("Flattening %s failed", identity, exc_info=True)
            continue
        if element is not None:
            elements.append(element)
    return BatchResult(
        batch_id=request.batch_id,
        elements=tuple(elements),
        requested=len(request.items),
    )


def _handle(request: BatchRequest) -> BatchResult | BatchFailed:
    try:
        return process_batch(request)
    except Exception as exc:
        logger.debug("Batch %d failed", request.batch_id, exc_info=True)
        return BatchFailed(batch_id=request.batch_id, error=repr(exc))


def _worker_main(worker_id: int, tasks: multiprocessing.Queue, results: multiprocessing.Queue) -> None:
    while True:
        request = tasks.get()
        if request is None:
            break
        results.put(_handle(request))
    results.put(WorkerDone(worker_id=worker_id))


class WorkerPool:
    """Fixed pool of flattening workers.

    Parameters
    ----------
    worker_count:
        Number of worker processes; ``0`` flattens in-process.
    queue_size:
        Capacity of the task queue.  :meth:`submit` blocks while it is full.

    Use as a context manager; leaving the block early terminates the workers.
    """

    def __init__(self, worker_count: int, queue_size: int = TASK_QUEUE_SIZE) -> None:
        self.worker_count = max(0, worker_count)
        self.queue_size = max(1, queue_size)
        self._processes: list[multiprocessing.Process] = []
        self._tasks: multiprocessing.Queue | None = None
        self._results: multiprocessing.Queue | None = None
        self._inline: deque[WorkerMessage] = deque()
        self._closed = False
        self._done_workers = 0

    def __enter__(self) -> WorkerPool:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.terminate()
        else:
            self.join()

    def start(self) -> None:
        if self.worker_count == 0:
            return
        ctx = multiprocessing.get_context()
        self._tasks = ctx.Queue(maxsize=self.queue_size)
        self._results = ctx.Queue()
        for worker_id in range(self.worker_count):
            process = ctx.Process(
                target=_worker_main,
                args=(worker_id, self._tasks, self._results),
                daemon=True,
                name=f"idscheck-worker-{worker_id}",
            )
            process.start()
            self._processes.append(process)
        logger.debug("Started %d extraction workers", self.worker_count)

    def submit(self, request: BatchRequest) -> None:
        if self._closed:
            raise RuntimeError("WorkerPool is closed")
        if self._tasks is None:
            self._inline.append(_handle(request))
            return
        while True:
            try:
                self._tasks.put(request, timeout=_POLL_SECONDS)
                return
            except queue.Full:
                self._check_workers()

    def _check_workers(self) -> None:
        dead = [p for p in self._processes if p.exitcode not in (None, 0)]
        if dead:
            raise ExtractionSourceError(
                f"Extraction worker {dead[0].name} exited with code {dead[0].exitcode}"
            )

    def close(self) -> None:
        """Signal that no more requests will be submitted."""
        if self._closed:
            return
        self._closed = True
        if self._tasks is None:
            self._inline.append(WorkerDone(worker_id=0))
            return
        for _ in self._processes:
            self._tasks.put(None)

    def poll(self) -> list[WorkerMessage]:
        """Return the messages that are ready, without blocking."""
        if self._results is None:
            ready = list(self._inline)
            self._inline.clear()
            return ready
        ready: list[WorkerMessage] = []
        while True:
            try:
                ready.append(self._results.get_nowait())
            except queue.Empty:
                return ready

    def messages(self) -> Iterator[WorkerMessage]:
        """Yield messages until every worker has reported :class:`WorkerDone`.

        Call :meth:`close` first.
        """
        if self._results is None:
            while self._inline:
                yield self._inline.popleft()
            return
        expected = len(self._processes)
        while self._done_workers < expected:
            try:
                message = self._results.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                self._check_workers()
                continue
            if isinstance(message, WorkerDone):
                self._done_workers += 1
            yield message

    def join(self) -> None:
        for process in self._processes:
            process.join(timeout=5)
        self._release()

    def terminate(self) -> None:
        for process in self._processes:
            if process.is_alive():
                process.terminate()
        for process in self._processes:
            process.join(timeout=5)
        self._release()
        logger.debug("Extraction workers terminated")

    def _release(self) -> None:
        for q in (self._tasks, self._results):
            if q is not None:
                q.cancel_join_thread()
                q.close()
        self._processes = []
        self._tasks = None
        self._results = None
