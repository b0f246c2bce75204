"""Progress reporting and cooperative cancellation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from idscheck.errors import CancelledError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanProgress:
    """Snapshot of a long-running step."""

    done: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.done / self.total)


ProgressCallback = Callable[[ScanProgress], None]


class ProgressTracker:
    """Emit monotonic :class:`ScanProgress` snapshots to a callback.

    ``done`` never decreases.  ``total`` may be an estimate and is raised
    whenever ``done`` would pass it; :meth:`finish` pins both to the final
    count.
    """

    def __init__(self, callback: ProgressCallback | None = None, total: int = 0) -> None:
        self._callback = callback
        self.done = 0
        self.total = max(0, total)

    def _emit(self) -> None:
        if self._callback is None:
            return
        try:
            self._callback(ScanProgress(done=self.done, total=self.total))
        except Exception:
            logger.debug("Progress callback failed", exc_info=True)

    def advance(self, count: int = 1) -> None:
        self.update(self.done + max(0, count))

    def update(self, done: int) -> None:
        if done <= self.done:
            return
        self.done = done
        self.total = max(self.total, done)
        self._emit()

    def finish(self, total: int) -> None:
        self.done = max(self.done, total)
        self.total = self.done
        self._emit()


class CancelToken:
    """Thread-safe cancellation flag checked at batch boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("Operation cancelled")


def check_cancelled(token: CancelToken | None) -> None:
    """Raise :class:`CancelledError` if *token* is set."""
    if token is not None:
        token.raise_if_cancelled()
