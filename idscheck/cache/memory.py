"""In-process memo caches with an explicit lifecycle.

Caches are constructed by the caller and passed into the pipeline and the
session; ``clear()`` is their teardown.  Nothing here is module-level state.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Iterable, TypeVar

from idscheck.cache.keys import hash_text
from idscheck.compiler import CompiledRule, compile_rules

logger = logging.getLogger(__name__)

V = TypeVar("V")


class MemoryCache(Generic[V]):
    """Thread-safe ``token -> value`` memo."""

    def __init__(self) -> None:
        self._items: dict[str, V] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._items

    def get(self, token: str) -> V | None:
        with self._lock:
            return self._items.get(token)

    def put(self, token: str, value: V) -> None:
        with self._lock:
            self._items[token] = value

    def get_or_set(self, token: str, factory: Callable[[], V]) -> V:
        """Return the cached value for *token*, computing it on a miss.

        *factory* runs outside the lock; if two callers race, the first
        stored value wins.
        """
        with self._lock:
            if token in self._items:
                return self._items[token]
        value = factory()
        with self._lock:
            return self._items.setdefault(token, value)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class RuleCache(MemoryCache[list[CompiledRule]]):
    """Compiled rules keyed by the hash of their document buffers."""

    def compile(self, text: str | Iterable[str]) -> list[CompiledRule]:
        buffers = [text] if isinstance(text, str) else list(text)
        # Record separator keeps ["ab"] and ["a", "b"] apart
        token = hash_text("\x1e".join(buffers))
        hit = self.get(token)
        if hit is not None:
            logger.debug("Rule cache hit %s", token[:12])
            return list(hit)
        return list(self.get_or_set(token, lambda: compile_rules(buffers)))
