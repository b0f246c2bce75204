"""Element sources: where raw element graphs come from.

A source lists element identities and fetches one raw graph per identity.
Sources that can hand out records in batches advertise it through
:attr:`ElementSource.supports_streaming`; the pipeline prefers that path.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator

from idscheck.extraction.identity import extract_global_id
from idscheck.models.element import RawElementRecord

logger = logging.getLogger(__name__)


class ElementSource(ABC):
    """Capability contract for anything that supplies raw element graphs."""

    model_id: str = ""

    @abstractmethod
    def list_identities(self) -> list[str]:
        """Return every element identity the source knows, in source order."""

    @abstractmethod
    def fetch(self, identity: str) -> RawElementRecord | None:
        """Return the raw record for *identity*, or *None* if unknown."""

    @property
    def supports_streaming(self) -> bool:
        return False

    def iter_batches(self, batch_size: int) -> Iterator[list[RawElementRecord]]:
        """Yield records in lists of at most *batch_size*.

        Each call starts a fresh pass over the source.
        """
        raise NotImplementedError(f"{type(self).__name__} does not stream")

    def count_elements(self) -> int | None:
        """Cheap element count estimate, or *None* when unknown."""
        return None


class InMemorySource(ElementSource):
    """Source over raw graphs already held in memory.

    Parameters
    ----------
    graphs:
        Raw element graphs (``dict``) or :class:`RawElementRecord` objects.
    model_id:
        Identifier of the model the graphs belong to.
    streaming:
        Whether :meth:`iter_batches` is offered to the pipeline.
    """

    def __init__(
        self,
        graphs: Iterable[dict[str, Any] | RawElementRecord],
        *,
        model_id: str = "memory",
        streaming: bool = True,
    ) -> None:
        self.model_id = model_id
        self._streaming = streaming
        self._records: list[RawElementRecord] = []
        for index, graph in enumerate(graphs):
            if isinstance(graph, RawElementRecord):
                self._records.append(graph)
            else:
                self._records.append(
                    RawElementRecord(model_id=model_id, local_id=index + 1, data=graph)
                )
        self._by_identity: dict[str, RawElementRecord] = {}
        for record in self._records:
            identity = extract_global_id(record.data)
            if identity is None:
                logger.debug("Record %d has no GlobalId", record.local_id)
                continue
            self._by_identity.setdefault(identity, record)

    @property
    def supports_streaming(self) -> bool:
        return self._streaming

    def list_identities(self) -> list[str]:
        return list(self._by_identity)

    def fetch(self, identity: str) -> RawElementRecord | None:
        return self._by_identity.get(identity)

    def iter_batches(self, batch_size: int) -> Iterator[list[RawElementRecord]]:
        if not self._streaming:
            raise NotImplementedError("Streaming disabled for this source")
        size = max(1, batch_size)
        for start in range(0, len(self._records), size):
            yield self._records[start : start + size]

    def count_elements(self) -> int | None:
        return len(self._records)
