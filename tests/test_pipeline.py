"""Tests for the extraction pipeline, element sources, and the worker pool."""

from __future__ import annotations

import pytest

from idscheck.cache import MemoryCache, PropertiesCache
from idscheck.errors import CancelledError, ExtractionSourceError
from idscheck.extraction import ExtractionPipeline, InMemorySource
from idscheck.extraction.workers import BatchRequest, BatchResult, WorkerDone, WorkerPool, process_batch
from idscheck.models.element import RawElementRecord
from idscheck.progress import CancelToken


def _graph(gid: str | None, cls: str = "IFCWALL", **pset: str) -> dict:
    graph: dict = {"type": cls, "PropertySets": [{"Name": "Pset_Test", "HasProperties": [
        {"Name": name, "NominalValue": value} for name, value in pset.items()
    ]}]}
    if gid is not None:
        graph["GlobalId"] = gid
    return graph


class CountingSource(InMemorySource):
    """In-memory source that records how often it is read."""

    def __init__(self, graphs, **kwargs) -> None:
        super().__init__(graphs, **kwargs)
        self.fetches: list[str] = []
        self.streams = 0

    def fetch(self, identity):
        self.fetches.append(identity)
        return super().fetch(identity)

    def iter_batches(self, batch_size):
        self.streams += 1
        yield from super().iter_batches(batch_size)


class BrokenStreamSource(CountingSource):
    def iter_batches(self, batch_size):
        raise RuntimeError("stream closed")
        yield  # pragma: no cover


class EmptyStreamSource(CountingSource):
    def iter_batches(self, batch_size):
        return iter(())


class UnlistableSource(InMemorySource):
    def list_identities(self):
        raise OSError("model unavailable")


@pytest.fixture()
def graphs() -> list[dict]:
    return [_graph(f"G{i}", Width=str(i)) for i in range(7)]


@pytest.fixture()
def pipeline() -> ExtractionPipeline:
    return ExtractionPipeline(memory=MemoryCache(), batch_size=3, worker_count=0)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class TestInMemorySource:
    def test_identities_in_source_order(self, graphs):
        source = InMemorySource(graphs)
        assert source.list_identities() == [f"G{i}" for i in range(7)]
        assert source.count_elements() == 7

    def test_fetch(self, graphs):
        source = InMemorySource(graphs, model_id="m1")
        record = source.fetch("G2")
        assert record.model_id == "m1"
        assert record.local_id == 3
        assert source.fetch("missing") is None

    def test_batches(self, graphs):
        batches = list(InMemorySource(graphs).iter_batches(3))
        assert [len(b) for b in batches] == [3, 3, 1]

    def test_streaming_disabled(self, graphs):
        source = InMemorySource(graphs, streaming=False)
        assert source.supports_streaming is False
        with pytest.raises(NotImplementedError):
            next(source.iter_batches(3))

    def test_accepts_records(self):
        record = RawElementRecord(model_id="m", local_id=42, data=_graph("X"))
        source = InMemorySource([record])
        assert source.fetch("X") is record


# ---------------------------------------------------------------------------
# Worker pool
# ---------------------------------------------------------------------------


class TestWorkerPool:
    def _request(self, batch_id: int, *gids: str) -> BatchRequest:
        return BatchRequest(
            batch_id=batch_id,
            items=tuple((gid, RawElementRecord(data=_graph(gid))) for gid in gids),
        )

    def test_process_batch(self):
        result = process_batch(self._request(0, "A", "B"))
        assert result.requested == 2
        assert [e.global_id for e in result.elements] == ["A", "B"]

    def test_inline_messages(self):
        with WorkerPool(0) as pool:
            pool.submit(self._request(0, "A"))
            pool.submit(self._request(1, "B", "C"))
            pool.close()
            messages = list(pool.messages())
        assert isinstance(messages[-1], WorkerDone)
        results = [m for m in messages if isinstance(m, BatchResult)]
        assert [r.batch_id for r in results] == [0, 1]

    def test_submit_after_close(self):
        with WorkerPool(0) as pool:
            pool.close()
            with pytest.raises(RuntimeError):
                pool.submit(self._request(0, "A"))

    def test_worker_processes(self):
        with WorkerPool(2, queue_size=2) as pool:
            for batch_id in range(4):
                pool.submit(self._request(batch_id, f"A{batch_id}", f"B{batch_id}"))
            pool.close()
            messages = list(pool.messages())
        done = [m for m in messages if isinstance(m, WorkerDone)]
        results = sorted((m for m in messages if isinstance(m, BatchResult)), key=lambda m: m.batch_id)
        assert len(done) == 2
        assert [r.batch_id for r in results] == [0, 1, 2, 3]
        assert results[3].elements[1].global_id == "B3"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class TestPipeline:
    def test_streaming(self, pipeline, graphs):
        source = CountingSource(graphs)
        elements = pipeline.run(source)
        assert [e.global_id for e in elements] == [f"G{i}" for i in range(7)]
        assert elements[4].properties["Pset_Test.Width"] == "4"
        assert source.streams == 1
        assert source.fetches == []

    def test_direct_preserves_identity_order(self, pipeline, graphs):
        source = CountingSource(graphs, streaming=False)
        elements = pipeline.run(source)
        assert [e.global_id for e in elements] == [f"G{i}" for i in range(7)]
        assert sorted(source.fetches) == sorted(f"G{i}" for i in range(7))

    def test_fallback_when_stream_raises(self, pipeline, graphs):
        source = BrokenStreamSource(graphs)
        elements = pipeline.run(source)
        assert len(elements) == 7
        assert len(source.fetches) == 7

    def test_fallback_when_stream_empty(self, pipeline, graphs):
        source = EmptyStreamSource(graphs)
        assert len(pipeline.run(source)) == 7
        assert len(source.fetches) == 7

    def test_duplicates_and_missing_identity_dropped(self, pipeline):
        source = InMemorySource([_graph("A"), _graph(None), _graph("A", Width="2"), _graph("B")])
        elements = pipeline.run(source)
        assert [e.global_id for e in elements] == ["A", "B"]
        assert "Pset_Test.Width" not in elements[0].properties

    def test_empty_source(self, pipeline):
        assert pipeline.run(InMemorySource([])) == []

    def test_memo_hit_skips_source(self, pipeline, graphs):
        first = pipeline.run(CountingSource(graphs))
        again = CountingSource(graphs)
        second = pipeline.run(again)
        assert second == first
        assert again.streams == 0
        assert again.fetches == []

    def test_memo_entries_not_shared(self, pipeline, graphs):
        first = pipeline.run(InMemorySource(graphs))
        first[0].properties["Pset_Test.Width"] = "tampered"
        first.pop()

        second = pipeline.run(InMemorySource(graphs))
        assert len(second) == 7
        assert second[0].properties["Pset_Test.Width"] == "0"

        second[1].properties.clear()
        third = pipeline.run(InMemorySource(graphs))
        assert third[1].properties["Pset_Test.Width"] == "1"

    def test_persistent_cache_hit(self, graphs):
        with PropertiesCache(":memory:") as cache:
            ExtractionPipeline(cache=cache, worker_count=0).run(InMemorySource(graphs))
            assert len(cache.keys()) == 1

            source = CountingSource(graphs, streaming=False)
            fresh = ExtractionPipeline(cache=cache, memory=MemoryCache(), worker_count=0)
            elements = fresh.run(source)
        assert len(elements) == 7
        assert source.fetches == []

    def test_changed_model_misses_cache(self, pipeline, graphs):
        pipeline.run(InMemorySource(graphs))
        source = CountingSource(graphs + [_graph("G7")])
        assert len(pipeline.run(source)) == 8
        assert source.streams == 1

    def test_progress_monotonic_and_final(self, pipeline, graphs):
        seen = []
        pipeline.run(InMemorySource(graphs), on_progress=seen.append)
        dones = [p.done for p in seen]
        assert dones == sorted(dones)
        assert seen[-1].done == seen[-1].total == 7

    def test_progress_on_cache_hit(self, pipeline, graphs):
        pipeline.run(InMemorySource(graphs))
        seen = []
        pipeline.run(InMemorySource(graphs), on_progress=seen.append)
        assert seen[-1].done == 7

    def test_cancel_caches_nothing(self, graphs):
        with PropertiesCache(":memory:") as cache:
            memo = MemoryCache()
            pipeline = ExtractionPipeline(cache=cache, memory=memo, batch_size=2, worker_count=0)
            token = CancelToken()

            def cancel_midway(progress):
                if progress.done >= 2:
                    token.cancel()

            with pytest.raises(CancelledError):
                pipeline.run(InMemorySource(graphs), on_progress=cancel_midway, cancel=token)
            assert cache.keys() == []
            assert len(memo) == 0

    def test_cancel_before_start(self, pipeline, graphs):
        token = CancelToken()
        token.cancel()
        with pytest.raises(CancelledError):
            pipeline.run(InMemorySource(graphs), cancel=token)

    def test_cancel_during_direct(self, graphs):
        pipeline = ExtractionPipeline(batch_size=2, worker_count=0)
        token = CancelToken()
        with pytest.raises(CancelledError):
            pipeline.run(
                InMemorySource(graphs, streaming=False),
                on_progress=lambda p: token.cancel(),
                cancel=token,
            )

    def test_list_identities_failure(self, pipeline, graphs):
        with pytest.raises(ExtractionSourceError):
            pipeline.run(UnlistableSource(graphs))

    def test_all_fetches_failing(self, pipeline, graphs):
        class FailingFetch(InMemorySource):
            def fetch(self, identity):
                raise OSError("offline")

        with pytest.raises(ExtractionSourceError):
            pipeline.run(FailingFetch(graphs, streaming=False))

    def test_partial_fetch_failures_skipped(self, pipeline, graphs):
        class FlakyFetch(InMemorySource):
            def fetch(self, identity):
                if identity == "G3":
                    raise OSError("offline")
                return super().fetch(identity)

        elements = pipeline.run(FlakyFetch(graphs, streaming=False))
        assert "G3" not in [e.global_id for e in elements]
        assert len(elements) == 6

    def test_worker_processes_end_to_end(self, graphs):
        pipeline = ExtractionPipeline(batch_size=2, worker_count=2)
        elements = pipeline.run(InMemorySource(graphs))
        assert [e.global_id for e in elements] == [f"G{i}" for i in range(7)]
