import json

import pytest

from rag_relay.config import RetrievalConfig
from rag_relay.errors import RetrievalUnavailableError
from rag_relay.retrieval.retriever import KVRetriever
from rag_relay.retrieval.store import InMemoryChunkStore, KeyPage


def _record(key: str, text: str, embedding: list[float] | None, doc_id: str = "doc") -> str:
    payload: dict[str, object] = {"id": key, "docId": doc_id, "text": text}
    if embedding is not None:
        payload["embedding"] = embedding
    return json.dumps(payload)


class CountingStore(InMemoryChunkStore):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.list_calls = 0
        self.get_calls = 0

    async def list(self, prefix: str, cursor: str | None = None) -> KeyPage:
        self.list_calls += 1
        return await super().list(prefix, cursor)

    async def get(self, key: str) -> str | None:
        self.get_calls += 1
        return await super().get(key)


class FailingListStore(InMemoryChunkStore):
    async def list(self, prefix: str, cursor: str | None = None) -> KeyPage:
        raise ConnectionError("kv unavailable")


class FailingGetStore(InMemoryChunkStore):
    async def get(self, key: str) -> str | None:
        raise TimeoutError("kv get timed out")


def _filled_store(count: int, *, page_size: int) -> CountingStore:
    store = CountingStore(page_size=page_size)
    for index in range(count):
        key = f"doc:bulk:chunk:{index:04d}"
        store.put(key, _record(key, f"text {index}", [1.0, float(index % 7)]))
    return store


async def test_deadline_scenario_returns_single_relevant_chunk() -> None:
    store = InMemoryChunkStore()
    store.put(
        "doc:policy:chunk:0",
        _record("doc:policy:chunk:0", "The deadline is March 1", [0.9, 0.1, 0.0], doc_id="policy"),
    )
    retriever = KVRetriever(store, RetrievalConfig(min_score=0.2, top_k=5))

    results = await retriever.retrieve([1.0, 0.0, 0.0])

    assert len(results) == 1
    assert results[0].text == "The deadline is March 1"
    assert results[0].doc_id == "policy"
    assert results[0].score >= 0.8


async def test_results_sorted_filtered_and_truncated() -> None:
    store = InMemoryChunkStore(page_size=2)
    vectors = {
        "doc:a:chunk:0": [1.0, 0.0],
        "doc:a:chunk:1": [0.0, 1.0],
        "doc:a:chunk:2": [1.0, 1.0],
        "doc:a:chunk:3": [-1.0, 0.0],
        "doc:a:chunk:4": [1.0, 0.2],
    }
    for key, vector in vectors.items():
        store.put(key, _record(key, key, vector))
    retriever = KVRetriever(store, RetrievalConfig(top_k=2, min_score=0.5))

    results = await retriever.retrieve([1.0, 0.0])

    assert [item.chunk_id for item in results] == ["doc:a:chunk:0", "doc:a:chunk:4"]
    assert all(item.score >= 0.5 for item in results)
    assert results[0].score >= results[1].score


async def test_ties_keep_discovery_order() -> None:
    store = InMemoryChunkStore(page_size=1)
    for index in range(4):
        key = f"doc:t:chunk:{index}"
        store.put(key, _record(key, f"same {index}", [2.0, 2.0]))
    retriever = KVRetriever(store, RetrievalConfig(top_k=3, min_score=-1.0))

    results = await retriever.retrieve([1.0, 1.0])

    assert [item.text for item in results] == ["same 0", "same 1", "same 2"]


async def test_max_candidates_bounds_fetches() -> None:
    store = _filled_store(50, page_size=8)
    retriever = KVRetriever(store, RetrievalConfig(max_candidates=20, max_pages=100, min_score=-1.0))

    await retriever.retrieve([1.0, 0.0])

    assert store.get_calls == 20
    assert store.list_calls == 3


async def test_max_pages_bounds_list_calls() -> None:
    store = _filled_store(50, page_size=5)
    retriever = KVRetriever(store, RetrievalConfig(max_pages=3, max_candidates=1000, min_score=-1.0))

    await retriever.retrieve([1.0, 0.0])

    assert store.list_calls == 3
    assert store.get_calls == 15


async def test_malformed_and_missing_embeddings_are_skipped() -> None:
    store = InMemoryChunkStore()
    store.put("doc:m:chunk:0", "not json at all")
    store.put("doc:m:chunk:1", _record("doc:m:chunk:1", "no vector", None))
    store.put("doc:m:chunk:2", _record("doc:m:chunk:2", "wrong dims", [1.0, 0.0, 0.0]))
    store.put("doc:m:chunk:3", json.dumps({"id": "doc:m:chunk:3", "docId": "m", "text": "bad", "embedding": "oops"}))
    store.put(
        "doc:m:chunk:4",
        json.dumps({"id": "doc:m:chunk:4", "docId": "m", "text": "good", "embedding": [1.0, 0.0], "page": 3}),
    )
    retriever = KVRetriever(store, RetrievalConfig(min_score=-1.0))

    results = await retriever.retrieve([1.0, 0.0])

    assert [item.text for item in results] == ["good"]


async def test_empty_store_returns_empty_result() -> None:
    retriever = KVRetriever(InMemoryChunkStore(), RetrievalConfig())

    assert await retriever.retrieve([1.0, 0.0]) == []


async def test_all_below_threshold_returns_empty_result() -> None:
    store = InMemoryChunkStore()
    store.put("doc:n:chunk:0", _record("doc:n:chunk:0", "unrelated", [0.0, 1.0]))
    retriever = KVRetriever(store, RetrievalConfig(min_score=0.2))

    assert await retriever.retrieve([1.0, 0.0]) == []


async def test_list_failure_surfaces_retrieval_fault() -> None:
    retriever = KVRetriever(FailingListStore(), RetrievalConfig())

    with pytest.raises(RetrievalUnavailableError):
        await retriever.retrieve([1.0, 0.0])


async def test_get_failure_surfaces_retrieval_fault() -> None:
    store = FailingGetStore()
    store.put("doc:f:chunk:0", _record("doc:f:chunk:0", "x", [1.0, 0.0]))
    retriever = KVRetriever(store, RetrievalConfig())

    with pytest.raises(RetrievalUnavailableError):
        await retriever.retrieve([1.0, 0.0])


async def test_key_prefix_restricts_scan() -> None:
    store = InMemoryChunkStore()
    store.put("doc:a:chunk:0", _record("doc:a:chunk:0", "from a", [1.0, 0.0], doc_id="a"))
    store.put("doc:b:chunk:0", _record("doc:b:chunk:0", "from b", [1.0, 0.0], doc_id="b"))
    retriever = KVRetriever(store, RetrievalConfig(min_score=-1.0))

    results = await retriever.retrieve([1.0, 0.0], config=RetrievalConfig(key_prefix="doc:b:", min_score=-1.0))

    assert [item.doc_id for item in results] == ["b"]


async def test_non_finite_embedding_never_disturbs_ranking() -> None:
    store = InMemoryChunkStore()
    vectors = {
        "doc:n:chunk:0": [0.3, 1.0],
        "doc:n:chunk:1": [float("nan"), 1.0],
        "doc:n:chunk:2": [1.0, 0.0],
        "doc:n:chunk:3": [0.6, 1.0],
        "doc:n:chunk:4": [float("inf"), 0.0],
    }
    for key, vector in vectors.items():
        store.put(key, _record(key, key, vector))

    ranked = await KVRetriever(store, RetrievalConfig(top_k=5, min_score=-1.0)).retrieve([1.0, 0.0])
    best = await KVRetriever(store, RetrievalConfig(top_k=1, min_score=-1.0)).retrieve([1.0, 0.0])

    assert [item.chunk_id for item in ranked] == ["doc:n:chunk:2", "doc:n:chunk:3", "doc:n:chunk:0"]
    assert [item.score for item in ranked] == sorted((item.score for item in ranked), reverse=True)
    assert [item.chunk_id for item in best] == ["doc:n:chunk:2"]


async def test_non_finite_query_scores_are_dropped() -> None:
    store = InMemoryChunkStore()
    store.put("doc:q:chunk:0", _record("doc:q:chunk:0", "x", [1.0, 0.0]))
    retriever = KVRetriever(store, RetrievalConfig(min_score=-1.0))

    assert await retriever.retrieve([float("nan"), 0.0]) == []


async def test_dimension_mismatch_on_every_chunk_is_a_retrieval_fault() -> None:
    store = InMemoryChunkStore()
    store.put("doc:d:chunk:0", _record("doc:d:chunk:0", "old model", [1.0, 0.0, 0.0]))
    store.put("doc:d:chunk:1", _record("doc:d:chunk:1", "old model", [0.0, 1.0, 0.0]))
    store.put("doc:d:chunk:2", _record("doc:d:chunk:2", "no vector", None))
    retriever = KVRetriever(store, RetrievalConfig(min_score=-1.0))

    with pytest.raises(RetrievalUnavailableError, match="dimensions"):
        await retriever.retrieve([1.0, 0.0])


async def test_irrelevant_chunks_of_matching_dimension_are_not_a_fault() -> None:
    store = InMemoryChunkStore()
    store.put("doc:d:chunk:0", _record("doc:d:chunk:0", "stale", [1.0, 0.0, 0.0]))
    store.put("doc:d:chunk:1", _record("doc:d:chunk:1", "unrelated", [0.0, 1.0]))
    retriever = KVRetriever(store, RetrievalConfig(min_score=0.2))

    assert await retriever.retrieve([1.0, 0.0]) == []
