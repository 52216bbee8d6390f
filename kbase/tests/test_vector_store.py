"""Tests for vector store backends."""

import json
import pytest
from unittest.mock import MagicMock

from kbase.common.errors import EmptyIndexError
from kbase.common.schemas import Passage


class TestInMemoryVectorStore:
    def test_search_before_ingestion_raises(self, memory_store):
        with pytest.raises(EmptyIndexError, match="ingest some documents first"):
            memory_store.search("anything")

    def test_empty_index_error_maps_to_conflict(self):
        assert EmptyIndexError().status_code == 409

    def test_upsert_empty_chunks_rejected(self, memory_store):
        with pytest.raises(ValueError, match="No chunks"):
            memory_store.upsert([])

    def test_upsert_enriches_metadata(self, memory_store):
        chunks = [
            Passage("Refunds are issued within 30 days.", {"page": 1}),
            Passage("Contact support for refunds.", {"page": 2}),
        ]
        result = memory_store.upsert(chunks, {"source": "policy.md"})

        assert result.chunks_stored == 2
        assert result.collection_name == "test_kb"
        assert result.id.startswith("policy.md-")
        assert result.processing_time_ms >= 0

        hits = memory_store.search("refunds issued within 30 days", k=2)
        top = hits[0]
        assert top.content == "Refunds are issued within 30 days."
        assert top.metadata["source"] == "policy.md"
        assert top.metadata["page"] == 1
        assert top.metadata["chunkId"] == "policy.md-0"
        assert top.metadata["storedAt"].endswith("Z")

    def test_search_ranks_by_similarity(self, memory_store):
        memory_store.upsert([
            Passage("Shipping takes five business days.", {}),
            Passage("Refund requests need a receipt.", {}),
            Passage("Refund policy: full refund in 30 days.", {}),
        ], {"source": "kb"})

        hits = memory_store.search("refund policy", k=3)

        assert hits[0].content == "Refund policy: full refund in 30 days."
        scores = [h.score for h in hits]
        assert scores == sorted(scores, reverse=True)

    def test_search_respects_k(self, memory_store):
        memory_store.upsert([Passage(f"doc number {i}", {}) for i in range(5)])
        assert len(memory_store.search("doc", k=2)) == 2
        assert memory_store.search("doc", k=0) == []

    def test_search_is_deterministic(self, memory_store):
        memory_store.upsert([Passage("same words", {"n": i}) for i in range(4)])
        first = memory_store.search("same words", k=4)
        second = memory_store.search("same words", k=4)
        assert [p.metadata["n"] for p in first] == [0, 1, 2, 3]
        assert first == second

    def test_upserts_accumulate(self, memory_store):
        memory_store.upsert([Passage("alpha", {})], {"source": "a"})
        memory_store.upsert([Passage("beta", {})], {"source": "b"})
        stats = memory_store.get_stats()
        assert stats["documentCount"] == 2
        assert stats["status"] == "Active"

    def test_stats_before_ingestion(self, memory_store):
        stats = memory_store.get_stats()
        assert stats["collectionName"] == "test_kb"
        assert stats["backend"] == "memory"
        assert stats["documentCount"] == 0
        assert stats["status"] == "No documents stored yet"
        assert memory_store.test_connection() is True

    def test_concurrent_upserts_keep_rows_aligned(self, memory_store, monkeypatch):
        import threading
        import time
        import numpy as np

        memory_store.upsert([Passage("seed chunk", {})], {"source": "seed"})
        real_vstack = np.vstack

        def slow_vstack(arrays):
            time.sleep(0.05)
            return real_vstack(arrays)

        monkeypatch.setattr(np, "vstack", slow_vstack)
        writers = [
            threading.Thread(target=memory_store.upsert, args=(
                [Passage(f"{name} first", {}), Passage(f"{name} second", {})], {"source": name},
            ))
            for name in ("alpha", "beta")
        ]
        for t in writers:
            t.start()
        for t in writers:
            t.join()

        assert len(memory_store._texts) == len(memory_store._metadata) == 5
        assert memory_store._matrix.shape[0] == 5
        assert memory_store.get_stats()["documentCount"] == 5
        hits = memory_store.search("beta second", k=1)
        assert hits[0].content == "beta second"
        assert hits[0].metadata["source"] == "beta"

    def test_clear_empties_the_store(self, memory_store):
        memory_store.upsert([Passage("alpha", {}), Passage("beta", {})], {"source": "a"})
        memory_store.clear()

        assert memory_store.is_empty()
        assert memory_store.get_stats()["documentCount"] == 0
        with pytest.raises(EmptyIndexError):
            memory_store.search("alpha")

        memory_store.upsert([Passage("gamma", {})], {"source": "c"})
        assert [p.content for p in memory_store.search("gamma", k=5)] == ["gamma"]


class TestEnVectorStore:
    @pytest.fixture
    def store(self, embedding_service):
        from kbase.common.vector_store import EnVectorStore
        store = EnVectorStore(embedding_service, index_name="kb")
        store._ev = MagicMock()
        return store

    def test_search_without_index_raises(self, store):
        store._ev.get_index_list.return_value = ["other"]
        with pytest.raises(EmptyIndexError):
            store.search("refund policy")

    def test_first_upsert_creates_index(self, store, embedding_service):
        store._ev.get_index_list.return_value = []
        store.upsert([Passage("hello world", {"page": 3})], {"source": "doc.md"})

        create_kwargs = store._ev.create_index.call_args.kwargs
        assert create_kwargs["index_name"] == "kb"
        assert create_kwargs["dim"] == embedding_service.dim

        insert_kwargs = store._ev.Index.return_value.insert.call_args.kwargs
        payload = json.loads(insert_kwargs["metadata"][0])
        assert payload["text"] == "hello world"
        assert payload["chunkId"] == "doc.md-0"
        assert payload["page"] == 3

    def test_existing_index_is_reused(self, store):
        store._ev.get_index_list.return_value = ["kb"]
        store.upsert([Passage("hello", {})])
        store._ev.create_index.assert_not_called()

    def test_search_parses_results(self, store):
        store._ev.get_index_list.return_value = ["kb"]
        store._ev.Index.return_value.search.return_value = [[
            {"distance": 0.4, "metadata": json.dumps({"text": "far", "source": "b"})},
            {"distance": 0.1, "metadata": json.dumps({"text": "near", "source": "a"})},
        ]]

        hits = store.search("query", k=2)

        assert [h.content for h in hits] == ["near", "far"]
        assert hits[0].metadata == {"source": "a"}
        assert hits[0].score == pytest.approx(0.9)

    def test_clear_drops_existing_index(self, store):
        store._ev.get_index_list.return_value = ["kb"]
        store.clear()
        store._ev.drop_index.assert_called_once_with("kb")

    def test_clear_without_index_is_noop(self, store):
        store._ev.get_index_list.return_value = ["other"]
        store.clear()
        store._ev.drop_index.assert_not_called()

    def test_parse_search_results_handles_plain_string_metadata(self):
        from kbase.common.vector_store import EnVectorStore
        hits = EnVectorStore.parse_search_results([{"distance": 0.0, "metadata": "raw text"}, "junk"])
        assert len(hits) == 1
        assert hits[0].content == "raw text"
        assert hits[0].metadata == {}

    def test_missing_sdk_raises_runtime_error(self, embedding_service, monkeypatch):
        import builtins
        from kbase.common.vector_store import EnVectorStore

        real_import = builtins.__import__

        def fake_import(name, *args, **kwargs):
            if name == "pyenvector":
                raise ImportError("No module named 'pyenvector'")
            return real_import(name, *args, **kwargs)

        monkeypatch.setattr(builtins, "__import__", fake_import)
        store = EnVectorStore(embedding_service)
        with pytest.raises(RuntimeError, match="pyenvector not available"):
            store.is_empty()


class TestCreateVectorStore:
    def test_memory_backend(self, embedding_service):
        from kbase.common.config import VectorStoreConfig
        from kbase.common.vector_store import InMemoryVectorStore, create_vector_store
        store = create_vector_store(VectorStoreConfig(index_name="x"), embedding_service)
        assert isinstance(store, InMemoryVectorStore)
        assert store.index_name == "x"

    def test_envector_backend(self, embedding_service):
        from kbase.common.config import VectorStoreConfig
        from kbase.common.vector_store import EnVectorStore, create_vector_store
        store = create_vector_store(VectorStoreConfig(backend="envector"), embedding_service)
        assert isinstance(store, EnVectorStore)

    def test_unknown_backend(self, embedding_service):
        from kbase.common.config import VectorStoreConfig
        from kbase.common.vector_store import create_vector_store
        with pytest.raises(ValueError, match="Unsupported"):
            create_vector_store(VectorStoreConfig(backend="faiss"), embedding_service)
