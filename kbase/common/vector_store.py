"""
Vector Store

Retrieval oracle for the query pipeline: embed, upsert, search.

Two backends share the ingestion bookkeeping in ``VectorStore``:
- InMemoryVectorStore: numpy cosine similarity, in-process
- EnVectorStore: enVector index via pyenvector
"""

import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .config import VectorStoreConfig
from .embedding_service import EmbeddingService
from .errors import EmptyIndexError
from .schemas import Passage, StoreResult

logger = logging.getLogger("kbase.common.vector_store")


class VectorStore:
    """
    Base class for vector store backends.

    Subclasses implement ``_insert``, ``_search_vector``, ``is_empty``,
    ``get_stats`` and ``clear``. Texts are stored under the ``text`` metadata key and
    split back out into ``Passage.content`` on the way out.
    """

    def __init__(self, embedding_service: EmbeddingService, index_name: str = "knowledge_base"):
        self._embedding = embedding_service
        self._index_name = index_name

    @property
    def index_name(self) -> str:
        return self._index_name

    def embed(self, text: str) -> List[float]:
        return self._embedding.embed_single(text)

    def upsert(self, chunks: Sequence[Passage], metadata: Optional[Dict[str, Any]] = None) -> StoreResult:
        """
        Embed and store already-chunked text.

        Args:
            chunks: Passages produced by ingestion (content + per-chunk metadata)
            metadata: Document-level metadata merged into every chunk

        Returns:
            StoreResult describing the write
        """
        if not chunks:
            raise ValueError("No chunks provided for storage")

        metadata = dict(metadata or {})
        source = metadata.get("source", "unknown")
        start = time.monotonic()
        stored_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        logger.info("Storing %d chunks in %s", len(chunks), self._index_name)

        texts = [chunk.content for chunk in chunks]
        enriched = []
        for index, chunk in enumerate(chunks):
            enriched.append({
                **chunk.metadata,
                **metadata,
                "storedAt": stored_at,
                "chunkId": f"{source}-{index}",
            })

        vectors = self._embedding.embed(texts)
        self._insert(texts, vectors, enriched)

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info("Stored %d chunks in %dms", len(chunks), elapsed)

        return StoreResult(
            id=f"{source}-{int(time.time() * 1000)}",
            chunks_stored=len(chunks),
            processing_time_ms=elapsed,
            collection_name=self._index_name,
        )

    def search(self, query: str, k: int = 3) -> List[Passage]:
        """
        Return up to ``k`` passages ranked by similarity.

        Raises:
            EmptyIndexError: nothing has been ingested yet
        """
        if self.is_empty():
            raise EmptyIndexError()

        logger.debug("Searching for: %r (k=%d)", query, k)
        results = self._search_vector(self.embed(query), k)
        logger.debug("Found %d similar documents", len(results))
        return results

    def test_connection(self) -> bool:
        """Check the backend is reachable"""
        try:
            self.get_stats()
            return True
        except Exception as e:
            logger.error("Connection test failed: %s", e)
            return False

    def is_empty(self) -> bool:
        raise NotImplementedError

    def get_stats(self) -> Dict[str, Any]:
        raise NotImplementedError

    def clear(self) -> None:
        """Remove everything ingested so far"""
        raise NotImplementedError

    def _insert(self, texts: List[str], vectors: List[List[float]], metadata: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def _search_vector(self, vector: List[float], k: int) -> List[Passage]:
        raise NotImplementedError


class InMemoryVectorStore(VectorStore):
    """
    In-process store backed by a numpy matrix.

    Vectors from EmbeddingService are L2 normalized, so the dot product is
    the cosine similarity. Upserts and searches arrive from worker threads;
    row i of the matrix always belongs to ``_texts[i]`` under ``_lock``.
    """

    def __init__(self, embedding_service: EmbeddingService, index_name: str = "knowledge_base"):
        super().__init__(embedding_service, index_name)
        self._lock = threading.Lock()
        self._texts: List[str] = []
        self._metadata: List[Dict[str, Any]] = []
        self._matrix: Optional[np.ndarray] = None

    def is_empty(self) -> bool:
        with self._lock:
            return not self._texts

    def _insert(self, texts, vectors, metadata) -> None:
        block = np.array(vectors, dtype=np.float32)
        with self._lock:
            self._matrix = block if self._matrix is None else np.vstack([self._matrix, block])
            self._texts.extend(texts)
            self._metadata.extend(metadata)

    def _search_vector(self, vector, k) -> List[Passage]:
        if k <= 0:
            return []
        with self._lock:
            if self._matrix is None:
                # Cleared after the emptiness check
                raise EmptyIndexError()
            similarities = self._matrix @ np.array(vector, dtype=np.float32)
            # Stable sort keeps insertion order among equal scores
            order = np.argsort(-similarities, kind="stable")[:k]
            return [
                Passage(
                    content=self._texts[i],
                    metadata=dict(self._metadata[i]),
                    score=float(similarities[i]),
                )
                for i in order
            ]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            count = len(self._texts)
        return {
            "collectionName": self._index_name,
            "backend": "memory",
            "isConnected": True,
            "documentCount": count,
            "status": "Active" if count else "No documents stored yet",
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }

    def clear(self) -> None:
        with self._lock:
            removed = len(self._texts)
            self._texts = []
            self._metadata = []
            self._matrix = None
        logger.info("Cleared %d chunks from %s", removed, self._index_name)


class EnVectorStore(VectorStore):
    """
    Store backed by an enVector index.

    The SDK is initialised lazily on first use; the index is created on the
    first upsert, so a search before any ingestion raises EmptyIndexError.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        index_name: str = "knowledge_base",
        address: str = "localhost:50050",
        key_path: str = "~/.kbase/keys",
        key_id: str = "kbase_key",
        access_token: Optional[str] = None,
        eval_mode: str = "rmp",
    ):
        super().__init__(embedding_service, index_name)
        self._address = address
        self._key_path = key_path
        self._key_id = key_id
        self._access_token = access_token
        self._eval_mode = eval_mode
        self._ev = None

    def _ensure_initialized(self):
        """Lazily initialize the SDK"""
        if self._ev is not None:
            return self._ev

        from pathlib import Path

        try:
            import pyenvector as ev
        except ImportError as e:
            raise RuntimeError(f"pyenvector not available: {e}")

        key_path = Path(self._key_path).expanduser()
        key_path.mkdir(parents=True, exist_ok=True)
        ev.init(
            address=self._address,
            key_path=str(key_path),
            key_id=self._key_id,
            eval_mode=self._eval_mode,
            auto_key_setup=True,
            access_token=self._access_token,
        )
        self._ev = ev
        logger.info("Connected to enVector at %s", self._address)
        return ev

    def is_empty(self) -> bool:
        ev = self._ensure_initialized()
        return self._index_name not in (ev.get_index_list() or [])

    def _insert(self, texts, vectors, metadata) -> None:
        ev = self._ensure_initialized()
        if self._index_name not in (ev.get_index_list() or []):
            ev.create_index(
                index_name=self._index_name,
                dim=len(vectors[0]),
                index_params={"index_type": "FLAT"},
                query_encryption="plain",
            )
            logger.info("Created enVector index %s", self._index_name)

        payloads = [json.dumps({**meta, "text": text}) for text, meta in zip(texts, metadata)]
        ev.Index(self._index_name).insert(data=vectors, metadata=payloads)

    def _search_vector(self, vector, k) -> List[Passage]:
        ev = self._ensure_initialized()
        raw = ev.Index(self._index_name).search(vector, top_k=k, output_fields=["metadata"])
        return self.parse_search_results(_to_json_available(raw))

    @staticmethod
    def parse_search_results(raw: Any) -> List[Passage]:
        """
        Convert SDK search output to passages, best score first.

        Accepts a flat list of hits or a per-query nested list.
        """
        if isinstance(raw, list) and raw and isinstance(raw[0], list):
            raw = raw[0]

        parsed = []
        for item in raw or []:
            if not isinstance(item, dict):
                continue
            metadata = item.get("metadata", {})
            if isinstance(metadata, str):
                try:
                    metadata = json.loads(metadata)
                except json.JSONDecodeError:
                    metadata = {"text": metadata}
            metadata = dict(metadata)
            text = metadata.pop("text", "")
            parsed.append(Passage(
                content=text,
                metadata=metadata,
                score=1.0 - float(item.get("distance", 0)),  # Convert distance to similarity
            ))

        parsed.sort(key=lambda p: p.score, reverse=True)
        return parsed

    def get_stats(self) -> Dict[str, Any]:
        ev = self._ensure_initialized()
        populated = self._index_name in (ev.get_index_list() or [])
        stats = {
            "collectionName": self._index_name,
            "backend": "envector",
            "endpoint": self._address,
            "isConnected": True,
            "status": "Active" if populated else "No documents stored yet",
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }
        if populated:
            stats["info"] = _to_json_available(ev.get_index_info(index_name=self._index_name))
        return stats

    def clear(self) -> None:
        ev = self._ensure_initialized()
        if self._index_name in (ev.get_index_list() or []):
            ev.drop_index(self._index_name)
            logger.info("Dropped enVector index %s", self._index_name)


def _to_json_available(obj: Any) -> Any:
    """Convert SDK return objects to plain JSON-compatible structures."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {str(k): _to_json_available(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_to_json_available(item) for item in obj]
    for attr in ("model_dump", "dict", "to_dict"):
        if hasattr(obj, attr):
            return _to_json_available(getattr(obj, attr)())
    if hasattr(obj, "__dict__"):
        return {k: _to_json_available(v) for k, v in obj.__dict__.items() if not k.startswith("_")}
    return repr(obj)


def create_vector_store(config: VectorStoreConfig, embedding_service: EmbeddingService) -> VectorStore:
    """Build the configured backend"""
    backend = (config.backend or "memory").lower()
    if backend == "memory":
        return InMemoryVectorStore(embedding_service, index_name=config.index_name)
    if backend == "envector":
        return EnVectorStore(
            embedding_service,
            index_name=config.index_name,
            address=config.endpoint,
            key_path=config.key_path,
            access_token=config.api_key or None,
        )
    raise ValueError(f"Unsupported vector store backend: {config.backend}")
