"""
Embedding Service

On-device embedding generation using fastembed.
"""

import logging
from typing import List, Optional
import numpy as np

logger = logging.getLogger("kbase.common.embedding_service")


class EmbeddingService:
    """
    Embedding service for kbase.

    Uses fastembed for on-device embedding generation, which avoids an
    external API call per query. The model is loaded lazily on first use.
    """

    def __init__(self, model: str = "sentence-transformers/all-MiniLM-L6-v2"):
        self._model_name = model
        self._model = None

    @property
    def model_name(self) -> str:
        return self._model_name

    def _ensure_model(self):
        if self._model is None:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Initialized fastembed model %s", self._model_name)
        return self._model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors (L2 normalized)
        """
        if not texts:
            return []

        vectors = np.array(list(self._ensure_model().embed(texts)), dtype=np.float32)
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return (vectors / norms).tolist()

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector (L2 normalized)
        """
        if not text:
            raise ValueError("Cannot embed empty text")

        return self.embed([text])[0]


# Module-level singleton getter
_service_instance: Optional[EmbeddingService] = None


def get_embedding_service(
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
) -> EmbeddingService:
    """
    Get the shared EmbeddingService instance.

    Args:
        model: Model name

    Returns:
        EmbeddingService instance
    """
    global _service_instance

    if _service_instance is None:
        _service_instance = EmbeddingService(model=model)

    return _service_instance
