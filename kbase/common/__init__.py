"""
kbase Common Module

Shared infrastructure for the query pipeline and its entry points.
"""

from .config import KBaseConfig, load_config
from .embedding_service import EmbeddingService
from .errors import (
    KBaseError,
    ValidationError,
    EmptyIndexError,
    GenerationError,
    PipelineError,
)
from .llm_client import LLMClient
from .vector_store import VectorStore, InMemoryVectorStore, EnVectorStore, create_vector_store

__all__ = [
    "KBaseConfig",
    "load_config",
    "EmbeddingService",
    "KBaseError",
    "ValidationError",
    "EmptyIndexError",
    "GenerationError",
    "PipelineError",
    "LLMClient",
    "VectorStore",
    "InMemoryVectorStore",
    "EnVectorStore",
    "create_vector_store",
]
