"""
kbase

Question answering over an ingested document collection.

Philosophy:
- Answers are grounded in retrieved passages and cite them
- Widening recall (query expansion, partial retrieval) is best-effort
- Failures that matter to the caller are reported, never papered over

Usage:
    from kbase.common import load_config, LLMClient, create_vector_store
    from kbase.retriever import QueryOrchestrator
"""

__version__ = "0.1.0"
