"""
Retriever - Knowledge Base Question Answering

Answers questions from the ingested document collection.

Key Components:
- QueryExpander: Generates paraphrases of the question
- Searcher: Multi-query vector search with de-duplication
- ContextAssembler: Joins passages within a size budget, builds citations
- Synthesizer: LLM answer generation (batch and streaming)
- QueryOrchestrator: Runs the stages in order

Pipeline:
1. Expand the question into [original] + paraphrases
2. Search each phrasing concurrently, merge and de-duplicate
3. Assemble the context and source summaries
4. Generate the grounded answer
"""

from .query_expander import QueryExpander
from .searcher import Searcher
from .context import ContextAssembler
from .synthesizer import Synthesizer
from .orchestrator import QueryOrchestrator, QueryState

__all__ = [
    "QueryExpander",
    "Searcher",
    "ContextAssembler",
    "Synthesizer",
    "QueryOrchestrator",
    "QueryState",
]
