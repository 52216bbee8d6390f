"""
Searcher

Multi-query retrieval: one vector search per expanded question, run
concurrently, merged into a single de-duplicated candidate set.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from ..common.errors import EmptyIndexError
from ..common.schemas import Outcome, Passage
from ..common.vector_store import VectorStore

logger = logging.getLogger("kbase.retriever.searcher")


class Searcher:
    """
    Searches the knowledge base with several phrasings of one question.

    Features:
    - Concurrent per-query search (worker threads)
    - Per-query failure isolation
    - Deterministic de-duplication (question order, then rank order)
    """

    def __init__(self, vector_store: VectorStore, per_query_limit: int = 3):
        """
        Initialize searcher.

        Args:
            vector_store: Retrieval oracle
            per_query_limit: Passages requested per question
        """
        self._store = vector_store
        self._per_query_limit = per_query_limit

    async def retrieve(self, questions: Sequence[str], per_query_limit: Optional[int] = None) -> List[Passage]:
        """Merged, de-duplicated passages for all questions."""
        outcome = await self.retrieve_outcome(questions, per_query_limit)
        return outcome.value

    async def retrieve_outcome(
        self,
        questions: Sequence[str],
        per_query_limit: Optional[int] = None,
    ) -> Outcome[List[Passage]]:
        """
        Search every question concurrently and merge the results.

        Args:
            questions: Original question first, then paraphrases
            per_query_limit: Passages per question (default from constructor)

        Returns:
            Outcome holding the candidate set. ``degraded`` is set when at
            least one query failed.

        Raises:
            EmptyIndexError: every query failed because nothing is ingested
        """
        limit = self._per_query_limit if per_query_limit is None else per_query_limit
        if not questions:
            return Outcome(value=[])

        # gather() returns results in submission order regardless of completion order
        results = await asyncio.gather(
            *(asyncio.to_thread(self._store.search, q, limit) for q in questions),
            return_exceptions=True,
        )

        per_query: List[List[Passage]] = []
        failures: List[BaseException] = []
        for question, result in zip(questions, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Search failed for %r: %s", question, result)
                failures.append(result)
                per_query.append([])
            else:
                per_query.append(result)

        if failures and len(failures) == len(questions):
            if all(isinstance(f, EmptyIndexError) for f in failures):
                raise failures[0]
            logger.error("All %d searches failed, continuing with no candidates", len(questions))

        merged = self.deduplicate(per_query)
        logger.info(
            "Retrieved %d unique passages from %d queries (%d failed)",
            len(merged), len(questions), len(failures),
        )
        return Outcome(
            value=merged,
            degraded=bool(failures),
            cause=failures[0] if failures else None,
            failures=failures,
        )

    @staticmethod
    def deduplicate(per_query: Sequence[Sequence[Passage]]) -> List[Passage]:
        """Flatten per-query lists keeping the first occurrence of each passage"""
        seen = set()
        merged = []
        for passages in per_query:
            for passage in passages:
                key = passage.identity
                if key in seen:
                    continue
                seen.add(key)
                merged.append(passage)
        return merged
