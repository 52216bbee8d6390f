"""
Query Expander

Asks the LLM for alternative phrasings of a question to widen retrieval
recall. Expansion is best-effort: any failure degrades to no paraphrases.
"""

import logging
from typing import List, Optional

from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json_array
from ..common.schemas import EXPANSION_PROMPT, Outcome, render

logger = logging.getLogger("kbase.retriever.query_expander")


class QueryExpander:
    """
    Generates paraphrases of a user question.

    The original question is never part of the result; callers prepend it
    (see ``expanded_questions``).
    """

    def __init__(self, llm_client: Optional[LLMClient], default_count: int = 3):
        """
        Initialize query expander.

        Args:
            llm_client: Client used for the paraphrase call (None disables expansion)
            default_count: Number of paraphrases requested when no count is given
        """
        self._llm = llm_client
        self._default_count = default_count

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def expand(self, question: str, count: Optional[int] = None) -> List[str]:
        """Return up to ``count`` paraphrases, or [] on any failure."""
        return self.expand_outcome(question, count).value

    def expand_outcome(self, question: str, count: Optional[int] = None) -> Outcome[List[str]]:
        """
        Same as ``expand`` but reports whether the result was degraded.

        Args:
            question: Original user question
            count: Number of paraphrases to request

        Returns:
            Outcome whose value holds at most ``count`` paraphrases
        """
        count = self._default_count if count is None else count
        if count <= 0:
            return Outcome(value=[])

        if not self.is_available:
            logger.info("LLM unavailable, skipping query expansion")
            return Outcome(value=[], degraded=True, cause=RuntimeError("LLM client is not available"))

        try:
            prompt = render(EXPANSION_PROMPT, count=count, question=question)
            raw = self._llm.generate(prompt, max_tokens=300)
        except Exception as e:
            logger.warning("Query expansion failed: %s", e)
            return Outcome(value=[], degraded=True, cause=e)

        items = parse_llm_json_array(raw)
        if items is None:
            error = ValueError(f"Unparseable expansion response: {raw[:200]!r}")
            logger.warning("Query expansion failed: %s", error)
            return Outcome(value=[], degraded=True, cause=error)

        paraphrases = self._clean(question, items)[:count]
        logger.debug("Expanded %r into %d paraphrases", question, len(paraphrases))
        return Outcome(value=paraphrases)

    def expanded_questions(self, question: str, count: Optional[int] = None) -> Outcome[List[str]]:
        """Original question followed by its paraphrases."""
        outcome = self.expand_outcome(question, count)
        return Outcome(
            value=[question] + outcome.value,
            degraded=outcome.degraded,
            cause=outcome.cause,
        )

    @staticmethod
    def _clean(question: str, items: list) -> List[str]:
        """Keep distinct non-empty strings that differ from the question"""
        seen = {question.strip().lower()}
        cleaned = []
        for item in items:
            if not isinstance(item, str):
                continue
            text = item.strip()
            key = text.lower()
            if not text or key in seen:
                continue
            seen.add(key)
            cleaned.append(text)
        return cleaned
