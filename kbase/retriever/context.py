"""
Context Assembler

Turns the candidate passages into the prompt context plus the citation
list shown next to the answer.
"""

import logging
from typing import List, Sequence

from ..common.schemas import AssembledContext, Passage, SourceSummary

logger = logging.getLogger("kbase.retriever.context")

SEPARATOR = "\n\n"


class ContextAssembler:
    """
    Joins passages within a character budget.

    Passages are taken in candidate order; once the next one would push
    the joined text over ``max_chars`` it and everything after it are
    dropped.
    """

    def __init__(self, max_chars: int = 12000, preview_chars: int = 200):
        self._max_chars = max_chars
        self._preview_chars = preview_chars

    def assemble(self, passages: Sequence[Passage]) -> AssembledContext:
        if not passages:
            return AssembledContext(text="")

        kept: List[Passage] = []
        parts: List[str] = []
        used = 0
        for passage in passages:
            extra = len(passage.content) + (len(SEPARATOR) if parts else 0)
            if used + extra > self._max_chars:
                if not parts:
                    # A single oversized passage is truncated rather than dropped
                    parts.append(passage.content[:self._max_chars])
                    kept.append(passage)
                break
            parts.append(passage.content)
            kept.append(passage)
            used += extra

        dropped = len(passages) - len(kept)
        if dropped:
            logger.info("Context budget (%d chars) dropped %d passages", self._max_chars, dropped)

        return AssembledContext(
            text=SEPARATOR.join(parts),
            sources=tuple(self.summarize(p) for p in kept),
            dropped=dropped,
        )

    def summarize(self, passage: Passage) -> SourceSummary:
        content = passage.content
        if len(content) > self._preview_chars:
            content = content[:self._preview_chars] + "..."
        return SourceSummary(content=content, metadata=dict(passage.metadata))
