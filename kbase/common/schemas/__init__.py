"""
kbase Schemas

Pipeline data model and prompt templates.
"""

from .results import (
    Passage,
    SourceSummary,
    AssembledContext,
    AnswerResult,
    StreamEvent,
    StreamEventType,
    Outcome,
    StoreResult,
)
from .templates import (
    EXPANSION_PROMPT,
    ANSWER_PROMPT,
    NO_INFORMATION_ANSWER,
    render,
    placeholders,
)

__all__ = [
    "Passage",
    "SourceSummary",
    "AssembledContext",
    "AnswerResult",
    "StreamEvent",
    "StreamEventType",
    "Outcome",
    "StoreResult",
    "EXPANSION_PROMPT",
    "ANSWER_PROMPT",
    "NO_INFORMATION_ANSWER",
    "render",
    "placeholders",
]
