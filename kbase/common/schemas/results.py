"""
Pipeline data model

Passages come from the vector store; everything else is produced by the
query pipeline and handed to callers. All of it is read-only once built.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar
from dataclasses import dataclass, field

T = TypeVar("T")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _canonical(value: Any) -> Any:
    """Stringify mapping keys so mixed key types still sort"""
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


@dataclass(frozen=True)
class Passage:
    """A retrieved chunk: text plus the metadata recorded at ingestion"""
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    score: Optional[float] = field(default=None, compare=False)

    def __hash__(self) -> int:
        return hash(self.identity)

    @property
    def identity(self) -> Tuple[str, str]:
        """Key used for de-duplication (content AND metadata)"""
        return (self.content, json.dumps(_canonical(self.metadata), sort_keys=True, default=str))

    @property
    def source(self) -> str:
        return str(self.metadata.get("source", "unknown"))


@dataclass(frozen=True)
class SourceSummary:
    """Citation entry: truncated content preview and the full metadata"""
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "metadata": dict(self.metadata)}


@dataclass(frozen=True)
class AssembledContext:
    """Context string for the prompt plus the sources it was built from"""
    text: str
    sources: Tuple[SourceSummary, ...] = ()
    dropped: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.text


@dataclass(frozen=True)
class AnswerResult:
    """Terminal value of a batch query"""
    question: str
    answer: str
    sources: Tuple[SourceSummary, ...] = ()
    processing_time_ms: int = 0
    documents_retrieved: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
            "processingTimeMs": self.processing_time_ms,
            "documentsRetrieved": self.documents_retrieved,
        }


class StreamEventType(str, Enum):
    """Tags for streamed events"""
    CONNECTED = "connected"
    CONTENT = "content"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENT_TYPES = (StreamEventType.COMPLETE, StreamEventType.ERROR)


@dataclass(frozen=True)
class StreamEvent:
    """One event of a streamed answer"""
    type: StreamEventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now)

    @classmethod
    def connected(cls) -> "StreamEvent":
        return cls(StreamEventType.CONNECTED)

    @classmethod
    def content(cls, text: str) -> "StreamEvent":
        return cls(StreamEventType.CONTENT, {"content": text})

    @classmethod
    def complete(cls, metadata: Dict[str, Any]) -> "StreamEvent":
        return cls(StreamEventType.COMPLETE, {"metadata": metadata})

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(StreamEventType.ERROR, {"error": message})

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    @property
    def text(self) -> str:
        """Fragment text for content events, empty otherwise"""
        return self.data.get("content", "")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "timestamp": self.timestamp, **self.data}

    def to_sse(self) -> str:
        """Server-Sent-Events frame"""
        return f"data: {json.dumps(self.to_dict(), default=str)}\n\n"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a best-effort stage.

    ``degraded`` is set when the stage fell back to a reduced result;
    ``cause`` holds the first error that made it do so.
    """
    value: T
    degraded: bool = False
    cause: Optional[BaseException] = None
    failures: List[BaseException] = field(default_factory=list, compare=False)


@dataclass(frozen=True)
class StoreResult:
    """Result of a vector store upsert"""
    id: str
    chunks_stored: int
    processing_time_ms: int
    collection_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chunksStored": self.chunks_stored,
            "processingTimeMs": self.processing_time_ms,
            "collectionName": self.collection_name,
        }
