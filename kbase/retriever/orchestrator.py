"""
Query Orchestrator

Public entry point of the query pipeline:

    Idle -> Expanding -> Retrieving -> Assembling -> Generating -> Done

Any stage after Idle may exit to Failed. An empty candidate set
short-circuits from Retrieving straight to Done with the fixed
no-information answer, without calling the LLM.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from ..common.config import KBaseConfig
from ..common.errors import KBaseError, PipelineError, ValidationError
from ..common.llm_client import LLMClient
from ..common.schemas import (
    AnswerResult,
    AssembledContext,
    NO_INFORMATION_ANSWER,
    Passage,
    StreamEvent,
)
from ..common.vector_store import VectorStore
from .context import ContextAssembler
from .query_expander import QueryExpander
from .searcher import Searcher
from .synthesizer import Synthesizer

logger = logging.getLogger("kbase.retriever.orchestrator")


class QueryState(str, Enum):
    """Pipeline stages of a single question"""
    IDLE = "idle"
    EXPANDING = "expanding"
    RETRIEVING = "retrieving"
    ASSEMBLING = "assembling"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


class _Run:
    """Per-question bookkeeping: current stage and elapsed time"""

    def __init__(self, question: str):
        self.question = question
        self.state = QueryState.IDLE
        self._start: Optional[float] = None

    def enter(self, state: QueryState) -> None:
        if state is QueryState.EXPANDING:
            self._start = time.monotonic()
        logger.debug("%s -> %s", self.state.value, state.value)
        self.state = state

    @property
    def elapsed_ms(self) -> int:
        if self._start is None:
            return 0
        return max(0, int((time.monotonic() - self._start) * 1000))


class QueryOrchestrator:
    """
    Sequences expansion, retrieval, assembly and generation for one question.

    Components are shared across questions; everything a run produces lives
    in that run's local state.
    """

    def __init__(
        self,
        expander: QueryExpander,
        searcher: Searcher,
        assembler: ContextAssembler,
        synthesizer: Synthesizer,
        expansion_count: int = 3,
    ):
        self._expander = expander
        self._searcher = searcher
        self._assembler = assembler
        self._synthesizer = synthesizer
        self._expansion_count = expansion_count

    @classmethod
    def from_config(
        cls,
        config: KBaseConfig,
        llm_client: LLMClient,
        vector_store: VectorStore,
    ) -> "QueryOrchestrator":
        retriever = config.retriever
        return cls(
            expander=QueryExpander(llm_client, default_count=retriever.expansion_count),
            searcher=Searcher(vector_store, per_query_limit=retriever.per_query_limit),
            assembler=ContextAssembler(
                max_chars=retriever.max_context_chars,
                preview_chars=retriever.source_preview_chars,
            ),
            synthesizer=Synthesizer(llm_client),
            expansion_count=retriever.expansion_count,
        )

    @staticmethod
    def validate(question: Any) -> str:
        """Reject anything that is not a non-blank string. Accepted questions are returned unchanged."""
        if not isinstance(question, str):
            raise ValidationError("Please provide a valid question string")
        if not question.strip():
            raise ValidationError("Question cannot be empty")
        return question

    async def ask(self, question: Any) -> AnswerResult:
        """
        Answer a question in batch mode.

        Raises:
            ValidationError: empty or non-string question (no I/O performed)
            EmptyIndexError: nothing has been ingested yet
            GenerationError: the answer call failed
            PipelineError: any other stage failure
        """
        run = _Run(self.validate(question))
        logger.info("Processing question: %r", run.question)

        try:
            candidates = await self._expand_and_retrieve(run)
            if not candidates:
                run.enter(QueryState.DONE)
                return self._no_information(run)

            context = self._assemble(run, candidates)

            run.enter(QueryState.GENERATING)
            answer = await asyncio.to_thread(self._synthesizer.generate, context.text, run.question)
            elapsed = run.elapsed_ms
            run.enter(QueryState.DONE)
        except KBaseError as e:
            self._fail(run, e)
            raise
        except Exception as e:
            raise self._fail(run, e) from e

        logger.info("Query completed in %dms (%d documents)", elapsed, len(candidates))
        return AnswerResult(
            question=run.question,
            answer=answer,
            sources=context.sources,
            processing_time_ms=elapsed,
            documents_retrieved=len(candidates),
        )

    def stream(self, question: Any) -> AsyncIterator[StreamEvent]:
        """
        Answer a question as a stream of events.

        The question is validated before the iterator is returned, so a
        ValidationError surfaces to the caller instead of as an event.
        Every other failure ends the stream with an ``error`` event.
        """
        return self._stream(self.validate(question))

    async def _stream(self, question: str) -> AsyncIterator[StreamEvent]:
        run = _Run(question)
        logger.info("Streaming question: %r", run.question)
        yield StreamEvent.connected()

        task: Optional[asyncio.Future] = None
        try:
            candidates = await self._expand_and_retrieve(run)
            if not candidates:
                run.enter(QueryState.DONE)
                result = self._no_information(run)
                yield StreamEvent.content(result.answer)
                yield StreamEvent.complete(self._metadata(result))
                return

            context = self._assemble(run, candidates)

            run.enter(QueryState.GENERATING)
            loop = asyncio.get_running_loop()
            queue: asyncio.Queue = asyncio.Queue()
            done = object()

            def on_fragment(text: str) -> None:
                loop.call_soon_threadsafe(queue.put_nowait, text)

            async def produce() -> str:
                try:
                    return await asyncio.to_thread(
                        self._synthesizer.generate_streaming, context.text, run.question, on_fragment
                    )
                finally:
                    queue.put_nowait(done)

            task = asyncio.ensure_future(produce())
            while True:
                item = await queue.get()
                if item is done:
                    break
                yield StreamEvent.content(item)

            await task
            elapsed = run.elapsed_ms
            run.enter(QueryState.DONE)
            result = AnswerResult(
                question=run.question,
                answer="",
                sources=context.sources,
                processing_time_ms=elapsed,
                documents_retrieved=len(candidates),
            )
            logger.info("Streamed query completed in %dms (%d documents)", elapsed, len(candidates))
            yield StreamEvent.complete(self._metadata(result))
        except Exception as e:
            error = self._fail(run, e)
            yield StreamEvent.error(error.message)
        finally:
            if task is not None and not task.done():
                # Consumer went away mid-answer; let the LLM call finish quietly
                task.add_done_callback(_discard_result)

    async def _expand_and_retrieve(self, run: _Run) -> List[Passage]:
        run.enter(QueryState.EXPANDING)
        expansion = await asyncio.to_thread(
            self._expander.expanded_questions, run.question, self._expansion_count
        )
        if expansion.degraded:
            logger.info("Expansion degraded, searching with the original question only")

        run.enter(QueryState.RETRIEVING)
        return await self._searcher.retrieve(expansion.value)

    def _assemble(self, run: _Run, candidates: List[Passage]) -> AssembledContext:
        run.enter(QueryState.ASSEMBLING)
        return self._assembler.assemble(candidates)

    @staticmethod
    def _no_information(run: _Run) -> AnswerResult:
        logger.info("No relevant passages for %r", run.question)
        return AnswerResult(
            question=run.question,
            answer=NO_INFORMATION_ANSWER,
            sources=(),
            processing_time_ms=run.elapsed_ms,
            documents_retrieved=0,
        )

    @staticmethod
    def _metadata(result: AnswerResult) -> Dict[str, Any]:
        data = result.to_dict()
        data.pop("answer")
        return data

    @staticmethod
    def _fail(run: _Run, error: Exception) -> KBaseError:
        stage = run.state
        run.enter(QueryState.FAILED)
        logger.error("Query failed while %s: %s", stage.value, error)
        if isinstance(error, KBaseError):
            return error
        return PipelineError(f"Query failed: {error}", stage=stage.value)


def _discard_result(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()
