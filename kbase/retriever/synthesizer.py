"""
Synthesizer

LLM-based answer generation from assembled context.

The model output is returned verbatim. In streaming mode each fragment is
forwarded as soon as the provider yields it, and the concatenation of the
fragments is the answer.
"""

import logging
from typing import Callable

from ..common.errors import GenerationError
from ..common.llm_client import LLMClient
from ..common.schemas import ANSWER_PROMPT, render

logger = logging.getLogger("kbase.retriever.synthesizer")


class Synthesizer:
    """Renders the grounding prompt and calls the LLM."""

    def __init__(self, llm_client: LLMClient, template: str = ANSWER_PROMPT):
        """
        Initialize synthesizer.

        Args:
            llm_client: Client used for the answer call
            template: Prompt template with {context} and {question} placeholders
        """
        self._llm = llm_client
        self._template = template

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def build_prompt(self, context: str, question: str) -> str:
        return render(self._template, context=context, question=question)

    def generate(self, context: str, question: str) -> str:
        """
        Generate an answer in one blocking call.

        Raises:
            GenerationError: the LLM call failed (cause chained)
        """
        prompt = self.build_prompt(context, question)
        try:
            return self._llm.generate(prompt)
        except Exception as e:
            logger.error("Answer generation failed: %s", e)
            raise GenerationError(f"Answer generation failed: {e}") from e

    def generate_streaming(
        self,
        context: str,
        question: str,
        on_fragment: Callable[[str], None],
    ) -> str:
        """
        Generate an answer, pushing fragments to ``on_fragment`` in order.

        Returns:
            The full answer (concatenation of all fragments)

        Raises:
            GenerationError: the LLM call failed (cause chained)
        """
        prompt = self.build_prompt(context, question)
        try:
            return self._llm.generate_stream(prompt, on_fragment)
        except Exception as e:
            logger.error("Streaming answer generation failed: %s", e)
            raise GenerationError(f"Answer generation failed: {e}") from e
