"""
Provider-agnostic LLM client for kbase pipelines.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface, in blocking and streaming form.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .config import LLMConfig

logger = logging.getLogger("kbase.common.llm_client")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
        timeout: float = 30.0,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LLMClient":
        return cls(
            provider=config.provider,
            model=config.model,
            anthropic_api_key=config.anthropic_api_key or None,
            openai_api_key=config.openai_api_key or None,
            google_api_key=config.google_api_key or None,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Blocking completion. Returns the model text as produced."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        max_tokens = max_tokens or self.max_tokens

        if self.provider == "anthropic":
            kwargs = self._anthropic_kwargs(prompt, system, max_tokens)
            response = self._client.messages.create(**kwargs)
            return "".join(
                block.text for block in response.content if getattr(block, "type", "text") == "text"
            )

        if self.provider == "openai":
            response = self._client.chat.completions.create(
                **self._openai_kwargs(prompt, system, max_tokens)
            )
            return response.choices[0].message.content or ""

        if self.provider == "google":
            response = self._google_model(system).generate_content(
                prompt,
                generation_config={
                    "max_output_tokens": max_tokens,
                    "temperature": self.temperature,
                },
                request_options={"timeout": self.timeout},
            )
            return response.text

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    def generate_stream(
        self,
        prompt: str,
        on_fragment: Callable[[str], None],
        *,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Streaming completion.

        Every non-empty text fragment is handed to ``on_fragment`` as soon as
        the provider yields it. Returns the concatenation of all fragments.
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        max_tokens = max_tokens or self.max_tokens
        parts = []

        def emit(text: Optional[str]) -> None:
            if text:
                parts.append(text)
                on_fragment(text)

        if self.provider == "anthropic":
            kwargs = self._anthropic_kwargs(prompt, system, max_tokens)
            with self._client.messages.stream(**kwargs) as stream:
                for text in stream.text_stream:
                    emit(text)
            return "".join(parts)

        if self.provider == "openai":
            stream = self._client.chat.completions.create(
                stream=True, **self._openai_kwargs(prompt, system, max_tokens)
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                emit(chunk.choices[0].delta.content)
            return "".join(parts)

        if self.provider == "google":
            response = self._google_model(system).generate_content(
                prompt,
                generation_config={
                    "max_output_tokens": max_tokens,
                    "temperature": self.temperature,
                },
                request_options={"timeout": self.timeout},
                stream=True,
            )
            for chunk in response:
                emit(chunk.text)
            return "".join(parts)

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    def _anthropic_kwargs(self, prompt: str, system: Optional[str], max_tokens: int) -> dict:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": self.timeout,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    def _openai_kwargs(self, prompt: str, system: Optional[str], max_tokens: int) -> dict:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
            "messages": messages,
            "timeout": self.timeout,
        }

    def _google_model(self, system: Optional[str]):
        import hashlib

        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        return self._google_models[cache_key]
