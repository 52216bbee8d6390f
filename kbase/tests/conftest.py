"""Shared fakes for kbase tests: no network, no model downloads."""

import hashlib
import json
import re
import threading

import numpy as np
import pytest


class FakeEmbeddingService:
    """Bag-of-words hashing embedder with the EmbeddingService interface"""

    def __init__(self, dim: int = 64):
        self.dim = dim
        self.model_name = "fake-bow"

    def embed(self, texts):
        return [self._vector(t) for t in texts]

    def embed_single(self, text):
        if not text:
            raise ValueError("Cannot embed empty text")
        return self._vector(text)

    def _vector(self, text):
        vec = np.zeros(self.dim, dtype=np.float32)
        for token in re.findall(r"\w+", text.lower()):
            idx = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dim
            vec[idx] += 1.0
        norm = np.linalg.norm(vec)
        if norm:
            vec /= norm
        return vec.tolist()


class StubLLM:
    """
    Deterministic stand-in for LLMClient.

    Expansion prompts get ``expansion_response`` (JSON of ``paraphrases`` by
    default); answer prompts get ``answer``, streamed as ``fragments``.
    """

    def __init__(
        self,
        paraphrases=None,
        answer="Refunds are issued within 30 days of purchase.",
        fragments=None,
        expansion_response=None,
        expansion_error=None,
        answer_error=None,
        available=True,
    ):
        self.paraphrases = paraphrases or []
        self.answer = answer
        self.fragments = fragments
        self.expansion_response = expansion_response
        self.expansion_error = expansion_error
        self.answer_error = answer_error
        self.available = available
        self.expansion_calls = []
        self.answer_calls = []
        self._lock = threading.Lock()

    @property
    def is_available(self):
        return self.available

    @staticmethod
    def is_expansion_prompt(prompt):
        return "alternative phrasings" in prompt

    def generate(self, prompt, *, system=None, max_tokens=None):
        if self.is_expansion_prompt(prompt):
            with self._lock:
                self.expansion_calls.append(prompt)
            if self.expansion_error:
                raise self.expansion_error
            if self.expansion_response is not None:
                return self.expansion_response
            return json.dumps(self.paraphrases)

        with self._lock:
            self.answer_calls.append(prompt)
        if self.answer_error:
            raise self.answer_error
        return self.answer

    def generate_stream(self, prompt, on_fragment, *, system=None, max_tokens=None):
        with self._lock:
            self.answer_calls.append(prompt)
        if self.answer_error:
            raise self.answer_error
        fragments = self.fragments
        if fragments is None:
            fragments = [self.answer[i:i + 7] for i in range(0, len(self.answer), 7)]
        for fragment in fragments:
            on_fragment(fragment)
        return "".join(fragments)


class FakeOracle:
    """Retrieval oracle returning canned passages per query string"""

    def __init__(self, results=None, errors=None, default=None):
        self.results = results or {}
        self.errors = errors or {}
        self.default = default if default is not None else []
        self.queries = []
        self._lock = threading.Lock()

    def search(self, query, k=3):
        with self._lock:
            self.queries.append((query, k))
        if query in self.errors:
            raise self.errors[query]
        return list(self.results.get(query, self.default))[:k]


@pytest.fixture
def embedding_service():
    return FakeEmbeddingService()


@pytest.fixture
def memory_store(embedding_service):
    from kbase.common.vector_store import InMemoryVectorStore
    return InMemoryVectorStore(embedding_service, index_name="test_kb")


@pytest.fixture
def refund_passages():
    from kbase.common.schemas import Passage
    return {
        "policy": Passage("Refunds are issued within 30 days of purchase.", {"source": "policy.md"}),
        "faq": Passage("Contact support to request a refund.", {"source": "faq.md"}),
        "terms": Passage("Digital goods are non-refundable once downloaded.", {"source": "terms.md"}),
        "billing": Passage("Refunds go back to the original payment method.", {"source": "billing.md"}),
        "shipping": Passage("Return shipping is paid by the customer.", {"source": "shipping.md"}),
    }
