"""
Tests for QueryExpander

Expansion is best-effort: every failure must degrade to zero paraphrases.
"""

import json
import logging
import pytest

from conftest import StubLLM


QUESTION = "What is the refund policy?"


class TestQueryExpander:
    def test_returns_requested_paraphrases(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(paraphrases=["How do refunds work?", "Refund rules?", "Can I get my money back?"])
        expander = QueryExpander(llm)

        outcome = expander.expand_outcome(QUESTION, 3)

        assert outcome.value == ["How do refunds work?", "Refund rules?", "Can I get my money back?"]
        assert not outcome.degraded
        assert outcome.cause is None
        assert len(llm.expansion_calls) == 1
        assert QUESTION in llm.expansion_calls[0]

    def test_truncates_to_count(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(paraphrases=["a?", "b?", "c?", "d?", "e?"])
        assert QueryExpander(llm).expand(QUESTION, 2) == ["a?", "b?"]

    def test_default_count(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(paraphrases=["a?", "b?", "c?"])
        expander = QueryExpander(llm, default_count=1)
        assert expander.expand(QUESTION) == ["a?"]
        assert "exactly 1 alternative" in llm.expansion_calls[0]

    def test_zero_count_skips_llm(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(paraphrases=["a?"])
        outcome = QueryExpander(llm).expand_outcome(QUESTION, 0)
        assert outcome.value == []
        assert not outcome.degraded
        assert llm.expansion_calls == []

    def test_drops_original_duplicates_and_blanks(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(paraphrases=[
            "what is the refund policy?", "  ", 42, "Refund rules?", "refund rules?", "Returns?",
        ])
        assert QueryExpander(llm).expand(QUESTION, 3) == ["Refund rules?", "Returns?"]

    def test_llm_error_degrades(self, caplog):
        from kbase.retriever.query_expander import QueryExpander
        error = TimeoutError("rate limited")
        llm = StubLLM(expansion_error=error)

        with caplog.at_level(logging.WARNING, logger="kbase.retriever.query_expander"):
            outcome = QueryExpander(llm).expand_outcome(QUESTION, 3)

        assert outcome.value == []
        assert outcome.degraded
        assert outcome.cause is error
        assert "Query expansion failed" in caplog.text

    def test_unparseable_response_degrades(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(expansion_response="1. How do refunds work?\n2. Refund rules?")

        outcome = QueryExpander(llm).expand_outcome(QUESTION, 3)

        assert outcome.value == []
        assert outcome.degraded
        assert isinstance(outcome.cause, ValueError)

    def test_fenced_response_is_accepted(self):
        from kbase.retriever.query_expander import QueryExpander
        fenced = "```json\n" + json.dumps(["How do refunds work?"]) + "\n```"
        llm = StubLLM(expansion_response=fenced)
        assert QueryExpander(llm).expand(QUESTION, 3) == ["How do refunds work?"]

    def test_unavailable_llm_degrades_without_call(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(available=False, paraphrases=["a?"])
        outcome = QueryExpander(llm).expand_outcome(QUESTION, 3)
        assert outcome.value == []
        assert outcome.degraded
        assert llm.expansion_calls == []

    def test_no_client(self):
        from kbase.retriever.query_expander import QueryExpander
        expander = QueryExpander(None)
        assert not expander.is_available
        assert expander.expand(QUESTION) == []


class TestExpandedQuestions:
    def test_original_comes_first(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(paraphrases=["a?", "b?"])
        outcome = QueryExpander(llm).expanded_questions(QUESTION, 3)
        assert outcome.value == [QUESTION, "a?", "b?"]
        assert not outcome.degraded

    @pytest.mark.parametrize("llm", [
        StubLLM(expansion_error=RuntimeError("down")),
        StubLLM(expansion_response="not json"),
        StubLLM(available=False),
    ])
    def test_any_failure_leaves_only_the_original(self, llm):
        from kbase.retriever.query_expander import QueryExpander
        outcome = QueryExpander(llm).expanded_questions(QUESTION, 3)
        assert outcome.value == [QUESTION]
        assert outcome.degraded

    def test_size_never_exceeds_count_plus_one(self):
        from kbase.retriever.query_expander import QueryExpander
        llm = StubLLM(paraphrases=[f"variant {i}?" for i in range(10)])
        for count in range(5):
            outcome = QueryExpander(llm).expanded_questions(QUESTION, count)
            assert len(outcome.value) <= count + 1
