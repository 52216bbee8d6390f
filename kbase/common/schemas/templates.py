"""
Prompt Templates

Every template has a fixed set of named placeholders. ``render`` refuses to
fill a template with missing or unexpected variables, so a typo in a caller
fails loudly instead of sending a half-rendered prompt to the model.
"""

from string import Formatter
from typing import FrozenSet


EXPANSION_PROMPT = """You rewrite search questions to improve document retrieval.

Generate exactly {count} alternative phrasings of the question below. Each
phrasing must ask for the same information using different wording or
terminology.

Respond with a JSON array of {count} strings and nothing else: no numbering,
no explanation, no surrounding text.

Question: {question}

JSON array:"""


ANSWER_PROMPT = """You are a helpful AI assistant with access to a knowledge base. Use the following context to answer the user's question accurately and concisely.

Instructions:
- Answer based only on the provided context
- If the context doesn't contain enough information, say "I cannot find the answer in the provided documents."
- Be concise but thorough
- Use bullet points when appropriate for better readability

----------------
START CONTEXT
{context}
END CONTEXT
----------------
Question: {question}
----------------
Answer:"""


NO_INFORMATION_ANSWER = (
    "I cannot find any relevant information in the knowledge base to answer your question."
)


def placeholders(template: str) -> FrozenSet[str]:
    """Named placeholders used by a template"""
    return frozenset(
        name for _, name, _, _ in Formatter().parse(template) if name
    )


def render(template: str, **variables) -> str:
    """Fill a template's placeholders.

    Raises:
        KeyError: a placeholder has no value
        ValueError: a variable matches no placeholder
    """
    expected = placeholders(template)
    missing = expected - variables.keys()
    if missing:
        raise KeyError(f"Missing template variables: {sorted(missing)}")
    unexpected = variables.keys() - expected
    if unexpected:
        raise ValueError(f"Unexpected template variables: {sorted(unexpected)}")
    return template.format(**variables)
