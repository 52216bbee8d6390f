"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, Optional


def _strip_code_fences(text: str) -> str:
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text


def _loads_between(raw: str, opener: str, closer: str) -> Optional[Any]:
    start = raw.find(opener)
    end = raw.rfind(closer) + 1
    if start >= 0 and end > start:
        try:
            return json.loads(raw[start:end])
        except json.JSONDecodeError:
            pass
    return None


def parse_llm_json(raw: str) -> dict:
    """Parse JSON from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict
    """
    if not raw:
        return {}

    try:
        data = json.loads(_strip_code_fences(raw.strip()))
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    data = _loads_between(raw, "{", "}")
    return data if isinstance(data, dict) else {}


def parse_llm_json_array(raw: str) -> Optional[list]:
    """Parse a JSON array from an LLM response.

    Same fallbacks as :func:`parse_llm_json`, but between '[' and ']'.
    Returns None when no array can be recovered, so callers can tell
    "unparseable" apart from "the model returned []".
    """
    if not raw:
        return None

    try:
        data = json.loads(_strip_code_fences(raw.strip()))
        if isinstance(data, list):
            return data
    except json.JSONDecodeError:
        pass

    data = _loads_between(raw, "[", "]")
    return data if isinstance(data, list) else None
