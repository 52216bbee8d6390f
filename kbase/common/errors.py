"""
Error taxonomy for the query pipeline.

Only failures that reach the caller are modelled as exceptions. Expansion and
per-query retrieval failures are absorbed where they happen and reported
through ``Outcome.degraded`` instead.
"""

from typing import Optional


class KBaseError(Exception):
    """Base error. ``status_code`` is the HTTP status the server maps it to."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(KBaseError):
    """Malformed or empty question, rejected before any I/O."""

    status_code = 400


class EmptyIndexError(KBaseError):
    """The vector index has never been populated."""

    status_code = 409

    def __init__(self, message: str = (
        "No documents have been stored in the collection yet. "
        "Please ingest some documents first."
    )):
        super().__init__(message)


class GenerationError(KBaseError):
    """The language-model answer call failed."""

    status_code = 502


class PipelineError(KBaseError):
    """Any other unhandled failure inside a pipeline stage."""

    def __init__(self, message: str, stage: str = ""):
        super().__init__(message)
        self.stage = stage
