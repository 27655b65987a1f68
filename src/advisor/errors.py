"""
Advisor error taxonomy.

Only generation and persistence failures reach users. Context source,
title and insight failures are logged and absorbed.
"""

from typing import Optional


class AdvisorError(Exception):
    """Base class for advisor failures."""


class UpstreamGenerationError(AdvisorError):
    """The completion service failed before or during streaming."""

    def __init__(self, message: str, partial_text: str = ""):
        super().__init__(message)
        self.partial_text = partial_text


class PersistenceError(AdvisorError):
    """A user or assistant turn could not be written."""


class ContextSourceError(AdvisorError):
    """One context source failed to load. Logged, never raised to callers."""

    def __init__(self, source: str, cause: Optional[BaseException] = None):
        super().__init__(f"context source '{source}' failed: {cause}")
        self.source = source
        self.cause = cause


class ExtractionParseError(AdvisorError):
    """An insight reply held no valid JSON object for the specialist schema."""


class GenerationCancelled(AdvisorError):
    """Raised inside the stream loop when the caller cancels."""


class ConversationNotFound(AdvisorError):
    """Unknown conversation, or one owned by another user."""


class NothingToRetry(AdvisorError):
    """Retry requested but the last stored turn is not an unanswered user turn."""
