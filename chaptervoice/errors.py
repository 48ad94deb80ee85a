"""Domain exceptions for the generation pipeline and CLI diagnostics.

Responsibilities:
- Define the closed synthesis failure taxonomy surfaced by `SynthesisClient`.
- Attribute unrecoverable chunk failures to chapters.
- Provide stage-scoped errors for CLI/config diagnostics.
"""

from __future__ import annotations

from enum import Enum


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class SynthesisErrorKind(str, Enum):
    """Terminal per-chunk synthesis failure kinds."""

    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_KEY = "invalid_key"
    PROVIDER_ERROR = "provider_error"
    EMPTY = "empty"
    RATE_LIMIT_TIMEOUT = "rate_limit_timeout"


_KIND_HEADLINES = {
    SynthesisErrorKind.QUOTA_EXCEEDED: "Provider quota exhausted",
    SynthesisErrorKind.INVALID_KEY: "Invalid provider credential",
    SynthesisErrorKind.PROVIDER_ERROR: "Provider error",
    SynthesisErrorKind.EMPTY: "Provider returned empty audio",
    SynthesisErrorKind.RATE_LIMIT_TIMEOUT: "Timed out waiting for synthesis rate limit",
}


def synthesis_headline(kind: SynthesisErrorKind) -> str:
    """Return the user-facing headline that prefixes messages of `kind`."""

    return _KIND_HEADLINES[kind]


class SynthesisError(RuntimeError):
    """Raised when one chunk cannot be synthesized after the retry policy ran."""

    def __init__(self, kind: SynthesisErrorKind, message: str = "") -> None:
        """Initialize a kind-tagged synthesis failure with a user-facing message."""

        headline = synthesis_headline(kind)
        detail = f"{headline}: {message}" if message else f"{headline}."
        super().__init__(detail)
        self.kind = kind
        self.message = message


class ChapterFailedError(RuntimeError):
    """Raised when any chunk of a chapter fails, invalidating the whole chapter."""

    def __init__(self, *, chapter_index: int, title: str, cause: Exception) -> None:
        """Initialize chapter failure with the underlying chunk-level cause."""

        super().__init__(f"Chapter {chapter_index} ({title}) failed: {cause}")
        self.chapter_index = chapter_index
        self.title = title
        self.cause = cause

    @property
    def kind(self) -> SynthesisErrorKind | None:
        """Return the synthesis failure kind when the cause is a `SynthesisError`."""

        if isinstance(self.cause, SynthesisError):
            return self.cause.kind
        return None


class JobCancelledError(RuntimeError):
    """Raised inside a job run when a cooperative cancellation was observed."""


class JobStateError(RuntimeError):
    """Raised on an illegal job state-machine transition."""


class JobNotFoundError(KeyError):
    """Raised when a job id is unknown to the job store."""
