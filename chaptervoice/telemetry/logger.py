"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic event logs for jobs, chapters, and synthesis calls.
- Route all records through `loguru` with a plain single-line format.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic event logs for CLI-observable pipeline activity."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize logger sink and configure deterministic formatting."""

        self._sink = sink or sys.stdout
        _loguru_logger.remove()
        _loguru_logger.add(self._sink, format="{message}", level=level, colorize=False)

    def _emit(self, level: str, event: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[event] level={level} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def log_job_transition(self, job_id: str, status: str, **context: object) -> None:
        """Emit a job state-machine transition."""

        self._emit("INFO", "job_transition", job_id=job_id, status=status, **context)

    def log_chapter_complete(
        self, job_id: str, chapter_index: int, progress_percent: int
    ) -> None:
        """Emit per-chapter completion with updated job progress."""

        self._emit(
            "INFO",
            "chapter_complete",
            job_id=job_id,
            chapter=chapter_index,
            progress=progress_percent,
        )

    def log_chapter_failure(self, job_id: str, chapter_index: int, error_type: str) -> None:
        """Emit a chapter failure without sensitive payload details."""

        self._emit(
            "ERROR",
            "chapter_failure",
            job_id=job_id,
            chapter=chapter_index,
            error_type=error_type,
        )

    def log_cache_hit(self, chapter_index: int, sequence: int) -> None:
        """Emit a content-addressed cache hit for one chunk."""

        self._emit("DEBUG", "cache_hit", chapter=chapter_index, sequence=sequence)

    def log_retry(self, attempt: int, failure_kind: str, delay_seconds: float) -> None:
        """Emit one provider retry decision."""

        self._emit(
            "WARNING",
            "provider_retry",
            attempt=attempt,
            failure_kind=failure_kind,
            delay=f"{delay_seconds:.2f}",
        )

    def log_synthesis_failure(self, chapter_index: int, sequence: int, kind: str) -> None:
        """Emit a terminal chunk synthesis failure."""

        self._emit(
            "ERROR",
            "synthesis_failure",
            chapter=chapter_index,
            sequence=sequence,
            kind=kind,
        )

    def log_throttle_change(self, previous_limit: int, new_limit: int) -> None:
        """Emit a dynamic concurrency ceiling change."""

        self._emit("WARNING", "throttle_change", previous=previous_limit, limit=new_limit)

    def log_detection_fallback(self, text_length: int) -> None:
        """Emit a no-heading chapter detection fallback."""

        self._emit("INFO", "detection_fallback", chars=text_length)

    def log_chunk_overflow(self, word_length: int, max_chunk_size: int) -> None:
        """Emit a forced mid-word split for a word longer than the chunk limit."""

        self._emit("WARNING", "chunk_overflow", word_chars=word_length, limit=max_chunk_size)

    def log_worker_error(self, job_id: str, error_type: str) -> None:
        """Emit an unexpected worker-level job error."""

        self._emit("ERROR", "worker_error", job_id=job_id, error_type=error_type)
