"""Job record and state-machine transitions.

Responsibilities:
- Represent one end-to-end generation request as an immutable snapshot.
- Enforce the `pending -> processing -> completed | failed | cancelled` machine.
- Serialize job snapshots for persistence collaborators.

Every transition returns a new `Job`; terminal snapshots never change again.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
import math

from ..errors import JobStateError
from .datatypes import Chapter


class JobStatus(str, Enum):
    """Lifecycle states of a generation job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further transition is allowed from this state."""

        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def progress_percent(processed_chapters: int, total_chapters: int) -> int:
    """Return `processed / total` as a 0..100 integer, rounding halves up."""

    if total_chapters <= 0:
        return 0
    value = math.floor(processed_chapters * 100 / total_chapters + 0.5)
    return max(0, min(100, value))


@dataclass(frozen=True, slots=True)
class Job:
    """Snapshot of one generation job.

    Attributes:
        id: Stable job identifier.
        voice_id: Voice identifier used for every chapter.
        chapters: Ordered chapters to synthesize.
        status: Current lifecycle state.
        processed_chapters: Count of chapters whose audio was stored.
        progress_percent: `round(processed / total * 100)`.
        audio_urls: Public URLs of completed chapter audio, in chapter order.
        error: Terminal failure message for `failed` jobs.
        created_at: Creation timestamp (UTC).
        updated_at: Timestamp of the last persisted change (UTC).
    """

    id: str
    voice_id: str
    chapters: tuple[Chapter, ...]
    status: JobStatus = JobStatus.PENDING
    processed_chapters: int = 0
    progress_percent: int = 0
    audio_urls: tuple[str, ...] = field(default_factory=tuple)
    error: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def total_chapters(self) -> int:
        """Return the number of chapters in this job."""

        return len(self.chapters)

    @property
    def is_terminal(self) -> bool:
        """Return whether this job reached a final state."""

        return self.status.is_terminal

    def transition(self, target: JobStatus, *, now: datetime | None = None, **changes: object) -> Job:
        """Return a copy moved to `target`, validating the transition."""

        allowed = _ALLOWED_TRANSITIONS[self.status]
        if target not in allowed:
            raise JobStateError(
                f"Job `{self.id}` cannot transition from `{self.status.value}` "
                f"to `{target.value}`."
            )
        return replace(self, status=target, updated_at=now or utc_now(), **changes)

    def start(self, *, now: datetime | None = None) -> Job:
        """Move a pending job to `processing` with zeroed progress."""

        return self.transition(
            JobStatus.PROCESSING,
            now=now,
            processed_chapters=0,
            progress_percent=0,
            audio_urls=(),
            error=None,
        )

    def record_chapter(self, audio_url: str, *, now: datetime | None = None) -> Job:
        """Return a processing copy with one more completed chapter URL."""

        if self.status is not JobStatus.PROCESSING:
            raise JobStateError(
                f"Job `{self.id}` can only record chapters while processing, "
                f"not `{self.status.value}`."
            )
        processed = self.processed_chapters + 1
        if processed > self.total_chapters:
            raise JobStateError(f"Job `{self.id}` recorded more chapters than it owns.")
        return replace(
            self,
            processed_chapters=processed,
            progress_percent=progress_percent(processed, self.total_chapters),
            audio_urls=(*self.audio_urls, audio_url),
            updated_at=now or utc_now(),
        )

    def complete(self, *, now: datetime | None = None) -> Job:
        """Move a processing job to `completed`; every chapter must be recorded."""

        if self.processed_chapters != self.total_chapters:
            raise JobStateError(
                f"Job `{self.id}` cannot complete with "
                f"{self.processed_chapters}/{self.total_chapters} chapters processed."
            )
        return self.transition(JobStatus.COMPLETED, now=now, progress_percent=100)

    def fail(self, error: str, *, now: datetime | None = None) -> Job:
        """Move to `failed`, keeping already-recorded chapter URLs."""

        return self.transition(JobStatus.FAILED, now=now, error=error)

    def cancel(self, *, now: datetime | None = None) -> Job:
        """Move to `cancelled`, keeping already-recorded chapter URLs."""

        return self.transition(JobStatus.CANCELLED, now=now)

    def as_payload(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""

        return {
            "id": self.id,
            "voice_id": self.voice_id,
            "status": self.status.value,
            "chapters": [chapter.as_payload() for chapter in self.chapters],
            "total_chapters": self.total_chapters,
            "processed_chapters": self.processed_chapters,
            "progress_percent": self.progress_percent,
            "audio_urls": list(self.audio_urls),
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> Job:
        """Rebuild a job snapshot from its JSON payload."""

        raw_chapters = payload.get("chapters")
        if not isinstance(raw_chapters, list):
            raise ValueError("Job payload is missing a `chapters` list.")
        raw_urls = payload.get("audio_urls") or []
        if not isinstance(raw_urls, list):
            raise ValueError("Job payload field `audio_urls` must be a list.")
        error = payload.get("error")
        return cls(
            id=str(payload["id"]),
            voice_id=str(payload["voice_id"]),
            chapters=tuple(Chapter.from_payload(item) for item in raw_chapters),
            status=JobStatus(str(payload["status"])),
            processed_chapters=int(payload.get("processed_chapters", 0)),
            progress_percent=int(payload.get("progress_percent", 0)),
            audio_urls=tuple(str(url) for url in raw_urls),
            error=str(error) if error is not None else None,
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            updated_at=datetime.fromisoformat(str(payload["updated_at"])),
        )
