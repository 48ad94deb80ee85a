"""Unit tests for job snapshots and state-machine transitions."""

from __future__ import annotations

import pytest

from chaptervoice.errors import JobStateError
from chaptervoice.models.datatypes import Chapter
from chaptervoice.models.job import Job, JobStatus, progress_percent


def _job(chapter_count: int = 3) -> Job:
    """Build a pending job with `chapter_count` chapters."""

    return Job(
        id="job-1",
        voice_id="voice-a",
        chapters=tuple(
            Chapter(index=index, title=f"Chapter {index}", text=f"Body {index}.")
            for index in range(1, chapter_count + 1)
        ),
    )


@pytest.mark.parametrize(
    ("processed", "total", "expected"),
    [(0, 3, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (3, 3, 100), (0, 0, 0)],
)
def test_progress_percent_rounds_half_up(processed: int, total: int, expected: int) -> None:
    """Progress is `processed / total * 100` rounded to the nearest integer."""

    assert progress_percent(processed, total) == expected


def test_happy_path_reaches_completed_with_ordered_urls() -> None:
    """A job records chapter URLs in order and completes at 100%."""

    job = _job().start()
    assert job.status is JobStatus.PROCESSING

    job = job.record_chapter("file:///a.mp3")
    assert (job.processed_chapters, job.progress_percent) == (1, 33)
    job = job.record_chapter("file:///b.mp3").record_chapter("file:///c.mp3")
    job = job.complete()

    assert job.status is JobStatus.COMPLETED
    assert job.is_terminal
    assert job.progress_percent == 100
    assert job.audio_urls == ("file:///a.mp3", "file:///b.mp3", "file:///c.mp3")


def test_failure_keeps_already_recorded_urls() -> None:
    """Failed jobs keep audio of chapters completed before the failure."""

    job = _job().start().record_chapter("file:///a.mp3").fail("Chapter 2 (Chapter 2) failed: boom")

    assert job.status is JobStatus.FAILED
    assert job.audio_urls == ("file:///a.mp3",)
    assert job.progress_percent == 33
    assert job.error == "Chapter 2 (Chapter 2) failed: boom"


def test_pending_job_can_be_cancelled() -> None:
    """Cancelling before processing starts is allowed."""

    assert _job().cancel().status is JobStatus.CANCELLED


@pytest.mark.parametrize(
    "make_illegal",
    [
        lambda job: job.record_chapter("file:///a.mp3"),
        lambda job: job.complete(),
        lambda job: job.start().complete(),
        lambda job: job.start().fail("x").cancel(),
        lambda job: job.cancel().start(),
        lambda job: job.start().start(),
    ],
)
def test_illegal_transitions_are_rejected(make_illegal) -> None:  # type: ignore[no-untyped-def]
    """Terminal states are final and chapters only record while processing."""

    with pytest.raises(JobStateError):
        make_illegal(_job())


def test_recording_more_chapters_than_owned_is_rejected() -> None:
    """Processed chapters can never exceed the job's chapter count."""

    job = _job(1).start().record_chapter("file:///a.mp3")

    with pytest.raises(JobStateError, match="more chapters"):
        job.record_chapter("file:///b.mp3")


def test_payload_roundtrip_restores_snapshot() -> None:
    """Persisted payloads rebuild an equal snapshot."""

    job = _job().start().record_chapter("file:///a.mp3").fail("boom")

    assert Job.from_payload(job.as_payload()) == job
