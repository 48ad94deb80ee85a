"""Unit tests for in-memory and JSON job stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from chaptervoice.errors import JobNotFoundError, PipelineStageError
from chaptervoice.jobs.store import InMemoryJobStore, JsonJobStore
from chaptervoice.models.datatypes import Chapter
from chaptervoice.models.job import Job, JobStatus


def _job(job_id: str = "job-1") -> Job:
    """Build a one-chapter pending job."""

    return Job(
        id=job_id,
        voice_id="voice-a",
        chapters=(Chapter(index=1, title="Chapter 1", text="Body."),),
    )


@pytest.mark.parametrize("store_kind", ["memory", "json"])
def test_store_create_save_load_cycle(tmp_path: Path, store_kind: str) -> None:
    """Stores return the latest saved snapshot and reject unknown or duplicate ids."""

    store = InMemoryJobStore() if store_kind == "memory" else JsonJobStore(tmp_path / "jobs")
    job = store.create_job(_job())

    with pytest.raises(ValueError, match="already exists"):
        store.create_job(_job())

    processing = job.start()
    store.save_job_progress(job.id, processing)

    assert store.load_job(job.id) == processing
    assert [item.id for item in store.list_jobs()] == ["job-1"]
    with pytest.raises(JobNotFoundError):
        store.load_job("missing")
    with pytest.raises(JobNotFoundError):
        store.save_job_progress("missing", _job("missing"))


def test_json_store_writes_readable_snapshot(tmp_path: Path) -> None:
    """JSON snapshots are human-readable and carry status and progress."""

    store = JsonJobStore(tmp_path)
    job = store.create_job(_job())
    store.save_job_progress(job.id, job.start().record_chapter("file:///a.mp3").complete())

    payload = json.loads((tmp_path / "job-1.json").read_text(encoding="utf-8"))

    assert payload["status"] == JobStatus.COMPLETED.value
    assert payload["progress_percent"] == 100
    assert payload["audio_urls"] == ["file:///a.mp3"]


def test_json_store_rejects_path_like_ids(tmp_path: Path) -> None:
    """Job ids cannot escape the store directory."""

    with pytest.raises(ValueError, match="Invalid job id"):
        JsonJobStore(tmp_path).path_for("../escape")


def test_json_store_reports_corrupted_files_as_stage_errors(tmp_path: Path) -> None:
    """Corrupt job files map to a `job-store` stage error with a hint."""

    (tmp_path / "job-1.json").write_text("{broken", encoding="utf-8")

    with pytest.raises(PipelineStageError) as exc_info:
        JsonJobStore(tmp_path).load_job("job-1")

    assert exc_info.value.stage == "job-store"
    assert exc_info.value.hint is not None
