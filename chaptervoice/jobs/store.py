"""Job persistence collaborators.

Responsibilities:
- Persist job snapshots on every transition and chapter completion.
- Serve snapshot reads safe to call while a worker mutates the job.
- Provide in-memory and JSON-directory implementations.
"""

from __future__ import annotations

import json
from pathlib import Path
import threading
from typing import Protocol

from ..errors import JobNotFoundError, PipelineStageError
from ..io.storage import atomic_write_bytes
from ..models.job import Job


class JobStore(Protocol):
    """Protocol for job persistence used by `JobCoordinator`."""

    def create_job(self, job: Job) -> Job:
        """Persist a new job snapshot."""

    def save_job_progress(self, job_id: str, job: Job) -> None:
        """Persist the latest snapshot of an existing job."""

    def load_job(self, job_id: str) -> Job:
        """Return the latest snapshot or raise `JobNotFoundError`."""

    def list_jobs(self) -> list[Job]:
        """Return all snapshots ordered by creation time."""


class InMemoryJobStore:
    """Thread-safe dict-backed job store for tests and single-process runs."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create_job(self, job: Job) -> Job:
        """Persist a new job; duplicate ids are rejected."""

        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job `{job.id}` already exists.")
            self._jobs[job.id] = job
        return job

    def save_job_progress(self, job_id: str, job: Job) -> None:
        """Replace the stored snapshot for `job_id`."""

        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            self._jobs[job_id] = job

    def load_job(self, job_id: str) -> Job:
        """Return the stored snapshot for `job_id`."""

        with self._lock:
            try:
                return self._jobs[job_id]
            except KeyError as exc:
                raise JobNotFoundError(job_id) from exc

    def list_jobs(self) -> list[Job]:
        """Return all snapshots ordered by creation time."""

        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: (job.created_at, job.id))


class JsonJobStore:
    """Directory-backed job store writing one `<job_id>.json` file per job."""

    def __init__(self, root: Path) -> None:
        """Initialize the store root directory."""

        self.root = root
        self._lock = threading.Lock()

    def path_for(self, job_id: str) -> Path:
        """Return the JSON path for a job id."""

        if not job_id or "/" in job_id or "\\" in job_id or job_id.startswith("."):
            raise ValueError(f"Invalid job id: `{job_id}`.")
        return self.root / f"{job_id}.json"

    def _write(self, job: Job) -> None:
        payload = json.dumps(job.as_payload(), ensure_ascii=False, indent=2, sort_keys=True)
        atomic_write_bytes(self.path_for(job.id), (payload + "\n").encode("utf-8"))

    def create_job(self, job: Job) -> Job:
        """Persist a new job; duplicate ids are rejected."""

        with self._lock:
            if self.path_for(job.id).exists():
                raise ValueError(f"Job `{job.id}` already exists.")
            self._write(job)
        return job

    def save_job_progress(self, job_id: str, job: Job) -> None:
        """Atomically replace the stored snapshot for `job_id`."""

        if job_id != job.id:
            raise ValueError(f"Job id mismatch: `{job_id}` != `{job.id}`.")
        with self._lock:
            if not self.path_for(job_id).exists():
                raise JobNotFoundError(job_id)
            self._write(job)

    def load_job(self, job_id: str) -> Job:
        """Load and validate the stored snapshot for `job_id`."""

        path = self.path_for(job_id)
        with self._lock:
            if not path.exists():
                raise JobNotFoundError(job_id)
            raw = path.read_text(encoding="utf-8")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PipelineStageError(
                stage="job-store",
                detail=f"Job file is not valid JSON: {path}",
                hint="Remove the corrupted job file and resubmit the job.",
            ) from exc
        if not isinstance(payload, dict):
            raise PipelineStageError(
                stage="job-store",
                detail=f"Job file must contain a JSON object: {path}",
                hint="Remove the corrupted job file and resubmit the job.",
            )
        try:
            return Job.from_payload(payload)
        except (KeyError, ValueError, TypeError) as exc:
            raise PipelineStageError(
                stage="job-store",
                detail=f"Job file has invalid fields: {path} ({exc})",
                hint="Remove the corrupted job file and resubmit the job.",
            ) from exc

    def list_jobs(self) -> list[Job]:
        """Return all readable snapshots ordered by creation time."""

        if not self.root.exists():
            return []
        jobs = [self.load_job(path.stem) for path in sorted(self.root.glob("*.json"))]
        return sorted(jobs, key=lambda job: (job.created_at, job.id))
