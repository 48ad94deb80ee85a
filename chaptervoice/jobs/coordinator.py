"""Job state-machine coordination.

Responsibilities:
- Create pending jobs and drive them through chapter-by-chapter processing.
- Persist every transition and every completed chapter.
- Isolate chapter failures: stop at the first failed chapter, keep prior URLs.
- Provide cooperative cancellation and snapshot status reads.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
import threading
from uuid import uuid4

from ..assembly.assembler import ChapterAssembler
from ..errors import ChapterFailedError, JobCancelledError
from ..io.storage import AudioStorage
from ..models.datatypes import Chapter
from ..models.job import Job
from ..telemetry.logger import RunLogger
from .store import JobStore


class JobCoordinator:
    """Drive jobs through `pending -> processing -> completed | failed | cancelled`."""

    def __init__(
        self,
        store: JobStore,
        assembler: ChapterAssembler,
        storage: AudioStorage,
        *,
        run_logger: RunLogger | None = None,
        id_factory: Callable[[], str] = lambda: uuid4().hex,
    ) -> None:
        """Initialize coordinator collaborators."""

        self.store = store
        self.assembler = assembler
        self.storage = storage
        self._run_logger = run_logger
        self._id_factory = id_factory
        self._cancel_events: dict[str, threading.Event] = {}
        self._lock = threading.RLock()

    def create_job(
        self,
        chapters: Sequence[Chapter],
        voice_id: str,
        job_id: str | None = None,
    ) -> Job:
        """Persist and return a new pending job."""

        if not chapters:
            raise ValueError("A job needs at least one chapter.")
        if not voice_id.strip():
            raise ValueError("`voice_id` must be a non-empty string.")
        job = Job(
            id=job_id or self._id_factory(),
            voice_id=voice_id.strip(),
            chapters=tuple(chapters),
        )
        self.store.create_job(job)
        self._log_transition(job, chapters=job.total_chapters)
        return job

    def get_status(self, job_id: str) -> Job:
        """Return the latest persisted snapshot."""

        return self.store.load_job(job_id)

    def cancel(self, job_id: str) -> bool:
        """Request cancellation; return `False` when the job is already terminal.

        Pending jobs are cancelled immediately. Processing jobs stop before
        their next chunk or chapter starts; a request that lands after the last
        chapter still ends the job `cancelled`, never `completed`.
        """

        with self._lock:
            job = self.store.load_job(job_id)
            if job.is_terminal:
                return False
            cancel_event = self._cancel_events.get(job_id)
            if cancel_event is not None:
                cancel_event.set()
                return True
            # Pending, or processing without a live runner in this coordinator.
            cancelled = job.cancel()
            self.store.save_job_progress(job_id, cancelled)
            self._log_transition(cancelled)
        return True

    def run(self, job_id: str) -> Job:
        """Process every chapter of a pending job in order and return the final snapshot.

        Unexpected exceptions mark the job failed and are re-raised.
        """

        with self._lock:
            job = self.store.load_job(job_id)
            if job.is_terminal:
                self._cancel_events.pop(job_id, None)
                return job
            cancel_event = self._cancel_events.setdefault(job_id, threading.Event())
            job = job.start()
            self.store.save_job_progress(job_id, job)
        self._log_transition(job)

        try:
            return self._process_chapters(job, cancel_event)
        finally:
            with self._lock:
                self._cancel_events.pop(job_id, None)

    def _process_chapters(self, job: Job, cancel_event: threading.Event) -> Job:
        current_chapter: Chapter | None = None
        try:
            for chapter in job.chapters:
                current_chapter = chapter
                if cancel_event.is_set():
                    raise JobCancelledError(f"Cancelled before chapter {chapter.index}.")
                artifact = self.assembler.assemble(chapter, job.voice_id, cancel_event)
                url = self.storage.store_audio(
                    artifact.audio_bytes,
                    artifact.content_hash,
                    artifact.audio_format,
                )
                job = self._persist(job, job.record_chapter(url))
                if self._run_logger is not None:
                    self._run_logger.log_chapter_complete(
                        job.id, chapter.index, job.progress_percent
                    )
            with self._lock:
                finished = job.cancel() if cancel_event.is_set() else job.complete()
                job = self._persist(job, finished)
        except JobCancelledError:
            job = self._persist(job, job.cancel())
        except ChapterFailedError as exc:
            if self._run_logger is not None:
                kind = exc.kind.value if exc.kind is not None else type(exc.cause).__name__
                self._run_logger.log_chapter_failure(job.id, exc.chapter_index, kind)
            job = self._persist(job, job.fail(str(exc)))
        except OSError as exc:
            chapter_label = (
                f"Chapter {current_chapter.index} ({current_chapter.title})"
                if current_chapter is not None
                else "Job"
            )
            if self._run_logger is not None and current_chapter is not None:
                self._run_logger.log_chapter_failure(job.id, current_chapter.index, "storage")
            job = self._persist(job, job.fail(f"{chapter_label} failed: storage error: {exc}"))
        except Exception as exc:
            if self._run_logger is not None:
                self._run_logger.log_worker_error(job.id, type(exc).__name__)
            self._persist(job, job.fail(f"Unexpected error: {type(exc).__name__}: {exc}"))
            raise
        return job

    def _persist(self, previous: Job, job: Job) -> Job:
        """Save a snapshot and emit a transition event for status changes."""

        with self._lock:
            self.store.save_job_progress(job.id, job)
        if previous.status is not job.status:
            self._log_transition(job)
        return job

    def _log_transition(self, job: Job, **context: object) -> None:
        if self._run_logger is None:
            return
        self._run_logger.log_job_transition(
            job.id,
            job.status.value,
            processed=job.processed_chapters,
            progress=job.progress_percent,
            **context,
        )
