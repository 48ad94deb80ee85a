"""Background worker pool for job execution.

Responsibilities:
- Pull job ids from a FIFO queue and run them one at a time per worker.
- Enforce an optional per-job wall-clock timeout through cooperative cancel.
- Keep workers alive when one job raises unexpectedly.
"""

from __future__ import annotations

import queue
import threading

from ..telemetry.logger import RunLogger
from .coordinator import JobCoordinator

_STOP = object()


class JobWorkerPool:
    """Fixed-size thread pool draining submitted job ids through a coordinator."""

    def __init__(
        self,
        coordinator: JobCoordinator,
        worker_count: int = 1,
        *,
        job_timeout_seconds: float | None = None,
        run_logger: RunLogger | None = None,
    ) -> None:
        """Start `worker_count` daemon workers."""

        if worker_count <= 0:
            raise ValueError("`worker_count` must be a positive integer.")
        if job_timeout_seconds is not None and job_timeout_seconds <= 0:
            raise ValueError("`job_timeout_seconds` must be positive when set.")
        self.coordinator = coordinator
        self.job_timeout_seconds = job_timeout_seconds
        self._run_logger = run_logger
        self._queue: queue.Queue[object] = queue.Queue()
        self._closed = False
        self._close_lock = threading.Lock()
        self._done: dict[str, threading.Event] = {}
        self._workers = [
            threading.Thread(
                target=self._worker_loop,
                name=f"chaptervoice-job-worker-{index}",
                daemon=True,
            )
            for index in range(worker_count)
        ]
        for worker in self._workers:
            worker.start()

    def submit(self, job_id: str) -> threading.Event:
        """Queue a job id and return an event set once the job run finishes."""

        with self._close_lock:
            if self._closed:
                raise RuntimeError("JobWorkerPool is shut down.")
            done = self._done.setdefault(job_id, threading.Event())
            self._queue.put(job_id)
        return done

    def wait(self, job_id: str, timeout: float | None = None) -> bool:
        """Block until a submitted job run finishes; return `False` on timeout.

        A successful wait forgets the job id; the event returned by `submit`
        stays usable.
        """

        with self._close_lock:
            done = self._done.get(job_id)
        if done is None:
            raise KeyError(job_id)
        finished = done.wait(timeout)
        if finished:
            with self._close_lock:
                if self._done.get(job_id) is done:
                    del self._done[job_id]
        return finished

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs, let queued jobs drain, and stop workers."""

        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            for _ in self._workers:
                self._queue.put(_STOP)
        if wait:
            for worker in self._workers:
                worker.join()
            with self._close_lock:
                self._done.clear()

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._run_one(str(item))
            finally:
                self._queue.task_done()

    def _run_one(self, job_id: str) -> None:
        timer: threading.Timer | None = None
        if self.job_timeout_seconds is not None:
            timer = threading.Timer(self.job_timeout_seconds, self.coordinator.cancel, args=(job_id,))
            timer.daemon = True
            timer.start()
        try:
            self.coordinator.run(job_id)
        except Exception as exc:
            # The coordinator already persisted the failure; keep the worker alive.
            if self._run_logger is not None:
                self._run_logger.log_worker_error(job_id, type(exc).__name__)
        finally:
            if timer is not None:
                timer.cancel()
            with self._close_lock:
                done = self._done.get(job_id)
            if done is not None:
                done.set()
