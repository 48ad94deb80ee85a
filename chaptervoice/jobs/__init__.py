"""Job persistence, coordination, and background execution."""

from .coordinator import JobCoordinator
from .store import InMemoryJobStore, JobStore, JsonJobStore
from .worker_pool import JobWorkerPool

__all__ = [
    "InMemoryJobStore",
    "JobCoordinator",
    "JobStore",
    "JobWorkerPool",
    "JsonJobStore",
]
