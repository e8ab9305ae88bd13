"""Worker system - background job storage (producers only, workers run elsewhere)."""

from recrate.application.workers.job_queue import (
    JobStatus,
    JobType,
    PersistentJobQueue,
    QueuedJob,
)

__all__ = [
    "JobStatus",
    "JobType",
    "PersistentJobQueue",
    "QueuedJob",
]
