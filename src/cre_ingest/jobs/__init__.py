"""Priority job queue and job models."""

from cre_ingest.jobs.errors import JobError, NonRetryableJobError, UnknownJobTypeError
from cre_ingest.jobs.models import Job, JobProgress, JobStatus, JobType, QueueStats
from cre_ingest.jobs.queue import JobQueue, JobTimeoutError, RecurringSchedule

__all__ = [
    "Job",
    "JobError",
    "JobProgress",
    "JobQueue",
    "JobStatus",
    "JobTimeoutError",
    "JobType",
    "NonRetryableJobError",
    "QueueStats",
    "RecurringSchedule",
    "UnknownJobTypeError",
]
