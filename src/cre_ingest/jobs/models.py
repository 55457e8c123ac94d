"""Job, progress and queue statistics models."""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field

MIN_PRIORITY: Final = 1
MAX_PRIORITY: Final = 5
DEFAULT_PRIORITY: Final = 3
DEFAULT_MAX_ATTEMPTS: Final = 3


class JobType(StrEnum):
    """Kinds of work the queue can schedule."""

    SCRAPING = "scraping"
    DATA_PROCESSING = "data_processing"
    MARKET_ANALYSIS = "market_analysis"
    TAX_LOOKUP = "tax_lookup"


class JobStatus(StrEnum):
    """Lifecycle state of a job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def _job_id() -> str:
    return f"job_{uuid.uuid4().hex[:12]}"


class Job(BaseModel):
    """A unit of schedulable work.

    Owned by the queue for its whole life; callers hold only its id and get
    copies back from the read API.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_job_id)
    type: JobType
    priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    result: Any = None

    @property
    def attempts_remaining(self) -> int:
        return self.max_attempts - self.attempts


class JobProgress(BaseModel):
    """A progress milestone reported while a job runs."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    progress: int = Field(ge=0, le=100)
    message: str
    current_step: str | None = None


ProgressCallback = Callable[[JobProgress], None]


class QueueStats(BaseModel):
    """Point-in-time counts of jobs by status."""

    model_config = ConfigDict(frozen=True)

    total_jobs: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    retrying: int = 0
    queue_length: int = 0
