"""In-process priority job queue with bounded concurrency and retries."""

import asyncio
import heapq
import itertools
import uuid
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from functools import partial
from typing import Any, Final, Protocol, Self

from cre_ingest.config import Settings
from cre_ingest.jobs.errors import JobError, NonRetryableJobError, UnknownJobTypeError
from cre_ingest.jobs.models import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PRIORITY,
    Job,
    JobProgress,
    JobStatus,
    JobType,
    ProgressCallback,
    QueueStats,
)
from cre_ingest.logging import get_logger, job_context

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENT_JOBS: Final = 3
DEFAULT_RETRY_BACKOFF_SECONDS: Final = 5.0

CANCELLED_MESSAGE: Final = "Job cancelled by user"
QUEUE_STOPPED_MESSAGE: Final = "Job queue stopped"


class JobTimeoutError(JobError):
    """A job exceeded the queue's per-job timeout. Retryable."""


class ReportProgress(Protocol):
    """Callable handed to executors for reporting milestones."""

    def __call__(self, progress: int, message: str, current_step: str | None = None) -> None: ...


Executor = Callable[[Job, ReportProgress], Awaitable[Any]]


class RecurringSchedule:
    """Handle for a job that is re-enqueued on a fixed interval."""

    def __init__(
        self,
        queue: "JobQueue",
        job_type: JobType,
        payload: dict[str, Any],
        interval_seconds: float,
        priority: int,
    ) -> None:
        self.id = f"schedule_{uuid.uuid4().hex[:12]}"
        self.job_type = job_type
        self.payload = payload
        self.interval_seconds = interval_seconds
        self.priority = priority
        self.job_ids: list[str] = []
        self._queue = queue
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def _enqueue(self) -> None:
        job_id = self._queue.add_job(self.job_type, self.payload, priority=self.priority)
        self.job_ids.append(job_id)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self._enqueue()

    def start(self) -> None:
        """Enqueue the first job now and keep enqueuing every interval."""
        self._enqueue()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"recurring-{self.id}"
        )

    def stop(self) -> None:
        """Stop enqueuing new jobs. Jobs already enqueued are unaffected."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("recurring_job_stopped", schedule=self.id, enqueued=len(self.job_ids))

    async def wait_stopped(self) -> None:
        """Wait for the recurrence task to finish after stop()."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)


class JobQueue:
    """Priority scheduler for asynchronous jobs.

    Pending jobs are dispatched by (priority, creation order), lowest first,
    with at most ``max_concurrent_jobs`` running at once. A single scheduler
    task owns dispatching; it is woken when a job is added, a retry comes
    due, or a running job finishes.

    Failed jobs are retried after ``retry_backoff_seconds * attempts`` until
    ``max_attempts`` is reached. Executor exceptions never escape the queue;
    they become state transitions.

    Not thread-safe: use from a single event loop.
    """

    def __init__(
        self,
        executors: Mapping[JobType, Executor],
        *,
        max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        job_timeout: float | None = None,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """Initialize the queue.

        Args:
            executors: Executor per job type.
            max_concurrent_jobs: Upper bound on jobs in ``running`` state.
            retry_backoff_seconds: Base retry delay, multiplied by attempts so far.
            job_timeout: Per-job timeout in seconds (None for no timeout).
                A timed-out attempt is retried like any other failure.
            default_max_attempts: Attempts used when add_job gets none.
        """
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        self._executors: dict[JobType, Executor] = dict(executors)
        self.max_concurrent_jobs = max_concurrent_jobs
        self.retry_backoff_seconds = retry_backoff_seconds
        self.job_timeout = job_timeout
        self.default_max_attempts = default_max_attempts

        self._jobs: dict[str, Job] = {}
        self._sequence = itertools.count()
        self._creation_order: dict[str, int] = {}
        self._pending: list[tuple[int, int, str]] = []
        self._running: dict[str, asyncio.Task[None]] = {}
        self._retry_handles: dict[str, asyncio.TimerHandle] = {}
        self._done_events: dict[str, asyncio.Event] = {}
        self._progress_callbacks: dict[str, ProgressCallback] = {}
        self._recurring: list[RecurringSchedule] = []

        self._wakeup = asyncio.Event()
        self._scheduler: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, executors: Mapping[JobType, Executor]) -> Self:
        """Build a queue configured from application settings."""
        return cls(
            executors,
            max_concurrent_jobs=settings.max_concurrent_jobs,
            retry_backoff_seconds=settings.retry_backoff_seconds,
            job_timeout=settings.job_timeout,
            default_max_attempts=settings.default_max_attempts,
        )

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def add_job(
        self,
        job_type: JobType | str,
        payload: Mapping[str, Any] | None = None,
        priority: int = DEFAULT_PRIORITY,
        max_attempts: int | None = None,
    ) -> str:
        """Create a pending job and wake the scheduler. Never blocks.

        Args:
            job_type: One of the JobType values.
            payload: Executor-specific data, opaque to the queue.
            priority: 1 (highest) to 5 (lowest).
            max_attempts: Attempts before the job is marked failed.

        Returns:
            The new job's id.

        Raises:
            ValueError: Unknown job type or out-of-range priority/attempts.
            RuntimeError: The queue has been stopped.
        """
        if self._closed:
            raise RuntimeError("Job queue is stopped")

        job = Job(
            type=JobType(job_type),
            payload=dict(payload or {}),
            priority=priority,
            max_attempts=max_attempts if max_attempts is not None else self.default_max_attempts,
        )
        self._jobs[job.id] = job
        self._creation_order[job.id] = next(self._sequence)
        self._done_events[job.id] = asyncio.Event()
        self._push(job)

        logger.info(
            "job_added",
            job_id=job.id,
            type=job.type.value,
            priority=job.priority,
            queue_length=len(self._pending),
        )

        self._ensure_scheduler()
        self._wakeup.set()
        return job.id

    def schedule_scraping(
        self, platform: str, search_criteria: Mapping[str, Any], priority: int = 2
    ) -> str:
        return self.add_job(
            JobType.SCRAPING,
            {"platform": platform, "search_criteria": dict(search_criteria)},
            priority,
        )

    def schedule_data_processing(
        self, data: list[Mapping[str, Any]], operation: str, priority: int = 3
    ) -> str:
        return self.add_job(
            JobType.DATA_PROCESSING,
            {"data": [dict(d) for d in data], "operation": operation},
            priority,
        )

    def schedule_market_analysis(self, zip_code: str, analysis_type: str, priority: int = 3) -> str:
        return self.add_job(
            JobType.MARKET_ANALYSIS,
            {"zip_code": zip_code, "analysis_type": analysis_type},
            priority,
        )

    def schedule_tax_lookup(self, address: str, city: str, state: str, priority: int = 4) -> str:
        return self.add_job(
            JobType.TAX_LOOKUP,
            {"address": address, "city": city, "state": state},
            priority,
        )

    def schedule_recurring_job(
        self,
        job_type: JobType | str,
        payload: Mapping[str, Any] | None,
        interval_seconds: float,
        priority: int = DEFAULT_PRIORITY,
    ) -> RecurringSchedule:
        """Enqueue a job now and a fresh copy every ``interval_seconds``.

        Must be called from a running event loop. Call ``stop()`` on the
        returned handle to end the recurrence; ``JobQueue.stop()`` ends all.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        schedule = RecurringSchedule(
            self, JobType(job_type), dict(payload or {}), interval_seconds, priority
        )
        schedule.start()
        self._recurring.append(schedule)
        logger.info(
            "recurring_job_scheduled",
            schedule=schedule.id,
            type=schedule.job_type.value,
            interval_seconds=interval_seconds,
        )
        return schedule

    # ------------------------------------------------------------------
    # Cancellation and lifecycle
    # ------------------------------------------------------------------

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a job that has not started running.

        Pending jobs are removed from the pool and retrying jobs lose their
        pending retry. Both end as ``failed`` with a cancellation message.

        Returns:
            True if cancelled; False if the job is unknown, running, or
            already completed/failed.
        """
        job = self._jobs.get(job_id)
        if job is None or job.status is JobStatus.RUNNING or job.status.is_terminal:
            return False

        if job.status is JobStatus.PENDING:
            self._pending = [entry for entry in self._pending if entry[2] != job_id]
            heapq.heapify(self._pending)

        handle = self._retry_handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()

        self._mark_failed(job, CANCELLED_MESSAGE)
        logger.info("job_cancelled", job_id=job_id, type=job.type.value)
        return True

    async def start(self) -> None:
        """Start the scheduler. Jobs added before a loop was running are picked up."""
        if self._closed:
            raise RuntimeError("Job queue is stopped")
        self._ensure_scheduler()
        self._wakeup.set()

    async def stop(self) -> None:
        """Stop recurring schedules, pending retries, the scheduler and running jobs.

        Every job that has not reached a terminal state is marked failed.
        """
        if self._closed:
            return
        self._closed = True

        for schedule in self._recurring:
            schedule.stop()
        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()

        tasks: list[asyncio.Task[None]] = list(self._running.values())
        if self._scheduler is not None:
            tasks.append(self._scheduler)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await asyncio.gather(*(s.wait_stopped() for s in self._recurring))

        self._pending.clear()
        for job in self._jobs.values():
            if not job.status.is_terminal:
                self._mark_failed(job, QUEUE_STOPPED_MESSAGE)

        logger.info("job_queue_stopped", **self.get_queue_stats().model_dump())

    async def wait_for_job(self, job_id: str, timeout: float | None = None) -> Job:
        """Wait until a job is completed or failed and return a copy of it.

        Raises:
            KeyError: Unknown job id.
            TimeoutError: The job did not finish within ``timeout`` seconds.
        """
        event = self._done_events[job_id]
        async with asyncio.timeout(timeout):
            await event.wait()
        return self._jobs[job_id].model_copy(deep=True)

    async def join(self) -> None:
        """Wait until every job known at call time has finished."""
        await asyncio.gather(*(event.wait() for event in list(self._done_events.values())))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def get_job_status(self, job_id: str) -> JobStatus | None:
        job = self._jobs.get(job_id)
        return job.status if job is not None else None

    def get_all_jobs(self) -> list[Job]:
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    def get_jobs_by_status(self, status: JobStatus | str) -> list[Job]:
        wanted = JobStatus(status)
        return [job.model_copy(deep=True) for job in self._jobs.values() if job.status is wanted]

    @property
    def is_running(self) -> bool:
        """True between start() and stop() while the scheduler task is alive."""
        return not self._closed and self._scheduler is not None and not self._scheduler.done()

    def get_queue_stats(self) -> QueueStats:
        """Snapshot of job counts by status and the pending pool length."""
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return QueueStats(
            total_jobs=len(self._jobs),
            pending=counts[JobStatus.PENDING],
            running=counts[JobStatus.RUNNING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            retrying=counts[JobStatus.RETRYING],
            queue_length=len(self._pending),
        )

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def subscribe_to_progress(self, job_id: str, callback: ProgressCallback) -> None:
        """Register the progress callback for a job, replacing any previous one."""
        self._progress_callbacks[job_id] = callback

    def unsubscribe_from_progress(self, job_id: str) -> None:
        self._progress_callbacks.pop(job_id, None)

    def _emit_progress(
        self, job_id: str, progress: int, message: str, current_step: str | None = None
    ) -> None:
        callback = self._progress_callbacks.get(job_id)
        if callback is None:
            return
        update = JobProgress(
            job_id=job_id, progress=progress, message=message, current_step=current_step
        )
        try:
            callback(update)
        except Exception:
            logger.warning("progress_callback_failed", job_id=job_id, exc_info=True)

    # ------------------------------------------------------------------
    # Scheduling internals
    # ------------------------------------------------------------------

    def _push(self, job: Job) -> None:
        heapq.heappush(self._pending, (job.priority, self._creation_order[job.id], job.id))

    def _ensure_scheduler(self) -> None:
        if self._scheduler is not None and not self._scheduler.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; start() picks up whatever is pending.
            return
        self._scheduler = loop.create_task(self._run_scheduler(), name="job-queue-scheduler")

    async def _run_scheduler(self) -> None:
        logger.debug("job_scheduler_started", max_concurrent_jobs=self.max_concurrent_jobs)
        while True:
            self._wakeup.clear()
            self._dispatch_ready()
            await self._wakeup.wait()

    def _dispatch_ready(self) -> None:
        while self._pending and len(self._running) < self.max_concurrent_jobs:
            _, _, job_id = heapq.heappop(self._pending)
            job = self._jobs[job_id]

            # Mark running before the task starts so cancel_job cannot race it.
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now(UTC)
            job.attempts += 1

            task = asyncio.create_task(self._execute(job), name=f"job-{job_id}")
            self._running[job_id] = task
            task.add_done_callback(partial(self._on_task_done, job_id))

    def _on_task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        self._running.pop(job_id, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "job_bookkeeping_failed", job_id=job_id, error=str(task.exception())
            )
        self._wakeup.set()

    async def _execute(self, job: Job) -> None:
        logger.info(
            "job_started",
            job_id=job.id,
            type=job.type.value,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
        )
        self._emit_progress(job.id, 0, "Starting job...")

        try:
            with job_context(job.id, job.type.value, job.attempts):
                result = await self._run_executor(job)
        except Exception as e:
            self._handle_failure(job, e)
        else:
            self._handle_success(job, result)

    async def _run_executor(self, job: Job) -> Any:
        executor = self._executors.get(job.type)
        if executor is None:
            raise UnknownJobTypeError(f"Unknown job type: {job.type.value}")

        report: ReportProgress = partial(self._emit_progress, job.id)
        snapshot = job.model_copy(deep=True)
        if self.job_timeout is None:
            return await executor(snapshot, report)
        try:
            async with asyncio.timeout(self.job_timeout):
                return await executor(snapshot, report)
        except TimeoutError as e:
            raise JobTimeoutError(f"Job timed out after {self.job_timeout}s") from e

    def _handle_success(self, job: Job, result: Any) -> None:
        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(UTC)
        job.result = result
        job.error_message = None
        self._emit_progress(job.id, 100, "Job completed successfully")
        logger.info("job_completed", job_id=job.id, type=job.type.value, attempts=job.attempts)
        self._done_events[job.id].set()

    def _handle_failure(self, job: Job, error: Exception) -> None:
        message = str(error) or type(error).__name__
        retryable = not isinstance(error, NonRetryableJobError)

        if retryable and job.attempts_remaining > 0 and not self._closed:
            job.status = JobStatus.RETRYING
            job.error_message = message
            delay = self.retry_backoff_seconds * job.attempts
            loop = asyncio.get_running_loop()
            self._retry_handles[job.id] = loop.call_later(delay, self._requeue, job.id)
            logger.warning(
                "job_retry_scheduled",
                job_id=job.id,
                type=job.type.value,
                error=message,
                next_attempt=job.attempts + 1,
                max_attempts=job.max_attempts,
                delay_seconds=delay,
            )
            return

        self._mark_failed(job, message)
        self._emit_progress(job.id, 0, f"Job failed: {message}")
        logger.error(
            "job_failed",
            job_id=job.id,
            type=job.type.value,
            error=message,
            attempts=job.attempts,
            retryable=retryable,
        )

    def _requeue(self, job_id: str) -> None:
        self._retry_handles.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.RETRYING:
            return
        job.status = JobStatus.PENDING
        self._push(job)
        logger.debug("job_requeued", job_id=job_id, attempt=job.attempts + 1)
        self._wakeup.set()

    def _mark_failed(self, job: Job, message: str) -> None:
        job.status = JobStatus.FAILED
        job.completed_at = datetime.now(UTC)
        job.error_message = message
        self._done_events[job.id].set()
