"""Job queue exceptions."""


class JobError(Exception):
    """Base class for job queue errors."""


class NonRetryableJobError(JobError):
    """Raised by an executor when retrying cannot succeed (e.g. malformed payload).

    The job is marked failed immediately regardless of remaining attempts.
    """


class UnknownJobTypeError(NonRetryableJobError):
    """No executor is registered for the job's type."""
