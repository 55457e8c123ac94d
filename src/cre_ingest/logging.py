"""Structured logging for the ingestion services.

Every log line carries ``service="cre_ingest"``. Lines emitted while a job runs
also carry the job's id, type and attempt number, bound through contextvars so
that source, normalization and storage code need not pass them along.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

SERVICE_NAME = "cre_ingest"


def _add_service(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(*, json_output: bool = False, level: int = logging.INFO) -> None:
    """Configure structlog for the CLI and the job workers.

    Args:
        json_output: Emit one JSON object per line instead of console output.
        level: Minimum level that is rendered.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def job_context(job_id: str, job_type: str, attempt: int) -> Iterator[None]:
    """Bind job identifiers to every log line emitted inside the block.

    Each asyncio task runs in a copy of the current context, so bindings made
    in one job's task never leak into another's.
    """
    with structlog.contextvars.bound_contextvars(
        job_id=job_id, job_type=job_type, attempt=attempt
    ):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
