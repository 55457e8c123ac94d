"""Property ingestion: fetch from sources, normalize, validate, persist."""

import asyncio
import time
from collections import Counter, deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Final, Protocol

from pydantic import BaseModel, ConfigDict, Field

from cre_ingest.db.storage import DuplicatePropertyError
from cre_ingest.jobs.models import JobType, QueueStats
from cre_ingest.logging import get_logger
from cre_ingest.models import NormalizedPropertyRecord, RawPropertyRecord, SearchCriteria
from cre_ingest.normalization import process_data_batch
from cre_ingest.normalization.similarity import DEFAULT_DUPLICATE_THRESHOLD
from cre_ingest.sources.base import DataSource
from cre_ingest.validation import filter_for_ingestion

if TYPE_CHECKING:
    from cre_ingest.jobs.queue import JobQueue, RecurringSchedule

logger = get_logger(__name__)

DEFAULT_SOURCES: Final = ("LoopNet", "Crexi", "RealtyRates")
INGESTION_OPERATION: Final = "ingestion"
RECURRING_INGESTION_PRIORITY: Final = 2
RECENT_INGESTION_WINDOW: Final = timedelta(hours=24)
RECENT_RESULTS_KEPT: Final = 10

IngestionProgress = Callable[[int, str], None]


class PropertyRepository(Protocol):
    """Persistence operations the pipeline needs."""

    async def exists_by_address_city_state_zip(self, record: NormalizedPropertyRecord) -> bool: ...

    async def insert(self, record: NormalizedPropertyRecord) -> None: ...


class PropertyStore(PropertyRepository, Protocol):
    """Repository that can also report what it holds."""

    async def get_property_count(self) -> int: ...

    async def get_counts_by(self, column: str) -> dict[str, int]: ...

    async def count_created_since(self, since: datetime) -> int: ...


class IngestionConfig(BaseModel):
    """Per-run ingestion options."""

    sources: list[str] = Field(default_factory=lambda: list(DEFAULT_SOURCES))
    batch_size: int = Field(default=50, ge=1)
    enable_deduplication: bool = True
    enable_validation: bool = True


@dataclass
class IngestionResult:
    """Outcome of one ingestion run."""

    total_processed: int = 0
    successful_inserts: int = 0
    duplicates_skipped: int = 0
    rejected: int = 0
    errors: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    by_source: dict[str, int] = field(default_factory=dict)
    by_property_type: dict[str, int] = field(default_factory=dict)
    average_confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "successful_inserts": self.successful_inserts,
            "duplicates_skipped": self.duplicates_skipped,
            "rejected": self.rejected,
            "errors": list(self.errors),
            "processing_time": self.processing_time,
            "by_source": dict(self.by_source),
            "by_property_type": dict(self.by_property_type),
            "average_confidence": self.average_confidence,
        }


class IngestionMetrics(BaseModel):
    """What storage holds after ingestion runs."""

    model_config = ConfigDict(frozen=True)

    total_properties: int = 0
    properties_by_source: dict[str, int] = Field(default_factory=dict)
    properties_by_type: dict[str, int] = Field(default_factory=dict)
    recent_ingestions: int = 0


class IngestionStatus(BaseModel):
    """Scheduler state plus the latest ingestion results."""

    model_config = ConfigDict(frozen=True)

    is_running: bool
    queue_stats: QueueStats
    recent_results: list[dict[str, Any]] = Field(default_factory=list)


@dataclass
class _InsertOutcome:
    inserted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class IngestionPipeline:
    """Pull listings from data sources into storage.

    Stages: fetch from every configured source (a failing source is skipped),
    normalize and deduplicate the combined batch, drop records unfit for
    persistence, then insert in batches, skipping records already stored.
    """

    def __init__(
        self,
        sources: Mapping[str, DataSource],
        storage: PropertyStore,
        *,
        threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        source_delay: float = 2.0,
        batch_delay: float = 0.1,
    ) -> None:
        """Initialize the pipeline.

        Args:
            sources: Data sources by name.
            storage: Persistence for normalized records.
            threshold: Similarity threshold for in-batch deduplication.
            source_delay: Pause between sources, in seconds.
            batch_delay: Pause between insert batches, in seconds.
        """
        self.sources = dict(sources)
        self.storage = storage
        self.threshold = threshold
        self.source_delay = source_delay
        self.batch_delay = batch_delay
        self._recent_results: deque[IngestionResult] = deque(maxlen=RECENT_RESULTS_KEPT)

    async def ingest(
        self,
        criteria: SearchCriteria,
        config: IngestionConfig | None = None,
        *,
        progress: IngestionProgress | None = None,
    ) -> IngestionResult:
        """Run the full ingestion for one set of search criteria.

        Args:
            criteria: Criteria passed to every source.
            config: Run options (defaults to IngestionConfig()).
            progress: Optional callback receiving (percent, message).

        Returns:
            IngestionResult with counts and per-source/per-type breakdowns.
        """
        config = config or IngestionConfig()
        report = progress or (lambda _pct, _msg: None)
        started = time.monotonic()

        logger.info(
            "ingestion_started",
            criteria=criteria.model_dump(mode="json", exclude_none=True),
            sources=config.sources,
        )

        report(10, "Fetching listings from sources...")
        raw_records = await self.fetch_from_sources(criteria, config.sources)

        report(40, "Normalizing and deduplicating...")
        batch = process_data_batch(
            raw_records,
            threshold=self.threshold,
            deduplicate=config.enable_deduplication,
        )

        report(60, "Validating records...")
        if config.enable_validation:
            accepted, rejected = filter_for_ingestion(batch.deduplicated)
            for rejection in rejected:
                logger.info(
                    "record_rejected",
                    record_id=rejection.record.id,
                    source=rejection.record.source,
                    reason=rejection.reason,
                )
        else:
            accepted, rejected = batch.deduplicated, []

        report(80, "Saving properties...")
        outcome = await self._insert_properties(accepted, config.batch_size)

        result = IngestionResult(
            total_processed=len(raw_records),
            successful_inserts=outcome.inserted,
            duplicates_skipped=outcome.skipped,
            rejected=len(rejected),
            errors=outcome.errors,
            processing_time=round(time.monotonic() - started, 3),
            by_source=dict(Counter(r.source for r in raw_records)),
            by_property_type=dict(Counter(r.property_type for r in accepted)),
            average_confidence=batch.statistics.average_confidence,
        )

        logger.info(
            "ingestion_complete",
            total_processed=result.total_processed,
            inserted=result.successful_inserts,
            skipped=result.duplicates_skipped,
            rejected=result.rejected,
            errors=len(result.errors),
        )
        self._recent_results.append(result)
        return result

    async def fetch_from_sources(
        self, criteria: SearchCriteria, source_names: Iterable[str]
    ) -> list[RawPropertyRecord]:
        """Fetch from each named source in turn, skipping ones that fail."""
        names = list(source_names)
        all_records: list[RawPropertyRecord] = []

        for i, name in enumerate(names):
            source = self.sources.get(name)
            if source is None:
                logger.warning("unknown_source", source=name)
                continue
            try:
                records = await source.fetch(criteria)
            except Exception as e:
                logger.error("source_fetch_failed", source=name, error=str(e))
            else:
                all_records.extend(records)
                logger.info("source_fetch_complete", source=name, count=len(records))

            # Delay between sources to avoid rate limiting
            if self.source_delay and i < len(names) - 1:
                await asyncio.sleep(self.source_delay)

        return all_records

    async def _insert_properties(
        self, records: list[NormalizedPropertyRecord], batch_size: int
    ) -> _InsertOutcome:
        outcome = _InsertOutcome()

        for start in range(0, len(records), batch_size):
            for record in records[start : start + batch_size]:
                try:
                    if await self.storage.exists_by_address_city_state_zip(record):
                        outcome.skipped += 1
                        continue
                    await self.storage.insert(record)
                    outcome.inserted += 1
                except DuplicatePropertyError:
                    outcome.skipped += 1
                except Exception as e:
                    message = f"Failed to insert property {record.id}: {e}"
                    outcome.errors.append(message)
                    logger.error("property_insert_failed", record_id=record.id, error=str(e))

            if self.batch_delay and start + batch_size < len(records):
                await asyncio.sleep(self.batch_delay)

        return outcome

    async def ingest_by_zip_code(
        self, zip_code: str, config: IngestionConfig | None = None
    ) -> IngestionResult:
        return await self.ingest(SearchCriteria(zip_code=zip_code), config)

    async def ingest_market_area(
        self, city: str, state: str, config: IngestionConfig | None = None
    ) -> IngestionResult:
        return await self.ingest(SearchCriteria(city=city, state=state), config)

    async def ingest_multiple_zip_codes(
        self,
        zip_codes: Iterable[str],
        config: IngestionConfig | None = None,
        *,
        delay: float = 0.0,
    ) -> dict[str, IngestionResult]:
        """Ingest several ZIP codes in sequence.

        A ZIP code whose ingestion raises gets an empty result carrying the
        error; the remaining ZIP codes still run.
        """
        results: dict[str, IngestionResult] = {}
        codes = list(zip_codes)
        for i, zip_code in enumerate(codes):
            try:
                results[zip_code] = await self.ingest_by_zip_code(zip_code, config)
            except Exception as e:
                logger.error("zip_ingestion_failed", zip_code=zip_code, error=str(e))
                results[zip_code] = IngestionResult(errors=[str(e)])
            if delay and i < len(codes) - 1:
                await asyncio.sleep(delay)
        return results

    async def get_ingestion_metrics(self, *, now: datetime | None = None) -> IngestionMetrics:
        """Totals from storage: all properties, per source, per type, and the last 24 hours."""
        since = (now or datetime.now(UTC)) - RECENT_INGESTION_WINDOW
        return IngestionMetrics(
            total_properties=await self.storage.get_property_count(),
            properties_by_source=await self.storage.get_counts_by("listing_source"),
            properties_by_type=await self.storage.get_counts_by("property_type"),
            recent_ingestions=await self.storage.count_created_since(since),
        )

    def get_ingestion_status(self, queue: "JobQueue") -> IngestionStatus:
        """Queue state and the results of the most recent runs, newest last."""
        return IngestionStatus(
            is_running=queue.is_running,
            queue_stats=queue.get_queue_stats(),
            recent_results=[r.to_dict() for r in self._recent_results],
        )


def schedule_recurring_ingestion(
    queue: "JobQueue",
    zip_codes: Iterable[str],
    interval_hours: float = 24,
    config: IngestionConfig | None = None,
) -> list["RecurringSchedule"]:
    """Schedule a recurring ingestion job per ZIP code."""
    config_payload = (config or IngestionConfig()).model_dump()
    schedules = [
        queue.schedule_recurring_job(
            JobType.DATA_PROCESSING,
            {"operation": INGESTION_OPERATION, "zip_code": zip_code, "config": config_payload},
            interval_hours * 3600,
            RECURRING_INGESTION_PRIORITY,
        )
        for zip_code in zip_codes
    ]
    logger.info(
        "recurring_ingestion_scheduled", zip_codes=len(schedules), interval_hours=interval_hours
    )
    return schedules
