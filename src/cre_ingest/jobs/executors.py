"""Executors for each job type."""

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from cre_ingest.ingestion import INGESTION_OPERATION, IngestionConfig, IngestionPipeline
from cre_ingest.jobs.errors import NonRetryableJobError
from cre_ingest.jobs.models import Job, JobType
from cre_ingest.jobs.queue import Executor, ReportProgress
from cre_ingest.logging import get_logger
from cre_ingest.models import MarketSnapshot, RawPropertyRecord, SearchCriteria
from cre_ingest.normalization import process_data_batch
from cre_ingest.sources.base import DataSource, TaxAssessor

logger = get_logger(__name__)


class MarketDataProvider(Protocol):
    """Read access to stored listings for market analysis."""

    async def get_market_snapshot(self, zip_code: str) -> MarketSnapshot: ...


def _require(payload: Mapping[str, Any], *keys: str) -> list[Any]:
    missing = [k for k in keys if not payload.get(k)]
    if missing:
        raise NonRetryableJobError(f"Payload missing required field(s): {', '.join(missing)}")
    return [payload[k] for k in keys]


def _now() -> str:
    return datetime.now(UTC).isoformat()


class JobExecutors:
    """Executors for scraping, data processing, market analysis and tax lookup.

    Each executor reports a handful of progress milestones and returns a
    JSON-friendly dict. Malformed payloads raise NonRetryableJobError;
    anything else a collaborator raises propagates to the queue and is
    retried.
    """

    def __init__(
        self,
        *,
        sources: Mapping[str, DataSource],
        pipeline: IngestionPipeline,
        market_data: MarketDataProvider,
        tax_assessor: TaxAssessor,
        step_delay: float = 0.0,
    ) -> None:
        """Initialize the executors.

        Args:
            sources: Data sources by name, used by scraping jobs.
            pipeline: Ingestion pipeline, used by data_processing ingestion jobs.
            market_data: Stored listing aggregates, used by market_analysis jobs.
            tax_assessor: Tax assessor, used by tax_lookup jobs.
            step_delay: Pause between progress milestones, in seconds.
        """
        self.sources = dict(sources)
        self.pipeline = pipeline
        self.market_data = market_data
        self.tax_assessor = tax_assessor
        self.step_delay = step_delay

    def as_mapping(self) -> dict[JobType, Executor]:
        """Executors keyed by the job type they handle."""
        return {
            JobType.SCRAPING: self.scraping,
            JobType.DATA_PROCESSING: self.data_processing,
            JobType.MARKET_ANALYSIS: self.market_analysis,
            JobType.TAX_LOOKUP: self.tax_lookup,
        }

    async def _pause(self) -> None:
        if self.step_delay:
            await asyncio.sleep(self.step_delay)

    async def scraping(self, job: Job, report: ReportProgress) -> dict[str, Any]:
        """Fetch listings from one platform."""
        (platform,) = _require(job.payload, "platform")
        source = self.sources.get(platform)
        if source is None:
            raise NonRetryableJobError(f"Unknown platform: {platform}")
        try:
            criteria = SearchCriteria.model_validate(job.payload.get("search_criteria") or {})
        except ValidationError as e:
            raise NonRetryableJobError(f"Invalid search criteria: {e}") from e

        report(10, "Initializing scraper...", "initialize")
        await self._pause()
        report(30, "Connecting to platform...", "connect")
        await self._pause()
        report(60, "Scraping property data...", "scrape")
        records = await source.fetch(criteria)
        report(90, "Processing results...", "process")
        await self._pause()

        return {
            "platform": platform,
            "properties_found": len(records),
            "property_ids": [r.id for r in records],
            "search_criteria": criteria.model_dump(mode="json", exclude_none=True),
            "scraped_at": _now(),
        }

    async def data_processing(self, job: Job, report: ReportProgress) -> dict[str, Any]:
        """Run an ingestion, or normalize and deduplicate an inline batch."""
        (operation,) = _require(job.payload, "operation")
        if operation == INGESTION_OPERATION:
            return await self._run_ingestion(job, report)

        data = job.payload.get("data")
        if not isinstance(data, list):
            raise NonRetryableJobError("Payload field 'data' must be a list of records")

        report(20, "Loading data...", "load")
        try:
            records = [RawPropertyRecord.model_validate(item) for item in data]
        except ValidationError as e:
            raise NonRetryableJobError(f"Invalid record in batch: {e}") from e
        await self._pause()

        report(50, "Normalizing data...", "normalize")
        batch = process_data_batch(records, threshold=self.pipeline.threshold)
        await self._pause()

        report(80, "Deduplicating records...", "deduplicate")
        await self._pause()

        return {
            "operation": operation,
            "records_processed": len(records),
            "duplicates_removed": batch.statistics.normalized_count
            - batch.statistics.final_count,
            "statistics": batch.statistics.to_dict(),
            "deduplicated": [r.model_dump(mode="json") for r in batch.deduplicated],
            "processed_at": _now(),
        }

    async def _run_ingestion(self, job: Job, report: ReportProgress) -> dict[str, Any]:
        payload = job.payload
        if payload.get("zip_code"):
            criteria = SearchCriteria(zip_code=payload["zip_code"])
        elif payload.get("city") and payload.get("state"):
            criteria = SearchCriteria(city=payload["city"], state=payload["state"])
        else:
            raise NonRetryableJobError("Ingestion needs 'zip_code' or both 'city' and 'state'")
        try:
            config = IngestionConfig.model_validate(payload.get("config") or {})
        except ValidationError as e:
            raise NonRetryableJobError(f"Invalid ingestion config: {e}") from e

        result = await self.pipeline.ingest(
            criteria,
            config,
            progress=lambda pct, msg: report(pct, msg, "ingestion"),
        )
        return {
            "operation": INGESTION_OPERATION,
            "criteria": criteria.model_dump(mode="json", exclude_none=True),
            **result.to_dict(),
            "processed_at": _now(),
        }

    async def market_analysis(self, job: Job, report: ReportProgress) -> dict[str, Any]:
        """Aggregate stored listings for a ZIP code."""
        (zip_code,) = _require(job.payload, "zip_code")
        analysis_type = job.payload.get("analysis_type", "overview")

        report(25, "Gathering market data...", "gather")
        snapshot = await self.market_data.get_market_snapshot(zip_code)
        await self._pause()

        report(50, "Calculating metrics...", "calculate")
        await self._pause()

        report(75, "Generating insights...", "insights")
        await self._pause()

        return {
            **snapshot.model_dump(mode="json"),
            "analysis_type": analysis_type,
            "analyzed_at": _now(),
        }

    async def tax_lookup(self, job: Job, report: ReportProgress) -> dict[str, Any]:
        """Retrieve the tax assessment for an address."""
        address, city, state = _require(job.payload, "address", "city", "state")

        report(30, "Connecting to tax assessor...", "connect")
        await self._pause()

        report(70, "Retrieving tax data...", "retrieve")
        assessment = await self.tax_assessor.lookup(address, city, state)
        await self._pause()

        return assessment.model_dump(mode="json")
