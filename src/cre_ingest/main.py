"""Main entry point for the CRE ingestion runner."""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from cre_ingest.config import Settings
from cre_ingest.db import PropertyStorage
from cre_ingest.ingestion import (
    INGESTION_OPERATION,
    IngestionConfig,
    IngestionMetrics,
    IngestionPipeline,
    IngestionStatus,
    schedule_recurring_ingestion,
)
from cre_ingest.jobs import Job, JobQueue, JobStatus, JobType
from cre_ingest.jobs.executors import JobExecutors
from cre_ingest.logging import configure_logging, get_logger
from cre_ingest.sources import SampleTaxAssessor, build_sample_sources

logger = get_logger(__name__)


@dataclass
class Services:
    """Long-lived services wired together by the composition root."""

    storage: PropertyStorage
    pipeline: IngestionPipeline
    queue: JobQueue


@dataclass
class RunReport:
    """Finished jobs plus what storage and the queue looked like afterwards."""

    jobs: list[Job]
    metrics: IngestionMetrics
    status: IngestionStatus


async def build_services(settings: Settings) -> Services:
    """Create storage, sources, pipeline, executors and the job queue."""
    storage = PropertyStorage(settings.database_path)
    await storage.initialize()

    sources = build_sample_sources(
        settings.get_ingestion_sources(), latency=settings.source_latency_seconds
    )
    pipeline = IngestionPipeline(
        sources,
        storage,
        threshold=settings.duplicate_threshold,
        source_delay=settings.source_delay_seconds,
    )
    executors = JobExecutors(
        sources=sources,
        pipeline=pipeline,
        market_data=storage,
        tax_assessor=SampleTaxAssessor(latency=settings.source_latency_seconds),
        step_delay=settings.executor_step_delay_seconds,
    )
    queue = JobQueue.from_settings(settings, executors.as_mapping())
    return Services(storage=storage, pipeline=pipeline, queue=queue)


def _ingestion_config(settings: Settings) -> IngestionConfig:
    return IngestionConfig(
        sources=settings.get_ingestion_sources(),
        batch_size=settings.batch_size,
        enable_validation=settings.enable_validation,
    )


def _print_job(job: Job) -> None:
    print(f"[{job.status.value}] {job.type.value} {job.id} (attempts {job.attempts})")
    if job.status is JobStatus.FAILED:
        print(f"  Error: {job.error_message}")
        return
    result = job.result or {}
    if job.type is JobType.DATA_PROCESSING:
        criteria = result.get("criteria", {})
        print(f"  Criteria: {criteria}")
        print(
            f"  Processed: {result.get('total_processed', 0)} | "
            f"Inserted: {result.get('successful_inserts', 0)} | "
            f"Skipped: {result.get('duplicates_skipped', 0)} | "
            f"Rejected: {result.get('rejected', 0)}"
        )
        print(f"  Average confidence: {result.get('average_confidence', 0)}")
    elif job.type is JobType.MARKET_ANALYSIS:
        print(
            f"  ZIP {result.get('zip_code')}: {result.get('total_properties', 0)} properties, "
            f"${result.get('average_price_per_sqft', 0)}/sqft"
        )
    print()


def _print_metrics(metrics: IngestionMetrics) -> None:
    print(
        f"Stored properties: {metrics.total_properties} "
        f"({metrics.recent_ingestions} added in the last 24h)"
    )
    for label, counts in (
        ("By source", metrics.properties_by_source),
        ("By type", metrics.properties_by_type),
    ):
        breakdown = ", ".join(f"{k}: {v}" for k, v in sorted(counts.items()))
        print(f"  {label}: {breakdown or '-'}")


async def run_ingestion(
    settings: Settings,
    *,
    zip_codes: list[str],
    city: str | None = None,
    state: str | None = None,
    analyze: bool = False,
) -> RunReport:
    """Enqueue ingestion jobs, wait for them, and report jobs and storage metrics.

    Args:
        settings: Application settings.
        zip_codes: ZIP codes to ingest, one job each.
        city: City for a market-area ingestion (requires ``state``).
        state: State for a market-area ingestion.
        analyze: Also run a market analysis per ZIP code after ingestion.
    """
    services = await build_services(settings)
    config = _ingestion_config(settings).model_dump()
    try:
        async with services.queue as queue:
            job_ids = [
                queue.add_job(
                    JobType.DATA_PROCESSING,
                    {"operation": INGESTION_OPERATION, "zip_code": z, "config": config},
                    priority=2,
                )
                for z in zip_codes
            ]
            if city and state:
                job_ids.append(
                    queue.add_job(
                        JobType.DATA_PROCESSING,
                        {
                            "operation": INGESTION_OPERATION,
                            "city": city,
                            "state": state,
                            "config": config,
                        },
                        priority=2,
                    )
                )
            for job_id in job_ids:
                queue.subscribe_to_progress(
                    job_id,
                    lambda p: logger.info(
                        "job_progress", job_id=p.job_id, progress=p.progress, message=p.message
                    ),
                )
            await queue.join()

            if analyze:
                analysis_ids = [
                    queue.schedule_market_analysis(z, "overview") for z in zip_codes
                ]
                await queue.join()
                job_ids.extend(analysis_ids)

            finished = [j for j in (queue.get_job(i) for i in job_ids) if j is not None]
            status = services.pipeline.get_ingestion_status(queue)
            metrics = await services.pipeline.get_ingestion_metrics()
            logger.info(
                "run_complete", **status.queue_stats.model_dump(), **metrics.model_dump()
            )
    finally:
        await services.storage.close()

    return RunReport(jobs=finished, metrics=metrics, status=status)


async def run_recurring(settings: Settings, *, zip_codes: list[str], interval_hours: float) -> None:
    """Run recurring ingestion until interrupted."""
    services = await build_services(settings)
    try:
        async with services.queue as queue:
            schedule_recurring_ingestion(
                queue, zip_codes, interval_hours, _ingestion_config(settings)
            )
            await asyncio.Event().wait()
    finally:
        await services.storage.close()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="CRE Ingest - commercial listing ingestion with a priority job queue"
    )
    parser.add_argument(
        "--zip",
        dest="zip_codes",
        action="append",
        default=[],
        help="ZIP code to ingest (repeatable)",
    )
    parser.add_argument("--city", help="City for a market-area ingestion")
    parser.add_argument("--state", help="State for a market-area ingestion")
    parser.add_argument(
        "--analyze",
        action="store_true",
        help="Run a market analysis for each ZIP code after ingesting",
    )
    parser.add_argument(
        "--every-hours",
        type=float,
        default=None,
        help="Re-run ingestion for the ZIP codes on this interval until interrupted",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting",
    )
    args = parser.parse_args()

    try:
        settings = Settings()
    except Exception as e:
        print(f"Error: Failed to load settings. {e}")
        sys.exit(1)

    configure_logging(
        json_output=settings.json_logs,
        level=logging.DEBUG if args.debug else logging.INFO,
    )

    if bool(args.city) != bool(args.state):
        parser.error("--city and --state must be given together")
    if not args.zip_codes and not args.city:
        parser.error("give at least one --zip or --city/--state")

    logger.info(
        "starting_cre_ingest",
        zip_codes=args.zip_codes,
        city=args.city,
        state=args.state,
        sources=settings.get_ingestion_sources(),
        max_concurrent_jobs=settings.max_concurrent_jobs,
    )

    if args.every_hours:
        if not args.zip_codes:
            parser.error("--every-hours needs at least one --zip")
        try:
            asyncio.run(
                run_recurring(settings, zip_codes=args.zip_codes, interval_hours=args.every_hours)
            )
        except KeyboardInterrupt:
            logger.info("recurring_ingestion_interrupted")
        return

    report = asyncio.run(
        run_ingestion(
            settings,
            zip_codes=args.zip_codes,
            city=args.city,
            state=args.state,
            analyze=args.analyze,
        )
    )

    print(f"\n{'=' * 60}")
    print(f"Finished {len(report.jobs)} jobs")
    print(f"{'=' * 60}\n")
    for job in report.jobs:
        _print_job(job)
    _print_metrics(report.metrics)

    if any(job.status is JobStatus.FAILED for job in report.jobs):
        sys.exit(1)


if __name__ == "__main__":
    main()
