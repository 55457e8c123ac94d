"""Record normalization and batch processing."""

from dataclasses import dataclass, field

from cre_ingest.logging import get_logger
from cre_ingest.models import NormalizedPropertyRecord, RawPropertyRecord
from cre_ingest.normalization.address import (
    normalize_address,
    normalize_property_type,
    normalize_state,
    normalize_zip_code,
)
from cre_ingest.normalization.confidence import calculate_confidence
from cre_ingest.normalization.deduplication import deduplicate_properties
from cre_ingest.normalization.similarity import DEFAULT_DUPLICATE_THRESHOLD

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchStatistics:
    """Summary counts for a processed batch."""

    total_input: int
    normalized_count: int
    duplicates_found: int
    final_count: int
    average_confidence: float

    def to_dict(self) -> dict[str, int | float]:
        return {
            "total_input": self.total_input,
            "normalized_count": self.normalized_count,
            "duplicates_found": self.duplicates_found,
            "final_count": self.final_count,
            "average_confidence": self.average_confidence,
        }


@dataclass
class BatchResult:
    """Normalized records, survivors after dedup, and statistics."""

    normalized: list[NormalizedPropertyRecord]
    deduplicated: list[NormalizedPropertyRecord]
    statistics: BatchStatistics
    groups: list[list[NormalizedPropertyRecord]] = field(default_factory=list)


def price_per_sqft(listing_price: float | None, sqft: float | None) -> float | None:
    """Price per square foot rounded to 2 decimals.

    Returns None instead of a non-finite number when either value is
    missing or not positive.
    """
    if not listing_price or not sqft or listing_price <= 0 or sqft <= 0:
        return None
    return round(listing_price / sqft, 2)


def normalize_property(record: RawPropertyRecord) -> NormalizedPropertyRecord:
    """Build the canonical form of a raw record.

    Deterministic: the same raw record always yields an equal result.
    """
    description = record.extras.get("description")
    return NormalizedPropertyRecord(
        id=record.id,
        source=record.source,
        normalized_address=normalize_address(record.address),
        city=record.city.strip(),
        state=normalize_state(record.state),
        zip_code=normalize_zip_code(record.zip_code),
        property_type=normalize_property_type(record.property_type),
        listing_price=record.listing_price,
        sqft=record.sqft,
        price_per_sqft=price_per_sqft(record.listing_price, record.sqft),
        confidence=calculate_confidence(record),
        description=description if isinstance(description, str) else None,
    )


def process_data_batch(
    records: list[RawPropertyRecord],
    *,
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    deduplicate: bool = True,
) -> BatchResult:
    """Normalize a batch of raw records, then deduplicate them.

    Args:
        records: Raw records from one or more data sources.
        threshold: Similarity threshold for duplicate detection.
        deduplicate: If False, skip duplicate detection and keep every record.

    Returns:
        BatchResult. ``average_confidence`` is the mean over the final set,
        rounded to 2 decimals, or 0.0 for an empty batch.
    """
    logger.info("batch_processing_started", count=len(records))

    normalized = [normalize_property(r) for r in records]

    if deduplicate:
        dedup = deduplicate_properties(normalized, threshold)
        final, groups = dedup.deduplicated, dedup.groups
    else:
        final, groups = list(normalized), []

    average_confidence = (
        round(sum(r.confidence for r in final) / len(final), 2) if final else 0.0
    )
    statistics = BatchStatistics(
        total_input=len(records),
        normalized_count=len(normalized),
        duplicates_found=len(groups),
        final_count=len(final),
        average_confidence=average_confidence,
    )

    logger.info("batch_processing_complete", **statistics.to_dict())

    return BatchResult(
        normalized=normalized,
        deduplicated=final,
        statistics=statistics,
        groups=groups,
    )
