"""Normalization and deduplication of property records."""

from cre_ingest.normalization.address import (
    normalize_address,
    normalize_property_type,
    normalize_state,
    normalize_zip_code,
)
from cre_ingest.normalization.batch import (
    BatchResult,
    BatchStatistics,
    normalize_property,
    process_data_batch,
)
from cre_ingest.normalization.confidence import calculate_confidence
from cre_ingest.normalization.deduplication import (
    DeduplicationResult,
    deduplicate_properties,
    find_duplicates,
)
from cre_ingest.normalization.similarity import (
    calculate_similarity,
    levenshtein_distance,
    string_similarity,
)

__all__ = [
    "BatchResult",
    "BatchStatistics",
    "DeduplicationResult",
    "calculate_confidence",
    "calculate_similarity",
    "deduplicate_properties",
    "find_duplicates",
    "levenshtein_distance",
    "normalize_address",
    "normalize_property",
    "normalize_property_type",
    "normalize_state",
    "normalize_zip_code",
    "process_data_batch",
    "string_similarity",
]
