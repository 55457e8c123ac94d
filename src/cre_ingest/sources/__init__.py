"""Listing and tax assessor data sources."""

from cre_ingest.sources.base import DataSource, TaxAssessor
from cre_ingest.sources.sample import (
    SAMPLE_LISTINGS,
    SampleListingSource,
    SampleTaxAssessor,
    build_sample_sources,
)

__all__ = [
    "SAMPLE_LISTINGS",
    "DataSource",
    "SampleListingSource",
    "SampleTaxAssessor",
    "TaxAssessor",
    "build_sample_sources",
]
