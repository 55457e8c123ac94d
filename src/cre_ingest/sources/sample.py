"""Sample listing sources backed by canned Atlanta listings.

These stand in for the LoopNet, Crexi and RealtyRates connectors so the
ingestion pipeline can run end to end without network access.
"""

import asyncio
import hashlib
import random
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Final

from cre_ingest.logging import get_logger
from cre_ingest.models import RawPropertyRecord, SearchCriteria, TaxAssessment
from cre_ingest.sources.base import DataSource, TaxAssessor

logger = get_logger(__name__)

SAMPLE_LISTINGS: Final[dict[str, tuple[dict[str, Any], ...]]] = {
    "LoopNet": (
        {
            "id": "loopnet_001",
            "address": "250 Tech Square",
            "city": "Atlanta",
            "state": "GA",
            "zip_code": "30309",
            "property_type": "Office",
            "listing_price": 15_500_000,
            "sqft": 125_000,
            "cap_rate": 0.065,
            "noi": 1_007_500,
            "description": "Premium office building in Tech Square with excellent tenant mix",
            "listing_agent": "John Smith, CBRE",
        },
        {
            "id": "loopnet_002",
            "address": "1800 Peachtree Street NW",
            "city": "Atlanta",
            "state": "Georgia",
            "zip_code": "30309-2415",
            "property_type": "Multifamily",
            "listing_price": 8_800_000,
            "sqft": 85_000,
            "cap_rate": 0.055,
            "description": "72-unit apartment community in Midtown Atlanta",
            "listing_agent": "John Smith, CBRE",
        },
    ),
    "Crexi": (
        {
            "id": "crexi_001",
            "address": "1800 Peachtree St NW",
            "city": "Atlanta",
            "state": "GA",
            "zip_code": "30309",
            "property_type": "Apartment",
            "listing_price": 8_750_000,
            "sqft": 85_000,
            "cap_rate": 0.055,
            "noi": 481_250,
            "description": "Modern apartment complex with 72 units in Midtown Atlanta",
            "listing_agent": "Sarah Johnson, Colliers",
        },
        {
            "id": "crexi_002",
            "address": "675 Ponce de Leon Avenue",
            "city": "Atlanta",
            "state": "GA",
            "zip_code": "30308",
            "property_type": "Mixed Use",
            "listing_price": 22_000_000,
            "sqft": 140_000,
            "description": "Retail and office mixed-use redevelopment",
            "listing_agent": "Sarah Johnson, Colliers",
        },
    ),
    "RealtyRates": (
        {
            "id": "realtyrates_001",
            "address": "3350 Riverwood Pkwy",
            "city": "Atlanta",
            "state": "GA",
            "zip_code": "30339",
            "property_type": "Warehouse",
            "listing_price": 12_200_000,
            "sqft": 180_000,
            "cap_rate": 0.072,
            "noi": 878_400,
            "description": "Class A warehouse facility with dock-high loading and rail access",
            "listing_agent": "Mike Davis, JLL",
        },
        {
            "id": "realtyrates_002",
            "address": "Tech Square Office",
            "city": "Atlanta",
            "state": "GA",
            "zip_code": "30309",
            "property_type": "Office Space",
            "listing_price": 0,
            "sqft": 0,
            "description": "Office condo, pricing on request",
        },
    ),
}


class SampleListingSource(DataSource):
    """Serves canned listings filtered by search criteria."""

    def __init__(
        self,
        name: str,
        listings: Iterable[Mapping[str, Any]],
        *,
        latency: float = 0.0,
    ) -> None:
        """Initialize the source.

        Args:
            name: Provenance tag stamped on every record.
            listings: Listing dicts in RawPropertyRecord shape.
            latency: Simulated network delay per fetch, in seconds.
        """
        self._name = name
        self._listings = [dict(listing) for listing in listings]
        self.latency = latency

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self, criteria: SearchCriteria) -> list[RawPropertyRecord]:
        if self.latency:
            await asyncio.sleep(self.latency)

        records = [
            RawPropertyRecord.model_validate(
                {**listing, "source": self._name, "scraped_at": datetime.now(UTC).isoformat()}
            )
            for listing in self._listings
        ]
        matched = [r for r in records if criteria.matches(r)]
        logger.debug(
            "sample_source_fetched",
            source=self._name,
            available=len(records),
            matched=len(matched),
        )
        return matched


def build_sample_sources(
    names: Iterable[str] | None = None,
    *,
    latency: float = 0.0,
) -> dict[str, DataSource]:
    """Build sample sources by name.

    Args:
        names: Source names to build (default: all sample sources). Unknown
            names are logged and skipped.
        latency: Simulated network delay per fetch.

    Returns:
        Mapping of source name to DataSource.
    """
    sources: dict[str, DataSource] = {}
    for name in names if names is not None else SAMPLE_LISTINGS:
        listings = SAMPLE_LISTINGS.get(name)
        if listings is None:
            logger.warning("unknown_sample_source", source=name)
            continue
        sources[name] = SampleListingSource(name, listings, latency=latency)
    return sources


class SampleTaxAssessor(TaxAssessor):
    """Deterministic stand-in for a county tax assessor.

    Values are derived from the address, so the same address always gets the
    same assessment.
    """

    def __init__(self, *, latency: float = 0.0, tax_year: int | None = None) -> None:
        self.latency = latency
        self.tax_year = tax_year or datetime.now(UTC).year - 1

    async def lookup(self, address: str, city: str, state: str) -> TaxAssessment:
        if self.latency:
            await asyncio.sleep(self.latency)

        key = f"{address.strip().lower()}|{city.strip().lower()}|{state.strip().upper()}"
        seed = int.from_bytes(hashlib.sha256(key.encode()).digest()[:8], "big")
        rng = random.Random(seed)

        assessed_value = round(1_000_000 + rng.random() * 2_000_000, 2)
        land_share = 0.2 + rng.random() * 0.2
        land_value = round(assessed_value * land_share, 2)
        return TaxAssessment(
            address=address,
            city=city,
            state=state,
            assessed_value=assessed_value,
            land_value=land_value,
            improvement_value=round(assessed_value - land_value, 2),
            tax_year=self.tax_year,
            annual_taxes=round(15_000 + rng.random() * 30_000, 2),
        )
