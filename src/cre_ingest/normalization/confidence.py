"""Heuristic completeness and trust scoring for raw property records."""

import re
from typing import Final

from cre_ingest.models import RawPropertyRecord

MAX_CONFIDENCE: Final = 100
MIN_CONFIDENCE: Final = 0

# Penalties for missing or implausible fields
PENALTY_SHORT_ADDRESS: Final = 20
PENALTY_NO_STREET_NUMBER: Final = 15
PENALTY_NO_ZIP: Final = 15
PENALTY_NO_CITY: Final = 10
PENALTY_NO_STATE: Final = 10
PENALTY_NO_PRICE: Final = 20
PENALTY_NO_SQFT: Final = 15

MIN_ADDRESS_LENGTH: Final = 10

# Bonus by source reputation, keyed by lowercase source name.
SOURCE_TRUST_BONUS: Final[dict[str, int]] = {
    "loopnet": 10,
    "crexi": 5,
}

_DIGIT: Final = re.compile(r"\d")


def source_trust_bonus(source: str) -> int:
    """Return the confidence bonus for a listing source (0 if unknown)."""
    return SOURCE_TRUST_BONUS.get(source.strip().lower(), 0)


def calculate_confidence(record: RawPropertyRecord) -> int:
    """Score a raw record's completeness and source trust on a 0-100 scale.

    This is a heuristic, not a probability. Starting from 100, each missing
    or invalid field subtracts a fixed penalty, then the source bonus is
    added and the result is clamped.

    Args:
        record: Raw record from a data source.

    Returns:
        Integer confidence in [0, 100].
    """
    confidence = MAX_CONFIDENCE

    address = record.address.strip()
    if len(address) < MIN_ADDRESS_LENGTH:
        confidence -= PENALTY_SHORT_ADDRESS
    if not _DIGIT.search(address):
        confidence -= PENALTY_NO_STREET_NUMBER

    if not record.zip_code or not record.zip_code.strip():
        confidence -= PENALTY_NO_ZIP
    if not record.city.strip():
        confidence -= PENALTY_NO_CITY
    if not record.state.strip():
        confidence -= PENALTY_NO_STATE

    if not record.listing_price or record.listing_price <= 0:
        confidence -= PENALTY_NO_PRICE
    if not record.sqft or record.sqft <= 0:
        confidence -= PENALTY_NO_SQFT

    confidence += source_trust_bonus(record.source)

    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))
