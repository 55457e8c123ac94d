"""Pure similarity functions for duplicate detection."""

from dataclasses import dataclass
from typing import Final

from rapidfuzz.distance import Levenshtein

from cre_ingest.models import NormalizedPropertyRecord

# Weighted scoring constants (sum to 1.0)
WEIGHT_ADDRESS: Final = 0.4
WEIGHT_CITY: Final = 0.15
WEIGHT_STATE: Final = 0.1
WEIGHT_ZIP: Final = 0.05
WEIGHT_PROPERTY_TYPE: Final = 0.1
WEIGHT_SQFT: Final = 0.1
WEIGHT_PRICE: Final = 0.1

DEFAULT_DUPLICATE_THRESHOLD: Final = 0.85


@dataclass
class SimilarityScore:
    """Breakdown of the similarity between two normalized records."""

    address: float = 0.0
    city: float = 0.0
    state: float = 0.0
    zip_code: float = 0.0
    property_type: float = 0.0
    sqft: float = 0.0
    price: float = 0.0

    @property
    def total(self) -> float:
        return min(
            1.0,
            self.address
            + self.city
            + self.state
            + self.zip_code
            + self.property_type
            + self.sqft
            + self.price,
        )

    def to_dict(self) -> dict[str, float]:
        """Convert to dict for logging."""
        return {
            "address": round(self.address, 4),
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "property_type": self.property_type,
            "sqft": round(self.sqft, 4),
            "price": round(self.price, 4),
            "total": round(self.total, 4),
        }


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost for insert, delete and substitute."""
    return int(Levenshtein.distance(a, b))


def string_similarity(a: str, b: str) -> float:
    """Levenshtein ratio in [0, 1]: 1 - distance / len(longer string).

    Two empty strings are identical (1.0).
    """
    return float(Levenshtein.normalized_similarity(a, b))


def relative_difference(a: float | None, b: float | None) -> float:
    """Relative difference |a - b| / max(a, b), 0 for equal values.

    Missing values count as 0. Never divides by zero.
    """
    x = a or 0.0
    y = b or 0.0
    if x == y:
        return 0.0
    return abs(x - y) / max(abs(x), abs(y))


def score_similarity(a: NormalizedPropertyRecord, b: NormalizedPropertyRecord) -> SimilarityScore:
    """Score each similarity signal between two records."""
    return SimilarityScore(
        address=string_similarity(a.normalized_address, b.normalized_address) * WEIGHT_ADDRESS,
        city=WEIGHT_CITY if a.city.lower() == b.city.lower() else 0.0,
        state=WEIGHT_STATE if a.state == b.state else 0.0,
        zip_code=WEIGHT_ZIP if a.zip_code == b.zip_code else 0.0,
        property_type=WEIGHT_PROPERTY_TYPE if a.property_type == b.property_type else 0.0,
        sqft=(1 - relative_difference(a.sqft, b.sqft)) * WEIGHT_SQFT,
        price=(1 - relative_difference(a.listing_price, b.listing_price)) * WEIGHT_PRICE,
    )


def calculate_similarity(a: NormalizedPropertyRecord, b: NormalizedPropertyRecord) -> float:
    """Weighted similarity in [0, 1] between two normalized records."""
    return score_similarity(a, b).total
