"""Pydantic models for property records, search criteria and market data."""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PropertyType(StrEnum):
    """Canonical commercial property categories."""

    APARTMENT = "apartment"
    OFFICE = "office"
    RETAIL = "retail"
    INDUSTRIAL = "industrial"
    MIXED_USE = "mixed-use"
    LAND = "land"


def _record_id() -> str:
    return f"raw_{uuid.uuid4().hex[:12]}"


class RawPropertyRecord(BaseModel):
    """A property listing exactly as a data source reported it.

    Every field except ``id`` may be missing or blank; incomplete records are
    kept and scored down during normalization rather than rejected here.
    Unknown keys (description, cap_rate, noi, units, ...) are preserved.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=_record_id)
    source: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str | None = None
    property_type: str = ""
    listing_price: float | None = None
    sqft: float | None = None

    @field_validator("address", "city", "state", "property_type", "source", mode="before")
    @classmethod
    def none_to_empty(cls, v: object) -> object:
        """Treat explicit nulls from sources as empty strings."""
        return "" if v is None else v

    @property
    def extras(self) -> dict[str, object]:
        """Free-form fields the source attached beyond the known ones."""
        return dict(self.model_extra or {})


class NormalizedPropertyRecord(BaseModel):
    """A canonicalized property record with a quality score.

    ``duplicate_group`` is the only field assigned after creation; it is set
    on every member of a duplicate cluster, survivor included.
    """

    id: str
    source: str
    normalized_address: str
    city: str
    state: str
    zip_code: str
    property_type: str
    listing_price: float | None
    sqft: float | None
    price_per_sqft: float | None = Field(
        default=None, description="listing_price / sqft rounded to 2 decimals, fixed at creation"
    )
    confidence: int = Field(ge=0, le=100)
    duplicate_group: str | None = None
    description: str | None = None

    @property
    def address_key(self) -> tuple[str, str, str, str]:
        """Uniqueness key used by persistence, which compares city case-insensitively."""
        return (self.normalized_address, self.city, self.state, self.zip_code)


class SearchCriteria(BaseModel):
    """Criteria passed to data sources."""

    model_config = ConfigDict(frozen=True)

    zip_code: str | None = None
    city: str | None = None
    state: str | None = None
    property_types: tuple[str, ...] = ()

    def matches(self, record: RawPropertyRecord) -> bool:
        """Check whether a raw record satisfies these criteria."""
        if self.zip_code and (record.zip_code or "")[:5] != self.zip_code[:5]:
            return False
        if self.city and record.city.strip().lower() != self.city.strip().lower():
            return False
        if self.state and record.state.strip().upper() != self.state.strip().upper():
            return False
        if self.property_types and "all" not in self.property_types:
            wanted = {t.lower() for t in self.property_types}
            if record.property_type.strip().lower() not in wanted:
                return False
        return True


class TaxAssessment(BaseModel):
    """Tax assessor data for a single address."""

    model_config = ConfigDict(frozen=True)

    address: str
    city: str
    state: str
    assessed_value: float = Field(ge=0)
    land_value: float = Field(ge=0)
    improvement_value: float = Field(ge=0)
    tax_year: int = Field(ge=1900)
    annual_taxes: float = Field(ge=0)
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MarketSnapshot(BaseModel):
    """Aggregate listing statistics for a ZIP code."""

    model_config = ConfigDict(frozen=True)

    zip_code: str
    total_properties: int = Field(ge=0)
    average_listing_price: float = 0.0
    average_price_per_sqft: float = 0.0
    property_type_breakdown: dict[str, int] = Field(default_factory=dict)
