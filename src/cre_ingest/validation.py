"""Property and address validation, data quality metrics, ingestion checks."""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final

from pydantic import BaseModel, Field, ValidationError, field_validator

from cre_ingest.models import NormalizedPropertyRecord, PropertyType

# Thresholds for quality warnings
PRICE_PER_SQFT_WARN_RANGE: Final = (50.0, 1000.0)
CAP_RATE_WARN_RANGE: Final = (0.01, 0.25)

# Hard bounds applied before persistence
MIN_INGEST_ADDRESS_LENGTH: Final = 5
PRICE_PER_SQFT_INGEST_RANGE: Final = (10.0, 2000.0)

PROPERTY_ERROR_PENALTY: Final = 10
ADDRESS_ERROR_PENALTY: Final = 15
WARNING_PENALTY: Final = 5
ZIP_STATE_MISMATCH_PENALTY: Final = 10

COMPLETENESS_FIELDS: Final = ("address", "city", "state", "zip_code", "property_type")

# 3-digit ZIP prefixes by state, for the states listings come from most.
STATE_ZIP_PREFIXES: Final[dict[str, frozenset[str]]] = {
    "GA": frozenset(str(p) for p in range(300, 320)),
    "FL": frozenset(str(p) for p in range(320, 346)),
    "AL": frozenset(str(p) for p in range(350, 370)),
}


class PropertySchema(BaseModel):
    """Shape a property must have to be considered valid."""

    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=2, max_length=2)
    zip_code: str = Field(min_length=5)
    property_type: PropertyType
    units: int | None = Field(default=None, ge=1)
    sqft: float = Field(ge=1)
    year_built: int | None = Field(default=None, ge=1800)
    listing_price: float = Field(ge=1)
    cap_rate: float | None = Field(default=None, ge=0, le=1)
    noi: float | None = None
    gross_income: float | None = None

    @field_validator("year_built")
    @classmethod
    def not_in_future(cls, v: int | None) -> int | None:
        if v is not None and v > datetime.now(UTC).year:
            raise ValueError("year_built cannot be in the future")
        return v


class TaxAssessmentSchema(BaseModel):
    """Shape of a tax assessment record."""

    assessed_value: float = Field(ge=0)
    tax_year: int = Field(ge=1900)
    land_value: float = Field(ge=0)
    improvement_value: float = Field(ge=0)
    total_taxes: float = Field(ge=0)

    @field_validator("tax_year")
    @classmethod
    def not_in_future(cls, v: int) -> int:
        if v > datetime.now(UTC).year:
            raise ValueError("tax_year cannot be in the future")
        return v


class AddressSchema(BaseModel):
    """Shape of a structured street address."""

    street_number: str | None = None
    street_name: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=2, max_length=2)
    zip_code: str = Field(pattern=r"^\d{5}(-\d{4})?$")
    county: str | None = None


@dataclass
class ValidationResult:
    """Validation outcome with a 0-100 quality score."""

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    score: int = 100


@dataclass(frozen=True)
class QualityMetrics:
    """Aggregate data quality percentages for a collection of records."""

    completeness: float = 0.0
    accuracy: float = 0.0
    consistency: float = 0.0
    freshness: float = 0.0
    overall: float = 0.0


@dataclass(frozen=True)
class RejectedRecord:
    """A record excluded from persistence and why."""

    record: NormalizedPropertyRecord
    reason: str


def _format_errors(exc: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]


def _schema_errors(schema: type[BaseModel], data: Mapping[str, Any]) -> list[str]:
    try:
        schema.model_validate(dict(data))
    except ValidationError as e:
        return _format_errors(e)
    return []


def _as_number(value: Any) -> float | None:
    """Read a numeric field the way the schemas coerce it, or None if it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def validate_property(data: Mapping[str, Any]) -> ValidationResult:
    """Validate a property dict against the schema and quality heuristics.

    Each schema error costs 10 points and each warning 5.
    """
    result = ValidationResult()

    errors = _schema_errors(PropertySchema, data)
    if errors:
        result.is_valid = False
        result.errors = errors
        result.score -= len(errors) * PROPERTY_ERROR_PENALTY

    listing_price = _as_number(data.get("listing_price"))
    sqft = _as_number(data.get("sqft"))
    if listing_price and sqft:
        ppsf = listing_price / sqft
        low, high = PRICE_PER_SQFT_WARN_RANGE
        if ppsf < low or ppsf > high:
            result.warnings.append("Price per square foot seems unusual")
            result.score -= WARNING_PENALTY

    cap_rate = _as_number(data.get("cap_rate"))
    if cap_rate:
        low, high = CAP_RATE_WARN_RANGE
        if cap_rate < low or cap_rate > high:
            result.warnings.append("Cap rate is outside typical range (1%-25%)")
            result.score -= WARNING_PENALTY

    units = _as_number(data.get("units"))
    if units and data.get("property_type") == "apartment" and units < 2:
        result.warnings.append("Apartment property should have multiple units")
        result.score -= WARNING_PENALTY

    return result


def validate_tax_assessment(data: Mapping[str, Any]) -> ValidationResult:
    """Validate a tax assessment dict."""
    result = ValidationResult()
    errors = _schema_errors(TaxAssessmentSchema, data)
    if errors:
        result.is_valid = False
        result.errors = errors
        result.score -= len(errors) * PROPERTY_ERROR_PENALTY
    return result


def validate_address(data: Mapping[str, Any]) -> ValidationResult:
    """Validate a structured address dict.

    Each schema error costs 15 points. A numeric-only street name costs 5
    and a ZIP prefix that does not belong to the state costs 10.
    """
    result = ValidationResult()

    errors = _schema_errors(AddressSchema, data)
    if errors:
        result.is_valid = False
        result.errors = errors
        result.score -= len(errors) * ADDRESS_ERROR_PENALTY

    street_name = data.get("street_name")
    if street_name and str(street_name).isdigit():
        result.warnings.append("Street name appears to be only numbers")
        result.score -= WARNING_PENALTY

    zip_code = data.get("zip_code")
    state = data.get("state")
    if (
        isinstance(zip_code, str)
        and len(zip_code) == 5
        and isinstance(state, str)
        and state in STATE_ZIP_PREFIXES
    ):
        if zip_code[:3] not in STATE_ZIP_PREFIXES[state]:
            result.warnings.append("ZIP code may not match state")
            result.score -= ZIP_STATE_MISMATCH_PENALTY

    return result


def _freshness_score(updated_at: Any, now: datetime) -> int:
    if isinstance(updated_at, str):
        try:
            updated_at = datetime.fromisoformat(updated_at)
        except ValueError:
            return 100
    # Missing or unreadable timestamps are not penalized.
    if not isinstance(updated_at, datetime):
        return 100
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=UTC)
    age_days = (now - updated_at).total_seconds() / 86400
    score = 100
    if age_days > 30:
        score -= 20
    if age_days > 90:
        score -= 30
    if age_days > 180:
        score -= 30
    return max(0, score)


def _consistency_score(item: Mapping[str, Any]) -> int:
    listing_price = _as_number(item.get("listing_price"))
    noi = _as_number(item.get("noi"))
    cap_rate = _as_number(item.get("cap_rate"))
    if listing_price and noi and cap_rate and abs(noi / listing_price - cap_rate) > 0.01:
        return 80
    return 100


def calculate_quality_metrics(
    items: Sequence[Mapping[str, Any]],
    *,
    now: datetime | None = None,
) -> QualityMetrics:
    """Score completeness, accuracy, consistency and freshness of a dataset.

    Args:
        items: Property dicts.
        now: Reference time for freshness (defaults to the current time).

    Returns:
        QualityMetrics with each value rounded to 2 decimals.
    """
    if not items:
        return QualityMetrics()

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    completeness = accuracy = consistency = freshness = 0.0

    for item in items:
        filled = [f for f in COMPLETENESS_FIELDS if item.get(f)]
        completeness += len(filled) / len(COMPLETENESS_FIELDS) * 100
        accuracy += validate_property(item).score
        consistency += _consistency_score(item)
        freshness += _freshness_score(item.get("updated_at"), now)

    n = len(items)
    completeness, accuracy = completeness / n, accuracy / n
    consistency, freshness = consistency / n, freshness / n
    overall = (completeness + accuracy + consistency + freshness) / 4

    return QualityMetrics(
        completeness=round(completeness, 2),
        accuracy=round(accuracy, 2),
        consistency=round(consistency, 2),
        freshness=round(freshness, 2),
        overall=round(overall, 2),
    )


def rejection_reason(record: NormalizedPropertyRecord) -> str | None:
    """Return why a record must not be persisted, or None if it may be."""
    if len(record.normalized_address) < MIN_INGEST_ADDRESS_LENGTH:
        return "address too short"
    if not record.listing_price or record.listing_price <= 0:
        return "listing price missing or not positive"
    if not record.sqft or record.sqft <= 0:
        return "square footage missing or not positive"
    if not record.city or not record.state:
        return "city or state missing"
    low, high = PRICE_PER_SQFT_INGEST_RANGE
    ppsf = record.listing_price / record.sqft
    if ppsf < low or ppsf > high:
        return f"price per sqft {ppsf:.2f} outside {low:.0f}-{high:.0f}"
    return None


def filter_for_ingestion(
    records: Iterable[NormalizedPropertyRecord],
) -> tuple[list[NormalizedPropertyRecord], list[RejectedRecord]]:
    """Split records into those fit for persistence and those rejected."""
    accepted: list[NormalizedPropertyRecord] = []
    rejected: list[RejectedRecord] = []
    for record in records:
        reason = rejection_reason(record)
        if reason is None:
            accepted.append(record)
        else:
            rejected.append(RejectedRecord(record=record, reason=reason))
    return accepted, rejected
