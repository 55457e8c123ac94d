"""Tests for property validation, quality metrics and ingestion checks."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from cre_ingest.models import NormalizedPropertyRecord
from cre_ingest.validation import (
    calculate_quality_metrics,
    filter_for_ingestion,
    rejection_reason,
    validate_address,
    validate_property,
    validate_tax_assessment,
)

MakeNormalized = Callable[..., NormalizedPropertyRecord]


@pytest.fixture
def valid_property() -> dict[str, Any]:
    return {
        "address": "250 Tech Square",
        "city": "Atlanta",
        "state": "GA",
        "zip_code": "30309",
        "property_type": "office",
        "sqft": 125_000,
        "listing_price": 15_500_000,
        "cap_rate": 0.065,
        "noi": 1_007_500,
    }


@pytest.fixture
def valid_address() -> dict[str, Any]:
    return {
        "street_number": "250",
        "street_name": "Tech Square",
        "city": "Atlanta",
        "state": "GA",
        "zip_code": "30309",
    }


class TestValidateProperty:
    def test_valid(self, valid_property: dict[str, Any]) -> None:
        result = validate_property(valid_property)
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.score == 100

    def test_every_required_field_missing(self) -> None:
        result = validate_property({})
        assert not result.is_valid
        assert len(result.errors) == 7
        assert result.score == 30

    def test_unknown_property_type(self, valid_property: dict[str, Any]) -> None:
        result = validate_property({**valid_property, "property_type": "Warehouse"})
        assert not result.is_valid
        assert any(e.startswith("property_type") for e in result.errors)
        assert result.score == 90

    def test_unusual_price_per_sqft_warns(self, valid_property: dict[str, Any]) -> None:
        result = validate_property({**valid_property, "listing_price": 1_000_000})
        assert result.is_valid
        assert result.warnings == ["Price per square foot seems unusual"]
        assert result.score == 95

    def test_cap_rate_out_of_range_warns(self, valid_property: dict[str, Any]) -> None:
        result = validate_property({**valid_property, "cap_rate": 0.4})
        assert result.is_valid
        assert result.score == 95

    def test_single_unit_apartment_warns(self, valid_property: dict[str, Any]) -> None:
        data = {**valid_property, "property_type": "apartment", "units": 1}
        result = validate_property(data)
        assert "Apartment property should have multiple units" in result.warnings

    def test_future_year_built(self, valid_property: dict[str, Any]) -> None:
        year = datetime.now(UTC).year + 1
        result = validate_property({**valid_property, "year_built": year})
        assert not result.is_valid
        assert any("future" in e for e in result.errors)

    def test_numeric_strings_are_read_as_numbers(self, valid_property: dict[str, Any]) -> None:
        result = validate_property({**valid_property, "listing_price": "500000", "sqft": "25000"})
        assert result.is_valid
        assert result.warnings == ["Price per square foot seems unusual"]
        assert result.score == 95

    def test_non_numeric_values_are_errors_not_crashes(
        self, valid_property: dict[str, Any]
    ) -> None:
        result = validate_property(
            {
                **valid_property,
                "listing_price": "call for price",
                "sqft": "n/a",
                "cap_rate": "tbd",
                "units": "many",
            }
        )
        assert not result.is_valid
        assert {e.split(":")[0] for e in result.errors} == {
            "listing_price",
            "sqft",
            "cap_rate",
            "units",
        }
        assert result.warnings == []
        assert result.score == 60


class TestValidateTaxAssessment:
    def test_valid(self) -> None:
        result = validate_tax_assessment(
            {
                "assessed_value": 2_000_000,
                "tax_year": 2023,
                "land_value": 500_000,
                "improvement_value": 1_500_000,
                "total_taxes": 30_000,
            }
        )
        assert result.is_valid
        assert result.score == 100

    def test_negative_values_and_missing_taxes(self) -> None:
        result = validate_tax_assessment(
            {
                "assessed_value": -1,
                "tax_year": 2023,
                "land_value": 500_000,
                "improvement_value": 1_500_000,
            }
        )
        assert not result.is_valid
        assert len(result.errors) == 2
        assert result.score == 80


class TestValidateAddress:
    def test_valid(self, valid_address: dict[str, Any]) -> None:
        result = validate_address(valid_address)
        assert result.is_valid
        assert result.score == 100

    def test_zip_plus_four_accepted(self, valid_address: dict[str, Any]) -> None:
        assert validate_address({**valid_address, "zip_code": "30309-2415"}).is_valid

    def test_malformed_zip(self, valid_address: dict[str, Any]) -> None:
        result = validate_address({**valid_address, "zip_code": "3030"})
        assert not result.is_valid
        assert result.score == 85

    def test_numeric_street_name_warns(self, valid_address: dict[str, Any]) -> None:
        result = validate_address({**valid_address, "street_name": "123"})
        assert result.is_valid
        assert result.score == 95

    def test_zip_outside_state_warns(self, valid_address: dict[str, Any]) -> None:
        result = validate_address({**valid_address, "zip_code": "33101"})
        assert result.is_valid
        assert result.warnings == ["ZIP code may not match state"]
        assert result.score == 90

    def test_zip_prefix_not_checked_for_other_states(
        self, valid_address: dict[str, Any]
    ) -> None:
        result = validate_address({**valid_address, "state": "TX", "zip_code": "30309"})
        assert result.score == 100

    def test_non_string_zip_and_state_are_errors(self, valid_address: dict[str, Any]) -> None:
        result = validate_address({**valid_address, "zip_code": 30309, "state": ["GA"]})
        assert not result.is_valid
        assert {e.split(":")[0] for e in result.errors} == {"zip_code", "state"}
        assert result.warnings == []
        assert result.score == 70


class TestCalculateQualityMetrics:
    def test_empty(self) -> None:
        metrics = calculate_quality_metrics([])
        assert metrics.overall == 0.0

    def test_complete_recent_record(self, valid_property: dict[str, Any]) -> None:
        now = datetime(2025, 6, 1, tzinfo=UTC)
        item = {**valid_property, "updated_at": (now - timedelta(days=1)).isoformat()}
        metrics = calculate_quality_metrics([item], now=now)
        assert metrics.completeness == 100.0
        assert metrics.accuracy == 100.0
        assert metrics.consistency == 100.0
        assert metrics.freshness == 100.0
        assert metrics.overall == 100.0

    def test_stale_inconsistent_record(self, valid_property: dict[str, Any]) -> None:
        now = datetime(2025, 6, 1, tzinfo=UTC)
        item = {
            **valid_property,
            "noi": 2_000_000,
            "updated_at": now - timedelta(days=100),
        }
        metrics = calculate_quality_metrics([item], now=now)
        assert metrics.consistency == 80.0
        assert metrics.freshness == 50.0
        assert metrics.overall == pytest.approx((100 + 100 + 80 + 50) / 4)

    def test_averages_over_items(self, valid_property: dict[str, Any]) -> None:
        half_empty = {"address": "1 Main St", "city": "Atlanta"}
        metrics = calculate_quality_metrics([valid_property, half_empty])
        assert metrics.completeness == 70.0

    def test_unreadable_timestamp_is_not_penalized(self, valid_property: dict[str, Any]) -> None:
        metrics = calculate_quality_metrics([{**valid_property, "updated_at": "yesterday"}])
        assert metrics.freshness == 100.0

    def test_naive_reference_time_is_utc(self, valid_property: dict[str, Any]) -> None:
        aware = datetime(2025, 6, 1, tzinfo=UTC) - timedelta(days=100)
        item = {**valid_property, "updated_at": aware.isoformat()}
        metrics = calculate_quality_metrics([item], now=datetime(2025, 6, 1))
        assert metrics.freshness == 50.0

    def test_numeric_strings_feed_consistency(self, valid_property: dict[str, Any]) -> None:
        item = {
            **valid_property,
            "listing_price": "15500000",
            "noi": "2000000",
            "cap_rate": "0.065",
        }
        assert calculate_quality_metrics([item]).consistency == 80.0


class TestIngestionFilter:
    def test_complete_record_accepted(self, make_normalized: MakeNormalized) -> None:
        assert rejection_reason(make_normalized()) is None

    @pytest.mark.parametrize(
        ("overrides", "reason"),
        [
            ({"normalized_address": "1 a"}, "address too short"),
            ({"listing_price": 0}, "listing price missing or not positive"),
            ({"listing_price": None}, "listing price missing or not positive"),
            ({"sqft": 0}, "square footage missing or not positive"),
            ({"city": ""}, "city or state missing"),
            ({"state": ""}, "city or state missing"),
        ],
    )
    def test_rejections(
        self, make_normalized: MakeNormalized, overrides: dict[str, Any], reason: str
    ) -> None:
        assert rejection_reason(make_normalized(**overrides)) == reason

    def test_implausible_price_per_sqft(self, make_normalized: MakeNormalized) -> None:
        reason = rejection_reason(make_normalized(listing_price=500_000, sqft=85_000))
        assert reason is not None
        assert reason.startswith("price per sqft 5.88")

    def test_filter_splits_records(self, make_normalized: MakeNormalized) -> None:
        good = make_normalized(id="good")
        bad = make_normalized(id="bad", sqft=0)
        accepted, rejected = filter_for_ingestion([good, bad])
        assert [r.id for r in accepted] == ["good"]
        assert [r.record.id for r in rejected] == ["bad"]
        assert rejected[0].reason == "square footage missing or not positive"
