"""Tests for property storage with SQLite."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from cre_ingest.db import DuplicatePropertyError, PropertyStorage
from cre_ingest.models import NormalizedPropertyRecord

MakeNormalized = Callable[..., NormalizedPropertyRecord]


@pytest.fixture
def office(make_normalized: MakeNormalized) -> NormalizedPropertyRecord:
    return make_normalized(
        id="loopnet_001",
        normalized_address="250 tech square",
        property_type="office",
        listing_price=15_500_000,
        sqft=125_000,
        price_per_sqft=124.0,
        description="Premium office building",
    )


@pytest.fixture
def apartment(make_normalized: MakeNormalized) -> NormalizedPropertyRecord:
    return make_normalized(id="crexi_001", source="Crexi", duplicate_group="group_abc")


class TestInitialize:
    async def test_creates_file_and_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "properties.db"
        storage = PropertyStorage(str(db_path))
        await storage.initialize()
        await storage.close()
        assert db_path.exists()

    async def test_initialize_is_idempotent(self, storage: PropertyStorage) -> None:
        await storage.initialize()
        assert await storage.get_property_count() == 0


class TestInsert:
    async def test_insert_and_exists(
        self, storage: PropertyStorage, office: NormalizedPropertyRecord
    ) -> None:
        assert not await storage.exists_by_address_city_state_zip(office)
        await storage.insert(office)
        assert await storage.exists_by_address_city_state_zip(office)
        assert await storage.get_property_count() == 1

    async def test_same_key_different_record_counts_as_existing(
        self,
        storage: PropertyStorage,
        office: NormalizedPropertyRecord,
        make_normalized: MakeNormalized,
    ) -> None:
        await storage.insert(office)
        other = make_normalized(
            id="crexi_009", source="Crexi", normalized_address="250 tech square"
        )
        assert await storage.exists_by_address_city_state_zip(other)

    async def test_different_zip_is_a_different_property(
        self, storage: PropertyStorage, office: NormalizedPropertyRecord
    ) -> None:
        await storage.insert(office)
        moved = office.model_copy(update={"zip_code": "30308"})
        assert not await storage.exists_by_address_city_state_zip(moved)

    async def test_city_casing_does_not_make_a_new_property(
        self, storage: PropertyStorage, office: NormalizedPropertyRecord
    ) -> None:
        await storage.insert(office)
        shouted = office.model_copy(update={"id": "crexi_010", "city": "ATLANTA"})
        assert await storage.exists_by_address_city_state_zip(shouted)
        with pytest.raises(DuplicatePropertyError):
            await storage.insert(shouted)
        assert await storage.get_property_count() == 1

    async def test_duplicate_insert_raises(
        self, storage: PropertyStorage, office: NormalizedPropertyRecord
    ) -> None:
        await storage.insert(office)
        with pytest.raises(DuplicatePropertyError):
            await storage.insert(office.model_copy(update={"id": "crexi_777"}))
        assert await storage.get_property_count() == 1

    async def test_null_measurements_allowed(
        self, storage: PropertyStorage, make_normalized: MakeNormalized
    ) -> None:
        record = make_normalized(listing_price=None, sqft=None, price_per_sqft=None)
        await storage.insert(record)
        assert await storage.get_property_count() == 1


class TestQueries:
    async def test_counts_by_source_and_type(
        self,
        storage: PropertyStorage,
        office: NormalizedPropertyRecord,
        apartment: NormalizedPropertyRecord,
    ) -> None:
        await storage.insert(office)
        await storage.insert(apartment)

        assert await storage.get_counts_by("listing_source") == {"LoopNet": 1, "Crexi": 1}
        assert await storage.get_counts_by("property_type") == {"office": 1, "apartment": 1}

    async def test_counts_by_rejects_other_columns(self, storage: PropertyStorage) -> None:
        with pytest.raises(ValueError):
            await storage.get_counts_by("address; DROP TABLE properties")

    async def test_count_created_since(
        self, storage: PropertyStorage, office: NormalizedPropertyRecord
    ) -> None:
        before = datetime.now(UTC) - timedelta(seconds=1)
        await storage.insert(office)
        assert await storage.count_created_since(before) == 1
        assert await storage.count_created_since(datetime.now(UTC) + timedelta(hours=1)) == 0

    async def test_market_snapshot(
        self,
        storage: PropertyStorage,
        office: NormalizedPropertyRecord,
        apartment: NormalizedPropertyRecord,
    ) -> None:
        await storage.insert(office)
        await storage.insert(apartment)

        snapshot = await storage.get_market_snapshot("30309")
        assert snapshot.total_properties == 2
        assert snapshot.average_listing_price == 12_150_000
        assert snapshot.average_price_per_sqft == pytest.approx((124.0 + 103.53) / 2, abs=0.01)
        assert snapshot.property_type_breakdown == {"apartment": 1, "office": 1}

    async def test_market_snapshot_for_empty_zip(self, storage: PropertyStorage) -> None:
        snapshot = await storage.get_market_snapshot("99999")
        assert snapshot.total_properties == 0
        assert snapshot.average_listing_price == 0.0
        assert snapshot.property_type_breakdown == {}
