"""Shared pytest fixtures."""

import gc
import os
import threading
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from hypothesis import HealthCheck, settings

from cre_ingest.config import Settings
from cre_ingest.db import PropertyStorage
from cre_ingest.models import NormalizedPropertyRecord, RawPropertyRecord


# HYPOTHESIS_PROFILE=ci for the slower, wider search
settings.register_profile("fast", max_examples=10)
settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(autouse=True)
def _isolate_settings_from_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent the local .env file from leaking into test Settings instances."""
    monkeypatch.setattr(
        Settings,
        "model_config",
        {**Settings.model_config, "env_file": None},
    )


@pytest.fixture(autouse=True)
def _cleanup_aiosqlite_threads():
    """Safety net: stop aiosqlite worker threads left behind by a leaked connection."""
    yield

    from aiosqlite.core import Connection

    leaked = False
    gc.collect()
    for obj in gc.get_objects():
        if isinstance(obj, Connection) and obj._connection is not None:
            leaked = True
            obj.stop()

    for thread in threading.enumerate():
        if "_connection_worker_thread" in (thread.name or "") and thread.is_alive():
            leaked = True
            thread.join(timeout=1.0)

    if leaked:
        import warnings

        warnings.warn(
            "Test leaked aiosqlite connection(s), add 'await storage.close()' to fixture teardown",
            ResourceWarning,
            stacklevel=1,
        )


@pytest_asyncio.fixture
async def storage() -> AsyncGenerator[PropertyStorage, None]:
    """Create an in-memory storage instance."""
    storage = PropertyStorage(":memory:")
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def make_raw() -> Callable[..., RawPropertyRecord]:
    """Factory for complete raw records; keyword overrides replace fields."""

    def _make(**overrides: Any) -> RawPropertyRecord:
        data: dict[str, Any] = {
            "id": "raw_1",
            "source": "LoopNet",
            "address": "1800 Peachtree Street NW",
            "city": "Atlanta",
            "state": "GA",
            "zip_code": "30309",
            "property_type": "Apartment",
            "listing_price": 8_800_000,
            "sqft": 85_000,
        }
        data.update(overrides)
        return RawPropertyRecord.model_validate(data)

    return _make


@pytest.fixture
def make_normalized() -> Callable[..., NormalizedPropertyRecord]:
    """Factory for normalized records; keyword overrides replace fields."""

    def _make(**overrides: Any) -> NormalizedPropertyRecord:
        data: dict[str, Any] = {
            "id": "norm_1",
            "source": "LoopNet",
            "normalized_address": "1800 peachtree st nw",
            "city": "Atlanta",
            "state": "GA",
            "zip_code": "30309",
            "property_type": "apartment",
            "listing_price": 8_800_000,
            "sqft": 85_000,
            "price_per_sqft": 103.53,
            "confidence": 100,
        }
        data.update(overrides)
        return NormalizedPropertyRecord.model_validate(data)

    return _make
