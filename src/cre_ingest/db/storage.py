"""SQLite storage for ingested properties."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from cre_ingest.logging import get_logger
from cre_ingest.models import MarketSnapshot, NormalizedPropertyRecord

logger = get_logger(__name__)


class DuplicatePropertyError(Exception):
    """A property with the same address key is already stored."""


class PropertyStorage:
    """Properties table keyed on (address, city, state, zip_code).

    One aiosqlite connection is opened lazily and shared by every call; pass
    ``":memory:"`` for a throwaway database.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        for pragma in ("journal_mode=WAL", "busy_timeout=5000", "synchronous=NORMAL"):
            await conn.execute(f"PRAGMA {pragma}")
        self._conn = conn
        return conn

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()

    async def initialize(self) -> None:
        """Create the properties table and its lookup indexes if missing."""
        conn = await self._connection()
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS properties (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                record_id TEXT NOT NULL,
                address TEXT NOT NULL,
                city TEXT NOT NULL COLLATE NOCASE,
                state TEXT NOT NULL,
                zip_code TEXT NOT NULL,
                property_type TEXT NOT NULL,
                listing_price REAL,
                sqft REAL,
                price_per_sqft REAL,
                listing_source TEXT NOT NULL,
                confidence INTEGER NOT NULL,
                duplicate_group TEXT,
                description TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (address, city, state, zip_code)
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_zip_code
            ON properties(zip_code)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_created_at
            ON properties(created_at)
        """)
        await conn.commit()

    async def exists_by_address_city_state_zip(self, record: NormalizedPropertyRecord) -> bool:
        """Check whether a property with the record's address key is stored."""
        conn = await self._connection()
        cursor = await conn.execute(
            """
            SELECT 1 FROM properties
            WHERE address = ? AND city = ? AND state = ? AND zip_code = ?
            LIMIT 1
            """,
            record.address_key,
        )
        row = await cursor.fetchone()
        return row is not None

    async def insert(self, record: NormalizedPropertyRecord) -> None:
        """Insert a normalized property.

        Raises:
            DuplicatePropertyError: The address key is already stored.
        """
        conn = await self._connection()
        now = datetime.now(UTC).isoformat()
        try:
            await conn.execute(
                """
                INSERT INTO properties (
                    record_id, address, city, state, zip_code, property_type,
                    listing_price, sqft, price_per_sqft, listing_source,
                    confidence, duplicate_group, description, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.normalized_address,
                    record.city,
                    record.state,
                    record.zip_code,
                    record.property_type,
                    record.listing_price,
                    record.sqft,
                    record.price_per_sqft,
                    record.source,
                    record.confidence,
                    record.duplicate_group,
                    record.description,
                    now,
                    now,
                ),
            )
        except aiosqlite.IntegrityError as e:
            raise DuplicatePropertyError(
                f"Property already stored: {', '.join(record.address_key)}"
            ) from e
        await conn.commit()
        logger.debug("property_inserted", record_id=record.id, source=record.source)

    async def get_property_count(self) -> int:
        """Get total number of stored properties."""
        conn = await self._connection()
        cursor = await conn.execute("SELECT COUNT(*) FROM properties")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def count_created_since(self, since: datetime) -> int:
        """Count properties inserted at or after ``since``."""
        conn = await self._connection()
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM properties WHERE created_at >= ?",
            (since.astimezone(UTC).isoformat(),),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_counts_by(self, column: str) -> dict[str, int]:
        """Count stored properties grouped by ``listing_source`` or ``property_type``."""
        if column not in ("listing_source", "property_type"):
            raise ValueError(f"Cannot group by {column!r}")
        conn = await self._connection()
        cursor = await conn.execute(
            f"SELECT {column} AS key, COUNT(*) AS n FROM properties GROUP BY {column}"
        )
        rows = await cursor.fetchall()
        return {row["key"]: row["n"] for row in rows}

    async def get_market_snapshot(self, zip_code: str) -> MarketSnapshot:
        """Aggregate stored listings for a ZIP code."""
        conn = await self._connection()
        cursor = await conn.execute(
            """
            SELECT COUNT(*) AS total,
                   AVG(listing_price) AS avg_price,
                   AVG(price_per_sqft) AS avg_ppsf
            FROM properties
            WHERE zip_code = ?
            """,
            (zip_code,),
        )
        totals = await cursor.fetchone()

        cursor = await conn.execute(
            """
            SELECT property_type, COUNT(*) AS n
            FROM properties
            WHERE zip_code = ?
            GROUP BY property_type
            ORDER BY property_type
            """,
            (zip_code,),
        )
        breakdown = {row["property_type"]: row["n"] for row in await cursor.fetchall()}

        total = int(totals["total"]) if totals else 0
        return MarketSnapshot(
            zip_code=zip_code,
            total_properties=total,
            average_listing_price=round(totals["avg_price"] or 0.0, 2) if totals else 0.0,
            average_price_per_sqft=round(totals["avg_ppsf"] or 0.0, 2) if totals else 0.0,
            property_type_breakdown=breakdown,
        )
