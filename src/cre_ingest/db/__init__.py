"""Database storage for ingested properties."""

from cre_ingest.db.storage import DuplicatePropertyError, PropertyStorage

__all__ = ["DuplicatePropertyError", "PropertyStorage"]
