"""Base data source interfaces."""

from abc import ABC, abstractmethod

from cre_ingest.models import RawPropertyRecord, SearchCriteria, TaxAssessment


class DataSource(ABC):
    """Abstract base class for listing sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provenance tag this source stamps on its records."""
        ...

    @abstractmethod
    async def fetch(self, criteria: SearchCriteria) -> list[RawPropertyRecord]:
        """Fetch raw listings matching the given criteria.

        Args:
            criteria: Location and property type filters.

        Returns:
            Raw records, possibly empty. Implementations may raise on
            failure; callers treat that as this source's failure only.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Clean up source resources (e.g. HTTP sessions)."""


class TaxAssessor(ABC):
    """Abstract base class for tax assessor lookups."""

    @abstractmethod
    async def lookup(self, address: str, city: str, state: str) -> TaxAssessment:
        """Return the latest assessment for an address."""
        ...
