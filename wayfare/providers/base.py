"""Base flight provider interface."""

from abc import ABC, abstractmethod

from ..models import Airport, SearchCriteria, SearchResponse


class FlightProvider(ABC):
    """Abstract base class for flight-offer search backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider name used in logs and cache keys."""
        ...

    @abstractmethod
    async def search(self, criteria: SearchCriteria) -> SearchResponse:
        """
        Search priced flight offers.

        Args:
            criteria: Route, dates, passenger counts and optional class,
                non-stop flag and price ceiling.

        Returns:
            Offers plus the carrier / aircraft dictionaries.

        Raises:
            ProviderError: on any network or provider failure.
        """
        ...

    @abstractmethod
    async def search_airports(self, keyword: str) -> list[Airport]:
        """Free-text airport lookup, best matches first."""
        ...
