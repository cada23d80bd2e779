"""Flight search providers."""

from .amadeus import AmadeusClient
from .base import FlightProvider

__all__ = ["AmadeusClient", "FlightProvider"]
