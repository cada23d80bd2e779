"""Debounced airport autocomplete (last request wins)."""

import asyncio
import logging
from typing import Optional

from .models import Airport
from .providers.base import FlightProvider

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.3
MIN_CHARS = 3
MAX_SUGGESTIONS = 5


class AirportAutocomplete:
    """Turns keystrokes into airport suggestions.

    Each call to :meth:`suggest` waits for the input to settle. If a newer
    call arrives during the wait, or while the lookup is in flight, the older
    call resolves to ``None`` and its result is discarded. In-flight HTTP
    requests are not aborted.
    """

    def __init__(
        self,
        provider: FlightProvider,
        delay: float = DEBOUNCE_SECONDS,
        min_chars: int = MIN_CHARS,
        limit: int = MAX_SUGGESTIONS,
    ):
        self.provider = provider
        self.delay = delay
        self.min_chars = min_chars
        self.limit = limit
        self._generation = 0

    async def suggest(self, text: str) -> Optional[list[Airport]]:
        self._generation += 1
        generation = self._generation

        keyword = text.strip()
        if len(keyword) < self.min_chars:
            return []

        await asyncio.sleep(self.delay)
        if generation != self._generation:
            logger.debug("Dropping superseded lookup for %r", keyword)
            return None

        airports = await self.provider.search_airports(keyword)
        if generation != self._generation:
            logger.debug("Discarding stale results for %r", keyword)
            return None
        return airports[: self.limit]
