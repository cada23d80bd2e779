"""Derived per-offer attributes: stops, durations and filter facets."""

import re
from typing import Optional

from .models import FlightOffer, Itinerary, SearchResponse

DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?")


def parse_duration(value: Optional[str]) -> int:
    """Turn a compact ``PT#H#M`` duration into minutes.

    Hours and minutes are read independently; a missing token counts as 0,
    and anything unparseable is 0 minutes.
    """
    if not value:
        return 0
    match = DURATION_RE.match(value)
    if not match:
        return 0
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    return hours * 60 + minutes


def format_duration(minutes: int) -> str:
    """Format minutes as 'Xh Ym'."""
    return f"{minutes // 60}h {minutes % 60}m"


def leg_stops(itinerary: Itinerary) -> int:
    return len(itinerary.segments) - 1


def leg_duration(itinerary: Itinerary) -> int:
    return parse_duration(itinerary.duration)


def offer_stops(offer: FlightOffer) -> int:
    """Stops on the outbound leg; this is what the stop filter looks at."""
    return leg_stops(offer.outbound)


def offer_duration(offer: FlightOffer) -> int:
    return leg_duration(offer.outbound)


def available_airlines(response: SearchResponse) -> list[tuple[str, str]]:
    """(code, display name) for every validating airline, first-seen order."""
    seen: dict[str, str] = {}
    for offer in response.offers:
        for code in offer.validating_airline_codes:
            if code not in seen:
                seen[code] = response.dictionaries.carrier_name(code)
    return list(seen.items())


def available_stops(offers: list[FlightOffer]) -> list[int]:
    return sorted({offer_stops(o) for o in offers})


def price_bounds(offers: list[FlightOffer]) -> Optional[tuple[float, float]]:
    """(cheapest, most expensive) total price, or None with no offers."""
    if not offers:
        return None
    prices = [o.price.total for o in offers]
    return min(prices), max(prices)
