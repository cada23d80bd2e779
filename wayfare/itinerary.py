"""Outbound / return leg summaries for display."""

from dataclasses import dataclass
from datetime import datetime

from .models import Dictionaries, FlightOffer, Itinerary
from .normalize import format_duration, leg_duration, leg_stops

OUTBOUND = "outbound"
RETURN = "return"


@dataclass(frozen=True)
class LegSummary:
    label: str
    origin: str
    departure_at: str
    destination: str
    arrival_at: str
    duration_minutes: int
    stops: int
    carriers: tuple[str, ...]

    @property
    def duration_display(self) -> str:
        return format_duration(self.duration_minutes)

    @property
    def stops_display(self) -> str:
        return stops_label(self.stops)

    @property
    def is_direct(self) -> bool:
        return self.stops == 0


def stops_label(stops: int) -> str:
    if stops == 0:
        return "Non-stop"
    return f"{stops} stop{'s' if stops > 1 else ''}"


def summarize_leg(itinerary: Itinerary, label: str) -> LegSummary:
    first = itinerary.segments[0]
    last = itinerary.segments[-1]
    carriers = []
    for seg in itinerary.segments:
        if seg.carrier_code not in carriers:
            carriers.append(seg.carrier_code)
    return LegSummary(
        label=label,
        origin=first.departure.iata_code,
        departure_at=first.departure.at,
        destination=last.arrival.iata_code,
        arrival_at=last.arrival.at,
        duration_minutes=leg_duration(itinerary),
        stops=leg_stops(itinerary),
        carriers=tuple(carriers),
    )


def split_legs(offer: FlightOffer, round_trip: bool) -> list[LegSummary]:
    """Itinerary 0 is always outbound; itinerary 1 is the return leg when
    present and the trip is a round trip."""
    legs = [summarize_leg(offer.itineraries[0], OUTBOUND)]
    if round_trip and len(offer.itineraries) > 1:
        legs.append(summarize_leg(offer.itineraries[1], RETURN))
    return legs


def carrier_names(leg: LegSummary, dictionaries: Dictionaries) -> str:
    return ", ".join(dictionaries.carrier_name(c) for c in leg.carriers)


def format_time(timestamp: str) -> str:
    """'2025-06-01T10:30:00' → '10:30'."""
    try:
        return datetime.fromisoformat(timestamp).strftime("%H:%M")
    except ValueError:
        return timestamp


def format_date(timestamp: str) -> str:
    """'2025-06-01' or a full timestamp → 'Jun 1'."""
    try:
        dt = datetime.fromisoformat(timestamp)
    except ValueError:
        return timestamp
    return f"{dt:%b} {dt.day}"
