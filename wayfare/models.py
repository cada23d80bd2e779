"""Data models for wayfare flight search and booking.

Provider payloads are parsed into these records at the boundary
(``from_dict``); anything missing a required field raises
:class:`~wayfare.errors.MalformedResponseError` right there.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from .errors import MalformedResponseError, ValidationError

ROUND_TRIP = "round-trip"
ONE_WAY = "one-way"
TRIP_TYPES = (ROUND_TRIP, ONE_WAY)

TRAVEL_CLASSES = ("ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST")

ADULT = "adult"
CHILD = "child"
INFANT = "infant"
PASSENGER_TYPES = (ADULT, CHILD, INFANT)

# Booking.status
STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED)

# Booking.payment_status
PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED)

SORT_PRICE = "price"
SORT_DURATION = "duration"
SORT_KEYS = (SORT_PRICE, SORT_DURATION)


def _require(data: Any, key: str, where: str) -> Any:
    if not isinstance(data, dict) or data.get(key) in (None, ""):
        raise MalformedResponseError(f"{where}: missing '{key}'")
    return data[key]


# ---------------------------------------------------------------------------
# Flight offers (immutable once received)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Price:
    total: float
    currency: str

    @classmethod
    def from_dict(cls, data: dict) -> "Price":
        total = _require(data, "total", "price")
        try:
            amount = float(total)
        except (TypeError, ValueError):
            raise MalformedResponseError(f"price: bad total {total!r}") from None
        return cls(total=amount, currency=_require(data, "currency", "price"))


@dataclass(frozen=True)
class Endpoint:
    """Departure or arrival point of a segment."""
    iata_code: str
    at: str  # ISO local datetime, e.g. "2025-06-01T10:30:00"

    @classmethod
    def from_dict(cls, data: dict) -> "Endpoint":
        return cls(
            iata_code=_require(data, "iataCode", "segment endpoint"),
            at=_require(data, "at", "segment endpoint"),
        )


@dataclass(frozen=True)
class Segment:
    """A single non-stop flight inside a leg."""
    departure: Endpoint
    arrival: Endpoint
    carrier_code: str
    number: str
    aircraft_code: str = ""
    duration: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        aircraft = data.get("aircraft") or {}
        return cls(
            departure=Endpoint.from_dict(_require(data, "departure", "segment")),
            arrival=Endpoint.from_dict(_require(data, "arrival", "segment")),
            carrier_code=_require(data, "carrierCode", "segment"),
            number=str(data.get("number") or ""),
            aircraft_code=aircraft.get("code", "") if isinstance(aircraft, dict) else "",
            duration=data.get("duration") or "",
        )

    @property
    def flight_no(self) -> str:
        return f"{self.carrier_code} {self.number}".strip()

    def to_dict(self) -> dict:
        return {
            "departure": {"iataCode": self.departure.iata_code, "at": self.departure.at},
            "arrival": {"iataCode": self.arrival.iata_code, "at": self.arrival.at},
            "carrierCode": self.carrier_code,
            "number": self.number,
            "aircraft": {"code": self.aircraft_code},
            "duration": self.duration,
        }


@dataclass(frozen=True)
class Itinerary:
    """One direction of travel (outbound or return)."""
    duration: str
    segments: tuple[Segment, ...]

    @classmethod
    def from_dict(cls, data: dict) -> "Itinerary":
        raw_segments = _require(data, "segments", "itinerary")
        if not isinstance(raw_segments, list) or not raw_segments:
            raise MalformedResponseError("itinerary: no segments")
        return cls(
            duration=data.get("duration") or "",
            segments=tuple(Segment.from_dict(s) for s in raw_segments),
        )

    def to_dict(self) -> dict:
        return {
            "duration": self.duration,
            "segments": [s.to_dict() for s in self.segments],
        }


@dataclass(frozen=True)
class FlightOffer:
    """A priced, bookable itinerary combination returned by the search provider."""
    id: str
    price: Price
    itineraries: tuple[Itinerary, ...]
    validating_airline_codes: tuple[str, ...] = ()
    bookable_seats: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "FlightOffer":
        offer_id = str(_require(data, "id", "offer"))
        raw_itineraries = _require(data, "itineraries", "offer")
        if not isinstance(raw_itineraries, list) or not 1 <= len(raw_itineraries) <= 2:
            raise MalformedResponseError(f"offer {offer_id}: expected one or two itineraries")
        try:
            seats = int(data.get("numberOfBookableSeats") or 0)
        except (TypeError, ValueError):
            seats = 0
        return cls(
            id=offer_id,
            price=Price.from_dict(_require(data, "price", "offer")),
            itineraries=tuple(Itinerary.from_dict(i) for i in raw_itineraries),
            validating_airline_codes=tuple(data.get("validatingAirlineCodes") or ()),
            bookable_seats=seats,
        )

    @property
    def outbound(self) -> Itinerary:
        return self.itineraries[0]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "price": {"total": f"{self.price.total:.2f}", "currency": self.price.currency},
            "itineraries": [i.to_dict() for i in self.itineraries],
            "validatingAirlineCodes": list(self.validating_airline_codes),
            "numberOfBookableSeats": self.bookable_seats,
        }


@dataclass(frozen=True)
class Dictionaries:
    """Code → display-name lookups shipped alongside each search response."""
    carriers: dict[str, str] = field(default_factory=dict)
    aircraft: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Dictionaries":
        data = data or {}
        return cls(
            carriers=dict(data.get("carriers") or {}),
            aircraft=dict(data.get("aircraft") or {}),
        )

    def carrier_name(self, code: str) -> str:
        return self.carriers.get(code, code)

    def aircraft_name(self, code: str) -> str:
        return self.aircraft.get(code, code)

    def to_dict(self) -> dict:
        return {"carriers": dict(self.carriers), "aircraft": dict(self.aircraft)}


@dataclass
class SearchResponse:
    offers: list[FlightOffer] = field(default_factory=list)
    dictionaries: Dictionaries = field(default_factory=Dictionaries)

    @classmethod
    def from_dict(cls, data: dict) -> "SearchResponse":
        if not isinstance(data, dict):
            raise MalformedResponseError("search response is not an object")
        raw_offers = data.get("data") or []
        if not isinstance(raw_offers, list):
            raise MalformedResponseError("search response: 'data' is not a list")
        return cls(
            offers=[FlightOffer.from_dict(o) for o in raw_offers],
            dictionaries=Dictionaries.from_dict(data.get("dictionaries")),
        )

    def find(self, offer_id: str) -> Optional[FlightOffer]:
        return next((o for o in self.offers if o.id == offer_id), None)

    def to_dict(self) -> dict:
        return {
            "data": [o.to_dict() for o in self.offers],
            "dictionaries": self.dictionaries.to_dict(),
        }


# ---------------------------------------------------------------------------
# Search input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SearchCriteria:
    """What the user asked for. Re-created on every search submission."""
    origin: str
    destination: str
    departure_date: str  # YYYY-MM-DD
    return_date: Optional[str] = None
    trip_type: str = ROUND_TRIP
    adults: int = 1
    children: int = 0
    infants: int = 0
    travel_class: Optional[str] = None
    non_stop: Optional[bool] = None
    max_price: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "origin", self.origin.strip().upper())
        object.__setattr__(self, "destination", self.destination.strip().upper())
        if not self.origin or not self.destination or not self.departure_date:
            raise ValidationError("Please fill in all required fields")
        if self.trip_type not in TRIP_TYPES:
            raise ValidationError(f"Unknown trip type: {self.trip_type}")
        if self.adults < 1:
            raise ValidationError("At least one adult is required")
        if self.children < 0 or self.infants < 0:
            raise ValidationError("Passenger counts cannot be negative")
        if self.travel_class and self.travel_class not in TRAVEL_CLASSES:
            raise ValidationError(
                f"Invalid class. Choose: {', '.join(c.lower() for c in TRAVEL_CLASSES)}"
            )
        try:
            depart = date.fromisoformat(self.departure_date)
            ret = date.fromisoformat(self.return_date) if self.return_date else None
        except ValueError:
            raise ValidationError("Dates must be in YYYY-MM-DD format") from None
        if self.trip_type == ROUND_TRIP and ret is None:
            raise ValidationError("Please select a return date for round-trip flights")
        if ret is not None and ret < depart:
            raise ValidationError("Return date cannot be before departure date")

    @property
    def is_round_trip(self) -> bool:
        return self.trip_type == ROUND_TRIP and bool(self.return_date)

    @property
    def total_passengers(self) -> int:
        return self.adults + self.children + self.infants

    def to_dict(self) -> dict:
        return {
            "origin": self.origin,
            "destination": self.destination,
            "departure_date": self.departure_date,
            "return_date": self.return_date,
            "trip_type": self.trip_type,
            "adults": self.adults,
            "children": self.children,
            "infants": self.infants,
            "travel_class": self.travel_class,
            "non_stop": self.non_stop,
            "max_price": self.max_price,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchCriteria":
        return cls(**data)


@dataclass(frozen=True)
class Airport:
    iata_code: str
    name: str
    city: str = ""
    country: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Airport":
        address = data.get("address") or {}
        return cls(
            iata_code=_require(data, "iataCode", "location"),
            name=data.get("name") or "",
            city=address.get("cityName") or "",
            country=address.get("countryName") or "",
        )


@dataclass
class OfferSelection:
    """The offer the user picked, with the context needed to book it."""
    offer: FlightOffer
    dictionaries: Dictionaries
    criteria: SearchCriteria

    def to_dict(self) -> dict:
        return {
            "flight": self.offer.to_dict(),
            "dictionaries": self.dictionaries.to_dict(),
            "search_params": self.criteria.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OfferSelection":
        return cls(
            offer=FlightOffer.from_dict(data["flight"]),
            dictionaries=Dictionaries.from_dict(data.get("dictionaries")),
            criteria=SearchCriteria.from_dict(data["search_params"]),
        )


# ---------------------------------------------------------------------------
# Filter state (owned by the results view)
# ---------------------------------------------------------------------------

@dataclass
class FilterState:
    max_price: Optional[float] = None
    stops: set[int] = field(default_factory=set)
    airlines: set[str] = field(default_factory=set)
    sort_by: str = SORT_PRICE

    def __post_init__(self):
        if self.sort_by not in SORT_KEYS:
            raise ValidationError(f"Unknown sort key: {self.sort_by}")

    @property
    def is_active(self) -> bool:
        return self.max_price is not None or bool(self.stops) or bool(self.airlines)

    def clear(self) -> None:
        """Drop every predicate; the sort key is kept."""
        self.max_price = None
        self.stops = set()
        self.airlines = set()

    def snapshot(self) -> tuple:
        return (
            self.max_price,
            frozenset(self.stops),
            frozenset(self.airlines),
            self.sort_by,
        )


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class User:
    uid: str
    email: str = ""
    display_name: str = ""


@dataclass
class Passenger:
    type: str
    first_name: str = ""
    last_name: str = ""
    date_of_birth: str = ""
    passport_number: str = ""
    nationality: str = ""

    REQUIRED = ("first_name", "last_name", "date_of_birth")

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED if not getattr(self, name).strip()]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "date_of_birth": self.date_of_birth,
            "passport_number": self.passport_number,
            "nationality": self.nationality,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Passenger":
        return cls(**{k: data.get(k) or "" for k in (
            "type", "first_name", "last_name", "date_of_birth",
            "passport_number", "nationality",
        )})


@dataclass
class Booking:
    user_id: str
    user_email: str
    flight_id: str
    origin: str
    destination: str
    departure_date: str
    passengers: list[Passenger]
    total_price: float
    currency: str
    contact_email: str
    contact_phone: str
    flight_data: str  # JSON of the chosen FlightOffer
    booking_reference: str
    created_at: datetime
    updated_at: datetime
    return_date: Optional[str] = None
    status: str = STATUS_PENDING
    payment_status: str = PAYMENT_PENDING
    payment_reference: Optional[str] = None
    payment_attempt_reference: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_round_trip(self) -> bool:
        return bool(self.return_date)

    @property
    def route(self) -> str:
        return f"{self.origin} → {self.destination}"

    def offer(self) -> FlightOffer:
        return FlightOffer.from_dict(json.loads(self.flight_data))
