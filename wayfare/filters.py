"""Filtering, sorting and price-distribution for a set of flight offers."""

from dataclasses import dataclass
from typing import Optional

from .currency import CurrencyConverter
from .models import FilterState, FlightOffer, SearchResponse, SORT_DURATION
from .normalize import (
    available_airlines,
    available_stops,
    offer_duration,
    offer_stops,
    price_bounds,
)

HISTOGRAM_BUCKETS = 10


@dataclass(frozen=True)
class PriceBucket:
    lower: float
    label: str
    count: int


def apply_filters(offers: list[FlightOffer], state: FilterState) -> list[FlightOffer]:
    """Apply price ceiling, stop and carrier predicates, then sort.

    Empty stop / carrier sets mean "no filter". Sorting is stable, so offers
    with equal keys keep their input order.
    """
    filtered = list(offers)

    if state.max_price is not None:
        filtered = [o for o in filtered if o.price.total <= state.max_price]

    if state.stops:
        filtered = [o for o in filtered if offer_stops(o) in state.stops]

    if state.airlines:
        filtered = [
            o for o in filtered
            if any(code in state.airlines for code in o.validating_airline_codes)
        ]

    if state.sort_by == SORT_DURATION:
        filtered.sort(key=offer_duration)
    else:
        filtered.sort(key=lambda o: o.price.total)
    return filtered


def price_histogram(
    offers: list[FlightOffer],
    converter: Optional[CurrencyConverter] = None,
) -> list[PriceBucket]:
    """Bucket offers into ten equal-width price ranges between min and max.

    Labels are the rounded lower bound formatted in the selected currency.
    Empty buckets are left out.
    """
    bounds = price_bounds(offers)
    if bounds is None:
        return []
    low, high = bounds
    converter = converter or CurrencyConverter()
    currency = offers[0].price.currency

    width = (high - low) / HISTOGRAM_BUCKETS
    counts: dict[int, int] = {}
    for offer in offers:
        if width == 0:
            index = 0
        else:
            index = min(int((offer.price.total - low) / width), HISTOGRAM_BUCKETS - 1)
        counts[index] = counts.get(index, 0) + 1

    buckets = []
    for index in sorted(counts):
        lower = low + index * width
        buckets.append(PriceBucket(
            lower=lower,
            label=converter.format(round(lower), currency),
            count=counts[index],
        ))
    return buckets


class ResultsView:
    """Search results plus the user's filter state.

    ``offers`` and ``histogram`` are recomputed whenever the response or the
    filter state changes; callers just mutate ``state`` or assign ``response``.
    """

    def __init__(
        self,
        response: SearchResponse,
        state: Optional[FilterState] = None,
        converter: Optional[CurrencyConverter] = None,
    ):
        self.response = response
        self.state = state or FilterState()
        self.converter = converter or CurrencyConverter()
        self._offers_key: Optional[tuple] = None
        self._offers: list[FlightOffer] = []
        self._histogram_key: Optional[tuple] = None
        self._histogram: list[PriceBucket] = []

    @property
    def offers(self) -> list[FlightOffer]:
        key = (tuple(map(id, self.response.offers)), self.state.snapshot())
        if key != self._offers_key:
            self._offers = apply_filters(self.response.offers, self.state)
            self._offers_key = key
        return self._offers

    @property
    def histogram(self) -> list[PriceBucket]:
        offers = self.offers
        key = (self._offers_key, self.converter.selected.code, tuple(sorted(self.converter.rates.items())))
        if key != self._histogram_key:
            self._histogram = price_histogram(offers, self.converter)
            self._histogram_key = key
        return self._histogram

    @property
    def airlines(self) -> list[tuple[str, str]]:
        return available_airlines(self.response)

    @property
    def stops(self) -> list[int]:
        return available_stops(self.response.offers)

    @property
    def price_bounds(self) -> Optional[tuple[float, float]]:
        return price_bounds(self.response.offers)
