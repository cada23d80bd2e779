"""Tests for leg summaries used by the results and booking views."""

from wayfare.itinerary import (
    OUTBOUND,
    RETURN,
    carrier_names,
    format_date,
    format_time,
    split_legs,
    stops_label,
)
from wayfare.models import SearchResponse
from tests.mock_data import ONE_WAY_RESPONSE, ROUND_TRIP_RESPONSE


def test_round_trip_splits_into_two_legs():
    response = SearchResponse.from_dict(ROUND_TRIP_RESPONSE)
    outbound, ret = split_legs(response.offers[0], round_trip=True)

    assert outbound.label == OUTBOUND
    assert (outbound.origin, outbound.destination) == ("JNB", "LHR")
    assert outbound.is_direct
    assert outbound.duration_display == "11h 10m"

    assert ret.label == RETURN
    assert (ret.origin, ret.destination) == ("LHR", "JNB")
    assert ret.stops == 1
    assert ret.stops_display == "1 stop"
    assert ret.departure_at == "2025-06-15T08:00:00"
    assert ret.arrival_at == "2025-06-15T23:45:00"
    assert carrier_names(ret, response.dictionaries) == "KLM ROYAL DUTCH AIRLINES"


def test_one_way_has_single_leg():
    response = SearchResponse.from_dict(ONE_WAY_RESPONSE)
    legs = split_legs(response.offers[2], round_trip=False)
    assert len(legs) == 1
    leg = legs[0]
    assert leg.destination == "LHR"
    assert leg.stops == 2
    assert leg.carriers == ("ET", "LH")
    assert carrier_names(leg, response.dictionaries) == "ETHIOPIAN AIRLINES, LH"


def test_return_leg_hidden_for_one_way_search():
    offer = SearchResponse.from_dict(ROUND_TRIP_RESPONSE).offers[0]
    assert len(split_legs(offer, round_trip=False)) == 1


def test_stops_label():
    assert stops_label(0) == "Non-stop"
    assert stops_label(1) == "1 stop"
    assert stops_label(3) == "3 stops"


def test_time_and_date_formatting():
    assert format_time("2025-06-01T19:40:00") == "19:40"
    assert format_date("2025-06-01T19:40:00") == "Jun 1"
    assert format_date("2025-12-25") == "Dec 25"
    assert format_time("not a time") == "not a time"
