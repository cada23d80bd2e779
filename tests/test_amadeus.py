"""Tests for the Amadeus provider, with the HTTP layer mocked out."""

import asyncio
import json

import httpx
import pytest

from wayfare.errors import MalformedResponseError, ProviderError
from wayfare.models import ONE_WAY, SearchCriteria
from wayfare.providers.amadeus import AmadeusClient
from tests.mock_data import (
    AIRPORTS_RESPONSE,
    AMADEUS_ERROR_RESPONSE,
    MALFORMED_SEARCH_RESPONSE,
    ONE_WAY_RESPONSE,
    TOKEN_ERROR_RESPONSE,
    TOKEN_RESPONSE,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class AmadeusStub:
    """Records requests and replays canned Amadeus responses."""

    def __init__(self, search_body=ONE_WAY_RESPONSE, search_status=200):
        self.requests: list[httpx.Request] = []
        self.search_body = search_body
        self.search_status = search_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/security/oauth2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        if request.url.path == "/v2/shopping/flight-offers":
            return httpx.Response(self.search_status, json=self.search_body)
        if request.url.path == "/v1/reference-data/locations":
            return httpx.Response(200, json=AIRPORTS_RESPONSE)
        return httpx.Response(404, json={})

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def make_client(stub: AmadeusStub, clock=None) -> AmadeusClient:
    return AmadeusClient(
        "test-key",
        "test-secret",
        transport=httpx.MockTransport(stub),
        clock=clock or FakeClock(),
    )


def test_search_one_way_params():
    stub = AmadeusStub()
    client = make_client(stub)
    criteria = SearchCriteria("JNB", "LHR", "2025-06-01", trip_type=ONE_WAY, adults=2)

    response = asyncio.run(client.search(criteria))

    assert len(response.offers) == 4
    token_req, search_req = stub.requests
    assert token_req.method == "POST"
    assert b"grant_type=client_credentials" in token_req.content
    assert b"client_id=test-key" in token_req.content

    assert search_req.headers["Authorization"] == "Bearer tok-123"
    params = dict(search_req.url.params)
    assert params == {
        "originLocationCode": "JNB",
        "destinationLocationCode": "LHR",
        "departureDate": "2025-06-01",
        "adults": "2",
        "max": "50",
    }


def test_search_round_trip_optional_params():
    stub = AmadeusStub()
    client = make_client(stub)
    criteria = SearchCriteria(
        "JNB", "LHR", "2025-06-01", "2025-06-15",
        adults=1, children=2, infants=1, travel_class="BUSINESS",
        non_stop=False, max_price=1500.0,
    )
    asyncio.run(client.search(criteria))
    params = dict(stub.requests[-1].url.params)
    assert params["returnDate"] == "2025-06-15"
    assert params["children"] == "2"
    assert params["infants"] == "1"
    assert params["travelClass"] == "BUSINESS"
    assert params["nonStop"] == "false"
    assert params["maxPrice"] == "1500"


def test_token_cached_until_expiry():
    stub = AmadeusStub()
    clock = FakeClock()
    client = make_client(stub, clock)
    criteria = SearchCriteria("JNB", "LHR", "2025-06-01", trip_type=ONE_WAY)

    async def run():
        await client.search(criteria)
        clock.now += 600
        await client.search(criteria)
        clock.now += 1800  # past expires_in
        await client.search(criteria)

    asyncio.run(run())
    assert stub.paths().count("/v1/security/oauth2/token") == 2
    assert stub.paths().count("/v2/shopping/flight-offers") == 3


def test_provider_error_uses_detail():
    stub = AmadeusStub(search_body=AMADEUS_ERROR_RESPONSE, search_status=400)
    client = make_client(stub)
    criteria = SearchCriteria("JNB", "LHR", "2025-06-01", trip_type=ONE_WAY)
    with pytest.raises(ProviderError) as exc:
        asyncio.run(client.search(criteria))
    assert exc.value.message == "Date/Time is in the past"
    assert exc.value.status_code == 400


def test_token_error():
    def handler(request):
        return httpx.Response(401, json=TOKEN_ERROR_RESPONSE)

    client = AmadeusClient("bad", "bad", transport=httpx.MockTransport(handler))
    criteria = SearchCriteria("JNB", "LHR", "2025-06-01", trip_type=ONE_WAY)
    with pytest.raises(ProviderError, match="Client credentials are invalid"):
        asyncio.run(client.search(criteria))


def test_network_failure_is_provider_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    client = AmadeusClient("k", "s", transport=httpx.MockTransport(handler))
    criteria = SearchCriteria("JNB", "LHR", "2025-06-01", trip_type=ONE_WAY)
    with pytest.raises(ProviderError, match="Could not reach Amadeus"):
        asyncio.run(client.search(criteria))


def test_malformed_offer_rejected():
    stub = AmadeusStub(search_body=MALFORMED_SEARCH_RESPONSE)
    client = make_client(stub)
    criteria = SearchCriteria("JNB", "LHR", "2025-06-01", trip_type=ONE_WAY)
    with pytest.raises(MalformedResponseError):
        asyncio.run(client.search(criteria))


def test_search_airports():
    stub = AmadeusStub()
    client = make_client(stub)
    airports = asyncio.run(client.search_airports("lon"))
    assert [a.iata_code for a in airports] == ["LHR", "LGW", "STN", "LTN", "LCY", "SEN"]
    params = dict(stub.requests[-1].url.params)
    assert params == {"subType": "AIRPORT", "keyword": "lon"}


def test_search_response_survives_serialization():
    stub = AmadeusStub()
    client = make_client(stub)
    response = asyncio.run(client.search(SearchCriteria("JNB", "LHR", "2025-06-01", trip_type=ONE_WAY)))
    # What the CLI caches must be readable again.
    cached = json.loads(json.dumps(response.to_dict()))
    assert cached["data"][0]["price"]["total"] == "100.00"
