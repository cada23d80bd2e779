"""Amadeus Self-Service flight-offer search and airport lookup."""

import logging
import time
from typing import Callable, Optional

import httpx

from .base import FlightProvider
from ..errors import MalformedResponseError, ProviderError
from ..models import Airport, SearchCriteria, SearchResponse

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/security/oauth2/token"
FLIGHT_OFFERS_PATH = "/v2/shopping/flight-offers"
LOCATIONS_PATH = "/v1/reference-data/locations"
MAX_OFFERS = 50


def _error_detail(response: httpx.Response) -> str:
    """Pull the first ``errors[].detail`` out of an Amadeus error body."""
    try:
        body = response.json()
        errors = body.get("errors") or []
        if errors and errors[0].get("detail"):
            return errors[0]["detail"]
        if body.get("error_description"):
            return body["error_description"]
    except (ValueError, AttributeError):
        pass
    return f"Amadeus request failed with HTTP {response.status_code}"


class AmadeusClient(FlightProvider):
    """Amadeus API client.

    Holds the OAuth2 client-credentials token together with its expiry and
    fetches a new one transparently once it has expired.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = "https://test.api.amadeus.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[float] = None

    @property
    def name(self) -> str:
        return "amadeus"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    async def _get_access_token(self) -> str:
        if self._access_token and self._token_expiry and self._clock() < self._token_expiry:
            return self._access_token

        async with self._client() as client:
            try:
                response = await client.post(
                    TOKEN_PATH,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.api_key,
                        "client_secret": self.api_secret,
                    },
                )
            except httpx.HTTPError as e:
                raise ProviderError(f"Could not reach Amadeus: {e}") from e
        if response.is_error:
            raise ProviderError(_error_detail(response), response.status_code)

        try:
            body = response.json()
            token = body["access_token"]
            expires_in = float(body.get("expires_in", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedResponseError(f"Bad token response: {e}") from e

        self._access_token = token
        self._token_expiry = self._clock() + expires_in
        logger.debug("Obtained Amadeus access token (expires in %ds)", expires_in)
        return token

    async def _get(self, path: str, params: dict) -> dict:
        token = await self._get_access_token()
        async with self._client() as client:
            try:
                response = await client.get(
                    path,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.HTTPError as e:
                raise ProviderError(f"Could not reach Amadeus: {e}") from e
        if response.is_error:
            raise ProviderError(_error_detail(response), response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Amadeus returned invalid JSON: {e}") from e

    def _build_search_params(self, criteria: SearchCriteria) -> dict:
        params = {
            "originLocationCode": criteria.origin,
            "destinationLocationCode": criteria.destination,
            "departureDate": criteria.departure_date,
            "adults": str(criteria.adults),
            "max": str(MAX_OFFERS),
        }
        if criteria.is_round_trip:
            params["returnDate"] = criteria.return_date
        if criteria.children:
            params["children"] = str(criteria.children)
        if criteria.infants:
            params["infants"] = str(criteria.infants)
        if criteria.travel_class:
            params["travelClass"] = criteria.travel_class
        if criteria.non_stop is not None:
            params["nonStop"] = "true" if criteria.non_stop else "false"
        if criteria.max_price:
            params["maxPrice"] = str(int(criteria.max_price))
        return params

    async def search(self, criteria: SearchCriteria) -> SearchResponse:
        params = self._build_search_params(criteria)
        logger.info(
            "Searching %s→%s on %s (%d pax)",
            criteria.origin, criteria.destination, criteria.departure_date,
            criteria.total_passengers,
        )
        data = await self._get(FLIGHT_OFFERS_PATH, params)
        response = SearchResponse.from_dict(data)
        logger.debug("Amadeus returned %d offers", len(response.offers))
        return response

    async def search_airports(self, keyword: str) -> list[Airport]:
        data = await self._get(LOCATIONS_PATH, {"subType": "AIRPORT", "keyword": keyword})
        locations = (data.get("data") or []) if isinstance(data, dict) else []
        return [Airport.from_dict(loc) for loc in locations]
