"""Payment collection through Paystack.

Paystack's hosted checkout plays the part of the payment widget: we
initialise a transaction, hand the authorisation URL to the payer and wait
for them to report back. That report is trusted as-is; only
:meth:`PaymentGateway.verify` asks the provider what really happened, and only
reconciliation of pending bookings calls it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Optional

import httpx

from .errors import MalformedResponseError, PaymentCancelled, ProviderError

logger = logging.getLogger(__name__)

PAYMENT_SUCCESS = "success"

# Receives the checkout URL, returns True once the payer says they paid.
Confirmer = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class PaymentMetadata:
    booking_id: str
    flight_id: str
    passengers: int


@dataclass(frozen=True)
class PaymentRequest:
    email: str
    amount: int  # minor units (cents, kobo, ...)
    currency: str
    reference: str
    metadata: PaymentMetadata


@dataclass(frozen=True)
class PaymentOutcome:
    status: str
    reference: str
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == PAYMENT_SUCCESS


def to_minor_units(amount: float) -> int:
    """Whole minor units, rounding half a cent up."""
    cents = Decimal(str(amount * 100))
    return int(cents.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class PaymentGateway(ABC):
    """Abstract payment collaborator."""

    @abstractmethod
    async def collect(self, request: PaymentRequest) -> PaymentOutcome:
        """Run the payment flow. Suspends until the payer finishes.

        Raises:
            PaymentCancelled: the payer closed the flow.
            ProviderError: the provider could not be reached or refused.
        """
        ...

    @abstractmethod
    async def verify(self, reference: str) -> PaymentOutcome:
        """Ask the provider for the current state of a transaction."""
        ...


def _error_message(response: httpx.Response) -> str:
    try:
        message = response.json().get("message")
    except (ValueError, AttributeError):
        message = None
    return message or f"Paystack request failed with HTTP {response.status_code}"


class PaystackGateway(PaymentGateway):
    def __init__(
        self,
        secret_key: str,
        confirm: Confirmer,
        base_url: str = "https://api.paystack.co",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.confirm = confirm
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.secret_key}"},
        )

    async def _call(self, method: str, path: str, **kwargs) -> dict:
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                raise ProviderError(f"Could not reach Paystack: {e}") from e
        if response.is_error:
            raise ProviderError(_error_message(response), response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Paystack returned invalid JSON: {e}") from e
        if not body.get("status") or not isinstance(body.get("data"), dict):
            raise ProviderError(body.get("message") or "Paystack rejected the request")
        return body["data"]

    async def collect(self, request: PaymentRequest) -> PaymentOutcome:
        data = await self._call(
            "POST",
            "/transaction/initialize",
            json={
                "email": request.email,
                "amount": request.amount,
                "currency": request.currency,
                "reference": request.reference,
                "metadata": asdict(request.metadata),
            },
        )
        checkout_url = data.get("authorization_url")
        if not checkout_url:
            raise MalformedResponseError("Paystack did not return an authorization_url")

        logger.info("Payment %s initialised, waiting for payer", request.reference)
        if not await self.confirm(checkout_url):
            raise PaymentCancelled("Payment cancelled")
        return PaymentOutcome(status=PAYMENT_SUCCESS, reference=request.reference)

    async def verify(self, reference: str) -> PaymentOutcome:
        data = await self._call("GET", f"/transaction/verify/{reference}")
        return PaymentOutcome(
            status=data.get("status") or "unknown",
            reference=data.get("reference") or reference,
            message=data.get("gateway_response") or "",
        )
