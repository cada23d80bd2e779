"""Exchange rates and price formatting in the user's selected currency."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import DEFAULT_EXCHANGE_RATE_URL

logger = logging.getLogger(__name__)

BASE_CURRENCY = "USD"
REFRESH_INTERVAL = 60 * 60  # 1 hour in seconds


@dataclass(frozen=True)
class Currency:
    code: str
    symbol: str
    name: str


CURRENCIES = [
    Currency("USD", "$", "US Dollar"),
    Currency("EUR", "€", "Euro"),
    Currency("GBP", "£", "British Pound"),
    Currency("ZAR", "R", "South African Rand"),
    Currency("NGN", "₦", "Nigerian Naira"),
    Currency("KES", "KSh", "Kenyan Shilling"),
    Currency("JPY", "¥", "Japanese Yen"),
    Currency("CAD", "C$", "Canadian Dollar"),
    Currency("AUD", "A$", "Australian Dollar"),
]

# Used when the rate service cannot be reached.
FALLBACK_RATES = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "ZAR": 18.5,
    "NGN": 1580.0,
    "KES": 129.0,
    "JPY": 149.0,
    "CAD": 1.36,
    "AUD": 1.52,
}


def find_currency(code: str) -> Optional[Currency]:
    code = code.upper()
    return next((c for c in CURRENCIES if c.code == code), None)


class CurrencyConverter:
    """Owns the USD-relative rate table and the selected display currency.

    Until :meth:`refresh` has run the table is empty and :meth:`convert`
    passes amounts through unchanged.
    """

    def __init__(
        self,
        rates: Optional[dict[str, float]] = None,
        selected: str = BASE_CURRENCY,
        rate_url: str = DEFAULT_EXCHANGE_RATE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rates: dict[str, float] = dict(rates or {})
        self.selected: Currency = find_currency(selected) or CURRENCIES[0]
        self.rate_url = rate_url
        self.timeout = timeout
        self._transport = transport
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def currencies(self) -> list[Currency]:
        return list(CURRENCIES)

    def select(self, code: str) -> bool:
        """Switch the display currency. Unknown codes are ignored."""
        currency = find_currency(code)
        if currency is None:
            return False
        self.selected = currency
        return True

    def convert(self, amount: float, from_currency: str = BASE_CURRENCY) -> float:
        from_rate = self.rates.get(from_currency.upper())
        to_rate = self.rates.get(self.selected.code)
        if not from_rate or not to_rate:
            return amount
        return amount / from_rate * to_rate

    def format(self, amount: float, from_currency: str = BASE_CURRENCY) -> str:
        return f"{self.selected.symbol}{self.convert(amount, from_currency):.2f}"

    async def refresh(self) -> dict[str, float]:
        """Reload rates; falls back to the embedded table on any failure."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.rate_url)
                response.raise_for_status()
                rates = response.json()["rates"]
            self.rates = {code.upper(): float(rate) for code, rate in rates.items()}
            logger.debug("Loaded %d exchange rates", len(self.rates))
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning("Exchange rate fetch failed, using fallback rates: %s", e)
            self.rates = dict(FALLBACK_RATES)
        return self.rates

    async def _refresh_forever(self, interval: float) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(interval)

    def start_auto_refresh(self, interval: float = REFRESH_INTERVAL) -> asyncio.Task:
        """Refresh now and then every *interval* seconds on the running loop."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(
                self._refresh_forever(interval)
            )
        return self._refresh_task

    async def stop_auto_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
