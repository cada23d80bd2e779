"""Settings loaded from the environment (and a local .env file)."""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_AMADEUS_BASE_URL = "https://test.api.amadeus.com"
DEFAULT_PAYSTACK_BASE_URL = "https://api.paystack.co"
DEFAULT_EXCHANGE_RATE_URL = "https://api.exchangerate-api.com/v4/latest/USD"


@dataclass(frozen=True)
class Settings:
    """Credentials and endpoints for the search, payment and identity providers."""
    amadeus_api_key: str = ""
    amadeus_api_secret: str = ""
    amadeus_base_url: str = DEFAULT_AMADEUS_BASE_URL
    paystack_secret_key: str = ""
    paystack_base_url: str = DEFAULT_PAYSTACK_BASE_URL
    firebase_api_key: str = ""
    exchange_rate_url: str = DEFAULT_EXCHANGE_RATE_URL
    home: Path = Path.home() / ".wayfare"
    default_currency: str = "USD"
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "Settings":
        home = os.getenv("WAYFARE_HOME")
        return cls(
            amadeus_api_key=os.getenv("AMADEUS_API_KEY", ""),
            amadeus_api_secret=os.getenv("AMADEUS_API_SECRET", ""),
            amadeus_base_url=os.getenv("AMADEUS_BASE_URL", DEFAULT_AMADEUS_BASE_URL).rstrip("/"),
            paystack_secret_key=os.getenv("PAYSTACK_SECRET_KEY", ""),
            paystack_base_url=os.getenv("PAYSTACK_BASE_URL", DEFAULT_PAYSTACK_BASE_URL).rstrip("/"),
            firebase_api_key=os.getenv("FIREBASE_API_KEY", ""),
            exchange_rate_url=os.getenv("EXCHANGE_RATE_URL", DEFAULT_EXCHANGE_RATE_URL),
            home=Path(home).expanduser() if home else Path.home() / ".wayfare",
            default_currency=os.getenv("WAYFARE_CURRENCY", "USD").upper(),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
        )

    @property
    def bookings_db(self) -> Path:
        return self.home / "bookings.db"

    @property
    def session_file(self) -> Path:
        return self.home / "session.json"

    def is_amadeus_configured(self) -> bool:
        return bool(self.amadeus_api_key and self.amadeus_api_secret)

    def is_paystack_configured(self) -> bool:
        return bool(self.paystack_secret_key)

    def is_identity_configured(self) -> bool:
        return bool(self.firebase_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Return settings read once from the environment."""
    return Settings.from_env()
