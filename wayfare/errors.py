"""Exception hierarchy shared by the providers, the store and the CLI."""

from typing import Optional


class WayfareError(Exception):
    """Base class for every error raised by wayfare."""


class ProviderError(WayfareError):
    """A network call to an external provider failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MalformedResponseError(ProviderError):
    """A provider answered with a payload we cannot parse."""


class AuthError(ProviderError):
    """Sign-in, sign-up or token exchange was rejected."""


class ValidationError(WayfareError):
    """User input is incomplete or inconsistent. Raised before any network call."""


class PaymentCancelled(WayfareError):
    """The payer closed the payment flow without paying."""


class BookingStateError(WayfareError):
    """A booking transition is not allowed from the record's current state."""
