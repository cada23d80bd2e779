"""Booking lifecycle: create, pay, resolve, cancel, list and reconcile.

State per record is (status, payment_status):

    pending/pending  --payment success-->  confirmed/completed
    pending/pending  --payment cancelled-> pending/pending (retry allowed)
    confirmed/*      --cancel, future departure-->  cancelled/*

The steps of :meth:`BookingManager.book` run strictly in order and nothing is
rolled back when one fails, so a record can be left pending/pending. Each
payment attempt stores its reference on the record first, which is what
:meth:`BookingManager.reconcile_pending` later checks with the provider.
"""

import json
import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional

from .currency import CurrencyConverter
from .errors import BookingStateError, PaymentCancelled, ProviderError, ValidationError
from .models import (
    ADULT,
    CHILD,
    INFANT,
    PAYMENT_COMPLETED,
    PAYMENT_PENDING,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Booking,
    OfferSelection,
    Passenger,
    User,
)
from .payments import PaymentGateway, PaymentMetadata, PaymentOutcome, PaymentRequest, to_minor_units
from .store import BookingStore

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "BK"
REFERENCE_LENGTH = 6
REFERENCE_CHARS = string.ascii_uppercase + string.digits

_rng = random.SystemRandom()


def generate_booking_reference() -> str:
    """Short customer-facing code, e.g. ``BK7Q2XZA``."""
    return REFERENCE_PREFIX + "".join(_rng.choice(REFERENCE_CHARS) for _ in range(REFERENCE_LENGTH))


def blank_passengers(adults: int, children: int = 0, infants: int = 0) -> list[Passenger]:
    """Empty passenger forms: adults first, then children, then infants."""
    return (
        [Passenger(type=ADULT) for _ in range(adults)]
        + [Passenger(type=CHILD) for _ in range(children)]
        + [Passenger(type=INFANT) for _ in range(infants)]
    )


def validate_contact_and_passengers(
    contact_email: str, contact_phone: str, passengers: list[Passenger]
) -> None:
    if not contact_email.strip() or not contact_phone.strip():
        raise ValidationError("Please provide contact email and phone number")
    for i, passenger in enumerate(passengers, start=1):
        if passenger.missing_fields():
            raise ValidationError(f"Please complete all required fields for passenger {i}")


@dataclass
class BookingResult:
    booking_id: str
    paid: bool
    payment_reference: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingManager:
    """Drives bookings through the store and the payment gateway."""

    def __init__(
        self,
        store: BookingStore,
        payments: PaymentGateway,
        converter: CurrencyConverter,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.payments = payments
        self.converter = converter
        self.clock = clock

    # -- create -----------------------------------------------------------

    def create_booking(
        self,
        user: User,
        selection: OfferSelection,
        contact_email: str,
        contact_phone: str,
        passengers: list[Passenger],
    ) -> str:
        """Validate and persist a pending booking. Returns the record id."""
        validate_contact_and_passengers(contact_email, contact_phone, passengers)

        criteria = selection.criteria
        if len(passengers) != criteria.total_passengers:
            raise ValidationError(
                f"Expected {criteria.total_passengers} passengers, got {len(passengers)}"
            )
        expected_legs = 2 if criteria.is_round_trip else 1
        if len(selection.offer.itineraries) != expected_legs:
            raise ValidationError(
                f"Selected offer has {len(selection.offer.itineraries)} itineraries, "
                f"expected {expected_legs} for this trip"
            )

        offer = selection.offer
        now = self.clock()
        booking = Booking(
            user_id=user.uid,
            user_email=user.email,
            flight_id=offer.id,
            origin=criteria.origin,
            destination=criteria.destination,
            departure_date=criteria.departure_date,
            return_date=criteria.return_date if criteria.is_round_trip else None,
            passengers=passengers,
            total_price=self.converter.convert(offer.price.total, offer.price.currency),
            currency=self.converter.selected.code,
            contact_email=contact_email.strip(),
            contact_phone=contact_phone.strip(),
            flight_data=json.dumps(offer.to_dict()),
            booking_reference=generate_booking_reference(),
            created_at=now,
            updated_at=now,
            status=STATUS_PENDING,
            payment_status=PAYMENT_PENDING,
        )
        booking_id = self.store.create(booking)
        logger.info("Booking %s (%s) created for %s", booking_id, booking.booking_reference, booking.route)
        return booking_id

    # -- payment ----------------------------------------------------------

    def _require(self, booking_id: str) -> Booking:
        booking = self.store.get(booking_id)
        if booking is None:
            raise BookingStateError(f"Booking {booking_id} not found")
        return booking

    async def initiate_payment(self, booking_id: str) -> PaymentOutcome:
        """Hand the booking's amount to the gateway and wait for the payer."""
        booking = self._require(booking_id)
        if booking.status != STATUS_PENDING or booking.payment_status != PAYMENT_PENDING:
            raise BookingStateError(f"Booking {booking_id} is not awaiting payment")

        reference = f"PAY-{int(time.time() * 1000)}-{booking_id}"
        request = PaymentRequest(
            email=booking.contact_email,
            amount=to_minor_units(booking.total_price),
            currency=booking.currency,
            reference=reference,
            metadata=PaymentMetadata(
                booking_id=booking_id,
                flight_id=booking.flight_id,
                passengers=len(booking.passengers),
            ),
        )
        self.store.update(booking_id, payment_attempt_reference=reference, updated_at=self.clock())
        logger.info("Payment %s started for booking %s", reference, booking_id)
        return await self.payments.collect(request)

    def resolve_payment_success(self, booking_id: str, payment_reference: str) -> None:
        # Client-reported success is trusted; nothing is verified here.
        self.store.update(
            booking_id,
            payment_status=PAYMENT_COMPLETED,
            status=STATUS_CONFIRMED,
            payment_reference=payment_reference,
            updated_at=self.clock(),
        )
        logger.info("Booking %s confirmed (payment %s)", booking_id, payment_reference)

    def resolve_payment_cancelled(self, booking_id: str) -> None:
        logger.info("Payment for booking %s cancelled; booking stays pending", booking_id)

    async def pay(self, booking_id: str) -> BookingResult:
        """Initiate payment for an existing pending booking and resolve it."""
        try:
            outcome = await self.initiate_payment(booking_id)
        except PaymentCancelled:
            self.resolve_payment_cancelled(booking_id)
            return BookingResult(booking_id=booking_id, paid=False)

        if not outcome.succeeded:
            logger.warning("Payment %s ended with status %s", outcome.reference, outcome.status)
            return BookingResult(booking_id=booking_id, paid=False)

        self.resolve_payment_success(booking_id, outcome.reference)
        return BookingResult(booking_id=booking_id, paid=True, payment_reference=outcome.reference)

    async def book(
        self,
        user: User,
        selection: OfferSelection,
        contact_email: str,
        contact_phone: str,
        passengers: list[Passenger],
    ) -> BookingResult:
        """create → initiate payment → resolve, each step awaiting the last."""
        booking_id = self.create_booking(user, selection, contact_email, contact_phone, passengers)
        return await self.pay(booking_id)

    # -- after confirmation -----------------------------------------------

    def can_cancel(self, booking: Booking, today: Optional[date] = None) -> bool:
        today = today or self.clock().date()
        return (
            booking.status == STATUS_CONFIRMED
            and date.fromisoformat(booking.departure_date) > today
        )

    def cancel_booking(self, booking_id: str) -> None:
        """Cancel a confirmed booking whose flight has not departed.

        No refund is orchestrated.
        """
        booking = self._require(booking_id)
        if booking.status != STATUS_CONFIRMED:
            raise BookingStateError(
                f"Only confirmed bookings can be cancelled (this one is {booking.status})"
            )
        if not self.can_cancel(booking):
            raise BookingStateError("This flight has already departed and cannot be cancelled")
        self.store.update(booking_id, status=STATUS_CANCELLED, updated_at=self.clock())
        logger.info("Booking %s cancelled", booking_id)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self.store.get(booking_id)

    def list_bookings(self, user_id: str, status: Optional[str] = None) -> list[Booking]:
        """User's bookings, newest first."""
        bookings = self.store.list_by_user(user_id)
        bookings.sort(key=lambda b: b.created_at, reverse=True)
        if status:
            bookings = [b for b in bookings if b.status == status]
        return bookings

    # -- reconciliation ---------------------------------------------------

    async def reconcile_pending(self, user_id: Optional[str] = None) -> list[str]:
        """Confirm pending bookings whose last payment attempt actually went
        through at the provider. Returns the ids that were confirmed.

        Safe to run repeatedly: only pending/pending records with an attempt
        reference are looked at.
        """
        if user_id:
            candidates = self.list_bookings(user_id, status=STATUS_PENDING)
        else:
            candidates = self.store.list_pending()

        confirmed = []
        for booking in candidates:
            if booking.payment_status != PAYMENT_PENDING or not booking.payment_attempt_reference:
                continue
            try:
                outcome = await self.payments.verify(booking.payment_attempt_reference)
            except ProviderError as e:
                # e.g. initialize failed, so the provider never saw this reference
                logger.warning(
                    "Could not verify payment %s for booking %s: %s",
                    booking.payment_attempt_reference, booking.id, e.message,
                )
                continue
            if outcome.succeeded:
                self.resolve_payment_success(booking.id, outcome.reference)
                confirmed.append(booking.id)
            else:
                logger.debug("Booking %s still unpaid (%s)", booking.id, outcome.status)
        return confirmed
