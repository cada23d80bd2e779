"""Tests for the SQLite booking store."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from wayfare.models import Booking, Passenger
from wayfare.store import BookingStore

NOW = datetime(2025, 5, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    return BookingStore(tmp_path / "bookings.db")


def make_booking(user_id: str = "uid-1", **overrides) -> Booking:
    fields = dict(
        user_id=user_id,
        user_email="ada@example.com",
        flight_id="1",
        origin="JNB",
        destination="LHR",
        departure_date="2025-06-01",
        passengers=[Passenger(type="adult", first_name="Ada", last_name="Lovelace", date_of_birth="1990-12-10")],
        total_price=100.0,
        currency="USD",
        contact_email="ada@example.com",
        contact_phone="+27 11 555 0000",
        flight_data=json.dumps({"id": "1"}),
        booking_reference="BKABC123",
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return Booking(**fields)


def test_create_and_get(store):
    booking_id = store.create(make_booking(return_date="2025-06-15"))
    assert booking_id

    loaded = store.get(booking_id)
    assert loaded.id == booking_id
    assert loaded.status == "pending"
    assert loaded.payment_status == "pending"
    assert loaded.return_date == "2025-06-15"
    assert loaded.passengers[0].full_name == "Ada Lovelace"
    assert loaded.created_at == NOW
    assert loaded.payment_reference is None


def test_get_missing(store):
    assert store.get("nope") is None


def test_ids_are_unique(store):
    a = store.create(make_booking())
    b = store.create(make_booking())
    assert a != b


def test_update_in_place(store):
    booking_id = store.create(make_booking())
    later = NOW + timedelta(minutes=5)
    assert store.update(
        booking_id,
        status="confirmed",
        payment_status="completed",
        payment_reference="PAY-1",
        updated_at=later,
    )
    loaded = store.get(booking_id)
    assert loaded.status == "confirmed"
    assert loaded.payment_reference == "PAY-1"
    assert loaded.updated_at == later
    assert loaded.created_at == NOW


def test_update_unknown_record(store):
    assert not store.update("missing", status="cancelled")


def test_update_rejects_immutable_fields(store):
    booking_id = store.create(make_booking())
    with pytest.raises(ValueError, match="total_price"):
        store.update(booking_id, total_price=1.0)


def test_list_by_user(store):
    store.create(make_booking("uid-1"))
    store.create(make_booking("uid-1"))
    store.create(make_booking("uid-2"))
    assert len(store.list_by_user("uid-1")) == 2
    assert len(store.list_by_user("uid-2")) == 1
    assert store.list_by_user("uid-3") == []


def test_list_pending(store):
    pending = store.create(make_booking())
    done = store.create(make_booking())
    store.update(done, status="confirmed", payment_status="completed")
    assert [b.id for b in store.list_pending()] == [pending]
