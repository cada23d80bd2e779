"""Booking persistence in a local SQLite document table.

Records are keyed by a generated document id and never deleted by the
application; they are created once and updated in place.
"""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .models import Booking, Passenger

logger = logging.getLogger(__name__)

# Columns that can be changed after creation.
UPDATABLE_FIELDS = {
    "status",
    "payment_status",
    "payment_reference",
    "payment_attempt_reference",
    "updated_at",
}


def _to_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _from_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class BookingStore:
    """CRUD over the ``bookings`` table plus query-by-user."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _get_conn(self) -> sqlite3.Connection:
        """Return an open SQLite connection, creating the schema if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("""
            CREATE TABLE IF NOT EXISTS bookings (
                id                         TEXT PRIMARY KEY,
                user_id                    TEXT NOT NULL,
                user_email                 TEXT NOT NULL,
                flight_id                  TEXT NOT NULL,
                origin                     TEXT NOT NULL,
                destination                TEXT NOT NULL,
                departure_date             TEXT NOT NULL,
                return_date                TEXT,
                passengers                 TEXT NOT NULL,   -- JSON list
                total_price                REAL NOT NULL,
                currency                   TEXT NOT NULL,
                contact_email              TEXT NOT NULL,
                contact_phone              TEXT NOT NULL,
                payment_status             TEXT NOT NULL,
                payment_reference          TEXT,
                payment_attempt_reference  TEXT,
                flight_data                TEXT NOT NULL,   -- JSON FlightOffer
                booking_reference          TEXT NOT NULL,
                status                     TEXT NOT NULL,
                created_at                 TEXT NOT NULL,
                updated_at                 TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_bookings_user ON bookings(user_id)")
        conn.commit()
        return conn

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Booking:
        data = dict(row)
        data["passengers"] = [Passenger.from_dict(p) for p in json.loads(data["passengers"])]
        data["created_at"] = _from_ts(data["created_at"])
        data["updated_at"] = _from_ts(data["updated_at"])
        return Booking(**data)

    def create(self, booking: Booking) -> str:
        """Insert a new record and return its generated id."""
        booking_id = uuid.uuid4().hex[:20]
        conn = self._get_conn()
        conn.execute(
            """
            INSERT INTO bookings (
                id, user_id, user_email, flight_id, origin, destination,
                departure_date, return_date, passengers, total_price, currency,
                contact_email, contact_phone, payment_status, payment_reference,
                payment_attempt_reference, flight_data, booking_reference,
                status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                booking_id,
                booking.user_id,
                booking.user_email,
                booking.flight_id,
                booking.origin,
                booking.destination,
                booking.departure_date,
                booking.return_date,
                json.dumps([p.to_dict() for p in booking.passengers]),
                booking.total_price,
                booking.currency,
                booking.contact_email,
                booking.contact_phone,
                booking.payment_status,
                booking.payment_reference,
                booking.payment_attempt_reference,
                booking.flight_data,
                booking.booking_reference,
                booking.status,
                _to_ts(booking.created_at),
                _to_ts(booking.updated_at),
            ),
        )
        conn.commit()
        conn.close()
        booking.id = booking_id
        logger.debug("Stored booking %s", booking_id)
        return booking_id

    def get(self, booking_id: str) -> Optional[Booking]:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        conn.close()
        return self._from_row(row) if row else None

    def update(self, booking_id: str, **fields: Any) -> bool:
        """Update mutable fields in place. Returns True if a row changed."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update booking fields: {', '.join(sorted(unknown))}")
        if not fields:
            return False
        values = {
            k: _to_ts(v) if isinstance(v, datetime) else v
            for k, v in fields.items()
        }
        assignments = ", ".join(f"{k} = ?" for k in values)
        conn = self._get_conn()
        cur = conn.execute(
            f"UPDATE bookings SET {assignments} WHERE id = ?",
            (*values.values(), booking_id),
        )
        conn.commit()
        conn.close()
        return cur.rowcount > 0

    def list_by_user(self, user_id: str) -> list[Booking]:
        """All records for *user_id*, in no particular order."""
        conn = self._get_conn()
        rows = conn.execute("SELECT * FROM bookings WHERE user_id = ?", (user_id,)).fetchall()
        conn.close()
        return [self._from_row(r) for r in rows]

    def list_pending(self) -> list[Booking]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT * FROM bookings WHERE status = 'pending' AND payment_status = 'pending'"
        ).fetchall()
        conn.close()
        return [self._from_row(r) for r in rows]
