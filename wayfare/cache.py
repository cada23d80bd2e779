"""SQLite cache for search responses, the selected offer and preferences.

Failures never reach the caller: a broken cache file means a cache miss and
a warning in the log.
"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .config import get_settings
from .models import SearchCriteria

logger = logging.getLogger(__name__)

CACHE_DIR = get_settings().home
CACHE_FILE = CACHE_DIR / "cache.db"
DEFAULT_TTL = 15 * 60  # offers go stale quickly
SELECTION_TTL = 24 * 60 * 60
PREFERENCE_TTL = 10 * 365 * 24 * 60 * 60

LAST_SEARCH_KEY = "last_search"
CURRENCY_PREF_KEY = "pref_currency"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS entries (
        key TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        stored_at REAL NOT NULL,
        expires_at REAL NOT NULL
    )
"""


@contextmanager
def _connect() -> Iterator[sqlite3.Connection]:
    CACHE_DIR.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(CACHE_FILE)
    try:
        conn.execute(_SCHEMA)
        yield conn
        conn.commit()
    finally:
        conn.close()


def get(key: str) -> Optional[Any]:
    """Return the live entry under ``key``, or None."""
    try:
        with _connect() as conn:
            row = conn.execute(
                "SELECT payload FROM entries WHERE key = ? AND expires_at >= ?",
                (key, time.time()),
            ).fetchone()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Could not read cache entry %s: %s", key, e)
        return None
    if row is None:
        return None
    try:
        return json.loads(row[0])
    except ValueError as e:
        logger.warning("Discarding corrupt cache entry %s: %s", key, e)
        return None


def set(key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
    try:
        payload = json.dumps(value)
    except (TypeError, ValueError) as e:
        logger.warning("Not caching %s: %s", key, e)
        return
    now = time.time()
    try:
        with _connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO entries (key, payload, stored_at, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (key, payload, now, now + ttl),
            )
    except (sqlite3.Error, OSError) as e:
        logger.warning("Could not write cache entry %s: %s", key, e)


def _delete(where: str = "", params: tuple = ()) -> int:
    try:
        with _connect() as conn:
            return conn.execute(f"DELETE FROM entries {where}", params).rowcount
    except (sqlite3.Error, OSError) as e:
        logger.warning("Could not clear cache: %s", e)
        return 0


def clear_expired() -> int:
    """Drop stale entries. Returns how many were removed."""
    return _delete("WHERE expires_at < ?", (time.time(),))


def clear_all() -> int:
    return _delete()


def stats() -> dict:
    """Entry counts for ``wayfare cache info``."""
    try:
        with _connect() as conn:
            total, stale = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(expires_at < ?), 0) FROM entries",
                (time.time(),),
            ).fetchone()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Could not read cache stats: %s", e)
        return {"entries": 0, "expired": 0}
    return {"entries": total, "expired": stale}


def make_key(provider: str, criteria: SearchCriteria) -> str:
    """One key per distinct search, so every criteria field takes part."""
    parts = [
        provider,
        criteria.origin,
        criteria.destination,
        criteria.departure_date,
        criteria.return_date if criteria.is_round_trip else "-",
        f"{criteria.adults}-{criteria.children}-{criteria.infants}",
        criteria.travel_class or "ANY",
        {True: "direct", False: "any", None: "-"}[criteria.non_stop],
        str(criteria.max_price or "-"),
    ]
    return "_".join(parts)
