"""End-to-end tests for the typer CLI with every external service mocked."""

import json

import httpx
import pytest
from rich.console import Console
from typer.testing import CliRunner

from wayfare.booking import BookingManager
from wayfare.cli import app
from wayfare.config import Settings
from wayfare.currency import FALLBACK_RATES, CurrencyConverter
from wayfare.identity import IdentityClient
from wayfare.payments import PAYMENT_SUCCESS, PaymentGateway, PaymentOutcome
from wayfare.providers import AmadeusClient
from wayfare.store import BookingStore
from tests.mock_data import (
    AIRPORTS_RESPONSE,
    AMADEUS_ERROR_RESPONSE,
    ONE_WAY_RESPONSE,
    TOKEN_RESPONSE,
)

runner = CliRunner()


class InstantGateway(PaymentGateway):
    async def collect(self, request):
        return PaymentOutcome(status=PAYMENT_SUCCESS, reference=request.reference)

    async def verify(self, reference):
        return PaymentOutcome(status=PAYMENT_SUCCESS, reference=reference)


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Isolated home dir, canned Amadeus responses and fixed exchange rates."""
    settings = Settings(
        amadeus_api_key="k",
        amadeus_api_secret="s",
        paystack_secret_key="sk",
        firebase_api_key="fb",
        home=tmp_path,
    )
    monkeypatch.setattr("wayfare.cli.get_settings", lambda: settings)
    monkeypatch.setattr("wayfare.cache.CACHE_DIR", tmp_path)
    monkeypatch.setattr("wayfare.cache.CACHE_FILE", tmp_path / "cache.db")

    wide = Console(width=200, no_color=True)
    monkeypatch.setattr("wayfare.cli.console", wide)
    monkeypatch.setattr("wayfare.formatter.console", wide)

    async def fixed_rates(self):
        self.rates = dict(FALLBACK_RATES)
        return self.rates

    monkeypatch.setattr(CurrencyConverter, "refresh", fixed_rates)

    api = {"searches": 0, "status": 200, "body": ONE_WAY_RESPONSE}

    def handler(request):
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(200, json=TOKEN_RESPONSE)
        if request.url.path.endswith("/locations"):
            return httpx.Response(200, json=AIRPORTS_RESPONSE)
        api["searches"] += 1
        return httpx.Response(api["status"], json=api["body"])

    monkeypatch.setattr(
        "wayfare.cli._provider",
        lambda: AmadeusClient("k", "s", transport=httpx.MockTransport(handler)),
    )
    monkeypatch.setattr(
        "wayfare.cli._manager",
        lambda converter: BookingManager(BookingStore(settings.bookings_db), InstantGateway(), converter),
    )
    return settings, api


def sign_in(settings, uid="uid-42", email="ada@example.com"):
    settings.session_file.write_text(json.dumps({"uid": uid, "email": email}))


def test_search_prints_sorted_offers(env):
    result = runner.invoke(app, ["search", "jnb", "lhr", "2099-06-01"])
    assert result.exit_code == 0, result.output
    assert "JNB → LHR" in result.output
    assert "4 flights found" in result.output
    assert result.output.index("$80.00") < result.output.index("$400.00")


def test_search_filters_and_histogram(env):
    result = runner.invoke(app, [
        "search", "JNB", "LHR", "2099-06-01",
        "--max-price", "250", "--stops", "0,1", "--histogram",
    ])
    assert result.exit_code == 0, result.output
    assert "2 flights found" in result.output
    table = result.output.split("flights found")[0]
    assert "VIRGIN ATLANTIC" not in table
    assert "Price distribution" in result.output


def test_search_json(env):
    result = runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01", "--json", "--airline", "ek"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["count"] == 1
    assert data["offers"][0]["id"] == "2"


def test_search_uses_cache(env):
    _, api = env
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    assert api["searches"] == 1
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01", "--no-cache"])
    assert api["searches"] == 2


def test_search_validation_error(env):
    _, api = env
    result = runner.invoke(app, ["search", "JNB", "LHR", "2099-06-10", "--return", "2099-06-01"])
    assert result.exit_code == 1
    assert "before departure" in result.output
    assert api["searches"] == 0


def test_search_provider_error(env):
    _, api = env
    api["status"] = 400
    api["body"] = AMADEUS_ERROR_RESPONSE
    result = runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    assert result.exit_code == 1
    assert "Date/Time is in the past" in result.output


def test_airports(env):
    result = runner.invoke(app, ["airports", "lon"])
    assert result.exit_code == 0, result.output
    assert "LHR" in result.output
    assert "SEN" not in result.output


def test_currency_preference_persists(env):
    result = runner.invoke(app, ["currency", "use", "eur"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["currency", "list"])
    assert "* EUR" in result.output

    result = runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    assert "€73.60" in result.output  # 80 USD


def test_currency_unknown(env):
    result = runner.invoke(app, ["currency", "use", "BTC"])
    assert result.exit_code == 1
    assert "Unsupported currency" in result.output


def test_book_requires_sign_in(env):
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    result = runner.invoke(app, ["book", "2", "--email", "a@b.c", "--phone", "555"])
    assert result.exit_code == 1
    assert "sign in" in result.output


def test_book_unknown_offer(env):
    settings, _ = env
    sign_in(settings)
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    result = runner.invoke(app, ["book", "99", "--email", "a@b.c", "--phone", "555"])
    assert result.exit_code == 1
    assert "not in your last search" in result.output


def test_book_list_cancel(env):
    settings, _ = env
    sign_in(settings)
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])

    result = runner.invoke(
        app,
        ["book", "2", "--email", "ada@example.com", "--phone", "555-0100"],
        input="Ada\nLovelace\n1990-12-10\nZA\nA1234567\n",
    )
    assert result.exit_code == 0, result.output
    assert "Booking confirmed!" in result.output

    (booking,) = BookingStore(settings.bookings_db).list_by_user("uid-42")
    assert booking.passengers[0].passport_number == "A1234567"

    result = runner.invoke(app, ["bookings", "list"])
    assert "Confirmed (1)" in result.output
    assert booking.booking_reference in result.output

    result = runner.invoke(app, ["bookings", "show", booking.id])
    assert "Ada Lovelace" in result.output

    result = runner.invoke(app, ["bookings", "cancel", booking.id, "--yes"])
    assert result.exit_code == 0, result.output
    assert BookingStore(settings.bookings_db).get(booking.id).status == "cancelled"

    result = runner.invoke(app, ["bookings", "cancel", booking.id, "--yes"])
    assert result.exit_code == 1
    assert "Only confirmed" in result.output


def test_book_missing_passenger_details(env):
    settings, _ = env
    sign_in(settings)
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    result = runner.invoke(
        app,
        ["book", "2", "--email", "ada@example.com", "--phone", "555"],
        input="Ada\n \n1990-12-10\n\n\n",
    )
    assert result.exit_code == 1
    assert "passenger 1" in result.output


def test_bookings_show_missing(env):
    settings, _ = env
    sign_in(settings)
    result = runner.invoke(app, ["bookings", "show", "nope"])
    assert result.exit_code == 0
    assert "No booking found" in result.output


def test_whoami(env):
    settings, _ = env
    result = runner.invoke(app, ["auth", "whoami"])
    assert "Not signed in" in result.output
    sign_in(settings)
    result = runner.invoke(app, ["auth", "whoami"])
    assert "ada@example.com" in result.output
    runner.invoke(app, ["auth", "logout"])
    assert not settings.session_file.exists()


def test_cache_clear(env):
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    result = runner.invoke(app, ["cache", "clear"])
    assert result.exit_code == 0
    assert "Cache cleared" in result.output


def book_offer(settings) -> str:
    sign_in(settings)
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    result = runner.invoke(
        app,
        ["book", "2", "--email", "ada@example.com", "--phone", "555-0100"],
        input="Ada\nLovelace\n1990-12-10\nZA\nA1234567\n",
    )
    assert result.exit_code == 0, result.output
    (booking,) = BookingStore(settings.bookings_db).list_by_user("uid-42")
    return booking.id


@pytest.mark.parametrize("command", [["show"], ["cancel", "--yes"], ["pay"]])
def test_booking_commands_require_sign_in(env, command):
    settings, _ = env
    booking_id = book_offer(settings)
    runner.invoke(app, ["auth", "logout"])

    result = runner.invoke(app, ["bookings", command[0], booking_id, *command[1:]])
    assert result.exit_code == 1
    assert "sign in" in result.output
    assert "Ada Lovelace" not in result.output
    assert BookingStore(settings.bookings_db).get(booking_id).status == "confirmed"


def test_other_users_booking_is_not_found(env):
    settings, _ = env
    booking_id = book_offer(settings)
    sign_in(settings, uid="someone-else", email="eve@example.com")

    result = runner.invoke(app, ["bookings", "show", booking_id])
    assert result.exit_code == 0
    assert "No booking found" in result.output
    assert "Ada Lovelace" not in result.output

    result = runner.invoke(app, ["bookings", "cancel", booking_id, "--yes"])
    assert result.exit_code == 1
    assert "No booking found" in result.output

    result = runner.invoke(app, ["bookings", "pay", booking_id])
    assert result.exit_code == 1
    assert "No booking found" in result.output

    assert BookingStore(settings.bookings_db).get(booking_id).status == "confirmed"


def test_login_reports_unreadable_identity_reply(env, monkeypatch):
    settings, _ = env

    def handler(request):
        return httpx.Response(502, text="<html>Bad gateway</html>")

    monkeypatch.setattr(
        "wayfare.cli._identity",
        lambda: IdentityClient("fb", settings.session_file, transport=httpx.MockTransport(handler)),
    )
    for command in ("login", "signup"):
        result = runner.invoke(
            app, ["auth", command, "--email", "ada@example.com", "--password", "secret1"],
        )
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Identity provider returned invalid JSON" in result.output
    assert not settings.session_file.exists()


def test_cache_info(env):
    result = runner.invoke(app, ["cache", "info"])
    assert "No cache file yet" in result.output
    runner.invoke(app, ["search", "JNB", "LHR", "2099-06-01"])
    result = runner.invoke(app, ["cache", "info"])
    assert result.exit_code == 0, result.output
    assert "Entries: 2 (0 expired)" in result.output
