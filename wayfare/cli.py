"""wayfare CLI - search, filter and book flights."""

import asyncio
import json
import logging
from typing import Annotated, Any, Coroutine, Optional

import typer

from . import cache
from .autocomplete import AirportAutocomplete
from .booking import BookingManager, blank_passengers
from .config import get_settings
from .currency import CURRENCIES, CurrencyConverter
from .errors import BookingStateError, ProviderError, ValidationError
from .filters import ResultsView
from .formatter import (
    console,
    offers_to_json,
    print_airports,
    print_booking_detail,
    print_bookings,
    print_facets,
    print_histogram,
    print_offers,
    print_status_counts,
)
from .identity import IdentityClient
from .itinerary import format_date, split_legs
from .models import (
    BOOKING_STATUSES,
    ONE_WAY,
    ROUND_TRIP,
    SORT_KEYS,
    Booking,
    FilterState,
    OfferSelection,
    Passenger,
    SearchCriteria,
    SearchResponse,
    User,
)
from .payments import PaystackGateway
from .providers import AmadeusClient
from .store import BookingStore

app = typer.Typer(
    name="wayfare",
    help="✈ Search, filter and book flights from your terminal",
    rich_markup_mode="rich",
)

bookings_app = typer.Typer(help="Manage your bookings")
app.add_typer(bookings_app, name="bookings")

currency_app = typer.Typer(help="Display currency")
app.add_typer(currency_app, name="currency")

auth_app = typer.Typer(help="Sign in / out")
app.add_typer(auth_app, name="auth")

cache_app = typer.Typer(help="Cache management commands")
app.add_typer(cache_app, name="cache")

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# wiring
# ---------------------------------------------------------------------------

def _run(coro: Coroutine) -> Any:
    """Run a coroutine; provider failures become a message and exit code 1."""
    try:
        return asyncio.run(coro)
    except ProviderError as e:
        console.print(f"[red]⚠ {e.message}[/red]")
        console.print("[dim]Please try again.[/dim]")
        raise typer.Exit(1)


def _load_converter(refresh: bool = True) -> CurrencyConverter:
    settings = get_settings()
    selected = cache.get(cache.CURRENCY_PREF_KEY) or settings.default_currency
    converter = CurrencyConverter(
        selected=selected,
        rate_url=settings.exchange_rate_url,
        timeout=settings.request_timeout,
    )
    if refresh:
        asyncio.run(converter.refresh())
    return converter


def _provider() -> AmadeusClient:
    settings = get_settings()
    if not settings.is_amadeus_configured():
        console.print("[red]Set AMADEUS_API_KEY and AMADEUS_API_SECRET to search flights.[/red]")
        raise typer.Exit(1)
    return AmadeusClient(
        settings.amadeus_api_key,
        settings.amadeus_api_secret,
        base_url=settings.amadeus_base_url,
        timeout=settings.request_timeout,
    )


def _identity() -> IdentityClient:
    settings = get_settings()
    return IdentityClient(
        settings.firebase_api_key,
        settings.session_file,
        timeout=settings.request_timeout,
    )


def _require_user() -> User:
    user = _identity().current_user
    if user is None:
        console.print("[yellow]Please sign in first: wayfare auth login[/yellow]")
        raise typer.Exit(1)
    return user


async def _confirm_in_browser(checkout_url: str) -> bool:
    console.print(f"\nComplete your payment at:\n[link={checkout_url}]{checkout_url}[/link]\n")
    typer.launch(checkout_url)
    return await asyncio.to_thread(typer.confirm, "Did the payment go through?", default=False)


def _manager(converter: CurrencyConverter) -> BookingManager:
    settings = get_settings()
    gateway = PaystackGateway(
        settings.paystack_secret_key,
        confirm=_confirm_in_browser,
        base_url=settings.paystack_base_url,
        timeout=settings.request_timeout,
    )
    return BookingManager(BookingStore(settings.bookings_db), gateway, converter)


def _parse_stops(value: Optional[str]) -> set[int]:
    if not value:
        return set()
    try:
        return {int(s) for s in value.split(",") if s.strip()}
    except ValueError:
        console.print(f"[red]Invalid --stops value: {value}. Use e.g. 0,1[/red]")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------

@app.command()
def search(
    origin: Annotated[str, typer.Argument(help="Origin airport code (e.g. JNB)")],
    destination: Annotated[str, typer.Argument(help="Destination airport code (e.g. LHR)")],
    departure_date: Annotated[str, typer.Argument(help="Departure date (YYYY-MM-DD)")],
    return_date: Annotated[Optional[str], typer.Option("--return", "-r", help="Return date for a round trip")] = None,
    adults: Annotated[int, typer.Option("--adults", "-a", help="Adults (12+)")] = 1,
    children: Annotated[int, typer.Option("--children", help="Children (2-11)")] = 0,
    infants: Annotated[int, typer.Option("--infants", help="Infants (under 2)")] = 0,
    cabin: Annotated[Optional[str], typer.Option("--class", "-c", help="economy, premium_economy, business, first")] = None,
    non_stop: Annotated[bool, typer.Option("--non-stop", help="Ask the provider for non-stop flights only")] = False,
    max_price: Annotated[Optional[float], typer.Option("--max-price", help="Hide offers above this price")] = None,
    stops: Annotated[Optional[str], typer.Option("--stops", help="Allowed stop counts, e.g. 0,1")] = None,
    airline: Annotated[Optional[list[str]], typer.Option("--airline", help="Allowed airline code (repeatable)")] = None,
    sort: Annotated[str, typer.Option("--sort", help="Sort by: price, duration")] = "price",
    histogram: Annotated[bool, typer.Option("--histogram", help="Show price distribution")] = False,
    output: Annotated[Optional[str], typer.Option("-o", help="Write results to a JSON file")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print results as JSON")] = False,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Skip cache")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
):
    """
    🔍 Search flight offers.

    Examples:

      wayfare search JNB LHR 2025-06-01 --return 2025-06-15 --adults 2

      wayfare search LOS NBO 2025-07-10 --stops 0 --sort duration --histogram
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if sort not in SORT_KEYS:
        console.print(f"[red]Invalid sort key. Choose: {', '.join(SORT_KEYS)}[/red]")
        raise typer.Exit(1)

    try:
        criteria = SearchCriteria(
            origin=origin,
            destination=destination,
            departure_date=departure_date,
            return_date=return_date,
            trip_type=ROUND_TRIP if return_date else ONE_WAY,
            adults=adults,
            children=children,
            infants=infants,
            travel_class=cabin.upper() if cabin else None,
            non_stop=True if non_stop else None,
        )
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    provider = _provider()
    key = cache.make_key(provider.name, criteria)
    cached = None if no_cache else cache.get(key)
    if cached is not None:
        logger.info("Cache hit for %s", key)
        response = SearchResponse.from_dict(cached)
    else:
        if not as_json:
            console.print(
                f"[dim]Searching {criteria.origin} → {criteria.destination} "
                f"on {criteria.departure_date}...[/dim]"
            )
        response = _run(provider.search(criteria))
        cache.set(key, response.to_dict())

    cache.set(
        cache.LAST_SEARCH_KEY,
        {"criteria": criteria.to_dict(), "response": response.to_dict()},
        ttl=cache.SELECTION_TTL,
    )

    state = FilterState(
        max_price=max_price,
        stops=_parse_stops(stops),
        airlines={a.upper() for a in airline or []},
        sort_by=sort,
    )
    view = ResultsView(response, state, _load_converter())

    if output or as_json:
        data = offers_to_json(view, criteria.is_round_trip)
        if output:
            with open(output, "w") as fp:
                json.dump(data, fp, indent=2)
            console.print(f"[green]Results saved to {output} (JSON)[/green]")
        else:
            print(json.dumps(data, indent=2))
        return

    pax = criteria.total_passengers
    dates = format_date(criteria.departure_date)
    if criteria.is_round_trip:
        dates += f" - {format_date(criteria.return_date)}"
    title = (
        f"✈  {criteria.origin} → {criteria.destination}"
        + ("  (Round Trip)" if criteria.is_round_trip else "")
        + f"  |  {dates}  |  {pax} passenger{'s' if pax > 1 else ''}"
    )
    print_offers(view, criteria.is_round_trip, title=title)
    print_facets(view)
    if histogram:
        print_histogram(view.histogram)
    if view.offers:
        console.print("[dim]Book with: wayfare book OFFER_ID[/dim]")


@app.command()
def airports(
    keyword: Annotated[str, typer.Argument(help="City or airport name (3+ characters)")],
):
    """🛫 Look up airport codes."""
    lookup = AirportAutocomplete(_provider())
    results = _run(lookup.suggest(keyword))
    if results is None:
        return
    if not results and len(keyword.strip()) < lookup.min_chars:
        console.print(f"[yellow]Type at least {lookup.min_chars} characters.[/yellow]")
        return
    print_airports(results)


# ---------------------------------------------------------------------------
# book
# ---------------------------------------------------------------------------

def _load_selection(offer_id: str) -> OfferSelection:
    last = cache.get(cache.LAST_SEARCH_KEY)
    if not last:
        console.print("[yellow]No recent search. Run: wayfare search ORIGIN DEST DATE[/yellow]")
        raise typer.Exit(1)
    response = SearchResponse.from_dict(last["response"])
    offer = response.find(offer_id)
    if offer is None:
        console.print(f"[red]Offer {offer_id} is not in your last search results.[/red]")
        raise typer.Exit(1)
    return OfferSelection(
        offer=offer,
        dictionaries=response.dictionaries,
        criteria=SearchCriteria.from_dict(last["criteria"]),
    )


def _prompt_passengers(selection: OfferSelection) -> list[Passenger]:
    criteria = selection.criteria
    passengers = blank_passengers(criteria.adults, criteria.children, criteria.infants)
    for i, p in enumerate(passengers, start=1):
        console.print(f"\n[bold]Passenger {i} ({p.type.title()})[/bold]")
        p.first_name = typer.prompt("First name")
        p.last_name = typer.prompt("Last name")
        p.date_of_birth = typer.prompt("Date of birth (YYYY-MM-DD)")
        p.nationality = typer.prompt("Nationality", default="", show_default=False)
        p.passport_number = typer.prompt("Passport number", default="", show_default=False)
    return passengers


@app.command()
def book(
    offer_id: Annotated[str, typer.Argument(help="Offer id from your last search")],
    email: Annotated[Optional[str], typer.Option("--email", help="Contact email")] = None,
    phone: Annotated[Optional[str], typer.Option("--phone", help="Contact phone")] = None,
):
    """💳 Book an offer from your last search and pay for it."""
    user = _require_user()
    selection = _load_selection(offer_id)
    converter = _load_converter()

    console.print(f"\n[bold]Complete your booking[/bold]  {selection.criteria.origin} → {selection.criteria.destination}")
    for leg in split_legs(selection.offer, selection.criteria.is_round_trip):
        console.print(
            f"  {leg.label.title()}: {leg.origin} → {leg.destination} "
            f"{format_date(leg.departure_at)} · {leg.duration_display} · {leg.stops_display}"
        )
    console.print(
        f"  Total: [bold]{converter.format(selection.offer.price.total, selection.offer.price.currency)}[/bold]"
    )

    contact_email = email or typer.prompt("Contact email", default=user.email or "")
    contact_phone = phone or typer.prompt("Contact phone")
    passengers = _prompt_passengers(selection)

    manager = _manager(converter)
    try:
        result = _run(manager.book(user, selection, contact_email, contact_phone, passengers))
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    booking = manager.get_booking(result.booking_id)
    if result.paid:
        console.print(f"\n[bold green]✓ Booking confirmed![/bold green] Reference: [bold]{booking.booking_reference}[/bold]")
    else:
        console.print(
            f"\n[yellow]Payment not completed. Booking {booking.booking_reference} is pending; "
            f"retry with: wayfare bookings pay {result.booking_id}[/yellow]"
        )


# ---------------------------------------------------------------------------
# bookings sub-commands
# ---------------------------------------------------------------------------

@bookings_app.command("list")
def bookings_list(
    status: Annotated[Optional[str], typer.Option("--status", "-s", help="confirmed, pending, cancelled")] = None,
):
    """List your bookings, newest first."""
    if status and status not in BOOKING_STATUSES:
        console.print(f"[red]Invalid status. Choose: {', '.join(BOOKING_STATUSES)}[/red]")
        raise typer.Exit(1)
    user = _require_user()
    converter = _load_converter()
    manager = _manager(converter)
    all_bookings = manager.list_bookings(user.uid)
    print_status_counts(all_bookings, active=status)
    shown = [b for b in all_bookings if b.status == status] if status else all_bookings
    print_bookings(shown, converter, status=status)


def _owned_booking(manager: BookingManager, user: User, booking_id: str) -> Optional[Booking]:
    """The booking, or None when it is missing or belongs to someone else."""
    booking = manager.get_booking(booking_id)
    if booking is None or booking.user_id != user.uid:
        console.print(f"[dim]No booking found with id {booking_id}.[/dim]")
        return None
    return booking


@bookings_app.command("show")
def bookings_show(booking_id: Annotated[str, typer.Argument(help="Booking id")]):
    """Show one booking with its flight legs and passengers."""
    user = _require_user()
    converter = _load_converter()
    booking = _owned_booking(_manager(converter), user, booking_id)
    if booking is None:
        return
    print_booking_detail(booking, converter)


@bookings_app.command("cancel")
def bookings_cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
):
    """Cancel a confirmed booking before departure."""
    user = _require_user()
    manager = _manager(_load_converter(refresh=False))
    if _owned_booking(manager, user, booking_id) is None:
        raise typer.Exit(1)
    if not yes and not typer.confirm("Are you sure you want to cancel this booking?"):
        raise typer.Abort()
    try:
        manager.cancel_booking(booking_id)
    except BookingStateError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Booking cancelled.[/green]")


@bookings_app.command("pay")
def bookings_pay(booking_id: Annotated[str, typer.Argument(help="Booking id")]):
    """Retry payment for a pending booking."""
    user = _require_user()
    manager = _manager(_load_converter(refresh=False))
    if _owned_booking(manager, user, booking_id) is None:
        raise typer.Exit(1)
    try:
        result = _run(manager.pay(booking_id))
    except BookingStateError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if result.paid:
        console.print("[bold green]✓ Booking confirmed![/bold green]")
    else:
        console.print("[yellow]Payment not completed; the booking is still pending.[/yellow]")


@bookings_app.command("reconcile")
def bookings_reconcile():
    """Check pending bookings against the payment provider."""
    user = _require_user()
    manager = _manager(_load_converter(refresh=False))
    confirmed = _run(manager.reconcile_pending(user.uid))
    if confirmed:
        console.print(f"[green]Confirmed {len(confirmed)} booking(s): {', '.join(confirmed)}[/green]")
    else:
        console.print("[dim]Nothing to reconcile.[/dim]")


# ---------------------------------------------------------------------------
# currency sub-commands
# ---------------------------------------------------------------------------

@currency_app.command("list")
def currency_list():
    """Show supported currencies."""
    selected = _load_converter(refresh=False).selected.code
    for c in CURRENCIES:
        marker = "[bold green]*[/bold green]" if c.code == selected else " "
        console.print(f"{marker} {c.code}  {c.symbol:<4} {c.name}")


@currency_app.command("use")
def currency_use(code: Annotated[str, typer.Argument(help="Currency code, e.g. EUR")]):
    """Display prices in another currency."""
    converter = _load_converter(refresh=False)
    if not converter.select(code):
        console.print(f"[red]Unsupported currency: {code}[/red]")
        raise typer.Exit(1)
    cache.set(cache.CURRENCY_PREF_KEY, converter.selected.code, ttl=cache.PREFERENCE_TTL)
    console.print(f"[green]Prices will be shown in {converter.selected.name} ({converter.selected.code}).[/green]")


# ---------------------------------------------------------------------------
# auth sub-commands
# ---------------------------------------------------------------------------

def _identity_or_exit() -> IdentityClient:
    if not get_settings().is_identity_configured():
        console.print("[red]Set FIREBASE_API_KEY to sign in.[/red]")
        raise typer.Exit(1)
    return _identity()


@auth_app.command("login")
def auth_login(
    email: Annotated[str, typer.Option(prompt=True)],
    password: Annotated[str, typer.Option(prompt=True, hide_input=True)],
):
    """Sign in with email and password."""
    identity = _identity_or_exit()
    try:
        user = asyncio.run(identity.sign_in(email, password))
    except ProviderError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Signed in as {user.email}.[/green]")


@auth_app.command("signup")
def auth_signup(
    email: Annotated[str, typer.Option(prompt=True)],
    password: Annotated[str, typer.Option(prompt=True, hide_input=True, confirmation_prompt=True)],
):
    """Create an account."""
    identity = _identity_or_exit()
    try:
        user = asyncio.run(identity.sign_up(email, password))
    except ProviderError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Account created. Signed in as {user.email}.[/green]")


@auth_app.command("logout")
def auth_logout():
    """Sign out."""
    _identity().sign_out()
    console.print("Signed out.")


@auth_app.command("whoami")
def auth_whoami():
    """Show the signed-in user."""
    user = _identity().current_user
    if user is None:
        console.print("[dim]Not signed in.[/dim]")
    else:
        console.print(f"{user.email or user.uid}")


# ---------------------------------------------------------------------------
# cache sub-commands
# ---------------------------------------------------------------------------

@cache_app.command("clear")
def cache_clear(
    expired_only: Annotated[bool, typer.Option("--expired", help="Clear only expired entries")] = False,
):
    """Clear the search results cache."""
    if expired_only:
        count = cache.clear_expired()
        console.print(f"[green]Cleared {count} expired cache entries.[/green]")
    else:
        cache.clear_all()
        console.print("[green]Cache cleared.[/green]")


@cache_app.command("info")
def cache_info():
    """Show cache location and stats."""
    console.print(f"Cache file: [blue]{cache.CACHE_FILE}[/blue]")
    if cache.CACHE_FILE.exists():
        size_kb = cache.CACHE_FILE.stat().st_size / 1024
        console.print(f"Cache size: {size_kb:.1f} KB")
        counts = cache.stats()
        console.print(f"Entries: {counts['entries']} ({counts['expired']} expired)")
    else:
        console.print("[dim]No cache file yet.[/dim]")


if __name__ == "__main__":
    app()
