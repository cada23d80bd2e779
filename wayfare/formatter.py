"""Output formatting for search results and bookings."""

from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .currency import CurrencyConverter
from .filters import PriceBucket, ResultsView
from .itinerary import carrier_names, format_date, format_time, split_legs, stops_label
from .models import Airport, Booking, BOOKING_STATUSES
from .normalize import format_duration

console = Console()

STATUS_STYLES = {
    "confirmed": "green",
    "pending": "yellow",
    "cancelled": "red",
}

LEG_LABELS = {
    "outbound": "Outbound",
    "return": "Return",
}


def _stops_text(stops: int, label: str) -> Text:
    style = "green" if stops == 0 else ("yellow" if stops == 1 else "red")
    return Text(label, style=style)


def print_offers(view: ResultsView, round_trip: bool, title: Optional[str] = None) -> None:
    """Print filtered offers as a rich table, one row per leg."""
    offers = view.offers
    converter = view.converter

    if not offers:
        if view.response.offers:
            console.print("[dim]No flights match your filters.[/dim]")
        else:
            console.print("[dim]No flights found for this search.[/dim]")
        return

    if title:
        console.print(f"\n[bold blue]{title}[/bold blue]")

    table = Table(
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan",
        show_lines=round_trip,
        pad_edge=True,
    )
    table.add_column("Offer", style="white", no_wrap=True)
    table.add_column("Leg")
    table.add_column("Airline")
    table.add_column("Departs", no_wrap=True)
    table.add_column("Arrives", no_wrap=True)
    table.add_column("Duration", justify="right")
    table.add_column("Stops", justify="center")
    table.add_column("Price", justify="right", style="bold")
    table.add_column("Seats", justify="right")

    dictionaries = view.response.dictionaries
    for offer in offers:
        for i, leg in enumerate(split_legs(offer, round_trip)):
            first = i == 0
            table.add_row(
                offer.id if first else "",
                LEG_LABELS.get(leg.label, leg.label),
                carrier_names(leg, dictionaries),
                f"{leg.origin} {format_time(leg.departure_at)} {format_date(leg.departure_at)}",
                f"{leg.destination} {format_time(leg.arrival_at)} {format_date(leg.arrival_at)}",
                leg.duration_display,
                _stops_text(leg.stops, leg.stops_display),
                converter.format(offer.price.total, offer.price.currency) if first else "",
                str(offer.bookable_seats) if first and offer.bookable_seats else "",
            )

    console.print(table)
    total = len(offers)
    console.print(f"[dim]{total} flight{'s' if total != 1 else ''} found.[/dim]\n")


def print_facets(view: ResultsView) -> None:
    """Show the filter values available in the current results."""
    bounds = view.price_bounds
    if bounds is None:
        return
    currency = view.response.offers[0].price.currency
    low, high = bounds
    stops = ", ".join(stops_label(s) for s in view.stops)
    airlines = ", ".join(f"{name} ({code})" for code, name in view.airlines)
    console.print(
        f"[dim]Price {view.converter.format(low, currency)} – "
        f"{view.converter.format(high, currency)} · Stops: {stops} · Airlines: {airlines}[/dim]"
    )


def print_histogram(buckets: list[PriceBucket], width: int = 40) -> None:
    """Horizontal bar chart of the price distribution."""
    if not buckets:
        return
    peak = max(b.count for b in buckets)
    table = Table(title="Price distribution", box=box.SIMPLE, show_header=False)
    table.add_column("From", justify="right", style="cyan")
    table.add_column("Bar")
    table.add_column("Count", justify="right")
    for bucket in buckets:
        bar_len = max(1, round(bucket.count / peak * width))
        table.add_row(bucket.label, Text("█" * bar_len, style="blue"), str(bucket.count))
    console.print(table)


def offers_to_json(view: ResultsView, round_trip: bool) -> dict:
    converter = view.converter
    offers = []
    for offer in view.offers:
        legs = []
        for leg in split_legs(offer, round_trip):
            legs.append({
                "leg": leg.label,
                "origin": leg.origin,
                "departure": leg.departure_at,
                "destination": leg.destination,
                "arrival": leg.arrival_at,
                "duration_min": leg.duration_minutes,
                "stops": leg.stops,
                "carriers": list(leg.carriers),
            })
        offers.append({
            "id": offer.id,
            "price": offer.price.total,
            "currency": offer.price.currency,
            "display_price": converter.format(offer.price.total, offer.price.currency),
            "validating_airlines": list(offer.validating_airline_codes),
            "seats": offer.bookable_seats,
            "legs": legs,
        })
    return {
        "count": len(offers),
        "offers": offers,
        "histogram": [{"from": b.label, "count": b.count} for b in view.histogram],
    }


def print_airports(airports: list[Airport]) -> None:
    if not airports:
        console.print("[dim]No airports found.[/dim]")
        return
    table = Table(box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Code", style="bold")
    table.add_column("Airport")
    table.add_column("City")
    table.add_column("Country")
    for airport in airports:
        table.add_row(airport.iata_code, airport.name.title(), airport.city.title(), airport.country.title())
    console.print(table)


def print_status_counts(bookings: list[Booking], active: Optional[str] = None) -> None:
    parts = [f"All ({len(bookings)})"]
    for status in BOOKING_STATUSES:
        count = sum(1 for b in bookings if b.status == status)
        parts.append(f"{status.title()} ({count})")
    line = " · ".join(parts)
    if active:
        line += f"   [dim]showing: {active}[/dim]"
    console.print(line)


def print_bookings(bookings: list[Booking], converter: CurrencyConverter, status: Optional[str] = None) -> None:
    if not bookings:
        if status:
            console.print(f"[dim]You don't have any {status} bookings.[/dim]")
        else:
            console.print("[dim]You haven't made any bookings yet.[/dim]")
        return

    table = Table(box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Reference", style="bold")
    table.add_column("Route")
    table.add_column("Dates")
    table.add_column("Passengers", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("Booked")
    table.add_column("ID", style="dim")

    for b in bookings:
        dates = format_date(b.departure_date)
        if b.return_date:
            dates += f" – {format_date(b.return_date)}"
        route = b.route + (" (Round Trip)" if b.is_round_trip else "")
        table.add_row(
            b.booking_reference,
            route,
            dates,
            str(len(b.passengers)),
            converter.format(b.total_price, b.currency),
            Text(b.status.title(), style=STATUS_STYLES.get(b.status, "white")),
            b.created_at.strftime("%Y-%m-%d"),
            b.id or "",
        )
    console.print(table)


def print_booking_detail(booking: Booking, converter: CurrencyConverter) -> None:
    style = STATUS_STYLES.get(booking.status, "white")
    console.print(
        f"\n[bold]{booking.booking_reference}[/bold]  {booking.route}"
        f"{'  (Round Trip)' if booking.is_round_trip else ''}  [{style}]{booking.status.title()}[/{style}]"
    )
    console.print(
        f"Total: [bold]{converter.format(booking.total_price, booking.currency)}[/bold]"
        f" · Payment: {booking.payment_status}"
        + (f" ({booking.payment_reference})" if booking.payment_reference else "")
    )
    console.print(f"Contact: {booking.contact_email} · {booking.contact_phone}")

    offer = booking.offer()
    table = Table(box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Leg")
    table.add_column("Departs")
    table.add_column("Arrives")
    table.add_column("Duration", justify="right")
    table.add_column("Stops", justify="center")
    for leg in split_legs(offer, booking.is_round_trip):
        table.add_row(
            LEG_LABELS.get(leg.label, leg.label),
            f"{leg.origin} {format_time(leg.departure_at)} {format_date(leg.departure_at)}",
            f"{leg.destination} {format_time(leg.arrival_at)} {format_date(leg.arrival_at)}",
            format_duration(leg.duration_minutes),
            _stops_text(leg.stops, leg.stops_display),
        )
    console.print(table)

    pax = Table(box=box.SIMPLE, header_style="bold cyan")
    pax.add_column("#", justify="right")
    pax.add_column("Name")
    pax.add_column("Type")
    pax.add_column("Date of birth")
    pax.add_column("Passport")
    for i, p in enumerate(booking.passengers, start=1):
        pax.add_row(str(i), p.full_name, p.type.title(), p.date_of_birth, p.passport_number or "–")
    console.print(pax)
