import subprocess
import sys
import webbrowser
from contextlib import contextmanager
from datetime import date, datetime
from typing import Optional

import typer

import database
from availability import toggle_slot
from calendar_view import MonthView
from config import configure_logging, settings
from i18n import Translator
from library import Library
from preferences import PreferencesStore
from reservation import InvalidDateFormat, ReservationStatus, parse_date_value
from store import StorageFailure
from utils.ui_helpers import (
    print_day_detail,
    print_month,
    print_reservations,
    print_rooms,
    print_slots,
    set_output_mode,
)

APP_NAME = settings.app_name

app = typer.Typer(help=f"{APP_NAME} CLI")


def get_library() -> Library:
    """Library over the configured store. Tests replace this."""
    return Library()


def _translator(user: Optional[str]) -> Translator:
    locale = PreferencesStore().load(user).language if user else None
    return Translator(locale)


def _parse_day(value: str) -> date:
    try:
        return parse_date_value(value)
    except InvalidDateFormat as e:
        print(f"Error: {e}")
        raise typer.Exit(code=2)


def _parse_month(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError:
        print(f"Error: invalid month {value!r}. Use YYYY-MM.")
        raise typer.Exit(code=2)


@contextmanager
def open_library():
    """Library for one command; storage and stored-data errors end the command."""
    lib = None
    try:
        lib = get_library()
        yield lib
    except StorageFailure as e:
        print(f"Error: the library database is unavailable: {e}")
        raise typer.Exit(code=1)
    except InvalidDateFormat as e:
        print(f"Error: a stored reservation has a bad date: {e}")
        raise typer.Exit(code=2)
    finally:
        if lib is not None:
            lib.close()


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages"),
):
    """Global options (output mode, logging)."""
    configure_logging("DEBUG" if verbose else None)
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db(seed: bool = typer.Option(False, "--seed", help="Insert the sample rooms")):
    """Create the SQLite tables."""
    database.initialize_database(seed=seed)
    print(f"Database ready at {database.DATABASE_FILE}")


@app.command("calendar")
def cli_calendar(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user's reservations"),
    month: Optional[str] = typer.Option(None, "--month", "-m", help="Month to show (YYYY-MM)"),
):
    """Show a month of reservations, bucketed by day."""
    reference = _parse_month(month)
    with open_library() as lib:
        reservations = lib.get_user_reservations(user) if user else lib.get_all_reservations()
        view = MonthView(reservations, reference=reference)
    print_month(view)


@app.command("day")
def cli_day(
    day: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user's reservations"),
):
    """List the reservations that overlap one day."""
    selected = _parse_day(day)
    with open_library() as lib:
        reservations = lib.get_user_reservations(user) if user else lib.get_all_reservations()
        view = MonthView(reservations, reference=selected)
        view.select_day(selected)
    print_day_detail(view)


@app.command("rooms")
def cli_rooms(
    query: str = typer.Option("", "--query", "-q", help="Search in name, description and location"),
    capacity: Optional[int] = typer.Option(None, "--capacity", "-c", help="Minimum capacity"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Only rooms with a free slot on this date"),
):
    """List or search study rooms."""
    if on:
        _parse_day(on)
    with open_library() as lib:
        rooms = lib.search_rooms(query, capacity, None, on)
    print_rooms(rooms)


@app.command("availability")
def cli_availability(
    room_id: str = typer.Argument(..., help="Room id"),
    day: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Translate messages for this user"),
):
    """Show the time slots of a room on a date."""
    selected = _parse_day(day)
    with open_library() as lib:
        room = lib.get_room(room_id)
        if room is None:
            print(f"Room {room_id} not found.")
            raise typer.Exit(code=1)
        result = lib.availability.load(room_id, selected)
    notice = ""
    if result.failed:
        notice = _translator(user).t("rooms.loadFailed", "Failed to load room availability; showing default slots")
    print_slots(room.name, selected.isoformat(), result.slots, notice)


@app.command("toggle")
def cli_toggle(
    room_id: str = typer.Argument(..., help="Room id"),
    day: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    index: int = typer.Argument(..., help="Slot number as shown by 'availability'"),
):
    """Flip one slot of a room between available and unavailable, then save."""
    selected = _parse_day(day)
    with open_library() as lib:
        room = lib.get_room(room_id)
        if room is None:
            print(f"Room {room_id} not found.")
            raise typer.Exit(code=1)
        result = lib.availability.load(room_id, selected)
        if result.failed:
            print("Error: could not load room availability; nothing saved.")
            raise typer.Exit(code=1)
        if not 0 <= index < len(result.slots):
            print(f"Error: slot index {index} out of range (0-{len(result.slots) - 1}).")
            raise typer.Exit(code=2)
        slot = toggle_slot(result.slots, index)
        try:
            lib.availability.save_availability(room_id, selected, result.slots)
        except StorageFailure as e:
            print(f"Error: could not save room availability: {e}")
            raise typer.Exit(code=1)
    state = "available" if slot.is_available else "unavailable"
    print(f"{room.name} {selected.isoformat()} {slot.label} is now {state}.")


@app.command("reserve")
def cli_reserve(
    user: str = typer.Option(..., "--user", "-u", help="User id"),
    item_id: str = typer.Option(..., "--item", "-i", help="Book copy id or room id"),
    item_type: str = typer.Option("room", "--type", "-t", help="book | room"),
    title: str = typer.Option(..., "--title", help="Title shown on the calendar"),
    start: str = typer.Option(..., "--start", help="Start date or date-time"),
    end: Optional[str] = typer.Option(None, "--end", help="End date or date-time (default: start)"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Note for the librarian"),
):
    """Request a reservation; it starts out Pending."""
    with open_library() as lib:
        try:
            reservation = lib.create_reservation(user, item_id, item_type, title, start, end or start, notes)
        except ValueError as e:
            print(f"Error: {e}")
            raise typer.Exit(code=2)
    print(f"Reservation {reservation.id} created for {reservation.title} [{reservation.status.value}]")


@app.command("pending")
def cli_pending():
    """Reservations waiting for a librarian, oldest first."""
    with open_library() as lib:
        reservations = lib.get_pending_reservations()
    print_reservations(reservations)


def _set_status(reservation_id: str, status: ReservationStatus) -> None:
    with open_library() as lib:
        reservation = lib.update_reservation_status(reservation_id, status.value)
    if reservation is None:
        print(f"Reservation {reservation_id} not found.")
        raise typer.Exit(code=1)
    print(f"Reservation {reservation.id} for {reservation.title} is now {reservation.status.value}.")


@app.command("approve")
def cli_approve(reservation_id: str):
    """Approve a reservation and notify its owner."""
    _set_status(reservation_id, ReservationStatus.APPROVED)


@app.command("decline")
def cli_decline(reservation_id: str):
    """Decline a reservation and notify its owner."""
    _set_status(reservation_id, ReservationStatus.DECLINED)


@app.command("complete")
def cli_complete(reservation_id: str):
    """Mark a reservation completed and release what it held."""
    with open_library() as lib:
        reservation = lib.complete_reservation(reservation_id)
    if reservation is None:
        print(f"Reservation {reservation_id} not found.")
        raise typer.Exit(code=1)
    print(f"Reservation {reservation.id} for {reservation.title} is now {reservation.status.value}.")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
    open_browser: bool = typer.Option(True, "--browser/--no-browser", help="Open the API docs"),
):
    """Start the web API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting web API on {url}")
    if open_browser:
        webbrowser.open(url)
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    subprocess.run(args)


if __name__ == "__main__":
    app()
