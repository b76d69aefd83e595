import os
import json
from typing import List, Any
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from calendar_view import DAY_NAMES, MonthView

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

KIND_MARKERS = {"book": "[B]", "room": "[R]"}


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_month(view: MonthView) -> None:
    """Print the month grid.
    - plain: one line per day that has reservations, or 'No reservations in <Month Year>.'
    - json: day -> list of reservation ids/titles
    - rich: 7-column calendar table with up to two titles and '+N more' per cell
    """
    mode = get_output_mode()
    cells = [c for c in view.cells() if not c.is_padding]

    if mode == "json":
        payload = {
            "month": view.title,
            "days": {
                c.day.isoformat(): [{"id": r.id, "title": r.title, "item_type": r.item_type.value}
                                    for r in c.reservations]
                for c in cells
            },
        }
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=f"📅 {view.title}", show_lines=True, header_style="bold cyan")
        for name in DAY_NAMES:
            table.add_column(name, justify="left", min_width=12)
        for week in view.weeks():
            row = []
            for cell in week:
                if cell.is_padding:
                    row.append("")
                    continue
                day_label = f"[bold]{cell.day.day}[/]" if cell.is_today else str(cell.day.day)
                lines = [day_label]
                lines += [f"{KIND_MARKERS[r.item_type.value]} {r.title}" for r in cell.preview]
                if cell.more_count:
                    lines.append(f"[dim]{cell.more_label}[/]")
                row.append("\n".join(lines))
            table.add_row(*row)
        _console.print(table)
    else:
        busy = [c for c in cells if c.reservations]
        if not busy:
            print(f"No reservations in {view.title}.")
            return
        print(view.title)
        for cell in busy:
            titles = ", ".join(r.title for r in cell.preview)
            suffix = f" {cell.more_label}" if cell.more_count else ""
            print(f"{cell.day.isoformat()}: {titles}{suffix}")


def print_day_detail(view: MonthView) -> None:
    mode = get_output_mode()
    entries = view.detail()
    day = view.selected.day.isoformat() if view.selected else ""

    if mode == "json":
        print(json.dumps({"date": day, "reservations": [e.to_dict() for e in entries]}, ensure_ascii=False))
        return
    if not entries:
        print(f"No reservations on {day}.")
        return
    if mode == "rich":
        table = Table(title=f"Reservations on {day}", header_style="bold cyan")
        table.add_column("Kind", style="magenta")
        table.add_column("Title")
        table.add_column("Dates")
        table.add_column("Status")
        for e in entries:
            table.add_row(e.icon, e.title, e.date_range, f"[{e.badge}]{e.status}[/]")
        _console.print(table)
    else:
        for e in entries:
            print(f"{e.title} ({e.icon}) {e.date_range} [{e.status}]")


def print_slots(room_name: str, day: str, slots: List[Any], notice: str = "") -> None:
    """Print the availability of one room on one day; slots are numbered from 0."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps({"room": room_name, "date": day, "slots": [s.to_dict() for s in slots],
                          "notice": notice or None}, ensure_ascii=False))
        return
    if notice:
        print(notice)
    if mode == "rich":
        table = Table(title=f"🕒 {room_name} - {day}", header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Slot")
        table.add_column("Status")
        for i, s in enumerate(slots):
            status = "[green]Available[/]" if s.is_available else "[red]Unavailable[/]"
            table.add_row(str(i), s.label, status)
        _console.print(table)
    else:
        for i, s in enumerate(slots):
            print(f"{i}. {s.label} {'available' if s.is_available else 'unavailable'}")


def print_reservations(reservations: List[Any]) -> None:
    mode = get_output_mode()

    if not reservations:
        print("No reservations.")
        return

    if mode == "json":
        print(json.dumps([r.to_dict() for r in reservations], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Reservations", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title")
        table.add_column("Kind")
        table.add_column("From")
        table.add_column("To")
        table.add_column("Status")
        for r in reservations:
            table.add_row(r.id, r.title, r.item_type.value, r.start_date, r.end_date, r.status.value)
        _console.print(table)
    else:
        for r in reservations:
            print(f"{r.id} - {r.title} ({r.item_type.value}) {r.start_date} -> {r.end_date} [{r.status.value}]")


def print_rooms(rooms: List[Any]) -> None:
    mode = get_output_mode()

    if not rooms:
        print("No rooms.")
        return

    if mode == "json":
        print(json.dumps([r.to_dict() for r in rooms], ensure_ascii=False))
    elif mode == "rich":
        for r in rooms:
            amenities = ", ".join(a.label for a in r.amenities) or "-"
            content = (f"[bold]Capacity:[/] {r.capacity}\n[bold]Location:[/] {r.location}\n"
                       f"[bold]Amenities:[/] {amenities}")
            _console.print(Panel.fit(content, title=f"🏠 {r.name}", subtitle=r.id, border_style="blue"))
    else:
        for r in rooms:
            print(f"{r.id} - {r.name} ({r.capacity} seats, {r.location})")
