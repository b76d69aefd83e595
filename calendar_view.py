"""Month calendar for reservations.

Each displayed day gets the bucket of reservations that overlap it: the day is
the reservation's start date, its end date, or strictly between the two.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from config import settings
from reservation import Reservation, ReservationStatus, ReservationType, has_time_component

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

KIND_ICONS = {
    ReservationType.BOOK: "book",
    ReservationType.ROOM: "home",
}

STATUS_BADGES = {
    ReservationStatus.PENDING: "yellow",
    ReservationStatus.APPROVED: "green",
    ReservationStatus.DECLINED: "red",
    ReservationStatus.COMPLETED: "blue",
}


def overlaps_day(reservation: Reservation, day: date) -> bool:
    return day == reservation.start or day == reservation.end or reservation.start < day < reservation.end


def reservations_for_day(day: date, reservations: Iterable[Reservation]) -> List[Reservation]:
    """Reservations overlapping ``day``, in input order."""
    return [r for r in reservations if overlaps_day(r, day)]


def month_days(reference: date) -> List[date]:
    """Every date of the reference month, ascending."""
    last = calendar.monthrange(reference.year, reference.month)[1]
    return [date(reference.year, reference.month, d) for d in range(1, last + 1)]


def shift_month(reference: date, delta: int) -> date:
    """Move ``delta`` calendar months, clamping the day to the target month's length."""
    index = reference.year * 12 + (reference.month - 1) + delta
    year, month = divmod(index, 12)
    month += 1
    day = min(reference.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def sunday_index(day: date) -> int:
    """Column of ``day`` in a Sunday-first week (Sunday=0)."""
    return (day.weekday() + 1) % 7


def format_date_range(reservation: Reservation) -> str:
    start_fmt = "%b %d, %Y %H:%M" if has_time_component(reservation.start_date) else "%b %d, %Y"
    end_fmt = "%b %d, %Y %H:%M" if has_time_component(reservation.end_date) else "%b %d, %Y"
    start = _as_datetime(reservation.start_date, reservation.start)
    end = _as_datetime(reservation.end_date, reservation.end)
    return f"{start.strftime(start_fmt)} - {end.strftime(end_fmt)}"


def _as_datetime(raw: str, parsed: date) -> datetime:
    if has_time_component(raw):
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    return datetime(parsed.year, parsed.month, parsed.day)


@dataclass
class DayCell:
    """One cell of the month grid. Padding cells have no date."""
    day: Optional[date] = None
    reservations: List[Reservation] = field(default_factory=list)
    is_today: bool = False
    preview_size: int = 2

    @property
    def is_padding(self) -> bool:
        return self.day is None

    @property
    def clickable(self) -> bool:
        return self.day is not None

    @property
    def preview(self) -> List[Reservation]:
        return self.reservations[:self.preview_size]

    @property
    def more_count(self) -> int:
        return max(0, len(self.reservations) - self.preview_size)

    @property
    def more_label(self) -> str:
        return f"+{self.more_count} more" if self.more_count else ""


@dataclass
class DetailEntry:
    title: str
    icon: str
    date_range: str
    status: str
    badge: str

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "icon": self.icon,
            "date_range": self.date_range,
            "status": self.status,
            "badge": self.badge,
        }


@dataclass
class SelectedDay:
    day: date
    reservations: List[Reservation]


class MonthView:
    """State behind the reservation calendar: displayed month plus the day detail."""

    def __init__(self, reservations: Iterable[Reservation], reference: Optional[date] = None,
                 today: Optional[date] = None, preview_size: Optional[int] = None) -> None:
        self.reservations: List[Reservation] = list(reservations)
        self.today = today or date.today()
        self.reference = reference or self.today
        self.preview_size = preview_size if preview_size is not None else settings.calendar_preview_size
        self.selected: Optional[SelectedDay] = None

    @property
    def first_day(self) -> date:
        return self.reference.replace(day=1)

    @property
    def last_day(self) -> date:
        return self.reference.replace(day=calendar.monthrange(self.reference.year, self.reference.month)[1])

    @property
    def title(self) -> str:
        return self.reference.strftime("%B %Y")

    @property
    def leading_padding(self) -> int:
        return sunday_index(self.first_day)

    @property
    def trailing_padding(self) -> int:
        return 6 - sunday_index(self.last_day)

    def days(self) -> List[date]:
        return month_days(self.reference)

    def buckets(self) -> Dict[date, List[Reservation]]:
        return {day: reservations_for_day(day, self.reservations) for day in self.days()}

    def cells(self) -> List[DayCell]:
        cells = [DayCell(preview_size=self.preview_size) for _ in range(self.leading_padding)]
        for day, bucket in self.buckets().items():
            cells.append(DayCell(day, bucket, day == self.today, self.preview_size))
        cells.extend(DayCell(preview_size=self.preview_size) for _ in range(self.trailing_padding))
        return cells

    def weeks(self) -> List[List[DayCell]]:
        cells = self.cells()
        return [cells[i:i + 7] for i in range(0, len(cells), 7)]

    # ------------------------- Navigation ------------------------- #
    def previous_month(self) -> date:
        self.reference = shift_month(self.reference, -1)
        return self.reference

    def next_month(self) -> date:
        self.reference = shift_month(self.reference, 1)
        return self.reference

    # ------------------------- Day detail ------------------------- #
    def select_day(self, day: date) -> SelectedDay:
        self.selected = SelectedDay(day, reservations_for_day(day, self.reservations))
        return self.selected

    def close_detail(self) -> None:
        self.selected = None

    @property
    def is_detail_open(self) -> bool:
        return self.selected is not None

    def detail(self) -> List[DetailEntry]:
        if self.selected is None:
            return []
        return [
            DetailEntry(
                title=r.title,
                icon=KIND_ICONS[r.item_type],
                date_range=format_date_range(r),
                status=r.status.value,
                badge=STATUS_BADGES[r.status],
            )
            for r in self.selected.reservations
        ]
