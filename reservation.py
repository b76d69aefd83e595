from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum


class InvalidDateFormat(ValueError):
    """A reservation date string could not be parsed."""


class ReservationType(str, Enum):
    BOOK = "book"
    ROOM = "room"


class ReservationStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DECLINED = "Declined"
    COMPLETED = "Completed"


_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_value(value) -> date:
    """Return the calendar date of a date or date-time value.

    Accepts ``date``/``datetime`` objects and ISO strings such as
    ``2025-05-15``, ``2025-05-15T10:00:00``, ``2025-05-15 10:00:00.123+00:00``
    or ``2025-05-15T10:00:00Z``. The date is taken as written; no timezone
    conversion happens.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateFormat(f"Invalid date value: {value!r}")

    text = value.strip()
    try:
        if _DATE_ONLY.match(text):
            return date.fromisoformat(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise InvalidDateFormat(f"Invalid date value: {value!r}") from exc


def has_time_component(value) -> bool:
    if isinstance(value, datetime):
        return True
    return isinstance(value, str) and not _DATE_ONLY.match(value.strip())


class Reservation:
    """A request to hold a book or a room for a date range.

    Start and end are parsed on construction, so a malformed date never
    reaches the calendar.
    """

    def __init__(self, id: str, user_id: str, item_id: str, item_type: str, title: str,
                 start_date: str, end_date: str, status: str = ReservationStatus.PENDING.value,
                 created_at: str | None = None, notes: str | None = None) -> None:
        self.id = id
        self.user_id = user_id
        self.item_id = item_id
        self.item_type = ReservationType(item_type)
        self.title = title
        self.start_date = start_date
        self.end_date = end_date
        self.status = ReservationStatus(status)
        self.created_at = created_at
        self.notes = notes
        self.start = parse_date_value(start_date)
        self.end = parse_date_value(end_date)

    def __repr__(self) -> str:
        return f"Reservation({self.id!r}, {self.title!r}, {self.start_date} -> {self.end_date}, {self.status.value})"

    @property
    def is_single_day(self) -> bool:
        return self.start == self.end

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "item_id": self.item_id,
            "item_type": self.item_type.value,
            "title": self.title,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "status": self.status.value,
            "notes": self.notes,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Reservation":
        return Reservation(
            id=data["id"],
            user_id=data["user_id"],
            item_id=data["item_id"],
            item_type=data["item_type"],
            title=data["title"],
            start_date=str(data["start_date"]),
            end_date=str(data["end_date"]),
            status=data.get("status") or ReservationStatus.PENDING.value,
            created_at=data.get("created_at"),
            notes=data.get("notes"),
        )
