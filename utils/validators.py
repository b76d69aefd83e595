import re
from datetime import date
from typing import Iterable, List, Optional

from reservation import ReservationType, parse_date_value

_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class DateValidator:
    """Checks for date and date-range input coming from forms."""

    @staticmethod
    def is_valid_date(value: Optional[str]) -> bool:
        try:
            parse_date_value(value)
        except ValueError:
            return False
        return True

    @staticmethod
    def validate_range(start: str, end: str) -> tuple:
        """Return the parsed (start, end) dates; raise ValueError when end precedes start."""
        start_day, end_day = parse_date_value(start), parse_date_value(end)
        if end_day < start_day:
            raise ValueError("End date cannot be before start date.")
        return start_day, end_day

    @staticmethod
    def is_in_past(value: str, today: Optional[date] = None) -> bool:
        return parse_date_value(value) < (today or date.today())


class SlotValidator:
    """Checks for the HH:MM time slots of room availability."""

    @staticmethod
    def is_valid_time(value: Optional[str]) -> bool:
        return isinstance(value, str) and bool(_TIME.match(value))

    @staticmethod
    def validate_slot(start: str, end: str) -> None:
        if not SlotValidator.is_valid_time(start) or not SlotValidator.is_valid_time(end):
            raise ValueError(f"Invalid slot time: {start!r}-{end!r}. Use HH:MM.")
        if end <= start:
            raise ValueError(f"Slot end {end} must be after start {start}.")

    @staticmethod
    def validate_slots(slots: Iterable) -> None:
        for slot in slots:
            SlotValidator.validate_slot(slot.start_time, slot.end_time)


class TextValidator:
    """Basic checks and sanitization for free-text form fields."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not text.strip()

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        # strip tags and inline script handlers
        cleaned = re.sub(r"<[^>]*>", "", text)
        cleaned = re.sub(r"(?i)javascript:|on\w+\s*=", "", cleaned)
        return cleaned.strip()

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        return bool(email) and re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email) is not None


def is_valid_isbn(raw: Optional[str]) -> bool:
    """ISBN-10 or ISBN-13 with a correct check digit."""
    s = re.sub(r"[^0-9Xx]", "", raw or "").upper()
    if len(s) == 10 and s[:9].isdigit() and (s[9].isdigit() or s[9] == "X"):
        total = sum((10 - i) * int(ch) for i, ch in enumerate(s[:9]))
        total += 10 if s[9] == "X" else int(s[9])
        return total % 11 == 0
    if len(s) == 13 and s.isdigit():
        total = sum(int(ch) * (1 if i % 2 == 0 else 3) for i, ch in enumerate(s[:12]))
        return (10 - total % 10) % 10 == int(s[12])
    return False


def validate_reservation_request(item_type: str, title: str, start_date: str, end_date: str) -> List[str]:
    """Collect every problem with a reservation form; an empty list means valid."""
    errors = []
    try:
        ReservationType(item_type)
    except ValueError:
        errors.append(f"Invalid item type {item_type!r}. Allowed: book, room.")
    if TextValidator.is_blank(title):
        errors.append("Title is required.")
    try:
        DateValidator.validate_range(start_date, end_date)
    except ValueError as e:
        errors.append(str(e))
    return errors
