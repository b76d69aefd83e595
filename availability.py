"""Per-room, per-date time-slot availability.

Records live in the ``room_availability`` table keyed by (room_id, date). A
missing record means every slot of the template is free.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Union

from reservation import parse_date_value
from room import RoomAvailability, SlotParseError, TimeSlot, default_slots, parse_slots, serialize_slots
from store import NotFound, StorageFailure, Store

logger = logging.getLogger(__name__)

TABLE = "room_availability"

SOURCE_STORED = "stored"
SOURCE_DEFAULT = "default"
SOURCE_FALLBACK = "fallback"


@dataclass
class AvailabilityResult:
    slots: List[TimeSlot]
    source: str
    repairs: List[str] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def format_day(day: Union[date, str]) -> str:
    return parse_date_value(day).isoformat()


def toggle_slot(slots: List[TimeSlot], index: int) -> TimeSlot:
    """Flip one slot in place. Nothing is stored until save_availability runs."""
    slot = slots[index]
    slot.is_available = not slot.is_available
    return slot


class AvailabilityStore:
    def __init__(self, store: Store) -> None:
        self.store = store

    def load(self, room_id: str, day: Union[date, str]) -> AvailabilityResult:
        """Load the slots for a room and date.

        No record is a normal outcome and yields the all-available template.
        A storage failure or an unparseable blob is logged and also yields the
        template, with ``error`` set so the caller can notify the user once.
        """
        key = format_day(day)
        try:
            record = self.store.select_single(TABLE, filters={"room_id": room_id, "date": key})
        except NotFound:
            return AvailabilityResult(default_slots(), SOURCE_DEFAULT)
        except StorageFailure as exc:
            logger.error("Could not load availability for room %s on %s: %s", room_id, key, exc)
            return AvailabilityResult(default_slots(), SOURCE_FALLBACK, error=exc)

        try:
            parsed = parse_slots(record.get("slots"))
        except SlotParseError as exc:
            logger.warning("Unreadable availability for room %s on %s: %s", room_id, key, exc)
            return AvailabilityResult(default_slots(), SOURCE_FALLBACK, error=exc)

        if parsed.repairs:
            logger.warning("Repaired availability for room %s on %s: %s", room_id, key, "; ".join(parsed.repairs))
        return AvailabilityResult(parsed.slots, SOURCE_STORED, parsed.repairs)

    def load_availability(self, room_id: str, day: Union[date, str]) -> List[TimeSlot]:
        return self.load(room_id, day).slots

    def save_availability(self, room_id: str, day: Union[date, str], slots: List[TimeSlot]) -> None:
        """Insert or update the record for (room_id, day). Last writer wins."""
        key = format_day(day)
        blob = serialize_slots(slots)
        filters = {"room_id": room_id, "date": key}
        existing = self.store.select(TABLE, filters=filters)
        if existing:
            self.store.update(TABLE, {"slots": blob}, filters=filters)
        else:
            try:
                self.store.insert(TABLE, {"room_id": room_id, "date": key, "slots": blob})
            except StorageFailure:
                # Lost an insert race; the other writer's row exists now
                if not self.store.select(TABLE, filters=filters):
                    raise
                self.store.update(TABLE, {"slots": blob}, filters=filters)
        logger.info("Saved availability for room %s on %s", room_id, key)

    def room_schedule(self, room_id: str) -> List[RoomAvailability]:
        """Every stored date for a room, oldest first. Unreadable records are skipped."""
        schedule = []
        for record in self.store.select(TABLE, filters={"room_id": room_id}, order_by="date"):
            try:
                parsed = parse_slots(record.get("slots"))
            except SlotParseError as exc:
                logger.warning("Skipping unreadable availability for room %s on %s: %s",
                               room_id, record.get("date"), exc)
                continue
            schedule.append(RoomAvailability(str(record["date"]), parsed.slots))
        return schedule

    def release_day(self, room_id: str, day: Union[date, str]) -> bool:
        """Mark every slot of an existing record available. Returns False when there is no record."""
        result = self.load(room_id, day)
        if result.source != SOURCE_STORED:
            return False
        for slot in result.slots:
            slot.is_available = True
        self.save_availability(room_id, day, result.slots)
        return True
