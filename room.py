"""Room model and the time-slot blob format.

A room's availability for one date is stored as a JSON array of
``{"startTime": "HH:MM", "endTime": "HH:MM", "isAvailable": bool}`` objects.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Tuple

DEFAULT_ROOM_IMAGE = "https://images.pexels.com/photos/1329571/pexels-photo-1329571.jpeg"

# Six two-hour windows, 08:00 to 20:00
SLOT_TEMPLATE: Tuple[Tuple[str, str], ...] = (
    ("08:00", "10:00"),
    ("10:00", "12:00"),
    ("12:00", "14:00"),
    ("14:00", "16:00"),
    ("16:00", "18:00"),
    ("18:00", "20:00"),
)


class RoomAmenity(str, Enum):
    WIFI = "wifi"
    PROJECTOR = "projector"
    WHITEBOARD = "whiteboard"
    COMPUTERS = "computers"
    VIDEOCONFERENCING = "videoconferencing"
    PRINTER = "printer"
    STUDY_PODS = "study-pods"
    SILENCE = "silence"

    @property
    def label(self) -> str:
        return " ".join(word.capitalize() for word in self.value.split("-"))


class SlotParseError(ValueError):
    """The stored slot blob is not a JSON array."""


@dataclass
class TimeSlot:
    start_time: str
    end_time: str
    is_available: bool = True

    @property
    def label(self) -> str:
        return f"{self.start_time}-{self.end_time}"

    def to_dict(self) -> dict:
        return {"startTime": self.start_time, "endTime": self.end_time, "isAvailable": self.is_available}


@dataclass
class SlotParseResult:
    slots: List[TimeSlot]
    # One message per coerced field; empty when the blob was well-formed
    repairs: List[str] = field(default_factory=list)


def default_slots() -> List[TimeSlot]:
    """The slot template with every slot available."""
    return [TimeSlot(start, end, True) for start, end in SLOT_TEMPLATE]


def parse_slots(blob: Any) -> SlotParseResult:
    """Turn a stored slot blob into time slots.

    The blob may be JSON text or an already decoded list. Malformed elements
    are coerced to empty times and ``is_available=False``, and each coercion is
    recorded in ``repairs``. Anything that is not an array raises
    ``SlotParseError``.
    """
    if isinstance(blob, (str, bytes)):
        try:
            blob = json.loads(blob)
        except json.JSONDecodeError as exc:
            raise SlotParseError(f"Slot blob is not valid JSON: {exc}") from exc
    if not isinstance(blob, list):
        raise SlotParseError(f"Slot blob must be an array, got {type(blob).__name__}")

    slots: List[TimeSlot] = []
    repairs: List[str] = []
    for index, item in enumerate(blob):
        if not isinstance(item, dict):
            repairs.append(f"slot {index}: not an object, marked unavailable")
            slots.append(TimeSlot("", "", False))
            continue

        start = item.get("startTime")
        if not isinstance(start, str):
            repairs.append(f"slot {index}: startTime missing or not a string")
            start = ""
        end = item.get("endTime")
        if not isinstance(end, str):
            repairs.append(f"slot {index}: endTime missing or not a string")
            end = ""
        available = item.get("isAvailable")
        if not isinstance(available, bool):
            repairs.append(f"slot {index}: isAvailable missing or not a boolean")
            available = False
        slots.append(TimeSlot(start, end, available))

    return SlotParseResult(slots, repairs)


def serialize_slots(slots: List[TimeSlot]) -> str:
    return json.dumps([slot.to_dict() for slot in slots])


def parse_floor_map_position(position: Any) -> dict:
    if isinstance(position, str):
        try:
            position = json.loads(position)
        except json.JSONDecodeError:
            return {"x": 0, "y": 0}
    if isinstance(position, dict):
        x, y = position.get("x"), position.get("y")
        if isinstance(x, (int, float)) and isinstance(y, (int, float)):
            return {"x": x, "y": y}
    return {"x": 0, "y": 0}


@dataclass
class RoomAvailability:
    date: str
    slots: List[TimeSlot]

    @property
    def has_free_slot(self) -> bool:
        return any(slot.is_available for slot in self.slots)


class Room:
    """A bookable room."""

    def __init__(self, id: str | None, name: str, capacity: int, location: str | None = None,
                 description: str | None = None, amenities: list | None = None,
                 images: list | None = None, floor_map_position: Any = None) -> None:
        self.id = id
        self.name = name.strip()
        self.capacity = int(capacity)
        self.location = location or ""
        self.description = description or ""
        self.amenities = [RoomAmenity(a) for a in amenities or []]
        self.images = list(images or []) or [DEFAULT_ROOM_IMAGE]
        self.floor_map_position = parse_floor_map_position(floor_map_position)

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.capacity} seats)"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "capacity": self.capacity,
            "location": self.location,
            "description": self.description,
            "amenities": [a.value for a in self.amenities],
            "images": self.images,
            "floor_map_position": self.floor_map_position,
        }

    def to_row(self) -> dict:
        row = self.to_dict()
        if row["id"] is None:
            row.pop("id")
        return row

    @staticmethod
    def from_dict(data: dict) -> "Room":
        amenities = data.get("amenities") or []
        if isinstance(amenities, str):
            amenities = json.loads(amenities)
        images = data.get("images") or []
        if isinstance(images, str):
            images = json.loads(images)
        return Room(
            id=data.get("id"),
            name=data["name"],
            capacity=data["capacity"],
            location=data.get("location"),
            description=data.get("description"),
            amenities=amenities,
            images=images,
            floor_map_position=data.get("floor_map_position"),
        )
