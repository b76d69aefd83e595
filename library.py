import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from availability import AvailabilityStore
from book import Book, BookCopy, BookStatus
from reservation import Reservation, ReservationStatus, ReservationType
from room import Room, RoomAmenity
from store import NotFound, Store, create_store
from utils.validators import TextValidator, is_valid_isbn, validate_reservation_request

logger = logging.getLogger(__name__)

USER_ROLES = ("member", "librarian", "admin")


class Library:
    """Books, rooms, reservations, notifications and profiles over a storage backend."""

    def __init__(self, store: Optional[Store] = None) -> None:
        self.store = store or create_store()
        self.availability = AvailabilityStore(self.store)

    # ------------------------- Books ------------------------- #
    def list_books(self) -> List[Book]:
        """All books ordered by title, each with its copies."""
        copies = self._copies_by_book()
        books = []
        for row in self.store.select("books", order_by="title"):
            book = Book.from_dict(row)
            book.copies = copies.get(book.id, [])
            books.append(book)
        return books

    def find_book(self, book_id: str) -> Optional[Book]:
        try:
            row = self.store.select_single("books", filters={"id": book_id})
        except NotFound:
            return None
        book = Book.from_dict(row)
        book.copies = [BookCopy.from_dict(c) for c in self.store.select("book_copies", filters={"book_id": book_id})]
        return book

    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive match on title, author or ISBN."""
        needle = (query or "").strip().lower()
        if not needle:
            return self.list_books()
        return [
            b for b in self.list_books()
            if needle in b.title.lower() or needle in b.author.lower() or needle in b.isbn.lower()
        ]

    def add_book(self, book: Book, copies: int = 1, location: str = "Main Shelf") -> Book:
        """Insert a book together with ``copies`` available copies."""
        if TextValidator.is_blank(book.title) or TextValidator.is_blank(book.author):
            raise ValueError("Title and author are required.")
        if book.isbn and not is_valid_isbn(book.isbn):
            raise ValueError(f"Invalid ISBN {book.isbn}.")
        if copies < 0:
            raise ValueError("Number of copies cannot be negative.")

        row = self.store.insert("books", book.to_row())
        created = Book.from_dict(row)
        for _ in range(copies):
            copy = self.store.insert("book_copies", {
                "book_id": created.id,
                "status": BookStatus.AVAILABLE.value,
                "location": location,
                "condition": "good",
            })
            created.copies.append(BookCopy.from_dict(copy))
        logger.info("Added book %s (%s) with %d copies", created.title, created.id, copies)
        return created

    def update_book(self, book_id: str, **fields: Any) -> Optional[Book]:
        """Update the given columns of a book. Returns None if the book does not exist."""
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            raise ValueError("Nothing to update.")
        if not self.store.update("books", fields, filters={"id": book_id}):
            return None
        return self.find_book(book_id)

    def remove_book(self, book_id: str) -> bool:
        self.store.delete("book_copies", filters={"book_id": book_id})
        return self.store.delete("books", filters={"id": book_id}) > 0

    def set_copy_status(self, copy_id: str, status: str) -> bool:
        return self.store.update("book_copies", {"status": BookStatus(status).value}, filters={"id": copy_id}) > 0

    def _copies_by_book(self) -> Dict[str, List[BookCopy]]:
        grouped: Dict[str, List[BookCopy]] = {}
        for row in self.store.select("book_copies"):
            grouped.setdefault(row["book_id"], []).append(BookCopy.from_dict(row))
        return grouped

    # ------------------------- Reservations ------------------------- #
    def get_user_reservations(self, user_id: str) -> List[Reservation]:
        """A user's reservations, newest first."""
        rows = self.store.select("reservations", filters={"user_id": user_id}, order_by="created_at", descending=True)
        return [Reservation.from_dict(r) for r in rows]

    def get_pending_reservations(self) -> List[Reservation]:
        """Requests awaiting a librarian, oldest first."""
        rows = self.store.select("reservations", filters={"status": ReservationStatus.PENDING.value},
                                 order_by="created_at")
        return [Reservation.from_dict(r) for r in rows]

    def get_all_reservations(self, status: Optional[str] = None) -> List[Reservation]:
        filters = {"status": ReservationStatus(status).value} if status else None
        rows = self.store.select("reservations", filters=filters, order_by="created_at", descending=True)
        return [Reservation.from_dict(r) for r in rows]

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        try:
            return Reservation.from_dict(self.store.select_single("reservations", filters={"id": reservation_id}))
        except NotFound:
            return None

    def create_reservation(self, user_id: str, item_id: str, item_type: str, title: str,
                           start_date: str, end_date: str, notes: Optional[str] = None) -> Reservation:
        """Record a Pending reservation request.

        A book reservation also marks the reserved copy as reserved. Overlapping
        requests for the same room are not rejected.
        """
        errors = validate_reservation_request(item_type, title, start_date, end_date)
        if errors:
            raise ValueError(" ".join(errors))

        row = self.store.insert("reservations", {
            "user_id": user_id,
            "item_id": item_id,
            "item_type": ReservationType(item_type).value,
            "title": TextValidator.sanitize_text(title),
            "start_date": start_date,
            "end_date": end_date,
            "status": ReservationStatus.PENDING.value,
            "notes": TextValidator.sanitize_text(notes) if notes else None,
        })
        reservation = Reservation.from_dict(row)
        if reservation.item_type is ReservationType.BOOK:
            self.set_copy_status(item_id, BookStatus.RESERVED.value)
        logger.info("Created %s reservation %s for user %s", item_type, reservation.id, user_id)
        return reservation

    def update_reservation_status(self, reservation_id: str, status: str) -> Optional[Reservation]:
        """Move a reservation to ``status`` and notify its owner on approval or decline."""
        new_status = ReservationStatus(status)
        reservation = self.get_reservation(reservation_id)
        if reservation is None:
            return None

        self.store.update("reservations", {"status": new_status.value}, filters={"id": reservation_id})
        reservation.status = new_status

        if new_status in (ReservationStatus.APPROVED, ReservationStatus.DECLINED):
            verb = "approved" if new_status is ReservationStatus.APPROVED else "declined"
            self.create_notification(
                user_id=reservation.user_id,
                title=f"Reservation {new_status.value}",
                message=f'Your reservation for "{reservation.title}" has been {verb}.',
                related_reservation_id=reservation.id,
            )
        if new_status is ReservationStatus.DECLINED and reservation.item_type is ReservationType.BOOK:
            self.set_copy_status(reservation.item_id, BookStatus.AVAILABLE.value)
        return reservation

    def complete_reservation(self, reservation_id: str) -> Optional[Reservation]:
        """Mark a reservation Completed and release what it held."""
        reservation = self.update_reservation_status(reservation_id, ReservationStatus.COMPLETED.value)
        if reservation is None:
            return None
        if reservation.item_type is ReservationType.BOOK:
            self.set_copy_status(reservation.item_id, BookStatus.AVAILABLE.value)
        else:
            self.availability.release_day(reservation.item_id, reservation.start)
        return reservation

    # ------------------------- Rooms ------------------------- #
    def list_rooms(self) -> List[Room]:
        return [Room.from_dict(r) for r in self.store.select("rooms", order_by="name")]

    def get_room(self, room_id: str) -> Optional[Room]:
        try:
            return Room.from_dict(self.store.select_single("rooms", filters={"id": room_id}))
        except NotFound:
            return None

    def search_rooms(self, query: str = "", capacity: Optional[int] = None,
                     amenities: Optional[List[str]] = None, date: Optional[str] = None) -> List[Room]:
        """Filter rooms by text, minimum capacity, required amenities and free slots on ``date``."""
        needle = (query or "").strip().lower()
        wanted = {RoomAmenity(a) for a in amenities or []}
        rooms = []
        for room in self.list_rooms():
            if needle and not any(needle in field.lower() for field in (room.name, room.description, room.location)):
                continue
            if capacity and room.capacity < capacity:
                continue
            if not wanted.issubset(room.amenities):
                continue
            if date and not any(s.is_available for s in self.availability.load_availability(room.id, date)):
                continue
            rooms.append(room)
        return rooms

    def add_room(self, room: Room) -> Room:
        if TextValidator.is_blank(room.name):
            raise ValueError("Room name is required.")
        if room.capacity <= 0:
            raise ValueError("Capacity must be positive.")
        return Room.from_dict(self.store.insert("rooms", room.to_row()))

    def update_room(self, room_id: str, **fields: Any) -> Optional[Room]:
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            raise ValueError("Nothing to update.")
        if "amenities" in fields:
            fields["amenities"] = [RoomAmenity(a).value for a in fields["amenities"]]
        if not self.store.update("rooms", fields, filters={"id": room_id}):
            return None
        return self.get_room(room_id)

    def delete_room(self, room_id: str) -> bool:
        self.store.delete("room_availability", filters={"room_id": room_id})
        return self.store.delete("rooms", filters={"id": room_id}) > 0

    def all_amenities(self) -> List[str]:
        """Amenities in use, sorted; the full set when no room lists any."""
        used = {a.value for room in self.list_rooms() for a in room.amenities}
        return sorted(used) if used else [a.value for a in RoomAmenity]

    # ------------------------- Notifications ------------------------- #
    def get_user_notifications(self, user_id: str) -> List[dict]:
        return self.store.select("notifications", filters={"user_id": user_id}, order_by="created_at", descending=True)

    def create_notification(self, user_id: str, title: str, message: str,
                            related_reservation_id: Optional[str] = None) -> dict:
        return self.store.insert("notifications", {
            "user_id": user_id,
            "title": title,
            "message": message,
            "is_read": False,
            "related_reservation_id": related_reservation_id,
        })

    def mark_notification_as_read(self, notification_id: str) -> bool:
        return self.store.update("notifications", {"is_read": True}, filters={"id": notification_id}) > 0

    def unread_count(self, user_id: str) -> int:
        return len(self.store.select("notifications", filters={"user_id": user_id, "is_read": False}))

    # ------------------------- Profiles ------------------------- #
    def get_profile(self, user_id: str) -> Optional[dict]:
        try:
            return self.store.select_single("profiles", filters={"id": user_id})
        except NotFound:
            return None

    def create_profile(self, user_id: str, email: str, name: str, role: str = "member") -> dict:
        if role not in USER_ROLES:
            raise ValueError(f"Invalid role {role!r}.")
        if not TextValidator.is_valid_email(email):
            raise ValueError(f"Invalid email {email!r}.")
        return self.store.insert("profiles", {"id": user_id, "email": email, "name": name.strip(), "role": role})

    def update_profile(self, user_id: str, name: Optional[str] = None, role: Optional[str] = None) -> Optional[dict]:
        values: Dict[str, Any] = {}
        if name is not None:
            if TextValidator.is_blank(name):
                raise ValueError("Name cannot be empty.")
            values["name"] = name.strip()
        if role is not None:
            if role not in USER_ROLES:
                raise ValueError(f"Invalid role {role!r}.")
            values["role"] = role
        if not values:
            raise ValueError("Nothing to update.")
        values["updated_at"] = datetime.utcnow().isoformat(timespec="seconds")
        if not self.store.update("profiles", values, filters={"id": user_id}):
            return None
        return self.get_profile(user_id)

    def list_members(self) -> List[dict]:
        return self.store.select("profiles", filters={"role": "member"}, order_by="name")

    def close(self) -> None:
        self.store.close()
