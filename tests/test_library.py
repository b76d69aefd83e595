import pytest

from book import Book, BookStatus
from library import Library
from reservation import ReservationStatus, ReservationType
from room import Room, TimeSlot
from store import SQLiteStore


def test_add_list_and_find_book(lib):
    assert lib.list_books() == []

    book = lib.add_book(Book("Ulysses", "James Joyce", isbn="9780199535675"), copies=2)

    found = lib.find_book(book.id)
    assert found is not None
    assert found.title == "Ulysses"
    assert found.available_copies == 2
    assert [b.title for b in lib.list_books()] == ["Ulysses"]


def test_add_book_rejects_bad_isbn(lib):
    with pytest.raises(ValueError, match="Invalid ISBN"):
        lib.add_book(Book("Test", "Author", isbn="1234567890"))


def test_persistence(store):
    Library(store=store).add_book(Book("Sapiens", "Yuval Noah Harari", isbn="9780099590088"))

    # A new store on the same file sees the data
    lib2 = Library(store=SQLiteStore(db_file=store.db_file))
    assert [b.title for b in lib2.list_books()] == ["Sapiens"]


def test_search_and_remove_book(lib):
    book = lib.add_book(Book("Dune", "Frank Herbert"))
    lib.add_book(Book("Emma", "Jane Austen"))

    assert [b.title for b in lib.search_books("herbert")] == ["Dune"]
    assert lib.remove_book(book.id) is True
    assert lib.remove_book(book.id) is False
    assert lib.find_book(book.id) is None


def test_update_book(lib):
    book = lib.add_book(Book("Old Title", "Old Author"))
    updated = lib.update_book(book.id, title="New Title", author=None)
    assert updated.title == "New Title"
    assert updated.author == "Old Author"
    assert lib.update_book("missing", title="X") is None


def test_create_reservation_is_pending(lib, room):
    r = lib.create_reservation("user-1", room.id, "room", "Study Room A", "2025-06-02", "2025-06-02")

    assert r.status is ReservationStatus.PENDING
    assert r.item_type is ReservationType.ROOM
    assert lib.get_reservation(r.id).title == "Study Room A"


def test_create_reservation_validates(lib):
    with pytest.raises(ValueError, match="End date cannot be before start date."):
        lib.create_reservation("user-1", "x", "room", "Room", "2025-06-03", "2025-06-02")
    with pytest.raises(ValueError, match="Invalid item type"):
        lib.create_reservation("user-1", "x", "desk", "Desk", "2025-06-02", "2025-06-02")


def test_create_reservation_sanitizes_title(lib, room):
    r = lib.create_reservation("user-1", room.id, "room", "<b>Study</b>", "2025-06-02", "2025-06-02")
    assert r.title == "Study"


def test_book_reservation_holds_and_releases_the_copy(lib):
    book = lib.add_book(Book("Dune", "Frank Herbert"), copies=1)
    copy_id = book.copies[0].id

    r = lib.create_reservation("user-1", copy_id, "book", "Dune", "2025-06-02", "2025-06-16")
    assert lib.find_book(book.id).copies[0].status is BookStatus.RESERVED

    lib.update_reservation_status(r.id, "Declined")
    assert lib.find_book(book.id).copies[0].status is BookStatus.AVAILABLE


def test_user_reservations_newest_first_and_pending_oldest_first(lib, room):
    first = lib.create_reservation("user-1", room.id, "room", "First", "2025-06-02", "2025-06-02")
    second = lib.create_reservation("user-1", room.id, "room", "Second", "2025-06-03", "2025-06-03")
    lib.create_reservation("user-2", room.id, "room", "Other", "2025-06-04", "2025-06-04")

    assert [r.id for r in lib.get_user_reservations("user-1")] == [second.id, first.id]
    assert [r.title for r in lib.get_pending_reservations()] == ["First", "Second", "Other"]


def test_overlapping_room_requests_are_not_rejected(lib, room):
    lib.create_reservation("user-1", room.id, "room", "A", "2025-06-02", "2025-06-02")
    lib.create_reservation("user-2", room.id, "room", "B", "2025-06-02", "2025-06-02")
    assert len(lib.get_all_reservations()) == 2


def test_approval_notifies_the_owner(lib, room):
    r = lib.create_reservation("user-1", room.id, "room", "Study Room A", "2025-06-02", "2025-06-02")

    updated = lib.update_reservation_status(r.id, "Approved")

    assert updated.status is ReservationStatus.APPROVED
    assert lib.get_pending_reservations() == []
    notes = lib.get_user_notifications("user-1")
    assert len(notes) == 1
    assert notes[0]["title"] == "Reservation Approved"
    assert notes[0]["message"] == 'Your reservation for "Study Room A" has been approved.'
    assert notes[0]["is_read"] is False
    assert lib.unread_count("user-1") == 1

    assert lib.mark_notification_as_read(notes[0]["id"]) is True
    assert lib.unread_count("user-1") == 0


def test_update_status_of_missing_reservation(lib):
    assert lib.update_reservation_status("missing", "Approved") is None
    with pytest.raises(ValueError):
        lib.update_reservation_status("missing", "Lost")


def test_complete_room_reservation_frees_its_day(lib, room):
    lib.availability.save_availability(room.id, "2025-06-02", [TimeSlot("08:00", "10:00", False)])
    r = lib.create_reservation("user-1", room.id, "room", "Study Room A", "2025-06-02", "2025-06-02")

    completed = lib.complete_reservation(r.id)

    assert completed.status is ReservationStatus.COMPLETED
    assert lib.availability.load_availability(room.id, "2025-06-02") == [TimeSlot("08:00", "10:00", True)]
    # Completion does not notify
    assert lib.get_user_notifications("user-1") == []


def test_rooms_crud_and_search(lib, room):
    lab = lib.add_room(Room(None, "Computer Lab", 20, "First Floor", "Desktops", ["wifi", "computers"]))

    assert [r.name for r in lib.list_rooms()] == ["Computer Lab", "Quiet Study Room A"]
    assert [r.name for r in lib.search_rooms("quiet")] == ["Quiet Study Room A"]
    assert [r.name for r in lib.search_rooms(capacity=10)] == ["Computer Lab"]
    assert [r.name for r in lib.search_rooms(amenities=["whiteboard"])] == ["Quiet Study Room A"]
    assert lib.all_amenities() == ["computers", "whiteboard", "wifi"]

    updated = lib.update_room(lab.id, capacity=24)
    assert updated.capacity == 24
    assert lib.delete_room(lab.id) is True
    assert lib.get_room(lab.id) is None


def test_search_rooms_by_date_skips_fully_booked_rooms(lib, room):
    other = lib.add_room(Room(None, "Group Room", 8))
    lib.availability.save_availability(room.id, "2025-06-02", [TimeSlot("08:00", "10:00", False)])

    names = [r.name for r in lib.search_rooms(date="2025-06-02")]
    assert names == [other.name]
    # No stored record means every slot is free
    assert len(lib.search_rooms(date="2025-06-03")) == 2


def test_add_room_validates(lib):
    with pytest.raises(ValueError, match="Capacity must be positive."):
        lib.add_room(Room(None, "Closet", 0))
    with pytest.raises(ValueError):
        lib.add_room(Room(None, "Pool", 4, amenities=["pool"]))


def test_delete_room_removes_its_availability(lib, room):
    lib.availability.save_availability(room.id, "2025-06-02", [TimeSlot("08:00", "10:00", True)])
    assert lib.delete_room(room.id) is True
    assert lib.store.select("room_availability") == []


def test_profiles(lib):
    profile = lib.create_profile("user-1", "ada@example.com", " Ada ")
    assert profile["name"] == "Ada"
    assert profile["role"] == "member"

    with pytest.raises(ValueError, match="Invalid role"):
        lib.create_profile("user-2", "bob@example.com", "Bob", role="owner")
    with pytest.raises(ValueError, match="Invalid email"):
        lib.create_profile("user-3", "not-an-email", "Eve")

    updated = lib.update_profile("user-1", role="librarian")
    assert updated["role"] == "librarian"
    assert updated["updated_at"]
    assert lib.list_members() == []
