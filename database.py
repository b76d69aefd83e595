import json
import logging
import os
import sqlite3
import tempfile
import uuid
from typing import Dict, List, Tuple

from dotenv import load_dotenv

# Load .env before reading os.environ so the module import order does not matter
# (e.g. library -> store -> database -> config).
load_dotenv()

logger = logging.getLogger(__name__)

# Default database file.
# Priority:
# 1) LIBRARY_DB_FILE (explicit override)
# 2) LIBRARY_DATA_FILE (used by config.py/.env)
# 3) per-process temp file
DATABASE_FILE = (
    os.environ.get("LIBRARY_DB_FILE")
    or os.environ.get("LIBRARY_DATA_FILE")
    or os.path.join(tempfile.gettempdir(), f"library_{os.getpid()}.db")
)

# Column names per table. Used to validate filters and payloads before they
# are interpolated into SQL.
TABLES: Dict[str, Tuple[str, ...]] = {
    "profiles": ("id", "email", "name", "role", "created_at", "updated_at"),
    "books": (
        "id", "title", "author", "isbn", "cover_image", "description", "page_count",
        "publication_year", "publisher", "genres", "language", "rating", "added_date",
    ),
    "book_copies": ("id", "book_id", "status", "location", "condition"),
    "rooms": (
        "id", "name", "description", "capacity", "location", "amenities", "images",
        "floor_map_position",
    ),
    "room_availability": ("id", "room_id", "date", "slots"),
    "reservations": (
        "id", "user_id", "item_id", "item_type", "title", "start_date", "end_date",
        "status", "notes", "created_at",
    ),
    "notifications": (
        "id", "user_id", "title", "message", "created_at", "is_read",
        "related_reservation_id",
    ),
}

# Structured columns stored as JSON text. room_availability.slots is not listed:
# it is an opaque blob owned by the availability store.
JSON_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "books": ("genres",),
    "rooms": ("amenities", "images", "floor_map_position"),
}

BOOL_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "notifications": ("is_read",),
}

# Tables whose rows get a created_at timestamp when none is supplied
TIMESTAMPED_TABLES = ("profiles", "reservations", "notifications")

SAMPLE_ROOMS: List[dict] = [
    {
        "name": "Study Room A",
        "description": "A quiet study room for individual or small group study sessions.",
        "capacity": 4,
        "location": "First Floor, East Wing",
        "amenities": ["wifi", "whiteboard", "silence"],
        "images": ["https://images.pexels.com/photos/1329571/pexels-photo-1329571.jpeg"],
    },
    {
        "name": "Collaboration Space",
        "description": "Open space designed for group projects and collaborative work.",
        "capacity": 12,
        "location": "Second Floor, Central Area",
        "amenities": ["wifi", "projector", "whiteboard", "videoconferencing"],
        "images": ["https://images.pexels.com/photos/1181406/pexels-photo-1181406.jpeg"],
    },
    {
        "name": "Computer Lab",
        "description": "Room equipped with desktop computers and specialized software.",
        "capacity": 20,
        "location": "First Floor, West Wing",
        "amenities": ["wifi", "computers", "printer"],
        "images": ["https://images.pexels.com/photos/267507/pexels-photo-267507.jpeg"],
    },
]


def get_db_connection(db_file: str | None = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database with dict-like rows."""
    conn = sqlite3.connect(db_file or DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables(db_file: str | None = None) -> None:
    """Create the required tables if they do not exist."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                name TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'member' CHECK(role IN ('member', 'librarian', 'admin')),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT,
                cover_image TEXT,
                description TEXT,
                page_count INTEGER,
                publication_year INTEGER,
                publisher TEXT,
                genres TEXT,
                language TEXT DEFAULT 'en',
                rating REAL DEFAULT 0,
                added_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS book_copies (
                id TEXT PRIMARY KEY,
                book_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'available'
                    CHECK(status IN ('available', 'reserved', 'checked-out')),
                location TEXT,
                condition TEXT,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS rooms (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                capacity INTEGER NOT NULL,
                location TEXT,
                amenities TEXT NOT NULL DEFAULT '[]',
                images TEXT,
                floor_map_position TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS room_availability (
                id TEXT PRIMARY KEY,
                room_id TEXT NOT NULL,
                date TEXT NOT NULL,
                slots TEXT NOT NULL,
                UNIQUE (room_id, date),
                FOREIGN KEY (room_id) REFERENCES rooms(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reservations (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                item_id TEXT NOT NULL,
                item_type TEXT NOT NULL CHECK(item_type IN ('book', 'room')),
                title TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'Pending'
                    CHECK(status IN ('Pending', 'Approved', 'Declined', 'Completed')),
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                is_read INTEGER NOT NULL DEFAULT 0,
                related_reservation_id TEXT
            )
        """)

        # Indexes for the filters the application actually uses
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_reservations_user_id ON reservations(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_reservations_status ON reservations(status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_book_copies_book_id ON book_copies(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user_id ON notifications(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        # One slot record per room and date, also for files created before the table constraint
        cursor.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_room_availability_room_date ON room_availability(room_id, date)"
        )

        conn.commit()
    finally:
        conn.close()


def seed_sample_rooms(db_file: str | None = None) -> int:
    """Insert the sample rooms when the rooms table is empty.

    Returns the number of rooms inserted.
    """
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM rooms")
        if cursor.fetchone()[0] > 0:
            return 0

        rows = [
            (
                str(uuid.uuid4()),
                room["name"],
                room["description"],
                room["capacity"],
                room["location"],
                json.dumps(room["amenities"]),
                json.dumps(room["images"]),
            )
            for room in SAMPLE_ROOMS
        ]
        cursor.executemany(
            "INSERT INTO rooms (id, name, description, capacity, location, amenities, images) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
        conn.commit()
        logger.info("Seeded %d sample rooms", len(rows))
        return len(rows)
    finally:
        conn.close()


def initialize_database(db_file: str | None = None, seed: bool = False) -> None:
    """Create the tables and optionally seed sample data."""
    create_tables(db_file)
    if seed:
        seed_sample_rooms(db_file)
