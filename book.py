from __future__ import annotations

import json
from enum import Enum

DEFAULT_COVER = "https://images.unsplash.com/photo-1544947950-fa07a98d237f?q=80&w=200&auto=format"


class BookStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    CHECKED_OUT = "checked-out"


class BookCopy:
    """A physical copy of a book."""

    def __init__(self, id: str, book_id: str, status: str = BookStatus.AVAILABLE.value,
                 location: str | None = None, condition: str | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.status = BookStatus(status)
        self.location = location or ""
        self.condition = condition or ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "status": self.status.value,
            "location": self.location,
            "condition": self.condition,
        }

    @staticmethod
    def from_dict(data: dict) -> "BookCopy":
        return BookCopy(
            id=data["id"],
            book_id=data["book_id"],
            status=data.get("status") or BookStatus.AVAILABLE.value,
            location=data.get("location"),
            condition=data.get("condition"),
        )


class Book:
    """Represents a single title in the catalogue."""

    def __init__(self, title: str, author: str, id: str | None = None, isbn: str | None = None,
                 cover_image: str | None = None, description: str | None = None,
                 page_count: int | None = None, publication_year: int | None = None,
                 publisher: str | None = None, genres: list | None = None, language: str | None = None,
                 rating: float | None = None, added_date: str | None = None,
                 copies: list | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = (isbn or "").strip()
        self.cover_image = cover_image or DEFAULT_COVER
        self.description = description or ""
        self.page_count = page_count
        self.publication_year = publication_year
        self.publisher = publisher or ""
        self.genres = genres or []
        self.language = language or "en"
        self.rating = rating or 0
        self.added_date = added_date
        self.copies: list[BookCopy] = copies or []

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author}"

    @property
    def available_copies(self) -> int:
        return sum(1 for copy in self.copies if copy.status is BookStatus.AVAILABLE)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "cover_image": self.cover_image,
            "description": self.description,
            "page_count": self.page_count,
            "publication_year": self.publication_year,
            "publisher": self.publisher,
            "genres": self.genres,
            "language": self.language,
            "rating": self.rating,
            "added_date": self.added_date,
            "copies": [copy.to_dict() for copy in self.copies],
        }

    def to_row(self) -> dict:
        """Columns for the books table (copies live in their own table)."""
        row = self.to_dict()
        row.pop("copies")
        if row["id"] is None:
            row.pop("id")
        if row["added_date"] is None:
            row.pop("added_date")
        return row

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # Genres may arrive as JSON text from stores that do not decode it
        genres = data.get("genres")
        if isinstance(genres, str):
            try:
                genres = json.loads(genres)
            except json.JSONDecodeError:
                genres = [genres] if genres else []

        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            isbn=data.get("isbn"),
            cover_image=data.get("cover_image"),
            description=data.get("description"),
            page_count=data.get("page_count"),
            publication_year=data.get("publication_year"),
            publisher=data.get("publisher"),
            genres=genres,
            language=data.get("language"),
            rating=data.get("rating"),
            added_date=data.get("added_date"),
            copies=[BookCopy.from_dict(c) for c in data.get("copies") or []],
        )
