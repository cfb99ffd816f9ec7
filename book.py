from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any


def _to_int(value: Any, default: int = 0) -> int:
    # Spreadsheet cells may come back as floats or numeric strings
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


class Book:
    """Represents a catalog entry and its copy counts."""

    def __init__(self, id: str, title: str, author: str, category: str = "General",
                 total_copies: int = 1, available_copies: int | None = None) -> None:
        self.id = str(id)
        self.title = title.strip()
        self.author = author.strip()
        self.category = (category or "General").strip()
        self.total_copies = total_copies
        self.available_copies = total_copies if available_copies is None else available_copies

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.available_copies}/{self.total_copies} available)"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        total = _to_int(data.get("total_copies"))
        return Book(
            id=data.get("id", ""),
            title=str(data.get("title") or ""),
            author=str(data.get("author") or ""),
            category=str(data.get("category") or "General"),
            total_copies=total,
            available_copies=_to_int(data.get("available_copies"), total),
        )


@dataclass
class BookPatch:
    """Optional overrides for a book; ``None`` leaves the field unchanged."""

    title: str | None = None
    author: str | None = None
    category: str | None = None
    total_copies: int | None = None
    available_copies: int | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def apply(self, book: Book) -> Book:
        """Return a new Book with every set field overridden."""
        merged = book.to_dict()
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            merged[f.name] = value
        return Book.from_dict(merged)
