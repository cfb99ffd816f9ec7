from __future__ import annotations

import json
from typing import Iterable


def parse_borrowed(raw) -> list[str]:
    """Turn the persisted borrowed-books text into a de-duplicated list of ids.

    Malformed text reads as an empty list.
    """
    if raw is None or raw == "":
        return []
    items = raw
    if isinstance(raw, str):
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            return []
    if not isinstance(items, (list, tuple, set, frozenset)):
        return []
    seen: list[str] = []
    for item in items:
        book_id = str(item)
        if book_id not in seen:
            seen.append(book_id)
    return seen


class Student:
    """A borrower and the ids of the books they currently hold."""

    def __init__(self, id: str, name: str, email: str, phone: str = "",
                 borrowed_books: Iterable[str] | None = None) -> None:
        self.id = str(id)
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone
        self.borrowed_books = parse_borrowed(borrowed_books)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Student):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def holds(self, book_id: str) -> bool:
        return str(book_id) in self.borrowed_books

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "borrowed_books": json.dumps(self.borrowed_books),
        }

    @staticmethod
    def from_dict(data: dict) -> "Student":
        phone = data.get("phone")
        return Student(
            id=data.get("id", ""),
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            phone="" if phone is None else str(phone),
            borrowed_books=parse_borrowed(data.get("borrowed_books")),
        )
