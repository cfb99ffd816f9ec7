"""Entity store: three named collections kept as JSON documents."""

import copy
import json
import logging
from typing import Any, Dict, Iterable, List

from database import KeyValueStore

logger = logging.getLogger(__name__)

BOOKS = "books"
STUDENTS = "students"
TRANSACTIONS = "transactions"
COLLECTIONS = (BOOKS, STUDENTS, TRANSACTIONS)

STORAGE_KEYS = {
    BOOKS: "lib_books",
    STUDENTS: "lib_students",
    TRANSACTIONS: "lib_transactions",
}

# Seeded on first access when nothing has been stored yet
SAMPLE_DATA: Dict[str, List[Dict[str, Any]]] = {
    BOOKS: [
        {"id": "1", "title": "The Pragmatic Programmer", "author": "Andrew Hunt", "category": "Tech",
         "total_copies": 5, "available_copies": 5},
        {"id": "2", "title": "To Kill a Mockingbird", "author": "Harper Lee", "category": "Fiction",
         "total_copies": 3, "available_copies": 3},
        {"id": "3", "title": "React Design Patterns", "author": "Multiple", "category": "Tech",
         "total_copies": 2, "available_copies": 2},
    ],
    STUDENTS: [
        {"id": "S1", "name": "Alice Johnson", "email": "alice@test.com", "phone": "555-0101",
         "borrowed_books": "[]"},
        {"id": "S2", "name": "Bob Smith", "email": "bob@test.com", "phone": "555-0102",
         "borrowed_books": "[]"},
    ],
    TRANSACTIONS: [],
}


class EntityStore:
    """Read-modify-write-all access to the books, students and transactions collections."""

    def __init__(self, kv: KeyValueStore, seed: bool = True) -> None:
        self.kv = kv
        self.seed = seed

    @staticmethod
    def _key(collection: str) -> str:
        try:
            return STORAGE_KEYS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        """Return every record of ``collection`` in stored order.

        An empty slot yields the sample records (or nothing when seeding is
        off). Unparseable or non-list documents read as an empty collection.
        """
        key = self._key(collection)
        raw = self.kv.get(key)
        if raw is None:
            return copy.deepcopy(SAMPLE_DATA[collection]) if self.seed else []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Malformed data under %s, treating as empty: %s", key, e)
            return []
        if not isinstance(data, list):
            logger.warning("Expected a list under %s, got %s; treating as empty", key, type(data).__name__)
            return []
        return [dict(item) for item in data if isinstance(item, dict)]

    def replace_all(self, collection: str, records: Iterable[Dict[str, Any]]) -> None:
        """Overwrite ``collection`` with ``records``."""
        key = self._key(collection)
        rows = [dict(r) for r in records]
        self.kv.set(key, json.dumps(rows, ensure_ascii=False, default=str))
        logger.debug("Replaced %s with %d records", collection, len(rows))
