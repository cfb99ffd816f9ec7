import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from book import Book, BookPatch
from circulation import TransactionStateMachine, new_id, today_iso
from config import settings
from database import KeyValueStore, SQLiteKeyValueStore
from errors import ConflictError
from ledger import InventoryLedger
from store import BOOKS, STUDENTS, TRANSACTIONS, EntityStore
from student import Student
from transaction import AWAITING_DECISION, Decision, Transaction, TransactionKind, TransactionStatus
from validators import CopyCountValidator, TextValidator

logger = logging.getLogger(__name__)

UNKNOWN_BOOK = "Unknown Book"
UNKNOWN_STUDENT = "Unknown Student"


def _as_record(item: Any) -> Dict[str, Any]:
    to_dict = getattr(item, "to_dict", None)
    return to_dict() if callable(to_dict) else dict(item)


class Library:
    """Catalog, students and circulation behind one object.

    Every operation that reads and rewrites a collection runs under one
    re-entrant lock, so callers sharing an instance (e.g. API worker threads)
    never interleave inside a request.
    """

    def __init__(self, db_file: Optional[str] = None, kv: Optional[KeyValueStore] = None,
                 seed: Optional[bool] = None, today: Optional[Callable[[], str]] = None) -> None:
        if kv is None:
            kv = SQLiteKeyValueStore(db_file or settings.data_file)
        self.kv = kv
        self.store = EntityStore(kv, seed=settings.seed_sample_data if seed is None else seed)
        self.ledger = InventoryLedger(self.store)
        self.circulation = TransactionStateMachine(self.store, self.ledger, today=today or today_iso)
        self._lock = threading.RLock()

    # ------------------------- Reads ------------------------- #
    def get_books(self) -> List[Book]:
        return [Book.from_dict(row) for row in self.store.get_all(BOOKS)]

    def get_students(self) -> List[Student]:
        return [Student.from_dict(row) for row in self.store.get_all(STUDENTS)]

    def get_transactions(self) -> List[Transaction]:
        return [Transaction.from_dict(row) for row in self.store.get_all(TRANSACTIONS)]

    def find_book(self, book_id: str) -> Optional[Book]:
        return next((b for b in self.get_books() if b.id == str(book_id)), None)

    def find_student(self, student_id: str) -> Optional[Student]:
        return next((s for s in self.get_students() if s.id == str(student_id)), None)

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self.get_transactions() if t.id == str(transaction_id)), None)

    def get_student_by_email(self, email: str) -> Optional[Student]:
        """Case-insensitive exact match on the student's email."""
        wanted = TextValidator.normalize_email(email)
        if not wanted:
            return None
        for student in self.get_students():
            if TextValidator.normalize_email(student.email) == wanted:
                return student
        return None

    def search_books(self, query: str) -> List[Book]:
        """Books whose title, author or category contains ``query``, ignoring case."""
        needle = (query or "").strip().lower()
        books = self.get_books()
        if not needle:
            return books
        return [
            b for b in books
            if needle in b.title.lower() or needle in b.author.lower() or needle in b.category.lower()
        ]

    # ------------------------- Catalog ------------------------- #
    def add_book(self, title: str, author: str, total_copies: int, category: Optional[str] = None) -> Book:
        """Add a book with every copy on the shelf."""
        if not TextValidator.validate_title(title):
            raise ValueError("Title is required.")
        if not TextValidator.validate_author(author):
            raise ValueError("Author is required.")
        if not CopyCountValidator.validate_total(total_copies):
            raise ValueError("Total copies must be a whole number of at least 1.")

        book = Book(id=new_id(), title=title, author=author, category=category or "General",
                    total_copies=total_copies, available_copies=total_copies)
        with self._lock:
            rows = self.store.get_all(BOOKS)
            rows.append(book.to_dict())
            self.store.replace_all(BOOKS, rows)
        logger.info("Added book %s: %s", book.id, book.title)
        return book

    def update_book(self, book_id: str, patch: BookPatch) -> Optional[Book]:
        """Apply ``patch`` to a book. Returns the updated book, or None if not found.

        Changing ``total_copies`` without giving ``available_copies`` moves the
        available count by the same amount, so copies on loan stay on loan.
        """
        if patch is None or patch.is_empty():
            raise ValueError("Nothing to update. Provide at least one field.")

        with self._lock:
            rows = self.store.get_all(BOOKS)
            for index, row in enumerate(rows):
                if str(row.get("id")) != str(book_id):
                    continue
                current = Book.from_dict(row)
                updated = patch.apply(current)
                if patch.total_copies is not None and patch.available_copies is None:
                    updated.available_copies = current.available_copies + (updated.total_copies - current.total_copies)
                if not CopyCountValidator.validate_counts(updated.total_copies, updated.available_copies):
                    raise ValueError(
                        f"Available copies ({updated.available_copies}) must be between 0 "
                        f"and total copies ({updated.total_copies})."
                    )
                rows[index] = updated.to_dict()
                self.store.replace_all(BOOKS, rows)
                logger.info("Updated book %s", updated.id)
                return updated
        return None

    def delete_book(self, book_id: str) -> bool:
        """Remove a book. Refused while any request for it is still active."""
        with self._lock:
            rows = self.store.get_all(BOOKS)
            remaining = [r for r in rows if str(r.get("id")) != str(book_id)]
            if len(remaining) == len(rows):
                return False
            if any(t.book_id == str(book_id) and t.status.is_active for t in self.get_transactions()):
                raise ConflictError("This book has active requests or loans and cannot be deleted.")
            self.store.replace_all(BOOKS, remaining)
        logger.info("Deleted book %s", book_id)
        return True

    # ------------------------- Circulation ------------------------- #
    def request_borrow(self, student_id: str, book_id: str) -> Transaction:
        with self._lock:
            return self.circulation.request_borrow(student_id, book_id)

    def request_return(self, student_id: str, book_id: str) -> Transaction:
        with self._lock:
            return self.circulation.request_return(student_id, book_id)

    def create_transaction(self, student_id: str, book_id: str,
                           kind: Union[TransactionKind, str]) -> Transaction:
        """``issue`` opens a borrow request, ``return`` asks to give a book back."""
        kind = TransactionKind(kind)
        if kind is TransactionKind.ISSUE:
            return self.request_borrow(student_id, book_id)
        return self.request_return(student_id, book_id)

    def process_transaction(self, transaction_id: str,
                            action: Union[Decision, str]) -> Optional[Transaction]:
        with self._lock:
            return self.circulation.decide(transaction_id, action)

    def active_transaction(self, student_id: str, book_id: str) -> Optional[Transaction]:
        return self.circulation.find_active(student_id, book_id)

    # ------------------------- Views ------------------------- #
    def transaction_history(self, student_id: Optional[str] = None) -> List[Transaction]:
        """Most recent first by issue date; same-day entries keep insertion order."""
        txs = self.get_transactions()
        if student_id is not None:
            txs = [t for t in txs if t.student_id == str(student_id)]
        return sorted(txs, key=lambda t: t.issue_date, reverse=True)

    def pending_requests(self) -> List[Transaction]:
        return [t for t in self.get_transactions() if t.status in AWAITING_DECISION]

    def describe_transaction(self, tx: Transaction,
                             books: Optional[Dict[str, Book]] = None,
                             students: Optional[Dict[str, Student]] = None) -> Dict[str, Any]:
        """Transaction row plus the book title and student name it points at."""
        if books is None:
            books = {b.id: b for b in self.get_books()}
        if students is None:
            students = {s.id: s for s in self.get_students()}
        book = books.get(tx.book_id)
        student = students.get(tx.student_id)
        data = tx.to_dict()
        data["return_date"] = tx.return_date
        data["book_title"] = book.title if book else UNKNOWN_BOOK
        data["student_name"] = student.name if student else UNKNOWN_STUDENT
        return data

    def describe_transactions(self, txs: Iterable[Transaction]) -> List[Dict[str, Any]]:
        books = {b.id: b for b in self.get_books()}
        students = {s.id: s for s in self.get_students()}
        return [self.describe_transaction(t, books, students) for t in txs]

    def get_statistics(self) -> Dict[str, Any]:
        """Dashboard totals."""
        books = self.get_books()
        txs = self.get_transactions()
        return {
            "total_books": len(books),
            "total_copies": sum(b.total_copies for b in books),
            "available_copies": sum(b.available_copies for b in books),
            "total_students": len(self.get_students()),
            "pending_requests": sum(1 for t in txs if t.status in AWAITING_DECISION),
            "issued_books": sum(1 for t in txs if t.status == TransactionStatus.ISSUED),
        }

    # ------------------------- Bulk replace ------------------------- #
    def save_books(self, books: Iterable[Any]) -> None:
        with self._lock:
            self.store.replace_all(BOOKS, [_as_record(b) for b in books])

    def save_students(self, students: Iterable[Any]) -> None:
        with self._lock:
            self.store.replace_all(STUDENTS, [_as_record(s) for s in students])

    def save_transactions(self, transactions: Iterable[Any]) -> None:
        with self._lock:
            self.store.replace_all(TRANSACTIONS, [_as_record(t) for t in transactions])

    def get_collection(self, collection: str) -> List[Dict[str, Any]]:
        """Raw stored rows of a collection, as the spreadsheet bridge sees them."""
        return self.store.get_all(collection)

    def save_collection(self, collection: str, rows: Iterable[Any]) -> None:
        with self._lock:
            self.store.replace_all(collection, [_as_record(r) for r in rows])

    def close(self) -> None:
        """Release the storage collaborator."""
        close = getattr(self.kv, "close", None)
        if callable(close):
            close()
