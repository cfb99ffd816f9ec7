import logging

from book import Book
from errors import InventoryError
from store import BOOKS, STUDENTS, EntityStore
from student import Student

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Keeps copy counts and borrowed sets in step with approved transactions.

    Only the transaction state machine calls into this class.
    """

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def adjust_availability(self, book_id: str, delta: int) -> Book:
        """Add ``delta`` to the book's available copies and persist it.

        Raises InventoryError, writing nothing, when the book is missing or the
        result would leave ``[0, total_copies]``.
        """
        books = [Book.from_dict(row) for row in self.store.get_all(BOOKS)]
        book = next((b for b in books if b.id == str(book_id)), None)
        if book is None:
            raise InventoryError(f"Book {book_id} does not exist.")

        new_available = book.available_copies + delta
        if new_available < 0 or new_available > book.total_copies:
            raise InventoryError(
                f"Cannot change available copies of '{book.title}' to {new_available} "
                f"(total copies: {book.total_copies})."
            )

        book.available_copies = new_available
        self.store.replace_all(BOOKS, [b.to_dict() for b in books])
        logger.info("Book %s availability %+d -> %d/%d", book.id, delta, new_available, book.total_copies)
        return book

    def set_borrowed(self, student_id: str, book_id: str, present: bool) -> None:
        """Add or remove ``book_id`` in the student's borrowed set; both directions are idempotent."""
        students = [Student.from_dict(row) for row in self.store.get_all(STUDENTS)]
        student = next((s for s in students if s.id == str(student_id)), None)
        if student is None:
            logger.warning("Student %s not found; borrowed set left unchanged", student_id)
            return

        book_id = str(book_id)
        if present:
            if book_id in student.borrowed_books:
                return
            student.borrowed_books.append(book_id)
        else:
            if book_id not in student.borrowed_books:
                return
            student.borrowed_books = [b for b in student.borrowed_books if b != book_id]

        self.store.replace_all(STUDENTS, [s.to_dict() for s in students])
        logger.info("Student %s %s book %s", student.id, "now holds" if present else "no longer holds", book_id)
