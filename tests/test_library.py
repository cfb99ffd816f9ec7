import pytest

from book import BookPatch
from errors import ConflictError
from library import UNKNOWN_BOOK, UNKNOWN_STUDENT, Library
from transaction import TransactionStatus


def test_seeded_catalog_and_students(lib):
    books = lib.get_books()
    assert [b.id for b in books] == ["1", "2", "3"]
    assert all(b.available_copies == b.total_copies for b in books)
    assert [s.email for s in lib.get_students()] == ["alice@test.com", "bob@test.com"]
    assert lib.get_transactions() == []


def test_add_book_defaults(lib):
    book = lib.add_book("Clean Code", "Robert C. Martin", 3)
    assert book.category == "General"
    assert book.available_copies == 3
    assert lib.find_book(book.id) == book


@pytest.mark.parametrize("title, author, copies", [
    ("", "Author", 1),
    ("Title", "   ", 1),
    ("Title", "Author", 0),
])
def test_add_book_rejects_bad_form(lib, title, author, copies):
    with pytest.raises(ValueError):
        lib.add_book(title, author, copies)


def test_persistence(tmp_path):
    db_file = str(tmp_path / "persist.db")
    lib = Library(db_file=db_file, seed=False)
    book = lib.add_book("Sapiens", "Yuval Noah Harari", 2)

    lib2 = Library(db_file=db_file, seed=False)
    assert lib2.find_book(book.id).title == "Sapiens"


def test_update_book_partial(lib):
    updated = lib.update_book("1", BookPatch(title="The Pragmatic Programmer, 2nd ed."))
    assert updated.title == "The Pragmatic Programmer, 2nd ed."
    assert updated.author == "Andrew Hunt"

    updated = lib.update_book("1", BookPatch(category="Software"))
    assert updated.title == "The Pragmatic Programmer, 2nd ed."
    assert lib.find_book("1").category == "Software"


def test_update_book_total_keeps_loans_out(lib):
    tx = lib.request_borrow("S1", "2")
    lib.process_transaction(tx.id, "approve")
    assert lib.find_book("2").available_copies == 2

    updated = lib.update_book("2", BookPatch(total_copies=5))
    assert (updated.total_copies, updated.available_copies) == (5, 4)


def test_update_book_rejects_invalid_counts(lib):
    with pytest.raises(ValueError):
        lib.update_book("3", BookPatch(available_copies=10))
    with pytest.raises(ValueError):
        lib.update_book("3", BookPatch())
    assert lib.find_book("3").available_copies == 2


def test_update_book_not_found(lib):
    assert lib.update_book("nope", BookPatch(title="New Title")) is None


def test_delete_book(lib):
    assert lib.delete_book("3") is True
    assert lib.find_book("3") is None
    assert lib.delete_book("3") is False


def test_delete_book_with_active_request_is_refused(lib):
    lib.request_borrow("S1", "2")
    with pytest.raises(ConflictError):
        lib.delete_book("2")
    assert lib.find_book("2") is not None


def test_deleted_book_shows_as_unknown_in_history(lib):
    tx = lib.request_borrow("S1", "3")
    lib.process_transaction(tx.id, "reject")
    assert lib.delete_book("3") is True
    lib.save_students([s for s in lib.get_students() if s.id != "S1"])

    row = lib.describe_transactions(lib.transaction_history())[0]
    assert row["book_title"] == UNKNOWN_BOOK
    assert row["student_name"] == UNKNOWN_STUDENT


def test_get_student_by_email_ignores_case(lib):
    assert lib.get_student_by_email("ALICE@Test.com").id == "S1"
    assert lib.get_student_by_email(" bob@test.com ").id == "S2"
    assert lib.get_student_by_email("carol@test.com") is None
    assert lib.get_student_by_email("") is None


def test_search_books(lib):
    assert [b.id for b in lib.search_books("tech")] == ["1", "3"]
    assert [b.id for b in lib.search_books("LEE")] == ["2"]
    assert len(lib.search_books("")) == 3


def test_history_is_most_recent_first(lib, clock):
    first = lib.request_borrow("S1", "1")
    clock.advance()
    second = lib.request_borrow("S1", "2")
    third = lib.request_borrow("S2", "2")
    clock.advance()
    fourth = lib.request_borrow("S2", "1")

    assert [t.id for t in lib.transaction_history()] == [fourth.id, second.id, third.id, first.id]
    assert [t.id for t in lib.transaction_history("S1")] == [second.id, first.id]


def test_pending_requests_and_statistics(lib):
    a = lib.request_borrow("S1", "1")
    b = lib.request_borrow("S2", "1")
    lib.process_transaction(a.id, "approve")
    lib.request_return("S1", "1")
    lib.process_transaction(b.id, "approve")

    pending = lib.pending_requests()
    assert [t.id for t in pending] == [a.id]
    assert pending[0].status == TransactionStatus.RETURN_REQUESTED

    stats = lib.get_statistics()
    assert stats == {
        "total_books": 3,
        "total_copies": 10,
        "available_copies": 8,
        "total_students": 2,
        "pending_requests": 1,
        "issued_books": 1,
    }


def test_active_transaction_lookup(lib):
    assert lib.active_transaction("S1", "1") is None
    tx = lib.request_borrow("S1", "1")
    assert lib.active_transaction("S1", "1").id == tx.id
    lib.process_transaction(tx.id, "reject")
    assert lib.active_transaction("S1", "1") is None


def test_save_collections_accept_rows_and_models(lib):
    lib.save_books([{"id": "9", "title": "Dune", "author": "Frank Herbert", "category": "SF",
                     "total_copies": 2, "available_copies": 2}])
    assert lib.find_book("9").title == "Dune"

    students = lib.get_students()
    lib.save_students(students[:1])
    assert [s.id for s in lib.get_students()] == ["S1"]

    lib.save_transactions([])
    assert lib.get_transactions() == []
