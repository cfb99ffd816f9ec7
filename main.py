import logging
import os
import subprocess
import sys
import webbrowser
from pathlib import Path
from typing import Optional

import typer

from book import BookPatch
from config import settings
from errors import LibraryError
from library import Library
from spreadsheet import SpreadsheetError, export_collection, generate_sample_files, import_collection
from store import COLLECTIONS
from ui_helpers import (
    OUTPUT_MODE_ENV,
    OUTPUT_MODES,
    print_books,
    print_stats_result,
    print_students,
    print_transactions,
)

APP_NAME = "Library CLI"

logger = logging.getLogger(__name__)


class LibraryManager:
    """Holds the Library instance the commands share."""
    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        if cls._instance is None:
            cls._instance = Library()
            logger.debug("Library opened on %s", settings.data_file)
        return cls._instance

    @classmethod
    def set_instance(cls, library: Optional[Library]) -> None:
        cls._instance = library


def _fail(message: str) -> None:
    print(f"Error: {message}")
    raise typer.Exit(code=1)


def _resolve_student(lib: Library, student: str) -> str:
    """Accept either a student id or an email address."""
    if "@" in student:
        found = lib.get_student_by_email(student)
        if not found:
            _fail(f"No student registered with email {student}.")
        return found.id
    return student


def _check_collection(collection: str) -> str:
    if collection not in COLLECTIONS:
        _fail(f"Unknown collection '{collection}'. Use one of: {', '.join(COLLECTIONS)}.")
    return collection


# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    logging.basicConfig(level=settings.log_level.upper())
    if output:
        mode = output.lower().strip()
        if mode not in OUTPUT_MODES:
            raise typer.BadParameter(f"choose one of {', '.join(OUTPUT_MODES)}", param_hint="--output")
        os.environ[OUTPUT_MODE_ENV] = mode


# --- Catalog ---
@app.command("books")
def cli_books():
    """List the catalog."""
    print_books(LibraryManager.get_instance().get_books())


@app.command("search")
def cli_search(query: str):
    """Search books by title, author or category."""
    print_books(LibraryManager.get_instance().search_books(query))


@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    copies: int = typer.Option(1, "--copies", "-c", help="Total copies"),
    category: Optional[str] = typer.Option(None, "--category", help="Category (default: General)"),
):
    """Add a book with all copies available."""
    try:
        book = LibraryManager.get_instance().add_book(title, author, copies, category)
    except ValueError as e:
        _fail(str(e))
    print(f"Added: {book.title} by {book.author} (id {book.id})")


@app.command("update-book")
def cli_update_book(
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    category: Optional[str] = typer.Option(None, "--category"),
    copies: Optional[int] = typer.Option(None, "--copies", help="New total copies"),
):
    """Edit a book's details."""
    patch = BookPatch(title=title, author=author, category=category, total_copies=copies)
    try:
        book = LibraryManager.get_instance().update_book(book_id, patch)
    except ValueError as e:
        _fail(str(e))
    if book is None:
        _fail(f"Book {book_id} not found.")
    print(f"Updated: {book.title} by {book.author} [{book.available_copies}/{book.total_copies}]")


@app.command("delete-book")
def cli_delete_book(book_id: str):
    """Remove a book from the catalog."""
    try:
        removed = LibraryManager.get_instance().delete_book(book_id)
    except LibraryError as e:
        _fail(str(e))
    if not removed:
        _fail(f"Book {book_id} not found.")
    print(f"Book {book_id} has been removed.")


# --- People and history ---
@app.command("students")
def cli_students():
    """List registered students."""
    print_students(LibraryManager.get_instance().get_students())


@app.command("transactions")
def cli_transactions(student: Optional[str] = typer.Option(None, "--student", "-s", help="Student id or email")):
    """Show transaction history, most recent first."""
    lib = LibraryManager.get_instance()
    student_id = _resolve_student(lib, student) if student else None
    print_transactions(lib.describe_transactions(lib.transaction_history(student_id)))


@app.command("pending")
def cli_pending():
    """Show requests waiting for an admin decision."""
    lib = LibraryManager.get_instance()
    print_transactions(lib.describe_transactions(lib.pending_requests()))


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(LibraryManager.get_instance().get_statistics())


# --- Student requests ---
@app.command("borrow")
def cli_borrow(student: str, book_id: str):
    """Request to borrow a book (student id or email)."""
    lib = LibraryManager.get_instance()
    try:
        tx = lib.request_borrow(_resolve_student(lib, student), book_id)
    except LibraryError as e:
        _fail(str(e))
    print(f"Request sent to admin (transaction {tx.id}).")


@app.command("return")
def cli_return(student: str, book_id: str):
    """Request to return a borrowed book (student id or email)."""
    lib = LibraryManager.get_instance()
    try:
        tx = lib.request_return(_resolve_student(lib, student), book_id)
    except LibraryError as e:
        _fail(str(e))
    print(f"Return request sent (transaction {tx.id}).")


# --- Admin decisions ---
def _decide(transaction_id: str, action: str) -> None:
    try:
        tx = LibraryManager.get_instance().process_transaction(transaction_id, action)
    except LibraryError as e:
        _fail(str(e))
    if tx is None:
        print(f"Transaction {transaction_id} not found; nothing to do.")
        return
    print(f"Transaction {tx.id} is now {tx.status.value}.")


@app.command("approve")
def cli_approve(transaction_id: str):
    """Approve a pending borrow or return request."""
    _decide(transaction_id, "approve")


@app.command("reject")
def cli_reject(transaction_id: str):
    """Reject a pending borrow or return request."""
    _decide(transaction_id, "reject")


# --- Spreadsheets ---
@app.command("export")
def cli_export(
    collection: str,
    directory: str = typer.Option(settings.export_dir, "--dir", "-d", help="Target directory"),
):
    """Export books, students or transactions to <collection>.xlsx."""
    _check_collection(collection)
    path = export_collection(LibraryManager.get_instance(), collection, directory)
    print(f"Exported {collection} to {path}")


@app.command("import")
def cli_import(collection: str, file_path: str):
    """Replace a collection with the rows of an .xlsx file."""
    _check_collection(collection)
    if not os.path.exists(file_path):
        _fail(f"File not found: {file_path}")
    try:
        count = import_collection(LibraryManager.get_instance(), collection, Path(file_path))
    except SpreadsheetError as e:
        _fail(str(e))
    print(f"Imported {count} {collection}.")


@app.command("sample-files")
def cli_sample_files(directory: str = typer.Option(".", "--dir", "-d", help="Target directory")):
    """Write sample books/students/transactions workbooks."""
    for path in generate_sample_files(directory):
        print(f"Wrote {path}")


@app.command("serve")
def cli_serve(open_browser: bool = typer.Option(True, "--browser/--no-browser", help="Open the API docs")):
    """Start the HTTP API using uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    if open_browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error:
            pass
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if settings.debug:
        args.append("--reload")
    subprocess.run(args)


if __name__ == "__main__":
    app()
