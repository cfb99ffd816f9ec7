"""Bulk import/export of collections as single-sheet ``.xlsx`` workbooks."""

import io
import logging
from itertools import zip_longest
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Sequence, Union

from openpyxl import Workbook, load_workbook

from store import BOOKS, COLLECTIONS, STUDENTS, TRANSACTIONS

logger = logging.getLogger(__name__)

SHEET_NAME = "Sheet1"

COLUMNS: Dict[str, List[str]] = {
    BOOKS: ["id", "title", "author", "category", "total_copies", "available_copies"],
    STUDENTS: ["id", "name", "email", "phone", "borrowed_books"],
    TRANSACTIONS: ["id", "student_id", "book_id", "issue_date", "return_date", "status"],
}

# Fields a record leaves out entirely while unset
OPTIONAL_COLUMNS: Dict[str, frozenset] = {
    TRANSACTIONS: frozenset({"return_date"}),
}

SAMPLE_ROWS: Dict[str, List[Dict[str, Any]]] = {
    BOOKS: [
        {"id": "101", "title": "The Great Gatsby", "author": "F. Scott Fitzgerald", "category": "Fiction",
         "total_copies": 5, "available_copies": 5},
        {"id": "102", "title": "Clean Code", "author": "Robert C. Martin", "category": "Technology",
         "total_copies": 3, "available_copies": 3},
        {"id": "103", "title": "Introduction to Algorithms", "author": "Cormen", "category": "Education",
         "total_copies": 2, "available_copies": 2},
    ],
    STUDENTS: [
        {"id": "S001", "name": "John Doe", "email": "john@example.com", "phone": "1234567890",
         "borrowed_books": "[]"},
        {"id": "S002", "name": "Jane Smith", "email": "jane@example.com", "phone": "0987654321",
         "borrowed_books": "[]"},
    ],
    TRANSACTIONS: [],
}

Source = Union[str, Path, bytes, BinaryIO]


class SpreadsheetError(ValueError):
    """The uploaded file could not be read as a workbook."""


def export_filename(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")
    return f"{collection}.xlsx"


def _column_order(rows: Sequence[Dict[str, Any]], columns: Optional[Sequence[str]]) -> List[str]:
    order = list(columns or [])
    for row in rows:
        for key in row:
            if key not in order:
                order.append(key)
    return order


def write_rows(rows: Iterable[Dict[str, Any]], destination: Union[str, Path, BinaryIO],
               columns: Optional[Sequence[str]] = None) -> None:
    """Write one row per record, headed by the column names."""
    rows = [dict(r) for r in rows]
    header = _column_order(rows, columns)

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_NAME
    if header:
        ws.append(header)
    for row in rows:
        ws.append([row.get(col) for col in header])
    wb.save(destination)


def to_bytes(rows: Iterable[Dict[str, Any]], columns: Optional[Sequence[str]] = None) -> bytes:
    buffer = io.BytesIO()
    write_rows(rows, buffer, columns)
    return buffer.getvalue()


def read_rows(source: Source, keep_blank: Iterable[str] = ()) -> List[Dict[str, Any]]:
    """Read the first sheet into dicts keyed by the header row.

    Empty cells are left out of a row, except in ``keep_blank`` columns where
    they read back as ``""``. Blank rows are skipped. No schema checks are made.
    """
    keep_blank = set(keep_blank)
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        wb = load_workbook(source, read_only=True, data_only=True)
    except Exception as e:
        raise SpreadsheetError(f"Failed to parse Excel file: {e}") from e

    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        names = [None if h is None else str(h).strip() for h in header]

        records: List[Dict[str, Any]] = []
        for values in rows:
            record: Dict[str, Any] = {}
            for name, value in zip_longest(names, values):
                if not name:
                    continue
                if value is not None and value != "":
                    record[name] = value
                elif name in keep_blank:
                    record[name] = ""
            if any(v != "" for v in record.values()):
                records.append(record)
        return records
    finally:
        wb.close()


def export_collection(library, collection: str, directory: Union[str, Path] = ".") -> Path:
    """Write ``<collection>.xlsx`` into ``directory`` and return its path."""
    path = Path(directory) / export_filename(collection)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = library.get_collection(collection)
    write_rows(rows, path, COLUMNS[collection])
    logger.info("Exported %d %s to %s", len(rows), collection, path)
    return path


def import_collection(library, collection: str, source: Source) -> int:
    """Replace ``collection`` wholesale with the rows of ``source``."""
    export_filename(collection)
    optional = OPTIONAL_COLUMNS.get(collection, frozenset())
    rows = read_rows(source, keep_blank=[c for c in COLUMNS[collection] if c not in optional])
    library.save_collection(collection, rows)
    logger.info("Imported %d %s", len(rows), collection)
    return len(rows)


def generate_sample_files(directory: Union[str, Path] = ".") -> List[Path]:
    """Write template workbooks for all three collections."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for collection in COLLECTIONS:
        path = directory / export_filename(collection)
        write_rows(SAMPLE_ROWS[collection], path, COLUMNS[collection])
        paths.append(path)
    return paths
