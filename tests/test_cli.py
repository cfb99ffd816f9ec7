import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from main import LibraryManager, app

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_library(lib, monkeypatch):
    monkeypatch.setenv("LIB_CLI_OUTPUT", "plain")
    LibraryManager.set_instance(lib)
    yield lib
    LibraryManager.set_instance(None)


def test_books_plain(lib):
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 0
    assert "1 - The Pragmatic Programmer by Andrew Hunt [5/5]" in result.stdout


def test_books_empty(lib):
    lib.save_books([])
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_books_json_output(lib):
    result = runner.invoke(app, ["--output", "json", "books"])
    assert result.exit_code == 0
    assert [b["id"] for b in json.loads(result.stdout)] == ["1", "2", "3"]


def test_unknown_output_mode_is_rejected(lib):
    result = runner.invoke(app, ["--output", "yaml", "books"])
    assert result.exit_code == 2


def test_unknown_output_mode_in_env_falls_back_to_plain(lib, monkeypatch):
    monkeypatch.setenv("LIB_CLI_OUTPUT", "xml")
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 0
    assert "1 - The Pragmatic Programmer by Andrew Hunt [5/5]" in result.stdout


def test_borrow_by_email_and_approve(lib):
    result = runner.invoke(app, ["borrow", "alice@test.com", "2"])
    assert result.exit_code == 0
    assert "Request sent to admin" in result.stdout

    tx = lib.pending_requests()[0]
    result = runner.invoke(app, ["approve", tx.id])
    assert result.exit_code == 0
    assert f"Transaction {tx.id} is now issued." in result.stdout
    assert lib.find_student("S1").holds("2")


def test_duplicate_borrow_fails(lib):
    runner.invoke(app, ["borrow", "S1", "2"])
    result = runner.invoke(app, ["borrow", "S1", "2"])
    assert result.exit_code == 1
    assert "Error: An active request already exists for this book." in result.stdout


def test_return_without_loan_fails(lib):
    result = runner.invoke(app, ["return", "S2", "1"])
    assert result.exit_code == 1
    assert "Error: No active issued record found for this book." in result.stdout


def test_reject_unknown_transaction_is_noop(lib):
    result = runner.invoke(app, ["reject", "missing"])
    assert result.exit_code == 0
    assert "Transaction missing not found; nothing to do." in result.stdout


def test_pending_and_history(lib):
    runner.invoke(app, ["borrow", "S2", "3"])
    result = runner.invoke(app, ["pending"])
    assert "React Design Patterns / Bob Smith [pending]" in result.stdout

    result = runner.invoke(app, ["transactions", "--student", "S1"])
    assert "No transactions." in result.stdout


def test_add_update_delete_book(lib):
    result = runner.invoke(app, ["add-book", "Dune", "Frank Herbert", "--copies", "2"])
    assert result.exit_code == 0
    book = lib.search_books("Dune")[0]

    result = runner.invoke(app, ["update-book", book.id, "--copies", "4"])
    assert "[4/4]" in result.stdout

    result = runner.invoke(app, ["delete-book", book.id])
    assert f"Book {book.id} has been removed." in result.stdout
    result = runner.invoke(app, ["delete-book", book.id])
    assert result.exit_code == 1


def test_stats(lib):
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Total Books: 3" in result.stdout
    assert "Pending Requests: 0" in result.stdout


def test_export_import_and_samples(lib, tmp_path):
    result = runner.invoke(app, ["export", "books", "--dir", str(tmp_path)])
    assert result.exit_code == 0
    assert (tmp_path / "books.xlsx").exists()

    result = runner.invoke(app, ["sample-files", "--dir", str(tmp_path / "samples")])
    assert result.exit_code == 0
    result = runner.invoke(app, ["import", "books", str(tmp_path / "samples" / "books.xlsx")])
    assert "Imported 3 books." in result.stdout
    assert lib.find_book("102").title == "Clean Code"

    assert runner.invoke(app, ["export", "authors"]).exit_code == 1
    assert runner.invoke(app, ["import", "books", str(tmp_path / "nope.xlsx")]).exit_code == 1


@patch("subprocess.run")
@patch("webbrowser.open")
def test_serve_command(mock_webbrowser_open, mock_subprocess_run, lib):
    result = runner.invoke(app, ["serve"])
    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    mock_webbrowser_open.assert_called_once()
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "api:app" in args
