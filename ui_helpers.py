import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "issued": "green",
    "return_requested": "dark_orange",
    "returned": "cyan",
    "rejected": "red",
}


OUTPUT_MODES = ("plain", "json", "rich")


def current_mode() -> str:
    """Output mode from the environment; unknown values fall back to plain."""
    mode = os.environ.get(OUTPUT_MODE_ENV, "plain").lower().strip()
    return mode if mode in OUTPUT_MODES else "plain"


def print_books(books: List[Any]) -> None:
    """Print the catalog in the current output mode.
    - plain: 'id - Title by Author [available/total]' lines, or 'No books in library.'
    - json: JSON array of book dicts
    - rich: Rich table
    """
    mode = current_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Category", style="dim")
        table.add_column("Available", justify="right")
        for b in books:
            style = "green" if b.available_copies > 0 else "red"
            table.add_row(b.id, b.title, b.author, b.category,
                          f"[{style}]{b.available_copies}/{b.total_copies}[/]")
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author} [{b.available_copies}/{b.total_copies}]")


def print_students(students: List[Any]) -> None:
    mode = current_mode()

    if not students:
        print("No students registered.")
        return

    if mode == "json":
        payload = [dict(s.to_dict(), borrowed_books=s.borrowed_books) for s in students]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="🎓 Students", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Email")
        table.add_column("Phone", style="dim")
        table.add_column("Borrowed", justify="right")
        for s in students:
            table.add_row(s.id, s.name, s.email, s.phone, str(len(s.borrowed_books)))
        _console.print(table)
    else:
        for s in students:
            print(f"{s.id} - {s.name} <{s.email}> borrowed: {len(s.borrowed_books)}")


def print_transactions(rows: List[Dict[str, Any]]) -> None:
    """Print described transactions (see Library.describe_transactions)."""
    mode = current_mode()

    if not rows:
        print("No transactions.")
        return

    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="🔁 Transactions", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Book")
        table.add_column("Student")
        table.add_column("Issued")
        table.add_column("Returned")
        table.add_column("Status")
        for r in rows:
            style = STATUS_STYLES.get(r["status"], "white")
            table.add_row(r["id"], r["book_title"], r["student_name"], r["issue_date"],
                          r.get("return_date") or "-", f"[{style}]{r['status']}[/]")
        _console.print(table)
    else:
        for r in rows:
            returned = f" returned {r['return_date']}" if r.get("return_date") else ""
            print(f"{r['id']} - {r['book_title']} / {r['student_name']} "
                  f"[{r['status']}] {r['issue_date']}{returned}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    mode = current_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = {
        "total_books": "Total Books",
        "total_copies": "Total Copies",
        "available_copies": "Available Copies",
        "total_students": "Students",
        "pending_requests": "Pending Requests",
        "issued_books": "Books On Loan",
    }

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in labels.items():
            print(f"{label}: {stats.get(key, 0)}")
