import os
from datetime import date, timedelta

import pytest

from library import Library


class FakeClock:
    """Hands out ISO dates; tests move it forward with ``advance``."""

    def __init__(self, start: str = "2024-01-10") -> None:
        self.current = date.fromisoformat(start)

    def __call__(self) -> str:
        return self.current.isoformat()

    def advance(self, days: int = 1) -> None:
        self.current += timedelta(days=days)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lib(tmp_path, request, clock):
    # A separate database file for every test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    lib = Library(db_file=db_file, seed=True, today=clock)
    yield lib
    lib.close()
    if os.path.exists(db_file):
        os.remove(db_file)
