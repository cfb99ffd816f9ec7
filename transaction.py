from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TransactionStatus(str, Enum):
    """Lifecycle states of a borrow/return request."""
    PENDING = "pending"
    ISSUED = "issued"
    RETURN_REQUESTED = "return_requested"
    RETURNED = "returned"
    REJECTED = "rejected"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionStatus.RETURNED, TransactionStatus.REJECTED)


ACTIVE_STATUSES = frozenset({
    TransactionStatus.PENDING,
    TransactionStatus.ISSUED,
    TransactionStatus.RETURN_REQUESTED,
})

# The student has the copy in hand
HOLDING_STATUSES = frozenset({TransactionStatus.ISSUED, TransactionStatus.RETURN_REQUESTED})

# Requests waiting on an admin decision
AWAITING_DECISION = frozenset({TransactionStatus.PENDING, TransactionStatus.RETURN_REQUESTED})


class TransactionKind(str, Enum):
    ISSUE = "issue"
    RETURN = "return"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def _to_iso_date(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _to_status(value: Any) -> TransactionStatus:
    try:
        return TransactionStatus(str(value).strip().lower())
    except ValueError:
        # Unknown statuses become inert history rather than breaking reads
        logger.warning("Unrecognized transaction status %r, reading it as rejected", value)
        return TransactionStatus.REJECTED


class Transaction:
    """One borrow request and, once issued, its return."""

    def __init__(self, id: str, student_id: str, book_id: str, issue_date: str,
                 status: TransactionStatus = TransactionStatus.PENDING,
                 return_date: str | None = None) -> None:
        self.id = str(id)
        self.student_id = str(student_id)
        self.book_id = str(book_id)
        self.issue_date = issue_date
        self.return_date = return_date
        self.status = status

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Transaction({self.id!r}, {self.student_id!r}, {self.book_id!r}, {self.status.value})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Transaction):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def matches(self, student_id: str, book_id: str) -> bool:
        return self.student_id == str(student_id) and self.book_id == str(book_id)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "student_id": self.student_id,
            "book_id": self.book_id,
            "issue_date": self.issue_date,
            "status": self.status.value,
        }
        # return_date only exists once the copy is back
        if self.return_date:
            data["return_date"] = self.return_date
        return data

    @staticmethod
    def from_dict(data: dict) -> "Transaction":
        return Transaction(
            id=data.get("id", ""),
            student_id=data.get("student_id", ""),
            book_id=data.get("book_id", ""),
            issue_date=_to_iso_date(data.get("issue_date")) or "",
            status=_to_status(data.get("status")),
            return_date=_to_iso_date(data.get("return_date")),
        )
