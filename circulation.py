"""Borrow/return request lifecycle.

Requests move ``pending -> issued -> return_requested -> returned``. An admin
approves or rejects each waiting step:

* rejecting a borrow request ends it as ``rejected``;
* rejecting a return request sends it back to ``issued`` because the student
  still has the copy.

Approvals are the only place where copy counts and borrowed sets change; those
writes go through :class:`ledger.InventoryLedger`.
"""

import logging
import uuid
from datetime import date
from typing import Callable, List, Optional, Union

from book import Book
from errors import ConflictError, InventoryError, NotFoundError, UnavailableError
from ledger import InventoryLedger
from store import BOOKS, TRANSACTIONS, EntityStore
from transaction import Decision, Transaction, TransactionStatus

logger = logging.getLogger(__name__)


def today_iso() -> str:
    return date.today().isoformat()


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class TransactionStateMachine:
    """Creates requests and applies admin decisions to them."""

    def __init__(self, store: EntityStore, ledger: Optional[InventoryLedger] = None,
                 today: Callable[[], str] = today_iso) -> None:
        self.store = store
        self.ledger = ledger or InventoryLedger(store)
        self.today = today

    # ------------------------- Helpers ------------------------- #
    def _load(self) -> List[Transaction]:
        return [Transaction.from_dict(row) for row in self.store.get_all(TRANSACTIONS)]

    def _save(self, txs: List[Transaction]) -> None:
        self.store.replace_all(TRANSACTIONS, [t.to_dict() for t in txs])

    def find_active(self, student_id: str, book_id: str) -> Optional[Transaction]:
        """Return the pair's pending, issued or return-requested transaction, if any."""
        for tx in self._load():
            if tx.matches(student_id, book_id) and tx.status.is_active:
                return tx
        return None

    # ------------------------- Student actions ------------------------- #
    def request_borrow(self, student_id: str, book_id: str) -> Transaction:
        """Open a pending borrow request. Stock is only checked at approval."""
        txs = self._load()
        if any(t.matches(student_id, book_id) and t.status.is_active for t in txs):
            raise ConflictError("An active request already exists for this book.")

        tx = Transaction(
            id=new_id(),
            student_id=student_id,
            book_id=book_id,
            issue_date=self.today(),
            status=TransactionStatus.PENDING,
        )
        txs.append(tx)
        self._save(txs)
        logger.info("Borrow requested: tx=%s student=%s book=%s", tx.id, student_id, book_id)
        return tx

    def request_return(self, student_id: str, book_id: str) -> Transaction:
        txs = self._load()
        tx = next((t for t in txs if t.matches(student_id, book_id)
                   and t.status == TransactionStatus.ISSUED), None)
        if tx is None:
            raise NotFoundError("No active issued record found for this book.")

        tx.status = TransactionStatus.RETURN_REQUESTED
        self._save(txs)
        logger.info("Return requested: tx=%s student=%s book=%s", tx.id, student_id, book_id)
        return tx

    # ------------------------- Admin decisions ------------------------- #
    def decide(self, transaction_id: str, action: Union[Decision, str]) -> Optional[Transaction]:
        """Approve or reject a waiting request.

        Returns the transaction after the decision, or ``None`` when the id is
        unknown. Deciding on a transaction that is not waiting for a decision
        leaves it untouched, so repeated clicks are harmless.
        """
        action = Decision(action)
        txs = self._load()
        tx = next((t for t in txs if t.id == str(transaction_id)), None)
        if tx is None:
            logger.debug("Decision %s on unknown transaction %s ignored", action.value, transaction_id)
            return None

        if tx.status == TransactionStatus.PENDING:
            if action is Decision.APPROVE:
                self._approve_borrow(txs, tx)
            else:
                tx.status = TransactionStatus.REJECTED
                self._save(txs)
        elif tx.status == TransactionStatus.RETURN_REQUESTED:
            if action is Decision.APPROVE:
                self._approve_return(txs, tx)
            else:
                tx.status = TransactionStatus.ISSUED
                self._save(txs)
        else:
            logger.debug("Transaction %s is %s; %s ignored", tx.id, tx.status.value, action.value)
            return tx

        logger.info("Transaction %s: %s -> %s", tx.id, action.value, tx.status.value)
        return tx

    def _approve_borrow(self, txs: List[Transaction], tx: Transaction) -> None:
        books = [Book.from_dict(row) for row in self.store.get_all(BOOKS)]
        book = next((b for b in books if b.id == tx.book_id), None)
        if book is None or book.available_copies < 1:
            raise UnavailableError("Book not available")

        try:
            self.ledger.adjust_availability(tx.book_id, -1)
        except InventoryError as e:
            raise UnavailableError("Book not available") from e
        tx.status = TransactionStatus.ISSUED
        tx.issue_date = self.today()
        self._save(txs)
        self.ledger.set_borrowed(tx.student_id, tx.book_id, True)

    def _approve_return(self, txs: List[Transaction], tx: Transaction) -> None:
        try:
            self.ledger.adjust_availability(tx.book_id, +1)
        except InventoryError:
            books = self.store.get_all(BOOKS)
            if any(str(b.get("id")) == tx.book_id for b in books):
                raise
            logger.warning("Book %s no longer exists; return recorded without a stock change", tx.book_id)
        tx.status = TransactionStatus.RETURNED
        tx.return_date = self.today()
        self._save(txs)
        self.ledger.set_borrowed(tx.student_id, tx.book_id, False)
