"""Abstract repository for the Transaction aggregate.

The backing store is a document store.  Writes are compare-and-swap on the
document's ``version`` so two writers working from the same read cannot
both succeed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from pos.domain.model.refund import Refund
from pos.domain.model.transaction import PaymentMethod, Transaction, TransactionStatus


@dataclass(frozen=True)
class TransactionFilter:
    """Query options for listing transactions.  ``None`` means no filter."""

    shop_id: str | None = None
    customer_id: str | None = None
    status: TransactionStatus | None = None
    payment_method: PaymentMethod | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None

    def matches(self, transaction: Transaction) -> bool:
        if self.shop_id is not None and transaction.shop_id != self.shop_id:
            return False
        if self.customer_id is not None and transaction.customer_id != self.customer_id:
            return False
        if self.status is not None and transaction.status != self.status:
            return False
        if self.payment_method is not None and transaction.payment_method != self.payment_method:
            return False
        if self.start is not None and transaction.created_at < self.start:
            return False
        if self.end is not None and transaction.created_at > self.end:
            return False
        return True


class TransactionRepository(ABC):

    @abstractmethod
    def next_transaction_id(self) -> str:
        """Generate the next sequential transaction ID (``TXN-0000000000001``)."""

    @abstractmethod
    def get_by_id(self, transaction_id: str) -> Transaction | None:
        """Return a fresh copy of a transaction, or None if not found."""

    @abstractmethod
    def list_all(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        """Return matching transactions, newest first."""

    @abstractmethod
    def add(self, transaction: Transaction) -> None:
        """Persist a new transaction.  Raises ValidationError on a duplicate ID."""

    @abstractmethod
    def save(self, transaction: Transaction, expected_version: int) -> None:
        """Replace a stored transaction if its version still matches.

        Raises ConcurrencyConflictError when another writer got there first.
        On success ``transaction.version`` is incremented.
        """

    @abstractmethod
    def list_refunds(self, transaction_id: str | None = None) -> list[Refund]:
        """Return refunds, newest first, optionally for one transaction."""


def format_transaction_id(sequence: int) -> str:
    return f"TXN-{sequence:013d}"
