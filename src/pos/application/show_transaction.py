"""Application services: transaction queries."""

from __future__ import annotations

from datetime import datetime

from pos.application.dto import RefundDTO, TransactionDTO, refund_to_dto, transaction_to_dto
from pos.domain.exceptions import EntityNotFoundError, ValidationError
from pos.domain.repository.transaction_repository import (
    TransactionFilter,
    TransactionRepository,
)


class ShowTransactionHandler:

    def __init__(self, transaction_repo: TransactionRepository) -> None:
        self._transaction_repo = transaction_repo

    def handle(self, transaction_id: str) -> TransactionDTO:
        transaction = self._transaction_repo.get_by_id(transaction_id)
        if transaction is None:
            raise EntityNotFoundError(f"Transaction {transaction_id} not found")
        return transaction_to_dto(transaction)


class GetTransactionsHandler:

    def __init__(self, transaction_repo: TransactionRepository) -> None:
        self._transaction_repo = transaction_repo

    def handle(self, filters: TransactionFilter | None = None) -> list[TransactionDTO]:
        return [transaction_to_dto(t) for t in self._transaction_repo.list_all(filters)]


class GetTransactionRefundsHandler:

    def __init__(self, transaction_repo: TransactionRepository) -> None:
        self._transaction_repo = transaction_repo

    def handle(self, transaction_id: str) -> list[RefundDTO]:
        """Refunds of one transaction, newest first."""
        if self._transaction_repo.get_by_id(transaction_id) is None:
            raise EntityNotFoundError(f"Transaction {transaction_id} not found")
        return [refund_to_dto(r) for r in self._transaction_repo.list_refunds(transaction_id)]


class ListRefundsHandler:
    """Refunds across every transaction, for returns reporting."""

    def __init__(self, transaction_repo: TransactionRepository) -> None:
        self._transaction_repo = transaction_repo

    def handle(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[RefundDTO]:
        """Refunds issued within ``[start, end]``, newest first."""
        if start is not None and end is not None and start > end:
            raise ValidationError(f"Start {start.isoformat()} is after end {end.isoformat()}")
        return [
            refund_to_dto(r)
            for r in self._transaction_repo.list_refunds()
            if (start is None or r.created_at >= start) and (end is None or r.created_at <= end)
        ]
