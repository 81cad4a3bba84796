"""Application service: Complete Transaction use case.

Cash-on-delivery sales are recorded as pending; once the money arrives
they move to completed and start counting as revenue.
"""

from __future__ import annotations

import structlog

from pos.domain.exceptions import EntityNotFoundError
from pos.domain.repository.transaction_repository import TransactionRepository

log = structlog.get_logger(__name__)


class CompleteTransactionHandler:

    def __init__(self, transaction_repo: TransactionRepository) -> None:
        self._transaction_repo = transaction_repo

    def handle(self, transaction_id: str) -> None:
        transaction = self._transaction_repo.get_by_id(transaction_id)
        if transaction is None:
            raise EntityNotFoundError(f"Transaction {transaction_id} not found")

        expected_version = transaction.version
        transaction.complete()
        self._transaction_repo.save(transaction, expected_version)
        log.info("transaction_completed", transaction_id=transaction_id)
