"""Application service: Cancel Transaction use case.

Cancellation has no partial mode.  It marks the transaction cancelled and
returns every unit that has not already come back through a refund, in
one batched stock call.  No refund record is written: a cancelled sale
simply drops out of revenue.

As with refunds, the ledger write is authoritative and happens first;
stock restoration failures are logged, not propagated.
"""

from __future__ import annotations

import structlog

from pos.application.transaction_guard import TransactionGuard
from pos.domain.exceptions import (
    ConcurrencyConflictError,
    DomainException,
    EntityNotFoundError,
)
from pos.domain.model.stock import StockAdjustment
from pos.domain.repository.stock_ledger import StockLedger
from pos.domain.repository.transaction_repository import TransactionRepository

log = structlog.get_logger(__name__)

MAX_WRITE_ATTEMPTS = 3


class CancelTransactionHandler:

    def __init__(
        self,
        transaction_repo: TransactionRepository,
        stock_ledger: StockLedger,
        guard: TransactionGuard | None = None,
    ) -> None:
        self._transaction_repo = transaction_repo
        self._stock_ledger = stock_ledger
        self._guard = guard or TransactionGuard()

    async def handle(
        self,
        transaction_id: str,
        reason: str | None = None,
        cancelled_by: str | None = None,
    ) -> list[tuple[int, StockAdjustment]]:
        """Cancel a transaction; returns the restorations that were requested."""
        async with self._guard.hold(transaction_id):
            restorations = self._write_cancellation(transaction_id, reason, cancelled_by)

        if not restorations:
            log.info("cancel_nothing_to_restore", transaction_id=transaction_id)
            return restorations

        adjustments = [adjustment for _, adjustment in restorations]
        try:
            await self._stock_ledger.restore_multiple(adjustments)
        except DomainException as exc:
            log.error(
                "inventory_restore_failed",
                transaction_id=transaction_id,
                item_indices=[index for index, _ in restorations],
                stock=[str(a.key) for a in adjustments],
                quantities=[a.quantity for a in adjustments],
                error=str(exc),
            )
        return restorations

    def _write_cancellation(
        self,
        transaction_id: str,
        reason: str | None,
        cancelled_by: str | None,
    ) -> list[tuple[int, StockAdjustment]]:
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            transaction = self._transaction_repo.get_by_id(transaction_id)
            if transaction is None:
                raise EntityNotFoundError(f"Transaction {transaction_id} not found")
            expected_version = transaction.version

            # Remaining quantities are taken from the same read that is saved.
            restorations = transaction.remaining_adjustments()
            transaction.cancel(reason=reason, cancelled_by=cancelled_by)

            try:
                self._transaction_repo.save(transaction, expected_version)
            except ConcurrencyConflictError:
                log.warning(
                    "cancel_write_conflict",
                    transaction_id=transaction_id,
                    attempt=attempt,
                )
                continue

            log.info(
                "transaction_cancelled",
                transaction_id=transaction_id,
                reason=reason,
                cancelled_by=cancelled_by,
                lines_to_restore=len(restorations),
                units_to_restore=sum(a.quantity for _, a in restorations),
            )
            return restorations

        raise ConcurrencyConflictError(
            f"Transaction {transaction_id} kept changing; cancellation not recorded "
            f"after {MAX_WRITE_ATTEMPTS} attempts. Please retry."
        )
