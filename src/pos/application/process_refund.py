"""Application service: Process Refund use case.

Refunds part or all of a transaction's lines.  The ledger write comes
first and is authoritative: the refund is appended and the status
re-derived in one compare-and-swap save of the transaction document.
Stock is put back afterwards, and a failure there is logged for manual
reconciliation rather than undoing the refund.

On a version conflict the whole computation is repeated against a fresh
read, never re-applied blindly, so a racing refund that would break the
over-refund cap is rejected by validation.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping

import structlog

from pos.application.transaction_guard import TransactionGuard
from pos.domain.exceptions import (
    ConcurrencyConflictError,
    DomainException,
    EntityNotFoundError,
    ValidationError,
)
from pos.domain.model.refund import Refund
from pos.domain.model.stock import StockAdjustment
from pos.domain.model.transaction import Transaction
from pos.domain.model.value_objects import LineKey
from pos.domain.repository.stock_ledger import StockLedger
from pos.domain.repository.transaction_repository import TransactionRepository
from pos.domain.service.refund_allocation_service import RefundAllocationService

log = structlog.get_logger(__name__)

MAX_WRITE_ATTEMPTS = 3


def new_refund_id() -> str:
    return f"REF-{uuid.uuid4().hex[:12].upper()}"


def parse_line_quantities(raw: Mapping[str | LineKey, int]) -> dict[LineKey, int]:
    """Accept ``'<item_id>___<index>'`` strings or LineKeys; duplicates add up."""
    parsed: dict[LineKey, int] = {}
    for key, quantity in raw.items():
        line_key = key if isinstance(key, LineKey) else LineKey.parse(key)
        parsed[line_key] = parsed.get(line_key, 0) + quantity
    return parsed


class ProcessRefundHandler:

    def __init__(
        self,
        transaction_repo: TransactionRepository,
        stock_ledger: StockLedger,
        guard: TransactionGuard | None = None,
    ) -> None:
        self._transaction_repo = transaction_repo
        self._stock_ledger = stock_ledger
        self._guard = guard or TransactionGuard()
        self._allocator = RefundAllocationService()

    async def handle(
        self,
        transaction_id: str,
        line_quantities: Mapping[str | LineKey, int],
        reason: str | None = None,
        processed_by: str | None = None,
    ) -> str:
        """Refund the given quantities and return the new refund ID."""
        quantities = parse_line_quantities(line_quantities)

        async with self._guard.hold(transaction_id):
            transaction, refund = self._write_refund(
                transaction_id, quantities, reason, processed_by
            )

        await self._restore_inventory(transaction, refund)
        return refund.refund_id

    # --- Ledger write ---------------------------------------------------------

    def _write_refund(
        self,
        transaction_id: str,
        quantities: dict[LineKey, int],
        reason: str | None,
        processed_by: str | None,
    ) -> tuple[Transaction, Refund]:
        refund_id = new_refund_id()

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            transaction = self._transaction_repo.get_by_id(transaction_id)
            if transaction is None:
                raise EntityNotFoundError(f"Transaction {transaction_id} not found")
            expected_version = transaction.version

            try:
                refund = self._allocator.allocate(
                    transaction, quantities, refund_id, reason, processed_by
                )
                transaction.record_refund(refund)
            except ValidationError as exc:
                log.warning(
                    "refund_rejected",
                    transaction_id=transaction_id,
                    requested={str(k): q for k, q in quantities.items()},
                    reason=str(exc),
                )
                raise

            try:
                self._transaction_repo.save(transaction, expected_version)
            except ConcurrencyConflictError:
                log.warning(
                    "refund_write_conflict",
                    transaction_id=transaction_id,
                    refund_id=refund_id,
                    attempt=attempt,
                )
                continue

            log.info(
                "refund_recorded",
                transaction_id=transaction_id,
                refund_id=refund_id,
                total_amount=str(refund.total_amount),
                tax_refund=str(refund.tax_refund),
                status=transaction.status.value,
            )
            return transaction, refund

        raise ConcurrencyConflictError(
            f"Transaction {transaction_id} kept changing; refund not recorded "
            f"after {MAX_WRITE_ATTEMPTS} attempts. Please retry."
        )

    # --- Inventory ------------------------------------------------------------

    async def _restore_inventory(self, transaction: Transaction, refund: Refund) -> None:
        adjustments = [
            StockAdjustment(transaction.items[item.item_index].stock_key, item.quantity)
            for item in refund.items
        ]
        try:
            await self._stock_ledger.restore_multiple(adjustments)
        except DomainException as exc:
            log.error(
                "inventory_restore_failed",
                transaction_id=transaction.transaction_id,
                refund_id=refund.refund_id,
                item_indices=[item.item_index for item in refund.items],
                stock=[str(a.key) for a in adjustments],
                quantities=[a.quantity for a in adjustments],
                error=str(exc),
            )
