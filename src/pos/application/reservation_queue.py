"""Inventory Reservation Queue.

Cart edits reserve and release stock without waiting on the Stock Ledger:
the cart only appends signed operations here, and the queue's worker drains
them in batches.  Every operation in a batch runs as its own task; one
failed sync is logged and never blocks or cancels the others.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

import structlog

from pos.domain.exceptions import DomainException, ValidationError
from pos.domain.model.value_objects import StockKey
from pos.domain.repository.stock_ledger import StockLedger

log = structlog.get_logger(__name__)


class ReservationType(Enum):
    REDUCE = "reduce"
    RESTORE = "restore"


@dataclass(frozen=True)
class ReservationOp:
    type: ReservationType
    key: StockKey
    quantity: int


@dataclass(frozen=True)
class DrainReport:
    succeeded: list[ReservationOp]
    failed: list[ReservationOp]

    @property
    def ok(self) -> bool:
        return not self.failed


class InventoryReservationQueue:
    """Owns the pending-operations list; the cart only ever appends to it."""

    def __init__(self, stock_ledger: StockLedger) -> None:
        self._stock_ledger = stock_ledger
        self._pending: list[ReservationOp] = []
        self._wakeup = asyncio.Event()
        self._draining = asyncio.Lock()

    # --- Cart-facing API ------------------------------------------------------

    def check_stock(self, key: StockKey) -> int:
        """Units on hand according to the ledger's cached snapshot.

        Pending operations are applied provisionally, so units this cart
        already holds are out of the figure whether or not the queue has
        drained yet.
        """
        provisional = self._stock_ledger.check_stock(key)
        for op in self._pending:
            if op.key != key:
                continue
            if op.type == ReservationType.REDUCE:
                provisional -= op.quantity
            else:
                provisional += op.quantity
        return max(provisional, 0)

    def enqueue_reduce(self, key: StockKey, quantity: int) -> None:
        self._enqueue(ReservationType.REDUCE, key, quantity)

    def enqueue_restore(self, key: StockKey, quantity: int) -> None:
        self._enqueue(ReservationType.RESTORE, key, quantity)

    def enqueue_delta(self, key: StockKey, delta: int) -> None:
        """Positive delta: more units in the cart.  Negative: fewer."""
        if delta > 0:
            self.enqueue_reduce(key, delta)
        elif delta < 0:
            self.enqueue_restore(key, -delta)

    @property
    def pending(self) -> list[ReservationOp]:
        return list(self._pending)

    # --- Worker ---------------------------------------------------------------

    async def drain(self) -> DrainReport:
        """Apply every pending operation concurrently and wait for all of them.

        The batch leaves the queue only once all of its tasks have settled.
        Operations enqueued while the batch runs wait for the next drain.
        """
        async with self._draining:
            batch = list(self._pending)
            if not batch:
                return DrainReport(succeeded=[], failed=[])
            self._wakeup.clear()

            results = await asyncio.gather(
                *(self._apply(op) for op in batch), return_exceptions=True
            )
            del self._pending[: len(batch)]

        succeeded: list[ReservationOp] = []
        failed: list[ReservationOp] = []
        for op, result in zip(batch, results):
            if isinstance(result, BaseException):
                log.error(
                    "reservation_sync_crashed",
                    operation=op.type.value,
                    stock=str(op.key),
                    quantity=op.quantity,
                    exc_info=result,
                )
                failed.append(op)
            elif result:
                succeeded.append(op)
            else:
                failed.append(op)
        log.info(
            "reservation_batch_drained",
            succeeded=len(succeeded),
            failed=len(failed),
        )
        return DrainReport(succeeded=succeeded, failed=failed)

    async def run(self, stop: asyncio.Event) -> None:
        """Drain whenever work arrives until ``stop`` is set, then drain once more."""
        while not stop.is_set():
            wakeup = asyncio.ensure_future(self._wakeup.wait())
            stopped = asyncio.ensure_future(stop.wait())
            await asyncio.wait({wakeup, stopped}, return_when=asyncio.FIRST_COMPLETED)
            for waiter in (wakeup, stopped):
                waiter.cancel()
            await self.drain()
        await self.drain()

    # --- Internal helpers -----------------------------------------------------

    def _enqueue(self, type_: ReservationType, key: StockKey, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Reservation quantity must be positive")
        self._pending.append(ReservationOp(type_, key, quantity))
        self._wakeup.set()

    async def _apply(self, op: ReservationOp) -> bool:
        try:
            if op.type == ReservationType.REDUCE:
                await self._stock_ledger.reduce_stock(op.key, op.quantity)
            else:
                await self._stock_ledger.restore_stock(op.key, op.quantity)
        except DomainException as exc:
            log.error(
                "reservation_sync_failed",
                operation=op.type.value,
                stock=str(op.key),
                quantity=op.quantity,
                error=str(exc),
            )
            return False
        return True
