"""Port to the Stock Ledger: per (stock, color, size) on-hand quantities.

Defined in the domain layer so the domain never depends on
infrastructure.  Reads come from a locally cached snapshot and are
synchronous; adjustments are network calls and therefore coroutines.
Every adjustment is a bounded delta, which is what lets unrelated carts
and transactions touch the same cell without a lock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pos.domain.exceptions import InventorySyncError
from pos.domain.model.stock import StockAdjustment, StockLevel
from pos.domain.model.value_objects import StockKey


class StockLedger(ABC):

    @abstractmethod
    def check_stock(self, key: StockKey) -> int:
        """Units currently on hand (never negative, 0 if unknown)."""

    @abstractmethod
    def list_levels(self) -> list[StockLevel]:
        """Every known stock cell."""

    @abstractmethod
    def set_stock(self, key: StockKey, quantity: int) -> None:
        """Overwrite a cell's quantity (stock-take, not used by sales flows)."""

    @abstractmethod
    async def reduce_stock(self, key: StockKey, quantity: int) -> None:
        """Atomically take units out.  Raises InventorySyncError on failure."""

    @abstractmethod
    async def restore_stock(self, key: StockKey, quantity: int) -> None:
        """Atomically put units back.  Raises InventorySyncError on failure."""

    async def restore_multiple(self, adjustments: list[StockAdjustment]) -> None:
        """Put back several cells in one call.

        The default applies each adjustment in turn and raises a single
        InventorySyncError listing every cell that failed after trying them all.
        """
        failures: list[str] = []
        for adjustment in adjustments:
            try:
                await self.restore_stock(adjustment.key, adjustment.quantity)
            except InventorySyncError as exc:
                failures.append(f"{adjustment.key} x{adjustment.quantity}: {exc}")
        if failures:
            raise InventorySyncError(
                f"Failed to restore {len(failures)} of {len(adjustments)} items: "
                + "; ".join(failures)
            )
