"""Stock cell model — on-hand quantity for one (stock, color, size).

The Stock Ledger is shared by carts, refunds and cancellations, so every
change is a bounded delta rather than an overwrite of the whole record.
"""

from __future__ import annotations

from dataclasses import dataclass

from pos.domain.exceptions import InventorySyncError, ValidationError
from pos.domain.model.value_objects import StockKey


@dataclass
class StockLevel:
    """On-hand quantity of one stock cell.

    Invariant: ``quantity`` is never negative.
    """

    key: StockKey
    quantity: int = 0

    def reduce(self, quantity: int) -> None:
        """Take units out of stock (reserved by a cart)."""
        if quantity <= 0:
            raise ValidationError("Reduction quantity must be positive")
        if quantity > self.quantity:
            raise InventorySyncError(
                f"Insufficient stock for {self.key} "
                f"(need {quantity}, have {self.quantity})"
            )
        self.quantity -= quantity

    def restore(self, quantity: int) -> None:
        """Put units back (cart release, refund or cancellation)."""
        if quantity <= 0:
            raise ValidationError("Restore quantity must be positive")
        self.quantity += quantity


@dataclass(frozen=True)
class StockAdjustment:
    """One pending restoration request for the batch API."""

    key: StockKey
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValidationError("Adjustment quantity must be positive")
