"""Refund records.

A refund is written once and never changed.  It points back at the
transaction's frozen lines by index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pos.domain.model.value_objects import Money


class RefundStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RefundItem:
    item_id: str
    item_index: int
    quantity: int
    unit_price: Money  # actual price paid, not the list price
    total_amount: Money


@dataclass(frozen=True)
class Refund:
    """Financial record of returned units.

    ``total_amount`` is what goes back to the customer:
    ``items_subtotal - cart_discount_refund``.  ``tax_refund`` is the tax
    share of the returned units, kept for audit only.
    """

    refund_id: str
    transaction_id: str
    items: tuple[RefundItem, ...]
    items_subtotal: Money
    cart_discount_refund: Money
    tax_refund: Money
    total_amount: Money
    status: RefundStatus = RefundStatus.COMPLETED
    reason: str | None = None
    processed_by: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)
