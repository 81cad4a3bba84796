"""Transaction aggregate — the ledger record of a completed sale.

A Transaction owns a frozen snapshot of the cart lines it was created from
and an append-only list of refunds.  Status is never toggled by callers:
it is re-derived from the refund history every time a refund lands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pos.domain.exceptions import ValidationError
from pos.domain.model.cart import CartItem
from pos.domain.model.refund import Refund
from pos.domain.model.stock import StockAdjustment
from pos.domain.model.value_objects import CENT, Money, StockKey


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    CASH = "cash"
    SCAN = "scan"
    WALLET = "wallet"
    COD = "cod"  # cash on delivery, recorded as pending until paid


TERMINAL_STATUSES = (TransactionStatus.REFUNDED, TransactionStatus.CANCELLED)
REFUNDABLE_STATUSES = (TransactionStatus.COMPLETED, TransactionStatus.PARTIALLY_REFUNDED)
REVENUE_STATUSES = (
    TransactionStatus.COMPLETED,
    TransactionStatus.PARTIALLY_REFUNDED,
    TransactionStatus.REFUNDED,
)


@dataclass(frozen=True)
class TransactionLine:
    """Price snapshot of one cart line at checkout.

    The line's position in ``Transaction.items`` is its permanent identity;
    refunds refer to it by that index.
    """

    item_id: str
    stock_id: str
    group_name: str
    quantity: int
    unit_price: Money
    original_price: Money
    selected_color: str = ""
    selected_size: str = ""
    group_discount: Decimal = Decimal("0")
    variant_discount: Decimal = Decimal("0")
    discounted_price: Money | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValidationError(
                f"Line quantity must be positive, got {self.quantity} for {self.group_name}"
            )

    @property
    def stock_key(self) -> StockKey:
        return StockKey(self.stock_id, self.selected_color, self.selected_size)

    @property
    def actual_price_paid(self) -> Money:
        if self.discounted_price is not None:
            return self.discounted_price
        return self.unit_price

    @property
    def line_total(self) -> Money:
        return self.actual_price_paid * self.quantity

    @staticmethod
    def from_cart_item(item: CartItem) -> TransactionLine:
        return TransactionLine(
            item_id=item.id,
            stock_id=item.stock_id,
            group_name=item.group_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            original_price=item.original_price,
            selected_color=item.selected_color,
            selected_size=item.selected_size,
            group_discount=item.group_discount,
            variant_discount=item.variant_discount,
            discounted_price=item.discounted_price,
        )


@dataclass
class Transaction:
    """Aggregate root for a recorded sale.

    Use ``Transaction.create()`` for new sales.  ``__init__`` stays plain so
    the repository can reconstitute stored documents without re-validating.
    ``version`` is owned by the repository for compare-and-swap writes.
    """

    transaction_id: str
    items: tuple[TransactionLine, ...]
    subtotal: Money
    tax: Money
    discount: Money
    total: Money
    amount_paid: Money
    change: Money
    payment_method: PaymentMethod
    status: TransactionStatus = TransactionStatus.COMPLETED
    refunds: list[Refund] = field(default_factory=list)
    shop_id: str | None = None
    customer_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    cancelled_by: str | None = None
    version: int = 0

    # --- Factory (used for NEW transactions only) ------------------------------

    @staticmethod
    def create(
        transaction_id: str,
        items: list[TransactionLine],
        subtotal: Money,
        tax: Money,
        discount: Money,
        total: Money,
        amount_paid: Money,
        change: Money,
        payment_method: PaymentMethod,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        shop_id: str | None = None,
        customer_id: str | None = None,
    ) -> Transaction:
        """Create a new transaction, enforcing the checkout invariants."""
        if not transaction_id or not transaction_id.strip():
            raise ValidationError("Transaction ID is required")
        if not items:
            raise ValidationError("Transaction must contain at least one item")
        if status not in (TransactionStatus.PENDING, TransactionStatus.COMPLETED):
            raise ValidationError(
                f"New transactions must be pending or completed, got {status.value}"
            )
        if discount > subtotal:
            raise ValidationError(
                f"Discount {discount} cannot exceed subtotal {subtotal}"
            )

        expected_total = subtotal.amount - discount.amount + tax.amount
        if abs(expected_total - total.amount) > CENT:
            raise ValidationError(
                f"Total {total} does not match subtotal - discount + tax "
                f"({expected_total:.2f})"
            )

        return Transaction(
            transaction_id=transaction_id.strip(),
            items=tuple(items),
            subtotal=subtotal,
            tax=tax,
            discount=discount,
            total=total,
            amount_paid=amount_paid,
            change=change,
            payment_method=payment_method,
            status=status,
            shop_id=shop_id,
            customer_id=customer_id,
        )

    # --- Refund bookkeeping ---------------------------------------------------

    def refunded_quantities(self) -> dict[int, int]:
        """Units already refunded per line index, summed over every refund."""
        refunded: dict[int, int] = {}
        for refund in self.refunds:
            for item in refund.items:
                refunded[item.item_index] = refunded.get(item.item_index, 0) + item.quantity
        return refunded

    def remaining_quantity(self, item_index: int) -> int:
        return self.items[item_index].quantity - self.refunded_quantities().get(item_index, 0)

    @property
    def refundable_amount(self) -> Money:
        """Subtotal after cart discount — the cap on cumulative refunds (tax excluded)."""
        return self.subtotal - self.discount

    @property
    def total_refunded(self) -> Money:
        result = Money.zero(self.subtotal.currency)
        for refund in self.refunds:
            result = result + refund.total_amount
        return result

    @property
    def total_tax_refunded(self) -> Money:
        result = Money.zero(self.subtotal.currency)
        for refund in self.refunds:
            result = result + refund.tax_refund
        return result

    @property
    def net_revenue(self) -> Money:
        """Money kept from the sale; zero for sales that never counted."""
        if self.status not in REVENUE_STATUSES:
            return Money.zero(self.total.currency)
        if self.total_refunded >= self.total:
            return Money.zero(self.total.currency)
        return self.total - self.total_refunded

    def derive_status(self) -> TransactionStatus:
        """Recompute status from the accumulated refunds.

        Pure: calling it any number of times on the same history gives the
        same answer.
        """
        if self.status == TransactionStatus.CANCELLED:
            return self.status
        if not self.refunds:
            return self.status
        if self.total_refunded >= self.refundable_amount:
            return TransactionStatus.REFUNDED
        if self.total_refunded.amount > 0:
            return TransactionStatus.PARTIALLY_REFUNDED
        return TransactionStatus.COMPLETED

    # --- State transitions ----------------------------------------------------

    def ensure_refundable(self) -> None:
        if self.status not in REFUNDABLE_STATUSES:
            raise ValidationError(
                f"Cannot refund transaction {self.transaction_id} "
                f"in {self.status.value} status"
            )

    def record_refund(self, refund: Refund) -> None:
        """Append a refund and re-derive status.

        Re-checks both ledger invariants against the current history so a
        refund computed from a stale read can never be appended.
        """
        self.ensure_refundable()
        if refund.transaction_id != self.transaction_id:
            raise ValidationError(
                f"Refund {refund.refund_id} belongs to {refund.transaction_id}, "
                f"not {self.transaction_id}"
            )

        refunded = self.refunded_quantities()
        for item in refund.items:
            if item.item_index >= len(self.items):
                raise ValidationError(f"Line index {item.item_index} out of range")
            available = self.items[item.item_index].quantity - refunded.get(item.item_index, 0)
            if item.quantity > available:
                raise ValidationError(
                    f"Cannot refund {item.quantity} of line {item.item_index}. "
                    f"Only {available} available to refund"
                )

        if self.total_refunded + refund.total_amount > self.refundable_amount:
            raise ValidationError(
                f"Refund {refund.total_amount} would exceed refundable amount "
                f"{self.refundable_amount} ({self.total_refunded} already refunded)"
            )

        self.refunds.append(refund)
        self.status = self.derive_status()

    def remaining_adjustments(self) -> list[tuple[int, StockAdjustment]]:
        """Units still out with the customer, per line index."""
        refunded = self.refunded_quantities()
        adjustments: list[tuple[int, StockAdjustment]] = []
        for index, line in enumerate(self.items):
            remaining = line.quantity - refunded.get(index, 0)
            if remaining > 0:
                adjustments.append((index, StockAdjustment(line.stock_key, remaining)))
        return adjustments

    def cancel(self, reason: str | None = None, cancelled_by: str | None = None) -> None:
        """Transition any non-terminal status -> CANCELLED.

        Restoring the remaining units to stock is the caller's job.
        """
        if self.status in TERMINAL_STATUSES:
            raise ValidationError(
                f"Cannot cancel transaction {self.transaction_id} "
                f"in {self.status.value} status"
            )
        self.status = TransactionStatus.CANCELLED
        self.cancelled_at = datetime.now(timezone.utc)
        self.cancel_reason = reason
        self.cancelled_by = cancelled_by

    def complete(self) -> None:
        """Transition PENDING -> COMPLETED once a deferred payment clears."""
        if self.status != TransactionStatus.PENDING:
            raise ValidationError(
                f"Cannot complete transaction {self.transaction_id} — "
                f"current status is {self.status.value}, expected pending"
            )
        self.status = TransactionStatus.COMPLETED
