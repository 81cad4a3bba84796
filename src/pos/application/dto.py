"""Data Transfer Objects — plain containers that cross layer boundaries.

DTOs carry data between the CLI and application layers without
exposing domain internals to the outside world.  Money travels as
2-place strings, timestamps as ISO-8601 strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pos.domain.model.cart import Cart
from pos.domain.model.refund import Refund
from pos.domain.model.transaction import Transaction


# --- Input --------------------------------------------------------------------


@dataclass(frozen=True)
class DraftLineSpec:
    """Input: one frozen line of a transaction draft."""

    item_id: str
    stock_id: str
    group_name: str
    quantity: int
    unit_price: str
    original_price: str | None = None
    selected_color: str = ""
    selected_size: str = ""
    discounted_price: str | None = None
    group_discount: str = "0"
    variant_discount: str = "0"


@dataclass(frozen=True)
class TransactionDraft:
    """Input: everything checkout computed, ready to be recorded."""

    items: list[DraftLineSpec]
    subtotal: str
    tax: str
    discount: str
    total: str
    payment_method: str
    amount_paid: str
    change: str = "0"
    transaction_id: str | None = None
    status: str | None = None
    shop_id: str | None = None
    customer_id: str | None = None


# --- Output -------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionLineDTO:
    index: int
    item_id: str
    group_name: str
    color: str
    size: str
    quantity: int
    refunded_quantity: int
    remaining_quantity: int
    unit_price: str
    price_paid: str
    line_total: str


@dataclass(frozen=True)
class TransactionDTO:
    transaction_id: str
    status: str
    payment_method: str
    items: list[TransactionLineDTO]
    subtotal: str
    discount: str
    tax: str
    total: str
    amount_paid: str
    change: str
    refundable_amount: str
    total_refunded: str
    refund_count: int
    created_at: str
    shop_id: str | None = None
    customer_id: str | None = None
    cancelled_at: str | None = None
    cancel_reason: str | None = None
    cancelled_by: str | None = None


@dataclass(frozen=True)
class RefundItemDTO:
    item_id: str
    item_index: int
    quantity: int
    unit_price: str
    total_amount: str


@dataclass(frozen=True)
class RefundDTO:
    refund_id: str
    transaction_id: str
    status: str
    items: list[RefundItemDTO]
    items_subtotal: str
    cart_discount_refund: str
    tax_refund: str
    total_amount: str
    created_at: str
    reason: str | None = None
    processed_by: str | None = None


@dataclass(frozen=True)
class CartItemDTO:
    id: str
    group_name: str
    stock_id: str
    color: str
    size: str
    quantity: int
    unit_price: str
    price: str  # after discounts
    line_total: str
    discount: str  # e.g. "10% + 5%", "wholesale", ""


@dataclass(frozen=True)
class CartDTO:
    user_id: str
    items: list[CartItemDTO]
    total_items: int
    total_amount: str
    currency: str


@dataclass(frozen=True)
class TransactionSummaryDTO:
    total_transactions: int
    total_revenue: str
    total_tax: str
    total_discount: str
    total_refunded: str
    payment_method_breakdown: dict[str, str] = field(default_factory=dict)


# --- Mapping ------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def transaction_to_dto(transaction: Transaction) -> TransactionDTO:
    refunded = transaction.refunded_quantities()
    return TransactionDTO(
        transaction_id=transaction.transaction_id,
        status=transaction.status.value,
        payment_method=transaction.payment_method.value,
        items=[
            TransactionLineDTO(
                index=index,
                item_id=line.item_id,
                group_name=line.group_name,
                color=line.selected_color,
                size=line.selected_size,
                quantity=line.quantity,
                refunded_quantity=refunded.get(index, 0),
                remaining_quantity=line.quantity - refunded.get(index, 0),
                unit_price=str(line.unit_price),
                price_paid=str(line.actual_price_paid.rounded()),
                line_total=str(line.line_total.rounded()),
            )
            for index, line in enumerate(transaction.items)
        ],
        subtotal=str(transaction.subtotal),
        discount=str(transaction.discount),
        tax=str(transaction.tax),
        total=str(transaction.total),
        amount_paid=str(transaction.amount_paid),
        change=str(transaction.change),
        refundable_amount=str(transaction.refundable_amount),
        total_refunded=str(transaction.total_refunded),
        refund_count=len(transaction.refunds),
        created_at=transaction.created_at.isoformat(),
        shop_id=transaction.shop_id,
        customer_id=transaction.customer_id,
        cancelled_at=_iso(transaction.cancelled_at),
        cancel_reason=transaction.cancel_reason,
        cancelled_by=transaction.cancelled_by,
    )


def refund_to_dto(refund: Refund) -> RefundDTO:
    return RefundDTO(
        refund_id=refund.refund_id,
        transaction_id=refund.transaction_id,
        status=refund.status.value,
        items=[
            RefundItemDTO(
                item_id=item.item_id,
                item_index=item.item_index,
                quantity=item.quantity,
                unit_price=str(item.unit_price.rounded()),
                total_amount=str(item.total_amount),
            )
            for item in refund.items
        ],
        items_subtotal=str(refund.items_subtotal),
        cart_discount_refund=str(refund.cart_discount_refund),
        tax_refund=str(refund.tax_refund),
        total_amount=str(refund.total_amount),
        created_at=refund.created_at.isoformat(),
        reason=refund.reason,
        processed_by=refund.processed_by,
    )


def cart_to_dto(cart: Cart) -> CartDTO:
    items: list[CartItemDTO] = []
    for item in cart.items:
        if item.is_wholesale_pricing:
            discount = "wholesale"
        else:
            parts = [f"{pct.normalize():f}%" for pct in (item.group_discount, item.variant_discount) if pct > 0]
            discount = " + ".join(parts)
        items.append(
            CartItemDTO(
                id=item.id,
                group_name=item.group_name,
                stock_id=item.stock_id,
                color=item.selected_color,
                size=item.selected_size,
                quantity=item.quantity,
                unit_price=str(item.unit_price),
                price=str(item.actual_price.rounded()),
                line_total=str(item.line_total.rounded()),
                discount=discount,
            )
        )
    return CartDTO(
        user_id=cart.user_id,
        items=items,
        total_items=cart.total_items,
        total_amount=str(cart.total_amount.rounded()),
        currency=cart.currency,
    )
