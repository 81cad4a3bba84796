"""Domain service: Refund Allocation.

Turns a set of requested line quantities into a Refund record for a
transaction.  Cart-level discount and tax are not stored per line, so each
returned line gets a share of them proportional to its amount.

All arithmetic runs at full Decimal precision; each recorded figure is
rounded to cents once, at the end.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from pos.domain.exceptions import ValidationError
from pos.domain.model.refund import Refund, RefundItem
from pos.domain.model.transaction import Transaction
from pos.domain.model.value_objects import CENT, LineKey, Money, round_money

# Largest rounding residue absorbed by trimming the final refund.
ROUNDING_TOLERANCE = CENT


class RefundAllocationService:

    def allocate(
        self,
        transaction: Transaction,
        line_quantities: Mapping[LineKey, int],
        refund_id: str,
        reason: str | None = None,
        processed_by: str | None = None,
    ) -> Refund:
        """Validate the request against the refund history and price it.

        Zero quantities are skipped.  Raises ValidationError when a line
        cannot be refunded, when nothing is left to refund, or when the
        result would exceed the transaction's refundable amount.
        """
        transaction.ensure_refundable()
        requested = self._requested_by_index(transaction, line_quantities)
        if not requested:
            raise ValidationError("Nothing to refund: no line has a positive quantity")

        already_refunded = transaction.refunded_quantities()
        currency = transaction.subtotal.currency
        subtotal = transaction.subtotal.amount
        cart_discount = transaction.discount.amount
        tax = transaction.tax.amount
        subtotal_after_discount = subtotal - cart_discount

        items: list[RefundItem] = []
        items_subtotal = Decimal("0")
        discount_share_total = Decimal("0")
        tax_share_total = Decimal("0")

        for index in sorted(requested):
            quantity = requested[index]
            line = transaction.items[index]
            refunded_qty = already_refunded.get(index, 0)
            available = line.quantity - refunded_qty
            if quantity > available:
                raise ValidationError(
                    f'Cannot refund {quantity} of item "{line.group_name}". '
                    f"Only {available} available to refund ({refunded_qty} already refunded)."
                )

            price_paid = line.actual_price_paid.amount
            amount = price_paid * quantity

            discount_share = Decimal("0")
            if subtotal > 0 and cart_discount > 0:
                discount_share = amount / subtotal * cart_discount

            if subtotal_after_discount > 0 and tax > 0:
                tax_share_total += (amount - discount_share) / subtotal_after_discount * tax

            items.append(
                RefundItem(
                    item_id=line.item_id,
                    item_index=index,
                    quantity=quantity,
                    unit_price=Money(price_paid, currency),
                    total_amount=Money(round_money(amount), currency),
                )
            )
            items_subtotal += amount
            discount_share_total += discount_share

        items_rounded = round_money(items_subtotal)
        discount_rounded = round_money(discount_share_total)
        total_amount = items_rounded - discount_rounded

        remaining = subtotal_after_discount - transaction.total_refunded.amount
        overshoot = total_amount - remaining
        if self._returns_everything(transaction, already_refunded, requested) and (
            remaining >= 0 and overshoot <= ROUNDING_TOLERANCE
        ):
            # last units out: settle residue from earlier roundings either way
            total_amount = remaining
            discount_rounded = items_rounded - total_amount
        elif overshoot > 0:
            if overshoot <= ROUNDING_TOLERANCE and remaining >= 0:
                total_amount = remaining
                discount_rounded = items_rounded - total_amount
            else:
                new_total = transaction.total_refunded.amount + total_amount
                raise ValidationError(
                    f"Cannot process refund. Total refund amount ({new_total:.2f}) "
                    f"would exceed refundable amount ({subtotal_after_discount:.2f}, excluding tax)"
                )

        return Refund(
            refund_id=refund_id,
            transaction_id=transaction.transaction_id,
            items=tuple(items),
            items_subtotal=Money(items_rounded, currency),
            cart_discount_refund=Money(discount_rounded, currency),
            tax_refund=Money(round_money(tax_share_total), currency),
            total_amount=Money(total_amount, currency),
            reason=reason,
            processed_by=processed_by,
        )

    # --- Internal helpers -----------------------------------------------------

    @staticmethod
    def _returns_everything(
        transaction: Transaction,
        already_refunded: Mapping[int, int],
        requested: Mapping[int, int],
    ) -> bool:
        """True when this request takes every unit still unrefunded."""
        return all(
            already_refunded.get(index, 0) + requested.get(index, 0) >= line.quantity
            for index, line in enumerate(transaction.items)
        )

    @staticmethod
    def _requested_by_index(
        transaction: Transaction,
        line_quantities: Mapping[LineKey, int],
    ) -> dict[int, int]:
        """Resolve line keys to indices, merging duplicates and dropping zeros."""
        requested: dict[int, int] = {}
        for key, quantity in line_quantities.items():
            if quantity < 0:
                raise ValidationError(
                    f"Refund quantity cannot be negative, got {quantity} for line {key}"
                )
            if quantity == 0:
                continue
            if key.item_index >= len(transaction.items):
                raise ValidationError(
                    f"Line {key} does not exist in transaction {transaction.transaction_id} "
                    f"({len(transaction.items)} lines)"
                )
            line = transaction.items[key.item_index]
            if key.item_id and key.item_id != line.item_id:
                raise ValidationError(
                    f"Line {key} does not match item '{line.item_id}' at index {key.item_index}"
                )
            requested[key.item_index] = requested.get(key.item_index, 0) + quantity
        return requested
