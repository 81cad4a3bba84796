"""Unit tests for the Transaction aggregate."""

import pytest

from pos.domain.exceptions import ValidationError
from pos.domain.model.refund import Refund, RefundItem
from pos.domain.model.stock import StockAdjustment
from pos.domain.model.transaction import (
    PaymentMethod,
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from pos.domain.model.value_objects import Money, StockKey


def _line(item_id, quantity, price, color="", size=""):
    return TransactionLine(
        item_id=item_id,
        stock_id=item_id.split("-")[0],
        group_name=item_id,
        quantity=quantity,
        unit_price=Money.of(price),
        original_price=Money.of(price),
        selected_color=color,
        selected_size=size,
    )


def _make_transaction(status=TransactionStatus.COMPLETED):
    # 10 x 100 + 5 x 20 = 1100
    return Transaction.create(
        transaction_id="TXN-1",
        items=[_line("SHIRT-1", 10, "100", "red", "M"), _line("CAP-1", 5, "20")],
        subtotal=Money.of("1100"),
        tax=Money.zero(),
        discount=Money.zero(),
        total=Money.of("1100"),
        amount_paid=Money.of("1100"),
        change=Money.zero(),
        payment_method=PaymentMethod.SCAN,
        status=status,
    )


def _refund(index, quantity, amount, refund_id="REF-1"):
    return Refund(
        refund_id=refund_id,
        transaction_id="TXN-1",
        items=(RefundItem(f"ITEM-{index}", index, quantity, Money.of("1"), Money.of(amount)),),
        items_subtotal=Money.of(amount),
        cart_discount_refund=Money.zero(),
        tax_refund=Money.zero(),
        total_amount=Money.of(amount),
    )


# ── Creation ─────────────────────────────────────────────────────────────────


class TestCreate:

    def test_defaults_to_completed(self):
        txn = _make_transaction()
        assert txn.status == TransactionStatus.COMPLETED
        assert txn.version == 0
        assert txn.refunds == []

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError, match="at least one item"):
            Transaction.create(
                transaction_id="TXN-1",
                items=[],
                subtotal=Money.zero(),
                tax=Money.zero(),
                discount=Money.zero(),
                total=Money.zero(),
                amount_paid=Money.zero(),
                change=Money.zero(),
                payment_method=PaymentMethod.CASH,
            )

    def test_total_mismatch_rejected(self):
        with pytest.raises(ValidationError, match="does not match"):
            Transaction.create(
                transaction_id="TXN-1",
                items=[_line("SHIRT-1", 1, "100")],
                subtotal=Money.of("100"),
                tax=Money.of("7"),
                discount=Money.of("10"),
                total=Money.of("100"),
                amount_paid=Money.of("100"),
                change=Money.zero(),
                payment_method=PaymentMethod.CASH,
            )

    def test_cannot_start_refunded(self):
        with pytest.raises(ValidationError, match="must be pending or completed"):
            _make_transaction(status=TransactionStatus.REFUNDED)

    def test_zero_quantity_line_rejected(self):
        with pytest.raises(ValidationError, match="must be positive"):
            _line("SHIRT-1", 0, "100")


# ── Status derivation ────────────────────────────────────────────────────────


class TestStatusDerivation:

    def test_partial_refund(self):
        txn = _make_transaction()
        txn.record_refund(_refund(0, 1, "100"))
        assert txn.status == TransactionStatus.PARTIALLY_REFUNDED

    def test_full_refund_across_lines(self):
        txn = _make_transaction()
        txn.record_refund(_refund(0, 10, "1000"))
        txn.record_refund(_refund(1, 5, "100", "REF-2"))
        assert txn.status == TransactionStatus.REFUNDED

    def test_derivation_is_idempotent(self):
        txn = _make_transaction()
        txn.record_refund(_refund(0, 3, "300"))
        first = txn.derive_status()
        assert txn.derive_status() == first == txn.status

    def test_no_refunds_keeps_status(self):
        assert _make_transaction().derive_status() == TransactionStatus.COMPLETED

    def test_over_cap_refund_rejected_on_append(self):
        txn = _make_transaction()
        txn.record_refund(_refund(0, 10, "1000"))
        with pytest.raises(ValidationError, match="would exceed refundable amount"):
            txn.record_refund(_refund(1, 5, "200", "REF-2"))
        assert len(txn.refunds) == 1

    def test_over_quantity_refund_rejected_on_append(self):
        txn = _make_transaction()
        txn.record_refund(_refund(1, 4, "80"))
        with pytest.raises(ValidationError, match="Only 1 available"):
            txn.record_refund(_refund(1, 2, "40", "REF-2"))

    def test_refund_for_other_transaction_rejected(self):
        txn = _make_transaction()
        refund = _refund(0, 1, "100")
        foreign = Refund(
            refund_id=refund.refund_id,
            transaction_id="TXN-2",
            items=refund.items,
            items_subtotal=refund.items_subtotal,
            cart_discount_refund=refund.cart_discount_refund,
            tax_refund=refund.tax_refund,
            total_amount=refund.total_amount,
        )
        with pytest.raises(ValidationError, match="belongs to TXN-2"):
            txn.record_refund(foreign)


# ── Cancel / complete ────────────────────────────────────────────────────────


class TestCancel:

    def test_remaining_adjustments_exclude_refunded_units(self):
        txn = _make_transaction()
        txn.record_refund(_refund(0, 3, "300"))
        assert txn.remaining_adjustments() == [
            (0, StockAdjustment(StockKey("SHIRT", "red", "M"), 7)),
            (1, StockAdjustment(StockKey("CAP"), 5)),
        ]

    def test_fully_refunded_line_is_skipped(self):
        txn = _make_transaction()
        txn.record_refund(_refund(1, 5, "100"))
        indices = [index for index, _ in txn.remaining_adjustments()]
        assert indices == [0]

    def test_cancel_stamps_fields(self):
        txn = _make_transaction()
        txn.cancel(reason="customer changed mind", cancelled_by="cashier-7")
        assert txn.status == TransactionStatus.CANCELLED
        assert txn.cancelled_at is not None
        assert txn.cancel_reason == "customer changed mind"
        assert txn.cancelled_by == "cashier-7"

    def test_cancel_partially_refunded(self):
        txn = _make_transaction()
        txn.record_refund(_refund(0, 1, "100"))
        txn.cancel()
        assert txn.status == TransactionStatus.CANCELLED

    def test_cancel_twice_rejected(self):
        txn = _make_transaction()
        txn.cancel()
        with pytest.raises(ValidationError, match="cancelled status"):
            txn.cancel()

    def test_cancel_refunded_rejected(self):
        txn = _make_transaction()
        txn.record_refund(_refund(0, 10, "1000"))
        txn.record_refund(_refund(1, 5, "100", "REF-2"))
        with pytest.raises(ValidationError, match="refunded status"):
            txn.cancel()

    def test_cancelled_sale_has_no_revenue(self):
        txn = _make_transaction()
        txn.cancel()
        assert txn.net_revenue == Money.zero()


class TestComplete:

    def test_pending_to_completed(self):
        txn = _make_transaction(status=TransactionStatus.PENDING)
        txn.complete()
        assert txn.status == TransactionStatus.COMPLETED

    def test_pending_cannot_be_refunded(self):
        txn = _make_transaction(status=TransactionStatus.PENDING)
        with pytest.raises(ValidationError, match="pending status"):
            txn.record_refund(_refund(0, 1, "100"))

    def test_complete_twice_rejected(self):
        txn = _make_transaction()
        with pytest.raises(ValidationError, match="expected pending"):
            txn.complete()
