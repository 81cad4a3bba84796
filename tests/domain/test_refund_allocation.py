"""Unit tests for proportional refund allocation."""

from decimal import Decimal

import pytest

from pos.domain.exceptions import ValidationError
from pos.domain.model.transaction import (
    PaymentMethod,
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from pos.domain.model.value_objects import LineKey, Money
from pos.domain.service.refund_allocation_service import RefundAllocationService


def _make_transaction(
    quantity=10,
    unit_price="100",
    discounted_price=None,
    subtotal="1000",
    discount="0",
    tax="0",
    total="1000",
):
    line = TransactionLine(
        item_id="SHIRT-red-M-0001",
        stock_id="SHIRT",
        group_name="Shirt",
        quantity=quantity,
        unit_price=Money.of(unit_price),
        original_price=Money.of(unit_price),
        selected_color="red",
        selected_size="M",
        discounted_price=Money.of(discounted_price) if discounted_price else None,
    )
    return Transaction.create(
        transaction_id="TXN-1",
        items=[line],
        subtotal=Money.of(subtotal),
        tax=Money.of(tax),
        discount=Money.of(discount),
        total=Money.of(total),
        amount_paid=Money.of(total),
        change=Money.zero(),
        payment_method=PaymentMethod.CASH,
    )


def _refund(transaction, quantity, refund_id="REF-1"):
    refund = RefundAllocationService().allocate(
        transaction, {LineKey("SHIRT-red-M-0001", 0): quantity}, refund_id
    )
    transaction.record_refund(refund)
    return refund


class TestPlainRefund:

    def test_partial_then_full(self):
        txn = _make_transaction()

        first = _refund(txn, 4)
        assert first.total_amount == Money.of("400")
        assert txn.status == TransactionStatus.PARTIALLY_REFUNDED

        second = _refund(txn, 6, "REF-2")
        assert second.total_amount == Money.of("600")
        assert txn.total_refunded == Money.of("1000")
        assert txn.status == TransactionStatus.REFUNDED

    def test_refund_item_records_price_paid(self):
        txn = _make_transaction()
        refund = _refund(txn, 2)
        (item,) = refund.items
        assert item.item_index == 0
        assert item.unit_price == Money.of("100")
        assert item.total_amount == Money.of("200")


class TestDiscountAndTaxAllocation:

    def _discounted(self):
        return _make_transaction(
            discounted_price="90", subtotal="1000", discount="100", tax="50", total="950"
        )

    def test_cart_discount_share_comes_off_refund(self):
        refund = _refund(self._discounted(), 5)
        assert refund.items_subtotal == Money.of("450")
        assert refund.cart_discount_refund == Money.of("45")
        assert refund.total_amount == Money.of("405")

    def test_tax_share_recorded_but_not_refunded(self):
        refund = _refund(self._discounted(), 5)
        assert refund.tax_refund == Money.of("22.50")
        assert refund.total_amount == refund.items_subtotal - refund.cart_discount_refund

    def test_refundable_amount_excludes_tax(self):
        assert self._discounted().refundable_amount == Money.of("900")


class TestRefundValidation:

    def test_quantity_over_line_rejected(self):
        txn = _make_transaction()
        with pytest.raises(ValidationError, match="Only 10 available to refund"):
            _refund(txn, 11)
        assert txn.refunds == []
        assert txn.status == TransactionStatus.COMPLETED

    def test_quantity_over_remaining_rejected(self):
        txn = _make_transaction()
        _refund(txn, 7)
        with pytest.raises(ValidationError, match=r"Only 3 available to refund \(7 already refunded\)"):
            _refund(txn, 4, "REF-2")

    def test_all_zero_quantities_rejected(self):
        with pytest.raises(ValidationError, match="Nothing to refund"):
            _refund(_make_transaction(), 0)

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            _refund(_make_transaction(), -1)

    def test_stale_item_id_rejected(self):
        txn = _make_transaction()
        with pytest.raises(ValidationError, match="does not match item"):
            RefundAllocationService().allocate(txn, {LineKey("OTHER", 0): 1}, "REF-1")

    def test_unknown_index_rejected(self):
        txn = _make_transaction()
        with pytest.raises(ValidationError, match="does not exist"):
            RefundAllocationService().allocate(txn, {LineKey("SHIRT-red-M-0001", 5): 1}, "REF-1")

    def test_fully_refunded_transaction_rejected(self):
        txn = _make_transaction()
        _refund(txn, 10)
        with pytest.raises(ValidationError, match="refunded status"):
            _refund(txn, 1, "REF-2")

    def test_cancelled_transaction_rejected(self):
        txn = _make_transaction()
        txn.cancel()
        with pytest.raises(ValidationError, match="cancelled status"):
            _refund(txn, 1)


class TestRoundingStability:

    def _thirds(self):
        # 3 x 10.00 with a 10.00 cart discount: each unit carries 3.333... of discount
        return _make_transaction(
            quantity=3, unit_price="10", subtotal="30", discount="10", total="20"
        )

    def test_unit_by_unit_refunds_land_exactly_on_cap(self):
        txn = self._thirds()
        totals = [_refund(txn, 1, f"REF-{i}").total_amount for i in range(3)]

        assert totals[:2] == [Money.of("6.67"), Money.of("6.67")]
        assert totals[2] == Money.of("6.66")
        assert txn.total_refunded == txn.refundable_amount
        assert txn.status == TransactionStatus.REFUNDED

    def test_trimmed_refund_still_balances(self):
        txn = self._thirds()
        _refund(txn, 1, "REF-0")
        _refund(txn, 1, "REF-1")
        last = _refund(txn, 1, "REF-2")
        assert last.items_subtotal - last.cart_discount_refund == last.total_amount

    def test_cumulative_refunds_never_exceed_cap(self):
        txn = self._thirds()
        _refund(txn, 2, "REF-0")
        _refund(txn, 1, "REF-1")
        assert txn.total_refunded.amount <= Decimal("20")

    @staticmethod
    def _single_unit_lines(count, discount):
        # count lines of 1.00 x 1, no tax
        lines = [
            TransactionLine(
                item_id=f"CAP-{index:04d}",
                stock_id="CAP",
                group_name="Cap",
                quantity=1,
                unit_price=Money.of("1"),
                original_price=Money.of("1"),
            )
            for index in range(count)
        ]
        subtotal = Decimal(count)
        return Transaction.create(
            transaction_id="TXN-1",
            items=lines,
            subtotal=Money.of(subtotal),
            tax=Money.zero(),
            discount=Money.of(discount),
            total=Money.of(subtotal - Decimal(discount)),
            amount_paid=Money.of(subtotal - Decimal(discount)),
            change=Money.zero(),
            payment_method=PaymentMethod.CASH,
        )

    @pytest.mark.parametrize("count, discount", [(3, "0.20"), (6, "0.40")])
    def test_line_by_line_refunds_reach_refunded(self, count, discount):
        piecewise = self._single_unit_lines(count, discount)
        for index, line in enumerate(piecewise.items):
            refund = RefundAllocationService().allocate(
                piecewise, {LineKey(line.item_id, index): 1}, f"REF-{index}"
            )
            piecewise.record_refund(refund)

        whole = self._single_unit_lines(count, discount)
        whole.record_refund(
            RefundAllocationService().allocate(
                whole,
                {LineKey(line.item_id, index): 1 for index, line in enumerate(whole.items)},
                "REF-ALL",
            )
        )

        assert piecewise.total_refunded == whole.total_refunded == piecewise.refundable_amount
        assert piecewise.status == TransactionStatus.REFUNDED
        assert whole.status == TransactionStatus.REFUNDED
        last = piecewise.refunds[-1]
        assert last.items_subtotal - last.cart_discount_refund == last.total_amount
