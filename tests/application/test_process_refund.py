"""Integration tests for the ProcessRefund use case."""

import asyncio

import pytest

from pos.application.dto import DraftLineSpec, TransactionDraft
from pos.application.process_refund import ProcessRefundHandler
from pos.application.record_transaction import RecordTransactionHandler
from pos.domain.exceptions import ConcurrencyConflictError, EntityNotFoundError, ValidationError
from pos.domain.model.transaction import TransactionStatus
from pos.domain.model.value_objects import LineKey, Money, StockKey
from pos.domain.service.refund_allocation_service import RefundAllocationService
from tests.fakes import FakeStockLedger, FakeTransactionRepository

SHIRT = StockKey("SHIRT", "red", "M")


def _setup(quantity=10, price="100", discount="0", tax="0"):
    repo = FakeTransactionRepository()
    ledger = FakeStockLedger({SHIRT: 0})
    subtotal = Money.of(price) * quantity
    total = subtotal - Money.of(discount) + Money.of(tax)
    draft = TransactionDraft(
        items=[
            DraftLineSpec(
                item_id="SHIRT-red-M-0001",
                stock_id="SHIRT",
                group_name="Shirt",
                quantity=quantity,
                unit_price=price,
                selected_color="red",
                selected_size="M",
            )
        ],
        subtotal=str(subtotal),
        tax=tax,
        discount=discount,
        total=str(total),
        payment_method="cash",
        amount_paid=str(total),
    )
    transaction_id = RecordTransactionHandler(repo).handle(draft)
    return repo, ledger, transaction_id


def _line(quantity):
    return {"SHIRT-red-M-0001___0": quantity}


class TestRefundHappyPath:

    def test_partial_then_full_refund(self):
        repo, ledger, txn_id = _setup()
        handler = ProcessRefundHandler(repo, ledger)

        asyncio.run(handler.handle(txn_id, _line(4), reason="too small"))
        txn = repo.get_by_id(txn_id)
        assert txn.status == TransactionStatus.PARTIALLY_REFUNDED
        assert txn.total_refunded == Money.of("400")

        asyncio.run(handler.handle(txn_id, _line(6)))
        txn = repo.get_by_id(txn_id)
        assert txn.status == TransactionStatus.REFUNDED
        assert txn.total_refunded == Money.of("1000")

    def test_refund_restores_stock(self):
        repo, ledger, txn_id = _setup()
        asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, _line(4)))

        assert ledger.check_stock(SHIRT) == 4
        assert ledger.restore_multiple_calls == 1

    def test_refund_is_listed_with_reason(self):
        repo, ledger, txn_id = _setup()
        refund_id = asyncio.run(
            ProcessRefundHandler(repo, ledger).handle(
                txn_id, _line(1), reason="stain", processed_by="cashier-2"
            )
        )

        (refund,) = repo.list_refunds(txn_id)
        assert refund.refund_id == refund_id
        assert refund_id.startswith("REF-")
        assert refund.reason == "stain"
        assert refund.processed_by == "cashier-2"

    def test_refund_bumps_version(self):
        repo, ledger, txn_id = _setup()
        asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, _line(1)))
        assert repo.get_by_id(txn_id).version == 1


class TestRefundValidation:

    def test_over_quantity_rejected_before_any_write(self):
        repo, ledger, txn_id = _setup()

        with pytest.raises(ValidationError, match="Only 10 available to refund"):
            asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, _line(11)))

        assert repo.save_calls == 0
        assert ledger.calls == []
        assert repo.get_by_id(txn_id).refunds == []

    def test_unknown_transaction(self):
        repo, ledger, _ = _setup()
        with pytest.raises(EntityNotFoundError, match="not found"):
            asyncio.run(ProcessRefundHandler(repo, ledger).handle("TXN-404", _line(1)))

    def test_bad_line_key(self):
        repo, ledger, txn_id = _setup()
        with pytest.raises(ValidationError, match="Invalid line key"):
            asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, {"SHIRT": 1}))


class TestRefundInventoryFailure:

    def test_stock_failure_does_not_undo_refund(self):
        repo, ledger, txn_id = _setup()
        ledger.failing_keys.add(SHIRT)

        refund_id = asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, _line(2)))

        txn = repo.get_by_id(txn_id)
        assert [r.refund_id for r in txn.refunds] == [refund_id]
        assert txn.status == TransactionStatus.PARTIALLY_REFUNDED
        assert ledger.check_stock(SHIRT) == 0


def _refund_elsewhere(repo, txn_id, quantity):
    """Another cashier's refund landing first: a plain read-allocate-save."""
    txn = repo.get_by_id(txn_id)
    refund = RefundAllocationService().allocate(
        txn, {LineKey("SHIRT-red-M-0001", 0): quantity}, "REF-OTHER"
    )
    txn.record_refund(refund)
    repo.save(txn, txn.version)


class TestRefundConcurrency:

    def test_conflict_retries_against_fresh_read(self):
        repo, ledger, txn_id = _setup()
        repo.before_save = lambda _: _refund_elsewhere(repo, txn_id, 3)

        asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, _line(5)))

        txn = repo.get_by_id(txn_id)
        assert [item.quantity for r in txn.refunds for item in r.items] == [3, 5]
        assert txn.total_refunded == Money.of("800")
        assert ledger.check_stock(SHIRT) == 5

    def test_conflict_revalidates_and_rejects(self):
        repo, ledger, txn_id = _setup()
        repo.before_save = lambda _: _refund_elsewhere(repo, txn_id, 6)

        with pytest.raises(ValidationError, match=r"Only 4 available to refund \(6 already refunded\)"):
            asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, _line(6)))

        txn = repo.get_by_id(txn_id)
        assert txn.total_refunded == Money.of("600")
        assert ledger.calls == []

    def test_concurrent_refunds_exceeding_cap_one_wins(self):
        repo, ledger, txn_id = _setup()
        handler = ProcessRefundHandler(repo, ledger)

        async def both():
            return await asyncio.gather(
                handler.handle(txn_id, _line(6)),
                handler.handle(txn_id, _line(6)),
                return_exceptions=True,
            )

        results = asyncio.run(both())

        succeeded = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, ValidationError)]
        assert len(succeeded) == 1
        assert len(rejected) == 1
        txn = repo.get_by_id(txn_id)
        assert len(txn.refunds) == 1
        assert txn.total_refunded == Money.of("600")
        assert ledger.check_stock(SHIRT) == 6

    def test_gives_up_after_repeated_conflicts(self):
        repo, ledger, txn_id = _setup()

        class AlwaysConflicting(FakeTransactionRepository):
            def save(self, transaction, expected_version):
                raise ConcurrencyConflictError("busy")

        stuck = AlwaysConflicting([repo.get_by_id(txn_id)])
        with pytest.raises(ConcurrencyConflictError, match="Please retry"):
            asyncio.run(ProcessRefundHandler(stuck, ledger).handle(txn_id, _line(1)))
        assert ledger.calls == []


class TestDiscountedRefund:

    def test_discount_share_and_tax_audit(self):
        repo, ledger, txn_id = _setup(discount="100", tax="45")
        refund_id = asyncio.run(ProcessRefundHandler(repo, ledger).handle(txn_id, _line(5)))

        (refund,) = repo.list_refunds(txn_id)
        assert refund.refund_id == refund_id
        assert refund.items_subtotal == Money.of("500")
        assert refund.cart_discount_refund == Money.of("50")
        assert refund.total_amount == Money.of("450")
        assert refund.tax_refund == Money.of("22.50")
