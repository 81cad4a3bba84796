"""Integration tests for cart editing and its stock reservations."""

import asyncio

import pytest

from pos.application.manage_cart import CartHandler
from pos.application.reservation_queue import InventoryReservationQueue
from pos.domain.exceptions import EntityNotFoundError, ValidationError
from pos.domain.model.value_objects import StockKey
from tests.fakes import FakeCartRepository, FakeStockLedger

SHIRT = StockKey("SHIRT", "red", "M")


def _setup(on_hand=10):
    ledger = FakeStockLedger({SHIRT: on_hand})
    queue = InventoryReservationQueue(ledger)
    carts = FakeCartRepository()
    return CartHandler(carts, queue), queue, ledger, carts


def _add(handler, quantity, user="cashier-1"):
    return handler.add_item(
        user, "SHIRT", "Shirt", quantity, "100", selected_color="red", selected_size="M"
    )


class TestAddItem:

    def test_add_reserves_stock(self):
        handler, queue, ledger, carts = _setup()

        dto = _add(handler, 3)
        asyncio.run(queue.drain())

        assert dto.total_items == 3
        assert dto.total_amount == "300.00"
        assert ledger.check_stock(SHIRT) == 7
        assert carts.get("cashier-1").total_items == 3

    def test_units_already_in_cart_count_as_available(self):
        handler, queue, ledger, _ = _setup(on_hand=5)
        _add(handler, 3)
        asyncio.run(queue.drain())

        dto = _add(handler, 2)
        asyncio.run(queue.drain())

        assert dto.items[0].quantity == 5
        assert ledger.check_stock(SHIRT) == 0

    def test_over_stock_rejected_with_breakdown(self):
        handler, queue, _, _ = _setup(on_hand=5)
        _add(handler, 3)
        asyncio.run(queue.drain())

        with pytest.raises(
            ValidationError,
            match=r"Cannot add 3 items\. Only 2 available to add \(2 in stock \+ 3 already in cart\)",
        ):
            _add(handler, 3)

    def test_pending_reservations_count_before_drain(self):
        handler, _, _, _ = _setup(on_hand=5)
        _add(handler, 4)
        with pytest.raises(ValidationError, match="Only 1 available to add"):
            _add(handler, 2)

    def test_carts_are_per_user(self):
        handler, _, _, carts = _setup()
        _add(handler, 1, user="a")
        _add(handler, 2, user="b")
        assert carts.get("a").total_items == 1
        assert carts.get("b").total_items == 2


class TestUpdateQuantity:

    def test_increase_and_decrease_adjust_stock(self):
        handler, queue, ledger, _ = _setup()
        item_id = _add(handler, 2).items[0].id

        handler.update_quantity("cashier-1", item_id, 6)
        asyncio.run(queue.drain())
        assert ledger.check_stock(SHIRT) == 4

        handler.update_quantity("cashier-1", item_id, 1)
        asyncio.run(queue.drain())
        assert ledger.check_stock(SHIRT) == 9

    def test_increase_beyond_total_rejected(self):
        handler, queue, _, _ = _setup(on_hand=5)
        item_id = _add(handler, 2).items[0].id
        asyncio.run(queue.drain())

        with pytest.raises(ValidationError, match=r"Only 5 available in total \(3 in stock \+ 2 already in cart\)"):
            handler.update_quantity("cashier-1", item_id, 6)

    def test_zero_removes_line_and_restores(self):
        handler, queue, ledger, _ = _setup()
        item_id = _add(handler, 2).items[0].id

        dto = handler.update_quantity("cashier-1", item_id, 0)
        asyncio.run(queue.drain())

        assert dto.items == []
        assert ledger.check_stock(SHIRT) == 10


class TestRemoveAndClear:

    def test_clear_restores_everything(self):
        handler, queue, ledger, _ = _setup()
        _add(handler, 4)
        asyncio.run(queue.drain())

        handler.clear("cashier-1")
        asyncio.run(queue.drain())

        assert ledger.check_stock(SHIRT) == 10

    def test_complete_purchase_keeps_stock_reduced(self):
        handler, queue, ledger, carts = _setup()
        _add(handler, 4)
        asyncio.run(queue.drain())

        handler.complete_purchase("cashier-1")
        asyncio.run(queue.drain())

        assert carts.get("cashier-1").is_empty
        assert ledger.check_stock(SHIRT) == 6

    def test_remove_unknown_item(self):
        handler, _, _, _ = _setup()
        with pytest.raises(EntityNotFoundError, match="not found"):
            handler.remove_item("cashier-1", "nope")


class TestPricing:

    def test_group_discount_reprices(self):
        handler, _, _, _ = _setup()
        _add(handler, 2)

        dto = handler.apply_group_discount("cashier-1", "Shirt", "10")

        assert dto.items[0].price == "90.00"
        assert dto.items[0].discount == "10%"
        assert dto.total_amount == "180.00"

    def test_wholesale_then_remove(self):
        handler, _, _, _ = _setup()
        _add(handler, 2)

        dto = handler.apply_wholesale_pricing("cashier-1", "Shirt", "75")
        assert dto.items[0].price == "75.00"
        assert dto.items[0].discount == "wholesale"

        dto = handler.remove_wholesale_pricing("cashier-1", "Shirt")
        assert dto.items[0].price == "100.00"

    def test_pricing_does_not_reserve(self):
        handler, queue, _, _ = _setup()
        _add(handler, 2)
        asyncio.run(queue.drain())
        handler.apply_group_discount("cashier-1", "Shirt", "10")
        assert queue.pending == []
