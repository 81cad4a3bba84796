"""Composition root — wires concrete implementations to domain interfaces.

This is the only place in the codebase that knows about *all* layers.
Every other module depends only on abstractions.
"""

from __future__ import annotations

from functools import lru_cache

from pos.application.cancel_transaction import CancelTransactionHandler
from pos.application.checkout import CheckoutHandler
from pos.application.manage_cart import CartHandler
from pos.application.process_refund import ProcessRefundHandler
from pos.application.record_transaction import RecordTransactionHandler
from pos.application.reservation_queue import InventoryReservationQueue
from pos.application.transaction_guard import TransactionGuard
from pos.infrastructure.config import Settings
from pos.infrastructure.persistence.json_cart_repository import JsonCartRepository
from pos.infrastructure.persistence.json_stock_ledger import JsonStockLedger
from pos.infrastructure.persistence.json_transaction_repository import (
    JsonTransactionRepository,
)

# One guard per process: every refund and cancel handler must share it.
_GUARD = TransactionGuard()


@lru_cache(maxsize=1)
def settings() -> Settings:
    return Settings.from_env()


def transaction_repository() -> JsonTransactionRepository:
    return JsonTransactionRepository(settings().data_dir / "transactions.json")


def stock_ledger() -> JsonStockLedger:
    return JsonStockLedger(settings().data_dir / "stock.json")


def cart_repository() -> JsonCartRepository:
    return JsonCartRepository(settings().data_dir / "carts.json")


def reservation_queue() -> InventoryReservationQueue:
    return InventoryReservationQueue(stock_ledger())


def record_transaction_handler() -> RecordTransactionHandler:
    return RecordTransactionHandler(transaction_repository(), currency=settings().currency)


def process_refund_handler() -> ProcessRefundHandler:
    return ProcessRefundHandler(transaction_repository(), stock_ledger(), guard=_GUARD)


def cancel_transaction_handler() -> CancelTransactionHandler:
    return CancelTransactionHandler(transaction_repository(), stock_ledger(), guard=_GUARD)


def cart_handler(queue: InventoryReservationQueue) -> CartHandler:
    return CartHandler(cart_repository(), queue, currency=settings().currency)


def checkout_handler(queue: InventoryReservationQueue) -> CheckoutHandler:
    return CheckoutHandler(
        cart_repo=cart_repository(),
        cart_handler=cart_handler(queue),
        record_handler=record_transaction_handler(),
        tax_rate=settings().tax_rate,
        currency=settings().currency,
    )
