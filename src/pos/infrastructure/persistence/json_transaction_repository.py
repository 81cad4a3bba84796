"""JSON-file-backed implementation of TransactionRepository.

``transactions.json`` holds one document per transaction, refunds
embedded.  ``save`` compares the stored ``version`` before replacing a
document; the read-compare-write holds the document lock, so it is
safe across processes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path

from pos.domain.exceptions import ConcurrencyConflictError, EntityNotFoundError, ValidationError
from pos.domain.model.refund import Refund, RefundItem, RefundStatus
from pos.domain.model.transaction import (
    PaymentMethod,
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from pos.domain.model.value_objects import DEFAULT_CURRENCY, Money
from pos.domain.repository.transaction_repository import (
    TransactionFilter,
    TransactionRepository,
    format_transaction_id,
)
from pos.infrastructure.persistence.json_document import (
    document_lock,
    ensure_file,
    read_json,
    write_json,
)


class JsonTransactionRepository(TransactionRepository):

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        ensure_file(self._file_path, {"sequence": 0, "transactions": []})

    # --- TransactionRepository interface --------------------------------------

    def next_transaction_id(self) -> str:
        with document_lock(self._file_path):
            store = self._load_raw()
            store["sequence"] = store.get("sequence", 0) + 1
            write_json(self._file_path, store)
            return format_transaction_id(store["sequence"])

    def get_by_id(self, transaction_id: str) -> Transaction | None:
        for raw in self._load_raw()["transactions"]:
            if raw["transaction_id"] == transaction_id:
                return self._to_domain(raw)
        return None

    def list_all(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        transactions = [self._to_domain(raw) for raw in self._load_raw()["transactions"]]
        if filters is not None:
            transactions = [t for t in transactions if filters.matches(t)]
        transactions.sort(key=lambda t: t.created_at, reverse=True)
        if filters is not None and filters.limit is not None:
            transactions = transactions[: filters.limit]
        return transactions

    def add(self, transaction: Transaction) -> None:
        with document_lock(self._file_path):
            store = self._load_raw()
            if any(raw["transaction_id"] == transaction.transaction_id for raw in store["transactions"]):
                raise ValidationError(f"Transaction {transaction.transaction_id} already exists")
            store["transactions"].append(self._to_raw(transaction))
            write_json(self._file_path, store)

    def save(self, transaction: Transaction, expected_version: int) -> None:
        with document_lock(self._file_path):
            store = self._load_raw()
            for i, raw in enumerate(store["transactions"]):
                if raw["transaction_id"] != transaction.transaction_id:
                    continue
                if raw.get("version", 0) != expected_version:
                    raise ConcurrencyConflictError(
                        f"Transaction {transaction.transaction_id} was modified concurrently "
                        f"(expected version {expected_version}, found {raw.get('version', 0)})"
                    )
                transaction.version = expected_version + 1
                store["transactions"][i] = self._to_raw(transaction)
                write_json(self._file_path, store)
                return
        raise EntityNotFoundError(f"Transaction {transaction.transaction_id} not found")

    def list_refunds(self, transaction_id: str | None = None) -> list[Refund]:
        refunds: list[Refund] = []
        for raw in self._load_raw()["transactions"]:
            if transaction_id is not None and raw["transaction_id"] != transaction_id:
                continue
            currency = raw.get("currency", DEFAULT_CURRENCY)
            refunds.extend(
                self._refund_to_domain(r, currency, raw["transaction_id"]) for r in raw.get("refunds", [])
            )
        refunds.sort(key=lambda r: r.created_at, reverse=True)
        return refunds

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(transaction: Transaction) -> dict:
        return {
            "transaction_id": transaction.transaction_id,
            "version": transaction.version,
            "status": transaction.status.value,
            "payment_method": transaction.payment_method.value,
            "currency": transaction.total.currency,
            "subtotal": str(transaction.subtotal.amount),
            "tax": str(transaction.tax.amount),
            "discount": str(transaction.discount.amount),
            "total": str(transaction.total.amount),
            "amount_paid": str(transaction.amount_paid.amount),
            "change": str(transaction.change.amount),
            "shop_id": transaction.shop_id,
            "customer_id": transaction.customer_id,
            "created_at": transaction.created_at.isoformat(),
            "cancelled_at": transaction.cancelled_at.isoformat() if transaction.cancelled_at else None,
            "cancel_reason": transaction.cancel_reason,
            "cancelled_by": transaction.cancelled_by,
            "items": [
                {
                    "item_id": line.item_id,
                    "stock_id": line.stock_id,
                    "group_name": line.group_name,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price.amount),
                    "original_price": str(line.original_price.amount),
                    "selected_color": line.selected_color,
                    "selected_size": line.selected_size,
                    "group_discount": str(line.group_discount),
                    "variant_discount": str(line.variant_discount),
                    "discounted_price": (
                        str(line.discounted_price.amount)
                        if line.discounted_price is not None
                        else None
                    ),
                }
                for line in transaction.items
            ],
            "refunds": [
                {
                    "refund_id": refund.refund_id,
                    "status": refund.status.value,
                    "items_subtotal": str(refund.items_subtotal.amount),
                    "cart_discount_refund": str(refund.cart_discount_refund.amount),
                    "tax_refund": str(refund.tax_refund.amount),
                    "total_amount": str(refund.total_amount.amount),
                    "reason": refund.reason,
                    "processed_by": refund.processed_by,
                    "created_at": refund.created_at.isoformat(),
                    "items": [
                        {
                            "item_id": item.item_id,
                            "item_index": item.item_index,
                            "quantity": item.quantity,
                            "unit_price": str(item.unit_price.amount),
                            "total_amount": str(item.total_amount.amount),
                        }
                        for item in refund.items
                    ],
                }
                for refund in transaction.refunds
            ],
        }

    @classmethod
    def _to_domain(cls, raw: dict) -> Transaction:
        currency = raw.get("currency", DEFAULT_CURRENCY)

        def money(value: str) -> Money:
            return Money(Decimal(value), currency)

        items = tuple(
            TransactionLine(
                item_id=i["item_id"],
                stock_id=i["stock_id"],
                group_name=i["group_name"],
                quantity=i["quantity"],
                unit_price=money(i["unit_price"]),
                original_price=money(i.get("original_price") or i["unit_price"]),
                selected_color=i.get("selected_color", ""),
                selected_size=i.get("selected_size", ""),
                group_discount=Decimal(i.get("group_discount", "0")),
                variant_discount=Decimal(i.get("variant_discount", "0")),
                discounted_price=money(i["discounted_price"]) if i.get("discounted_price") is not None else None,
            )
            for i in raw["items"]
        )
        return Transaction(
            transaction_id=raw["transaction_id"],
            items=items,
            subtotal=money(raw["subtotal"]),
            tax=money(raw["tax"]),
            discount=money(raw["discount"]),
            total=money(raw["total"]),
            amount_paid=money(raw["amount_paid"]),
            change=money(raw["change"]),
            payment_method=PaymentMethod(raw["payment_method"]),
            status=TransactionStatus(raw["status"]),
            refunds=[cls._refund_to_domain(r, currency, raw["transaction_id"]) for r in raw.get("refunds", [])],
            shop_id=raw.get("shop_id"),
            customer_id=raw.get("customer_id"),
            created_at=datetime.fromisoformat(raw["created_at"]),
            cancelled_at=datetime.fromisoformat(raw["cancelled_at"]) if raw.get("cancelled_at") else None,
            cancel_reason=raw.get("cancel_reason"),
            cancelled_by=raw.get("cancelled_by"),
            version=raw.get("version", 0),
        )

    @staticmethod
    def _refund_to_domain(raw: dict, currency: str, transaction_id: str) -> Refund:
        def money(value: str) -> Money:
            return Money(Decimal(value), currency)

        return Refund(
            refund_id=raw["refund_id"],
            transaction_id=transaction_id,
            items=tuple(
                RefundItem(
                    item_id=i["item_id"],
                    item_index=i["item_index"],
                    quantity=i["quantity"],
                    unit_price=money(i["unit_price"]),
                    total_amount=money(i["total_amount"]),
                )
                for i in raw["items"]
            ),
            items_subtotal=money(raw["items_subtotal"]),
            cart_discount_refund=money(raw["cart_discount_refund"]),
            tax_refund=money(raw["tax_refund"]),
            total_amount=money(raw["total_amount"]),
            status=RefundStatus(raw.get("status", RefundStatus.COMPLETED.value)),
            reason=raw.get("reason"),
            processed_by=raw.get("processed_by"),
            created_at=datetime.fromisoformat(raw["created_at"]),
        )

    # --- File helpers ---------------------------------------------------------

    def _load_raw(self) -> dict:
        return read_json(self._file_path)
