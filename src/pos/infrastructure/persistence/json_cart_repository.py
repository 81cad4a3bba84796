"""JSON-file-backed implementation of CartRepository."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pos.domain.model.cart import Cart, CartItem
from pos.domain.model.value_objects import DEFAULT_CURRENCY, Money
from pos.domain.repository.cart_repository import CartRepository
from pos.infrastructure.persistence.json_document import (
    document_lock,
    ensure_file,
    read_json,
    write_json,
)


class JsonCartRepository(CartRepository):

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        ensure_file(self._file_path, {})

    # --- CartRepository interface ---------------------------------------------

    def get(self, user_id: str) -> Cart | None:
        raw = self._load_raw().get(user_id)
        return self._to_domain(user_id, raw) if raw is not None else None

    def save(self, cart: Cart) -> None:
        with document_lock(self._file_path):
            carts = self._load_raw()
            carts[cart.user_id] = self._to_raw(cart)
            write_json(self._file_path, carts)

    def delete(self, user_id: str) -> None:
        with document_lock(self._file_path):
            carts = self._load_raw()
            if carts.pop(user_id, None) is not None:
                write_json(self._file_path, carts)

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(cart: Cart) -> dict:
        return {
            "currency": cart.currency,
            "items": [
                {
                    "id": item.id,
                    "stock_id": item.stock_id,
                    "group_name": item.group_name,
                    "quantity": item.quantity,
                    "unit_price": str(item.unit_price.amount),
                    "original_price": str(item.original_price.amount),
                    "selected_color": item.selected_color,
                    "selected_size": item.selected_size,
                    "group_discount": str(item.group_discount),
                    "variant_discount": str(item.variant_discount),
                    "discounted_price": (
                        str(item.discounted_price.amount)
                        if item.discounted_price is not None
                        else None
                    ),
                    "is_wholesale_pricing": item.is_wholesale_pricing,
                }
                for item in cart.items
            ],
        }

    @staticmethod
    def _to_domain(user_id: str, raw: dict) -> Cart:
        currency = raw.get("currency", DEFAULT_CURRENCY)
        items = [
            CartItem(
                id=i["id"],
                stock_id=i["stock_id"],
                group_name=i["group_name"],
                quantity=i["quantity"],
                unit_price=Money(Decimal(i["unit_price"]), currency),
                original_price=Money(Decimal(i.get("original_price") or i["unit_price"]), currency),
                selected_color=i.get("selected_color", ""),
                selected_size=i.get("selected_size", ""),
                group_discount=Decimal(i.get("group_discount", "0")),
                variant_discount=Decimal(i.get("variant_discount", "0")),
                discounted_price=(
                    Money(Decimal(i["discounted_price"]), currency)
                    if i.get("discounted_price") is not None
                    else None
                ),
                is_wholesale_pricing=i.get("is_wholesale_pricing", False),
            )
            for i in raw.get("items", [])
        ]
        return Cart(user_id=user_id, items=items, currency=currency)

    # --- File helpers ---------------------------------------------------------

    def _load_raw(self) -> dict:
        return read_json(self._file_path)
