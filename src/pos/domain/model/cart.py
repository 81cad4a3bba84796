"""Cart aggregate — the items a cashier is about to sell.

The cart owns its items exclusively.  It knows nothing about stock: the
application layer checks availability and turns every quantity change
into a reservation on the Stock Ledger.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from pos.domain.exceptions import EntityNotFoundError, ValidationError
from pos.domain.model.value_objects import DEFAULT_CURRENCY, Money, StockKey

MAX_DISCOUNT_PERCENT = Decimal("100")


def _percent(value: Decimal | int | str) -> Decimal:
    pct = Decimal(str(value))
    if pct < 0 or pct > MAX_DISCOUNT_PERCENT:
        raise ValidationError(f"Discount must be between 0 and 100 percent, got {pct}")
    return pct


def discounted_price(
    unit_price: Money,
    group_discount: Decimal,
    variant_discount: Decimal,
) -> Money:
    """Sum both percentages, then apply them once to the unit price."""
    total_pct = group_discount + variant_discount
    if total_pct > MAX_DISCOUNT_PERCENT:
        raise ValidationError(
            f"Combined discount {total_pct}% exceeds 100%"
        )
    return unit_price.scale(1 - total_pct / 100)


@dataclass
class CartItem:
    """One line of the cart.

    ``unit_price`` and ``original_price`` never change once the item is in
    the cart; discounts only ever move ``discounted_price``.
    """

    id: str
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
    is_wholesale_pricing: bool = False

    @property
    def stock_key(self) -> StockKey:
        return StockKey(self.stock_id, self.selected_color, self.selected_size)

    @property
    def actual_price(self) -> Money:
        if self.discounted_price is not None:
            return self.discounted_price
        return self.unit_price

    @property
    def line_total(self) -> Money:
        return self.actual_price * self.quantity

    def reprice(self) -> None:
        if self.group_discount > 0 or self.variant_discount > 0:
            self.discounted_price = discounted_price(
                self.unit_price, self.group_discount, self.variant_discount
            )
        else:
            self.discounted_price = None


@dataclass
class Cart:
    """Aggregate root for one user's cart."""

    user_id: str
    items: list[CartItem] = field(default_factory=list)
    currency: str = DEFAULT_CURRENCY

    # --- Line mutations -------------------------------------------------------

    def add_item(
        self,
        stock_id: str,
        group_name: str,
        quantity: int,
        unit_price: Money,
        original_price: Money | None = None,
        selected_color: str = "",
        selected_size: str = "",
    ) -> CartItem:
        """Add units of a stock cell, merging into an existing line."""
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")

        existing = self.find_line(StockKey(stock_id, selected_color, selected_size))
        if existing is not None:
            existing.quantity += quantity
            return existing

        item = CartItem(
            id=f"{stock_id}-{selected_color or 'default'}-{selected_size or 'default'}-{uuid.uuid4().hex[:8]}",
            stock_id=stock_id,
            group_name=group_name,
            quantity=quantity,
            unit_price=unit_price,
            original_price=original_price or unit_price,
            selected_color=selected_color,
            selected_size=selected_size,
        )
        self.items.append(item)
        return item

    def set_quantity(self, item_id: str, quantity: int) -> int:
        """Set a line's quantity and return the signed change."""
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        item = self.get_item(item_id)
        delta = quantity - item.quantity
        item.quantity = quantity
        return delta

    def remove_item(self, item_id: str) -> CartItem:
        item = self.get_item(item_id)
        self.items.remove(item)
        return item

    def clear(self) -> list[CartItem]:
        """Empty the cart and hand back what was in it."""
        removed, self.items = self.items, []
        return removed

    # --- Discounts ------------------------------------------------------------

    def apply_group_discount(self, group_name: str, percent: Decimal | int | str) -> None:
        pct = _percent(percent)
        items = self._group(group_name)
        # validate every line before touching any
        for item in items:
            discounted_price(item.unit_price, pct, item.variant_discount)
        for item in items:
            item.group_discount = pct
            item.is_wholesale_pricing = False
            item.reprice()

    def remove_group_discount(self, group_name: str) -> None:
        for item in self._group(group_name):
            item.group_discount = Decimal("0")
            item.reprice()

    def apply_variant_discount(self, item_id: str, percent: Decimal | int | str) -> None:
        pct = _percent(percent)
        item = self.get_item(item_id)
        discounted_price(item.unit_price, item.group_discount, pct)
        item.variant_discount = pct
        item.is_wholesale_pricing = False
        item.reprice()

    def remove_variant_discount(self, item_id: str) -> None:
        item = self.get_item(item_id)
        item.variant_discount = Decimal("0")
        item.reprice()

    def apply_wholesale_pricing(self, group_name: str, price_per_item: Money) -> None:
        """Replace percentage discounts on a group with a flat per-unit price."""
        for item in self._group(group_name):
            item.group_discount = Decimal("0")
            item.variant_discount = Decimal("0")
            item.discounted_price = price_per_item
            item.is_wholesale_pricing = True

    def remove_wholesale_pricing(self, group_name: str) -> None:
        for item in self._group(group_name):
            if item.is_wholesale_pricing:
                item.discounted_price = None
                item.is_wholesale_pricing = False

    # --- Computed properties --------------------------------------------------

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_amount(self) -> Money:
        result = Money.zero(self.currency)
        for item in self.items:
            result = result + item.line_total
        return result

    @property
    def is_empty(self) -> bool:
        return not self.items

    # --- Lookups --------------------------------------------------------------

    def get_item(self, item_id: str) -> CartItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise EntityNotFoundError(f"Cart item '{item_id}' not found")

    def find_line(self, key: StockKey) -> CartItem | None:
        for item in self.items:
            if item.stock_key == key:
                return item
        return None

    def _group(self, group_name: str) -> list[CartItem]:
        matched = [item for item in self.items if item.group_name == group_name]
        if not matched:
            raise EntityNotFoundError(f"No cart items in group '{group_name}'")
        return matched
