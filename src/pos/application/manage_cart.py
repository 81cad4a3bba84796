"""Application service: cart editing.

Every quantity change in the cart becomes a signed reservation on the
queue: increases reduce stock, decreases and removals restore it.
Increases are checked against

    available = stock on hand + units already in this cart

because the units already in the cart were taken out of the on-hand
figure when they were added.
"""

from __future__ import annotations

from decimal import Decimal

from pos.application.dto import CartDTO, cart_to_dto
from pos.application.reservation_queue import InventoryReservationQueue
from pos.domain.exceptions import ValidationError
from pos.domain.model.cart import Cart
from pos.domain.model.value_objects import DEFAULT_CURRENCY, Money, StockKey
from pos.domain.repository.cart_repository import CartRepository


class CartHandler:

    def __init__(
        self,
        cart_repo: CartRepository,
        queue: InventoryReservationQueue,
        currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self._cart_repo = cart_repo
        self._queue = queue
        self._currency = currency

    def show(self, user_id: str) -> CartDTO:
        return cart_to_dto(self._load(user_id))

    # --- Quantity changes (reserve / release stock) ---------------------------

    def add_item(
        self,
        user_id: str,
        stock_id: str,
        group_name: str,
        quantity: int,
        unit_price: str,
        selected_color: str = "",
        selected_size: str = "",
        original_price: str | None = None,
    ) -> CartDTO:
        cart = self._load(user_id)
        key = StockKey(stock_id, selected_color, selected_size)

        in_stock = self._queue.check_stock(key)
        existing = cart.find_line(key)
        in_cart = existing.quantity if existing is not None else 0
        total_available = in_stock + in_cart
        if in_cart + quantity > total_available:
            raise ValidationError(
                f"Cannot add {quantity} items. Only {total_available - in_cart} available "
                f"to add ({in_stock} in stock + {in_cart} already in cart)."
            )

        price = Money.of(unit_price, self._currency)
        cart.add_item(
            stock_id=stock_id,
            group_name=group_name,
            quantity=quantity,
            unit_price=price,
            original_price=Money.of(original_price, self._currency) if original_price else price,
            selected_color=selected_color,
            selected_size=selected_size,
        )
        self._queue.enqueue_reduce(key, quantity)
        self._cart_repo.save(cart)
        return cart_to_dto(cart)

    def update_quantity(self, user_id: str, item_id: str, quantity: int) -> CartDTO:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            return self.remove_item(user_id, item_id)

        cart = self._load(user_id)
        item = cart.get_item(item_id)
        if quantity > item.quantity:
            in_stock = self._queue.check_stock(item.stock_key)
            total_available = in_stock + item.quantity
            if quantity > total_available:
                raise ValidationError(
                    f"Cannot set quantity to {quantity}. Only {total_available} available "
                    f"in total ({in_stock} in stock + {item.quantity} already in cart)."
                )

        delta = cart.set_quantity(item_id, quantity)
        self._queue.enqueue_delta(item.stock_key, delta)
        self._cart_repo.save(cart)
        return cart_to_dto(cart)

    def remove_item(self, user_id: str, item_id: str) -> CartDTO:
        cart = self._load(user_id)
        item = cart.remove_item(item_id)
        self._queue.enqueue_restore(item.stock_key, item.quantity)
        self._cart_repo.save(cart)
        return cart_to_dto(cart)

    def clear(self, user_id: str) -> CartDTO:
        """Abandon the cart: every unit goes back to stock."""
        cart = self._load(user_id)
        for item in cart.clear():
            self._queue.enqueue_restore(item.stock_key, item.quantity)
        self._cart_repo.save(cart)
        return cart_to_dto(cart)

    def complete_purchase(self, user_id: str) -> None:
        """Empty the cart after checkout.  The units were sold, so nothing is restored."""
        cart = self._load(user_id)
        cart.clear()
        self._cart_repo.save(cart)

    # --- Pricing --------------------------------------------------------------

    def apply_group_discount(self, user_id: str, group_name: str, percent: str) -> CartDTO:
        return self._reprice(user_id, lambda cart: cart.apply_group_discount(group_name, Decimal(percent)))

    def remove_group_discount(self, user_id: str, group_name: str) -> CartDTO:
        return self._reprice(user_id, lambda cart: cart.remove_group_discount(group_name))

    def apply_variant_discount(self, user_id: str, item_id: str, percent: str) -> CartDTO:
        return self._reprice(user_id, lambda cart: cart.apply_variant_discount(item_id, Decimal(percent)))

    def remove_variant_discount(self, user_id: str, item_id: str) -> CartDTO:
        return self._reprice(user_id, lambda cart: cart.remove_variant_discount(item_id))

    def apply_wholesale_pricing(self, user_id: str, group_name: str, price: str) -> CartDTO:
        per_item = Money.of(price, self._currency)
        return self._reprice(user_id, lambda cart: cart.apply_wholesale_pricing(group_name, per_item))

    def remove_wholesale_pricing(self, user_id: str, group_name: str) -> CartDTO:
        return self._reprice(user_id, lambda cart: cart.remove_wholesale_pricing(group_name))

    # --- Internal helpers -----------------------------------------------------

    def _load(self, user_id: str) -> Cart:
        cart = self._cart_repo.get(user_id)
        if cart is None:
            cart = Cart(user_id=user_id, currency=self._currency)
        return cart

    def _reprice(self, user_id: str, change) -> CartDTO:
        cart = self._load(user_id)
        change(cart)
        self._cart_repo.save(cart)
        return cart_to_dto(cart)
