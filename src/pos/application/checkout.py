"""Application service: Checkout use case.

Prices the cart, takes payment and records the sale.  The cart's units
were already taken out of stock while it was being built, so checkout
never touches the Stock Ledger; it only empties the cart afterwards.

    subtotal = sum(price paid x quantity)
    tax      = (subtotal - cart discount) x rate / 100
    total    = subtotal - cart discount + tax
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from pos.application.dto import DraftLineSpec, TransactionDraft
from pos.application.manage_cart import CartHandler
from pos.application.record_transaction import RecordTransactionHandler, parse_payment_method
from pos.domain.exceptions import ValidationError
from pos.domain.model.cart import CartItem
from pos.domain.model.transaction import PaymentMethod, TransactionStatus
from pos.domain.model.value_objects import DEFAULT_CURRENCY, Money, round_money
from pos.domain.repository.cart_repository import CartRepository


def _rate(raw: str | Decimal) -> Decimal:
    try:
        rate = Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid tax rate: {raw!r}") from exc
    if rate < 0:
        raise ValidationError(f"Tax rate cannot be negative, got {rate}")
    return rate


class CheckoutHandler:

    def __init__(
        self,
        cart_repo: CartRepository,
        cart_handler: CartHandler,
        record_handler: RecordTransactionHandler,
        tax_rate: str | Decimal = "0",
        currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self._cart_repo = cart_repo
        self._cart_handler = cart_handler
        self._record_handler = record_handler
        self._tax_rate = _rate(tax_rate)
        self._currency = currency

    def handle(
        self,
        user_id: str,
        payment_method: str,
        amount_paid: str | None = None,
        cart_discount: str = "0",
        tax_rate: str | None = None,
        shop_id: str | None = None,
        customer_id: str | None = None,
    ) -> str:
        """Record the cart as a sale and return the new transaction ID.

        Cash sales need ``amount_paid`` and get change back; every other
        method is paid exactly.  Cash on delivery is recorded as pending.
        """
        cart = self._cart_repo.get(user_id)
        if cart is None or cart.is_empty:
            raise ValidationError("Cart is empty")

        method = parse_payment_method(payment_method)
        rate = _rate(tax_rate) if tax_rate is not None else self._tax_rate

        subtotal = cart.total_amount.rounded()
        discount = Money.of(cart_discount, self._currency).rounded()
        if discount > subtotal:
            raise ValidationError(
                f"Cart discount {discount} cannot exceed subtotal {subtotal}"
            )
        taxable = subtotal - discount
        tax = Money(round_money(taxable.amount * rate / 100), self._currency)
        total = taxable + tax

        if method == PaymentMethod.CASH:
            if amount_paid is None:
                raise ValidationError("Amount paid is required for cash payments")
            paid = Money.of(amount_paid, self._currency).rounded()
            if paid < total:
                raise ValidationError(
                    f"Insufficient payment amount: paid {paid}, total {total}"
                )
            change = paid - total
        else:
            paid = total
            change = Money.zero(self._currency)

        status = TransactionStatus.PENDING if method == PaymentMethod.COD else TransactionStatus.COMPLETED

        draft = TransactionDraft(
            items=[self._to_spec(item) for item in cart.items],
            subtotal=str(subtotal),
            tax=str(tax),
            discount=str(discount),
            total=str(total),
            payment_method=method.value,
            amount_paid=str(paid),
            change=str(change),
            status=status.value,
            shop_id=shop_id,
            customer_id=customer_id,
        )
        transaction_id = self._record_handler.handle(draft)
        self._cart_handler.complete_purchase(user_id)
        return transaction_id

    @staticmethod
    def _to_spec(item: CartItem) -> DraftLineSpec:
        return DraftLineSpec(
            item_id=item.id,
            stock_id=item.stock_id,
            group_name=item.group_name,
            quantity=item.quantity,
            unit_price=str(item.unit_price.amount),
            original_price=str(item.original_price.amount),
            selected_color=item.selected_color,
            selected_size=item.selected_size,
            # full precision; rounding happens on totals only
            discounted_price=(
                str(item.discounted_price.amount)
                if item.discounted_price is not None
                else None
            ),
            group_discount=str(item.group_discount),
            variant_discount=str(item.variant_discount),
        )
