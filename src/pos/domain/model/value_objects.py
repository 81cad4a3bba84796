"""Value Objects shared across the domain.

Value Objects are immutable and compared by value, not identity.
They encapsulate validation so invalid values can never exist.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pos.domain.exceptions import ValidationError

CENT = Decimal("0.01")
DEFAULT_CURRENCY = "THB"


def round_money(amount: Decimal) -> Decimal:
    """Round half-up to whole cents."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """Monetary amount with currency.

    Uses Decimal to avoid floating-point rounding errors that would be
    unacceptable in financial calculations.  Intermediate values may carry
    more than two decimal places; ``rounded()`` fixes them to cents.
    """

    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise ValidationError(
                f"Money amount must be a Decimal, got {type(self.amount).__name__}"
            )
        if self.amount < Decimal("0"):
            raise ValidationError(
                f"Money amount cannot be negative, got {self.amount}"
            )

    # --- Arithmetic helpers ---------------------------------------------------

    def __add__(self, other: Money) -> Money:
        self._assert_same_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._assert_same_currency(other)
        result = self.amount - other.amount
        if result < Decimal("0"):
            raise ValidationError("Money subtraction would result in a negative amount")
        return Money(result, self.currency)

    def __mul__(self, factor: int) -> Money:
        if not isinstance(factor, int):
            raise TypeError(f"Can only multiply Money by int, got {type(factor).__name__}")
        return Money(self.amount * factor, self.currency)

    def scale(self, factor: Decimal) -> Money:
        """Multiply by a non-negative Decimal ratio (discounts, tax rates)."""
        return Money(self.amount * factor, self.currency)

    def rounded(self) -> Money:
        return Money(round_money(self.amount), self.currency)

    def __lt__(self, other: Money) -> bool:
        self._assert_same_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        self._assert_same_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        self._assert_same_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        self._assert_same_currency(other)
        return self.amount >= other.amount

    # --- Display --------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.amount:.2f}"

    # --- Internal helpers -----------------------------------------------------

    def _assert_same_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise ValidationError(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    # --- Factory --------------------------------------------------------------

    @staticmethod
    def of(amount: str | float | int | Decimal, currency: str = DEFAULT_CURRENCY) -> Money:
        """Convenient factory that coerces to Decimal safely."""
        try:
            return Money(Decimal(str(amount)), currency)
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f"Invalid money amount: {amount!r}") from exc

    @staticmethod
    def zero(currency: str = DEFAULT_CURRENCY) -> Money:
        return Money(Decimal("0.00"), currency)


@dataclass(frozen=True)
class Quantity:
    """A positive integer quantity.

    Enforces the invariant that a line can never hold zero or negative units.
    """

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValidationError(
                f"Quantity must be an integer, got {type(self.value).__name__}"
            )
        if self.value <= 0:
            raise ValidationError("Quantity must be positive")

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class StockKey:
    """Address of one stock cell: a size of a color variant of a stock group.

    Colorless or sizeless stock uses the empty string for that part.
    """

    stock_id: str
    color: str = ""
    size: str = ""

    def __post_init__(self) -> None:
        if not self.stock_id or not self.stock_id.strip():
            raise ValidationError("Stock ID is required")

    def __str__(self) -> str:
        return f"{self.stock_id}/{self.color or '-'}/{self.size or '-'}"


LINE_KEY_SEPARATOR = "___"


@dataclass(frozen=True)
class LineKey:
    """Reference to a transaction line: the line's item id plus its index.

    The index is the line's permanent identity inside the frozen item list;
    the item id lets us detect a client working from a stale view.
    """

    item_id: str
    item_index: int

    def __post_init__(self) -> None:
        if self.item_index < 0:
            raise ValidationError(f"Line index cannot be negative, got {self.item_index}")

    def __str__(self) -> str:
        return f"{self.item_id}{LINE_KEY_SEPARATOR}{self.item_index}"

    @staticmethod
    def parse(raw: str) -> LineKey:
        """Parse ``'<item_id>___<index>'``."""
        item_id, sep, index = raw.rpartition(LINE_KEY_SEPARATOR)
        if not sep or not index.strip().isdigit():
            raise ValidationError(
                f"Invalid line key '{raw}'. Expected 'ITEM_ID{LINE_KEY_SEPARATOR}INDEX'."
            )
        return LineKey(item_id=item_id, item_index=int(index))
