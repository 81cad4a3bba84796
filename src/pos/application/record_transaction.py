"""Application service: Record Transaction use case.

Turns a checkout draft into a ledger entry.  The draft's lines are frozen
into TransactionLines and its figures become the authoritative totals;
nothing on the transaction is recomputed afterwards.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

import structlog

from pos.application.dto import DraftLineSpec, TransactionDraft
from pos.domain.exceptions import ValidationError
from pos.domain.model.transaction import (
    PaymentMethod,
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from pos.domain.model.value_objects import DEFAULT_CURRENCY, Money
from pos.domain.repository.transaction_repository import TransactionRepository

log = structlog.get_logger(__name__)


def parse_payment_method(raw: str) -> PaymentMethod:
    try:
        return PaymentMethod(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Unknown payment method '{raw}'. Expected one of: {allowed}")


def parse_status(raw: str) -> TransactionStatus:
    try:
        return TransactionStatus(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in TransactionStatus)
        raise ValidationError(f"Unknown status '{raw}'. Expected one of: {allowed}")


def _percent(raw: str) -> Decimal:
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid discount percentage: {raw!r}") from exc


class RecordTransactionHandler:

    def __init__(
        self,
        transaction_repo: TransactionRepository,
        currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self._transaction_repo = transaction_repo
        self._currency = currency

    def handle(self, draft: TransactionDraft) -> str:
        """Record a completed sale and return its transaction ID.

        Steps:
        1. Freeze each draft line into a TransactionLine (price snapshot).
        2. Let the Transaction aggregate validate the totals.
        3. Assign a sequential ID if the caller did not supply one.
        4. Persist.
        """
        lines = [self._to_line(spec) for spec in draft.items]
        status = parse_status(draft.status) if draft.status else TransactionStatus.COMPLETED
        transaction_id = draft.transaction_id or self._transaction_repo.next_transaction_id()

        transaction = Transaction.create(
            transaction_id=transaction_id,
            items=lines,
            subtotal=self._money(draft.subtotal),
            tax=self._money(draft.tax),
            discount=self._money(draft.discount),
            total=self._money(draft.total),
            amount_paid=self._money(draft.amount_paid),
            change=self._money(draft.change),
            payment_method=parse_payment_method(draft.payment_method),
            status=status,
            shop_id=draft.shop_id,
            customer_id=draft.customer_id,
        )
        self._transaction_repo.add(transaction)

        log.info(
            "transaction_recorded",
            transaction_id=transaction.transaction_id,
            item_count=len(transaction.items),
            total=str(transaction.total),
            payment_method=transaction.payment_method.value,
            status=transaction.status.value,
        )
        return transaction.transaction_id

    # --- Mapping --------------------------------------------------------------

    def _money(self, raw: str) -> Money:
        return Money.of(raw, self._currency)

    def _to_line(self, spec: DraftLineSpec) -> TransactionLine:
        unit_price = self._money(spec.unit_price)
        return TransactionLine(
            item_id=spec.item_id,
            stock_id=spec.stock_id,
            group_name=spec.group_name,
            quantity=spec.quantity,
            unit_price=unit_price,
            original_price=self._money(spec.original_price) if spec.original_price else unit_price,
            selected_color=spec.selected_color,
            selected_size=spec.selected_size,
            group_discount=_percent(spec.group_discount),
            variant_discount=_percent(spec.variant_discount),
            discounted_price=(
                self._money(spec.discounted_price)
                if spec.discounted_price is not None
                else None
            ),
        )
