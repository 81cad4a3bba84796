"""Application service: Transaction Summary (query).

Net figures for reporting.  Completed, partially refunded and refunded
sales count for what was kept after refunds; cancelled and still-pending
sales count for nothing.  Tax and discount are scaled by the share of
the sale that was kept.
"""

from __future__ import annotations

from decimal import Decimal

from pos.application.dto import TransactionSummaryDTO
from pos.domain.model.transaction import REVENUE_STATUSES, PaymentMethod
from pos.domain.model.value_objects import round_money
from pos.domain.repository.transaction_repository import (
    TransactionFilter,
    TransactionRepository,
)


class TransactionSummaryHandler:

    def __init__(self, transaction_repo: TransactionRepository) -> None:
        self._transaction_repo = transaction_repo

    def handle(self, filters: TransactionFilter | None = None) -> TransactionSummaryDTO:
        transactions = self._transaction_repo.list_all(filters)

        revenue = Decimal("0")
        tax = Decimal("0")
        discount = Decimal("0")
        refunded = Decimal("0")
        by_method = {method.value: Decimal("0") for method in PaymentMethod}

        for transaction in transactions:
            if transaction.status not in REVENUE_STATUSES:
                continue
            net = transaction.net_revenue.amount
            total = transaction.total.amount
            revenue += net
            refunded += transaction.total_refunded.amount
            if net > 0 and total > 0:
                share = net / total
                tax += transaction.tax.amount * share
                discount += transaction.discount.amount * share
            by_method[transaction.payment_method.value] += net

        return TransactionSummaryDTO(
            total_transactions=len(transactions),
            total_revenue=f"{round_money(revenue):.2f}",
            total_tax=f"{round_money(tax):.2f}",
            total_discount=f"{round_money(discount):.2f}",
            total_refunded=f"{round_money(refunded):.2f}",
            payment_method_breakdown={
                method: f"{round_money(amount):.2f}" for method, amount in by_method.items()
            },
        )
