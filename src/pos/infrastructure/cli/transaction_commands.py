"""CLI commands for the Transaction aggregate."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import click

from pos.application.complete_transaction import CompleteTransactionHandler
from pos.application.dto import DraftLineSpec, TransactionDraft
from pos.application.record_transaction import parse_payment_method, parse_status
from pos.application.show_transaction import (
    GetTransactionRefundsHandler,
    GetTransactionsHandler,
    ListRefundsHandler,
    ShowTransactionHandler,
)
from pos.application.transaction_summary import TransactionSummaryHandler
from pos.domain.exceptions import DomainException
from pos.domain.repository.transaction_repository import TransactionFilter
from pos.infrastructure.bootstrap import (
    cancel_transaction_handler,
    process_refund_handler,
    record_transaction_handler,
    transaction_repository,
)


def _parse_refund_items(raw: str) -> dict[str, int]:
    """Parse 'ITEM_ID___0:2,ITEM_ID___3:1' into {line_key: qty}."""
    result: dict[str, int] = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if ":" not in pair:
            raise click.BadParameter(
                f"Invalid item format '{pair}'. Expected 'ITEM_ID___INDEX:Quantity'."
            )
        key, qty_str = pair.rsplit(":", 1)
        try:
            qty = int(qty_str)
        except ValueError:
            raise click.BadParameter(f"Invalid quantity '{qty_str}' for line '{key}'.")
        result[key.strip()] = result.get(key.strip(), 0) + qty
    return result


def _utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _filters(
    status: str | None,
    payment: str | None,
    shop: str | None,
    start: datetime | None,
    end: datetime | None,
    limit: int | None = None,
    customer: str | None = None,
) -> TransactionFilter:
    try:
        return TransactionFilter(
            shop_id=shop,
            customer_id=customer,
            status=parse_status(status) if status else None,
            payment_method=parse_payment_method(payment) if payment else None,
            start=_utc(start),
            end=_utc(end),
            limit=limit,
        )
    except DomainException as exc:
        raise click.BadParameter(str(exc))


def _display_transaction(dto) -> None:
    click.echo(f"Transaction {dto.transaction_id}  (status={dto.status}, payment={dto.payment_method})")
    click.echo(f"Created:  {dto.created_at}")
    if dto.cancelled_at:
        click.echo(f"Cancelled: {dto.cancelled_at}  by {dto.cancelled_by or '-'}  ({dto.cancel_reason or 'no reason'})")
    click.echo()

    click.echo(
        f"  {'#':>2} {'Line key':<36} {'Item':<20} {'Qty':>4} {'Refunded':>9} {'Paid':>10} {'Total':>10}"
    )
    click.echo(f"  {'-'*97}")
    for item in dto.items:
        click.echo(
            f"  {item.index:>2} {item.item_id + '___' + str(item.index):<36} {item.group_name:<20} "
            f"{item.quantity:>4} {item.refunded_quantity:>9} {item.price_paid:>10} {item.line_total:>10}"
        )
    click.echo(f"  {'-'*97}")
    click.echo(f"  {'Subtotal':<30} {dto.subtotal:>15}")
    click.echo(f"  {'Discount':<30} {dto.discount:>15}")
    click.echo(f"  {'Tax':<30} {dto.tax:>15}")
    click.echo(f"  {'Total':<30} {dto.total:>15}")
    click.echo(f"  {'Paid / change':<30} {dto.amount_paid + ' / ' + dto.change:>15}")
    click.echo(f"  {'Refunded':<30} {dto.total_refunded:>15}  ({dto.refund_count} refunds, cap {dto.refundable_amount})")


@click.command("list")
@click.option("--status", default=None, help="Only transactions in this status.")
@click.option("--payment", default=None, help="Only this payment method.")
@click.option("--shop", default=None, help="Only this shop.")
@click.option("--customer", default=None, help="Only this customer.")
@click.option("--start", type=click.DateTime(), default=None, help="Created at or after (UTC).")
@click.option("--end", type=click.DateTime(), default=None, help="Created at or before (UTC).")
@click.option("--limit", type=int, default=None, help="At most this many rows.")
def transaction_list(status, payment, shop, customer, start, end, limit) -> None:
    """List transactions, newest first."""
    handler = GetTransactionsHandler(transaction_repo=transaction_repository())
    rows = handler.handle(_filters(status, payment, shop, start, end, limit, customer))

    if not rows:
        click.echo("No transactions found.")
        return

    click.echo(f"{'Transaction':<20} {'Status':<20} {'Payment':<8} {'Total':>10} {'Refunded':>10}  Created")
    click.echo("-" * 100)
    for dto in rows:
        click.echo(
            f"{dto.transaction_id:<20} {dto.status:<20} {dto.payment_method:<8} "
            f"{dto.total:>10} {dto.total_refunded:>10}  {dto.created_at}"
        )


@click.command("show")
@click.option("--id", "transaction_id", required=True, help="Transaction ID to display.")
def transaction_show(transaction_id: str) -> None:
    """Show one transaction with its refund state per line."""
    handler = ShowTransactionHandler(transaction_repo=transaction_repository())

    try:
        dto = handler.handle(transaction_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_transaction(dto)


@click.command("record")
@click.option("--file", "draft_file", required=True, type=click.File("r"), help="JSON checkout draft ('-' for stdin).")
def transaction_record(draft_file) -> None:
    """Record a sale from a JSON checkout draft."""
    try:
        raw = json.load(draft_file)
        draft = TransactionDraft(
            items=[DraftLineSpec(**item) for item in raw.pop("items")],
            **raw,
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise click.BadParameter(f"Invalid draft: {exc}")

    try:
        transaction_id = record_transaction_handler().handle(draft)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Transaction {transaction_id} recorded.")


@click.command("complete")
@click.option("--id", "transaction_id", required=True, help="Pending transaction to complete.")
def transaction_complete(transaction_id: str) -> None:
    """Mark a cash-on-delivery sale as paid."""
    handler = CompleteTransactionHandler(transaction_repo=transaction_repository())

    try:
        handler.handle(transaction_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Transaction {transaction_id} completed.")


@click.command("refund")
@click.option("--id", "transaction_id", required=True, help="Transaction to refund.")
@click.option("--items", "items_str", required=True, help="Lines as 'ITEM_ID___INDEX:Qty,...'.")
@click.option("--reason", default=None, help="Why the goods came back.")
@click.option("--by", "processed_by", default=None, help="Staff member processing the refund.")
def transaction_refund(transaction_id: str, items_str: str, reason: str | None, processed_by: str | None) -> None:
    """Refund some or all units of a transaction (restores stock)."""
    quantities = _parse_refund_items(items_str)
    handler = process_refund_handler()

    try:
        refund_id = asyncio.run(
            handler.handle(transaction_id, quantities, reason=reason, processed_by=processed_by)
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Refund {refund_id} recorded for transaction {transaction_id}.")


@click.command("cancel")
@click.option("--id", "transaction_id", required=True, help="Transaction to cancel.")
@click.option("--reason", default=None, help="Why the sale is cancelled.")
@click.option("--by", "cancelled_by", default=None, help="Staff member cancelling the sale.")
def transaction_cancel(transaction_id: str, reason: str | None, cancelled_by: str | None) -> None:
    """Cancel a transaction (restores every unit not yet refunded)."""
    handler = cancel_transaction_handler()

    try:
        restorations = asyncio.run(
            handler.handle(transaction_id, reason=reason, cancelled_by=cancelled_by)
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    units = sum(adjustment.quantity for _, adjustment in restorations)
    click.echo(f"Transaction {transaction_id} cancelled — {units} units returned to stock.")


@click.command("refunds")
@click.option("--id", "transaction_id", default=None, help="Transaction whose refunds to list.")
@click.option("--all", "all_refunds", is_flag=True, help="Refunds across every transaction.")
@click.option("--start", type=click.DateTime(), default=None, help="With --all: issued at or after (UTC).")
@click.option("--end", type=click.DateTime(), default=None, help="With --all: issued at or before (UTC).")
def transaction_refunds(transaction_id: str | None, all_refunds: bool, start, end) -> None:
    """List refunds, newest first, for one transaction or across all of them."""
    if all_refunds == (transaction_id is not None):
        raise click.UsageError("Pass exactly one of --id or --all.")

    try:
        if all_refunds:
            handler = ListRefundsHandler(transaction_repo=transaction_repository())
            refunds = handler.handle(_utc(start), _utc(end))
        else:
            handler = GetTransactionRefundsHandler(transaction_repo=transaction_repository())
            refunds = handler.handle(transaction_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    if not refunds:
        click.echo("No refunds found." if all_refunds else f"No refunds for transaction {transaction_id}.")
        return

    for refund in refunds:
        click.echo(
            f"{refund.refund_id}  {refund.transaction_id}  {refund.created_at}  total={refund.total_amount} "
            f"(items {refund.items_subtotal} - discount {refund.cart_discount_refund}; "
            f"tax share {refund.tax_refund})  {refund.reason or ''}"
        )
        for item in refund.items:
            click.echo(
                f"    {item.item_id}___{item.item_index:<4} x{item.quantity:<4} "
                f"@ {item.unit_price:>10} = {item.total_amount:>10}"
            )
    if all_refunds:
        total = sum((Decimal(r.total_amount) for r in refunds), Decimal("0"))
        click.echo(f"{len(refunds)} refunds, {total:.2f} returned.")


@click.command("summary")
@click.option("--shop", default=None, help="Only this shop.")
@click.option("--customer", default=None, help="Only this customer.")
@click.option("--start", type=click.DateTime(), default=None, help="Created at or after (UTC).")
@click.option("--end", type=click.DateTime(), default=None, help="Created at or before (UTC).")
def transaction_summary(shop, customer, start, end) -> None:
    """Net revenue after refunds, excluding cancelled and pending sales."""
    handler = TransactionSummaryHandler(transaction_repo=transaction_repository())
    dto = handler.handle(_filters(None, None, shop, start, end, customer=customer))

    click.echo(f"Transactions:  {dto.total_transactions}")
    click.echo(f"Net revenue:   {dto.total_revenue}")
    click.echo(f"Tax:           {dto.total_tax}")
    click.echo(f"Discount:      {dto.total_discount}")
    click.echo(f"Refunded:      {dto.total_refunded}")
    for method, amount in dto.payment_method_breakdown.items():
        click.echo(f"  {method:<10} {amount:>12}")
