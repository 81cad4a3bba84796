"""CLI commands for the Stock Ledger."""

from __future__ import annotations

import click

from pos.application.manage_stock import SetStockHandler, ShowStockHandler
from pos.domain.exceptions import DomainException
from pos.infrastructure.bootstrap import stock_ledger


@click.command("set")
@click.option("--stock", "stock_id", required=True, help="Stock group ID.")
@click.option("--color", default="", help="Color variant.")
@click.option("--size", default="", help="Size variant.")
@click.option("--quantity", required=True, type=int, help="Units on hand.")
def stock_set(stock_id: str, color: str, size: str, quantity: int) -> None:
    """Set the on-hand quantity of one stock cell."""
    handler = SetStockHandler(stock_ledger=stock_ledger())

    try:
        handler.handle(stock_id, quantity, color=color, size=size)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Stock for '{stock_id}' ({color or '-'}/{size or '-'}) set to {quantity}")


@click.command("show")
@click.option("--stock", "stock_id", default=None, help="Only this stock group.")
def stock_show(stock_id: str | None) -> None:
    """Show current stock levels."""
    handler = ShowStockHandler(stock_ledger=stock_ledger())
    lines = handler.handle(stock_id)

    if not lines:
        click.echo("No stock records found.")
        return

    click.echo(f"{'Stock':<20} {'Color':<10} {'Size':<8} {'On hand':>8}")
    click.echo("-" * 49)
    for line in lines:
        click.echo(f"{line.stock_id:<20} {line.color or '-':<10} {line.size or '-':<8} {line.quantity:>8}")
