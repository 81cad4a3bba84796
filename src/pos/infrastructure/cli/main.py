import click

from pos.domain.exceptions import ConfigurationError
from pos.infrastructure.bootstrap import settings
from pos.infrastructure.cli.cart_commands import (
    cart_add,
    cart_checkout,
    cart_clear,
    cart_discount,
    cart_remove,
    cart_show,
    cart_update,
    cart_wholesale,
)
from pos.infrastructure.cli.stock_commands import stock_set, stock_show
from pos.infrastructure.cli.transaction_commands import (
    transaction_cancel,
    transaction_complete,
    transaction_list,
    transaction_record,
    transaction_refund,
    transaction_refunds,
    transaction_show,
    transaction_summary,
)
from pos.infrastructure.logging import configure_logging


@click.group()
def cli() -> None:
    """POS — Sales Ledger and Inventory Reservation"""
    try:
        configure_logging(settings())
    except ConfigurationError as exc:
        raise click.ClickException(str(exc))


@cli.group()
def transaction() -> None:
    """Record, refund and cancel sales."""


@cli.group()
def cart() -> None:
    """Build a cart and check it out."""


@cli.group()
def stock() -> None:
    """Manage on-hand stock."""


# Register subcommands
transaction.add_command(transaction_cancel)
transaction.add_command(transaction_complete)
transaction.add_command(transaction_list)
transaction.add_command(transaction_record)
transaction.add_command(transaction_refund)
transaction.add_command(transaction_refunds)
transaction.add_command(transaction_show)
transaction.add_command(transaction_summary)
cart.add_command(cart_add)
cart.add_command(cart_checkout)
cart.add_command(cart_clear)
cart.add_command(cart_discount)
cart.add_command(cart_remove)
cart.add_command(cart_show)
cart.add_command(cart_update)
cart.add_command(cart_wholesale)
stock.add_command(stock_set)
stock.add_command(stock_show)
