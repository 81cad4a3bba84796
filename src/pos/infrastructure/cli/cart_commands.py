"""CLI commands for the Cart aggregate.

Each command edits the cart, then drains the reservation queue so the
stock changes it caused reach the Stock Ledger before the process exits.
"""

from __future__ import annotations

import asyncio

import click

from pos.application.reservation_queue import InventoryReservationQueue
from pos.domain.exceptions import DomainException
from pos.infrastructure.bootstrap import cart_handler, checkout_handler, reservation_queue

_user_option = click.option("--user", "user_id", required=True, help="Cashier / user owning the cart.")


def _sync_stock(queue: InventoryReservationQueue) -> None:
    report = asyncio.run(queue.drain())
    for op in report.failed:
        click.echo(
            f"Warning: could not {op.type.value} {op.quantity} x {op.key} in stock; "
            f"see log for details.",
            err=True,
        )


def _display_cart(dto) -> None:
    if not dto.items:
        click.echo(f"Cart for {dto.user_id} is empty.")
        return

    click.echo(f"Cart for {dto.user_id}")
    click.echo()
    click.echo(
        f"  {'Item ID':<36} {'Group':<16} {'Color':<8} {'Size':<6} {'Qty':>4} {'Price':>10} {'Total':>10}  Discount"
    )
    click.echo(f"  {'-'*106}")
    for item in dto.items:
        click.echo(
            f"  {item.id:<36} {item.group_name:<16} {item.color or '-':<8} {item.size or '-':<6} "
            f"{item.quantity:>4} {item.price:>10} {item.line_total:>10}  {item.discount}"
        )
    click.echo(f"  {'-'*106}")
    click.echo(f"  {'Items':<20} {dto.total_items:>5}   {'Total':<10} {dto.total_amount:>12} {dto.currency}")


def _run(edit) -> None:
    """Apply one cart edit, sync stock, print the cart."""
    queue = reservation_queue()
    handler = cart_handler(queue)
    try:
        dto = edit(handler)
    except DomainException as exc:
        raise click.ClickException(str(exc))
    _sync_stock(queue)
    _display_cart(dto)


@click.command("show")
@_user_option
def cart_show(user_id: str) -> None:
    """Show the user's cart."""
    try:
        dto = cart_handler(reservation_queue()).show(user_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))
    _display_cart(dto)


@click.command("add")
@_user_option
@click.option("--stock", "stock_id", required=True, help="Stock group ID.")
@click.option("--name", "group_name", required=True, help="Display name of the stock group.")
@click.option("--price", required=True, help="Unit price.")
@click.option("--quantity", type=int, default=1, show_default=True, help="Units to add.")
@click.option("--color", default="", help="Color variant.")
@click.option("--size", default="", help="Size variant.")
@click.option("--original-price", default=None, help="List price before markdowns.")
def cart_add(user_id, stock_id, group_name, price, quantity, color, size, original_price) -> None:
    """Add units to the cart (reserves stock)."""
    _run(
        lambda h: h.add_item(
            user_id,
            stock_id=stock_id,
            group_name=group_name,
            quantity=quantity,
            unit_price=price,
            selected_color=color,
            selected_size=size,
            original_price=original_price,
        )
    )


@click.command("update")
@_user_option
@click.option("--item", "item_id", required=True, help="Cart item ID.")
@click.option("--quantity", type=int, required=True, help="New quantity; 0 removes the line.")
def cart_update(user_id: str, item_id: str, quantity: int) -> None:
    """Change a line's quantity (reserves or releases the difference)."""
    _run(lambda h: h.update_quantity(user_id, item_id, quantity))


@click.command("remove")
@_user_option
@click.option("--item", "item_id", required=True, help="Cart item ID.")
def cart_remove(user_id: str, item_id: str) -> None:
    """Remove a line (releases its stock)."""
    _run(lambda h: h.remove_item(user_id, item_id))


@click.command("clear")
@_user_option
def cart_clear(user_id: str) -> None:
    """Empty the cart (releases all of its stock)."""
    _run(lambda h: h.clear(user_id))


@click.command("discount")
@_user_option
@click.option("--group", "group_name", default=None, help="Discount every line of this group.")
@click.option("--item", "item_id", default=None, help="Discount one line.")
@click.option("--percent", default=None, help="Discount percentage.")
@click.option("--remove", is_flag=True, default=False, help="Remove the discount instead.")
def cart_discount(user_id, group_name, item_id, percent, remove) -> None:
    """Apply or remove a group or per-line percentage discount."""
    if bool(group_name) == bool(item_id):
        raise click.ClickException("Give exactly one of --group or --item")
    if not remove and percent is None:
        raise click.ClickException("--percent is required unless --remove is given")

    if group_name and remove:
        _run(lambda h: h.remove_group_discount(user_id, group_name))
    elif group_name:
        _run(lambda h: h.apply_group_discount(user_id, group_name, percent))
    elif remove:
        _run(lambda h: h.remove_variant_discount(user_id, item_id))
    else:
        _run(lambda h: h.apply_variant_discount(user_id, item_id, percent))


@click.command("wholesale")
@_user_option
@click.option("--group", "group_name", required=True, help="Stock group to price.")
@click.option("--price", default=None, help="Flat price per unit.")
@click.option("--remove", is_flag=True, default=False, help="Go back to normal pricing.")
def cart_wholesale(user_id, group_name, price, remove) -> None:
    """Apply or remove flat wholesale pricing on a group."""
    if remove:
        _run(lambda h: h.remove_wholesale_pricing(user_id, group_name))
    elif price is None:
        raise click.ClickException("--price is required unless --remove is given")
    else:
        _run(lambda h: h.apply_wholesale_pricing(user_id, group_name, price))


@click.command("checkout")
@_user_option
@click.option(
    "--payment",
    required=True,
    type=click.Choice(["cash", "scan", "wallet", "cod"], case_sensitive=False),
    help="Payment method.",
)
@click.option("--paid", default=None, help="Cash handed over (cash payments).")
@click.option("--discount", "cart_discount", default="0", help="Cart-level discount amount.")
@click.option("--tax-rate", default=None, help="Tax rate in percent (defaults to POS_TAX_RATE).")
@click.option("--shop", "shop_id", default=None, help="Shop ID.")
@click.option("--customer", "customer_id", default=None, help="Customer ID.")
def cart_checkout(user_id, payment, paid, cart_discount, tax_rate, shop_id, customer_id) -> None:
    """Record the cart as a sale and empty it."""
    queue = reservation_queue()
    handler = checkout_handler(queue)

    try:
        transaction_id = handler.handle(
            user_id,
            payment_method=payment,
            amount_paid=paid,
            cart_discount=cart_discount,
            tax_rate=tax_rate,
            shop_id=shop_id,
            customer_id=customer_id,
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Transaction {transaction_id} recorded.")
