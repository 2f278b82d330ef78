"""Item and share inspection commands for circlesync CLI.

Commands:
- items list: List synced items
- items show: Show one synced item and its shares
- shares list: List shares of an item or a circle
"""

from __future__ import annotations

import click

from circlesync.cli.common import db_path_option, open_store
from circlesync.core.errors import SyncedItemNotFoundError


def _describe_owner(instance: str) -> str:
    return instance or "(local)"


@click.group()
def items() -> None:
    """Inspect synced items."""


@items.command("list")
@click.option("--app-id", default=None, help="Only items of this application.")
@click.option("--item-type", default=None, help="Only items of this type.")
@click.option(
    "--include-deleted/--exclude-deleted",
    default=True,
    help="List deleted items (tombstones) too.",
)
@db_path_option
def list_items_cmd(
    app_id: str | None,
    item_type: str | None,
    include_deleted: bool,
    db_path: str | None,
) -> None:
    """List synced items."""
    with open_store(db_path) as store:
        found = store.list_items(app_id, item_type, include_deleted=include_deleted)

    if not found:
        click.echo("No synced items.")
        return

    for item in found:
        flag = " [deleted]" if item.deleted else ""
        click.echo(
            f"{item.single_id}  {item.app_id}.{item.item_type}.{item.item_id}  "
            f"{_describe_owner(item.instance)}  {item.checksum[:12]}{flag}"
        )


@items.command("show")
@click.argument("single_id")
@db_path_option
def show_item_cmd(single_id: str, db_path: str | None) -> None:
    """Show a synced item and the circles it is shared with."""
    with open_store(db_path) as store:
        item = store.get_item_by_single_id(single_id)
        if item is None:
            raise SyncedItemNotFoundError(f"unknown SyncedItem {single_id}")
        shares = store.list_shares(single_id)

    click.echo(f"Single ID: {item.single_id}")
    click.echo(f"Item:      {item.app_id}.{item.item_type}.{item.item_id}")
    click.echo(f"Owner:     {_describe_owner(item.instance)}")
    click.echo(f"Checksum:  {item.checksum}")
    click.echo(f"Deleted:   {'yes' if item.deleted else 'no'}")
    if shares:
        click.echo("Shared with:")
        for share in shares:
            click.echo(f"  - {share.circle_id}")
    else:
        click.echo("Not shared.")


@click.group()
def shares() -> None:
    """Inspect synced shares."""


@shares.command("list")
@click.option("--single-id", default=None, help="Shares of this item.")
@click.option("--circle-id", default=None, help="Shares with this circle.")
@db_path_option
def list_shares_cmd(single_id: str | None, circle_id: str | None, db_path: str | None) -> None:
    """List the shares of an item or of a circle."""
    if bool(single_id) == bool(circle_id):
        raise click.UsageError("Pass exactly one of --single-id or --circle-id.")

    with open_store(db_path) as store:
        if single_id:
            found = store.list_shares(single_id)
        else:
            found = store.list_circle_shares(circle_id or "")

    if not found:
        click.echo("No shares.")
        return

    for share in found:
        click.echo(f"{share.single_id}  {share.circle_id}")
