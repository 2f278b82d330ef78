"""Command-line interface for circlesync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- db init: Create the sync database
- items list: List synced items
- items show: Show one synced item
- shares list: List shares of an item or a circle
- locks list: List held locks
- locks clean: Remove stale locks
"""

from __future__ import annotations

import logging

import click

from circlesync.cli.common import load_config
from circlesync.cli.db import db
from circlesync.cli.items import items, shares
from circlesync.cli.locks import locks
from circlesync.core.logging import setup_logging


@click.group()
@click.version_option(package_name="circlesync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """circlesync - Federated item and share synchronization."""
    if verbose:
        setup_logging(load_config().log_path, level=logging.DEBUG)


cli.add_command(db)
cli.add_command(items)
cli.add_command(shares)
cli.add_command(locks)


def main() -> None:
    """Console script entry point."""
    cli()
