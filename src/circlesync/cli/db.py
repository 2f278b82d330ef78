"""Database commands for circlesync CLI.

Commands:
- db init: Create the sync database and its tables
"""

from __future__ import annotations

import click

from circlesync.cli.common import db_path_option, open_store


@click.group()
def db() -> None:
    """Sync database management."""


@db.command("init")
@db_path_option
def init_cmd(db_path: str | None) -> None:
    """Create the sync database if it does not exist.

    Running it on an existing database is harmless: missing tables are
    created, existing data is kept.
    """
    with open_store(db_path, must_exist=False) as store:
        click.echo(f"Sync database ready: {store.path}")
