"""Lock maintenance commands for circlesync CLI.

Commands:
- locks list: List held SyncedItemLocks
- locks clean: Remove stale locks
"""

from __future__ import annotations

import time

import click

from circlesync.cli.common import db_path_option, load_config, open_store
from circlesync.core.config import DEFAULT_LOCK_TIMEOUT


@click.group()
def locks() -> None:
    """Inspect and clean item locks."""


@locks.command("list")
@db_path_option
def list_locks_cmd(db_path: str | None) -> None:
    """List held locks with their age."""
    with open_store(db_path) as store:
        found = store.list_locks()

    if not found:
        click.echo("No locks held.")
        return

    now = int(time.time())
    for lock in found:
        verified = " (checksum verified)" if lock.verify_checksum else ""
        click.echo(f"{lock.update_type}  {lock.update_type_id}  {now - lock.time}s{verified}")


@locks.command("clean")
@click.option(
    "--timeout",
    "-t",
    type=int,
    default=None,
    help=f"Remove locks older than N seconds (default: CIRCLESYNC_LOCK_TIMEOUT or {DEFAULT_LOCK_TIMEOUT}).",
)
@db_path_option
def clean_locks_cmd(timeout: int | None, db_path: str | None) -> None:
    """Remove stale locks.

    Examples:

        # Remove locks older than the configured timeout
        circlesync locks clean

        # Remove every lock older than a minute
        circlesync locks clean --timeout 60
    """
    from circlesync.server.scheduler import LockCleanupScheduler

    if timeout is None:
        timeout = load_config().lock_timeout
    if timeout < 0:
        raise click.BadParameter("timeout must not be negative", param_hint="--timeout")

    with open_store(db_path) as store:
        deleted = LockCleanupScheduler(store, lock_timeout=timeout).run_now()

    if deleted > 0:
        click.echo(f"Removed {deleted} stale lock(s).")
    else:
        click.echo("No stale locks.")
