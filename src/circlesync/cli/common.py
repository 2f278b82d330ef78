"""Helpers shared by the circlesync commands."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from circlesync.core.config import SyncConfig
from circlesync.core.errors import FederatedSyncError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from circlesync.server.database import SyncStore


def db_path_option(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the --db-path option to a command."""
    return click.option(
        "--db-path",
        type=click.Path(dir_okay=False),
        default=None,
        help="Path to the sync database (default: CIRCLESYNC_DB_PATH or ./circlesync.db).",
    )(func)


def load_config() -> SyncConfig:
    """Read the instance configuration from CIRCLESYNC_* variables.

    Raises:
        click.ClickException: If a variable holds an invalid value.
    """
    try:
        return SyncConfig.from_env()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def resolve_db_path(db_path: str | None) -> Path:
    """Resolve the database path from the option or the configuration."""
    if db_path:
        return Path(db_path)
    return load_config().db_path


@contextmanager
def open_store(db_path: str | None, must_exist: bool = True) -> Iterator[SyncStore]:
    """Open the sync store for one command.

    FederatedSyncErrors raised inside the block are reported as click errors.

    Args:
        db_path: Value of the --db-path option.
        must_exist: Fail instead of creating a missing database.

    Raises:
        click.ClickException: If the database is missing or a sync error occurs.
    """
    from circlesync.server.database import SyncStore

    path = resolve_db_path(db_path)
    if must_exist and not path.exists():
        raise click.ClickException(
            f"Database not found: {path}. Run 'circlesync db init' first."
        )

    store = SyncStore(path)
    try:
        yield store
    except FederatedSyncError as e:
        raise click.ClickException(str(e)) from e
    finally:
        store.close()
