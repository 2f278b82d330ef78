"""Configuration for circlesync.

Values come from ``CIRCLESYNC_*`` environment variables, with defaults
suitable for a single local instance.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# Protocol version implemented by this package
API_VERSION = 1

DEFAULT_LOCK_TIMEOUT = 15  # seconds
DEFAULT_LOCK_CLEANUP_INTERVAL = 60  # seconds


@dataclass
class SyncConfig:
    """Configuration of one circlesync instance.

    Attributes:
        local_instance: Address of this instance (e.g. "cloud.example.com").
            Items whose instance is empty or equal to it are local.
        db_path: Path to the SQLite database holding synced items.
        lock_timeout: Age in seconds after which a SyncedItemLock is stale.
        lock_cleanup_interval: Seconds between scheduled stale-lock purges.
        log_path: Optional log file; stdout only when None.
    """

    local_instance: str = ""
    db_path: Path = Path("circlesync.db")
    lock_timeout: int = DEFAULT_LOCK_TIMEOUT
    lock_cleanup_interval: int = DEFAULT_LOCK_CLEANUP_INTERVAL
    log_path: Path | None = None

    def __post_init__(self) -> None:
        """Normalize paths and validate timeouts."""
        self.local_instance = self.local_instance.strip().rstrip("/")
        self.db_path = Path(self.db_path)
        if self.log_path is not None:
            self.log_path = Path(self.log_path)
        if self.lock_timeout <= 0:
            raise ValueError(f"lock_timeout must be positive, got {self.lock_timeout}")
        if self.lock_cleanup_interval <= 0:
            raise ValueError(
                f"lock_cleanup_interval must be positive, got {self.lock_cleanup_interval}"
            )

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Build a configuration from environment variables.

        Returns:
            SyncConfig populated from CIRCLESYNC_* variables.
        """
        log_path = os.environ.get("CIRCLESYNC_LOG_PATH")
        return cls(
            local_instance=os.environ.get("CIRCLESYNC_LOCAL_INSTANCE", ""),
            db_path=Path(os.environ.get("CIRCLESYNC_DB_PATH", "circlesync.db")),
            lock_timeout=int(
                os.environ.get("CIRCLESYNC_LOCK_TIMEOUT", str(DEFAULT_LOCK_TIMEOUT))
            ),
            lock_cleanup_interval=int(
                os.environ.get(
                    "CIRCLESYNC_LOCK_CLEANUP_INTERVAL", str(DEFAULT_LOCK_CLEANUP_INTERVAL)
                )
            ),
            log_path=Path(log_path) if log_path else None,
        )

    def is_local_instance(self, instance: str) -> bool:
        """Check whether an instance address designates this instance."""
        instance = instance.strip().rstrip("/")
        return instance == "" or instance == self.local_instance
