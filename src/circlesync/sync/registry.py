"""Registry of FederatedSyncManager instances.

Managers are registered as already-built objects at startup and looked up
by (app_id, item_type). No class-name resolution happens at runtime.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from circlesync.core.errors import FederatedSyncManagerNotFoundError, FederatedSyncVersionError

if TYPE_CHECKING:
    from circlesync.sync.entities import SyncedItem
    from circlesync.sync.manager import FederatedSyncManager

logger = logging.getLogger(__name__)


class SyncManagerRegistry:
    """Holds one FederatedSyncManager per (app_id, item_type)."""

    def __init__(self) -> None:
        self._managers: dict[tuple[str, str], FederatedSyncManager] = {}
        self._lock = threading.Lock()

    def register(self, manager: FederatedSyncManager) -> None:
        """Register a manager, replacing any manager with the same key.

        Args:
            manager: Manager built by the host application.
        """
        key = (manager.get_app_id(), manager.get_item_type())
        with self._lock:
            previous = self._managers.get(key)
            self._managers[key] = manager
        if previous is not None and previous is not manager:
            logger.warning(
                "Replacing FederatedSyncManager for %s.%s (%s -> %s)",
                key[0],
                key[1],
                type(previous).__name__,
                type(manager).__name__,
            )
        else:
            logger.info(
                "Registered FederatedSyncManager %s for %s.%s",
                type(manager).__name__,
                key[0],
                key[1],
            )

    def lookup(self, app_id: str, item_type: str) -> FederatedSyncManager:
        """Get the manager of an (app_id, item_type) pair.

        Raises:
            FederatedSyncManagerNotFoundError: If none is registered.
        """
        manager = self._managers.get((app_id, item_type))
        if manager is None:
            raise FederatedSyncManagerNotFoundError(app_id, item_type)
        return manager

    def for_item(self, item: SyncedItem) -> FederatedSyncManager:
        """Get the manager handling a SyncedItem."""
        return self.lookup(item.app_id, item.item_type)

    def is_registered(self, app_id: str, item_type: str) -> bool:
        return (app_id, item_type) in self._managers

    def keys(self) -> list[tuple[str, str]]:
        """List registered (app_id, item_type) pairs."""
        return sorted(self._managers)

    @staticmethod
    def check_compatibility(manager: FederatedSyncManager, version: int) -> None:
        """Reject a message produced at a version the manager no longer accepts.

        Args:
            manager: Manager receiving the message.
            version: API version stamped on the message.

        Raises:
            FederatedSyncVersionError: If version is below the manager's
                lower back-compatibility bound.
        """
        lower_bound = manager.get_api_lower_back_compatibility()
        if lower_bound > version:
            raise FederatedSyncVersionError(
                manager.get_app_id(), manager.get_item_type(), version, lower_bound
            )

    def __len__(self) -> int:
        return len(self._managers)
