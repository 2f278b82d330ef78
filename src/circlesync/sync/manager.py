"""Extension contract implemented by host applications.

A host application plugs one of its item types into the protocol by
subclassing FederatedSyncManager and registering an instance at startup:

    class FolderSyncManager(FederatedSyncManager):
        def get_app_id(self) -> str:
            return "files"

        def get_item_type(self) -> str:
            return "folder"
        ...

    coordinator.register_federated_sync_manager(FolderSyncManager())

Every callback that receives replicated data (sync_item, sync_share and the
on_share_* callbacks) can be delivered more than once and in any order, so
implementations must be idempotent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from circlesync.sync.entities import FederatedUser


class FederatedSyncManager(ABC):
    """Host-application side of the federated sync protocol."""

    @abstractmethod
    def get_app_id(self) -> str:
        """Return the id of the application owning the item type."""

    @abstractmethod
    def get_item_type(self) -> str:
        """Return the item type handled by this manager."""

    @abstractmethod
    def get_api_version(self) -> int:
        """Return the version of the payloads produced by this manager."""

    @abstractmethod
    def get_api_lower_back_compatibility(self) -> int:
        """Return the lowest payload version this manager still accepts."""

    @abstractmethod
    def is_full_support(self) -> bool:
        """Return True if share callbacks are also replayed on the owning instance."""

    @abstractmethod
    def serialize_item(self, item_id: str) -> dict[str, Any]:
        """Serialize the current state of an item.

        Raises:
            SyncedItemNotFoundError: If the item does not exist.
        """

    @abstractmethod
    def sync_item(self, item_id: str, serialized_data: dict[str, Any]) -> None:
        """Create or update the local copy of an item from its serialized state."""

    @abstractmethod
    def get_share_details(self, item_id: str, circle_id: str) -> dict[str, Any]:
        """Return the extra data describing a share, as known by the owner."""

    @abstractmethod
    def sync_share(self, item_id: str, circle_id: str, extra_data: dict[str, Any]) -> None:
        """Create or update the local copy of a share."""

    @abstractmethod
    def is_share_creatable(
        self,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any],
        federated_user: FederatedUser,
    ) -> bool:
        """Authorize the creation of a share (owner instance only)."""

    @abstractmethod
    def on_share_creation(
        self,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any],
        federated_user: FederatedUser,
    ) -> None:
        """Record a new share locally."""

    @abstractmethod
    def is_share_modifiable(
        self,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any],
        federated_user: FederatedUser,
    ) -> bool:
        """Authorize the modification of a share (owner instance only)."""

    @abstractmethod
    def on_share_modification(
        self,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any],
        federated_user: FederatedUser,
    ) -> None:
        """Record the modification of a share locally."""

    @abstractmethod
    def is_share_deletable(
        self,
        item_id: str,
        circle_id: str,
        federated_user: FederatedUser,
    ) -> bool:
        """Authorize the deletion of a share (owner instance only)."""

    @abstractmethod
    def on_share_deletion(
        self,
        item_id: str,
        circle_id: str,
        federated_user: FederatedUser,
    ) -> None:
        """Record the deletion of a share locally."""

    @abstractmethod
    def is_item_updatable(
        self,
        item_id: str,
        extra_data: dict[str, Any],
        federated_user: FederatedUser,
    ) -> dict[str, Any]:
        """Authorize an item update and return the prospective serialized state.

        Raises:
            Any exception to veto the update; the item lock is released.
        """
