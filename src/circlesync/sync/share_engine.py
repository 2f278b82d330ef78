"""Share side of the federated sync protocol.

Share state machine:

    NonExistent --create_share (creatable)--> Active
    Active --update_share (modifiable)--> Active
    Active --delete_share (deletable)--> NonExistent

An Active share also becomes NonExistent when its item is deleted.

Authorization gates (is_share_*) run on the owning instance only. The
matching on_share_* callback runs once on the owner, then the event is
fanned out to the instances hosting members of the circle.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from circlesync.core.errors import (
    FederatedSyncConflictError,
    FederatedSyncRequestError,
    ShareNotCreatableError,
    ShareNotDeletableError,
    ShareNotModifiableError,
    SyncedShareAlreadyExistsError,
    SyncedShareNotFoundError,
)
from circlesync.core.types import OwnerRequest, SyncEventType
from circlesync.sync.entities import SyncedShare, SyncedWrapper

if TYPE_CHECKING:
    from circlesync.server.database import SyncStore
    from circlesync.sync.collaborators import CircleProvider, FederatedSyncTransport
    from circlesync.sync.entities import Circle, FederatedUser, SyncedItem
    from circlesync.sync.item_engine import ItemSyncEngine
    from circlesync.sync.registry import SyncManagerRegistry

logger = logging.getLogger(__name__)


class ShareSyncEngine:
    """Creates, updates and deletes SyncedShares."""

    def __init__(
        self,
        store: SyncStore,
        registry: SyncManagerRegistry,
        items: ItemSyncEngine,
        circles: CircleProvider,
        transport: FederatedSyncTransport,
    ) -> None:
        self._store = store
        self._registry = registry
        self._items = items
        self._circles = circles
        self._transport = transport

    def _require_local(self, item: SyncedItem) -> None:
        # The coordinator filters remote items out before reaching this point
        if not self._items.is_local(item):
            raise FederatedSyncConflictError(
                f"share operations on {item.single_id} must run on its owner {item.instance}"
            )

    def _require_share(self, item: SyncedItem, circle_id: str) -> SyncedShare:
        share = self._store.get_share(item.single_id, circle_id)
        if share is None:
            raise SyncedShareNotFoundError(f"{item.single_id} is not shared with {circle_id}")
        return share

    def list_shares(self, item: SyncedItem) -> list[SyncedShare]:
        """List the active shares of an item."""
        return self._store.list_shares(item.single_id)

    # === Owner-side operations ===

    def create_share(
        self,
        actor: FederatedUser,
        item: SyncedItem,
        circle: Circle,
        extra_data: dict[str, Any] | None = None,
    ) -> SyncedShare:
        """Share a local item with a circle.

        Args:
            actor: Member creating the share.
            item: Item owned by this instance.
            circle: Target circle.
            extra_data: Host-defined share details.

        Returns:
            The new share.

        Raises:
            SyncedShareAlreadyExistsError: If the item is already shared with the circle.
            ShareNotCreatableError: If the host application vetoes the share.
        """
        extra_data = extra_data or {}
        self._require_local(item)
        if self._store.get_share(item.single_id, circle.single_id) is not None:
            raise SyncedShareAlreadyExistsError(
                f"{item.single_id} is already shared with {circle.single_id}"
            )

        manager = self._registry.for_item(item)
        if not manager.is_share_creatable(item.item_id, circle.single_id, extra_data, actor):
            raise ShareNotCreatableError(
                f"{item.app_id} refused to share {item.item_id} with {circle.single_id}"
            )

        share = self._store.create_share(SyncedShare(item.single_id, circle.single_id))
        try:
            manager.on_share_creation(item.item_id, circle.single_id, extra_data, actor)
        except Exception:
            self._store.delete_share(share.single_id, share.circle_id)
            raise

        self._items.broadcast(
            SyncEventType.SHARE_CREATE,
            manager,
            circle.single_id,
            SyncedWrapper(
                federated_user=actor,
                item=self._items.wire_item(self._with_serialized(item)),
                share=share,
                extra_data=extra_data,
            ),
        )
        logger.info("SyncedItem %s shared with circle %s", item.single_id, circle.single_id)
        return share

    def update_share(
        self,
        actor: FederatedUser,
        item: SyncedItem,
        circle: Circle,
        extra_data: dict[str, Any] | None = None,
    ) -> SyncedShare:
        """Modify an existing share of a local item.

        Raises:
            SyncedShareNotFoundError: If the item is not shared with the circle.
            ShareNotModifiableError: If the host application vetoes the change.
        """
        extra_data = extra_data or {}
        self._require_local(item)
        share = self._require_share(item, circle.single_id)

        manager = self._registry.for_item(item)
        if not manager.is_share_modifiable(item.item_id, circle.single_id, extra_data, actor):
            raise ShareNotModifiableError(
                f"{item.app_id} refused to modify the share of {item.item_id} "
                f"with {circle.single_id}"
            )

        manager.on_share_modification(item.item_id, circle.single_id, extra_data, actor)
        self._items.broadcast(
            SyncEventType.SHARE_UPDATE,
            manager,
            circle.single_id,
            SyncedWrapper(
                federated_user=actor,
                item=self._items.wire_item(item),
                share=share,
                extra_data=extra_data,
            ),
        )
        logger.info("Share of %s with circle %s modified", item.single_id, circle.single_id)
        return share

    def delete_share(
        self,
        actor: FederatedUser,
        item: SyncedItem,
        circle: Circle,
        extra_data: dict[str, Any] | None = None,
    ) -> SyncedShare:
        """Remove a share of a local item; the item itself is left untouched.

        Raises:
            SyncedShareNotFoundError: If the item is not shared with the circle.
            ShareNotDeletableError: If the host application vetoes the removal.
        """
        extra_data = extra_data or {}
        self._require_local(item)
        share = self._require_share(item, circle.single_id)

        manager = self._registry.for_item(item)
        if not manager.is_share_deletable(item.item_id, circle.single_id, actor):
            raise ShareNotDeletableError(
                f"{item.app_id} refused to unshare {item.item_id} from {circle.single_id}"
            )

        self._store.delete_share(share.single_id, share.circle_id)
        try:
            manager.on_share_deletion(item.item_id, circle.single_id, actor)
        except Exception:
            self._store.create_share(share)
            raise

        self._items.broadcast(
            SyncEventType.SHARE_DELETE,
            manager,
            circle.single_id,
            SyncedWrapper(
                federated_user=actor,
                item=self._items.wire_item(item),
                share=share,
                extra_data=extra_data,
            ),
        )
        logger.info("Share of %s with circle %s deleted", item.single_id, circle.single_id)
        return share

    def _with_serialized(self, item: SyncedItem) -> SyncedItem:
        if item.serialized:
            return item
        return replace(item, serialized=self._registry.for_item(item).serialize_item(item.item_id))

    # === Drift reconciliation ===

    def get_share_details(self, item: SyncedItem, circle_id: str) -> dict[str, Any]:
        """Return the owner's view of a share.

        Raises:
            SyncedShareNotFoundError: If the item is not shared with the circle.
        """
        self._require_local(item)
        self._require_share(item, circle_id)
        return self._registry.for_item(item).get_share_details(item.item_id, circle_id)

    def sync_share(self, item: SyncedItem, circle_id: str, extra_data: dict[str, Any]) -> SyncedShare:
        """Replay share details into the local copy; safe to call repeatedly.

        Returns:
            The local share record.
        """
        self._registry.for_item(item).sync_share(item.item_id, circle_id, extra_data)
        share = self._store.get_share(item.single_id, circle_id)
        if share is None:
            try:
                share = self._store.create_share(SyncedShare(item.single_id, circle_id))
            except SyncedShareAlreadyExistsError:
                share = SyncedShare(item.single_id, circle_id)
        logger.debug("Share of %s with circle %s synced", item.single_id, circle_id)
        return share

    def resync_share(self, actor: FederatedUser, item: SyncedItem, circle_id: str) -> SyncedShare:
        """Ask the owner for the current share details and replay them locally.

        Raises:
            FederatedSyncRequestError: If the owner does not answer with details.
        """
        if self._items.is_local(item):
            return self.sync_share(item, circle_id, self.get_share_details(item, circle_id))

        wrapper = SyncedWrapper(
            federated_user=actor,
            item=item,
            share=SyncedShare(item.single_id, circle_id),
        )
        result = self._transport.request_owner(
            item.instance, OwnerRequest.SHARE_DETAILS.value, wrapper
        )
        if not result.get("success"):
            raise FederatedSyncRequestError(
                f"{item.instance} returned no details for the share of {item.single_id}"
            )
        return self.sync_share(item, circle_id, dict(result.get("details") or {}))

    def confirm_remote_instance_access(self, single_id: str, instance: str) -> None:
        """Check that an instance hosts a member of a circle the item is shared with.

        Raises:
            SyncedShareNotFoundError: If the instance has no access to the item.
        """
        for share in self._store.list_shares(single_id):
            if instance in self._circles.get_member_instances(share.circle_id):
                return
        raise SyncedShareNotFoundError(f"instance {instance} has no access to {single_id}")

    # === Replay of remote events ===

    def apply_remote_share_deletion(self, item: SyncedItem, circle_id: str) -> bool:
        """Drop the local record of a share deleted by the owner.

        Returns:
            True if a local share was removed.
        """
        return self._store.delete_share(item.single_id, circle_id)
