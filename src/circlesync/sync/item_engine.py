"""Item side of the federated sync protocol.

This module provides:
- ItemSyncEngine: resolves SyncedItems and drives the update flow

Update flow on the owning instance:
    1. acquire SyncedItemLock("item", single_id), stale locks are purged first
    2. is_item_updatable() returns the prospective serialized state
    3. lock confirmed with verify_checksum and the prospective fingerprint
    4. checksum re-validated, sync_item() applied, new checksum stored
    5. item.update fanned out to every circle the item is shared with
    6. lock released (success or failure)

Instances holding a copy replay the update with apply_remote_update(),
which is idempotent: the same payload never triggers sync_item() twice.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from circlesync.core.checksum import compute_checksum, generate_single_id
from circlesync.core.errors import (
    ConflictError,
    FederatedSyncConflictError,
    FederatedSyncRequestError,
    SyncedItemNotFoundError,
    SyncNotSupportedError,
)
from circlesync.core.types import OwnerRequest, SyncEventType, UpdateType
from circlesync.sync.entities import SyncedItem, SyncedItemLock, SyncedWrapper
from circlesync.sync.events import FederatedSyncEvent

if TYPE_CHECKING:
    from circlesync.core.config import SyncConfig
    from circlesync.server.database import SyncStore
    from circlesync.sync.collaborators import FederatedSyncTransport
    from circlesync.sync.entities import FederatedUser
    from circlesync.sync.manager import FederatedSyncManager
    from circlesync.sync.registry import SyncManagerRegistry

logger = logging.getLogger(__name__)


class ItemSyncEngine:
    """Resolves, updates and deletes SyncedItems."""

    def __init__(
        self,
        store: SyncStore,
        registry: SyncManagerRegistry,
        config: SyncConfig,
        transport: FederatedSyncTransport,
    ) -> None:
        self._store = store
        self._registry = registry
        self._config = config
        self._transport = transport

    @property
    def local_instance(self) -> str:
        return self._config.local_instance

    def is_local(self, item: SyncedItem) -> bool:
        return item.is_local(self._config.local_instance)

    # === Resolution ===

    def resolve_or_create(
        self,
        app_id: str,
        item_type: str,
        item_id: str,
        create_if_missing: bool = False,
        allow_deleted: bool = False,
    ) -> SyncedItem:
        """Get the SyncedItem of a host item, creating it on first use.

        Args:
            app_id: Application id.
            item_type: Item type.
            item_id: Identifier inside the application.
            create_if_missing: Create a local SyncedItem if none is known.
            allow_deleted: Return tombstones instead of rejecting them.

        Returns:
            The known or newly created item.

        Raises:
            SyncedItemNotFoundError: If unknown and create_if_missing is False.
            FederatedSyncConflictError: If the item is a tombstone.
            FederatedSyncManagerNotFoundError: If creation is needed and no
                manager handles app_id.item_type.
        """
        item = self._store.get_item(app_id, item_type, item_id)
        if item is not None:
            if item.deleted and not allow_deleted:
                raise FederatedSyncConflictError(
                    f"SyncedItem {app_id}.{item_type}.{item_id} is deleted"
                )
            logger.debug("Found SyncedItem %s for %s.%s.%s", item.single_id, app_id, item_type, item_id)
            return item

        if not create_if_missing:
            raise SyncedItemNotFoundError(f"unknown SyncedItem {app_id}.{item_type}.{item_id}")

        return self._create_item(app_id, item_type, item_id)

    def _create_item(self, app_id: str, item_type: str, item_id: str) -> SyncedItem:
        manager = self._registry.lookup(app_id, item_type)
        serialized = manager.serialize_item(item_id)
        item = SyncedItem(
            single_id=generate_single_id(),
            app_id=app_id,
            item_type=item_type,
            item_id=item_id,
            checksum=compute_checksum(serialized),
        )
        try:
            stored = self._store.create_item(item)
        except IntegrityError:
            # another request created it first
            winner = self._store.get_item(app_id, item_type, item_id)
            if winner is None:
                raise
            logger.debug("SyncedItem %s.%s.%s created concurrently", app_id, item_type, item_id)
            return winner

        logger.info(
            "New SyncedItem %s for %s.%s.%s", stored.single_id, app_id, item_type, item_id
        )
        stored.serialized = serialized
        return stored

    def get_item(self, single_id: str) -> SyncedItem:
        """Get a known item by single_id.

        Raises:
            SyncedItemNotFoundError: If unknown.
        """
        item = self._store.get_item_by_single_id(single_id)
        if item is None:
            raise SyncedItemNotFoundError(f"unknown SyncedItem {single_id}")
        return item

    def get_local_item(self, single_id: str, serialize: bool = False) -> SyncedItem:
        """Get an item owned by this instance, optionally with its serialized state.

        Raises:
            SyncedItemNotFoundError: If unknown.
            FederatedSyncConflictError: If the item is owned elsewhere.
        """
        item = self.get_item(single_id)
        if not self.is_local(item):
            raise FederatedSyncConflictError(f"SyncedItem {single_id} is not local")
        if serialize:
            item.serialized = self._registry.for_item(item).serialize_item(item.item_id)
        return item

    def compare_with_known_item(
        self, item: SyncedItem, allow_unknown: bool = False, allow_deleted: bool = False
    ) -> None:
        """Check an incoming item against the local record.

        Args:
            item: Item received from another instance, with its instance set
                to the sender.
            allow_unknown: Accept items never seen before.
            allow_deleted: Accept a known tombstone.

        Raises:
            FederatedSyncConflictError: If the records disagree.
            SyncedItemNotFoundError: If unknown and allow_unknown is False.
        """
        by_item_id = self._store.get_item(item.app_id, item.item_type, item.item_id)
        if by_item_id is not None and by_item_id.single_id != item.single_id:
            raise FederatedSyncConflictError(
                f"conflict on {item.app_id}.{item.item_type}.{item.item_id}: "
                f"known as {by_item_id.single_id}, received {item.single_id}"
            )

        known = self._store.get_item_by_single_id(item.single_id)
        if known is None:
            if not allow_unknown:
                raise SyncedItemNotFoundError(f"unknown SyncedItem {item.single_id}")
            return

        if (
            known.app_id != item.app_id
            or known.item_type != item.item_type
            or known.instance != item.instance
            or (known.deleted and not allow_deleted)
        ):
            raise FederatedSyncConflictError(f"conflict on SyncedItem {item.single_id}")

    # === Locking ===

    def acquire_lock(self, update_type: UpdateType, update_type_id: str) -> SyncedItemLock:
        """Purge stale locks, then atomically take a new one.

        Raises:
            ConflictError: If a live lock exists.
        """
        self._store.clean_stale_locks(self._config.lock_timeout)
        lock = self._store.acquire_lock(SyncedItemLock(update_type.value, update_type_id))
        logger.debug("Locked %s %s", update_type.value, update_type_id)
        return lock

    def release_lock(self, lock: SyncedItemLock) -> None:
        if not self._store.release_lock(lock):
            logger.warning(
                "Lock on %s %s was already gone when released",
                lock.update_type,
                lock.update_type_id,
            )

    # === Update ===

    def request_update(
        self,
        actor: FederatedUser,
        item: SyncedItem,
        extra_data: dict[str, Any] | None = None,
        remote_checksum: str | None = None,
    ) -> SyncedItem:
        """Request an update of an item.

        Args:
            actor: Member requesting the update.
            item: Item to update.
            extra_data: Host-defined description of the update.
            remote_checksum: Checksum known by the requesting instance when the
                request was relayed from another instance.

        Returns:
            The item after the update (for a remote item, as sent to its owner).

        Raises:
            ConflictError: If the item is locked or the checksum is outdated.
            FederatedSyncConflictError: If a relayed request targets an item
                this instance does not own.
            FederatedSyncRequestError: If the owner did not accept the request.
        """
        extra_data = extra_data or {}
        if self.is_local(item):
            return self._request_update_local(actor, item, extra_data, remote_checksum)
        if remote_checksum is not None:
            raise FederatedSyncConflictError(
                f"relayed update on {item.single_id} reached a non-owning instance"
            )
        return self._request_update_remote(actor, item, extra_data)

    def _request_update_local(
        self,
        actor: FederatedUser,
        item: SyncedItem,
        extra_data: dict[str, Any],
        remote_checksum: str | None,
    ) -> SyncedItem:
        lock = self.acquire_lock(UpdateType.ITEM, item.single_id)
        try:
            known = self.get_item(item.single_id)
            if known.deleted:
                raise FederatedSyncConflictError(f"SyncedItem {item.single_id} is deleted")
            if remote_checksum is not None and known.checksum != remote_checksum:
                raise ConflictError(f"checksum of {item.single_id} is too old, sync required")

            manager = self._registry.for_item(known)
            prospective = manager.is_item_updatable(known.item_id, extra_data, actor) or {}

            lock.verify_checksum = True
            lock.checksum = compute_checksum(prospective)
            if not self._store.confirm_lock(lock):
                raise ConflictError(f"lock on {item.single_id} expired before confirmation")

            return self._commit_update(manager, known, lock, prospective, actor)
        finally:
            self.release_lock(lock)

    def _commit_update(
        self,
        manager: FederatedSyncManager,
        known: SyncedItem,
        lock: SyncedItemLock,
        prospective: dict[str, Any],
        actor: FederatedUser,
    ) -> SyncedItem:
        current = self.get_item(known.single_id)
        if lock.verify_checksum and current.checksum != known.checksum:
            raise ConflictError(f"SyncedItem {known.single_id} changed while locked")

        manager.sync_item(known.item_id, prospective)
        serialized = manager.serialize_item(known.item_id)
        checksum = compute_checksum(serialized)
        if checksum != lock.checksum:
            logger.debug(
                "Serialized state of %s differs from the prospective state", known.single_id
            )
        self._store.update_item_checksum(known.single_id, checksum)

        updated = replace(current, checksum=checksum, serialized=serialized)
        self._broadcast_item(SyncEventType.ITEM_UPDATE, manager, updated, actor)
        logger.info("SyncedItem %s updated, checksum %s", updated.single_id, checksum)
        return updated

    def _request_update_remote(
        self,
        actor: FederatedUser,
        item: SyncedItem,
        extra_data: dict[str, Any],
    ) -> SyncedItem:
        lock = self.acquire_lock(UpdateType.ITEM, item.single_id)
        try:
            wrapper = SyncedWrapper(
                federated_user=actor, item=item, lock=lock, extra_data=extra_data
            )
            logger.info(
                "SyncedItem %s is owned by %s, forwarding update request",
                item.single_id,
                item.instance,
            )
            result = self._transport.request_owner(
                item.instance, OwnerRequest.ITEM_UPDATE.value, wrapper
            )
            if not result.get("success"):
                raise FederatedSyncRequestError(
                    f"{item.instance} did not accept the update of {item.single_id}"
                )
            return item
        finally:
            self.release_lock(lock)

    def apply_remote_update(self, remote_item: SyncedItem) -> bool:
        """Replay the state of an item received from its owner.

        Args:
            remote_item: Item with its serialized state, instance set to the owner.

        Returns:
            True if the local copy changed, False if it was already up to date.

        Raises:
            FederatedSyncConflictError: If the item is owned by this instance.
        """
        if self.is_local(remote_item):
            raise FederatedSyncConflictError(
                f"remote update of {remote_item.single_id} claims to come from this instance"
            )

        checksum = remote_item.checksum or compute_checksum(remote_item.serialized)
        known = self._store.get_item_by_single_id(remote_item.single_id)
        if known is not None:
            if self.is_local(known):
                raise FederatedSyncConflictError(
                    f"SyncedItem {remote_item.single_id} is owned by this instance"
                )
            if known.checksum == checksum:
                logger.debug(
                    "SyncedItem %s already at checksum %s, nothing to sync",
                    remote_item.single_id,
                    checksum,
                )
                return False

        manager = self._registry.for_item(remote_item)
        manager.sync_item(remote_item.item_id, remote_item.serialized)
        self._store.save_remote_item(replace(remote_item, checksum=checksum, deleted=False))
        logger.info(
            "SyncedItem %s synced from %s, checksum %s",
            remote_item.single_id,
            remote_item.instance,
            checksum,
        )
        return True

    # === Deletion ===

    def delete_item(self, actor: FederatedUser, item: SyncedItem) -> SyncedItem:
        """Tombstone an item owned by this instance and drop its shares.

        Deleting a tombstone again is a no-op.

        Raises:
            SyncNotSupportedError: If the item is owned by another instance.
            ConflictError: If the item is locked.
        """
        if not self.is_local(item):
            raise SyncNotSupportedError(
                f"SyncedItem {item.single_id} is owned by {item.instance}; "
                "only the owner can delete it"
            )
        if item.deleted:
            return item

        manager = self._registry.for_item(item)
        lock = self.acquire_lock(UpdateType.ITEM, item.single_id)
        try:
            removed = self._store.tombstone_item(item.single_id)
        finally:
            self.release_lock(lock)

        deleted = replace(item, deleted=True, serialized={})
        for share in removed:
            self.broadcast(
                SyncEventType.ITEM_DELETE,
                manager,
                share.circle_id,
                SyncedWrapper(federated_user=actor, item=self.wire_item(deleted)),
            )
        logger.info(
            "SyncedItem %s deleted, %d share(s) removed", item.single_id, len(removed)
        )
        return deleted

    def apply_remote_deletion(self, remote_item: SyncedItem) -> list[str]:
        """Tombstone the local copy of an item deleted by its owner.

        Returns:
            Circle ids whose shares were dropped.

        Raises:
            FederatedSyncConflictError: If the item is owned by this instance.
        """
        known = self._store.get_item_by_single_id(remote_item.single_id)
        if known is None:
            self._store.save_remote_item(replace(remote_item, deleted=True))
            return []
        if self.is_local(known):
            raise FederatedSyncConflictError(
                f"SyncedItem {remote_item.single_id} is owned by this instance"
            )
        if known.deleted:
            return []
        return [share.circle_id for share in self._store.tombstone_item(known.single_id)]

    # === Fan-out ===

    def wire_item(self, item: SyncedItem) -> SyncedItem:
        """Copy of an item with its owner address filled in for other instances."""
        if self.is_local(item):
            return replace(item, instance=self._config.local_instance)
        return item

    def _broadcast_item(
        self,
        event_type: SyncEventType,
        manager: FederatedSyncManager,
        item: SyncedItem,
        actor: FederatedUser | None,
    ) -> None:
        wrapper = SyncedWrapper(federated_user=actor, item=self.wire_item(item))
        for share in self._store.list_shares(item.single_id):
            self.broadcast(event_type, manager, share.circle_id, wrapper)

    def broadcast(
        self,
        event_type: SyncEventType,
        manager: FederatedSyncManager,
        circle_id: str,
        wrapper: SyncedWrapper,
    ) -> None:
        event = FederatedSyncEvent(
            event_type=event_type,
            origin=self._config.local_instance,
            circle_id=circle_id,
            api_version=manager.get_api_version(),
            wrapper=wrapper,
        )
        logger.debug("Broadcasting %s to circle %s", event_type.value, circle_id)
        self._transport.broadcast(event)
