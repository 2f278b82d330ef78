"""Inbound side of the federated sync protocol.

The transport hands two kinds of messages to this module:

- federated events fanned out by the owner of an item to the instances of
  a circle (handle_event);
- direct requests sent to the owner by an instance holding a copy
  (handle_owner_request and the handle_*_request helpers).

Events produced by this instance come back through the transport as well.
They are dropped unless the manager declares full support, in which case
the idempotent share replay runs locally too.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from circlesync.core.config import API_VERSION
from circlesync.core.errors import InvalidItemError, SyncNotSupportedError
from circlesync.core.types import OwnerRequest, SyncEventType

if TYPE_CHECKING:
    from circlesync.core.config import SyncConfig
    from circlesync.sync.entities import FederatedUser, SyncedItem, SyncedWrapper
    from circlesync.sync.events import FederatedSyncEvent
    from circlesync.sync.item_engine import ItemSyncEngine
    from circlesync.sync.registry import SyncManagerRegistry
    from circlesync.sync.share_engine import ShareSyncEngine

logger = logging.getLogger(__name__)


def _require_item(wrapper: SyncedWrapper) -> SyncedItem:
    if wrapper.item is None:
        raise InvalidItemError("SyncedWrapper carries no item")
    return wrapper.item


def _require_actor(wrapper: SyncedWrapper) -> FederatedUser:
    if wrapper.federated_user is None:
        raise InvalidItemError("SyncedWrapper carries no federatedUser")
    return wrapper.federated_user


class SyncEventReceiver:
    """Applies federated events and answers owner requests."""

    def __init__(
        self,
        registry: SyncManagerRegistry,
        items: ItemSyncEngine,
        shares: ShareSyncEngine,
        config: SyncConfig,
    ) -> None:
        self._registry = registry
        self._items = items
        self._shares = shares
        self._config = config

    # === Federated events ===

    def handle_event(self, event: FederatedSyncEvent) -> bool:
        """Apply a federated event received from the transport.

        Args:
            event: Event with its origin set by the transport.

        Returns:
            True if the event changed local state, False if it was ignored.

        Raises:
            InvalidItemError: If the event lacks its origin, the item or the
                actor it needs.
            FederatedSyncVersionError: If the event version is no longer accepted.
            FederatedSyncConflictError: If the item disagrees with the local record.
        """
        if not event.origin.strip():
            raise InvalidItemError(f"{event.event_type.value} event carries no origin")
        wrapper = event.wrapper
        item = _require_item(wrapper)
        manager = self._registry.for_item(item)
        self._registry.check_compatibility(manager, event.api_version)

        if self._config.is_local_instance(event.origin):
            if not manager.is_full_support():
                logger.debug(
                    "Ignoring %s on %s: event originates from this instance",
                    event.event_type.value,
                    item.single_id,
                )
                return False
            return self._replay_loopback(event, item)

        # items fanned out by a peer are owned by that peer
        item = replace(item, instance=event.origin)
        logger.info(
            "Received %s on %s from %s (circle %s)",
            event.event_type.value,
            item.single_id,
            event.origin,
            event.circle_id,
        )

        if event.event_type == SyncEventType.ITEM_UPDATE:
            self._items.compare_with_known_item(item, allow_unknown=True)
            return self._items.apply_remote_update(item)

        if event.event_type == SyncEventType.ITEM_DELETE:
            self._items.compare_with_known_item(item, allow_unknown=True, allow_deleted=True)
            removed = self._items.apply_remote_deletion(item)
            if wrapper.federated_user is not None:
                for circle_id in removed:
                    manager.on_share_deletion(item.item_id, circle_id, wrapper.federated_user)
            return bool(removed)

        actor = _require_actor(wrapper)
        if event.event_type == SyncEventType.SHARE_CREATE:
            self._items.compare_with_known_item(item, allow_unknown=True)
            self._items.apply_remote_update(item)
            self._shares.sync_share(item, event.circle_id, wrapper.extra_data)
            manager.on_share_creation(item.item_id, event.circle_id, wrapper.extra_data, actor)
            return True

        if event.event_type == SyncEventType.SHARE_UPDATE:
            self._items.compare_with_known_item(item, allow_unknown=True)
            manager.on_share_modification(
                item.item_id, event.circle_id, wrapper.extra_data, actor
            )
            return True

        if event.event_type == SyncEventType.SHARE_DELETE:
            self._items.compare_with_known_item(item, allow_unknown=True)
            removed = self._shares.apply_remote_share_deletion(item, event.circle_id)
            manager.on_share_deletion(item.item_id, event.circle_id, actor)
            return removed

        raise SyncNotSupportedError(f"unsupported federated event {event.event_type.value}")

    def _replay_loopback(self, event: FederatedSyncEvent, item: SyncedItem) -> bool:
        if event.event_type not in (SyncEventType.SHARE_CREATE, SyncEventType.SHARE_UPDATE):
            return False
        self._shares.sync_share(item, event.circle_id, event.wrapper.extra_data)
        logger.debug(
            "Replayed %s on %s locally (full support)", event.event_type.value, item.single_id
        )
        return True

    # === Owner requests ===

    def handle_owner_request(
        self,
        action: str,
        origin_instance: str,
        wrapper: SyncedWrapper,
        api_version: int = API_VERSION,
    ) -> dict[str, Any]:
        """Dispatch a request sent by another instance to this owner.

        Args:
            action: One of the OwnerRequest values.
            origin_instance: Instance that sent the request.
            wrapper: Request context.
            api_version: Version of the sender.

        Returns:
            The answer to send back.

        Raises:
            SyncNotSupportedError: If the action is unknown.
        """
        try:
            request = OwnerRequest(action)
        except ValueError:
            raise SyncNotSupportedError(f"unsupported owner request {action}") from None

        if request == OwnerRequest.ITEM_DETAILS:
            return self.handle_item_request(origin_instance, _require_item(wrapper), api_version)
        if request == OwnerRequest.ITEM_UPDATE:
            return self.handle_update_request(origin_instance, wrapper, api_version)
        return self.handle_share_details_request(origin_instance, wrapper, api_version)

    def _accessible_local_item(
        self, origin_instance: str, item: SyncedItem, api_version: int
    ) -> SyncedItem:
        local = self._items.get_local_item(item.single_id)
        self._registry.check_compatibility(self._registry.for_item(local), api_version)
        self.confirm_remote_instance_access(local.single_id, origin_instance)
        return local

    def handle_item_request(
        self, origin_instance: str, item: SyncedItem, api_version: int = API_VERSION
    ) -> dict[str, Any]:
        """Return the current serialized state of a local item.

        Raises:
            SyncedItemNotFoundError: If the item is unknown.
            FederatedSyncConflictError: If the item is not owned by this instance.
            FederatedSyncVersionError: If the sender's version is no longer accepted.
            SyncedShareNotFoundError: If origin_instance has no access to it.
        """
        local = self._accessible_local_item(origin_instance, item, api_version)
        local = self._items.get_local_item(local.single_id, serialize=True)
        return self._items.wire_item(local).to_dict()

    def handle_update_request(
        self,
        origin_instance: str,
        wrapper: SyncedWrapper,
        api_version: int = API_VERSION,
    ) -> dict[str, Any]:
        """Run an update relayed by an instance holding a copy of a local item.

        Raises:
            InvalidItemError: If the wrapper lacks the item or the actor.
            ConflictError: If the item is locked or the sender is out of date.
        """
        remote_item = _require_item(wrapper)
        actor = _require_actor(wrapper)
        local = self._accessible_local_item(origin_instance, remote_item, api_version)

        logger.info("Update of %s requested by %s", local.single_id, origin_instance)
        self._items.request_update(
            actor, local, wrapper.extra_data, remote_checksum=remote_item.checksum
        )
        return {"success": True}

    def handle_share_details_request(
        self, origin_instance: str, wrapper: SyncedWrapper, api_version: int = API_VERSION
    ) -> dict[str, Any]:
        """Return the owner's view of a share to an instance holding a copy."""
        item = _require_item(wrapper)
        if wrapper.share is None:
            raise InvalidItemError("SyncedWrapper carries no share")
        local = self._accessible_local_item(origin_instance, item, api_version)
        details = self._shares.get_share_details(local, wrapper.share.circle_id)
        return {"success": True, "details": details}

    def confirm_remote_instance_access(self, single_id: str, instance: str) -> None:
        """Check that instance hosts a member of a circle the item is shared with.

        Raises:
            SyncedShareNotFoundError: If it does not.
        """
        self._shares.confirm_remote_instance_access(single_id, instance)
