"""Entry point of the federated sync protocol.

This module provides:
- SyncOrigin: the (app_id, item_type) pair a call is made for
- SyncCoordinator: create/update/delete entry points for items and shares
- BoundSyncManager: coordinator view bound to one origin

Every call runs the same preamble before touching a manager or the store:
    1. origin must be complete, else OriginNotBoundError
    2. current actor resolved, InitiatorNotFoundError if absent
    3. circle resolved and membership checked (share calls only)
    4. SyncedItem resolved (created on first share)

Share operations are only supported for items owned by this instance.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from circlesync.core.config import SyncConfig
from circlesync.core.errors import (
    CircleNotFoundError,
    OriginNotBoundError,
    SyncNotSupportedError,
)
from circlesync.sync.collaborators import LoggingTracer, NullTransport
from circlesync.sync.item_engine import ItemSyncEngine
from circlesync.sync.manager import FederatedSyncManager
from circlesync.sync.receiver import SyncEventReceiver
from circlesync.sync.share_engine import ShareSyncEngine

if TYPE_CHECKING:
    from collections.abc import Iterator

    from circlesync.server.database import SyncStore
    from circlesync.sync.collaborators import (
        ActorResolver,
        CircleProvider,
        FederatedSyncTransport,
        SyncTracer,
    )
    from circlesync.sync.entities import Circle, FederatedUser, SyncedItem, SyncedShare
    from circlesync.sync.registry import SyncManagerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncOrigin:
    """Application and item type a call is made for."""

    app_id: str = ""
    item_type: str = ""

    @property
    def is_bound(self) -> bool:
        return bool(self.app_id) and bool(self.item_type)

    def require(self) -> SyncOrigin:
        """Return self if complete.

        Raises:
            OriginNotBoundError: If app_id or item_type is empty.
        """
        if not self.is_bound:
            raise OriginNotBoundError(self.app_id, self.item_type)
        return self


class SyncCoordinator:
    """Single entry point for host applications.

    Usage:
        coordinator = SyncCoordinator(store, registry, circles, actors, config)
        coordinator.register_federated_sync_manager(FolderSyncManager())

        files = coordinator.set_origin("files", "folder")
        files.create_share("42", "circle-abc", {"permissions": 1})
    """

    def __init__(
        self,
        store: SyncStore,
        registry: SyncManagerRegistry,
        circles: CircleProvider,
        actors: ActorResolver,
        config: SyncConfig | None = None,
        transport: FederatedSyncTransport | None = None,
        tracer: SyncTracer | None = None,
    ) -> None:
        """Initialize the coordinator and its engines.

        Args:
            store: Persistence of items, shares and locks.
            registry: Registered FederatedSyncManagers.
            circles: Circle lookup and membership.
            actors: Resolution of the current actor.
            config: Sync configuration (defaults to a single-instance setup).
            transport: Delivery to other instances (defaults to NullTransport).
            tracer: Trace sink (defaults to LoggingTracer).

        Raises:
            ValueError: If a transport is given but config has no local_instance.
        """
        self._store = store
        self._registry = registry
        self._circles = circles
        self._actors = actors
        self._config = config or SyncConfig()
        self._transport = transport or NullTransport()
        self._tracer = tracer or LoggingTracer()

        # peers tell events apart from their own by the origin address
        if not isinstance(self._transport, NullTransport) and not self._config.local_instance:
            raise ValueError("local_instance must be set to exchange events with other instances")

        self.items = ItemSyncEngine(store, registry, self._config, self._transport)
        self.shares = ShareSyncEngine(store, registry, self.items, circles, self._transport)
        self.receiver = SyncEventReceiver(registry, self.items, self.shares, self._config)

    @property
    def registry(self) -> SyncManagerRegistry:
        return self._registry

    @property
    def config(self) -> SyncConfig:
        return self._config

    # === Registration ===

    def set_origin(self, app_id: str, item_type: str) -> BoundSyncManager:
        """Get a view of the coordinator bound to an origin.

        Never fails; an incomplete origin is reported by the first
        mutating call made through the view.
        """
        return BoundSyncManager(self, SyncOrigin(app_id, item_type))

    def register_federated_sync_manager(self, manager: Any) -> None:
        """Register a manager built by the host application.

        Values that are not FederatedSyncManagers are dropped with a warning.
        """
        if not isinstance(manager, FederatedSyncManager):
            logger.warning(
                "Ignoring %s: not a FederatedSyncManager", type(manager).__name__
            )
            return
        self._registry.register(manager)

    # === Shares ===

    def create_share(
        self,
        origin: SyncOrigin,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any] | None = None,
    ) -> SyncedShare:
        """Share a host item with a circle.

        The SyncedItem is created on first share.

        Raises:
            OriginNotBoundError: If origin is incomplete.
            InitiatorNotFoundError: If no actor is attached to the request.
            CircleNotFoundError: If the circle is unknown or the actor is not a member.
            SyncNotSupportedError: If the item is owned by another instance.
            SyncedShareAlreadyExistsError: If the share exists.
            ShareNotCreatableError: If the host application vetoes the share.
        """
        extra_data = extra_data or {}
        with self._traced("create_share", origin, item_id, circle_id, extra_data):
            origin.require()
            actor, circle = self._resolve_member(circle_id)
            item = self.items.resolve_or_create(
                origin.app_id, origin.item_type, item_id, create_if_missing=True
            )
            self._require_local(item, "create_share")
            return self.shares.create_share(actor, item, circle, extra_data)

    def update_share(
        self,
        origin: SyncOrigin,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any] | None = None,
    ) -> SyncedShare:
        """Modify the share of a host item with a circle.

        Raises:
            SyncedItemNotFoundError: If the item was never shared.
            SyncedShareNotFoundError: If the item is not shared with the circle.
            ShareNotModifiableError: If the host application vetoes the change.
        """
        extra_data = extra_data or {}
        with self._traced("update_share", origin, item_id, circle_id, extra_data):
            origin.require()
            actor, circle = self._resolve_member(circle_id)
            item = self.items.resolve_or_create(origin.app_id, origin.item_type, item_id)
            self._require_local(item, "update_share")
            return self.shares.update_share(actor, item, circle, extra_data)

    def delete_share(
        self,
        origin: SyncOrigin,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any] | None = None,
    ) -> SyncedShare:
        """Remove the share of a host item with a circle.

        Raises:
            SyncedItemNotFoundError: If the item was never shared.
            SyncedShareNotFoundError: If the item is not shared with the circle.
            ShareNotDeletableError: If the host application vetoes the removal.
        """
        extra_data = extra_data or {}
        with self._traced("delete_share", origin, item_id, circle_id, extra_data):
            origin.require()
            actor, circle = self._resolve_member(circle_id)
            item = self.items.resolve_or_create(origin.app_id, origin.item_type, item_id)
            self._require_local(item, "delete_share")
            return self.shares.delete_share(actor, item, circle, extra_data)

    # === Items ===

    def update_item(
        self,
        origin: SyncOrigin,
        item_id: str,
        extra_data: dict[str, Any] | None = None,
    ) -> SyncedItem:
        """Request an update of a shared item, locally or through its owner.

        Raises:
            SyncedItemNotFoundError: If the item is unknown.
            ConflictError: If the item is locked or out of date.
        """
        extra_data = extra_data or {}
        with self._traced("update_item", origin, item_id, "", extra_data):
            origin.require()
            actor = self._actors.get_current_entity()
            item = self.items.resolve_or_create(origin.app_id, origin.item_type, item_id)
            return self.items.request_update(actor, item, extra_data)

    def delete_item(self, origin: SyncOrigin, item_id: str) -> SyncedItem:
        """Delete a shared item owned by this instance, with all its shares.

        Raises:
            SyncedItemNotFoundError: If the item is unknown.
            SyncNotSupportedError: If the item is owned by another instance.
        """
        with self._traced("delete_item", origin, item_id, "", {}):
            origin.require()
            actor = self._actors.get_current_entity()
            item = self.items.resolve_or_create(
                origin.app_id, origin.item_type, item_id, allow_deleted=True
            )
            return self.items.delete_item(actor, item)

    # === Helpers ===

    def _resolve_member(self, circle_id: str) -> tuple[FederatedUser, Circle]:
        actor = self._actors.get_current_entity()
        circle = self._circles.get_circle(circle_id)
        if not self._circles.is_member(circle_id, actor):
            raise CircleNotFoundError(f"{actor.single_id} is not a member of circle {circle_id}")
        return actor, circle

    def _require_local(self, item: SyncedItem, action: str) -> None:
        if not self.items.is_local(item):
            raise SyncNotSupportedError(
                f"{action} on {item.single_id} is not supported: item is owned by {item.instance}"
            )

    @contextmanager
    def _traced(
        self,
        action: str,
        origin: SyncOrigin,
        item_id: str,
        circle_id: str,
        extra_data: dict[str, Any],
    ) -> Iterator[None]:
        context = {
            "action": action,
            "app_id": origin.app_id,
            "item_type": origin.item_type,
            "item_id": item_id,
            "extra_data": extra_data,
        }
        self._tracer.info(
            f"{action} on {origin.app_id}.{origin.item_type}.{item_id}", circle_id, context
        )
        try:
            yield
        except Exception as e:
            self._tracer.exception(e, circle_id, context)
            raise


class BoundSyncManager:
    """SyncCoordinator view bound to one origin.

    Exposes the outbound contract without the origin argument.
    """

    def __init__(self, coordinator: SyncCoordinator, origin: SyncOrigin) -> None:
        self._coordinator = coordinator
        self._origin = origin

    @property
    def origin(self) -> SyncOrigin:
        return self._origin

    def register_federated_sync_manager(self, manager: Any) -> None:
        # Already bound to a registered manager
        if self._origin.is_bound:
            return
        self._coordinator.register_federated_sync_manager(manager)

    def create_share(
        self, item_id: str, circle_id: str, extra_data: dict[str, Any] | None = None
    ) -> SyncedShare:
        return self._coordinator.create_share(self._origin, item_id, circle_id, extra_data)

    def update_share(
        self, item_id: str, circle_id: str, extra_data: dict[str, Any] | None = None
    ) -> SyncedShare:
        return self._coordinator.update_share(self._origin, item_id, circle_id, extra_data)

    def delete_share(
        self, item_id: str, circle_id: str, extra_data: dict[str, Any] | None = None
    ) -> SyncedShare:
        return self._coordinator.delete_share(self._origin, item_id, circle_id, extra_data)

    def update_item(self, item_id: str, extra_data: dict[str, Any] | None = None) -> SyncedItem:
        return self._coordinator.update_item(self._origin, item_id, extra_data)

    def delete_item(self, item_id: str) -> SyncedItem:
        return self._coordinator.delete_item(self._origin, item_id)
