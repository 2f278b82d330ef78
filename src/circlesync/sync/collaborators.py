"""Collaborators consumed by the sync core.

Circle membership, actor resolution and the transport between instances
belong to the host. This module defines the interfaces the core relies on,
plus the default tracer and a transport for single-instance deployments.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from circlesync.core.errors import FederatedSyncRequestError

if TYPE_CHECKING:
    from circlesync.sync.entities import Circle, FederatedUser, SyncedWrapper
    from circlesync.sync.events import FederatedSyncEvent

trace_logger = logging.getLogger("circlesync.trace")


class CircleProvider(Protocol):
    """Circle lookup and membership check."""

    def get_circle(self, circle_id: str) -> Circle:
        """Get a circle.

        Raises:
            CircleNotFoundError: If the circle does not exist.
        """
        ...

    def is_member(self, circle_id: str, actor: FederatedUser) -> bool:
        """Check that actor is at least a member of the circle."""
        ...

    def get_member_instances(self, circle_id: str) -> set[str]:
        """List the remote instances hosting at least one member of the circle."""
        ...


class ActorResolver(Protocol):
    """Resolution of the actor behind the current request."""

    def get_current_entity(self) -> FederatedUser:
        """Get the current actor.

        Raises:
            InitiatorNotFoundError: If no actor is attached to the request.
        """
        ...


class FederatedSyncTransport(Protocol):
    """Delivery of federated sync messages to other instances.

    Delivery is at-least-once and unordered.
    """

    def broadcast(self, event: FederatedSyncEvent) -> None:
        """Send an event to every instance hosting a member of event.circle_id."""
        ...

    def request_owner(
        self, instance: str, action: str, wrapper: SyncedWrapper
    ) -> dict[str, Any]:
        """Send a request to the instance owning an item and return its answer."""
        ...


class SyncTracer(Protocol):
    """Structured trace sink; never affects control flow."""

    def info(self, message: str, circle_id: str = "", context: dict[str, Any] | None = None) -> None:
        ...

    def exception(
        self, error: BaseException, circle_id: str = "", context: dict[str, Any] | None = None
    ) -> None:
        ...


class LoggingTracer:
    """SyncTracer writing to the circlesync.trace logger."""

    def __init__(self, debug_type: str = "federated_sync") -> None:
        self._debug_type = debug_type

    def info(self, message: str, circle_id: str = "", context: dict[str, Any] | None = None) -> None:
        trace_logger.info(
            "[%s] %s",
            self._debug_type,
            message,
            extra={"sync_trace": {"circle_id": circle_id, **(context or {})}},
        )

    def exception(
        self, error: BaseException, circle_id: str = "", context: dict[str, Any] | None = None
    ) -> None:
        trace_logger.warning(
            "[%s] %s: %s",
            self._debug_type,
            type(error).__name__,
            error,
            extra={"sync_trace": {"circle_id": circle_id, **(context or {})}},
        )


class NullTransport:
    """Transport of an instance without federation peers.

    Broadcasts are dropped; owner requests cannot be served.
    """

    def broadcast(self, event: FederatedSyncEvent) -> None:
        trace_logger.debug(
            "No federation transport configured, dropping %s for circle %s",
            event.event_type.value,
            event.circle_id,
        )

    def request_owner(
        self, instance: str, action: str, wrapper: SyncedWrapper
    ) -> dict[str, Any]:
        raise FederatedSyncRequestError(
            f"cannot send {action} to {instance}: no federation transport configured"
        )
