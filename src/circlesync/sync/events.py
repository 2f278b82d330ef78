"""Federated sync events fanned out to the instances of a circle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from circlesync.core.types import SyncEventType
from circlesync.sync.entities import SyncedWrapper


@dataclass
class FederatedSyncEvent:
    """One fan-out message.

    Attributes:
        event_type: What happened on the originating instance.
        origin: Address of the instance that produced the event.
        circle_id: Circle whose member instances must receive the event.
        api_version: Manager API version of the producer.
        wrapper: Full context (actor, item, share, extra data).
    """

    event_type: SyncEventType
    origin: str
    circle_id: str
    api_version: int
    wrapper: SyncedWrapper = field(default_factory=SyncedWrapper)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "origin": self.origin,
            "circleId": self.circle_id,
            "apiVersion": self.api_version,
            "wrapper": self.wrapper.to_dict(),
        }
