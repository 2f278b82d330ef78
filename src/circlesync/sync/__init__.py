"""Federated item and share synchronization.

Architecture:
    SyncCoordinator → ItemSyncEngine / ShareSyncEngine → FederatedSyncManager
    FederatedSyncTransport → SyncEventReceiver → ItemSyncEngine / ShareSyncEngine

Components:
- **SyncCoordinator**: Entry point; binds an origin, resolves actor and circle
- **ItemSyncEngine**: SyncedItem resolution, locked updates, deletion
- **ShareSyncEngine**: Share create/update/delete with authorization gates
- **SyncEventReceiver**: Applies events and answers requests from other instances
- **SyncManagerRegistry**: One FederatedSyncManager per (app_id, item_type)

Host applications implement FederatedSyncManager and provide the
collaborators (CircleProvider, ActorResolver, FederatedSyncTransport).
"""

from circlesync.sync.collaborators import (
    ActorResolver,
    CircleProvider,
    FederatedSyncTransport,
    LoggingTracer,
    NullTransport,
    SyncTracer,
)
from circlesync.sync.coordinator import BoundSyncManager, SyncCoordinator, SyncOrigin
from circlesync.sync.entities import (
    Circle,
    FederatedUser,
    SyncedItem,
    SyncedItemLock,
    SyncedShare,
    SyncedWrapper,
)
from circlesync.sync.events import FederatedSyncEvent
from circlesync.sync.item_engine import ItemSyncEngine
from circlesync.sync.manager import FederatedSyncManager
from circlesync.sync.receiver import SyncEventReceiver
from circlesync.sync.registry import SyncManagerRegistry
from circlesync.sync.schemas import (
    event_from_json,
    event_to_json,
    wrapper_from_json,
    wrapper_to_json,
)
from circlesync.sync.share_engine import ShareSyncEngine

__all__ = [
    # Collaborators
    "ActorResolver",
    "CircleProvider",
    "FederatedSyncTransport",
    "LoggingTracer",
    "NullTransport",
    "SyncTracer",
    # Coordinator
    "BoundSyncManager",
    "SyncCoordinator",
    "SyncOrigin",
    # Entities
    "Circle",
    "FederatedSyncEvent",
    "FederatedUser",
    "SyncedItem",
    "SyncedItemLock",
    "SyncedShare",
    "SyncedWrapper",
    # Engines
    "ItemSyncEngine",
    "ShareSyncEngine",
    "SyncEventReceiver",
    # Managers
    "FederatedSyncManager",
    "SyncManagerRegistry",
    # Wire format
    "event_from_json",
    "event_to_json",
    "wrapper_from_json",
    "wrapper_to_json",
]
