"""Exception hierarchy for federated sync.

Every error is raised where it is detected and propagated unchanged to the
caller of the coordinator. The only built-in recovery is the stale-lock
override performed when a lock is acquired.
"""

from __future__ import annotations


class FederatedSyncError(Exception):
    """Base exception for all federated sync errors."""


class OriginNotBoundError(FederatedSyncError):
    """A call was made without a complete (app_id, item_type) origin."""

    def __init__(self, app_id: str = "", item_type: str = "") -> None:
        self.app_id = app_id
        self.item_type = item_type
        super().__init__(
            f"origin is not bound (app_id={app_id!r}, item_type={item_type!r}); "
            "call set_origin(app_id, item_type) with non-empty values"
        )


class CircleNotFoundError(FederatedSyncError):
    """Circle does not exist or the actor is not a member of it."""


class InitiatorNotFoundError(FederatedSyncError):
    """The current actor could not be resolved."""


class SyncedItemNotFoundError(FederatedSyncError):
    """No SyncedItem matches the lookup."""


class SyncedShareNotFoundError(FederatedSyncError):
    """No SyncedShare matches the lookup."""


class SyncedShareAlreadyExistsError(FederatedSyncError):
    """The item is already shared with the circle."""


class SharePermissionError(FederatedSyncError):
    """The host application vetoed a share operation."""


class ShareNotCreatableError(SharePermissionError):
    """is_share_creatable() returned False."""


class ShareNotModifiableError(SharePermissionError):
    """is_share_modifiable() returned False."""


class ShareNotDeletableError(SharePermissionError):
    """is_share_deletable() returned False."""


class ConflictError(FederatedSyncError):
    """Raised when a lock is held by another writer or a checksum is outdated."""


class FederatedSyncConflictError(FederatedSyncError):
    """Local and remote views of a SyncedItem disagree."""


class FederatedSyncManagerNotFoundError(FederatedSyncError):
    """No manager is registered for the (app_id, item_type) pair."""

    def __init__(self, app_id: str, item_type: str) -> None:
        self.app_id = app_id
        self.item_type = item_type
        super().__init__(f"no FederatedSyncManager registered for {app_id}.{item_type}")


class FederatedSyncVersionError(FederatedSyncError):
    """A message was produced by an API version the receiver no longer accepts."""

    def __init__(self, app_id: str, item_type: str, version: int, lower_bound: int) -> None:
        self.version = version
        self.lower_bound = lower_bound
        super().__init__(
            f"{app_id}.{item_type}: message version {version} is below "
            f"the lowest supported version {lower_bound}"
        )


class FederatedSyncRequestError(FederatedSyncError):
    """A remote instance answered a request without success."""


class SyncNotSupportedError(FederatedSyncError):
    """The requested operation is not supported by this protocol version."""


class InvalidItemError(FederatedSyncError, ValueError):
    """A serialized entity is missing required fields."""
