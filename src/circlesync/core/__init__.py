"""Core module - Shared configuration, errors, checksums, and enums."""

from circlesync.core.checksum import SINGLE_ID_LENGTH, compute_checksum, generate_single_id
from circlesync.core.config import API_VERSION, SyncConfig
from circlesync.core.errors import (
    CircleNotFoundError,
    ConflictError,
    FederatedSyncConflictError,
    FederatedSyncError,
    FederatedSyncManagerNotFoundError,
    FederatedSyncRequestError,
    FederatedSyncVersionError,
    InitiatorNotFoundError,
    InvalidItemError,
    OriginNotBoundError,
    ShareNotCreatableError,
    ShareNotDeletableError,
    ShareNotModifiableError,
    SharePermissionError,
    SyncedItemNotFoundError,
    SyncedShareAlreadyExistsError,
    SyncedShareNotFoundError,
    SyncNotSupportedError,
)
from circlesync.core.logging import setup_logging
from circlesync.core.types import OwnerRequest, SyncEventType, UpdateType

__all__ = [
    # Checksums
    "SINGLE_ID_LENGTH",
    "compute_checksum",
    "generate_single_id",
    # Config
    "API_VERSION",
    "SyncConfig",
    "setup_logging",
    # Errors
    "CircleNotFoundError",
    "ConflictError",
    "FederatedSyncConflictError",
    "FederatedSyncError",
    "FederatedSyncManagerNotFoundError",
    "FederatedSyncRequestError",
    "FederatedSyncVersionError",
    "InitiatorNotFoundError",
    "InvalidItemError",
    "OriginNotBoundError",
    "ShareNotCreatableError",
    "ShareNotDeletableError",
    "ShareNotModifiableError",
    "SharePermissionError",
    "SyncNotSupportedError",
    "SyncedItemNotFoundError",
    "SyncedShareAlreadyExistsError",
    "SyncedShareNotFoundError",
    # Types
    "OwnerRequest",
    "SyncEventType",
    "UpdateType",
]
