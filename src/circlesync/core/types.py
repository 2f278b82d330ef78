"""Shared enums for circlesync."""

from __future__ import annotations

from enum import Enum


class UpdateType(str, Enum):
    """Kind of mutation a SyncedItemLock protects."""

    ITEM = "item"
    SHARE = "share"


class SyncEventType(str, Enum):
    """Federated events fanned out to the instances of a circle."""

    ITEM_UPDATE = "item.update"
    ITEM_DELETE = "item.delete"
    SHARE_CREATE = "share.create"
    SHARE_UPDATE = "share.update"
    SHARE_DELETE = "share.delete"


class OwnerRequest(str, Enum):
    """Direct requests sent to the instance owning an item."""

    ITEM_DETAILS = "item.details"
    ITEM_UPDATE = "item.update"
    SHARE_DETAILS = "share.details"
