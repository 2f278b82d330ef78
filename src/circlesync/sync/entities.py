"""Synchronized entities exchanged by the federated sync protocol.

This module provides:
- FederatedUser: the actor of a request
- Circle: the target of a share
- SyncedItem: an item known to the protocol
- SyncedShare: an active share of an item with a circle
- SyncedItemLock: mutual-exclusion record for one in-flight mutation
- SyncedWrapper: self-describing envelope handed to other instances

Every entity exports to and imports from the camelCase dict used on the
wire. Persistence lives in circlesync.server.database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from circlesync.core.errors import InvalidItemError
from circlesync.core.types import UpdateType


def _normalize_instance(instance: str) -> str:
    return instance.strip().rstrip("/")


@dataclass
class FederatedUser:
    """Actor of a federated request.

    Attributes:
        single_id: Federation-wide identifier of the member.
        user_id: Identifier of the user on its own instance.
        user_type: Host-defined user type (1 = local user).
        instance: Instance the user belongs to; empty for local users.
    """

    single_id: str
    user_id: str = ""
    user_type: int = 1
    instance: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "singleId": self.single_id,
            "userId": self.user_id,
            "userType": self.user_type,
            "instance": self.instance,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FederatedUser:
        if not data.get("singleId"):
            raise InvalidItemError("FederatedUser requires a singleId")
        return cls(
            single_id=str(data["singleId"]),
            user_id=str(data.get("userId", "")),
            user_type=int(data.get("userType", 1)),
            instance=str(data.get("instance", "")),
        )


@dataclass(frozen=True)
class Circle:
    """A circle as seen by the sync core."""

    single_id: str
    display_name: str = ""
    instance: str = ""


@dataclass
class SyncedItem:
    """An item known to the federated sync protocol.

    Attributes:
        single_id: Federation-wide identifier, stable for the life of the item.
        app_id: Host application owning the item type.
        item_type: Kind of item within the application.
        item_id: Identifier of the item inside the host application.
        instance: Owning instance; empty means this instance.
        checksum: Fingerprint of the last known serialized state.
        serialized: Serialized state, only populated transiently.
        deleted: Tombstone flag.
    """

    single_id: str
    app_id: str
    item_type: str
    item_id: str
    instance: str = ""
    checksum: str = ""
    serialized: dict[str, Any] = field(default_factory=dict)
    deleted: bool = False

    def is_local(self, local_instance: str = "") -> bool:
        """Check whether this instance owns the item.

        Args:
            local_instance: Address of the instance running the check.

        Returns:
            True if the item instance is empty or the local instance.
        """
        instance = _normalize_instance(self.instance)
        return instance == "" or instance == _normalize_instance(local_instance)

    def compare_with(self, other: SyncedItem) -> bool:
        """Check that two records describe the same item."""
        return (
            self.single_id == other.single_id
            and self.app_id == other.app_id
            and self.item_type == other.item_type
            and self.item_id == other.item_id
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "singleId": self.single_id,
            "instance": self.instance,
            "appId": self.app_id,
            "itemType": self.item_type,
            "itemId": self.item_id,
            "checksum": self.checksum,
            "serializedData": self.serialized,
            "deleted": self.deleted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncedItem:
        """Import a SyncedItem from its wire form.

        Raises:
            InvalidItemError: If singleId is missing.
        """
        if not data.get("singleId"):
            raise InvalidItemError("SyncedItem requires a singleId")
        return cls(
            single_id=str(data["singleId"]),
            instance=str(data.get("instance", "")),
            app_id=str(data.get("appId", "")),
            item_type=str(data.get("itemType", "")),
            item_id=str(data.get("itemId", "")),
            checksum=str(data.get("checksum", "")),
            serialized=dict(data.get("serializedData") or {}),
            deleted=bool(data.get("deleted", False)),
        )


@dataclass
class SyncedShare:
    """Share of a SyncedItem with a circle; the record existing is the shared state."""

    single_id: str
    circle_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"singleId": self.single_id, "circleId": self.circle_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncedShare:
        if not data.get("singleId") or not data.get("circleId"):
            raise InvalidItemError("SyncedShare requires singleId and circleId")
        return cls(single_id=str(data["singleId"]), circle_id=str(data["circleId"]))


@dataclass
class SyncedItemLock:
    """Lock on one (update_type, update_type_id) pair.

    Attributes:
        update_type: Kind of mutation ("item" or "share").
        update_type_id: Identifier of what is being mutated.
        time: Creation time in epoch seconds; 0 until persisted.
        verify_checksum: Whether the holder must re-validate the checksum
            before committing.
        checksum: Fingerprint of the prospective state once confirmed.
    """

    update_type: str = UpdateType.ITEM.value
    update_type_id: str = ""
    time: int = 0
    verify_checksum: bool = False
    checksum: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "updateType": self.update_type,
            "updateTypeId": self.update_type_id,
            "time": self.time,
            "verifyChecksum": self.verify_checksum,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncedItemLock:
        if not data.get("updateType") or not data.get("updateTypeId"):
            raise InvalidItemError("SyncedItemLock requires updateType and updateTypeId")
        return cls(
            update_type=str(data["updateType"]),
            update_type_id=str(data["updateTypeId"]),
            time=int(data.get("time", 0)),
            verify_checksum=bool(data.get("verifyChecksum", False)),
        )


@dataclass
class SyncedWrapper:
    """Envelope carrying the full context of a sync request.

    Every field is optional; use the has_*() accessors before reading one.
    """

    federated_user: FederatedUser | None = None
    item: SyncedItem | None = None
    lock: SyncedItemLock | None = None
    share: SyncedShare | None = None
    extra_data: dict[str, Any] = field(default_factory=dict)

    def has_federated_user(self) -> bool:
        return self.federated_user is not None

    def has_item(self) -> bool:
        return self.item is not None

    def has_lock(self) -> bool:
        return self.lock is not None

    def has_share(self) -> bool:
        return self.share is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "federatedUser": self.federated_user.to_dict() if self.federated_user else None,
            "item": self.item.to_dict() if self.item else None,
            "share": self.share.to_dict() if self.share else None,
            "lock": self.lock.to_dict() if self.lock else None,
            "extraData": self.extra_data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncedWrapper:
        """Import a wrapper; nested entities that fail validation are left out."""
        return cls(
            federated_user=_import_optional(FederatedUser, data.get("federatedUser")),
            item=_import_optional(SyncedItem, data.get("item")),
            lock=_import_optional(SyncedItemLock, data.get("lock")),
            share=_import_optional(SyncedShare, data.get("share")),
            extra_data=dict(data.get("extraData") or {}),
        )


def _import_optional(entity: Any, data: Any) -> Any:
    if not isinstance(data, dict):
        return None
    try:
        return entity.from_dict(data)
    except InvalidItemError:
        return None
