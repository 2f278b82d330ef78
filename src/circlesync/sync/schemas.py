"""Pydantic schemas for the JSON wire envelope.

Incoming payloads are validated here before being converted into the
entity dataclasses. Field names follow the camelCase wire keys.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from circlesync.core.errors import InvalidItemError
from circlesync.core.types import SyncEventType
from circlesync.sync.entities import SyncedWrapper
from circlesync.sync.events import FederatedSyncEvent


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# === Entity schemas ===


class FederatedUserSchema(_WireModel):
    """Actor in the wire envelope."""

    single_id: str = Field(alias="singleId", min_length=1)
    user_id: str = Field(default="", alias="userId")
    user_type: int = Field(default=1, alias="userType")
    instance: str = ""


class SyncedItemSchema(_WireModel):
    """SyncedItem in the wire envelope."""

    single_id: str = Field(alias="singleId", min_length=1)
    instance: str = ""
    app_id: str = Field(default="", alias="appId")
    item_type: str = Field(default="", alias="itemType")
    item_id: str = Field(default="", alias="itemId")
    checksum: str = ""
    serialized_data: dict[str, Any] = Field(default_factory=dict, alias="serializedData")
    deleted: bool = False


class SyncedShareSchema(_WireModel):
    """SyncedShare in the wire envelope."""

    single_id: str = Field(alias="singleId", min_length=1)
    circle_id: str = Field(alias="circleId", min_length=1)


class SyncedItemLockSchema(_WireModel):
    """SyncedItemLock in the wire envelope."""

    update_type: str = Field(alias="updateType", min_length=1)
    update_type_id: str = Field(alias="updateTypeId", min_length=1)
    time: int = 0
    verify_checksum: bool = Field(default=False, alias="verifyChecksum")


class SyncedWrapperSchema(_WireModel):
    """SyncedWrapper envelope: every nested entity is optional."""

    federated_user: dict[str, Any] | None = Field(default=None, alias="federatedUser")
    item: dict[str, Any] | None = None
    share: dict[str, Any] | None = None
    lock: dict[str, Any] | None = None
    extra_data: dict[str, Any] = Field(default_factory=dict, alias="extraData")


class FederatedSyncEventSchema(_WireModel):
    """Fan-out event envelope."""

    type: SyncEventType
    origin: str = ""
    circle_id: str = Field(alias="circleId", min_length=1)
    api_version: int = Field(alias="apiVersion", ge=0)
    wrapper: SyncedWrapperSchema


_NESTED_SCHEMAS: dict[str, type[_WireModel]] = {
    "federatedUser": FederatedUserSchema,
    "item": SyncedItemSchema,
    "share": SyncedShareSchema,
    "lock": SyncedItemLockSchema,
}


# === Converters ===


def _validated_wrapper_dict(schema: SyncedWrapperSchema) -> dict[str, Any]:
    data: dict[str, Any] = {"extraData": schema.extra_data}
    raw = schema.model_dump(by_alias=True)
    for key, nested_schema in _NESTED_SCHEMAS.items():
        value = raw.get(key)
        if value is None:
            continue
        try:
            data[key] = nested_schema.model_validate(value).model_dump(by_alias=True)
        except ValidationError:
            # invalid nested entities are treated as absent
            continue
    return data


def wrapper_from_json(payload: str | bytes | dict[str, Any]) -> SyncedWrapper:
    """Parse and validate a SyncedWrapper received from another instance.

    Args:
        payload: JSON document or already-decoded dict.

    Returns:
        SyncedWrapper with only the valid nested entities set.

    Raises:
        InvalidItemError: If the envelope itself is malformed.
    """
    try:
        if isinstance(payload, dict):
            schema = SyncedWrapperSchema.model_validate(payload)
        else:
            schema = SyncedWrapperSchema.model_validate_json(payload)
    except ValidationError as e:
        raise InvalidItemError(f"invalid SyncedWrapper: {e}") from e
    return SyncedWrapper.from_dict(_validated_wrapper_dict(schema))


def wrapper_to_json(wrapper: SyncedWrapper) -> str:
    """Serialize a SyncedWrapper to its JSON wire form."""
    return json.dumps(wrapper.to_dict(), sort_keys=True, default=str)


def event_from_json(payload: str | bytes | dict[str, Any]) -> FederatedSyncEvent:
    """Parse and validate a FederatedSyncEvent.

    Raises:
        InvalidItemError: If the event is malformed.
    """
    try:
        if isinstance(payload, dict):
            schema = FederatedSyncEventSchema.model_validate(payload)
        else:
            schema = FederatedSyncEventSchema.model_validate_json(payload)
    except ValidationError as e:
        raise InvalidItemError(f"invalid FederatedSyncEvent: {e}") from e
    return FederatedSyncEvent(
        event_type=schema.type,
        origin=schema.origin,
        circle_id=schema.circle_id,
        api_version=schema.api_version,
        wrapper=SyncedWrapper.from_dict(_validated_wrapper_dict(schema.wrapper)),
    )


def event_to_json(event: FederatedSyncEvent) -> str:
    """Serialize a FederatedSyncEvent to JSON."""
    return json.dumps(event.to_dict(), sort_keys=True, default=str)
