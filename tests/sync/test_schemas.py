"""Tests for the pydantic wire schemas."""

from __future__ import annotations

import json

import pytest

from circlesync.core.errors import InvalidItemError
from circlesync.core.types import SyncEventType
from circlesync.sync.entities import FederatedUser, SyncedItem, SyncedShare, SyncedWrapper
from circlesync.sync.events import FederatedSyncEvent
from circlesync.sync.schemas import (
    SyncedItemSchema,
    event_from_json,
    event_to_json,
    wrapper_from_json,
    wrapper_to_json,
)


@pytest.fixture
def wrapper() -> SyncedWrapper:
    item = SyncedItem(
        "s" * 31, "files", "folder", "42", instance="alpha.example.com", serialized={"n": 1}
    )
    return SyncedWrapper(
        federated_user=FederatedUser("alice-single-id", "alice"),
        item=item,
        share=SyncedShare(item.single_id, "circle-abc"),
        extra_data={"permissions": 1},
    )


class TestItemSchema:
    """Tests for SyncedItemSchema."""

    def test_accepts_aliases_and_names(self) -> None:
        by_alias = SyncedItemSchema.model_validate({"singleId": "x", "itemId": "42"})
        by_name = SyncedItemSchema.model_validate({"single_id": "x", "item_id": "42"})
        assert by_alias == by_name

    def test_ignores_unknown_keys(self) -> None:
        schema = SyncedItemSchema.model_validate({"singleId": "x", "unknown": True})
        assert schema.single_id == "x"


class TestWrapperJson:
    """Tests for wrapper_from_json() / wrapper_to_json()."""

    def test_from_json(self, wrapper: SyncedWrapper) -> None:
        assert wrapper_from_json(wrapper_to_json(wrapper)) == wrapper

    def test_from_dict(self, wrapper: SyncedWrapper) -> None:
        assert wrapper_from_json(wrapper.to_dict()) == wrapper

    def test_invalid_nested_dropped(self, wrapper: SyncedWrapper) -> None:
        """Nested entities failing validation are left out."""
        data = wrapper.to_dict()
        data["share"] = {"singleId": "", "circleId": "circle-abc"}
        data["lock"] = {"updateType": "item"}

        parsed = wrapper_from_json(json.dumps(data))

        assert parsed.has_item()
        assert not parsed.has_share()
        assert not parsed.has_lock()

    def test_malformed_envelope(self) -> None:
        with pytest.raises(InvalidItemError):
            wrapper_from_json('{"extraData": "not a dict"}')

    def test_not_json(self) -> None:
        with pytest.raises(InvalidItemError):
            wrapper_from_json("not json")


class TestEventJson:
    """Tests for event_from_json() / event_to_json()."""

    def test_round_trip(self, wrapper: SyncedWrapper) -> None:
        event = FederatedSyncEvent(
            SyncEventType.ITEM_UPDATE, "alpha.example.com", "circle-abc", 1, wrapper
        )
        parsed = event_from_json(event_to_json(event))
        assert parsed == event
        assert parsed.event_type is SyncEventType.ITEM_UPDATE

    def test_unknown_type(self, wrapper: SyncedWrapper) -> None:
        data = {"type": "item.explode", "circleId": "c", "apiVersion": 1, "wrapper": {}}
        with pytest.raises(InvalidItemError):
            event_from_json(data)

    def test_requires_circle(self) -> None:
        with pytest.raises(InvalidItemError):
            event_from_json({"type": "item.update", "apiVersion": 1, "wrapper": {}})
