"""Tests for SyncEventReceiver, on a simulated two-instance federation.

alpha.example.com owns folder 42; bob, a member of circle-abc, lives on
beta.example.com.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from fakes import LOCAL_INSTANCE, REMOTE_INSTANCE, FakeManager, Federation, Instance

from circlesync.core.checksum import compute_checksum
from circlesync.core.errors import (
    ConflictError,
    FederatedSyncConflictError,
    FederatedSyncVersionError,
    InvalidItemError,
    SyncedShareNotFoundError,
    SyncNotSupportedError,
)
from circlesync.core.types import SyncEventType
from circlesync.sync.coordinator import SyncOrigin
from circlesync.sync.entities import FederatedUser, SyncedItem, SyncedShare, SyncedWrapper
from circlesync.sync.events import FederatedSyncEvent

FILES = SyncOrigin("files", "folder")
FOLDER = {"id": "42", "name": "Projects"}


@pytest.fixture
def alpha(make_instance: Callable[..., Instance], alice: FederatedUser) -> Instance:
    """Instance owning folder 42."""
    return make_instance(LOCAL_INSTANCE, actor=alice, manager=FakeManager(items={"42": FOLDER}))


@pytest.fixture
def beta(make_instance: Callable[..., Instance], bob: FederatedUser) -> Instance:
    """Instance of bob."""
    return make_instance(REMOTE_INSTANCE, actor=bob)


@pytest.fixture
def shared(alpha: Instance, beta: Instance) -> SyncedItem:
    """Folder 42 shared with circle-abc by alice; returns the owner's record."""
    alpha.coordinator.create_share(FILES, "42", "circle-abc", {"permissions": 1})
    item = alpha.store.get_item("files", "folder", "42")
    assert item is not None
    return item


def _event(
    event_type: SyncEventType,
    item: SyncedItem,
    actor: FederatedUser | None,
    origin: str = LOCAL_INSTANCE,
    api_version: int = 1,
) -> FederatedSyncEvent:
    return FederatedSyncEvent(
        event_type,
        origin=origin,
        circle_id="circle-abc",
        api_version=api_version,
        wrapper=SyncedWrapper(federated_user=actor, item=item),
    )


class TestShareEvents:
    """Share events fanned out by the owner."""

    def test_share_creation_reaches_member_instance(
        self, alpha: Instance, beta: Instance, shared: SyncedItem
    ) -> None:
        copy = beta.store.get_item_by_single_id(shared.single_id)
        assert copy is not None
        assert copy.instance == LOCAL_INSTANCE
        assert copy.checksum == shared.checksum == compute_checksum(FOLDER)
        assert beta.store.list_shares(shared.single_id) == [
            SyncedShare(shared.single_id, "circle-abc")
        ]
        assert beta.manager.items["42"] == FOLDER
        assert beta.manager.shares[("42", "circle-abc")] == {"permissions": 1}
        assert beta.manager.count("on_share_creation") == 1

    def test_owner_callbacks_run_once(
        self, alpha: Instance, beta: Instance, shared: SyncedItem
    ) -> None:
        """The event coming back to the owner is ignored."""
        assert alpha.manager.count("on_share_creation") == 1
        assert alpha.manager.count("sync_share") == 0

    def test_full_support_replays_on_owner(
        self, make_instance: Callable[..., Instance], alice: FederatedUser
    ) -> None:
        owner = make_instance(
            LOCAL_INSTANCE,
            actor=alice,
            manager=FakeManager(items={"42": FOLDER}, full_support=True),
        )

        owner.coordinator.create_share(FILES, "42", "circle-solo", {"permissions": 1})

        assert owner.manager.count("on_share_creation") == 1
        assert owner.manager.count("sync_share") == 1

    def test_share_update_and_deletion(
        self, alpha: Instance, beta: Instance, shared: SyncedItem
    ) -> None:
        alpha.coordinator.update_share(FILES, "42", "circle-abc", {"permissions": 31})
        assert beta.manager.shares[("42", "circle-abc")] == {"permissions": 31}

        alpha.coordinator.delete_share(FILES, "42", "circle-abc")
        assert beta.store.list_shares(shared.single_id) == []
        assert ("42", "circle-abc") not in beta.manager.shares
        assert beta.manager.count("on_share_deletion") == 1
        assert beta.store.get_item_by_single_id(shared.single_id).deleted is False

    def test_share_event_requires_actor(self, beta: Instance) -> None:
        item = SyncedItem("s" * 31, "files", "folder", "42", serialized=FOLDER)
        with pytest.raises(InvalidItemError):
            beta.coordinator.receiver.handle_event(_event(SyncEventType.SHARE_CREATE, item, None))

    def test_event_without_origin_rejected(self, beta: Instance, alice: FederatedUser) -> None:
        """An empty origin must not pass for the receiving instance itself."""
        item = SyncedItem("s" * 31, "files", "folder", "42", serialized=FOLDER)

        with pytest.raises(InvalidItemError):
            beta.coordinator.receiver.handle_event(
                _event(SyncEventType.SHARE_CREATE, item, alice, origin="")
            )
        assert beta.manager.calls == []

    def test_event_requires_item(self, beta: Instance, alice: FederatedUser) -> None:
        event = FederatedSyncEvent(
            SyncEventType.SHARE_CREATE,
            origin=LOCAL_INSTANCE,
            circle_id="circle-abc",
            api_version=1,
            wrapper=SyncedWrapper(federated_user=alice),
        )
        with pytest.raises(InvalidItemError):
            beta.coordinator.receiver.handle_event(event)


class TestItemEvents:
    """Item events fanned out by the owner."""

    def test_update_relayed_through_owner(
        self, alpha: Instance, beta: Instance, shared: SyncedItem
    ) -> None:
        """bob updates his copy: the owner applies it and fans the new state out."""
        beta.coordinator.update_item(FILES, "42", {"name": "Renamed"})

        expected = {"id": "42", "name": "Renamed"}
        assert alpha.manager.items["42"] == expected
        assert beta.manager.items["42"] == expected
        owner_checksum = alpha.store.get_item_by_single_id(shared.single_id).checksum
        copy_checksum = beta.store.get_item_by_single_id(shared.single_id).checksum
        assert owner_checksum == copy_checksum == compute_checksum(expected)
        assert alpha.store.list_locks() == []
        assert beta.store.list_locks() == []

    def test_outdated_copy_must_sync_first(
        self, alpha: Instance, beta: Instance, shared: SyncedItem
    ) -> None:
        beta.store.update_item_checksum(shared.single_id, "outdated")

        with pytest.raises(ConflictError):
            beta.coordinator.update_item(FILES, "42", {"name": "Renamed"})

        assert alpha.manager.items["42"] == FOLDER
        assert beta.store.list_locks() == []

    def test_replayed_update_is_idempotent(
        self, alpha: Instance, beta: Instance, shared: SyncedItem, federation: Federation
    ) -> None:
        """At-least-once delivery: the same update twice syncs once."""
        alpha.coordinator.update_item(FILES, "42", {"name": "Renamed"})
        last = [event for name, event in federation.delivered if name == REMOTE_INSTANCE][-1]
        syncs = beta.manager.count("sync_item")

        assert beta.coordinator.receiver.handle_event(last) is False
        assert beta.manager.count("sync_item") == syncs

    def test_item_deletion(self, alpha: Instance, beta: Instance, shared: SyncedItem) -> None:
        alpha.coordinator.delete_item(FILES, "42")

        copy = beta.store.get_item_by_single_id(shared.single_id)
        assert copy.deleted is True
        assert beta.store.list_shares(shared.single_id) == []
        assert beta.manager.count("on_share_deletion") == 1

    def test_conflicting_single_id(self, beta: Instance, alice: FederatedUser) -> None:
        """The same item announced under two single ids is a conflict."""
        receiver = beta.coordinator.receiver
        first = SyncedItem("a" * 31, "files", "folder", "42", serialized=FOLDER)
        second = SyncedItem("b" * 31, "files", "folder", "42", serialized=FOLDER)

        receiver.handle_event(_event(SyncEventType.ITEM_UPDATE, first, alice))
        with pytest.raises(FederatedSyncConflictError):
            receiver.handle_event(_event(SyncEventType.ITEM_UPDATE, second, alice))

    def test_outdated_version_rejected(self, beta: Instance, alice: FederatedUser) -> None:
        beta.manager.lower_bound = 2
        item = SyncedItem("a" * 31, "files", "folder", "42", serialized=FOLDER)

        with pytest.raises(FederatedSyncVersionError):
            beta.coordinator.receiver.handle_event(
                _event(SyncEventType.ITEM_UPDATE, item, alice, api_version=1)
            )
        assert beta.manager.count("sync_item") == 0


class TestOwnerRequests:
    """Direct requests answered by the owner."""

    def test_item_details(self, alpha: Instance, shared: SyncedItem) -> None:
        answer = alpha.coordinator.receiver.handle_owner_request(
            "item.details", REMOTE_INSTANCE, SyncedWrapper(item=shared)
        )
        assert answer["singleId"] == shared.single_id
        assert answer["instance"] == LOCAL_INSTANCE
        assert answer["serializedData"] == FOLDER

    def test_item_details_refused_to_strangers(self, alpha: Instance, shared: SyncedItem) -> None:
        with pytest.raises(SyncedShareNotFoundError):
            alpha.coordinator.receiver.handle_item_request("gamma.example.com", shared)

    def test_update_requires_actor(self, alpha: Instance, shared: SyncedItem) -> None:
        with pytest.raises(InvalidItemError):
            alpha.coordinator.receiver.handle_update_request(
                REMOTE_INSTANCE, SyncedWrapper(item=shared)
            )

    def test_update_from_stranger_refused(
        self, alpha: Instance, shared: SyncedItem, bob: FederatedUser
    ) -> None:
        with pytest.raises(SyncedShareNotFoundError):
            alpha.coordinator.receiver.handle_update_request(
                "gamma.example.com", SyncedWrapper(federated_user=bob, item=shared)
            )
        assert alpha.manager.count("is_item_updatable") == 0

    @pytest.mark.parametrize("action", ["item.details", "item.update", "share.details"])
    def test_outdated_sender_rejected(
        self, alpha: Instance, shared: SyncedItem, bob: FederatedUser, action: str
    ) -> None:
        """Every owner request applies the same version floor."""
        alpha.manager.lower_bound = 2
        wrapper = SyncedWrapper(
            federated_user=bob, item=shared, share=SyncedShare(shared.single_id, "circle-abc")
        )

        with pytest.raises(FederatedSyncVersionError):
            alpha.coordinator.receiver.handle_owner_request(
                action, REMOTE_INSTANCE, wrapper, api_version=1
            )
        assert alpha.manager.count("is_item_updatable") == 0
        assert alpha.manager.count("get_share_details") == 0

    def test_unknown_request(self, alpha: Instance, shared: SyncedItem) -> None:
        with pytest.raises(SyncNotSupportedError):
            alpha.coordinator.receiver.handle_owner_request(
                "item.explode", REMOTE_INSTANCE, SyncedWrapper(item=shared)
            )

    def test_share_details_resync(
        self, alpha: Instance, beta: Instance, shared: SyncedItem, bob: FederatedUser
    ) -> None:
        """A member instance with a drifted share asks the owner for its details."""
        beta.manager.shares[("42", "circle-abc")] = {"permissions": 0}
        copy = beta.store.get_item_by_single_id(shared.single_id)

        beta.coordinator.shares.resync_share(bob, copy, "circle-abc")

        assert beta.manager.shares[("42", "circle-abc")] == {"permissions": 1}
