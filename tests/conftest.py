"""Shared fixtures for circlesync tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from fakes import (
    LOCAL_INSTANCE,
    REMOTE_INSTANCE,
    FakeManager,
    Federation,
    InMemoryCircles,
    Instance,
    RecordingTracer,
    RecordingTransport,
    StaticActorResolver,
)

from circlesync.core.config import SyncConfig
from circlesync.server.database import SyncStore
from circlesync.sync.coordinator import SyncCoordinator
from circlesync.sync.entities import FederatedUser
from circlesync.sync.registry import SyncManagerRegistry


@pytest.fixture
def config(tmp_path: Path) -> SyncConfig:
    """Configuration of the instance under test."""
    return SyncConfig(local_instance=LOCAL_INSTANCE, db_path=tmp_path / "sync.db")


@pytest.fixture
def store(config: SyncConfig) -> Iterator[SyncStore]:
    """Create a test sync store."""
    store = SyncStore(config.db_path)
    yield store
    store.close()


@pytest.fixture
def manager() -> FakeManager:
    """Manager for files.folder with one known folder."""
    return FakeManager(items={"42": {"id": "42", "name": "Projects"}})


@pytest.fixture
def registry(manager: FakeManager) -> SyncManagerRegistry:
    registry = SyncManagerRegistry()
    registry.register(manager)
    return registry


@pytest.fixture
def alice() -> FederatedUser:
    """Local member of circle-abc."""
    return FederatedUser("alice-single-id", user_id="alice", instance=LOCAL_INSTANCE)


@pytest.fixture
def bob() -> FederatedUser:
    """Member of circle-abc living on the remote instance."""
    return FederatedUser("bob-single-id", user_id="bob", instance=REMOTE_INSTANCE)


@pytest.fixture
def circles(alice: FederatedUser, bob: FederatedUser) -> InMemoryCircles:
    circles = InMemoryCircles()
    circles.add("circle-abc", [alice, bob])
    circles.add("circle-solo", [alice])
    circles.add("circle-other", [bob])
    return circles


@pytest.fixture
def actors(alice: FederatedUser) -> StaticActorResolver:
    return StaticActorResolver(alice)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def tracer() -> RecordingTracer:
    return RecordingTracer()


@pytest.fixture
def coordinator(
    store: SyncStore,
    registry: SyncManagerRegistry,
    circles: InMemoryCircles,
    actors: StaticActorResolver,
    config: SyncConfig,
    transport: RecordingTransport,
    tracer: RecordingTracer,
) -> SyncCoordinator:
    """Coordinator of the local instance, with recording collaborators."""
    return SyncCoordinator(
        store, registry, circles, actors, config=config, transport=transport, tracer=tracer
    )


@pytest.fixture
def federation(tmp_path: Path, circles: InMemoryCircles) -> Iterator[Federation]:
    """Empty federation; add instances with the make_instance fixture."""
    federation = Federation(circles)
    yield federation
    for instance in federation.instances.values():
        instance.store.close()


@pytest.fixture
def make_instance(
    tmp_path: Path, federation: Federation
) -> Callable[..., Instance]:
    """Factory adding an instance to the federation."""

    def _make(
        name: str,
        actor: FederatedUser | None = None,
        manager: FakeManager | None = None,
    ) -> Instance:
        config = SyncConfig(local_instance=name, db_path=tmp_path / f"{name}.db")
        store = SyncStore(config.db_path)
        manager = manager or FakeManager()
        registry = SyncManagerRegistry()
        registry.register(manager)
        actors = StaticActorResolver(actor)
        coordinator = SyncCoordinator(
            store,
            registry,
            federation.circles,
            actors,
            config=config,
            transport=federation.transport_for(name),
            tracer=RecordingTracer(),
        )
        instance = Instance(name, store, manager, coordinator, actors)
        federation.instances[name] = instance
        return instance

    return _make
