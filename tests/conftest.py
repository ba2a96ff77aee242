"""Shared pytest fixtures for savesync tests.

Provides a controllable clock, an in-memory remote and an engine factory
so sync scenarios run deterministically without a network.
"""

from __future__ import annotations

import asyncio
import itertools
import random
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from savesync.client.state import LocalSnapshotStore
from savesync.client.sync.engine import SyncEngine
from savesync.client.sync.types import ProgressCallback
from savesync.core.config import SyncConfig
from savesync.core.snapshot import Snapshot, default_snapshot

START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeRemote:
    """In-memory remote store implementing the RemoteClient protocol.

    Attributes:
        snapshots: Stored snapshots by user id.
        fetch_errors: Exceptions raised by the next fetch calls, in order.
        put_errors: Exceptions raised by the next put calls, in order.
        gate: If set, fetches wait on it (keeps a sync in flight).
        online: Value returned by health_check().
    """

    def __init__(self, chunk_size: int = 64) -> None:
        self.snapshots: dict[str, Snapshot] = {}
        self.fetch_errors: list[Exception] = []
        self.put_errors: list[Exception] = []
        self.gate: asyncio.Event | None = None
        self.online = True
        self.chunk_size = chunk_size
        self.fetch_calls = 0
        self.put_calls = 0

    async def fetch_snapshot(self, user_id: str) -> Snapshot | None:
        self.fetch_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        snapshot = self.snapshots.get(user_id)
        return snapshot.copy() if snapshot is not None else None

    async def put_snapshot(
        self,
        user_id: str,
        snapshot: Snapshot,
        progress: ProgressCallback | None = None,
    ) -> Snapshot:
        self.put_calls += 1
        await asyncio.sleep(0)
        if self.put_errors:
            raise self.put_errors.pop(0)
        total = snapshot.size_bytes()
        if progress:
            for sent in range(self.chunk_size, total, self.chunk_size):
                progress(sent, total)
            progress(total, total)
        self.snapshots[user_id] = snapshot.copy()
        return snapshot.copy()

    async def health_check(self) -> bool:
        return self.online


def make_ids(prefix: str) -> Callable[[], str]:
    """Deterministic id factory."""
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def remote() -> FakeRemote:
    """Shared in-memory remote."""
    return FakeRemote()


@pytest.fixture
def fast_config() -> SyncConfig:
    """Sync options with retries that do not sleep."""
    return SyncConfig(
        conflict_resolution="local",
        max_retries=2,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def make_store(tmp_path: Path) -> Generator[Callable[[str], LocalSnapshotStore], None, None]:
    """Factory for per-device local stores, closed after the test."""
    stores: list[LocalSnapshotStore] = []

    def factory(name: str = "device") -> LocalSnapshotStore:
        store = LocalSnapshotStore(tmp_path / name / "state.db")
        stores.append(store)
        return store

    yield factory
    for store in stores:
        store.close()


@pytest.fixture
def make_engine(
    make_store: Callable[[str], LocalSnapshotStore],
    remote: FakeRemote,
    clock: FakeClock,
    fast_config: SyncConfig,
) -> Callable[..., SyncEngine]:
    """Factory for engines; each name gets its own store and device id."""
    seeds = itertools.count(1)

    def factory(
        name: str = "device",
        config: SyncConfig | None = None,
        store: LocalSnapshotStore | None = None,
        **kwargs: Any,
    ) -> SyncEngine:
        return SyncEngine(
            store if store is not None else make_store(name),
            kwargs.pop("remote", remote),
            config if config is not None else fast_config,
            clock=clock,
            id_factory=make_ids(name),
            rng=random.Random(next(seeds)),
            machine_name=name,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """Factory for default snapshots with optional payload edits."""

    def factory(
        user_id: str = "user_0001",
        device_id: str = "device_test",
        platform: str = "desktop",
        **sections: Any,
    ) -> Snapshot:
        snapshot = default_snapshot(user_id, device_id, platform, START)
        for name, changes in sections.items():
            if isinstance(changes, dict) and isinstance(snapshot.payload.get(name), dict):
                snapshot.payload[name].update(changes)
            else:
                snapshot.payload[name] = changes
        return snapshot

    return factory
