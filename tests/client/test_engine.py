"""Tests for the SyncEngine sync lifecycle."""

import asyncio
import logging
import re

import httpx
import pytest

from savesync.client.api import APIError
from savesync.client.sync.engine import CONFIG_KEY, STATUS_KEY
from savesync.client.sync.events import SyncEvent, SyncEventType
from savesync.client.sync.types import OperationStatus, Resolution
from savesync.core.config import ConfigError
from savesync.core.types import ResolutionPolicy, SyncState

USER = "user_0001"


def record_events(engine, *types):  # type: ignore[no-untyped-def]
    """Subscribe a list collector to an engine's events."""
    events: list[SyncEvent] = []
    engine.events.subscribe(events.append, *types)
    return events


def set_high_score(engine, value: int) -> None:  # type: ignore[no-untyped-def]
    """Simulate local play changing the high score."""
    store = engine._store
    snapshot = store.load(USER)
    snapshot.payload["progress"]["highScore"] = value
    store.save(USER, snapshot)


async def diverged_pair(make_engine, clock, policy_a="local"):  # type: ignore[no-untyped-def]
    """Two devices in sync, then A scores 150 and B scores 120 and syncs first."""
    a = make_engine("a", config=None)
    b = make_engine("b")
    a.update_config(conflictResolution=policy_a, maxRetries=2, retryBackoffSeconds=0)
    assert await a.sync(USER)
    clock.advance()
    assert await b.sync(USER)
    clock.advance()

    set_high_score(a, 150)
    set_high_score(b, 120)
    assert await b.sync(USER)
    clock.advance()
    return a, b


class TestSyncLifecycle:
    """Tests for the basic sync steps."""

    @pytest.mark.asyncio
    async def test_first_sync_uploads_default_snapshot(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """A first sync against an empty remote should publish local data."""
        engine = make_engine()

        assert await engine.sync(USER) is True

        assert USER in remote.snapshots
        local = engine._store.load(USER)
        assert local.payload == remote.snapshots[USER].payload
        assert local.last_sync_at == clock.now
        assert engine.status.last_sync == clock.now
        assert engine.status.conflicts == []
        assert engine.status.sync_in_progress is False

    @pytest.mark.asyncio
    async def test_operation_completes_at_full_progress(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """The operation should end completed with progress 100."""
        engine = make_engine()
        await engine.sync(USER)

        operation = engine.operations.latest()
        assert operation.status == OperationStatus.COMPLETED
        assert operation.progress == 100
        assert operation.ended_at is not None
        assert operation.transferred_size == operation.data_size

    @pytest.mark.asyncio
    async def test_uploaded_snapshot_carries_device_identity(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """The remote copy should name this device and platform."""
        engine = make_engine()
        await engine.sync(USER)

        stored = remote.snapshots[USER]
        assert stored.device_id == engine.current_device_id()
        assert stored.platform == "desktop"
        assert stored.user_id == USER

    @pytest.mark.asyncio
    async def test_second_sync_is_idempotent(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """Syncing twice with no changes should change nothing but the time."""
        engine = make_engine()
        await engine.sync(USER)
        payload_after_first = engine._store.load(USER).payload
        clock.advance(60)

        conflicts = record_events(engine, SyncEventType.CONFLICT_DETECTED)
        assert await engine.sync(USER) is True

        assert conflicts == []
        assert engine._store.load(USER).payload == payload_after_first
        assert remote.snapshots[USER].payload == payload_after_first

    @pytest.mark.asyncio
    async def test_last_sync_never_moves_backwards(self, make_engine, clock) -> None:  # type: ignore[no-untyped-def]
        """A clock going back should not rewind the replica's sync time."""
        engine = make_engine()
        await engine.sync(USER)
        first = engine._store.load(USER).last_sync_at

        clock.advance(-3600)
        await engine.sync(USER)

        assert engine._store.load(USER).last_sync_at >= first

    @pytest.mark.asyncio
    async def test_events_in_order(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """Started should precede progress, which precedes completed."""
        engine = make_engine()
        events = record_events(
            engine,
            SyncEventType.SYNC_STARTED,
            SyncEventType.SYNC_PROGRESS,
            SyncEventType.SYNC_COMPLETED,
        )

        await engine.sync(USER)

        types = [e.type for e in events]
        assert types[0] == SyncEventType.SYNC_STARTED
        assert types[-1] == SyncEventType.SYNC_COMPLETED
        assert SyncEventType.SYNC_PROGRESS in types

    @pytest.mark.asyncio
    async def test_event_timestamps_use_engine_clock(self, make_engine, clock) -> None:  # type: ignore[no-untyped-def]
        engine = make_engine()
        events = record_events(engine)

        await engine.sync(USER)

        assert events
        assert {e.timestamp for e in events} == {clock.now}


class TestProgress:
    """Tests for upload progress reporting."""

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_from_zero_to_hundred(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """Progress events should never decrease and span 0 to 100."""
        engine = make_engine()
        events = record_events(engine, SyncEventType.SYNC_PROGRESS)

        await engine.sync(USER)

        percents = [e.payload["percent"] for e in events]
        assert percents[0] == 0
        assert percents[-1] == 100
        assert percents == sorted(percents)
        assert len(percents) > 2

    @pytest.mark.asyncio
    async def test_retried_upload_does_not_rewind_progress(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """A retried upload should keep progress monotonic."""
        engine = make_engine()
        remote.put_errors = [httpx.ConnectError("reset")]
        events = record_events(engine, SyncEventType.SYNC_PROGRESS)

        assert await engine.sync(USER) is True

        percents = [e.payload["percent"] for e in events]
        assert percents == sorted(percents)


class TestSingleFlight:
    """Tests for the one-sync-at-a-time guarantee."""

    @pytest.mark.asyncio
    async def test_concurrent_sync_returns_false(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """A sync requested while one is in flight should be refused."""
        engine = make_engine()
        remote.gate = asyncio.Event()

        first = asyncio.create_task(engine.sync(USER))
        await asyncio.sleep(0)
        assert engine.status.sync_in_progress is True
        assert engine.status.state == SyncState.SYNCING

        assert await engine.sync(USER) is False

        remote.gate.set()
        assert await first is True
        assert engine.status.sync_in_progress is False
        assert len(engine.operations) == 1

    @pytest.mark.asyncio
    async def test_forced_sync_runs_after_in_flight_one(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """force=True should queue a follow-up sync instead of re-entering."""
        engine = make_engine()
        remote.gate = asyncio.Event()

        first = asyncio.create_task(engine.sync(USER))
        await asyncio.sleep(0)
        forced = asyncio.create_task(engine.sync(USER, force=True))
        await asyncio.sleep(0)
        assert len(engine.operations) == 1

        remote.gate.set()
        assert await first is True
        assert await forced is True

        operations = engine.operations.all()
        assert len(operations) == 2
        assert all(op.status == OperationStatus.COMPLETED for op in operations)
        assert engine.status.sync_in_progress is False

    @pytest.mark.asyncio
    async def test_forced_calls_share_one_follow_up(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """Several forced calls during one sync should trigger one follow-up."""
        engine = make_engine()
        remote.gate = asyncio.Event()

        first = asyncio.create_task(engine.sync(USER))
        await asyncio.sleep(0)
        forced = [asyncio.create_task(engine.force_sync(USER)) for _ in range(3)]
        await asyncio.sleep(0)

        remote.gate.set()
        results = await asyncio.gather(first, *forced)

        assert results == [True, True, True, True]
        assert len(engine.operations) == 2

    @pytest.mark.asyncio
    async def test_flag_cleared_after_failure(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """A failed sync should not leave the in-flight flag set."""
        engine = make_engine()
        remote.put_errors = [APIError("boom", 500)]

        assert await engine.sync(USER) is False
        assert engine.status.sync_in_progress is False
        assert await engine.sync(USER) is True


class TestConnectivity:
    """Tests for offline behavior and reconnect."""

    @pytest.mark.asyncio
    async def test_offline_sync_fails_without_remote_calls(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """Offline sync should fail fast with a connectivity error."""
        engine = make_engine()
        engine.set_online(False)
        failures = record_events(engine, SyncEventType.SYNC_FAILED)

        assert await engine.sync(USER) is False

        assert remote.fetch_calls == 0
        operation = engine.operations.latest()
        assert operation.status == OperationStatus.FAILED
        assert operation.error == "no connectivity"
        assert failures[0].payload["error"] == "no connectivity"
        assert engine.status.sync_in_progress is False
        assert engine.status.state == SyncState.OFFLINE

    def test_reconnect_requests_sync_for_known_user(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """Going back online should ask for a sync once a user is registered."""
        engine = make_engine()
        engine.register_device(USER)
        engine.set_online(False)

        assert engine.set_online(True) is True
        assert engine.set_online(True) is False

    def test_reconnect_without_auto_sync(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """With auto sync off, reconnecting should not request a sync."""
        engine = make_engine()
        engine.register_device(USER)
        engine.update_config(autoSync=False)
        engine.set_online(False)

        assert engine.set_online(True) is False

    @pytest.mark.asyncio
    async def test_handle_connectivity_syncs_on_reconnect(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """handle_connectivity(True) after an outage should run a sync."""
        engine = make_engine()
        engine.register_device(USER)
        await engine.handle_connectivity(False)

        assert await engine.handle_connectivity(True) is True
        assert USER in remote.snapshots


class TestFreshDevice:
    """Tests for a device without a local replica."""

    @pytest.mark.asyncio
    async def test_adopts_remote_without_conflicts(self, make_engine, make_snapshot, remote) -> None:  # type: ignore[no-untyped-def]
        """A new device should take the remote data as-is."""
        remote.snapshots[USER] = make_snapshot(
            user_id=USER, device_id="device_other", progress={"highScore": 500}
        )
        engine = make_engine("new")
        conflicts = record_events(engine, SyncEventType.CONFLICT_DETECTED)

        assert await engine.sync(USER) is True

        assert conflicts == []
        assert engine._store.load(USER).payload["progress"]["highScore"] == 500
        assert remote.snapshots[USER].payload["progress"]["highScore"] == 500
        assert engine.status.conflicts == []

    @pytest.mark.asyncio
    async def test_corrupt_local_replica_recovers(self, make_engine, make_snapshot, remote, caplog) -> None:  # type: ignore[no-untyped-def]
        """Undecodable local data should be replaced, not crash the sync."""
        remote.snapshots[USER] = make_snapshot(user_id=USER, progress={"highScore": 42})
        engine = make_engine()
        engine._store.write_raw(USER, "{not json")

        with caplog.at_level(logging.WARNING, logger="savesync"):
            assert await engine.sync(USER) is True

        assert "corrupt" in caplog.text
        assert engine._store.load(USER).payload["progress"]["highScore"] == 42

    @pytest.mark.asyncio
    async def test_remote_records_writing_device(self, make_engine, make_snapshot, remote) -> None:  # type: ignore[no-untyped-def]
        """The device that wrote the remote copy should join the roster."""
        remote.snapshots[USER] = make_snapshot(user_id=USER, device_id="device_1_abcdefghi")
        engine = make_engine()
        engine.register_device(USER)

        await engine.sync(USER)

        ids = {d.id: d for d in engine.status.devices}
        assert "device_1_abcdefghi" in ids
        assert ids["device_1_abcdefghi"].is_current is False
        assert ids[engine.current_device_id()].is_current is True


class TestConflictPolicies:
    """Tests for the concurrent score bump under each policy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("policy", "expected"),
        [("local", 150), ("remote", 120), ("merge", 150)],
    )
    async def test_score_bump_resolution(self, make_engine, remote, clock, policy, expected) -> None:  # type: ignore[no-untyped-def]
        """Each policy should settle both replicas on its value."""
        a, _ = await diverged_pair(make_engine, clock, policy)
        detected = record_events(a, SyncEventType.CONFLICT_DETECTED)

        assert await a.sync(USER) is True

        assert detected[0].payload["conflicts"][0]["fieldPath"] == "progress.highScore"
        assert a._store.load(USER).payload["progress"]["highScore"] == expected
        assert remote.snapshots[USER].payload["progress"]["highScore"] == expected
        assert a.status.conflicts == []

    @pytest.mark.asyncio
    async def test_conflicts_recorded_on_operation(self, make_engine, clock) -> None:  # type: ignore[no-untyped-def]
        """The operation should keep the conflicts with the applied resolution."""
        a, _ = await diverged_pair(make_engine, clock, "merge")

        await a.sync(USER)

        conflict = a.operations.latest().conflicts[0]
        assert conflict.field_path == "progress.highScore"
        assert conflict.local_value == 150
        assert conflict.remote_value == 120
        assert conflict.resolution == Resolution.MERGE
        assert conflict.kind == "progress"

    @pytest.mark.asyncio
    async def test_conflicts_published_before_completion(self, make_engine, clock) -> None:  # type: ignore[no-untyped-def]
        """conflict-detected should fire before sync-completed."""
        a, _ = await diverged_pair(make_engine, clock)
        events = record_events(a, SyncEventType.CONFLICT_DETECTED, SyncEventType.SYNC_COMPLETED)

        await a.sync(USER)

        assert [e.type for e in events] == [
            SyncEventType.CONFLICT_DETECTED,
            SyncEventType.SYNC_COMPLETED,
        ]


class TestPromptPolicy:
    """Tests for deferred conflict decisions."""

    @pytest.mark.asyncio
    async def test_prompt_parks_operation(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """With prompts deferred, the sync should wait for decisions."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        parked = record_events(a, SyncEventType.AWAITING_RESOLUTION)

        assert await a.sync(USER) is False

        operation = a.operations.latest()
        assert a.operation_status(operation.id) == OperationStatus.AWAITING_RESOLUTION
        assert parked[0].payload["operation"]["id"] == operation.id
        assert [c.field_path for c in a.status.conflicts] == ["progress.highScore"]
        assert a.status.sync_in_progress is False
        assert a.status.state == SyncState.CONFLICT
        assert remote.snapshots[USER].payload["progress"]["highScore"] == 120
        assert a._store.load(USER).payload["progress"]["highScore"] == 150

    @pytest.mark.asyncio
    async def test_resolve_conflicts_resumes(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """Decisions should finish the parked sync."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        record_events(a, SyncEventType.AWAITING_RESOLUTION)
        await a.sync(USER)
        operation = a.operations.latest()

        assert await a.resolve_conflicts(operation.id, {"progress.highScore": "remote"}) is True

        assert operation.status == OperationStatus.COMPLETED
        assert operation.conflicts[0].resolution == Resolution.REMOTE
        assert a._store.load(USER).payload["progress"]["highScore"] == 120
        assert a.status.conflicts == []
        assert a.awaiting_resolution() == []

    @pytest.mark.asyncio
    async def test_undecided_paths_keep_local(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """Paths without a decision should keep the local value."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        record_events(a, SyncEventType.AWAITING_RESOLUTION)
        await a.sync(USER)

        assert await a.resolve_conflicts(a.operations.latest().id) is True
        assert remote.snapshots[USER].payload["progress"]["highScore"] == 150

    @pytest.mark.asyncio
    async def test_unknown_operation_is_refused(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """Resolving an id that is not parked should return False."""
        engine = make_engine()
        assert await engine.resolve_conflicts("missing", {}) is False
        assert engine.operation_status("missing") is None

    @pytest.mark.asyncio
    async def test_invalid_decision_keeps_operation_parked(self, make_engine, clock) -> None:  # type: ignore[no-untyped-def]
        """A bad decision value should leave the operation waiting."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        record_events(a, SyncEventType.AWAITING_RESOLUTION)
        await a.sync(USER)
        operation = a.operations.latest()

        assert await a.resolve_conflicts(operation.id, {"progress.highScore": "coin-flip"}) is False
        assert a.operation_status(operation.id) == OperationStatus.AWAITING_RESOLUTION

    @pytest.mark.asyncio
    async def test_new_sync_supersedes_parked_operation(self, make_engine, clock) -> None:  # type: ignore[no-untyped-def]
        """Starting another sync should fail the parked one."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        record_events(a, SyncEventType.AWAITING_RESOLUTION)
        await a.sync(USER)
        parked = a.operations.latest()

        await a.sync(USER)

        assert parked.status == OperationStatus.FAILED
        assert parked.error == "superseded by a newer sync"
        assert await a.resolve_conflicts(parked.id, {}) is False

    @pytest.mark.asyncio
    async def test_prompt_without_deferral_falls_back_to_local(self, make_engine, remote, clock, caplog) -> None:  # type: ignore[no-untyped-def]
        """Without deferral, prompt should keep local values and warn."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        record_events(a, SyncEventType.AWAITING_RESOLUTION)
        a.update_config(deferPrompts=False)

        with caplog.at_level(logging.WARNING, logger="savesync"):
            assert await a.sync(USER) is True

        assert "prompt" in caplog.text
        assert remote.snapshots[USER].payload["progress"]["highScore"] == 150

    @pytest.mark.asyncio
    async def test_prompt_without_resolver_falls_back_to_local(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """With nothing listening for decisions, prompt syncs should keep completing."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        a.events.subscribe(lambda e: None)

        results = []
        for _ in range(3):
            results.append(await a.sync(USER))
            clock.advance()

        assert results == [True, True, True]
        assert a.awaiting_resolution() == []
        assert [op.status for op in a.operations.all()][-3:] == [OperationStatus.COMPLETED] * 3
        assert remote.snapshots[USER].payload["progress"]["highScore"] == 150

    @pytest.mark.asyncio
    async def test_resume_keeps_local_changes_made_while_parked(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """Resolving should act on the replica as it is now, not as it was when parked."""
        a, _ = await diverged_pair(make_engine, clock, "prompt")
        record_events(a, SyncEventType.AWAITING_RESOLUTION)
        await a.sync(USER)
        operation = a.operations.latest()

        set_high_score(a, 400)

        assert await a.resolve_conflicts(operation.id, {"progress.highScore": "local"}) is True

        assert a._store.load(USER).payload["progress"]["highScore"] == 400
        assert remote.snapshots[USER].payload["progress"]["highScore"] == 400
        assert operation.conflicts[0].local_value == 400


class TestRemoteFailures:
    """Tests for failures talking to the remote."""

    @pytest.mark.asyncio
    async def test_upload_error_leaves_local_untouched(self, make_engine, remote, clock) -> None:  # type: ignore[no-untyped-def]
        """A rejected upload should fail the sync without touching local data."""
        engine = make_engine()
        await engine.sync(USER)
        set_high_score(engine, 77)
        before = engine._store.load(USER)
        clock.advance()
        remote.put_errors = [APIError("Server exploded", 500)]
        failures = record_events(engine, SyncEventType.SYNC_FAILED)

        assert await engine.sync(USER) is False

        assert engine._store.load(USER) == before
        assert engine.operations.latest().error == "Server exploded"
        assert engine.status.last_error == "Server exploded"
        assert failures[0].payload["error"] == "Server exploded"

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """Transient transport errors should be retried up to maxRetries."""
        engine = make_engine()
        remote.put_errors = [httpx.ConnectError("reset"), httpx.ReadTimeout("slow")]

        assert await engine.sync(USER) is True
        assert remote.put_calls == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted_fail_the_sync(self, make_engine, remote) -> None:  # type: ignore[no-untyped-def]
        """More transport errors than retries should fail the sync."""
        engine = make_engine()
        remote.put_errors = [httpx.ConnectError("down")] * 3

        assert await engine.sync(USER) is False
        assert remote.put_calls == 3

    @pytest.mark.asyncio
    async def test_unreachable_fetch_counts_as_absent(self, make_engine, remote, caplog) -> None:  # type: ignore[no-untyped-def]
        """A fetch that keeps failing should be treated as no remote data."""
        engine = make_engine()
        remote.fetch_errors = [httpx.ConnectError("down")] * 3

        with caplog.at_level(logging.WARNING, logger="savesync"):
            assert await engine.sync(USER) is True

        assert "treating as absent" in caplog.text

    @pytest.mark.asyncio
    async def test_remote_of_other_user_ignored(self, make_engine, make_snapshot, remote) -> None:  # type: ignore[no-untyped-def]
        """A remote snapshot for another user should not be adopted."""
        remote.snapshots[USER] = make_snapshot(user_id="user_9999", progress={"highScore": 9})
        engine = make_engine()

        assert await engine.sync(USER) is True
        assert engine._store.load(USER).payload["progress"]["highScore"] == 0


class TestStatusPersistence:
    """Tests for status survival across restarts."""

    @pytest.mark.asyncio
    async def test_status_restored_on_restart(self, make_engine, make_store, clock) -> None:  # type: ignore[no-untyped-def]
        """A new engine on the same store should see the last sync."""
        engine = make_engine("dev")
        engine.register_device(USER)
        await engine.sync(USER)

        restarted = make_engine("dev2", store=make_store("dev"))

        assert restarted.status.last_sync == clock.now
        assert restarted.current_device_id() == engine.current_device_id()
        assert [d.id for d in restarted.status.devices] == [engine.current_device_id()]

    def test_in_flight_flag_reset_on_load(self, make_engine, make_store) -> None:  # type: ignore[no-untyped-def]
        """A persisted in-flight flag should not block a restarted engine."""
        store = make_store("dev")
        store.set_value(STATUS_KEY, {"isOnline": True, "syncInProgress": True})

        engine = make_engine("dev", store=store)

        assert engine.status.sync_in_progress is False

    def test_corrupt_status_resets_to_defaults(self, make_engine, make_store, caplog) -> None:  # type: ignore[no-untyped-def]
        """Undecodable persisted status should be replaced by defaults."""
        store = make_store("dev")
        store.set_value(STATUS_KEY, {"lastSync": "not a date"})

        with caplog.at_level(logging.WARNING, logger="savesync"):
            engine = make_engine("dev", store=store)

        assert engine.status.last_sync is None
        assert "resetting to defaults" in caplog.text


class TestConfigAndDevices:
    """Tests for configuration updates and device registration."""

    def test_update_config_persists(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """Changed options should be applied and stored."""
        engine = make_engine()

        config = engine.update_config(conflictResolution="merge", syncFrequencyMinutes=10)

        assert config.conflict_resolution == ResolutionPolicy.MERGE
        assert engine.status.sync_frequency_minutes == 10
        assert engine._store.get_value(CONFIG_KEY)["conflictResolution"] == "merge"

    def test_update_config_rejects_invalid_values(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """Invalid options should raise and leave the config unchanged."""
        engine = make_engine()
        before = engine.config

        with pytest.raises(ConfigError):
            engine.update_config(conflictResolution="coin-flip")
        assert engine.config == before

    def test_register_device(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """Registration should add exactly one current device."""
        engine = make_engine()
        registered = record_events(engine, SyncEventType.DEVICE_REGISTERED)

        info = engine.register_device(USER)
        engine.register_device(USER)

        assert re.fullmatch(r"device_\d+_[0-9a-z]{9}", info.id)
        assert [d.id for d in engine.status.devices] == [info.id]
        assert engine.status.devices[0].is_current is True
        assert "sync" in info.capabilities
        assert registered[0].payload["device"]["id"] == info.id
        assert engine.current_user_id == USER

    def test_clear_conflicts(self, make_engine) -> None:  # type: ignore[no-untyped-def]
        """clear_conflicts should empty the published list."""
        engine = make_engine()
        engine.clear_conflicts()
        assert engine.status.conflicts == []
