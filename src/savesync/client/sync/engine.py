"""Sync engine reconciling the local replica with the remote snapshot.

This module provides:
- SyncEngine: Orchestrates one user's save-state synchronization

A sync runs these steps in order:
    1. Load the local replica (default snapshot if none or corrupt)
    2. Fetch the remote snapshot (unreachable or malformed counts as absent)
    3. Detect conflicts
    4. Resolve conflicts by policy, or merge when there are none
    5. Upload the result, reporting progress
    6. Download the authoritative copy and persist it locally
    7. Record the sync in the status and complete the operation

At most one sync is in flight. The in-flight flag lives in memory only, so a
crash mid-sync leaves no lock behind. Suspension happens only at remote calls;
detection, resolution and merging are synchronous.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from savesync.client.sync.devices import DeviceRegistry
from savesync.client.sync.domain.conflicts import ConflictDetector
from savesync.client.sync.domain.merge import Merger
from savesync.client.sync.domain.operations import OperationTracker, advance, is_terminal
from savesync.client.sync.domain.resolution import ConflictResolver, annotate
from savesync.client.sync.events import EventBus, SyncEventType
from savesync.client.sync.retry import NETWORK_EXCEPTIONS, retry_with_backoff
from savesync.client.sync.types import (
    Clock,
    Conflict,
    ConnectivityError,
    CorruptSnapshotError,
    DeviceInfo,
    IdFactory,
    OperationKind,
    OperationStatus,
    RemoteClient,
    RemoteError,
    Resolution,
    SnapshotStore,
    SyncOperation,
    SyncStatus,
)
from savesync.core.config import SyncConfig
from savesync.core.snapshot import Snapshot, default_snapshot
from savesync.core.types import Platform, ResolutionPolicy

logger = logging.getLogger(__name__)

STATUS_KEY = "sync_status"
CONFIG_KEY = "sync_config"


def load_sync_config(store: SnapshotStore) -> SyncConfig:
    """Load the persisted sync options (defaults if none or invalid)."""
    stored = store.get_value(CONFIG_KEY)
    if isinstance(stored, dict):
        try:
            return SyncConfig.from_dict(stored)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid stored sync config: {e}")
    return SyncConfig()


def save_sync_config(store: SnapshotStore, config: SyncConfig) -> None:
    """Persist sync options."""
    store.set_value(CONFIG_KEY, config.to_dict())


@dataclass
class _PendingResolution:
    """State kept for an operation waiting on conflict decisions."""

    user_id: str
    local: Snapshot
    remote: Snapshot
    conflicts: list[Conflict]


@dataclass
class _FollowUp:
    """A forced sync queued behind the in-flight one."""

    user_id: str
    future: asyncio.Future[bool]


class SyncEngine:
    """Coordinates synchronization between the local replica and the remote."""

    def __init__(
        self,
        store: SnapshotStore,
        remote: RemoteClient,
        config: SyncConfig | None = None,
        *,
        clock: Clock | None = None,
        id_factory: IdFactory | None = None,
        rng: random.Random | None = None,
        event_bus: EventBus | None = None,
        platform: Platform | str = Platform.DESKTOP,
        machine_name: str | None = None,
    ) -> None:
        """Initialize the sync engine.

        Args:
            store: Durable local storage for replicas and engine state.
            remote: Client for the authoritative remote snapshot.
            config: Sync options. Loaded from the store (or defaults) if None;
                used as given otherwise (update_config() persists changes).
            clock: Time source (defaults to UTC now).
            id_factory: Source of operation and conflict ids.
            rng: Random source for the device id.
            event_bus: Channel lifecycle events are published on.
            platform: Platform of this installation.
            machine_name: Host name shown in this device's roster entry.
        """
        self._store = store
        self._remote = remote
        self._clock = clock or (lambda: datetime.now(UTC))
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._events = event_bus or EventBus(self._clock)

        self._registry = DeviceRegistry(
            store, platform=platform, clock=self._clock, rng=rng, machine_name=machine_name
        )
        self._detector = ConflictDetector(clock=self._clock, id_factory=self._id_factory)
        self._resolver = ConflictResolver()
        self._merger = Merger()
        self._operations = OperationTracker(clock=self._clock, id_factory=self._id_factory)

        self._config = config if config is not None else load_sync_config(store)

        self._status = self._load_status()
        self._current_user_id: str | None = None
        self._pending: dict[str, _PendingResolution] = {}
        self._follow_up: _FollowUp | None = None
        self._background: set[asyncio.Task[Any]] = set()

    # === Accessors ===

    @property
    def status(self) -> SyncStatus:
        """Current sync status (read reference; mutate through the engine)."""
        return self._status

    @property
    def config(self) -> SyncConfig:
        """Current sync options."""
        return self._config

    @property
    def events(self) -> EventBus:
        """Channel lifecycle events are published on."""
        return self._events

    @property
    def operations(self) -> OperationTracker:
        """Log of every sync operation of this process."""
        return self._operations

    @property
    def current_user_id(self) -> str | None:
        """User of the last registration or sync."""
        return self._current_user_id

    def current_device_id(self) -> str:
        """This installation's device id."""
        return self._registry.current_device_id()

    # === Persistence ===

    def _load_status(self) -> SyncStatus:
        """Restore the persisted status, resetting it if corrupt.

        The in-flight flag is always cleared: a restart starts clean.
        """
        status: SyncStatus | None = None
        stored = self._store.get_value(STATUS_KEY)
        if isinstance(stored, dict):
            try:
                status = SyncStatus.from_dict(stored)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Persisted sync status is corrupt, resetting to defaults: {e}")
        elif stored is not None:
            logger.warning("Persisted sync status is corrupt, resetting to defaults")

        if status is None:
            status = SyncStatus()
        status.sync_in_progress = False
        status.auto_sync_enabled = self._config.auto_sync
        status.sync_frequency_minutes = self._config.sync_frequency_minutes
        return status

    def _persist_status(self) -> None:
        self._store.set_value(STATUS_KEY, self._status.to_dict())

    def _update_status(self, **changes: Any) -> None:
        """Apply changes to the status, persist it and announce it."""
        for name, value in changes.items():
            setattr(self._status, name, value)
        self._persist_status()
        self._events.publish(SyncEventType.STATUS_CHANGED, status=self._status.to_dict())

    # === Configuration and connectivity ===

    def update_config(self, **changes: Any) -> SyncConfig:
        """Change sync options (camelCase or snake_case names).

        Returns:
            The new configuration.

        Raises:
            ConfigError: If a value is invalid.
        """
        self._config = self._config.merged(**changes)
        save_sync_config(self._store, self._config)
        self._update_status(
            auto_sync_enabled=self._config.auto_sync,
            sync_frequency_minutes=self._config.sync_frequency_minutes,
        )
        return self._config

    def set_online(self, online: bool) -> bool:
        """Record a connectivity transition.

        Returns:
            True when this is an offline -> online transition that should
            trigger an immediate sync (auto sync on, a user known).
        """
        was_online = self._status.is_online
        if was_online == online:
            return False
        self._update_status(is_online=online)
        if online:
            logger.info("Connectivity restored")
            return self._config.auto_sync and self._current_user_id is not None
        logger.info("Connectivity lost")
        return False

    async def handle_connectivity(self, online: bool) -> bool | None:
        """Record a connectivity transition and sync on reconnect.

        Returns:
            The reconnect sync's result, or None if no sync was attempted.
        """
        if self.set_online(online) and self._current_user_id is not None:
            return await self.sync(self._current_user_id)
        return None

    def clear_conflicts(self) -> None:
        """Forget published conflicts (parked operations keep theirs)."""
        self._update_status(conflicts=[])

    # === Devices ===

    def register_device(self, user_id: str) -> DeviceInfo:
        """Upsert this device into the roster for a user."""
        self._current_user_id = user_id
        capabilities = self._registry.capabilities(
            self._status.is_online,
            compression=self._config.compression,
            encryption=self._config.encryption,
        )
        info = self._registry.register_device(user_id, self._status, capabilities)
        self._update_status()
        self._events.publish(SyncEventType.DEVICE_REGISTERED, user_id=user_id, device=info.to_dict())
        return info

    async def initialize(self, user_id: str) -> bool:
        """Register this device and run a first sync."""
        self.register_device(user_id)
        return await self.sync(user_id)

    # === Sync ===

    async def force_sync(self, user_id: str) -> bool:
        """Manual sync that queues behind an in-flight one."""
        return await self.sync(user_id, force=True)

    async def sync(self, user_id: str, force: bool = False) -> bool:
        """Synchronize a user's replica with the remote.

        Args:
            user_id: Whose data to synchronize.
            force: If a sync is already in flight, queue one follow-up sync
                to run right after it and wait for that instead of returning.

        Returns:
            True if the sync completed. False if another sync was in flight
            (without force), if offline, if the sync failed, or if it is
            awaiting conflict decisions.
        """
        if self._status.sync_in_progress:
            if not force:
                logger.debug(f"Sync for {user_id} skipped: another sync is in flight")
                return False
            return await self._queue_follow_up(user_id)

        result = await self._perform_sync(user_id)
        self._start_follow_up()
        return result

    async def resolve_conflicts(
        self,
        operation_id: str,
        decisions: dict[str, Resolution | str] | None = None,
    ) -> bool:
        """Resume an operation parked on conflicts.

        Args:
            operation_id: Id of the operation awaiting resolution.
            decisions: Resolution per field path ("local", "remote" or
                "merge"). Paths without a decision keep the local value.

        Decisions are applied to the replica as currently stored, so local
        changes saved while the operation was parked are kept.

        Returns:
            True if the resumed sync completed.
        """
        pending = self._pending.get(operation_id)
        operation = self._operations.get(operation_id)
        if pending is None or operation is None:
            logger.warning(f"No operation {operation_id} is awaiting resolution")
            return False
        if self._status.sync_in_progress:
            logger.warning(f"Cannot resolve {operation_id} while another sync is in flight")
            return False
        if not self._status.is_online:
            logger.warning(f"Cannot resolve {operation_id} while offline; it stays parked")
            return False
        try:
            choices = {path: Resolution(value) for path, value in (decisions or {}).items()}
        except ValueError as e:
            logger.warning(f"Invalid conflict decision for {operation_id}: {e}")
            return False

        del self._pending[operation_id]
        self._update_status(sync_in_progress=True)
        try:
            self._operations.start(operation)
            self._events.publish(
                SyncEventType.SYNC_STARTED, user_id=pending.user_id, operation=operation.to_dict()
            )
            # The replica may have changed while parked; decide against its current values
            local = self._reload_parked_local(pending)
            conflicts = self._detector.detect(local, pending.remote)
            if conflicts:
                resolved = self._resolver.resolve_each(local, conflicts, choices)
            else:
                resolved = self._merger.merge(local, pending.remote)
            operation.conflicts = []
            for conflict in conflicts:
                decision = choices.get(conflict.field_path, Resolution.LOCAL)
                if decision == Resolution.MANUAL:
                    decision = Resolution.LOCAL
                operation.conflicts.append(dataclasses.replace(conflict, resolution=decision))
            self._status.conflicts = list(operation.conflicts)
            await self._finish(operation, pending.user_id, local, resolved)
            return True
        except Exception as e:
            self._fail(operation, pending.user_id, e)
            return False
        finally:
            if self._status.sync_in_progress:
                self._update_status(sync_in_progress=False)
            self._start_follow_up()

    async def _perform_sync(self, user_id: str) -> bool:
        """Run one sync; never raises."""
        self._current_user_id = user_id
        operation = self._operations.create(user_id, OperationKind.UPLOAD)

        if not self._status.is_online:
            error = ConnectivityError()
            logger.warning(f"Sync for {user_id} aborted: {error}")
            self._fail(operation, user_id, error)
            return False

        self._update_status(sync_in_progress=True)
        try:
            self._supersede_parked(user_id)
            self._operations.start(operation)
            logger.info(f"Sync started for {user_id} (operation {operation.id})")
            self._events.publish(
                SyncEventType.SYNC_STARTED, user_id=user_id, operation=operation.to_dict()
            )

            # 1. Local replica
            local, fresh = self._load_local(user_id)
            operation.data_size = local.size_bytes()

            # 2. Remote snapshot
            remote = await self._fetch_remote(user_id)
            if remote is not None:
                self._registry.observe_remote(self._status, remote)

            # 3-4. Detect, then resolve or merge
            if fresh and remote is not None:
                logger.info(f"No local replica for {user_id}, adopting the remote snapshot")
                resolved = remote.copy()
            else:
                conflicts = self._detector.detect(local, remote)
                if conflicts and remote is not None:
                    logger.info(f"Detected {len(conflicts)} conflict(s) for {user_id}")
                    self._update_status(conflicts=conflicts)
                    self._events.publish(
                        SyncEventType.CONFLICT_DETECTED,
                        user_id=user_id,
                        operation_id=operation.id,
                        conflicts=[c.to_dict() for c in conflicts],
                    )
                    policy = self._config.conflict_resolution
                    if policy == ResolutionPolicy.PROMPT and self._can_defer_prompts():
                        self._park(operation, user_id, local, remote, conflicts)
                        return False
                    resolved = self._resolver.resolve(local, remote, conflicts, policy)
                    operation.conflicts = annotate(conflicts, policy)
                    self._status.conflicts = list(operation.conflicts)
                else:
                    resolved = self._merger.merge(local, remote)

            # 5-7. Upload, download, persist
            await self._finish(operation, user_id, local, resolved)
            return True
        except Exception as e:
            self._fail(operation, user_id, e)
            return False
        finally:
            if self._status.sync_in_progress:
                self._update_status(sync_in_progress=False)

    def _load_local(self, user_id: str) -> tuple[Snapshot, bool]:
        """Load the replica.

        Returns:
            (snapshot, fresh) where fresh means a default snapshot was built
            because nothing usable was stored.
        """
        try:
            local = self._store.load(user_id)
        except CorruptSnapshotError as e:
            logger.warning(f"{e}; starting from a fresh default snapshot")
            local = None
        if local is None:
            snapshot = default_snapshot(
                user_id,
                self._registry.current_device_id(),
                self._registry.platform,
                self._clock(),
            )
            return snapshot, True
        return local, False

    async def _fetch_remote(self, user_id: str) -> Snapshot | None:
        """Fetch the remote snapshot; unreachable or malformed means absent."""
        try:
            remote = await retry_with_backoff(
                lambda: self._remote.fetch_snapshot(user_id),
                max_retries=self._config.max_retries,
                initial_backoff=self._config.retry_backoff_seconds,
                description=f"fetch snapshot for {user_id}",
            )
        except (RemoteError, *NETWORK_EXCEPTIONS) as e:
            logger.warning(f"Remote snapshot for {user_id} unavailable, treating as absent: {e}")
            return None
        if remote is not None and remote.user_id != user_id:
            logger.warning(
                f"Remote snapshot belongs to {remote.user_id}, not {user_id}; treating as absent"
            )
            return None
        return remote

    def _can_defer_prompts(self) -> bool:
        """Parking needs deferral enabled and a handler for awaiting-resolution."""
        return self._config.defer_prompts and self._events.is_observed(
            SyncEventType.AWAITING_RESOLUTION
        )

    def _reload_parked_local(self, pending: _PendingResolution) -> Snapshot:
        """Current replica for a parked operation, or the parked copy if unreadable."""
        try:
            local = self._store.load(pending.user_id)
        except CorruptSnapshotError as e:
            logger.warning(f"{e}; resuming from the replica seen when parking")
            return pending.local
        if local is None:
            return pending.local
        if local != pending.local:
            logger.info(f"Local replica for {pending.user_id} changed while awaiting resolution")
        return local

    def _park(
        self,
        operation: SyncOperation,
        user_id: str,
        local: Snapshot,
        remote: Snapshot,
        conflicts: list[Conflict],
    ) -> None:
        """Hold the operation until resolve_conflicts() is called."""
        self._operations.park(operation, conflicts)
        self._pending[operation.id] = _PendingResolution(user_id, local, remote, list(conflicts))
        self._update_status(sync_in_progress=False)
        logger.info(
            f"Operation {operation.id} awaiting resolution of {len(conflicts)} conflict(s)"
        )
        self._events.publish(
            SyncEventType.AWAITING_RESOLUTION,
            user_id=user_id,
            operation=operation.to_dict(),
            conflicts=[c.to_dict() for c in conflicts],
        )

    def _supersede_parked(self, user_id: str) -> None:
        """Fail operations still parked for this user; a new sync replaces them."""
        for operation_id, pending in list(self._pending.items()):
            if pending.user_id != user_id:
                continue
            del self._pending[operation_id]
            operation = self._operations.get(operation_id)
            if operation is not None and not is_terminal(operation):
                self._operations.fail(operation, "superseded by a newer sync")
                logger.info(f"Operation {operation_id} superseded by a newer sync")

    def _report_progress(self, operation: SyncOperation, percent: float, transferred: int) -> None:
        if advance(operation, percent, transferred):
            self._events.publish(
                SyncEventType.SYNC_PROGRESS,
                user_id=operation.user_id,
                operation_id=operation.id,
                percent=operation.progress,
                transferred=operation.transferred_size,
                total=operation.data_size,
            )

    async def _finish(
        self,
        operation: SyncOperation,
        user_id: str,
        local: Snapshot,
        resolved: Snapshot,
    ) -> None:
        """Upload the resolved snapshot, download the authoritative copy, persist it."""
        now = self._clock()
        outgoing = resolved.copy()
        outgoing.user_id = user_id
        outgoing.device_id = self._registry.current_device_id()
        outgoing.platform = self._registry.platform
        outgoing = outgoing.with_sync_time(now)
        operation.data_size = outgoing.size_bytes()

        # 5. Upload
        self._events.publish(
            SyncEventType.SYNC_PROGRESS,
            user_id=user_id,
            operation_id=operation.id,
            percent=operation.progress,
            transferred=0,
            total=operation.data_size,
        )

        def on_progress(sent: int, total: int) -> None:
            percent = (sent * 100 / total) if total else 100
            self._report_progress(operation, percent, sent)

        stored = await retry_with_backoff(
            lambda: self._remote.put_snapshot(user_id, outgoing, on_progress),
            max_retries=self._config.max_retries,
            initial_backoff=self._config.retry_backoff_seconds,
            description=f"upload snapshot for {user_id}",
        )
        self._report_progress(operation, 100, operation.data_size)

        # 6. Download the authoritative copy
        latest = await retry_with_backoff(
            lambda: self._remote.fetch_snapshot(user_id),
            max_retries=self._config.max_retries,
            initial_backoff=self._config.retry_backoff_seconds,
            description=f"download snapshot for {user_id}",
        )
        if latest is None:
            logger.warning(f"Remote has no snapshot for {user_id} after upload; keeping the uploaded copy")
            latest = stored if stored is not None else outgoing

        replica = latest.with_sync_time(now)
        if local.last_sync_at is not None:
            replica = replica.with_sync_time(local.last_sync_at)
        self._store.save(user_id, replica)

        # 7. Record the sync
        self._operations.complete(operation)
        self._update_status(
            last_sync=now,
            conflicts=[],
            sync_in_progress=False,
            last_error=None,
        )
        logger.info(f"Sync completed for {user_id} (operation {operation.id})")
        self._events.publish(
            SyncEventType.SYNC_COMPLETED, user_id=user_id, operation=operation.to_dict()
        )

    def _fail(self, operation: SyncOperation, user_id: str, error: BaseException) -> None:
        """Mark the operation failed, release the flag and announce it."""
        message = str(error) or type(error).__name__
        if isinstance(error, ConnectivityError):
            logger.warning(f"Sync failed for {user_id}: {message}")
        else:
            logger.error(f"Sync failed for {user_id}: {message}", exc_info=error)
        if not is_terminal(operation):
            self._operations.fail(operation, message)
        self._update_status(sync_in_progress=False, last_error=message)
        self._events.publish(
            SyncEventType.SYNC_FAILED,
            user_id=user_id,
            operation=operation.to_dict(),
            error=message,
        )

    # === Forced follow-ups ===

    async def _queue_follow_up(self, user_id: str) -> bool:
        """Wait for a follow-up sync queued behind the in-flight one.

        Concurrent forced calls share a single follow-up.
        """
        if self._follow_up is None:
            future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
            self._follow_up = _FollowUp(user_id=user_id, future=future)
            logger.info(f"Sync in flight; queued a forced follow-up sync for {user_id}")
        elif self._follow_up.user_id != user_id:
            logger.warning(
                f"Forced sync for {user_id} joins the follow-up already queued for "
                f"{self._follow_up.user_id}"
            )
        return await self._follow_up.future

    def _start_follow_up(self) -> None:
        """Hand the in-flight slot straight to a queued follow-up, if any."""
        follow_up = self._follow_up
        if follow_up is None:
            return
        self._follow_up = None
        # Claim the slot now so no unforced sync slips in before the task runs
        self._status.sync_in_progress = True
        task = asyncio.get_running_loop().create_task(self._run_follow_up(follow_up))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_follow_up(self, follow_up: _FollowUp) -> None:
        try:
            result = await self._perform_sync(follow_up.user_id)
        except asyncio.CancelledError:
            follow_up.future.cancel()
            raise
        if not follow_up.future.done():
            follow_up.future.set_result(result)
        self._start_follow_up()

    async def aclose(self) -> None:
        """Wait for queued follow-up syncs to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def awaiting_resolution(self) -> list[SyncOperation]:
        """Operations parked on undecided conflicts."""
        return [
            op for op in self._operations.awaiting_resolution()
            if op.id in self._pending
        ]

    def operation_status(self, operation_id: str) -> OperationStatus | None:
        """Status of a tracked operation."""
        operation = self._operations.get(operation_id)
        return operation.status if operation is not None else None
