"""Save-state synchronization.

Architecture:
    SyncEngine → (ConflictDetector, ConflictResolver, Merger) → RemoteClient

Components:
- **SyncEngine**: Runs the load / fetch / detect / resolve / upload /
  download / persist steps, one sync at a time
- **domain/**: Pure conflict detection, resolution, merging and the
  SyncOperation state machine
- **DeviceRegistry**: Stable device id and the device roster
- **EventBus**: Typed lifecycle events for UIs and tooling
- **AutoSyncScheduler**: Periodic and reconnect-triggered syncs
"""

from savesync.client.sync.devices import DeviceRegistry, get_machine_name
from savesync.client.sync.engine import SyncEngine
from savesync.client.sync.events import EventBus, SyncEvent, SyncEventType
from savesync.client.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
    NETWORK_EXCEPTIONS,
    retry_with_backoff,
)
from savesync.client.sync.scheduler import AutoSyncScheduler
from savesync.client.sync.types import (
    Conflict,
    ConnectivityError,
    CorruptSnapshotError,
    DeviceInfo,
    OperationKind,
    OperationStatus,
    ProgressCallback,
    RemoteClient,
    RemoteError,
    Resolution,
    SnapshotStore,
    SyncError,
    SyncOperation,
    SyncStatus,
)

__all__ = [
    # Retry functions and constants
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_BACKOFF",
    "DEFAULT_MAX_RETRIES",
    "NETWORK_EXCEPTIONS",
    "retry_with_backoff",
    # Types and dataclasses
    "Conflict",
    "DeviceInfo",
    "OperationKind",
    "OperationStatus",
    "ProgressCallback",
    "Resolution",
    "SyncOperation",
    "SyncStatus",
    # Errors
    "ConnectivityError",
    "CorruptSnapshotError",
    "RemoteError",
    "SyncError",
    # Protocols
    "RemoteClient",
    "SnapshotStore",
    # Classes
    "AutoSyncScheduler",
    "DeviceRegistry",
    "EventBus",
    "SyncEngine",
    "SyncEvent",
    "SyncEventType",
    "get_machine_name",
]
