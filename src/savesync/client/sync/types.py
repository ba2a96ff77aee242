"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, ConnectivityError, RemoteError, CorruptSnapshotError: Exception classes
- Resolution, Conflict: Field-level conflict records
- OperationKind, OperationStatus, SyncOperation: Tracked sync attempts
- DeviceInfo: Roster entry for a device
- SyncStatus: Per-user sync status owned by the engine
- SnapshotStore, RemoteClient: Collaborator protocols
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from savesync.core.snapshot import Snapshot, format_datetime, parse_datetime
from savesync.core.types import SyncState


class SyncError(Exception):
    """Base exception for sync errors."""


class ConnectivityError(SyncError):
    """No network connectivity."""

    def __init__(self, message: str = "no connectivity") -> None:
        super().__init__(message)


class RemoteError(SyncError):
    """The remote store answered with a non-success response."""


class CorruptSnapshotError(SyncError):
    """Persisted local data could not be decoded."""


class Resolution(str, Enum):
    """How a conflict was (or will be) resolved."""

    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"
    MANUAL = "manual"  # Not decided yet


def conflict_kind(field_path: str) -> str:
    """Classify a conflict by the payload section it lives in."""
    section = field_path.split(".", 1)[0]
    if section == "settings":
        return "settings"
    if section in ("progress", "achievements"):
        return "progress"
    return "data"


@dataclass
class Conflict:
    """A single field path where local and remote disagree.

    Attributes:
        id: Unique conflict identifier.
        field_path: Dotted path into the payload (one leaf or array field),
            with "." and "\\" inside keys backslash-escaped.
        local_value: Value on this replica.
        remote_value: Value on the remote.
        last_modified: When the divergence was detected.
        resolution: Applied resolution (MANUAL while undecided).
        kind: "settings", "progress" or "data".
    """

    id: str
    field_path: str
    local_value: Any
    remote_value: Any
    last_modified: datetime
    resolution: Resolution = Resolution.MANUAL
    kind: str = ""

    def __post_init__(self) -> None:
        if not self.kind:
            self.kind = conflict_kind(self.field_path)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "fieldPath": self.field_path,
            "localValue": self.local_value,
            "remoteValue": self.remote_value,
            "lastModified": format_datetime(self.last_modified),
            "resolution": self.resolution.value,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conflict:
        """Create from a dictionary produced by to_dict()."""
        return cls(
            id=data["id"],
            field_path=data["fieldPath"],
            local_value=data.get("localValue"),
            remote_value=data.get("remoteValue"),
            last_modified=parse_datetime(data["lastModified"]) or datetime.min,
            resolution=Resolution(data.get("resolution", Resolution.MANUAL.value)),
            kind=data.get("kind", ""),
        )


class OperationKind(str, Enum):
    """Direction of a sync operation."""

    UPLOAD = "upload"
    DOWNLOAD = "download"


class OperationStatus(str, Enum):
    """Lifecycle status of a sync operation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    AWAITING_RESOLUTION = "awaiting_resolution"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncOperation:
    """A tracked sync attempt.

    Mutated in place as it advances; see domain.operations for the
    allowed transitions.
    """

    id: str
    kind: OperationKind
    user_id: str
    started_at: datetime
    status: OperationStatus = OperationStatus.PENDING
    progress: int = 0
    ended_at: datetime | None = None
    data_size: int = 0
    transferred_size: int = 0
    error: str | None = None
    conflicts: list[Conflict] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary (event payloads, CLI output)."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "userId": self.user_id,
            "status": self.status.value,
            "progress": self.progress,
            "startedAt": format_datetime(self.started_at),
            "endedAt": format_datetime(self.ended_at),
            "dataSize": self.data_size,
            "transferredSize": self.transferred_size,
            "error": self.error,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass
class DeviceInfo:
    """A device seen for the current user."""

    id: str
    name: str
    platform: str
    last_seen: datetime
    is_current: bool = False
    capabilities: list[str] = field(default_factory=list)
    version: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "platform": self.platform,
            "lastSeen": format_datetime(self.last_seen),
            "isCurrent": self.is_current,
            "capabilities": list(self.capabilities),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceInfo:
        """Create from a dictionary produced by to_dict()."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            platform=data.get("platform", ""),
            last_seen=parse_datetime(data["lastSeen"]) or datetime.min,
            is_current=bool(data.get("isCurrent", False)),
            capabilities=list(data.get("capabilities", [])),
            version=data.get("version", ""),
        )


@dataclass
class SyncStatus:
    """Per-user sync status.

    Owned by SyncEngine; every other component only reads it.
    """

    is_online: bool = True
    last_sync: datetime | None = None
    sync_in_progress: bool = False
    conflicts: list[Conflict] = field(default_factory=list)
    devices: list[DeviceInfo] = field(default_factory=list)
    auto_sync_enabled: bool = True
    sync_frequency_minutes: float = 5
    last_error: str | None = None

    @property
    def state(self) -> SyncState:
        """Headline state for display."""
        if not self.is_online:
            return SyncState.OFFLINE
        if self.sync_in_progress:
            return SyncState.SYNCING
        if self.conflicts:
            return SyncState.CONFLICT
        if self.last_error:
            return SyncState.ERROR
        return SyncState.IDLE

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "isOnline": self.is_online,
            "lastSync": format_datetime(self.last_sync),
            "syncInProgress": self.sync_in_progress,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "devices": [d.to_dict() for d in self.devices],
            "autoSyncEnabled": self.auto_sync_enabled,
            "syncFrequencyMinutes": self.sync_frequency_minutes,
            "lastError": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncStatus:
        """Create from a dictionary produced by to_dict().

        Raises:
            KeyError, TypeError, ValueError: If the data is malformed.
        """
        return cls(
            is_online=bool(data.get("isOnline", True)),
            last_sync=parse_datetime(data.get("lastSync")),
            sync_in_progress=bool(data.get("syncInProgress", False)),
            conflicts=[Conflict.from_dict(c) for c in data.get("conflicts", [])],
            devices=[DeviceInfo.from_dict(d) for d in data.get("devices", [])],
            auto_sync_enabled=bool(data.get("autoSyncEnabled", True)),
            sync_frequency_minutes=float(data.get("syncFrequencyMinutes", 5)),
            last_error=data.get("lastError"),
        )


# Type aliases for callbacks
ProgressCallback = Callable[[int, int], None]
Clock = Callable[[], datetime]
IdFactory = Callable[[], str]


class SnapshotStore(Protocol):
    """Durable per-device storage of the local replica."""

    def load(self, user_id: str) -> Snapshot | None:
        """Load the replica for a user (None if absent).

        Raises:
            CorruptSnapshotError: If stored data cannot be decoded.
        """
        ...

    def save(self, user_id: str, snapshot: Snapshot) -> None:
        """Persist the replica for a user."""
        ...

    def get_value(self, key: str) -> Any:
        """Get a persisted JSON value (None if absent)."""
        ...

    def set_value(self, key: str, value: Any) -> None:
        """Persist a JSON value."""
        ...


class RemoteClient(Protocol):
    """Access to the authoritative remote snapshot."""

    async def fetch_snapshot(self, user_id: str) -> Snapshot | None:
        """Fetch the remote snapshot (None if the user has none)."""
        ...

    async def put_snapshot(
        self,
        user_id: str,
        snapshot: Snapshot,
        progress: ProgressCallback | None = None,
    ) -> Snapshot:
        """Replace the remote snapshot, returning the stored copy."""
        ...

    async def health_check(self) -> bool:
        """Check whether the remote is reachable."""
        ...
