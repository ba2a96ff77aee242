"""Sync operation state machine.

States:
    PENDING -> IN_PROGRESS -> COMPLETED
            |              -> FAILED
            |              -> AWAITING_RESOLUTION -> IN_PROGRESS
            |                                     -> FAILED
            -> FAILED

All state transitions are validated. Terminal operations are never
resurrected.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from savesync.client.sync.types import (
    Clock,
    Conflict,
    IdFactory,
    OperationKind,
    OperationStatus,
    SyncOperation,
)

# Valid state transitions
VALID_TRANSITIONS: dict[OperationStatus, set[OperationStatus]] = {
    OperationStatus.PENDING: {OperationStatus.IN_PROGRESS, OperationStatus.FAILED},
    OperationStatus.IN_PROGRESS: {
        OperationStatus.COMPLETED,
        OperationStatus.FAILED,
        OperationStatus.AWAITING_RESOLUTION,
    },
    OperationStatus.AWAITING_RESOLUTION: {
        OperationStatus.IN_PROGRESS,
        OperationStatus.FAILED,
    },
    OperationStatus.COMPLETED: set(),  # Terminal
    OperationStatus.FAILED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset({OperationStatus.COMPLETED, OperationStatus.FAILED})


class InvalidTransitionError(Exception):
    """Raised when attempting invalid state transition."""

    pass


def transition(operation: SyncOperation, new_status: OperationStatus) -> None:
    """Move an operation to a new status with validation."""
    if new_status not in VALID_TRANSITIONS[operation.status]:
        raise InvalidTransitionError(
            f"Cannot transition operation {operation.id} "
            f"from {operation.status.name} to {new_status.name}"
        )
    operation.status = new_status


def is_terminal(operation: SyncOperation) -> bool:
    """Check if an operation is in a terminal state."""
    return operation.status in TERMINAL_STATUSES


def advance(operation: SyncOperation, percent: float, transferred: int | None = None) -> bool:
    """Raise progress (clamped to 0-100, never decreasing).

    Returns:
        True if progress actually moved.
    """
    new_progress = int(max(0, min(100, percent)))
    if transferred is not None:
        operation.transferred_size = max(operation.transferred_size, transferred)
    if new_progress <= operation.progress:
        return False
    operation.progress = new_progress
    return True


class OperationTracker:
    """Append-only log of sync operations for the lifetime of the process."""

    def __init__(
        self,
        clock: Clock | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._operations: list[SyncOperation] = []

    def create(
        self,
        user_id: str,
        kind: OperationKind = OperationKind.UPLOAD,
        data_size: int = 0,
    ) -> SyncOperation:
        """Create and record a new pending operation."""
        operation = SyncOperation(
            id=self._id_factory(),
            kind=kind,
            user_id=user_id,
            started_at=self._clock(),
            data_size=data_size,
        )
        self._operations.append(operation)
        return operation

    def start(self, operation: SyncOperation) -> None:
        """Mark operation as running."""
        transition(operation, OperationStatus.IN_PROGRESS)

    def complete(self, operation: SyncOperation) -> None:
        """Mark operation as completed."""
        transition(operation, OperationStatus.COMPLETED)
        advance(operation, 100, operation.data_size)
        operation.ended_at = self._clock()

    def fail(self, operation: SyncOperation, error: str) -> None:
        """Mark operation as failed with the captured error."""
        transition(operation, OperationStatus.FAILED)
        operation.error = error
        operation.ended_at = self._clock()

    def park(self, operation: SyncOperation, conflicts: list[Conflict]) -> None:
        """Hold an operation until its conflicts are decided."""
        transition(operation, OperationStatus.AWAITING_RESOLUTION)
        operation.conflicts = list(conflicts)

    def get(self, operation_id: str) -> SyncOperation | None:
        """Get operation by id."""
        for operation in self._operations:
            if operation.id == operation_id:
                return operation
        return None

    def all(self) -> list[SyncOperation]:
        """All operations, oldest first."""
        return list(self._operations)

    def latest(self) -> SyncOperation | None:
        """Most recently created operation."""
        return self._operations[-1] if self._operations else None

    def awaiting_resolution(self) -> list[SyncOperation]:
        """Operations parked on undecided conflicts."""
        return [
            op for op in self._operations
            if op.status == OperationStatus.AWAITING_RESOLUTION
        ]

    def __len__(self) -> int:
        """Get total number of tracked operations."""
        return len(self._operations)

    def __contains__(self, operation_id: str) -> bool:
        """Check if an operation id is tracked."""
        return self.get(operation_id) is not None
