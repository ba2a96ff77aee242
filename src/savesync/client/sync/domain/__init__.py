"""Domain modules for sync business rules.

This package centralizes the pure logic of the sync system:
- paths: dotted-path access into payload trees
- conflicts: structural diff producing field-level conflicts
- resolution: resolution policies and type-aware value merging
- merge: no-conflict merging of two snapshots
- operations: SyncOperation state machine and tracker

Architecture:
    domain/ contains pure, synchronous, in-memory logic without I/O.
    Orchestration (store, remote, events) stays in engine.py.
"""

from savesync.client.sync.domain.conflicts import ConflictDetector, values_equal
from savesync.client.sync.domain.merge import (
    PROGRESS_COUNTERS,
    Merger,
    merge_achievements,
)
from savesync.client.sync.domain.operations import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    OperationTracker,
    advance,
    is_terminal,
    transition,
)
from savesync.client.sync.domain.paths import (
    escape_key,
    get_path,
    iter_leaves,
    join_path,
    set_path,
    split_path,
)
from savesync.client.sync.domain.resolution import (
    ConflictResolver,
    annotate,
    merge_values,
    union_values,
)

__all__ = [
    # paths
    "escape_key",
    "get_path",
    "iter_leaves",
    "join_path",
    "set_path",
    "split_path",
    # conflicts
    "ConflictDetector",
    "values_equal",
    # resolution
    "ConflictResolver",
    "annotate",
    "merge_values",
    "union_values",
    # merge
    "Merger",
    "PROGRESS_COUNTERS",
    "merge_achievements",
    # operations
    "VALID_TRANSITIONS",
    "InvalidTransitionError",
    "OperationTracker",
    "advance",
    "is_terminal",
    "transition",
]
