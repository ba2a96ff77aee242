"""Conflict resolution policies.

Policies apply to every conflict of one operation:
- local: keep the local value
- remote: keep the remote value
- prompt: no interactive resolver is wired in here, falls back to local
  (the engine can instead park the operation, see SyncEngine)
- merge: type-aware combination (see merge_values)

The resolved snapshot is a copy of local with the chosen values written
back at each conflicting path. Inputs are never mutated.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from savesync.client.sync.domain.conflicts import values_equal
from savesync.client.sync.domain.paths import set_path
from savesync.client.sync.types import Conflict, Resolution
from savesync.core.snapshot import Snapshot
from savesync.core.types import ResolutionPolicy

logger = logging.getLogger(__name__)

# Resolution recorded on a conflict for each policy
POLICY_RESOLUTION: dict[ResolutionPolicy, Resolution] = {
    ResolutionPolicy.LOCAL: Resolution.LOCAL,
    ResolutionPolicy.REMOTE: Resolution.REMOTE,
    ResolutionPolicy.PROMPT: Resolution.LOCAL,
    ResolutionPolicy.MERGE: Resolution.MERGE,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def union_values(local: list[Any], remote: list[Any]) -> list[Any]:
    """Order-preserving union, duplicates removed by value (local first)."""
    result: list[Any] = []
    for item in [*local, *remote]:
        if not any(values_equal(item, seen) for seen in result):
            result.append(copy.deepcopy(item))
    return result


def merge_values(local: Any, remote: Any) -> Any:
    """Combine two conflicting values by type.

    - numbers: max (counters and scores never regress)
    - lists: set union
    - mappings: shallow merge, local keys win
    - anything else (or mismatched types): local
    """
    if _is_number(local) and _is_number(remote):
        return max(local, remote)
    if isinstance(local, list) and isinstance(remote, list):
        return union_values(local, remote)
    if isinstance(local, Mapping) and isinstance(remote, Mapping):
        return copy.deepcopy({**remote, **local})
    return copy.deepcopy(local)


def choose_value(conflict: Conflict, resolution: Resolution) -> Any:
    """Value kept for a conflict under a per-conflict resolution."""
    if resolution == Resolution.REMOTE:
        return copy.deepcopy(conflict.remote_value)
    if resolution == Resolution.MERGE:
        return merge_values(conflict.local_value, conflict.remote_value)
    return copy.deepcopy(conflict.local_value)


def annotate(conflicts: Iterable[Conflict], policy: ResolutionPolicy) -> list[Conflict]:
    """Copies of the conflicts with the policy's resolution recorded."""
    resolution = POLICY_RESOLUTION[ResolutionPolicy(policy)]
    return [dataclasses.replace(c, resolution=resolution) for c in conflicts]


class ConflictResolver:
    """Applies a resolution policy to a conflict list."""

    def resolve(
        self,
        local: Snapshot,
        remote: Snapshot,
        conflicts: Iterable[Conflict],
        policy: ResolutionPolicy | str,
    ) -> Snapshot:
        """Produce the resolved snapshot.

        Args:
            local: This replica's snapshot (the base of the result).
            remote: The remote snapshot.
            conflicts: Conflicts detected between the two.
            policy: Policy applied to every conflict.

        Returns:
            A copy of local with each conflicting path resolved.
        """
        policy = ResolutionPolicy(policy)
        if policy == ResolutionPolicy.PROMPT:
            logger.warning(
                "No interactive resolver for 'prompt' policy, keeping local values"
            )
        resolution = POLICY_RESOLUTION[policy]
        return self.apply(local, {c.field_path: (c, resolution) for c in conflicts})

    def resolve_each(
        self,
        local: Snapshot,
        conflicts: Iterable[Conflict],
        decisions: Mapping[str, Resolution | str],
    ) -> Snapshot:
        """Resolve with a decision per field path (undecided paths keep local)."""
        choices: dict[str, tuple[Conflict, Resolution]] = {}
        for conflict in conflicts:
            decision = Resolution(decisions.get(conflict.field_path, Resolution.LOCAL))
            if decision == Resolution.MANUAL:
                decision = Resolution.LOCAL
            choices[conflict.field_path] = (conflict, decision)
        return self.apply(local, choices)

    def apply(
        self,
        local: Snapshot,
        choices: Mapping[str, tuple[Conflict, Resolution]],
    ) -> Snapshot:
        """Write the chosen value at each path into a copy of local."""
        resolved = local.copy()
        for path, (conflict, resolution) in choices.items():
            set_path(resolved.payload, path, choose_value(conflict, resolution))
        return resolved
