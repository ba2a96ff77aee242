"""Merging of two snapshots on the no-conflict path.

When the detector found nothing to disagree about, the two sides can
still differ in which keys or entries they hold. Merge rules by section:
- userProfile: remote base, local keys on top, preferences from local
- achievements: union by id, higher progress wins
- progress: remote base, local keys on top, counters take the max
- any other section: remote base, local keys on top
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from savesync.core.snapshot import Snapshot

PROGRESS_COUNTERS = ("totalScore", "highScore", "gamesPlayed", "gamesWon")


def _overlay(remote: Any, local: Any) -> Any:
    """Remote as base, local keys overwrite. Non-mappings: local wins."""
    if isinstance(remote, Mapping) and isinstance(local, Mapping):
        return copy.deepcopy({**remote, **local})
    return copy.deepcopy(local)


def _progress_value(entry: Mapping[str, Any]) -> float:
    value = entry.get("progress", 0)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value
    return 0


def merge_achievements(local: list[Any], remote: list[Any]) -> list[Any]:
    """Union keyed by achievement id, keeping the entry with higher progress.

    Remote entries come first in their order, new local entries follow.
    Entries without an id are kept once each by value.
    """
    merged: list[Any] = [copy.deepcopy(a) for a in remote]
    index: dict[Any, int] = {}
    for position, entry in enumerate(merged):
        if isinstance(entry, Mapping) and "id" in entry:
            index.setdefault(entry["id"], position)

    for entry in local:
        if isinstance(entry, Mapping) and "id" in entry:
            position = index.get(entry["id"])
            if position is None:
                index[entry["id"]] = len(merged)
                merged.append(copy.deepcopy(entry))
            elif _progress_value(entry) > _progress_value(merged[position]):
                merged[position] = copy.deepcopy(entry)
        elif entry not in merged:
            merged.append(copy.deepcopy(entry))
    return merged


def merge_profile(local: Any, remote: Any) -> Any:
    """Remote profile with local fields on top; preferences are local's."""
    merged = _overlay(remote, local)
    if isinstance(merged, dict) and isinstance(local, Mapping) and "preferences" in local:
        merged["preferences"] = copy.deepcopy(local["preferences"])
    return merged


def merge_progress(local: Any, remote: Any) -> Any:
    """Remote progress with local fields on top; counters take the max."""
    merged = _overlay(remote, local)
    if not (isinstance(merged, dict) and isinstance(local, Mapping) and isinstance(remote, Mapping)):
        return merged
    for counter in PROGRESS_COUNTERS:
        values = [
            side[counter]
            for side in (local, remote)
            if isinstance(side.get(counter), int | float) and not isinstance(side.get(counter), bool)
        ]
        if values:
            merged[counter] = max(values)
    return merged


SECTION_MERGERS = {
    "userProfile": merge_profile,
    "progress": merge_progress,
}


def merge_section(name: str, local: Any, remote: Any) -> Any:
    """Merge one payload section present on both sides."""
    if name == "achievements" and isinstance(local, list) and isinstance(remote, list):
        return merge_achievements(local, remote)
    merger = SECTION_MERGERS.get(name, _overlay)
    return merger(local, remote)


class Merger:
    """Combines two snapshots without explicit conflicts."""

    def merge(self, local: Snapshot, remote: Snapshot | None) -> Snapshot:
        """Merge local with the remote snapshot.

        Args:
            local: This replica's snapshot.
            remote: The remote snapshot, or None if absent.

        Returns:
            The merged snapshot (a new object; inputs are not mutated).
        """
        if remote is None:
            return local.copy()

        payload: dict[str, Any] = {}
        for name in [*remote.payload, *(k for k in local.payload if k not in remote.payload)]:
            if name not in local.payload:
                payload[name] = copy.deepcopy(remote.payload[name])
            elif name not in remote.payload:
                payload[name] = copy.deepcopy(local.payload[name])
            else:
                payload[name] = merge_section(name, local.payload[name], remote.payload[name])

        merged = local.copy()
        merged.payload = payload
        if remote.last_sync_at is not None:
            merged = merged.with_sync_time(remote.last_sync_at)
        return merged
