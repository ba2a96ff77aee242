"""Conflict detection between two snapshots.

Detection is a structural diff of the two payload trees:
- Mappings are walked recursively
- Scalars and arrays are compared by value at their path
- Keys present on only one side are not conflicts (the merger reconciles them)

Any divergence is reported, whatever the timestamps say. There is no
common-ancestor check, so a replica that simply has not synced for a while
reports the same conflicts as a genuine race.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from savesync.client.sync.domain.paths import join_path
from savesync.client.sync.types import Clock, Conflict, IdFactory
from savesync.core.snapshot import Snapshot


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


def values_equal(a: Any, b: Any) -> bool:
    """Value equality that keeps booleans and numbers apart (True != 1)."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    return bool(a == b)


class ConflictDetector:
    """Diffs two snapshots into a list of field-level conflicts."""

    def __init__(
        self,
        clock: Clock | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        """Initialize the detector.

        Args:
            clock: Source of the conflicts' last_modified timestamp.
            id_factory: Source of conflict ids.
        """
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_id

    def detect(self, local: Snapshot, remote: Snapshot | None) -> list[Conflict]:
        """Compare local and remote payloads.

        Args:
            local: This replica's snapshot.
            remote: The remote snapshot, or None if absent.

        Returns:
            One Conflict per diverging path, in local key order.
        """
        if remote is None:
            return []
        detected_at = self._clock()
        conflicts: list[Conflict] = []
        self._compare(local.payload, remote.payload, "", detected_at, conflicts)
        return conflicts

    def _compare(
        self,
        local: Mapping[str, Any],
        remote: Mapping[str, Any],
        prefix: str,
        detected_at: datetime,
        out: list[Conflict],
    ) -> None:
        for key, local_value in local.items():
            if key not in remote:
                continue
            remote_value = remote[key]
            path = join_path(prefix, str(key))

            if isinstance(local_value, Mapping) and isinstance(remote_value, Mapping):
                self._compare(local_value, remote_value, path, detected_at, out)
            elif not values_equal(local_value, remote_value):
                out.append(
                    Conflict(
                        id=self._id_factory(),
                        field_path=path,
                        local_value=local_value,
                        remote_value=remote_value,
                        last_modified=detected_at,
                    )
                )
