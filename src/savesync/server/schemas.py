"""Pydantic schemas for API request/response models."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from savesync.core.snapshot import Snapshot
from savesync.server.models import SnapshotRecord

# === Health schemas ===


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str


# === Snapshot schemas ===


class SnapshotDocument(BaseModel):
    """A snapshot on the wire (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    device_id: str = Field(alias="deviceId")
    platform: str = ""
    schema_version: str = Field(default="1.0.0", alias="schemaVersion")
    last_sync_at: str | None = Field(default=None, alias="lastSyncAt")
    payload: dict[str, Any]

    def to_snapshot(self) -> Snapshot:
        """Convert to the shared Snapshot model.

        Raises:
            ValueError: If a field does not parse (e.g. lastSyncAt).
        """
        return Snapshot.from_dict(self.model_dump(by_alias=True))


class RevisionResponse(BaseModel):
    """Server-side revision of a user's snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    revision: int
    updated_at: str = Field(alias="updatedAt")
    size: int


# === Conversion helpers ===


def record_to_document(record: SnapshotRecord) -> SnapshotDocument:
    """Convert a stored record to the wire document."""
    return SnapshotDocument.model_validate(json.loads(record.data))


def record_to_revision(record: SnapshotRecord) -> RevisionResponse:
    """Convert a stored record to its revision summary."""
    return RevisionResponse(
        user_id=record.user_id,
        revision=record.revision,
        updated_at=record.updated_at.isoformat(),
        size=record.size,
    )
