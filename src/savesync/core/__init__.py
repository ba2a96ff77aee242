"""Core module - Shared snapshot model, configuration and types."""

from savesync.core.config import ConfigError, ServerConfig, SyncConfig
from savesync.core.snapshot import (
    PAYLOAD_SECTIONS,
    SCHEMA_VERSION,
    Snapshot,
    default_payload,
    default_snapshot,
)
from savesync.core.types import Platform, ResolutionPolicy, SyncState

__all__ = [
    # Config
    "ConfigError",
    "ServerConfig",
    "SyncConfig",
    # Snapshot
    "PAYLOAD_SECTIONS",
    "SCHEMA_VERSION",
    "Snapshot",
    "default_payload",
    "default_snapshot",
    # Types
    "Platform",
    "ResolutionPolicy",
    "SyncState",
]
