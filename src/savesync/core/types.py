"""Shared types for savesync.

This module defines enums used by the client, the CLI and the reference server.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """Headline sync state of a replica.

    Derived from SyncStatus for display (CLI, tray-style UIs).
    """

    IDLE = "idle"
    SYNCING = "syncing"
    CONFLICT = "conflict"
    ERROR = "error"
    OFFLINE = "offline"


class ResolutionPolicy(str, Enum):
    """Strategy for turning a conflict list into a resolved snapshot."""

    LOCAL = "local"
    REMOTE = "remote"
    PROMPT = "prompt"
    MERGE = "merge"


class Platform(str, Enum):
    """Kind of device a replica runs on."""

    WEB = "web"
    MOBILE = "mobile"
    DESKTOP = "desktop"
