"""Snapshot model for synchronized game data.

This module provides:
- Snapshot: one replica's (or the remote's) full copy of a user's save data
- default_payload / default_snapshot: fresh-install data construction
- parse_datetime / format_datetime: wire helpers for timestamps

The payload is treated as an opaque tree of named sections. Sync logic
never assumes cross-references between sections.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

SCHEMA_VERSION = "1.0.0"

PAYLOAD_SECTIONS = (
    "gameState",
    "userProfile",
    "achievements",
    "settings",
    "progress",
    "inventory",
    "social",
)


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (accepts a trailing 'Z')."""
    if value is None or value == "":
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def format_datetime(value: datetime | None) -> str | None:
    """Format a timestamp for the wire."""
    return value.isoformat() if value is not None else None


@dataclass
class Snapshot:
    """The unit of synchronization.

    Attributes:
        user_id: Owner of the data.
        device_id: Device that produced this copy.
        platform: Platform of that device (web, mobile, desktop).
        schema_version: Payload schema version.
        last_sync_at: Last reconciliation this replica took part in.
            None for a replica that never synced.
        payload: Tree of named sections (gameState, userProfile, ...).
    """

    user_id: str
    device_id: str
    platform: str
    schema_version: str = SCHEMA_VERSION
    last_sync_at: datetime | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Snapshot:
        """Create from a wire dictionary.

        Raises:
            ValueError: If the document is not a well-formed snapshot.
        """
        if not isinstance(data, dict):
            raise ValueError("Snapshot document must be an object")
        try:
            user_id = data["userId"]
            device_id = data["deviceId"]
            payload = data["payload"]
        except KeyError as e:
            raise ValueError(f"Snapshot document is missing {e.args[0]!r}") from e
        if not isinstance(user_id, str) or not user_id:
            raise ValueError("Snapshot userId must be a non-empty string")
        if not isinstance(payload, dict):
            raise ValueError("Snapshot payload must be an object")
        try:
            last_sync_at = parse_datetime(data.get("lastSyncAt"))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid lastSyncAt: {data.get('lastSyncAt')!r}") from e
        return cls(
            user_id=user_id,
            device_id=str(device_id),
            platform=str(data.get("platform", "")),
            schema_version=str(data.get("schemaVersion", SCHEMA_VERSION)),
            last_sync_at=last_sync_at,
            payload=copy.deepcopy(payload),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe wire dictionary."""
        return {
            "userId": self.user_id,
            "deviceId": self.device_id,
            "platform": self.platform,
            "schemaVersion": self.schema_version,
            "lastSyncAt": format_datetime(self.last_sync_at),
            "payload": copy.deepcopy(self.payload),
        }

    def to_json(self) -> str:
        """Encode as compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_json(cls, text: str | bytes) -> Snapshot:
        """Decode from JSON text.

        Raises:
            ValueError: If the text is not a well-formed snapshot.
        """
        return cls.from_dict(json.loads(text))

    def copy(self) -> Snapshot:
        """Deep copy (payload included)."""
        return copy.deepcopy(self)

    def size_bytes(self) -> int:
        """Size of the encoded snapshot."""
        return len(self.to_json().encode("utf-8"))

    def with_sync_time(self, when: datetime) -> Snapshot:
        """Copy stamped with a sync time; last_sync_at never moves backwards."""
        result = self.copy()
        if result.last_sync_at is None or when > result.last_sync_at:
            result.last_sync_at = when
        return result

    def section(self, name: str) -> Any:
        """Get a payload section (None if missing)."""
        return self.payload.get(name)


def default_payload(user_id: str, now: datetime) -> dict[str, Any]:
    """Build the payload of a fresh installation."""
    stamp = now.isoformat()
    return {
        "gameState": {
            "currentLevel": 1,
            "currentScore": 0,
            "currentLocation": "spawn",
            "currentGameMode": "classic",
            "sessionData": {
                "sessionId": "",
                "startTime": stamp,
                "currentScore": 0,
                "currentLevel": 1,
                "checkpoints": [],
                "temporaryData": {},
            },
            "unlockedFeatures": [],
            "completedQuests": [],
            "activeQuests": [],
        },
        "userProfile": {
            "username": f"User_{user_id[-4:]}",
            "avatar": "",
            "level": 1,
            "experience": 0,
            "rank": 0,
            "totalPlayTime": 0,
            "joinDate": stamp,
            "lastActive": stamp,
            "preferences": {},
        },
        "achievements": [],
        "settings": {
            "audio": {
                "masterVolume": 1.0,
                "musicVolume": 0.8,
                "sfxVolume": 1.0,
                "voiceVolume": 1.0,
                "muteAll": False,
            },
            "graphics": {
                "quality": "medium",
                "resolution": "1920x1080",
                "fullscreen": False,
                "vsync": True,
                "antiAliasing": True,
                "shadows": True,
                "particles": True,
            },
            "controls": {
                "sensitivity": 1.0,
                "keyBindings": {},
                "mouseInverted": False,
                "autoRun": False,
                "voiceCommands": True,
            },
            "privacy": {
                "showOnlineStatus": True,
                "allowFriendRequests": True,
                "showActivity": True,
                "dataCollection": True,
            },
            "notifications": {
                "pushNotifications": True,
                "emailNotifications": False,
                "inGameNotifications": True,
                "achievementNotifications": True,
                "friendNotifications": True,
            },
        },
        "progress": {
            "totalScore": 0,
            "highScore": 0,
            "gamesPlayed": 0,
            "gamesWon": 0,
            "totalDistance": 0,
            "totalTime": 0,
            "completedLevels": [],
            "unlockedItems": [],
            "statistics": {
                "averageSessionTime": 0,
                "favoriteGameMode": "classic",
                "bestStreak": 0,
                "totalInteractions": 0,
                "socialScore": 0,
                "tradingVolume": 0,
            },
        },
        "inventory": {
            "tokens": 0,
            "nfts": [],
            "items": [],
            "currency": {},
        },
        "social": {
            "friends": [],
            "guilds": [],
            "blockedUsers": [],
            "socialSettings": {
                "autoAcceptFriends": False,
                "showOnlineStatus": True,
                "allowGuildInvites": True,
                "allowTradeRequests": True,
            },
        },
    }


def default_snapshot(
    user_id: str,
    device_id: str,
    platform: str,
    now: datetime,
) -> Snapshot:
    """Build the snapshot of a replica that has no saved data yet."""
    return Snapshot(
        user_id=user_id,
        device_id=device_id,
        platform=platform,
        schema_version=SCHEMA_VERSION,
        last_sync_at=None,
        payload=default_payload(user_id, now),
    )
