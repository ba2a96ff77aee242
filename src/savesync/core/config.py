"""Shared configuration classes for savesync.

This module defines configuration classes used by the client, the CLI
and the reference server:
- ServerConfig: how to reach the remote snapshot store
- SyncConfig: the synchronization options surface
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

from savesync.core.types import ResolutionPolicy

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""


@dataclass
class ServerConfig:
    """Configuration for connecting to the remote snapshot store.

    Attributes:
        server_url: Base URL of the server (e.g., "https://saves.example.com").
        token: Static bearer token, used when no token_provider is given.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
        token_provider: Optional callable returning a fresh bearer token.
            Called on every request, so expiring credentials can be rotated
            by the external auth provider.
    """

    server_url: str
    token: str = ""
    timeout: float = 30.0
    verify_ssl: bool = True
    token_provider: Callable[[], str] | None = None

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    def bearer_token(self) -> str:
        """Get the credential to send with the next request."""
        if self.token_provider is not None:
            return self.token_provider()
        return self.token

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


# camelCase option name -> dataclass field name
OPTION_NAMES: dict[str, str] = {
    "autoSync": "auto_sync",
    "syncFrequencyMinutes": "sync_frequency_minutes",
    "conflictResolution": "conflict_resolution",
    "compression": "compression",
    "encryption": "encryption",
    "maxRetries": "max_retries",
    "timeoutMs": "timeout_ms",
    "chunkSizeBytes": "chunk_size_bytes",
    "deferPrompts": "defer_prompts",
    "retryBackoffSeconds": "retry_backoff_seconds",
}


@dataclass(frozen=True)
class SyncConfig:
    """Synchronization options.

    Attributes:
        auto_sync: Run the periodic autosync job.
        sync_frequency_minutes: Interval between autosync attempts.
        conflict_resolution: Policy applied to detected conflicts.
        compression: Negotiate compressed transfers with the remote.
        encryption: Require an encrypted transport (warns on plain HTTP).
        max_retries: Retries per remote call on transport errors.
        timeout_ms: Remote call timeout in milliseconds.
        chunk_size_bytes: Upload streaming chunk size (drives progress events).
        defer_prompts: With the prompt policy, park the operation until
            resolve_conflicts() is called instead of falling back to local.
            Parking also needs a subscriber to awaiting-resolution events.
        retry_backoff_seconds: Initial delay between retries.
    """

    auto_sync: bool = True
    sync_frequency_minutes: float = 5
    conflict_resolution: ResolutionPolicy = ResolutionPolicy.PROMPT
    compression: bool = True
    encryption: bool = True
    max_retries: int = 3
    timeout_ms: int = 30000
    chunk_size_bytes: int = 1024 * 1024
    defer_prompts: bool = True
    retry_backoff_seconds: float = 1.0

    def __post_init__(self) -> None:
        """Coerce the policy and validate numeric options."""
        try:
            policy = ResolutionPolicy(self.conflict_resolution)
        except ValueError as e:
            raise ConfigError(
                f"Unknown conflict resolution policy: {self.conflict_resolution!r}"
            ) from e
        object.__setattr__(self, "conflict_resolution", policy)

        if self.sync_frequency_minutes <= 0:
            raise ConfigError("syncFrequencyMinutes must be positive")
        if self.timeout_ms <= 0:
            raise ConfigError("timeoutMs must be positive")
        if self.chunk_size_bytes <= 0:
            raise ConfigError("chunkSizeBytes must be positive")
        if self.max_retries < 0:
            raise ConfigError("maxRetries cannot be negative")
        if self.retry_backoff_seconds < 0:
            raise ConfigError("retryBackoffSeconds cannot be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SyncConfig:
        """Build a config from camelCase or snake_case options.

        Unrecognized options are ignored; missing options take defaults.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = OPTION_NAMES.get(key, key)
            if name not in known:
                logger.debug(f"Ignoring unknown sync option: {key}")
                continue
            values[name] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase option names."""
        result: dict[str, Any] = {}
        for option, name in OPTION_NAMES.items():
            value = getattr(self, name)
            if isinstance(value, ResolutionPolicy):
                value = value.value
            result[option] = value
        return result

    def merged(self, **changes: Any) -> SyncConfig:
        """Return a validated copy with the given options changed.

        Accepts the same option names as from_dict().
        """
        normalized = {OPTION_NAMES.get(k, k): v for k, v in changes.items()}
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in normalized.items() if k in known})

    @property
    def timeout_seconds(self) -> float:
        """Timeout converted for httpx."""
        return self.timeout_ms / 1000.0

    @property
    def sync_interval_seconds(self) -> float:
        """Autosync interval in seconds."""
        return self.sync_frequency_minutes * 60.0
