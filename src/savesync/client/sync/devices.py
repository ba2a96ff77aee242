"""Device identity and roster.

This module provides:
- DeviceRegistry: Stable per-installation device id and roster upkeep
- get_machine_name: Short host identifier used in device names
"""

from __future__ import annotations

import logging
import platform as platform_module
import random
import socket
import string
from datetime import UTC, datetime

from savesync.client.sync.types import Clock, DeviceInfo, SnapshotStore, SyncStatus
from savesync.core.snapshot import Snapshot
from savesync.core.types import Platform

logger = logging.getLogger(__name__)

DEVICE_ID_KEY = "device_id"
CLIENT_VERSION = "0.1.0"
_ID_ALPHABET = string.digits + string.ascii_lowercase


def get_machine_name() -> str:
    """Get a short machine identifier for device names."""
    try:
        hostname = socket.gethostname()
        # Truncate to reasonable length
        return hostname[:15] if len(hostname) > 15 else hostname
    except OSError:
        return platform_module.node()[:15] or "unknown"


class DeviceRegistry:
    """Owns this installation's device id and its roster entry."""

    def __init__(
        self,
        store: SnapshotStore,
        platform: Platform | str = Platform.DESKTOP,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        machine_name: str | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Where the device id is persisted.
            platform: Platform this installation runs on.
            clock: Time source (device id and last_seen).
            rng: Random source for the device id.
            machine_name: Host name shown in the device name.
        """
        self._store = store
        self._platform = Platform(platform)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._rng = rng or random.SystemRandom()
        self._machine_name = machine_name if machine_name is not None else get_machine_name()
        self._device_id: str | None = None

    @property
    def platform(self) -> str:
        """Platform name of this installation."""
        return self._platform.value

    def _generate_id(self) -> str:
        millis = int(self._clock().timestamp() * 1000)
        suffix = "".join(self._rng.choice(_ID_ALPHABET) for _ in range(9))
        return f"device_{millis}_{suffix}"

    def current_device_id(self) -> str:
        """Get this installation's device id, generating it once."""
        if self._device_id is None:
            stored = self._store.get_value(DEVICE_ID_KEY)
            if isinstance(stored, str) and stored:
                self._device_id = stored
            else:
                self._device_id = self._generate_id()
                self._store.set_value(DEVICE_ID_KEY, self._device_id)
                logger.info(f"Generated device id {self._device_id}")
        return self._device_id

    def device_name(self) -> str:
        """Human-readable name of this device."""
        name = f"{self._platform.value.capitalize()} Device {self.current_device_id()[-4:]}"
        if self._machine_name:
            name = f"{name} ({self._machine_name})"
        return name

    def capabilities(self, online: bool, compression: bool = False, encryption: bool = False) -> list[str]:
        """Capabilities advertised in the roster."""
        caps = ["sync", "storage"]
        if online:
            caps.append("online")
        if compression:
            caps.append("compression")
        if encryption:
            caps.append("encryption")
        return caps

    def register_device(
        self,
        user_id: str,
        status: SyncStatus,
        capabilities: list[str] | None = None,
    ) -> DeviceInfo:
        """Upsert this device into the roster as the current device.

        Exactly one entry ends up with is_current=True.

        Args:
            user_id: User the device is registering for.
            status: Status whose roster is updated in place.
            capabilities: Advertised capabilities (derived if omitted).

        Returns:
            This device's roster entry.
        """
        device_id = self.current_device_id()
        info = DeviceInfo(
            id=device_id,
            name=self.device_name(),
            platform=self._platform.value,
            last_seen=self._clock(),
            is_current=True,
            capabilities=capabilities if capabilities is not None else self.capabilities(status.is_online),
            version=CLIENT_VERSION,
        )
        others = [d for d in status.devices if d.id != device_id]
        for device in others:
            device.is_current = False
        status.devices = [*others, info]
        logger.info(f"Registered device {device_id} for user {user_id}")
        return info

    def observe_remote(self, status: SyncStatus, snapshot: Snapshot) -> DeviceInfo | None:
        """Record the device that last wrote a remote snapshot.

        Returns:
            The roster entry, or None when the writer is this device.
        """
        if not snapshot.device_id or snapshot.device_id == self.current_device_id():
            return None
        seen_at = snapshot.last_sync_at or self._clock()
        for device in status.devices:
            if device.id == snapshot.device_id:
                if seen_at > device.last_seen:
                    device.last_seen = seen_at
                return device
        info = DeviceInfo(
            id=snapshot.device_id,
            name=f"{snapshot.platform.capitalize() or 'Unknown'} Device {snapshot.device_id[-4:]}",
            platform=snapshot.platform,
            last_seen=seen_at,
            is_current=False,
            capabilities=["sync"],
        )
        status.devices.append(info)
        return info
