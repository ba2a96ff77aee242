"""Local state management for the sync client.

This module provides:
- LocalSnapshotStore: SQLite-based durable storage of local replicas

Architecture:
    One snapshot row per user (this device's replica), plus a key-value
    table for engine state that must survive restarts: the device id,
    the persisted SyncStatus and the sync configuration.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from savesync.client.sync.types import CorruptSnapshotError
from savesync.core.snapshot import Snapshot

logger = logging.getLogger(__name__)


class LocalSnapshotStore:
    """SQLite-based local replica storage."""

    def __init__(self, db_path: Path) -> None:
        """Initialize local state database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            -- One replica per user
            CREATE TABLE IF NOT EXISTS snapshots (
                user_id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                saved_at REAL NOT NULL
            );

            -- Key-value engine state
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

    @property
    def path(self) -> Path:
        """Database file location."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> LocalSnapshotStore:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # === Snapshot operations ===

    def load(self, user_id: str) -> Snapshot | None:
        """Load the local replica for a user.

        Args:
            user_id: Owner of the replica.

        Returns:
            Snapshot if stored, None otherwise.

        Raises:
            CorruptSnapshotError: If the stored data cannot be decoded.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM snapshots WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        try:
            return Snapshot.from_json(row["data"])
        except ValueError as e:  # json.JSONDecodeError is a ValueError
            raise CorruptSnapshotError(
                f"Stored snapshot for {user_id} is corrupt: {e}"
            ) from e

    def save(self, user_id: str, snapshot: Snapshot) -> None:
        """Persist the local replica for a user (upsert).

        Args:
            user_id: Owner of the replica.
            snapshot: Snapshot to store.
        """
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO snapshots (user_id, data, saved_at)
                VALUES (?, ?, ?)
                """,
                (user_id, snapshot.to_json(), time.time()),
            )

    def delete(self, user_id: str) -> bool:
        """Remove the replica for a user.

        Returns:
            True if a replica was removed.
        """
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM snapshots WHERE user_id = ?",
                (user_id,),
            )
        return cursor.rowcount > 0

    def list_users(self) -> list[str]:
        """Users with a stored replica."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT user_id FROM snapshots ORDER BY user_id"
            ).fetchall()
        return [row["user_id"] for row in rows]

    def write_raw(self, user_id: str, data: str) -> None:
        """Store raw text as a user's replica (recovery tooling and tests)."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO snapshots (user_id, data, saved_at) VALUES (?, ?, ?)",
                (user_id, data, time.time()),
            )

    # === Key-value state ===

    def get_value(self, key: str) -> Any:
        """Get a persisted JSON value.

        Returns:
            The decoded value, or None if absent or undecodable.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None or row["value"] is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning(f"Discarding undecodable state value for {key!r}")
            return None

    def set_value(self, key: str, value: Any) -> None:
        """Persist a JSON value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )
