"""Server database using SQLAlchemy with SQLite.

This module provides:
- Token-based authentication
- Snapshot storage with a per-user revision counter
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from savesync.core.snapshot import Snapshot
from savesync.server.models import Base, SnapshotRecord, Token

if TYPE_CHECKING:
    from sqlalchemy import Engine


def hash_token(token: str) -> str:
    """Hash a token using SHA-256.

    Args:
        token: Raw token string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class Database:
    """SQLAlchemy database for tokens and snapshots.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        # Enable WAL mode
        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Database file location."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === Token operations ===

    def create_token(
        self,
        label: str,
        expires_in: timedelta | None = None,
    ) -> tuple[str, Token]:
        """Create a new authentication token.

        Args:
            label: Who or what the token is for.
            expires_in: Optional expiration duration.

        Returns:
            Tuple of (raw_token, Token object).
        """
        raw_token = "ss_" + secrets.token_urlsafe(32)
        now = datetime.now(UTC)
        expires_at = (now + expires_in) if expires_in else None

        with self._session() as session:
            token = Token(
                label=label,
                token_hash=hash_token(raw_token),
                created_at=now,
                expires_at=expires_at,
            )
            session.add(token)
            session.commit()
            session.refresh(token)
            session.expunge(token)
            return raw_token, token

    def validate_token(self, raw_token: str) -> Token | None:
        """Validate a token and return it if valid.

        Args:
            raw_token: Raw token string.

        Returns:
            Token if valid, None otherwise.
        """
        token_hash = hash_token(raw_token)
        with self._session() as session:
            stmt = select(Token).where(Token.token_hash == token_hash, Token.revoked == False)  # noqa: E712
            token = session.execute(stmt).scalar_one_or_none()

            if token is None:
                return None

            now = datetime.now(UTC)
            if token.expires_at and _as_utc(token.expires_at) < now:
                return None

            token.last_used_at = now
            session.commit()
            session.refresh(token)
            session.expunge(token)
            return token

    def revoke_token(self, token_id: int) -> bool:
        """Revoke a token.

        Args:
            token_id: Token ID to revoke.

        Returns:
            True if the token existed.
        """
        with self._session() as session:
            token = session.get(Token, token_id)
            if token is None:
                return False
            token.revoked = True
            session.commit()
            return True

    def list_tokens(self) -> list[Token]:
        """List all tokens, revoked included."""
        with self._session() as session:
            tokens = list(session.execute(select(Token).order_by(Token.id)).scalars().all())
            for token in tokens:
                session.expunge(token)
            return tokens

    # === Snapshot operations ===

    def get_snapshot(self, user_id: str) -> SnapshotRecord | None:
        """Get the stored snapshot record for a user.

        Args:
            user_id: Owner of the snapshot.

        Returns:
            SnapshotRecord if found, None otherwise.
        """
        with self._session() as session:
            record = session.get(SnapshotRecord, user_id)
            if record:
                session.expunge(record)
            return record

    def put_snapshot(self, snapshot: Snapshot) -> SnapshotRecord:
        """Store a snapshot, replacing the previous one and bumping the revision.

        Args:
            snapshot: Snapshot to store (keyed by its user_id).

        Returns:
            The stored record.
        """
        data = snapshot.to_json()
        now = datetime.now(UTC)
        with self._session() as session:
            record = session.get(SnapshotRecord, snapshot.user_id)
            if record is None:
                record = SnapshotRecord(user_id=snapshot.user_id, revision=1)
                session.add(record)
            else:
                record.revision += 1
            record.data = data
            record.device_id = snapshot.device_id
            record.platform = snapshot.platform
            record.schema_version = snapshot.schema_version
            record.size = len(data.encode("utf-8"))
            record.updated_at = now
            session.commit()
            session.refresh(record)
            session.expunge(record)
            return record

    def delete_snapshot(self, user_id: str) -> bool:
        """Delete a user's snapshot.

        Returns:
            True if a snapshot was deleted.
        """
        with self._session() as session:
            record = session.get(SnapshotRecord, user_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    def list_snapshots(self) -> list[SnapshotRecord]:
        """List stored snapshots ordered by user id."""
        with self._session() as session:
            stmt = select(SnapshotRecord).order_by(SnapshotRecord.user_id)
            records = list(session.execute(stmt).scalars().all())
            for record in records:
                session.expunge(record)
            return records
