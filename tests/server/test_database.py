"""Tests for server database models."""

from datetime import timedelta

import pytest

from savesync.core.snapshot import Snapshot
from savesync.server.database import (
    Database,
    hash_token,
)


@pytest.fixture
def db(tmp_path) -> Database:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


def make_snapshot(user_id: str = "user_0001", score: int = 0) -> Snapshot:
    return Snapshot(user_id, "device_a", "desktop", payload={"progress": {"highScore": score}})


class TestDatabaseCreation:
    """Tests for database initialization."""

    def test_creates_db_file(self, tmp_path) -> None:
        """Database should create SQLite file."""
        db_path = tmp_path / "test.db"
        db = Database(db_path)
        assert db_path.exists()
        assert db.path == db_path
        db.close()

    def test_uses_wal_mode(self, tmp_path) -> None:
        """Database should use WAL mode for concurrency."""
        db = Database(tmp_path / "test.db")
        with db._engine.connect() as conn:
            result = conn.exec_driver_sql("PRAGMA journal_mode").fetchone()
        assert result is not None
        assert result[0].lower() == "wal"
        db.close()


class TestTokens:
    """Tests for token operations."""

    def test_hash_token(self) -> None:
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")
        assert len(hash_token("abc")) == 64

    def test_create_and_validate(self, db: Database) -> None:
        raw_token, token = db.create_token("laptop")

        assert raw_token.startswith("ss_")
        assert token.token_hash == hash_token(raw_token)
        assert token.last_used_at is None

        validated = db.validate_token(raw_token)
        assert validated is not None
        assert validated.id == token.id
        assert validated.last_used_at is not None

    def test_unknown_token(self, db: Database) -> None:
        assert db.validate_token("ss_unknown") is None

    def test_expired_token(self, db: Database) -> None:
        raw_token, _ = db.create_token("short", expires_in=timedelta(seconds=-1))
        assert db.validate_token(raw_token) is None

    def test_revoke(self, db: Database) -> None:
        raw_token, token = db.create_token("phone")

        assert db.revoke_token(token.id) is True
        assert db.validate_token(raw_token) is None
        assert db.revoke_token(9999) is False

    def test_list_tokens(self, db: Database) -> None:
        db.create_token("a")
        _, second = db.create_token("b")
        db.revoke_token(second.id)

        tokens = db.list_tokens()

        assert [t.label for t in tokens] == ["a", "b"]
        assert [t.revoked for t in tokens] == [False, True]


class TestSnapshots:
    """Tests for snapshot storage."""

    def test_get_missing(self, db: Database) -> None:
        assert db.get_snapshot("user_0001") is None

    def test_put_creates_revision_one(self, db: Database) -> None:
        record = db.put_snapshot(make_snapshot(score=3))

        assert record.revision == 1
        assert record.device_id == "device_a"
        assert record.size == len(record.data.encode("utf-8"))
        assert Snapshot.from_json(record.data) == make_snapshot(score=3)

    def test_put_replaces(self, db: Database) -> None:
        db.put_snapshot(make_snapshot(score=1))
        record = db.put_snapshot(make_snapshot(score=2))

        stored = db.get_snapshot("user_0001")

        assert record.revision == 2
        assert stored is not None
        assert Snapshot.from_json(stored.data).payload["progress"]["highScore"] == 2

    def test_delete(self, db: Database) -> None:
        db.put_snapshot(make_snapshot())

        assert db.delete_snapshot("user_0001") is True
        assert db.delete_snapshot("user_0001") is False
        assert db.get_snapshot("user_0001") is None

    def test_list_snapshots(self, db: Database) -> None:
        db.put_snapshot(make_snapshot("user_0002"))
        db.put_snapshot(make_snapshot("user_0001"))

        assert [r.user_id for r in db.list_snapshots()] == ["user_0001", "user_0002"]
