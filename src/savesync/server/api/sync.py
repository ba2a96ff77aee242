"""Snapshot sync API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from savesync.server.api.deps import get_current_token, get_db
from savesync.server.database import Database
from savesync.server.models import Token
from savesync.server.schemas import (
    RevisionResponse,
    SnapshotDocument,
    record_to_document,
    record_to_revision,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/{user_id}", response_model=SnapshotDocument)
def get_snapshot(
    user_id: str,
    db: Database = Depends(get_db),
    _auth: Token = Depends(get_current_token),
) -> SnapshotDocument:
    """Get a user's snapshot."""
    record = db.get_snapshot(user_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No snapshot for user: {user_id}",
        )
    return record_to_document(record)


@router.get("/{user_id}/revision", response_model=RevisionResponse)
def get_revision(
    user_id: str,
    db: Database = Depends(get_db),
    _auth: Token = Depends(get_current_token),
) -> RevisionResponse:
    """Get the revision counter of a user's snapshot."""
    record = db.get_snapshot(user_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No snapshot for user: {user_id}",
        )
    return record_to_revision(record)


def _store(user_id: str, document: SnapshotDocument, db: Database, auth: Token) -> SnapshotDocument:
    if document.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Snapshot belongs to {document.user_id}, not {user_id}",
        )
    try:
        snapshot = document.to_snapshot()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    record = db.put_snapshot(snapshot)
    logger.info(
        f"Stored snapshot for {user_id} from {snapshot.device_id} "
        f"(revision {record.revision}, token {auth.label})"
    )
    return record_to_document(record)


@router.put("/{user_id}", response_model=SnapshotDocument)
def put_snapshot(
    user_id: str,
    document: SnapshotDocument,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> SnapshotDocument:
    """Replace a user's snapshot."""
    return _store(user_id, document, db, auth)


@router.post("/{user_id}", response_model=SnapshotDocument)
def post_snapshot(
    user_id: str,
    document: SnapshotDocument,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> SnapshotDocument:
    """Replace a user's snapshot (POST form used by web clients)."""
    return _store(user_id, document, db, auth)
