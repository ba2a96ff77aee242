"""Server administration commands for the savesync CLI.

Commands:
- server run: Serve the reference snapshot store with uvicorn
- server create-token: Issue a bearer token
- server list-tokens: Show issued tokens
- server revoke-token: Revoke a token
"""

from __future__ import annotations

import os
import sys
from datetime import timedelta
from pathlib import Path

import click

DB_PATH_HELP = "Path to database file (default: SAVESYNC_DB_PATH or ./savesync.db)."


def _resolve_db_path(db_path: str | None) -> Path:
    return Path(db_path or os.environ.get("SAVESYNC_DB_PATH", "savesync.db"))


@click.group()
def server() -> None:
    """Server management commands.

    These commands are for administrators running the reference server.
    """


@server.command("run")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on.")
@click.option("--db-path", type=click.Path(), default=None, help=DB_PATH_HELP)
def run_cmd(host: str, port: int, db_path: str | None) -> None:
    """Serve the snapshot store."""
    import uvicorn

    if db_path:
        os.environ["SAVESYNC_DB_PATH"] = db_path
    click.echo(f"Database: {_resolve_db_path(db_path)}")
    uvicorn.run("savesync.server.app:app_factory", factory=True, host=host, port=port)


@server.command("create-token")
@click.argument("label")
@click.option(
    "--expires-in-days",
    type=int,
    default=None,
    help="Token lifetime in days (default: never expires).",
)
@click.option("--db-path", type=click.Path(), default=None, help=DB_PATH_HELP)
def create_token_cmd(label: str, expires_in_days: int | None, db_path: str | None) -> None:
    """Issue a bearer token for clients.

    The raw token is shown once; only its hash is stored.

    Examples:

        savesync server create-token "alice laptop"

        savesync server create-token ci --expires-in-days 7
    """
    from savesync.server.database import Database

    db = Database(_resolve_db_path(db_path))
    try:
        expires_in = timedelta(days=expires_in_days) if expires_in_days else None
        raw_token, token = db.create_token(label, expires_in=expires_in)
    finally:
        db.close()
    click.echo(f"Token {token.id} ({label}):")
    click.echo(raw_token)


@server.command("list-tokens")
@click.option("--db-path", type=click.Path(), default=None, help=DB_PATH_HELP)
def list_tokens_cmd(db_path: str | None) -> None:
    """Show issued tokens."""
    from savesync.server.database import Database

    db_file = _resolve_db_path(db_path)
    if not db_file.exists():
        click.echo(f"Error: Database not found: {db_file}", err=True)
        sys.exit(1)

    db = Database(db_file)
    try:
        tokens = db.list_tokens()
    finally:
        db.close()
    if not tokens:
        click.echo("No tokens.")
        return
    for token in tokens:
        state = "revoked" if token.revoked else "active"
        click.echo(f"{token.id}\t{token.label}\t{state}")


@server.command("revoke-token")
@click.argument("token_id", type=int)
@click.option("--db-path", type=click.Path(), default=None, help=DB_PATH_HELP)
def revoke_token_cmd(token_id: int, db_path: str | None) -> None:
    """Revoke a token by id."""
    from savesync.server.database import Database

    db = Database(_resolve_db_path(db_path))
    try:
        found = db.revoke_token(token_id)
    finally:
        db.close()
    if not found:
        click.echo(f"Error: No token with id {token_id}", err=True)
        sys.exit(1)
    click.echo(f"Revoked token {token_id}")
