"""Sync commands for the savesync CLI.

Commands:
- sync: Run one sync for a user
- status: Print the persisted sync status
- devices: List the device roster
- watch: Keep a user in sync until interrupted
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import click

from savesync.client.api import HTTPClient
from savesync.client.cli.config import get_state_db_path, load_config
from savesync.client.state import LocalSnapshotStore
from savesync.client.sync.engine import STATUS_KEY, SyncEngine, load_sync_config
from savesync.client.sync.events import SyncEvent, SyncEventType
from savesync.client.sync.scheduler import AutoSyncScheduler
from savesync.core.config import ServerConfig, SyncConfig
from savesync.core.types import ResolutionPolicy

logger = logging.getLogger(__name__)


def create_remote(server_config: ServerConfig, sync_config: SyncConfig) -> HTTPClient:
    """Build the HTTP client the commands talk to."""
    return HTTPClient(server_config, sync_config)


def _require_server() -> ServerConfig:
    config = load_config()
    if not config.get("server_url"):
        click.echo("Error: No server configured. Run 'savesync config server URL TOKEN' first.", err=True)
        sys.exit(1)
    return ServerConfig(server_url=config["server_url"], token=config.get("auth_token", ""))


@asynccontextmanager
async def open_engine(policy: str | None = None) -> AsyncIterator[tuple[SyncEngine, HTTPClient]]:
    """Open the local store, the remote client and an engine over both."""
    server_config = _require_server()
    with LocalSnapshotStore(get_state_db_path()) as store:
        sync_config = load_sync_config(store)
        if policy:
            sync_config = sync_config.merged(conflict_resolution=policy)
        async with create_remote(server_config, sync_config) as remote:
            engine = SyncEngine(store, remote, sync_config)
            yield engine, remote
            await engine.aclose()


def _print_progress(event: SyncEvent) -> None:
    if event.type == SyncEventType.SYNC_PROGRESS:
        click.echo(f"  {event.payload['percent']:3d}%")
    elif event.type == SyncEventType.CONFLICT_DETECTED:
        click.echo(f"  {len(event.payload['conflicts'])} conflict(s) detected")
    elif event.type == SyncEventType.AWAITING_RESOLUTION:
        click.echo("  Waiting on conflict decisions")


@click.command()
@click.option("--user", "user_id", required=True, help="User whose data to sync.")
@click.option("--force", is_flag=True, help="Queue behind a sync already in flight.")
@click.option(
    "--policy",
    type=click.Choice([p.value for p in ResolutionPolicy]),
    default=None,
    help="Conflict resolution policy for this run.",
)
def sync(user_id: str, force: bool, policy: str | None) -> None:
    """Synchronize a user's save data with the server."""

    async def run() -> tuple[bool, SyncEngine]:
        async with open_engine(policy) as (engine, remote):
            engine.events.subscribe(
                _print_progress,
                SyncEventType.SYNC_PROGRESS,
                SyncEventType.CONFLICT_DETECTED,
                SyncEventType.AWAITING_RESOLUTION,
            )
            engine.set_online(await remote.health_check())
            engine.register_device(user_id)
            return await engine.sync(user_id, force=force), engine

    ok, engine = asyncio.run(run())
    if ok:
        click.echo(f"Sync completed for {user_id}")
        return

    parked = engine.awaiting_resolution()
    if parked:
        click.echo(f"Sync for {user_id} is waiting on conflict decisions:", err=True)
        for conflict in parked[-1].conflicts:
            click.echo(
                f"  {conflict.field_path}: local={json.dumps(conflict.local_value)} "
                f"remote={json.dumps(conflict.remote_value)}",
                err=True,
            )
        click.echo("Re-run with --policy local, remote or merge.", err=True)
    else:
        click.echo(f"Sync failed for {user_id}: {engine.status.last_error}", err=True)
    sys.exit(1)


def _load_status_dict() -> dict[str, Any]:
    with LocalSnapshotStore(get_state_db_path()) as store:
        stored = store.get_value(STATUS_KEY)
    return stored if isinstance(stored, dict) else {}


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
def status(as_json: bool) -> None:
    """Print the persisted sync status."""
    data = _load_status_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    if not data:
        click.echo("No sync has run yet.")
        return
    click.echo(f"Online:         {data.get('isOnline')}")
    click.echo(f"Last sync:      {data.get('lastSync') or 'never'}")
    click.echo(f"Auto sync:      {data.get('autoSyncEnabled')} "
               f"(every {data.get('syncFrequencyMinutes')} min)")
    click.echo(f"Open conflicts: {len(data.get('conflicts') or [])}")
    if data.get("lastError"):
        click.echo(f"Last error:     {data['lastError']}")


@click.command()
def devices() -> None:
    """List the devices seen for this installation's user."""
    roster = _load_status_dict().get("devices") or []
    if not roster:
        click.echo("No devices registered.")
        return
    for device in roster:
        marker = "*" if device.get("isCurrent") else " "
        click.echo(
            f"{marker} {device['id']}  {device.get('name', '')}  "
            f"{device.get('platform', '')}  last seen {device.get('lastSeen')}"
        )


@click.command()
@click.option("--user", "user_id", required=True, help="User whose data to keep in sync.")
@click.option(
    "--connectivity-interval",
    type=float,
    default=30.0,
    show_default=True,
    help="Seconds between server health checks.",
)
def watch(user_id: str, connectivity_interval: float) -> None:
    """Keep a user's save data in sync until interrupted."""

    async def run() -> None:
        async with open_engine() as (engine, remote):
            engine.events.subscribe(_print_event)
            engine.set_online(await remote.health_check())
            await engine.initialize(user_id)
            scheduler = AutoSyncScheduler(engine, remote, user_id, connectivity_interval)
            scheduler.start()
            click.echo(f"Watching {user_id} (Ctrl+C to stop)")
            try:
                await asyncio.Event().wait()
            finally:
                scheduler.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("Stopped.")


def _print_event(event: SyncEvent) -> None:
    if event.type == SyncEventType.SYNC_COMPLETED:
        click.echo(f"[{event.timestamp:%H:%M:%S}] Sync completed")
    elif event.type == SyncEventType.SYNC_FAILED:
        click.echo(f"[{event.timestamp:%H:%M:%S}] Sync failed: {event.payload.get('error')}")
