"""Configuration utilities and commands for the savesync CLI.

This module provides shared configuration functions used across CLI commands,
and the `config` command group.

Commands:
- config show: Print the server settings and sync options
- config set KEY VALUE: Change a sync option
- config server URL TOKEN: Point the client at a server
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import click

from savesync.core.config import ConfigError


def get_config_dir() -> Path:
    """Get the configuration directory for savesync.

    Returns:
        Path to ~/.savesync, or SAVESYNC_CONFIG_DIR if set.
    """
    override = os.environ.get("SAVESYNC_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".savesync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db_path() -> Path:
    """Get the path to the local state database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def parse_option_value(raw: str) -> Any:
    """Interpret a command-line value as JSON, falling back to the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@click.group("config")
def config_group() -> None:
    """Show or change client configuration."""


@config_group.command("show")
def show() -> None:
    """Print the server settings and sync options."""
    from savesync.client.state import LocalSnapshotStore
    from savesync.client.sync.engine import load_sync_config

    config = load_config()
    click.echo(f"Config dir: {get_config_dir()}")
    click.echo(f"Server:     {config.get('server_url') or '(not set)'}")
    click.echo(f"Token:      {'set' if config.get('auth_token') else '(not set)'}")

    with LocalSnapshotStore(get_state_db_path()) as store:
        options = load_sync_config(store).to_dict()
    click.echo("Sync options:")
    for key, value in options.items():
        click.echo(f"  {key}: {json.dumps(value)}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def set_option(key: str, value: str) -> None:
    """Change a sync option (e.g. conflictResolution merge)."""
    from savesync.client.state import LocalSnapshotStore
    from savesync.client.sync.engine import load_sync_config, save_sync_config
    from savesync.core.config import OPTION_NAMES

    if key not in OPTION_NAMES and key not in OPTION_NAMES.values():
        click.echo(f"Error: Unknown option: {key}", err=True)
        click.echo(f"Known options: {', '.join(OPTION_NAMES)}", err=True)
        sys.exit(1)

    with LocalSnapshotStore(get_state_db_path()) as store:
        try:
            updated = load_sync_config(store).merged(**{key: parse_option_value(value)})
        except (ConfigError, TypeError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        save_sync_config(store, updated)
    click.echo(f"Set {key} = {value}")


@config_group.command("server")
@click.argument("url")
@click.argument("token")
def set_server(url: str, token: str) -> None:
    """Point the client at a server."""
    config = load_config()
    config["server_url"] = url.rstrip("/")
    config["auth_token"] = token
    save_config(config)
    click.echo(f"Server set to {config['server_url']}")
