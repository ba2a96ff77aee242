"""Command-line interface for savesync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- config: Show or change client configuration
- sync: Synchronize a user's save data with the server
- status: Print the persisted sync status
- devices: List the device roster
- watch: Keep a user in sync until interrupted
- server: Server administration commands
"""

from __future__ import annotations

import logging

import click

from savesync.client.cli.config import (
    config_group,
    get_config_dir,
    get_config_file,
    get_state_db_path,
    load_config,
    save_config,
)
# Commands are imported under distinct names so the submodules stay reachable
# as package attributes (savesync.client.cli.sync, savesync.client.cli.server)
from savesync.client.cli.server import server as server_group
from savesync.client.cli.sync import devices, status, watch
from savesync.client.cli.sync import sync as sync_command


@click.group()
@click.version_option(package_name="savesync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """SaveSync - cross-device save-state synchronization."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Configuration commands
cli.add_command(config_group)

# Sync commands
cli.add_command(sync_command)
cli.add_command(status)
cli.add_command(devices)
cli.add_command(watch)

# Server admin commands
cli.add_command(server_group)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_state_db_path",
    "load_config",
    "save_config",
]
