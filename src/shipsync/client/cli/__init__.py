"""Command-line interface for shipsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- deploy: Deploy a project directory
- login: Store the API token
"""

from __future__ import annotations

import click

from shipsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
    setup_logging,
)
from shipsync.client.cli.deploy import deploy, login


@click.group()
@click.version_option(package_name="shipsync")
def cli() -> None:
    """shipsync - Deduplicated project deployments."""


cli.add_command(deploy)
cli.add_command(login)

__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
    "setup_logging",
]
