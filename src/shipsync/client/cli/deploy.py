"""Deploy and login commands for shipsync CLI.

Commands:
- deploy: Create a deployment and upload missing files
- login: Store the API token
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
import httpx

from shipsync.client.cli.config import (
    load_config,
    resolve_credentials,
    save_config,
    setup_logging,
)
from shipsync.client.engine import SyncEngine
from shipsync.client.types import DeployError, ForbiddenError, SyncFailedError
from shipsync.core.config import DEFAULT_HOST, DeployConfig
from shipsync.core.hashing import FileEntry


def _format_size(size: int) -> str:
    """Format a byte count for display."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


async def _deploy(config: DeployConfig, path: Path) -> bool:
    """Run one deployment; returns True when every file was uploaded."""

    def on_upload(entry: FileEntry) -> None:
        click.echo(f"  ↑ {entry.path} ({_format_size(entry.size)})")

    def on_complete() -> None:
        click.echo("Sync complete.")

    def on_error(error: Exception) -> None:
        if isinstance(error, SyncFailedError):
            for failure in error.failures:
                click.echo(f"  ✗ {failure.path}: {failure.cause}", err=True)
        click.echo(f"Error: {error}", err=True)

    def on_retry(error: BaseException, attempt: int) -> None:
        click.echo(f"Retrying after attempt {attempt}: {error}", err=True)

    async with SyncEngine(
        config,
        on_upload=on_upload,
        on_complete=on_complete,
        on_error=on_error,
        on_retry=on_retry,
    ) as engine:
        url = await engine.create(path)
        click.echo(f"Ready! {url}")

        session = engine.session
        if session is None or not session.missing:
            click.echo("Nothing to upload.")
            return True

        click.echo(
            f"Uploading {len(session.missing)} file(s) "
            f"({_format_size(engine.sync_amount)})"
        )
        result = await engine.upload()
        return result.success


@click.command()
@click.argument(
    "path",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
)
@click.option("--token", envvar="SHIPSYNC_TOKEN", help="API token (default: from config).")
@click.option("--host", default=None, help=f"API host (default: {DEFAULT_HOST}).")
@click.option("--force", "-f", is_flag=True, help="Force a new deployment.")
@click.option("--debug", "-d", is_flag=True, help="Show debug output.")
def deploy(path: Path, token: str | None, host: str | None, force: bool, debug: bool) -> None:
    """Deploy a project directory.

    Only file contents the server does not already have are uploaded.
    """
    setup_logging(debug)

    token, host = resolve_credentials(token, host)
    if not token:
        click.echo("Error: No API token. Run 'shipsync login' or pass --token.", err=True)
        sys.exit(1)

    deploy_config = DeployConfig(
        token=token,
        host=host,
        force_new=force,
    )

    try:
        success = asyncio.run(_deploy(deploy_config, path))
    except ForbiddenError:
        click.echo("Error: Access denied (HTTP 403). Check your token.", err=True)
        sys.exit(1)
    except DeployError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except httpx.TransportError as e:
        click.echo(f"Error: Network failure: {e!r}", err=True)
        sys.exit(1)

    if not success:
        sys.exit(1)


@click.command()
@click.option("--token", prompt="API token", hide_input=True, help="API token to store.")
@click.option("--host", default=None, help="API host to store.")
def login(token: str, host: str | None) -> None:
    """Store the API token in the config file."""
    config = load_config()
    config["token"] = token
    if host:
        config["host"] = host
    save_config(config)
    click.echo("Token saved.")
