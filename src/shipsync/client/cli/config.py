"""Credential store and logging setup for the shipsync CLI.

The config file holds the API token, so it is written readable by its
owner only. Only the keys listed in CONFIG_KEYS are kept.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click

from shipsync.core.config import DEFAULT_HOST

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

CONFIG_KEYS = ("token", "host")
CONFIG_DIR_ENV = "SHIPSYNC_CONFIG_DIR"

# Owner-only permissions for the directory and the token file
DIR_MODE = 0o700
FILE_MODE = 0o600


def get_config_dir() -> Path:
    """Get the configuration directory for shipsync.

    Returns:
        Path from $SHIPSYNC_CONFIG_DIR, or ~/.shipsync.
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".shipsync"


def get_config_file() -> Path:
    """Get the path to the credentials file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load the stored token and host.

    Unknown keys and empty values are dropped.

    Raises:
        click.ClickException: If the file is not a JSON object.
    """
    config_file = get_config_file()
    if not config_file.exists():
        return {}

    try:
        data = json.loads(config_file.read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid config file {config_file}: {e}") from e
    if not isinstance(data, dict):
        raise click.ClickException(f"Invalid config file {config_file}: expected an object")

    return {key: str(data[key]) for key in CONFIG_KEYS if data.get(key)}


def save_config(config: dict[str, str]) -> None:
    """Store the token and host, readable by the owner only."""
    config_file = get_config_file()
    config_file.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

    data = {key: config[key] for key in CONFIG_KEYS if config.get(key)}
    fd = os.open(config_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
    with os.fdopen(fd, "w") as f:
        json.dump(data, f, indent=2)
    # os.open only applies the mode to new files
    config_file.chmod(FILE_MODE)


def resolve_credentials(token: str | None, host: str | None) -> tuple[str | None, str]:
    """Pick the token and host, preferring explicit values over stored ones.

    Args:
        token: Token from --token or $SHIPSYNC_TOKEN.
        host: Host from --host.

    Returns:
        (token or None, host)
    """
    stored = load_config()
    return token or stored.get("token"), host or stored.get("host") or DEFAULT_HOST


def setup_logging(debug: bool) -> None:
    """Configure the shipsync logger for the terminal.

    Args:
        debug: Show debug messages instead of warnings and errors only.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    shipsync_logger = logging.getLogger("shipsync")
    for existing in shipsync_logger.handlers[:]:
        shipsync_logger.removeHandler(existing)
    shipsync_logger.addHandler(handler)
    shipsync_logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    shipsync_logger.propagate = False
