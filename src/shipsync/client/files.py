"""Project files selection.

This module provides:
- read_manifest: Load the project's package.json
- IgnorePatterns: gitignore-style pattern matching
- get_files: List the files of a project that should be deployed
"""

from __future__ import annotations

import fnmatch
import json
import logging
import os
from pathlib import Path
from typing import Any

from shipsync.client.types import InputError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"

# Never deployed, whatever the project's own ignore files say
DEFAULT_IGNORE_PATTERNS = [
    ".git",
    ".git/**",
    ".hg",
    ".svn",
    "node_modules",
    "node_modules/**",
    ".DS_Store",
    "Thumbs.db",
    "npm-debug.log",
    "*.swp",
    "*.swo",
    "~*",
]

# Checked in order; the first one present is used
IGNORE_FILES = (".npmignore", ".gitignore")


def read_manifest(root: str | Path) -> dict[str, Any]:
    """Read and parse the project's package.json.

    Args:
        root: Project directory.

    Returns:
        The parsed manifest.

    Raises:
        InputError: If the directory or manifest cannot be read or parsed.
    """
    root = Path(root)
    if not root.is_dir():
        raise InputError(f"Could not read directory {root}.")

    try:
        manifest = json.loads((root / MANIFEST_NAME).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise InputError(f'Failed to read JSON in "{root}/{MANIFEST_NAME}"') from e

    if not isinstance(manifest, dict):
        raise InputError(f'Failed to read JSON in "{root}/{MANIFEST_NAME}"')
    return manifest


class IgnorePatterns:
    """Handles ignore pattern matching for project paths."""

    def __init__(self, patterns: list[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: List of gitignore-style patterns, added to the defaults.
        """
        self._patterns = list(DEFAULT_IGNORE_PATTERNS)
        if patterns:
            self._patterns.extend(patterns)

    @property
    def patterns(self) -> list[str]:
        """Get the active patterns."""
        return list(self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """Add an ignore pattern."""
        self._patterns.append(pattern)

    def load_from_file(self, path: Path) -> None:
        """Load patterns from an ignore file."""
        if path.exists():
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    # Skip comments, empty lines and negations
                    if line and not line.startswith(("#", "!")):
                        self._patterns.append(line.lstrip("/"))

    def should_ignore(self, rel_path: str, is_dir: bool = False) -> bool:
        """Check if a path should be ignored.

        Args:
            rel_path: POSIX path relative to the project root.
            is_dir: Whether the path is a directory.

        Returns:
            True if the path should be ignored.
        """
        name = rel_path.rsplit("/", 1)[-1]
        for pattern in self._patterns:
            # Directory-only patterns (ending with /)
            if pattern.endswith("/"):
                pattern = pattern[:-1]
                if is_dir and (fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern)):
                    return True
            elif "**" in pattern or "/" in pattern:
                if fnmatch.fnmatch(rel_path, pattern):
                    return True
            elif fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
                return True
        return False


def _is_whitelisted(rel_path: str, whitelist: list[str]) -> bool:
    """Check a file against the manifest's `files` entries."""
    if rel_path == MANIFEST_NAME:
        return True
    for entry in whitelist:
        entry = entry.strip("/")
        if rel_path == entry or rel_path.startswith(entry + "/"):
            return True
        if fnmatch.fnmatch(rel_path, entry):
            return True
    return False


def get_files(root: str | Path, manifest: dict[str, Any]) -> list[str]:
    """List the files to deploy from a project directory.

    The manifest's `files` list, when present, restricts the selection
    (package.json is always included). Otherwise the project's .npmignore,
    or failing that its .gitignore, adds to the default ignore rules.

    Args:
        root: Project directory.
        manifest: Parsed package.json.

    Returns:
        Sorted absolute paths of regular files.
    """
    root = Path(root).resolve()
    patterns = IgnorePatterns()
    for name in IGNORE_FILES:
        ignore_file = root / name
        if ignore_file.exists():
            patterns.load_from_file(ignore_file)
            break

    whitelist = manifest.get("files")
    if whitelist is not None and not isinstance(whitelist, list):
        whitelist = None

    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"

        # Prune ignored directories and symlinks in place
        dirnames[:] = sorted(
            d for d in dirnames
            if not (current / d).is_symlink()
            and not patterns.should_ignore(prefix + d, is_dir=True)
        )

        for filename in sorted(filenames):
            path = current / filename
            rel_path = prefix + filename
            if path.is_symlink() or not path.is_file():
                continue
            if patterns.should_ignore(rel_path):
                continue
            if whitelist is not None and not _is_whitelisted(rel_path, whitelist):
                continue
            files.append(str(path))

    files.sort()
    logger.debug(f"Selected {len(files)} files in {root}")
    return files
