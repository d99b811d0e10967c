"""Content hashing for shipsync.

This module provides:
- FileEntry: immutable file content keyed by its digest
- compute_hash: SHA-1 digest of a byte string
- hash_files: build the content-addressed file store from a list of paths
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    """A file's content and the path it was read from.

    The content hash identifies the bytes, not the path: two files with the
    same content share one entry.
    """

    content_hash: str
    path: str
    data: bytes

    @property
    def size(self) -> int:
        """Size of the content in bytes."""
        return len(self.data)


def compute_hash(data: bytes) -> str:
    """Compute the hex SHA-1 digest of data.

    Args:
        data: Bytes to hash.

    Returns:
        40-character lowercase hex digest.
    """
    return hashlib.sha1(data).hexdigest()


def hash_files(paths: Iterable[str | Path]) -> dict[str, FileEntry]:
    """Read files and index them by content hash.

    When several paths hold identical content, the first one in iteration
    order is kept.

    Args:
        paths: Absolute file paths, in listing order.

    Returns:
        Mapping of content hash to FileEntry.
    """
    store: dict[str, FileEntry] = {}
    for path in paths:
        data = Path(path).read_bytes()
        content_hash = compute_hash(data)
        if content_hash in store:
            logger.debug(f"Duplicate content {content_hash[:8]} at {path}")
            continue
        store[content_hash] = FileEntry(content_hash=content_hash, path=str(path), data=data)
    return store
