"""Core module - Shared configuration, hashing, and types."""

from shipsync.core.config import (
    CREATE_RETRY,
    DEFAULT_HOST,
    DEFAULT_PORT,
    UPLOAD_RETRY,
    DeployConfig,
    RetryConfig,
)
from shipsync.core.hashing import FileEntry, compute_hash, hash_files
from shipsync.core.types import SessionState

__all__ = [
    # Config
    "CREATE_RETRY",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DeployConfig",
    "RetryConfig",
    "UPLOAD_RETRY",
    # Hashing
    "FileEntry",
    "compute_hash",
    "hash_files",
    # Types
    "SessionState",
]
