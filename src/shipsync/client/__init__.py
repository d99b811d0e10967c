"""Client module - Connection agent, retry policy, and sync engine.

Components:
- **ConnectionAgent**: One multiplexed HTTP/2 connection, repaired lazily
- **RetryPolicy**: Bounded retry with backoff, jitter and bail
- **SyncEngine**: Two-phase create/upload deployment protocol
"""

from shipsync.client.agent import ConnectionAgent, ConnectionState, encode_body
from shipsync.client.engine import SyncEngine, to_relative
from shipsync.client.files import IgnorePatterns, get_files, read_manifest
from shipsync.client.retry import Ok, Retryable, RetryPolicy, Terminal, compute_delay
from shipsync.client.types import (
    AgentClosedError,
    DeployError,
    DeploymentSession,
    ForbiddenError,
    InitializationError,
    InputError,
    ResponseError,
    SyncFailedError,
    SyncResult,
    UnknownContentError,
    UploadError,
)

__all__ = [
    # Agent
    "ConnectionAgent",
    "ConnectionState",
    "encode_body",
    # Engine
    "SyncEngine",
    "to_relative",
    # Files
    "IgnorePatterns",
    "get_files",
    "read_manifest",
    # Retry
    "Ok",
    "Retryable",
    "RetryPolicy",
    "Terminal",
    "compute_delay",
    # Types
    "AgentClosedError",
    "DeployError",
    "DeploymentSession",
    "ForbiddenError",
    "InitializationError",
    "InputError",
    "ResponseError",
    "SyncFailedError",
    "SyncResult",
    "UnknownContentError",
    "UploadError",
]
