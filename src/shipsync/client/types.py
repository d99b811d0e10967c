"""Shared types and dataclasses for deployments.

This module provides:
- DeployError and subclasses: Exception taxonomy of the client
- DeploymentSession: Server-side deployment state known to the client
- SyncResult: Outcome of the upload phase
- Type aliases for event callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from shipsync.core.hashing import FileEntry


class DeployError(Exception):
    """Base exception for deployment errors."""


class InputError(DeployError):
    """Project directory or manifest could not be read."""


class AgentClosedError(DeployError):
    """Request issued on a closed connection agent."""


class ResponseError(DeployError):
    """Server answered with an error status."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class ForbiddenError(ResponseError):
    """Server refused the request (HTTP 403). Never retried."""

    def __init__(self, status: int = 403) -> None:
        super().__init__("Response error", status)


class InitializationError(ResponseError):
    """Deployment could not be created; retryable."""

    def __init__(self, status: int) -> None:
        super().__init__(f"Deployment initialization failed (HTTP {status})", status)


class UnknownContentError(DeployError):
    """Server requested content that is not in the local file store."""

    def __init__(self, hashes: list[str]) -> None:
        self.hashes = hashes
        super().__init__(f"Server requested unknown content: {', '.join(hashes)}")


class UploadError(DeployError):
    """A single file failed to upload after its retries.

    Attributes:
        sha: Content hash of the file.
        path: Local path of the file.
        cause: The terminal error.
    """

    def __init__(self, sha: str, path: str, cause: BaseException) -> None:
        self.sha = sha
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to upload {path} ({sha[:8]}): {cause}")


class SyncFailedError(DeployError):
    """One or more files failed to upload.

    Successful uploads are kept; `failures` lists every failed file in the
    order the failures happened.
    """

    def __init__(self, failures: list[UploadError]) -> None:
        if not failures:
            raise ValueError("SyncFailedError requires at least one failure")
        self.failures = failures
        super().__init__(
            f"{len(failures)} file(s) failed to upload; first: {failures[0]}"
        )

    @property
    def first(self) -> UploadError:
        """The first terminal error encountered."""
        return self.failures[0]


@dataclass
class DeploymentSession:
    """A deployment created on the server.

    Attributes:
        id: Deployment id returned by the server.
        url: Public URL of the deployment.
        missing: Content hashes the server asked for, in server order.
        token: Bearer token the session was created with.
        base_path: Project directory the file paths are relative to.
        uploaded: Hashes uploaded so far.
        failed: Hashes whose upload failed terminally.
    """

    id: str
    url: str
    missing: tuple[str, ...]
    token: str
    base_path: str
    uploaded: set[str] = field(default_factory=set)
    failed: dict[str, UploadError] = field(default_factory=dict)

    @property
    def pending(self) -> list[str]:
        """Missing hashes that are neither uploaded nor failed."""
        return [
            sha for sha in self.missing
            if sha not in self.uploaded and sha not in self.failed
        ]

    def mark_uploaded(self, sha: str) -> None:
        """Record a successful upload."""
        if sha not in self.missing:
            raise ValueError(f"{sha} was not requested by the server")
        self.uploaded.add(sha)

    def mark_failed(self, error: UploadError) -> None:
        """Record a terminal upload failure."""
        self.failed[error.sha] = error


@dataclass
class SyncResult:
    """Result of the upload phase."""

    uploaded: list[str]
    failed: list[UploadError]

    @property
    def success(self) -> bool:
        """Check if every requested file was uploaded."""
        return not self.failed


# Type aliases for engine event callbacks
UploadCallback = Callable[[FileEntry], None]
CompleteCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]
RetryCallback = Callable[[BaseException, int], None]
