"""Deployment synchronization engine.

Architecture:
    project dir → get_files → hash_files → create → upload

Protocol:
- **create**: send the manifest ({sha, size} per content hash) and learn
  which contents the server is missing. 403 bails, other non-200 statuses
  are retried with the create budget.
- **upload**: push every missing content concurrently over the shared
  connection, each with its own retry budget. A 403 bails for that file
  only; failed files never cancel their siblings.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import httpx

from shipsync.client.agent import Body, ConnectionAgent
from shipsync.client.files import get_files, read_manifest
from shipsync.client.retry import Ok, Outcome, Retryable, RetryPolicy, Terminal
from shipsync.client.types import (
    CompleteCallback,
    DeployError,
    DeploymentSession,
    ErrorCallback,
    ForbiddenError,
    InitializationError,
    RetryCallback,
    SyncFailedError,
    SyncResult,
    UnknownContentError,
    UploadCallback,
    UploadError,
)
from shipsync.core.config import DeployConfig
from shipsync.core.hashing import FileEntry, hash_files
from shipsync.core.types import SessionState

logger = logging.getLogger(__name__)

# Connection failures and unparsable response bodies; anything else is fatal
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (httpx.TransportError, ValueError)


def to_relative(path: str, base: str) -> str:
    """Strip the project directory from a file path.

    Args:
        path: Absolute file path.
        base: Project directory, with or without a trailing separator.

    Returns:
        POSIX path relative to base.

    Raises:
        ValueError: If path is not inside base.
    """
    prefix = base if base.endswith(os.sep) else base + os.sep
    if not path.startswith(prefix):
        raise ValueError(f"{path} is not inside {base}")
    return path[len(prefix):].replace(os.sep, "/")


class SyncEngine:
    """Creates a deployment and uploads the contents it is missing.

    Usage:
        engine = SyncEngine(
            DeployConfig(token="..."),
            on_upload=lambda entry: print(entry.path),
        )
        url = await engine.create("/path/to/project")
        result = await engine.upload()
        await engine.close()
    """

    def __init__(
        self,
        config: DeployConfig,
        agent: ConnectionAgent | None = None,
        on_upload: UploadCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_retry: RetryCallback | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Deployment target, token and retry budgets.
            agent: Connection to use (a new one is opened by default).
            on_upload: Called with each file once it is uploaded.
            on_complete: Called once every missing file is uploaded.
            on_error: Called with a SyncFailedError if any upload failed.
            on_retry: Called with (error, attempt) before each retry delay.
            sleep: Awaitable sleep used between retries.
        """
        self._config = config
        self._agent = agent or ConnectionAgent(
            config.host,
            port=config.port,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
        )
        self._on_upload = on_upload
        self._on_complete = on_complete
        self._on_error = on_error

        self._create_policy = RetryPolicy(
            config.create_retry,
            on_retry=on_retry,
            sleep=sleep,
            retryable_exceptions=RETRYABLE_EXCEPTIONS,
        )
        self._upload_policy = RetryPolicy(
            config.upload_retry,
            on_retry=on_retry,
            sleep=sleep,
            retryable_exceptions=RETRYABLE_EXCEPTIONS,
        )

        self._state = SessionState.IDLE
        self._files: dict[str, FileEntry] = {}
        self._session: DeploymentSession | None = None
        self._sync_amount: int | None = None

    @property
    def state(self) -> SessionState:
        """Get the session state."""
        return self._state

    @property
    def files(self) -> Mapping[str, FileEntry]:
        """Get the file store (content hash to entry)."""
        return MappingProxyType(self._files)

    @property
    def session(self) -> DeploymentSession | None:
        """Get the deployment session, once created."""
        return self._session

    @property
    def url(self) -> str | None:
        """Get the deployment URL, once created."""
        return self._session.url if self._session else None

    @property
    def sync_amount(self) -> int:
        """Total size in bytes of the contents the server asked for.

        Computed once per session; it does not shrink as uploads complete.
        """
        if self._session is None:
            return 0
        if self._sync_amount is None:
            self._sync_amount = sum(
                self._files[sha].size for sha in self._session.missing
            )
        return self._sync_amount

    async def create(self, path: str | Path, force_new: bool | None = None) -> str:
        """Create a deployment for a project directory.

        Args:
            path: Project directory.
            force_new: Override the configured force_new flag.

        Returns:
            The deployment URL.

        Raises:
            InputError: If the directory or its package.json is unreadable.
            ForbiddenError: If the server refused the deployment.
            InitializationError: If the create budget was exhausted.
        """
        root = Path(path).resolve()
        manifest = read_manifest(root)

        files = get_files(root, manifest)
        logger.debug(f"Hashing {len(files)} files")
        store = hash_files(files)

        if force_new is None:
            force_new = self._config.force_new
        session = await self.negotiate(store, str(root), force_new=force_new)
        return session.url

    async def negotiate(
        self,
        files: Mapping[str, FileEntry],
        base_path: str,
        force_new: bool = False,
    ) -> DeploymentSession:
        """Send the manifest and learn which contents are missing.

        Args:
            files: File store, content hash to entry.
            base_path: Project directory the entry paths live in.
            force_new: Ask for a new deployment even if one matches.

        Returns:
            The created session.
        """
        if self._state is not SessionState.IDLE:
            raise DeployError(f"Cannot create a deployment in state {self._state.value}")

        self._files = dict(files)
        self._state = SessionState.CREATING

        body = {
            "forceNew": force_new,
            "files": [
                {"sha": sha, "size": entry.size}
                for sha, entry in self._files.items()
            ],
        }

        async def attempt() -> Outcome[dict[str, Any]]:
            response = await self._fetch("/create", body)

            # no retry on 403
            if response.status_code == 403:
                logger.debug("Bailing on creating due to 403")
                return Terminal(ForbiddenError(response.status_code))

            if response.status_code != 200:
                return Retryable(InitializationError(response.status_code))

            return Ok(response.json())

        try:
            deployment = await self._create_policy.execute(attempt)
            self._session = self._open_session(deployment, base_path)
        except Exception:
            self._state = SessionState.FAILED
            raise

        self._state = SessionState.CREATED
        logger.info(
            f"Created deployment {self._session.id} "
            f"({len(self._session.missing)}/{len(self._files)} files missing)"
        )
        return self._session

    def _open_session(self, deployment: dict[str, Any], base_path: str) -> DeploymentSession:
        """Build the session from a create response."""
        try:
            deployment_id = deployment["deploymentId"]
            url = deployment["url"]
        except (KeyError, TypeError) as e:
            raise DeployError(f"Malformed create response: missing {e}") from e

        missing = list(dict.fromkeys(deployment.get("missing") or []))
        unknown = [sha for sha in missing if sha not in self._files]
        if unknown:
            raise UnknownContentError(unknown)

        return DeploymentSession(
            id=deployment_id,
            url=url,
            missing=tuple(missing),
            token=self._config.token,
            base_path=base_path,
        )

    async def upload(self) -> SyncResult:
        """Upload every missing content concurrently.

        All uploads settle before this returns. Emits on_upload per file,
        then on_complete, or on_error with a SyncFailedError.

        Returns:
            The uploaded hashes and the per-file failures.
        """
        if self._state is not SessionState.CREATED or self._session is None:
            raise DeployError(f"Cannot upload in state {self._state.value}")

        session = self._session
        self._state = SessionState.SYNCING
        logger.debug(f"Syncing {len(session.missing)} files ({self.sync_amount} bytes)")

        uploaded: list[str] = []
        failures: list[UploadError] = []

        async def upload_one(sha: str) -> None:
            entry = self._files[sha]
            try:
                await self._upload_file(entry, session)
            except Exception as e:
                error = UploadError(sha, entry.path, e)
                logger.warning(str(error))
                session.mark_failed(error)
                failures.append(error)
                return

            session.mark_uploaded(sha)
            uploaded.append(sha)
            if self._on_upload:
                self._on_upload(entry)

        results = await asyncio.gather(
            *(upload_one(sha) for sha in session.pending),
            return_exceptions=True,
        )

        # Anything left here was raised by an event handler
        for result in results:
            if isinstance(result, BaseException):
                self._state = SessionState.FAILED
                raise result

        if failures:
            self._state = SessionState.FAILED
            if self._on_error:
                self._on_error(SyncFailedError(failures))
        else:
            self._state = SessionState.COMPLETED
            if self._on_complete:
                self._on_complete()

        return SyncResult(uploaded=uploaded, failed=failures)

    async def _upload_file(self, entry: FileEntry, session: DeploymentSession) -> None:
        """Upload one file with the upload retry budget."""
        body = {
            "sha": entry.content_hash,
            "data": entry.data.decode("utf-8", errors="replace"),
            "file": to_relative(entry.path, session.base_path),
            "deploymentId": session.id,
        }

        async def attempt() -> Outcome[None]:
            response = await self._fetch("/sync", body)

            # no retry on 403
            if response.status_code == 403:
                logger.debug(f"Bailing on syncing {entry.path} due to 403")
                return Terminal(ForbiddenError(response.status_code))

            return Ok(None)

        await self._upload_policy.execute(attempt)

    async def _fetch(self, path: str, body: Body) -> httpx.Response:
        """Send an authenticated POST request."""
        headers = {"Authorization": f"Bearer {self._config.token}"}
        return await self._agent.send(path, "POST", headers=headers, body=body)

    async def close(self) -> None:
        """Close the connection."""
        await self._agent.close()

    async def __aenter__(self) -> SyncEngine:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()
