"""Persistent HTTP/2 connection to the deployment API.

This module provides:
- ConnectionAgent: Multiplexed connection with lazy repair after faults
- ConnectionState: Health of the underlying connection
- encode_body: Request body encoding (JSON for structured values)

The transport reports connection faults as they happen. The agent only marks
itself unhealthy at that point; the connection is rebuilt by the next
request, under a lock shared by all concurrent senders.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from shipsync.client.types import AgentClosedError
from shipsync.core.config import DEFAULT_PORT

logger = logging.getLogger(__name__)

Body = dict[str, Any] | list[Any] | str | bytes | None


@dataclass
class ConnectionState:
    """Health of the agent's connection."""

    healthy: bool = True
    last_error: BaseException | None = None


def encode_body(
    body: Body,
    headers: dict[str, str],
) -> bytes | None:
    """Encode a request body and set the matching headers.

    Structured values are serialized as compact JSON with a JSON
    content type. Any body sets Content-Length to its encoded size.

    Args:
        body: Request body.
        headers: Request headers, updated in place.

    Returns:
        Encoded body, or None when there is no body.
    """
    if body is None:
        return None

    if isinstance(body, bytes):
        content = body
    elif isinstance(body, str):
        content = body.encode("utf-8")
    else:
        headers["Content-Type"] = "application/json"
        content = json.dumps(body, separators=(",", ":")).encode("utf-8")

    headers["Content-Length"] = str(len(content))
    return content


class _FaultReportingTransport(httpx.AsyncHTTPTransport):
    """HTTP transport that reports connection-level failures."""

    def __init__(
        self,
        on_fault: Callable[[BaseException], None],
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._on_fault = on_fault

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        try:
            return await super().handle_async_request(request)
        except httpx.TransportError as e:
            self._on_fault(e)
            raise


@dataclass(eq=False)
class _Connection:
    """One generation of the underlying client."""

    generation: int
    client: httpx.AsyncClient
    in_flight: int = 0
    retired: bool = False


class ConnectionAgent:
    """One reusable, multiplexed connection to a fixed host.

    Usage:
        agent = ConnectionAgent("api.now.sh")
        response = await agent.send("/create", "POST", body={"files": []})
        await agent.close()

    The client and its HTTP/2 transport are built in the constructor; httpx
    opens the socket itself on the first request. Each rebuild starts a new
    connection generation: faults from older generations are ignored, and a
    replaced client is closed once its last in-flight request finishes.

    Status codes are never interpreted; only transport failures raise.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        on_fault: Callable[[BaseException], None] | None = None,
    ) -> None:
        """Initialize the agent and build its client.

        Args:
            host: Host name of the API.
            port: HTTPS port.
            timeout: Request timeout in seconds.
            verify_ssl: Whether to verify TLS certificates.
            on_fault: Observer called with each fault on the current connection.
        """
        self._host = host
        self._port = port
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._on_fault = on_fault

        self._state = ConnectionState()
        self._lock = asyncio.Lock()
        self._closed = False
        self._reconnects = 0
        self._generation = -1
        self._retired: list[_Connection] = []
        self._connection = self._connect()

    @property
    def base_url(self) -> str:
        """Get the base URL requests are sent to."""
        if self._port == DEFAULT_PORT:
            return f"https://{self._host}"
        return f"https://{self._host}:{self._port}"

    @property
    def healthy(self) -> bool:
        """Check if the current connection can be used as is."""
        return self._state.healthy

    @property
    def last_error(self) -> BaseException | None:
        """Get the most recent connection fault."""
        return self._state.last_error

    @property
    def reconnects(self) -> int:
        """Number of times the connection was rebuilt."""
        return self._reconnects

    @property
    def generation(self) -> int:
        """Generation of the current connection, starting at 0."""
        return self._connection.generation

    @property
    def closed(self) -> bool:
        """Check if the agent was closed."""
        return self._closed

    def _connect(self) -> _Connection:
        """Create the underlying client for the next generation."""
        self._generation += 1
        generation = self._generation
        transport = _FaultReportingTransport(
            on_fault=lambda error: self._on_transport_fault(generation, error),
            http2=True,
            verify=self._verify_ssl,
        )
        client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=self._timeout,
        )
        return _Connection(generation=generation, client=client)

    def _on_transport_fault(self, generation: int, error: BaseException) -> None:
        """Route a transport fault, dropping those of replaced connections."""
        if generation != self._connection.generation:
            logger.debug(f"Ignoring fault of replaced connection {generation}: {error!r}")
            return
        self.report_fault(error)

    def report_fault(self, error: BaseException) -> None:
        """Mark the current connection as broken.

        Nothing is reconnected here; the next send repairs the connection.

        Args:
            error: The connection-level failure.
        """
        logger.debug(f"Agent connection error: {error!r}")
        self._state.healthy = False
        self._state.last_error = error
        if self._on_fault is None:
            return
        try:
            self._on_fault(error)
        except Exception:
            logger.warning("Fault observer raised", exc_info=True)

    async def _acquire(self) -> _Connection:
        """Get a usable connection, rebuilding it after a fault."""
        async with self._lock:
            if self._closed:
                raise AgentClosedError("Connection agent is closed")

            if not self._state.healthy:
                logger.debug("Re-initializing agent after error")
                old = self._connection
                self._connection = self._connect()
                self._reconnects += 1
                self._state.healthy = True
                await self._retire(old)

            self._connection.in_flight += 1
            return self._connection

    async def _retire(self, connection: _Connection) -> None:
        """Close a replaced connection now, or when its requests finish."""
        connection.retired = True
        if connection.in_flight:
            self._retired.append(connection)
            return
        await self._close_client(connection)

    async def _release(self, connection: _Connection) -> None:
        """Finish one request on a connection."""
        connection.in_flight -= 1
        if connection.retired and connection.in_flight == 0 and connection in self._retired:
            self._retired.remove(connection)
            await self._close_client(connection)

    @staticmethod
    async def _close_client(connection: _Connection) -> None:
        logger.debug(f"Closing connection {connection.generation}")
        with contextlib.suppress(httpx.TransportError):
            await connection.client.aclose()

    async def send(
        self,
        path: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Body = None,
    ) -> httpx.Response:
        """Send a request over the shared connection.

        Args:
            path: Request path, e.g. "/create".
            method: HTTP method.
            headers: Extra request headers.
            body: Structured value (sent as JSON), text or raw bytes.

        Returns:
            The response, whatever its status code.

        Raises:
            AgentClosedError: If the agent was closed.
            httpx.TransportError: On connection-level failure.
        """
        request_headers = dict(headers or {})
        content = encode_body(body, request_headers)

        connection = await self._acquire()
        try:
            return await connection.client.request(
                method,
                path,
                headers=request_headers,
                content=content,
            )
        finally:
            await self._release(connection)

    async def close(self) -> None:
        """Release every connection. The agent cannot be used afterwards."""
        async with self._lock:
            if self._closed:
                return
            logger.debug("Closing agent")
            self._closed = True
            for connection in [*self._retired, self._connection]:
                await self._close_client(connection)
            self._retired.clear()

    async def __aenter__(self) -> ConnectionAgent:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()
