"""Tests for the connection agent."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from shipsync.client.agent import ConnectionAgent, encode_body
from shipsync.client.types import AgentClosedError

BASE = "https://api.test"


class TestEncodeBody:
    """Tests for request body encoding."""

    def test_structured_body_is_json(self) -> None:
        """Should encode dicts as compact JSON with JSON content type."""
        headers: dict[str, str] = {}
        content = encode_body({"sha": "abc", "size": 3}, headers)

        assert content == b'{"sha":"abc","size":3}'
        assert headers["Content-Type"] == "application/json"
        assert headers["Content-Length"] == str(len(content))

    def test_length_counts_encoded_bytes(self) -> None:
        """Should measure Content-Length in bytes, not characters."""
        headers: dict[str, str] = {}
        content = encode_body({"data": "héllo"}, headers)

        assert content is not None
        assert json.loads(content) == {"data": "héllo"}
        assert headers["Content-Length"] == str(len(content))

    def test_raw_bytes_untouched(self) -> None:
        """Should send bytes as-is without a JSON content type."""
        headers: dict[str, str] = {}
        content = encode_body(b"\x00\x01raw", headers)

        assert content == b"\x00\x01raw"
        assert "Content-Type" not in headers
        assert headers["Content-Length"] == "5"

    def test_text_body(self) -> None:
        """Should UTF-8 encode text bodies."""
        headers: dict[str, str] = {}
        assert encode_body("ü", headers) == "ü".encode()
        assert headers["Content-Length"] == "2"

    def test_no_body(self) -> None:
        """Should leave headers alone without a body."""
        headers: dict[str, str] = {}
        assert encode_body(None, headers) is None
        assert headers == {}


class TestConnectionAgent:
    """Tests for ConnectionAgent requests and recovery."""

    @pytest.mark.asyncio
    async def test_send_json_request(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should send JSON with auth headers passed through."""
        httpx_mock.add_response(url=f"{BASE}/create", method="POST", json={"ok": True})

        async with ConnectionAgent("api.test") as agent:
            response = await agent.send(
                "/create",
                "POST",
                headers={"Authorization": "Bearer tok"},
                body={"forceNew": False, "files": []},
            )

        assert response.status_code == 200
        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Content-Length"] == str(len(request.content))
        assert json.loads(request.content) == {"forceNew": False, "files": []}

    @pytest.mark.asyncio
    async def test_status_codes_not_interpreted(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return error statuses instead of raising."""
        httpx_mock.add_response(url=f"{BASE}/sync", method="POST", status_code=500)

        async with ConnectionAgent("api.test") as agent:
            response = await agent.send("/sync", "POST", body={})

        assert response.status_code == 500
        assert agent.healthy

    @pytest.mark.asyncio
    async def test_no_reconnect_without_fault(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should reuse the same connection while healthy."""
        httpx_mock.add_response(url=f"{BASE}/a")
        httpx_mock.add_response(url=f"{BASE}/b")

        async with ConnectionAgent("api.test") as agent:
            await agent.send("/a")
            await agent.send("/b")

            assert agent.reconnects == 0
            assert agent.healthy

    @pytest.mark.asyncio
    async def test_transport_error_marks_unhealthy(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise the transport error and record the fault."""
        httpx_mock.add_exception(httpx.ConnectError("connection reset"), url=f"{BASE}/a")
        faults: list[BaseException] = []

        async with ConnectionAgent("api.test", on_fault=faults.append) as agent:
            with pytest.raises(httpx.ConnectError):
                await agent.send("/a")

            assert not agent.healthy
            assert isinstance(agent.last_error, httpx.ConnectError)
            assert len(faults) == 1
            # Nothing is rebuilt at fault time
            assert agent.reconnects == 0

    @pytest.mark.asyncio
    async def test_reconnects_once_after_transport_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should rebuild the connection on the next send, exactly once."""
        httpx_mock.add_exception(httpx.ConnectError("connection reset"), url=f"{BASE}/a")
        httpx_mock.add_response(url=f"{BASE}/b")
        httpx_mock.add_response(url=f"{BASE}/c")

        async with ConnectionAgent("api.test") as agent:
            with pytest.raises(httpx.ConnectError):
                await agent.send("/a")

            response = await agent.send("/b")
            assert response.status_code == 200
            assert agent.reconnects == 1
            assert agent.healthy

            await agent.send("/c")
            assert agent.reconnects == 1

    @pytest.mark.asyncio
    async def test_out_of_band_fault(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should repair after a fault reported outside any request."""
        httpx_mock.add_response(url=f"{BASE}/a")

        async with ConnectionAgent("api.test") as agent:
            agent.report_fault(ConnectionResetError("peer gone"))
            assert not agent.healthy

            await agent.send("/a")

            assert agent.reconnects == 1
            assert agent.healthy

    @pytest.mark.asyncio
    async def test_concurrent_sends_reconnect_once(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should let only one of many concurrent senders reconnect."""
        for i in range(5):
            httpx_mock.add_response(url=f"{BASE}/sync/{i}")

        async with ConnectionAgent("api.test") as agent:
            agent.report_fault(ConnectionResetError("peer gone"))

            responses = await asyncio.gather(
                *(agent.send(f"/sync/{i}") for i in range(5))
            )

            assert [r.status_code for r in responses] == [200] * 5
            assert agent.reconnects == 1

    @pytest.mark.asyncio
    async def test_late_fault_of_replaced_connection_ignored(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should not reconnect again when a request on a replaced connection fails late."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_failure(request: httpx.Request) -> httpx.Response:
            started.set()
            await release.wait()
            raise httpx.ReadError("stream reset", request=request)

        httpx_mock.add_callback(slow_failure, url=f"{BASE}/b")
        httpx_mock.add_exception(httpx.ConnectError("connection reset"), url=f"{BASE}/a")
        httpx_mock.add_response(url=f"{BASE}/a2")
        httpx_mock.add_response(url=f"{BASE}/c")

        async with ConnectionAgent("api.test") as agent:
            first_client = agent._connection.client
            pending = asyncio.create_task(agent.send("/b"))
            await started.wait()

            with pytest.raises(httpx.ConnectError):
                await agent.send("/a")
            await agent.send("/a2")

            assert agent.reconnects == 1
            assert agent.generation == 1
            # /b still runs on the replaced client
            assert not first_client.is_closed

            release.set()
            with pytest.raises(httpx.ReadError):
                await pending

            assert first_client.is_closed
            assert agent.healthy

            await agent.send("/c")
            assert agent.reconnects == 1

    @pytest.mark.asyncio
    async def test_fault_observer_error_keeps_transport_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise the transport error even if the fault observer fails."""
        httpx_mock.add_exception(httpx.ConnectError("connection reset"), url=f"{BASE}/a")

        def broken_observer(error: BaseException) -> None:
            raise ValueError("observer bug")

        async with ConnectionAgent("api.test", on_fault=broken_observer) as agent:
            with pytest.raises(httpx.ConnectError):
                await agent.send("/a")

            assert not agent.healthy
            assert isinstance(agent.last_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_send_after_close(self) -> None:
        """Should refuse to send once closed; closing twice is harmless."""
        agent = ConnectionAgent("api.test")
        await agent.close()
        await agent.close()

        assert agent.closed
        with pytest.raises(AgentClosedError):
            await agent.send("/a")

    @pytest.mark.asyncio
    async def test_construction_sends_nothing(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should build the client up front and leave connecting to the first send."""
        agent = ConnectionAgent("api.test")

        assert agent.generation == 0
        assert agent.healthy
        assert not agent._connection.client.is_closed
        assert httpx_mock.get_requests() == []
        await agent.close()

    def test_base_url(self) -> None:
        """Should omit the default port from the base URL."""
        assert ConnectionAgent("api.test").base_url == "https://api.test"
        assert ConnectionAgent("api.test", port=8443).base_url == "https://api.test:8443"
