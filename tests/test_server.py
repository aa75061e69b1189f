"""Tests for the HTTP/WebSocket routes and the bind contract."""

from __future__ import annotations

import asyncio
import errno
import socket
import time
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from agentcast.config import Config
from agentcast.errors import BindError
from agentcast.hub import BroadcastHub
from agentcast.protocol.models import HistoryKind
from agentcast.server import server as server_module
from agentcast.server.routes import create_app
from agentcast.server.server import HubServer, bind_socket

BOOTSTRAP_TYPES = [
    "connection",
    "history_sync",
    "footer_data",
    "loading_state",
    "console_messages",
    "slash_commands",
    "mcp_servers",
]


@pytest.fixture
def occupied_port() -> Iterator[int]:
    """A loopback port with a live listener on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


class TestBindSocket:
    """Tests for the ephemeral-port fallback."""

    def test_binds_requested_port(self) -> None:
        """A free port is used as-is."""
        sock, used_fallback = bind_socket("127.0.0.1", 0)
        try:
            assert used_fallback is False
            assert sock.getsockname()[1] > 0
        finally:
            sock.close()

    def test_falls_back_when_in_use(self, occupied_port: int) -> None:
        """A busy port falls back to an OS-assigned one."""
        sock, used_fallback = bind_socket("127.0.0.1", occupied_port)
        try:
            assert used_fallback is True
            assert sock.getsockname()[1] != occupied_port
        finally:
            sock.close()

    def test_second_failure_is_bind_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """If the fallback also fails, BindError is raised."""

        def always_busy(host: str, port: int) -> socket.socket:
            raise OSError(errno.EADDRINUSE, "Address already in use")

        monkeypatch.setattr(server_module, "_listen", always_busy)
        with pytest.raises(BindError) as exc_info:
            bind_socket("127.0.0.1", 8629)
        assert exc_info.value.port == 8629

    def test_other_errors_not_retried(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Only EADDRINUSE triggers the fallback."""
        calls: list[int] = []

        def denied(host: str, port: int) -> socket.socket:
            calls.append(port)
            raise OSError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(server_module, "_listen", denied)
        with pytest.raises(PermissionError):
            bind_socket("127.0.0.1", 80)
        assert calls == [80]


class TestRoutes:
    """Tests for the FastAPI app."""

    @pytest.fixture
    def hub(self) -> BroadcastHub:
        return BroadcastHub()

    @pytest.fixture
    def client(self, hub: BroadcastHub, tmp_path: Path) -> TestClient:
        return TestClient(create_app(hub, static_dir=tmp_path))

    def test_health(self, client: TestClient) -> None:
        """Health reports ok and the viewer count."""
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "clients": 0}

    def test_index_missing_bundle(self, client: TestClient) -> None:
        """Without a bundle the index is a 404."""
        assert client.get("/").status_code == 404

    def test_index_served(self, hub: BroadcastHub, tmp_path: Path) -> None:
        """index.html is served from the bundle directory."""
        (tmp_path / "index.html").write_text("<html>viewer</html>")
        client = TestClient(create_app(hub, static_dir=tmp_path))
        response = client.get("/")
        assert response.status_code == 200
        assert "viewer" in response.text

    def test_index_placeholder_shipped(self, hub: BroadcastHub) -> None:
        """Without a configured bundle the packaged placeholder page is served."""
        response = TestClient(create_app(hub)).get("/")
        assert response.status_code == 200
        assert "agentcast hub" in response.text

    def test_static_dir_expands_user(
        self, hub: BroadcastHub, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A configured bundle path may start with ~."""
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "bundle").mkdir()
        (tmp_path / "bundle" / "index.html").write_text("<html>custom</html>")
        response = TestClient(create_app(hub, static_dir="~/bundle")).get("/")
        assert "custom" in response.text

    def test_websocket_bootstrap(self, client: TestClient, hub: BroadcastHub) -> None:
        """A WebSocket viewer receives the bootstrap sequence."""
        with client.websocket_connect("/ws") as ws:
            types = [ws.receive_json()["type"] for _ in BOOTSTRAP_TYPES]
            assert types == BOOTSTRAP_TYPES
            assert client.get("/api/health").json()["clients"] == 1
        assert hub.client_count == 0

    def test_websocket_inbound(self, client: TestClient, hub: BroadcastHub) -> None:
        """Viewer chat reaches the submit handler."""
        received: list[str] = []
        hub.set_submit_handler(received.append)

        with client.websocket_connect("/ws") as ws:
            for _ in BOOTSTRAP_TYPES:
                ws.receive_json()
            ws.send_json({"type": "user_message", "data": {"content": " run tests "}})
            ws.send_text("not json")

        assert received == ["run tests"]

    def test_interrupt_reaches_engine_during_submit(
        self, client: TestClient, hub: BroadcastHub
    ) -> None:
        """A viewer's interrupt is read while its submit is still running."""
        interrupted = asyncio.Event()
        calls: list[str] = []

        async def submit(text: str) -> None:
            calls.append("submit-start")
            try:
                await asyncio.wait_for(interrupted.wait(), timeout=2.0)
                calls.append("submit-interrupted")
            except TimeoutError:
                calls.append("submit-timeout")

        def abort() -> None:
            calls.append("abort")
            interrupted.set()

        hub.set_submit_handler(submit)
        hub.set_abort_handler(abort)

        with client.websocket_connect("/ws") as ws:
            for _ in BOOTSTRAP_TYPES:
                ws.receive_json()
            ws.send_json({"type": "user_message", "content": "long task"})
            ws.send_json({"type": "interrupt_request"})
            deadline = time.monotonic() + 3.0
            while len(calls) < 3 and time.monotonic() < deadline:
                time.sleep(0.02)

        assert "abort" in calls
        assert calls[-1] == "submit-interrupted"


class TestHubServer:
    """Tests for the uvicorn lifecycle."""

    @pytest.mark.asyncio
    async def test_start_reports_bound_port(self, occupied_port: int) -> None:
        """start() returns the actually bound port when the requested one is busy."""
        hub = BroadcastHub()
        server = HubServer(hub, Config())
        port = await server.start(port=occupied_port, host="127.0.0.1")
        try:
            assert port != occupied_port
            assert server.is_running
            assert server.url == f"http://127.0.0.1:{port}"
            await hub.append_history(HistoryKind.USER, {"text": "hi"})
            assert server.status()["history"] == 1
        finally:
            await server.stop()
        assert not server.is_running
        assert server.port is None

    @pytest.mark.asyncio
    async def test_double_start_rejected(self) -> None:
        """A running server cannot be started again."""
        server = HubServer(BroadcastHub(), Config())
        await server.start(port=0, host="127.0.0.1")
        try:
            with pytest.raises(RuntimeError):
                await server.start(port=0, host="127.0.0.1")
        finally:
            await server.stop()
