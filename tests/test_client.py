"""Tests for the reconnecting ViewerClient."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable

import pytest

from agentcast.config import Config
from agentcast.hub import BroadcastHub
from agentcast.protocol.messages import Envelope, connection_message, history_item_message
from agentcast.protocol.models import ConfirmationOutcome, ConfirmationRequest
from agentcast.server.server import HubServer
from agentcast.viewer.client import ViewerClient, websocket_url
from agentcast.viewer.reconciler import ReconciliationEngine
from tests.utils import text_entry


async def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


class TestWebsocketUrl:
    """Tests for hub URL normalization."""

    def test_http_to_ws(self) -> None:
        """http URLs map to the /ws endpoint."""
        assert websocket_url("http://127.0.0.1:8629") == "ws://127.0.0.1:8629/ws"

    def test_https_to_wss(self) -> None:
        """https maps to wss."""
        assert websocket_url("https://example.test/") == "wss://example.test/ws"

    def test_bare_host_port(self) -> None:
        """A bare host:port is treated as http."""
        assert websocket_url("localhost:9000") == "ws://localhost:9000/ws"

    def test_explicit_ws_path_kept(self) -> None:
        """An explicit WebSocket path is left alone."""
        assert websocket_url("ws://h:1/custom") == "ws://h:1/custom"


class TestHandleFrame:
    """Tests for frame handling without a network."""

    def test_applies_and_notifies(self) -> None:
        """Frames are applied and the change callback fires."""
        seen: list[Envelope] = []

        def on_change(engine: ReconciliationEngine, envelope: Envelope) -> None:
            seen.append(envelope)

        client = ViewerClient("http://127.0.0.1:1", on_change=on_change)
        client._handle_frame(connection_message("hi").to_json())
        client._handle_frame(history_item_message(text_entry(1, "hello")).to_json())

        assert client.engine.state.welcome == "hi"
        assert [e.text for e in client.engine.entries] == ["hello"]
        assert len(seen) == 2

    def test_bad_frame_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        """Malformed frames are logged and skipped."""
        seen: list[Envelope] = []
        client = ViewerClient("http://127.0.0.1:1", on_change=lambda e, env: seen.append(env))
        with caplog.at_level(logging.WARNING, logger="agentcast"):
            assert client._handle_frame("{broken") is None
            assert client._handle_frame('{"type": "mystery"}') is None
        assert seen == []
        assert "Skipping frame" in caplog.text

    def test_bad_timestamp_in_payload_skipped(self) -> None:
        """A confirmation with a non-numeric timestamp is skipped, not fatal."""
        client = ViewerClient("http://127.0.0.1:1")
        frame = json.dumps(
            {
                "type": "tool_confirmation",
                "data": {"callId": "c1", "toolName": "edit", "timestamp": "soon"},
                "timestamp": 1.0,
            }
        )
        assert client._handle_frame(frame) is None
        assert client.engine.state.confirmations == {}
        client._handle_frame(connection_message("still reading").to_json())
        assert client.engine.state.welcome == "still reading"

    @pytest.mark.asyncio
    async def test_send_when_disconnected(self) -> None:
        """Sends report False while not connected."""
        client = ViewerClient("http://127.0.0.1:1")
        assert client.is_connected is False
        assert await client.send_user_message("hi") is False
        assert await client.send_interrupt() is False
        assert await client.send_confirmation_response("c1", ConfirmationOutcome.CANCEL) is False


class TestReconnect:
    """Tests for the reconnect policy."""

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self) -> None:
        """run() returns after the configured number of failed attempts."""
        client = ViewerClient("ws://127.0.0.1:1/ws", reconnect_attempts=2, reconnect_delay=0.01)
        await asyncio.wait_for(client.run(), timeout=10)
        assert client.is_connected is False


class TestLiveHub:
    """End-to-end tests against a real hub server."""

    @pytest.mark.asyncio
    async def test_viewer_mirrors_and_answers(self) -> None:
        """A client mirrors history and its confirmation answer reaches the hub."""
        hub = BroadcastHub()
        answers: list[tuple] = []
        hub.set_confirmation_handler(lambda *args: answers.append(args))
        await hub.append_text("before attach")

        server = HubServer(hub, Config())
        await server.start(port=0, host="127.0.0.1")
        client = ViewerClient(server.url, reconnect_attempts=0)
        task = asyncio.create_task(client.run())
        try:
            await _wait_for(lambda: len(client.engine.entries) == 1)
            await hub.request_confirmation(ConfirmationRequest("c1", "edit"))
            await _wait_for(lambda: "c1" in client.engine.state.confirmations)

            assert await client.send_confirmation_response("c1", ConfirmationOutcome.PROCEED_ONCE)
            await _wait_for(lambda: not client.engine.state.confirmations)

            assert answers == [("c1", ConfirmationOutcome.PROCEED_ONCE, None)]
            assert client.engine.entries[0].text == "before attach"
        finally:
            await client.close()
            await server.stop()
            await asyncio.wait_for(task, timeout=5)
