"""Reconnecting WebSocket viewer that keeps a local projection of the session."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import websockets
from websockets.exceptions import WebSocketException

from agentcast.config.schema import DEFAULT_MERGE_WINDOW
from agentcast.errors import ProtocolError
from agentcast.protocol.messages import (
    Envelope,
    confirmation_response,
    decode_envelope,
    interrupt_request,
    user_message,
)
from agentcast.protocol.models import ConfirmationOutcome
from agentcast.viewer.reconciler import ReconciliationEngine

log = logging.getLogger(__name__)

ChangeCallback = Callable[[ReconciliationEngine, Envelope], None]


def websocket_url(url: str) -> str:
    """Turn a hub URL into its WebSocket endpoint.

    ``http://host:port`` becomes ``ws://host:port/ws``; ``ws://`` URLs with an
    explicit path are returned unchanged.
    """
    parts = urlsplit(url if "://" in url else f"http://{url}")
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    path = parts.path if parts.path not in ("", "/") else "/ws"
    return urlunsplit((scheme, parts.netloc, path, parts.query, ""))


class ViewerClient:
    """Passive viewer of one hub.

    Every successful connection starts from a fresh ReconciliationEngine: the
    hub's bootstrap replays everything needed, so nothing carries over.

    Args:
        url: Hub URL (``http://``, ``ws://`` or bare ``host:port``).
        merge_window: Passed to each ReconciliationEngine.
        reconnect_attempts: Consecutive failed attempts before giving up.
        reconnect_delay: Seconds between attempts.
        on_change: Called after every applied envelope.
        clock: Clock for the reconciliation engine.
    """

    def __init__(
        self,
        url: str,
        merge_window: float = DEFAULT_MERGE_WINDOW,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 2.0,
        on_change: ChangeCallback | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.url = websocket_url(url)
        self.merge_window = merge_window
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.on_change = on_change
        self._clock = clock
        self.engine = self._new_engine()
        self._ws: Any = None  # websockets ClientConnection
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def _new_engine(self) -> ReconciliationEngine:
        return ReconciliationEngine(merge_window=self.merge_window, clock=self._clock)

    async def run(self) -> None:
        """Connect and consume frames until closed or out of reconnect attempts."""
        self._closing = False
        attempts = 0

        while not self._closing:
            try:
                async with websockets.connect(self.url) as ws:
                    self._ws = ws
                    attempts = 0
                    self.engine = self._new_engine()
                    log.info("Connected to %s", self.url)
                    async for raw in ws:
                        self._handle_frame(raw)
                log.info("Connection to %s closed", self.url)
            except (OSError, WebSocketException) as e:
                log.debug("Connection to %s failed: %s", self.url, e)
            finally:
                self._ws = None

            if self._closing:
                break
            if attempts >= self.reconnect_attempts:
                log.warning("Giving up on %s after %d reconnect attempts", self.url, attempts)
                break
            attempts += 1
            log.info(
                "Reconnecting to %s in %.1fs (attempt %d/%d)",
                self.url,
                self.reconnect_delay,
                attempts,
                self.reconnect_attempts,
            )
            await asyncio.sleep(self.reconnect_delay)

    def _handle_frame(self, raw: str | bytes) -> Envelope | None:
        try:
            envelope = decode_envelope(raw)
            self.engine.apply(envelope)
        except ProtocolError as e:
            log.warning("Skipping frame from hub: %s", e)
            return None

        if self.on_change is not None:
            self.on_change(self.engine, envelope)
        return envelope

    async def send(self, envelope: Envelope) -> bool:
        """Send one envelope to the hub. Returns False when not connected."""
        ws = self._ws
        if ws is None:
            return False
        try:
            await ws.send(envelope.to_json())
        except WebSocketException as e:
            log.debug("Send to %s failed: %s", self.url, e)
            return False
        return True

    async def send_user_message(self, content: str) -> bool:
        return await self.send(user_message(content))

    async def send_interrupt(self) -> bool:
        return await self.send(interrupt_request())

    async def send_confirmation_response(
        self,
        call_id: str,
        outcome: ConfirmationOutcome,
        payload: Any = None,
    ) -> bool:
        return await self.send(confirmation_response(call_id, outcome, payload))

    async def close(self) -> None:
        """Stop reconnecting and close the current connection."""
        self._closing = True
        if self._ws is not None:
            await self._ws.close()
