"""Connection registry for attached viewers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Protocol

log = logging.getLogger(__name__)


class Transport(Protocol):
    """The slice of a WebSocket the hub needs (Starlette's WebSocket fits)."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class ViewerConnection:
    """One attached viewer with its own outbound queue.

    Frames are queued without waiting and written in order by a writer task
    owned by the connection, so a slow socket only delays its own viewer and
    a bootstrap sequence is never interleaved with live events. The first
    send failure stops the writer and reports the connection through
    ``on_failure``; later frames are refused.
    """

    def __init__(
        self,
        transport: Transport,
        on_failure: Callable[[ViewerConnection, BaseException], None] | None = None,
    ) -> None:
        self.transport = transport
        self.connected_at = time.time()
        self.error: BaseException | None = None
        self._on_failure = on_failure
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._writer: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def is_open(self) -> bool:
        return self.error is None and not self._stopped

    @property
    def backlog(self) -> int:
        """Frames queued but not yet written."""
        return self._outbox.qsize()

    def enqueue(self, frame: str) -> bool:
        """Queue a frame for this viewer. Returns False once the connection failed."""
        if not self.is_open:
            return False
        self._outbox.put_nowait(frame)
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())
        return True

    async def flush(self) -> None:
        """Wait until every queued frame has been written.

        Raises:
            Exception: The error that stopped the writer, if any.
        """
        await self._outbox.join()
        if self.error is not None:
            raise self.error

    async def send(self, frame: str) -> None:
        self.enqueue(frame)
        await self.flush()

    async def send_many(self, frames: Iterable[str]) -> None:
        for frame in frames:
            self.enqueue(frame)
        await self.flush()

    def stop(self) -> None:
        """Stop the writer and discard anything still queued."""
        self._stopped = True
        if self._writer is not None:
            self._writer.cancel()
        self._discard_backlog()

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self.transport.send_text(frame)
            except Exception as e:
                self.error = e
                self._discard_backlog()
                if self._on_failure is not None:
                    self._on_failure(self, e)
                return
            finally:
                self._outbox.task_done()

    def _discard_backlog(self) -> None:
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()

    def __repr__(self) -> str:
        return f"ViewerConnection({self.transport!r})"


class ConnectionRegistry:
    """Tracks attached viewers, keyed by their transport object.

    A connection whose writer fails is pruned from the registry.
    """

    def __init__(self) -> None:
        self._connections: dict[Any, ViewerConnection] = {}

    def add(self, transport: Transport) -> ViewerConnection:
        """Register a transport. Re-adding returns the existing connection."""
        connection = self._connections.get(transport)
        if connection is None:
            connection = ViewerConnection(transport, on_failure=self._prune)
            self._connections[transport] = connection
        return connection

    def remove(self, transport: Transport) -> ViewerConnection | None:
        """Unregister a transport and stop its writer. Unknown transports are ignored."""
        connection = self._connections.pop(transport, None)
        if connection is not None:
            connection.stop()
        return connection

    def get(self, transport: Transport) -> ViewerConnection | None:
        return self._connections.get(transport)

    def snapshot(self) -> list[ViewerConnection]:
        """Current connections, safe to iterate across suspension points."""
        return list(self._connections.values())

    def clear(self) -> list[ViewerConnection]:
        """Forget every connection. Writers keep running until the caller stops them."""
        connections = self.snapshot()
        self._connections.clear()
        return connections

    def _prune(self, connection: ViewerConnection, error: BaseException) -> None:
        if self._connections.get(connection.transport) is connection:
            del self._connections[connection.transport]
            log.debug("Pruning viewer %r after send failure: %r", connection, error)

    def __contains__(self, transport: object) -> bool:
        return transport in self._connections

    def __iter__(self) -> Iterator[ViewerConnection]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._connections)
