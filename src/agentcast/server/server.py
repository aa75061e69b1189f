"""Hub web server lifecycle management."""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import socket
import sys
import time
from typing import Any

from agentcast.config import Config, get_config
from agentcast.errors import BindError
from agentcast.hub import BroadcastHub

log = logging.getLogger(__name__)


def _listen(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(128)
    except OSError:
        sock.close()
        raise
    sock.setblocking(False)
    return sock


def bind_socket(host: str, port: int) -> tuple[socket.socket, bool]:
    """Bind a listening socket, falling back once to an ephemeral port.

    Args:
        host: Interface to bind.
        port: Preferred port. 0 asks the OS for any free port.

    Returns:
        The listening socket and whether the fallback port was used.

    Raises:
        BindError: The preferred port was in use and the fallback also failed.
        OSError: Binding failed for a reason other than the port being in use.
    """
    try:
        return _listen(host, port), False
    except OSError as e:
        if e.errno != errno.EADDRINUSE:
            raise
        log.warning("Port %d is in use, falling back to an ephemeral port", port)

    try:
        return _listen(host, 0), True
    except OSError as e:
        raise BindError(host, port, e) from e


class HubServer:
    """Runs uvicorn in a background task, serving one BroadcastHub."""

    def __init__(self, hub: BroadcastHub, config: Config | None = None) -> None:
        self.hub = hub
        self.config = config if config is not None else get_config()
        self._server: Any = None
        self._task: asyncio.Task[None] | None = None
        self._host: str | None = None
        self._port: int | None = None
        self._start_time: float | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def port(self) -> int | None:
        return self._port

    @property
    def url(self) -> str | None:
        if self._port is None:
            return None
        host = self._host or "127.0.0.1"
        if ":" in host:
            host = f"[{host}]"
        return f"http://{host}:{self._port}"

    async def start(self, port: int | None = None, host: str | None = None) -> int:
        """Bind and start serving.

        Args:
            port: Port to listen on. Defaults to the configured port.
            host: Interface to bind. Defaults to the configured host.

        Returns:
            The port actually bound, which differs from the requested one
            when it was in use.

        Raises:
            RuntimeError: The server is already running.
            BindError: No port could be bound.
        """
        if self.is_running:
            raise RuntimeError(f"Hub server already running on port {self._port}")

        host = host if host is not None else self.config.server.host
        port = port if port is not None else self.config.server.port

        sock, used_fallback = bind_socket(host, port)
        bound_port = sock.getsockname()[1]
        if used_fallback:
            log.info(f"Port {port} was busy; using port {bound_port}")

        # Import here to avoid startup overhead for viewer-only use
        import uvicorn

        from agentcast.server.routes import create_app

        app = create_app(self.hub, self.config.server.static_dir)
        uvicorn_config = uvicorn.Config(
            app,
            log_level="warning",
            access_log=False,
            ws_ping_interval=None,
        )
        self._server = uvicorn.Server(uvicorn_config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))
        self._host = host
        self._port = bound_port
        self._start_time = time.time()

        while not self._server.started:
            if self._task.done():
                self._task.result()
                raise RuntimeError("Hub server exited during startup")
            await asyncio.sleep(0.01)

        log.info(f"Hub server started on {self.url}")
        return bound_port

    async def stop(self) -> None:
        """Close every viewer and stop serving."""
        if not self._task:
            return

        await self.hub.close_all("Server shutting down")

        self._server.should_exit = True
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

        log.info(f"Hub server stopped (was on port {self._port})")

        self._server = None
        self._task = None
        self._port = None
        self._start_time = None

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "port": self._port,
            "uptime": time.time() - self._start_time if self._start_time else 0,
            **self.hub.status(),
        }
