"""FastAPI routes: viewer bundle, health check and the viewer WebSocket."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from agentcast import __version__
from agentcast.hub import BroadcastHub

log = logging.getLogger(__name__)


def get_static_dir() -> Path:
    """Get the path to the bundled viewer files."""
    return Path(__file__).parent / "static"


def create_app(hub: BroadcastHub, static_dir: Path | str | None = None) -> FastAPI:
    """Create the FastAPI application serving ``hub``.

    Args:
        hub: The hub viewers attach to.
        static_dir: Directory holding the viewer bundle (``~`` is expanded).
            Defaults to the placeholder page shipped in the package's
            ``static`` directory.
    """
    app = FastAPI(
        title="agentcast",
        description="Live mirror of an agent session for browser and terminal viewers",
        version=__version__,
    )

    bundle_dir = Path(static_dir).expanduser() if static_dir is not None else get_static_dir()
    if bundle_dir.exists():
        app.mount("/static", StaticFiles(directory=str(bundle_dir)), name="static")

    _register_routes(app, hub, bundle_dir)
    return app


def _register_routes(app: FastAPI, hub: BroadcastHub, bundle_dir: Path) -> None:
    @app.get("/")
    async def index() -> FileResponse:
        """Serve the viewer page."""
        index_path = bundle_dir / "index.html"
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="Viewer bundle not found")
        return FileResponse(index_path)

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        return {"status": "ok", "clients": hub.client_count}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """Attach a viewer, then feed its frames back to the hub."""
        await websocket.accept()
        try:
            await hub.attach(websocket)
        except Exception as e:
            log.debug(f"Viewer bootstrap failed: {e}")
            return

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is not None:
                    await hub.route_inbound(websocket, raw)
        finally:
            hub.detach(websocket)
