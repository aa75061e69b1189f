"""HTTP and WebSocket surface for the broadcast hub."""

from agentcast.server.routes import create_app, get_static_dir
from agentcast.server.server import HubServer, bind_socket

__all__ = [
    "HubServer",
    "bind_socket",
    "create_app",
    "get_static_dir",
]
