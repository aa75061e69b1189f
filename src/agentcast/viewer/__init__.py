"""Viewer side: projection, reconciliation and a reconnecting client."""

from agentcast.viewer.client import ViewerClient, websocket_url
from agentcast.viewer.projection import DisplayEntry, EntryState, Projection, ViewerState
from agentcast.viewer.reconciler import MERGE_SEPARATOR, ReconciliationEngine

__all__ = [
    "DisplayEntry",
    "EntryState",
    "MERGE_SEPARATOR",
    "Projection",
    "ReconciliationEngine",
    "ViewerClient",
    "ViewerState",
    "websocket_url",
]
