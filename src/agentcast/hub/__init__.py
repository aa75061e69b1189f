"""Session-state broadcast hub."""

from agentcast.hub.confirmations import ConfirmationBroker, ConfirmationState
from agentcast.hub.events import (
    ActionRequiredChanged,
    ConfirmationRequested,
    ConfirmationWithdrawn,
    HistoryAppended,
    HistoryCleared,
    PendingChanged,
    SessionEvent,
    SnapshotChanged,
)
from agentcast.hub.hub import BroadcastHub
from agentcast.hub.registry import ConnectionRegistry, Transport, ViewerConnection
from agentcast.hub.session import Session
from agentcast.hub.store import SnapshotStore

__all__ = [
    "ActionRequiredChanged",
    "BroadcastHub",
    "ConfirmationBroker",
    "ConfirmationRequested",
    "ConfirmationState",
    "ConfirmationWithdrawn",
    "ConnectionRegistry",
    "HistoryAppended",
    "HistoryCleared",
    "PendingChanged",
    "Session",
    "SessionEvent",
    "SnapshotChanged",
    "SnapshotStore",
    "Transport",
    "ViewerConnection",
]
