"""agentcast: mirror one live agent session onto any number of passive viewers."""

__version__ = "0.1.0"

# Public API
from agentcast.config import Config, get_config, load_config
from agentcast.errors import (
    AgentcastError,
    BindError,
    MalformedMessageError,
    ProtocolError,
    UnknownMessageTypeError,
)
from agentcast.hub import BroadcastHub, Session
from agentcast.protocol import (
    ActionRequired,
    ConfirmationOutcome,
    ConfirmationRequest,
    Envelope,
    HistoryEntry,
    HistoryKind,
    MessageType,
    PendingText,
    PendingToolGroup,
    SnapshotCategory,
    ToolCall,
    ToolStatus,
)
from agentcast.server import HubServer, create_app
from agentcast.viewer import DisplayEntry, ReconciliationEngine, ViewerClient

__all__ = [
    # Hub side
    "BroadcastHub",
    "HubServer",
    "Session",
    "create_app",
    # Viewer side
    "DisplayEntry",
    "ReconciliationEngine",
    "ViewerClient",
    # Data model
    "ActionRequired",
    "ConfirmationOutcome",
    "ConfirmationRequest",
    "Envelope",
    "HistoryEntry",
    "HistoryKind",
    "MessageType",
    "PendingText",
    "PendingToolGroup",
    "SnapshotCategory",
    "ToolCall",
    "ToolStatus",
    # Errors
    "AgentcastError",
    "BindError",
    "MalformedMessageError",
    "ProtocolError",
    "UnknownMessageTypeError",
    # Config
    "Config",
    "get_config",
    "load_config",
]
