"""Data model and wire format shared by the hub and viewers."""

from agentcast.protocol.messages import (
    ConfirmationResponse,
    Envelope,
    InboundMessage,
    InterruptRequest,
    MessageType,
    UserMessage,
    decode_envelope,
    parse_inbound,
)
from agentcast.protocol.models import (
    ActionRequired,
    ConfirmationOutcome,
    ConfirmationRequest,
    HistoryEntry,
    HistoryKind,
    PendingItem,
    PendingText,
    PendingToolGroup,
    SnapshotCategory,
    ToolCall,
    ToolStatus,
)

__all__ = [
    "ActionRequired",
    "ConfirmationOutcome",
    "ConfirmationRequest",
    "ConfirmationResponse",
    "Envelope",
    "HistoryEntry",
    "HistoryKind",
    "InboundMessage",
    "InterruptRequest",
    "MessageType",
    "PendingItem",
    "PendingText",
    "PendingToolGroup",
    "SnapshotCategory",
    "ToolCall",
    "ToolStatus",
    "UserMessage",
    "decode_envelope",
    "parse_inbound",
]
