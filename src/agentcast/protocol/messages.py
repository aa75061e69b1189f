"""Wire format: JSON envelopes exchanged over the viewer WebSocket.

Every frame is a JSON object::

    {"type": "<message type>", "data": <payload>, "timestamp": <float seconds>}

Hub-to-viewer frames always use this shape. Viewer-to-hub frames are accepted
either with the payload under ``data`` or with the payload fields flattened
next to ``type``, which is what browser clients tend to send.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentcast.errors import MalformedMessageError, UnknownMessageTypeError
from agentcast.protocol.models import (
    ActionRequired,
    ConfirmationOutcome,
    ConfirmationRequest,
    HistoryEntry,
    PendingItem,
    SnapshotCategory,
)


class MessageType(Enum):
    """All message types on the wire."""

    # hub -> viewer
    CONNECTION = "connection"
    HISTORY_SYNC = "history_sync"
    HISTORY_ITEM = "history_item"
    PENDING_ITEM = "pending_item"
    FOOTER_DATA = "footer_data"
    LOADING_STATE = "loading_state"
    CONSOLE_MESSAGES = "console_messages"
    SLASH_COMMANDS = "slash_commands"
    MCP_SERVERS = "mcp_servers"
    CLI_ACTION_REQUIRED = "cli_action_required"
    TOOL_CONFIRMATION = "tool_confirmation"
    TOOL_CONFIRMATION_REMOVAL = "tool_confirmation_removal"
    CLEAR = "clear"
    # viewer -> hub
    USER_MESSAGE = "user_message"
    INTERRUPT_REQUEST = "interrupt_request"
    TOOL_CONFIRMATION_RESPONSE = "tool_confirmation_response"


VIEWER_TO_HUB = frozenset(
    {
        MessageType.USER_MESSAGE,
        MessageType.INTERRUPT_REQUEST,
        MessageType.TOOL_CONFIRMATION_RESPONSE,
    }
)
HUB_TO_VIEWER = frozenset(MessageType) - VIEWER_TO_HUB

SNAPSHOT_MESSAGE_TYPES: dict[SnapshotCategory, MessageType] = {
    SnapshotCategory.FOOTER: MessageType.FOOTER_DATA,
    SnapshotCategory.LOADING: MessageType.LOADING_STATE,
    SnapshotCategory.CONSOLE: MessageType.CONSOLE_MESSAGES,
    SnapshotCategory.COMMANDS: MessageType.SLASH_COMMANDS,
    SnapshotCategory.MCP_SERVERS: MessageType.MCP_SERVERS,
}

DEFAULT_WELCOME = "Connected to agent session"


@dataclass(frozen=True, slots=True)
class Envelope:
    """One frame on the wire."""

    type: MessageType
    data: Any = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": self.data, "timestamp": self.timestamp}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))


def _load_object(raw: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessageError(f"Invalid JSON: {e}") from e
    if not isinstance(message, dict):
        raise MalformedMessageError(f"Expected a JSON object, got {type(message).__name__}")
    if not isinstance(message.get("type"), str):
        raise MalformedMessageError("Missing or invalid 'type'")
    return message


def decode_envelope(raw: str | bytes) -> Envelope:
    """Parse a frame into an Envelope.

    Raises:
        MalformedMessageError: The frame is not a JSON object with a string type.
        UnknownMessageTypeError: The type is not one of MessageType.
    """
    message = _load_object(raw)
    type_name = message["type"]
    try:
        message_type = MessageType(type_name)
    except ValueError:
        raise UnknownMessageTypeError(type_name) from None

    timestamp = message.get("timestamp")
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        timestamp = time.time()
    return Envelope(type=message_type, data=message.get("data"), timestamp=float(timestamp))


# -----------------------------------------------------------------------------
# Hub -> viewer constructors
# -----------------------------------------------------------------------------


def connection_message(text: str = DEFAULT_WELCOME) -> Envelope:
    return Envelope(MessageType.CONNECTION, {"message": text})


def history_sync_message(entries: Iterable[HistoryEntry]) -> Envelope:
    return Envelope(MessageType.HISTORY_SYNC, {"history": [e.to_dict() for e in entries]})


def history_item_message(entry: HistoryEntry) -> Envelope:
    return Envelope(MessageType.HISTORY_ITEM, entry.to_dict())


def pending_item_message(item: PendingItem | None) -> Envelope:
    return Envelope(MessageType.PENDING_ITEM, item.to_dict() if item is not None else None)


def snapshot_message(category: SnapshotCategory, value: Any) -> Envelope:
    return Envelope(SNAPSHOT_MESSAGE_TYPES[category], value)


def action_required_message(state: ActionRequired) -> Envelope:
    return Envelope(MessageType.CLI_ACTION_REQUIRED, state.to_dict())


def tool_confirmation_message(request: ConfirmationRequest) -> Envelope:
    return Envelope(MessageType.TOOL_CONFIRMATION, request.to_dict())


def tool_confirmation_removal_message(call_id: str) -> Envelope:
    return Envelope(MessageType.TOOL_CONFIRMATION_REMOVAL, {"callId": call_id})


def clear_message() -> Envelope:
    return Envelope(MessageType.CLEAR)


# -----------------------------------------------------------------------------
# Viewer -> hub
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UserMessage:
    """Chat text typed by the operator in a viewer."""

    content: str


@dataclass(frozen=True, slots=True)
class InterruptRequest:
    """Request to abort the current agent turn."""


@dataclass(frozen=True, slots=True)
class ConfirmationResponse:
    """The operator's answer to a pending tool confirmation."""

    call_id: str
    outcome: ConfirmationOutcome
    payload: Any = None


InboundMessage = UserMessage | InterruptRequest | ConfirmationResponse


def parse_inbound(raw: str | bytes) -> InboundMessage:
    """Parse a viewer-originated frame.

    Raises:
        MalformedMessageError: Bad JSON or missing/invalid fields.
        UnknownMessageTypeError: Not a viewer-to-hub message type.
    """
    message = _load_object(raw)
    type_name = message["type"]
    body = message["data"] if isinstance(message.get("data"), dict) else message

    match type_name:
        case MessageType.USER_MESSAGE.value:
            content = body.get("content")
            if not isinstance(content, str):
                raise MalformedMessageError("user_message requires string 'content'")
            return UserMessage(content=content)
        case MessageType.INTERRUPT_REQUEST.value:
            return InterruptRequest()
        case MessageType.TOOL_CONFIRMATION_RESPONSE.value:
            call_id = body.get("callId")
            if not isinstance(call_id, str) or not call_id:
                raise MalformedMessageError("tool_confirmation_response requires 'callId'")
            try:
                outcome = ConfirmationOutcome(body.get("outcome"))
            except ValueError as e:
                raise MalformedMessageError(f"Unknown outcome {body.get('outcome')!r}") from e
            return ConfirmationResponse(call_id=call_id, outcome=outcome, payload=body.get("payload"))
        case _:
            raise UnknownMessageTypeError(type_name)


def user_message(content: str) -> Envelope:
    return Envelope(MessageType.USER_MESSAGE, {"content": content})


def interrupt_request() -> Envelope:
    return Envelope(MessageType.INTERRUPT_REQUEST)


def confirmation_response(call_id: str, outcome: ConfirmationOutcome, payload: Any = None) -> Envelope:
    data: dict[str, Any] = {"callId": call_id, "outcome": outcome.value}
    if payload is not None:
        data["payload"] = payload
    return Envelope(MessageType.TOOL_CONFIRMATION_RESPONSE, data)
