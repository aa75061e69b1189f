"""Data model shared by the hub and the viewers.

Everything here is immutable. Wire forms use camelCase keys because the
primary consumer is a browser client; Python attributes stay snake_case.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentcast.errors import MalformedMessageError

# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class HistoryKind(Enum):
    """Kinds of permanent history entries."""

    USER = "user"
    AGENT_TEXT = "agent_text"
    TOOL_GROUP = "tool_group"
    SYSTEM_INFO = "system_info"
    ERROR = "error"
    ABOUT = "about"
    SESSION_STATS = "session_stats"
    SESSION_END = "session_end"
    CONTEXT_COMPACTION = "context_compaction"


class ToolStatus(Enum):
    """Lifecycle of one tool call. Only ever advances."""

    PENDING = "Pending"
    CONFIRMING = "Confirming"
    EXECUTING = "Executing"
    SUCCESS = "Success"
    ERROR = "Error"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_TERMINAL_STATUSES = frozenset({ToolStatus.SUCCESS, ToolStatus.ERROR, ToolStatus.CANCELED})

_STATUS_RANK = {
    ToolStatus.PENDING: 0,
    ToolStatus.CONFIRMING: 1,
    ToolStatus.EXECUTING: 2,
    ToolStatus.SUCCESS: 3,
    ToolStatus.ERROR: 3,
    ToolStatus.CANCELED: 3,
}


class ConfirmationOutcome(Enum):
    """A viewer's answer to a tool confirmation request."""

    PROCEED_ONCE = "proceed_once"
    PROCEED_ALWAYS = "proceed_always"
    PROCEED_ALWAYS_SERVER = "proceed_always_server"
    PROCEED_ALWAYS_TOOL = "proceed_always_tool"
    MODIFY_WITH_EDITOR = "modify_with_editor"
    CANCEL = "cancel"


class SnapshotCategory(Enum):
    """Ephemeral state slots that hold a single current value."""

    FOOTER = "footer"
    LOADING = "loading"
    CONSOLE = "console"
    COMMANDS = "commands"
    MCP_SERVERS = "mcp_servers"


def default_snapshot(category: SnapshotCategory) -> Any:
    """Fresh default value for a snapshot slot."""
    match category:
        case SnapshotCategory.FOOTER | SnapshotCategory.LOADING:
            return None
        case SnapshotCategory.CONSOLE:
            return []
        case SnapshotCategory.COMMANDS:
            return {"commands": []}
        case SnapshotCategory.MCP_SERVERS:
            return {"servers": [], "blockedServers": []}


# -----------------------------------------------------------------------------
# Tool calls
# -----------------------------------------------------------------------------


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedMessageError(f"Missing or invalid {key!r}")
    return value


def _require_dict(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedMessageError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _require_number(data: dict[str, Any], key: str, default: float = 0.0) -> float:
    value = data.get(key, default)
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise MalformedMessageError(f"{key!r} must be a number")
    return float(value)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """One tool invocation, identified by a session-scoped ``call_id``."""

    call_id: str
    name: str
    status: ToolStatus
    description: str | None = None
    result_summary: str | None = None
    live_output: str | None = None

    def advance(self, update: ToolCall) -> ToolCall:
        """Apply ``update`` unless it would leave a terminal state or regress."""
        if self.status.is_terminal or update.status.rank < self.status.rank:
            return self
        return update

    def to_dict(self) -> dict[str, Any]:
        return {
            "callId": self.call_id,
            "name": self.name,
            "status": self.status.value,
            "description": self.description,
            "resultSummary": self.result_summary,
            "liveOutput": self.live_output,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ToolCall:
        data = _require_dict(data, "tool call")
        try:
            status = ToolStatus(data.get("status"))
        except ValueError as e:
            raise MalformedMessageError(f"Unknown tool status {data.get('status')!r}") from e
        return cls(
            call_id=_require_str(data, "callId"),
            name=str(data.get("name", "")),
            status=status,
            description=data.get("description"),
            result_summary=data.get("resultSummary"),
            live_output=data.get("liveOutput"),
        )


def tool_group_payload(tools: Iterable[ToolCall]) -> dict[str, Any]:
    """Build the ``tool_group`` payload for a set of calls."""
    return {"tools": [tool.to_dict() for tool in tools]}


def tools_from_payload(payload: dict[str, Any]) -> tuple[ToolCall, ...]:
    tools = payload.get("tools", [])
    if not isinstance(tools, list):
        raise MalformedMessageError("'tools' must be a list")
    return tuple(ToolCall.from_dict(tool) for tool in tools)


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """An immutable record in the append-only session history."""

    id: int
    kind: HistoryKind
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))

    @property
    def tools(self) -> tuple[ToolCall, ...]:
        return tools_from_payload(self.payload)

    @property
    def call_ids(self) -> frozenset[str]:
        return frozenset(tool.call_id for tool in self.tools)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": self.payload,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> HistoryEntry:
        data = _require_dict(data, "history entry")
        try:
            kind = HistoryKind(data.get("kind"))
        except ValueError as e:
            raise MalformedMessageError(f"Unknown history kind {data.get('kind')!r}") from e
        entry_id = data.get("id")
        if not isinstance(entry_id, int) or isinstance(entry_id, bool):
            raise MalformedMessageError("History entry 'id' must be an integer")
        created_at = _require_number(data, "createdAt")
        payload = _require_dict(data.get("payload", {}), "history payload")
        if kind is HistoryKind.TOOL_GROUP:
            tools_from_payload(payload)
        return cls(id=entry_id, kind=kind, payload=payload, created_at=created_at)


# -----------------------------------------------------------------------------
# Pending (ephemeral) items
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PendingText:
    """In-flight streaming agent response. Replaced wholesale on update."""

    text: str

    @property
    def kind(self) -> HistoryKind:
        return HistoryKind.AGENT_TEXT

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "payload": {"text": self.text}}


@dataclass(frozen=True, slots=True)
class PendingToolGroup:
    """Tool calls still in flight, displayed under one envelope."""

    tools: tuple[ToolCall, ...]

    @property
    def kind(self) -> HistoryKind:
        return HistoryKind.TOOL_GROUP

    @property
    def call_ids(self) -> frozenset[str]:
        return frozenset(tool.call_id for tool in self.tools)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "payload": tool_group_payload(self.tools)}


PendingItem = PendingText | PendingToolGroup


def pending_from_dict(data: Any) -> PendingItem | None:
    """Decode a ``pending_item`` payload. ``None`` means "clear all pending"."""
    if data is None:
        return None
    data = _require_dict(data, "pending item")
    payload = _require_dict(data.get("payload", {}), "pending payload")
    kind = data.get("kind")
    if kind == HistoryKind.AGENT_TEXT.value:
        return PendingText(text=str(payload.get("text", "")))
    if kind == HistoryKind.TOOL_GROUP.value:
        return PendingToolGroup(tools=tools_from_payload(payload))
    raise MalformedMessageError(f"Unsupported pending kind {kind!r}")


# -----------------------------------------------------------------------------
# Confirmations and action-required
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConfirmationRequest:
    """A tool call waiting for the operator's approval."""

    call_id: str
    tool_name: str
    details: dict[str, Any] = field(default_factory=dict)
    requested_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "callId": self.call_id,
            "toolName": self.tool_name,
            "confirmationDetails": self.details,
            "timestamp": self.requested_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ConfirmationRequest:
        data = _require_dict(data, "confirmation request")
        details = data.get("confirmationDetails") or {}
        return cls(
            call_id=_require_str(data, "callId"),
            tool_name=str(data.get("toolName", "")),
            details=_require_dict(details, "confirmationDetails"),
            requested_at=_require_number(data, "timestamp"),
        )


@dataclass(frozen=True, slots=True)
class ActionRequired:
    """Signals that the operator must act in the host terminal."""

    active: bool = False
    reason: str = "authentication"
    title: str = "CLI Action Required"
    message: str = "Please complete the action in the CLI terminal."

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "reason": self.reason,
            "title": self.title,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ActionRequired:
        data = _require_dict(data, "action required")
        defaults = cls()
        return cls(
            active=bool(data.get("active", False)),
            reason=str(data.get("reason", defaults.reason)),
            title=str(data.get("title", defaults.title)),
            message=str(data.get("message", defaults.message)),
        )
