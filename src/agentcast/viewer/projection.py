"""Viewer-side projection: the ordered display list a presentation layer renders.

The projection is a plain data structure. All reconciliation rules live in
``agentcast.viewer.reconciler``; this module only offers the positional
operations those rules are written in terms of.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentcast.protocol.models import (
    ActionRequired,
    ConfirmationRequest,
    HistoryKind,
    SnapshotCategory,
    ToolCall,
    tools_from_payload,
)


class EntryState(Enum):
    """Whether a display entry is permanent or still in flight."""

    FINAL = "final"
    PENDING_TEXT = "pending_text"
    PENDING_TOOLS = "pending_tools"


@dataclass(frozen=True, slots=True)
class DisplayEntry:
    """One rendered row.

    ``handle`` is stable for the lifetime of the row, including when a
    pending row is promoted in place. ``entry_id`` is the hub's history id and
    is only set on finalized rows.
    """

    handle: int
    kind: HistoryKind
    payload: dict[str, Any]
    timestamp: float
    state: EntryState = EntryState.FINAL
    entry_id: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is not EntryState.FINAL

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))

    @property
    def tools(self) -> tuple[ToolCall, ...]:
        if self.kind is not HistoryKind.TOOL_GROUP:
            return ()
        return tools_from_payload(self.payload)


class Projection:
    """Ordered display entries plus the indexes reconciliation needs.

    Attributes:
        pending_text: Handle of the pending text row, if any.
        pending_groups: Pending tool-group handle -> {callId -> ToolCall}, in
            creation order.
        terminal_seen: callIds that have appeared in a finalized tool group.
        final_tools: The finalized record for every terminal callId.
    """

    def __init__(self) -> None:
        self._entries: list[DisplayEntry] = []
        self._next_handle = 1
        self.pending_text: int | None = None
        self.pending_groups: dict[int, dict[str, ToolCall]] = {}
        self.terminal_seen: set[str] = set()
        self.final_tools: dict[str, ToolCall] = {}

    @property
    def entries(self) -> tuple[DisplayEntry, ...]:
        return tuple(self._entries)

    def new_handle(self) -> int:
        handle = self._next_handle
        self._next_handle += 1
        return handle

    def append(self, entry: DisplayEntry) -> DisplayEntry:
        self._entries.append(entry)
        return entry

    def index_of(self, handle: int) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.handle == handle:
                return index
        return None

    def get(self, handle: int) -> DisplayEntry | None:
        index = self.index_of(handle)
        return self._entries[index] if index is not None else None

    def replace(self, handle: int, entry: DisplayEntry) -> bool:
        """Swap the row with ``handle`` for ``entry``, keeping its position."""
        index = self.index_of(handle)
        if index is None:
            return False
        self._entries[index] = entry
        return True

    def remove(self, handle: int) -> DisplayEntry | None:
        index = self.index_of(handle)
        if index is None:
            return None
        return self._entries.pop(index)

    def drop_pending(self) -> None:
        """Remove every pending row and its index entries."""
        self._entries = [e for e in self._entries if not e.is_pending]
        self.pending_text = None
        self.pending_groups.clear()

    def reset(self, entries: list[DisplayEntry] | None = None) -> None:
        self._entries = list(entries or [])
        self.pending_text = None
        self.pending_groups.clear()
        self.terminal_seen.clear()
        self.final_tools.clear()

    def __iter__(self) -> Iterator[DisplayEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class ViewerState:
    """Non-list state a viewer tracks alongside the projection.

    A snapshot category missing from ``snapshots`` has not been received
    yet, which is different from having received an empty value.
    """

    welcome: str | None = None
    snapshots: dict[SnapshotCategory, Any] = field(default_factory=dict)
    action_required: ActionRequired | None = None
    confirmations: dict[str, ConfirmationRequest] = field(default_factory=dict)

    def has_snapshot(self, category: SnapshotCategory) -> bool:
        return category in self.snapshots

    def snapshot(self, category: SnapshotCategory, default: Any = None) -> Any:
        return self.snapshots.get(category, default)
