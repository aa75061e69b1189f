"""Reconciliation engine: folds the hub's event stream into one viewer's projection.

The stream is not curated for display. Streaming text arrives as a series of
pending replacements followed by a finalized entry, tool calls are reported
repeatedly as their status advances, and the same callId can show up in
several overlapping groups. The rules here turn that into a list with no
duplicate or orphaned rows:

* Consecutive ``agent_text`` finalizes that land within the merge window are
  joined into one entry.
* A finalized tool group takes the place of the pending group it overlaps
  most, and every other pending group touching the same calls is dropped.
* Once a callId has been finalized, later pending echoes of it are ignored
  and a terminal status is never overwritten.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Any

from agentcast.config.schema import DEFAULT_MERGE_WINDOW
from agentcast.errors import MalformedMessageError
from agentcast.protocol.messages import SNAPSHOT_MESSAGE_TYPES, Envelope, MessageType
from agentcast.protocol.models import (
    ActionRequired,
    ConfirmationRequest,
    HistoryEntry,
    HistoryKind,
    PendingItem,
    PendingText,
    PendingToolGroup,
    ToolCall,
    pending_from_dict,
    tool_group_payload,
)
from agentcast.viewer.projection import DisplayEntry, EntryState, Projection, ViewerState

log = logging.getLogger(__name__)

MERGE_SEPARATOR = "\n\n"

_SNAPSHOT_CATEGORIES = {message_type: category for category, message_type in SNAPSHOT_MESSAGE_TYPES.items()}


class ReconciliationEngine:
    """Per-viewer projection of one session.

    Args:
        merge_window: Seconds within which consecutive agent text finalizes
            are merged into one entry.
        clock: Source of "now" for pending timestamps and the merge window.
    """

    def __init__(
        self,
        merge_window: float = DEFAULT_MERGE_WINDOW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.merge_window = merge_window
        self._clock = clock
        self.projection = Projection()
        self.state = ViewerState()
        # (handle, finalize time) of the last finalized row if it was agent text
        self._last_text: tuple[int, float] | None = None

    @property
    def entries(self) -> tuple[DisplayEntry, ...]:
        return self.projection.entries

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def apply(self, envelope: Envelope) -> None:
        """Apply one hub-to-viewer envelope.

        Raises:
            MalformedMessageError: The envelope's payload does not match its type.
        """
        data = envelope.data
        match envelope.type:
            case MessageType.CONNECTION:
                self.state.welcome = _field(data, "message", str)
            case MessageType.HISTORY_SYNC:
                history = _field(data, "history", list)
                self.load_snapshot([HistoryEntry.from_dict(item) for item in history])
            case MessageType.HISTORY_ITEM:
                self.finalize(HistoryEntry.from_dict(data))
            case MessageType.PENDING_ITEM:
                item = pending_from_dict(data)
                if item is None:
                    self.clear_pending()
                else:
                    self.update_pending(item)
            case (
                MessageType.FOOTER_DATA
                | MessageType.LOADING_STATE
                | MessageType.CONSOLE_MESSAGES
                | MessageType.SLASH_COMMANDS
                | MessageType.MCP_SERVERS
            ):
                self.state.snapshots[_SNAPSHOT_CATEGORIES[envelope.type]] = data
            case MessageType.CLI_ACTION_REQUIRED:
                self.state.action_required = ActionRequired.from_dict(data)
            case MessageType.TOOL_CONFIRMATION:
                request = ConfirmationRequest.from_dict(data)
                self.state.confirmations[request.call_id] = request
            case MessageType.TOOL_CONFIRMATION_REMOVAL:
                self.state.confirmations.pop(_field(data, "callId", str), None)
            case MessageType.CLEAR:
                self.clear_all()
            case (
                MessageType.USER_MESSAGE
                | MessageType.INTERRUPT_REQUEST
                | MessageType.TOOL_CONFIRMATION_RESPONSE
            ):
                log.debug("Ignoring viewer-to-hub message %s", envelope.type.value)

    # -------------------------------------------------------------------------
    # Finalize
    # -------------------------------------------------------------------------

    def finalize(self, entry: HistoryEntry) -> DisplayEntry:
        """Fold a finalized history entry into the projection.

        Returns:
            The display row now holding the entry's content.
        """
        match entry.kind:
            case HistoryKind.AGENT_TEXT:
                return self._finalize_text(entry)
            case HistoryKind.TOOL_GROUP:
                row = self._finalize_tools(entry)
            case _:
                row = self.projection.append(self._final_row(entry))
        self._last_text = None
        return row

    def _final_row(self, entry: HistoryEntry, handle: int | None = None) -> DisplayEntry:
        return DisplayEntry(
            handle=handle if handle is not None else self.projection.new_handle(),
            kind=entry.kind,
            payload=dict(entry.payload),
            timestamp=entry.created_at,
            state=EntryState.FINAL,
            entry_id=entry.id,
        )

    def _finalize_text(self, entry: HistoryEntry) -> DisplayEntry:
        projection = self.projection
        now = self._clock()
        pending_handle = projection.pending_text
        projection.pending_text = None

        previous = self._mergeable_text(now) if pending_handle is not None else None
        if previous is not None:
            projection.remove(pending_handle)
            merged = replace(
                previous,
                payload={**previous.payload, "text": previous.text + MERGE_SEPARATOR + entry.text},
            )
            projection.replace(previous.handle, merged)
            self._last_text = (merged.handle, now)
            return merged

        if pending_handle is not None and projection.get(pending_handle) is not None:
            row = self._final_row(entry, handle=pending_handle)
            projection.replace(pending_handle, row)
        else:
            row = projection.append(self._final_row(entry))
        self._last_text = (row.handle, now)
        return row

    def _mergeable_text(self, now: float) -> DisplayEntry | None:
        if self._last_text is None:
            return None
        handle, finalized_at = self._last_text
        if now - finalized_at > self.merge_window:
            return None
        previous = self.projection.get(handle)
        if previous is None or previous.kind is not HistoryKind.AGENT_TEXT:
            return None
        return previous

    def _finalize_tools(self, entry: HistoryEntry) -> DisplayEntry:
        projection = self.projection
        tools = self._settle_terminal(entry.tools)
        call_ids = {tool.call_id for tool in tools}
        projection.terminal_seen |= call_ids

        finalized = HistoryEntry(
            id=entry.id,
            kind=entry.kind,
            payload={**entry.payload, **tool_group_payload(tools)},
            created_at=entry.created_at,
        )

        best_handle: int | None = None
        best_overlap = 0
        for handle, group in projection.pending_groups.items():
            overlap = len(call_ids & group.keys())
            if overlap > best_overlap:
                best_handle, best_overlap = handle, overlap

        if best_handle is not None:
            del projection.pending_groups[best_handle]
            row = self._final_row(finalized, handle=best_handle)
            projection.replace(best_handle, row)
        else:
            row = projection.append(self._final_row(finalized))

        stale = [h for h, group in projection.pending_groups.items() if call_ids & group.keys()]
        for handle in stale:
            log.debug("Dropping pending tool group %d duplicated by history entry %d", handle, entry.id)
            del projection.pending_groups[handle]
            projection.remove(handle)
        return row

    def _settle_terminal(self, tools: Iterable[ToolCall]) -> list[ToolCall]:
        """Keep the first terminal record of each callId; record new ones."""
        settled = []
        for tool in tools:
            known = self.projection.final_tools.get(tool.call_id)
            if known is not None:
                tool = known
            elif tool.status.is_terminal:
                self.projection.final_tools[tool.call_id] = tool
            settled.append(tool)
        return settled

    # -------------------------------------------------------------------------
    # Pending updates
    # -------------------------------------------------------------------------

    def update_pending(self, item: PendingItem) -> DisplayEntry | None:
        """Apply a pending update.

        Returns:
            The affected pending row, or None if the update was discarded.
        """
        match item:
            case PendingText():
                return self._update_pending_text(item)
            case PendingToolGroup():
                return self._update_pending_tools(item)

    def _update_pending_text(self, item: PendingText) -> DisplayEntry:
        projection = self.projection
        now = self._clock()
        handle = projection.pending_text
        current = projection.get(handle) if handle is not None else None

        if current is not None:
            row = replace(current, payload={"text": item.text}, timestamp=now)
            projection.replace(current.handle, row)
            return row

        row = DisplayEntry(
            handle=projection.new_handle(),
            kind=HistoryKind.AGENT_TEXT,
            payload={"text": item.text},
            timestamp=now,
            state=EntryState.PENDING_TEXT,
        )
        projection.append(row)
        projection.pending_text = row.handle
        return row

    def _update_pending_tools(self, item: PendingToolGroup) -> DisplayEntry | None:
        projection = self.projection
        live = [tool for tool in item.tools if tool.call_id not in projection.terminal_seen]
        if not live:
            log.debug("Ignoring pending update for finalized calls %s", sorted(item.call_ids))
            return None

        live_ids = {tool.call_id for tool in live}
        for handle, group in projection.pending_groups.items():
            if live_ids & group.keys():
                for tool in live:
                    current = group.get(tool.call_id)
                    group[tool.call_id] = current.advance(tool) if current else tool
                row = self._pending_group_row(handle, group)
                projection.replace(handle, row)
                return row

        handle = projection.new_handle()
        group = {tool.call_id: tool for tool in live}
        projection.pending_groups[handle] = group
        return projection.append(self._pending_group_row(handle, group))

    def _pending_group_row(self, handle: int, group: dict[str, ToolCall]) -> DisplayEntry:
        return DisplayEntry(
            handle=handle,
            kind=HistoryKind.TOOL_GROUP,
            payload=tool_group_payload(group.values()),
            timestamp=self._clock(),
            state=EntryState.PENDING_TOOLS,
        )

    # -------------------------------------------------------------------------
    # Clears and snapshots
    # -------------------------------------------------------------------------

    def clear_pending(self) -> None:
        """Drop pending text and every pending tool group. History is untouched."""
        self.projection.drop_pending()

    def clear_all(self) -> None:
        """Drop everything, including which calls have been finalized."""
        self.projection.reset()
        self._last_text = None

    def load_snapshot(self, entries: Iterable[HistoryEntry]) -> None:
        """Replace the projection with ``entries``, one row per entry.

        Merge eligibility comes from the last entry's own ``created_at``, so
        a late joiner only merges into history that was itself recent.
        """
        projection = self.projection
        rows = [self._final_row(entry) for entry in entries]
        projection.reset(rows)
        self._last_text = None

        for row in rows:
            if row.kind is HistoryKind.TOOL_GROUP:
                for tool in row.tools:
                    projection.terminal_seen.add(tool.call_id)
                    if tool.status.is_terminal:
                        projection.final_tools.setdefault(tool.call_id, tool)

        if rows and rows[-1].kind is HistoryKind.AGENT_TEXT:
            self._last_text = (rows[-1].handle, rows[-1].timestamp)


def _field(data: Any, key: str, expected: type) -> Any:
    if not isinstance(data, dict) or not isinstance(data.get(key), expected):
        raise MalformedMessageError(f"Expected {expected.__name__} {key!r} in payload")
    return data[key]
