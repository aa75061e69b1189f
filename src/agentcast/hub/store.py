"""Authoritative in-memory state for one mirrored session."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from agentcast.protocol.models import (
    ActionRequired,
    HistoryEntry,
    HistoryKind,
    PendingItem,
    PendingText,
    PendingToolGroup,
    SnapshotCategory,
    default_snapshot,
)

log = logging.getLogger(__name__)


class SnapshotStore:
    """History log, current pending items and ephemeral snapshot slots.

    Only the hub writes here. The pending items are tracked with the same
    callId rules viewers apply, so a late joiner can be replayed exactly what
    a long-connected viewer is showing.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._history: list[HistoryEntry] = []
        self._next_id = 1
        self._pending: list[PendingItem] = []
        self._finalized_call_ids: set[str] = set()
        self._snapshots: dict[SnapshotCategory, Any] = {
            category: default_snapshot(category) for category in SnapshotCategory
        }
        self.action_required = ActionRequired()

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def pending_items(self) -> tuple[PendingItem, ...]:
        return tuple(self._pending)

    def append(
        self,
        kind: HistoryKind,
        payload: dict[str, Any] | None = None,
        created_at: float | None = None,
    ) -> HistoryEntry:
        """Append a history entry and retire the pending state it finalizes."""
        entry = HistoryEntry(
            id=self._next_id,
            kind=kind,
            payload=dict(payload or {}),
            created_at=self._clock() if created_at is None else created_at,
        )
        self._next_id += 1
        self._history.append(entry)

        if kind is HistoryKind.AGENT_TEXT:
            self._pending = [p for p in self._pending if not isinstance(p, PendingText)]
        elif kind is HistoryKind.TOOL_GROUP:
            call_ids = entry.call_ids
            self._finalized_call_ids |= call_ids
            self._pending = [
                p
                for p in self._pending
                if not (isinstance(p, PendingToolGroup) and p.call_ids & call_ids)
            ]
        return entry

    def set_pending(self, item: PendingItem | None) -> None:
        """Record a pending update. ``None`` drops all pending items."""
        match item:
            case None:
                self._pending.clear()
            case PendingText():
                for index, existing in enumerate(self._pending):
                    if isinstance(existing, PendingText):
                        self._pending[index] = item
                        return
                self._pending.append(item)
            case PendingToolGroup():
                self._merge_pending_tools(item)

    def _merge_pending_tools(self, item: PendingToolGroup) -> None:
        live = [t for t in item.tools if t.call_id not in self._finalized_call_ids]
        if not live:
            log.debug("Ignoring pending tool update for finalized calls %s", sorted(item.call_ids))
            return

        live_ids = {t.call_id for t in live}
        for index, existing in enumerate(self._pending):
            if isinstance(existing, PendingToolGroup) and existing.call_ids & live_ids:
                merged = {t.call_id: t for t in existing.tools}
                for tool in live:
                    current = merged.get(tool.call_id)
                    merged[tool.call_id] = current.advance(tool) if current else tool
                self._pending[index] = PendingToolGroup(tools=tuple(merged.values()))
                return
        self._pending.append(PendingToolGroup(tools=tuple(live)))

    def snapshot(self, category: SnapshotCategory) -> Any:
        return self._snapshots[category]

    def set_snapshot(self, category: SnapshotCategory, value: Any) -> None:
        self._snapshots[category] = value

    def clear(self) -> None:
        """Truncate history and drop pending state. Entry ids keep counting."""
        self._history.clear()
        self._pending.clear()
        self._finalized_call_ids.clear()
