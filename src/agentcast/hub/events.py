"""Events the session engine publishes to the hub.

``SessionEvent`` is a closed union; ``BroadcastHub.publish`` matches on it
exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from agentcast.protocol.models import (
    ActionRequired,
    ConfirmationRequest,
    HistoryEntry,
    HistoryKind,
    PendingItem,
    SnapshotCategory,
)


@dataclass(frozen=True, slots=True)
class HistoryAppended:
    """A finalized history entry. The hub assigns its id."""

    kind: HistoryKind
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: float | None = None

    @classmethod
    def of(cls, entry: HistoryEntry) -> HistoryAppended:
        return cls(kind=entry.kind, payload=entry.payload, created_at=entry.created_at)


@dataclass(frozen=True, slots=True)
class PendingChanged:
    """The in-flight item changed. ``None`` clears all pending state."""

    item: PendingItem | None


@dataclass(frozen=True, slots=True)
class SnapshotChanged:
    category: SnapshotCategory
    value: Any


@dataclass(frozen=True, slots=True)
class ActionRequiredChanged:
    state: ActionRequired


@dataclass(frozen=True, slots=True)
class ConfirmationRequested:
    request: ConfirmationRequest


@dataclass(frozen=True, slots=True)
class ConfirmationWithdrawn:
    call_id: str


@dataclass(frozen=True, slots=True)
class HistoryCleared:
    """The operator cleared the session; history is truncated."""


SessionEvent = (
    HistoryAppended
    | PendingChanged
    | SnapshotChanged
    | ActionRequiredChanged
    | ConfirmationRequested
    | ConfirmationWithdrawn
    | HistoryCleared
)
