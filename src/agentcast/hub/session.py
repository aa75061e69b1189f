"""The state a hub owns for one mirrored session."""

from __future__ import annotations

from dataclasses import dataclass, field

from agentcast.hub.confirmations import ConfirmationBroker
from agentcast.hub.registry import ConnectionRegistry
from agentcast.hub.store import SnapshotStore
from agentcast.protocol.messages import DEFAULT_WELCOME


@dataclass
class Session:
    """Explicitly owned session state, handed to the hub by the host.

    There is exactly one writer (the hub) and one event loop, so none of
    the members are locked.
    """

    store: SnapshotStore = field(default_factory=SnapshotStore)
    registry: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    confirmations: ConfirmationBroker = field(default_factory=ConfirmationBroker)
    welcome: str = DEFAULT_WELCOME
