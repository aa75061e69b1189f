"""Correlation of tool confirmation requests with viewer responses.

Per callId the lifecycle is ``REQUESTED -> ANSWERED | WITHDRAWN``. Both end
states are final: a request is consumed by exactly one response, and a
response that arrives after the request was withdrawn is dropped.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from enum import Enum

from agentcast.protocol.models import ConfirmationRequest

log = logging.getLogger(__name__)

# Closed callIds remembered for diagnostics; older ones are forgotten.
CLOSED_HISTORY_LIMIT = 256


class ConfirmationState(Enum):
    """Lifecycle state of one confirmation request."""

    REQUESTED = "requested"
    ANSWERED = "answered"
    WITHDRAWN = "withdrawn"


class ConfirmationBroker:
    """Pending confirmation set plus the outcome of recently closed requests.

    Exactly-once delivery only depends on the pending set. The closed record
    is bounded by ``closed_limit`` and only feeds ``state()``.
    """

    def __init__(self, closed_limit: int = CLOSED_HISTORY_LIMIT) -> None:
        self._pending: dict[str, ConfirmationRequest] = {}
        self._closed: OrderedDict[str, ConfirmationState] = OrderedDict()
        self._closed_limit = closed_limit

    @property
    def pending(self) -> list[ConfirmationRequest]:
        """Open requests in the order they were raised."""
        return list(self._pending.values())

    def request(self, request: ConfirmationRequest) -> None:
        """Open a request. Re-issuing a callId replaces the earlier request."""
        self._pending.pop(request.call_id, None)
        self._pending[request.call_id] = request
        self._closed.pop(request.call_id, None)

    def withdraw(self, call_id: str) -> bool:
        """Close a request without an answer (tool canceled upstream)."""
        if self._pending.pop(call_id, None) is None:
            return False
        self._close(call_id, ConfirmationState.WITHDRAWN)
        return True

    def respond(self, call_id: str) -> ConfirmationRequest | None:
        """Consume the request for ``call_id``.

        Returns the request on the first response only. Repeated, late and
        unknown responses return None.
        """
        request = self._pending.pop(call_id, None)
        if request is None:
            log.debug(
                "Dropping confirmation response for %s (state: %s)",
                call_id,
                self.state(call_id) or "unknown or closed",
            )
            return None
        self._close(call_id, ConfirmationState.ANSWERED)
        return request

    def _close(self, call_id: str, state: ConfirmationState) -> None:
        self._closed.pop(call_id, None)
        self._closed[call_id] = state
        while len(self._closed) > self._closed_limit:
            self._closed.popitem(last=False)

    def state(self, call_id: str) -> ConfirmationState | None:
        """State of ``call_id``, or None if unknown or closed too long ago."""
        if call_id in self._pending:
            return ConfirmationState.REQUESTED
        return self._closed.get(call_id)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
