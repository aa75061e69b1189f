"""Exception hierarchy for agentcast.

Only bind failures ever reach the host application. Protocol errors are
raised by the wire codec and caught at the hub and viewer boundaries, where
they are logged and the offending message is dropped.
"""

from __future__ import annotations


class AgentcastError(Exception):
    """Base class for all agentcast errors."""


class ProtocolError(AgentcastError):
    """A wire message could not be understood.

    Raised when:
    - The frame is not valid JSON or not a JSON object
    - The ``type`` field is missing or not a string
    - A required payload field is missing or has the wrong type
    """


class MalformedMessageError(ProtocolError):
    """The frame is not a well-formed envelope or its payload is invalid."""


class UnknownMessageTypeError(ProtocolError):
    """The envelope carries a ``type`` this side does not handle."""

    def __init__(self, message_type: str) -> None:
        super().__init__(f"Unknown message type: {message_type!r}")
        self.message_type = message_type


class BindError(AgentcastError):
    """No listening socket could be bound, not even on an ephemeral port."""

    def __init__(self, host: str, port: int, cause: OSError) -> None:
        super().__init__(
            f"Failed to bind {host}:{port} (in use) and fallback to an "
            f"ephemeral port also failed: {cause}"
        )
        self.host = host
        self.port = port
        self.cause = cause
