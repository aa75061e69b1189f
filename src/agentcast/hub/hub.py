"""Broadcast hub: fans session state out to viewers and routes their input back."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from agentcast.errors import MalformedMessageError, UnknownMessageTypeError
from agentcast.hub.events import (
    ActionRequiredChanged,
    ConfirmationRequested,
    ConfirmationWithdrawn,
    HistoryAppended,
    HistoryCleared,
    PendingChanged,
    SessionEvent,
    SnapshotChanged,
)
from agentcast.hub.registry import Transport, ViewerConnection
from agentcast.hub.session import Session
from agentcast.protocol.messages import (
    ConfirmationResponse,
    Envelope,
    InterruptRequest,
    UserMessage,
    action_required_message,
    clear_message,
    connection_message,
    history_item_message,
    history_sync_message,
    parse_inbound,
    pending_item_message,
    snapshot_message,
    tool_confirmation_message,
    tool_confirmation_removal_message,
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
    tool_group_payload,
)

log = logging.getLogger(__name__)

SubmitHandler = Callable[[str], Awaitable[None] | None]
AbortHandler = Callable[[], Awaitable[None] | None]
ConfirmationHandler = Callable[[str, ConfirmationOutcome, Any], Awaitable[None] | None]


class BroadcastHub:
    """Owns the authoritative session state and mirrors it to every viewer.

    All state changes happen synchronously inside ``publish``/``attach``
    before the first await, so concurrent callers on the same event loop
    always observe a consistent store. Outbound frames are queued per viewer
    and written by that viewer's own writer task, so ``publish`` never waits
    on a socket. Awaitable session handlers run as background tasks, so a
    long submit never holds up the same viewer's interrupt or confirmation
    answer.
    """

    def __init__(self, session: Session | None = None) -> None:
        self.session = session if session is not None else Session()
        self._submit_handler: SubmitHandler | None = None
        self._abort_handler: AbortHandler | None = None
        self._confirmation_handler: ConfirmationHandler | None = None
        self._handler_tasks: set[asyncio.Task[None]] = set()

    @property
    def client_count(self) -> int:
        return len(self.session.registry)

    # -------------------------------------------------------------------------
    # Session engine handlers
    # -------------------------------------------------------------------------

    def set_submit_handler(self, handler: SubmitHandler | None) -> None:
        """Receive chat text submitted from a viewer."""
        self._submit_handler = handler

    def set_abort_handler(self, handler: AbortHandler | None) -> None:
        """Receive interrupt requests. The session decides whether to honor them."""
        self._abort_handler = handler

    def set_confirmation_handler(self, handler: ConfirmationHandler | None) -> None:
        """Receive the single accepted answer for each confirmation request."""
        self._confirmation_handler = handler

    # -------------------------------------------------------------------------
    # Viewer lifecycle
    # -------------------------------------------------------------------------

    async def attach(self, transport: Transport) -> ViewerConnection:
        """Register a viewer and replay the current session state to it.

        Registration and queueing of the bootstrap snapshot happen in one
        synchronous step, so the bootstrap always precedes live events on
        this viewer. Returns once the bootstrap has been written.

        Raises:
            Exception: Whatever the transport raised while sending the
                bootstrap. The viewer is detached first.
        """
        connection = self.session.registry.add(transport)
        for envelope in self._bootstrap():
            connection.enqueue(envelope.to_json())
        try:
            await connection.flush()
        except Exception:
            self.session.registry.remove(transport)
            log.debug("Bootstrap to %r failed; viewer detached", transport)
            raise
        log.debug("Viewer attached (%d connected)", self.client_count)
        return connection

    def detach(self, transport: Transport) -> None:
        """Forget a viewer. Safe to call more than once."""
        if self.session.registry.remove(transport) is not None:
            log.debug("Viewer detached (%d connected)", self.client_count)

    def _bootstrap(self) -> list[Envelope]:
        store = self.session.store
        envelopes = [
            connection_message(self.session.welcome),
            history_sync_message(store.history),
        ]
        envelopes.extend(
            snapshot_message(category, store.snapshot(category)) for category in SnapshotCategory
        )
        envelopes.extend(
            tool_confirmation_message(request) for request in self.session.confirmations.pending
        )
        envelopes.extend(pending_item_message(item) for item in store.pending_items)
        if store.action_required.active:
            envelopes.append(action_required_message(store.action_required))
        return envelopes

    async def flush(self, timeout: float | None = None) -> None:
        """Wait until every viewer has been sent everything queued so far.

        Viewers whose writer fails are pruned, not raised. With a timeout,
        viewers still writing when it expires are left as they are.
        """
        connections = self.session.registry.snapshot()
        if not connections:
            return
        flushes = asyncio.gather(
            *(connection.flush() for connection in connections),
            return_exceptions=True,
        )
        try:
            await asyncio.wait_for(flushes, timeout)
        except TimeoutError:
            log.debug("Flush timed out with %d viewers still writing", len(connections))

    async def close_all(self, reason: str = "Server shutting down", timeout: float = 1.0) -> None:
        """Close every viewer connection and empty the registry.

        Queued frames get up to ``timeout`` seconds to go out first.
        """
        await self.flush(timeout)
        connections = self.session.registry.clear()
        for connection in connections:
            connection.stop()
            with contextlib.suppress(Exception):
                await connection.transport.close(code=1001, reason=reason)
        if connections:
            log.info("Closed %d viewer connections", len(connections))

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(self, event: SessionEvent) -> Envelope | None:
        """Apply an authoritative event and fan it out to every viewer.

        Frames are queued for every viewer and written in the background.
        Send failures prune the failing viewer and are never raised.

        Returns:
            The envelope that was broadcast, or None if the event was a no-op.

        Raises:
            TypeError: ``event`` is not a SessionEvent.
        """
        envelope = self._apply(event)
        if envelope is not None:
            self._broadcast(envelope)
        return envelope

    def _apply(self, event: SessionEvent) -> Envelope | None:
        store = self.session.store
        match event:
            case HistoryAppended(kind=kind, payload=payload, created_at=created_at):
                return history_item_message(store.append(kind, payload, created_at))
            case PendingChanged(item=item):
                store.set_pending(item)
                return pending_item_message(item)
            case SnapshotChanged(category=category, value=value):
                store.set_snapshot(category, value)
                return snapshot_message(category, value)
            case ActionRequiredChanged(state=state):
                store.action_required = state
                return action_required_message(state)
            case ConfirmationRequested(request=request):
                self.session.confirmations.request(request)
                return tool_confirmation_message(request)
            case ConfirmationWithdrawn(call_id=call_id):
                if not self.session.confirmations.withdraw(call_id):
                    log.debug("Withdraw for unknown confirmation %s ignored", call_id)
                    return None
                return tool_confirmation_removal_message(call_id)
            case HistoryCleared():
                store.clear()
                return clear_message()
            case _:
                raise TypeError(f"Unsupported session event: {event!r}")

    def _broadcast(self, envelope: Envelope) -> None:
        frame = envelope.to_json()
        for connection in self.session.registry.snapshot():
            if not connection.enqueue(frame):
                self.session.registry.remove(connection.transport)

    # Convenience publishers used by session engines.

    async def append_history(
        self,
        kind: HistoryKind,
        payload: dict[str, Any] | None = None,
        created_at: float | None = None,
    ) -> HistoryEntry:
        envelope = await self.publish(HistoryAppended(kind, payload or {}, created_at))
        assert envelope is not None
        return HistoryEntry.from_dict(envelope.data)

    async def append_text(self, text: str) -> HistoryEntry:
        return await self.append_history(HistoryKind.AGENT_TEXT, {"text": text})

    async def append_tool_group(self, tools: Iterable[ToolCall]) -> HistoryEntry:
        return await self.append_history(HistoryKind.TOOL_GROUP, tool_group_payload(tools))

    async def set_pending(self, item: PendingItem | None) -> None:
        await self.publish(PendingChanged(item))

    async def set_pending_text(self, text: str) -> None:
        await self.publish(PendingChanged(PendingText(text)))

    async def set_pending_tools(self, tools: Iterable[ToolCall]) -> None:
        await self.publish(PendingChanged(PendingToolGroup(tuple(tools))))

    async def set_footer(self, footer: dict[str, Any] | None) -> None:
        await self.publish(SnapshotChanged(SnapshotCategory.FOOTER, footer))

    async def set_loading_state(self, loading: dict[str, Any] | None) -> None:
        await self.publish(SnapshotChanged(SnapshotCategory.LOADING, loading))

    async def set_console_messages(self, messages: list[Any]) -> None:
        await self.publish(SnapshotChanged(SnapshotCategory.CONSOLE, list(messages)))

    async def set_slash_commands(self, commands: list[Any]) -> None:
        await self.publish(SnapshotChanged(SnapshotCategory.COMMANDS, {"commands": list(commands)}))

    async def set_mcp_servers(
        self,
        servers: list[dict[str, Any]],
        blocked_servers: list[dict[str, Any]] | None = None,
    ) -> None:
        value = {"servers": list(servers), "blockedServers": list(blocked_servers or [])}
        await self.publish(SnapshotChanged(SnapshotCategory.MCP_SERVERS, value))

    async def set_action_required(self, state: ActionRequired) -> None:
        await self.publish(ActionRequiredChanged(state))

    async def request_confirmation(self, request: ConfirmationRequest) -> None:
        await self.publish(ConfirmationRequested(request))

    async def withdraw_confirmation(self, call_id: str) -> None:
        await self.publish(ConfirmationWithdrawn(call_id))

    async def clear(self) -> None:
        await self.publish(HistoryCleared())

    # -------------------------------------------------------------------------
    # Viewer input
    # -------------------------------------------------------------------------

    async def route_inbound(self, transport: Transport, raw: str | bytes) -> None:
        """Dispatch one viewer frame to the registered session handlers.

        Malformed frames, unknown types and handler failures are logged and
        dropped; nothing here raises.
        """
        try:
            message = parse_inbound(raw)
        except UnknownMessageTypeError as e:
            log.debug("Dropping viewer message from %r: %s", transport, e)
            return
        except MalformedMessageError as e:
            log.warning("Dropping malformed viewer message: %s", e)
            return

        match message:
            case UserMessage(content=content):
                query = content.strip()
                if query:
                    await self._invoke(self._submit_handler, "submit", query)
            case InterruptRequest():
                await self._invoke(self._abort_handler, "abort")
            case ConfirmationResponse(call_id=call_id, outcome=outcome, payload=payload):
                await self.respond_to_confirmation(call_id, outcome, payload)

    async def respond_to_confirmation(
        self,
        call_id: str,
        outcome: ConfirmationOutcome,
        payload: Any = None,
    ) -> bool:
        """Deliver a confirmation answer to the session engine at most once.

        Returns:
            True if this response consumed a pending request.
        """
        if self._confirmation_handler is None:
            log.debug("No confirmation handler registered; dropping response for %s", call_id)
            return False
        if self.session.confirmations.respond(call_id) is None:
            return False

        await self._invoke(self._confirmation_handler, "confirmation", call_id, outcome, payload)
        self._broadcast(tool_confirmation_removal_message(call_id))
        return True

    async def _invoke(self, handler: Callable[..., Any] | None, name: str, *args: Any) -> None:
        if handler is None:
            log.debug("No %s handler registered; dropping viewer input", name)
            return
        try:
            result = handler(*args)
        except Exception:
            log.exception("Session %s handler failed", name)
            return
        if inspect.isawaitable(result):
            task = asyncio.create_task(self._run_handler(name, result))
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_tasks.discard)

    async def _run_handler(self, name: str, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception:
            log.exception("Session %s handler failed", name)

    async def join_handlers(self) -> None:
        """Wait for every session handler started from viewer input to finish."""
        while self._handler_tasks:
            await asyncio.gather(*self._handler_tasks)

    def status(self) -> dict[str, int]:
        return {
            "clients": self.client_count,
            "history": len(self.session.store.history),
            "pending_confirmations": len(self.session.confirmations),
        }
