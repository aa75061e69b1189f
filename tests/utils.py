"""Shared test utilities for agentcast tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from agentcast.protocol.models import HistoryEntry, HistoryKind, ToolCall, ToolStatus, tool_group_payload


class MockWebSocket:
    """Mock WebSocket transport recording every frame it is sent."""

    def __init__(self, should_fail: bool = False, delay: float = 0.0):
        self.should_fail = should_fail
        self.delay = delay
        self.closed = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.sent_frames: list[str] = []

    async def send_text(self, data: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.should_fail:
            raise ConnectionError("WebSocket connection failed")
        self.sent_frames.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent_frames]

    @property
    def types(self) -> list[str]:
        return [message["type"] for message in self.messages]


class FakeClock:
    """Manually advanced clock for merge-window tests."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def tool(call_id: str, status: ToolStatus = ToolStatus.EXECUTING, name: str = "shell") -> ToolCall:
    """Create a ToolCall with sensible defaults."""
    return ToolCall(call_id=call_id, name=name, status=status)


def text_entry(entry_id: int, text: str, created_at: float = 1_000.0) -> HistoryEntry:
    return HistoryEntry(entry_id, HistoryKind.AGENT_TEXT, {"text": text}, created_at)


def tool_entry(entry_id: int, *tools: ToolCall, created_at: float = 1_000.0) -> HistoryEntry:
    return HistoryEntry(entry_id, HistoryKind.TOOL_GROUP, tool_group_payload(tools), created_at)
