"""Tests for the command line entry point."""

from __future__ import annotations

import pytest

from agentcast.__main__ import build_parser, format_entry
from agentcast.protocol.models import HistoryKind, PendingText, PendingToolGroup, ToolStatus
from agentcast.viewer.reconciler import ReconciliationEngine
from tests.utils import FakeClock, text_entry, tool


class TestParser:
    """Tests for argument parsing."""

    def test_serve_defaults(self) -> None:
        """serve leaves host and port to the config."""
        args = build_parser().parse_args(["serve"])
        assert args.command == "serve"
        assert args.host is None
        assert args.port is None

    def test_serve_port(self) -> None:
        """--port is parsed as an int."""
        assert build_parser().parse_args(["serve", "--port", "9000"]).port == 9000

    def test_watch_requires_url(self) -> None:
        """watch needs a URL."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["watch"])


class TestFormatEntry:
    """Tests for terminal rendering of display entries."""

    def test_text_entries(self) -> None:
        """Text rows show the label and flatten newlines."""
        engine = ReconciliationEngine(clock=FakeClock())
        engine.finalize(text_entry(1, "line one\nline two"))
        engine.update_pending(PendingText("typing"))
        lines = [format_entry(e) for e in engine.entries]
        assert lines == ["AGENT: line one line two", "AGENT...: typing"]

    def test_tool_group(self) -> None:
        """Tool rows list each call with its status."""
        engine = ReconciliationEngine(clock=FakeClock())
        engine.update_pending(PendingToolGroup((tool("a", ToolStatus.EXECUTING, name="grep"),)))
        (entry,) = engine.entries
        assert entry.kind is HistoryKind.TOOL_GROUP
        assert format_entry(entry) == "TOOLS...: grep [Executing]"
