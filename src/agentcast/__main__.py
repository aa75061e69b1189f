"""Command line entry point.

Usage:
    python -m agentcast serve [--host HOST] [--port PORT] [--project DIR]
    python -m agentcast watch http://127.0.0.1:8629

``serve`` runs a standalone hub with no session engine attached, which is
mostly useful for trying viewers against it. ``watch`` attaches a terminal
viewer and prints the reconciled projection whenever it changes.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys

from agentcast.config import Config, load_config
from agentcast.logging import get_logger, setup_logging
from agentcast.protocol.messages import Envelope, MessageType
from agentcast.protocol.models import HistoryKind
from agentcast.viewer.projection import DisplayEntry
from agentcast.viewer.reconciler import ReconciliationEngine

log = get_logger()

_LABELS = {
    HistoryKind.USER: "YOU",
    HistoryKind.AGENT_TEXT: "AGENT",
    HistoryKind.TOOL_GROUP: "TOOLS",
    HistoryKind.SYSTEM_INFO: "SYSTEM",
    HistoryKind.ERROR: "ERROR",
    HistoryKind.ABOUT: "ABOUT",
    HistoryKind.SESSION_STATS: "STATS",
    HistoryKind.SESSION_END: "SESSION END",
    HistoryKind.CONTEXT_COMPACTION: "COMPRESSION",
}

# Only these change the rendered list
_RENDER_TYPES = frozenset(
    {
        MessageType.HISTORY_SYNC,
        MessageType.HISTORY_ITEM,
        MessageType.PENDING_ITEM,
        MessageType.CLEAR,
    }
)


def format_entry(entry: DisplayEntry) -> str:
    """One line per display entry: label, pending marker, then content."""
    label = _LABELS[entry.kind]
    marker = "..." if entry.is_pending else ""
    if entry.kind is HistoryKind.TOOL_GROUP:
        body = ", ".join(f"{tool.name} [{tool.status.value}]" for tool in entry.tools)
    else:
        body = entry.text or str(entry.payload.get("message", ""))
    return f"{label}{marker}: {body.replace(chr(10), ' ')}"


def _print_projection(engine: ReconciliationEngine, envelope: Envelope) -> None:
    if envelope.type not in _RENDER_TYPES:
        return
    print("\x1b[2J\x1b[H", end="")
    for entry in engine.entries:
        print(format_entry(entry))
    sys.stdout.flush()


async def _serve(args: argparse.Namespace, config: Config) -> None:
    from agentcast.hub import BroadcastHub
    from agentcast.server import HubServer

    hub = BroadcastHub()
    hub.set_submit_handler(lambda text: log.info("Viewer said: %s", text))
    hub.set_abort_handler(lambda: log.info("Viewer requested an interrupt"))

    server = HubServer(hub, config)
    await server.start(port=args.port, host=args.host)
    print(f"agentcast hub listening on {server.url}")

    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


async def _watch(args: argparse.Namespace, config: Config) -> None:
    from agentcast.viewer import ViewerClient

    client = ViewerClient(
        args.url,
        merge_window=config.viewer.merge_window,
        reconnect_attempts=config.viewer.reconnect_attempts,
        reconnect_delay=config.viewer.reconnect_delay,
        on_change=_print_projection,
    )
    try:
        await client.run()
    finally:
        await client.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentcast", description=__doc__.splitlines()[0])
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="run a standalone hub server")
    serve.add_argument("--host", default=None, help="interface to bind (default from config)")
    serve.add_argument("--port", type=int, default=None, help="port to bind (default from config)")
    serve.add_argument("--project", default=None, help="project root for .agentcast/config.yaml")

    watch = subparsers.add_parser("watch", help="print a hub's session as it changes")
    watch.add_argument("url", help="hub URL, e.g. http://127.0.0.1:8629")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Run the agentcast command line."""
    args = build_parser().parse_args(argv)

    # Load config before logging so we can use config.logging settings
    config = load_config(project_root=getattr(args, "project", None))
    setup_logging(config.logging, force_stderr=args.command == "serve")

    runner = _serve if args.command == "serve" else _watch
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(runner(args, config))


if __name__ == "__main__":
    main()
