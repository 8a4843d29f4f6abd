#!/usr/bin/env python3
"""
HexSwarm CLI -- follow the backend's sessions and events as plain log lines.

Usage:
    python main.py                      # tail ws://localhost:4003
    python main.py --port 4010
    python main.py --once               # print the current zone layout and exit
    python main.py --debug
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import time
from datetime import datetime
from typing import Any

from hexswarm.api import BackendClient
from hexswarm.config import ConfigError, Settings, configure_logging
from hexswarm.feed import ActivityFeed, event_content, format_tokens, session_status_text, truncate
from hexswarm.models import MalformedEntryError, SessionEvent
from hexswarm.reconciler import ReconcileResult, SceneReconciler
from hexswarm.transport import TransportClient
from hexswarm.zone import VisualZone

DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"
RED = "\033[31m"
YELLOW = "\033[33m"
GREEN = "\033[32m"
CYAN = "\033[36m"
MAGENTA = "\033[35m"
BLUE = "\033[34m"
WHITE = "\033[37m"

STATUS_STYLE: dict[str, str] = {
    "idle": CYAN,
    "working": GREEN,
    "waiting": YELLOW,
    "offline": DIM,
}

TOOL_STYLE: dict[str, str] = {
    "Edit": YELLOW,
    "Write": BLUE,
    "Read": MAGENTA,
    "Bash": GREEN,
    "Grep": CYAN,
    "Glob": CYAN,
}

DEFAULT_TRUNCATE_LIMIT = 120
DEBUG_TRUNCATE_LIMIT = 2000

debug_mode = False


def format_ts(epoch_ms: int) -> str:
    dt = datetime.fromtimestamp(epoch_ms / 1000) if epoch_ms else datetime.now()
    if debug_mode:
        return dt.strftime("%H:%M:%S.") + f"{dt.microsecond // 1000:03d}"
    return dt.strftime("%H:%M:%S")


def format_zone(zone: VisualZone) -> str:
    session = zone.session
    style = STATUS_STYLE.get(session.status, WHITE)
    parts = [
        f"{BOLD}{zone.label}{RESET}",
        f"{DIM}({zone.cell.q},{zone.cell.r}){RESET}",
        f"{style}{session_status_text(session)}{RESET}",
    ]
    if zone.git_badge:
        parts.append(f"{DIM}{zone.git_badge}{RESET}")
    return " ".join(parts)


def format_changes(result: ReconcileResult, reconciler: SceneReconciler) -> list[str]:
    lines: list[str] = []
    for session_id in result.created:
        zone = reconciler.zone_for(session_id)
        if zone is not None:
            lines.append(f"{GREEN}+{RESET} {format_zone(zone)}")
    for session_id in result.updated:
        zone = reconciler.zone_for(session_id)
        if zone is not None:
            lines.append(f"{YELLOW}~{RESET} {format_zone(zone)}")
    for session_id in result.disposed:
        lines.append(f"{RED}-{RESET} {DIM}{session_id}{RESET}")
    if result.skipped:
        lines.append(f"{RED}! skipped {result.skipped} malformed session entries{RESET}")
    return lines


def format_event(event: SessionEvent, owner_name: str | None) -> str:
    limit = DEBUG_TRUNCATE_LIMIT if debug_mode else DEFAULT_TRUNCATE_LIMIT
    who = owner_name or (event.session_id[:8] or "?")
    label = event.tool or event.kind
    style = TOOL_STYLE.get(event.tool or "", WHITE)
    content = truncate(event_content(event, full=debug_mode).replace("\n", " "), limit)
    parts = [
        f"{DIM}{format_ts(event.timestamp_ms)}{RESET}",
        f"{CYAN}{truncate(who, 16):16s}{RESET}",
        f"{style}{label:14s}{RESET}",
        content,
    ]
    if event.is_tool_end and event.duration_ms is not None:
        parts.append(f"{DIM}{event.duration_ms}ms{RESET}")
    if event.success is False:
        parts.append(f"{RED}failed{RESET}")
    return " ".join(parts)


def format_run_summary(elapsed: int, events: int, sessions: int, tokens: int) -> str:
    lines: list[str] = []
    lines.append(f"\n{BOLD}{CYAN}═══ Session Summary ═══{RESET}")

    m, s = divmod(elapsed, 60)
    h, m = divmod(m, 60)
    time_str = f"{h}h {m:02d}m {s:02d}s" if h else f"{m}m {s:02d}s"
    lines.append(f"  {DIM}Duration:{RESET}  {time_str}")
    lines.append(f"  {DIM}Sessions:{RESET}  {sessions}")
    lines.append(f"  {DIM}Events:{RESET}    {events:,}")
    lines.append(f"  {DIM}Tokens:{RESET}    {format_tokens(tokens)}")
    return "\n".join(lines)


class Tail:
    """Turns backend messages into printable lines."""

    def __init__(self):
        self.reconciler = SceneReconciler()
        self.feed = ActivityFeed()
        self.events = 0

    def handle(self, message: Any) -> list[str]:
        if not isinstance(message, dict):
            return []
        kind = message.get("type")
        payload = message.get("payload", message.get("data"))

        if kind == "sessions" and isinstance(payload, list):
            return format_changes(self.reconciler.apply_snapshot(payload), self.reconciler)

        if kind == "event":
            try:
                event = SessionEvent.from_dict(payload)
            except MalformedEntryError as exc:
                return [f"{RED}! dropped event: {exc}{RESET}"]
            self.events += 1
            self.feed.append(event)
            self.reconciler.handle_event(event)
            owner = self.feed.attribute(event, self.reconciler.sessions)
            return [format_event(event, owner.display_name if owner else None)]

        if kind == "history" and isinstance(payload, list):
            events = []
            for raw in payload:
                try:
                    events.append(SessionEvent.from_dict(raw))
                except MalformedEntryError:
                    continue
            self.feed.replace(events)
            return [f"{DIM}history: {len(events)} events{RESET}"] if events else []

        if kind == "tokens" and isinstance(payload, dict):
            self.feed.set_tokens(payload.get("cumulative"))
        return []

    def connection_line(self, connected: bool) -> str:
        if connected:
            return f"{GREEN}● connected{RESET}"
        return f"{RED}○ disconnected{RESET} {DIM}(retrying){RESET}"


async def print_layout(settings: Settings) -> int:
    async with BackendClient(settings.http_url) as api:
        result = await api.list_sessions()
    if not result.get("ok", False):
        print(f"{RED}✗ {result.get('error', 'request failed')}{RESET}")
        return 1
    reconciler = SceneReconciler()
    reconciler.apply_snapshot(result.get("sessions") or [])
    if not reconciler.sessions:
        print(f"{DIM}no sessions{RESET}")
    for session in reconciler.sessions:
        zone = reconciler.zone_for(session.id)
        if zone is not None:
            print(format_zone(zone))
    return 0


async def follow(settings: Settings) -> int:
    tail = Tail()
    client = TransportClient(
        settings.ws_url,
        reconnect_delay=settings.reconnect_delay,
        history_limit=settings.history_limit,
    )

    def emit(lines: list[str]):
        for line in lines:
            print(line, flush=True)

    client.on_message(lambda msg: emit(tail.handle(msg)))
    client.on_connection(lambda up: emit([tail.connection_line(up)]))

    print(f"{BOLD}{CYAN}▶ HexSwarm{RESET}")
    print(f"  {DIM}Backend:{RESET} {settings.ws_url}")
    if settings.debug:
        print(f"  {DIM}Debug:{RESET}   {YELLOW}enabled{RESET}")
    print()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    start_time = time.time()
    client.connect()
    try:
        await stop.wait()
    finally:
        print(f"\n{YELLOW}⏹ Shutting down…{RESET}")
        await client.aclose()

    elapsed = int(time.time() - start_time)
    print(format_run_summary(elapsed, tail.events, len(tail.reconciler.sessions), tail.feed.tokens))
    print()
    return 0


def main() -> None:
    global debug_mode

    ap = argparse.ArgumentParser(description="HexSwarm CLI")
    ap.add_argument("--host", help="Backend host (default from HEXSWARM_HOST or localhost)")
    ap.add_argument("--port", type=int, help="Backend port (default from HEXSWARM_PORT or 4003)")
    ap.add_argument("--once", action="store_true",
                    help="Print the current zone layout and exit")
    ap.add_argument("--debug", action="store_true",
                    help="Enable debug logging and untruncated output")
    args = ap.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        print(f"{RED}✗ {exc}{RESET}", file=sys.stderr)
        sys.exit(2)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    settings.debug = settings.debug or args.debug
    debug_mode = settings.debug

    configure_logging(debug=settings.debug)

    if args.once:
        sys.exit(asyncio.run(print_layout(settings)))
    sys.exit(asyncio.run(follow(settings)))


if __name__ == "__main__":
    main()
