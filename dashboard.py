#!/usr/bin/env python3
"""
HexSwarm Dashboard -- Rich Terminal UI
======================================
Live map of the coding-agent sessions running on this machine. Connects to
the local backend over a websocket, keeps one zone per session on a hex
grid, and renders a fullscreen multi-panel dashboard.

Usage:
    python dashboard.py                         # connect to ws://localhost:4003
    python dashboard.py --port 4010             # other backend port
    python dashboard.py --demo                  # synthetic sessions (no backend needed)
    python dashboard.py --demo --sessions 12    # demo with 12 sessions
Controls:
    1-9                                         # select the n-th session
    0 / a / esc                                 # back to all sessions
    r / x                                       # restart / cancel the selected session
    q                                           # quit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import queue
import random
import select
import sys
import termios
import threading
import time
import tty
from datetime import timedelta
from typing import Any

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hexswarm.api import BackendClient
from hexswarm.config import ConfigError, Settings, configure_logging
from hexswarm.feed import (
    ActivityFeed,
    event_content,
    format_time,
    format_tokens,
    session_status_text,
    truncate,
)
from hexswarm.hexgrid import MAX_SEARCH_RADIUS
from hexswarm.models import MalformedEntryError, SessionEvent
from hexswarm.reconciler import Burst, ReconcileResult, SceneReconciler
from hexswarm.transport import TransportClient

logger = logging.getLogger("hexswarm.dashboard")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BURST_TTL = 1.5              # seconds a burst flash stays on the map
MAX_FEED_LINES = 60
CONNECTION = "_connection"   # internal queue message for connection changes

TOOL_STYLE: dict[str, str] = {
    "edit": "bright_yellow",
    "bash": "bright_green",
    "read": "medium_purple1",
    "write": "bright_blue",
    "notebookedit": "bright_blue",
    "grep": "bright_cyan",
    "glob": "bright_cyan",
    "task": "magenta",
    "todowrite": "yellow",
}


def _event_style(event: SessionEvent) -> str:
    if event.assistant_text:
        return "bright_white"
    if not event.tool:
        return "dim"
    tool = event.tool.lower()
    if "web" in tool:
        return "hot_pink"
    return TOOL_STYLE.get(tool, "white")


# ---------------------------------------------------------------------------
# Dashboard State
# ---------------------------------------------------------------------------

class DashboardState:
    def __init__(self, max_radius: int = MAX_SEARCH_RADIUS):
        self.start_time = time.time()
        self.connected = False
        self.user = ""
        self.reconciler = SceneReconciler(max_radius=max_radius, burst_sink=self._on_burst)
        self.feed = ActivityFeed()
        self.bursts: dict[str, tuple[float, str]] = {}
        self.last_result: ReconcileResult | None = None
        self.events_seen = 0
        self.status_line = ""

    def _on_burst(self, burst: Burst):
        self.bursts[burst.session_id] = (time.time() + BURST_TTL, burst.tool)

    # -- message router -----------------------------------------------------

    def ingest(self, message: dict[str, Any]):
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object message: %r", message)
            return

        kind = message.get("type")
        payload = message.get("payload", message.get("data"))

        if kind == CONNECTION:
            self.connected = bool(payload)

        # -- full session list (authoritative) ------------------------------
        elif kind == "sessions":
            if not isinstance(payload, list):
                logger.warning("sessions payload is not a list")
                return
            self.last_result = self.reconciler.apply_snapshot(payload)

        # -- single live event ----------------------------------------------
        elif kind == "event":
            try:
                event = SessionEvent.from_dict(payload)
            except MalformedEntryError as exc:
                logger.warning("Dropping malformed event: %s", exc)
                return
            self.events_seen += 1
            self.feed.append(event)
            self.reconciler.handle_event(event)

        # -- replay sent once per connection --------------------------------
        elif kind == "history":
            if not isinstance(payload, list):
                return
            events = []
            for raw in payload:
                try:
                    events.append(SessionEvent.from_dict(raw))
                except MalformedEntryError as exc:
                    logger.debug("Skipping history entry: %s", exc)
            self.feed.replace(events)

        elif kind == "tokens":
            if isinstance(payload, dict):
                self.feed.set_tokens(payload.get("cumulative"))

        else:
            logger.debug("Unhandled message type %r", kind)

    # -- selection ----------------------------------------------------------

    def select_index(self, n: int):
        sessions = self.reconciler.sessions
        if 0 <= n < len(sessions):
            self.reconciler.select(sessions[n].id)

    def clear_selection(self):
        self.reconciler.select(None)

    # -- snapshot for renderers ---------------------------------------------

    def _expire_bursts(self, now: float):
        for session_id in [sid for sid, (until, _) in self.bursts.items() if until <= now]:
            del self.bursts[session_id]

    def snap(self) -> dict[str, Any]:
        now = time.time()
        self._expire_bursts(now)
        rec = self.reconciler
        sessions = rec.sessions

        zones: list[dict[str, Any]] = []
        for session in sessions:
            zone = rec.zone_for(session.id)
            if zone is None:
                continue
            zones.append({
                "id": session.id,
                "index": zone.index,
                "name": session.display_name,
                "status": session.status,
                "status_text": session_status_text(session),
                "style": zone.style,
                "tool": zone.active_tool,
                "station": zone.active_station,
                "git": zone.git_badge,
                "files": list(zone.recent_files),
                "q": zone.cell.q,
                "r": zone.cell.r,
                "placed": session.assigned_cell is not None,
                "selected": zone.selected,
                "dimmed": zone.dimmed,
                "burst": self.bursts.get(session.id, (0, None))[1],
            })

        selected = rec.selected_id
        visible = self.feed.for_session(selected, sessions)[-MAX_FEED_LINES:]
        activity = []
        for event in reversed(visible):
            owner = self.feed.attribute(event, sessions)
            who = owner.display_name if owner else (event.session_id[:8] or "?")
            ts = format_time(event.timestamp_ms) if event.timestamp_ms else time.strftime("%H:%M:%S")
            activity.append((ts, who, event.tool or event.kind, event_content(event), _event_style(event)))

        selected_name = None
        if selected is not None:
            session = rec.session_for(selected)
            selected_name = session.display_name if session else selected

        return {
            "elapsed": now - self.start_time,
            "connected": self.connected,
            "user": self.user,
            "tokens": self.feed.tokens,
            "zones": zones,
            "working": sum(1 for s in sessions if s.status == "working"),
            "waiting": sum(1 for s in sessions if s.status == "waiting"),
            "active": sum(1 for s in sessions if s.status != "offline"),
            "activity": activity,
            "selected": selected,
            "selected_name": selected_name,
            "events_seen": self.events_seen,
            "status_line": self.status_line,
        }


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

def make_layout() -> Layout:
    root = Layout(name="root")
    root.split_column(
        Layout(name="header", size=3),
        Layout(name="body", ratio=1),
        Layout(name="controls", size=3),
    )
    root["body"].split_row(
        Layout(name="left", ratio=1, minimum_size=40),
        Layout(name="right", ratio=1, minimum_size=40),
    )
    root["left"].split_column(
        Layout(name="map", ratio=1),
        Layout(name="zones", ratio=1),
    )
    return root


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------

def _elapsed_str(s: float) -> str:
    h = int(s // 3600)
    m = int((s % 3600) // 60)
    sec = int(s % 60)
    return f"{h:02d}:{m:02d}:{sec:02d}"


def render_header(s: dict[str, Any]) -> Panel:
    tbl = Table.grid(expand=True)
    tbl.add_column(justify="left", ratio=1)
    tbl.add_column(justify="center", ratio=1)
    tbl.add_column(justify="right", ratio=1)

    conn = "[bright_green]● connected[/]" if s["connected"] else "[bright_red]○ disconnected[/]"
    user = f"  [dim]{s['user']}[/]" if s["user"] else ""
    if s["active"]:
        counts = f"[bold bright_white]{s['active']}[/][dim] sessions, [/][bright_green]{s['working']}[/][dim] working[/]"
        if s["waiting"]:
            counts += f"[dim], [/][dark_orange]{s['waiting']} waiting[/]"
    else:
        counts = "[dim]no active sessions[/]"

    tbl.add_row(
        f"[bold bright_cyan]HEXSWARM[/]  {conn}{user}",
        counts,
        f"[bright_cyan]{format_tokens(s['tokens'])}[/] [dim]tok[/]  [dim]{_elapsed_str(s['elapsed'])}[/]",
    )
    return Panel(tbl, style="bright_cyan", height=3)


def _cell_token(zone: dict[str, Any]) -> tuple[str, str]:
    n = zone["index"] + 1
    glyph = "✦" if zone["burst"] else "⬢"
    token = f"{glyph}{n:<2}" if n < 100 else f"{glyph}**"
    style = zone["style"]
    if zone["tool"]:
        style = f"bold {style}"
    if zone["selected"]:
        style = f"reverse {style}"
    elif zone["dimmed"]:
        style = f"dim {style}"
    return token, style


def render_map(s: dict[str, Any]) -> Panel:
    zones = s["zones"]
    if not zones:
        return Panel("[dim]waiting for sessions ...[/]", title="[bold]HEX MAP[/]", border_style="bright_blue")

    # doubled-width layout: column = 2q + r, two characters per column step
    rows: dict[int, list[tuple[int, dict[str, Any]]]] = {}
    for zone in zones:
        rows.setdefault(zone["r"], []).append((2 * zone["q"] + zone["r"], zone))
    min_col = min(col for row in rows.values() for col, _ in row)

    txt = Text()
    for r in range(min(rows), max(rows) + 1):
        cursor = 0
        for col, zone in sorted(rows.get(r, []), key=lambda item: item[0]):
            x = (col - min_col) * 2
            if x > cursor:
                txt.append(" " * (x - cursor))
            token, style = _cell_token(zone)
            txt.append(token, style=style)
            cursor = x + len(token)
        txt.append("\n")

    return Panel(txt, title="[bold]HEX MAP[/]", border_style="bright_blue")


def render_zones(s: dict[str, Any]) -> Panel:
    tbl = Table(show_header=True, header_style="dim", box=None, padding=(0, 1), expand=True)
    tbl.add_column("#", width=3, justify="right")
    tbl.add_column("session", no_wrap=True, ratio=2)
    tbl.add_column("status", no_wrap=True, ratio=2)
    tbl.add_column("git", no_wrap=True, ratio=2)
    tbl.add_column("cell", no_wrap=True, width=8)

    for zone in s["zones"]:
        row_style = "reverse" if zone["selected"] else ("dim" if zone["dimmed"] else "")
        cell = f"{zone['q']},{zone['r']}" + ("" if zone["placed"] else "*")
        status = Text(zone["status_text"], style=zone["style"])
        if zone["files"]:
            status.append(f"  {zone['files'][-1]}", style="dim")
        tbl.add_row(
            str(zone["index"] + 1),
            Text(truncate(zone["name"], 28)),
            status,
            Text(zone["git"] or "", style="dim"),
            cell,
            style=row_style,
        )
    if not s["zones"]:
        tbl.add_row("", "[dim]none[/]", "", "", "")
    return Panel(tbl, title="[bold]ZONES[/]", border_style="bright_magenta")


def render_activity(s: dict[str, Any]) -> Panel:
    txt = Text()
    for ts_str, who, label, content, style in s["activity"]:
        txt.append(f" {ts_str} ", style="dim")
        txt.append(f"{truncate(who, 16):<16} ", style="bright_white")
        txt.append(f"{truncate(label, 14):<14} ", style=style)
        txt.append(f"{truncate(content.replace(chr(10), ' '), 80)}\n", style="dim" if style == "dim" else "")
    if not s["activity"]:
        txt.append("  waiting for events ...", style="dim italic")
    title = "[bold]ACTIVITY[/]"
    if s["selected_name"]:
        title += f"  [reverse] {s['selected_name']} [/]"
    else:
        title += "  [dim]all sessions[/]"
    return Panel(txt, title=title, border_style="bright_green")


def render_controls(s: dict[str, Any], interactive: bool) -> Panel:
    if interactive:
        keys = (
            "[bold bright_white]1-9 select[/][bright_black] | [/]"
            "[bold bright_white]0/a all[/][bright_black] | [/]"
            "[bold bright_white]r restart[/][bright_black] | [/]"
            "[bold bright_white]x cancel[/][bright_black] | [/]"
            "[bold bright_white]q quit[/]"
        )
    else:
        keys = "[dim]keyboard controls unavailable (not a tty)[/]"
    if s["status_line"]:
        keys += f"[bright_black] | [/][yellow]{s['status_line']}[/]"
    return Panel(Text.from_markup(keys), title="[bold bright_white]CONTROLS[/]", border_style="bright_cyan", height=3)


# ---------------------------------------------------------------------------
# Demo data generator
# ---------------------------------------------------------------------------

_DEMO_PROJECTS = [
    ("api-gateway", "/home/dev/src/api-gateway"),
    ("web-client", "/home/dev/src/web-client"),
    ("billing", "/home/dev/src/billing"),
    ("infra", "/home/dev/src/infra"),
    ("docs", "/home/dev/src/docs"),
    ("ml-pipeline", "/home/dev/src/ml-pipeline"),
    ("mobile", "/home/dev/src/mobile"),
    ("search", "/home/dev/src/search"),
]

_DEMO_TOOLS = [
    ("Read", {"file_path": "src/server.ts"}),
    ("Edit", {"file_path": "src/routes/users.ts"}),
    ("Write", {"file_path": "tests/users.test.ts"}),
    ("Bash", {"command": "npm test"}),
    ("Grep", {"pattern": "TODO", "path": "src"}),
    ("Glob", {"pattern": "**/*.py"}),
    ("WebSearch", {"query": "aiohttp websocket heartbeat"}),
    ("Task", {"description": "explore the codebase"}),
    ("TodoWrite", {"todos": []}),
]


def demo_generator(q: queue.Queue[Any], n_sessions: int, stop: threading.Event):
    """Push synthetic backend messages for demo mode."""
    sessions: list[dict[str, Any]] = []
    tokens = 0
    counter = 0

    def new_session() -> dict[str, Any]:
        nonlocal counter
        counter += 1
        name, cwd = _DEMO_PROJECTS[(counter - 1) % len(_DEMO_PROJECTS)]
        session: dict[str, Any] = {
            "id": f"demo-{counter:03d}",
            "name": name if counter <= len(_DEMO_PROJECTS) else f"{name}-{counter}",
            "type": "internal" if counter % 3 else "external",
            "status": "idle",
            "cwd": cwd,
            "gitStatus": {
                "isRepo": True,
                "branch": random.choice(["main", "feature/zones", "fix/reconnect"]),
                "ahead": random.randint(0, 3),
                "behind": 0,
                "linesAdded": random.randint(0, 120),
                "linesRemoved": random.randint(0, 40),
                "untracked": random.randint(0, 2),
            },
        }
        if counter % 2:
            session["claudeSessionId"] = f"ext-{counter:03d}"
        if counter == 1:
            session["zonePosition"] = {"q": 0, "r": 0}
        return session

    def push_sessions():
        q.put({"type": "sessions", "payload": [dict(s) for s in sessions]})

    try:
        q.put({"type": CONNECTION, "payload": True})
        for _ in range(min(n_sessions, 4)):
            sessions.append(new_session())
        push_sessions()
        q.put({"type": "history", "payload": []})

        while not stop.is_set():
            ts = int(time.time() * 1000)

            # -- grow / shrink the fleet ----------------------------------------
            if len(sessions) < n_sessions and random.random() < 0.08:
                sessions.append(new_session())
                push_sessions()
            elif len(sessions) > 2 and random.random() < 0.02:
                sessions.pop(random.randrange(1, len(sessions)))
                push_sessions()

            if not sessions:
                time.sleep(0.4)
                continue
            session = random.choice(sessions)
            ident = session.get("claudeSessionId") or f"raw-{session['id']}"

            # -- tool start / end ---------------------------------------------
            if session.get("currentTool"):
                tool = session.pop("currentTool")
                session["status"] = random.choice(["working", "idle", "idle", "waiting"])
                q.put({"type": "event", "payload": {
                    "type": "post_tool_use", "sessionId": ident, "cwd": session["cwd"],
                    "tool": tool, "timestamp": ts, "duration": random.randint(40, 4000),
                    "success": random.random() < 0.95,
                    "toolResponse": {"stdout": "ok"} if tool == "Bash" else None,
                }})
            elif random.random() < 0.7:
                tool, tool_input = random.choice(_DEMO_TOOLS)
                session["currentTool"] = tool
                session["status"] = "working"
                q.put({"type": "event", "payload": {
                    "type": "pre_tool_use", "sessionId": ident, "cwd": session["cwd"],
                    "tool": tool, "toolInput": tool_input, "timestamp": ts,
                }})
            else:
                session["status"] = "idle"
                q.put({"type": "event", "payload": {
                    "type": "stop", "sessionId": ident, "cwd": session["cwd"], "timestamp": ts,
                    "response": "Done. The change is in place and the tests pass.",
                }})
            push_sessions()

            tokens += random.randint(200, 3000)
            if random.random() < 0.3:
                q.put({"type": "tokens", "payload": {"session": session["id"], "current": 0, "cumulative": tokens}})

            time.sleep(0.4)
    finally:
        q.put(None)


# ---------------------------------------------------------------------------
# Input controls
# ---------------------------------------------------------------------------

class KeyPoller:
    def __init__(self, enabled: bool):
        self.enabled = enabled and os.name == "posix" and sys.stdin.isatty()
        self.fd: int | None = None
        self._old: Any = None

    def __enter__(self):
        if self.enabled:
            self.fd = sys.stdin.fileno()
            self._old = termios.tcgetattr(self.fd)
            tty.setcbreak(self.fd)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.enabled and self.fd is not None and self._old is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._old)

    def poll(self) -> str:
        if not self.enabled or self.fd is None:
            return ""
        ready, _, _ = select.select([self.fd], [], [], 0)
        if not ready:
            return ""
        raw = os.read(self.fd, 1)
        if not raw:
            return ""
        if raw == b"\x1b":
            # swallow the rest of an escape sequence (arrow keys etc.)
            while select.select([self.fd], [], [], 0.005)[0]:
                if not os.read(self.fd, 1):
                    break
            return "ESC"
        return raw.decode("utf-8", errors="ignore")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

class Dashboard:
    def __init__(self, state: DashboardState, api: BackendClient | None):
        self.state = state
        self.api = api
        self._tasks: set[asyncio.Task] = set()

    def handle_key(self, key: str) -> bool:
        """Apply one key press; return False to quit."""
        state = self.state
        if key in ("q", "Q"):
            return False
        if key.isdigit() and key != "0":
            state.select_index(int(key) - 1)
        elif key in ("0", "a", "A", "ESC"):
            state.clear_selection()
        elif key in ("r", "R"):
            self._session_action("restart")
        elif key in ("x", "X"):
            self._session_action("cancel")
        return True

    def _session_action(self, action: str):
        session_id = self.state.reconciler.selected_id
        if session_id is None:
            self.state.status_line = f"select a session to {action}"
            return
        if self.api is None:
            self.state.status_line = f"{action} is not available in demo mode"
            return
        call = self.api.restart_session if action == "restart" else self.api.cancel_session
        task = asyncio.get_running_loop().create_task(self._report(action, session_id, call(session_id)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _report(self, action: str, session_id: str, pending):
        result = await pending
        if result.get("ok", False):
            self.state.status_line = f"{action} sent to {session_id}"
        else:
            self.state.status_line = f"{action} failed: {result.get('error', 'unknown error')}"

    async def load_user(self):
        if self.api is None:
            self.state.user = "demo"
            return
        config = await self.api.config()
        if "username" in config:
            self.state.user = f"{config['username']}@{config.get('hostname', '?')}"


def drain(dq: queue.Queue[Any], state: DashboardState, limit: int = 200) -> bool:
    """Feed queued messages into ``state``; return True once the stream ended."""
    for _ in range(limit):  # cap per tick
        try:
            item = dq.get_nowait()
        except queue.Empty:
            return False
        if item is None:
            return True
        state.ingest(item)
    return False


async def run(args: argparse.Namespace, settings: Settings, console: Console) -> DashboardState:
    state = DashboardState()
    dq: queue.Queue[Any] = queue.Queue()
    stop = threading.Event()
    client: TransportClient | None = None
    api: BackendClient | None = None

    if args.demo:
        thr = threading.Thread(target=demo_generator, args=(dq, args.sessions, stop), daemon=True)
        thr.start()
    else:
        client = TransportClient(
            settings.ws_url,
            reconnect_delay=settings.reconnect_delay,
            history_limit=settings.history_limit,
        )
        client.on_message(dq.put)
        client.on_connection(lambda up: dq.put({"type": CONNECTION, "payload": up}))
        client.connect()
        api = BackendClient(settings.http_url)

    dashboard = Dashboard(state, api)
    await dashboard.load_user()

    layout = make_layout()
    interactive = sys.stdin.isatty()

    try:
        with KeyPoller(interactive) as key_poller:
            with Live(layout, console=console, refresh_per_second=args.hz, screen=True):
                running = True
                stream_ended = False
                while running:
                    key = key_poller.poll()
                    while key and running:
                        running = dashboard.handle_key(key)
                        key = key_poller.poll()

                    if not stream_ended:
                        stream_ended = drain(dq, state)

                    s = state.snap()
                    layout["header"].update(render_header(s))
                    layout["map"].update(render_map(s))
                    layout["zones"].update(render_zones(s))
                    layout["right"].update(render_activity(s))
                    layout["controls"].update(render_controls(s, key_poller.enabled))

                    await asyncio.sleep(1.0 / args.hz)
    finally:
        stop.set()
        if client is not None:
            await client.aclose()
        if api is not None:
            await api.close()

    return state


def main():
    ap = argparse.ArgumentParser(description="HexSwarm Rich Terminal Dashboard")
    ap.add_argument("--demo", action="store_true", help="Synthetic data mode")
    ap.add_argument("--host", help="Backend host (default from HEXSWARM_HOST or localhost)")
    ap.add_argument("--port", type=int, help="Backend port (default from HEXSWARM_PORT or 4003)")
    ap.add_argument("--sessions", type=int, default=8, help="Demo session count (default 8)")
    ap.add_argument("--hz", type=int, default=4, help="Refresh rate Hz (default 4)")
    ap.add_argument("--debug", action="store_true", help="Verbose logging")
    ap.add_argument("--log-file", help="Write logs here instead of the terminal")
    args = ap.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        print(f"config error: {exc}", file=sys.stderr)
        sys.exit(2)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    settings.debug = settings.debug or args.debug

    console = Console()
    # the live screen hides log output, so only warnings reach the terminal
    configure_logging(
        debug=settings.debug,
        log_file=args.log_file,
        console=console,
        level=None if (args.log_file or settings.debug) else logging.WARNING,
    )

    try:
        state = asyncio.run(run(args, settings, console))
    except KeyboardInterrupt:
        return

    # final summary
    s = state.snap()
    console.print()
    console.print("[bold bright_cyan]HexSwarm Session Complete[/]")
    console.print(f"  Duration    {timedelta(seconds=int(s['elapsed']))}")
    console.print(f"  Sessions    {len(s['zones'])}  ({s['working']} working)")
    console.print(f"  Events      {s['events_seen']:,}")
    console.print(f"  Tokens      {s['tokens']:,}")
    console.print()


if __name__ == "__main__":
    main()
