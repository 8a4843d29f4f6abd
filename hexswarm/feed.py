"""
Activity feed: bounded event history plus the text formatting used to show it.
"""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime
from typing import Any, Iterable, Sequence

from hexswarm.config import MAX_ACTIVITY
from hexswarm.matching import attribute, belongs_to_session
from hexswarm.models import OFFLINE, STOP, WAITING, WORKING, SessionEvent, SessionSnapshot

RESPONSE_TRUNCATE_THRESHOLD = 300
RESPONSE_FULL_THRESHOLD = 500
BASH_OUTPUT_TRUNCATE_THRESHOLD = 200
BASH_OUTPUT_FULL_THRESHOLD = 300
TEXT_TRUNCATE_THRESHOLD = 200


class ActivityFeed:
    def __init__(self, maxlen: int = MAX_ACTIVITY):
        self._events: deque[SessionEvent] = deque(maxlen=maxlen)
        self.tokens = 0

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)

    def append(self, event: SessionEvent):
        self._events.append(event)

    def replace(self, events: Iterable[SessionEvent]):
        self._events.clear()
        self._events.extend(events)

    def set_tokens(self, cumulative: Any):
        if isinstance(cumulative, (int, float)) and not isinstance(cumulative, bool):
            self.tokens = int(cumulative)

    def for_session(
        self,
        selected_id: str | None,
        sessions: Sequence[SessionSnapshot],
    ) -> list[SessionEvent]:
        """Events visible with ``selected_id`` selected (``None`` = all)."""
        if selected_id is None:
            return list(self._events)
        target = next((s for s in sessions if s.id == selected_id), None)
        if target is None:
            return []
        return [e for e in self._events if belongs_to_session(e, target, sessions)]

    @staticmethod
    def attribute(event: SessionEvent, sessions: Sequence[SessionSnapshot]) -> SessionSnapshot | None:
        return attribute(event, sessions)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_tokens(n: int) -> str:
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}k"
    return str(n)


def format_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%H:%M:%S")


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def bash_output_text(tool_output: Any) -> str:
    if isinstance(tool_output, str):
        return tool_output
    if isinstance(tool_output, dict):
        for key in ("stdout", "output", "content"):
            if isinstance(tool_output.get(key), str):
                return tool_output[key]
        return json.dumps(tool_output)
    return str(tool_output)


def has_long_response(event: SessionEvent) -> bool:
    if event.kind == STOP and event.response and len(event.response) > RESPONSE_FULL_THRESHOLD:
        return True
    return bool(event.assistant_text and len(event.assistant_text) > RESPONSE_FULL_THRESHOLD)


def has_long_bash_output(event: SessionEvent) -> bool:
    if not event.tool_output:
        return False
    return len(bash_output_text(event.tool_output)) > BASH_OUTPUT_FULL_THRESHOLD


def event_content(event: SessionEvent, full: bool = False) -> str:
    # subagent_stop repeats the parent's response; only stop shows it
    if event.kind == STOP and event.response:
        return event.response if full else truncate(event.response, RESPONSE_TRUNCATE_THRESHOLD)
    if event.assistant_text:
        return event.assistant_text if full else truncate(event.assistant_text, TEXT_TRUNCATE_THRESHOLD)
    if event.tool == "Bash" and event.command:
        return f"$ {event.command}"
    if event.tool_input:
        return truncate(json.dumps(event.tool_input), TEXT_TRUNCATE_THRESHOLD)
    return event.kind


def session_status_text(session: SessionSnapshot) -> str:
    prefix = "ext " if session.is_external else ""
    if session.status == WAITING:
        return f"{prefix}needs attention"
    if session.active_tool:
        return f"{prefix}{session.active_tool}"
    if session.status == WORKING:
        return f"{prefix}working..."
    if session.status == OFFLINE:
        return f"{prefix}offline"
    return f"{prefix}{session.folder or 'idle'}"
