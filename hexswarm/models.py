"""
Typed views of the backend's wire payloads.

Snapshots and events arrive as loosely-shaped JSON objects. They are parsed
once, at the edge, into frozen dataclasses; everything downstream works on
these records instead of probing dict keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hexswarm.hexgrid import AxialCoordinate

# -- session status ----------------------------------------------------------

IDLE = "idle"
WORKING = "working"
WAITING = "waiting"
OFFLINE = "offline"
STATUSES = frozenset({IDLE, WORKING, WAITING, OFFLINE})

# -- event kinds -------------------------------------------------------------

PRE_TOOL_USE = "pre_tool_use"
POST_TOOL_USE = "post_tool_use"
STOP = "stop"
SUBAGENT_STOP = "subagent_stop"
SESSION_START = "session_start"
SESSION_END = "session_end"
USER_PROMPT_SUBMIT = "user_prompt_submit"
NOTIFICATION = "notification"
PRE_COMPACT = "pre_compact"

TOOL_START_KINDS = frozenset({PRE_TOOL_USE})
TOOL_END_KINDS = frozenset({POST_TOOL_USE})

FILE_PATH_FIELDS = ("file_path", "path", "notebook_path", "filePath")


class MalformedEntryError(ValueError):
    """A wire object is missing a required field or has the wrong shape."""


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        return str(value)
    return value


def _int(data: dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def parse_cell(raw: Any) -> AxialCoordinate | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise MalformedEntryError(f"zonePosition must be an object, got {type(raw).__name__}")
    q, r = raw.get("q"), raw.get("r")
    for name, value in (("q", q), ("r", r)):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
            raise MalformedEntryError(f"zonePosition.{name} must be an integer, got {value!r}")
    return AxialCoordinate(int(q), int(r))


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileChanges:
    added: int = 0
    modified: int = 0
    deleted: int = 0

    @classmethod
    def from_dict(cls, raw: Any) -> "FileChanges":
        if not isinstance(raw, dict):
            return cls()
        return cls(_int(raw, "added"), _int(raw, "modified"), _int(raw, "deleted"))

    @property
    def total(self) -> int:
        return self.added + self.modified + self.deleted


@dataclass(frozen=True)
class GitInfo:
    branch: str = ""
    ahead: int = 0
    behind: int = 0
    staged: FileChanges = field(default_factory=FileChanges)
    unstaged: FileChanges = field(default_factory=FileChanges)
    untracked: int = 0
    total_files: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    last_commit_message: str | None = None
    is_repo: bool = False
    # refreshed on every backend poll; not a visible change
    last_checked: int = field(default=0, compare=False)

    @classmethod
    def from_dict(cls, raw: Any) -> "GitInfo | None":
        if not isinstance(raw, dict):
            return None
        return cls(
            branch=_opt_str(raw, "branch") or "",
            ahead=_int(raw, "ahead"),
            behind=_int(raw, "behind"),
            staged=FileChanges.from_dict(raw.get("staged")),
            unstaged=FileChanges.from_dict(raw.get("unstaged")),
            untracked=_int(raw, "untracked"),
            total_files=_int(raw, "totalFiles"),
            lines_added=_int(raw, "linesAdded"),
            lines_removed=_int(raw, "linesRemoved"),
            last_commit_message=_opt_str(raw, "lastCommitMessage"),
            is_repo=bool(raw.get("isRepo", False)),
            last_checked=_int(raw, "lastChecked"),
        )

    @property
    def badge(self) -> str:
        """Short label: ``main +2 -1 ~3``."""
        parts = [self.branch or "?"]
        if self.ahead:
            parts.append(f"↑{self.ahead}")
        if self.behind:
            parts.append(f"↓{self.behind}")
        if self.lines_added or self.lines_removed:
            parts.append(f"+{self.lines_added} -{self.lines_removed}")
        changed = self.staged.total + self.unstaged.total + self.untracked
        if changed:
            parts.append(f"~{changed}")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionSnapshot:
    id: str
    display_name: str
    status: str = IDLE
    working_directory: str | None = None
    external_identity: str | None = None
    assigned_cell: AxialCoordinate | None = None
    active_tool: str | None = None
    git_info: GitInfo | None = None
    session_type: str = "internal"
    agent: str | None = None
    suggestion: str | None = None
    last_activity: int = 0

    @classmethod
    def from_dict(cls, raw: Any) -> "SessionSnapshot":
        if not isinstance(raw, dict):
            raise MalformedEntryError(f"session entry must be an object, got {type(raw).__name__}")
        session_id = raw.get("id")
        if not isinstance(session_id, str) or not session_id:
            raise MalformedEntryError(f"session entry has no usable id: {session_id!r}")

        status = raw.get("status")
        if status not in STATUSES:
            status = IDLE

        return cls(
            id=session_id,
            display_name=_opt_str(raw, "name") or session_id,
            status=status,
            working_directory=_opt_str(raw, "cwd"),
            external_identity=_opt_str(raw, "claudeSessionId") or _opt_str(raw, "codexThreadId"),
            assigned_cell=parse_cell(raw.get("zonePosition")),
            active_tool=_opt_str(raw, "currentTool"),
            git_info=GitInfo.from_dict(raw.get("gitStatus")),
            session_type=_opt_str(raw, "type") or "internal",
            agent=_opt_str(raw, "agent"),
            suggestion=_opt_str(raw, "suggestion"),
            last_activity=_int(raw, "lastActivity"),
        )

    @property
    def is_external(self) -> bool:
        return self.session_type == "external"

    @property
    def folder(self) -> str | None:
        if not self.working_directory:
            return None
        return self.working_directory.rstrip("/").rsplit("/", 1)[-1] or None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionEvent:
    kind: str
    session_id: str
    cwd: str | None = None
    tool: str | None = None
    tool_input: Any = None
    tool_output: Any = None
    timestamp_ms: int = 0
    duration_ms: int | None = None
    id: str | None = None
    success: bool | None = None
    assistant_text: str | None = None
    response: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> "SessionEvent":
        if not isinstance(raw, dict):
            raise MalformedEntryError(f"event must be an object, got {type(raw).__name__}")
        kind = raw.get("type")
        if not isinstance(kind, str) or not kind:
            raise MalformedEntryError(f"event has no type: {kind!r}")
        duration = raw.get("duration")
        success = raw.get("success")
        return cls(
            kind=kind,
            session_id=_opt_str(raw, "sessionId") or "",
            cwd=_opt_str(raw, "cwd"),
            tool=_opt_str(raw, "tool"),
            tool_input=raw.get("toolInput"),
            tool_output=raw.get("toolResponse"),
            timestamp_ms=_int(raw, "timestamp"),
            duration_ms=int(duration) if isinstance(duration, (int, float)) and not isinstance(duration, bool) else None,
            id=_opt_str(raw, "id"),
            success=success if isinstance(success, bool) else None,
            assistant_text=_opt_str(raw, "assistantText"),
            response=_opt_str(raw, "response"),
        )

    @property
    def is_tool_start(self) -> bool:
        return self.kind in TOOL_START_KINDS

    @property
    def is_tool_end(self) -> bool:
        return self.kind in TOOL_END_KINDS

    @property
    def file_path(self) -> str | None:
        if not isinstance(self.tool_input, dict):
            return None
        for key in FILE_PATH_FIELDS:
            value = self.tool_input.get(key)
            if isinstance(value, str):
                return value
        return None

    @property
    def command(self) -> str | None:
        if not isinstance(self.tool_input, dict):
            return None
        value = self.tool_input.get("command")
        return value if isinstance(value, str) else None
