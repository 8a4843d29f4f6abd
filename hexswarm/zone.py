"""
VisualZone -- the per-session entity placed on the hex map.

The zone keeps the snapshot it last rendered and applies only the aspects
that changed. Renderers read its public attributes; only the reconciler
mutates it.
"""

from __future__ import annotations

from collections import Counter

from hexswarm.hexgrid import AxialCoordinate, to_world
from hexswarm.matching import routes_to_zone
from hexswarm.models import IDLE, SessionEvent, SessionSnapshot

MAX_RECENT_FILES = 3

TOOL_STATION_MAP: dict[str, str] = {
    "Read": "bookshelf",
    "Write": "desk",
    "Edit": "workbench",
    "Bash": "terminal",
    "Grep": "scanner",
    "Glob": "scanner",
    "WebFetch": "antenna",
    "WebSearch": "antenna",
    "Task": "portal",
    "TodoWrite": "taskboard",
    "AskUserQuestion": "center",
    "NotebookEdit": "desk",
}

STATUS_STYLE: dict[str, str] = {
    "idle": "bright_cyan",
    "working": "bright_green",
    "waiting": "dark_orange",
    "offline": "grey50",
}

# pulse rate multiplier per status; 0 = steady
STATUS_PULSE: dict[str, float] = {
    "idle": 2.0,
    "working": 4.0,
    "waiting": 8.0,
    "offline": 0.0,
}


def station_for_tool(tool: str) -> str:
    return TOOL_STATION_MAP.get(tool, "center")


class VisualZone:
    def __init__(self, session: SessionSnapshot, cell: AxialCoordinate, index: int = 0):
        self.session = session
        self.cell = cell
        self.position = to_world(cell)
        self.index = index

        self.style = STATUS_STYLE[IDLE]
        self.pulse = STATUS_PULSE[IDLE]
        self.label = ""
        self.tool_label: str | None = None
        self.git_badge: str | None = None
        self.active_station: str | None = None
        self.active_tool: str | None = None
        self.recent_files: list[str] = []

        self.selected = False
        self.dimmed = False
        self.hovered = False
        self.disposed = False

        # how many times each aspect was (re)built
        self.rebuilds: Counter[str] = Counter()

        self._apply_status()
        self._build_label()
        self._build_git_badge()
        self._build_tool_label()
        if session.active_tool:
            self.activate_tool(session.active_tool)

    # -- identity -------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self.session.id

    def matches_event(self, event: SessionEvent) -> bool:
        return routes_to_zone(event, self.session)

    # -- aspect builders ------------------------------------------------------

    def _apply_status(self):
        status = self.session.status
        self.style = STATUS_STYLE.get(status, STATUS_STYLE[IDLE])
        self.pulse = STATUS_PULSE.get(status, STATUS_PULSE[IDLE])
        self.rebuilds["status"] += 1

    def _build_label(self):
        self.label = f"{self.index + 1}. {self.session.display_name}"
        self.rebuilds["label"] += 1

    def _build_git_badge(self):
        git = self.session.git_info
        self.git_badge = git.badge if git is not None and git.is_repo else None
        self.rebuilds["git"] += 1

    def _build_tool_label(self):
        tool = self.session.active_tool
        if tool and len(tool) > 35:
            tool = tool[:32] + "..."
        self.tool_label = tool
        self.rebuilds["tool"] += 1

    # -- update contract ------------------------------------------------------

    def update(self, session: SessionSnapshot) -> set[str]:
        """Apply a newer snapshot; return the aspects that were rebuilt."""
        if self.disposed:
            return set()

        previous = self.session
        self.session = session
        applied: set[str] = set()

        if previous.status != session.status:
            self._apply_status()
            self._build_label()
            applied.update(("status", "label"))

        if previous.display_name != session.display_name and "label" not in applied:
            self._build_label()
            applied.add("label")

        if previous.git_info != session.git_info:
            self._build_git_badge()
            applied.add("git")

        if previous.active_tool != session.active_tool:
            self._build_tool_label()
            if session.active_tool:
                self.activate_tool(session.active_tool)
            elif self.active_station:
                self.deactivate_tool()
            applied.add("tool")

        return applied

    def set_index(self, index: int) -> bool:
        if self.index == index:
            return False
        self.index = index
        self._build_label()
        return True

    def relocate(self, cell: AxialCoordinate):
        self.cell = cell
        self.position = to_world(cell)

    # -- tool activity --------------------------------------------------------

    def activate_tool(self, tool: str):
        self.active_tool = tool
        self.active_station = station_for_tool(tool)

    def deactivate_tool(self):
        self.active_tool = None
        self.active_station = None

    @property
    def tool_active(self) -> bool:
        return self.active_station is not None

    def add_file(self, file_path: str):
        filename = file_path.rsplit("/", 1)[-1]
        if not filename or filename in self.recent_files:
            return
        if len(self.recent_files) >= MAX_RECENT_FILES:
            self.recent_files.pop(0)
        self.recent_files.append(filename)

    # -- highlight state ------------------------------------------------------

    def set_selected(self, selected: bool):
        self.selected = selected
        if selected:
            self.dimmed = False

    def set_dimmed(self, dimmed: bool):
        if self.selected:
            return
        self.dimmed = dimmed

    def set_hovered(self, hovered: bool):
        self.hovered = hovered

    def dispose(self):
        self.recent_files.clear()
        self.active_station = None
        self.active_tool = None
        self.disposed = True

    def __repr__(self) -> str:
        return f"VisualZone({self.session.id!r}, cell=({self.cell.q},{self.cell.r}))"
