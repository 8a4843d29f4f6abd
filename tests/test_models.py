"""Tests for parsing wire payloads into hexswarm.models records."""

import pytest

from hexswarm.hexgrid import AxialCoordinate
from hexswarm.models import (
    IDLE,
    WORKING,
    GitInfo,
    MalformedEntryError,
    SessionEvent,
    SessionSnapshot,
    parse_cell,
)


class TestSessionSnapshot:
    def test_basic_fields(self, make_session):
        snap = SessionSnapshot.from_dict(make_session(
            "a", status="working", currentTool="Bash",
            claudeSessionId="ext-a", zonePosition={"q": 2, "r": -1},
        ))
        assert snap.id == "a"
        assert snap.display_name == "session-a"
        assert snap.status == WORKING
        assert snap.working_directory == "/work/a"
        assert snap.external_identity == "ext-a"
        assert snap.assigned_cell == AxialCoordinate(2, -1)
        assert snap.active_tool == "Bash"

    def test_codex_thread_is_external_identity(self, make_session):
        snap = SessionSnapshot.from_dict(make_session("c", codexThreadId="thread-9"))
        assert snap.external_identity == "thread-9"

    def test_name_falls_back_to_id(self):
        assert SessionSnapshot.from_dict({"id": "xyz"}).display_name == "xyz"

    def test_unknown_status_is_idle(self, make_session):
        assert SessionSnapshot.from_dict(make_session("a", status="dancing")).status == IDLE

    @pytest.mark.parametrize("raw", [None, "a", 3, [], {}, {"id": ""}, {"id": 7}])
    def test_malformed_entries_raise(self, raw):
        with pytest.raises(MalformedEntryError):
            SessionSnapshot.from_dict(raw)

    def test_malformed_zone_position_raises(self, make_session):
        with pytest.raises(MalformedEntryError):
            SessionSnapshot.from_dict(make_session("a", zonePosition={"q": "x", "r": 0}))

    def test_folder(self, make_session):
        assert SessionSnapshot.from_dict(make_session("a", cwd="/home/dev/proj/")).folder == "proj"
        assert SessionSnapshot.from_dict({"id": "b"}).folder is None


class TestParseCell:
    def test_none(self):
        assert parse_cell(None) is None

    def test_integral_floats_accepted(self):
        assert parse_cell({"q": 1.0, "r": -2}) == AxialCoordinate(1, -2)

    @pytest.mark.parametrize("raw", [[1, 2], {"q": 1}, {"q": 0.5, "r": 0}, {"q": True, "r": 0}])
    def test_rejects(self, raw):
        with pytest.raises(MalformedEntryError):
            parse_cell(raw)


class TestGitInfo:
    def test_last_checked_ignored_in_equality(self):
        base = {"isRepo": True, "branch": "main", "ahead": 1}
        a = GitInfo.from_dict({**base, "lastChecked": 1})
        b = GitInfo.from_dict({**base, "lastChecked": 2})
        assert a == b

    def test_badge(self):
        git = GitInfo.from_dict({
            "isRepo": True, "branch": "main", "ahead": 2, "behind": 1,
            "linesAdded": 10, "linesRemoved": 3, "untracked": 2,
            "unstaged": {"added": 0, "modified": 1, "deleted": 0},
        })
        assert git.badge == "main ↑2 ↓1 +10 -3 ~3"

    def test_non_dict_is_none(self):
        assert GitInfo.from_dict("nope") is None


class TestSessionEvent:
    def test_tool_start(self, make_event):
        event = SessionEvent.from_dict(make_event(
            "pre_tool_use", "ext-1", tool="Edit", cwd="/w",
            toolInput={"file_path": "/w/src/app.py"},
        ))
        assert event.is_tool_start and not event.is_tool_end
        assert event.file_path == "/w/src/app.py"
        assert event.session_id == "ext-1"
        assert event.timestamp_ms == 1_700_000_000_000

    def test_tool_end(self, make_event):
        event = SessionEvent.from_dict(make_event("post_tool_use", duration=120, success=False))
        assert event.is_tool_end
        assert event.duration_ms == 120
        assert event.success is False

    def test_command(self, make_event):
        event = SessionEvent.from_dict(make_event(tool="Bash", toolInput={"command": "ls -la"}))
        assert event.command == "ls -la"
        assert event.file_path is None

    @pytest.mark.parametrize("raw", [None, [], {"sessionId": "x"}, {"type": ""}])
    def test_requires_type(self, raw):
        with pytest.raises(MalformedEntryError):
            SessionEvent.from_dict(raw)
