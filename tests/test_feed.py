"""Tests for the activity feed and its formatting helpers."""

from datetime import datetime

import pytest

from hexswarm.feed import (
    ActivityFeed,
    event_content,
    format_time,
    format_tokens,
    has_long_bash_output,
    has_long_response,
    session_status_text,
    truncate,
)
from hexswarm.models import SessionEvent, SessionSnapshot


def ev(session_id, cwd=None, **fields):
    return SessionEvent(kind=fields.pop("kind", "pre_tool_use"), session_id=session_id, cwd=cwd, **fields)


class TestActivityFeed:
    def test_bounded(self):
        feed = ActivityFeed(maxlen=3)
        for n in range(5):
            feed.append(ev(f"s{n}"))
        assert [e.session_id for e in feed] == ["s2", "s3", "s4"]

    def test_replace(self):
        feed = ActivityFeed()
        feed.append(ev("old"))
        feed.replace([ev("a"), ev("b")])
        assert len(feed) == 2

    def test_set_tokens_ignores_non_numbers(self):
        feed = ActivityFeed()
        feed.set_tokens(1500)
        feed.set_tokens("lots")
        feed.set_tokens(True)
        feed.set_tokens(None)
        assert feed.tokens == 1500

    def test_for_session_filters_with_suppression(self):
        a = SessionSnapshot(id="A", display_name="A", working_directory="/p", external_identity="ext1")
        b = SessionSnapshot(id="B", display_name="B", working_directory="/p")
        sessions = (a, b)
        feed = ActivityFeed()
        feed.replace([ev("ext1", "/p"), ev("raw", "/p"), ev("B", "/elsewhere")])

        assert [e.session_id for e in feed.for_session("A", sessions)] == ["ext1"]
        assert [e.session_id for e in feed.for_session("B", sessions)] == ["raw", "B"]
        assert len(feed.for_session(None, sessions)) == 3
        assert feed.for_session("gone", sessions) == []


class TestFormatting:
    @pytest.mark.parametrize("n, expected", [(0, "0"), (999, "999"), (1500, "1.5k"), (2_500_000, "2.5M")])
    def test_format_tokens(self, n, expected):
        assert format_tokens(n) == expected

    def test_format_time(self):
        ts = datetime(2024, 5, 1, 13, 4, 5).timestamp() * 1000
        assert format_time(int(ts)) == "13:04:05"

    def test_truncate(self):
        assert truncate("short", 10) == "short"
        assert truncate("abcdefghij", 4) == "abcd..."

    def test_bash_content_shows_command(self):
        assert event_content(ev("s", tool="Bash", tool_input={"command": "make test"})) == "$ make test"

    def test_stop_response_truncated(self):
        event = ev("s", kind="stop", response="x" * 400)
        assert event_content(event).endswith("...")
        assert len(event_content(event)) == 303
        assert event_content(event, full=True) == "x" * 400

    def test_subagent_stop_does_not_repeat_response(self):
        event = ev("s", kind="subagent_stop", response="done")
        assert event_content(event) == "subagent_stop"

    def test_long_outputs(self):
        assert has_long_response(ev("s", kind="stop", response="y" * 501))
        assert not has_long_response(ev("s", kind="stop", response="y" * 500))
        assert has_long_bash_output(ev("s", tool="Bash", tool_output={"stdout": "z" * 301}))
        assert not has_long_bash_output(ev("s", tool="Bash"))


class TestSessionStatusText:
    def test_waiting(self):
        assert session_status_text(SessionSnapshot(id="a", display_name="a", status="waiting")) == "needs attention"

    def test_tool(self):
        s = SessionSnapshot(id="a", display_name="a", status="working", active_tool="Edit")
        assert session_status_text(s) == "Edit"

    def test_external_idle_shows_folder(self):
        s = SessionSnapshot(id="a", display_name="a", working_directory="/src/app", session_type="external")
        assert session_status_text(s) == "ext app"
