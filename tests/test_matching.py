"""Tests for event-to-session matching."""

from hexswarm.matching import attribute, belongs_to_session, routes_to_zone
from hexswarm.models import SessionEvent, SessionSnapshot


def snap(session_id, cwd=None, ext=None):
    return SessionSnapshot(id=session_id, display_name=session_id, working_directory=cwd, external_identity=ext)


def event(session_id, cwd=None):
    return SessionEvent(kind="pre_tool_use", session_id=session_id, cwd=cwd, tool="Read")


class TestRoutesToZone:
    def test_external_identity_match(self):
        assert routes_to_zone(event("ext1", "/elsewhere"), snap("A", "/p", "ext1"))

    def test_cwd_match(self):
        assert routes_to_zone(event("zzz", "/p"), snap("A", "/p"))

    def test_no_match(self):
        assert not routes_to_zone(event("zzz", "/q"), snap("A", "/p", "ext1"))

    def test_missing_cwd_does_not_match_missing_directory(self):
        assert not routes_to_zone(event("zzz", None), snap("A", None))

    def test_scene_rule_is_permissive(self):
        # cwd match still routes even when another session owns the identity
        assert routes_to_zone(event("ext1", "/p"), snap("B", "/p"))


class TestBelongsToSession:
    def test_exact_id(self):
        a = snap("A", "/p", "ext1")
        assert belongs_to_session(event("A", "/other"), a, [a])

    def test_external_identity_is_strict(self):
        a = snap("A", "/p", "ext1")
        assert belongs_to_session(event("ext1", "/x"), a, [a])
        assert not belongs_to_session(event("other", "/p"), a, [a])

    def test_cwd_fallback(self):
        b = snap("B", "/p")
        assert belongs_to_session(event("raw", "/p"), b, [b])
        assert not belongs_to_session(event("raw", "/q"), b, [b])

    def test_cwd_suppressed_when_other_session_owns_identity(self):
        a = snap("A", "/p", "ext1")
        b = snap("B", "/p")
        e = event("ext1", "/p")
        assert belongs_to_session(e, a, [a, b])
        assert not belongs_to_session(e, b, [a, b])


class TestAttribute:
    def test_first_owner_in_order(self):
        a = snap("A", "/p", "ext1")
        b = snap("B", "/p")
        assert attribute(event("ext1", "/p"), [b, a]) is a
        assert attribute(event("raw", "/p"), [a, b]) is b

    def test_unattributed(self):
        assert attribute(event("nobody", "/nowhere"), [snap("A", "/p")]) is None
