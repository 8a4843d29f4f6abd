"""
Which session does an event belong to?

Two rules answer this for two consumers and are kept separate on purpose:

* ``routes_to_zone`` decides whether a zone on the map reacts to an event.
  It is permissive: external identity OR same working directory.
* ``belongs_to_session`` decides which session an activity-feed line is
  attributed to. A directory-based match is suppressed when another,
  exactly-identified session owns the event's session id.

The scene rule can route one event to several zones when directories
collide; the reconciler only forwards to the first. Tightening the scene rule
to the feed rule would change which zone lights up, so it is left as is.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from hexswarm.models import SessionEvent, SessionSnapshot


def routes_to_zone(event: SessionEvent, session: SessionSnapshot) -> bool:
    if session.external_identity is not None and event.session_id == session.external_identity:
        return True
    return event.cwd is not None and event.cwd == session.working_directory


def belongs_to_session(
    event: SessionEvent,
    target: SessionSnapshot,
    all_sessions: Iterable[SessionSnapshot],
) -> bool:
    if event.session_id == target.id:
        return True

    # exactly-identified sessions never fall back to directory matching
    if target.external_identity is not None:
        return event.session_id == target.external_identity

    if event.cwd != target.working_directory:
        return False

    for other in all_sessions:
        if other.id == target.id or other.external_identity is None:
            continue
        if other.external_identity == event.session_id:
            return False
    return True


def attribute(event: SessionEvent, sessions: Sequence[SessionSnapshot]) -> SessionSnapshot | None:
    """First session in snapshot order the event belongs to, if any."""
    for session in sessions:
        if belongs_to_session(event, session, sessions):
            return session
    return None
