"""Shared fixtures: wire-shaped session and event payloads."""

from typing import Any

import pytest


def session_payload(session_id: str, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": session_id,
        "name": f"session-{session_id}",
        "type": "internal",
        "status": "idle",
        "cwd": f"/work/{session_id}",
    }
    payload.update(overrides)
    return payload


def event_payload(kind: str = "pre_tool_use", session_id: str = "raw-1", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": f"evt-{kind}",
        "type": kind,
        "sessionId": session_id,
        "timestamp": 1_700_000_000_000,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_session():
    """Factory for ``sessions`` payload entries."""
    return session_payload


@pytest.fixture
def make_event():
    """Factory for ``event`` payloads."""
    return event_payload
