"""Tests for SceneReconciler snapshot diffing, event routing and selection."""

import pytest

from hexswarm.hexgrid import AxialCoordinate
from hexswarm.reconciler import Burst, SceneReconciler


@pytest.fixture
def bursts():
    return []


@pytest.fixture
def reconciler(bursts):
    return SceneReconciler(burst_sink=bursts.append)


class TestApplySnapshot:
    def test_zone_per_session(self, reconciler, make_session):
        result = reconciler.apply_snapshot([make_session("a"), make_session("b")])
        assert set(reconciler.zones) == {"a", "b"}
        assert result.created == ["a", "b"]
        assert [s.id for s in reconciler.sessions] == ["a", "b"]

    def test_idempotent(self, reconciler, make_session):
        payload = [make_session("a", status="working"), make_session("b")]
        reconciler.apply_snapshot(payload)
        zones_before = dict(reconciler.zones)
        rebuilds_before = {sid: dict(z.rebuilds) for sid, z in reconciler.zones.items()}

        result = reconciler.apply_snapshot(payload)

        assert not result.changed
        assert dict(reconciler.zones) == zones_before
        assert {sid: dict(z.rebuilds) for sid, z in reconciler.zones.items()} == rebuilds_before

    def test_missing_sessions_disposed(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        zone_b = reconciler.zone_for("b")
        result = reconciler.apply_snapshot([make_session("a")])
        assert result.disposed == ["b"]
        assert reconciler.zone_for("b") is None
        assert zone_b.disposed

    def test_empty_snapshot_clears_scene(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a")])
        reconciler.apply_snapshot([])
        assert len(reconciler.zones) == 0
        assert reconciler.sessions == ()

    def test_malformed_entries_skipped(self, reconciler, make_session):
        result = reconciler.apply_snapshot([
            make_session("a"),
            {"name": "no id"},
            "garbage",
            make_session("bad", zonePosition={"q": "one", "r": 0}),
            make_session("a"),
            make_session("b"),
        ])
        assert set(reconciler.zones) == {"a", "b"}
        assert result.skipped == 4

    def test_allocation_order_for_unplaced_sessions(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b"), make_session("c")])
        cells = [reconciler.zone_for(sid).cell for sid in ("a", "b", "c")]
        assert cells == [AxialCoordinate(0, 0), AxialCoordinate(0, -1), AxialCoordinate(1, -1)]

    def test_allocation_avoids_assigned_cells(self, reconciler, make_session):
        reconciler.apply_snapshot([
            make_session("free"),
            make_session("placed", zonePosition={"q": 0, "r": 0}),
        ])
        assert reconciler.zone_for("placed").cell == AxialCoordinate(0, 0)
        assert reconciler.zone_for("free").cell == AxialCoordinate(0, -1)

    def test_allocated_cell_is_stable(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.apply_snapshot([make_session("b")])
        assert reconciler.zone_for("b").cell == AxialCoordinate(0, -1)

    def test_freed_cell_is_reused(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.apply_snapshot([make_session("b"), make_session("c")])
        assert reconciler.zone_for("c").cell == AxialCoordinate(0, 0)

    def test_assigned_cell_relocates_zone(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a")])
        result = reconciler.apply_snapshot([make_session("a", zonePosition={"q": 3, "r": -1})])
        assert result.updated == ["a"]
        assert reconciler.zone_for("a").cell == AxialCoordinate(3, -1)

    def test_reorder_updates_labels(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.apply_snapshot([make_session("b"), make_session("a")])
        assert reconciler.zone_for("b").label == "1. session-b"
        assert reconciler.zone_for("a").label == "2. session-a"

    def test_overflow_when_search_area_full(self, make_session):
        rec = SceneReconciler(max_radius=0)
        rec.apply_snapshot([make_session("a"), make_session("b")])
        assert rec.zone_for("b").cell == AxialCoordinate(1, 0)


class TestHandleEvent:
    def test_tool_start_activates_and_bursts(self, reconciler, bursts, make_session, make_event):
        reconciler.apply_snapshot([make_session("a", claudeSessionId="ext-a")])
        routed = reconciler.handle_event(make_event(
            "pre_tool_use", "ext-a", tool="Edit", toolInput={"file_path": "/work/a/main.py"},
        ))
        zone = reconciler.zone_for("a")
        assert routed == "a"
        assert zone.active_station == "workbench"
        assert zone.recent_files == ["main.py"]
        assert bursts == [Burst("a", zone.cell, zone.position[0], zone.position[1], "Edit")]

    def test_tool_end_deactivates(self, reconciler, make_session, make_event):
        reconciler.apply_snapshot([make_session("a")])
        reconciler.handle_event(make_event("pre_tool_use", "raw", cwd="/work/a", tool="Bash"))
        reconciler.handle_event(make_event("post_tool_use", "raw", cwd="/work/a", tool="Bash"))
        assert reconciler.zone_for("a").active_station is None

    def test_first_match_only(self, reconciler, bursts, make_session, make_event):
        reconciler.apply_snapshot([make_session("a", cwd="/p"), make_session("b", cwd="/p")])
        routed = reconciler.handle_event(make_event("pre_tool_use", "raw", cwd="/p", tool="Read"))
        assert routed == "a"
        assert reconciler.zone_for("b").active_station is None
        assert len(bursts) == 1

    def test_unmatched_event_is_ignored(self, reconciler, bursts, make_session, make_event):
        reconciler.apply_snapshot([make_session("a")])
        assert reconciler.handle_event(make_event("pre_tool_use", "nobody", cwd="/x", tool="Read")) is None
        assert bursts == []

    def test_malformed_event_dropped(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a")])
        assert reconciler.handle_event({"sessionId": "a"}) is None

    def test_burst_sink_failure_is_contained(self, make_session, make_event):
        def broken(_burst):
            raise RuntimeError("boom")

        rec = SceneReconciler(burst_sink=broken)
        rec.apply_snapshot([make_session("a")])
        assert rec.handle_event(make_event("pre_tool_use", "raw", cwd="/work/a", tool="Read")) == "a"
        assert rec.zone_for("a").active_station == "bookshelf"


class TestSelection:
    def test_select_dims_others(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.select("a")
        assert reconciler.zone_for("a").selected
        assert reconciler.zone_for("b").dimmed

    def test_selecting_another_deselects_previous(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.select("a")
        reconciler.select("b")
        zone_a, zone_b = reconciler.zone_for("a"), reconciler.zone_for("b")
        assert not zone_a.selected and zone_a.dimmed
        assert zone_b.selected and not zone_b.dimmed
        assert reconciler.selected_id == "b"

    def test_unknown_id_clears_selection(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.select("a")
        reconciler.select("ghost")
        assert reconciler.selected_id is None
        assert not reconciler.zone_for("a").selected

        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        assert not reconciler.zone_for("a").dimmed
        assert not reconciler.zone_for("b").dimmed

    def test_clear_selection(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.select("a")
        reconciler.select(None)
        assert not reconciler.zone_for("a").selected
        assert not reconciler.zone_for("b").dimmed

    def test_new_zone_dimmed_while_selection_active(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a")])
        reconciler.select("a")
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        assert reconciler.zone_for("b").dimmed

    def test_selection_cleared_when_session_disappears(self, reconciler, make_session):
        reconciler.apply_snapshot([make_session("a"), make_session("b")])
        reconciler.select("a")
        reconciler.apply_snapshot([make_session("b")])
        assert reconciler.selected_id is None
        assert not reconciler.zone_for("b").dimmed


def test_focus_point(reconciler, make_session):
    assert reconciler.focus_point() == (0.0, 0.0)
    reconciler.apply_snapshot([
        make_session("a", zonePosition={"q": 1, "r": 0}),
        make_session("b", zonePosition={"q": -1, "r": 0}),
    ])
    x, z = reconciler.focus_point()
    assert x == pytest.approx(0.0)
    assert z == pytest.approx(0.0)
