"""
SceneReconciler -- keeps the zone set in step with the backend.

Each ``sessions`` push is a full, authoritative list. The reconciler diffs it
against the zones it already holds: zones whose session vanished are
disposed, new sessions get a zone (allocating a cell if the backend has not
placed them), and surviving zones receive a field-level update. Discrete
events are routed to at most one zone.

The reconciler is the only writer of the zone map, the current session list
and the selected id; renderers read them through the accessors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from hexswarm.hexgrid import (
    MAX_SEARCH_RADIUS,
    ORIGIN,
    AxialCoordinate,
    find_nearest_free_cell,
    occupied_cells,
)
from hexswarm.models import MalformedEntryError, SessionEvent, SessionSnapshot
from hexswarm.zone import VisualZone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Burst:
    """A short-lived effect requested at a zone's position."""
    session_id: str
    cell: AxialCoordinate
    x: float
    z: float
    tool: str


@dataclass
class ReconcileResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    disposed: list[str] = field(default_factory=list)
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.disposed)


class SceneReconciler:
    def __init__(
        self,
        max_radius: int = MAX_SEARCH_RADIUS,
        burst_sink: Callable[[Burst], None] | None = None,
    ):
        self.max_radius = max_radius
        self._burst_sink = burst_sink
        self._zones: dict[str, VisualZone] = {}
        self._sessions: tuple[SessionSnapshot, ...] = ()
        self._selected_id: str | None = None

    # -- accessors ------------------------------------------------------------

    @property
    def zones(self) -> Mapping[str, VisualZone]:
        return MappingProxyType(self._zones)

    @property
    def sessions(self) -> tuple[SessionSnapshot, ...]:
        return self._sessions

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    def zone_for(self, session_id: str) -> VisualZone | None:
        return self._zones.get(session_id)

    def session_for(self, session_id: str) -> SessionSnapshot | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    # -- snapshot reconciliation ---------------------------------------------

    def _parse_entries(self, entries: Iterable[Any], result: ReconcileResult) -> list[SessionSnapshot]:
        parsed: list[SessionSnapshot] = []
        seen: set[str] = set()
        for position, raw in enumerate(entries):
            try:
                snapshot = raw if isinstance(raw, SessionSnapshot) else SessionSnapshot.from_dict(raw)
            except MalformedEntryError as exc:
                logger.warning("Skipping snapshot entry %d: %s", position, exc)
                result.skipped += 1
                continue
            if snapshot.id in seen:
                logger.warning("Skipping snapshot entry %d: duplicate id %s", position, snapshot.id)
                result.skipped += 1
                continue
            seen.add(snapshot.id)
            parsed.append(snapshot)
        return parsed

    def _occupancy(
        self,
        session_id: str,
        snapshots: list[SessionSnapshot],
        allocated: dict[str, AxialCoordinate],
    ) -> frozenset[str]:
        cells: list[AxialCoordinate | None] = [
            s.assigned_cell for s in snapshots if s.id != session_id
        ]
        cells.extend(z.cell for zid, z in self._zones.items() if zid != session_id)
        cells.extend(c for sid, c in allocated.items() if sid != session_id)
        return occupied_cells(cells)

    def apply_snapshot(self, entries: Iterable[Any]) -> ReconcileResult:
        result = ReconcileResult()
        snapshots = self._parse_entries(entries, result)
        current_ids = {s.id for s in snapshots}

        for session_id in [zid for zid in self._zones if zid not in current_ids]:
            zone = self._zones.pop(session_id)
            zone.dispose()
            result.disposed.append(session_id)
            logger.debug("Disposed zone %s", session_id)

        if self._selected_id is not None and self._selected_id not in current_ids:
            self.select(None)

        allocated: dict[str, AxialCoordinate] = {}
        for index, snapshot in enumerate(snapshots):
            zone = self._zones.get(snapshot.id)

            if zone is None:
                cell = snapshot.assigned_cell
                if cell is None:
                    occupancy = self._occupancy(snapshot.id, snapshots, allocated)
                    cell = find_nearest_free_cell(ORIGIN, occupancy, self.max_radius)
                    allocated[snapshot.id] = cell
                    logger.debug("Allocated cell (%d,%d) for %s", cell.q, cell.r, snapshot.id)
                zone = VisualZone(snapshot, cell, index)
                self._zones[snapshot.id] = zone
                result.created.append(snapshot.id)
            else:
                applied = zone.update(snapshot)
                if zone.set_index(index):
                    applied.add("label")
                if snapshot.assigned_cell is not None and snapshot.assigned_cell != zone.cell:
                    zone.relocate(snapshot.assigned_cell)
                    applied.add("position")
                if applied:
                    result.updated.append(snapshot.id)

            if snapshot.id == self._selected_id and not zone.selected:
                zone.set_selected(True)
            elif self._selected_id is not None and snapshot.id != self._selected_id:
                zone.set_dimmed(True)

        self._sessions = tuple(snapshots)
        if result.changed or result.skipped:
            logger.info(
                "Reconciled %d sessions: +%d ~%d -%d (skipped %d)",
                len(snapshots), len(result.created), len(result.updated),
                len(result.disposed), result.skipped,
            )
        return result

    # -- event routing --------------------------------------------------------

    def handle_event(self, event: SessionEvent | dict[str, Any]) -> str | None:
        """Forward ``event`` to the first zone it routes to; return that zone's id."""
        if not isinstance(event, SessionEvent):
            try:
                event = SessionEvent.from_dict(event)
            except MalformedEntryError as exc:
                logger.warning("Dropping malformed event: %s", exc)
                return None

        for zone in self._zones.values():
            if not zone.matches_event(event):
                continue
            if event.is_tool_start and event.tool:
                zone.activate_tool(event.tool)
                self._request_burst(zone, event.tool)
                file_path = event.file_path
                if file_path:
                    zone.add_file(file_path)
            elif event.is_tool_end:
                zone.deactivate_tool()
            return zone.session_id
        return None

    def _request_burst(self, zone: VisualZone, tool: str):
        if self._burst_sink is None:
            return
        x, z = zone.position
        try:
            self._burst_sink(Burst(zone.session_id, zone.cell, x, z, tool))
        except Exception:
            logger.exception("Burst sink failed for %s", zone.session_id)

    # -- selection ------------------------------------------------------------

    def select(self, session_id: str | None):
        if self._selected_id is not None:
            previous = self._zones.get(self._selected_id)
            if previous is not None:
                previous.set_selected(False)

        if session_id is not None and session_id not in self._zones:
            logger.debug("Unknown session %s, clearing selection", session_id)
            session_id = None

        self._selected_id = session_id

        if session_id is None:
            for zone in self._zones.values():
                zone.set_dimmed(False)
            return

        for zid, zone in self._zones.items():
            if zid == session_id:
                zone.set_selected(True)
            else:
                zone.set_dimmed(True)

    def focus_point(self) -> tuple[float, float]:
        """Centroid of all zone positions; the origin when there are none."""
        if not self._zones:
            return 0.0, 0.0
        xs = [z.position[0] for z in self._zones.values()]
        zs = [z.position[1] for z in self._zones.values()]
        return sum(xs) / len(xs), sum(zs) / len(zs)
