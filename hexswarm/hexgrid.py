"""
Hex grid math on a pointy-top axial layout.

Cells are addressed by axial ``(q, r)``; the redundant cube component
``s = -q - r`` only appears while rounding. Ring order is fixed so that
independent allocations against the same occupancy always agree.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

HEX_SIZE = 3.5               # cell radius
HEX_GAP = 0.2                # gap between neighbouring cells
PITCH = HEX_SIZE + HEX_GAP
MAX_SEARCH_RADIUS = 5

SQRT3 = math.sqrt(3)

# Walk order for rings; ring(c, n) starts at c + n * DIRECTIONS[4].
DIRECTIONS: tuple[tuple[int, int], ...] = (
    (1, 0),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (0, -1),
    (1, -1),
)


@dataclass(frozen=True)
class AxialCoordinate:
    q: int
    r: int

    @property
    def key(self) -> str:
        return f"{self.q},{self.r}"

    def __add__(self, other: "AxialCoordinate") -> "AxialCoordinate":
        return AxialCoordinate(self.q + other.q, self.r + other.r)

    def scaled(self, factor: int) -> "AxialCoordinate":
        return AxialCoordinate(self.q * factor, self.r * factor)

    def to_dict(self) -> dict[str, int]:
        return {"q": self.q, "r": self.r}


ORIGIN = AxialCoordinate(0, 0)


def to_world(cell: AxialCoordinate, pitch: float = PITCH) -> tuple[float, float]:
    """Planar (x, z) centre of ``cell``."""
    x = pitch * (SQRT3 * cell.q + (SQRT3 / 2) * cell.r)
    z = pitch * (1.5 * cell.r)
    return x, z


def to_axial_fractional(x: float, z: float, pitch: float = PITCH) -> tuple[float, float]:
    q = ((SQRT3 / 3) * x - (1 / 3) * z) / pitch
    r = ((2 / 3) * z) / pitch
    return q, r


def _round_half_up(value: float) -> int:
    # ties round up; round() would round half to even
    return math.floor(value + 0.5)


def round_to_nearest_cell(frac_q: float, frac_r: float) -> AxialCoordinate:
    """Cube rounding: round all three components, then re-derive the worst one."""
    frac_s = -frac_q - frac_r

    rq = _round_half_up(frac_q)
    rr = _round_half_up(frac_r)
    rs = _round_half_up(frac_s)

    dq = abs(rq - frac_q)
    dr = abs(rr - frac_r)
    ds = abs(rs - frac_s)

    if dq > dr and dq > ds:
        rq = -rr - rs
    elif ds > dr:
        pass  # s re-derived; (q, r) unchanged
    else:
        rr = -rq - rs

    return AxialCoordinate(int(rq), int(rr))


def world_to_cell(x: float, z: float, pitch: float = PITCH) -> AxialCoordinate:
    return round_to_nearest_cell(*to_axial_fractional(x, z, pitch))


def ring(center: AxialCoordinate, radius: int) -> list[AxialCoordinate]:
    if radius < 0:
        return []
    if radius == 0:
        return [center]

    results: list[AxialCoordinate] = []
    start_q, start_r = DIRECTIONS[4]
    cell = center + AxialCoordinate(start_q, start_r).scaled(radius)
    for dq, dr in DIRECTIONS:
        step = AxialCoordinate(dq, dr)
        for _ in range(radius):
            results.append(cell)
            cell = cell + step
    return results


def spiral(center: AxialCoordinate, radius: int) -> list[AxialCoordinate]:
    """Every cell within ``radius`` of ``center``, ring by ring."""
    results: list[AxialCoordinate] = []
    for n in range(radius + 1):
        results.extend(ring(center, n))
    return results


def distance(a: AxialCoordinate, b: AxialCoordinate) -> int:
    return (abs(a.q - b.q) + abs(a.q + a.r - b.q - b.r) + abs(a.r - b.r)) // 2


def find_nearest_free_cell(
    center: AxialCoordinate,
    occupancy: Iterable[str],
    max_radius: int = MAX_SEARCH_RADIUS,
) -> AxialCoordinate:
    occupied = occupancy if isinstance(occupancy, (set, frozenset)) else frozenset(occupancy)

    for radius in range(max_radius + 1):
        for cell in ring(center, radius):
            if cell.key not in occupied:
                return cell

    overflow = AxialCoordinate(max_radius + 1, 0)
    if overflow.key not in occupied:
        return overflow

    # Overflow cell taken too: keep walking outward rings until one is free.
    radius = max_radius + 1
    while True:
        for cell in ring(center, radius):
            if cell.key not in occupied:
                return cell
        radius += 1


def occupied_cells(cells: Iterable[AxialCoordinate | None]) -> frozenset[str]:
    return frozenset(cell.key for cell in cells if cell is not None)
