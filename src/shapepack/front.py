"""
Front-chain circle packing over a rectangle.

Follows Wang et al., "Visualization of large hierarchical data by circle
packing" (CHI 2006): circles are added one at a time, each tangent to two
neighbouring circles on the front chain (the counter-clockwise loop of
outermost circles), growing outward from the rectangle's centre until the
chain no longer touches the rectangle.
"""

import heapq
import math
import numpy as np
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .config import Circle

# Relative slack when deciding whether two circles overlap
OVERLAP_EPSILON = 1e-9

XY = Tuple[float, float]
GridKey = Tuple[int, int]


def tangent_positions(c1: Sequence[float], r1: float, c2: Sequence[float], r2: float, r: float) -> List[XY]:
    """
    Find positions where a circle of radius r is externally tangent to two
    existing circles. Returns 0, 1, or 2 positions; when there are two, the
    first lies to the left of the direction c1 -> c2.
    """
    dx, dy = c2[0] - c1[0], c2[1] - c1[1]
    d = math.hypot(dx, dy)

    # Distance from each center to the new circle's center
    d1 = r1 + r
    d2 = r2 + r

    # Check if solution exists (triangle inequality)
    if d > d1 + d2 or d < abs(d1 - d2) or d < 1e-10:
        return []

    # Intersection of the circles of radius d1 around c1 and d2 around c2
    a = (d1 * d1 - d2 * d2 + d * d) / (2 * d)
    h_sq = d1 * d1 - a * a

    if h_sq < 0:
        return []

    h = math.sqrt(h_sq)

    # Unit vector from c1 to c2
    ux, uy = dx / d, dy / d

    # Midpoint along c1-c2 axis
    px, py = c1[0] + a * ux, c1[1] + a * uy

    if h < 1e-10:
        return [(px, py)]
    # Left perpendicular is (-uy, ux)
    return [(px - h * uy, py + h * ux), (px + h * uy, py - h * ux)]


class FrontChainPacker:
    """Packs circles with radii in [radius_min, radius_max] over a rectangle."""

    def __init__(
        self,
        width: float,
        height: float,
        radius_min: float,
        radius_max: float,
        offset_x: float = 0.0,
        offset_y: float = 0.0,
        rng: Optional[np.random.Generator] = None,
        max_iterations: Optional[int] = None,
        verbose: bool = False,
    ):
        self.radius_min = float(min(radius_min, radius_max))
        self.radius_max = float(max(radius_min, radius_max))
        if self.radius_min <= 0:
            raise ValueError("radius_min must be positive")
        self.min_x, self.min_y = float(offset_x), float(offset_y)
        self.max_x, self.max_y = self.min_x + float(width), self.min_y + float(height)
        self.origin = ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.max_iterations = self.iteration_budget() if max_iterations is None else max_iterations
        self.verbose = verbose
        self.iterations = 0

        self.centers: List[XY] = []
        self.radii: List[float] = []

        # Front chain as a doubly linked loop of circle indices
        self._next: Dict[int, int] = {}
        self._prev: Dict[int, int] = {}
        # Chain circles bucketed by cells one maximum diameter wide
        self._cell_size = 2 * self.radius_max
        self._grid: Dict[GridKey, Set[int]] = {}
        # (distance to origin, index) of placed circles touching the rectangle
        self._heap: List[Tuple[float, int]] = []

    def iteration_budget(self) -> int:
        """
        Upper bound on the iterations a complete packing needs.

        Every circle lies within 3 * radius_max of the rectangle, so at most
        ((R + radius_min) / radius_min)^2 circles fit, R being the rectangle's
        half diagonal plus 3 * radius_max. Each placement retries at most once
        per chain circle it removes, and every circle is removed at most once.
        """
        half_diagonal = math.hypot(self.max_x - self.min_x, self.max_y - self.min_y) / 2
        reach = half_diagonal + 3 * self.radius_max + self.radius_min
        return 2 * math.ceil((reach / self.radius_min) ** 2) + 100

    def _random_radius(self) -> float:
        if self.radius_max > self.radius_min:
            return float(self.rng.uniform(self.radius_min, self.radius_max))
        return self.radius_min

    def _cell(self, x: float, y: float) -> GridKey:
        return (math.floor(x / self._cell_size), math.floor(y / self._cell_size))

    def _touches_bounds(self, x: float, y: float, r: float) -> bool:
        """Whether a circle intersects the rectangle."""
        gap_x = max(self.min_x - x, 0.0, x - self.max_x)
        gap_y = max(self.min_y - y, 0.0, y - self.max_y)
        return math.hypot(gap_x, gap_y) <= r

    def _place_circle(self, center: XY, radius: float) -> int:
        x, y = float(center[0]), float(center[1])
        idx = len(self.centers)
        self.centers.append((x, y))
        self.radii.append(radius)

        self._grid.setdefault(self._cell(x, y), set()).add(idx)
        if self._touches_bounds(x, y, radius):
            dist = math.hypot(x - self.origin[0], y - self.origin[1])
            heapq.heappush(self._heap, (dist, idx))
        return idx

    def _overlapping(self, center: XY, radius: float) -> Set[int]:
        """Chain circles that overlap a circle at center."""
        x, y = center
        cx, cy = self._cell(x, y)
        hits = set()
        for gx in range(cx - 1, cx + 2):
            for gy in range(cy - 1, cy + 2):
                for idx in self._grid.get((gx, gy), ()):
                    ox, oy = self.centers[idx]
                    if math.hypot(ox - x, oy - y) < (radius + self.radii[idx]) * (1 - OVERLAP_EPSILON):
                        hits.add(idx)
        return hits

    # =========================================================================
    # Chain maintenance
    # =========================================================================

    def _seed(self) -> None:
        """Three mutually tangent circles centred on the rectangle, linked CCW."""
        r1, r2, r3 = self._random_radius(), self._random_radius(), self._random_radius()
        c1 = (0.0, 0.0)
        c2 = (r1 + r2, 0.0)
        c3 = tangent_positions(c1, r1, c2, r2, r3)[0]

        shift_x = self.origin[0] - (c1[0] + c2[0] + c3[0]) / 3
        shift_y = self.origin[1] - (c1[1] + c2[1] + c3[1]) / 3
        a = self._place_circle((c1[0] + shift_x, c1[1] + shift_y), r1)
        b = self._place_circle((c2[0] + shift_x, c2[1] + shift_y), r2)
        c = self._place_circle((c3[0] + shift_x, c3[1] + shift_y), r3)

        self._next = {a: b, b: c, c: a}
        self._prev = {b: a, c: b, a: c}

    def _link(self, left: int, right: int) -> None:
        """Make right follow left, dropping every chain circle in between."""
        idx = self._next[left]
        while idx != right:
            following = self._next.pop(idx)
            del self._prev[idx]
            self._grid[self._cell(*self.centers[idx])].discard(idx)
            idx = following
        self._next[left] = right
        self._prev[right] = left

    def _closest_to_origin(self) -> Optional[int]:
        """Chain circle nearest the rectangle centre among those touching it."""
        while self._heap and self._heap[0][1] not in self._next:
            heapq.heappop(self._heap)
        return self._heap[0][1] if self._heap else None

    def _find_obstacle(self, m: int, n: int, center: XY, radius: float) -> Optional[Tuple[int, bool]]:
        """
        First chain circle overlapping a candidate placed between m and n,
        walking outward from both sides. Returns (index, found_after_n).
        """
        hits = self._overlapping(center, radius) - {m, n}
        if not hits:
            return None

        forward, backward = self._next[n], self._prev[m]
        for _ in range(len(self._next)):
            if forward in hits:
                return forward, True
            if backward in hits:
                return backward, False
            forward, backward = self._next[forward], self._prev[backward]
        return None

    # =========================================================================
    # Main loop
    # =========================================================================

    def pack(self) -> List[Circle]:
        """Grow the packing until the front chain has left the rectangle."""
        self.centers, self.radii = [], []
        self._grid, self._heap = {}, []
        self._seed()

        self.iterations = 0
        while self.iterations < self.max_iterations:
            m = self._closest_to_origin()
            if m is None:
                break
            n = self._next[m]
            radius = self._random_radius()

            while True:
                self.iterations += 1
                # The chain runs counter-clockwise, so outward is to the right of m -> n
                positions = tangent_positions(self.centers[m], self.radii[m], self.centers[n], self.radii[n], radius)
                if not positions:
                    break
                center = positions[-1]

                obstacle = self._find_obstacle(m, n, center, radius)
                if obstacle is None:
                    i = self._place_circle(center, radius)
                    self._next[m], self._prev[i] = i, m
                    self._next[i], self._prev[n] = n, i
                    if self.verbose and len(self.centers) % 500 == 0:
                        print(f"  Front chain: placed {len(self.centers)} circles, chain length {len(self._next)}")
                    break

                j, after_n = obstacle
                if after_n:
                    self._link(m, j)
                    n = j
                else:
                    self._link(j, n)
                    m = j

            if not positions:
                # m and n drifted apart beyond reach; drop n from the front
                self._link(m, self._next[n])

        if self.verbose:
            status = "done" if self._closest_to_origin() is None else "stopped at iteration limit"
            print(f"Front chain {status}! Placed {len(self.centers)} circles in {self.iterations} iterations")

        return [Circle(x, y, float(r)) for (x, y), r in zip(self.centers, self.radii)]
