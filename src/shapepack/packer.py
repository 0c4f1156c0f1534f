import numpy as np
import shapely
from typing import Iterator, List, Optional, Tuple
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from .config import Circle, PackingConfig, PackingMode, PackingProgress
from .errors import GeometricExhaustion, InvalidShapeInput
from .front import FrontChainPacker
from .geometry import PolygonGeometry, circle_polygon
from .index import MetricIndex, circle_distance
from .triangulation import filter_border_triangles, triangulate

# Circles whose centre lies outside the shape are tested as this polygon
FILTER_CIRCLE_SEGMENTS = 8
# Polygon subtracted for each extracted inscribed circle
INSCRIBED_CIRCLE_SEGMENTS = 20
# Lattice points are tested against the shape grown by this fraction of a radius
LATTICE_BUFFER_FACTOR = 0.95

MIN_TOLERANCE = 0.5
MIN_DIAMETER = 0.1
MIN_FRONT_RADIUS = 1.0


class CirclePacker:
    """
    Packs circles inside, around, or over a shape using various strategies.

    Every packing method is independent: it builds its own random source,
    index and working regions, so calls never influence each other. With a
    fixed config.seed, repeated calls return identical packings.
    """

    def __init__(self, shape, config: Optional[PackingConfig] = None):
        self.config = config or PackingConfig()
        self.geometry = PolygonGeometry(shape)

    def _rng(self) -> np.random.Generator:
        return np.random.default_rng(self.config.seed)

    # =========================================================================
    # Triangulation-Incircle Packing
    # =========================================================================

    def trinscribed_pack(self, points: Optional[int] = None, refinements: Optional[int] = None) -> List[Circle]:
        """
        Incircles of the triangles of a constrained triangulation.

        Args:
            points: Random Steiner points inserted into the triangulation;
                more points give more, generally smaller, circles.
            refinements: Triangulation refinement passes; more passes give
                more regularly spaced and sized circles (0-3 is sensible).

        Circles do not overlap and lie inside the shape, but are not
        necessarily tangent to each other.
        """
        points = self.config.steiner_points if points is None else points
        refinements = self.config.refinements if refinements is None else refinements

        steiner = self.geometry.random_points(max(0, int(points)), self._rng())
        triangles = filter_border_triangles(triangulate(self.geometry, steiner, refinements))
        circles = [t.incircle() for t in triangles]

        if self.config.verbose:
            print(f"Trinscribed: {len(steiner)} steiner points -> {len(circles)} circles")

        return circles

    # =========================================================================
    # Stochastic Packing
    # =========================================================================

    def _candidate_points(self, points: int, triangulate_candidates: bool, rng: np.random.Generator) -> np.ndarray:
        candidates = self.geometry.random_points(points, rng)
        if triangulate_candidates and len(candidates):
            triangles = filter_border_triangles(triangulate(self.geometry, candidates, refinements=1))
            candidates = np.array([t.centroid() for t in triangles]).reshape(-1, 2)
        return candidates

    def _seed_spacing(self) -> float:
        divisor = self.config.seed_spacing_divisor
        return self.geometry.extent / divisor if divisor and divisor > 0 else 0

    def _seed_index(self, rng: np.random.Generator) -> MetricIndex:
        """Index holding the shape boundary as radius-0 circles."""
        index = MetricIndex(circle_distance, leaf_size=self.config.index_leaf_size)
        seeds = self.geometry.boundary_seeds(self._seed_spacing())

        # Shuffled to keep the tree balanced
        for x, y in seeds[rng.permutation(len(seeds))]:
            index.insert((x, y, 0.0), Circle(float(x), float(y), 0.0))
        return index

    def stochastic_pack(
        self,
        points: Optional[int] = None,
        min_radius: Optional[float] = None,
        triangulate_candidates: Optional[bool] = None,
    ) -> List[Circle]:
        """
        Random packing: each random point becomes a circle touching its
        nearest circle (or boundary point), if that circle is big enough.

        Args:
            points: Number of random candidate points. This bounds, but is
                not, the number of circles returned.
            min_radius: Candidates whose free radius is not above this are
                dropped.
            triangulate_candidates: Use the centroids of a triangulation of the
                random points instead; covers the shape more evenly when
                points is small.

        With config.seed_spacing_divisor > 0 every radius is also capped at
        the distance to the shape boundary, so circles stay inside the shape.
        With 0 only the shape's vertices constrain the circles, which may then
        cross long edges.
        """
        points = self.config.attempts if points is None else points
        min_radius = self.config.min_radius if min_radius is None else min_radius
        if triangulate_candidates is None:
            triangulate_candidates = self.config.triangulate_candidates
        min_radius = max(0.0, float(min_radius))

        rng = self._rng()
        candidates = self._candidate_points(max(0, int(points)), triangulate_candidates, rng)
        index = self._seed_index(rng)

        # Seeds lie on the boundary but not everywhere on it; bound by the edges too
        if self._seed_spacing() > 0:
            walls = self.geometry.distances_to_boundary_batch(candidates)
        else:
            walls = np.full(len(candidates), np.inf)

        circles: List[Circle] = []
        largest = 0.0
        progress = PackingProgress(max_attempts=len(candidates), phase="stochastic")

        # Sequential: every accepted circle constrains the candidates after it
        for (x, y), wall in zip(candidates, walls):
            # Querying at the largest radius so far finds the nearest circle edge
            nearest, _ = index.nearest((x, y, largest))
            radius = float(min(np.hypot(x - nearest.x, y - nearest.y) - nearest.r, wall))
            progress.attempts += 1

            if radius > min_radius:
                largest = max(largest, radius)
                circle = Circle(float(x), float(y), radius)
                index.insert((circle.x, circle.y, radius), circle)
                circles.append(circle)
                progress.circles_placed += 1

            if self.config.verbose and progress.attempts % 250 == 0:
                print(progress)

        if self.config.verbose:
            print(f"Done! {progress}")

        return circles

    # =========================================================================
    # Front-Chain Packing
    # =========================================================================

    def front_chain_pack(self, radius_min: Optional[float] = None, radius_max: Optional[float] = None) -> List[Circle]:
        """
        Tangent circles of varying radii from a front-chain packing of the
        shape's bounding box, keeping those that overlap the shape.

        Radii are reordered if needed and clamped to at least 1. Set
        radius_min == radius_max for equal circles.
        """
        radius_min = self.config.radius_min if radius_min is None else radius_min
        radius_max = self.config.radius_max if radius_max is None else radius_max
        radius_min, radius_max = (
            max(MIN_FRONT_RADIUS, min(radius_min, radius_max)),
            max(MIN_FRONT_RADIUS, max(radius_min, radius_max)),
        )

        min_x, min_y, width, height = self.geometry.envelope()
        front = FrontChainPacker(
            width, height, radius_min, radius_max, min_x, min_y,
            rng=self._rng(),
            max_iterations=self.config.max_front_iterations,
            verbose=self.config.verbose,
        )
        candidates = front.pack()
        if not candidates:
            return []

        centers = np.array([(c.x, c.y) for c in candidates])
        if radius_min == radius_max:
            # Equal radii: a circle overlaps the shape iff its centre is in the grown shape
            keep = self.geometry.buffer(radius_max).contains_points(centers)
            circles = [c for c, k in zip(candidates, keep) if k]
        else:
            inside = self.geometry.contains_points(centers)
            circles = [
                c for c, is_inside in zip(candidates, inside)
                if is_inside or self.geometry.intersects(circle_polygon(c.center, c.r, FILTER_CIRCLE_SEGMENTS))
            ]

        if self.config.verbose:
            print(f"Front chain filter: {len(candidates)} candidates -> {len(circles)} overlap the shape")

        return circles

    # =========================================================================
    # Maximum-Inscribed Packing
    # =========================================================================

    def _inscribed_steps(self, count: int, tolerance: float) -> Iterator[Tuple[Circle, BaseGeometry]]:
        """
        Yield (circle, remaining region) for each extracted circle.

        Raises GeometricExhaustion if the region runs out first.
        """
        tolerance = max(MIN_TOLERANCE, float(tolerance))
        region = self.geometry.region
        found: List[Circle] = []

        for _ in range(max(0, int(count))):
            if region.is_empty:
                raise GeometricExhaustion(found, count)
            try:
                radius_line = shapely.maximum_inscribed_circle(region, tolerance)
            except GEOSException as exc:
                raise InvalidShapeInput(f"inscribed circle search failed: {exc}") from exc

            radius = radius_line.length
            if radius_line.is_empty or radius <= 0:
                raise GeometricExhaustion(found, count)

            x, y = radius_line.coords[0][:2]
            circle = Circle(float(x), float(y), float(radius))
            found.append(circle)

            # Polygon covering the whole disc, so later circles cannot overlap it
            disc = circle_polygon(circle.center, radius, INSCRIBED_CIRCLE_SEGMENTS, circumscribe=True)
            region = PolygonGeometry.difference(region, disc)
            yield circle, region

    def maximum_inscribed_pack(self, count: Optional[int] = None, tolerance: Optional[float] = None) -> List[Circle]:
        """
        The largest inscribed circle, then the largest inscribed circle of
        what remains, and so on for count circles.

        Args:
            count: Number of circles to extract.
            tolerance: Inscribed circle search tolerance, at least 0.5.
                Larger values are faster but less precise, and later circles
                may be less than maximal.

        Much slower than the other packers; count > 100 may take seconds.

        Raises:
            GeometricExhaustion: if the shape is used up before count circles
                are found (the partial packing is on the exception).
        """
        count = self.config.count if count is None else count
        tolerance = self.config.tolerance if tolerance is None else tolerance

        circles = []
        for circle, remaining in self._inscribed_steps(count, tolerance):
            circles.append(circle)
            if self.config.verbose and len(circles) % 25 == 0:
                print(f"Max inscribed: {len(circles)}/{count} circles, remaining area {remaining.area:.2f}")

        if self.config.verbose:
            print(f"Done! Placed {len(circles)} circles")

        return circles

    # =========================================================================
    # Lattice Packing
    # =========================================================================

    def _lattice_bounds(self, diameter: float) -> Tuple[float, float, float, float]:
        min_x, min_y, width, height = self.geometry.envelope()
        return min_x, min_y, min_x + width + diameter, min_y + height + diameter

    def _keep_lattice_points(self, points: np.ndarray, radius: float) -> List[Circle]:
        if len(points) == 0:
            return []
        # Equal radii: a circle (mostly) overlaps the shape iff its centre is in the grown shape
        grown = self.geometry.buffer(radius * LATTICE_BUFFER_FACTOR)
        kept = points[grown.contains_points(points)]

        if self.config.verbose:
            print(f"Lattice: {len(points)} total -> {len(kept)} overlap the shape")

        return [Circle(float(x), float(y), float(radius)) for x, y in kept]

    def square_lattice_pack(self, diameter: Optional[float] = None) -> List[Circle]:
        """
        Equal circles on a square grid over the shape. Circles that overlap
        the shape edge are included.
        """
        diameter = self.config.diameter if diameter is None else diameter
        diameter = max(float(diameter), MIN_DIAMETER)
        radius = diameter / 2

        min_x, min_y, stop_x, stop_y = self._lattice_bounds(diameter)
        xs = np.arange(min_x + radius, stop_x, diameter)
        ys = np.arange(min_y + radius, stop_y, diameter)

        # Column-major: all rows of the first column, then the next column
        gx, gy = np.meshgrid(xs, ys, indexing="ij")
        points = np.column_stack([gx.ravel(), gy.ravel()])
        return self._keep_lattice_points(points, radius)

    def hex_lattice_pack(self, diameter: Optional[float] = None) -> List[Circle]:
        """
        Equal circles on a hexagonal grid over the shape. Circles that overlap
        the shape edge are included.
        """
        diameter = self.config.diameter if diameter is None else diameter
        diameter = max(float(diameter), MIN_DIAMETER)
        radius = diameter / 2
        column_spacing = radius * np.sqrt(3)

        min_x, min_y, stop_x, stop_y = self._lattice_bounds(diameter)

        columns = []
        for col, x in enumerate(np.arange(min_x + radius, stop_x, column_spacing)):
            offset = radius if col % 2 else 0.0
            ys = np.arange(min_y + radius - offset, stop_y, diameter)
            columns.append(np.column_stack([np.full(len(ys), x), ys]))

        points = np.vstack(columns) if columns else np.empty((0, 2))
        return self._keep_lattice_points(points, radius)

    # =========================================================================
    # Main Entry Points
    # =========================================================================

    def generate(self) -> Iterator[Circle]:
        """
        Generate the packing selected by config.mode, using the config's
        parameters for that strategy.

        Yields:
            Circle(x, y, r) for each packed circle.
        """
        mode = self.config.mode
        if mode is PackingMode.TRINSCRIBED:
            yield from self.trinscribed_pack()
        elif mode is PackingMode.STOCHASTIC:
            yield from self.stochastic_pack()
        elif mode is PackingMode.FRONT_CHAIN:
            yield from self.front_chain_pack()
        elif mode is PackingMode.MAXIMUM_INSCRIBED:
            yield from self.maximum_inscribed_pack()
        elif mode is PackingMode.SQUARE_LATTICE:
            yield from self.square_lattice_pack()
        elif mode is PackingMode.HEX_LATTICE:
            yield from self.hex_lattice_pack()
        else:
            raise ValueError(f"unknown packing mode: {mode!r}")

    def pack(self) -> List[Circle]:
        """Pack circles and return them as a list."""
        return list(self.generate())


# =============================================================================
# Functional interface
# =============================================================================

def trinscribed_pack(shape, points: int, refinements: int, seed: Optional[int] = None) -> List[Circle]:
    """Incircle packing of a triangulation of shape. See CirclePacker.trinscribed_pack."""
    return CirclePacker(shape, PackingConfig(seed=seed)).trinscribed_pack(points, refinements)


def stochastic_pack(
    shape, points: int, min_radius: float, triangulate_candidates: bool = False, seed: Optional[int] = None
) -> List[Circle]:
    """Random nearest-circle packing of shape. See CirclePacker.stochastic_pack."""
    return CirclePacker(shape, PackingConfig(seed=seed)).stochastic_pack(points, min_radius, triangulate_candidates)


def front_chain_pack(shape, radius_min: float, radius_max: float, seed: Optional[int] = None) -> List[Circle]:
    """Front-chain packing overlapping shape. See CirclePacker.front_chain_pack."""
    return CirclePacker(shape, PackingConfig(seed=seed)).front_chain_pack(radius_min, radius_max)


def maximum_inscribed_pack(shape, count: int, tolerance: float) -> List[Circle]:
    """Successive maximum inscribed circles. See CirclePacker.maximum_inscribed_pack."""
    return CirclePacker(shape).maximum_inscribed_pack(count, tolerance)


def square_lattice_pack(shape, diameter: float) -> List[Circle]:
    """Square lattice of equal circles. See CirclePacker.square_lattice_pack."""
    return CirclePacker(shape).square_lattice_pack(diameter)


def hex_lattice_pack(shape, diameter: float) -> List[Circle]:
    """Hexagonal lattice of equal circles. See CirclePacker.hex_lattice_pack."""
    return CirclePacker(shape).hex_lattice_pack(diameter)
