"""
Geometry utilities for circle packing.

Contains:
- PolygonGeometry: shape normalisation, bounds, point location and overlap tests
- circle_polygon: polygonal approximation of a circle

All area operations are delegated to shapely; this module only fixes the
policy (prepared geometries, vectorized point tests, "not exterior" semantics).
"""

import numpy as np
import shapely
from enum import Enum
from functools import reduce
from typing import Iterator, List, Tuple
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Point as ShapelyPoint, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity

from .config import Envelope, Point
from .errors import InvalidShapeInput

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


class Location(Enum):
    """Position of a point relative to an area."""
    INTERIOR = "interior"
    BOUNDARY = "boundary"
    EXTERIOR = "exterior"


def as_region(shape) -> BaseGeometry:
    """
    Convert a shape to a valid shapely polygonal region.

    Accepts a shapely Polygon/MultiPolygon, a single ring of (x, y) vertices,
    or a list of rings combined with the even-odd rule (a ring inside another
    ring makes a hole).
    """
    if isinstance(shape, PolygonGeometry):
        return shape.region

    try:
        if isinstance(shape, BaseGeometry):
            region = shape
        else:
            region = _region_from_rings(shape)
    except (TypeError, ValueError, GEOSException) as exc:
        raise InvalidShapeInput(f"cannot build a polygon from input: {exc}") from exc

    if region.geom_type not in POLYGONAL_TYPES:
        raise InvalidShapeInput(f"expected a polygonal shape, got {region.geom_type}")
    if region.is_empty:
        raise InvalidShapeInput("shape is empty")
    if not region.is_valid:
        raise InvalidShapeInput(f"shape is not a valid polygon: {explain_validity(region)}")
    if region.area <= 0:
        raise InvalidShapeInput("shape has zero area")
    return region


def _region_from_rings(shape) -> BaseGeometry:
    try:
        arr = np.asarray(shape, dtype=float)
    except ValueError:
        # Ragged list of rings
        arr = None

    if arr is not None and arr.ndim == 2:
        rings = [arr]
    else:
        rings = [np.asarray(ring, dtype=float) for ring in shape]

    if not rings:
        raise ValueError("no rings given")
    polygons = [Polygon(ring) for ring in rings]
    return reduce(lambda a, b: a.symmetric_difference(b), polygons)


def circle_polygon(center, radius: float, segments: int = 8, circumscribe: bool = False) -> Polygon:
    """
    Regular polygon approximating a circle.

    segments is rounded down to a multiple of 4 (at least 4). With
    circumscribe=True the polygon's edges touch the circle from outside, so the
    polygon fully covers the circle; otherwise its vertices lie on the circle.
    """
    quad_segs = max(1, int(segments) // 4)
    if circumscribe:
        radius = radius / np.cos(np.pi / (4 * quad_segs))
    return ShapelyPoint(float(center[0]), float(center[1])).buffer(radius, quad_segs=quad_segs)


def polygons_of(region: BaseGeometry) -> List[Polygon]:
    """The polygon parts of a polygonal region."""
    if isinstance(region, MultiPolygon):
        return list(region.geoms)
    if isinstance(region, Polygon):
        return [] if region.is_empty else [region]
    return [g for g in getattr(region, "geoms", []) if isinstance(g, Polygon) and not g.is_empty]


class PolygonGeometry:
    """Handles geometric calculations for polygon boundaries."""

    def __init__(self, shape):
        self.region = as_region(shape)
        shapely.prepare(self.region)
        self._compute_bounds()

    def _compute_bounds(self) -> None:
        min_x, min_y, max_x, max_y = self.region.bounds
        self.min_coords = np.array([min_x, min_y])
        self.max_coords = np.array([max_x, max_y])
        self.extent = float(max(self.max_coords - self.min_coords))

    @property
    def area(self) -> float:
        return self.region.area

    def envelope(self) -> Envelope:
        """Bounding box as (min_x, min_y, width, height)."""
        width, height = self.max_coords - self.min_coords
        return (float(self.min_coords[0]), float(self.min_coords[1]), float(width), float(height))

    # =========================================================================
    # Boundary access
    # =========================================================================

    def rings(self) -> Iterator[Tuple[np.ndarray, bool]]:
        """Yield (vertices, is_hole) for every ring; closing vertex dropped."""
        for poly in polygons_of(self.region):
            yield np.asarray(poly.exterior.coords)[:-1, :2], False
            for interior in poly.interiors:
                yield np.asarray(interior.coords)[:-1, :2], True

    def hole_points(self) -> np.ndarray:
        """One point strictly inside each hole of the region."""
        points = []
        for poly in polygons_of(self.region):
            for interior in poly.interiors:
                # Islands may sit inside the hole; pick a point clear of them
                hole = Polygon(interior).difference(self.region)
                if hole.is_empty:
                    continue
                p = hole.representative_point()
                points.append((p.x, p.y))
        return np.array(points) if points else np.empty((0, 2))

    def vertices(self) -> np.ndarray:
        """All boundary vertices of the region."""
        rings = [ring for ring, _ in self.rings()]
        return np.vstack(rings) if rings else np.empty((0, 2))

    def boundary_seeds(self, spacing: float = 0) -> np.ndarray:
        """
        Boundary vertices, plus extra points along each edge so that no two
        consecutive points are more than `spacing` apart (when spacing > 0).
        """
        if spacing <= 0:
            return self.vertices()
        dense = shapely.segmentize(self.region, spacing)
        coords = []
        for poly in polygons_of(dense):
            coords.append(np.asarray(poly.exterior.coords)[:-1, :2])
            for interior in poly.interiors:
                coords.append(np.asarray(interior.coords)[:-1, :2])
        return np.vstack(coords)

    # =========================================================================
    # Predicates
    # =========================================================================

    def locate(self, point: Point) -> Location:
        """Locate a single point relative to the region."""
        x, y = float(point[0]), float(point[1])
        if shapely.contains_xy(self.region, x, y):
            return Location.INTERIOR
        if shapely.intersects_xy(self.region, x, y):
            return Location.BOUNDARY
        return Location.EXTERIOR

    def contains_points(self, points: np.ndarray) -> np.ndarray:
        """Vectorized "not exterior" test for multiple points."""
        points = np.asarray(points, dtype=float).reshape(-1, 2)
        if len(points) == 0:
            return np.zeros(0, dtype=bool)
        return shapely.intersects_xy(self.region, points[:, 0], points[:, 1])

    def distances_to_boundary_batch(self, points: np.ndarray) -> np.ndarray:
        """Vectorized distance from each point to the nearest ring of the region."""
        points = np.asarray(points, dtype=float).reshape(-1, 2)
        if len(points) == 0:
            return np.array([])
        return shapely.distance(self.region.boundary, shapely.points(points))

    def intersects(self, geometry: BaseGeometry) -> bool:
        """Whether geometry shares any point with the (prepared) region."""
        return bool(shapely.intersects(self.region, geometry))

    # =========================================================================
    # Derived regions
    # =========================================================================

    def buffer(self, distance: float) -> "PolygonGeometry":
        """The region grown outward (or shrunk, if negative) by distance."""
        try:
            return PolygonGeometry(self.region.buffer(distance))
        except GEOSException as exc:
            raise InvalidShapeInput(f"buffer failed: {exc}") from exc

    @staticmethod
    def difference(region: BaseGeometry, circle: BaseGeometry) -> BaseGeometry:
        """A new region: region minus circle. Neither input is modified."""
        try:
            return region.difference(circle)
        except GEOSException as exc:
            raise InvalidShapeInput(f"difference failed: {exc}") from exc

    # =========================================================================
    # Sampling
    # =========================================================================

    def random_points(self, count: int, rng: np.random.Generator) -> np.ndarray:
        """
        Uniformly distributed points strictly inside the region.

        Samples the bounding box in batches and keeps interior points, so the
        result depends only on the rng state and count.
        """
        if count <= 0:
            return np.empty((0, 2))

        min_x, min_y, width, height = self.envelope()
        fill_ratio = self.area / (width * height)

        chunks = []
        found = 0
        while found < count:
            batch = max(int((count - found) / fill_ratio * 1.1) + 1, 16)
            points = rng.uniform(self.min_coords, self.max_coords, size=(batch, 2))
            points = points[shapely.contains_xy(self.region, points[:, 0], points[:, 1])]
            chunks.append(points)
            found += len(points)

        return np.vstack(chunks)[:count]
