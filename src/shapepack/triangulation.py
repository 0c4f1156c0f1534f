"""
Constrained Delaunay triangulation of a shape, via the `triangle` package.

The shape's rings become the segments of a planar straight line graph; extra
points are inserted as Steiner vertices. Triangles come back lazily, each
tagged with which of its edges lie on the shape border.
"""

import math
import numpy as np
import triangle as tr
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from .config import Circle
from .errors import InvalidShapeInput
from .geometry import PolygonGeometry

Vertex = Tuple[float, float]

# Triangles with less area than this are treated as degenerate
DEGENERATE_AREA = 1e-12


@dataclass(frozen=True)
class Triangle:
    """A triangle; edge i runs from vertices[i] to vertices[(i + 1) % 3]."""
    vertices: Tuple[Vertex, Vertex, Vertex]
    edge_on_border: Tuple[bool, bool, bool] = (False, False, False)

    @property
    def on_border(self) -> bool:
        return any(self.edge_on_border)

    @property
    def area(self) -> float:
        (ax, ay), (bx, by), (cx, cy) = self.vertices
        return abs((bx - ax) * (cy - ay) - (cx - ax) * (by - ay)) / 2

    def side_lengths(self) -> Tuple[float, float, float]:
        """Lengths of the sides opposite vertex 0, 1 and 2."""
        (ax, ay), (bx, by), (cx, cy) = self.vertices
        return (
            math.hypot(cx - bx, cy - by),
            math.hypot(cx - ax, cy - ay),
            math.hypot(bx - ax, by - ay),
        )

    def incircle(self) -> Circle:
        """
        The inscribed circle: the incenter is the vertex average weighted by
        opposite side length, the radius follows from Heron's formula.
        """
        a, b, c = self.side_lengths()
        perimeter = a + b + c
        (ax, ay), (bx, by), (cx, cy) = self.vertices

        x = (ax * a + bx * b + cx * c) / perimeter
        y = (ay * a + by * b + cy * c) / perimeter

        s = perimeter / 2
        r = math.sqrt(max(0.0, (s - a) * (s - b) * (s - c) / s))
        return Circle(x, y, r)

    def centroid(self) -> Vertex:
        (ax, ay), (bx, by), (cx, cy) = self.vertices
        return ((ax + bx + cx) / 3, (ay + by + cy) / 3)


def _build_pslg(geometry: PolygonGeometry, extra_points: np.ndarray) -> dict:
    vertices = []
    segments = []
    for ring, _ in geometry.rings():
        start = len(vertices)
        n = len(ring)
        vertices.extend(ring.tolist())
        segments.extend([start + i, start + (i + 1) % n] for i in range(n))

    if len(extra_points):
        vertices.extend(np.asarray(extra_points, dtype=float).reshape(-1, 2).tolist())

    pslg = {
        "vertices": np.array(vertices, dtype=float),
        "segments": np.array(segments, dtype=np.int32),
    }
    holes = geometry.hole_points()
    if len(holes):
        pslg["holes"] = holes
    return pslg


def _run_triangle(pslg: dict) -> dict:
    try:
        result = tr.triangulate(pslg, "pQ")
    except (RuntimeError, ValueError, TypeError) as exc:
        raise InvalidShapeInput(f"triangulation failed: {exc}") from exc
    if "triangles" not in result:
        raise InvalidShapeInput("triangulation produced no triangles")
    return result


def _triangles_from(result: dict) -> Iterator[Triangle]:
    points = result["vertices"]
    border = {frozenset(map(int, seg)) for seg in result.get("segments", [])}

    for i, j, k in result["triangles"]:
        corners = (int(i), int(j), int(k))
        verts = tuple((float(points[v][0]), float(points[v][1])) for v in corners)
        flags = tuple(
            frozenset((corners[e], corners[(e + 1) % 3])) in border for e in range(3)
        )
        yield Triangle(verts, flags)


def triangulate(
    shape,
    extra_points: Optional[Iterable] = None,
    refinements: int = 0,
) -> Iterator[Triangle]:
    """
    Lazily triangulate a shape.

    Args:
        shape: Anything PolygonGeometry accepts.
        extra_points: Steiner points to insert (should lie inside the shape).
        refinements: Passes that insert the centroid of every triangle and
            re-triangulate; more passes give more, smaller, more even triangles.

    Yields:
        Triangles inside the shape, in the triangulator's order.
    """
    geometry = shape if isinstance(shape, PolygonGeometry) else PolygonGeometry(shape)
    steiner = np.empty((0, 2)) if extra_points is None else np.asarray(extra_points, dtype=float).reshape(-1, 2)

    result = _run_triangle(_build_pslg(geometry, steiner))
    for _ in range(max(0, int(refinements))):
        centroids = [t.centroid() for t in _triangles_from(result) if t.area > DEGENERATE_AREA]
        steiner = np.vstack([steiner, np.array(centroids).reshape(-1, 2)])
        result = _run_triangle(_build_pslg(geometry, steiner))

    yield from _triangles_from(result)


def filter_border_triangles(triangles: Iterable[Triangle]) -> List[Triangle]:
    """
    Drop degenerate triangles and those with an edge on the shape border.

    When every triangle touches the border (a shape triangulated without
    interior points) the border triangles are kept instead of returning nothing.
    """
    valid = [t for t in triangles if t.area > DEGENERATE_AREA]
    interior = [t for t in valid if not t.on_border]
    return interior if interior else valid
