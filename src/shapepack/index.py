"""
Metric spatial index for nearest-circle queries.

Circles are stored as 3D points (x, y, radius). Under circle_distance, the
nearest entry to a query (x, y, R) with R >= every stored radius is the circle
whose edge is closest to (x, y):

    d = |p - c| + (R - r)  ->  minimizing d minimizes |p - c| - r

so a plain metric nearest-neighbour search answers the "nearest circle" question.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

Position = Tuple[float, float, float]
DistanceFunction = Callable[[Sequence[float], Sequence[float]], float]


def circle_distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    """Planar euclidean distance plus the absolute radius difference."""
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1]) + abs(p1[2] - p2[2])


@dataclass
class _Entry:
    position: Position
    payload: Any


@dataclass
class _Node:
    """
    Leaf (bucket of entries) or internal vantage-point node.

    Every entry below `inside` is closer than `mu` to the vantage point;
    every entry below `outside` is at least `mu` away.
    """
    bucket: List[_Entry] = field(default_factory=list)
    vantage: Optional[_Entry] = None
    mu: float = 0.0
    inside: Optional["_Node"] = None
    outside: Optional["_Node"] = None

    @property
    def is_leaf(self) -> bool:
        return self.vantage is None


class MetricIndex:
    """
    Incremental vantage-point tree.

    Entries go into leaf buckets; a bucket that outgrows leaf_size is split
    around its oldest entry at the median distance. Queries are exact for any
    true metric.
    """

    def __init__(self, distance: DistanceFunction = circle_distance, leaf_size: int = 16):
        self.distance = distance
        self.leaf_size = max(2, int(leaf_size))
        self._root = _Node()
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def insert(self, position: Sequence[float], payload: Any) -> None:
        """Add a point with an attached payload."""
        entry = _Entry(tuple(float(v) for v in position), payload)
        node = self._root
        while not node.is_leaf:
            if self.distance(entry.position, node.vantage.position) < node.mu:
                node = node.inside
            else:
                node = node.outside

        node.bucket.append(entry)
        self._size += 1
        if len(node.bucket) > self.leaf_size:
            self._split(node)

    def _split(self, node: _Node) -> None:
        vantage, rest = node.bucket[0], node.bucket[1:]
        dists = [self.distance(e.position, vantage.position) for e in rest]
        mu = sorted(dists)[len(dists) // 2]

        inside = [e for e, d in zip(rest, dists) if d < mu]
        outside = [e for e, d in zip(rest, dists) if d >= mu]
        if not inside:
            # All entries equidistant (e.g. duplicates); keep an oversized leaf
            return

        node.bucket = []
        node.vantage = vantage
        node.mu = mu
        node.inside = _Node(bucket=inside)
        node.outside = _Node(bucket=outside)

    def nearest(self, position: Sequence[float]) -> Tuple[Any, float]:
        """
        Payload of the entry nearest to position, and its distance.

        Raises LookupError when the index is empty.
        """
        if self._size == 0:
            raise LookupError("nearest() on an empty index")

        query = tuple(float(v) for v in position)
        best: Optional[_Entry] = None
        best_dist = math.inf

        # (node, lower bound on the distance of anything below it)
        stack = [(self._root, 0.0)]
        while stack:
            node, bound = stack.pop()
            if bound > best_dist:
                continue

            if node.is_leaf:
                for entry in node.bucket:
                    d = self.distance(query, entry.position)
                    if d < best_dist:
                        best, best_dist = entry, d
                continue

            d = self.distance(query, node.vantage.position)
            if d < best_dist:
                best, best_dist = node.vantage, d

            inside_bound = max(bound, d - node.mu)
            outside_bound = max(bound, node.mu - d)
            # Push the farther side first so the nearer side is searched first
            if d < node.mu:
                stack.append((node.outside, outside_bound))
                stack.append((node.inside, inside_bound))
            else:
                stack.append((node.inside, inside_bound))
                stack.append((node.outside, outside_bound))

        return best.payload, best_dist
