"""
shapepack - Circle packings inside, around, or tiling arbitrary planar shapes.

Usage:
    from shapepack import CirclePacker, PackingConfig, PackingMode

    # Functional interface
    from shapepack import stochastic_pack, hex_lattice_pack
    circles = stochastic_pack(polygon, points=2000, min_radius=1.0, seed=7)
    circles = hex_lattice_pack(polygon, diameter=10)

    # Class interface, strategy chosen by configuration
    config = PackingConfig(mode=PackingMode.TRINSCRIBED, steiner_points=500, refinements=2)
    circles = CirclePacker(polygon, config).pack()

Shapes may be shapely polygons, a single ring of (x, y) vertices, or a list of
rings combined with the even-odd rule. Every packer returns a list of
Circle(x, y, r).

Packing modes:
    - Trinscribed: incircles of a constrained triangulation; no overlaps
    - Stochastic: random points grown to touch their nearest circle; no overlaps
    - Front chain: tangent circles of mixed radii overlapping the shape
    - Maximum inscribed: repeatedly the largest circle that still fits; slow
    - Square / hex lattice: equal circles on a grid overlapping the shape
"""

from .config import Circle, PackingConfig, PackingMode, PackingProgress
from .errors import GeometricExhaustion, InvalidShapeInput, PackingError
from .front import FrontChainPacker
from .geometry import Location, PolygonGeometry
from .index import MetricIndex, circle_distance
from .packer import (
    CirclePacker,
    front_chain_pack,
    hex_lattice_pack,
    maximum_inscribed_pack,
    square_lattice_pack,
    stochastic_pack,
    trinscribed_pack,
)
from .triangulation import Triangle, triangulate

__all__ = [
    "CirclePacker",
    "PackingConfig",
    "PackingProgress",
    "PackingMode",
    "Circle",
    "PolygonGeometry",
    "Location",
    "MetricIndex",
    "circle_distance",
    "FrontChainPacker",
    "Triangle",
    "triangulate",
    "PackingError",
    "InvalidShapeInput",
    "GeometricExhaustion",
    "trinscribed_pack",
    "stochastic_pack",
    "front_chain_pack",
    "maximum_inscribed_pack",
    "square_lattice_pack",
    "hex_lattice_pack",
]

__version__ = "0.1.0"
