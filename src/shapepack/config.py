"""
Configuration and type definitions for circle packing.
"""

import numpy as np
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple
from enum import Enum

# Type aliases
Point = np.ndarray
Envelope = Tuple[float, float, float, float]  # (min_x, min_y, width, height)


class Circle(NamedTuple):
    """A packed circle: center (x, y) and radius r."""
    x: float
    y: float
    r: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x, self.y)


class PackingMode(Enum):
    """Available packing strategies."""
    TRINSCRIBED = "trinscribed"        # Incircles of a constrained triangulation
    STOCHASTIC = "stochastic"          # Random points grown to their nearest circle
    FRONT_CHAIN = "front_chain"        # Front-chain packing filtered to the shape
    MAXIMUM_INSCRIBED = "max_inscribed"  # Repeated largest inscribed circle
    SQUARE_LATTICE = "square_lattice"  # Equal circles on a square grid
    HEX_LATTICE = "hex_lattice"        # Equal circles on a hexagonal grid


@dataclass
class PackingConfig:
    """
    Configuration parameters for the circle packers.

    General:
        mode: Strategy used by CirclePacker.generate()
        seed: Seed for the random source (None draws fresh entropy)

    Triangulation-incircle packing:
        steiner_points: Random interior points added to the triangulation
        refinements: Centroid-insertion passes over the triangulation

    Stochastic packing:
        attempts: Candidate points considered (upper bound on circle count)
        min_radius: Candidates with a free radius at or below this are dropped
        triangulate_candidates: Use triangle centroids of the random points
        seed_spacing_divisor: Boundary seeds are spaced extent / divisor apart
            (0 seeds only the shape's own vertices and drops the cap on
            radii at the distance to the shape boundary)
        index_leaf_size: Bucket size of the metric index leaves

    Front-chain packing:
        radius_min, radius_max: Radius range of the generated circles
        max_front_iterations: Safety limit on front-chain placements (None
            derives a bound large enough to cover the bounding box)

    Maximum-inscribed packing:
        count: Number of circles to extract
        tolerance: Inscribed circle search tolerance (at least 0.5)

    Lattice packing:
        diameter: Diameter of every lattice circle (at least 0.1)
    """
    mode: PackingMode = PackingMode.STOCHASTIC
    seed: Optional[int] = None

    # Triangulation-incircle
    steiner_points: int = 250
    refinements: int = 1

    # Stochastic
    attempts: int = 1000
    min_radius: float = 1.0
    triangulate_candidates: bool = False
    seed_spacing_divisor: float = 100
    index_leaf_size: int = 16

    # Front-chain
    radius_min: float = 5.0
    radius_max: float = 10.0
    max_front_iterations: Optional[int] = None

    # Maximum-inscribed
    count: int = 10
    tolerance: float = 1.0

    # Lattice
    diameter: float = 10.0

    # Output
    verbose: bool = False


@dataclass
class PackingProgress:
    """Tracks the current state of a packing run."""
    circles_placed: int = 0
    attempts: int = 0
    max_attempts: int = 0
    phase: str = ""

    @property
    def progress_ratio(self) -> float:
        """Fraction of the attempt budget used (0.0 = just started, 1.0 = done)."""
        return self.attempts / self.max_attempts if self.max_attempts > 0 else 0

    def __str__(self) -> str:
        phase_str = f"[{self.phase}] " if self.phase else ""
        return f"{phase_str}Placed: {self.circles_placed} | Attempts: {self.attempts}/{self.max_attempts} ({self.progress_ratio:.0%})"
