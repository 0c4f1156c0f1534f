"""
Exceptions raised by the circle packers.
"""

from typing import List, Optional


class PackingError(Exception):
    """Base class for packing failures."""


class InvalidShapeInput(PackingError, ValueError):
    """The shape is malformed, or the geometry/triangulation engine rejected it."""


class GeometricExhaustion(PackingError):
    """
    The remaining region ran out before the requested number of circles
    could be extracted.

    The circles found before exhaustion are kept on the exception so callers
    can decide whether a short packing is acceptable.
    """

    def __init__(self, circles: List, requested: int, message: Optional[str] = None):
        self.circles = list(circles)
        self.requested = requested
        if message is None:
            message = f"region exhausted after {len(self.circles)} of {requested} circles"
        super().__init__(message)
