import io
import time
import unittest
from contextlib import redirect_stdout
from unittest import mock

import numpy as np
from shapely.geometry import LineString, Point, Polygon

from shapepack import (
    Circle,
    CirclePacker,
    FrontChainPacker,
    GeometricExhaustion,
    InvalidShapeInput,
    PackingConfig,
    PackingMode,
    PolygonGeometry,
    front_chain_pack,
    hex_lattice_pack,
    maximum_inscribed_pack,
    square_lattice_pack,
    stochastic_pack,
    trinscribed_pack,
)
from shapepack.geometry import circle_polygon


def min_gap(circles):
    """Smallest distance(c1, c2) - (r1 + r2) over all pairs."""
    arr = np.array(circles, dtype=float)
    dists = np.linalg.norm(arr[:, None, :2] - arr[None, :, :2], axis=2)
    gaps = dists - (arr[:, None, 2] + arr[None, :, 2])
    np.fill_diagonal(gaps, np.inf)
    return gaps.min()


class PackerTestCase(unittest.TestCase):
    def setUp(self):
        """Initialize a 100x100 square and an L-shaped polygon."""
        self.square = [(0, 0), (100, 0), (100, 100), (0, 100)]
        self.l_shape = [(0, 0), (60, 0), (60, 20), (20, 20), (20, 60), (0, 60)]
        self.eps = 1e-7

    def assertNoOverlap(self, circles):
        if len(circles) > 1:
            self.assertGreaterEqual(min_gap(circles), -self.eps)


class TestTrinscribedPack(PackerTestCase):

    def test_345_triangle(self):
        """A 3-4-5 triangle with no extra points gives exactly its own incircle."""
        circles = trinscribed_pack([(0, 0), (4, 0), (0, 3)], 0, 0)
        self.assertEqual(len(circles), 1)
        x, y, r = circles[0]
        self.assertAlmostEqual(x, 1.0)
        self.assertAlmostEqual(y, 1.0)
        self.assertAlmostEqual(r, 1.0)

    def test_no_overlap(self):
        circles = trinscribed_pack(self.l_shape, 150, 1, seed=3)
        self.assertGreater(len(circles), 0)
        self.assertNoOverlap(circles)

    def test_inside_shape_bounds(self):
        circles = trinscribed_pack(self.square, 100, 2, seed=1)
        for x, y, r in circles:
            self.assertGreaterEqual(x - r, -self.eps)
            self.assertGreaterEqual(y - r, -self.eps)
            self.assertLessEqual(x + r, 100 + self.eps)
            self.assertLessEqual(y + r, 100 + self.eps)

    def test_circles_inside_shape(self):
        region = Polygon(self.l_shape).buffer(1e-6)
        for x, y, r in trinscribed_pack(self.l_shape, 80, 1, seed=2):
            self.assertTrue(region.contains(Point(x, y).buffer(r * 0.999)))

    def test_more_points_more_circles(self):
        few = trinscribed_pack(self.square, 20, 0, seed=5)
        many = trinscribed_pack(self.square, 200, 0, seed=5)
        self.assertGreater(len(many), len(few))

    def test_seeded_repeatable(self):
        self.assertEqual(trinscribed_pack(self.square, 50, 1, seed=9), trinscribed_pack(self.square, 50, 1, seed=9))


class TestStochasticPack(PackerTestCase):

    def test_no_overlap(self):
        circles = stochastic_pack(self.square, 800, 0.5, seed=1)
        self.assertGreater(len(circles), 0)
        self.assertNoOverlap(circles)

    def test_no_overlap_triangulated(self):
        circles = stochastic_pack(self.l_shape, 300, 0.5, triangulate_candidates=True, seed=4)
        self.assertGreater(len(circles), 0)
        self.assertNoOverlap(circles)

    def test_attempts_bound_output(self):
        circles = stochastic_pack(self.square, 300, 1.0, seed=2)
        self.assertLessEqual(len(circles), 300)
        self.assertTrue(all(c.r > 1.0 for c in circles))

    def test_centers_inside_shape(self):
        geometry = PolygonGeometry(self.l_shape)
        circles = stochastic_pack(self.l_shape, 400, 0.5, seed=6)
        self.assertTrue(np.all(geometry.contains_points(np.array([c.center for c in circles]))))

    def test_circles_inside_shape(self):
        """Circles near an edge, between two boundary seeds, still stop at the edge."""
        region = Polygon([(0, 0), (100, 0), (100, 100), (50, 40), (0, 100)])
        circles = stochastic_pack(region, 2000, 0.1, seed=3)
        self.assertGreater(len(circles), 0)
        for x, y, r in circles:
            self.assertLessEqual(r, region.exterior.distance(Point(x, y)) + 1e-9)

    def test_vertex_only_seeding_crosses_edges(self):
        """Without boundary seeds only the corners bound the circles."""
        region = Polygon([(0, 0), (100, 0), (100, 100), (50, 40), (0, 100)])
        config = PackingConfig(seed=3, seed_spacing_divisor=0)
        circles = CirclePacker(region, config).stochastic_pack(500, 0.1)
        protrusion = max(r - region.exterior.distance(Point(x, y)) for x, y, r in circles)
        self.assertGreater(protrusion, 1.0)
        self.assertNoOverlap(circles)

    def test_first_circle_reaches_boundary(self):
        """With only the boundary in the index, the first circle touches the boundary."""
        circles = stochastic_pack(self.square, 1, 0.0, seed=8)
        self.assertEqual(len(circles), 1)
        x, y, r = circles[0]
        wall = min(x, y, 100 - x, 100 - y)
        self.assertLessEqual(r, np.hypot(wall, 0.5) + 1e-9)
        self.assertGreaterEqual(r, wall - 1e-9)

    def test_min_radius_above_inscribed_circle(self):
        """No candidate can fit a circle bigger than the shape's own inscribed circle."""
        circles = stochastic_pack([(0, 0), (10, 0), (10, 10), (0, 10)], 500, 6.0, seed=3)
        self.assertEqual(circles, [])

    def test_seeded_repeatable(self):
        self.assertEqual(stochastic_pack(self.square, 200, 1.0, seed=7), stochastic_pack(self.square, 200, 1.0, seed=7))

    def test_negative_min_radius_never_returns_points(self):
        circles = stochastic_pack(self.square, 200, -5.0, seed=7)
        self.assertTrue(all(c.r > 0 for c in circles))


class TestFrontChainPack(PackerTestCase):

    def test_radius_range_normalized(self):
        """Radii are reordered and clamped to at least 1."""
        circles = front_chain_pack([(0, 0), (20, 0), (20, 20), (0, 20)], 0.2, 0.1, seed=1)
        self.assertGreater(len(circles), 0)
        self.assertEqual({c.r for c in circles}, {1.0})

    def test_reversed_range(self):
        circles = front_chain_pack(self.square, 6.0, 3.0, seed=2)
        self.assertTrue(all(3.0 <= c.r <= 6.0 for c in circles))

    def test_equal_radius_circles_overlap_shape(self):
        region = Polygon(self.l_shape)
        for x, y, r in front_chain_pack(self.l_shape, 3.0, 3.0, seed=3):
            self.assertLessEqual(region.distance(Point(x, y)), r + 1e-9)

    def test_filter_keeps_overlapping_in_order(self):
        """Survivors are exactly the overlapping candidates, in generation order."""
        seed = 5
        circles = front_chain_pack(self.l_shape, 2.0, 5.0, seed=seed)

        geometry = PolygonGeometry(self.l_shape)
        min_x, min_y, width, height = geometry.envelope()
        candidates = FrontChainPacker(width, height, 2.0, 5.0, min_x, min_y, rng=np.random.default_rng(seed)).pack()

        expected = [
            c for c in candidates
            if geometry.contains_points(np.array([c.center]))[0]
            or geometry.intersects(circle_polygon(c.center, c.r, 8))
        ]
        self.assertEqual(circles, expected)
        self.assertLess(len(circles), len(candidates))

    def test_boundary_crossing_circles_included(self):
        circles = front_chain_pack(self.square, 2.0, 5.0, seed=6)
        outside = [c for c in circles if not (0 <= c.x <= 100 and 0 <= c.y <= 100)]
        self.assertGreater(len(outside), 0)

    def test_large_shape_fully_covered(self):
        """A 200x200 square at the smallest radius is covered out to every corner."""
        side = 200
        start = time.perf_counter()
        circles = front_chain_pack([(0, 0), (side, 0), (side, side), (0, side)], 1.0, 1.0, seed=1)
        self.assertLess(time.perf_counter() - start, 30.0)

        arr = np.array(circles)
        for corner in ([0, 0], [side, 0], [0, side], [side, side]):
            reach = np.linalg.norm(arr[:, :2] - corner, axis=1) - arr[:, 2]
            self.assertLess(reach.min(), 2.0)


class TestMaximumInscribedPack(PackerTestCase):

    def test_first_circle_is_largest(self):
        circles = maximum_inscribed_pack(self.square, 3, 1.0)
        self.assertEqual(len(circles), 3)
        x, y, r = circles[0]
        self.assertGreater(r, 48.5)
        self.assertAlmostEqual(x, 50.0, delta=1.5)
        self.assertAlmostEqual(y, 50.0, delta=1.5)

    def test_no_overlap(self):
        circles = maximum_inscribed_pack(self.l_shape, 12, 0.5)
        self.assertEqual(len(circles), 12)
        self.assertNoOverlap(circles)

    def test_circles_inside_shape(self):
        region = Polygon(self.l_shape).buffer(1e-6)
        for x, y, r in maximum_inscribed_pack(self.l_shape, 8, 1.0):
            self.assertTrue(region.contains(Point(x, y).buffer(r * 0.999)))

    def test_remaining_area_shrinks(self):
        packer = CirclePacker(self.l_shape)
        previous = packer.geometry.area
        for _, remaining in packer._inscribed_steps(10, 1.0):
            self.assertLess(remaining.area, previous)
            previous = remaining.area

    def test_tolerance_clamped(self):
        """Tolerances below 0.5 behave like 0.5."""
        self.assertEqual(maximum_inscribed_pack(self.l_shape, 4, 0.0), maximum_inscribed_pack(self.l_shape, 4, 0.5))

    def test_zero_count(self):
        self.assertEqual(maximum_inscribed_pack(self.square, 0, 1.0), [])

    def test_small_shape_long_run_never_pads(self):
        """Many circles from a small shape: every one is real, none overlap."""
        circles = maximum_inscribed_pack([(0, 0), (10, 0), (10, 10), (0, 10)], 30, 0.5)
        self.assertEqual(len(circles), 30)
        self.assertTrue(all(c.r > 0 for c in circles))
        self.assertNoOverlap(circles)

    def test_exhaustion_raises_with_partial_result(self):
        """
        A real polygon never empties: each step removes one bounded disc and
        what remains always has an inscribed circle of positive radius. The
        empty region is therefore produced by replacing the subtraction.
        """
        with mock.patch.object(PolygonGeometry, "difference", return_value=Polygon()):
            with self.assertRaises(GeometricExhaustion) as ctx:
                maximum_inscribed_pack(self.square, 3, 1.0)
        self.assertEqual(len(ctx.exception.circles), 1)
        self.assertEqual(ctx.exception.requested, 3)

    def test_zero_radius_circle_raises(self):
        """A degenerate inscribed circle ends the packing instead of padding it."""
        with mock.patch("shapepack.packer.shapely.maximum_inscribed_circle", return_value=LineString([(5, 5), (5, 5)])):
            with self.assertRaises(GeometricExhaustion) as ctx:
                maximum_inscribed_pack(self.square, 2, 1.0)
        self.assertEqual(ctx.exception.circles, [])
        self.assertEqual(ctx.exception.requested, 2)


class TestLatticePack(PackerTestCase):

    def test_unit_square_scenario(self):
        """A unit square with diameter 0.5 holds exactly the four cell centres."""
        circles = square_lattice_pack([(0, 0), (1, 0), (1, 1), (0, 1)], 0.5)
        self.assertEqual(
            sorted((c.x, c.y) for c in circles),
            [(0.25, 0.25), (0.25, 0.75), (0.75, 0.25), (0.75, 0.75)],
        )
        self.assertTrue(all(c.r == 0.25 for c in circles))

    def test_square_deterministic(self):
        self.assertEqual(square_lattice_pack(self.l_shape, 7.0), square_lattice_pack(self.l_shape, 7.0))

    def test_hex_deterministic(self):
        self.assertEqual(hex_lattice_pack(self.l_shape, 7.0), hex_lattice_pack(self.l_shape, 7.0))

    def test_diameter_clamped(self):
        circles = square_lattice_pack([(0, 0), (1, 0), (1, 1), (0, 1)], -3)
        self.assertTrue(all(c.r == 0.05 for c in circles))
        self.assertEqual(len(circles), 100)

    def test_square_spacing(self):
        circles = square_lattice_pack(self.square, 10.0)
        self.assertEqual(len(circles), 100)
        self.assertAlmostEqual(min_gap(circles), 0.0)

    def test_hex_spacing(self):
        """Hex neighbours are exactly one diameter apart."""
        circles = hex_lattice_pack(self.square, 10.0)
        self.assertGreater(len(circles), 100)
        self.assertAlmostEqual(min_gap(circles), 0.0)
        self.assertTrue(all(c.r == 5.0 for c in circles))

    def test_hex_rows_alternate(self):
        circles = hex_lattice_pack(self.square, 10.0)
        columns = sorted({round(c.x, 9) for c in circles})
        self.assertAlmostEqual(columns[1] - columns[0], 5.0 * np.sqrt(3))
        first = sorted(c.y for c in circles if round(c.x, 9) == columns[0])
        second = sorted(c.y for c in circles if round(c.x, 9) == columns[1])
        self.assertAlmostEqual(abs(first[0] - second[0]) % 10.0, 5.0)

    def test_lattice_circles_near_shape(self):
        """Kept circles overlap the shape by at least 5% of a radius."""
        region = Polygon(self.l_shape)
        for circles in (square_lattice_pack(self.l_shape, 8.0), hex_lattice_pack(self.l_shape, 8.0)):
            self.assertGreater(len(circles), 0)
            for x, y, r in circles:
                self.assertLessEqual(region.distance(Point(x, y)), 0.95 * r + 1e-9)


class TestCirclePacker(PackerTestCase):

    def test_invalid_shape(self):
        with self.assertRaises(InvalidShapeInput):
            CirclePacker([(0, 0), (1, 1), (1, 0), (0, 1)])

    def test_mode_dispatch(self):
        config = PackingConfig(mode=PackingMode.SQUARE_LATTICE, diameter=12.0)
        self.assertEqual(CirclePacker(self.l_shape, config).pack(), square_lattice_pack(self.l_shape, 12.0))

    def test_every_mode_packs(self):
        for mode in PackingMode:
            config = PackingConfig(
                mode=mode, seed=1, steiner_points=30, attempts=100, radius_min=5, radius_max=8, count=3, diameter=10
            )
            circles = CirclePacker(self.square, config).pack()
            self.assertGreater(len(circles), 0, mode)
            self.assertTrue(all(isinstance(c, Circle) for c in circles))

    def test_config_defaults_used(self):
        config = PackingConfig(seed=4, attempts=150, min_radius=2.0)
        packer = CirclePacker(self.square, config)
        self.assertEqual(packer.stochastic_pack(), stochastic_pack(self.square, 150, 2.0, seed=4))

    def test_calls_are_independent(self):
        packer = CirclePacker(self.square, PackingConfig(seed=12))
        first = packer.stochastic_pack(200, 1.0)
        packer.trinscribed_pack(40, 1)
        self.assertEqual(packer.stochastic_pack(200, 1.0), first)

    def test_verbose_output(self):
        config = PackingConfig(seed=1, attempts=500, verbose=True)
        out = io.StringIO()
        with redirect_stdout(out):
            CirclePacker(self.square, config).stochastic_pack()
        self.assertIn("Placed:", out.getvalue())

    def test_quiet_by_default(self):
        out = io.StringIO()
        with redirect_stdout(out):
            CirclePacker(self.square, PackingConfig(seed=1)).square_lattice_pack()
        self.assertEqual(out.getvalue(), "")


if __name__ == '__main__':
    unittest.main()
