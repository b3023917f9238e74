"""
Unit tests for reproducible body distributions.
"""

import unittest
import numpy as np
from fastgravity.distributions import generate_masses, plummer, query_grid, uniform_ball


class TestMasses(unittest.TestCase):

    def test_equal_masses(self):
        masses = generate_masses(10, total_mass=5.0)
        np.testing.assert_allclose(masses, 0.5)

    def test_randomized_masses_preserve_total(self):
        masses = generate_masses(100, total_mass=3.0, mass_randomize=1.0,
                                 rng=np.random.default_rng(1))
        self.assertAlmostEqual(np.sum(masses), 3.0, places=12)
        self.assertTrue(np.all(masses > 0))
        self.assertGreater(np.std(masses), 0.0)


class TestUniformBall(unittest.TestCase):

    def test_shapes_and_radius(self):
        for dimension in (2, 3):
            positions, masses = uniform_ball(200, radius=2.0, dimension=dimension, seed=5)
            self.assertEqual(positions.shape, (200, dimension))
            self.assertEqual(masses.shape, (200,))
            self.assertTrue(np.all(np.linalg.norm(positions, axis=1) <= 2.0 + 1e-12))

    def test_center_offset(self):
        positions, _ = uniform_ball(50, center=[10.0, -10.0], seed=6)
        np.testing.assert_allclose(np.mean(positions, axis=0), [10.0, -10.0], atol=0.5)

    def test_reproducible(self):
        a, ma = uniform_ball(20, mass_randomize=0.5, seed=7)
        b, mb = uniform_ball(20, mass_randomize=0.5, seed=7)
        np.testing.assert_array_equal(a, b)
        np.testing.assert_array_equal(ma, mb)
        c, _ = uniform_ball(20, seed=8)
        self.assertFalse(np.array_equal(a, c))

    def test_invalid_dimension(self):
        with self.assertRaises(ValueError):
            uniform_ball(10, dimension=4)


class TestPlummer(unittest.TestCase):

    def test_truncated_radius(self):
        positions, masses = plummer(500, scale_radius=1.0, max_radius=5.0, seed=9)
        self.assertTrue(np.all(np.linalg.norm(positions, axis=1) <= 5.0 + 1e-9))
        self.assertAlmostEqual(np.sum(masses), 1.0)

    def test_centrally_concentrated(self):
        """Plummer half-mass radius is ~1.3 scale radii"""
        positions, _ = plummer(4000, dimension=3, seed=10)
        median_r = np.median(np.linalg.norm(positions, axis=1))
        self.assertGreater(median_r, 1.0)
        self.assertLess(median_r, 1.6)


class TestQueryGrid(unittest.TestCase):

    def test_grid(self):
        points = query_grid([0.0, 0.0], [1.0, 2.0], 3)
        self.assertEqual(points.shape, (9, 2))
        np.testing.assert_array_equal(points[0], [0.0, 0.0])
        np.testing.assert_array_equal(points[1], [0.0, 1.0])
        np.testing.assert_array_equal(points[-1], [1.0, 2.0])

    def test_grid_3d(self):
        self.assertEqual(query_grid([-1, -1, -1], [1, 1, 1], 4).shape, (64, 3))


if __name__ == '__main__':
    unittest.main()
