"""
Unit tests for spatial tree construction.

Tests root geometry, partition invariants, leaf membership and the
termination guarantees for coincident and near-coincident bodies.
"""

import unittest
from unittest.mock import patch
import numpy as np
from fastgravity.bodies import BodyStore
from fastgravity.constants import GravityConstants
from fastgravity.distributions import uniform_ball, plummer
from fastgravity.errors import InvalidParameter
from fastgravity.tree import SpatialTree, child_signs, enclosing_cube


def build(positions, masses=None, **kwargs):
    positions = np.asarray(positions, dtype=np.float64)
    if masses is None:
        masses = np.ones(len(positions))
    store = BodyStore(positions, masses)
    return SpatialTree.build(store, **kwargs), store


class TestTreeHelpers(unittest.TestCase):
    """Test child layout and root cube helpers"""

    def test_child_signs_2d(self):
        """Child k is on the + side of axis a iff bit a of k is set"""
        expected = [[-1, -1], [1, -1], [-1, 1], [1, 1]]
        np.testing.assert_array_equal(child_signs(2), expected)

    def test_child_signs_3d(self):
        signs = child_signs(3)
        self.assertEqual(signs.shape, (8, 3))
        np.testing.assert_array_equal(signs[5], [1, -1, 1])
        # All sign combinations distinct
        self.assertEqual(len({tuple(s) for s in signs}), 8)

    def test_enclosing_cube_uses_largest_extent(self):
        """Root must be a square, not the bounding rectangle"""
        positions = np.array([[0.0, 0.0], [4.0, 1.0]])
        center, half = enclosing_cube(positions)
        np.testing.assert_allclose(center, [2.0, 0.5])
        self.assertEqual(half, 2.0)

    def test_enclosing_cube_degenerate_fallback(self):
        """Zero extent falls back to a small positive half-width"""
        positions = np.array([[3.0, -2.0], [3.0, -2.0]])
        center, half = enclosing_cube(positions)
        np.testing.assert_array_equal(center, [3.0, -2.0])
        self.assertGreater(half, 0.0)
        self.assertLess(half, 1e-9)


class TestTreeConstruction(unittest.TestCase):
    """Test basic tree shapes"""

    def test_single_body_tree(self):
        """Single body should create root-only tree"""
        tree, _ = build([[1.0, 2.0]])
        self.assertEqual(tree.n_nodes, 1)
        self.assertTrue(tree.is_leaf(0))
        np.testing.assert_array_equal(tree.bodies_in(0), [0])
        self.assertEqual(tree.max_depth_reached, 0)

    def test_two_body_tree(self):
        """Two bodies should create a root with 4 children, two of them non-empty leaves"""
        tree, _ = build([[0.0, 0.0], [1.0, 1.0]])
        self.assertFalse(tree.is_leaf(0))
        self.assertEqual(tree.n_nodes, 5)
        kids = tree.children[0]
        self.assertEqual(len(kids), 4)
        non_empty = [k for k in kids if not tree.is_empty(k)]
        self.assertEqual(len(non_empty), 2)
        for k in non_empty:
            self.assertTrue(tree.is_leaf(k))
            self.assertEqual(tree.count[k], 1)

    def test_octree_has_eight_children(self):
        tree, _ = build([[-1.0, -1.0, -1.0], [1.0, 1.0, 1.0]])
        self.assertEqual(tree.n_children, 8)
        self.assertEqual(tree.dimension, 3)
        self.assertEqual(len(tree.children[0]), 8)

    def test_arena_is_read_only(self):
        tree, _ = build([[0.0, 0.0], [1.0, 1.0]])
        with self.assertRaises(ValueError):
            tree.count[0] = 7
        with self.assertRaises(ValueError):
            tree.body_order[0] = 1

    def test_invalid_build_arguments(self):
        store = BodyStore([[0.0, 0.0]], [1.0])
        with self.assertRaises(InvalidParameter):
            SpatialTree.build(store, leaf_capacity=0)
        with self.assertRaises(InvalidParameter):
            SpatialTree.build(store, max_depth=-1)

    def test_verbose_prints_summary(self):
        store = BodyStore([[0.0, 0.0], [1.0, 1.0]], [1.0, 1.0])
        with patch('builtins.print') as mock_print:
            SpatialTree.build(store, verbose=True)
        self.assertTrue(mock_print.called)
        self.assertIn("[SpatialTree]", mock_print.call_args_list[0][0][0])


class TestTreeInvariants(unittest.TestCase):
    """Partition invariants on random distributions"""

    def _check_invariants(self, tree, store, leaf_capacity=1):
        positions = store.positions
        n = store.n_bodies

        # Every body belongs to exactly one leaf
        leaves = tree.leaf_indices()
        members = np.concatenate([tree.bodies_in(leaf) for leaf in leaves])
        np.testing.assert_array_equal(np.sort(members), np.arange(n))

        self.assertEqual(tree.count[0], n)
        signs = child_signs(tree.dimension)

        for node in range(tree.n_nodes):
            idx = tree.bodies_in(node)

            # Bodies lie inside the node's cell
            if len(idx) > 0:
                offset = np.abs(positions[idx] - tree.center[node])
                self.assertTrue(np.all(offset <= tree.half_width[node] + 1e-12))

            if tree.is_leaf(node):
                if tree.count[node] > leaf_capacity:
                    # Oversized leaves only for coincident bodies or resolution limit
                    pts = positions[idx]
                    coincident = np.all(pts == pts[0])
                    self.assertTrue(coincident or tree.depth[node] >= 1)
                continue

            kids = tree.children[node]
            # Parents precede children in the arena
            self.assertTrue(np.all(kids > node))
            # Children partition the parent: halved cells at ± half/2, counts add up
            np.testing.assert_allclose(tree.half_width[kids], tree.half_width[node] / 2.0)
            np.testing.assert_allclose(
                tree.center[kids],
                tree.center[node] + signs * tree.half_width[node] / 2.0
            )
            self.assertEqual(np.sum(tree.count[kids]), tree.count[node])
            np.testing.assert_array_equal(tree.depth[kids], tree.depth[node] + 1)

            # Children's body slices are contiguous inside the parent's slice
            expected_start = tree.start[node]
            for k in kids:
                self.assertEqual(tree.start[k], expected_start)
                expected_start += tree.count[k]

    def test_uniform_2d(self):
        positions, masses = uniform_ball(300, dimension=2, seed=1)
        tree, store = build(positions, masses)
        self._check_invariants(tree, store)

    def test_plummer_3d(self):
        positions, masses = plummer(300, dimension=3, seed=2)
        tree, store = build(positions, masses)
        self._check_invariants(tree, store)

    def test_leaf_capacity(self):
        positions, masses = uniform_ball(500, dimension=2, seed=3)
        tree, store = build(positions, masses, leaf_capacity=8)
        self._check_invariants(tree, store, leaf_capacity=8)
        leaves = tree.leaf_indices()
        self.assertTrue(np.all(tree.count[leaves] <= 8))

    def test_deep_close_pair(self):
        """A close pair needs many more nodes than the initial arena holds"""
        positions = np.array([[0.0, 0.0, 0.0], [1e-6, 2e-6, 0.0], [1.0, 1.0, 1.0]])
        tree, store = build(positions)
        self.assertGreater(tree.max_depth_reached, 15)
        self.assertGreater(tree.n_nodes, 8 * 15)
        self._check_invariants(tree, store)
        sizes = sorted(int(tree.count[leaf]) for leaf in tree.leaf_indices())
        self.assertEqual(sizes, [1, 1, 1])

    def test_bodies_on_cell_boundaries(self):
        """Grid points land exactly on subdivision planes"""
        xs, ys = np.meshgrid(np.arange(5.0), np.arange(5.0))
        positions = np.stack([xs.ravel(), ys.ravel()], axis=1)
        tree, store = build(positions)
        self._check_invariants(tree, store)


class TestDegenerateInput(unittest.TestCase):
    """Coincident and near-coincident bodies must terminate"""

    def test_all_coincident_single_leaf(self):
        """Coincident bodies stay together in one leaf"""
        positions = np.tile([2.0, -1.0], (5, 1))
        tree, _ = build(positions, [1.0, 2.0, 3.0, 4.0, 5.0])
        self.assertEqual(tree.n_nodes, 1)
        self.assertTrue(tree.is_leaf(0))
        np.testing.assert_array_equal(np.sort(tree.bodies_in(0)), np.arange(5))

    def test_partially_coincident(self):
        positions = np.array([[0.0, 0.0], [0.0, 0.0], [0.0, 0.0], [1.0, 1.0]])
        tree, _ = build(positions)
        leaves = tree.leaf_indices()
        sizes = sorted(int(tree.count[leaf]) for leaf in leaves)
        self.assertEqual(sizes, [1, 3])

    def test_near_coincident_terminates(self):
        """Bodies one ulp apart must not recurse without bound"""
        x = 1.0
        positions = np.array([[x, 0.0], [np.nextafter(x, 2.0), 0.0], [5.0, 5.0]])
        tree, store = build(positions)
        self.assertLessEqual(tree.max_depth_reached, GravityConstants.MAX_TREE_DEPTH)
        members = np.concatenate([tree.bodies_in(leaf) for leaf in tree.leaf_indices()])
        np.testing.assert_array_equal(np.sort(members), np.arange(3))

    def test_max_depth_respected(self):
        positions = np.array([[0.0, 0.0], [1e-9, 0.0], [1.0, 1.0]])
        tree, _ = build(positions, max_depth=3)
        self.assertLessEqual(tree.max_depth_reached, 3)
        members = np.concatenate([tree.bodies_in(leaf) for leaf in tree.leaf_indices()])
        np.testing.assert_array_equal(np.sort(members), np.arange(3))

    def test_width(self):
        tree, _ = build([[0.0, 0.0], [2.0, 2.0]])
        self.assertEqual(tree.width(0), 2.0)
        self.assertEqual(tree.width(tree.children[0, 0]), 1.0)


if __name__ == '__main__':
    unittest.main()
