"""
Spatial tree (quadtree in 2D, octree in 3D) stored as a flat node arena.

Space is recursively subdivided into 2^D equal square/cubic cells until each
cell holds at most `leaf_capacity` bodies. Nodes are addressed by integer
index; the root is node 0 and a parent is always stored before its children,
so iterating the arena in reverse visits every child before its parent.

Bodies are not copied into nodes. Instead `body_order` is a permutation of
body indices such that every node's subtree occupies the contiguous slice
body_order[start:start + count].
"""

import numpy as np
from numba import jit, float64, int64

from .bodies import BodyStore
from .constants import GravityConstants
from .errors import InvalidParameter


# Fallback half-width (relative to coordinate magnitude) when all bodies coincide
_MIN_RELATIVE_HALF_WIDTH = 1024 * np.finfo(np.float64).eps


def child_signs(dimension: int) -> np.ndarray:
    """
    Offset direction of every child cell relative to its parent center.

    Child k lies on the upper (+) side of axis a iff bit a of k is set:
    2D: 0: (-, -)  1: (+, -)  2: (-, +)  3: (+, +)

    Returns:
        Array of shape (2^D, D) with entries +1.0 / -1.0
    """
    n_children = 1 << dimension
    k = np.arange(n_children)[:, np.newaxis]
    bits = (k >> np.arange(dimension)[np.newaxis, :]) & 1
    return np.where(bits == 1, 1.0, -1.0)


def enclosing_cube(positions: np.ndarray):
    """
    Smallest axis-aligned square/cube containing all positions.

    Zero extent (a single body, or all bodies coincident) falls back to a
    small non-zero half-width so the root region never degenerates.

    Returns:
        (center, half_width)
    """
    min_corner = np.min(positions, axis=0)
    max_corner = np.max(positions, axis=0)
    center = (min_corner + max_corner) / 2.0
    half_width = 0.5 * float(np.max(max_corner - min_corner))

    scale = max(float(np.max(np.abs(center))), 1.0)
    half_width = max(half_width, scale * _MIN_RELATIVE_HALF_WIDTH)
    return center, half_width


@jit(nopython=True, cache=True)
def _grow_arena(node_center, node_half, node_first, node_start, node_count, node_depth):
    """Double the capacity of the node arrays, keeping existing rows."""
    old = node_half.shape[0]
    new = 2 * old
    dim = node_center.shape[1]

    center = np.zeros((new, dim), dtype=float64)
    half = np.zeros(new, dtype=float64)
    first = np.full(new, -1, dtype=int64)
    start = np.zeros(new, dtype=int64)
    count = np.zeros(new, dtype=int64)
    depth = np.zeros(new, dtype=int64)

    center[:old] = node_center
    half[:old] = node_half
    first[:old] = node_first
    start[:old] = node_start
    count[:old] = node_count
    depth[:old] = node_depth
    return center, half, first, start, count, depth


@jit(nopython=True, cache=True)
def _build_arena(positions, root_center, root_half, signs, leaf_capacity, max_depth, capacity):
    """
    Iterative top-down subdivision into flat node arrays.

    Each split partitions the node's slice of body_order in place with a
    stable counting sort by child cell, then appends all 2^D children as one
    contiguous block. Non-empty children are pushed in reverse so they are
    subdivided in child order.

    Returns:
        (center, half_width, first_child, start, count, depth, body_order, n_capped)
        with one row per node; first_child is -1 for leaves
    """
    n = positions.shape[0]
    dim = positions.shape[1]
    n_children = signs.shape[0]

    node_center = np.zeros((capacity, dim), dtype=float64)
    node_half = np.zeros(capacity, dtype=float64)
    node_first = np.full(capacity, -1, dtype=int64)
    node_start = np.zeros(capacity, dtype=int64)
    node_count = np.zeros(capacity, dtype=int64)
    node_depth = np.zeros(capacity, dtype=int64)

    body_order = np.arange(n)
    scratch = np.empty(n, dtype=int64)
    cell = np.empty(n, dtype=int64)
    cell_counts = np.zeros(n_children, dtype=int64)
    cell_starts = np.zeros(n_children, dtype=int64)
    cursor = np.zeros(n_children, dtype=int64)

    # A node at depth d pushes at most 2^D children of depth d + 1
    stack = np.empty((max_depth + 1) * n_children + 1, dtype=int64)

    for a in range(dim):
        node_center[0, a] = root_center[a]
    node_half[0] = root_half
    node_count[0] = n
    n_nodes = 1
    n_capped = 0

    top = 0
    stack[top] = 0
    top += 1

    while top > 0:
        top -= 1
        node = stack[top]
        s = node_start[node]
        c = node_count[node]
        half = node_half[node]

        if c <= leaf_capacity:
            continue

        # All bodies coincide: keep them together in one leaf
        ref = body_order[s]
        coincident = True
        for b in range(s + 1, s + c):
            j = body_order[b]
            for a in range(dim):
                if positions[j, a] != positions[ref, a]:
                    coincident = False
                    break
            if not coincident:
                break
        if coincident:
            continue

        # Depth bound, or halving no longer moves child centers in floating point
        resolved = True
        for a in range(dim):
            if node_center[node, a] + 0.5 * half == node_center[node, a]:
                resolved = False
        if node_depth[node] >= max_depth or not resolved:
            n_capped += 1
            continue

        # Child cell of every body: bit a set on the upper side of axis a
        for k in range(n_children):
            cell_counts[k] = 0
        for b in range(s, s + c):
            j = body_order[b]
            k = 0
            for a in range(dim):
                if positions[j, a] >= node_center[node, a]:
                    k += 1 << a
            cell[b] = k
            cell_counts[k] += 1

        offset = s
        for k in range(n_children):
            cell_starts[k] = offset
            cursor[k] = offset
            offset += cell_counts[k]

        # Stable counting sort of the node's slice
        for b in range(s, s + c):
            k = cell[b]
            scratch[cursor[k]] = body_order[b]
            cursor[k] += 1
        for b in range(s, s + c):
            body_order[b] = scratch[b]

        if n_nodes + n_children > node_half.shape[0]:
            node_center, node_half, node_first, node_start, node_count, node_depth = _grow_arena(
                node_center, node_half, node_first, node_start, node_count, node_depth
            )

        first = n_nodes
        node_first[node] = first
        child_half = 0.5 * half
        for k in range(n_children):
            child = first + k
            for a in range(dim):
                node_center[child, a] = node_center[node, a] + child_half * signs[k, a]
            node_half[child] = child_half
            node_first[child] = -1
            node_start[child] = cell_starts[k]
            node_count[child] = cell_counts[k]
            node_depth[child] = node_depth[node] + 1
        n_nodes += n_children

        for k in range(n_children - 1, -1, -1):
            if cell_counts[k] > 0:
                stack[top] = first + k
                top += 1

    return (node_center[:n_nodes].copy(), node_half[:n_nodes].copy(),
            node_first[:n_nodes].copy(), node_start[:n_nodes].copy(),
            node_count[:n_nodes].copy(), node_depth[:n_nodes].copy(),
            body_order, n_capped)


class SpatialTree:
    """
    Immutable Barnes-Hut tree over a BodyStore.

    Usage:
        tree = SpatialTree.build(store)
        for leaf in tree.leaf_indices():
            bodies = tree.bodies_in(leaf)

    Attributes (arena arrays, one row per node, read-only):
        center: Cell centers, shape (K, D)
        half_width: Half the cell side length, shape (K,)
        children: Child node indices, shape (K, 2^D); -1 rows for leaves
        start: Offset of the node's bodies in body_order, shape (K,)
        count: Number of bodies in the node's subtree, shape (K,)
        depth: Distance from the root, shape (K,)
        body_order: Body indices grouped by node, shape (N,)
    """

    def __init__(self, center, half_width, children, start, count, depth, body_order):
        self.center = center
        self.half_width = half_width
        self.children = children
        self.start = start
        self.count = count
        self.depth = depth
        self.body_order = body_order

        for arr in (self.center, self.half_width, self.children,
                    self.start, self.count, self.depth, self.body_order):
            arr.flags.writeable = False

    @classmethod
    def build(cls, store: BodyStore, leaf_capacity: int = GravityConstants.LEAF_CAPACITY,
              max_depth: int = GravityConstants.MAX_TREE_DEPTH,
              verbose: bool = False) -> 'SpatialTree':
        """
        Construct the tree by iterative top-down subdivision (JIT kernel).

        A cell becomes a leaf when it holds at most leaf_capacity bodies, when
        all its bodies coincide, when it reaches max_depth, or when halving it
        would no longer move child centers in floating point.

        Args:
            store: Validated bodies
            leaf_capacity: Maximum bodies per leaf (>= 1)
            max_depth: Maximum subdivision depth (>= 0)
            verbose: Print a one-line summary

        Returns:
            SpatialTree
        """
        if leaf_capacity < 1:
            raise InvalidParameter(f"leaf_capacity must be >= 1, got {leaf_capacity}")
        if max_depth < 0:
            raise InvalidParameter(f"max_depth must be >= 0, got {max_depth}")

        positions = store.positions
        n, dim = positions.shape
        n_children = 1 << dim

        root_center, root_half = enclosing_cube(positions)

        # Initial guess; the kernel doubles the arrays when it runs out
        capacity = 1 + n_children * max(1, n // leaf_capacity) // 2
        (center, half_width, first_child, start, count, depth,
         body_order, depth_capped) = _build_arena(
            positions, root_center, float(root_half), child_signs(dim),
            int(leaf_capacity), int(max_depth), capacity
        )

        children = np.full((len(half_width), n_children), -1, dtype=np.int64)
        internal = first_child >= 0
        children[internal] = first_child[internal, np.newaxis] + np.arange(n_children)

        tree = cls(
            center=center,
            half_width=half_width,
            children=children,
            start=start,
            count=count,
            depth=depth,
            body_order=body_order,
        )

        if verbose:
            print(f"[SpatialTree] {n} bodies in {dim}D -> {tree.n_nodes} nodes, "
                  f"depth {tree.max_depth_reached}, root half-width {root_half:.3e}")
            if depth_capped:
                print(f"[SpatialTree] {depth_capped} leaves stopped at the resolution/depth limit")

        return tree

    @property
    def n_nodes(self) -> int:
        return self.half_width.shape[0]

    @property
    def dimension(self) -> int:
        return self.center.shape[1]

    @property
    def n_children(self) -> int:
        return self.children.shape[1]

    @property
    def max_depth_reached(self) -> int:
        return int(np.max(self.depth))

    def is_leaf(self, node: int) -> bool:
        """True if the node has no children (it may still hold several coincident bodies)."""
        return bool(self.children[node, 0] < 0)

    def is_empty(self, node: int) -> bool:
        return bool(self.count[node] == 0)

    def width(self, node: int) -> float:
        """Side length of the node's square/cube."""
        return 2.0 * float(self.half_width[node])

    def bodies_in(self, node: int) -> np.ndarray:
        """Indices of every body in the node's subtree."""
        s = self.start[node]
        return self.body_order[s:s + self.count[node]]

    def leaf_indices(self) -> np.ndarray:
        """Indices of all non-empty leaves."""
        return np.flatnonzero((self.children[:, 0] < 0) & (self.count > 0))

    def __repr__(self):
        return (f"SpatialTree(n_nodes={self.n_nodes}, dimension={self.dimension}, "
                f"depth={self.max_depth_reached})")
