"""
Bottom-up multipole moments (mass, center of mass, quadrupole) for every tree node.

Quadrupole convention, about the node's center of mass C:

    Q_ij = Σ m (3 r_i r_j - |r|² δ_ij),   r = x - C

With this convention the far-field potential of the node is
Φ(r) = -G [M/|r| + r̂ᵀ Q r̂ / (2|r|³)] (the dipole term vanishes about C).
"""

import numpy as np
from numba import jit, float64

from .bodies import BodyStore
from .tree import SpatialTree


def quadrupole_of_points(offsets: np.ndarray, masses: np.ndarray) -> np.ndarray:
    """
    Quadrupole tensor of point masses at the given offsets.

    Args:
        offsets: Positions relative to the expansion center, shape (K, D)
        masses: Point masses, shape (K,)

    Returns:
        Symmetric tensor of shape (D, D)
    """
    dim = offsets.shape[1]
    outer = np.einsum('k,ki,kj->ij', masses, offsets, offsets)
    r2 = np.einsum('k,ki,ki->', masses, offsets, offsets)
    return 3.0 * outer - r2 * np.eye(dim)


def point_quadrupole(offset: np.ndarray, mass: float) -> np.ndarray:
    """Quadrupole of a single point mass: m (3 r rᵀ - |r|² I)."""
    offset = np.asarray(offset, dtype=np.float64)
    return quadrupole_of_points(offset[np.newaxis, :], np.array([mass], dtype=np.float64))


def shift_quadrupole(quadrupole: np.ndarray, mass: float, offset: np.ndarray) -> np.ndarray:
    """
    Translate a quadrupole from its own center of mass to a new center.

    Parallel-axis theorem: Q' = Q + m (3 d dᵀ - |d|² I) where d is the old
    center of mass relative to the new one.
    """
    return quadrupole + point_quadrupole(offset, mass)


class NodeMoments:
    """
    Aggregated moments for every node of a SpatialTree.

    Attributes:
        mass: Total mass per node, shape (K,); 0 for empty nodes
        com: Center of mass per node, shape (K, D); 0 for empty nodes
        quadrupole: Quadrupole about com per node, shape (K, D, D)
    """

    def __init__(self, mass: np.ndarray, com: np.ndarray, quadrupole: np.ndarray):
        self.mass = mass
        self.com = com
        self.quadrupole = quadrupole
        for arr in (self.mass, self.com, self.quadrupole):
            arr.flags.writeable = False

    def __len__(self):
        return self.mass.shape[0]


@jit(nopython=True, cache=True)
def _aggregate_arena(positions, masses, body_order, node_children, node_start, node_count):
    """
    Mass, center of mass and quadrupole of every node, children before parents.

    Returns:
        mass (K,), com (K, D), quadrupole (K, D, D)
    """
    n_nodes = node_count.shape[0]
    n_children = node_children.shape[1]
    dim = positions.shape[1]

    mass = np.zeros(n_nodes, dtype=float64)
    com = np.zeros((n_nodes, dim), dtype=float64)
    quad = np.zeros((n_nodes, dim, dim), dtype=float64)
    d = np.empty(dim, dtype=float64)

    for node in range(n_nodes - 1, -1, -1):
        c = node_count[node]
        if c == 0:
            continue

        if node_children[node, 0] < 0:
            s = node_start[node]
            if c == 1:
                j = body_order[s]
                mass[node] = masses[j]
                for a in range(dim):
                    com[node, a] = positions[j, a]
                continue

            total = 0.0
            for b in range(s, s + c):
                j = body_order[b]
                total += masses[j]
                for a in range(dim):
                    com[node, a] += masses[j] * positions[j, a]
            for a in range(dim):
                com[node, a] /= total
            mass[node] = total

            for b in range(s, s + c):
                j = body_order[b]
                d2 = 0.0
                for a in range(dim):
                    d[a] = positions[j, a] - com[node, a]
                    d2 += d[a] * d[a]
                _add_point_quadrupole(quad[node], d, d2, masses[j])
        else:
            total = 0.0
            for k in range(n_children):
                child = node_children[node, k]
                if node_count[child] == 0:
                    continue
                total += mass[child]
                for a in range(dim):
                    com[node, a] += mass[child] * com[child, a]
            for a in range(dim):
                com[node, a] /= total
            mass[node] = total

            # Σ children's own Q, each shifted to the parent's center of mass
            for k in range(n_children):
                child = node_children[node, k]
                if node_count[child] == 0:
                    continue
                d2 = 0.0
                for a in range(dim):
                    d[a] = com[child, a] - com[node, a]
                    d2 += d[a] * d[a]
                for a in range(dim):
                    for e in range(dim):
                        quad[node, a, e] += quad[child, a, e]
                _add_point_quadrupole(quad[node], d, d2, mass[child])

    return mass, com, quad


@jit(nopython=True, cache=True)
def _add_point_quadrupole(out, d, d2, m):
    """out += m (3 d dᵀ - |d|² I)"""
    dim = d.shape[0]
    for a in range(dim):
        for e in range(dim):
            out[a, e] += 3.0 * m * d[a] * d[e]
        out[a, a] -= m * d2


def _aggregate_numpy(tree: SpatialTree, store: BodyStore):
    n_nodes = tree.n_nodes
    dim = tree.dimension
    positions = store.positions
    masses = store.masses

    mass = np.zeros(n_nodes, dtype=np.float64)
    com = np.zeros((n_nodes, dim), dtype=np.float64)
    quad = np.zeros((n_nodes, dim, dim), dtype=np.float64)

    for node in range(n_nodes - 1, -1, -1):
        if tree.count[node] == 0:
            continue

        if tree.is_leaf(node):
            idx = tree.bodies_in(node)
            m = masses[idx]
            x = positions[idx]
            total = np.sum(m)
            if len(idx) == 1:
                c = x[0].copy()
            else:
                c = np.sum(x * m[:, np.newaxis], axis=0) / total
            mass[node] = total
            com[node] = c
            quad[node] = quadrupole_of_points(x - c, m)
        else:
            kids = tree.children[node]
            kids = kids[tree.count[kids] > 0]
            m = mass[kids]
            total = np.sum(m)
            c = np.sum(com[kids] * m[:, np.newaxis], axis=0) / total
            mass[node] = total
            com[node] = c
            quad[node] = sum(shift_quadrupole(quad[k], mass[k], com[k] - c) for k in kids)

    return mass, com, quad


def aggregate_moments(tree: SpatialTree, store: BodyStore, use_numba: bool = True) -> NodeMoments:
    """
    Compute mass, center of mass and quadrupole for every node in one post-order pass.

    Parents precede children in the arena, so walking node indices in reverse
    guarantees every child is finished before its parent is combined.

    Args:
        tree: Built spatial tree
        store: Bodies the tree was built from
        use_numba: Run the JIT kernel (False: NumPy per-node reference)

    Returns:
        NodeMoments
    """
    if use_numba:
        mass, com, quad = _aggregate_arena(store.positions, store.masses, tree.body_order,
                                           tree.children, tree.start, tree.count)
    else:
        mass, com, quad = _aggregate_numpy(tree, store)
    return NodeMoments(mass, com, quad)
