"""
Numba JIT-compiled Barnes-Hut field evaluation over the flat node arena.

For each query point, walk the tree from the root with an explicit stack. At each node:
- empty: skip
- leaf: exact softened pairwise sum over its bodies
- internal: if width/distance < theta, use the monopole + quadrupole expansion
  about the node's center of mass; otherwise push its non-empty children

Softened expansion, r = q - C, ρ² = |r|² + ε²:
    Φ = -G [M/ρ + rᵀQr / (2ρ⁵)]
    a = -∇Φ = -G [M r/ρ³ - Q r/ρ⁵ + (5/2) (rᵀQr) r/ρ⁷]

A body located exactly at the query point is excluded from the sum, so the
field at a body's own position never divides by zero, with or without softening.

For theta=0 -> exact direct summation, theta=0.3 -> default, theta=1.0 -> aggressive.
"""

from typing import Tuple

import numpy as np
from numba import jit, prange, float64, int64

from .bodies import BodyStore
from .constants import EvaluationParameters
from .moments import NodeMoments
from .tree import SpatialTree


@jit(nopython=True, cache=True)
def _evaluate_point(q, positions, masses, body_order,
                    node_half_width, node_children, node_start, node_count,
                    node_mass, node_com, node_quad,
                    theta, softening, G, use_quadrupole, stack):
    """
    Potential, acceleration and interaction counts at a single point.

    Returns:
        (potential, acceleration (D,), n_multipole, n_direct)
    """
    dim = q.shape[0]
    n_children = node_children.shape[1]
    eps2 = softening * softening

    phi = 0.0
    acc = np.zeros(dim, dtype=float64)
    r = np.empty(dim, dtype=float64)
    qr = np.empty(dim, dtype=float64)
    n_multipole = 0
    n_direct = 0

    top = 0
    stack[top] = 0  # Start at root
    top += 1

    while top > 0:
        top -= 1
        node = stack[top]

        if node_count[node] == 0:
            continue

        if node_children[node, 0] < 0:
            # Leaf: exact pairwise contributions
            s = node_start[node]
            for b in range(s, s + node_count[node]):
                j = body_order[b]
                d2 = 0.0
                for a in range(dim):
                    r[a] = q[a] - positions[j, a]
                    d2 += r[a] * r[a]
                if d2 == 0.0:
                    # Query sits on the body: no self-interaction
                    continue
                inv_rho = 1.0 / np.sqrt(d2 + eps2)
                gm = G * masses[j]
                f = gm * inv_rho * inv_rho * inv_rho
                phi -= gm * inv_rho
                for a in range(dim):
                    acc[a] -= f * r[a]
                n_direct += 1
            continue

        d2 = 0.0
        for a in range(dim):
            r[a] = q[a] - node_com[node, a]
            d2 += r[a] * r[a]
        d = np.sqrt(d2)
        width = 2.0 * node_half_width[node]

        if d > 0.0 and width < theta * d:
            # Far enough: node acts as a single multipole source
            inv_rho = 1.0 / np.sqrt(d2 + eps2)
            inv_rho2 = inv_rho * inv_rho
            inv_rho3 = inv_rho * inv_rho2
            gm = G * node_mass[node]
            phi -= gm * inv_rho
            for a in range(dim):
                acc[a] -= gm * inv_rho3 * r[a]

            if use_quadrupole:
                rqr = 0.0
                for a in range(dim):
                    qr[a] = 0.0
                    for b in range(dim):
                        qr[a] += node_quad[node, a, b] * r[b]
                    rqr += r[a] * qr[a]
                inv_rho5 = inv_rho3 * inv_rho2
                inv_rho7 = inv_rho5 * inv_rho2
                phi -= 0.5 * G * rqr * inv_rho5
                for a in range(dim):
                    acc[a] += G * (qr[a] * inv_rho5 - 2.5 * rqr * inv_rho7 * r[a])
            n_multipole += 1
        else:
            # Too close: open the node
            for k in range(n_children):
                child = node_children[node, k]
                if node_count[child] > 0:
                    stack[top] = child
                    top += 1

    return phi, acc, n_multipole, n_direct


@jit(nopython=True, cache=True)
def evaluate_batch(points, positions, masses, body_order,
                   node_half_width, node_children, node_start, node_count,
                   node_mass, node_com, node_quad,
                   theta, softening, G, use_quadrupole, stack_size):
    """
    Evaluate every query point in order with one shared traversal stack.

    Args:
        points: (M, D) query positions
        positions, masses: body arrays from the BodyStore
        body_order, node_*: arena arrays from SpatialTree / NodeMoments
        theta: opening angle (0=exact)
        softening: softening length
        G: gravitational constant
        use_quadrupole: include the quadrupole correction
        stack_size: traversal stack capacity

    Returns:
        potentials (M,), accelerations (M, D), counts (M, 2) of
        [multipole nodes accepted, direct body interactions]
    """
    m = points.shape[0]
    dim = points.shape[1]
    potentials = np.zeros(m, dtype=float64)
    accelerations = np.zeros((m, dim), dtype=float64)
    counts = np.zeros((m, 2), dtype=int64)
    stack = np.empty(stack_size, dtype=int64)

    for i in range(m):
        phi, acc, n_multipole, n_direct = _evaluate_point(
            points[i], positions, masses, body_order,
            node_half_width, node_children, node_start, node_count,
            node_mass, node_com, node_quad,
            theta, softening, G, use_quadrupole, stack
        )
        potentials[i] = phi
        for a in range(dim):
            accelerations[i, a] = acc[a]
        counts[i, 0] = n_multipole
        counts[i, 1] = n_direct

    return potentials, accelerations, counts


@jit(nopython=True, cache=True, parallel=True)
def evaluate_batch_parallel(points, positions, masses, body_order,
                            node_half_width, node_children, node_start, node_count,
                            node_mass, node_com, node_quad,
                            theta, softening, G, use_quadrupole, stack_size):
    """
    Same as evaluate_batch, with query points split across threads.

    The tree arrays are only read, so each thread walks them with its own stack.
    """
    m = points.shape[0]
    dim = points.shape[1]
    potentials = np.zeros(m, dtype=float64)
    accelerations = np.zeros((m, dim), dtype=float64)
    counts = np.zeros((m, 2), dtype=int64)

    for i in prange(m):
        stack = np.empty(stack_size, dtype=int64)
        phi, acc, n_multipole, n_direct = _evaluate_point(
            points[i], positions, masses, body_order,
            node_half_width, node_children, node_start, node_count,
            node_mass, node_com, node_quad,
            theta, softening, G, use_quadrupole, stack
        )
        potentials[i] = phi
        for a in range(dim):
            accelerations[i, a] = acc[a]
        counts[i, 0] = n_multipole
        counts[i, 1] = n_direct

    return potentials, accelerations, counts


class FieldEvaluator:
    """
    Barnes-Hut potential/acceleration evaluator over an aggregated tree.

    Query points passed here are assumed validated (see bodies.validate_points).
    """

    def __init__(self, tree: SpatialTree, moments: NodeMoments, store: BodyStore):
        self.tree = tree
        self.moments = moments
        self.store = store

        # DFS stack never holds more than (2^D - 1) entries per level plus the root
        self.stack_size = (tree.max_depth_reached + 1) * tree.n_children + 1

    def _run(self, points: np.ndarray, params: EvaluationParameters,
             parallel: bool = False) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        points = np.ascontiguousarray(points, dtype=np.float64)
        kernel = evaluate_batch_parallel if parallel else evaluate_batch
        return kernel(
            points, self.store.positions, self.store.masses, self.tree.body_order,
            self.tree.half_width, self.tree.children, self.tree.start, self.tree.count,
            self.moments.mass, self.moments.com, self.moments.quadrupole,
            params.theta, params.softening, params.G, params.use_quadrupole,
            self.stack_size
        )

    def fields(self, points: np.ndarray, params: EvaluationParameters,
               parallel: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """
        Potentials (M,) and accelerations (M, D) at every query point.
        """
        potentials, accelerations, _ = self._run(points, params, parallel)
        return potentials, accelerations

    def potentials(self, points: np.ndarray, params: EvaluationParameters,
                   parallel: bool = False) -> np.ndarray:
        return self.fields(points, params, parallel)[0]

    def accelerations(self, points: np.ndarray, params: EvaluationParameters,
                      parallel: bool = False) -> np.ndarray:
        return self.fields(points, params, parallel)[1]

    def interaction_counts(self, points: np.ndarray, params: EvaluationParameters) -> np.ndarray:
        """
        Work done per query point.

        Returns:
            (M, 2) int array: [multipole nodes accepted, direct body interactions]
        """
        return self._run(points, params)[2]

    def field_at(self, point: np.ndarray, params: EvaluationParameters) -> Tuple[float, np.ndarray]:
        """Potential and acceleration at a single point (same kernel as the batch path)."""
        point = np.asarray(point, dtype=np.float64).reshape(1, -1)
        potentials, accelerations = self.fields(point, params)
        return float(potentials[0]), accelerations[0]

    def potential_at(self, point: np.ndarray, params: EvaluationParameters) -> float:
        return self.field_at(point, params)[0]

    def gravity_at(self, point: np.ndarray, params: EvaluationParameters) -> np.ndarray:
        return self.field_at(point, params)[1]
