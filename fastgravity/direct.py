"""
Direct O(N×M) gravitational potential and acceleration by exact pairwise summation.

Reference solver for validating the tree: same softening and same
self-exclusion rule (a body exactly at the query point contributes nothing).
Provides a vectorized NumPy version and a Numba JIT version.
"""

from typing import Tuple

import numpy as np
from numba import jit, float64

from .bodies import BodyStore, validate_points
from .constants import EvaluationParameters


@jit(nopython=True, cache=True)
def direct_field_numba(
    positions: np.ndarray,
    masses: np.ndarray,
    points: np.ndarray,
    softening: float,
    G: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Direct pairwise summation with Numba JIT.

    Args:
        positions: (N, D) body positions
        masses: (N,) body masses
        points: (M, D) query positions
        softening: softening length
        G: gravitational constant

    Returns:
        potentials (M,), accelerations (M, D)
    """
    N = positions.shape[0]
    M = points.shape[0]
    dim = points.shape[1]
    potentials = np.zeros(M, dtype=float64)
    accelerations = np.zeros((M, dim), dtype=float64)
    r = np.empty(dim, dtype=float64)
    eps2 = softening * softening

    for i in range(M):
        for j in range(N):
            d2 = 0.0
            for a in range(dim):
                r[a] = points[i, a] - positions[j, a]
                d2 += r[a] * r[a]
            if d2 == 0.0:
                continue

            inv_rho = 1.0 / np.sqrt(d2 + eps2)
            gm = G * masses[j]
            f = gm * inv_rho * inv_rho * inv_rho

            potentials[i] -= gm * inv_rho
            for a in range(dim):
                accelerations[i, a] -= f * r[a]

    return potentials, accelerations


def direct_field_numpy(
    positions: np.ndarray,
    masses: np.ndarray,
    points: np.ndarray,
    softening: float,
    G: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Direct pairwise summation with NumPy broadcasting.

    Memory is O(N×M×D); use the Numba version for large inputs.
    """
    # r_vec[i, j] = q_i - x_j, shape (M, N, D)
    r_vec = points[:, np.newaxis, :] - positions[np.newaxis, :, :]
    d2 = np.sum(r_vec**2, axis=2)  # Shape: (M, N)

    # Coincident pairs are excluded: 1/ρ → 0
    coincident = d2 == 0.0
    rho = np.sqrt(d2 + softening**2)
    rho[coincident] = np.inf
    inv_rho = 1.0 / rho

    gm = G * masses[np.newaxis, :]  # Shape: (1, N)
    potentials = -np.sum(gm * inv_rho, axis=1)
    accelerations = -np.sum((gm * inv_rho**3)[:, :, np.newaxis] * r_vec, axis=1)
    return potentials, accelerations


def direct_potential(positions, masses, points, G: float = 1.0,
                     softening: float = 0.0, use_numba: bool = True) -> np.ndarray:
    """Potential at each query point by direct summation, shape (M,)."""
    return _direct(positions, masses, points, G, softening, use_numba)[0]


def direct_gravity(positions, masses, points, G: float = 1.0,
                   softening: float = 0.0, use_numba: bool = True) -> np.ndarray:
    """Acceleration at each query point by direct summation, shape (M, D)."""
    return _direct(positions, masses, points, G, softening, use_numba)[1]


def _direct(positions, masses, points, G, softening, use_numba):
    positions = np.ascontiguousarray(positions, dtype=np.float64)
    masses = np.ascontiguousarray(masses, dtype=np.float64)
    points = np.ascontiguousarray(points, dtype=np.float64)
    if use_numba:
        return direct_field_numba(positions, masses, points, float(softening), float(G))
    return direct_field_numpy(positions, masses, points, float(softening), float(G))


class DirectSolver:
    """
    Exact O(N) per query gravity solver.

    Same constructor validation and evaluation API as GravitySystem, so the
    two can be swapped when comparing accuracy and timing.
    """

    def __init__(self, positions, masses, softening: float = None, G: float = None,
                 use_numba: bool = True):
        self.store = BodyStore(positions, masses)
        self.parameters = EvaluationParameters(theta=0.0, softening=softening, G=G)
        self.use_numba = use_numba

    def evaluate(self, points) -> Tuple[np.ndarray, np.ndarray]:
        """Potentials (M,) and accelerations (M, D)."""
        pts = validate_points(points, self.store.dimension)
        return _direct(self.store.positions, self.store.masses, pts,
                       self.parameters.G, self.parameters.softening, self.use_numba)

    def evaluate_potential(self, points) -> np.ndarray:
        return self.evaluate(points)[0]

    def evaluate_gravity(self, points) -> np.ndarray:
        return self.evaluate(points)[1]
