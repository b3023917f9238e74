"""
Barnes-Hut gravity system: builds the tree once and evaluates fields on demand.

Usage:
    system = GravitySystem(positions, masses, theta=0.3, softening=0.0)
    phi = system.evaluate_potential(points)     # (M,)
    acc = system.evaluate_gravity(points)       # (M, D)

The tree is never modified after construction, so one instance can serve any
number of evaluation calls, including threaded ones (parallel=True).
"""

from typing import Tuple

import numpy as np

from .bodies import BodyStore, validate_points
from .constants import EvaluationParameters, GravityConstants
from .evaluator import FieldEvaluator
from .moments import aggregate_moments
from .tree import SpatialTree


class GravitySystem:
    """
    Gravitational potential/acceleration field of a fixed set of point masses.

    Attributes:
        parameters: Default EvaluationParameters (theta, softening, G, use_quadrupole)
    """

    def __init__(self, positions, masses, theta: float = GravityConstants.DEFAULT_THETA,
                 softening: float = GravityConstants.DEFAULT_SOFTENING,
                 G: float = GravityConstants.G, use_quadrupole: bool = True,
                 leaf_capacity: int = GravityConstants.LEAF_CAPACITY,
                 verbose: bool = False):
        """
        Validate bodies, build the tree and aggregate its moments.

        Args:
            positions: (N, D) body positions, D = 2 or 3
            masses: (N,) positive body masses
            theta: Default opening angle (0.0 = exact, 0.3 = default, 1.0 = fast/approximate)
            softening: Softening length added in quadrature to every distance
            G: Gravitational constant (default 1.0)
            use_quadrupole: Include quadrupole corrections by default
            leaf_capacity: Maximum bodies per leaf
            verbose: Print build summary

        Raises:
            InvalidShape, InputLengthMismatch, InvalidPosition, InvalidMass, InvalidParameter
        """
        self.parameters = EvaluationParameters(
            theta=theta, softening=softening, G=G, use_quadrupole=use_quadrupole
        )
        self._store = BodyStore(positions, masses)
        self._tree = SpatialTree.build(self._store, leaf_capacity=leaf_capacity, verbose=verbose)
        self._moments = aggregate_moments(self._tree, self._store)
        self._evaluator = FieldEvaluator(self._tree, self._moments, self._store)

        if verbose:
            print(f"[GravitySystem] N={self.n_bodies}, D={self.dimension}, "
                  f"total mass {self.total_mass:.3e}, θ={self.parameters.theta}, "
                  f"ε={self.parameters.softening}")

    def _params(self, theta, use_quadrupole) -> EvaluationParameters:
        if theta is None and use_quadrupole is None:
            return self.parameters
        return self.parameters.replace(theta=theta, use_quadrupole=use_quadrupole)

    def evaluate(self, points, theta: float = None, use_quadrupole: bool = None,
                 parallel: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """
        Potentials and accelerations at each query point.

        Args:
            points: (M, D) query positions; M may be 0
            theta: Opening angle override for this call
            use_quadrupole: Quadrupole override for this call
            parallel: Split the points across Numba threads

        Returns:
            potentials (M,), accelerations (M, D), in input order
        """
        params = self._params(theta, use_quadrupole)
        pts = validate_points(points, self.dimension)
        return self._evaluator.fields(pts, params, parallel=parallel)

    def evaluate_potential(self, points, theta: float = None, use_quadrupole: bool = None,
                           parallel: bool = False) -> np.ndarray:
        """Potential at each query point, shape (M,)."""
        return self.evaluate(points, theta, use_quadrupole, parallel)[0]

    def evaluate_gravity(self, points, theta: float = None, use_quadrupole: bool = None,
                         parallel: bool = False) -> np.ndarray:
        """Acceleration (negative potential gradient) at each query point, shape (M, D)."""
        return self.evaluate(points, theta, use_quadrupole, parallel)[1]

    def potential_at(self, point, theta: float = None, use_quadrupole: bool = None) -> float:
        """Potential at a single point of shape (D,)."""
        pt = validate_points(np.reshape(point, (1, -1)), self.dimension)
        return self._evaluator.potential_at(pt[0], self._params(theta, use_quadrupole))

    def gravity_at(self, point, theta: float = None, use_quadrupole: bool = None) -> np.ndarray:
        """Acceleration at a single point of shape (D,)."""
        pt = validate_points(np.reshape(point, (1, -1)), self.dimension)
        return self._evaluator.gravity_at(pt[0], self._params(theta, use_quadrupole))

    def interaction_counts(self, points, theta: float = None) -> np.ndarray:
        """
        Traversal work per query point.

        Returns:
            (M, 2) int array: [multipole nodes accepted, direct body interactions]
        """
        pts = validate_points(points, self.dimension)
        return self._evaluator.interaction_counts(pts, self._params(theta, None))

    @property
    def n_bodies(self) -> int:
        return self._store.n_bodies

    @property
    def dimension(self) -> int:
        return self._store.dimension

    @property
    def n_nodes(self) -> int:
        return self._tree.n_nodes

    @property
    def tree_depth(self) -> int:
        return self._tree.max_depth_reached

    @property
    def total_mass(self) -> float:
        return float(self._moments.mass[0])

    @property
    def center_of_mass(self) -> np.ndarray:
        return self._moments.com[0].copy()

    @property
    def quadrupole(self) -> np.ndarray:
        """Quadrupole tensor of the whole system about its center of mass."""
        return self._moments.quadrupole[0].copy()

    def __len__(self):
        return self.n_bodies

    def __repr__(self):
        return (f"GravitySystem(n_bodies={self.n_bodies}, dimension={self.dimension}, "
                f"n_nodes={self.n_nodes}, theta={self.parameters.theta})")
