"""
Body Store
Immutable collection of point masses validated at construction time
"""

import numpy as np

from .constants import GravityConstants
from .errors import InputLengthMismatch, InvalidMass, InvalidPosition, InvalidShape


def _as_float_array(values, name: str) -> np.ndarray:
    """Convert input to a float64 array, reporting non-numeric input as a shape error."""
    try:
        return np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidShape(f"{name} must be a numeric array: {exc}") from exc


def _check_coordinates(arr: np.ndarray, name: str) -> None:
    """Raise InvalidPosition naming the first row with a non-finite or out-of-range coordinate."""
    bad_rows = np.flatnonzero(~np.all(np.isfinite(arr), axis=1))
    if bad_rows.size > 0:
        i = bad_rows[0]
        raise InvalidPosition(
            f"{name} contain non-finite coordinates ({bad_rows.size} rows), "
            f"first at index {i}: {arr[i]}"
        )

    # Squared distances and quadrupole terms must stay finite
    limit = GravityConstants.MAX_COORDINATE
    bad_rows = np.flatnonzero(np.any(np.abs(arr) > limit, axis=1))
    if bad_rows.size > 0:
        i = bad_rows[0]
        raise InvalidPosition(
            f"{name} must have |coordinate| <= {limit:.0e} ({bad_rows.size} rows outside), "
            f"first at index {i}: {arr[i]}"
        )


def validate_points(points, dimension: int) -> np.ndarray:
    """
    Validate an array of query points.

    Args:
        points: Array-like of shape (M, dimension); M may be zero
        dimension: Spatial dimension of the system being queried

    Returns:
        Contiguous float64 copy of shape (M, dimension)
    """
    arr = _as_float_array(points, "points")
    if arr.ndim == 1 and arr.size == 0:
        return np.zeros((0, dimension), dtype=np.float64)
    if arr.ndim != 2:
        raise InvalidShape(f"Array must be two-dimensional but was of shape {arr.shape}")
    if arr.shape[1] != dimension:
        raise InvalidShape(f"Array must be of shape (n,{dimension}) but was {arr.shape}")
    _check_coordinates(arr, "Query points")
    return np.ascontiguousarray(arr)


class BodyStore:
    """
    Read-only point masses.

    Attributes:
        positions: Body positions, shape (N, D), read-only float64
        masses: Body masses, shape (N,), read-only float64
    """

    def __init__(self, positions, masses):
        """
        Validate and store bodies.

        Args:
            positions: Array-like of shape (N, D), D in GravityConstants.SUPPORTED_DIMENSIONS
            masses: Array-like of shape (N,), all finite and > 0

        Raises:
            InvalidShape, InputLengthMismatch, InvalidPosition, InvalidMass
        """
        pos = _as_float_array(positions, "positions")
        mass = _as_float_array(masses, "masses")

        if pos.ndim != 2:
            raise InvalidShape(f"Array must be two-dimensional but was of shape {pos.shape}")
        if pos.shape[1] not in GravityConstants.SUPPORTED_DIMENSIONS:
            raise InvalidShape(
                f"Positions must have {GravityConstants.SUPPORTED_DIMENSIONS} columns, got shape {pos.shape}"
            )
        if mass.ndim != 1:
            raise InvalidShape(f"The masses array should be 1d, got shape {mass.shape}.")

        n = pos.shape[0]
        if n != mass.shape[0]:
            raise InputLengthMismatch(
                f"The sizes of the positions and masses arrays should be equal; were {n} and {mass.shape[0]}"
            )
        if n == 0:
            raise InvalidShape("The number of points can't be zero.")

        _check_coordinates(pos, "Positions")

        bad = np.flatnonzero(~(np.isfinite(mass) & (mass > 0.0)))
        if bad.size > 0:
            raise InvalidMass(
                f"Masses must be finite and positive; {bad.size} invalid, "
                f"first at index {bad[0]}: {mass[bad[0]]}"
            )

        pos.flags.writeable = False
        mass.flags.writeable = False
        self.positions = pos
        self.masses = mass

    @property
    def n_bodies(self) -> int:
        return self.positions.shape[0]

    @property
    def dimension(self) -> int:
        return self.positions.shape[1]

    @property
    def total_mass(self) -> float:
        return float(np.sum(self.masses))

    def center_of_mass(self) -> np.ndarray:
        """Mass-weighted centroid Σ(m_i × r_i) / Σm_i."""
        return np.sum(self.positions * self.masses[:, np.newaxis], axis=0) / self.total_mass

    def __len__(self):
        return self.n_bodies

    def __repr__(self):
        return f"BodyStore(n_bodies={self.n_bodies}, dimension={self.dimension}, total_mass={self.total_mass:.3e})"
