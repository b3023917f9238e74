"""
Reproducible body distributions for tests and benchmarks.
"""

from typing import Tuple

import numpy as np

from .constants import GravityConstants


def _check_dimension(dimension: int) -> None:
    if dimension not in GravityConstants.SUPPORTED_DIMENSIONS:
        raise ValueError(f"dimension must be one of {GravityConstants.SUPPORTED_DIMENSIONS}, got {dimension}")


def generate_masses(n_bodies: int, total_mass: float = 1.0, mass_randomize: float = 0.0,
                    rng: np.random.Generator = None) -> np.ndarray:
    """
    Positive masses summing exactly to total_mass.

    Args:
        n_bodies: Number of bodies
        total_mass: Sum of all masses
        mass_randomize: 0.0 = equal masses, 1.0 = uniform in (0, 2x mean]
        rng: Random generator (default: seeded with 42)

    Returns:
        (n_bodies,) masses
    """
    rng = rng if rng is not None else np.random.default_rng(42)
    mass_randomize = float(np.clip(mass_randomize, 0.0, 1.0))
    mean_mass = total_mass / n_bodies

    if mass_randomize == 0.0 or n_bodies == 1:
        return np.full(n_bodies, mean_mass)

    half_range = mass_randomize * mean_mass
    raw = rng.uniform(mean_mass - half_range, mean_mass + half_range, n_bodies)
    # Keep every mass strictly positive
    raw = np.maximum(raw, 1e-10 * mean_mass)
    return raw * (total_mass / np.sum(raw))


def uniform_ball(n_bodies: int, radius: float = 1.0, dimension: int = 2,
                 total_mass: float = 1.0, mass_randomize: float = 0.0,
                 center=None, seed: int = 42) -> Tuple[np.ndarray, np.ndarray]:
    """
    Bodies uniformly distributed in a disk (2D) or ball (3D).

    Returns:
        positions (n_bodies, dimension), masses (n_bodies,)
    """
    _check_dimension(dimension)
    rng = np.random.default_rng(seed)

    # Isotropic direction times r ∝ u^(1/D) gives uniform density
    directions = rng.normal(size=(n_bodies, dimension))
    directions /= np.linalg.norm(directions, axis=1)[:, np.newaxis]
    radii = radius * rng.uniform(0.0, 1.0, n_bodies) ** (1.0 / dimension)
    positions = directions * radii[:, np.newaxis]

    if center is not None:
        positions += np.asarray(center, dtype=np.float64)

    masses = generate_masses(n_bodies, total_mass, mass_randomize, rng)
    return positions, masses


def plummer(n_bodies: int, scale_radius: float = 1.0, dimension: int = 3,
            total_mass: float = 1.0, max_radius: float = 10.0,
            seed: int = 42) -> Tuple[np.ndarray, np.ndarray]:
    """
    Centrally concentrated Plummer-like cluster (equal masses).

    Radii follow the 3D Plummer cumulative mass profile
    r = a / sqrt(u^(-2/3) - 1), truncated at max_radius × a.

    Returns:
        positions (n_bodies, dimension), masses (n_bodies,)
    """
    _check_dimension(dimension)
    rng = np.random.default_rng(seed)

    u_max = (max_radius**2 / (1.0 + max_radius**2)) ** 1.5
    u = rng.uniform(1e-12, u_max, n_bodies)
    radii = scale_radius / np.sqrt(u ** (-2.0 / 3.0) - 1.0)

    directions = rng.normal(size=(n_bodies, dimension))
    directions /= np.linalg.norm(directions, axis=1)[:, np.newaxis]
    positions = directions * radii[:, np.newaxis]

    masses = generate_masses(n_bodies, total_mass, 0.0, rng)
    return positions, masses


def query_grid(lower, upper, n_per_axis: int) -> np.ndarray:
    """
    Regular grid of query points covering [lower, upper] on every axis.

    Returns:
        (n_per_axis^D, D) points, last axis varying fastest
    """
    lower = np.asarray(lower, dtype=np.float64)
    upper = np.asarray(upper, dtype=np.float64)
    axes = [np.linspace(lo, hi, n_per_axis) for lo, hi in zip(lower, upper)]
    mesh = np.meshgrid(*axes, indexing='ij')
    return np.stack([m.ravel() for m in mesh], axis=1)
