"""
Gravitational Constants and Evaluation Parameters
Handles default accuracy/softening settings and their validation
"""

import numpy as np

from .errors import InvalidParameter


class GravityConstants:
    """Physical constants and solver defaults"""

    # Gravitational constant
    G = 1.0  # Unit value (natural units, potential = -M/r)
    G_SI = 6.67430e-11  # [m^3 kg^-1 s^-2]

    # Opening angle: nodes with width/distance < theta use the multipole expansion
    DEFAULT_THETA = 0.3

    # Softening length (same units as positions)
    DEFAULT_SOFTENING = 0.0

    # Tree construction
    LEAF_CAPACITY = 1  # Max bodies per leaf before subdividing
    MAX_TREE_DEPTH = 64  # Hard bound on subdivision (coincident points)

    # Largest accepted |coordinate|; keeps squared separations well inside float64 range
    MAX_COORDINATE = 1e100

    SUPPORTED_DIMENSIONS = (2, 3)


class EvaluationParameters:
    """Parameters controlling a field evaluation"""

    def __init__(self, theta: float = None, softening: float = None,
                 G: float = None, use_quadrupole: bool = True):
        """
        Initialize evaluation parameters.

        Args:
            theta: Opening angle (0.0 = exact direct summation, 1.0 = fast/approximate).
                   Default GravityConstants.DEFAULT_THETA.
            softening: Softening length added in quadrature to distances
            G: Gravitational constant (default 1.0)
            use_quadrupole: Include the quadrupole correction for accepted nodes.
                            False gives the monopole-only Barnes-Hut approximation.
        """
        const = GravityConstants()

        self.theta = float(theta) if theta is not None else const.DEFAULT_THETA
        self.softening = float(softening) if softening is not None else const.DEFAULT_SOFTENING
        self.G = float(G) if G is not None else const.G
        self.use_quadrupole = bool(use_quadrupole)

        self._validate()

    def _validate(self) -> None:
        """Reject parameters the evaluator cannot honour."""
        if not np.isfinite(self.theta) or self.theta < 0.0:
            raise InvalidParameter(f"theta must be finite and >= 0, got {self.theta}")
        if not np.isfinite(self.softening) or self.softening < 0.0:
            raise InvalidParameter(f"softening must be finite and >= 0, got {self.softening}")
        if self.softening > GravityConstants.MAX_COORDINATE:
            raise InvalidParameter(
                f"softening must be <= {GravityConstants.MAX_COORDINATE:.0e}, got {self.softening}"
            )
        if not np.isfinite(self.G):
            raise InvalidParameter(f"G must be finite, got {self.G}")

    def replace(self, theta: float = None, softening: float = None,
                G: float = None, use_quadrupole: bool = None) -> 'EvaluationParameters':
        """Return a copy with the given values overridden (None keeps the current value)."""
        return EvaluationParameters(
            theta=self.theta if theta is None else theta,
            softening=self.softening if softening is None else softening,
            G=self.G if G is None else G,
            use_quadrupole=self.use_quadrupole if use_quadrupole is None else use_quadrupole,
        )

    def __eq__(self, other):
        if not isinstance(other, EvaluationParameters):
            return NotImplemented
        return (self.theta == other.theta and self.softening == other.softening
                and self.G == other.G and self.use_quadrupole == other.use_quadrupole)

    def __str__(self):
        return (f"Evaluation Parameters:\n"
                f"  θ = {self.theta}\n"
                f"  ε = {self.softening}\n"
                f"  G = {self.G}\n"
                f"  Quadrupole = {'on' if self.use_quadrupole else 'off'}")
