"""
Input validation errors.

Every error is a ValueError so callers can catch the whole family at once.
"""


class GravityInputError(ValueError):
    """Base class for rejected constructor or evaluation input."""


class InputLengthMismatch(GravityInputError):
    """Positions and masses arrays have different lengths."""


class InvalidMass(GravityInputError):
    """A mass is non-positive or non-finite."""


class InvalidPosition(GravityInputError):
    """A body or query coordinate is non-finite or beyond GravityConstants.MAX_COORDINATE."""


class InvalidShape(GravityInputError):
    """An array has the wrong rank, an unsupported dimension, or is empty."""


class InvalidParameter(GravityInputError):
    """An evaluation parameter (theta, softening, G) is out of range."""
