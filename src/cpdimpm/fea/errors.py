"""
Solver Errors
=============
Fatal conditions raised by the pipeline stages.

Every error carries the iteration at which it occurred (filled in by the
solver when a stage raises) and, where meaningful, the offending particle.
"""
from __future__ import annotations


class MPMError(RuntimeError):
    """Base class for fatal solver errors."""

    def __init__(self, message: str, iteration: int | None = None, particle: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.iteration = iteration
        self.particle = particle

    def __str__(self) -> str:
        if self.iteration is None:
            return self.message
        return f"iteration {self.iteration}: {self.message}"


class BoundaryExitError(MPMError):
    """A material point corner left the background mesh."""


class DegenerateDomainError(MPMError):
    """A particle domain has a non-positive signed area."""


class InversionError(MPMError):
    """The deformation gradient determinant became non-positive."""


class DivergenceError(MPMError):
    """Particle velocities stayed non-finite past the nominal end time."""
