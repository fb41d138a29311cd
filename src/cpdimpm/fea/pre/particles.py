from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt
    from cpdimpm.fea.pre.mesh import Mesh
    from cpdimpm.fea.pre.material import DruckerPrager

logger = logging.getLogger(__name__)

# Corner offsets of a unit particle domain, counter-clockwise from bottom-left
CORNER_OFFSETS = np.array([
    [-1.0, -1.0],
    [1.0, -1.0],
    [1.0, 1.0],
    [-1.0, 1.0],
])


class MaterialPoints:
    """
    Struct-of-arrays container for the material points of one run.

    Attributes:
        x: Centroids, shape (n, 2).
        corners: Corner positions, shape (n, 4, 2), counter-clockwise.
        v: Velocities, shape (n, 2).
        mass: Masses, shape (n,). Constant during the run.
        volume: Current volumes, shape (n,).
        volume0: Reference volumes, shape (n,).
        stress: Cauchy stress ``[xx, yy, zz, xy]``, shape (n, 4).
        strain: Accumulated small strain ``[xx, yy, zz, xy]``, shape (n, 4).
        strain_increment: Strain increment of the current step, shape (n, 4).
        spin: Rotation increment of the current step, shape (n,).
        plastic_strain: Accumulated equivalent plastic strain, shape (n,).
        F: Deformation gradient, shape (n, 2, 2).
        density: Initial density, shape (n,).
        cohesion: Initial cohesion, shape (n,).
        friction_angle: Friction angle in radians, shape (n,).
    """
    def __init__(
        self,
        x: npt.ArrayLike,
        corners: npt.ArrayLike,
        volume: npt.ArrayLike,
        density: npt.ArrayLike,
        cohesion: npt.ArrayLike,
        friction_angle: npt.ArrayLike,
        stress: npt.ArrayLike | None = None,
        v: npt.ArrayLike | None = None,
    ) -> None:
        self.x = np.array(x, dtype=np.float64).reshape(-1, 2)
        n = self.x.shape[0]
        self.corners = np.array(corners, dtype=np.float64).reshape(n, 4, 2)
        self.volume0 = np.broadcast_to(np.asarray(volume, dtype=np.float64), (n,)).copy()
        self.volume = self.volume0.copy()
        self.density = np.broadcast_to(np.asarray(density, dtype=np.float64), (n,)).copy()
        self.mass = self.density * self.volume0
        self.mass.setflags(write=False)
        self.cohesion = np.broadcast_to(np.asarray(cohesion, dtype=np.float64), (n,)).copy()
        self.friction_angle = np.broadcast_to(np.asarray(friction_angle, dtype=np.float64), (n,)).copy()

        self.v = np.zeros((n, 2)) if v is None else np.array(v, dtype=np.float64).reshape(n, 2)
        self.stress = np.zeros((n, 4)) if stress is None else np.array(stress, dtype=np.float64).reshape(n, 4)
        self.strain = np.zeros((n, 4))
        self.strain_increment = np.zeros((n, 4))
        self.spin = np.zeros(n)
        self.plastic_strain = np.zeros(n)
        self.F = np.tile(np.eye(2), (n, 1, 1))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n={self.n})"

    def __len__(self) -> int:
        return self.n

    @property
    def n(self) -> int:
        """Number of material points."""
        return self.x.shape[0]

    @property
    def total_mass(self) -> float:
        return float(self.mass.sum())

    @property
    def momentum(self) -> npt.NDArray[np.float64]:
        """Total particle momentum (px, py)."""
        return (self.mass[:, None] * self.v).sum(axis=0)

    @classmethod
    def from_box(
        cls,
        mesh: Mesh,
        x_range: tuple[float, float],
        y_range: tuple[float, float],
        particles_per_element: int,
        material: DruckerPrager,
    ) -> MaterialPoints:
        """
        Fill a rectangle with a regular lattice of square particle domains.

        Each mesh cell covered by the rectangle receives
        ``particles_per_element**2`` particles.

        Args:
            mesh: Background mesh (supplies the cell size).
            x_range: (x_min, x_max) of the material.
            y_range: (y_min, y_max) of the material.
            particles_per_element: Particles per cell and direction.
            material: Material supplying density, cohesion and friction angle.

        Returns:
            The initial material point set, at rest and stress free.
        """
        lp = mesh.h / particles_per_element  # particle domain size
        xs = np.arange(x_range[0] + 0.5 * lp[0], x_range[1], lp[0])
        ys = np.arange(y_range[0] + 0.5 * lp[1], y_range[1], lp[1])
        xx, yy = np.meshgrid(xs, ys, indexing="ij")
        x = np.column_stack((xx.ravel(), yy.ravel()))
        if x.shape[0] == 0:
            raise ValueError("The requested region contains no material points.")

        corners = x[:, None, :] + 0.5 * lp[None, None, :] * CORNER_OFFSETS[None, :, :]
        volume = float(lp[0] * lp[1])

        logger.debug(f"Generated {x.shape[0]} material points of size {lp[0]:g} x {lp[1]:g}.")
        return cls(
            x=x,
            corners=corners,
            volume=volume,
            density=material.density,
            cohesion=material.cohesion,
            friction_angle=material.friction_angle,
        )
