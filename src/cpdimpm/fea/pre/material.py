from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from cpdimpm.utils import bulk_modulus, shear_modulus

if TYPE_CHECKING:
    import numpy.typing as npt
    from cpdimpm.config import MaterialConfig


class DruckerPrager:
    """
    Isotropic elastic, Drucker-Prager plastic material in plane strain.

    Stress and strain are stored as 4-component vectors ``[xx, yy, zz, xy]`` with
    tension positive and engineering shear strain.
    """
    def __init__(
        self,
        density: float,
        young_modulus: float,
        poisson_ratio: float,
        cohesion: float,
        friction_angle: float,
        dilation_angle: float = 0.0,
        tensile_strength: float | None = None,
        residual_cohesion: float = 0.0,
        softening_modulus: float = 0.0,
        plasticity: bool = True,
    ) -> None:
        """
        Initialize the material.

        Args:
            density: Initial density in kg/m³.
            young_modulus: Young's modulus in Pa.
            poisson_ratio: Poisson's ratio.
            cohesion: Initial cohesion in Pa.
            friction_angle: Friction angle in radians.
            dilation_angle: Dilation angle in radians; equal to the friction angle for associated flow.
            tensile_strength: Tension cut-off in Pa; None places it at the cone apex.
            residual_cohesion: Lower bound of the softened cohesion in Pa.
            softening_modulus: Cohesion change per unit equivalent plastic strain (negative softens).
            plasticity: Whether plastic correction may be applied at all.
        """
        self.density = density
        self.young_modulus = young_modulus
        self.poisson_ratio = poisson_ratio
        self.cohesion = cohesion
        self.friction_angle = friction_angle
        self.dilation_angle = dilation_angle
        self.tensile_strength = tensile_strength
        self.residual_cohesion = residual_cohesion
        self.softening_modulus = softening_modulus
        self.plasticity = plasticity

        self.bulk_modulus = bulk_modulus(young_modulus, poisson_ratio)
        self.shear_modulus = shear_modulus(young_modulus, poisson_ratio)

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(E={self.young_modulus:g}, nu={self.poisson_ratio:g}, "
                f"c={self.cohesion:g}, phi={np.degrees(self.friction_angle):.1f} deg)")

    @classmethod
    def from_config(cls, config: MaterialConfig) -> DruckerPrager:
        return cls(
            density=config.density,
            young_modulus=config.young_modulus,
            poisson_ratio=config.poisson_ratio,
            cohesion=config.cohesion,
            friction_angle=np.radians(config.friction_angle),
            dilation_angle=np.radians(config.dilation_angle),
            tensile_strength=config.tensile_strength,
            residual_cohesion=config.residual_cohesion,
            softening_modulus=config.softening_modulus,
            plasticity=config.plasticity,
        )

    @property
    def wave_speed(self) -> float:
        """Elastic wave velocity sqrt(E / rho) in m/s."""
        return float(np.sqrt(self.young_modulus / self.density))

    def elastic_matrix(self) -> npt.NDArray[np.float64]:
        """
        Isotropic plane strain stiffness [D] acting on ``[xx, yy, zz, xy]``.

        Returns:
            4x4 elastic matrix.
        """
        K = self.bulk_modulus
        G = self.shear_modulus
        a = K + 4.0 / 3.0 * G
        b = K - 2.0 / 3.0 * G
        return np.array([
            [a, b, b, 0.0],
            [b, a, b, 0.0],
            [b, b, a, 0.0],
            [0.0, 0.0, 0.0, G],
        ])

    def current_cohesion(
        self,
        cohesion0: npt.NDArray[np.float64],
        plastic_strain: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        """Cohesion after linear softening, bounded below by the residual cohesion."""
        return np.maximum(self.residual_cohesion, cohesion0 + self.softening_modulus * plastic_strain)
