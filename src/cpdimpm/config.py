"""
Simulation Configuration
========================
Defines the configuration data structures for a simulation run.

Why is this file needed?
------------------------
1. Single source of truth: every physical and numerical constant consumed by
   the solver (moduli, yield parameters, gravity, durations) lives here.
2. Persistence: configurations round-trip through JSON and are archived next
   to the results.

Classes:
    MeshConfig: Background grid extent and resolution.
    ParticleConfig: Initial material layer and particle density.
    MaterialConfig: Elasto-plastic material parameters.
    SolverConfig: Time-marching parameters.
    SimulationConfig: The main container class.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict, fields
import json
import logging
import math
from typing import Any, Dict, Optional

from cpdimpm.utils import bulk_modulus, shear_modulus

logger = logging.getLogger(__name__)


def _from_dict_strict(cls, data: Dict[str, Any]):
    """Instantiate a flat dataclass, rejecting unknown keys."""
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**data)


@dataclass
class MeshConfig:
    """
    Extent of the region between the walls and the floor.
    The background grid adds `padding_cells` empty cells on every side.
    """
    length: float = 64.0  # m
    height: float = 40.0  # m
    n_elements: int = 80  # elements along the length
    padding_cells: int = 2

    def __post_init__(self) -> None:
        if self.length <= 0.0 or self.height <= 0.0:
            raise ValueError("Mesh length and height must be positive.")
        if self.n_elements < 1:
            raise ValueError("'n_elements' must be at least 1.")
        if self.padding_cells < 1:
            raise ValueError("'padding_cells' must be at least 1.")

    @property
    def cell_size(self) -> float:
        return self.length / self.n_elements


@dataclass
class ParticleConfig:
    """Rectangular material layer resting on the floor against the left wall."""
    layer_width: float = 24.0  # m
    layer_thickness: float = 12.8  # m
    particles_per_element: int = 2  # per direction

    def __post_init__(self) -> None:
        if self.layer_width <= 0.0 or self.layer_thickness <= 0.0:
            raise ValueError("Layer width and thickness must be positive.")
        if self.particles_per_element < 1:
            raise ValueError("'particles_per_element' must be at least 1.")


@dataclass
class MaterialConfig:
    """
    Drucker-Prager material with tension cut-off.
    Angles are given in degrees.
    """
    density: float = 2100.0  # kg/m³
    young_modulus: float = 70.0e6  # Pa
    poisson_ratio: float = 0.3
    cohesion: float = 10.0e3  # Pa
    friction_angle: float = 20.0  # deg
    dilation_angle: float = 0.0  # deg
    tensile_strength: Optional[float] = None  # Pa, None = cone apex
    residual_cohesion: float = 0.0  # Pa
    softening_modulus: float = 0.0  # Pa per unit equivalent plastic strain
    plasticity: bool = True

    def __post_init__(self) -> None:
        if self.density <= 0.0:
            raise ValueError("Density must be positive.")
        if self.young_modulus <= 0.0:
            raise ValueError("Young's modulus must be positive.")
        if not -1.0 < self.poisson_ratio < 0.5:
            raise ValueError("Poisson ratio must lie in (-1, 0.5).")
        if self.cohesion < 0.0 or self.residual_cohesion < 0.0:
            raise ValueError("Cohesion must not be negative.")
        if not 0.0 <= self.friction_angle < 90.0:
            raise ValueError("Friction angle must lie in [0, 90) degrees.")
        if not 0.0 <= self.dilation_angle <= self.friction_angle:
            raise ValueError("Dilation angle must lie in [0, friction angle].")

    @property
    def bulk_modulus(self) -> float:
        return bulk_modulus(self.young_modulus, self.poisson_ratio)

    @property
    def shear_modulus(self) -> float:
        return shear_modulus(self.young_modulus, self.poisson_ratio)

    @property
    def wave_speed(self) -> float:
        """Elastic wave velocity sqrt(E / rho) in m/s."""
        return math.sqrt(self.young_modulus / self.density)


@dataclass
class SolverConfig:
    total_time: float = 15.0  # s
    elastic_time: float = 8.0  # s, plasticity is off before this time
    gravity: float = 9.81  # m/s²
    courant: float = 0.5
    time_step: Optional[float] = None  # s, None = derived from the wave speed
    flip: float = 1.0  # 1.0 = pure FLIP, 0.0 = pure PIC
    musl: bool = True
    jaumann: bool = True
    fps: int = 25
    max_extra_iterations: int = 0

    def __post_init__(self) -> None:
        if self.total_time <= 0.0:
            raise ValueError("'total_time' must be positive.")
        if self.elastic_time < 0.0:
            raise ValueError("'elastic_time' must not be negative.")
        if not 0.0 < self.courant <= 1.0:
            raise ValueError("'courant' must lie in (0, 1].")
        if self.time_step is not None and self.time_step <= 0.0:
            raise ValueError("'time_step' must be positive.")
        if not 0.0 <= self.flip <= 1.0:
            raise ValueError("'flip' must lie in [0, 1].")
        if self.fps < 1:
            raise ValueError("'fps' must be at least 1.")
        if self.max_extra_iterations < 0:
            raise ValueError("'max_extra_iterations' must not be negative.")


@dataclass
class SimulationConfig:
    """
    Holds the complete set of inputs of one run.
    """
    mesh: MeshConfig = field(default_factory=MeshConfig)
    particles: ParticleConfig = field(default_factory=ParticleConfig)
    material: MaterialConfig = field(default_factory=MaterialConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)

    def time_step(self) -> float:
        """
        Explicit stability time step dt = courant * h / sqrt(E / rho).
        An explicit `solver.time_step` takes precedence.
        """
        if self.solver.time_step is not None:
            return self.solver.time_step
        return self.solver.courant * self.mesh.cell_size / self.material.wave_speed

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> SimulationConfig:
        unknown = set(data) - {"mesh", "particles", "material", "solver"}
        if unknown:
            raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
        return SimulationConfig(
            mesh=_from_dict_strict(MeshConfig, data.get("mesh", {})),
            particles=_from_dict_strict(ParticleConfig, data.get("particles", {})),
            material=_from_dict_strict(MaterialConfig, data.get("material", {})),
            solver=_from_dict_strict(SolverConfig, data.get("solver", {})),
        )

    @staticmethod
    def load(filepath: str) -> SimulationConfig:
        logger.info(f"Loading configuration from: {filepath}")
        with open(filepath, "r", encoding="utf-8") as f:
            return SimulationConfig.from_dict(json.load(f))

    def save(self, filepath: str) -> None:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Configuration saved to: {filepath}")
