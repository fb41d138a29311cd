from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt
    from cpdimpm.fea.pre.mesh import Mesh
    from cpdimpm.fea.pre.particles import MaterialPoints
    from cpdimpm.fea.analysis.shape_functions import Connectivity


def _zeros(shape) -> npt.NDArray[np.float64]:
    return np.zeros(shape, dtype=np.float64)


@dataclass
class NodalState:
    """
    Per-node accumulators and solution of one iteration.

    `momentum` is the projected momentum before boundary conditions;
    `acceleration` and `velocity` are the solved fields after them.
    """
    mass: npt.NDArray[np.float64] = field(default_factory=lambda: _zeros(0))
    momentum: npt.NDArray[np.float64] = field(default_factory=lambda: _zeros((0, 2)))
    external_force: npt.NDArray[np.float64] = field(default_factory=lambda: _zeros((0, 2)))
    internal_force: npt.NDArray[np.float64] = field(default_factory=lambda: _zeros((0, 2)))
    acceleration: npt.NDArray[np.float64] = field(default_factory=lambda: _zeros((0, 2)))
    velocity: npt.NDArray[np.float64] = field(default_factory=lambda: _zeros((0, 2)))

    @classmethod
    def empty(cls, n_nodes: int) -> NodalState:
        return cls(
            mass=_zeros(n_nodes),
            momentum=_zeros((n_nodes, 2)),
            external_force=_zeros((n_nodes, 2)),
            internal_force=_zeros((n_nodes, 2)),
            acceleration=_zeros((n_nodes, 2)),
            velocity=_zeros((n_nodes, 2)),
        )

    @property
    def active(self) -> npt.NDArray[np.bool_]:
        """Nodes that received mass."""
        return self.mass > 0.0

    @property
    def force(self) -> npt.NDArray[np.float64]:
        return self.external_force + self.internal_force


def apply_boundary_conditions(mesh: Mesh, field_: npt.NDArray[np.float64]) -> None:
    """Zero the constrained components of a nodal vector field in place."""
    field_[mesh.bc_x, 0] = 0.0
    field_[mesh.bc_y, 1] = 0.0


def divide_by_mass(values: npt.NDArray[np.float64], mass: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """values / mass on nodes with mass, zero elsewhere."""
    out = np.zeros_like(values)
    np.divide(values, mass[:, None], out=out, where=mass[:, None] > 0.0)
    return out


def internal_forces(
    connectivity: Connectivity,
    stress: npt.NDArray[np.float64],
    volume: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """
    Nodal internal forces f_i = -sum_p V_p sigma_p . grad w_ip.

    Args:
        connectivity: Interpolation data of the iteration.
        stress: Particle stresses ``[xx, yy, zz, xy]``, shape (n, 4).
        volume: Particle volumes, shape (n,).

    Returns:
        Internal forces, shape (n_nodes, 2).
    """
    sxx = stress[:, 0] * volume
    syy = stress[:, 1] * volume
    sxy = stress[:, 3] * volume
    fx = connectivity.dNx @ sxx + connectivity.dNy @ sxy
    fy = connectivity.dNx @ sxy + connectivity.dNy @ syy
    return -np.column_stack((fx, fy))


def project(
    mesh: Mesh,
    particles: MaterialPoints,
    connectivity: Connectivity,
    gravity: float,
    dt: float,
) -> NodalState:
    """
    Project particle state to the nodes and solve the explicit momentum balance.

    a_i = (f_ext,i + f_int,i) / m_i and v_i = (p_i + dt (f_ext,i + f_int,i)) / m_i on
    nodes with mass; nodes without mass keep zero acceleration and velocity.
    Constrained components are zeroed after the solve.

    Args:
        mesh: Background mesh (supplies the boundary node sets).
        particles: Material points.
        connectivity: Interpolation data of the iteration.
        gravity: Current gravitational acceleration in m/s², acting along -y.
        dt: Time step in s.

    Returns:
        The nodal state of the iteration.
    """
    m = particles.mass

    # 1) Accumulate mass, momentum and forces
    mass = connectivity.scatter(m)
    momentum = connectivity.scatter(m[:, None] * particles.v)
    external = np.zeros((mesh.number_of_nodes, 2))
    external[:, 1] = -gravity * mass
    internal = internal_forces(connectivity, particles.stress, particles.volume)

    # 2) Solve
    force = external + internal
    acceleration = divide_by_mass(force, mass)
    velocity = divide_by_mass(momentum + dt * force, mass)

    # 3) Boundary conditions
    apply_boundary_conditions(mesh, acceleration)
    apply_boundary_conditions(mesh, velocity)

    return NodalState(
        mass=mass,
        momentum=momentum,
        external_force=external,
        internal_force=internal,
        acceleration=acceleration,
        velocity=velocity,
    )
