from __future__ import annotations

from typing import TYPE_CHECKING

from cpdimpm.fea.analysis.projection import apply_boundary_conditions, divide_by_mass

if TYPE_CHECKING:
    from cpdimpm.fea.pre.mesh import Mesh
    from cpdimpm.fea.pre.particles import MaterialPoints
    from cpdimpm.fea.analysis.projection import NodalState
    from cpdimpm.fea.analysis.shape_functions import Connectivity


def interpolate(
    mesh: Mesh,
    particles: MaterialPoints,
    nodal: NodalState,
    connectivity: Connectivity,
    dt: float,
    flip: float = 1.0,
    musl: bool = True,
) -> None:
    """
    Map the nodal solution back to the particles and move them.

    Velocities blend the FLIP increment and the PIC value:
    ``v_p = flip * (v_p + dt sum_i w_ip a_i) + (1 - flip) * sum_i w_ip v_i``.
    Centroids move with the interpolated nodal velocity. With `musl`, nodal
    velocities are then rebuilt from the updated particle momentum (boundary
    conditions re-applied) and stored back in `nodal.velocity`. Each corner is
    finally advected by the nodal velocity interpolated with the bilinear shape
    functions of its own element, so the domain picks up the local stretch and
    rotation of the flow.

    Args:
        mesh: Background mesh.
        particles: Material points, updated in place.
        nodal: Solved nodal state; `velocity` is replaced when `musl` is set.
        connectivity: Interpolation data of the iteration.
        dt: Time step in s.
        flip: FLIP fraction of the velocity update.
        musl: Rebuild nodal velocities from the updated particles.
    """
    # 1) Particle velocity and position
    v_flip = particles.v + dt * connectivity.gather(nodal.acceleration)
    if flip < 1.0:
        v_pic = connectivity.gather(nodal.velocity)
        particles.v = flip * v_flip + (1.0 - flip) * v_pic
    else:
        particles.v = v_flip
    particles.x += dt * connectivity.gather(nodal.velocity)

    # 2) Nodal velocities from the updated particle momentum
    if musl:
        momentum = connectivity.scatter(particles.mass[:, None] * particles.v)
        velocity = divide_by_mass(momentum, nodal.mass)
        apply_boundary_conditions(mesh, velocity)
        nodal.velocity = velocity

    # 3) Corner tracking
    particles.corners += dt * connectivity.gather_at_corners(nodal.velocity)
