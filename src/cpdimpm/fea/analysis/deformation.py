from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from cpdimpm.fea.errors import InversionError

if TYPE_CHECKING:
    import numpy.typing as npt
    from cpdimpm.fea.pre.particles import MaterialPoints
    from cpdimpm.fea.analysis.projection import NodalState
    from cpdimpm.fea.analysis.shape_functions import Connectivity


def incremental_deformation_gradient(
    connectivity: Connectivity,
    nodal_velocity: npt.NDArray[np.float64],
    dt: float,
) -> npt.NDArray[np.float64]:
    """dF = I + dt * L with L the velocity gradient at the particles, shape (n, 2, 2)."""
    return np.eye(2)[None, :, :] + dt * connectivity.velocity_gradient(nodal_velocity)


def update_deformation(
    particles: MaterialPoints,
    nodal: NodalState,
    connectivity: Connectivity,
    dt: float,
) -> None:
    """
    Update deformation gradient, volume and strain of every particle.

    F_new = dF . F_old, V = det(F_new) V_0. The small strain increment is
    ``[dF_xx - 1, dF_yy - 1, 0, dF_xy + dF_yx]`` (engineering shear) and the
    spin increment ``0.5 (dF_xy - dF_yx)``.

    Args:
        particles: Material points, updated in place.
        nodal: Nodal state holding the velocity field of the step.
        connectivity: Interpolation data of the iteration.
        dt: Time step in s.

    Raises:
        InversionError: If det(F) is not positive for some particle.
    """
    dF = incremental_deformation_gradient(connectivity, nodal.velocity, dt)
    F = dF @ particles.F
    J = np.linalg.det(F)

    bad = ~(J > 0.0)
    if np.any(bad):
        p = int(np.flatnonzero(bad)[0])
        raise InversionError(
            f"particle {p} inverted: det(F) = {J[p]:.6g}",
            particle=p,
        )

    particles.F = F
    particles.volume = J * particles.volume0

    increment = np.zeros((particles.n, 4))
    increment[:, 0] = dF[:, 0, 0] - 1.0
    increment[:, 1] = dF[:, 1, 1] - 1.0
    increment[:, 3] = dF[:, 0, 1] + dF[:, 1, 0]
    particles.strain_increment = increment
    particles.strain += increment
    particles.spin = 0.5 * (dF[:, 0, 1] - dF[:, 1, 0])
