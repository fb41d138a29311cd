"""
Elasto-Plastic Stress Update
============================
Elastic predictor followed by an exact plastic corrector for a Drucker-Prager
cone with tension cut-off.

Stress vectors are ``[xx, yy, zz, xy]`` with tension positive. With mean stress
``p = (s_xx + s_yy + s_zz) / 3`` and ``tau = sqrt(J2)`` the shear yield function is

    f = tau + q_phi p - k_phi

    q_phi = 6 sin(phi) / (sqrt(3) (3 + sin(phi)))
    k_phi = 6 c cos(phi) / (sqrt(3) (3 + sin(phi)))

and the tensile yield function is ``p - sigma_t``. Both returns have a closed
form, so no local iterations are needed.
"""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numba as nb
import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt
    from cpdimpm.fea.pre.material import DruckerPrager
    from cpdimpm.fea.pre.particles import MaterialPoints

SQRT3 = np.sqrt(3.0)
VOLUMETRIC = np.array([1.0, 1.0, 1.0, 0.0])


def cone_parameters(
    cohesion: npt.ArrayLike,
    angle: npt.ArrayLike,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Slope q and intercept k of the Drucker-Prager cone matching Mohr-Coulomb.

    Args:
        cohesion: Cohesion in Pa.
        angle: Friction (or dilation) angle in radians.

    Returns:
        Tuple (q, k).
    """
    sin_a = np.sin(angle)
    denominator = SQRT3 * (3.0 + sin_a)
    q = 6.0 * sin_a / denominator
    k = 6.0 * np.asarray(cohesion) * np.cos(angle) / denominator
    return q, k


def stress_invariants(
    stress: npt.NDArray[np.float64],
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Mean stress, deviatoric stress and tau = sqrt(J2).

    Args:
        stress: Stresses, shape (n, 4).

    Returns:
        Tuple (p, s, tau) with shapes (n,), (n, 4), (n,).
    """
    p = stress[:, :3].mean(axis=1)
    s = stress - p[:, None] * VOLUMETRIC
    tau = np.sqrt(0.5 * (s[:, 0] ** 2 + s[:, 1] ** 2 + s[:, 2] ** 2) + s[:, 3] ** 2)
    return p, s, tau


def yield_function(
    stress: npt.NDArray[np.float64],
    cohesion: npt.ArrayLike,
    friction_angle: npt.ArrayLike,
) -> npt.NDArray[np.float64]:
    """
    Drucker-Prager shear yield function; positive outside the cone.

    Args:
        stress: Stresses, shape (n, 4).
        cohesion: Cohesion in Pa, scalar or shape (n,).
        friction_angle: Friction angle in radians, scalar or shape (n,).

    Returns:
        Yield function values, shape (n,).
    """
    q, k = cone_parameters(cohesion, friction_angle)
    p, _, tau = stress_invariants(stress)
    return tau + q * p - k


def jaumann_rotation(
    stress: npt.NDArray[np.float64],
    spin: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """
    Rotate stresses by the spin increment (Jaumann objective rate).

    Args:
        stress: Stresses, shape (n, 4).
        spin: Spin increments ``0.5 (dF_xy - dF_yx)``, shape (n,).

    Returns:
        Rotated stresses, shape (n, 4).
    """
    out = stress.copy()
    out[:, 0] += 2.0 * stress[:, 3] * spin
    out[:, 1] -= 2.0 * stress[:, 3] * spin
    out[:, 3] += spin * (stress[:, 1] - stress[:, 0])
    return out


def elastic_predictor(
    stress: npt.NDArray[np.float64],
    strain_increment: npt.NDArray[np.float64],
    elastic_matrix: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Trial stress sigma + D . d_epsilon, shape (n, 4)."""
    return stress + strain_increment @ elastic_matrix.T


# ---- JIT'd return mapping kernels (scalar + batched) ----
# No fastmath: the tension cut-off is infinite for a frictionless material.

@nb.njit(cache=True)
def _return_point(
    sxx: float,
    syy: float,
    szz: float,
    sxy: float,
    q_phi: float,
    k_phi: float,
    q_psi: float,
    sigma_t: float,
    K: float,
    G: float,
) -> tuple[float, float, float, float, float]:
    """
    Corrected stress components and equivalent plastic strain increment of one point.

    Below the cut-off the stress returns along the flow direction onto the cone.
    At or above it, the return goes to the tension plane (deviator capped at the
    corner value tau_p) or, when the flow direction does not bring the mean
    stress below the cut-off, to the corner (sigma_t, tau_p) itself.
    """
    p = (sxx + syy + szz) / 3.0
    dxx = sxx - p
    dyy = syy - p
    dzz = szz - p
    tau = math.sqrt(0.5 * (dxx * dxx + dyy * dyy + dzz * dzz) + sxy * sxy)
    f_shear = tau + q_phi * p - k_phi

    if p < sigma_t:
        if f_shear <= 0.0:
            return sxx, syy, szz, sxy, 0.0
        d_lambda = f_shear / (G + K * q_phi * q_psi)
        p_new = p - K * q_psi * d_lambda
        tau_new = k_phi - q_phi * p_new
    else:
        alpha_p = math.sqrt(1.0 + q_phi * q_phi) - q_phi
        tau_p = max(k_phi - q_phi * sigma_t, 0.0)
        if tau - tau_p - alpha_p * (p - sigma_t) > 0.0:
            # Shear return, or the corner if it would stay beyond the cut-off
            d_lambda = f_shear / (G + K * q_phi * q_psi)
            p_new = p - K * q_psi * d_lambda
            if p_new < sigma_t:
                tau_new = k_phi - q_phi * p_new
            else:
                p_new = sigma_t
                tau_new = tau_p
        else:
            p_new = sigma_t
            tau_new = min(tau, tau_p)

    ratio = tau_new / tau if tau > 0.0 else 0.0
    d_shear = (tau - tau_new) / G
    d_volume = (p - p_new) / K
    d_plastic = math.sqrt(d_shear * d_shear / 3.0 + 2.0 / 9.0 * d_volume * d_volume)
    return dxx * ratio + p_new, dyy * ratio + p_new, dzz * ratio + p_new, sxy * ratio, d_plastic


@nb.njit(cache=True)
def _return_batch(
    stress: npt.NDArray[np.float64],
    q_phi: npt.NDArray[np.float64],
    k_phi: npt.NDArray[np.float64],
    q_psi: npt.NDArray[np.float64],
    sigma_t: npt.NDArray[np.float64],
    K: float,
    G: float,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    n = stress.shape[0]
    corrected = np.empty_like(stress)
    d_plastic = np.zeros(n)
    for i in range(n):
        sxx, syy, szz, sxy, dp = _return_point(
            stress[i, 0], stress[i, 1], stress[i, 2], stress[i, 3],
            q_phi[i], k_phi[i], q_psi[i], sigma_t[i], K, G,
        )
        corrected[i, 0] = sxx
        corrected[i, 1] = syy
        corrected[i, 2] = szz
        corrected[i, 3] = sxy
        d_plastic[i] = dp
    return corrected, d_plastic


def drucker_prager_correction(
    stress: npt.NDArray[np.float64],
    cohesion: npt.ArrayLike,
    friction_angle: npt.ArrayLike,
    dilation_angle: npt.ArrayLike,
    bulk_modulus: float,
    shear_modulus: float,
    tensile_strength: float | None = None,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Exact return of trial stresses onto the Drucker-Prager surface.

    Shear failure scales the deviator onto the cone along the flow direction
    given by the dilation angle (associated when it equals the friction angle).
    Tensile failure sets the mean stress to the tension cut-off and caps the
    deviator at the value of the cone there, which is the apex when no cut-off
    is given. Admissible stresses are returned unchanged.

    Args:
        stress: Trial stresses, shape (n, 4).
        cohesion: Cohesion in Pa, scalar or shape (n,).
        friction_angle: Friction angle in radians, scalar or shape (n,).
        dilation_angle: Dilation angle in radians, scalar or shape (n,).
        bulk_modulus: Bulk modulus K in Pa.
        shear_modulus: Shear modulus G in Pa.
        tensile_strength: Tension cut-off in Pa; None places it at the cone apex.

    Returns:
        Tuple of corrected stresses, shape (n, 4), and equivalent plastic strain
        increments, shape (n,).
    """
    stress = np.ascontiguousarray(stress, dtype=np.float64)
    n = stress.shape[0]
    q_phi, k_phi = cone_parameters(cohesion, friction_angle)
    q_psi, _ = cone_parameters(0.0, dilation_angle)
    q_phi = np.ascontiguousarray(np.broadcast_to(q_phi, (n,)), dtype=np.float64)
    k_phi = np.ascontiguousarray(np.broadcast_to(k_phi, (n,)), dtype=np.float64)
    q_psi = np.ascontiguousarray(np.broadcast_to(q_psi, (n,)), dtype=np.float64)

    with np.errstate(divide="ignore", invalid="ignore"):
        apex = np.where(q_phi > 0.0, k_phi / q_phi, np.inf)
    sigma_t = apex if tensile_strength is None else np.minimum(tensile_strength, apex)

    return _return_batch(stress, q_phi, k_phi, q_psi, sigma_t, float(bulk_modulus), float(shear_modulus))


def constitutive_update(
    particles: MaterialPoints,
    material: DruckerPrager,
    plastic: bool,
    jaumann: bool = True,
) -> int:
    """
    Update particle stresses from the strain increment of the step.

    Args:
        particles: Material points, updated in place.
        material: Elasto-plastic material.
        plastic: Whether the plastic corrector is applied in this step.
        jaumann: Rotate the stress by the spin increment before the predictor.

    Returns:
        Number of particles that yielded.
    """
    stress = particles.stress
    if jaumann:
        stress = jaumann_rotation(stress, particles.spin)
    trial = elastic_predictor(stress, particles.strain_increment, material.elastic_matrix())

    if not (plastic and material.plasticity):
        particles.stress = trial
        return 0

    cohesion = material.current_cohesion(particles.cohesion, particles.plastic_strain)
    corrected, d_plastic = drucker_prager_correction(
        trial,
        cohesion=cohesion,
        friction_angle=particles.friction_angle,
        dilation_angle=material.dilation_angle,
        bulk_modulus=material.bulk_modulus,
        shear_modulus=material.shear_modulus,
        tensile_strength=material.tensile_strength,
    )
    particles.stress = corrected
    particles.plastic_strain += d_plastic
    return int(np.count_nonzero(d_plastic > 0.0))
