import numpy as np
import pytest

from cpdimpm.fea.pre import DruckerPrager
from cpdimpm.fea.analysis.constitutive import (
    constitutive_update,
    cone_parameters,
    drucker_prager_correction,
    elastic_predictor,
    jaumann_rotation,
    stress_invariants,
    yield_function,
)

K = 1.0e6
G = 0.5e6
COHESION = 1.0e3
PHI = np.radians(30.0)


def test_elastic_matrix(material):
    D = material.elastic_matrix()
    np.testing.assert_allclose(D, D.T)
    E, nu = material.young_modulus, material.poisson_ratio
    lam = E * nu / ((1 + nu) * (1 - 2 * nu))
    mu = E / (2 * (1 + nu))
    assert D[0, 0] == pytest.approx(lam + 2 * mu)
    assert D[0, 1] == pytest.approx(lam)
    assert D[3, 3] == pytest.approx(mu)


def test_cone_parameters():
    q, k = cone_parameters(COHESION, PHI)
    assert q == pytest.approx(6 * 0.5 / (np.sqrt(3) * 3.5))
    assert k == pytest.approx(6 * COHESION * np.cos(PHI) / (np.sqrt(3) * 3.5))


def test_admissible_stress_is_unchanged():
    stress = np.array([[-1.0e4, -1.2e4, -1.1e4, 5.0e2]])
    assert yield_function(stress, COHESION, PHI)[0] < 0.0
    corrected, d_plastic = drucker_prager_correction(stress, COHESION, PHI, 0.0, K, G)
    np.testing.assert_array_equal(corrected, stress)
    np.testing.assert_array_equal(d_plastic, 0.0)


def test_elastic_step_equals_predictor(particles, material):
    particles.stress[:] = [-1.0e4, -1.0e4, -1.0e4, 0.0]
    particles.strain_increment[:] = [1.0e-6, -2.0e-6, 0.0, 3.0e-6]
    expected = elastic_predictor(particles.stress, particles.strain_increment, material.elastic_matrix())

    n_yielded = constitutive_update(particles, material, plastic=True)

    assert n_yielded == 0
    np.testing.assert_array_equal(particles.stress, expected)
    np.testing.assert_array_equal(particles.plastic_strain, 0.0)


@pytest.mark.parametrize("dilation", [0.0, np.radians(10.0), PHI])
def test_shear_correction_lands_on_the_surface(dilation):
    stress = np.array([
        [-1.0e4, -5.0e4, -3.0e4, 2.0e4],
        [-2.0e3, 1.0e3, -1.0e3, 3.0e3],
        [-8.0e4, -1.0e4, -4.0e4, 0.0],
    ])
    assert np.all(yield_function(stress, COHESION, PHI) > 0.0)

    corrected, d_plastic = drucker_prager_correction(stress, COHESION, PHI, dilation, K, G)

    assert np.all(d_plastic > 0.0)
    f = yield_function(corrected, COHESION, PHI)
    np.testing.assert_allclose(f, 0.0, atol=1e-8 * np.abs(stress).max())

    # the corrected stress is admissible: a second pass changes nothing
    again, d_again = drucker_prager_correction(corrected, COHESION, PHI, dilation, K, G)
    np.testing.assert_allclose(again, corrected, rtol=1e-10, atol=1e-6)
    np.testing.assert_allclose(d_again, 0.0, atol=1e-12)


def test_non_associated_flow_keeps_mean_stress():
    stress = np.array([[-1.0e4, -5.0e4, -3.0e4, 2.0e4]])
    corrected, _ = drucker_prager_correction(stress, COHESION, PHI, 0.0, K, G)
    p_before, s_before, _ = stress_invariants(stress)
    p_after, s_after, _ = stress_invariants(corrected)
    assert p_after[0] == pytest.approx(p_before[0])
    # deviator only scaled
    ratio = s_after[0, 0] / s_before[0, 0]
    np.testing.assert_allclose(s_after, ratio * s_before)


def test_associated_flow_dilates():
    stress = np.array([[-1.0e4, -5.0e4, -3.0e4, 2.0e4]])
    corrected, _ = drucker_prager_correction(stress, COHESION, PHI, PHI, K, G)
    p_before, _, _ = stress_invariants(stress)
    p_after, _, _ = stress_invariants(corrected)
    assert p_after[0] < p_before[0]


def test_tensile_correction_returns_to_the_apex():
    stress = np.array([[1.0e4, 1.0e4, 1.0e4, 0.0]])
    corrected, d_plastic = drucker_prager_correction(stress, COHESION, PHI, 0.0, K, G)
    q, k = cone_parameters(COHESION, PHI)
    np.testing.assert_allclose(corrected[0], [k / q, k / q, k / q, 0.0])
    assert d_plastic[0] == pytest.approx(np.sqrt(2.0) * (1.0e4 - k / q) / K / 3.0)


def test_tension_cutoff_below_apex():
    stress = np.array([[5.0e2, 3.0e2, 4.0e2, 1.0e1]])
    corrected, d_plastic = drucker_prager_correction(stress, COHESION, PHI, 0.0, K, G, tensile_strength=0.0)
    p, s, _ = stress_invariants(corrected)
    assert p[0] == pytest.approx(0.0, abs=1e-9)
    np.testing.assert_allclose(s, stress_invariants(stress)[1])
    assert d_plastic[0] > 0.0


def test_frictionless_limit():
    stress = np.array([[0.0, -1.0e4, -5.0e3, 0.0]])
    corrected, _ = drucker_prager_correction(stress, COHESION, 0.0, 0.0, K, G)
    _, _, tau = stress_invariants(corrected)
    assert tau[0] == pytest.approx(2.0 * COHESION / np.sqrt(3.0))


def test_plasticity_flag_disables_correction(particles, material):
    particles.strain_increment[:] = [0.0, 0.0, 0.0, 0.05]
    constitutive_update(particles, material, plastic=False)
    assert np.all(yield_function(particles.stress, material.cohesion, material.friction_angle) > 0.0)
    np.testing.assert_array_equal(particles.plastic_strain, 0.0)

    off = DruckerPrager(2000.0, 1.0e6, 0.3, 1.0e3, PHI, plasticity=False)
    particles.stress[:] = 0.0
    assert constitutive_update(particles, off, plastic=True) == 0


def test_softening_reduces_cohesion(particles):
    material = DruckerPrager(2000.0, 1.0e6, 0.3, 1.0e3, PHI, residual_cohesion=2.0e2, softening_modulus=-1.0e4)
    particles.strain_increment[:] = [0.0, 0.0, 0.0, 0.05]
    n_yielded = constitutive_update(particles, material, plastic=True)
    assert n_yielded == particles.n
    assert np.all(particles.plastic_strain > 0.0)

    cohesion = material.current_cohesion(particles.cohesion, particles.plastic_strain)
    assert np.all(cohesion < 1.0e3)
    assert np.all(cohesion >= 2.0e2)


def test_jaumann_rotation_matches_small_rotation():
    stress = np.array([[-3.0, -1.0, -2.0, 0.5]])
    theta = 1.0e-4
    R = np.array([[np.cos(theta), -np.sin(theta)], [np.sin(theta), np.cos(theta)]])
    sigma = np.array([[-3.0, 0.5], [0.5, -1.0]])
    rotated = R @ sigma @ R.T

    # counter-clockwise rotation by theta has spin -theta
    out = jaumann_rotation(stress, np.array([-theta]))
    np.testing.assert_allclose(out[0, [0, 1, 3]], [rotated[0, 0], rotated[1, 1], rotated[0, 1]], atol=1e-7)
    assert out[0, 2] == stress[0, 2]


def _apex():
    q, k = cone_parameters(COHESION, PHI)
    return k / q


def _trial(p, deviator):
    return np.array([[deviator[0] + p, deviator[1] + p, deviator[2] + p, deviator[3]]])


@pytest.mark.parametrize("p_offset, deviator, dilation, tensile_strength", [
    # beyond the apex with a deviator, associated flow
    (3.0e3, (1.0e3, -1.0e3, 0.0, 5.0e2), PHI, None),
    # beyond the apex, non-associated flow cannot reach the cone
    (2.0e3, (5.0e3, -5.0e3, 0.0, 0.0), 0.0, None),
    # beyond the apex, associated flow brings the stress back below it
    (1.0e2, (2.0e4, -2.0e4, 0.0, 0.0), PHI, None),
])
def test_return_beyond_the_apex(p_offset, deviator, dilation, tensile_strength):
    stress = _trial(_apex() + p_offset, deviator)
    corrected, d_plastic = drucker_prager_correction(stress, COHESION, PHI, dilation, K, G, tensile_strength)
    _check_admissible(stress, corrected, d_plastic, dilation, tensile_strength)


@pytest.mark.parametrize("p, deviator", [
    # shear dominated, returns to the corner of cone and cut-off
    (2.0e2, (3.0e3, -3.0e3, 0.0, 0.0)),
    # tension dominated, deviator capped at the corner value
    (2.0e3, (1.2e3, -1.2e3, 0.0, 0.0)),
])
def test_return_beyond_a_tension_cutoff(p, deviator):
    stress = _trial(p, deviator)
    corrected, d_plastic = drucker_prager_correction(stress, COHESION, PHI, 0.0, K, G, tensile_strength=0.0)
    _check_admissible(stress, corrected, d_plastic, 0.0, 0.0)

    _, k = cone_parameters(COHESION, PHI)
    p_new, _, tau = stress_invariants(corrected)
    assert p_new[0] == pytest.approx(0.0, abs=1e-8)
    assert tau[0] == pytest.approx(k)


def _check_admissible(stress, corrected, d_plastic, dilation, tensile_strength):
    tol = 1e-8 * np.abs(stress).max()
    sigma_t = _apex() if tensile_strength is None else min(tensile_strength, _apex())

    assert d_plastic[0] > 0.0
    assert yield_function(corrected, COHESION, PHI)[0] <= tol
    p, s, _ = stress_invariants(corrected)
    assert p[0] <= sigma_t + tol
    # deviator never changes direction
    assert np.dot(s[0], stress_invariants(stress)[1][0]) >= -tol * np.abs(stress).max()

    again, d_again = drucker_prager_correction(corrected, COHESION, PHI, dilation, K, G, tensile_strength)
    np.testing.assert_allclose(again, corrected, rtol=1e-10, atol=1e-6)
    np.testing.assert_allclose(d_again, 0.0, atol=1e-12)
