import numpy as np
import pytest

from cpdimpm.fea.errors import DegenerateDomainError
from cpdimpm.fea.analysis.locator import locate_corners
from cpdimpm.fea.analysis.shape_functions import (
    bilinear_shape_functions, cpdi2q, signed_area,
)

from conftest import connectivity_for


def test_partition_of_unity(mesh, distorted_particles):
    conn = connectivity_for(mesh, distorted_particles)
    np.testing.assert_allclose(conn.weights.sum(axis=1), 1.0, atol=1e-10)
    np.testing.assert_allclose(conn.gradients.sum(axis=1), 0.0, atol=1e-10)


def test_sparse_operators_preserve_partition_of_unity(mesh, distorted_particles):
    conn = connectivity_for(mesh, distorted_particles)
    np.testing.assert_allclose(np.asarray(conn.N.sum(axis=0)).ravel(), 1.0, atol=1e-10)
    np.testing.assert_allclose(np.asarray(conn.dNx.sum(axis=0)).ravel(), 0.0, atol=1e-10)
    np.testing.assert_allclose(np.asarray(conn.dNy.sum(axis=0)).ravel(), 0.0, atol=1e-10)
    np.testing.assert_allclose(np.asarray(conn.S.sum(axis=0)).ravel(), 1.0, atol=1e-10)


def test_linear_fields_are_reproduced(mesh, distorted_particles):
    conn = connectivity_for(mesh, distorted_particles)
    # gradient of x and y is the identity
    np.testing.assert_allclose(conn.velocity_gradient(mesh.coords), np.tile(np.eye(2), (conn.n_particles, 1, 1)),
                               atol=1e-10)
    # corners are interpolated exactly
    np.testing.assert_allclose(conn.gather_at_corners(mesh.coords), distorted_particles.corners, atol=1e-12)


def test_weights_average_over_the_domain(mesh, material):
    # trapezoid (0,0), (2,0), (1,1), (0,1) shifted into the mesh; area centroid x = 7/9
    shift = np.array([3.0, 4.0])
    corners = np.array([[[0.0, 0.0], [2.0, 0.0], [1.0, 1.0], [0.0, 1.0]]]) + shift
    c2e, _ = locate_corners(mesh, corners)
    conn = cpdi2q(mesh, corners, c2e)
    centroid = conn.gather(mesh.coords)[0] - shift
    assert conn.domain_area[0] == pytest.approx(1.5)
    assert centroid[0] == pytest.approx(7.0 / 9.0)
    assert centroid[1] == pytest.approx(4.0 / 9.0)


def test_square_domain_inside_one_element(mesh):
    corners = np.array([[[4.2, 6.1], [4.6, 6.1], [4.6, 6.5], [4.2, 6.5]]])
    c2e, n_active = locate_corners(mesh, corners)
    assert n_active == 1
    conn = cpdi2q(mesh, corners, c2e)

    element = c2e[0, 0]
    expected = bilinear_shape_functions(mesh, np.array([4.4, 6.3]), np.array(element))
    nodal_weights = conn.N[:, 0].toarray().ravel()
    np.testing.assert_allclose(nodal_weights[mesh.e2n[element]], expected)
    assert np.count_nonzero(nodal_weights) == 4
    # the 16 corner entries of the particle are summed onto the 4 element nodes
    assert conn.N.nnz == 4
    assert conn.dNx.nnz == 4


def test_signed_area_orientation():
    square = np.array([[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]])
    assert signed_area(square)[0] == pytest.approx(1.0)
    assert signed_area(square[:, ::-1])[0] == pytest.approx(-1.0)


@pytest.mark.parametrize("corners", [
    [[4.0, 4.0], [4.0, 4.5], [4.5, 4.5], [4.5, 4.0]],  # clockwise
    [[4.0, 4.0], [4.5, 4.0], [5.0, 4.0], [5.5, 4.0]],  # collapsed
])
def test_degenerate_domain_raises(mesh, corners):
    corners = np.array([[[6.0, 6.0], [6.5, 6.0], [6.5, 6.5], [6.0, 6.5]], corners])
    c2e, _ = locate_corners(mesh, corners)
    with pytest.raises(DegenerateDomainError) as excinfo:
        cpdi2q(mesh, corners, c2e)
    assert excinfo.value.particle == 1
