import numpy as np
import pytest

from cpdimpm.fea.pre import Mesh, MaterialPoints
from cpdimpm.fea.analysis.shape_functions import signed_area


def test_counts(mesh):
    assert mesh.number_of_nodes == 121
    assert mesh.number_of_elements == 100
    assert mesh.e2n.shape == (100, 4)


def test_node_numbering_is_column_major(mesh):
    # node (i, j) = j + n_nodes_y * i
    np.testing.assert_allclose(mesh.coords[3 + 11 * 2], [2.0, 3.0])


def test_elements_are_counter_clockwise(mesh):
    corners = mesh.coords[mesh.e2n]
    np.testing.assert_allclose(signed_area(corners), 1.0)
    np.testing.assert_allclose(corners[:, 0], corners[:, 2] - 1.0)


def test_geometry_is_immutable(mesh):
    with pytest.raises(ValueError):
        mesh.coords[0, 0] = 1.0
    with pytest.raises(ValueError):
        mesh.e2n[0, 0] = 1


def test_from_box_boundary_sets():
    mesh = Mesh.from_box(length=8.0, height=4.0, n_elements=8, padding_cells=2)
    assert mesh.n_elements_x == 12
    assert mesh.n_elements_y == 8
    x_min, x_max, y_min, y_max = mesh.bounds
    assert (x_min, x_max, y_min, y_max) == (-2.0, 10.0, -2.0, 6.0)

    x = mesh.coords[:, 0]
    y = mesh.coords[:, 1]
    assert np.all((x[mesh.bc_x] <= 0.0) | (x[mesh.bc_x] >= 8.0) | (y[mesh.bc_x] <= 0.0))
    assert np.all(y[mesh.bc_y] <= 0.0)
    # every wall and floor node is constrained
    assert np.count_nonzero((x <= 0.0) | (x >= 8.0) | (y <= 0.0)) == mesh.bc_x.size


def test_from_box_boundary_sets_are_frozen():
    mesh = Mesh.from_box(length=4.0, height=2.0, n_elements=4, padding_cells=1)
    assert not mesh.bc_x.flags.writeable
    assert not mesh.bc_y.flags.writeable
    with pytest.raises(ValueError):
        mesh.bc_x[0] = 1
    with pytest.raises(ValueError):
        mesh.bc_y[0] = 1


def test_boundary_index_out_of_range():
    with pytest.raises(ValueError):
        Mesh(origin=(0.0, 0.0), cell_size=(1.0, 1.0), n_elements_x=2, n_elements_y=2, bc_x=[9])


def test_particles_from_box(mesh, material):
    points = MaterialPoints.from_box(mesh, (0.0, 2.0), (0.0, 1.0), 2, material)
    assert points.n == 8
    np.testing.assert_allclose(points.volume, 0.25)
    np.testing.assert_allclose(points.mass, 0.25 * material.density)
    np.testing.assert_allclose(signed_area(points.corners), 0.25)
    np.testing.assert_allclose(points.corners.mean(axis=1), points.x)
    np.testing.assert_allclose(points.F, np.tile(np.eye(2), (8, 1, 1)))


def test_empty_region_raises(mesh, material):
    with pytest.raises(ValueError):
        MaterialPoints.from_box(mesh, (1.0, 1.0), (0.0, 1.0), 2, material)


def test_plot_marks_boundary_nodes():
    import matplotlib.pyplot as plt

    mesh = Mesh.from_box(length=4.0, height=2.0, n_elements=4, padding_cells=1)
    ax = mesh.plot(show=False)
    labels = [line.get_label() for line in ax.get_lines()]
    assert "x fixed" in labels and "y fixed" in labels
    plt.close("all")
