import numpy as np
import pytest

from cpdimpm.fea.pre import Mesh, DruckerPrager, MaterialPoints
from cpdimpm.fea.analysis import Model
from cpdimpm.fea.analysis.locator import locate_corners
from cpdimpm.fea.analysis.shape_functions import cpdi2q


@pytest.fixture
def mesh():
    return Mesh(origin=(0.0, 0.0), cell_size=(1.0, 1.0), n_elements_x=10, n_elements_y=10)


@pytest.fixture
def material():
    return DruckerPrager(
        density=2000.0,
        young_modulus=1.0e6,
        poisson_ratio=0.3,
        cohesion=1.0e3,
        friction_angle=np.radians(30.0),
    )


@pytest.fixture
def particles(mesh, material):
    return MaterialPoints.from_box(
        mesh=mesh,
        x_range=(3.0, 7.0),
        y_range=(2.0, 5.0),
        particles_per_element=2,
        material=material,
    )


@pytest.fixture
def model(mesh, particles, material):
    return Model(mesh=mesh, particles=particles, material=material)


@pytest.fixture
def distorted_particles(mesh, material):
    """Particles whose domains are randomly perturbed, sheared quadrilaterals."""
    rng = np.random.default_rng(42)
    points = MaterialPoints.from_box(
        mesh=mesh,
        x_range=(2.0, 8.0),
        y_range=(2.0, 8.0),
        particles_per_element=2,
        material=material,
    )
    shear = np.array([[1.0, 0.3], [-0.1, 0.9]])
    relative = points.corners - points.x[:, None, :]
    points.corners = points.x[:, None, :] + relative @ shear.T
    points.corners += rng.uniform(-0.05, 0.05, size=points.corners.shape)
    return points


def connectivity_for(mesh, particles):
    c2e, n_active = locate_corners(mesh, particles.corners)
    return cpdi2q(mesh, particles.corners, c2e, n_active)
