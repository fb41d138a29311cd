import json

import meshio
import numpy as np
import pytest

from cpdimpm.config import SimulationConfig
from cpdimpm.fea.solvers import Solver
from cpdimpm.io import IOManager, PARTICLE_FIELDS


@pytest.fixture
def solved(model):
    solver = Solver(model, dt=1.0e-3, total_time=0.005, elastic_time=0.0)
    return model, solver.solve()


def test_results_round_trip(tmp_path, solved):
    model, result = solved
    config = SimulationConfig()
    path = tmp_path / "results.h5"
    IOManager.save_results(str(path), model, result, config)

    data = IOManager.load_results(str(path))
    assert data["attrs"]["iterations"] == result.iterations
    assert data["attrs"]["dt"] == pytest.approx(1.0e-3)
    assert data["config"] == json.loads(json.dumps(config.to_dict()))
    for name in PARTICLE_FIELDS:
        np.testing.assert_array_equal(data["particles"][name], getattr(model.particles, name))
    np.testing.assert_array_equal(data["mesh"]["e2n"], model.mesh.e2n)
    np.testing.assert_array_equal(data["timing"]["cycle_time"], result.cycle_time)
    assert len(data["timing"]["stages"]) == result.cycle_time.shape[1]


def test_load_rejects_other_files(tmp_path):
    path = tmp_path / "not_results.h5"
    path.write_text("plain text")
    with pytest.raises(ValueError):
        IOManager.load_results(str(path))


def test_particle_domains_to_vtu(tmp_path, model):
    path = tmp_path / "particles.vtu"
    IOManager.write_particles_vtu(str(path), model)

    mesh = meshio.read(str(path))
    n = model.number_of_particles
    assert mesh.cells_dict["quad"].shape == (n, 4)
    np.testing.assert_allclose(mesh.points[:, :2], model.particles.corners.reshape(-1, 2))
    np.testing.assert_allclose(mesh.cell_data["plastic_strain"][0], model.particles.plastic_strain)


def test_plastic_strain_plot(tmp_path, model):
    model.particles.plastic_strain[::2] = 1.0e-3
    path = tmp_path / "plastic_strain.png"
    model.plot_plastic_strain(title="test", filename=str(path), show=False)
    assert path.exists()
