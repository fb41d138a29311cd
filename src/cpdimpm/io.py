"""
Input/Output Manager (HDF5, VTU)
Handles archiving a finished run to .h5 files and exporting particle domains
to .vtu files.
"""
from __future__ import annotations

import json
import logging
from importlib.metadata import version, PackageNotFoundError
from typing import TYPE_CHECKING, Any, Dict, Optional

import h5py
import meshio
import numpy as np

from cpdimpm.fea.solvers.solver import STAGES, SolverResult

if TYPE_CHECKING:
    from cpdimpm.config import SimulationConfig
    from cpdimpm.fea.analysis.model import Model

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("cpdimpm")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

PARTICLE_FIELDS = (
    "x", "corners", "v", "mass", "volume", "volume0", "stress", "strain",
    "plastic_strain", "F", "density", "cohesion", "friction_angle",
)


class IOManager:

    @staticmethod
    def save_results(
        filepath: str,
        model: Model,
        result: SolverResult,
        config: Optional[SimulationConfig] = None,
    ) -> None:
        """
        Archive the final state of a run.

        Layout:
            /attrs: version, dt, iterations, time, runtime
            /config (attrs): configuration as JSON
            /timing: cycle_time (iterations x stages), active_elements, gravity
            /mesh: coords, e2n, bc_x, bc_y, cell_size
            /particles: one dataset per particle field

        Args:
            filepath: Output .h5 path.
            model: Model in its final state.
            result: Timing history returned by the solver.
            config: Configuration used for the run.
        """
        logger.info(f"Saving results to: {filepath}")
        try:
            with h5py.File(filepath, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["dt"] = result.dt
                f.attrs["iterations"] = result.iterations
                f.attrs["time"] = result.time
                f.attrs["runtime"] = result.runtime

                # --- 1. SAVE CONSTANTS ---
                grp_cfg = f.create_group("config")
                if config is not None:
                    grp_cfg.attrs["json"] = json.dumps(config.to_dict())

                # --- 2. SAVE TIMING ---
                grp_time = f.create_group("timing")
                grp_time.attrs["stages"] = json.dumps(list(STAGES))
                grp_time.create_dataset("cycle_time", data=result.cycle_time, compression="gzip")
                grp_time.create_dataset("active_elements", data=result.active_elements)
                grp_time.create_dataset("gravity", data=result.gravity)

                # --- 3. SAVE MESH ---
                mesh = model.mesh
                grp_mesh = f.create_group("mesh")
                grp_mesh.attrs["cell_size"] = mesh.h
                grp_mesh.attrs["n_elements_x"] = mesh.n_elements_x
                grp_mesh.attrs["n_elements_y"] = mesh.n_elements_y
                grp_mesh.create_dataset("coords", data=mesh.coords)
                grp_mesh.create_dataset("e2n", data=mesh.e2n)
                grp_mesh.create_dataset("bc_x", data=mesh.bc_x)
                grp_mesh.create_dataset("bc_y", data=mesh.bc_y)

                # --- 4. SAVE PARTICLES ---
                grp_mp = f.create_group("particles")
                for name in PARTICLE_FIELDS:
                    grp_mp.create_dataset(name, data=getattr(model.particles, name), compression="gzip")

            logger.info(f"Results saved to: {filepath}")

        except Exception as e:
            logger.exception(f"Failed to save results: {e}")
            raise

    @staticmethod
    def load_results(filepath: str) -> Dict[str, Any]:
        """
        Read an archive written by `save_results`.

        Returns:
            Nested dictionary with keys 'attrs', 'config', 'timing', 'mesh' and
            'particles'.
        """
        logger.info(f"Loading results from: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        with h5py.File(filepath, "r") as f:
            data: Dict[str, Any] = {
                "attrs": {key: _native(val) for key, val in f.attrs.items()},
                "config": json.loads(f["config"].attrs["json"]) if "json" in f["config"].attrs else None,
                "timing": {name: f["timing"][name][()] for name in f["timing"]},
                "mesh": {name: f["mesh"][name][()] for name in f["mesh"]},
                "particles": {name: f["particles"][name][()] for name in f["particles"]},
            }
            data["timing"]["stages"] = json.loads(f["timing"].attrs["stages"])
            data["mesh"]["cell_size"] = f["mesh"].attrs["cell_size"][()]
        return data

    @staticmethod
    def write_particles_vtu(filepath: str, model: Model) -> None:
        """
        Export the particle domains as quadrilateral cells with cell data.

        Args:
            filepath: Output .vtu path.
            model: Model to export.
        """
        particles = model.particles
        n = particles.n
        points = np.zeros((4 * n, 3))
        points[:, :2] = particles.corners.reshape(-1, 2)
        cells = np.arange(4 * n, dtype=np.int64).reshape(n, 4)

        stress = particles.stress
        mesh = meshio.Mesh(
            points=points,
            cells=[("quad", cells)],
            cell_data={
                "velocity": [np.column_stack((particles.v, np.zeros(n)))],
                "stress_xx": [stress[:, 0]],
                "stress_yy": [stress[:, 1]],
                "stress_zz": [stress[:, 2]],
                "stress_xy": [stress[:, 3]],
                "mean_stress": [stress[:, :3].mean(axis=1)],
                "plastic_strain": [particles.plastic_strain],
                "volume": [particles.volume],
            },
        )
        meshio.write(filepath, mesh)
        logger.info(f"Particle domains written to: {filepath}")


def _native(value: Any) -> Any:
    """HDF5 attributes come back as numpy types, convert to native python."""
    if isinstance(value, bytes):
        return value.decode('utf-8')
    if hasattr(value, 'item'):
        return value.item()
    return value
