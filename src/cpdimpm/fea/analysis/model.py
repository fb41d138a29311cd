from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.collections import PolyCollection

from cpdimpm.fea.pre.mesh import Mesh
from cpdimpm.fea.pre.material import DruckerPrager
from cpdimpm.fea.pre.particles import MaterialPoints
from cpdimpm.fea.analysis.projection import NodalState

if TYPE_CHECKING:
    from cpdimpm.config import SimulationConfig

logger = logging.getLogger(__name__)


class Model:
    """
    Class represent the entire material point model.

    This class encapsulates the background mesh, the material points and the
    material, together with the nodal state of the latest iteration.
    """
    def __init__(
        self,
        mesh: Mesh,
        particles: MaterialPoints,
        material: DruckerPrager,
    ) -> None:
        """Initialize the Model object."""
        self.mesh = mesh
        self.particles = particles
        self.material = material
        self.nodal = NodalState.empty(mesh.number_of_nodes)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(mesh={self.mesh}, particles={self.particles}, material={self.material})"

    @classmethod
    def from_config(cls, config: SimulationConfig) -> Model:
        """
        Build the slump model: a material layer resting on the floor against
        the left wall of a padded background grid.
        """
        logger.info("Initializing MPM model...")
        mesh = Mesh.from_box(
            length=config.mesh.length,
            height=config.mesh.height,
            n_elements=config.mesh.n_elements,
            padding_cells=config.mesh.padding_cells,
        )
        material = DruckerPrager.from_config(config.material)

        width = min(config.particles.layer_width, config.mesh.length)
        thickness = min(config.particles.layer_thickness, config.mesh.height)
        particles = MaterialPoints.from_box(
            mesh=mesh,
            x_range=(0.0, width),
            y_range=(0.0, thickness),
            particles_per_element=config.particles.particles_per_element,
            material=material,
        )
        return cls(mesh=mesh, particles=particles, material=material)

    @property
    def number_of_nodes(self) -> int:
        """Return the number of nodes in the model."""
        return self.mesh.number_of_nodes

    @property
    def number_of_elements(self) -> int:
        """Return the number of elements in the model."""
        return self.mesh.number_of_elements

    @property
    def number_of_particles(self) -> int:
        """Return the number of material points in the model."""
        return self.particles.n

    def plot_plastic_strain(self, title: str = "", filename: str | None = None, show: bool = True) -> None:
        """
        Plot the particle domains coloured by log10 of the equivalent plastic strain.

        Args:
            title: Figure title.
            filename: Save the figure to this path when given.
            show: Display the figure.
        """
        plt.rcParams["figure.constrained_layout.use"] = True
        fig, ax = plt.subplots(figsize=(10, 4))

        with np.errstate(divide="ignore"):
            values = np.log10(self.particles.plastic_strain)
        values[~np.isfinite(values)] = np.nan

        domains = PolyCollection(self.particles.corners, array=values, cmap="viridis", edgecolors="none")
        ax.add_collection(domains)
        ax.autoscale_view()
        cbar = fig.colorbar(domains, ax=ax, orientation="horizontal", shrink=0.4)
        cbar.set_label(r"$\log_{10}(\epsilon_{\mathrm{II}})$")

        ax.set_aspect('equal')
        ax.set_title(title)
        ax.set_xlabel("x (m)")
        ax.set_ylabel("y (m)")

        if filename:
            fig.savefig(filename, dpi=200)
            logger.info(f"Figure saved to: {filename}")
        if show:
            plt.show()
        plt.close(fig)
