from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt

if TYPE_CHECKING:
    import numpy.typing as npt


class Mesh:
    """
    Structured background grid of 4-node quadrilateral elements.

    Nodes are numbered column by column (y runs fastest), so node (i, j) has index
    ``j + n_nodes_y * i``. Elements follow the same ordering: element (i, j) has
    index ``j + n_elements_y * i``. Element connectivity is counter-clockwise,
    starting at the bottom-left node.
    """
    def __init__(
        self,
        origin: tuple[float, float],
        cell_size: tuple[float, float],
        n_elements_x: int,
        n_elements_y: int,
        bc_x: npt.NDArray[np.int64] | None = None,
        bc_y: npt.NDArray[np.int64] | None = None,
    ) -> None:
        """
        Initialize the Mesh class.

        Args:
            origin: Coordinates of the bottom-left node (x_min, y_min).
            cell_size: Element size (hx, hy).
            n_elements_x: Number of elements along x.
            n_elements_y: Number of elements along y.
            bc_x: Node indices with prescribed zero x-velocity.
            bc_y: Node indices with prescribed zero y-velocity.
        """
        if n_elements_x < 1 or n_elements_y < 1:
            raise ValueError("The mesh needs at least one element in each direction.")
        if cell_size[0] <= 0.0 or cell_size[1] <= 0.0:
            raise ValueError("Cell size must be positive.")

        self.origin = np.array(origin, dtype=np.float64)
        self.h = np.array(cell_size, dtype=np.float64)
        self.n_elements_x = int(n_elements_x)
        self.n_elements_y = int(n_elements_y)

        # 1) Node coordinates
        xn = self.origin[0] + self.h[0] * np.arange(self.n_nodes_x)
        yn = self.origin[1] + self.h[1] * np.arange(self.n_nodes_y)
        xx, yy = np.meshgrid(xn, yn, indexing="ij")
        self.coords: npt.NDArray[np.float64] = np.column_stack((xx.ravel(), yy.ravel()))
        self.coords.setflags(write=False)

        # 2) Element connectivity
        i, j = np.meshgrid(np.arange(self.n_elements_x), np.arange(self.n_elements_y), indexing="ij")
        i = i.ravel()
        j = j.ravel()
        ny = self.n_nodes_y
        self.e2n: npt.NDArray[np.int64] = np.column_stack((
            j + ny * i,
            j + ny * (i + 1),
            (j + 1) + ny * (i + 1),
            (j + 1) + ny * i,
        )).astype(np.int64)
        self.e2n.setflags(write=False)

        # 3) Boundary node sets
        self.bc_x = self._freeze_node_set(bc_x)
        self.bc_y = self._freeze_node_set(bc_y)

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(n_elements={self.n_elements_x}x{self.n_elements_y}, "
                f"h=({self.h[0]:g}, {self.h[1]:g}))")

    def _freeze_node_set(self, nodes: npt.NDArray[np.int64] | None) -> npt.NDArray[np.int64]:
        if nodes is None:
            out = np.empty(0, dtype=np.int64)
        else:
            out = np.unique(np.asarray(nodes, dtype=np.int64))
            if out.size and (out[0] < 0 or out[-1] >= self.number_of_nodes):
                raise ValueError("Boundary node index out of range.")
        out.setflags(write=False)
        return out

    @classmethod
    def from_box(
        cls,
        length: float,
        height: float,
        n_elements: int,
        padding_cells: int = 2,
    ) -> Mesh:
        """
        Build a square-cell grid around the box [0, length] x [0, height].

        The box is padded with `padding_cells` cells on every side. Nodes on or
        beyond the side walls are rollers (x fixed); nodes on or below the floor
        are fixed in both directions.

        Args:
            length: Distance between the side walls.
            height: Height of the region above the floor.
            n_elements: Number of elements between the side walls.
            padding_cells: Number of empty cells added around the box.

        Returns:
            The background mesh with its boundary node sets.
        """
        h = length / n_elements
        n_elements_x = n_elements + 2 * padding_cells
        n_elements_y = int(np.ceil(height / h - 1e-9)) + 2 * padding_cells
        origin = (-padding_cells * h, -padding_cells * h)

        # Node coordinates in the numbering of the constructor
        xn = origin[0] + h * np.arange(n_elements_x + 1)
        yn = origin[1] + h * np.arange(n_elements_y + 1)
        x, y = (a.ravel() for a in np.meshgrid(xn, yn, indexing="ij"))

        tol = 1e-9 * h
        walls = (x <= tol) | (x >= length - tol)
        floor = y <= tol
        return cls(
            origin=origin,
            cell_size=(h, h),
            n_elements_x=n_elements_x,
            n_elements_y=n_elements_y,
            bc_x=np.flatnonzero(walls | floor),
            bc_y=np.flatnonzero(floor),
        )

    @property
    def n_nodes_x(self) -> int:
        return self.n_elements_x + 1

    @property
    def n_nodes_y(self) -> int:
        return self.n_elements_y + 1

    @property
    def number_of_nodes(self) -> int:
        """Return the number of nodes in the mesh."""
        return self.n_nodes_x * self.n_nodes_y

    @property
    def number_of_elements(self) -> int:
        """Return the number of elements in the mesh."""
        return self.n_elements_x * self.n_elements_y

    @property
    def h_min(self) -> float:
        return float(self.h.min())

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(x_min, x_max, y_min, y_max) of the grid."""
        x_max = self.origin[0] + self.h[0] * self.n_elements_x
        y_max = self.origin[1] + self.h[1] * self.n_elements_y
        return float(self.origin[0]), float(x_max), float(self.origin[1]), float(y_max)

    def plot(self, ax: plt.Axes | None = None, show: bool = True) -> plt.Axes:
        """Plot the grid lines and the boundary nodes."""
        if ax is None:
            plt.rcParams["figure.constrained_layout.use"] = True
            _, ax = plt.subplots()

        x_min, x_max, y_min, y_max = self.bounds
        for xi in self.origin[0] + self.h[0] * np.arange(self.n_nodes_x):
            ax.plot([xi, xi], [y_min, y_max], color='gray', lw=0.5)
        for yi in self.origin[1] + self.h[1] * np.arange(self.n_nodes_y):
            ax.plot([x_min, x_max], [yi, yi], color='gray', lw=0.5)

        ax.plot(*self.coords[self.bc_x].T, 's', color='tab:blue', ms=3, label="x fixed")
        ax.plot(*self.coords[self.bc_y].T, 's', color='tab:green', ms=3, label="y fixed")

        ax.set_aspect('equal')
        ax.set_title(f"Mesh plotted at {datetime.now().strftime('%d.%m.%Y %H:%M:%S')}")
        ax.set_xlabel("X Coordinate")
        ax.set_ylabel("Y Coordinate")
        ax.legend(loc='best')
        if show:
            plt.show()
        return ax
