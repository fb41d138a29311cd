from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from cpdimpm.fea.errors import BoundaryExitError

if TYPE_CHECKING:
    import numpy.typing as npt
    from cpdimpm.fea.pre.mesh import Mesh


def locate_points(mesh: Mesh, points: npt.NDArray[np.float64]) -> npt.NDArray[np.int64]:
    """
    Find the element containing each point of a uniform grid.

    ``element = floor((y - y_min) / hy) + n_elements_y * floor((x - x_min) / hx)``

    Args:
        mesh: Structured background mesh.
        points: Coordinates, shape (..., 2).

    Raises:
        BoundaryExitError: If a point is not finite or lies outside the grid.

    Returns:
        Element indices, shape (...).
    """
    ix = np.floor((points[..., 0] - mesh.origin[0]) / mesh.h[0])
    iy = np.floor((points[..., 1] - mesh.origin[1]) / mesh.h[1])

    inside = (ix >= 0) & (ix < mesh.n_elements_x) & (iy >= 0) & (iy < mesh.n_elements_y)
    if not np.all(inside):
        first = np.unravel_index(np.flatnonzero(~inside.ravel())[0], inside.shape)
        position = points[first]
        raise BoundaryExitError(
            f"point {tuple(int(i) for i in first)} at ({position[0]:.6g}, {position[1]:.6g}) "
            f"lies outside the mesh {mesh.bounds}",
            particle=int(first[0]),
        )

    return iy.astype(np.int64) + mesh.n_elements_y * ix.astype(np.int64)


def locate_corners(mesh: Mesh, corners: npt.NDArray[np.float64]) -> tuple[npt.NDArray[np.int64], int]:
    """
    Map the four corners of every particle to their background elements.

    Args:
        mesh: Structured background mesh.
        corners: Corner coordinates, shape (n, 4, 2).

    Raises:
        BoundaryExitError: If a corner left the mesh.

    Returns:
        The corner-to-element map, shape (n, 4), and the number of active
        elements (elements holding at least one corner).
    """
    c2e = locate_points(mesh, corners)
    n_active = int(np.unique(c2e).size)
    return c2e, n_active
