"""
CPDI2q Basis Functions
======================
Convected particle domain interpolation with quadrilateral particle domains.

The domain of a particle is the quadrilateral spanned by its four tracked
corners. Its weight for node ``i`` is the domain average of the standard
bilinear shape function S_i, and its gradient weight is the domain average of
grad S_i. Both are expressed through the values of S_i at the corners:

    w_i  = 1 / (24 V) * sum_k c_k S_i(x_k)
    dw_i = sum_k S_i(x_k) g_k

with ``c_k = 6V -/+ J1 -/+ J2`` (the moments of the linear Jacobian of the
bilinear map from the unit square to the domain) and
``g_k = 1 / (2V) * (y_{k+1} - y_{k-1}, x_{k-1} - x_{k+1})`` (trapezoidal rule of
the divergence theorem along the straight domain edges).

Each particle links to the 4 nodes of each corner's element, i.e. 16 entries,
possibly with repeated nodes. Repeated entries are summed by the sparse
particle-node operators.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import scipy as sp

from cpdimpm.fea.errors import DegenerateDomainError

if TYPE_CHECKING:
    import numpy.typing as npt
    from cpdimpm.fea.pre.mesh import Mesh

NODES_PER_ELEMENT = 4
CORNERS = 4


def _cross(a: npt.NDArray[np.float64], b: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """z-component of the cross product of 2D vectors, shape (..., 2)."""
    return a[..., 0] * b[..., 1] - a[..., 1] * b[..., 0]


def _sparse_operator(
    data: npt.NDArray[np.float64],
    rows: npt.NDArray[np.int64],
    cols: npt.NDArray[np.int64],
    shape: tuple[int, int],
) -> sp.sparse.csr_matrix:
    """
    Assemble a node-by-particle operator from COO triplets.

    A particle may reach the same node through several corners. The COO format
    keeps these duplicate entries and the conversion to CSR adds them up, so each
    node appears once per particle in the result.
    """
    return sp.sparse.coo_matrix((data, (rows, cols)), shape=shape).tocsr()


def signed_area(corners: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """
    Signed area of quadrilaterals (positive when counter-clockwise).

    Args:
        corners: Corner coordinates, shape (n, 4, 2).

    Returns:
        Areas, shape (n,).
    """
    d13 = corners[:, 0] - corners[:, 2]
    d24 = corners[:, 1] - corners[:, 3]
    return 0.5 * _cross(d13, d24)


def bilinear_shape_functions(
    mesh: Mesh,
    points: npt.NDArray[np.float64],
    elements: npt.NDArray[np.int64],
) -> npt.NDArray[np.float64]:
    """
    Standard bilinear shape functions of the element nodes evaluated at points.

    Args:
        mesh: Structured background mesh.
        points: Coordinates, shape (..., 2).
        elements: Element containing each point, shape (...).

    Returns:
        Shape function values, shape (..., 4), ordered like ``mesh.e2n``.
    """
    bottom_left = mesh.coords[mesh.e2n[elements, 0]]
    xi = (points[..., 0] - bottom_left[..., 0]) / mesh.h[0]
    eta = (points[..., 1] - bottom_left[..., 1]) / mesh.h[1]
    return np.stack((
        (1.0 - xi) * (1.0 - eta),
        xi * (1.0 - eta),
        xi * eta,
        (1.0 - xi) * eta,
    ), axis=-1)


@dataclass
class Connectivity:
    """
    Particle-node interpolation data of one iteration.

    Attributes:
        nodes: Node index of every entry, shape (n, 16).
        weights: CPDI2q weights, shape (n, 16).
        gradients: CPDI2q weight gradients, shape (n, 16, 2).
        corner_elements: Element of each corner, shape (n, 4).
        corner_nodes: Element nodes of each corner, shape (n, 4, 4).
        corner_shape: Bilinear shape functions at the corners, shape (n, 4, 4).
        domain_area: Area of the corner quadrilateral, shape (n,).
        n_nodes: Number of mesh nodes.
        n_active_elements: Elements holding at least one corner.
    """
    nodes: npt.NDArray[np.int64]
    weights: npt.NDArray[np.float64]
    gradients: npt.NDArray[np.float64]
    corner_elements: npt.NDArray[np.int64]
    corner_nodes: npt.NDArray[np.int64]
    corner_shape: npt.NDArray[np.float64]
    domain_area: npt.NDArray[np.float64]
    n_nodes: int
    n_active_elements: int = 0

    def __post_init__(self) -> None:
        n = self.nodes.shape[0]
        rows = self.nodes.ravel()
        cols = np.repeat(np.arange(n), NODES_PER_ELEMENT * CORNERS)

        self.N = _sparse_operator(self.weights.ravel(), rows, cols, (self.n_nodes, n))
        self.dNx = _sparse_operator(self.gradients[..., 0].ravel(), rows, cols, (self.n_nodes, n))
        self.dNy = _sparse_operator(self.gradients[..., 1].ravel(), rows, cols, (self.n_nodes, n))
        self.S = _sparse_operator(
            self.corner_shape.ravel(),
            self.corner_nodes.ravel(),
            np.repeat(np.arange(n * CORNERS), NODES_PER_ELEMENT),
            (self.n_nodes, n * CORNERS),
        )

    @property
    def n_particles(self) -> int:
        return self.nodes.shape[0]

    def scatter(self, values: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Accumulate per-particle values on the nodes: sum_p w_ip * values_p."""
        return self.N @ values

    def gather(self, nodal: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Interpolate nodal values at the particles: sum_i w_ip * nodal_i."""
        return self.N.T @ nodal

    def gather_at_corners(self, nodal: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Interpolate nodal values at the particle corners, shape (n, 4, ...)."""
        values = self.S.T @ nodal
        return values.reshape((self.n_particles, CORNERS) + values.shape[1:])

    def velocity_gradient(self, nodal_velocity: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Velocity gradient L_jk = dv_j / dx_k at the particles.

        Args:
            nodal_velocity: Nodal velocities, shape (n_nodes, 2).

        Returns:
            Velocity gradients, shape (n, 2, 2).
        """
        dvdx = self.dNx.T @ nodal_velocity  # (n, 2): [dvx/dx, dvy/dx]
        dvdy = self.dNy.T @ nodal_velocity  # (n, 2): [dvx/dy, dvy/dy]
        return np.stack((dvdx, dvdy), axis=-1)


def cpdi2q(
    mesh: Mesh,
    corners: npt.NDArray[np.float64],
    corner_elements: npt.NDArray[np.int64],
    n_active_elements: int = 0,
) -> Connectivity:
    """
    Evaluate the CPDI2q weights and weight gradients of all particles.

    Args:
        mesh: Structured background mesh.
        corners: Corner coordinates, shape (n, 4, 2), counter-clockwise.
        corner_elements: Element of each corner, shape (n, 4).
        n_active_elements: Active element count forwarded to the result.

    Raises:
        DegenerateDomainError: If a particle domain has a non-positive signed area.

    Returns:
        The interpolation connectivity of the iteration.
    """
    # 1) Domain measure
    area = signed_area(corners)
    bad = ~(area > 0.0)
    if np.any(bad):
        p = int(np.flatnonzero(bad)[0])
        raise DegenerateDomainError(
            f"particle {p} has a degenerate or inverted domain (signed area {area[p]:.6g})",
            particle=p,
        )

    # 2) Bilinear shape functions of the corner elements at the corners
    corner_nodes = mesh.e2n[corner_elements]  # (n, 4, 4)
    corner_shape = bilinear_shape_functions(mesh, corners, corner_elements)  # (n, 4, 4)

    # 3) Corner weights from the linear Jacobian of the bilinear domain map
    x1, x2, x3, x4 = (corners[:, k] for k in range(CORNERS))
    e12 = x2 - x1
    e14 = x4 - x1
    e23 = x3 - x2
    e43 = x3 - x4
    j1 = _cross(e12, e23 - e14)
    j2 = _cross(e43 - e12, e14)
    six_v = 6.0 * area
    c = np.stack((
        six_v - j1 - j2,
        six_v + j1 - j2,
        six_v + j1 + j2,
        six_v - j1 + j2,
    ), axis=1) / (24.0 * area[:, None])  # (n, 4)

    # 4) Corner gradient vectors from the domain boundary
    following = np.roll(corners, -1, axis=1)  # x_{k+1}
    preceding = np.roll(corners, 1, axis=1)  # x_{k-1}
    g = np.stack((
        following[..., 1] - preceding[..., 1],
        preceding[..., 0] - following[..., 0],
    ), axis=-1) / (2.0 * area[:, None, None])  # (n, 4, 2)

    n = corners.shape[0]
    weights = (c[:, :, None] * corner_shape).reshape(n, CORNERS * NODES_PER_ELEMENT)
    gradients = (corner_shape[..., None] * g[:, :, None, :]).reshape(n, CORNERS * NODES_PER_ELEMENT, 2)

    return Connectivity(
        nodes=corner_nodes.reshape(n, CORNERS * NODES_PER_ELEMENT),
        weights=weights,
        gradients=gradients,
        corner_elements=corner_elements,
        corner_nodes=corner_nodes,
        corner_shape=corner_shape,
        domain_area=area,
        n_nodes=mesh.number_of_nodes,
        n_active_elements=n_active_elements,
    )
