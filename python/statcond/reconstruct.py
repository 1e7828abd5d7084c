"""Conversion of solutions to :mod:`pyvista` meshes."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import numpy.typing as npt
import pyvista as pv

from statcond.element import Element
from statcond.errors import DimensionMismatchError, UnsupportedOperatorError
from statcond.keys import ElementShape
from statcond.provider import ReferenceMatrixProvider


def vtk_lagrange_ordering(shape: ElementShape, order: int) -> npt.NDArray[np.uint32]:
    """Ordering of nodes for VTK Lagrange cells.

    Nodes are generated on an equidistant tensor grid, with the first
    direction varying fastest. VTK Lagrange cells expect vertices first,
    then edge nodes and only then interior nodes, so this function returns
    indices of grid nodes in the order VTK expects them.

    Parameters
    ----------
    shape : ElementShape
        Shape of the cell. Only segments and quadrilaterals are supported.

    order : int
        Order of the cell.

    Returns
    -------
    array
        Indices of grid nodes in VTK order.
    """
    n = int(order) + 1
    v = np.arange(n)
    if shape == ElementShape.SEGMENT:
        return np.concatenate(((0, n - 1), v[1:-1])).astype(np.uint32)
    if shape != ElementShape.QUADRILATERAL:
        raise UnsupportedOperatorError(f"Shape {shape.name} can not be reconstructed.")
    return np.concatenate(
        (
            (0, n - 1, n**2 - 1, n * (n - 1)),  # corners
            v[1:-1],  # bottom edge
            n - 1 + n * v[1:-1],  # right edge
            n * (n - 1) + v[1:-1],  # top edge
            n * v[1:-1],  # left edge
            *(v[1:-1] + n * k for k in v[1:-1]),
        )
    ).astype(np.uint32)


_CELL_TYPES = {
    ElementShape.SEGMENT: pv.CellType.LAGRANGE_CURVE,
    ElementShape.QUADRILATERAL: pv.CellType.LAGRANGE_QUADRILATERAL,
}


def reconstruct_mesh_from_solution(
    elements: Sequence[Element],
    local_solutions: Sequence[npt.ArrayLike],
    provider: ReferenceMatrixProvider,
    recon_order: int | None = None,
) -> pv.UnstructuredGrid:
    """Reconstruct the solution on a mesh of Lagrange cells.

    Parameters
    ----------
    elements : Sequence of Element
        Elements of the mesh.

    local_solutions : Sequence of array_like
        Local coefficients of each element, as returned by
        :meth:`GlobalLinSys.global_to_local`.

    provider : ReferenceMatrixProvider
        Provider used to evaluate the expansion on the element.

    recon_order : int, optional
        Order of reconstruction cells. If not given, the highest order of
        each element is used.

    Returns
    -------
    pyvista.UnstructuredGrid
        Mesh with the solution as point data ``"u"`` and element orders as
        cell data ``"orders"``.
    """
    if len(elements) != len(local_solutions):
        raise DimensionMismatchError(
            f"There are {len(elements)} elements, but {len(local_solutions)} solutions."
        )

    points: list[npt.NDArray[np.float64]] = list()
    values: list[npt.NDArray[np.float64]] = list()
    cells: list[npt.NDArray[np.uint32]] = list()
    cell_types: list[pv.CellType] = list()
    orders: list[int] = list()
    used_nodes: dict[int, npt.NDArray[np.float64]] = dict()
    node_cnt = 0

    for element, coeffs in zip(elements, local_solutions, strict=True):
        if element.shape not in _CELL_TYPES:
            raise UnsupportedOperatorError(
                f"Shape {element.shape.name} can not be reconstructed."
            )
        reconstruction_order = max(element.orders) if recon_order is None else recon_order
        if reconstruction_order not in used_nodes:
            used_nodes[reconstruction_order] = np.linspace(
                -1, +1, reconstruction_order + 1, dtype=np.float64
            )
        nodes = used_nodes[reconstruction_order]

        if element.shape == ElementShape.SEGMENT:
            xi: tuple[npt.NDArray[np.float64], ...] = (nodes,)
        else:
            x, y = np.meshgrid(nodes, nodes)
            xi = (np.ravel(x), np.ravel(y))

        pos = element.map_to_physical(*xi)
        points.append(np.pad(pos, ((0, 0), (0, 3 - pos.shape[1]))))
        values.append(provider.evaluate(element, coeffs, *xi))

        ordering = vtk_lagrange_ordering(element.shape, reconstruction_order) + node_cnt
        cells.append(np.concatenate(((ordering.size,), ordering)).astype(np.uint32))
        cell_types.append(_CELL_TYPES[element.shape])
        orders.append(max(element.orders))
        node_cnt += pos.shape[0]

    grid = pv.UnstructuredGrid(
        np.concatenate(cells),
        np.array(cell_types, np.uint8),
        np.concatenate(points, axis=0),
    )
    grid.point_data["u"] = np.concatenate(values)
    grid.cell_data["orders"] = np.array(orders, np.int64)
    return grid
