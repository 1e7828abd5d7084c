"""Example setups that are commonly used."""

from __future__ import annotations

import numpy as np

from statcond.assembly import LocalToGlobalMap
from statcond.basis import ModifiedBasis1D
from statcond.element import Element
from statcond.keys import ElementShape


def line_mesh(
    n: int,
    order: int,
    x0: float = 0.0,
    x1: float = 1.0,
    dirichlet: bool = True,
) -> tuple[list[Element], LocalToGlobalMap]:
    """Create a mesh of equally sized segments on an interval.

    Parameters
    ----------
    n : int
        Number of elements.

    order : int
        Order of all elements.

    x0 : float, default: 0.0
        Start of the interval.

    x1 : float, default: 1.0
        End of the interval.

    dirichlet : bool, default: True
        Prescribe values at both ends of the interval. These then become
        global DoFs ``0`` (at ``x0``) and ``1`` (at ``x1``).

    Returns
    -------
    list of Element
        Elements of the mesh.

    LocalToGlobalMap
        Map of element boundary DoFs.
    """
    if n < 1:
        raise ValueError("There must be at least one element.")
    x = np.linspace(x0, x1, n + 1)
    elements = [
        Element(ElementShape.SEGMENT, order, (x[i], x[i + 1])) for i in range(n)
    ]

    if dirichlet:
        # End points first, then the inner vertices
        numbering = np.concatenate(((0,), np.arange(2, n + 1), (1,)))
    else:
        numbering = np.arange(n + 1)

    maps = [(numbering[i], numbering[i + 1]) for i in range(n)]
    return elements, LocalToGlobalMap(maps, None, n + 1, 2 if dirichlet else 0)


def unit_square_mesh(
    nh: int,
    nv: int,
    order: int,
    dirichlet: bool = True,
) -> tuple[list[Element], LocalToGlobalMap]:
    r"""Create a mesh of rectangles on the square :math:`[-1, +1]^2`.

    Each edge is oriented from its vertex with the lower global index to
    the one with the higher. Elements which traverse an edge the other way
    have signs of the odd bubble modes of that edge flipped.

    Parameters
    ----------
    nh : int
        Number of elements in the horizontal direction.

    nv : int
        Number of elements in the vertical direction.

    order : int
        Order of all elements in both directions.

    dirichlet : bool, default: True
        Prescribe values on the boundary of the square. All DoFs on the
        boundary are then numbered before the others.

    Returns
    -------
    list of Element
        Elements of the mesh.

    LocalToGlobalMap
        Map of element boundary DoFs.
    """
    if nh < 1 or nv < 1:
        raise ValueError("There must be at least one element in each direction.")
    xv = np.linspace(-1, +1, nh + 1)
    yv = np.linspace(-1, +1, nv + 1)
    n_bubbles = order - 1

    def vertex_on_boundary(i: int, j: int) -> bool:
        return i in (0, nh) or j in (0, nv)

    # Edges are given by their two vertices
    vertices = [(i, j) for j in range(nv + 1) for i in range(nh + 1)]
    edges = [((i, j), (i + 1, j)) for j in range(nv + 1) for i in range(nh)] + [
        ((i, j), (i, j + 1)) for j in range(nv) for i in range(nh + 1)
    ]

    def edge_on_boundary(edge: tuple[tuple[int, int], tuple[int, int]]) -> bool:
        (i0, j0), (i1, j1) = edge
        return (j0 == j1 and j0 in (0, nv)) or (i0 == i1 and i0 in (0, nh))

    vertex_index: dict[tuple[int, int], int] = dict()
    edge_dofs: dict[tuple[tuple[int, int], tuple[int, int]], np.ndarray] = dict()
    count = 0
    n_dirichlet = 0
    passes = (True, False) if dirichlet else (None,)
    for boundary_pass in passes:
        for v in vertices:
            if boundary_pass is None or vertex_on_boundary(*v) == boundary_pass:
                vertex_index[v] = count
                count += 1
        for e in edges:
            if boundary_pass is None or edge_on_boundary(e) == boundary_pass:
                edge_dofs[e] = np.arange(count, count + n_bubbles)
                count += n_bubbles
        if boundary_pass:
            n_dirichlet = count

    parity = np.array(
        [ModifiedBasis1D.mode_parity(p) for p in range(2, order + 1)], np.float64
    )

    elements: list[Element] = list()
    maps: list[np.ndarray] = list()
    signs: list[np.ndarray] = list()
    for j in range(nv):
        for i in range(nh):
            corners = ((i, j), (i + 1, j), (i + 1, j + 1), (i, j + 1))
            elements.append(
                Element(
                    ElementShape.QUADRILATERAL,
                    order,
                    [(xv[c[0]], yv[c[1]]) for c in corners],
                )
            )
            # Local direction of each edge, in the order of edges of the element
            local_edges = (
                (corners[0], corners[1]),
                (corners[1], corners[2]),
                (corners[3], corners[2]),
                (corners[0], corners[3]),
            )
            element_map = [vertex_index[c] for c in corners]
            element_signs = [1.0] * 4
            for start, end in local_edges:
                dofs = edge_dofs[(start, end)]
                element_map.extend(dofs)
                if vertex_index[start] < vertex_index[end]:
                    element_signs.extend(np.ones(n_bubbles))
                else:
                    element_signs.extend(parity)
            maps.append(np.array(element_map, np.intp))
            signs.append(np.array(element_signs, np.float64))

    return elements, LocalToGlobalMap(maps, signs, count, n_dirichlet)
