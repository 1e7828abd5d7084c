"""Robin boundary contributions to element matrices."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from statcond.element import Element
from statcond.matrices import ScaledMatrix
from statcond.provider import ElementMatrixProvider


@dataclass(frozen=True)
class RobinContribution:
    """Boundary mass term on one edge of an element.

    Parameters
    ----------
    edge_id : int
        Index of the element boundary. For segments this is the index of the
        end vertex, for quadrilaterals the index of the edge.

    coefficients : array
        Robin coefficient. Either a single value, or values at the
        integration points of the edge.
    """

    edge_id: int
    coefficients: npt.NDArray[np.float64]

    def __init__(self, edge_id: int, coefficients: npt.ArrayLike) -> None:
        coeffs = np.array(coefficients, np.float64)
        coeffs.setflags(write=False)
        object.__setattr__(self, "edge_id", int(edge_id))
        object.__setattr__(self, "coefficients", coeffs)


RobinMap = Mapping[int, Sequence[RobinContribution]]
"""Robin contributions of each element, keyed by element index."""


def element_robin_contributions(
    robin: RobinMap | None, element_index: int
) -> Sequence[RobinContribution]:
    """Return contributions of an element, which may be empty."""
    if robin is None:
        return ()
    return robin.get(element_index, ())


def apply_robin_contributions(
    base: ScaledMatrix,
    contributions: Sequence[RobinContribution],
    element: Element,
    provider: ElementMatrixProvider,
) -> ScaledMatrix:
    """Add Robin boundary terms to an element matrix.

    Parameters
    ----------
    base : ScaledMatrix
        Matrix of the element, possibly shared with other elements.

    contributions : Sequence of RobinContribution
        Boundary terms of the element. These are added in order.

    element : Element
        Element the matrix belongs to.

    provider : ElementMatrixProvider
        Provider used to compute the boundary mass matrices.

    Returns
    -------
    ScaledMatrix
        The base matrix itself if there are no contributions, otherwise a
        new matrix with scale one, which is owned by the caller.
    """
    if not contributions:
        return base

    out = base.materialize()
    for contribution in contributions:
        provider.add_robin_mass(
            element, contribution.edge_id, contribution.coefficients, out.matrix
        )
    return out
