"""Element geometry.

Elements are a closed set of shapes, each described by its vertices and the
orders of its basis. All shape specific behaviour is dispatched on
:attr:`Element.shape`, instead of through a hierarchy of element types.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import cached_property

import numpy as np
import numpy.typing as npt

from statcond.errors import ConfigurationError
from statcond.keys import ElementShape, GeometricFactors, as_orders

_VERTEX_COUNTS = {
    ElementShape.SEGMENT: 2,
    ElementShape.QUADRILATERAL: 4,
    ElementShape.TRIANGLE: 3,
    ElementShape.TETRAHEDRON: 4,
    ElementShape.HEXAHEDRON: 8,
}

_FACTOR_DIGITS = 12


def _round_factors(values: Sequence[float], reference: float) -> tuple[float, ...]:
    """Round values to significant digits relative to the reference value.

    Geometric factors are used in cache keys, so elements which are equal up
    to roundoff must give exactly equal factors.
    """
    digits = _FACTOR_DIGITS - 1 - int(np.floor(np.log10(abs(reference))))
    return tuple(round(float(v), digits) for v in values)


@dataclass(frozen=True, eq=False)
class Element:
    """Single element of the mesh.

    Parameters
    ----------
    shape : ElementShape
        Shape of the element.

    orders : int or Sequence of int
        Order of the basis in each direction. A single value is used for all
        directions.

    vertices : (N, D) array_like
        Coordinates of the vertices. Segments are given as
        ``(x0, x1)``, quadrilaterals counter-clockwise, starting from the
        vertex at reference coordinates :math:`(-1, -1)`.
    """

    shape: ElementShape
    orders: tuple[int, ...]
    vertices: npt.NDArray[np.float64]

    def __init__(
        self,
        shape: ElementShape,
        orders: int | Sequence[int],
        vertices: npt.ArrayLike,
    ) -> None:
        shape = ElementShape(shape)
        verts = np.array(vertices, np.float64)
        if verts.ndim == 1:
            verts = verts[:, None]
        if verts.ndim != 2 or verts.shape[0] != _VERTEX_COUNTS[shape]:
            raise ConfigurationError(
                f"Element of shape {shape.name} needs {_VERTEX_COUNTS[shape]} vertices,"
                f" but got an array of shape {verts.shape}."
            )
        orders = as_orders(orders, shape)
        if any(o < 1 for o in orders):
            raise ConfigurationError(f"Element orders must be at least 1, got {orders}.")
        verts.setflags(write=False)
        object.__setattr__(self, "shape", shape)
        object.__setattr__(self, "orders", orders)
        object.__setattr__(self, "vertices", verts)

    @property
    def coordim(self) -> int:
        """Dimension of the space the element is embedded in."""
        return self.vertices.shape[1]

    @property
    def n_modes(self) -> int:
        """Number of local degrees of freedom."""
        return int(np.prod([o + 1 for o in self.orders]))

    @cached_property
    def jacobian_matrix(self) -> npt.NDArray[np.float64]:
        """Constant Jacobian of the map from the reference element."""
        if self.shape == ElementShape.SEGMENT:
            return ((self.vertices[1] - self.vertices[0]) / 2)[:, None]

        if self.shape == ElementShape.QUADRILATERAL:
            v0, v1, v2, v3 = self.vertices
            if self.coordim != 2:
                raise ConfigurationError("Quadrilaterals must be given in two dimensions.")
            scale = max(np.linalg.norm(v1 - v0), np.linalg.norm(v3 - v0))
            if np.linalg.norm(v2 - (v1 + v3 - v0)) > 1e-12 * scale:
                raise ConfigurationError(
                    "Only parallelogram quadrilaterals (affine geometry) are supported."
                )
            return np.stack(((v1 - v0) / 2, (v3 - v0) / 2), axis=1)

        raise ConfigurationError(f"Geometry of shape {self.shape.name} is not supported.")

    @cached_property
    def geometric_factors(self) -> GeometricFactors:
        """Geometric factors of the element, rounded to 12 significant digits."""
        jac = self.jacobian_matrix
        if self.shape == ElementShape.SEGMENT:
            det = float(np.linalg.norm(jac[:, 0]))
            if det == 0.0:
                raise ConfigurationError("Segment has zero length.")
            (det,) = _round_factors((det,), det)
            return GeometricFactors(det, _round_factors((1 / det**2,), 1 / det**2))

        det = float(np.linalg.det(jac))
        if det <= 0.0:
            raise ConfigurationError(
                "Quadrilateral is degenerate or its vertices are not counter-clockwise."
            )
        inv = np.linalg.inv(jac)
        g = inv @ inv.T
        metric = (g[0, 0], g[0, 1], g[1, 1])
        (det,) = _round_factors((det,), det)
        return GeometricFactors(det, _round_factors(metric, float(np.max(np.abs(metric)))))

    def map_to_physical(self, *xi: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Map reference coordinates to physical coordinates.

        Parameters
        ----------
        *xi : array_like
            Reference coordinates, one array for each dimension of the
            element. They must all have the same shape.

        Returns
        -------
        (..., D) array
            Physical coordinates of the points.
        """
        if len(xi) != self.shape.dimension:
            raise ValueError(
                f"Element of shape {self.shape.name} needs {self.shape.dimension}"
                f" reference coordinates, not {len(xi)}."
            )
        ref = np.stack(np.broadcast_arrays(*(np.asarray(x, np.float64) for x in xi)), axis=-1)
        return self.vertices[0] + (ref + 1) @ self.jacobian_matrix.T
