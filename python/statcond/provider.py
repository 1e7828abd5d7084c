"""Element matrix providers.

A provider is the only place that knows how a shape's basis and geometry turn
into element matrices. The global systems only talk to it through the
:class:`ElementMatrixProvider` protocol.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import numpy as np
import numpy.typing as npt

from statcond.basis import BasisCache, modified_basis_values
from statcond.cache import MatrixCache
from statcond.element import Element
from statcond.errors import (
    ConfigurationError,
    DimensionMismatchError,
    UnsupportedOperatorError,
)
from statcond.keys import ElementShape, OperatorKey, OperatorType
from statcond.matrices import ElementBlockMatrix, ScaledMatrix


class ElementMatrixProvider(Protocol):
    """Source of element matrices and local degree of freedom layout."""

    def build_matrix(self, key: OperatorKey, element: Element) -> ScaledMatrix:
        """Build the local operator matrix of an element."""
        ...

    def build_block_matrix(
        self, key: OperatorKey, element: Element
    ) -> ElementBlockMatrix:
        """Build the local matrix partitioned into boundary and interior blocks."""
        ...

    def boundary_map(self, element: Element) -> npt.NDArray[np.intp]:
        """Local indices of boundary degrees of freedom."""
        ...

    def interior_map(self, element: Element) -> npt.NDArray[np.intp]:
        """Local indices of interior degrees of freedom."""
        ...

    def add_robin_mass(
        self,
        element: Element,
        edge_id: int,
        coefficients: npt.ArrayLike,
        matrix: npt.NDArray[np.float64],
    ) -> None:
        """Add the weighted boundary mass matrix of an edge to the matrix."""
        ...

    def num_quadrature_points(self, element: Element) -> int:
        """Number of quadrature points of the element."""
        ...


_SUPPORTED_SHAPES = (ElementShape.SEGMENT, ElementShape.QUADRILATERAL)

# Number of constants and maximum number of variable coefficients
_OPERATOR_PARAMETERS: dict[OperatorType, tuple[int, int]] = {
    OperatorType.MASS: (0, 1),
    OperatorType.LAPLACIAN: (0, 0),
    OperatorType.HELMHOLTZ: (1, 1),
    OperatorType.LAPLACIAN_00: (0, 0),
    OperatorType.LAPLACIAN_01: (0, 0),
    OperatorType.LAPLACIAN_11: (0, 0),
}

_REFERENCE_ONLY = (
    OperatorType.LAPLACIAN_00,
    OperatorType.LAPLACIAN_01,
    OperatorType.LAPLACIAN_11,
)


class ReferenceMatrixProvider:
    """Provider of matrices for affine segments and quadrilaterals.

    Matrices on the reference element are cached in :attr:`reference_cache`
    and shared by all elements. Mass matrices of elements are returned as
    that shared matrix, scaled by the Jacobian of the element.

    Parameters
    ----------
    order_difference : int, default: 1
        Number of integration points to use in addition to ``order + 1``.
    """

    basis_cache: BasisCache
    reference_cache: MatrixCache[OperatorKey, ScaledMatrix]

    def __init__(self, order_difference: int = 1) -> None:
        self.basis_cache = BasisCache(order_difference)
        self.reference_cache = MatrixCache(
            self._create_reference_matrix, "ReferenceMatrixCache"
        )

    # Checks

    @staticmethod
    def check_key(key: OperatorKey) -> None:
        """Check the key describes an operator that can be built.

        Parameters
        ----------
        key : OperatorKey
            Key to check.

        Raises
        ------
        UnsupportedOperatorError
            If the shape or operator is not supported.

        ConfigurationError
            If the wrong number of constants or coefficients is given.
        """
        if key.shape not in _SUPPORTED_SHAPES:
            raise UnsupportedOperatorError(
                f"Elements of shape {key.shape.name} are not supported."
            )
        if key.shape == ElementShape.SEGMENT and key.operator in (
            OperatorType.LAPLACIAN_01,
            OperatorType.LAPLACIAN_11,
        ):
            raise UnsupportedOperatorError(
                f"Operator {key.operator.name} does not exist for segments."
            )
        n_const, n_var = _OPERATOR_PARAMETERS[key.operator]
        if len(key.constants) != n_const:
            raise ConfigurationError(
                f"Operator {key.operator.name} needs {n_const} constants, but"
                f" {len(key.constants)} were given."
            )
        if len(key.variable_coefficients) > n_var:
            raise ConfigurationError(
                f"Operator {key.operator.name} takes at most {n_var} variable"
                f" coefficients, but {len(key.variable_coefficients)} were given."
            )

    @staticmethod
    def _check_element(key: OperatorKey, element: Element) -> None:
        if key.shape != element.shape or key.orders != element.orders:
            raise ConfigurationError(
                f"Key for {key.shape.name} of orders {key.orders} used for an element"
                f" {element.shape.name} of orders {element.orders}."
            )
        if key.geometry is not None and key.geometry != element.geometric_factors:
            raise ConfigurationError("Key geometry does not match the element geometry.")

    # Tabulation

    def _tabulate(
        self, shape: ElementShape, orders: tuple[int, ...]
    ) -> tuple[
        npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]
    ]:
        """Sample basis and gradients at integration points.

        Returns
        -------
        (M, Q) array
            Values of all modes at all integration points.

        (D, M, Q) array
            Reference gradients of all modes at all integration points.

        (Q,) array
            Integration weights on the reference element.
        """
        if shape == ElementShape.SEGMENT:
            basis = self.basis_cache.get_basis1d(orders[0])
            return basis.values, basis.derivatives[None, ...], basis.rule.weights

        b1 = self.basis_cache.get_basis1d(orders[0])
        b2 = self.basis_cache.get_basis1d(orders[1])
        # Mode (i, j) has index j * (p1 + 1) + i, point (a, b) has index b * q1 + a
        values = np.reshape(
            b2.values[:, None, :, None] * b1.values[None, :, None, :],
            (b1.n_modes * b2.n_modes, -1),
        )
        d_xi = np.reshape(
            b2.values[:, None, :, None] * b1.derivatives[None, :, None, :],
            (b1.n_modes * b2.n_modes, -1),
        )
        d_eta = np.reshape(
            b2.derivatives[:, None, :, None] * b1.values[None, :, None, :],
            (b1.n_modes * b2.n_modes, -1),
        )
        weights = np.ravel(b2.rule.weights[:, None] * b1.rule.weights[None, :])
        return values, np.stack((d_xi, d_eta), axis=0), weights

    def _create_reference_matrix(self, key: OperatorKey) -> ScaledMatrix:
        """Compute a matrix on the reference element."""
        self.check_key(key)
        if key.geometry is not None or key.variable_coefficients:
            raise ConfigurationError(
                "Reference matrices can not depend on geometry or variable coefficients."
            )
        values, grads, weights = self._tabulate(key.shape, key.orders)

        match key.operator:
            case OperatorType.MASS:
                mat = (values * weights) @ values.T
            case OperatorType.LAPLACIAN_00:
                mat = (grads[0] * weights) @ grads[0].T
            case OperatorType.LAPLACIAN_01:
                mat = (grads[0] * weights) @ grads[1].T
            case OperatorType.LAPLACIAN_11:
                mat = (grads[1] * weights) @ grads[1].T
            case OperatorType.LAPLACIAN:
                mat = sum((g * weights) @ g.T for g in grads)
            case OperatorType.HELMHOLTZ:
                mat = sum((g * weights) @ g.T for g in grads) + key.constant(0) * (
                    (values * weights) @ values.T
                )
            case _:
                raise UnsupportedOperatorError(f"Unknown operator {key.operator!r}.")

        mat = np.asarray(mat, np.float64)
        mat.setflags(write=False)
        return ScaledMatrix(1.0, mat)

    def get_reference_matrix(self, key: OperatorKey) -> ScaledMatrix:
        """Return the (cached) matrix on the reference element."""
        return self.reference_cache[key]

    # Element matrices

    def _coefficient_values(
        self, key: OperatorKey, element: Element
    ) -> npt.NDArray[np.float64] | None:
        if not key.variable_coefficients:
            return None
        nq = self.num_quadrature_points(element)
        vals = key.variable_coefficients[0].values(nq)
        if vals.size != nq:
            raise DimensionMismatchError(
                f"Variable coefficient has {vals.size} values at offset"
                f" {key.variable_coefficients[0].offset}, but the element needs {nq}."
            )
        return vals

    def _mass(self, key: OperatorKey, element: Element) -> ScaledMatrix:
        jac = element.geometric_factors.jacobian
        coeffs = self._coefficient_values(key, element)
        if coeffs is None:
            return ScaledMatrix(
                jac, self.get_reference_matrix(key.reference(OperatorType.MASS)).matrix
            )
        values, _, weights = self._tabulate(element.shape, element.orders)
        return ScaledMatrix(jac, (values * (weights * coeffs)) @ values.T)

    def _laplacian(self, key: OperatorKey, element: Element) -> ScaledMatrix:
        geo = element.geometric_factors
        if element.shape == ElementShape.SEGMENT:
            lap = self.get_reference_matrix(key.reference(OperatorType.LAPLACIAN_00))
            return ScaledMatrix(geo.jacobian * geo.inverse_metric[0], lap.matrix)

        g00, g01, g11 = geo.inverse_metric
        l00 = self.get_reference_matrix(key.reference(OperatorType.LAPLACIAN_00)).matrix
        l01 = self.get_reference_matrix(key.reference(OperatorType.LAPLACIAN_01)).matrix
        l11 = self.get_reference_matrix(key.reference(OperatorType.LAPLACIAN_11)).matrix
        return ScaledMatrix(geo.jacobian, g00 * l00 + g01 * (l01 + l01.T) + g11 * l11)

    def build_matrix(self, key: OperatorKey, element: Element) -> ScaledMatrix:
        """Build the local operator matrix of an element.

        Parameters
        ----------
        key : OperatorKey
            Key of the operator. Its shape and orders must match the element.

        element : Element
            Element for which the matrix is built.

        Returns
        -------
        ScaledMatrix
            Element matrix. Its data may be shared with other elements.
        """
        self.check_key(key)
        self._check_element(key, element)

        match key.operator:
            case OperatorType.MASS:
                return self._mass(key, element)
            case OperatorType.LAPLACIAN:
                return self._laplacian(key, element)
            case OperatorType.HELMHOLTZ:
                lap = self._laplacian(key, element)
                mass = self._mass(key, element)
                return ScaledMatrix(1.0, lap.value + key.constant(0) * mass.value)

        raise UnsupportedOperatorError(
            f"Operator {key.operator.name} only exists on the reference element."
        )

    def build_block_matrix(
        self, key: OperatorKey, element: Element
    ) -> ElementBlockMatrix:
        """Build the local matrix partitioned into boundary and interior blocks."""
        return ElementBlockMatrix.from_dense(
            self.build_matrix(key, element).value,
            self.boundary_map(element),
            self.interior_map(element),
        )

    # Degrees of freedom

    @staticmethod
    def edge_modes(
        element: Element, edge_id: int
    ) -> tuple[npt.NDArray[np.intp], npt.NDArray[np.intp]]:
        """Local indices and degrees of bubble modes on an edge of a quadrilateral.

        Edges 0 and 2 run along the first reference direction, edges 1 and 3
        along the second.

        Returns
        -------
        array of int
            Local indices of the modes.

        array of int
            Polynomial degree of each mode along the edge.
        """
        if element.shape != ElementShape.QUADRILATERAL:
            raise UnsupportedOperatorError("Only quadrilaterals have edges with modes.")
        p1, p2 = element.orders
        n1 = p1 + 1
        deg1 = np.arange(2, p1 + 1, dtype=np.intp)
        deg2 = np.arange(2, p2 + 1, dtype=np.intp)
        match edge_id:
            case 0:
                return deg1, deg1
            case 1:
                return deg2 * n1 + 1, deg2
            case 2:
                return n1 + deg1, deg1
            case 3:
                return deg2 * n1, deg2
        raise ValueError(f"Invalid edge index {edge_id}.")

    @staticmethod
    def vertex_modes(element: Element) -> npt.NDArray[np.intp]:
        """Local indices of vertex modes, in the order of the vertices."""
        if element.shape == ElementShape.SEGMENT:
            return np.array((0, 1), np.intp)
        if element.shape == ElementShape.QUADRILATERAL:
            n1 = element.orders[0] + 1
            return np.array((0, 1, n1 + 1, n1), np.intp)
        raise UnsupportedOperatorError(f"Shape {element.shape.name} is not supported.")

    def boundary_map(self, element: Element) -> npt.NDArray[np.intp]:
        """Local indices of boundary degrees of freedom.

        For quadrilaterals, vertex modes come first, then bubble modes of
        edges 0 through 3.
        """
        vertices = self.vertex_modes(element)
        if element.shape == ElementShape.SEGMENT:
            return vertices
        return np.concatenate(
            (vertices, *(self.edge_modes(element, e)[0] for e in range(4)))
        )

    def interior_map(self, element: Element) -> npt.NDArray[np.intp]:
        """Local indices of interior degrees of freedom."""
        if element.shape == ElementShape.SEGMENT:
            return np.arange(2, element.orders[0] + 1, dtype=np.intp)
        if element.shape == ElementShape.QUADRILATERAL:
            p1, p2 = element.orders
            i, j = np.meshgrid(np.arange(2, p1 + 1), np.arange(2, p2 + 1))
            return np.ravel(j * (p1 + 1) + i).astype(np.intp)
        raise UnsupportedOperatorError(f"Shape {element.shape.name} is not supported.")

    # Robin boundary terms

    def add_robin_mass(
        self,
        element: Element,
        edge_id: int,
        coefficients: npt.ArrayLike,
        matrix: npt.NDArray[np.float64],
    ) -> None:
        """Add the weighted boundary mass matrix of an edge to the matrix.

        Parameters
        ----------
        element : Element
            Element the boundary belongs to.

        edge_id : int
            For segments the index of the end vertex, for quadrilaterals the
            index of the edge.

        coefficients : array_like
            Robin coefficient. For segments a single value, for quadrilaterals
            either a single value or values at the integration points of
            the edge.

        matrix : (N, N) array
            Full local matrix, which is modified in place.
        """
        coeffs = np.atleast_1d(np.asarray(coefficients, np.float64))
        if matrix.shape != (element.n_modes, element.n_modes):
            raise DimensionMismatchError(
                f"Matrix of shape {matrix.shape} does not match element with"
                f" {element.n_modes} modes."
            )

        if element.shape == ElementShape.SEGMENT:
            if edge_id not in (0, 1):
                raise ValueError(f"Segment has no vertex {edge_id}.")
            if coeffs.size != 1:
                raise DimensionMismatchError("Segment Robin terms take a single coefficient.")
            # Only the vertex mode is non-zero at the vertex
            matrix[edge_id, edge_id] += coeffs[0]
            return

        if element.shape != ElementShape.QUADRILATERAL:
            raise UnsupportedOperatorError(f"Shape {element.shape.name} is not supported.")

        direction = 0 if edge_id in (0, 2) else 1
        p1, p2 = element.orders
        rule = self.basis_cache.get_integration_rule(
            self.basis_cache.integration_points(element.orders[direction])
        )
        t = rule.nodes
        if coeffs.size == 1:
            coeffs = np.full(t.size, coeffs[0])
        elif coeffs.size != t.size:
            raise DimensionMismatchError(
                f"Edge {edge_id} needs {t.size} coefficient values, got {coeffs.size}."
            )
        fixed = np.full_like(t, -1.0 if edge_id in (0, 3) else +1.0)
        xi, eta = (t, fixed) if direction == 0 else (fixed, t)
        v1, _ = modified_basis_values(p1, xi)
        v2, _ = modified_basis_values(p2, eta)
        values = np.reshape(v2[:, None, :] * v1[None, :, :], (element.n_modes, -1))
        length = float(np.linalg.norm(element.jacobian_matrix[:, direction]))
        matrix += (values * (rule.weights * coeffs * length)) @ values.T

    # Quadrature based operations

    def num_quadrature_points(self, element: Element) -> int:
        """Number of quadrature points of the element."""
        if element.shape not in _SUPPORTED_SHAPES:
            raise UnsupportedOperatorError(f"Shape {element.shape.name} is not supported.")
        return int(np.prod([self.basis_cache.integration_points(o) for o in element.orders]))

    def quadrature_reference_points(
        self, element: Element
    ) -> tuple[npt.NDArray[np.float64], ...]:
        """Reference coordinates of the quadrature points."""
        if element.shape == ElementShape.SEGMENT:
            return (self.basis_cache.get_basis1d(element.orders[0]).rule.nodes,)
        if element.shape != ElementShape.QUADRILATERAL:
            raise UnsupportedOperatorError(f"Shape {element.shape.name} is not supported.")
        n1 = self.basis_cache.get_basis1d(element.orders[0]).rule.nodes
        n2 = self.basis_cache.get_basis1d(element.orders[1]).rule.nodes
        xi, eta = np.meshgrid(n1, n2)
        return (np.ravel(xi), np.ravel(eta))

    def quadrature_points(self, element: Element) -> npt.NDArray[np.float64]:
        """Physical coordinates of quadrature points, with shape ``(Q, D)``."""
        return element.map_to_physical(*self.quadrature_reference_points(element))

    def inner_product(
        self, element: Element, values: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        """Compute inner product of a function with all element modes.

        Parameters
        ----------
        element : Element
            Element on which to integrate.

        values : (Q,) array_like
            Values of the function at the quadrature points.

        Returns
        -------
        (N,) array
            Inner products with each of the modes.
        """
        vals = np.asarray(values, np.float64)
        basis_values, _, weights = self._tabulate(element.shape, element.orders)
        if vals.shape != weights.shape:
            raise DimensionMismatchError(
                f"Expected {weights.size} function values, got {vals.shape}."
            )
        return basis_values @ (weights * vals * element.geometric_factors.jacobian)

    def evaluate(
        self, element: Element, coefficients: npt.ArrayLike, *xi: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        """Evaluate an expansion at reference coordinates.

        Parameters
        ----------
        element : Element
            Element of the expansion.

        coefficients : (N,) array_like
            Coefficients of all element modes.

        *xi : array_like
            Reference coordinates, one array for each dimension.

        Returns
        -------
        array
            Values of the expansion, with the same shape as reference coordinates.
        """
        coeffs = np.asarray(coefficients, np.float64)
        if coeffs.shape != (element.n_modes,):
            raise DimensionMismatchError(
                f"Expected {element.n_modes} coefficients, got {coeffs.shape}."
            )
        if len(xi) != element.shape.dimension:
            raise ValueError("Wrong number of reference coordinates.")
        pts = np.broadcast_arrays(*(np.asarray(x, np.float64) for x in xi))
        if element.shape == ElementShape.SEGMENT:
            v, _ = modified_basis_values(element.orders[0], pts[0])
            return np.reshape(coeffs @ v, pts[0].shape)

        v1, _ = modified_basis_values(element.orders[0], pts[0])
        v2, _ = modified_basis_values(element.orders[1], pts[1])
        values = np.reshape(v2[:, None, :] * v1[None, :, :], (element.n_modes, -1))
        return np.reshape(coeffs @ values, pts[0].shape)


def stacked_quadrature_sizes(
    provider: ElementMatrixProvider, elements: Sequence[Element]
) -> npt.NDArray[np.intp]:
    """Offsets of each element's quadrature points in a global array.

    Returns
    -------
    (E + 1,) array
        Offsets, with the last entry being the total number of points.
    """
    sizes = [provider.num_quadrature_points(e) for e in elements]
    return np.concatenate(((0,), np.cumsum(sizes, dtype=np.intp))).astype(np.intp)
