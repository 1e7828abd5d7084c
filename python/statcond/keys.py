"""Keys used to identify element and global matrices.

Keys are immutable and are only ever used as identities for cache look-ups.
Two keys are equal when all their fields are equal. Constants are compared by
value, while variable coefficients are compared by the identity of the array
they alias and their offset into it, since the coefficient data is owned by
someone else.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from functools import total_ordering
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from statcond.element import Element


class OperatorType(IntEnum):
    """Type of the operator an element matrix represents."""

    MASS = 0
    LAPLACIAN = 1
    HELMHOLTZ = 2
    # Components of the Laplacian on the reference element.
    LAPLACIAN_00 = 10
    LAPLACIAN_01 = 11
    LAPLACIAN_11 = 12


class ElementShape(IntEnum):
    """Shape of an element."""

    SEGMENT = 1
    QUADRILATERAL = 2
    TRIANGLE = 3
    TETRAHEDRON = 4
    HEXAHEDRON = 5

    @property
    def dimension(self) -> int:
        """Topological dimension of the shape."""
        if self == ElementShape.SEGMENT:
            return 1
        if self in (ElementShape.QUADRILATERAL, ElementShape.TRIANGLE):
            return 2
        return 3


@dataclass(frozen=True, order=True)
class GeometricFactors:
    """Constant geometric factors of an affine element.

    Parameters
    ----------
    jacobian : float
        Determinant of the Jacobian of the map from the reference element.

    inverse_metric : tuple of float
        Unique entries of the inverse metric tensor. For segments this is
        just one value, for quadrilaterals it is ``(g00, g01, g11)``.
    """

    jacobian: float
    inverse_metric: tuple[float, ...]


@total_ordering
class VariableCoefficient:
    """Coefficient array aliased at an offset.

    Parameters
    ----------
    array : array
        Externally owned array with coefficient values at quadrature points.

    offset : int, default: 0
        Offset into the array where the values of interest start.
    """

    __slots__ = ("array", "offset")

    array: npt.NDArray[np.float64]
    offset: int

    def __init__(self, array: npt.NDArray[np.float64], offset: int = 0) -> None:
        self.array = array
        self.offset = int(offset)

    def values(self, count: int) -> npt.NDArray[np.float64]:
        """Return ``count`` values starting at the offset."""
        return np.asarray(self.array[self.offset : self.offset + count], np.float64)

    def __eq__(self, other: object) -> bool:
        """Check the same array is aliased at the same offset."""
        if not isinstance(other, VariableCoefficient):
            return NotImplemented
        return self.array is other.array and self.offset == other.offset

    def __lt__(self, other: VariableCoefficient) -> bool:
        """Order by array identity and then offset."""
        return (id(self.array), self.offset) < (id(other.array), other.offset)

    def __hash__(self) -> int:
        """Hash the identity of the array and the offset."""
        return hash((id(self.array), self.offset))

    def __repr__(self) -> str:
        """Return a short representation."""
        return f"VariableCoefficient(<array at {id(self.array):#x}>, offset={self.offset})"


@total_ordering
@dataclass(frozen=True)
class OperatorKey:
    """Key that uniquely identifies an element operator matrix.

    Parameters
    ----------
    operator : OperatorType
        Operator the matrix represents.

    shape : ElementShape
        Shape of the element.

    orders : tuple of int
        Orders of the element basis in each direction.

    constants : tuple of float, optional
        Scalar constants of the operator, such as the Helmholtz constant.

    variable_coefficients : tuple of VariableCoefficient, optional
        Spatially varying coefficients of the operator.

    geometry : GeometricFactors, optional
        Geometric factors of the element. Keys with no geometry refer to
        matrices on the reference element.
    """

    operator: OperatorType
    shape: ElementShape
    orders: tuple[int, ...]
    constants: tuple[float, ...] = ()
    variable_coefficients: tuple[VariableCoefficient, ...] = ()
    geometry: GeometricFactors | None = field(default=None)

    def __post_init__(self) -> None:
        """Normalize sequences to tuples."""
        object.__setattr__(self, "operator", OperatorType(self.operator))
        object.__setattr__(self, "shape", ElementShape(self.shape))
        object.__setattr__(self, "orders", tuple(int(o) for o in self.orders))
        object.__setattr__(self, "constants", tuple(float(c) for c in self.constants))
        object.__setattr__(
            self, "variable_coefficients", tuple(self.variable_coefficients)
        )

    def _sort_key(self) -> tuple[Any, ...]:
        geometry = () if self.geometry is None else (self.geometry,)
        return (
            self.operator,
            self.shape,
            self.orders,
            self.constants,
            self.variable_coefficients,
            geometry,
        )

    def __lt__(self, other: OperatorKey) -> bool:
        """Order keys structurally."""
        if not isinstance(other, OperatorKey):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def constant(self, index: int) -> float:
        """Return the constant with the given index."""
        return self.constants[index]

    def reference(self, operator: OperatorType | None = None) -> OperatorKey:
        """Return the key of the matching reference element matrix.

        Parameters
        ----------
        operator : OperatorType, optional
            Operator of the reference matrix. If not given, the operator of
            this key is used.

        Returns
        -------
        OperatorKey
            Key with no constants, coefficients or geometry.
        """
        return OperatorKey(
            self.operator if operator is None else operator, self.shape, self.orders
        )


@dataclass(frozen=True)
class GlobalLinSysKey:
    """Key of a global linear system, shared by all of its elements.

    Parameters
    ----------
    operator : OperatorType
        Operator of the system.

    constants : tuple of float, optional
        Scalar constants of the operator.

    variable_coefficients : tuple of array, optional
        Global arrays with values of variable coefficients at all quadrature
        points of all elements, stored element after element.
    """

    operator: OperatorType
    constants: tuple[float, ...] = ()
    variable_coefficients: tuple[npt.NDArray[np.float64], ...] = ()

    def __post_init__(self) -> None:
        """Normalize sequences to tuples."""
        object.__setattr__(self, "operator", OperatorType(self.operator))
        object.__setattr__(self, "constants", tuple(float(c) for c in self.constants))
        object.__setattr__(
            self, "variable_coefficients", tuple(self.variable_coefficients)
        )

    def __eq__(self, other: object) -> bool:
        """Compare constants by value and coefficient arrays by identity."""
        if not isinstance(other, GlobalLinSysKey):
            return NotImplemented
        return (
            self.operator == other.operator
            and self.constants == other.constants
            and len(self.variable_coefficients) == len(other.variable_coefficients)
            and all(
                a is b
                for a, b in zip(
                    self.variable_coefficients, other.variable_coefficients, strict=True
                )
            )
        )

    def __hash__(self) -> int:
        """Hash constants and the identities of coefficient arrays."""
        return hash(
            (
                self.operator,
                self.constants,
                tuple(id(a) for a in self.variable_coefficients),
            )
        )

    @property
    def n_variable_coefficients(self) -> int:
        """Number of variable coefficients."""
        return len(self.variable_coefficients)

    def element_key(
        self,
        element: Element,
        phys_offset: int,
        geometry: GeometricFactors | None,
    ) -> OperatorKey:
        """Create the operator key of a single element.

        Parameters
        ----------
        element : Element
            Element for which the key is created.

        phys_offset : int
            Offset of the element's quadrature points in the global
            coefficient arrays.

        geometry : GeometricFactors, optional
            Geometric factors of the element.

        Returns
        -------
        OperatorKey
            Key of the element matrix.
        """
        return OperatorKey(
            self.operator,
            element.shape,
            element.orders,
            self.constants,
            tuple(VariableCoefficient(a, phys_offset) for a in self.variable_coefficients),
            geometry,
        )


def as_orders(orders: int | Sequence[int], shape: ElementShape) -> tuple[int, ...]:
    """Expand orders to one value per dimension of the shape."""
    if isinstance(orders, (int, np.integer)):
        return (int(orders),) * shape.dimension
    out = tuple(int(o) for o in orders)
    if len(out) != shape.dimension:
        raise ValueError(
            f"Shape {shape.name} needs {shape.dimension} orders, but got {len(out)}."
        )
    return out
