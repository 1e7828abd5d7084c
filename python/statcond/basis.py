"""Hierarchical one-dimensional basis and integration rules.

The basis is the "modified" Legendre basis commonly used for spectral/hp
elements. It consists of two linear vertex modes, followed by bubble modes
which vanish at both ends of the reference domain :math:`[-1, +1]`:

.. math::

    \\phi_0 = \\frac{1 - \\xi}{2}, \\quad \\phi_1 = \\frac{1 + \\xi}{2}, \\quad
    \\phi_p = \\frac{1 - \\xi}{2} \\frac{1 + \\xi}{2} P^{(1, 1)}_{p - 2}(\\xi)

Since only the vertex modes are non-zero on the boundary, they are the only
ones which couple neighbouring elements in one dimension.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
from scipy.special import eval_jacobi


@dataclass(frozen=True)
class IntegrationRule1D:
    """Gauss-Legendre integration rule on :math:`[-1, +1]`.

    Parameters
    ----------
    n_points : int
        Number of integration points. The rule integrates polynomials of
        order up to ``2 * n_points - 1`` exactly.
    """

    n_points: int
    nodes: npt.NDArray[np.float64]
    weights: npt.NDArray[np.float64]

    @classmethod
    def gauss_legendre(cls, n_points: int) -> IntegrationRule1D:
        """Create the rule with the specified number of points."""
        if n_points < 1:
            raise ValueError(f"Integration rule needs at least one point, not {n_points}.")
        nodes, weights = np.polynomial.legendre.leggauss(n_points)
        return cls(n_points, nodes, weights)


def modified_basis_values(
    order: int, x: npt.ArrayLike
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Evaluate the modified basis and its derivative.

    Parameters
    ----------
    order : int
        Order of the basis. There are ``order + 1`` modes.

    x : array_like
        Points in the reference domain.

    Returns
    -------
    (order + 1, N) array
        Values of all modes at the points.

    (order + 1, N) array
        Derivatives of all modes at the points.
    """
    if order < 1:
        raise ValueError(f"Order of the basis must be at least 1, not {order}.")
    pts = np.ravel(np.asarray(x, np.float64))
    values = np.empty((order + 1, pts.size), np.float64)
    derivs = np.empty((order + 1, pts.size), np.float64)

    values[0] = (1 - pts) / 2
    values[1] = (1 + pts) / 2
    derivs[0] = -0.5
    derivs[1] = +0.5

    bubble = (1 - pts) * (1 + pts) / 4
    for p in range(2, order + 1):
        n = p - 2
        jac = eval_jacobi(n, 1, 1, pts)
        if n > 0:
            djac = (n + 3) / 2 * eval_jacobi(n - 1, 2, 2, pts)
        else:
            djac = np.zeros_like(pts)
        values[p] = bubble * jac
        derivs[p] = -pts / 2 * jac + bubble * djac

    return values, derivs


@dataclass(frozen=True)
class ModifiedBasis1D:
    """Modified basis sampled at points of an integration rule.

    Parameters
    ----------
    order : int
        Order of the basis.

    rule : IntegrationRule1D
        Integration rule at which nodes the basis is sampled.
    """

    order: int
    rule: IntegrationRule1D
    values: npt.NDArray[np.float64]
    derivatives: npt.NDArray[np.float64]

    @classmethod
    def from_rule(cls, order: int, rule: IntegrationRule1D) -> ModifiedBasis1D:
        """Sample the basis at nodes of the rule."""
        values, derivatives = modified_basis_values(order, rule.nodes)
        return cls(order, rule, values, derivatives)

    @property
    def n_modes(self) -> int:
        """Number of modes."""
        return self.order + 1

    @staticmethod
    def mode_parity(p: int) -> int:
        """Parity of the mode under :math:`\\xi \\to -\\xi`.

        Vertex modes swap with each other, so they have no parity and ``0`` is
        returned for them.
        """
        if p < 2:
            return 0
        return 1 if p % 2 == 0 else -1


class BasisCache:
    """Cache for integration rules and basis functions.

    Entries are cheap to create and identical for every call, so a race
    between two threads creating the same entry is harmless.

    Parameters
    ----------
    order_difference : int
        Number of integration points used in addition to ``order + 1``.
    """

    order_diff: int
    _int_cache: dict[int, IntegrationRule1D]
    _b1_cache: dict[tuple[int, int], ModifiedBasis1D]

    def __init__(self, order_difference: int = 1) -> None:
        self._int_cache = dict()
        self._b1_cache = dict()
        self.order_diff = order_difference

    def integration_points(self, order: int) -> int:
        """Number of integration points used for a basis of the given order."""
        return order + 1 + self.order_diff

    def get_integration_rule(self, n_points: int) -> IntegrationRule1D:
        """Return integration rule with the given number of points."""
        res = self._int_cache.get(n_points, None)
        if res is not None:
            return res
        rule = IntegrationRule1D.gauss_legendre(n_points)
        self._int_cache[n_points] = rule
        return rule

    def get_basis1d(self, order: int, n_points: int | None = None) -> ModifiedBasis1D:
        """Get requested one-dimensional basis.

        Parameters
        ----------
        order : int
            Order of the basis.

        n_points : int, optional
            Number of integration points. If not specified,
            :meth:`integration_points` is used.

        Returns
        -------
        ModifiedBasis1D
            One-dimensional basis.
        """
        if n_points is None:
            n_points = self.integration_points(order)

        res = self._b1_cache.get((order, n_points), None)
        if res is not None:
            return res

        basis = ModifiedBasis1D.from_rule(order, self.get_integration_rule(n_points))
        self._b1_cache[(order, n_points)] = basis
        return basis
