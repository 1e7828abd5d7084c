r"""Static condensation of element matrices.

The element matrix is split into boundary and interior blocks

.. math::

    \begin{bmatrix} M_{bb} & M_{bi} \\ M_{ib} & M_{ii} \end{bmatrix}
    \begin{bmatrix} u_b \\ u_i \end{bmatrix} =
    \begin{bmatrix} f_b \\ f_i \end{bmatrix}

Since interior unknowns are never shared between elements, they can be
eliminated locally. This leaves only the Schur complement
:math:`S = M_{bb} - M_{bi} M_{ii}^{-1} M_{ib}` to be assembled globally, with
the condensed forcing :math:`f_b - M_{bi} M_{ii}^{-1} f_i`. Once boundary
unknowns are known, the interior is recovered from
:math:`u_i = M_{ii}^{-1} \left(f_i - M_{ib} u_b\right)`.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
from scipy import linalg as la

from statcond.errors import DimensionMismatchError, SingularBlockError
from statcond.matrices import ElementBlockMatrix

PIVOT_TOLERANCE = 1e-13


def factor_interior_block(
    mat: npt.NDArray[np.float64], element_index: int | None = None
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.int32]]:
    """Compute LU factorization of a block, checking it is not singular.

    Parameters
    ----------
    mat : (N, N) array
        Matrix to factor.

    element_index : int, optional
        Index of the element the block belongs to, used in the error.

    Returns
    -------
    (N, N) array
        Combined LU factors.

    (N,) array
        Pivot indices.

    Raises
    ------
    SingularBlockError
        If the matrix has non-finite entries or a pivot which is zero relative
        to the largest one.
    """
    if not np.all(np.isfinite(mat)):
        raise SingularBlockError("Interior block has non-finite entries", element_index)
    with warnings.catch_warnings():
        # Singular factors are reported below
        warnings.simplefilter("ignore", la.LinAlgWarning)
        lu, piv = la.lu_factor(mat, check_finite=False)

    pivots = np.abs(np.diag(lu))
    largest = pivots.max()
    if not np.all(np.isfinite(pivots)) or pivots.min() <= PIVOT_TOLERANCE * largest:
        raise SingularBlockError(
            f"Interior block is numerically singular (smallest pivot {pivots.min():.3e},"
            f" largest {largest:.3e})",
            element_index,
        )
    return lu, piv


@dataclass(frozen=True)
class StaticCondensationBlock:
    """Condensed form of a single element matrix.

    Parameters
    ----------
    block : ElementBlockMatrix
        Partitioned element matrix which was condensed.

    schur : (nb, nb) array
        Schur complement of the interior block.

    bnd_int : (nb, ni) array
        Product :math:`M_{bi} M_{ii}^{-1}`.

    interior_lu : tuple of arrays or None
        LU factorization of the interior block, or ``None`` if there are no
        interior degrees of freedom.

    element_index : int, optional
        Index of the element the block was created for.
    """

    block: ElementBlockMatrix
    schur: npt.NDArray[np.float64]
    bnd_int: npt.NDArray[np.float64]
    interior_lu: tuple[npt.NDArray[np.float64], npt.NDArray[np.int32]] | None
    element_index: int | None = None

    @classmethod
    def from_block_matrix(
        cls, block: ElementBlockMatrix, element_index: int | None = None
    ) -> StaticCondensationBlock:
        """Condense the partitioned element matrix.

        Parameters
        ----------
        block : ElementBlockMatrix
            Element matrix to condense.

        element_index : int, optional
            Index of the element, reported if the interior block is singular.

        Returns
        -------
        StaticCondensationBlock
            Condensed element matrix.
        """
        if block.ni == 0:
            bnd_int = np.zeros((block.nb, 0))
            bnd_int.setflags(write=False)
            return cls(block, block.bb, bnd_int, None, element_index)

        lu = factor_interior_block(block.ii, element_index)
        # (Mbi Mii^{-1})^T = Mii^{-T} Mbi^T
        bnd_int = la.lu_solve(lu, block.bi.T, trans=1, check_finite=False).T
        schur = block.bb - bnd_int @ block.ib
        for a in (bnd_int, schur):
            a.setflags(write=False)
        return cls(block, schur, bnd_int, lu, element_index)

    @property
    def nb(self) -> int:
        """Number of boundary degrees of freedom."""
        return self.block.nb

    @property
    def ni(self) -> int:
        """Number of interior degrees of freedom."""
        return self.block.ni

    @property
    def mbb(self) -> npt.NDArray[np.float64]:
        """Boundary-boundary block of the original matrix."""
        return self.block.bb

    @property
    def int_bnd(self) -> npt.NDArray[np.float64]:
        """Interior-boundary block of the original matrix."""
        return self.block.ib

    def _check_sizes(
        self, boundary: npt.NDArray[np.float64] | None, interior: npt.NDArray[np.float64]
    ) -> None:
        if boundary is not None and boundary.shape != (self.nb,):
            raise DimensionMismatchError(
                f"Boundary vector has shape {boundary.shape}, expected ({self.nb},)."
            )
        if interior.shape != (self.ni,):
            raise DimensionMismatchError(
                f"Interior vector has shape {interior.shape}, expected ({self.ni},)."
            )

    def solve_interior(self, rhs: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Apply the inverse of the interior block."""
        vec = np.asarray(rhs, np.float64)
        if self.interior_lu is None:
            return np.zeros_like(vec)
        return la.lu_solve(self.interior_lu, vec, check_finite=False)

    def condense_rhs(
        self, f_b: npt.ArrayLike, f_i: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        """Compute condensed boundary forcing :math:`f_b - M_{bi} M_{ii}^{-1} f_i`."""
        fb = np.asarray(f_b, np.float64)
        fi = np.asarray(f_i, np.float64)
        self._check_sizes(fb, fi)
        if self.ni == 0:
            return np.array(fb)
        return fb - self.bnd_int @ fi

    def interior_solution(
        self, f_i: npt.ArrayLike, u_b: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        """Recover interior unknowns :math:`M_{ii}^{-1} (f_i - M_{ib} u_b)`."""
        fi = np.asarray(f_i, np.float64)
        ub = np.asarray(u_b, np.float64)
        self._check_sizes(ub, fi)
        if self.ni == 0:
            return np.zeros(0, np.float64)
        return self.solve_interior(fi - self.int_bnd @ ub)

    def apply_schur(self, u_b: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Apply the Schur complement to local boundary values."""
        return self.schur @ np.asarray(u_b, np.float64)
