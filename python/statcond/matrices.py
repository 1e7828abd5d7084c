"""Dense element matrix containers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from statcond.errors import ConfigurationError, DimensionMismatchError


@dataclass(frozen=True)
class ScaledMatrix:
    """Dense matrix paired with a multiplicative scale factor.

    The scale is applied lazily when the matrix is used. This way the same
    reference matrix can be shared by all elements that only differ by their
    Jacobian.

    Parameters
    ----------
    scale : float
        Scale factor of the matrix.

    matrix : (N, M) array
        Unscaled matrix entries. These may be shared with other instances
        and must not be modified.
    """

    scale: float
    matrix: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        """Check the scale is usable."""
        scale = float(self.scale)
        if not np.isfinite(scale) or scale == 0.0:
            raise ConfigurationError(f"Matrix scale must be finite and non-zero, not {scale}.")
        if np.ndim(self.matrix) != 2:
            raise DimensionMismatchError(
                f"Matrix must be two dimensional, but has shape {np.shape(self.matrix)}."
            )
        object.__setattr__(self, "scale", scale)

    @property
    def shape(self) -> tuple[int, int]:
        """Shape of the matrix."""
        return self.matrix.shape  # type: ignore[return-value]

    @property
    def value(self) -> npt.NDArray[np.float64]:
        """Matrix with the scale applied (a new array)."""
        return self.scale * self.matrix

    def materialize(self) -> ScaledMatrix:
        """Return a private copy with the scale applied and scale one."""
        return ScaledMatrix(1.0, np.array(self.scale * self.matrix, np.float64))

    def __matmul__(self, other: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Multiply by an array."""
        return self.scale * (self.matrix @ np.asarray(other, np.float64))


@dataclass(frozen=True)
class ElementBlockMatrix:
    """Element matrix partitioned into boundary and interior blocks.

    Parameters
    ----------
    bb : (nb, nb) array
        Boundary-boundary block.

    bi : (nb, ni) array
        Boundary-interior block.

    ib : (ni, nb) array
        Interior-boundary block.

    ii : (ni, ni) array
        Interior-interior block.
    """

    bb: npt.NDArray[np.float64]
    bi: npt.NDArray[np.float64]
    ib: npt.NDArray[np.float64]
    ii: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        """Check block shapes are consistent."""
        nb = self.bb.shape[0]
        ni = self.ii.shape[0]
        if (
            self.bb.shape != (nb, nb)
            or self.bi.shape != (nb, ni)
            or self.ib.shape != (ni, nb)
            or self.ii.shape != (ni, ni)
        ):
            raise DimensionMismatchError(
                "Inconsistent block shapes "
                f"{self.bb.shape}, {self.bi.shape}, {self.ib.shape}, {self.ii.shape}."
            )

    @property
    def nb(self) -> int:
        """Number of boundary degrees of freedom."""
        return self.bb.shape[0]

    @property
    def ni(self) -> int:
        """Number of interior degrees of freedom."""
        return self.ii.shape[0]

    @classmethod
    def from_dense(
        cls,
        matrix: npt.ArrayLike,
        boundary_map: Sequence[int] | npt.NDArray[np.integer],
        interior_map: Sequence[int] | npt.NDArray[np.integer],
    ) -> ElementBlockMatrix:
        """Partition a dense matrix using boundary and interior index maps.

        Parameters
        ----------
        matrix : (N, N) array_like
            Full local matrix.

        boundary_map : Sequence of int
            Local indices of boundary degrees of freedom.

        interior_map : Sequence of int
            Local indices of interior degrees of freedom.

        Returns
        -------
        ElementBlockMatrix
            Matrix partitioned into blocks. The blocks are new read-only arrays.
        """
        mat = np.asarray(matrix, np.float64)
        bmap = np.asarray(boundary_map, np.intp)
        imap = np.asarray(interior_map, np.intp)
        n = bmap.size + imap.size
        if mat.shape != (n, n):
            raise DimensionMismatchError(
                f"Matrix of shape {mat.shape} can not be partitioned into {bmap.size} "
                f"boundary and {imap.size} interior degrees of freedom."
            )
        perm = np.concatenate((bmap, imap))
        if not np.array_equal(np.sort(perm), np.arange(n)):
            raise DimensionMismatchError(
                "Boundary and interior maps are not a permutation of local indices."
            )

        # Blocks are shared by all elements with the same matrix
        blocks = (
            mat[np.ix_(bmap, bmap)],
            mat[np.ix_(bmap, imap)],
            mat[np.ix_(imap, bmap)],
            mat[np.ix_(imap, imap)],
        )
        for b in blocks:
            b.setflags(write=False)
        return cls(*blocks)

    def to_dense(self) -> npt.NDArray[np.float64]:
        """Return the full matrix with boundary degrees of freedom first."""
        return np.block([[self.bb, self.bi], [self.ib, self.ii]])
