"""Local to global numbering and global assembly.

Global vectors are laid out with all global boundary degrees of freedom
first, followed by interior degrees of freedom of each element in order.
Boundary values of an element are obtained from the global ones by
multiplying them with the sign of the local degree of freedom, which
accounts for orientation of edges shared by neighbouring elements.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import cached_property

import numpy as np
import numpy.typing as npt
from scipy import sparse as sp

from statcond.condensation import StaticCondensationBlock
from statcond.errors import ConfigurationError, DimensionMismatchError
from statcond.matrices import ElementBlockMatrix


class LocalToGlobalMap:
    """Map of element boundary degrees of freedom to the global ones.

    Parameters
    ----------
    boundary_maps : Sequence of array_like
        For each element the global index of each local boundary degree of
        freedom.

    boundary_signs : Sequence of array_like, optional
        For each element the sign (``+1`` or ``-1``) of each local boundary
        degree of freedom. If not given, all signs are positive.

    n_global_boundary : int
        Number of global boundary degrees of freedom.

    n_dirichlet : int, default: 0
        Number of global boundary degrees of freedom with prescribed values.
        These are always the first ones.
    """

    n_global_boundary: int
    n_dirichlet: int
    _maps: tuple[npt.NDArray[np.intp], ...]
    _signs: tuple[npt.NDArray[np.float64], ...]

    def __init__(
        self,
        boundary_maps: Sequence[npt.ArrayLike],
        boundary_signs: Sequence[npt.ArrayLike] | None,
        n_global_boundary: int,
        n_dirichlet: int = 0,
    ) -> None:
        n_global_boundary = int(n_global_boundary)
        n_dirichlet = int(n_dirichlet)
        if n_global_boundary < 0:
            raise DimensionMismatchError("Number of global degrees of freedom is negative.")
        if not (0 <= n_dirichlet <= n_global_boundary):
            raise DimensionMismatchError(
                f"Number of Dirichlet degrees of freedom {n_dirichlet} is not in the"
                f" range [0, {n_global_boundary}]."
            )

        maps: list[npt.NDArray[np.intp]] = list()
        signs: list[npt.NDArray[np.float64]] = list()
        if boundary_signs is not None and len(boundary_signs) != len(boundary_maps):
            raise DimensionMismatchError(
                f"There are {len(boundary_maps)} boundary maps, but "
                f"{len(boundary_signs)} sign arrays."
            )
        for ie, bmap in enumerate(boundary_maps):
            m = np.array(bmap, np.intp).reshape(-1)
            if boundary_signs is None:
                s = np.ones(m.size, np.float64)
            else:
                s = np.array(boundary_signs[ie], np.float64).reshape(-1)
            if s.size != m.size:
                raise DimensionMismatchError(
                    f"Element {ie} has {m.size} boundary indices, but {s.size} signs."
                )
            if np.any((m < 0) | (m >= n_global_boundary)):
                raise DimensionMismatchError(
                    f"Element {ie} has boundary indices outside of [0, {n_global_boundary})."
                )
            if np.unique(m).size != m.size:
                raise DimensionMismatchError(f"Element {ie} maps two DoFs to the same index.")
            if np.any(np.abs(s) != 1):
                raise DimensionMismatchError(f"Element {ie} has signs other than +1 or -1.")
            m.setflags(write=False)
            s.setflags(write=False)
            maps.append(m)
            signs.append(s)

        self._maps = tuple(maps)
        self._signs = tuple(signs)
        self.n_global_boundary = n_global_boundary
        self.n_dirichlet = n_dirichlet

    @property
    def n_elements(self) -> int:
        """Number of elements in the map."""
        return len(self._maps)

    @property
    def n_free(self) -> int:
        """Number of global boundary degrees of freedom without prescribed values."""
        return self.n_global_boundary - self.n_dirichlet

    def boundary_map(
        self, element_index: int
    ) -> tuple[npt.NDArray[np.intp], npt.NDArray[np.float64]]:
        """Return global indices and signs of boundary DoFs of an element."""
        return self._maps[element_index], self._signs[element_index]

    def global_boundary_size(self) -> int:
        """Return the number of global boundary degrees of freedom."""
        return self.n_global_boundary

    def check_boundary_counts(self, counts: Sequence[int]) -> None:
        """Check the number of local boundary DoFs of each element matches the map.

        Raises
        ------
        DimensionMismatchError
            If the number of elements or any count does not match.
        """
        if len(counts) != self.n_elements:
            raise DimensionMismatchError(
                f"Map has {self.n_elements} elements, but {len(counts)} were given."
            )
        for ie, (nb, m) in enumerate(zip(counts, self._maps, strict=True)):
            if nb != m.size:
                raise DimensionMismatchError(
                    f"Element {ie} has {nb} boundary DoFs, but the map has {m.size}."
                )

    def gather(
        self, element_index: int, u_b: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """Extract local boundary values of an element from global ones."""
        bmap, bsign = self.boundary_map(element_index)
        return bsign * u_b[bmap]

    def scatter_add(
        self,
        element_index: int,
        local: npt.NDArray[np.float64],
        out: npt.NDArray[np.float64],
    ) -> None:
        """Add local boundary values of an element to global ones."""
        bmap, bsign = self.boundary_map(element_index)
        if local.shape != bmap.shape:
            raise DimensionMismatchError(
                f"Element {element_index} vector has shape {local.shape}, expected"
                f" {bmap.shape}."
            )
        np.add.at(out, bmap, bsign * local)


@dataclass(frozen=True)
class DofLayout:
    """Layout of the global coefficient vector.

    Parameters
    ----------
    lmap : LocalToGlobalMap
        Map of boundary degrees of freedom.

    local_boundary : tuple of arrays
        Local indices of boundary degrees of freedom of each element.

    local_interior : tuple of arrays
        Local indices of interior degrees of freedom of each element.
    """

    lmap: LocalToGlobalMap
    local_boundary: tuple[npt.NDArray[np.intp], ...]
    local_interior: tuple[npt.NDArray[np.intp], ...]

    def __post_init__(self) -> None:
        """Check element counts are consistent."""
        if len(self.local_boundary) != len(self.local_interior):
            raise DimensionMismatchError("Boundary and interior maps differ in length.")
        self.lmap.check_boundary_counts([b.size for b in self.local_boundary])

    @property
    def n_elements(self) -> int:
        """Number of elements."""
        return len(self.local_boundary)

    @cached_property
    def interior_offsets(self) -> npt.NDArray[np.intp]:
        """Offsets of interior degrees of freedom of each element."""
        counts = [i.size for i in self.local_interior]
        offsets = self.lmap.n_global_boundary + np.concatenate(
            ((0,), np.cumsum(counts, dtype=np.intp))
        ).astype(np.intp)
        offsets.setflags(write=False)
        return offsets

    @property
    def n_global(self) -> int:
        """Total number of global degrees of freedom."""
        return int(self.interior_offsets[-1])

    def interior_indices(self, element_index: int) -> npt.NDArray[np.intp]:
        """Global indices of interior degrees of freedom of an element."""
        offsets = self.interior_offsets
        return np.arange(
            offsets[element_index], offsets[element_index + 1], dtype=np.intp
        )

    def check_global(self, vec: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Convert to a global vector, checking its size."""
        out = np.asarray(vec, np.float64)
        if out.shape != (self.n_global,):
            raise DimensionMismatchError(
                f"Global vector must have shape ({self.n_global},), not {out.shape}."
            )
        return out

    def split(
        self, vec: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.float64], list[npt.NDArray[np.float64]]]:
        """Split global vector into boundary part and interior parts of elements."""
        v = self.check_global(vec)
        offsets = self.interior_offsets
        return v[: self.lmap.n_global_boundary], [
            v[offsets[ie] : offsets[ie + 1]] for ie in range(self.n_elements)
        ]

    def join(
        self,
        boundary: npt.ArrayLike,
        interior: Sequence[npt.ArrayLike],
    ) -> npt.NDArray[np.float64]:
        """Join boundary and interior parts into a global vector."""
        b = np.asarray(boundary, np.float64)
        if b.shape != (self.lmap.n_global_boundary,) or len(interior) != self.n_elements:
            raise DimensionMismatchError("Vector parts do not match the layout.")
        parts = [np.asarray(v, np.float64) for v in interior]
        for ie, p in enumerate(parts):
            if p.shape != self.local_interior[ie].shape:
                raise DimensionMismatchError(
                    f"Interior part of element {ie} has shape {p.shape}, expected"
                    f" {self.local_interior[ie].shape}."
                )
        return np.concatenate((b, *parts))

    def global_to_local(self, vec: npt.ArrayLike) -> list[npt.NDArray[np.float64]]:
        """Extract local coefficients of each element.

        Parameters
        ----------
        vec : (N,) array_like
            Global vector.

        Returns
        -------
        list of array
            Local coefficients of each element in the order of its modes.
        """
        boundary, interior = self.split(vec)
        out: list[npt.NDArray[np.float64]] = list()
        for ie in range(self.n_elements):
            lb = self.local_boundary[ie]
            li = self.local_interior[ie]
            local = np.empty(lb.size + li.size, np.float64)
            local[lb] = self.lmap.gather(ie, boundary)
            local[li] = interior[ie]
            out.append(local)
        return out

    def local_to_global(
        self, local: Sequence[npt.ArrayLike]
    ) -> npt.NDArray[np.float64]:
        """Assemble element vectors into a global vector.

        Boundary contributions of elements sharing a degree of freedom are added
        together, with their signs applied.

        Parameters
        ----------
        local : Sequence of array_like
            Local vectors of each element in the order of its modes.

        Returns
        -------
        (N,) array
            Assembled global vector.
        """
        if len(local) != self.n_elements:
            raise DimensionMismatchError(
                f"Expected {self.n_elements} element vectors, got {len(local)}."
            )
        boundary = np.zeros(self.lmap.n_global_boundary, np.float64)
        interior: list[npt.NDArray[np.float64]] = list()
        for ie, vec in enumerate(local):
            v = np.asarray(vec, np.float64)
            lb = self.local_boundary[ie]
            li = self.local_interior[ie]
            if v.shape != (lb.size + li.size,):
                raise DimensionMismatchError(
                    f"Element {ie} vector has shape {v.shape}, expected"
                    f" ({lb.size + li.size},)."
                )
            self.lmap.scatter_add(ie, v[lb], boundary)
            interior.append(v[li])
        return self.join(boundary, interior)


def _element_triplets(
    mat: npt.NDArray[np.float64],
    rows: npt.NDArray[np.intp],
    cols: npt.NDArray[np.intp],
    row_signs: npt.NDArray[np.float64],
    col_signs: npt.NDArray[np.float64],
) -> tuple[npt.NDArray[np.intp], npt.NDArray[np.intp], npt.NDArray[np.float64]]:
    """Make COO entries for a dense block scattered to rows and columns."""
    return (
        np.repeat(rows, cols.size),
        np.tile(cols, rows.size),
        np.ravel(row_signs[:, None] * col_signs[None, :] * mat),
    )


def _combine_triplets(
    triplets: Sequence[
        tuple[npt.NDArray[np.intp], npt.NDArray[np.intp], npt.NDArray[np.float64]]
    ],
    n: int,
) -> sp.csr_array:
    """Sum all entries into a single CSR array."""
    if not triplets:
        return sp.csr_array((n, n), dtype=np.float64)
    rows = np.concatenate([t[0] for t in triplets])
    cols = np.concatenate([t[1] for t in triplets])
    vals = np.concatenate([t[2] for t in triplets])
    # Duplicate entries are summed during conversion
    return sp.coo_array((vals, (rows, cols)), shape=(n, n)).tocsr()


def assemble_schur(
    blocks: Sequence[StaticCondensationBlock], lmap: LocalToGlobalMap
) -> sp.csr_array:
    """Assemble element Schur complements into the global boundary matrix.

    Parameters
    ----------
    blocks : Sequence of StaticCondensationBlock
        Condensed matrices of all elements.

    lmap : LocalToGlobalMap
        Map of boundary degrees of freedom.

    Returns
    -------
    csr_array
        Global boundary matrix of shape ``(n_global_boundary, n_global_boundary)``.
    """
    lmap.check_boundary_counts([b.nb for b in blocks])
    triplets = list()
    for ie, block in enumerate(blocks):
        bmap, bsign = lmap.boundary_map(ie)
        triplets.append(_element_triplets(block.schur, bmap, bmap, bsign, bsign))
    return _combine_triplets(triplets, lmap.n_global_boundary)


def assemble_full(
    blocks: Sequence[ElementBlockMatrix], layout: DofLayout
) -> sp.csr_array:
    """Assemble element matrices into the full global matrix.

    Parameters
    ----------
    blocks : Sequence of ElementBlockMatrix
        Partitioned matrices of all elements.

    layout : DofLayout
        Layout of global degrees of freedom.

    Returns
    -------
    csr_array
        Global matrix of shape ``(n_global, n_global)``.
    """
    lmap = layout.lmap
    lmap.check_boundary_counts([b.nb for b in blocks])
    triplets = list()
    for ie, block in enumerate(blocks):
        bmap, bsign = lmap.boundary_map(ie)
        imap = layout.interior_indices(ie)
        if imap.size != block.ni:
            raise DimensionMismatchError(
                f"Element {ie} has {block.ni} interior DoFs, layout has {imap.size}."
            )
        isign = np.ones(imap.size, np.float64)
        triplets.append(_element_triplets(block.bb, bmap, bmap, bsign, bsign))
        triplets.append(_element_triplets(block.bi, bmap, imap, bsign, isign))
        triplets.append(_element_triplets(block.ib, imap, bmap, isign, bsign))
        triplets.append(_element_triplets(block.ii, imap, imap, isign, isign))
    return _combine_triplets(triplets, layout.n_global)


def assemble_boundary_diagonal(
    blocks: Sequence[StaticCondensationBlock], lmap: LocalToGlobalMap
) -> npt.NDArray[np.float64]:
    """Assemble only the diagonal of the global boundary matrix.

    Signs do not appear, since they cancel on the diagonal.
    """
    lmap.check_boundary_counts([b.nb for b in blocks])
    out = np.zeros(lmap.n_global_boundary, np.float64)
    for ie, block in enumerate(blocks):
        bmap, _ = lmap.boundary_map(ie)
        np.add.at(out, bmap, np.diag(block.schur))
    return out


def restrict_free(
    mat: sp.csr_array, n_dirichlet: int
) -> tuple[sp.csr_array, sp.csr_array]:
    """Split off rows of free DoFs into their free and Dirichlet columns.

    Returns
    -------
    csr_array
        Block coupling free degrees of freedom to each other.

    csr_array
        Block coupling free degrees of freedom to Dirichlet ones.
    """
    if n_dirichlet < 0 or n_dirichlet > mat.shape[0]:
        raise ConfigurationError(f"Invalid number of Dirichlet DoFs {n_dirichlet}.")
    free = mat[n_dirichlet:, :]
    return free[:, n_dirichlet:].tocsr(), free[:, :n_dirichlet].tocsr()
