"""Global linear systems.

A global system is created once for a :class:`GlobalLinSysKey` and can then
be solved repeatedly for different right sides. Three strategies exist, which
all share the same interface:

- :class:`GlobalLinSysDirectFull` assembles and factors the full matrix,
- :class:`GlobalLinSysDirectStaticCond` eliminates interior DoFs of each
  element, then assembles and factors the Schur complement of boundary DoFs,
- :class:`GlobalLinSysIterativeStaticCond` also eliminates interior DoFs, but
  solves the boundary system iteratively without assembling it.

Global vectors are laid out as described by :class:`statcond.assembly.DofLayout`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from types import MappingProxyType
from typing import ClassVar, TypeVar

import numpy as np
import numpy.typing as npt
from scipy import sparse as sp
from scipy.sparse import linalg as sla

from statcond.assembly import (
    DofLayout,
    LocalToGlobalMap,
    assemble_boundary_diagonal,
    assemble_full,
    assemble_schur,
    restrict_free,
)
from statcond.cache import MatrixCache
from statcond.condensation import PIVOT_TOLERANCE, StaticCondensationBlock
from statcond.element import Element
from statcond.errors import (
    ConfigurationError,
    ConvergenceError,
    DimensionMismatchError,
    SingularBlockError,
)
from statcond.keys import GlobalLinSysKey, OperatorKey
from statcond.matrices import ElementBlockMatrix, ScaledMatrix
from statcond.progress import HistogramFormat, ProgressTracker
from statcond.provider import ElementMatrixProvider, stacked_quadrature_sizes
from statcond.robin import RobinMap, apply_robin_contributions, element_robin_contributions
from statcond.settings import GlobalSysSolnType, SolverSettings
from statcond.solving import ITERATIVE_SOLVERS, Operator, make_preconditioner

_T = TypeVar("_T")


def factor_global_matrix(mat: sp.csr_array) -> sla.SuperLU:
    """Compute sparse LU factorization of a global matrix.

    Raises
    ------
    SingularBlockError
        If the matrix is singular, or if a pivot of the factorization is
        non-finite or zero relative to the largest one.
    """
    try:
        lu = sla.splu(mat.tocsc())
    except RuntimeError as err:
        raise SingularBlockError(f"Global matrix is singular: {err}") from err

    pivots = np.abs(lu.U.diagonal())
    largest = pivots.max()
    if not np.all(np.isfinite(pivots)) or pivots.min() <= PIVOT_TOLERANCE * largest:
        raise SingularBlockError(
            f"Global matrix is numerically singular (smallest pivot {pivots.min():.3e},"
            f" largest {largest:.3e})"
        )
    return lu


class GlobalLinSys(ABC):
    """Global linear system built from element matrices.

    Parameters
    ----------
    key : GlobalLinSysKey
        Operator of the system.

    elements : Sequence of Element
        Elements of the mesh.

    lmap : LocalToGlobalMap
        Map of element boundary DoFs to global ones.

    provider : ElementMatrixProvider
        Provider of element matrices.

    robin : Mapping of int to Sequence of RobinContribution, optional
        Robin boundary terms of elements, keyed by element index.

    settings : SolverSettings, optional
        Settings of the solver. Defaults are used if not given.
    """

    solution_type: ClassVar[GlobalSysSolnType]

    key: GlobalLinSysKey
    elements: tuple[Element, ...]
    lmap: LocalToGlobalMap
    provider: ElementMatrixProvider
    robin: RobinMap | None
    settings: SolverSettings
    layout: DofLayout
    matrix_cache: MatrixCache[OperatorKey, ScaledMatrix]
    block_cache: MatrixCache[Hashable, ElementBlockMatrix]
    last_iterations: int
    last_residual: float

    def __init__(
        self,
        key: GlobalLinSysKey,
        elements: Sequence[Element],
        lmap: LocalToGlobalMap,
        provider: ElementMatrixProvider,
        robin: RobinMap | None = None,
        settings: SolverSettings | None = None,
    ) -> None:
        self.key = key
        self.elements = tuple(elements)
        self.lmap = lmap
        self.provider = provider
        self.robin = robin
        self.settings = SolverSettings() if settings is None else settings
        self.last_iterations = 0
        self.last_residual = 0.0

        if len(self.elements) != lmap.n_elements:
            raise DimensionMismatchError(
                f"There are {len(self.elements)} elements, but the map has"
                f" {lmap.n_elements}."
            )
        if robin is not None:
            for ie in robin:
                if not (0 <= ie < len(self.elements)):
                    raise ConfigurationError(
                        f"Robin contributions given for non-existent element {ie}."
                    )

        self.layout = DofLayout(
            lmap,
            tuple(provider.boundary_map(e) for e in self.elements),
            tuple(provider.interior_map(e) for e in self.elements),
        )
        self._phys_offsets = self._coefficient_offsets()
        self.matrix_cache = MatrixCache(name="ElementMatrixCache")
        self.block_cache = MatrixCache(name="ElementBlockCache")

        self._setup()
        if self.settings.verbose:
            self.print_statistics()

    def _coefficient_offsets(self) -> npt.NDArray[np.intp]:
        """Offsets of element quadrature points in variable coefficient arrays."""
        if self.key.n_variable_coefficients == 0:
            return np.zeros(len(self.elements) + 1, np.intp)
        offsets = stacked_quadrature_sizes(self.provider, self.elements)
        for coeffs in self.key.variable_coefficients:
            if coeffs.size < offsets[-1]:
                raise DimensionMismatchError(
                    f"Variable coefficient array has {coeffs.size} values, but"
                    f" {offsets[-1]} quadrature points are needed."
                )
        return offsets

    @abstractmethod
    def _setup(self) -> None:
        """Build and factor whatever the strategy needs."""
        ...

    @abstractmethod
    def solve(
        self,
        rhs: npt.ArrayLike,
        dirichlet_values: npt.ArrayLike | None = None,
    ) -> npt.NDArray[np.float64]:
        """Solve the system.

        Parameters
        ----------
        rhs : (N,) array_like
            Assembled right side of the system, laid out as :attr:`layout`.

        dirichlet_values : array_like, optional
            Values of the Dirichlet DoFs. Zero if not given.

        Returns
        -------
        (N,) array
            Global solution vector.
        """
        ...

    # Element level operations

    def _map_elements(self, function: Callable[[int], _T]) -> list[_T]:
        """Call the function for every element index, possibly in parallel.

        If any of the calls fail, the error of the first element in order is
        raised once all calls are done.
        """
        n = len(self.elements)
        if self.settings.n_workers == 1 or n < 2:
            return [function(ie) for ie in range(n)]

        with ThreadPoolExecutor(self.settings.n_workers) as executor:
            futures = [executor.submit(function, ie) for ie in range(n)]

        out: list[_T] = list()
        for ie, future in enumerate(futures):
            err = future.exception()
            if err is not None:
                # Shared blocks report the element which created them
                if isinstance(err, SingularBlockError) and err.element_index not in (
                    None,
                    ie,
                ):
                    raise SingularBlockError(err.args[0], ie) from err
                raise err
            out.append(future.result())
        return out

    def element_key(self, element_index: int) -> OperatorKey:
        """Operator key of an element."""
        element = self.elements[element_index]
        return self.key.element_key(
            element, int(self._phys_offsets[element_index]), element.geometric_factors
        )

    def _block_key(self, element_index: int) -> Hashable:
        """Cache key of blocks of an element.

        Elements with Robin terms have their own blocks, others share them
        with all elements with the same operator key.
        """
        key = self.element_key(element_index)
        if element_robin_contributions(self.robin, element_index):
            return (key, element_index)
        return key

    def element_matrix(self, element_index: int) -> ScaledMatrix:
        """Full local matrix of an element, including Robin terms."""
        key = self.element_key(element_index)
        element = self.elements[element_index]
        base = self.matrix_cache.get(
            key, lambda: self.provider.build_matrix(key, element)
        )
        return apply_robin_contributions(
            base,
            element_robin_contributions(self.robin, element_index),
            element,
            self.provider,
        )

    def get_element_block(self, element_index: int) -> ElementBlockMatrix:
        """Partitioned local matrix of an element."""
        if not (0 <= element_index < len(self.elements)):
            raise IndexError(f"Element index {element_index} is out of range.")
        return self.block_cache.get(
            self._block_key(element_index),
            lambda: ElementBlockMatrix.from_dense(
                self.element_matrix(element_index).value,
                self.layout.local_boundary[element_index],
                self.layout.local_interior[element_index],
            ),
        )

    # Vector operations

    @property
    def n_global(self) -> int:
        """Number of global degrees of freedom."""
        return self.layout.n_global

    def global_to_local(self, vec: npt.ArrayLike) -> list[npt.NDArray[np.float64]]:
        """Extract local coefficients of each element from a global vector."""
        return self.layout.global_to_local(vec)

    def local_to_global(
        self, local: Sequence[npt.ArrayLike]
    ) -> npt.NDArray[np.float64]:
        """Assemble element vectors into a global vector."""
        return self.layout.local_to_global(local)

    def _dirichlet_values(
        self, dirichlet_values: npt.ArrayLike | None
    ) -> npt.NDArray[np.float64]:
        nd = self.lmap.n_dirichlet
        if dirichlet_values is None:
            return np.zeros(nd, np.float64)
        values = np.asarray(dirichlet_values, np.float64)
        if values.shape != (nd,):
            raise DimensionMismatchError(
                f"Expected {nd} Dirichlet values, got an array of shape {values.shape}."
            )
        return values

    def print_statistics(self) -> None:
        """Print the size of the system and a histogram of element boundary DoFs."""
        counts = np.array([b.size for b in self.layout.local_boundary])
        print(
            f"{type(self).__name__}: {len(self.elements)} elements,"
            f" {self.lmap.n_global_boundary} boundary DoFs"
            f" ({self.lmap.n_dirichlet} Dirichlet), {self.n_global} DoFs in total"
        )
        if counts.size:
            print("Boundary DoFs per element:")
            print(HistogramFormat(5, 40, 3, label_format=lambda x: f"{x:g}")(counts))


class GlobalLinSysDirectFull(GlobalLinSys):
    """Global system solved by factoring the full matrix."""

    solution_type = GlobalSysSolnType.DIRECT_FULL_MATRIX

    def _setup(self) -> None:
        blocks = self._map_elements(self.get_element_block)
        self.matrix = assemble_full(blocks, self.layout)
        self._free_matrix, self._dirichlet_matrix = restrict_free(
            self.matrix, self.lmap.n_dirichlet
        )
        self._lu = (
            factor_global_matrix(self._free_matrix)
            if self._free_matrix.shape[0]
            else None
        )

    def solve(
        self,
        rhs: npt.ArrayLike,
        dirichlet_values: npt.ArrayLike | None = None,
    ) -> npt.NDArray[np.float64]:
        """Solve the system.

        Parameters
        ----------
        rhs : (N,) array_like
            Assembled right side of the system, laid out as :attr:`layout`.

        dirichlet_values : array_like, optional
            Values of the Dirichlet DoFs. Zero if not given.

        Returns
        -------
        (N,) array
            Global solution vector.
        """
        vec = self.layout.check_global(rhs)
        values = self._dirichlet_values(dirichlet_values)
        nd = self.lmap.n_dirichlet
        out = np.zeros(self.n_global, np.float64)
        out[:nd] = values
        if self._lu is not None:
            out[nd:] = self._lu.solve(vec[nd:] - self._dirichlet_matrix @ values)
        return out


class _GlobalLinSysStaticCond(GlobalLinSys):
    """Global systems which eliminate interior DoFs of elements."""

    condensed_cache: MatrixCache[Hashable, StaticCondensationBlock]
    condensed: list[StaticCondensationBlock]

    def __init__(
        self,
        key: GlobalLinSysKey,
        elements: Sequence[Element],
        lmap: LocalToGlobalMap,
        provider: ElementMatrixProvider,
        robin: RobinMap | None = None,
        settings: SolverSettings | None = None,
    ) -> None:
        self.condensed_cache = MatrixCache(name="StaticCondensationCache")
        super().__init__(key, elements, lmap, provider, robin, settings)

    def get_condensed_block(self, element_index: int) -> StaticCondensationBlock:
        """Condensed matrix of an element."""
        return self.condensed_cache.get(
            self._block_key(element_index),
            lambda: StaticCondensationBlock.from_block_matrix(
                self.get_element_block(element_index), element_index
            ),
        )

    def _setup(self) -> None:
        self.condensed = self._map_elements(self.get_condensed_block)
        self._setup_boundary()

    @abstractmethod
    def _setup_boundary(self) -> None:
        """Prepare the solver of the boundary system."""
        ...

    @abstractmethod
    def _solve_boundary(
        self, rhs: npt.NDArray[np.float64], dirichlet_values: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """Solve for free boundary DoFs, given the condensed right side of them."""
        ...

    def condense_rhs(
        self, f_b: npt.NDArray[np.float64], f_i: Sequence[npt.NDArray[np.float64]]
    ) -> npt.NDArray[np.float64]:
        """Eliminate interior forcing from the global boundary forcing."""
        out = np.array(f_b, np.float64)
        for ie, block in enumerate(self.condensed):
            if block.ni:
                self.lmap.scatter_add(ie, -(block.bnd_int @ f_i[ie]), out)
        return out

    def back_substitute(
        self, u_b: npt.NDArray[np.float64], f_i: Sequence[npt.NDArray[np.float64]]
    ) -> list[npt.NDArray[np.float64]]:
        """Compute interior unknowns of every element."""
        return [
            block.interior_solution(f_i[ie], self.lmap.gather(ie, u_b))
            for ie, block in enumerate(self.condensed)
        ]

    def solve(
        self,
        rhs: npt.ArrayLike,
        dirichlet_values: npt.ArrayLike | None = None,
    ) -> npt.NDArray[np.float64]:
        """Solve the system.

        The boundary forcing is condensed first, then the boundary system is
        solved. Interior unknowns are then computed element by element.

        Parameters
        ----------
        rhs : (N,) array_like
            Assembled right side of the system, laid out as :attr:`layout`.

        dirichlet_values : array_like, optional
            Values of the Dirichlet DoFs. Zero if not given.

        Returns
        -------
        (N,) array
            Global solution vector.
        """
        f_b, f_i = self.layout.split(rhs)
        values = self._dirichlet_values(dirichlet_values)
        nd = self.lmap.n_dirichlet

        g_b = self.condense_rhs(f_b, f_i)
        u_b = np.zeros(self.lmap.n_global_boundary, np.float64)
        u_b[:nd] = values
        u_b[nd:] = self._solve_boundary(g_b[nd:], values)

        return self.layout.join(u_b, self.back_substitute(u_b, f_i))


class GlobalLinSysDirectStaticCond(_GlobalLinSysStaticCond):
    """Global system solved by factoring the assembled Schur complement."""

    solution_type = GlobalSysSolnType.DIRECT_STATIC_COND

    def _setup_boundary(self) -> None:
        self.schur = assemble_schur(self.condensed, self.lmap)
        self._free_schur, self._dirichlet_schur = restrict_free(
            self.schur, self.lmap.n_dirichlet
        )
        self._lu = (
            factor_global_matrix(self._free_schur) if self.lmap.n_free else None
        )

    def _solve_boundary(
        self, rhs: npt.NDArray[np.float64], dirichlet_values: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        if self._lu is None:
            return np.zeros(0, np.float64)
        return self._lu.solve(rhs - self._dirichlet_schur @ dirichlet_values)


class GlobalLinSysIterativeStaticCond(_GlobalLinSysStaticCond):
    """Global system with the Schur complement solved iteratively.

    The Schur complement is applied element by element, so it is never
    assembled. Only its diagonal is assembled for the preconditioner.
    """

    solution_type = GlobalSysSolnType.ITERATIVE_STATIC_COND

    def _setup_boundary(self) -> None:
        nd = self.lmap.n_dirichlet
        self.diagonal = assemble_boundary_diagonal(self.condensed, self.lmap)
        self._precondition: Operator = make_preconditioner(
            self.settings.preconditioner, self.diagonal[nd:]
        )
        self._iterative_solver = ITERATIVE_SOLVERS[self.settings.iterative_method]

    def apply_schur(self, u_b: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Apply the global Schur complement to all global boundary values."""
        vec = np.asarray(u_b, np.float64)
        if vec.shape != (self.lmap.n_global_boundary,):
            raise DimensionMismatchError(
                f"Boundary vector has shape {vec.shape}, expected"
                f" ({self.lmap.n_global_boundary},)."
            )
        out = np.zeros_like(vec)
        for ie, block in enumerate(self.condensed):
            self.lmap.scatter_add(ie, block.apply_schur(self.lmap.gather(ie, vec)), out)
        return out

    def _apply_free(self, u_f: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        nd = self.lmap.n_dirichlet
        u_b = np.zeros(self.lmap.n_global_boundary, np.float64)
        u_b[nd:] = u_f
        return self.apply_schur(u_b)[nd:]

    def _solve_boundary(
        self, rhs: npt.NDArray[np.float64], dirichlet_values: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        nd = self.lmap.n_dirichlet
        if nd:
            u_d = np.zeros(self.lmap.n_global_boundary, np.float64)
            u_d[:nd] = dirichlet_values
            rhs = rhs - self.apply_schur(u_d)[nd:]

        if not np.any(rhs):
            self.last_iterations = 0
            self.last_residual = 0.0
            return np.zeros_like(rhs)

        convergence = self.settings.convergence
        rhs_norm = float(np.linalg.norm(rhs))
        tolerance = convergence.tolerance(rhs_norm)
        callback: Callable[[float], None] | None = None
        if self.settings.verbose:
            tracker = ProgressTracker(tolerance, rhs_norm, convergence.maximum_iterations)

            def print_progress(residual: float) -> None:
                tracker.update(residual)
                print(tracker.state_str("{} - {} | {}"), end="\r")

            callback = print_progress

        solution, residual, iterations = self._iterative_solver(
            self._apply_free, self._precondition, rhs, convergence, callback
        )
        if self.settings.verbose:
            print()
        self.last_iterations = iterations
        self.last_residual = residual
        if not residual <= tolerance:
            raise ConvergenceError(
                f"Iterative solver reached a residual of {residual:.3e} after"
                f" {iterations} iterations, but {tolerance:.3e} was required."
            )
        return solution


LinSysCreator = Callable[
    [
        GlobalLinSysKey,
        Sequence[Element],
        LocalToGlobalMap,
        ElementMatrixProvider,
        "RobinMap | None",
        "SolverSettings | None",
    ],
    GlobalLinSys,
]
"""Function which creates a global system."""

_DEFAULT_CREATORS: Mapping[GlobalSysSolnType, LinSysCreator] = MappingProxyType(
    {
        GlobalSysSolnType.DIRECT_FULL_MATRIX: GlobalLinSysDirectFull,
        GlobalSysSolnType.DIRECT_STATIC_COND: GlobalLinSysDirectStaticCond,
        GlobalSysSolnType.ITERATIVE_STATIC_COND: GlobalLinSysIterativeStaticCond,
    }
)


class GlobalLinSysRegistry:
    """Table of functions creating global systems for each solution type.

    Parameters
    ----------
    creators : Mapping of GlobalSysSolnType to creator, optional
        Initial content of the table.
    """

    _creators: dict[GlobalSysSolnType, LinSysCreator]

    def __init__(
        self, creators: Mapping[GlobalSysSolnType, LinSysCreator] | None = None
    ) -> None:
        self._creators = dict(creators) if creators is not None else dict()

    @staticmethod
    def with_defaults() -> GlobalLinSysRegistry:
        """Create a registry with all built-in solution types."""
        return GlobalLinSysRegistry(_DEFAULT_CREATORS)

    def register(
        self,
        variant: GlobalSysSolnType | str,
        creator: LinSysCreator,
        replace: bool = False,
    ) -> None:
        """Register a creator for a solution type.

        Parameters
        ----------
        variant : GlobalSysSolnType or str
            Solution type.

        creator : callable
            Function, or type, which creates the system.

        replace : bool, default: False
            Replace an existing creator. Otherwise, registering the same type
            twice raises a :class:`ConfigurationError`.
        """
        soln_type = GlobalSysSolnType.from_value(variant)
        if not replace and soln_type in self._creators:
            raise ConfigurationError(f"Creator for {soln_type.name} is already registered.")
        self._creators[soln_type] = creator

    @property
    def variants(self) -> tuple[GlobalSysSolnType, ...]:
        """Registered solution types."""
        return tuple(self._creators)

    def __contains__(self, variant: object) -> bool:
        """Check if a creator for a solution type is registered."""
        if not isinstance(variant, (GlobalSysSolnType, str)):
            return False
        try:
            return GlobalSysSolnType.from_value(variant) in self._creators
        except ConfigurationError:
            return False

    def create(
        self,
        variant: GlobalSysSolnType | str,
        key: GlobalLinSysKey,
        elements: Sequence[Element],
        lmap: LocalToGlobalMap,
        provider: ElementMatrixProvider,
        robin: RobinMap | None = None,
        settings: SolverSettings | None = None,
    ) -> GlobalLinSys:
        """Create a global system with the creator of the solution type."""
        soln_type = GlobalSysSolnType.from_value(variant)
        try:
            creator = self._creators[soln_type]
        except KeyError:
            raise ConfigurationError(
                f"No creator is registered for {soln_type.name}."
            ) from None
        return creator(key, elements, lmap, provider, robin, settings)


def create_global_lin_sys(
    key: GlobalLinSysKey,
    elements: Sequence[Element],
    lmap: LocalToGlobalMap,
    variant: GlobalSysSolnType | str,
    provider: ElementMatrixProvider,
    robin: RobinMap | None = None,
    settings: SolverSettings | None = None,
    registry: GlobalLinSysRegistry | None = None,
) -> GlobalLinSys:
    """Create a global linear system.

    Parameters
    ----------
    key : GlobalLinSysKey
        Operator of the system.

    elements : Sequence of Element
        Elements of the mesh.

    lmap : LocalToGlobalMap
        Map of element boundary DoFs to global ones.

    variant : GlobalSysSolnType or str
        Strategy used to solve the system.

    provider : ElementMatrixProvider
        Provider of element matrices.

    robin : Mapping of int to Sequence of RobinContribution, optional
        Robin boundary terms of elements, keyed by element index.

    settings : SolverSettings, optional
        Settings of the solver.

    registry : GlobalLinSysRegistry, optional
        Registry to create the system with. If not given, a registry with
        built-in types is used.

    Returns
    -------
    GlobalLinSys
        Created system, ready to be solved.
    """
    if registry is None:
        registry = GlobalLinSysRegistry.with_defaults()
    return registry.create(variant, key, elements, lmap, provider, robin, settings)


class GlobalLinSysManager:
    """Owner of global systems of a mesh, created once per key.

    Parameters
    ----------
    elements : Sequence of Element
        Elements of the mesh.

    lmap : LocalToGlobalMap
        Map of element boundary DoFs to global ones.

    provider : ElementMatrixProvider
        Provider of element matrices, shared by all systems.

    variant : GlobalSysSolnType or str
        Strategy used to solve the systems.

    robin : Mapping of int to Sequence of RobinContribution, optional
        Robin boundary terms of elements, keyed by element index.

    settings : SolverSettings, optional
        Settings of the solvers.

    registry : GlobalLinSysRegistry, optional
        Registry used to create systems.
    """

    def __init__(
        self,
        elements: Sequence[Element],
        lmap: LocalToGlobalMap,
        provider: ElementMatrixProvider,
        variant: GlobalSysSolnType | str,
        robin: RobinMap | None = None,
        settings: SolverSettings | None = None,
        registry: GlobalLinSysRegistry | None = None,
    ) -> None:
        self.elements = tuple(elements)
        self.lmap = lmap
        self.provider = provider
        self.variant = GlobalSysSolnType.from_value(variant)
        self.robin = robin
        self.settings = settings
        self.registry = (
            GlobalLinSysRegistry.with_defaults() if registry is None else registry
        )
        self._systems: MatrixCache[GlobalLinSysKey, GlobalLinSys] = MatrixCache(
            self._create, "GlobalLinSysCache"
        )

    def _create(self, key: GlobalLinSysKey) -> GlobalLinSys:
        return create_global_lin_sys(
            key,
            self.elements,
            self.lmap,
            self.variant,
            self.provider,
            self.robin,
            self.settings,
            self.registry,
        )

    def get(self, key: GlobalLinSysKey) -> GlobalLinSys:
        """Return the system for the key, creating it on first use."""
        return self._systems[key]

    def solve(
        self,
        key: GlobalLinSysKey,
        rhs: npt.ArrayLike,
        dirichlet_values: npt.ArrayLike | None = None,
    ) -> npt.NDArray[np.float64]:
        """Solve the system of the key."""
        return self.get(key).solve(rhs, dirichlet_values)

    def __len__(self) -> int:
        """Return number of created systems."""
        return len(self._systems)
