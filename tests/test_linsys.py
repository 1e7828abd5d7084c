"""Check global linear systems and their solution types."""

from collections.abc import Callable, Sequence

import numpy as np
import numpy.typing as npt
import pytest
from statcond.assembly import LocalToGlobalMap
from statcond.element import Element
from statcond.errors import (
    ConfigurationError,
    ConvergenceError,
    DimensionMismatchError,
    SingularBlockError,
)
from statcond.examples import line_mesh, unit_square_mesh
from statcond.keys import ElementShape, GlobalLinSysKey, OperatorKey, OperatorType
from statcond.linsys import (
    GlobalLinSys,
    GlobalLinSysDirectFull,
    GlobalLinSysIterativeStaticCond,
    GlobalLinSysManager,
    GlobalLinSysRegistry,
    create_global_lin_sys,
)
from statcond.matrices import ScaledMatrix
from statcond.provider import ReferenceMatrixProvider
from statcond.robin import RobinContribution
from statcond.settings import ConvergenceSettings, GlobalSysSolnType, SolverSettings

ALL_VARIANTS = tuple(GlobalSysSolnType)

TIGHT = SolverSettings(ConvergenceSettings(2000, 1e-11, 1e-11))


def _rhs(
    system: GlobalLinSys,
    provider: ReferenceMatrixProvider,
    function: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
) -> npt.NDArray[np.float64]:
    """Assemble the load vector of a function of physical coordinates."""
    loads = [
        provider.inner_product(e, function(provider.quadrature_points(e)))
        for e in system.elements
    ]
    return system.local_to_global(loads)


def _max_error(
    system: GlobalLinSys,
    provider: ReferenceMatrixProvider,
    solution: npt.NDArray[np.float64],
    exact: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
) -> float:
    """Largest error at a few points in each element."""
    t = np.linspace(-1, 1, 7)
    err = 0.0
    for element, coeffs in zip(system.elements, system.global_to_local(solution)):
        if element.shape == ElementShape.SEGMENT:
            xi: Sequence[npt.NDArray[np.float64]] = (t,)
        else:
            x, y = np.meshgrid(t, t)
            xi = (np.ravel(x), np.ravel(y))
        pos = element.map_to_physical(*xi)
        values = provider.evaluate(element, coeffs, *xi)
        err = max(err, float(np.max(np.abs(values - exact(pos)))))
    return err


@pytest.mark.parametrize("variant", ALL_VARIANTS)
def test_two_segment_mass(variant: GlobalSysSolnType) -> None:
    """Check two linear mass elements solve the tri-diagonal system."""
    provider = ReferenceMatrixProvider()
    elements = [
        Element(ElementShape.SEGMENT, 1, (-1.0, 1.0)),
        Element(ElementShape.SEGMENT, 1, (1.0, 3.0)),
    ]
    lmap = LocalToGlobalMap([(0, 1), (1, 2)], None, 3)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.MASS), elements, lmap, variant, provider, settings=TIGHT
    )
    block = system.get_element_block(0)
    assert block.nb == 2 and block.ni == 0
    assert block.bb == pytest.approx(np.array([[2, 1], [1, 2]]) / 3)

    f = np.ones(3)
    expected = np.linalg.solve(np.array([[2, 1, 0], [1, 4, 1], [0, 1, 2]]) / 3, f)
    assert system.solve(f) == pytest.approx(expected)
    # Repeated solves with the same system
    assert system.solve(2 * f) == pytest.approx(2 * expected)


@pytest.mark.parametrize("variant", ALL_VARIANTS)
@pytest.mark.parametrize("n_workers", (1, 4))
def test_helmholtz_1d(variant: GlobalSysSolnType, n_workers: int) -> None:
    """Check the 1D Helmholtz problem is solved accurately."""
    lam = 2.0
    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(4, 6, 0.0, 1.0)
    settings = SolverSettings(TIGHT.convergence, n_workers=n_workers)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.HELMHOLTZ, (lam,)),
        elements,
        lmap,
        variant,
        provider,
        settings=settings,
    )
    rhs = _rhs(
        system, provider, lambda x: (np.pi**2 + lam) * np.sin(np.pi * x[:, 0])
    )
    solution = system.solve(rhs)
    assert _max_error(system, provider, solution, lambda x: np.sin(np.pi * x[:, 0])) < 1e-6
    # Identical elements share their matrices
    assert len(system.block_cache) == 1


@pytest.mark.parametrize("variant", ALL_VARIANTS)
@pytest.mark.parametrize("n", (3, 7))
def test_shared_blocks(variant: GlobalSysSolnType, n: int) -> None:
    """Check equal elements share one block, which can not be modified."""
    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(n, 3)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN), elements, lmap, variant, provider
    )
    first = system.get_element_block(0)
    assert len(system.block_cache) == 1
    assert all(system.get_element_block(ie) is first for ie in range(n))
    value = first.bb[0, 0]
    with pytest.raises(ValueError):
        first.bb[0, 0] += 100
    assert system.get_element_block(n - 1).bb[0, 0] == value


@pytest.mark.parametrize("variant", ALL_VARIANTS)
def test_dirichlet_values(variant: GlobalSysSolnType) -> None:
    """Check prescribed values give the exact linear solution."""
    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(3, 3, 0.0, 1.0)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN), elements, lmap, variant, provider, settings=TIGHT
    )
    solution = system.solve(np.zeros(system.n_global), [1.0, 3.0])
    assert solution[:2] == pytest.approx([1.0, 3.0])
    assert _max_error(system, provider, solution, lambda x: 1 + 2 * x[:, 0]) < 1e-9

    with pytest.raises(DimensionMismatchError):
        system.solve(np.zeros(system.n_global), [1.0])


@pytest.mark.parametrize("variant", ALL_VARIANTS)
def test_poisson_2d(variant: GlobalSysSolnType) -> None:
    """Check the 2D Poisson problem is solved accurately."""
    provider = ReferenceMatrixProvider()
    elements, lmap = unit_square_mesh(2, 2, 8)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN), elements, lmap, variant, provider, settings=TIGHT
    )

    def exact(x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return np.sin(np.pi * x[:, 0]) * np.sin(np.pi * x[:, 1])

    rhs = _rhs(system, provider, lambda x: 2 * np.pi**2 * exact(x))
    solution = system.solve(rhs)
    assert _max_error(system, provider, solution, exact) < 1e-4


def test_variants_agree() -> None:
    """Check all solution types give the same solution for a random right side."""
    provider = ReferenceMatrixProvider()
    elements, lmap = unit_square_mesh(3, 2, 4, dirichlet=False)
    key = GlobalLinSysKey(OperatorType.HELMHOLTZ, (1.0,))
    systems = [
        create_global_lin_sys(key, elements, lmap, variant, provider, settings=TIGHT)
        for variant in ALL_VARIANTS
    ]
    rng = np.random.default_rng(42)
    rhs = rng.random(systems[0].n_global)
    solutions = [system.solve(rhs) for system in systems]

    for s in solutions[1:]:
        assert s == pytest.approx(solutions[0], rel=1e-7, abs=1e-9)


@pytest.mark.parametrize("variant", ALL_VARIANTS)
def test_robin_boundary(variant: GlobalSysSolnType) -> None:
    """Check a Robin condition gives the exact linear solution."""
    alpha = 2.0
    provider = ReferenceMatrixProvider()
    elements = [
        Element(ElementShape.SEGMENT, 2, (0.0, 0.5)),
        Element(ElementShape.SEGMENT, 2, (0.5, 1.0)),
    ]
    lmap = LocalToGlobalMap([(0, 1), (1, 2)], None, 3, n_dirichlet=1)
    robin = {1: [RobinContribution(1, alpha)]}
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN),
        elements,
        lmap,
        variant,
        provider,
        robin,
        TIGHT,
    )
    # u = x satisfies u' + alpha u = 1 + alpha at x = 1
    rhs = np.zeros(system.n_global)
    rhs[2] = 1 + alpha
    solution = system.solve(rhs)
    assert solution[:3] == pytest.approx([0.0, 0.5, 1.0])
    assert solution[3:] == pytest.approx(np.zeros(2), abs=1e-12)
    # The element with Robin terms has its own block
    assert len(system.block_cache) == 2
    assert system.get_element_block(1).bb[1, 1] == pytest.approx(
        system.get_element_block(0).bb[1, 1] + alpha
    )


def test_variable_coefficients() -> None:
    """Check a unit variable coefficient gives the same system as none."""
    provider = ReferenceMatrixProvider()
    elements, lmap = unit_square_mesh(2, 1, 3)
    n_points = sum(provider.num_quadrature_points(e) for e in elements)
    coefficient = np.ones(n_points)
    plain = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.HELMHOLTZ, (3.0,)),
        elements,
        lmap,
        GlobalSysSolnType.DIRECT_STATIC_COND,
        provider,
    )
    variable = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.HELMHOLTZ, (3.0,), (coefficient,)),
        elements,
        lmap,
        GlobalSysSolnType.DIRECT_STATIC_COND,
        provider,
    )
    rhs = np.linspace(0, 1, plain.n_global)
    assert variable.solve(rhs) == pytest.approx(plain.solve(rhs))
    assert variable.element_key(1).variable_coefficients[0].offset == (
        provider.num_quadrature_points(elements[0])
    )

    with pytest.raises(DimensionMismatchError):
        create_global_lin_sys(
            GlobalLinSysKey(OperatorType.HELMHOLTZ, (3.0,), (coefficient[:-1],)),
            elements,
            lmap,
            GlobalSysSolnType.DIRECT_STATIC_COND,
            provider,
        )


@pytest.mark.parametrize("variant", ALL_VARIANTS)
def test_rhs_size_mismatch(variant: GlobalSysSolnType) -> None:
    """Check wrongly sized right sides are rejected."""
    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(2, 3)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN), elements, lmap, variant, provider
    )
    with pytest.raises(DimensionMismatchError):
        system.solve(np.zeros(system.n_global + 1))


def test_element_count_mismatch() -> None:
    """Check the map must match the elements."""
    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(3, 2)
    with pytest.raises(DimensionMismatchError):
        create_global_lin_sys(
            GlobalLinSysKey(OperatorType.MASS),
            elements[:2],
            lmap,
            GlobalSysSolnType.DIRECT_STATIC_COND,
            provider,
        )
    with pytest.raises(ConfigurationError):
        create_global_lin_sys(
            GlobalLinSysKey(OperatorType.MASS),
            elements,
            lmap,
            GlobalSysSolnType.DIRECT_STATIC_COND,
            provider,
            {5: [RobinContribution(0, 1.0)]},
        )


class _SingularProvider(ReferenceMatrixProvider):
    """Provider with singular interior blocks for elements longer than one."""

    def build_matrix(self, key: OperatorKey, element: Element) -> ScaledMatrix:
        """Build the matrix, removing the interior mode of long elements."""
        mat = super().build_matrix(key, element).value
        if element.geometric_factors.jacobian > 0.5:
            mat[2, :] = 0
            mat[:, 2] = 0
        return ScaledMatrix(1.0, mat)


@pytest.mark.parametrize("n_workers", (1, 3))
@pytest.mark.parametrize(
    "variant",
    (GlobalSysSolnType.DIRECT_STATIC_COND, GlobalSysSolnType.ITERATIVE_STATIC_COND),
)
def test_singular_element(variant: GlobalSysSolnType, n_workers: int) -> None:
    """Check a singular interior block reports the first offending element."""
    provider = _SingularProvider()
    elements = [
        Element(ElementShape.SEGMENT, 2, (0.0, 1.0)),
        Element(ElementShape.SEGMENT, 2, (1.0, 3.0)),
        Element(ElementShape.SEGMENT, 2, (3.0, 4.0)),
        Element(ElementShape.SEGMENT, 2, (4.0, 6.0)),
    ]
    lmap = LocalToGlobalMap([(0, 1), (1, 2), (2, 3), (3, 4)], None, 5)
    with pytest.raises(SingularBlockError) as exc_info:
        create_global_lin_sys(
            GlobalLinSysKey(OperatorType.MASS),
            elements,
            lmap,
            variant,
            provider,
            settings=SolverSettings(n_workers=n_workers),
        )
    assert exc_info.value.element_index == 1


class _ConstantProvider(ReferenceMatrixProvider):
    """Provider which gives every element a matrix of ones."""

    def build_matrix(self, key: OperatorKey, element: Element) -> ScaledMatrix:
        """Build a matrix of ones."""
        return ScaledMatrix(1.0, np.ones((element.n_modes, element.n_modes)))


def test_singular_global() -> None:
    """Check a singular global system is reported without an element."""
    provider = _ConstantProvider()
    elements, lmap = line_mesh(2, 1, dirichlet=False)
    with pytest.raises(SingularBlockError) as exc_info:
        create_global_lin_sys(
            GlobalLinSysKey(OperatorType.LAPLACIAN),
            elements,
            lmap,
            GlobalSysSolnType.DIRECT_STATIC_COND,
            provider,
        )
    assert exc_info.value.element_index is None


@pytest.mark.parametrize(
    "variant",
    (GlobalSysSolnType.DIRECT_FULL_MATRIX, GlobalSysSolnType.DIRECT_STATIC_COND),
)
@pytest.mark.parametrize(
    "mesh",
    (
        lambda: line_mesh(5, 4, dirichlet=False),
        lambda: unit_square_mesh(3, 2, 3, dirichlet=False),
    ),
)
def test_pure_neumann_singular(
    variant: GlobalSysSolnType,
    mesh: Callable[[], tuple[list[Element], LocalToGlobalMap]],
) -> None:
    """Check Laplacian without Dirichlet DoFs is reported as singular.

    Constants are in its null space, but due to roundoff the factorization
    usually ends with a tiny pivot instead of an exactly zero one.
    """
    elements, lmap = mesh()
    with pytest.raises(SingularBlockError) as exc_info:
        create_global_lin_sys(
            GlobalLinSysKey(OperatorType.LAPLACIAN),
            elements,
            lmap,
            variant,
            ReferenceMatrixProvider(),
        )
    assert exc_info.value.element_index is None


def test_iterative_statistics() -> None:
    """Check iterative solver statistics and the zero right side."""
    provider = ReferenceMatrixProvider()
    elements, lmap = unit_square_mesh(2, 2, 4)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN),
        elements,
        lmap,
        GlobalSysSolnType.ITERATIVE_STATIC_COND,
        provider,
        settings=TIGHT,
    )
    assert isinstance(system, GlobalLinSysIterativeStaticCond)

    solution = system.solve(np.zeros(system.n_global))
    assert np.all(solution == 0)
    assert system.last_iterations == 0

    rhs = system.local_to_global([np.ones(e.n_modes) for e in elements])
    system.solve(rhs)
    assert system.last_iterations > 0
    assert system.last_residual <= 1e-11


@pytest.mark.parametrize(
    ("method", "preconditioner"),
    (("cg", "null"), ("cg", "diagonal"), ("gmres", "null"), ("gmres", "diagonal")),
)
def test_iterative_methods(method: str, preconditioner: str) -> None:
    """Check all iterative methods and preconditioners agree with the direct solve."""
    provider = ReferenceMatrixProvider()
    elements, lmap = unit_square_mesh(2, 3, 3)
    key = GlobalLinSysKey(OperatorType.HELMHOLTZ, (0.5,))
    direct = create_global_lin_sys(
        key, elements, lmap, GlobalSysSolnType.DIRECT_FULL_MATRIX, provider
    )
    iterative = create_global_lin_sys(
        key,
        elements,
        lmap,
        "iterative_static_cond",
        provider,
        settings=SolverSettings(
            ConvergenceSettings(500, 1e-12, 1e-12),
            preconditioner=preconditioner,
            iterative_method=method,
        ),
    )
    rhs = direct.local_to_global([np.linspace(-1, 1, e.n_modes) for e in elements])
    dirichlet = np.linspace(0, 1, lmap.n_dirichlet)
    assert iterative.solve(rhs, dirichlet) == pytest.approx(
        direct.solve(rhs, dirichlet), rel=1e-8, abs=1e-10
    )


def test_not_converged() -> None:
    """Check running out of iterations is an error."""
    provider = ReferenceMatrixProvider()
    elements, lmap = unit_square_mesh(3, 3, 4)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN),
        elements,
        lmap,
        GlobalSysSolnType.ITERATIVE_STATIC_COND,
        provider,
        settings=SolverSettings(ConvergenceSettings(1, 1e-12, 1e-12), "null"),
    )
    rhs = system.local_to_global([np.ones(e.n_modes) for e in elements])
    with pytest.raises(ConvergenceError):
        system.solve(rhs)
    assert system.last_iterations == 1


def test_invalid_settings() -> None:
    """Check invalid iterative settings are rejected."""
    with pytest.raises(ConfigurationError):
        SolverSettings(iterative_method="bicgstab")
    with pytest.raises(ConfigurationError):
        SolverSettings(n_workers=0)
    with pytest.raises(ConfigurationError):
        ConvergenceSettings(0)

    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(2, 2)
    with pytest.raises(ConfigurationError):
        create_global_lin_sys(
            GlobalLinSysKey(OperatorType.MASS),
            elements,
            lmap,
            GlobalSysSolnType.ITERATIVE_STATIC_COND,
            provider,
            settings=SolverSettings(preconditioner="multigrid"),
        )


def test_registry() -> None:
    """Check the registry creates systems by their solution type."""
    registry = GlobalLinSysRegistry.with_defaults()
    assert set(registry.variants) == set(GlobalSysSolnType)
    assert "DIRECT_FULL_MATRIX" in registry
    assert "direct_static_cond" in registry
    assert "unknown" not in registry

    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(2, 2)
    key = GlobalLinSysKey(OperatorType.MASS)
    system = registry.create("DIRECT_FULL_MATRIX", key, elements, lmap, provider)
    assert isinstance(system, GlobalLinSysDirectFull)
    assert system.solution_type == GlobalSysSolnType.DIRECT_FULL_MATRIX

    with pytest.raises(ConfigurationError):
        registry.register(GlobalSysSolnType.DIRECT_FULL_MATRIX, GlobalLinSysDirectFull)
    with pytest.raises(ConfigurationError):
        create_global_lin_sys(key, elements, lmap, "fastest", provider)
    with pytest.raises(ConfigurationError):
        GlobalLinSysRegistry().create(
            GlobalSysSolnType.DIRECT_STATIC_COND, key, elements, lmap, provider
        )

    created: list[GlobalLinSysKey] = list()

    def creator(*args, **kwargs) -> GlobalLinSys:
        created.append(args[0])
        return GlobalLinSysDirectFull(*args, **kwargs)

    custom = GlobalLinSysRegistry()
    custom.register("direct_static_cond", creator)
    system = create_global_lin_sys(
        key, elements, lmap, GlobalSysSolnType.DIRECT_STATIC_COND, provider, registry=custom
    )
    assert isinstance(system, GlobalLinSysDirectFull)
    assert created == [key]


def test_manager() -> None:
    """Check the manager creates each system once."""
    provider = ReferenceMatrixProvider()
    elements, lmap = line_mesh(3, 3)
    manager = GlobalLinSysManager(
        elements, lmap, provider, GlobalSysSolnType.DIRECT_STATIC_COND
    )
    s1 = manager.get(GlobalLinSysKey(OperatorType.HELMHOLTZ, (1.0,)))
    s2 = manager.get(GlobalLinSysKey(OperatorType.HELMHOLTZ, (1.0,)))
    s3 = manager.get(GlobalLinSysKey(OperatorType.HELMHOLTZ, (2.0,)))
    assert s1 is s2
    assert s1 is not s3
    assert len(manager) == 2
    rhs = np.ones(s1.n_global)
    assert manager.solve(GlobalLinSysKey(OperatorType.HELMHOLTZ, (1.0,)), rhs) == pytest.approx(
        s1.solve(rhs)
    )


def test_verbose_output(capsys: pytest.CaptureFixture[str]) -> None:
    """Check statistics and progress are printed."""
    provider = ReferenceMatrixProvider()
    elements, lmap = unit_square_mesh(2, 2, 3)
    system = create_global_lin_sys(
        GlobalLinSysKey(OperatorType.LAPLACIAN),
        elements,
        lmap,
        GlobalSysSolnType.ITERATIVE_STATIC_COND,
        provider,
        settings=SolverSettings(verbose=True),
    )
    system.solve(system.local_to_global([np.ones(e.n_modes) for e in elements]))
    out = capsys.readouterr().out
    assert "GlobalLinSysIterativeStaticCond" in out
    assert "Boundary DoFs per element" in out
    assert "Iteration" in out
