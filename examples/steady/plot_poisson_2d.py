r"""
Poisson Equation in 2D
======================

This example solves the Poisson equation

.. math::

    -\nabla^2 u = f

on the square :math:`[-1, +1]^2` with values of :math:`u` prescribed on the
boundary. The system is solved iteratively, with the Schur complement of the
boundary degrees of freedom never being assembled. The solution is then
converted into a :mod:`pyvista` mesh for plotting.
"""  # noqa

import numpy as np
import numpy.typing as npt
import pyvista as pv
from statcond import (
    ConvergenceSettings,
    GlobalLinSysKey,
    GlobalSysSolnType,
    OperatorType,
    ReferenceMatrixProvider,
    SolverSettings,
    create_global_lin_sys,
    reconstruct_mesh_from_solution,
)
from statcond.examples import unit_square_mesh


def u_exact(x: npt.NDArray[np.float64], y: npt.NDArray[np.float64]):
    """Exact solution."""
    return np.cos(np.pi / 2 * x) * np.cos(np.pi / 2 * y)


def source_exact(x: npt.NDArray[np.float64], y: npt.NDArray[np.float64]):
    """Exact forcing."""
    return np.pi**2 / 2 * np.cos(np.pi / 2 * x) * np.cos(np.pi / 2 * y)


N = 4
P = 6
provider = ReferenceMatrixProvider()
elements, lmap = unit_square_mesh(N, N, P)

# %%
#
# Creating the System
# -------------------
#
# Elements of the mesh are all the same, so only one element matrix and one
# condensed matrix are computed and then shared by all of them.

system = create_global_lin_sys(
    GlobalLinSysKey(OperatorType.LAPLACIAN),
    elements,
    lmap,
    GlobalSysSolnType.ITERATIVE_STATIC_COND,
    provider,
    settings=SolverSettings(
        ConvergenceSettings(absolute_tolerance=1e-12, relative_tolerance=1e-12),
        preconditioner="diagonal",
        verbose=True,
    ),
)
print(f"Element matrices computed: {len(system.block_cache)}")

rhs = system.local_to_global(
    [
        provider.inner_product(e, source_exact(*provider.quadrature_points(e).T))
        for e in elements
    ]
)

# The square is zero on the boundary, so no Dirichlet values are needed
solution = system.solve(rhs)
print(f"Solved in {system.last_iterations} iterations.")

# %%
#
# Plotting
# --------
#
# Reconstruction evaluates the expansion on a uniform grid of each element and
# creates a Lagrange cell from it.

grid = reconstruct_mesh_from_solution(
    elements, system.global_to_local(solution), provider, recon_order=2 * P
)
grid.point_data["error"] = grid.point_data["u"] - u_exact(
    grid.points[:, 0], grid.points[:, 1]
)
print(f"Maximum error is {np.max(np.abs(grid.point_data['error'])):.3e}")

pv.set_plot_theme("document")
plotter = pv.Plotter(shape=(1, 2), window_size=(1600, 800), off_screen=True)
plotter.subplot(0, 0)
plotter.add_mesh(grid.copy(), scalars="u", show_scalar_bar=True)
plotter.view_xy()
plotter.subplot(0, 1)
plotter.add_mesh(grid.copy(), scalars="error", show_scalar_bar=True)
plotter.view_xy()
plotter.show()
