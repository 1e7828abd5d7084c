r"""
Helmholtz Equation in 1D
========================

This example shows how a global system is created and solved for the
one dimensional Helmholtz equation

.. math::

    -\frac{d^2 u}{d x^2} + \lambda u = f

on the interval :math:`[0, 1]`, with values prescribed at both ends. The same
system is solved with every strategy available, to show that they all give the
same solution.
"""  # noqa

import numpy as np
import numpy.typing as npt
from matplotlib import pyplot as plt
from statcond import (
    ConvergenceSettings,
    GlobalLinSysKey,
    GlobalSysSolnType,
    OperatorType,
    ReferenceMatrixProvider,
    SolverSettings,
    create_global_lin_sys,
)
from statcond.examples import line_mesh

LAMBDA = 4.0


def u_exact(x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Exact solution."""
    return np.sin(3 * np.pi * x) + x


def source_exact(x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Exact forcing."""
    return (9 * np.pi**2 + LAMBDA) * np.sin(3 * np.pi * x) + LAMBDA * x


# %%
#
# Mesh and Forcing
# ----------------
#
# The mesh is made of equally sized segments. Each element gets the inner product
# of the forcing with its modes, which are then assembled into a global vector.

provider = ReferenceMatrixProvider()
elements, lmap = line_mesh(6, 5)
key = GlobalLinSysKey(OperatorType.HELMHOLTZ, (LAMBDA,))
settings = SolverSettings(ConvergenceSettings(absolute_tolerance=1e-12), verbose=True)

fig, ax = plt.subplots(1, 1)
xplt = np.linspace(-1, 1, 21)
for variant in GlobalSysSolnType:
    system = create_global_lin_sys(key, elements, lmap, variant, provider, settings=settings)
    rhs = system.local_to_global(
        [
            provider.inner_product(e, source_exact(provider.quadrature_points(e)[:, 0]))
            for e in elements
        ]
    )
    solution = system.solve(rhs, dirichlet_values=u_exact(np.array([0.0, 1.0])))

    error = 0.0
    for element, coeffs in zip(elements, system.global_to_local(solution)):
        x = element.map_to_physical(xplt)[:, 0]
        u = provider.evaluate(element, coeffs, xplt)
        error = max(error, np.max(np.abs(u - u_exact(x))))
        if variant == GlobalSysSolnType.DIRECT_STATIC_COND:
            ax.plot(x, u, color="C0")
    print(f"{variant.value}: maximum error is {error:.3e}")

# %%
#
# Solution
# --------
#
# The solution is only plotted once, since all strategies give the same result.

xe = np.linspace(0, 1, 201)
ax.plot(xe, u_exact(xe), linestyle="dashed", color="black", label="exact")
ax.set(xlabel="$x$", ylabel="$u$")
ax.legend()
plt.show()
