"""Iterative solvers for matrix-free systems.

The solvers are written in terms of functions which apply the system and
operate on vectors, so that the operator never has to be assembled.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

import numpy as np
import numpy.typing as npt
from scipy import linalg as la

from statcond.errors import ConfigurationError, ConvergenceError, SingularBlockError
from statcond.settings import ConvergenceSettings

_Mat = TypeVar("_Mat")
_Vec = TypeVar("_Vec")


def gmres_general(
    mat: _Mat,
    rhs: _Vec,
    initial_guess: _Vec,
    convergence: ConvergenceSettings,
    system_application_function: Callable[[_Mat, _Vec, _Vec], None],
    vec_dot_function: Callable[[_Vec, _Vec], float],
    vec_add_to_function: Callable[[_Vec, _Vec, _Vec, float], None],
    vec_sub_from_scaled_function: Callable[[_Vec, _Vec, _Vec, float], None],
    vec_scale_by_function: Callable[[_Vec, float, _Vec], None],
    vec_copy_function: Callable[[_Vec], _Vec],
    iteration_callback: Callable[[float], None] | None = None,
) -> tuple[_Vec, float, int]:
    """General implementation of GMRES to use for any data type with operators.

    Returns
    -------
    _Vec
        Computed solution.

    float
        Estimated residual.

    int
        Iterations done.
    """
    m = convergence.maximum_iterations + 1
    g = np.zeros(m, np.float64)
    h = np.zeros(m, np.float64)
    sk = np.zeros(m, np.float64)
    ck = np.zeros(m, np.float64)
    r = np.zeros((m, m), np.float64)
    k = 0

    p_vecs: list[_Vec] = list()

    tol = convergence.tolerance(np.sqrt(vec_dot_function(rhs, rhs)))

    res = vec_copy_function(rhs)
    system_application_function(mat, initial_guess, res)
    vec_sub_from_scaled_function(rhs, res, res, 1.0)
    # First residual
    p = res
    r_mag = np.sqrt(vec_dot_function(p, p))
    if r_mag <= tol:
        return vec_copy_function(initial_guess), r_mag, 0
    vec_scale_by_function(p, 1 / r_mag, p)
    p_vecs.append(p)
    g[0] = r_mag

    for k in range(1, m):
        # Make a new basis vector
        p = vec_copy_function(p)
        system_application_function(mat, p, p)
        # Make it orthogonal to other basis
        for li in range(k):
            p_old = p_vecs[li]
            pp_dp = vec_dot_function(p, p_old)
            h[li] = pp_dp
            vec_sub_from_scaled_function(p, p_old, p, pp_dp)

        p_mag2 = vec_dot_function(p, p)
        p_mag = np.sqrt(p_mag2)
        # Zero magnitude means the Krylov space contains the solution
        if p_mag > 0:
            vec_scale_by_function(p, 1 / p_mag, p)
        p_vecs.append(p)

        # Apply previous Givens rotations to the new column
        for i in range(k - 1):
            tmp = ck[i] * h[i] + sk[i] * h[i + 1]
            h[i + 1] = -sk[i] * h[i] + ck[i] * h[i + 1]
            h[i] = tmp

        # Find new Givens rotation
        rho = np.sqrt(p_mag2 + h[k - 1] * h[k - 1])
        c_new = h[k - 1] / rho
        s_new = p_mag / rho
        ck[k - 1] = c_new
        sk[k - 1] = s_new
        h[k - 1] = c_new * h[k - 1] + s_new * p_mag
        r[:k, k - 1] = h[:k]
        g[k] = -s_new * g[k - 1]
        g[k - 1] = c_new * g[k - 1]

        r_mag = np.abs(g[k])
        if iteration_callback is not None:
            iteration_callback(r_mag)
        if r_mag < tol:
            break

    # Iterations are done, time to solve the LSQR problem
    alpha = la.solve_triangular(r[:k, :k], g[:k])
    sol = vec_copy_function(initial_guess)
    for i in range(k):
        vec_add_to_function(sol, p_vecs[i], sol, alpha[i])
    return sol, r_mag, k


def pcg_general(
    mat: _Mat,
    rhs: _Vec,
    initial_guess: _Vec,
    convergence: ConvergenceSettings,
    system_application_function: Callable[[_Mat, _Vec, _Vec], None],
    precondition_function: Callable[[_Mat, _Vec, _Vec], None],
    vec_dot_function: Callable[[_Vec, _Vec], float],
    vec_add_to_scaled_function: Callable[[_Vec, _Vec, float, _Vec], None],
    vec_sub_from_scaled_function: Callable[[_Vec, _Vec, float, _Vec], None],
    vec_copy_function: Callable[[_Vec], _Vec],
    iteration_callback: Callable[[float], None] | None = None,
) -> tuple[_Vec, float, int]:
    """General implementation of preconditioned CG for any data type with operators.

    Returns
    -------
    _Vec
        Computed solution.

    float
        Residual.

    int
        Iterations done.
    """
    x = vec_copy_function(initial_guess)
    res = vec_copy_function(initial_guess)
    system_application_function(mat, x, res)
    vec_sub_from_scaled_function(rhs, res, 1.0, res)
    z = vec_copy_function(res)
    precondition_function(mat, res, z)
    p = vec_copy_function(z)
    ap = vec_copy_function(rhs)

    tol = convergence.tolerance(np.sqrt(vec_dot_function(rhs, rhs)))
    res_mag2 = vec_dot_function(res, res)
    if res_mag2 <= tol**2:
        return x, np.sqrt(res_mag2), 0

    rz_dp = vec_dot_function(res, z)

    iter_cnt = 0
    for iter_cnt in range(1, convergence.maximum_iterations + 1):
        system_application_function(mat, p, ap)
        apa = vec_dot_function(ap, p)
        if not apa > 0:
            raise ConvergenceError("System degenerated (matrix was probably not SPD).")
        alpha = rz_dp / apa
        vec_add_to_scaled_function(x, p, alpha, x)
        vec_sub_from_scaled_function(res, ap, alpha, res)
        res_mag2 = vec_dot_function(res, res)
        if iteration_callback is not None:
            iteration_callback(np.sqrt(res_mag2))
        if res_mag2 < tol**2:
            break

        precondition_function(mat, res, z)
        new_rz_dp = vec_dot_function(res, z)

        beta = new_rz_dp / rz_dp
        rz_dp = new_rz_dp
        vec_add_to_scaled_function(z, p, beta, p)

    return x, np.sqrt(res_mag2), iter_cnt


Operator = Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]]
"""Function applying a linear operator to a vector."""


def null_preconditioner(diagonal: npt.NDArray[np.float64]) -> Operator:
    """Create the identity preconditioner."""
    del diagonal

    def apply(v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return np.array(v)

    return apply


def diagonal_preconditioner(diagonal: npt.NDArray[np.float64]) -> Operator:
    """Create the preconditioner which applies the inverse of the diagonal."""
    if np.any(diagonal == 0) or not np.all(np.isfinite(diagonal)):
        raise SingularBlockError("Global boundary matrix has a zero on its diagonal")
    inverse = 1 / diagonal

    def apply(v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return inverse * v

    return apply


PRECONDITIONERS: dict[str, Callable[[npt.NDArray[np.float64]], Operator]] = {
    "null": null_preconditioner,
    "diagonal": diagonal_preconditioner,
}
"""Preconditioners for the iterative solver, created from the matrix diagonal."""


def make_preconditioner(name: str, diagonal: npt.NDArray[np.float64]) -> Operator:
    """Create a preconditioner by its name in :data:`PRECONDITIONERS`."""
    try:
        factory = PRECONDITIONERS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown preconditioner {name!r}, options are "
            + ", ".join(PRECONDITIONERS)
            + "."
        ) from None
    return factory(diagonal)


def _np_dot(v1: npt.NDArray[np.float64], v2: npt.NDArray[np.float64]) -> float:
    return float(np.dot(v1, v2))


def _np_copy(v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    return np.array(v, np.float64)


def solve_pcg(
    apply: Operator,
    precondition: Operator,
    rhs: npt.NDArray[np.float64],
    convergence: ConvergenceSettings,
    iteration_callback: Callable[[float], None] | None = None,
) -> tuple[npt.NDArray[np.float64], float, int]:
    """Solve a symmetric positive definite system with preconditioned CG.

    Parameters
    ----------
    apply : (array) -> array
        Function applying the system matrix.

    precondition : (array) -> array
        Function applying the preconditioner.

    rhs : array
        Right side of the system.

    convergence : ConvergenceSettings
        Settings to use for convergence.

    iteration_callback : (float) -> None, optional
        Called with the residual after each iteration.

    Returns
    -------
    array
        Computed solution.

    float
        Norm of the residual.

    int
        Iterations done.
    """

    def wrapped_apply(_: None, v_in: npt.NDArray, v_out: npt.NDArray) -> None:
        v_out[:] = apply(v_in)

    def wrapped_precondition(_: None, v_in: npt.NDArray, v_out: npt.NDArray) -> None:
        v_out[:] = precondition(v_in)

    def wrapped_add(v1: npt.NDArray, v2: npt.NDArray, k: float, v_out: npt.NDArray) -> None:
        v_out[:] = v1 + k * v2

    def wrapped_sub(v1: npt.NDArray, v2: npt.NDArray, k: float, v_out: npt.NDArray) -> None:
        v_out[:] = v1 - k * v2

    return pcg_general(
        None,
        rhs,
        np.zeros_like(rhs),
        convergence,
        wrapped_apply,
        wrapped_precondition,
        _np_dot,
        wrapped_add,
        wrapped_sub,
        _np_copy,
        iteration_callback=iteration_callback,
    )


def solve_gmres(
    apply: Operator,
    precondition: Operator,
    rhs: npt.NDArray[np.float64],
    convergence: ConvergenceSettings,
    iteration_callback: Callable[[float], None] | None = None,
) -> tuple[npt.NDArray[np.float64], float, int]:
    """Solve a general system with right preconditioned GMRES.

    The system :math:`A P^{-1} y = b` is solved and the solution is then
    recovered as :math:`x = P^{-1} y`, so the residual is that of the original
    system.

    Parameters
    ----------
    apply : (array) -> array
        Function applying the system matrix.

    precondition : (array) -> array
        Function applying the preconditioner.

    rhs : array
        Right side of the system.

    convergence : ConvergenceSettings
        Settings to use for convergence.

    iteration_callback : (float) -> None, optional
        Called with the estimated residual after each iteration.

    Returns
    -------
    array
        Computed solution.

    float
        Estimated norm of the residual.

    int
        Iterations done.
    """

    def wrapped_apply(_: None, v_in: npt.NDArray, v_out: npt.NDArray) -> None:
        v_out[:] = apply(precondition(v_in))

    def wrapped_add(v1: npt.NDArray, v2: npt.NDArray, v_out: npt.NDArray, k: float) -> None:
        v_out[:] = v1 + k * v2

    def wrapped_sub(v1: npt.NDArray, v2: npt.NDArray, v_out: npt.NDArray, k: float) -> None:
        v_out[:] = v1 - k * v2

    def wrapped_scale(v: npt.NDArray, k: float, v_out: npt.NDArray) -> None:
        v_out[:] = k * v

    y, residual, iterations = gmres_general(
        None,
        rhs,
        np.zeros_like(rhs),
        convergence,
        wrapped_apply,
        _np_dot,
        wrapped_add,
        wrapped_sub,
        wrapped_scale,
        _np_copy,
        iteration_callback=iteration_callback,
    )
    return precondition(y), residual, iterations


ITERATIVE_SOLVERS = {
    "cg": solve_pcg,
    "gmres": solve_gmres,
}
"""Iterative solvers by name."""
