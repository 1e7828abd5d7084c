"""Settings of global linear systems."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from statcond.errors import ConfigurationError


class GlobalSysSolnType(Enum):
    """Strategy used to solve the global system."""

    DIRECT_FULL_MATRIX = "direct_full_matrix"
    """Assemble and factor the full matrix, including interior DoFs."""

    DIRECT_STATIC_COND = "direct_static_cond"
    """Assemble and factor the Schur complement of the boundary DoFs."""

    ITERATIVE_STATIC_COND = "iterative_static_cond"
    """Iteratively solve the Schur complement system without assembling it."""

    @classmethod
    def from_value(cls, value: GlobalSysSolnType | str) -> GlobalSysSolnType:
        """Convert an enum member, its name or its value to the member."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.upper() == member.name or text.lower() == member.value:
                return member
        raise ConfigurationError(
            f"Unknown solution type {value!r}, options are "
            + ", ".join(m.value for m in cls)
            + "."
        )


ITERATIVE_METHODS = ("cg", "gmres")


@dataclass(frozen=True)
class ConvergenceSettings:
    """Settings used to specify convergence of an iterative solver."""

    maximum_iterations: int = 1000
    """Maximum number of iterations to improve the solution."""

    absolute_tolerance: float = 1e-12
    """When the norm of the residual drops bellow this value, consider it converged."""

    relative_tolerance: float = 1e-10
    """When the norm of the residual drops bellow the norm of the right side scaled
    by this value, consider it converged."""

    def __post_init__(self) -> None:
        """Check values are valid."""
        if self.maximum_iterations < 1:
            raise ConfigurationError("Maximum number of iterations must be positive.")
        if self.absolute_tolerance < 0 or self.relative_tolerance < 0:
            raise ConfigurationError("Tolerances can not be negative.")

    def tolerance(self, rhs_norm: float) -> float:
        """Residual norm at which the solution is considered converged.

        Both tolerances have to be met, so the smaller of the two is used.
        """
        return min(self.absolute_tolerance, rhs_norm * self.relative_tolerance)


@dataclass(frozen=True)
class SolverSettings:
    """Settings used when creating and solving global systems.

    Only the iterative solver makes use of the convergence settings, the
    preconditioner, and the iterative method.
    """

    convergence: ConvergenceSettings = field(default_factory=ConvergenceSettings)
    """When should the iterative solution be considered converged."""

    preconditioner: str = "diagonal"
    """Name of the preconditioner used by the iterative solver."""

    iterative_method: str = "cg"
    """Either ``"cg"`` for symmetric positive definite systems or ``"gmres"``."""

    n_workers: int | None = None
    """Number of threads used to build element matrices. If ``None``, the default
    of :class:`concurrent.futures.ThreadPoolExecutor` is used."""

    verbose: bool = False
    """Print statistics of the system and progress of iterative solves."""

    def __post_init__(self) -> None:
        """Check values are valid."""
        if self.iterative_method not in ITERATIVE_METHODS:
            raise ConfigurationError(
                f"Unknown iterative method {self.iterative_method!r}, options are "
                + ", ".join(ITERATIVE_METHODS)
                + "."
            )
        if self.n_workers is not None and self.n_workers < 1:
            raise ConfigurationError("Number of workers must be positive.")
