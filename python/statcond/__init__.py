"""Package dedicated to solving global systems of spectral/hp elements.

Element matrices are condensed to their boundary degrees of freedom, which are
then assembled into a global system and solved. This file includes re-exports
of types and functions that are expected to be used by users, either for
directly creating them, or to just use them for type-hinting.
"""

# Assembly
from statcond.assembly import DofLayout as DofLayout
from statcond.assembly import LocalToGlobalMap as LocalToGlobalMap

# Cache
from statcond.cache import MatrixCache as MatrixCache

# Condensation
from statcond.condensation import StaticCondensationBlock as StaticCondensationBlock

# Element
from statcond.element import Element as Element

# Errors
from statcond.errors import ConfigurationError as ConfigurationError
from statcond.errors import ConvergenceError as ConvergenceError
from statcond.errors import DimensionMismatchError as DimensionMismatchError
from statcond.errors import SingularBlockError as SingularBlockError
from statcond.errors import StatCondError as StatCondError
from statcond.errors import UnsupportedOperatorError as UnsupportedOperatorError

# Keys
from statcond.keys import ElementShape as ElementShape
from statcond.keys import GlobalLinSysKey as GlobalLinSysKey
from statcond.keys import OperatorKey as OperatorKey
from statcond.keys import OperatorType as OperatorType

# Global systems
from statcond.linsys import GlobalLinSys as GlobalLinSys
from statcond.linsys import GlobalLinSysManager as GlobalLinSysManager
from statcond.linsys import GlobalLinSysRegistry as GlobalLinSysRegistry
from statcond.linsys import create_global_lin_sys as create_global_lin_sys

# Matrices
from statcond.matrices import ElementBlockMatrix as ElementBlockMatrix
from statcond.matrices import ScaledMatrix as ScaledMatrix

# Provider
from statcond.provider import ElementMatrixProvider as ElementMatrixProvider
from statcond.provider import ReferenceMatrixProvider as ReferenceMatrixProvider

# Post-processing
from statcond.reconstruct import (
    reconstruct_mesh_from_solution as reconstruct_mesh_from_solution,
)

# Robin
from statcond.robin import RobinContribution as RobinContribution

# Settings
from statcond.settings import ConvergenceSettings as ConvergenceSettings
from statcond.settings import GlobalSysSolnType as GlobalSysSolnType
from statcond.settings import SolverSettings as SolverSettings
