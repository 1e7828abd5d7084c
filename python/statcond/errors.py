"""Exceptions raised while building and solving global linear systems."""

from __future__ import annotations


class StatCondError(Exception):
    """Base type of all errors raised by :mod:`statcond`."""


class ConfigurationError(StatCondError, ValueError):
    """Operator, shape or parameters can not be combined.

    These are detected during setup and are never retried.
    """


class UnsupportedOperatorError(ConfigurationError):
    """Element matrix provider can not build the requested operator."""


class DimensionMismatchError(StatCondError, ValueError):
    """Sizes of blocks, maps or vectors do not agree with one another."""


class SingularBlockError(StatCondError, ArithmeticError):
    """Factorization of a block encountered a numerically singular matrix.

    Parameters
    ----------
    message : str
        Description of the failure.

    element_index : int, optional
        Index of the element whose interior block was singular. When it is
        ``None``, the global system itself was singular.
    """

    element_index: int | None

    def __init__(self, message: str, element_index: int | None = None) -> None:
        super().__init__(message)
        self.element_index = element_index

    def __str__(self) -> str:
        """Add element information to the message."""
        message = super().__str__()
        if self.element_index is None:
            return message
        return f"{message} (element {self.element_index})"


class ConvergenceError(StatCondError, RuntimeError):
    """Iterative solver did not reach the requested tolerance."""
