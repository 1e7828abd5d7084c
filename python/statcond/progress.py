"""Console output of solver progress and statistics."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

_ANSI_RESET = "\033[0m"
_ANSI_RED = "\033[31m"
_ANSI_YELLOW = "\033[33m"
_ANSI_GREEN = "\033[32m"

_SPINNERS = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")


@dataclass
class ProgressTracker:
    """Tracker of the residual of an iterative solver.

    Parameters
    ----------
    tolerance : float
        Residual at which the solver stops.

    initial_residual : float
        Residual before the first iteration.

    max_iterations : int
        Maximum number of iterations.
    """

    tolerance: float
    initial_residual: float
    max_iterations: int

    residual: float = float("nan")
    iteration: int = 0

    bar_width: int = 10
    indicator_width: int = 20

    def __post_init__(self) -> None:
        """Start at the initial residual."""
        if np.isnan(self.residual):
            self.residual = self.initial_residual

    def update(self, residual: float) -> None:
        """Record the residual of the next iteration."""
        self.residual = residual
        if self.iteration < self.max_iterations:
            self.iteration += 1

    @property
    def iteration_bar(self) -> str:
        """Bar showing the fraction of iterations used."""
        filled = int(self.bar_width * self.iteration / self.max_iterations)
        return "█" * filled + " " * (self.bar_width - filled)

    @property
    def residual_indicator(self) -> str:
        """Marker of the residual between initial value and tolerance on a log scale."""
        cells = [" "] * self.indicator_width
        if self.residual >= self.initial_residual or self.tolerance <= 0:
            return _ANSI_RED + "*" + _ANSI_RESET + "|" + "".join(cells) + "| "
        if self.residual <= self.tolerance:
            return " |" + "".join(cells) + "|" + _ANSI_GREEN + "*" + _ANSI_RESET

        pos = int(
            (np.log(self.initial_residual) - np.log(self.residual))
            / (np.log(self.initial_residual) - np.log(self.tolerance))
            * self.indicator_width
        )
        pos = min(max(pos, 0), self.indicator_width - 1)
        cells[pos] = _ANSI_YELLOW + "*" + _ANSI_RESET
        return " |" + "".join(cells) + "| "

    def state_str(self, format_string: str = "{} - {} | {}") -> str:
        """Get a string with current state.

        Parameters
        ----------
        format_string : str, default: "{} - {} | {}"
            String that will be formatted with :meth:`str.format` method.
            It will receive the spinner character, the iteration progress
            and the residual progress in that order.

        Returns
        -------
        str
            Formatted string.
        """
        iter_str = (
            f"Iteration {str(self.iteration).rjust(len(str(self.max_iterations)))}"
            f" out of {self.max_iterations} [{self.iteration_bar}]"
        )
        res_str = (
            f"Residual at {self.residual:.3e} / {self.tolerance:.3e} ["
            + self.residual_indicator
            + "]"
        )
        return format_string.format(
            _SPINNERS[self.iteration % len(_SPINNERS)], iter_str, res_str
        )


@dataclass(frozen=True)
class HistogramFormat:
    """Type used to format a histogram from an array."""

    rows: int
    cols: int
    tick_count: int = 2
    label_format: Callable[[float], str] = str

    def format(self, a: npt.ArrayLike) -> str:
        """Create a multi-line histogram string based on the array."""
        hist, bin_edges = np.histogram(a, bins=self.cols)
        max_val = hist.max()
        if max_val == 0:
            scaled = np.zeros_like(hist)
        else:
            scaled = np.round((hist / max_val) * (self.rows - 1)).astype(int)

        lines = [
            "".join("█" if scaled[b] >= r else " " for b in range(self.cols))
            for r in reversed(range(self.rows))
        ]

        tick_positions = np.linspace(0, self.cols - 1, self.tick_count, dtype=int)
        tick_row = [" "] * self.cols
        for pos in tick_positions:
            tick_row[pos] = "|"
        lines.append("".join(tick_row))

        # First label is left aligned, last right aligned and the rest centered
        label_row = [" "] * self.cols
        for i, pos in enumerate(tick_positions):
            label = self.label_format(float(bin_edges[pos]))
            if i == 0:
                start = pos
            elif i == len(tick_positions) - 1:
                start = pos - len(label) + 1
            else:
                start = pos - len(label) // 2
            start = max(start, 0)
            end = min(start + len(label), self.cols)
            for j, ch in enumerate(label[: end - start]):
                label_row[start + j] = ch
        lines.append("".join(label_row))

        return "\n".join(lines)

    def __call__(self, a: npt.ArrayLike) -> str:
        """Call ``self.format(a)``."""
        return self.format(a)
