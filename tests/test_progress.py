"""Check console progress output."""

import numpy as np
import pytest
from statcond.progress import HistogramFormat, ProgressTracker


def test_tracker_state() -> None:
    """Check the tracker counts iterations and reports the residual."""
    tracker = ProgressTracker(1e-10, 1.0, 100)
    assert tracker.residual == 1.0
    tracker.update(1e-5)
    assert tracker.iteration == 1
    state = tracker.state_str()
    assert "Iteration   1 out of 100" in state
    assert "1.000e-05 / 1.000e-10" in state


@pytest.mark.parametrize(
    ("residual", "marker"),
    ((2.0, "\033[31m*"), (1e-5, "\033[33m*"), (1e-11, "\033[32m*")),
)
def test_residual_indicator(residual: float, marker: str) -> None:
    """Check the indicator shows divergence, progress and convergence."""
    tracker = ProgressTracker(1e-10, 1.0, 10)
    tracker.update(residual)
    assert marker in tracker.residual_indicator


def test_iteration_bar() -> None:
    """Check the iteration bar fills up and stops at the maximum."""
    tracker = ProgressTracker(1e-10, 1.0, 4, bar_width=8)
    for _ in range(6):
        tracker.update(0.5)
    assert tracker.iteration == 4
    assert tracker.iteration_bar == "█" * 8


def test_histogram() -> None:
    """Check the histogram has a row for each level and tick labels."""
    fmt = HistogramFormat(3, 10, 2, label_format=lambda x: f"{x:g}")
    lines = fmt(np.array([1, 1, 1, 5])).split("\n")
    assert len(lines) == 5
    assert all(len(line) == 10 for line in lines)
    assert lines[0][0] == "█"
    assert lines[0][-1] == " "
    assert lines[2][-1] == "█"
    assert lines[3][0] == "|" and lines[3][-1] == "|"
    assert lines[4].startswith("1")
