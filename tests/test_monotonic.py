import numpy as np

from pyrspl import Grid
from pyrspl.monotonic import is_non_monotonic


def _grid(res, fdi, func):
    grid = Grid(np.zeros(len(res)), np.ones(len(res)), res, fdi)
    grid.values[:] = func(grid.node_positions())
    return grid


def test_monotonic_grid():
    grid = _grid((5, 4), 2, lambda p: np.stack([p[:, 0] + p[:, 1], 1.0 - p[:, 1] ** 2], axis=1))
    assert not is_non_monotonic(grid)


def test_constant_grid():
    grid = _grid((4, 4), 1, lambda p: np.zeros((len(p), 1)))
    assert not is_non_monotonic(grid)


def test_non_monotonic_channel():
    # only the second channel has a turning point
    grid = _grid((9,), 2, lambda p: np.stack([p[:, 0], (p[:, 0] - 0.5) ** 2], axis=1))
    assert is_non_monotonic(grid)


def test_direction_change_across_lines():
    # rising along axis 0 on one line and falling on another
    grid = _grid((3, 2), 1, lambda p: ((2.0 * p[:, 1] - 1.0) * p[:, 0])[:, None])
    assert is_non_monotonic(grid)
