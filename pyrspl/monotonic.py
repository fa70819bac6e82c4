import numpy as np

from .grid import Grid


def is_non_monotonic(grid: Grid) -> bool:
    """
    Return True if any output channel changes direction along any input axis.
    Along each axis, every difference between adjacent nodes must have the
    same sign (or be zero) across the whole grid.
    """
    values = grid.as_array()
    for e in range(grid.di):
        if grid.res[e] < 2:
            continue
        diffs = np.diff(values, axis=e)
        for f in range(grid.fdi):
            d = diffs[..., f]
            if np.any(d > 0.0) and np.any(d < 0.0):
                return True
    return False
