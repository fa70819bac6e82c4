from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

START_RES = 4
GRID_RATIO = 2.0


class GridIndex:
    """
    Multi-index <-> linear index mapping for a flattened grid.
    Axis 0 varies fastest, so the stride of axis e is the product of the
    resolutions of all lower axes.
    """

    def __init__(self, res: Sequence[int]):
        self.res = tuple(int(r) for r in res)
        self.di = len(self.res)
        self.gno = int(np.prod(self.res))
        strides = [1]
        for r in self.res[:-1]:
            strides.append(strides[-1] * r)
        self.strides = np.array(strides, dtype=np.int64)

    def unravel(self, index) -> NDArray[np.int64]:
        index = np.asarray(index, dtype=np.int64)
        return np.stack(np.unravel_index(index, self.res, order="F"), axis=-1)

    def coords(self) -> NDArray[np.int64]:
        """Multi-index of every node, in linear index order. Shape (gno, di)."""
        return self.unravel(np.arange(self.gno))

    def reshape(self, flat: NDArray) -> NDArray:
        """View a (gno, ...) node array in grid shape (res[0], ..., res[di-1], ...)."""
        return flat.reshape(self.res + flat.shape[1:], order="F")

    def flatten(self, shaped: NDArray) -> NDArray:
        return shaped.reshape((self.gno,) + shaped.shape[self.di:], order="F")


def mean_resolution(res: Sequence[int]) -> float:
    """Geometric mean of the per-axis resolutions."""
    res = np.asarray(res, dtype=float)
    return float(np.prod(res) ** (1.0 / len(res)))


class Grid:
    """
    The regular grid being fitted: bounds, resolution, cell widths,
    optional non-uniform node positions and the node values themselves.
    """

    def __init__(
        self,
        low: NDArray[np.float64],
        high: NDArray[np.float64],
        res: Sequence[int],
        fdi: int,
        ipos: Optional[list] = None,
        default: float = 0.5,
    ):
        self.index = GridIndex(res)
        self.res = self.index.res
        self.di = self.index.di
        self.fdi = fdi
        self.gno = self.index.gno
        self.low = np.asarray(low, dtype=float)
        self.high = np.asarray(high, dtype=float)
        self.width = (self.high - self.low) / (np.array(self.res, dtype=float) - 1.0)
        self.ipos = ipos if ipos is not None else [None] * self.di
        self.values = np.full((self.gno, fdi), default, dtype=float)

    def node_positions(self) -> NDArray[np.float64]:
        return self.low + self.index.coords() * self.width

    def as_array(self) -> NDArray[np.float64]:
        """Node values in grid shape (res[0], ..., res[di-1], fdi)."""
        return self.index.reshape(self.values)


def resolution_ladder(
    res: Sequence[int],
    start: int = START_RES,
    ratio: float = GRID_RATIO,
) -> list[tuple[int, ...]]:
    """
    Compute the coarse to fine multigrid resolutions, finishing exactly on `res`.
    """
    res = [int(r) for r in res]
    bres = max(res)

    if bres / start <= ratio:
        niters = 2
        ratio = bres / start
    else:
        niters = int((np.log(bres) - np.log(start)) / np.log(ratio) + 0.5)
        ratio = float(np.exp((np.log(bres) - np.log(start)) / niters))
        niters += 1

    ladder = []
    r = float(start)
    for _ in range(niters):
        ires = int(r + 0.5)
        ladder.append(tuple(target if ires + 1 >= target else ires for target in res))
        r *= ratio

    if ladder[-1] != tuple(res):
        raise RuntimeError(f"Internal error: final resolution {ladder[-1]} != intended resolution {tuple(res)}")
    for prev, cur in zip(ladder[:-1], ladder[1:]):
        if any(c < p for p, c in zip(prev, cur)):
            raise RuntimeError(f"Internal error: resolution ladder decreases from {prev} to {cur}")

    return ladder
