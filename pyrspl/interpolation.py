from typing import Iterator, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import coo_matrix, csr_matrix

from .grid import GridIndex


def iter_corners(di: int) -> Iterator[tuple[int, ...]]:
    """
    Step through the 2^di corners of a grid cell in binary order:
    bit e of the corner number selects the upper node along axis e.
    """
    for j in range(1 << di):
        yield tuple((j >> e) & 1 for e in range(di))


def corner_offsets(strides: NDArray[np.int64]) -> NDArray[np.int64]:
    """Linear index offset from the cell base node to each corner."""
    strides = np.asarray(strides, dtype=np.int64)
    return np.array([int(np.dot(bits, strides)) for bits in iter_corners(len(strides))], dtype=np.int64)


def corner_weights(frac: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Multilinear interpolation weight of each cell corner.
    frac is (n, di) position within the cell, result is (n, 2^di).
    """
    frac = np.atleast_2d(frac)
    bits = np.array(list(iter_corners(frac.shape[1])), dtype=bool)  # (2^di, di)
    w = np.where(bits[None, :, :], frac[:, None, :], 1.0 - frac[:, None, :])
    return w.prod(axis=2)


def locate(
    points: NDArray[np.float64],
    low: NDArray[np.float64],
    high: NDArray[np.float64],
    width: NDArray[np.float64],
    index: GridIndex,
) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
    """
    Find the grid cell each point falls in.
    Returns the base node linear index and the (n, di) position within the cell.
    """
    points = np.atleast_2d(np.asarray(points, dtype=float))
    outside = (points < low) | (points > high)
    if np.any(outside):
        n, e = np.argwhere(outside)[0]
        raise ValueError(
            f"Data point {n} outside grid {low[e]:e} <= {points[n, e]:e} <= {high[e]:e}"
        )

    t = (points - low) / width
    # the outer node can't be a cell base
    mi = np.clip(np.floor(t).astype(np.int64), 0, np.array(index.res) - 2)
    base = mi @ index.strides
    return base, t - mi


def build_interpolation_matrix(
    base: NDArray[np.int64],
    weights: NDArray[np.float64],
    offsets: NDArray[np.int64],
    gno: int,
) -> csr_matrix:
    """
    Builds the interpolation matrix W so that W @ x gives the multilinear
    interpolated grid value at each data point.
    """
    n = len(base)
    rows = np.repeat(np.arange(n), len(offsets))
    cols = (base[:, None] + offsets[None, :]).ravel()
    vals = weights.ravel()

    mask = (vals != 0)
    W = coo_matrix((vals[mask], (rows[mask], cols[mask])), shape=(n, gno))
    return W.tocsr()


def resample_grid(
    src: NDArray[np.float64],
    src_res: Sequence[int],
    dst_res: Sequence[int],
) -> NDArray[np.float64]:
    """
    Multilinear resampling of node values between two resolutions of the same
    domain. src is (src_gno, ...) and the result (dst_gno, ...).
    """
    sidx = GridIndex(src_res)
    didx = GridIndex(dst_res)
    sres_1 = np.array(sidx.res) - 1
    dres_1 = np.array(didx.res) - 1

    t = didx.coords() / dres_1 * sres_1
    mi = np.clip(np.floor(t).astype(np.int64), 0, sres_1 - 1)
    base = mi @ sidx.strides
    w = corner_weights(t - mi)
    offsets = corner_offsets(sidx.strides)

    out = np.zeros((didx.gno,) + src.shape[1:])
    for j, oset in enumerate(offsets):
        wj = w[:, j].reshape((-1,) + (1,) * (src.ndim - 1))
        out += wj * src[base + oset]
    return out
