"""
Curvature compensation values (ccv) for two pass smoothing.

After a first fit, the realized second difference at every node is captured,
low pass filtered, and fed back into the right hand side of a second fit, so
the second fit matches a smoothed version of the first fit's curvature.
"""
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from .grid import GridIndex, mean_resolution
from .interpolation import resample_grid
from .regularizers import stencil_weights

FILTER_ORDER = 2.0      # 2 = Gaussian
FILTER_SUBSAMPLES = 9   # Sub-samples per cell when integrating the kernel


def compute_ccv(x: NDArray[np.float64], index: GridIndex, ipos: list) -> NDArray[np.float64]:
    """Second difference of the solution x at every node along every axis. Shape (gno, di)."""
    coords = index.coords()
    ccv = np.zeros((index.gno, index.di))

    for e in range(index.di):
        interior = (coords[:, e] >= 1) & (coords[:, e] <= index.res[e] - 2)
        i = np.flatnonzero(interior)
        ci = int(index.strides[e])
        w0, w1 = stencil_weights(coords[i, e], ipos[e])
        ccv[i, e] = w0 * x[i - ci] - (w0 + w1) * x[i] + w1 * x[i + ci]

    return ccv


def _scale_res(res: Sequence[int], symmetric_domain: bool) -> NDArray[np.float64]:
    """Per-axis resolution used to scale smoothness related quantities."""
    if symmetric_domain:
        return np.array(res, dtype=float)
    return np.full(len(res), mean_resolution(res))


def gaussian_kernel(stdev: float, res: int, cres: float) -> tuple[NDArray[np.float64], int]:
    """
    Discretely integrated Gaussian filter kernel for an axis of resolution
    `res`. stdev is in units of the input domain, where cres - 1 cells span
    the domain. Returns the normalised weights and the index of the centre tap.
    """
    k2 = 1.0 / (2.0 * abs(stdev) ** FILTER_ORDER)
    k1 = k2 / np.pi

    kmin = int(np.floor(-5.0 * stdev * (cres - 1.0)))
    kmax = int(np.ceil(5.0 * stdev * (cres - 1.0)))
    kmin = min(max(kmin, -res + 1), -1)
    kmax = max(min(kmax, res - 1), 1)

    taps = np.arange(kmin, kmax + 1, dtype=float)
    half = FILTER_SUBSAMPLES // 2
    sub = np.arange(-half, half + 1) / float(FILTER_SUBSAMPLES)
    oset = (taps[:, None] + sub[None, :]) / (cres - 1.0)
    kern = (k1 * np.exp(-k2 * np.abs(oset) ** FILTER_ORDER)).sum(axis=1)
    return kern / kern.sum(), -kmin


def filter_ccv(
    ccv: NDArray[np.float64],
    index: GridIndex,
    stdev: float,
    symmetric_domain: bool = False,
) -> NDArray[np.float64]:
    """
    Separable Gaussian low pass filter of every curvature component along every
    axis. Each line is extended past its ends by point mirroring about the end
    values before convolving.
    """
    # kernel range is set in whole cells of the mean resolution
    cres = np.floor(_scale_res(index.res, symmetric_domain))
    shaped = index.reshape(ccv).copy()      # (res[0], ..., res[di-1], di)

    for e in range(index.di):
        n = index.res[e]
        kern, centre = gaussian_kernel(stdev, n, cres[e])
        lo, hi = centre, len(kern) - 1 - centre

        pad = [(0, 0)] * shaped.ndim
        pad[e] = (lo, hi)
        ext = np.pad(shaped, pad, mode="reflect", reflect_type="odd")

        out = np.zeros_like(shaped)
        for j, wj in enumerate(kern):
            out += wj * np.take(ext, np.arange(j, j + n), axis=e)
        shaped = out

    return index.flatten(shaped)


def downsample_ccv(
    ccv: NDArray[np.float64],
    src_res: Sequence[int],
    dst_res: Sequence[int],
    symmetric_domain: bool = False,
) -> NDArray[np.float64]:
    """
    Resample curvature compensation values captured at the final resolution
    to a coarser grid, rescaling for the larger second differences of the
    wider cells.
    """
    scale = ((_scale_res(src_res, symmetric_domain) - 1.0) / (_scale_res(dst_res, symmetric_domain) - 1.0)) ** 2
    return resample_grid(ccv, src_res, dst_res) * scale[None, :]
