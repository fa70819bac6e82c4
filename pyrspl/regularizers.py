from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from .grid import GridIndex
from .sparse import PackedSymmetricMatrix

# Extra stiffness of curvature terms at, and next to, the grid surface,
# compensating for the single ended differences there.
EDGE_STIFFNESS = 2.0
NEAR_EDGE_STIFFNESS = 1.15

# Nominal overall effect of the weak default function
WEAK_WEIGHT = 0.1


def stencil_weights(
    centre: NDArray[np.int64],
    ipos: Optional[NDArray[np.float64]],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Weights (w0, w1) of the lower and upper differences of the second
    difference centred on `centre`. With non-uniform node positions each
    difference is scaled by the inverse of its width, normalised by the
    geometric mean of the two widths so the curvature stays comparable to the
    uniform case.
    """
    if ipos is None:
        ones = np.ones(len(centre))
        return ones, ones.copy()
    d0 = np.abs(ipos[centre] - ipos[centre - 1])
    d1 = np.abs(ipos[centre + 1] - ipos[centre])
    tt = np.sqrt(d0 * d1)
    return tt / d0, tt / d1


def _edge_factor(c: NDArray[np.int64], res: int) -> NDArray[np.float64]:
    """Stiffness multiplier for a node at coordinate c along an axis of resolution res."""
    return np.where(
        (c == 0) | (c == res - 1),
        EDGE_STIFFNESS,
        np.where((c == 1) | (c == res - 2), NEAR_EDGE_STIFFNESS, 1.0),
    )


def add_curvature_terms(
    A: PackedSymmetricMatrix,
    b: NDArray[np.float64],
    index: GridIndex,
    cw: NDArray[np.float64],
    ipos: list,
    ccv: Optional[NDArray[np.float64]] = None,
):
    """
    Accumulate the squared second difference ("curvature") energy along
    every axis into A, and the curvature compensation bias into b.

    For a node c interior along axis e the energy term is

        kw * (w0 * u[c-1] - (w0 + w1) * u[c] + w1 * u[c+1] - ccv[c, e]) ** 2

    whose partial derivatives add kw * s s^T to A and kw * s * ccv to b, with
    s = (w0, -(w0 + w1), w1).
    """
    coords = index.coords()
    nodes = np.arange(index.gno)

    for e in range(index.di):
        res_e = index.res[e]
        if res_e < 3:
            continue
        ce = coords[:, e]
        interior = (ce >= 1) & (ce <= res_e - 2)
        i = nodes[interior]
        c = coords[interior]
        ci = int(index.strides[e])

        w0, w1 = stencil_weights(c[:, e], ipos[e])
        s0, s1, s2 = w0, -(w0 + w1), w1

        # Stiffen terms near the grid surface: along e the centre runs over
        # the res - 2 interior nodes, along every other axis over all nodes.
        kw = 2.0 * cw[e] * _edge_factor(c[:, e] - 1, res_e - 2)
        for k in range(index.di):
            if k != e:
                kw = kw * _edge_factor(c[:, k], index.res[k])

        A.add(i - ci, 0, kw * s0 * s0)
        A.add(i - ci, ci, kw * s0 * s1)
        A.add(i - ci, 2 * ci, kw * s0 * s2)
        A.add(i, 0, kw * s1 * s1)
        A.add(i, ci, kw * s1 * s2)
        A.add(i + ci, 0, kw * s2 * s2)

        if ccv is not None:
            cv = kw * ccv[i, e]
            np.add.at(b, i - ci, s0 * cv)
            np.add.at(b, i, s1 * cv)
            np.add.at(b, i + ci, s2 * cv)


def add_weak_default_terms(
    A: PackedSymmetricMatrix,
    b: NDArray[np.float64],
    positions: NDArray[np.float64],
    func: Callable,
    channel: int,
    weight: float,
):
    """
    Add a weak "data point" exactly at every grid node, pulling it towards the
    default function's value there. The weight per node is chosen to keep the
    overall effect constant with grid resolution and dimensionality.
    """
    gno, di = positions.shape
    wdfw = weight * WEAK_WEIGHT / (gno * di)
    ov = np.array([np.asarray(func(p), dtype=float).ravel()[channel] for p in positions])

    d = 2.0 * wdfw
    b += d * ov
    A.add(np.arange(gno), 0, d)
