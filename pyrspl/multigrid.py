from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from . import curvature, interpolation, regularizers, solvers
from .grid import Grid, GridIndex, mean_resolution
from .smoothing import optimal_smoothing
from .sparse import PackedSymmetricMatrix

if TYPE_CHECKING:
    from .rspl import RsplFit

# Two pass smoothing uses fixed curvature weights, 100 times stiffer on the second pass
TWO_PASS_LOG_SMOOTHING = (-6.0, -4.0)

MIN_NORMB = 1e-4


class MultigridLevel:
    """
    Working data for solving one output channel at one resolution of the
    multigrid ladder: curvature weights, data point interpolation metadata,
    the packed equation system and its solution.

    `fit` is the owning RsplFit, only read from here.
    """

    def __init__(
        self,
        fit: "RsplFit",
        res: Sequence[int],
        channel: int,
        second_pass: bool = False,
    ):
        self.fit = fit
        self.channel = channel
        self.index = GridIndex(res)
        self.res = self.index.res
        self.di = self.index.di
        self.gno = self.index.gno

        final = fit.grid
        self.ipos = [
            None if p is None else self._downsample_ipos(p, r)
            for p, r in zip(final.ipos, self.res)
        ]
        # same domain as the final grid, at this level's resolution
        self.grid = Grid(final.low, final.high, self.res, final.fdi, self.ipos)
        self.low = self.grid.low
        self.high = self.grid.high
        self.width = self.grid.width
        self.mres = mean_resolution(self.res)

        self.cw = self._curvature_weights(second_pass)

        # Data point cell and corner weights
        data = fit.data
        self.base, frac = interpolation.locate(data["p"], self.low, self.high, self.width, self.index)
        self.weights = interpolation.corner_weights(frac) if len(self.base) else np.zeros((0, 1 << self.di))
        self.offsets = interpolation.corner_offsets(self.index.strides)
        self.W = interpolation.build_interpolation_matrix(self.base, self.weights, self.offsets, self.gno)

        self.ccv: Optional[NDArray[np.float64]] = None
        self.A: Optional[PackedSymmetricMatrix] = None
        self.b = np.zeros(self.gno)
        self.x = np.zeros(self.gno)
        self.normb = MIN_NORMB

    @staticmethod
    def _downsample_ipos(ipos: NDArray[np.float64], res: int) -> NDArray[np.float64]:
        """Linearly interpolate the final resolution node positions to `res` nodes."""
        src = np.arange(len(ipos), dtype=float)
        return np.interp(np.linspace(0.0, len(ipos) - 1.0, res), src, ipos)

    def _curvature_weights(self, second_pass: bool) -> NDArray[np.float64]:
        """
        Curvature weight for each axis, compensating for the number of grid
        points accumulating curvature and for the geometric effect of a finer
        fit, so the ratio of smoothness error to data error stays constant
        across resolutions.
        """
        fit = self.fit
        nigc = float(np.prod(np.array(self.res) - 2))
        if nigc <= 0:
            return np.zeros(self.di)

        if fit.symmetric_domain:
            rsm = np.array(self.res, dtype=float)
        else:
            rsm = np.full(self.di, self.mres)
        rsm = (rsm - 1.0) ** 4 / nigc

        if fit.two_pass:
            smooth = 10.0 ** TWO_PASS_LOG_SMOOTHING[1 if second_pass else 0]
        elif fit.smoothness >= 0.0:
            smooth = fit.smoothness * optimal_smoothing(
                self.di, len(fit.data["p"]), fit.avgdev[self.channel]
            )
        else:
            # Raw smoothing override, used to calibrate the table
            smooth = -fit.smoothness
        return smooth * rsm

    def set_ccv(self, ccv: NDArray[np.float64], src_res: Sequence[int]):
        """Take curvature compensation values captured at resolution src_res."""
        self.ccv = curvature.downsample_ccv(ccv, src_res, self.res, self.fit.symmetric_domain)

    def setup_solve(self):
        """
        Build the equations A x = b whose solution minimizes

            sum(curvature errors at each grid point) ^ 2
          + sum(weak default function errors at each grid point) ^ 2
          + sum(data interpolation errors) ^ 2

        Each row of A and b is the partial derivative of the above with
        respect to one grid node value.
        """
        fit = self.fit
        f = self.channel
        data = fit.data
        A = PackedSymmetricMatrix(self.index)
        b = np.zeros(self.gno)

        # 1) curvature, scaled for the data value range
        cw = self.cw * data["vw"][f]
        regularizers.add_curvature_terms(A, b, self.index, cw, self.ipos, self.ccv)
        nb_curve = float(b @ b)

        # 2) weak default function
        if fit.weak_function is not None:
            positions = self.grid.node_positions()
            regularizers.add_weak_default_terms(A, b, positions, fit.weak_function, f, fit.weak)

        # 3) data points, coupling every pair of corners of the enclosing cell
        k = data["k"][:, f]
        w = self.weights
        for j, oj in enumerate(self.offsets):
            rows = self.base + oj
            d = 2.0 * k * w[:, j]
            np.add.at(b, rows, d * data["cv"][:, f])
            A.add(rows, 0, d * w[:, j])
            for kk in range(j + 1, len(self.offsets)):
                A.add(rows, self.offsets[kk] - oj, d * w[:, kk])

        # norm of b, excluding the curvature compensation part
        self.normb = max(np.sqrt(max(float(b @ b) - nb_curve, 0.0)), MIN_NORMB)
        self.A = A
        self.b = b

    def seed(self, coarser: Optional["MultigridLevel"] = None):
        """Initial solution: the data average, or interpolated from the next coarser level."""
        if coarser is None:
            self.x[:] = self.fit.data["va"][self.channel]
        else:
            self.x = interpolation.resample_grid(coarser.x, coarser.res, self.res)

    def solve(self, tol: float) -> solvers.SolveReport:
        return solvers.solve_gres(
            self.A.tocsr(),
            self.x,
            self.b,
            self.normb,
            self.res,
            self.index.strides,
            tol,
            line_sweeps=self.fit.line_sweeps,
            verbose=self.fit.verbose,
        )

    def interpolate(self) -> NDArray[np.float64]:
        """Current solution interpolated at each data point."""
        return self.W @ self.x

    def extrafit_correction(self):
        """
        Shift each data point's corrected target by its current fit error, so
        the next solve pulls harder against over-smoothing.
        """
        data = self.fit.data
        f = self.channel
        err = data["v"][:, f] - self.interpolate()
        data["cv"][:, f] += err
