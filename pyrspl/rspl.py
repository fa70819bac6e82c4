# rspl.py
from typing import Callable, Optional, Sequence, Union

import numpy as np

from . import curvature, monotonic, utils
from .grid import Grid, resolution_ladder
from .multigrid import MultigridLevel

TWO_PASS_STDEV = 0.05   # Curvature filter standard deviation per unit of smoothness


class RsplFit:
    """
    Regularized spline fit of scattered data to a regular grid.

    The grid node values minimize a weighted sum of squared curvature
    (smoothness) and squared interpolation error at the data points, solved
    per output channel over a coarse to fine ladder of grid resolutions.
    """

    def __init__(
        self,
        positions: np.ndarray,
        values: np.ndarray,
        resolution: Union[int, Sequence[int]],
        weights: Optional[np.ndarray] = None,
        glow: Optional[Sequence[float]] = None,
        ghigh: Optional[Sequence[float]] = None,
        vlow: Optional[Sequence[float]] = None,
        vhigh: Optional[Sequence[float]] = None,
        smoothness: float = 1.0,
        avgdev: Union[float, Sequence[float], None] = None,
        ipos: Optional[Sequence] = None,
        weak: float = 1.0,
        weak_function: Optional[Callable] = None,
        extend: str = "always",
        two_pass: bool = False,
        extra_fit: int = 0,
        symmetric_domain: bool = False,
        tolerance: float = 1e-6,
        line_sweeps: int = 0,
        verbose: bool = False,
    ):
        # Store parameters
        self.positions = positions
        self.values = values
        self.resolution = resolution
        self.weights = weights
        self.glow = glow
        self.ghigh = ghigh
        self.vlow = vlow
        self.vhigh = vhigh
        self.smoothness = smoothness
        self.avgdev = avgdev
        self.ipos = ipos
        self.weak = weak
        self.weak_function = weak_function
        self.extend = extend
        self.two_pass = two_pass
        self.extra_fit = extra_fit
        self.symmetric_domain = symmetric_domain
        self.tolerance = tolerance
        self.line_sweeps = line_sweeps
        self.verbose = verbose

        self.grid: Optional[Grid] = None
        self.ladder: list = []
        self.solve_reports: list = []
        self.non_monotonic = False

    def fit(self) -> bool:
        """
        Validate the inputs, solve each output channel over the resolution
        ladder, and fill in the grid. Returns True if the result is
        non-monotonic.
        """
        # 1) validate parameters and preprocess the data
        (self.smoothness, self.extend, self.extra_fit, self.line_sweeps,
         self.tolerance, self.weak) = utils.check_params(
            self.smoothness, self.extend, self.extra_fit, self.line_sweeps,
            self.tolerance, self.weak, self.weak_function,
        )
        self.data = data = utils.validate_inputs(
            positions=self.positions,
            values=self.values,
            resolution=self.resolution,
            weights=self.weights,
            glow=self.glow,
            ghigh=self.ghigh,
            vlow=self.vlow,
            vhigh=self.vhigh,
            avgdev=self.avgdev,
            ipos=self.ipos,
            extend=self.extend,
        )
        self.avgdev = data["avgdev"]

        # 2) grid and multigrid resolutions
        self.grid = grid = Grid(data["low"], data["high"], data["res"], data["fdi"], data["ipos"],
                                default=utils.DEFAULT_AVERAGE)
        self.ladder = resolution_ladder(grid.res)
        self.solve_reports = []

        if len(data["p"]) == 0:
            # Nothing to fit, the grid stays at the default average
            self.non_monotonic = False
            return self.non_monotonic

        # 3) solve each output channel
        for f in range(grid.fdi):
            grid.values[:, f] = self._fit_channel(f)

        # 4) advisory monotonicity check
        self.non_monotonic = monotonic.is_non_monotonic(grid)
        return self.non_monotonic

    def _fit_channel(self, f: int) -> np.ndarray:
        level = None
        for zf in range(self.extra_fit + 1):
            ccv = None
            for second_pass in ([False, True] if self.two_pass else [False]):
                level = self._solve_ladder(f, second_pass, ccv)

                if self.two_pass and not second_pass:
                    # Capture and smooth the first pass curvature
                    ccv = curvature.compute_ccv(level.x, level.index, level.ipos)
                    ccv = curvature.filter_ccv(ccv, level.index, self._filter_stdev(), self.symmetric_domain)

            if zf < self.extra_fit:
                level.extrafit_correction()
        return level.x

    def _solve_ladder(self, f: int, second_pass: bool, ccv: Optional[np.ndarray]) -> MultigridLevel:
        level = None
        for res in self.ladder:
            coarser, level = level, MultigridLevel(self, res, f, second_pass)
            if ccv is not None:
                level.set_ccv(ccv, self.grid.res)
            level.setup_solve()
            level.seed(coarser)
            # only the level being solved is kept from here on
            del coarser

            report = level.solve(self.tolerance)
            self.solve_reports.append(report)
            if self.verbose:
                print(
                    f"[RSPL:solve] channel {f} res {report.res} error {report.error:.3e} "
                    f"after {report.iterations} iterations"
                )
        return level

    def _filter_stdev(self) -> float:
        if self.smoothness >= 0.0:
            return TWO_PASS_STDEV * self.smoothness
        return -self.smoothness
