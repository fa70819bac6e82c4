"""
Empirical "optimal" smoothing factors for scattered data fitting.

In theory the smoothness should increase with the square of the average
sample deviation, but other factors come into play, so the optimum was
located experimentally for representative device data with added noise, for
each combination of dimensionality, sample count and average deviation. The
optimum shows no significant dependence on the grid resolution.

The "average sample deviation" is a measure of randomness: values with a
+/- 0.1 uniform random error have an average deviation of 0.05, and for
normally distributed errors it is approximately 0.564 times the standard
deviation.
"""
import numpy as np

# Normalised sample count (di'th root of the number of points) for each table row
SAMPLE_COUNT_AXIS = (
    (5.0, 10.0, 20.0, 50.0, 100.0, 200.0),
    (5.0, 10.0, 20.0, 50.0, 100.0, 200.0),
    (2.92, 3.68, 4.22, 5.0, 6.3, 7.94, 10.0, 12.6, 20.0, 50.0),
    (2.66, 3.16, 3.76, 4.61, 5.0, 5.48, 6.51, 7.75, 10.0, 20.0, 31.62),
)

# Average deviation (fraction of the value range) for each table column
AVGDEV_AXIS = (
    (0.0001, 0.0025, 0.005, 0.0125, 0.025, 0.05),
    (0.0001, 0.0025, 0.005, 0.0125, 0.025, 0.05),
    (0.0001, 0.0025, 0.005, 0.0125, 0.025, 0.05),
    (0.0001, 0.0025, 0.005, 0.0075, 0.0125, 0.025, 0.05),
)

# log10 of the smoothing factor, by [di - 1][sample count][average deviation]
LOG_SMOOTHING = (
    # 1D
    (
        (-5.0, -5.3, -5.2, -4.4, -3.5, -0.8),
        (-6.4, -5.6, -5.1, -4.5, -4.0, -3.6),
        (-6.4, -5.9, -5.5, -4.6, -3.9, -3.3),
        (-6.8, -6.0, -5.6, -4.9, -4.4, -3.7),
        (-6.9, -6.2, -5.6, -4.9, -4.3, -3.5),
        (-6.9, -5.9, -5.5, -5.1, -4.7, -4.4),
    ),
    # 2D
    (
        (-5.0, -5.0, -5.0, -4.8, -4.2, -3.2),
        (-5.1, -4.9, -4.6, -3.9, -3.3, -2.6),
        (-5.9, -5.0, -4.6, -4.1, -3.6, -3.1),
        (-6.7, -5.1, -4.7, -4.2, -3.7, -3.1),
        (-6.8, -5.0, -4.6, -4.0, -3.6, -3.0),
        (-6.8, -4.9, -4.4, -3.9, -3.5, -3.1),
    ),
    # 3D
    (
        (-5.2, -5.0, -5.0, -4.9, -3.6, -2.2),
        (-5.5, -5.6, -5.6, -5.2, -4.4, -2.4),
        (-4.7, -4.8, -5.7, -5.9, -5.9, -2.3),
        (-4.1, -4.1, -5.0, -3.8, -3.4, -2.6),
        (-4.8, -4.6, -4.6, -4.1, -3.8, -3.4),
        (-4.7, -4.7, -4.7, -3.8, -3.3, -2.9),
        (-4.7, -4.8, -4.6, -3.9, -3.4, -3.0),
        (-5.2, -4.7, -4.4, -4.0, -3.4, -2.9),
        (-5.5, -5.0, -4.3, -3.6, -3.1, -2.8),
        (-5.1, -4.7, -4.3, -3.8, -3.3, -2.8),
    ),
    # 4D
    (
        (-5.5, -5.6, -4.9, -4.8, -4.5, -2.8, -3.1),
        (-4.3, -4.2, -4.0, -3.6, -3.2, -2.8, -2.6),
        (-4.3, -4.2, -4.0, -3.8, -3.2, -2.8, -1.5),
        (-4.5, -3.9, -3.5, -3.2, -3.0, -2.4, -1.9),
        (-4.5, -4.3, -3.7, -3.3, -3.0, -2.3, -1.9),
        (-4.7, -4.5, -4.3, -3.9, -3.2, -2.0, -0.9),
        (-4.3, -4.3, -4.1, -3.9, -3.1, -2.3, -1.6),
        (-4.5, -4.4, -3.8, -3.5, -3.1, -2.4, -1.6),
        (-4.9, -4.3, -3.6, -3.2, -2.8, -2.2, -1.6),
        (-4.8, -3.5, -3.0, -2.8, -2.5, -2.2, -1.9),
        (-5.1, -3.7, -3.0, -2.7, -2.3, -1.9, -1.5),
    ),
)


def _log_bracket(axis: tuple, value: float) -> tuple[int, float]:
    """
    Return the lower index into `axis` and the weight of that entry, for
    interpolation in log space, clamping at both ends.
    """
    if value <= axis[0]:
        return 0, 1.0
    if value >= axis[-1]:
        return len(axis) - 2, 0.0
    ix = int(np.searchsorted(axis, value, side="right")) - 1
    ix = min(ix, len(axis) - 2)
    weight = 1.0 - (np.log(value) - np.log(axis[ix])) / (np.log(axis[ix + 1]) - np.log(axis[ix]))
    return ix, float(weight)


def optimal_smoothing(di: int, ndp: int, avgdev: float) -> float:
    """
    Base smoothing factor for `ndp` points in `di` dimensions with average
    deviation `avgdev`. The caller's smoothness is a multiplier on this.
    """
    di = max(di, 1)
    nc = float(ndp) ** (1.0 / di)
    table = min(di, 4) - 1

    ncix, ncw = _log_bracket(SAMPLE_COUNT_AXIS[table], nc)
    adix, adw = _log_bracket(AVGDEV_AXIS[table], avgdev)

    smf = LOG_SMOOTHING[table]
    lsm = (
        smf[ncix][adix] * ncw * adw
        + smf[ncix][adix + 1] * ncw * (1.0 - adw)
        + smf[ncix + 1][adix] * (1.0 - ncw) * adw
        + smf[ncix + 1][adix + 1] * (1.0 - ncw) * (1.0 - adw)
    )
    return float(10.0 ** lsm)
