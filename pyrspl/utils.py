from typing import Callable, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

MAX_DI = 4          # Maximum input dimensions
MAX_FDI = 10        # Maximum output dimensions
DEFAULT_AVGDEV = 0.005
DEFAULT_AVERAGE = 0.5
MIN_IPOS_STEP = 1e-12


def _resolve_abbrev(value: str, valid_options: list[str], fieldname: str) -> str:
    """
    Resolve a possibly-abbreviated string 'value' to one of the entries in valid_options,
    if there is exactly one match. If none or more than one match, raise ValueError.
    """
    val_lower = value.lower()
    matches = [opt for opt in valid_options if opt.startswith(val_lower)]
    if len(matches) == 1:
        return matches[0]
    elif len(matches) == 0:
        raise ValueError(f"Invalid {fieldname} option: {value}")
    else:
        raise ValueError(f"Ambiguous {fieldname} option: {value}")


def check_params(
    smoothness: Optional[float],
    extend: str,
    extra_fit: int,
    line_sweeps: int,
    tolerance: float,
    weak: float,
    weak_function: Optional[Callable],
) -> tuple[float, str, int, int, float, float]:
    """
    Validate and standardize the fitting parameters.
    Returns (smoothness, extend, extra_fit, line_sweeps, tolerance, weak).
    """

    # ----------------------------------------------------------------
    # 1) Smoothness: 0 (or None) means nominal, -ve is a raw override
    # ----------------------------------------------------------------
    if smoothness is None or smoothness == 0.0:
        smoothness = 1.0
    smoothness = float(smoothness)

    # ----------------------------------------------------------------
    # 2) Validate extend
    # ----------------------------------------------------------------
    valid_extend = ["never", "warning", "always"]
    extend = _resolve_abbrev(extend, valid_extend, "extend")

    # ----------------------------------------------------------------
    # 3) Iteration counts and tolerance
    # ----------------------------------------------------------------
    if int(extra_fit) != extra_fit or extra_fit < 0:
        raise ValueError("extra_fit must be a non-negative integer.")
    if int(line_sweeps) != line_sweeps or line_sweeps < 0:
        raise ValueError("line_sweeps must be a non-negative integer.")
    if tolerance <= 0:
        raise ValueError("Tolerance must be positive.")

    # ----------------------------------------------------------------
    # 4) Weak default function
    # ----------------------------------------------------------------
    if weak_function is not None and not callable(weak_function):
        raise ValueError("weak_function must be callable.")
    if weak < 0:
        raise ValueError("Weak default function weighting must be non-negative.")

    return (smoothness, extend, int(extra_fit), int(line_sweeps), float(tolerance), float(weak))


def _as_samples(arr, n_cols: Optional[int], name: str) -> NDArray[np.float64]:
    """Convert to a 2-D float array, treating a 1-D array as a single column."""
    arr = np.asarray(arr, dtype=float)
    if arr.ndim == 1:
        if n_cols not in (None, 1) and arr.size == n_cols:
            arr = arr[None, :]
        else:
            arr = arr[:, None]
    if arr.ndim != 2:
        raise ValueError(f"{name} must be a 1-D or 2-D array.")
    return arr


def _per_axis(value, n: int, default: float, name: str) -> NDArray[np.float64]:
    if value is None:
        return np.full(n, default)
    value = np.asarray(value, dtype=float).ravel()
    if value.size == 1:
        return np.full(n, value[0])
    if value.size != n:
        raise ValueError(f"{name} must have {n} entries, got {value.size}.")
    return value.copy()


def validate_inputs(
    positions: Union[NDArray[np.float64], list],
    values: Union[NDArray[np.float64], list],
    resolution: Union[int, Sequence[int]],
    weights: Optional[NDArray[np.float64]],
    glow: Optional[Sequence[float]],
    ghigh: Optional[Sequence[float]],
    vlow: Optional[Sequence[float]],
    vhigh: Optional[Sequence[float]],
    avgdev: Union[float, Sequence[float], None],
    ipos: Optional[Sequence],
    extend: str,
) -> dict:
    """
    Preprocess and validate the scattered data.
    Returns a dictionary of 'prepared' data needed by the fit.
    """

    # Resolution defines the input dimensionality
    res = np.atleast_1d(np.asarray(resolution)).ravel()
    if res.size == 0 or np.any(res != np.round(res)):
        raise ValueError("Resolution must be one or more integers.")
    res = res.astype(int)
    di = len(res)
    if di > MAX_DI:
        raise ValueError(f"Fit can't handle di = {di} (maximum {MAX_DI}).")
    if np.any(res < 2):
        raise ValueError("Grid resolution must be >= 2.")

    p = _as_samples(positions, di, "positions")
    v = _as_samples(values, None, "values")
    fdi = v.shape[1]
    if fdi < 1 or fdi > MAX_FDI:
        raise ValueError(f"Fit can't handle fdi = {fdi} (maximum {MAX_FDI}).")
    if p.shape[1] != di:
        raise ValueError(f"positions have {p.shape[1]} dimensions, resolution has {di}.")
    if p.shape[0] != v.shape[0]:
        raise ValueError("positions and values must have the same number of samples.")

    # Per point weight, scalar or per output channel
    if weights is None:
        k = np.ones((p.shape[0], fdi))
    else:
        k = np.asarray(weights, dtype=float)
        if k.ndim == 1:
            k = np.repeat(k[:, None], fdi, axis=1)
        if k.shape != (p.shape[0], fdi):
            raise ValueError("weights must be (N,) or (N, fdi).")

    # Remove NaNs
    nan_mask = ~(np.isnan(p).any(axis=1) | np.isnan(v).any(axis=1) | np.isnan(k).any(axis=1))
    p, v, k = p[nan_mask], v[nan_mask], k[nan_mask]

    if np.any(k <= 0):
        raise ValueError("Data point weights must be > 0.")

    low = _per_axis(glow, di, 0.0, "glow")
    high = _per_axis(ghigh, di, 1.0, "ghigh")
    vl = _per_axis(vlow, fdi, 0.0, "vlow")
    vh = _per_axis(vhigh, fdi, 1.0, "vhigh")
    ad = _per_axis(avgdev, fdi, DEFAULT_AVGDEV, "avgdev")

    # Function to adjust grid bounds if data extends beyond them
    def maybe_extend(bound_val: float, limits: NDArray[np.float64], e: int, side: str, axis: str):
        if side == "start":
            if bound_val < limits[e]:
                if extend == "warning":
                    print(
                        f"[RSPL:extend] {axis}low[{e}] was decreased by "
                        f"{limits[e] - bound_val:.6f}, new = {bound_val:.6f}"
                    )
                elif extend == "never":
                    raise ValueError(
                        f"Some {axis}[{e}] ({bound_val}) falls below {axis}low[{e}] by {limits[e] - bound_val:.6f}"
                    )
                limits[e] = bound_val
        elif side == "end":
            if bound_val > limits[e]:
                if extend == "warning":
                    print(
                        f"[RSPL:extend] {axis}high[{e}] was increased by "
                        f"{bound_val - limits[e]:.6f}, new = {bound_val:.6f}"
                    )
                elif extend == "never":
                    raise ValueError(
                        f"Some {axis}[{e}] ({bound_val}) falls above {axis}high[{e}] by {bound_val - limits[e]:.6f}"
                    )
                limits[e] = bound_val

    if len(p):
        for e in range(di):
            maybe_extend(float(p[:, e].min()), low, e, "start", "g")
            maybe_extend(float(p[:, e].max()), high, e, "end", "g")
    if np.any(high <= low):
        raise ValueError("Grid high bounds must be greater than low bounds.")

    # The value range only scales the smoothness, so it expands silently
    if len(v):
        vl = np.minimum(vl, v.min(axis=0))
        vh = np.maximum(vh, v.max(axis=0))

    # Average data value, starting points of the solution
    va = v.mean(axis=0) if len(v) else np.full(fdi, DEFAULT_AVERAGE)

    # Optional relative node positions, one array per axis or None
    if ipos is None:
        ipos_arr = [None] * di
    else:
        if len(ipos) != di:
            raise ValueError(f"ipos must have {di} entries (one per axis).")
        ipos_arr = []
        for e, pos in enumerate(ipos):
            if pos is None:
                ipos_arr.append(None)
                continue
            pos = np.asarray(pos, dtype=float).ravel()
            if pos.size != res[e]:
                raise ValueError(f"ipos[{e}] must have {res[e]} entries, got {pos.size}.")
            close = np.flatnonzero(np.abs(np.diff(pos)) < MIN_IPOS_STEP)
            if close.size:
                i = int(close[0]) + 1
                raise ValueError(f"ipos[{e}][{i}] to ipos[{e}][{i - 1}] is nearly zero!")
            ipos_arr.append(pos)

    return {
        "p": p,
        "v": v,
        "k": k,
        "cv": v.copy(),     # extra fit corrected target values
        "va": va,
        "vl": vl,
        "vw": vh - vl,
        "avgdev": ad,
        "low": low,
        "high": high,
        "res": tuple(int(r) for r in res),
        "di": di,
        "fdi": fdi,
        "ipos": ipos_arr,
    }
