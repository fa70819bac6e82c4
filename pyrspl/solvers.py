from typing import NamedTuple

import numpy as np
from numpy.typing import NDArray
import scipy.sparse.linalg as spla
from scipy.sparse import csr_matrix, diags, tril, triu

TOL_IMP = 0.998     # Minimum error improvement per relaxation sweep to continue
MAX_ITERS = 500     # Outer iteration cap
MAXNI = 16          # Maximum relaxation sweeps between error checks
CONJ_TOL = 1.0      # Line conjugate gradient tolerance, as a multiple of the solve tolerance
LINE_STALL = 0.8    # Error ratio above which line conjugate gradient sweeps are abandoned
DIRECT_RES = 4      # Largest resolution solved with a single conjugate gradient pass


class SolveReport(NamedTuple):
    res: tuple
    error: float
    iterations: int
    converged: bool


def solution_error(A: csr_matrix, x: NDArray, b: NDArray, normb: float) -> float:
    """Normalised residual norm(b - A x) / norm(b)."""
    return float(np.linalg.norm(b - A @ x) / normb)


def conjugate_gradient(
    A: csr_matrix,
    x: NDArray[np.float64],
    b: NDArray[np.float64],
    idx: NDArray[np.int64],
    max_iter: int,
    tol: float,
) -> float:
    """
    Diagonally preconditioned conjugate gradient solve of the nodes idx,
    holding every other node of x fixed. x is updated in place.
    Returns the normalised residual achieved.
    """
    normb = np.linalg.norm(b[idx])
    if normb == 0.0:
        normb = 1.0

    rows = A[idx]
    sub = rows[:, idx]
    # right hand side with the contribution of the fixed nodes moved across
    rhs = b[idx] - rows @ x + sub @ x[idx]
    diag = sub.diagonal()
    inv_diag = np.where(diag != 0.0, 1.0 / np.where(diag != 0.0, diag, 1.0), 1.0)

    xx, _ = spla.cg(sub, rhs, x0=x[idx], rtol=0.0, atol=tol * normb,
                    maxiter=max_iter, M=diags(inv_diag))
    x[idx] = xx
    return float(np.linalg.norm(rhs - sub @ xx) / normb)


def grid_lines(res: tuple, strides: NDArray[np.int64], axis: int) -> list[NDArray[np.int64]]:
    """
    Node indexes of every grid line along `axis`, in red-black order: lines
    whose other coordinates sum to an even number first, then the odd ones.
    """
    other = [e for e in range(len(res)) if e != axis]
    along = np.arange(res[axis]) * strides[axis]
    starts = []
    for parity in (0, 1):
        for gc in np.ndindex(*[res[e] for e in other]):
            if sum(gc) % 2 == parity:
                starts.append(int(np.dot(gc, strides[other])) if other else 0)
    return [s + along for s in starts]


def line_sweep(
    A: csr_matrix,
    x: NDArray[np.float64],
    b: NDArray[np.float64],
    normb: float,
    res: tuple,
    strides: NDArray[np.int64],
    max_iter: int,
    tol: float,
) -> float:
    """
    One relaxation iteration solving every line of nodes, in every axis
    direction, by conjugate gradient. Returns the solution error.
    """
    for axis in range(len(res)):
        for idx in grid_lines(res, strides, axis):
            conjugate_gradient(A, x, b, idx, max_iter, tol)
    return solution_error(A, x, b, normb)


def gauss_seidel(lower: csr_matrix, upper: csr_matrix, x: NDArray, b: NDArray):
    """
    One Gauss-Seidel relaxation sweep in node order, using each newly updated
    value as soon as it is known: solves (D + L) x' = b - U x.
    """
    x[:] = spla.spsolve_triangular(lower, b - upper @ x, lower=True)


def solve_gres(
    A: csr_matrix,
    x: NDArray[np.float64],
    b: NDArray[np.float64],
    normb: float,
    res: tuple,
    strides: NDArray[np.int64],
    tol: float,
    line_sweeps: int = 0,
    verbose: bool = False,
) -> SolveReport:
    """
    Solve A x = b for the grid node values, starting from the current x.

    Coarse grids are solved directly by conjugate gradient. Otherwise line
    conjugate gradient sweeps are used for the first `line_sweeps` iterations
    (while they make good progress), followed by batches of Gauss-Seidel
    relaxation sized from the observed convergence rate. Iteration stops when
    the error is within `tol`, when a sweep improves the error by less than
    TOL_IMP, or at MAX_ITERS. Not converging is not an error.
    """
    gno = len(x)
    bres = max(res)

    if bres <= DIRECT_RES:
        conjugate_gradient(A, x, b, np.arange(gno), 10 * gno, tol)
        err = solution_error(A, x, b, normb)
        return SolveReport(tuple(res), err, 1, err < tol)

    lower = tril(A, format="csr")
    upper = triu(A, k=1, format="csr")
    mres = float(np.prod(np.asarray(res, dtype=float)) ** (1.0 / len(res)))

    err = solution_error(A, x, b, normb)
    lerr, derr = 1.0, 1.0
    ni = 0
    it = 0
    for it in range(1, MAX_ITERS + 1):
        if it <= line_sweeps:
            lerr = err
            err = line_sweep(A, x, b, normb, res, strides, int(mres), tol * CONJ_TOL)
            derr = err / lerr if lerr > 0.0 else 0.0
            if derr > LINE_STALL:
                line_sweeps = 0     # Not improving fast enough, move to just relaxation
        else:
            if ni == 0 or err <= 0.0 or lerr <= err:
                ni = 1      # Just do one to get an estimate
            else:
                ni = int((np.log(tol) - np.log(err)) * ni / (np.log(err) - np.log(lerr)))
                ni = min(max(ni, 1), MAXNI)
            for _ in range(ni):
                gauss_seidel(lower, upper, x, b)
            lerr = err
            err = solution_error(A, x, b, normb)
            derr = (err / lerr) ** (1.0 / ni) if lerr > 0.0 else 0.0

        if verbose:
            print(f"[RSPL:solve] res {tuple(res)} iteration {it} error {err:.3e}")

        if err < tol or (derr <= 1.0 and derr > TOL_IMP):
            break

    return SolveReport(tuple(res), err, it, err < tol)
