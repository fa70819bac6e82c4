import itertools

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import coo_matrix, csr_matrix

from .grid import GridIndex


def stencil_offsets(index: GridIndex) -> NDArray[np.int64]:
    """
    Non-negative linear offsets of the node interactions the fitting equations
    can produce: any +/-1 offset cube around a node, plus +/-2 along a single
    axis. Only the forward half is kept since the system is symmetric.
    """
    di = index.di
    offsets = set()
    for gc in itertools.product(range(-2, 3), repeat=di):
        n2 = sum(1 for c in gc if abs(c) == 2)
        nz = sum(1 for c in gc if c == 0)
        if n2 == 0 or (n2 == 1 and nz == di - 1):
            ix = int(np.dot(gc, index.strides))
            if ix >= 0:
                offsets.add(ix)
    return np.array(sorted(offsets), dtype=np.int64)


class PackedSymmetricMatrix:
    """
    Symmetric sparse matrix over the nodes of a grid, stored as packed
    forward columns. coef[i, k] is the coefficient between node i and node
    i + xcol[k]; column 0 is the diagonal. The coefficient between i and
    i - xcol[k] is found in coef[i - xcol[k], k].
    """

    def __init__(self, index: GridIndex):
        self.index = index
        self.gno = index.gno
        self.xcol = stencil_offsets(index)          # packed -> offset
        self.ixcol = np.full(self.xcol[-1] + 1, -1, dtype=np.int64)
        self.ixcol[self.xcol] = np.arange(len(self.xcol))  # offset -> packed
        self.acols = len(self.xcol)
        self.coef = np.zeros((self.gno, self.acols))

    def column(self, offset) -> NDArray[np.int64]:
        """Packed column index for a forward offset."""
        offset = np.asarray(offset, dtype=np.int64)
        if np.any(offset < 0) or np.any(offset >= len(self.ixcol)):
            raise ValueError(f"Offset {offset} is outside the sparse stencil")
        k = self.ixcol[offset]
        if np.any(k < 0):
            raise ValueError(f"Offset {offset} is not an allowed sparse stencil offset")
        return k

    def add(self, rows, offset, values):
        """Accumulate values into the coefficient between rows and rows + offset."""
        rows = np.asarray(rows, dtype=np.int64)
        k = np.broadcast_to(self.column(offset), rows.shape)
        np.add.at(self.coef, (rows, k), values)

    def tocsr(self) -> csr_matrix:
        """Expand to a full symmetric CSR matrix."""
        rows, cols, vals = [], [], []
        for k, oset in enumerate(self.xcol):
            i = np.arange(self.gno - oset)
            v = self.coef[i, k]
            keep = (v != 0)
            i, v = i[keep], v[keep]
            rows.append(i)
            cols.append(i + oset)
            vals.append(v)
            if oset > 0:
                rows.append(i + oset)
                cols.append(i)
                vals.append(v)
        rows = np.concatenate(rows)
        cols = np.concatenate(cols)
        vals = np.concatenate(vals)
        return coo_matrix((vals, (rows, cols)), shape=(self.gno, self.gno)).tocsr()
