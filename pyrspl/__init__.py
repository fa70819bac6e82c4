from .grid import Grid, GridIndex, resolution_ladder
from .rspl import RsplFit
from .solvers import SolveReport

__all__ = ["RsplFit", "Grid", "GridIndex", "SolveReport", "resolution_ladder"]
