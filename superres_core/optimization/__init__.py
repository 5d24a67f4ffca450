"""MAP solvers and their inner linear solver."""

from superres_core.optimization.conjugate_gradient import conjugate_gradient
from superres_core.optimization.irls_map_solver import (
    IRLSMapSolver,
    IRLSMapSolverOptions,
    IRLSSolveSummary,
)
from superres_core.optimization.map_solver import (
    MapSolver,
    MapSolverOptions,
    SolverState,
)

__all__ = [
    "conjugate_gradient",
    "IRLSMapSolver",
    "IRLSMapSolverOptions",
    "IRLSSolveSummary",
    "MapSolver",
    "MapSolverOptions",
    "SolverState",
]
