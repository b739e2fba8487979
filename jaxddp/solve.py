"""Top-level entry point choosing the solver for a problem."""

from __future__ import annotations

from .augmented_lagrangian import AugmentedLagrangianSolver
from .ilqr_solver import iLQRSolver
from .logger import SolverLogger
from .problem import Problem
from .solver_options import AugmentedLagrangianSolverOptions, iLQRSolverOptions
from .solver_stats import SolverResult


def solve(
    problem: Problem,
    opts: AugmentedLagrangianSolverOptions | iLQRSolverOptions | None = None,
    logger: SolverLogger | None = None,
) -> SolverResult:
    """Solve with the Augmented Lagrangian solver if the problem has constraints, iLQR otherwise.

    iLQR options given for a constrained problem configure the inner solver.
    """
    if problem.is_constrained:
        if isinstance(opts, iLQRSolverOptions):
            opts = AugmentedLagrangianSolverOptions(
                opts_uncon=opts, verbose=opts.verbose, throw_errors=opts.throw_errors
            )
        return AugmentedLagrangianSolver(problem, opts, logger).solve()

    if isinstance(opts, AugmentedLagrangianSolverOptions):
        opts = opts.opts_uncon
    return iLQRSolver(problem, opts, logger).solve()
