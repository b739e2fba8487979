"""Unconstrained iLQR/DDP solver.

Each iteration linearizes the dynamics and expands the cost about the nominal
trajectory, runs the regularized backward pass, and searches for a step along
the resulting feedback law. Regularization and line-search failures are
handled inside the loop; only fatal conditions leave it as exceptions, which
``solve`` converts into a termination status.
"""

from __future__ import annotations

import dataclasses
import time

import jax.numpy as jnp
from jax import Array

from .backward_pass import BackwardPassResult, regularized_backward_pass
from .costs import Objective
from .exceptions import (
    LineSearchExhausted,
    NonPositiveDefiniteError,
    NumericOverflowError,
    OptimizationError,
)
from .forward_pass import BacktrackingLineSearch, check_bounds, forward_pass, open_loop_rollout
from .logger import SolverLogger
from .problem import Problem
from .regularization import Regularization
from .solver_options import iLQRSolverOptions
from .solver_stats import SolverResult, iLQRStats
from .types import ErrorCode, Float, GradientType, SolverState, SolveStatus


_ERROR_STATUS = {
    ErrorCode.BACKWARD_PASS_FAILED: SolveStatus.BACKWARD_PASS_FAILED,
    ErrorCode.LINE_SEARCH_FAILED: SolveStatus.LINE_SEARCH_FAILED,
    ErrorCode.MAX_COST_EXCEEDED: SolveStatus.MAX_COST_EXCEEDED,
    ErrorCode.STATE_OUT_OF_BOUNDS: SolveStatus.STATE_OUT_OF_BOUNDS,
    ErrorCode.INPUT_OUT_OF_BOUNDS: SolveStatus.INPUT_OUT_OF_BOUNDS,
}


def error_status(error: OptimizationError) -> SolveStatus:
    """Termination status reported for a fatal solver error."""
    return _ERROR_STATUS[error.error_code]


class iLQRSolver:
    """Iterative LQR solver for unconstrained problems.

    The solver owns a nominal trajectory ``Z``, a candidate ``Z_bar``, the
    gains of the last backward pass, the regularization state and the
    statistics. ``objective`` defaults to the problem's objective; the
    Augmented Lagrangian solver passes its augmented objective instead.
    """

    def __init__(
        self,
        problem: Problem,
        opts: iLQRSolverOptions | None = None,
        logger: SolverLogger | None = None,
        objective: Objective | None = None,
    ):
        self.problem = problem
        self.opts = opts or iLQRSolverOptions()
        self.logger = logger or SolverLogger(self.opts.verbose)
        self.model = problem.model
        self.objective = objective or problem.objective

        N = problem.num_knots
        n, m = problem.num_states, problem.num_controls
        self.Z = problem.initial_trajectory()
        self.Z_bar = self.Z.clone()
        self.K: list[Array] = [jnp.zeros((m, n)) for _ in range(N - 1)]
        self.d: list[Array] = [jnp.zeros(m) for _ in range(N - 1)]
        self.S: list[Array] = [jnp.zeros((n, n)) for _ in range(N)]
        self.s: list[Array] = [jnp.zeros(n) for _ in range(N)]
        self.Quu_reg: list[Array] = [jnp.zeros((m, m)) for _ in range(N - 1)]
        self.dJ1: Float = 0.0
        self.dJ2: Float = 0.0

        self.regularization = Regularization(self.opts)
        self.line_search = BacktrackingLineSearch.from_options(self.opts)
        self.stats = iLQRStats(self.opts.iterations)
        self.state = SolverState.RUNNING

    def set_tolerances(self, cost_tolerance: Float, gradient_norm_tolerance: Float) -> None:
        self.opts = dataclasses.replace(
            self.opts,
            cost_tolerance=cost_tolerance,
            gradient_norm_tolerance=gradient_norm_tolerance,
        )

    def cost(self) -> Float:
        return self.objective.cost(self.Z)

    def gradient_norm(self) -> Float:
        """Size of the feedforward step relative to the nominal controls."""
        d = jnp.stack(self.d)
        if self.opts.gradient_type == GradientType.TODOROV:
            U = self.Z.controls()
            return float(jnp.mean(jnp.max(jnp.abs(d) / (jnp.abs(U) + 1), axis=1)))
        return float(jnp.mean(jnp.max(jnp.abs(d), axis=1)))

    def backward_pass(self) -> int:
        """Expand about the nominal and run the regularized backward pass.

        Returns the number of regularization increases it took to succeed.
        """
        Z = self.Z
        linearization = self.model.linearize(Z.states(), Z.controls(), Z.timesteps())
        expansion = self.objective.expansion(Z)
        result, increases = regularized_backward_pass(
            linearization, expansion, self.regularization
        )
        self._store_gains(result)
        return increases

    def _store_gains(self, result: BackwardPassResult) -> None:
        self.K = result.K
        self.d = result.d
        self.S = result.S
        self.s = result.s
        self.Quu_reg = result.Quu_reg
        self.dJ1 = result.dJ1
        self.dJ2 = result.dJ2

    def forward_pass(self, J_prev: Float) -> Float:
        gains = BackwardPassResult(
            self.K, self.d, self.S, self.s, self.Quu_reg, self.dJ1, self.dJ2
        )
        return forward_pass(
            self.model,
            self.objective,
            self.Z,
            self.Z_bar,
            gains,
            self.line_search,
            self.opts,
            J_prev,
        )

    def initialize(self) -> Float:
        """Roll out the nominal controls and return the initial cost."""
        open_loop_rollout(self.model, self.Z, self.problem.x0)
        J = self.cost()
        check_bounds(self.Z, J, self.opts)
        self.Z_bar.copy_from(self.Z)
        return J

    def step(self, J_prev: Float) -> tuple[Float, Float, int]:
        """One backward/forward iteration: returns (J, dJ, regularization increases)."""
        increases = self.backward_pass()
        self.forward_pass(J_prev)

        if self.line_search.accepted:
            J = self.line_search.phi
            self.Z.copy_from(self.Z_bar)
            self.stats.dJ_zero_counter = 0
            if increases == 0:
                self.regularization.decrease()
        else:
            J = J_prev
            self.stats.dJ_zero_counter += 1
            self.regularization.bump()
        return J, J_prev - J, increases

    def _iterate(self) -> None:
        opts = self.opts
        J_prev = self.initialize()
        self.stats.set_initial_cost(J_prev)
        self.logger.inner(f"STARTING iLQR SOLVE.... Initial Cost: {J_prev:.6g}")

        for iteration in range(opts.iterations):
            J, dJ, increases = self.step(J_prev)
            gradient = self.gradient_norm()
            accepted = self.line_search.accepted

            self.stats.record_iteration(
                J,
                dJ,
                gradient,
                self.regularization.rho,
                self.line_search.alpha,
                self.line_search.z,
                increases,
                self.line_search.n_iters,
            )
            self.logger.inner(
                f"  iter = {iteration:3d}, J = {J:10.4g}, dJ = {dJ:10.3g}, "
                f"grad = {gradient:8.3e}, alpha = {self.line_search.alpha:8.3g}, "
                f"z = {self.line_search.z:8.3g}, ls_iter = {self.line_search.n_iters:2d}, "
                f"rho = {self.regularization.rho:7.2g}"
            )
            J_prev = J

            if (accepted and dJ < opts.cost_tolerance) or gradient < opts.gradient_norm_tolerance:
                self.state = SolverState.CONVERGED
                self.stats.status = SolveStatus.SUCCESS
                return

            if self.stats.dJ_zero_counter > opts.dJ_counter_limit:
                raise LineSearchExhausted(
                    f"Line search failed {self.stats.dJ_zero_counter} consecutive times",
                    self.stats.dJ_zero_counter,
                )

        self.state = SolverState.FAILED
        self.stats.status = SolveStatus.MAX_ITERATIONS

    def solve(self) -> SolverResult:
        """Optimize from the current nominal controls."""
        self.stats.reset()
        self.regularization.reset()
        self.state = SolverState.RUNNING
        start_time = time.time()

        error: OptimizationError | None = None
        try:
            self._iterate()
        except (NonPositiveDefiniteError, NumericOverflowError, LineSearchExhausted) as e:
            error = e
            self.state = SolverState.FAILED
            self.stats.status = error_status(e)
            self.logger.inner(f"  iLQR solve failed: {e}")

        self.stats.solve_time = (time.time() - start_time) * 1000  # Convert to milliseconds
        result = self.result()
        self.logger.inner(
            f"iLQR SOLVE FINISHED! status = {result.status.value}, "
            f"iterations = {self.stats.iterations}, cost = {result.cost:.6g}"
        )
        if error is not None and self.opts.throw_errors:
            error.result = result
            raise error
        return result

    def result(self) -> SolverResult:
        return SolverResult(
            status=self.stats.status,
            trajectory=self.Z.clone(),
            K=list(self.K),
            d=list(self.d),
            cost=self.cost(),
            stats=self.stats.clone(),
        )

    def reset(self) -> None:
        """Restore regularization, statistics and the initial control guess."""
        self.regularization.reset()
        self.stats.reset()
        self.line_search.reset()
        self.state = SolverState.RUNNING
        self.Z.copy_from(self.problem.initial_trajectory())
        self.Z_bar.copy_from(self.Z)
        n, m = self.problem.num_states, self.problem.num_controls
        self.K = [jnp.zeros((m, n)) for _ in self.K]
        self.d = [jnp.zeros(m) for _ in self.d]
        self.dJ1 = 0.0
        self.dJ2 = 0.0

    def copy_from(self, other: iLQRSolver) -> None:
        """Copy the mutable state of ``other`` value by value."""
        self.opts = other.opts
        self.Z.copy_from(other.Z)
        self.Z_bar.copy_from(other.Z_bar)
        self.K = list(other.K)
        self.d = list(other.d)
        self.S = list(other.S)
        self.s = list(other.s)
        self.Quu_reg = list(other.Quu_reg)
        self.dJ1 = other.dJ1
        self.dJ2 = other.dJ2
        self.regularization.copy_from(other.regularization)
        self.line_search.copy_from(other.line_search)
        self.stats = other.stats.clone()
        self.state = other.state

    def clone(self) -> iLQRSolver:
        """Independent copy of every mutable buffer."""
        other = iLQRSolver(self.problem, self.opts, self.logger, self.objective)
        other.copy_from(self)
        return other
