"""Augmented Lagrangian solver for constrained iLQR/DDP problems.

The constraints are folded into the cost as

    J_aug = J + sum_k sum_i active_i (lambda_i c_i + 0.5 mu_i c_i^2)

and the unconstrained solver minimizes J_aug. Between inner solves the
multipliers take a first-order step and the penalties grow for the components
whose violation did not shrink enough.
"""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .constraints import ConstraintSet
from .costs import Objective
from .exceptions import LineSearchExhausted, NonPositiveDefiniteError, NumericOverflowError
from .ilqr_solver import error_status, iLQRSolver
from .knot_point import CostExpansion, Trajectory
from .logger import SolverLogger
from .problem import Problem
from .solver_options import AugmentedLagrangianSolverOptions
from .solver_stats import AugmentedLagrangianStats, SolverResult, iLQRStats
from .types import Float, SolveStatus


@dataclass
class ConstraintTrajectories:
    """Fixed-size constraint values, Jacobians, multipliers and penalties.

    Stage arrays have a leading axis over the N-1 control intervals; the
    terminal arrays belong to the last knot point.
    """

    C: Array  # (N-1, p)
    Cx: Array  # (N-1, p, n)
    Cu: Array  # (N-1, p, m)
    lam: Array  # (N-1, p)
    mu: Array  # (N-1, p)
    active: Array  # (N-1, p) bool
    viol_prev: Array  # (N-1, p)
    C_N: Array  # (p_N,)
    Cx_N: Array  # (p_N, n)
    lam_N: Array  # (p_N,)
    mu_N: Array  # (p_N,)
    active_N: Array  # (p_N,) bool
    viol_prev_N: Array  # (p_N,)

    @classmethod
    def zeros(
        cls, constraints: ConstraintSet, N: int, n: int, m: int, penalty_initial: Float
    ) -> ConstraintTrajectories:
        p, p_N = constraints.stage_dim, constraints.terminal_dim
        return cls(
            C=jnp.zeros((N - 1, p)),
            Cx=jnp.zeros((N - 1, p, n)),
            Cu=jnp.zeros((N - 1, p, m)),
            lam=jnp.zeros((N - 1, p)),
            mu=jnp.full((N - 1, p), penalty_initial),
            active=jnp.zeros((N - 1, p), dtype=bool),
            viol_prev=jnp.zeros((N - 1, p)),
            C_N=jnp.zeros(p_N),
            Cx_N=jnp.zeros((p_N, n)),
            lam_N=jnp.zeros(p_N),
            mu_N=jnp.full(p_N, penalty_initial),
            active_N=jnp.zeros(p_N, dtype=bool),
            viol_prev_N=jnp.zeros(p_N),
        )

    def reset(self, penalty_initial: Float) -> None:
        """Zero the multipliers and restore the initial penalties."""
        self.lam = jnp.zeros_like(self.lam)
        self.lam_N = jnp.zeros_like(self.lam_N)
        self.mu = jnp.full_like(self.mu, penalty_initial)
        self.mu_N = jnp.full_like(self.mu_N, penalty_initial)
        self.viol_prev = jnp.zeros_like(self.viol_prev)
        self.viol_prev_N = jnp.zeros_like(self.viol_prev_N)
        self.active = jnp.zeros_like(self.active)
        self.active_N = jnp.zeros_like(self.active_N)

    def copy_from(self, other: ConstraintTrajectories) -> None:
        for name in self.__dataclass_fields__:
            setattr(self, name, jnp.copy(getattr(other, name)))

    def max_penalty(self) -> Float:
        penalties = [float(jnp.max(mu)) for mu in (self.mu, self.mu_N) if mu.size]
        return max(penalties, default=0.0)


def _active_set(C: Array, lam: Array, equality: Array, tolerance: Float) -> Array:
    return equality | (C > tolerance) | (lam > 0)


def _penalty(C: Array, lam: Array, mu: Array, active: Array) -> Array:
    return jnp.sum(jnp.where(active, lam * C + 0.5 * mu * C**2, 0.0))


class AugmentedLagrangianObjective(Objective):
    """Problem objective augmented with multiplier and penalty terms.

    Every cost evaluation recomputes the active set for the trajectory it is
    evaluated on. Every expansion also stores the constraint values, Jacobians
    and active set in the shared ConstraintTrajectories.
    """

    def __init__(
        self,
        objective: Objective,
        constraints: ConstraintSet,
        conval: ConstraintTrajectories,
        active_constraint_tolerance: Float = 0.0,
    ):
        self.objective = objective
        self.stage_cost = objective.stage_cost
        self.terminal_cost = objective.terminal_cost
        self.constraints = constraints
        self.conval = conval
        self.active_constraint_tolerance = active_constraint_tolerance

        equality = constraints.stage_equality
        equality_N = constraints.terminal_equality
        tol = active_constraint_tolerance

        def total_cost(X, U, lam, mu, lam_N, mu_N):
            C, C_N = constraints._evaluate_arrays(X, U)
            active = _active_set(C, lam, equality, tol)
            active_N = _active_set(C_N, lam_N, equality_N, tol)
            return (
                objective._total_cost(X, U)
                + _penalty(C, lam, mu, active)
                + _penalty(C_N, lam_N, mu_N, active_N)
            )

        def stage_costs(X, U, lam, mu, lam_N, mu_N):
            C, C_N = constraints._evaluate_arrays(X, U)
            active = _active_set(C, lam, equality, tol)
            active_N = _active_set(C_N, lam_N, equality_N, tol)
            stage = jnp.where(active, lam * C + 0.5 * mu * C**2, 0.0).sum(axis=1)
            terminal = _penalty(C_N, lam_N, mu_N, active_N)
            return objective._stage_costs(X, U) + jnp.append(stage, terminal)

        def expansion(X, U, lam, mu, lam_N, mu_N):
            lx, lu, lxx, luu, lux, lx_N, lxx_N = objective._expansion(X, U)
            C, C_N = constraints._evaluate_arrays(X, U)
            Cx, Cu, Cx_N = constraints._jacobian_arrays(X, U)
            active = _active_set(C, lam, equality, tol)
            active_N = _active_set(C_N, lam_N, equality_N, tol)

            # lambda + I_mu c, with I_mu the penalties of the active components
            Imu = jnp.where(active, mu, 0.0)
            g = jnp.where(active, lam + mu * C, 0.0)
            Imu_N = jnp.where(active_N, mu_N, 0.0)
            g_N = jnp.where(active_N, lam_N + mu_N * C_N, 0.0)

            lx = lx + jnp.einsum("kpn,kp->kn", Cx, g)
            lu = lu + jnp.einsum("kpm,kp->km", Cu, g)
            lxx = lxx + jnp.einsum("kpi,kp,kpj->kij", Cx, Imu, Cx)
            luu = luu + jnp.einsum("kpi,kp,kpj->kij", Cu, Imu, Cu)
            lux = lux + jnp.einsum("kpi,kp,kpj->kij", Cu, Imu, Cx)
            lx_N = lx_N + Cx_N.T @ g_N
            lxx_N = lxx_N + Cx_N.T @ (Imu_N[:, None] * Cx_N)

            terms = (lx, lu, lxx, luu, lux, lx_N, lxx_N)
            return terms, (C, Cx, Cu, active, C_N, Cx_N, active_N)

        self._total_cost = jax.jit(total_cost)
        self._stage_costs = jax.jit(stage_costs)
        self._expansion = jax.jit(expansion)

    def _duals(self) -> tuple[Array, Array, Array, Array]:
        conval = self.conval
        return conval.lam, conval.mu, conval.lam_N, conval.mu_N

    def cost_arrays(self, X: Array, U: Array) -> Float:
        return float(self._total_cost(X, U, *self._duals()))

    def stage_costs(self, Z: Trajectory) -> Array:
        return self._stage_costs(Z.states(), Z.controls(), *self._duals())

    def expansion(self, Z: Trajectory) -> CostExpansion:
        terms, constraint_data = self._expansion(Z.states(), Z.controls(), *self._duals())
        self._store(*constraint_data)
        return CostExpansion(*terms)

    def update(self, Z: Trajectory) -> None:
        """Evaluate constraints and Jacobians on ``Z`` and refresh the active set."""
        X, U = Z.states(), Z.controls()
        C, C_N = self.constraints.evaluate(X, U)
        Cx, Cu, Cx_N = self.constraints.jacobians(X, U)
        tol = self.active_constraint_tolerance
        active = _active_set(C, self.conval.lam, self.constraints.stage_equality, tol)
        active_N = _active_set(C_N, self.conval.lam_N, self.constraints.terminal_equality, tol)
        self._store(C, Cx, Cu, active, C_N, Cx_N, active_N)

    def _store(self, C, Cx, Cu, active, C_N, Cx_N, active_N) -> None:
        conval = self.conval
        conval.C, conval.Cx, conval.Cu, conval.active = C, Cx, Cu, active
        conval.C_N, conval.Cx_N, conval.active_N = C_N, Cx_N, active_N


class AugmentedLagrangianSolver:
    """Outer multiplier/penalty loop around an iLQRSolver."""

    def __init__(
        self,
        problem: Problem,
        opts: AugmentedLagrangianSolverOptions | None = None,
        logger: SolverLogger | None = None,
    ):
        self.problem = problem
        self.opts = opts or AugmentedLagrangianSolverOptions()
        self.logger = logger or SolverLogger(self.opts.verbose)
        self.constraints = problem.constraints

        self.conval = ConstraintTrajectories.zeros(
            self.constraints,
            problem.num_knots,
            problem.num_states,
            problem.num_controls,
            self.opts.penalty_initial,
        )
        self.objective = AugmentedLagrangianObjective(
            problem.objective,
            self.constraints,
            self.conval,
            self.opts.active_constraint_tolerance,
        )

        # Inner failures are raised so the outer loop can classify them
        inner_opts = dataclasses.replace(self.opts.opts_uncon, throw_errors=True)
        self.solver_uncon = iLQRSolver(problem, inner_opts, self.logger, self.objective)

        self.stats = AugmentedLagrangianStats(self.opts.iterations)
        # Statistics of every inner solve, one entry per outer iteration
        self.inner_stats_history: list[iLQRStats] = []
        self.best_trajectory: Trajectory | None = None
        self.best_K: list[Array] = []
        self.best_d: list[Array] = []
        self.best_c_max = np.inf

    @property
    def Z(self) -> Trajectory:
        return self.solver_uncon.Z

    def max_violation(self) -> Float:
        return self.constraints.max_violation(self.conval.C, self.conval.C_N)

    def evaluate_constraints(self) -> None:
        C, C_N = self.constraints.evaluate(self.Z.states(), self.Z.controls())
        self.conval.C = C
        self.conval.C_N = C_N

    def dual_update(self) -> None:
        """First-order multiplier step, projected onto lambda >= 0 for inequalities."""
        opts = self.opts
        conval = self.conval
        lam = jnp.clip(conval.lam + conval.mu * conval.C, opts.dual_min, opts.dual_max)
        lam_N = jnp.clip(conval.lam_N + conval.mu_N * conval.C_N, opts.dual_min, opts.dual_max)
        conval.lam = jnp.where(self.constraints.stage_equality, lam, jnp.maximum(lam, 0.0))
        conval.lam_N = jnp.where(
            self.constraints.terminal_equality, lam_N, jnp.maximum(lam_N, 0.0)
        )

    def penalty_update(self) -> None:
        """Grow the penalty of every component whose violation did not shrink enough."""
        opts = self.opts
        conval = self.conval
        viol, viol_N = self.constraints.violation(conval.C, conval.C_N)
        ratio = opts.constraint_decrease_ratio

        increase = viol > ratio * conval.viol_prev
        increase_N = viol_N > ratio * conval.viol_prev_N
        conval.mu = jnp.where(
            increase, jnp.minimum(conval.mu * opts.penalty_scaling, opts.penalty_max), conval.mu
        )
        conval.mu_N = jnp.where(
            increase_N,
            jnp.minimum(conval.mu_N * opts.penalty_scaling, opts.penalty_max),
            conval.mu_N,
        )
        conval.viol_prev = viol
        conval.viol_prev_N = viol_N

    def _iterate(self) -> None:
        opts = self.opts
        inner = self.solver_uncon

        for iteration in range(opts.iterations):
            if iteration == opts.iterations - 1:
                inner.set_tolerances(opts.cost_tolerance, opts.gradient_norm_tolerance)
            else:
                inner.set_tolerances(
                    opts.cost_tolerance_intermediate, opts.gradient_norm_tolerance_intermediate
                )
            self.objective.update(self.Z)

            try:
                inner.solve()
            except LineSearchExhausted:
                # The nominal is still the last accepted trajectory
                pass
            finally:
                self.inner_stats_history.append(inner.stats.clone())

            self.evaluate_constraints()
            c_max = self.max_violation()
            cost = self.problem.objective.cost(self.Z)

            self.dual_update()
            self.penalty_update()
            penalty_max = self.conval.max_penalty()

            self.stats.record_iteration(inner.stats.iterations, cost, c_max, penalty_max)
            self.logger.outer(
                f"Outer iter = {iteration:3d}: inner status = {inner.stats.status.value}, "
                f"iterations = {inner.stats.iterations:3d}, J = {cost:10.4g}, "
                f"c_max = {c_max:8.3e}, max penalty = {penalty_max:7.2g}"
            )

            if c_max < self.best_c_max:
                self.best_c_max = c_max
                self.best_trajectory = self.Z.clone()
                self.best_K = list(inner.K)
                self.best_d = list(inner.d)

            if c_max < opts.constraint_tolerance:
                self.stats.status = SolveStatus.SUCCESS
                return

        self.stats.status = SolveStatus.CONSTRAINT_INFEASIBLE

    def _clear_history(self) -> None:
        self.stats.reset()
        self.inner_stats_history = []
        self.best_trajectory = None
        self.best_K = []
        self.best_d = []
        self.best_c_max = np.inf

    def solve(self) -> SolverResult:
        """Run outer iterations until the constraints are satisfied or the budget runs out."""
        self._clear_history()
        start_time = time.time()
        self.logger.outer("STARTING AUGMENTED LAGRANGIAN SOLVE....")

        error = None
        try:
            self._iterate()
        except (NonPositiveDefiniteError, NumericOverflowError) as e:
            error = e
            self.stats.status = error_status(e)
            self.logger.outer(f"  Augmented Lagrangian solve failed: {e}")

        self.stats.solve_time = (time.time() - start_time) * 1000  # Convert to milliseconds
        result = self.result()
        self.logger.outer(
            f"AUGMENTED LAGRANGIAN SOLVE FINISHED! status = {result.status.value}, "
            f"outer iterations = {self.stats.iterations}, "
            f"total iterations = {self.stats.iterations_total}, cost = {result.cost:.6g}"
        )
        if error is not None and self.opts.throw_errors:
            error.result = result
            raise error
        return result

    def result(self) -> SolverResult:
        """Current solution; an infeasible solve returns the least infeasible
        trajectory together with the gains computed about it."""
        inner = self.solver_uncon
        trajectory, K, d = self.Z, inner.K, inner.d
        infeasible = self.stats.status == SolveStatus.CONSTRAINT_INFEASIBLE
        if infeasible and self.best_trajectory is not None:
            trajectory, K, d = self.best_trajectory, self.best_K, self.best_d
        return SolverResult(
            status=self.stats.status,
            trajectory=trajectory.clone(),
            K=list(K),
            d=list(d),
            cost=self.problem.objective.cost(trajectory),
            stats=self.stats.clone(),
            inner_stats=inner.stats.clone(),
            inner_stats_history=[stats.clone() for stats in self.inner_stats_history],
        )

    def reset(self) -> None:
        """Zero the multipliers, restore penalties and reset the inner solver."""
        self.conval.reset(self.opts.penalty_initial)
        self.solver_uncon.reset()
        self._clear_history()

    def clone(self) -> AugmentedLagrangianSolver:
        other = AugmentedLagrangianSolver(self.problem, self.opts, self.logger)
        other.conval.copy_from(self.conval)
        other.solver_uncon.copy_from(self.solver_uncon)
        other.stats = self.stats.clone()
        other.inner_stats_history = [stats.clone() for stats in self.inner_stats_history]
        other.best_c_max = self.best_c_max
        other.best_K = list(self.best_K)
        other.best_d = list(self.best_d)
        if self.best_trajectory is not None:
            other.best_trajectory = self.best_trajectory.clone()
        return other
