"""Solver statistics and results for JAX-based iLQR/DDP trajectory optimization.

Statistics are fixed-size structs whose per-iteration arrays are allocated once
from the iteration budget, so recording an iteration never grows a container.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from jax import Array

from .knot_point import Trajectory
from .types import Float, SolveStatus


class iLQRStats:
    """Per-iteration statistics of the unconstrained solver."""

    def __init__(self, iterations_max: int):
        self.iterations_max = iterations_max

        self.cost = np.zeros(iterations_max + 1)  # entry 0 holds the initial cost
        self.dJ = np.zeros(iterations_max)
        self.gradient = np.zeros(iterations_max)
        self.rho = np.zeros(iterations_max)
        self.alpha = np.zeros(iterations_max)
        self.z = np.zeros(iterations_max)
        self.regularization_increases = np.zeros(iterations_max, dtype=int)
        self.line_search_iterations = np.zeros(iterations_max, dtype=int)

        self.iterations = 0
        self.dJ_zero_counter = 0
        self.status = SolveStatus.UNSOLVED
        self.solve_time: Float = 0.0

    def reset(self) -> None:
        """Reset all statistics to initial values without reallocating."""
        for buffer in (
            self.cost,
            self.dJ,
            self.gradient,
            self.rho,
            self.alpha,
            self.z,
            self.regularization_increases,
            self.line_search_iterations,
        ):
            buffer.fill(0)
        self.iterations = 0
        self.dJ_zero_counter = 0
        self.status = SolveStatus.UNSOLVED
        self.solve_time = 0.0

    def set_initial_cost(self, cost: Float) -> None:
        self.cost[0] = cost

    def record_iteration(
        self,
        cost: Float,
        dJ: Float,
        gradient: Float,
        rho: Float,
        alpha: Float,
        z: Float,
        regularization_increases: int,
        line_search_iterations: int,
    ) -> None:
        i = self.iterations
        if i >= self.iterations_max:
            raise IndexError(f"Statistics are sized for {self.iterations_max} iterations")
        self.cost[i + 1] = cost
        self.dJ[i] = dJ
        self.gradient[i] = gradient
        self.rho[i] = rho
        self.alpha[i] = alpha
        self.z[i] = z
        self.regularization_increases[i] = regularization_increases
        self.line_search_iterations[i] = line_search_iterations
        self.iterations = i + 1

    def cost_history(self) -> np.ndarray:
        """Initial cost followed by the cost after each recorded iteration."""
        return self.cost[: self.iterations + 1].copy()

    def clone(self) -> iLQRStats:
        other = iLQRStats(self.iterations_max)
        other.cost[:] = self.cost
        other.dJ[:] = self.dJ
        other.gradient[:] = self.gradient
        other.rho[:] = self.rho
        other.alpha[:] = self.alpha
        other.z[:] = self.z
        other.regularization_increases[:] = self.regularization_increases
        other.line_search_iterations[:] = self.line_search_iterations
        other.iterations = self.iterations
        other.dJ_zero_counter = self.dJ_zero_counter
        other.status = self.status
        other.solve_time = self.solve_time
        return other


class AugmentedLagrangianStats:
    """Per-outer-iteration statistics of the Augmented Lagrangian solver."""

    def __init__(self, iterations_max: int):
        self.iterations_max = iterations_max

        self.iterations_inner = np.zeros(iterations_max, dtype=int)
        self.cost = np.zeros(iterations_max)
        self.c_max = np.zeros(iterations_max)
        self.penalty_max = np.zeros(iterations_max)

        self.iterations = 0
        self.iterations_total = 0
        self.status = SolveStatus.UNSOLVED
        self.solve_time: Float = 0.0

    def reset(self) -> None:
        self.iterations_inner.fill(0)
        self.cost.fill(0)
        self.c_max.fill(0)
        self.penalty_max.fill(0)
        self.iterations = 0
        self.iterations_total = 0
        self.status = SolveStatus.UNSOLVED
        self.solve_time = 0.0

    def record_iteration(
        self, iterations_inner: int, cost: Float, c_max: Float, penalty_max: Float
    ) -> None:
        i = self.iterations
        if i >= self.iterations_max:
            raise IndexError(f"Statistics are sized for {self.iterations_max} iterations")
        self.iterations_inner[i] = iterations_inner
        self.cost[i] = cost
        self.c_max[i] = c_max
        self.penalty_max[i] = penalty_max
        self.iterations = i + 1
        self.iterations_total += iterations_inner

    def c_max_history(self) -> np.ndarray:
        return self.c_max[: self.iterations].copy()

    def clone(self) -> AugmentedLagrangianStats:
        other = AugmentedLagrangianStats(self.iterations_max)
        other.iterations_inner[:] = self.iterations_inner
        other.cost[:] = self.cost
        other.c_max[:] = self.c_max
        other.penalty_max[:] = self.penalty_max
        other.iterations = self.iterations
        other.iterations_total = self.iterations_total
        other.status = self.status
        other.solve_time = self.solve_time
        return other


@dataclass
class SolverResult:
    """Outcome of a solve: trajectory, feedback law, cost and statistics."""

    status: SolveStatus
    trajectory: Trajectory
    K: list[Array]
    d: list[Array]
    cost: Float
    stats: iLQRStats | AugmentedLagrangianStats
    inner_stats: iLQRStats | None = field(default=None)
    # Augmented Lagrangian only: statistics of each inner solve, in outer order
    inner_stats_history: list[iLQRStats] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        """Check if solver has converged successfully."""
        return self.status == SolveStatus.SUCCESS

    @property
    def iterations(self) -> int:
        return self.stats.iterations

    @property
    def solve_time(self) -> Float:
        """Solve time in milliseconds."""
        return self.stats.solve_time
