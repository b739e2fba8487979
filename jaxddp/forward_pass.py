"""Forward pass for JAX-based iLQR/DDP: rollouts and backtracking line search.

A candidate trajectory is simulated with the full nonlinear dynamics under the
affine feedback law ``u = u_bar + alpha d + K (x - x_bar)``. The step size is
accepted when the actual cost decrease agrees with the decrease predicted by
the backward pass to within configured bounds.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .backward_pass import BackwardPassResult
from .costs import Objective
from .exceptions import NumericOverflowError
from .knot_point import Trajectory
from .models import DynamicsModel
from .solver_options import iLQRSolverOptions
from .types import ErrorCode, Float


# Cost of the rollout for a step size, or None when the rollout is not finite
MeritFunction = Callable[[Float], Float | None]

_EPS = float(np.finfo(float).eps)


class LineSearchReturnCode(Enum):
    """Return codes for the backtracking line search."""

    NO_ERROR = "LS_NOERROR"
    STEP_ACCEPTED = "LS_STEP_ACCEPTED"
    MAX_ITERATIONS = "LS_MAX_ITERS"


@dataclass
class BacktrackingLineSearch:
    """Backtracking on the ratio of actual to expected cost decrease."""

    # Options
    max_iters: int = 20
    decrease_factor: Float = 0.5
    lower_bound: Float = 1e-8
    upper_bound: Float = 10.0

    # State variables
    n_iters: int = 0
    alpha: Float = 0.0
    phi0: Float = 0.0
    phi: Float = 0.0
    expected: Float = 0.0
    z: Float = 0.0
    return_code: LineSearchReturnCode = LineSearchReturnCode.NO_ERROR

    @classmethod
    def from_options(cls, opts: iLQRSolverOptions) -> BacktrackingLineSearch:
        return cls(
            max_iters=opts.iterations_linesearch,
            decrease_factor=opts.line_search_decrease_factor,
            lower_bound=opts.line_search_lower_bound,
            upper_bound=opts.line_search_upper_bound,
        )

    def reset(self) -> None:
        self.n_iters = 0
        self.alpha = 0.0
        self.phi0 = 0.0
        self.phi = 0.0
        self.expected = 0.0
        self.z = 0.0
        self.return_code = LineSearchReturnCode.NO_ERROR

    @property
    def accepted(self) -> bool:
        return self.return_code == LineSearchReturnCode.STEP_ACCEPTED

    def run(self, merit_fun: MeritFunction, phi0: Float, dJ1: Float, dJ2: Float) -> Float:
        """Search from ``alpha = 1``; returns the accepted step or 0 when exhausted."""
        self.reset()
        self.phi0 = phi0
        # Expected decreases below this are indistinguishable from rounding
        noise = 10 * _EPS * (1.0 + abs(phi0))

        alpha = 1.0
        for _ in range(self.max_iters):
            self.n_iters += 1
            phi = merit_fun(alpha)

            if phi is not None:
                actual = phi0 - phi
                expected = -alpha * (dJ1 + alpha * dJ2)
                if expected > noise:
                    z = actual / expected
                    accept = self.lower_bound <= z <= self.upper_bound
                else:
                    z = float("nan")
                    accept = actual >= 0.0

                if accept:
                    self.alpha = alpha
                    self.phi = phi
                    self.expected = expected
                    self.z = z
                    self.return_code = LineSearchReturnCode.STEP_ACCEPTED
                    return alpha

            alpha *= self.decrease_factor

        self.phi = phi0
        self.return_code = LineSearchReturnCode.MAX_ITERATIONS
        return 0.0

    def copy_from(self, other: BacktrackingLineSearch) -> None:
        self.n_iters = other.n_iters
        self.alpha = other.alpha
        self.phi0 = other.phi0
        self.phi = other.phi
        self.expected = other.expected
        self.z = other.z
        self.return_code = other.return_code


@jax.jit
def _feedback_control(
    x: Array, x_bar: Array, u_bar: Array, K: Array, d: Array, alpha: Float
) -> Array:
    return u_bar + alpha * d + K @ (x - x_bar)


def open_loop_rollout(model: DynamicsModel, Z: Trajectory, x0: Array) -> None:
    """Simulate the controls stored in ``Z`` from ``x0``, overwriting its states."""
    Z[0].x = x0
    for k in range(Z.num_knots - 1):
        Z[k + 1].x = model.evaluate(Z[k].x, Z[k].u, Z[k].dt)


def rollout(
    model: DynamicsModel,
    Z_bar: Trajectory,
    Z: Trajectory,
    K: list[Array],
    d: list[Array],
    alpha: Float,
) -> bool:
    """Closed-loop rollout about nominal ``Z`` into ``Z_bar``; False if not finite."""
    Z_bar[0].x = Z[0].x
    for k in range(Z.num_knots - 1):
        u = _feedback_control(Z_bar[k].x, Z[k].x, Z[k].u, K[k], d[k], alpha)
        Z_bar[k].u = u
        Z_bar[k + 1].x = model.evaluate(Z_bar[k].x, u, Z[k].dt)
    finite = jnp.all(jnp.isfinite(Z_bar.states())) & jnp.all(jnp.isfinite(Z_bar.controls()))
    return bool(finite)


def check_bounds(Z: Trajectory, cost: Float, opts: iLQRSolverOptions) -> None:
    """Raise NumericOverflowError when a state, control or the cost exceeds its limit."""
    max_state = float(jnp.max(jnp.abs(Z.states())))
    if max_state > opts.max_state_value:
        raise NumericOverflowError(
            f"State magnitude {max_state:.3g} exceeds {opts.max_state_value:.3g}",
            ErrorCode.STATE_OUT_OF_BOUNDS,
            max_state,
            opts.max_state_value,
        )
    max_control = float(jnp.max(jnp.abs(Z.controls())))
    if max_control > opts.max_control_value:
        raise NumericOverflowError(
            f"Control magnitude {max_control:.3g} exceeds {opts.max_control_value:.3g}",
            ErrorCode.INPUT_OUT_OF_BOUNDS,
            max_control,
            opts.max_control_value,
        )
    if cost > opts.max_cost_value:
        raise NumericOverflowError(
            f"Cost {cost:.3g} exceeds {opts.max_cost_value:.3g}",
            ErrorCode.MAX_COST_EXCEEDED,
            cost,
            opts.max_cost_value,
        )


def forward_pass(
    model: DynamicsModel,
    objective: Objective,
    Z: Trajectory,
    Z_bar: Trajectory,
    gains: BackwardPassResult,
    line_search: BacktrackingLineSearch,
    opts: iLQRSolverOptions,
    J_prev: Float,
) -> Float:
    """Line search over closed-loop rollouts. The candidate is left in ``Z_bar``."""

    def merit_function(alpha: Float) -> Float | None:
        if not rollout(model, Z_bar, Z, gains.K, gains.d, alpha):
            return None
        J = objective.cost(Z_bar)
        if not np.isfinite(J):
            return None
        check_bounds(Z_bar, J, opts)
        return J

    return line_search.run(merit_function, J_prev, gains.dJ1, gains.dJ2)
