"""Cost functions and trajectory objectives for JAX-based iLQR/DDP.

Stage costs are callables ``l(x, u) -> float`` and terminal costs are
``l_N(x) -> float``. Any JAX-traceable callable can be used; gradients and
Hessians are obtained by automatic differentiation.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jax import Array

from .exceptions import ErrorCode, _ddp_throw
from .knot_point import CostExpansion, Trajectory
from .types import Float, StageCostFunction, TerminalCostFunction


class QuadraticCost:
    """Stage cost ``0.5 x'Qx + 0.5 u'Ru + u'Hx + q'x + r'u + c``."""

    def __init__(
        self,
        Q: Array,
        R: Array,
        H: Array | None = None,
        q: Array | None = None,
        r: Array | None = None,
        c: Float = 0.0,
    ):
        self.Q = jnp.asarray(Q, dtype=float)
        self.R = jnp.asarray(R, dtype=float)
        n = self.Q.shape[0]
        m = self.R.shape[0]
        if self.Q.shape != (n, n) or self.R.shape != (m, m):
            _ddp_throw("Q and R must be square", ErrorCode.DIMENSION_MISMATCH)
        self.H = jnp.zeros((m, n)) if H is None else jnp.asarray(H, dtype=float)
        self.q = jnp.zeros(n) if q is None else jnp.asarray(q, dtype=float)
        self.r = jnp.zeros(m) if r is None else jnp.asarray(r, dtype=float)
        self.c = c
        if self.H.shape != (m, n) or self.q.shape != (n,) or self.r.shape != (m,):
            _ddp_throw("Linear cost terms do not match Q and R", ErrorCode.DIMENSION_MISMATCH)

    @property
    def state_dim(self) -> int:
        return self.Q.shape[0]

    @property
    def control_dim(self) -> int:
        return self.R.shape[0]

    def __call__(self, x: Array, u: Array) -> Array:
        return (
            0.5 * x @ self.Q @ x
            + 0.5 * u @ self.R @ u
            + u @ self.H @ x
            + self.q @ x
            + self.r @ u
            + self.c
        )


class QuadraticTerminalCost:
    """Terminal cost ``0.5 x'Qf x + q'x + c``."""

    def __init__(self, Qf: Array, q: Array | None = None, c: Float = 0.0):
        self.Qf = jnp.asarray(Qf, dtype=float)
        n = self.Qf.shape[0]
        if self.Qf.shape != (n, n):
            _ddp_throw("Qf must be square", ErrorCode.DIMENSION_MISMATCH)
        self.q = jnp.zeros(n) if q is None else jnp.asarray(q, dtype=float)
        self.c = c

    @property
    def state_dim(self) -> int:
        return self.Qf.shape[0]

    def __call__(self, x: Array) -> Array:
        return 0.5 * x @ self.Qf @ x + self.q @ x + self.c


def lqr_cost(Q: Array, R: Array, x_ref: Array, u_ref: Array | None = None) -> QuadraticCost:
    """Tracking cost ``0.5 (x - x_ref)'Q(x - x_ref) + 0.5 (u - u_ref)'R(u - u_ref)``."""
    Q = jnp.asarray(Q, dtype=float)
    R = jnp.asarray(R, dtype=float)
    x_ref = jnp.asarray(x_ref, dtype=float)
    u_ref = jnp.zeros(R.shape[0]) if u_ref is None else jnp.asarray(u_ref, dtype=float)
    c = 0.5 * x_ref @ Q @ x_ref + 0.5 * u_ref @ R @ u_ref
    return QuadraticCost(Q, R, q=-Q @ x_ref, r=-R @ u_ref, c=float(c))


def lqr_terminal_cost(Qf: Array, x_ref: Array) -> QuadraticTerminalCost:
    Qf = jnp.asarray(Qf, dtype=float)
    x_ref = jnp.asarray(x_ref, dtype=float)
    return QuadraticTerminalCost(Qf, q=-Qf @ x_ref, c=float(0.5 * x_ref @ Qf @ x_ref))


def _zero_terminal_cost(x: Array) -> Array:
    return jnp.zeros(())


class Objective:
    """Sum of stage costs over the control intervals plus a terminal cost.

    All derivative blocks are computed for the whole trajectory at once:
    ``jax.vmap`` over the control intervals of per-knot ``jax.grad`` and
    ``jax.hessian`` evaluations, compiled once per objective.
    """

    def __init__(
        self,
        stage_cost: StageCostFunction,
        terminal_cost: TerminalCostFunction | None = None,
    ):
        self.stage_cost = stage_cost
        self.terminal_cost = terminal_cost or _zero_terminal_cost

        def total_cost(X: Array, U: Array) -> Array:
            return jnp.sum(jax.vmap(self.stage_cost)(X[:-1], U)) + self.terminal_cost(X[-1])

        def stage_costs(X: Array, U: Array) -> Array:
            stage = jax.vmap(self.stage_cost)(X[:-1], U)
            return jnp.append(stage, self.terminal_cost(X[-1]))

        grad_x = jax.grad(self.stage_cost, argnums=0)
        grad_u = jax.grad(self.stage_cost, argnums=1)
        hess_xx = jax.hessian(self.stage_cost, argnums=0)
        hess_uu = jax.hessian(self.stage_cost, argnums=1)
        hess_ux = jax.jacfwd(grad_u, argnums=0)

        def expansion(X: Array, U: Array) -> tuple[Array, ...]:
            X_stage = X[:-1]
            return (
                jax.vmap(grad_x)(X_stage, U),
                jax.vmap(grad_u)(X_stage, U),
                jax.vmap(hess_xx)(X_stage, U),
                jax.vmap(hess_uu)(X_stage, U),
                jax.vmap(hess_ux)(X_stage, U),
                jax.grad(self.terminal_cost)(X[-1]),
                jax.hessian(self.terminal_cost)(X[-1]),
            )

        self._total_cost = jax.jit(total_cost)
        self._stage_costs = jax.jit(stage_costs)
        self._expansion = jax.jit(expansion)

    def cost_arrays(self, X: Array, U: Array) -> Float:
        return float(self._total_cost(X, U))

    def cost(self, Z: Trajectory) -> Float:
        """Total cost of a trajectory."""
        return self.cost_arrays(Z.states(), Z.controls())

    def stage_costs(self, Z: Trajectory) -> Array:
        """Cost of every knot point, terminal cost last."""
        return self._stage_costs(Z.states(), Z.controls())

    def expansion(self, Z: Trajectory) -> CostExpansion:
        """Second-order expansion of the cost about a trajectory."""
        return CostExpansion(*self._expansion(Z.states(), Z.controls()))
