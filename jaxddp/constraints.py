"""Constraint definitions for JAX-based iLQR/DDP.

Stage constraints ``c(x, u)`` apply to every control interval and terminal
constraints ``c_N(x)`` to the last knot point. Inequalities follow the
``c <= 0`` convention. A ConstraintSet stacks every constraint of a kind into
one fixed-size vector and records where each constraint lives in it.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .exceptions import ConstraintError, ErrorCode, _ddp_throw
from .types import ConstraintType, StageConstraintFunction, TerminalConstraintFunction


@dataclass(frozen=True)
class Constraint:
    """A vector-valued constraint with a dimension declared up front."""

    function: StageConstraintFunction | TerminalConstraintFunction
    dim: int
    constraint_type: ConstraintType = ConstraintType.INEQUALITY
    label: str = ""
    terminal: bool = False

    def __post_init__(self) -> None:
        if self.dim <= 0:
            _ddp_throw(
                f"Constraint '{self.label}' must have a positive dimension, got {self.dim}",
                ErrorCode.INVALID_CONSTRAINT_DIM,
            )

    @property
    def is_equality(self) -> bool:
        return self.constraint_type == ConstraintType.EQUALITY


class ConstraintSet:
    """Stage and terminal constraints with precomputed offset tables."""

    def __init__(self, constraints: list[Constraint] | None = None):
        self.constraints = list(constraints or [])
        self.stage = [con for con in self.constraints if not con.terminal]
        self.terminal = [con for con in self.constraints if con.terminal]

        self.stage_offsets = self._offsets(self.stage)
        self.terminal_offsets = self._offsets(self.terminal)
        self.stage_dim = sum(con.dim for con in self.stage)
        self.terminal_dim = sum(con.dim for con in self.terminal)

        self.stage_equality = self._equality_mask(self.stage)
        self.terminal_equality = self._equality_mask(self.terminal)

        def stage_values(x: Array, u: Array) -> Array:
            if not self.stage:
                return jnp.zeros(0)
            return jnp.concatenate([jnp.atleast_1d(con.function(x, u)) for con in self.stage])

        def terminal_values(x: Array) -> Array:
            if not self.terminal:
                return jnp.zeros(0)
            return jnp.concatenate([jnp.atleast_1d(con.function(x)) for con in self.terminal])

        self._stage_values = stage_values
        self._terminal_values = terminal_values
        self._evaluate = jax.jit(self._evaluate_arrays)
        self._jacobians = jax.jit(self._jacobian_arrays)

    @staticmethod
    def _offsets(constraints: list[Constraint]) -> list[tuple[int, int]]:
        offsets = []
        start = 0
        for con in constraints:
            offsets.append((start, start + con.dim))
            start += con.dim
        return offsets

    @staticmethod
    def _equality_mask(constraints: list[Constraint]) -> Array:
        mask = np.zeros(sum(con.dim for con in constraints), dtype=bool)
        start = 0
        for con in constraints:
            mask[start : start + con.dim] = con.is_equality
            start += con.dim
        return jnp.asarray(mask)

    def __len__(self) -> int:
        return len(self.constraints)

    @property
    def is_empty(self) -> bool:
        return self.stage_dim + self.terminal_dim == 0

    def block(self, label: str) -> tuple[bool, slice]:
        """Locate a constraint by label: (is_terminal, slice into its vector)."""
        for con, (start, stop) in zip(self.stage, self.stage_offsets, strict=True):
            if con.label == label:
                return False, slice(start, stop)
        for con, (start, stop) in zip(self.terminal, self.terminal_offsets, strict=True):
            if con.label == label:
                return True, slice(start, stop)
        _ddp_throw(f"No constraint labeled '{label}'", ErrorCode.BAD_INDEX)

    def validate(self, num_states: int, num_controls: int) -> None:
        """Check every declared dimension against an actual evaluation."""
        x = jnp.zeros(num_states)
        u = jnp.zeros(num_controls)
        for con in self.constraints:
            value = con.function(x) if con.terminal else con.function(x, u)
            value = jnp.atleast_1d(jnp.asarray(value))
            if value.shape != (con.dim,):
                _ddp_throw(
                    f"Constraint '{con.label}' declared dimension {con.dim} "
                    f"but evaluates to shape {value.shape}",
                    ErrorCode.INVALID_CONSTRAINT_DIM,
                )

    def _evaluate_arrays(self, X: Array, U: Array) -> tuple[Array, Array]:
        return jax.vmap(self._stage_values)(X[:-1], U), self._terminal_values(X[-1])

    def _jacobian_arrays(self, X: Array, U: Array) -> tuple[Array, Array, Array]:
        Cx, Cu = jax.vmap(jax.jacfwd(self._stage_values, argnums=(0, 1)))(X[:-1], U)
        Cx_N = jax.jacfwd(self._terminal_values)(X[-1])
        return Cx, Cu, Cx_N

    def evaluate(self, X: Array, U: Array) -> tuple[Array, Array]:
        """Stage values (N-1, p) and terminal values (p_N,)."""
        return self._evaluate(X, U)

    def jacobians(self, X: Array, U: Array) -> tuple[Array, Array, Array]:
        """Stage Jacobians (N-1, p, n), (N-1, p, m) and terminal Jacobian (p_N, n)."""
        return self._jacobians(X, U)

    def violation(self, C: Array, C_N: Array) -> tuple[Array, Array]:
        """Component-wise violation: |c| for equalities, max(c, 0) for inequalities."""
        viol = jnp.where(self.stage_equality, jnp.abs(C), jnp.maximum(C, 0.0))
        viol_N = jnp.where(self.terminal_equality, jnp.abs(C_N), jnp.maximum(C_N, 0.0))
        return viol, viol_N

    def max_violation(self, C: Array, C_N: Array) -> float:
        viol, viol_N = self.violation(C, C_N)
        c_max = 0.0
        if viol.size:
            c_max = max(c_max, float(jnp.max(viol)))
        if viol_N.size:
            c_max = max(c_max, float(jnp.max(viol_N)))
        return c_max


def bound_constraints(
    num_states: int,
    num_controls: int,
    x_min: Array | None = None,
    x_max: Array | None = None,
    u_min: Array | None = None,
    u_max: Array | None = None,
) -> list[Constraint]:
    """Box constraints on states and controls. Infinite bounds are dropped.

    State bounds are also enforced at the terminal knot point.
    """

    def as_bound(value: Array | None, size: int, fill: float) -> np.ndarray:
        if value is None:
            return np.full(size, fill)
        bound = np.broadcast_to(np.asarray(value, dtype=float), (size,)).copy()
        return bound

    try:
        x_lo = as_bound(x_min, num_states, -np.inf)
        x_hi = as_bound(x_max, num_states, np.inf)
        u_lo = as_bound(u_min, num_controls, -np.inf)
        u_hi = as_bound(u_max, num_controls, np.inf)
    except ValueError as e:
        raise ConstraintError(
            f"Bound has the wrong size: {e}", ErrorCode.INVALID_BOUND_CONSTRAINT
        ) from e

    if np.any(x_hi < x_lo) or np.any(u_hi < u_lo):
        _ddp_throw(
            "Upper bounds must not be less than lower bounds", ErrorCode.INVALID_BOUND_CONSTRAINT
        )

    ix_hi = np.flatnonzero(np.isfinite(x_hi))
    ix_lo = np.flatnonzero(np.isfinite(x_lo))
    iu_hi = np.flatnonzero(np.isfinite(u_hi))
    iu_lo = np.flatnonzero(np.isfinite(u_lo))
    x_hi_f, x_lo_f = jnp.asarray(x_hi[ix_hi]), jnp.asarray(x_lo[ix_lo])
    u_hi_f, u_lo_f = jnp.asarray(u_hi[iu_hi]), jnp.asarray(u_lo[iu_lo])

    def state_bounds(x: Array) -> Array:
        return jnp.concatenate([x[ix_hi] - x_hi_f, x_lo_f - x[ix_lo]])

    def stage_bounds(x: Array, u: Array) -> Array:
        return jnp.concatenate([state_bounds(x), u[iu_hi] - u_hi_f, u_lo_f - u[iu_lo]])

    constraints = []
    stage_dim = len(ix_hi) + len(ix_lo) + len(iu_hi) + len(iu_lo)
    if stage_dim > 0:
        constraints.append(
            Constraint(stage_bounds, stage_dim, ConstraintType.INEQUALITY, "bounds")
        )
    terminal_dim = len(ix_hi) + len(ix_lo)
    if terminal_dim > 0:
        constraints.append(
            Constraint(
                state_bounds,
                terminal_dim,
                ConstraintType.INEQUALITY,
                "terminal_bounds",
                terminal=True,
            )
        )
    return constraints


def goal_constraint(x_goal: Array) -> Constraint:
    """Terminal equality constraint ``x_N == x_goal``."""
    x_goal = jnp.asarray(x_goal, dtype=float)

    def goal(x: Array) -> Array:
        return x - x_goal

    return Constraint(goal, x_goal.shape[0], ConstraintType.EQUALITY, "goal", terminal=True)
