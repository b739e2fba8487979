"""Trajectory optimization problem definition."""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array

from .constraints import Constraint, ConstraintSet
from .costs import Objective
from .exceptions import ErrorCode, _ddp_throw
from .knot_point import Trajectory
from .models import DynamicsModel
from .types import Float, StateVector


class Problem:
    """Dynamics, objective, constraints, initial state and time grid."""

    def __init__(
        self,
        model: DynamicsModel,
        objective: Objective,
        x0: StateVector,
        num_knots: int,
        dt: Float | Array,
        constraints: ConstraintSet | list[Constraint] | None = None,
        initial_controls: Array | None = None,
    ):
        if num_knots < 2:
            _ddp_throw(
                f"Horizon needs at least 2 knot points, got {num_knots}",
                ErrorCode.HORIZON_TOO_SHORT,
            )
        self.model = model
        self.objective = objective
        self.num_knots = num_knots

        timesteps = jnp.broadcast_to(jnp.asarray(dt, dtype=float), (num_knots - 1,))
        if not bool(jnp.all(timesteps > 0)):
            _ddp_throw("Timesteps must be positive", ErrorCode.TIMESTEP_NOT_POSITIVE)
        self.timesteps = timesteps

        if not isinstance(constraints, ConstraintSet):
            constraints = ConstraintSet(constraints)
        constraints.validate(model.num_states, model.num_controls)
        self.constraints = constraints

        self.x0 = jnp.zeros(model.num_states)
        self.set_initial_state(x0)
        self.initial_controls = jnp.zeros((num_knots - 1, model.num_controls))
        if initial_controls is not None:
            self.set_initial_controls(initial_controls)

    @property
    def num_states(self) -> int:
        return self.model.num_states

    @property
    def num_controls(self) -> int:
        return self.model.num_controls

    @property
    def is_constrained(self) -> bool:
        return not self.constraints.is_empty

    def set_initial_state(self, x0: StateVector) -> None:
        x0 = jnp.asarray(x0, dtype=float)
        if x0.shape != (self.num_states,):
            _ddp_throw(
                f"Initial state has shape {x0.shape}, expected {(self.num_states,)}",
                ErrorCode.DIMENSION_MISMATCH,
            )
        self.x0 = x0

    def set_initial_controls(self, U: Array) -> None:
        U = jnp.asarray(U, dtype=float)
        if U.ndim == 1:
            U = jnp.broadcast_to(U, (self.num_knots - 1, self.num_controls))
        if U.shape != (self.num_knots - 1, self.num_controls):
            _ddp_throw(
                f"Initial controls have shape {U.shape}, "
                f"expected {(self.num_knots - 1, self.num_controls)}",
                ErrorCode.DIMENSION_MISMATCH,
            )
        self.initial_controls = U

    def initial_trajectory(self) -> Trajectory:
        """Trajectory holding x0 and the initial control guess; states are not rolled out."""
        Z = Trajectory.zeros(self.num_states, self.num_controls, self.num_knots, self.timesteps)
        Z[0].x = self.x0
        Z.set_controls(self.initial_controls)
        return Z
