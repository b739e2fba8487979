"""Knot point and trajectory containers for JAX-based iLQR/DDP.

A trajectory is an ordered list of knot points: N-1 control intervals followed
by a terminal, state-only knot point. Per-interval derivative data
(linearization and cost expansion) is stored stacked along the first axis so it
can be produced by a single vectorized evaluation.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import jax.numpy as jnp
from jax import Array

from .exceptions import ErrorCode, _ddp_throw
from .types import Float


@dataclass
class KnotPoint:
    """A single time sample: state, control and the timestep that follows it."""

    x: Array
    u: Array
    dt: Float
    index: int
    is_terminal: bool = False

    @property
    def state_dim(self) -> int:
        return self.x.shape[0]

    @property
    def control_dim(self) -> int:
        return self.u.shape[0]

    def copy(self) -> KnotPoint:
        return KnotPoint(jnp.copy(self.x), jnp.copy(self.u), self.dt, self.index, self.is_terminal)


class Trajectory:
    """Ordered sequence of knot points owned by a single solver."""

    def __init__(self, knot_points: list[KnotPoint]):
        if len(knot_points) < 2:
            _ddp_throw(
                f"A trajectory needs at least 2 knot points, got {len(knot_points)}",
                ErrorCode.HORIZON_TOO_SHORT,
            )
        if not knot_points[-1].is_terminal:
            _ddp_throw("Last knot point must be terminal", ErrorCode.BAD_INDEX)
        self.knot_points = knot_points

    @classmethod
    def zeros(
        cls, num_states: int, num_controls: int, num_knots: int, dt: Float | Array
    ) -> Trajectory:
        """Allocate a trajectory of zeros with a scalar or per-interval timestep."""
        timesteps = jnp.broadcast_to(jnp.asarray(dt, dtype=float), (num_knots - 1,))
        knot_points = [
            KnotPoint(jnp.zeros(num_states), jnp.zeros(num_controls), float(timesteps[k]), k)
            for k in range(num_knots - 1)
        ]
        knot_points.append(
            KnotPoint(jnp.zeros(num_states), jnp.zeros(0), 0.0, num_knots - 1, is_terminal=True)
        )
        return cls(knot_points)

    def __len__(self) -> int:
        return len(self.knot_points)

    def __getitem__(self, k: int) -> KnotPoint:
        return self.knot_points[k]

    def __iter__(self) -> Iterator[KnotPoint]:
        return iter(self.knot_points)

    @property
    def num_knots(self) -> int:
        return len(self.knot_points)

    @property
    def state_dim(self) -> int:
        return self.knot_points[0].state_dim

    @property
    def control_dim(self) -> int:
        return self.knot_points[0].control_dim

    def states(self) -> Array:
        """Stacked states, shape (N, n)."""
        return jnp.stack([z.x for z in self.knot_points])

    def controls(self) -> Array:
        """Stacked controls of the control intervals, shape (N-1, m)."""
        return jnp.stack([z.u for z in self.knot_points[:-1]])

    def timesteps(self) -> Array:
        """Timesteps of the control intervals, shape (N-1,)."""
        return jnp.array([z.dt for z in self.knot_points[:-1]])

    def set_states(self, X: Array) -> None:
        if X.shape != (self.num_knots, self.state_dim):
            _ddp_throw(
                f"State trajectory has shape {X.shape}, "
                f"expected {(self.num_knots, self.state_dim)}",
                ErrorCode.DIMENSION_MISMATCH,
            )
        for k, z in enumerate(self.knot_points):
            z.x = X[k]

    def set_controls(self, U: Array) -> None:
        if U.shape != (self.num_knots - 1, self.control_dim):
            _ddp_throw(
                f"Control trajectory has shape {U.shape}, "
                f"expected {(self.num_knots - 1, self.control_dim)}",
                ErrorCode.DIMENSION_MISMATCH,
            )
        for k, z in enumerate(self.knot_points[:-1]):
            z.u = U[k]

    def copy_from(self, other: Trajectory) -> None:
        """Copy states and controls of ``other`` into the existing knot points."""
        if other.num_knots != self.num_knots:
            _ddp_throw("Trajectory lengths differ", ErrorCode.DIMENSION_MISMATCH)
        for z, z_other in zip(self.knot_points, other.knot_points, strict=True):
            z.x = z_other.x
            z.u = z_other.u
            z.dt = z_other.dt

    def clone(self) -> Trajectory:
        return Trajectory([z.copy() for z in self.knot_points])


@dataclass
class Linearization:
    """Dynamics Jacobians for every control interval."""

    A: Array  # (N-1, n, n)
    B: Array  # (N-1, n, m)

    def __len__(self) -> int:
        return self.A.shape[0]


@dataclass
class CostExpansion:
    """Second-order cost expansion for every knot point."""

    lx: Array  # (N-1, n)
    lu: Array  # (N-1, m)
    lxx: Array  # (N-1, n, n)
    luu: Array  # (N-1, m, m)
    lux: Array  # (N-1, m, n)
    lx_N: Array  # (n,)
    lxx_N: Array  # (n, n)

    def __len__(self) -> int:
        return self.lx.shape[0]
