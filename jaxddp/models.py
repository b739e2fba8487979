"""Dynamics models for JAX-based iLQR/DDP.

A model wraps a discrete-time transition ``x_next = f(x, u, dt)``. Jacobians
are obtained by forward-mode automatic differentiation unless supplied, and
are evaluated for a whole trajectory at once with ``jax.vmap``.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jax import Array

from .exceptions import ErrorCode, _ddp_throw
from .knot_point import Linearization
from .types import (
    ContinuousDynamicsFunction,
    DiscreteDynamicsFunction,
    DynamicsJacobian,
    Float,
    Integration,
)


def _euler(f: ContinuousDynamicsFunction) -> DiscreteDynamicsFunction:
    def step(x: Array, u: Array, dt: Float) -> Array:
        return x + dt * f(x, u)

    return step


def _rk3(f: ContinuousDynamicsFunction) -> DiscreteDynamicsFunction:
    def step(x: Array, u: Array, dt: Float) -> Array:
        k1 = f(x, u) * dt
        k2 = f(x + k1 / 2, u) * dt
        k3 = f(x - k1 + 2 * k2, u) * dt
        return x + (k1 + 4 * k2 + k3) / 6

    return step


def _rk4(f: ContinuousDynamicsFunction) -> DiscreteDynamicsFunction:
    def step(x: Array, u: Array, dt: Float) -> Array:
        k1 = f(x, u) * dt
        k2 = f(x + k1 / 2, u) * dt
        k3 = f(x + k2 / 2, u) * dt
        k4 = f(x + k3, u) * dt
        return x + (k1 + 2 * k2 + 2 * k3 + k4) / 6

    return step


_INTEGRATORS = {
    Integration.EULER: _euler,
    Integration.RK3: _rk3,
    Integration.RK4: _rk4,
}


def _make_dynamics_jacobian(dynamics: DiscreteDynamicsFunction) -> DynamicsJacobian:
    """Build the (A, B) Jacobian pair of a discrete dynamics function."""

    def dynamics_jacobian(x: Array, u: Array, dt: Float) -> tuple[Array, Array]:
        A, B = jax.jacfwd(dynamics, argnums=(0, 1))(x, u, dt)
        return A, B

    return dynamics_jacobian


class DynamicsModel:
    """Discrete-time dynamics collaborator of the solvers."""

    def __init__(
        self,
        dynamics: DiscreteDynamicsFunction,
        num_states: int,
        num_controls: int,
        jacobian: DynamicsJacobian | None = None,
    ):
        if num_states <= 0:
            _ddp_throw("Number of states must be positive", ErrorCode.DIMENSION_UNKNOWN)
        if num_controls <= 0:
            _ddp_throw("Number of controls must be positive", ErrorCode.DIMENSION_UNKNOWN)

        self.num_states = num_states
        self.num_controls = num_controls
        self.dynamics = dynamics
        self.dynamics_jacobian = jacobian or _make_dynamics_jacobian(dynamics)

        self._step = jax.jit(dynamics)
        self._jacobian = jax.jit(self.dynamics_jacobian)
        self._linearize = jax.jit(jax.vmap(self.dynamics_jacobian))

    @classmethod
    def from_continuous(
        cls,
        dynamics: ContinuousDynamicsFunction,
        num_states: int,
        num_controls: int,
        integration: Integration = Integration.RK4,
    ) -> DynamicsModel:
        """Discretize ``x_dot = f(x, u)`` with an explicit integration scheme."""
        return cls(_INTEGRATORS[integration](dynamics), num_states, num_controls)

    @classmethod
    def from_linear(cls, A: Array, B: Array, f: Array | None = None) -> DynamicsModel:
        """Affine discrete dynamics ``x_next = A x + B u + f``."""
        A = jnp.asarray(A, dtype=float)
        B = jnp.asarray(B, dtype=float)
        n, m = B.shape
        if A.shape != (n, n):
            _ddp_throw(f"A has shape {A.shape}, expected {(n, n)}", ErrorCode.DIMENSION_MISMATCH)
        affine_term = jnp.zeros(n) if f is None else jnp.asarray(f, dtype=float)

        def linear_dynamics(x: Array, u: Array, dt: Float) -> Array:
            return A @ x + B @ u + affine_term

        def linear_jacobian(x: Array, u: Array, dt: Float) -> tuple[Array, Array]:
            return A, B

        return cls(linear_dynamics, n, m, jacobian=linear_jacobian)

    def evaluate(self, x: Array, u: Array, dt: Float) -> Array:
        """Propagate the state over one interval."""
        return self._step(x, u, dt)

    def jacobian(self, x: Array, u: Array, dt: Float) -> tuple[Array, Array]:
        """Jacobians (A, B) at a single knot point."""
        return self._jacobian(x, u, dt)

    def linearize(self, X: Array, U: Array, dt: Array) -> Linearization:
        """Jacobians for every control interval of a stacked trajectory."""
        A, B = self._linearize(X[:-1], U, dt)
        return Linearization(A, B)
