"""Double integrator example for JAX-based iLQR/DDP trajectory optimization.

Drives a 2D point mass from (1, 1) at rest to the origin, first without
constraints and then with a bound on each acceleration component, which the
Augmented Lagrangian solver enforces.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array

from jaxddp import (
    AugmentedLagrangianSolverOptions,
    DynamicsModel,
    Objective,
    Problem,
    Verbosity,
    bound_constraints,
    iLQRSolverOptions,
    lqr_cost,
    lqr_terminal_cost,
    solve,
)
from jaxddp.types import Float


def create_double_integrator_dynamics(dim: int = 2):
    """Exact discretization of a double integrator with ``dim`` axes.

    State: [position, velocity] (2*dim dimensional)
    Input: [acceleration] (dim dimensional)
    """

    def dynamics_function(x: Array, u: Array, h: Float) -> Array:
        pos = x[:dim]
        vel = x[dim:]
        pos_next = pos + vel * h + 0.5 * u * h**2
        vel_next = vel + u * h
        return jnp.concatenate([pos_next, vel_next])

    return dynamics_function


def create_double_integrator_problem(
    num_knots: int = 51,
    tf: float = 5.0,
    u_max: float | None = None,
) -> Problem:
    """Quadratic regulation of the double integrator to the origin."""
    dim = 2
    n, m = 2 * dim, dim
    h = tf / (num_knots - 1)

    x0 = jnp.array([1.0, 1.0, 0.0, 0.0])
    x_goal = jnp.zeros(n)

    model = DynamicsModel(create_double_integrator_dynamics(dim), n, m)
    objective = Objective(
        lqr_cost(jnp.eye(n), 1e-2 * jnp.eye(m), x_goal),
        lqr_terminal_cost(1000.0 * jnp.eye(n), x_goal),
    )

    constraints = None
    if u_max is not None:
        constraints = bound_constraints(n, m, u_min=-u_max, u_max=u_max)

    return Problem(model, objective, x0, num_knots, h, constraints=constraints)


def solve_double_integrator_example():
    print("Unconstrained double integrator")
    problem = create_double_integrator_problem()
    result = solve(problem, iLQRSolverOptions(verbose=Verbosity.INNER))

    x_final = result.trajectory[-1].x
    print(f"Status: {result.status.value}")
    print(f"Iterations: {result.iterations}")
    print(f"Final cost: {result.cost:.6f}")
    print(f"Final state: {x_final}")
    print(f"Solve time: {result.solve_time:.1f} ms")
    return result


def solve_constrained_double_integrator_example(u_max: float = 0.5):
    print(f"\nDouble integrator with |u_i| <= {u_max}")
    problem = create_double_integrator_problem(u_max=u_max)
    opts = AugmentedLagrangianSolverOptions(
        iterations=10,
        constraint_tolerance=1e-4,
        verbose=Verbosity.OUTER,
    )
    result = solve(problem, opts)

    U = result.trajectory.controls()
    print(f"Status: {result.status.value}")
    print(f"Outer iterations: {result.stats.iterations}")
    print(f"Total inner iterations: {result.stats.iterations_total}")
    print(f"Max constraint violation: {result.stats.c_max[result.stats.iterations - 1]:.2e}")
    print(f"Largest control magnitude: {float(jnp.max(jnp.abs(U))):.6f}")
    print(f"Final cost: {result.cost:.6f}")
    return result


if __name__ == "__main__":
    print("JAX-based iLQR/DDP Double Integrator Example")
    print("=" * 50)

    solve_double_integrator_example()
    solve_constrained_double_integrator_example()
