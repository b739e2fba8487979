import jax.numpy as jnp
import numpy as np
import pytest

import jaxddp
from jaxddp import Objective, QuadraticCost, QuadraticTerminalCost, lqr_cost, lqr_terminal_cost

from tests._problems import make_LQ_params


rng = np.random.default_rng(0)


def _random_trajectory(n, m, N):
    Z = jaxddp.Trajectory.zeros(n, m, N, 0.1)
    Z.set_states(jnp.array(rng.normal(size=(N, n))))
    Z.set_controls(jnp.array(rng.normal(size=(N - 1, m))))
    return Z


def test_quadratic_cost_value():
    _, _, Q, R, _ = make_LQ_params(3, 2, seed=1)
    H = rng.normal(size=(2, 3))
    q, r = rng.normal(size=3), rng.normal(size=2)
    cost = QuadraticCost(Q, R, H, q, r, c=1.5)
    assert cost.state_dim == 3
    assert cost.control_dim == 2

    x, u = rng.normal(size=3), rng.normal(size=2)
    expected = 0.5 * x @ Q @ x + 0.5 * u @ R @ u + u @ H @ x + q @ x + r @ u + 1.5
    np.testing.assert_allclose(cost(x, u), expected)


def test_lqr_cost_is_zero_at_reference():
    Q, R = np.diag([1., 2., 3.]), np.diag([0.1, 0.2])
    x_ref, u_ref = np.array([1., -1., 2.]), np.array([0.5, 0.5])
    cost = lqr_cost(Q, R, x_ref, u_ref)
    terminal = lqr_terminal_cost(10 * Q, x_ref)

    np.testing.assert_allclose(cost(x_ref, u_ref), 0., atol=1e-12)
    np.testing.assert_allclose(terminal(x_ref), 0., atol=1e-12)

    dx = np.array([0.1, 0., -0.2])
    np.testing.assert_allclose(cost(x_ref + dx, u_ref), 0.5 * dx @ Q @ dx)
    np.testing.assert_allclose(terminal(x_ref + dx), 5 * dx @ Q @ dx)


def test_quadratic_cost_dimension_checks():
    with pytest.raises(jaxddp.DimensionError):
        QuadraticCost(np.ones((3, 2)), np.eye(2))
    with pytest.raises(jaxddp.DimensionError):
        QuadraticCost(np.eye(3), np.eye(2), q=np.ones(2))
    with pytest.raises(jaxddp.DimensionError):
        QuadraticTerminalCost(np.ones((2, 3)))


def test_objective_cost_and_stage_costs():
    _, _, Q, R, Qf = make_LQ_params(3, 2, seed=2)
    objective = Objective(QuadraticCost(Q, R), QuadraticTerminalCost(Qf))
    Z = _random_trajectory(3, 2, 6)
    X, U = np.asarray(Z.states()), np.asarray(Z.controls())

    expected = [0.5 * x @ Q @ x + 0.5 * u @ R @ u for x, u in zip(X[:-1], U)]
    expected.append(0.5 * X[-1] @ Qf @ X[-1])

    np.testing.assert_allclose(objective.stage_costs(Z), expected)
    np.testing.assert_allclose(objective.cost(Z), sum(expected))
    assert isinstance(objective.cost(Z), float)


def test_quadratic_expansion_is_exact():
    _, _, Q, R, Qf = make_LQ_params(3, 2, seed=3)
    H = rng.normal(size=(2, 3))
    q, r = rng.normal(size=3), rng.normal(size=2)
    objective = Objective(QuadraticCost(Q, R, H, q, r), QuadraticTerminalCost(Qf))
    Z = _random_trajectory(3, 2, 5)
    X, U = np.asarray(Z.states()), np.asarray(Z.controls())

    E = objective.expansion(Z)
    assert len(E) == 4
    for k in range(4):
        np.testing.assert_allclose(E.lx[k], Q @ X[k] + H.T @ U[k] + q)
        np.testing.assert_allclose(E.lu[k], R @ U[k] + H @ X[k] + r)
        np.testing.assert_allclose(E.lxx[k], Q)
        np.testing.assert_allclose(E.luu[k], R)
        np.testing.assert_allclose(E.lux[k], H)
    np.testing.assert_allclose(E.lx_N, Qf @ X[-1])
    np.testing.assert_allclose(E.lxx_N, Qf)


def test_default_terminal_cost_is_zero():
    objective = Objective(lambda x, u: jnp.sum(jnp.cos(x)) * u[0] ** 2)
    Z = _random_trajectory(2, 1, 4)
    E = objective.expansion(Z)
    np.testing.assert_allclose(objective.stage_costs(Z)[-1], 0.)
    np.testing.assert_allclose(E.lx_N, np.zeros(2))
    np.testing.assert_allclose(E.lxx_N, np.zeros((2, 2)))

    # Mixed second derivative of cos(x) u^2 is -2 sin(x) u
    X, U = np.asarray(Z.states()), np.asarray(Z.controls())
    np.testing.assert_allclose(E.lux[1], [-2 * np.sin(X[1]) * U[1, 0]], rtol=1e-10)
