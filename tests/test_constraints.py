import jax.numpy as jnp
import numpy as np
import pytest

import jaxddp
from jaxddp import Constraint, ConstraintSet, ConstraintType, bound_constraints, goal_constraint


def _constraint_set():
    circle = Constraint(lambda x, u: jnp.array([x[0] ** 2 + x[1] ** 2 - 1.0]), 1, label="circle")
    sum_zero = Constraint(lambda x, u: u[0] + u[1], 1, ConstraintType.EQUALITY, "sum_zero")
    goal = goal_constraint(jnp.array([1.0, 2.0]))
    return ConstraintSet([circle, goal, sum_zero])


def test_offsets_and_dimensions():
    constraints = _constraint_set()
    assert len(constraints) == 3
    assert constraints.stage_dim == 2
    assert constraints.terminal_dim == 2
    assert constraints.stage_offsets == [(0, 1), (1, 2)]
    assert constraints.terminal_offsets == [(0, 2)]
    np.testing.assert_array_equal(constraints.stage_equality, [False, True])
    np.testing.assert_array_equal(constraints.terminal_equality, [True, True])
    assert not constraints.is_empty

    assert constraints.block("sum_zero") == (False, slice(1, 2))
    assert constraints.block("goal") == (True, slice(0, 2))
    with pytest.raises(jaxddp.DimensionError) as excinfo:
        constraints.block("missing")
    assert excinfo.value.error_code == jaxddp.ErrorCode.BAD_INDEX


def test_evaluate_and_jacobians():
    constraints = _constraint_set()
    X = jnp.array([[1.0, 1.0], [0.0, 2.0], [1.0, 2.5]])
    U = jnp.array([[1.0, -1.0], [0.5, 1.0]])

    C, C_N = constraints.evaluate(X, U)
    np.testing.assert_allclose(C, [[1.0, 0.0], [3.0, 1.5]])
    np.testing.assert_allclose(C_N, [0.0, 0.5])

    Cx, Cu, Cx_N = constraints.jacobians(X, U)
    assert Cx.shape == (2, 2, 2)
    assert Cu.shape == (2, 2, 2)
    np.testing.assert_allclose(Cx[1], [[0.0, 4.0], [0.0, 0.0]])
    np.testing.assert_allclose(Cu[0], [[0.0, 0.0], [1.0, 1.0]])
    np.testing.assert_allclose(Cx_N, np.eye(2))


def test_violation():
    constraints = _constraint_set()
    C = jnp.array([[-0.5, -0.25], [0.3, 0.1]])
    C_N = jnp.array([0.0, -0.7])

    viol, viol_N = constraints.violation(C, C_N)
    np.testing.assert_allclose(viol, [[0.0, 0.25], [0.3, 0.1]])
    np.testing.assert_allclose(viol_N, [0.0, 0.7])
    np.testing.assert_allclose(constraints.max_violation(C, C_N), 0.7)


def test_empty_set():
    constraints = ConstraintSet()
    assert constraints.is_empty
    X, U = jnp.zeros((4, 2)), jnp.zeros((3, 1))
    C, C_N = constraints.evaluate(X, U)
    assert C.shape == (3, 0)
    assert C_N.shape == (0,)
    assert constraints.max_violation(C, C_N) == 0.


def test_declared_dimension_must_be_positive():
    with pytest.raises(jaxddp.ConstraintError) as excinfo:
        Constraint(lambda x, u: x, 0)
    assert excinfo.value.error_code == jaxddp.ErrorCode.INVALID_CONSTRAINT_DIM


def test_validate_catches_wrong_dimension():
    constraints = ConstraintSet([Constraint(lambda x, u: x, 3, label="state")])
    constraints.validate(3, 1)
    with pytest.raises(jaxddp.ConstraintError):
        constraints.validate(2, 1)


def test_bound_constraints():
    x_max = np.array([1.0, np.inf])
    constraints = bound_constraints(2, 1, x_max=x_max, u_min=-2.0, u_max=2.0)
    assert [con.label for con in constraints] == ["bounds", "terminal_bounds"]
    stage, terminal = constraints
    assert stage.dim == 3
    assert terminal.dim == 1
    assert terminal.terminal
    assert not stage.is_equality

    x, u = jnp.array([1.5, 100.0]), jnp.array([3.0])
    np.testing.assert_allclose(stage.function(x, u), [0.5, 1.0, -5.0])
    np.testing.assert_allclose(terminal.function(x), [0.5])


def test_control_bounds_only():
    constraints = bound_constraints(4, 2, u_min=-1.0, u_max=1.0)
    assert len(constraints) == 1
    assert constraints[0].dim == 4


@pytest.mark.parametrize('kwargs', [
    dict(u_min=1.0, u_max=-1.0),
    dict(x_min=[0.0, 1.0], x_max=[1.0, 0.0]),
    dict(x_max=[1.0, 2.0, 3.0]),
])
def test_invalid_bounds(kwargs):
    with pytest.raises(jaxddp.ConstraintError) as excinfo:
        bound_constraints(2, 1, **kwargs)
    assert excinfo.value.error_code == jaxddp.ErrorCode.INVALID_BOUND_CONSTRAINT


def test_problem_rejects_mismatched_constraint():
    model = jaxddp.DynamicsModel(lambda x, u, dt: x + dt * u, 2, 2)
    objective = jaxddp.Objective(lambda x, u: x @ x + u @ u)
    bad = Constraint(lambda x, u: x, 1, label="bad")
    with pytest.raises(jaxddp.ConstraintError):
        jaxddp.Problem(model, objective, jnp.zeros(2), 5, 0.1, constraints=[bad])
