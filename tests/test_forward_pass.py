import jax.numpy as jnp
import numpy as np
import pytest

import jaxddp
from jaxddp.forward_pass import (
    BacktrackingLineSearch,
    LineSearchReturnCode,
    check_bounds,
    open_loop_rollout,
    rollout,
)

from tests._problems import make_double_integrator_problem


def _quadratic_merit(phi0, dJ1, dJ2):
    """Merit function that behaves exactly like the quadratic model."""
    return lambda alpha: phi0 + alpha * dJ1 + alpha**2 * dJ2


def test_exact_model_accepts_full_step():
    line_search = BacktrackingLineSearch()
    alpha = line_search.run(_quadratic_merit(10., -4., 1.), 10., -4., 1.)

    assert alpha == 1.
    assert line_search.accepted
    assert line_search.return_code == LineSearchReturnCode.STEP_ACCEPTED
    assert line_search.n_iters == 1
    np.testing.assert_allclose(line_search.z, 1.)
    np.testing.assert_allclose(line_search.phi, 7.)


def test_nonfinite_rollouts_are_rejected():
    merit = _quadratic_merit(10., -4., 1.)

    def merit_function(alpha):
        if alpha > 0.3:
            return None
        return merit(alpha)

    line_search = BacktrackingLineSearch(decrease_factor=0.5)
    alpha = line_search.run(merit_function, 10., -4., 1.)
    assert alpha == 0.25
    assert line_search.n_iters == 3


def test_ratio_bounds():
    """A step that decreases the cost far less than predicted is rejected
    until the step is small enough for the model to be accurate."""
    phi0, dJ1, dJ2 = 1., -1., 0.5

    def merit_function(alpha):
        # Cubic error term makes large steps much worse than predicted
        return phi0 + alpha * dJ1 + alpha**2 * dJ2 + 10 * alpha**3

    line_search = BacktrackingLineSearch(lower_bound=0.5, upper_bound=2.)
    alpha = line_search.run(merit_function, phi0, dJ1, dJ2)
    assert 0 < alpha < 1
    assert 0.5 <= line_search.z <= 2.


def test_exhaustion():
    line_search = BacktrackingLineSearch(max_iters=6)
    alpha = line_search.run(lambda alpha: 2., 1., -1., 0.)

    assert alpha == 0.
    assert not line_search.accepted
    assert line_search.return_code == LineSearchReturnCode.MAX_ITERATIONS
    assert line_search.n_iters == 6
    assert line_search.phi == 1.


def test_zero_expected_decrease_accepts_nonnegative_change():
    line_search = BacktrackingLineSearch()
    alpha = line_search.run(lambda alpha: 3., 3., 0., 0.)
    assert alpha == 1.
    assert line_search.accepted
    assert np.isnan(line_search.z)

    alpha = line_search.run(lambda alpha: 3. + 1e-6, 3., 0., 0.)
    assert alpha == 0.
    assert not line_search.accepted


def test_from_options():
    opts = jaxddp.iLQRSolverOptions(iterations_linesearch=7, line_search_decrease_factor=0.25)
    line_search = BacktrackingLineSearch.from_options(opts)
    assert line_search.max_iters == 7
    assert line_search.decrease_factor == 0.25
    assert line_search.lower_bound == opts.line_search_lower_bound
    assert line_search.upper_bound == opts.line_search_upper_bound


def test_rollout_with_zero_gains_reproduces_nominal():
    problem = make_double_integrator_problem(num_knots=10)
    Z = problem.initial_trajectory()
    Z.set_controls(jnp.ones((9, 2)) * 0.3)
    open_loop_rollout(problem.model, Z, problem.x0)

    Z_bar = Z.clone()
    Z_bar.set_states(jnp.zeros((10, 4)))
    K = [jnp.zeros((2, 4))] * 9
    d = [jnp.ones(2)] * 9
    assert rollout(problem.model, Z_bar, Z, K, d, 0.0)

    np.testing.assert_allclose(Z_bar.states(), Z.states())
    np.testing.assert_allclose(Z_bar.controls(), Z.controls())


def test_rollout_applies_feedback():
    problem = make_double_integrator_problem(num_knots=10)
    Z = problem.initial_trajectory()
    open_loop_rollout(problem.model, Z, problem.x0)

    Z_bar = Z.clone()
    K = [-np.ones((2, 4))] * 9
    d = [jnp.array([1.0, -1.0])] * 9
    rollout(problem.model, Z_bar, Z, K, d, 0.5)

    # First control: no state deviation yet, so only the feedforward step
    np.testing.assert_allclose(Z_bar[0].u, [0.5, -0.5])
    dx = Z_bar[1].x - Z[1].x
    np.testing.assert_allclose(Z_bar[1].u, Z[1].u + 0.5 * d[1] + K[1] @ dx)


def test_rollout_reports_nonfinite_states():
    model = jaxddp.DynamicsModel(lambda x, u, dt: x * u, 1, 1)
    problem = jaxddp.Problem(model, jaxddp.Objective(lambda x, u: x @ x), jnp.ones(1), 4, 0.1)
    Z = problem.initial_trajectory()
    open_loop_rollout(model, Z, problem.x0)

    Z_bar = Z.clone()
    d = [jnp.array([jnp.inf])] * 3
    assert not rollout(model, Z_bar, Z, [jnp.zeros((1, 1))] * 3, d, 1.0)


@pytest.mark.parametrize('field,code', [
    ('max_state_value', jaxddp.ErrorCode.STATE_OUT_OF_BOUNDS),
    ('max_control_value', jaxddp.ErrorCode.INPUT_OUT_OF_BOUNDS),
    ('max_cost_value', jaxddp.ErrorCode.MAX_COST_EXCEEDED),
])
def test_check_bounds(field, code):
    problem = make_double_integrator_problem(num_knots=5)
    Z = problem.initial_trajectory()
    Z.set_controls(2 * jnp.ones((4, 2)))
    open_loop_rollout(problem.model, Z, 3 * problem.x0)

    check_bounds(Z, 10., jaxddp.iLQRSolverOptions())

    opts = jaxddp.iLQRSolverOptions(**{field: 1.5})
    with pytest.raises(jaxddp.NumericOverflowError) as excinfo:
        check_bounds(Z, 10., opts)
    assert excinfo.value.error_code == code
    assert excinfo.value.bound == 1.5
    assert excinfo.value.value > 1.5
