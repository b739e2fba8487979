import pytest

import jaxddp
from jaxddp import AugmentedLagrangianSolverOptions, SolverLogger, Verbosity, iLQRSolverOptions


def test_defaults():
    opts = iLQRSolverOptions()
    assert opts.iterations == 300
    assert opts.bp_reg_type == jaxddp.RegularizationType.CONTROL
    assert opts.gradient_type == jaxddp.GradientType.TODOROV
    assert not opts.throw_errors

    al_opts = AugmentedLagrangianSolverOptions()
    assert al_opts.opts_uncon == iLQRSolverOptions()
    assert al_opts.penalty_initial <= al_opts.penalty_max


@pytest.mark.parametrize('kwargs', [
    dict(iterations=0),
    dict(cost_tolerance=0.),
    dict(gradient_norm_tolerance=-1.),
    dict(dJ_counter_limit=-1),
    dict(line_search_lower_bound=2., line_search_upper_bound=1.),
    dict(iterations_linesearch=0),
    dict(line_search_decrease_factor=1.),
    dict(bp_reg_increase_factor=1.),
    dict(bp_reg_min=0.),
    dict(bp_reg_min=1., bp_reg_max=0.5),
    dict(bp_reg_initial=1e9),
    dict(bp_reg_initial=1e-10),
    dict(bp_reg_initial=-1.),
    dict(bp_reg_fp=-1.),
    dict(bp_reg_sqrt_initial=0.),
    dict(bp_reg_sqrt_increase_factor=1.),
    dict(max_cost_value=0.),
])
def test_invalid_ilqr_options(kwargs):
    with pytest.raises(ValueError):
        iLQRSolverOptions(**kwargs)


@pytest.mark.parametrize('kwargs', [
    dict(iterations=0),
    dict(cost_tolerance_intermediate=0.),
    dict(gradient_norm_tolerance=0.),
    dict(constraint_tolerance=0.),
    dict(penalty_initial=0.),
    dict(penalty_scaling=0.5),
    dict(penalty_initial=10., penalty_max=1.),
    dict(dual_min=1., dual_max=1.),
    dict(constraint_decrease_ratio=0.),
])
def test_invalid_augmented_lagrangian_options(kwargs):
    with pytest.raises(ValueError):
        AugmentedLagrangianSolverOptions(**kwargs)


@pytest.mark.parametrize('bp_reg_initial', [0., 1e-8, 1e-3, 1e8])
def test_initial_regularization_in_allowed_set(bp_reg_initial):
    opts = iLQRSolverOptions(bp_reg_initial=bp_reg_initial)
    regularization = jaxddp.Regularization(opts)
    regularization.reset()
    assert regularization.rho == 0. or opts.bp_reg_min <= regularization.rho <= opts.bp_reg_max


def test_options_are_immutable():
    opts = iLQRSolverOptions()
    with pytest.raises(AttributeError):
        opts.iterations = 10


@pytest.mark.parametrize('verbose,expected', [
    (Verbosity.SILENT, []),
    (Verbosity.OUTER, ['outer']),
    (Verbosity.INNER, ['outer', 'inner']),
])
def test_logger_levels(verbose, expected):
    lines = []
    logger = SolverLogger(verbose, sink=lines.append)
    logger.outer('outer')
    logger.inner('inner')
    assert lines == expected
    assert not logger.enabled(Verbosity.SILENT)


def test_solver_uses_verbosity_option():
    solver = jaxddp.iLQRSolver(
        _trivial_problem(), iLQRSolverOptions(verbose=Verbosity.INNER)
    )
    assert solver.logger.enabled(Verbosity.INNER)


def _trivial_problem():
    model = jaxddp.DynamicsModel(lambda x, u, dt: x + dt * u, 1, 1)
    objective = jaxddp.Objective(lambda x, u: x @ x + u @ u)
    return jaxddp.Problem(model, objective, [1.0], 3, 0.1)


@pytest.mark.parametrize('error,code', [
    (jaxddp.DimensionError('bad', jaxddp.ErrorCode.DIMENSION_MISMATCH),
     jaxddp.ErrorCode.DIMENSION_MISMATCH),
    (jaxddp.NonPositiveDefiniteError('indefinite', 3, 1e8),
     jaxddp.ErrorCode.BACKWARD_PASS_FAILED),
    (jaxddp.LineSearchExhausted('stalled', 11), jaxddp.ErrorCode.LINE_SEARCH_FAILED),
    (jaxddp.NumericOverflowError('big', jaxddp.ErrorCode.MAX_COST_EXCEEDED, 1e9, 1e8),
     jaxddp.ErrorCode.MAX_COST_EXCEEDED),
])
def test_exceptions(error, code):
    assert error.error_code == code
    assert isinstance(error, jaxddp.DDPException)
    assert str(error) == f'DDP Error {code.value}: {error.message}'
    assert error.result is None
