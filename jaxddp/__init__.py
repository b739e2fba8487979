"""JAX-based iLQR/DDP trajectory optimization package.

This package computes locally-optimal state and control trajectories for
finite-horizon nonlinear optimal-control problems with Differential Dynamic
Programming (iterative LQR), wrapped in an Augmented Lagrangian outer loop for
state and control constraints. Derivatives come from JAX automatic
differentiation and per-knot work is vectorized and JIT compiled.
"""

from __future__ import annotations

import jax

from .augmented_lagrangian import (
    AugmentedLagrangianObjective,
    AugmentedLagrangianSolver,
    ConstraintTrajectories,
)
from .backward_pass import (
    BACKWARD_PASS_SUCCESS,
    BackwardPassResult,
    backward_pass,
    regularized_backward_pass,
)
from .constraints import Constraint, ConstraintSet, bound_constraints, goal_constraint
from .costs import (
    Objective,
    QuadraticCost,
    QuadraticTerminalCost,
    lqr_cost,
    lqr_terminal_cost,
)

# Exception hierarchy
from .exceptions import (
    ConstraintError,
    DDPException,
    DimensionError,
    InitializationError,
    LineSearchExhausted,
    NonPositiveDefiniteError,
    NumericOverflowError,
    OptimizationError,
)
from .forward_pass import (
    BacktrackingLineSearch,
    LineSearchReturnCode,
    check_bounds,
    forward_pass,
    open_loop_rollout,
    rollout,
)
from .ilqr_solver import iLQRSolver
from .knot_point import CostExpansion, KnotPoint, Linearization, Trajectory
from .logger import SolverLogger
from .models import DynamicsModel
from .problem import Problem
from .regularization import Regularization
from .solve import solve

# Configuration classes
from .solver_options import AugmentedLagrangianSolverOptions, iLQRSolverOptions
from .solver_stats import AugmentedLagrangianStats, SolverResult, iLQRStats

# Type definitions
from .types import (
    ConstraintType,
    ContinuousDynamicsFunction,
    ControlInput,
    DiscreteDynamicsFunction,
    DualVariable,
    DynamicsJacobian,
    ErrorCode,
    Float,
    GradientType,
    HessianMatrix,
    Integration,
    JacobianMatrix,
    RegularizationType,
    SolverState,
    SolveStatus,
    StageConstraintFunction,
    StageCostFunction,
    StateVector,
    TerminalConstraintFunction,
    TerminalCostFunction,
    Time,
    Verbosity,
)


# Version information
__version__ = "0.1.0"
__license__ = "MIT"

# Public API
__all__ = [
    "BACKWARD_PASS_SUCCESS",
    "AugmentedLagrangianObjective",
    "AugmentedLagrangianSolver",
    "AugmentedLagrangianSolverOptions",
    "AugmentedLagrangianStats",
    "BackwardPassResult",
    "BacktrackingLineSearch",
    "Constraint",
    "ConstraintError",
    "ConstraintSet",
    "ConstraintTrajectories",
    "ConstraintType",
    "ContinuousDynamicsFunction",
    "ControlInput",
    "CostExpansion",
    "DDPException",
    "DimensionError",
    "DiscreteDynamicsFunction",
    "DualVariable",
    "DynamicsJacobian",
    "DynamicsModel",
    "ErrorCode",
    "Float",
    "GradientType",
    "HessianMatrix",
    "InitializationError",
    "Integration",
    "JacobianMatrix",
    "KnotPoint",
    "LineSearchExhausted",
    "LineSearchReturnCode",
    "Linearization",
    "NonPositiveDefiniteError",
    "NumericOverflowError",
    "Objective",
    "OptimizationError",
    "Problem",
    "QuadraticCost",
    "QuadraticTerminalCost",
    "Regularization",
    "RegularizationType",
    "SolveStatus",
    "SolverLogger",
    "SolverResult",
    "SolverState",
    "StageConstraintFunction",
    "StageCostFunction",
    "StateVector",
    "TerminalConstraintFunction",
    "TerminalCostFunction",
    "Time",
    "Trajectory",
    "Verbosity",
    "__license__",
    "__version__",
    "backward_pass",
    "bound_constraints",
    "check_bounds",
    "forward_pass",
    "goal_constraint",
    "iLQRSolver",
    "iLQRSolverOptions",
    "iLQRStats",
    "lqr_cost",
    "lqr_terminal_cost",
    "open_loop_rollout",
    "regularized_backward_pass",
    "rollout",
    "solve",
]


def _check_jax_installation() -> None:
    """Check that JAX is properly installed and accessible."""
    try:
        import jax.numpy as jnp

        _ = jnp.array([1.0, 2.0, 3.0])
        _ = jax.grad(lambda x: x**2)(1.0)
    except Exception as e:
        raise RuntimeError(
            "JAX installation appears to be broken. "
            "Please reinstall JAX with: pip install --upgrade jax jaxlib"
        ) from e


_check_jax_installation()

# Enable 64-bit precision for numerical stability
jax.config.update("jax_enable_x64", True)
