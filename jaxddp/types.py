"""Core type definitions for JAX-based iLQR/DDP trajectory optimization.

This module provides the JAX-compatible type aliases and the closed enumerations
used to configure the solvers and report their outcome.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TypeAlias

from jax import Array


# Core JAX array types
StateVector: TypeAlias = Array  # JAX array for state vectors
ControlInput: TypeAlias = Array  # JAX array for control inputs
DualVariable: TypeAlias = Array  # JAX array for Lagrange multipliers
JacobianMatrix: TypeAlias = Array  # JAX array for Jacobian matrices
HessianMatrix: TypeAlias = Array  # JAX array for Hessian matrices

# Scalar types
Float: TypeAlias = float
Time: TypeAlias = float

# Function type aliases
DiscreteDynamicsFunction: TypeAlias = Callable[[StateVector, ControlInput, Float], StateVector]
ContinuousDynamicsFunction: TypeAlias = Callable[[StateVector, ControlInput], StateVector]
DynamicsJacobian: TypeAlias = Callable[
    [StateVector, ControlInput, Float], tuple[JacobianMatrix, JacobianMatrix]
]

StageCostFunction: TypeAlias = Callable[[StateVector, ControlInput], Float]
TerminalCostFunction: TypeAlias = Callable[[StateVector], Float]

StageConstraintFunction: TypeAlias = Callable[[StateVector, ControlInput], Array]
TerminalConstraintFunction: TypeAlias = Callable[[StateVector], Array]

LogSink: TypeAlias = Callable[[str], None]


class SolveStatus(Enum):
    """Solver termination status."""

    UNSOLVED = "Unsolved"
    SUCCESS = "Success"
    MAX_ITERATIONS = "MaxIterations"
    MAX_COST_EXCEEDED = "MaxCostExceeded"
    STATE_OUT_OF_BOUNDS = "StateOutOfBounds"
    INPUT_OUT_OF_BOUNDS = "InputOutOfBounds"
    BACKWARD_PASS_FAILED = "BackwardPassFailed"
    LINE_SEARCH_FAILED = "LineSearchFailed"
    CONSTRAINT_INFEASIBLE = "ConstraintInfeasible"


class SolverState(Enum):
    """States of the unconstrained convergence driver."""

    RUNNING = "Running"
    CONVERGED = "Converged"
    FAILED = "Failed"


class ConstraintType(Enum):
    """Constraint types. Inequalities follow the ``c(x, u) <= 0`` convention."""

    EQUALITY = "EQUALITY"
    INEQUALITY = "INEQUALITY"


class RegularizationType(Enum):
    """Where the backward pass adds its damping term."""

    CONTROL = "Control"  # Quu + rho * I
    STATE = "State"  # S + rho * I, propagated through B


class GradientType(Enum):
    """Gradient-norm measure used for convergence."""

    TODOROV = "Todorov"
    FEEDFORWARD = "Feedforward"


class Integration(Enum):
    """Explicit integration schemes for continuous-time dynamics."""

    EULER = "Euler"
    RK3 = "RK3"
    RK4 = "RK4"


class Verbosity(Enum):
    """Verbosity levels."""

    SILENT = "Silent"
    OUTER = "Outer"
    INNER = "Inner"


class ErrorCode(Enum):
    """Error codes attached to every exception raised by the package."""

    NO_ERROR = "NoError"
    BAD_INDEX = "BadIndex"
    DIMENSION_MISMATCH = "DimensionMismatch"
    DIMENSION_UNKNOWN = "DimensionUnknown"
    SOLVER_NOT_INITIALIZED = "SolverNotInitialized"
    TIMESTEP_NOT_POSITIVE = "TimestepNotPositive"
    HORIZON_TOO_SHORT = "HorizonTooShort"
    INVALID_CONSTRAINT_DIM = "InvalidConstraintDim"
    INVALID_BOUND_CONSTRAINT = "InvalidBoundConstraint"
    BACKWARD_PASS_FAILED = "BackwardPassFailed"
    LINE_SEARCH_FAILED = "LineSearchFailed"
    MAX_COST_EXCEEDED = "MaxCostExceeded"
    STATE_OUT_OF_BOUNDS = "StateOutOfBounds"
    INPUT_OUT_OF_BOUNDS = "InputOutOfBounds"
