"""Exception hierarchy for JAX-based iLQR/DDP trajectory optimization.

Setup errors (dimensions, constraint declarations, options) are raised
immediately. Numerical failures during a solve are caught at the solver
boundary and reported as a status; they are re-raised, with the solver result
attached, only when ``throw_errors`` is enabled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .types import ErrorCode, Float


if TYPE_CHECKING:
    from .solver_stats import SolverResult


class DDPException(Exception):
    """Base exception class for trajectory optimization errors."""

    def __init__(self, message: str, error_code: ErrorCode) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.result: SolverResult | None = None

    def __str__(self) -> str:
        return f"DDP Error {self.error_code.value}: {self.message}"


class DimensionError(DDPException):
    """Exception for dimension-related errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.DIMENSION_MISMATCH) -> None:
        super().__init__(message, error_code)


class InitializationError(DDPException):
    """Exception for problem and solver setup errors."""

    def __init__(
        self, message: str, error_code: ErrorCode = ErrorCode.SOLVER_NOT_INITIALIZED
    ) -> None:
        super().__init__(message, error_code)


class ConstraintError(DDPException):
    """Exception for constraint-related errors."""

    def __init__(
        self, message: str, error_code: ErrorCode = ErrorCode.INVALID_CONSTRAINT_DIM
    ) -> None:
        super().__init__(message, error_code)


class OptimizationError(DDPException):
    """Exception for optimization algorithm errors."""

    def __init__(self, message: str, error_code: ErrorCode) -> None:
        super().__init__(message, error_code)


class NonPositiveDefiniteError(OptimizationError):
    """Quu stayed indefinite with the regularization at its maximum."""

    def __init__(self, message: str, knot_point_index: int, rho: Float) -> None:
        super().__init__(message, ErrorCode.BACKWARD_PASS_FAILED)
        self.knot_point_index = knot_point_index
        self.rho = rho


class LineSearchExhausted(OptimizationError):
    """Too many consecutive forward passes failed to find an admissible step."""

    def __init__(self, message: str, consecutive_failures: int) -> None:
        super().__init__(message, ErrorCode.LINE_SEARCH_FAILED)
        self.consecutive_failures = consecutive_failures


class NumericOverflowError(OptimizationError):
    """A rollout produced a cost, state or control above its configured bound."""

    def __init__(self, message: str, error_code: ErrorCode, value: Float, bound: Float) -> None:
        super().__init__(message, error_code)
        self.value = value
        self.bound = bound


def _ddp_throw(message: str, error_code: ErrorCode) -> None:
    """Raise the exception class matching the error code."""
    if error_code in (
        ErrorCode.DIMENSION_MISMATCH,
        ErrorCode.DIMENSION_UNKNOWN,
        ErrorCode.BAD_INDEX,
    ):
        raise DimensionError(message, error_code)
    if error_code in (ErrorCode.INVALID_CONSTRAINT_DIM, ErrorCode.INVALID_BOUND_CONSTRAINT):
        raise ConstraintError(message, error_code)
    raise InitializationError(message, error_code)
