from __future__ import annotations

from dataclasses import dataclass, field

from .types import Float, GradientType, RegularizationType, Verbosity


@dataclass(frozen=True)
class iLQRSolverOptions:
    # Maximum number of iterations
    iterations: int = 300

    # Convergence tolerances
    cost_tolerance: Float = 1e-4
    gradient_norm_tolerance: Float = 1e-5
    gradient_type: GradientType = GradientType.TODOROV

    # Consecutive forward pass failures before the solve is aborted
    dJ_counter_limit: int = 10

    # Line search options
    line_search_lower_bound: Float = 1e-8
    line_search_upper_bound: Float = 10.0
    iterations_linesearch: int = 20
    line_search_decrease_factor: Float = 0.5

    # Regularization
    bp_reg_initial: Float = 0.0
    bp_reg_increase_factor: Float = 1.6
    bp_reg_max: Float = 1e8
    bp_reg_min: Float = 1e-8
    bp_reg_type: RegularizationType = RegularizationType.CONTROL
    bp_reg_fp: Float = 10.0  # additive regularization when the forward pass is exhausted

    # Square-root backward pass and the jitter used to factor the cost-to-go
    square_root: bool = False
    bp_reg_sqrt_initial: Float = 1e-6
    bp_reg_sqrt_increase_factor: Float = 10.0

    # Numerical limits checked during rollouts
    max_cost_value: Float = 1e8
    max_state_value: Float = 1e8
    max_control_value: Float = 1e8

    # Verbosity level
    verbose: Verbosity = Verbosity.SILENT

    # Exception handling
    throw_errors: bool = False

    def __post_init__(self) -> None:
        """Validate option values after initialization."""
        if self.iterations <= 0:
            raise ValueError("iterations must be positive")
        if self.cost_tolerance <= 0:
            raise ValueError("cost_tolerance must be positive")
        if self.gradient_norm_tolerance <= 0:
            raise ValueError("gradient_norm_tolerance must be positive")
        if self.dJ_counter_limit < 0:
            raise ValueError("dJ_counter_limit must be non-negative")
        if not 0 < self.line_search_lower_bound < self.line_search_upper_bound:
            raise ValueError(
                "line search bounds must satisfy "
                "0 < line_search_lower_bound < line_search_upper_bound"
            )
        if self.iterations_linesearch <= 0:
            raise ValueError("iterations_linesearch must be positive")
        if not 0 < self.line_search_decrease_factor < 1:
            raise ValueError("line_search_decrease_factor must be in (0, 1)")
        if self.bp_reg_increase_factor <= 1:
            raise ValueError("bp_reg_increase_factor must be greater than 1")
        if self.bp_reg_min <= 0:
            raise ValueError("bp_reg_min must be positive")
        if self.bp_reg_max <= self.bp_reg_min:
            raise ValueError("bp_reg_max must be greater than bp_reg_min")
        in_range = self.bp_reg_min <= self.bp_reg_initial <= self.bp_reg_max
        if self.bp_reg_initial != 0 and not in_range:
            raise ValueError("bp_reg_initial must be 0 or in [bp_reg_min, bp_reg_max]")
        if self.bp_reg_fp < 0:
            raise ValueError("bp_reg_fp must be non-negative")
        if self.bp_reg_sqrt_initial <= 0:
            raise ValueError("bp_reg_sqrt_initial must be positive")
        if self.bp_reg_sqrt_increase_factor <= 1:
            raise ValueError("bp_reg_sqrt_increase_factor must be greater than 1")
        if min(self.max_cost_value, self.max_state_value, self.max_control_value) <= 0:
            raise ValueError("numerical limits must be positive")


@dataclass(frozen=True)
class AugmentedLagrangianSolverOptions:
    # Options for the inner unconstrained solver
    opts_uncon: iLQRSolverOptions = field(default_factory=iLQRSolverOptions)

    # Maximum number of outer iterations
    iterations: int = 30

    # Tolerances handed to the inner solver. The intermediate values are used
    # for every outer iteration but the last.
    cost_tolerance: Float = 1e-4
    cost_tolerance_intermediate: Float = 1e-3
    gradient_norm_tolerance: Float = 1e-5
    gradient_norm_tolerance_intermediate: Float = 1e-5

    # Maximum constraint violation accepted at convergence
    constraint_tolerance: Float = 1e-3

    # Penalty method parameters
    penalty_initial: Float = 1.0
    penalty_scaling: Float = 10.0
    penalty_max: Float = 1e8

    # Multiplier limits
    dual_min: Float = -1e8
    dual_max: Float = 1e8

    # A penalty is increased when its violation did not shrink below this
    # fraction of the previous outer iteration's violation
    constraint_decrease_ratio: Float = 0.25

    # Inequality constraints above this value are treated as active
    active_constraint_tolerance: Float = 0.0

    # Verbosity level
    verbose: Verbosity = Verbosity.SILENT

    # Exception handling
    throw_errors: bool = False

    def __post_init__(self) -> None:
        """Validate option values after initialization."""
        if self.iterations <= 0:
            raise ValueError("iterations must be positive")
        if self.cost_tolerance <= 0 or self.cost_tolerance_intermediate <= 0:
            raise ValueError("cost tolerances must be positive")
        if self.gradient_norm_tolerance <= 0 or self.gradient_norm_tolerance_intermediate <= 0:
            raise ValueError("gradient norm tolerances must be positive")
        if self.constraint_tolerance <= 0:
            raise ValueError("constraint_tolerance must be positive")
        if self.penalty_initial <= 0:
            raise ValueError("penalty_initial must be positive")
        if self.penalty_scaling < 1:
            raise ValueError("penalty_scaling must be at least 1")
        if self.penalty_max < self.penalty_initial:
            raise ValueError("penalty_max must be at least penalty_initial")
        if self.dual_min >= self.dual_max:
            raise ValueError("dual_min must be less than dual_max")
        if not 0 < self.constraint_decrease_ratio <= 1:
            raise ValueError("constraint_decrease_ratio must be in (0, 1]")
