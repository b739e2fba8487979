"""Regularization schedule shared by the backward and forward passes."""

from __future__ import annotations

from .solver_options import iLQRSolverOptions
from .types import Float


class Regularization:
    """Scalar damping ``rho`` and its multiplicative trend ``drho``.

    ``rho`` is either 0 or lies in ``[bp_reg_min, bp_reg_max]``.
    """

    def __init__(self, opts: iLQRSolverOptions):
        self.opts = opts
        self.rho: Float = opts.bp_reg_initial
        self.drho: Float = 0.0

    @property
    def at_max(self) -> bool:
        return self.rho >= self.opts.bp_reg_max

    def reset(self) -> None:
        self.rho = self.opts.bp_reg_initial
        self.drho = 0.0

    def increase(self) -> None:
        """Grow rho after a backward pass hit an indefinite Quu."""
        f = self.opts.bp_reg_increase_factor
        self.drho = max(self.drho * f, f)
        self.rho = min(max(self.rho * self.drho, self.opts.bp_reg_min), self.opts.bp_reg_max)

    def decrease(self) -> None:
        """Relax rho after an accepted step that needed no extra damping."""
        f = self.opts.bp_reg_increase_factor
        self.drho = min(self.drho / f, 1 / f)
        self.rho = self.rho * self.drho
        if self.rho < self.opts.bp_reg_min:
            self.rho = 0.0

    def bump(self) -> None:
        """Additive increase after the line search found no admissible step."""
        self.rho = min(self.rho + self.opts.bp_reg_fp, self.opts.bp_reg_max)

    def copy_from(self, other: Regularization) -> None:
        self.rho = other.rho
        self.drho = other.drho

    def clone(self) -> Regularization:
        reg = Regularization(self.opts)
        reg.copy_from(self)
        return reg
