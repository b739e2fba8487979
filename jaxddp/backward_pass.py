"""Regularized backward pass for JAX-based iLQR/DDP.

The recursion runs from the last control interval back to the first, one
JIT-compiled step kernel per knot point, propagating the quadratic expansion
of the cost-to-go and producing the feedback and feedforward gains. The
square-root variant propagates the Cholesky factor of the cost-to-go Hessian.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial

import jax
import jax.numpy as jnp
import jax.scipy as jsp
from jax import Array

from .exceptions import NonPositiveDefiniteError
from .knot_point import CostExpansion, Linearization
from .regularization import Regularization
from .types import Float, RegularizationType


# Returned as the failing index when every step succeeded
BACKWARD_PASS_SUCCESS = -1


def _gains_and_cost_to_go(A, B, Qx, Qu, Qxx, Quu, Qux, rho, state_regularization):
    """Regularized gains and cost-to-go from the action-value expansion."""
    m = B.shape[1]
    if state_regularization:
        Quu_reg = Quu + rho * B.T @ B
        Qux_reg = Qux + rho * B.T @ A
    else:
        Quu_reg = Quu + rho * jnp.eye(m)
        Qux_reg = Qux
    Quu_reg = 0.5 * (Quu_reg + Quu_reg.T)

    # Cholesky yields NaNs when Quu_reg is not positive definite
    L = jsp.linalg.cholesky(Quu_reg, lower=True)
    K = -jsp.linalg.cho_solve((L, True), Qux_reg)
    d = -jsp.linalg.cho_solve((L, True), Qu)
    success = (
        jnp.all(jnp.isfinite(L))
        & jnp.all(jnp.diag(L) > 0)
        & jnp.all(jnp.isfinite(K))
        & jnp.all(jnp.isfinite(d))
    )

    # Cost-to-go uses the unregularized blocks
    S = Qxx + K.T @ Quu @ K + K.T @ Qux + Qux.T @ K
    S = 0.5 * (S + S.T)
    s = Qx + K.T @ Quu @ d + K.T @ Qu + Qux.T @ d

    dJ1 = d @ Qu
    dJ2 = 0.5 * d @ Quu @ d
    return K, d, S, s, Quu_reg, dJ1, dJ2, success


@partial(jax.jit, static_argnames=("state_regularization",))
def _backward_step(
    A: Array,
    B: Array,
    lx: Array,
    lu: Array,
    lxx: Array,
    luu: Array,
    lux: Array,
    S_next: Array,
    s_next: Array,
    rho: Float,
    state_regularization: bool,
) -> tuple[Array, Array, Array, Array, Array, Array, Array, Array]:
    """Single backward step: action-value expansion, gains and cost-to-go."""
    # Action-value function expansion
    AtS = A.T @ S_next
    BtS = B.T @ S_next
    Qx = lx + A.T @ s_next
    Qu = lu + B.T @ s_next
    Qxx = lxx + AtS @ A
    Quu = luu + BtS @ B
    Qux = lux + BtS @ A
    return _gains_and_cost_to_go(A, B, Qx, Qu, Qxx, Quu, Qux, rho, state_regularization)


@jax.jit
def _cost_to_go_factor(S: Array, jitter_initial: Float, jitter_factor: Float, jitter_max: Float):
    """Upper Cholesky factor P of S = P'P.

    A semidefinite S gets a diagonal jitter that starts at ``jitter_initial``
    and grows by ``jitter_factor`` until the factorization succeeds or the
    jitter exceeds ``jitter_max``, in which case P holds NaNs.
    """
    eye = jnp.eye(S.shape[0], dtype=S.dtype)

    def factor(jitter):
        return jsp.linalg.cholesky(S + jitter * eye, lower=False)

    def failed(P):
        return ~(jnp.all(jnp.isfinite(P)) & jnp.all(jnp.diag(P) > 0))

    def cond(carry):
        jitter, P = carry
        return failed(P) & (jitter < jitter_max)

    def body(carry):
        jitter, _ = carry
        jitter = jnp.where(jitter == 0, jitter_initial, jitter * jitter_factor)
        return jitter, factor(jitter)

    zero = jnp.zeros((), dtype=S.dtype)
    _, P = jax.lax.while_loop(cond, body, (zero, factor(zero)))
    return P


@partial(jax.jit, static_argnames=("state_regularization",))
def _sqrt_backward_step(
    A: Array,
    B: Array,
    lx: Array,
    lu: Array,
    lxx: Array,
    luu: Array,
    lux: Array,
    P_next: Array,
    s_next: Array,
    rho: Float,
    state_regularization: bool,
) -> tuple[Array, Array, Array, Array, Array, Array, Array, Array]:
    """Backward step on the factor of the cost-to-go Hessian.

    The dynamics enter the action-value Hessians only through P A and P B, so
    their products are symmetric positive semidefinite by construction.
    """
    PA = P_next @ A
    PB = P_next @ B
    Qx = lx + A.T @ s_next
    Qu = lu + B.T @ s_next
    Qxx = lxx + PA.T @ PA
    Quu = luu + PB.T @ PB
    Qux = lux + PB.T @ PA
    return _gains_and_cost_to_go(A, B, Qx, Qu, Qxx, Quu, Qux, rho, state_regularization)


@dataclass
class BackwardPassResult:
    """Gains, cost-to-go and expected-decrease terms of a successful pass."""

    K: list[Array]  # N-1 feedback gains (m, n)
    d: list[Array]  # N-1 feedforward gains (m,)
    S: list[Array]  # N cost-to-go Hessians (n, n)
    s: list[Array]  # N cost-to-go gradients (n,)
    Quu_reg: list[Array]  # N-1 regularized control Hessians (m, m)
    dJ1: Float
    dJ2: Float

    def expected_decrease(self, alpha: Float) -> Float:
        """Decrease of the cost predicted by the quadratic model for step ``alpha``."""
        return -alpha * (self.dJ1 + alpha * self.dJ2)


def backward_pass(
    linearization: Linearization,
    expansion: CostExpansion,
    rho: Float,
    reg_type: RegularizationType = RegularizationType.CONTROL,
    square_root: bool = False,
    sqrt_reg_initial: Float = 1e-6,
    sqrt_reg_increase_factor: Float = 10.0,
    sqrt_reg_max: Float = 1e8,
) -> tuple[BackwardPassResult | None, int]:
    """Run the recursion once at a fixed regularization.

    With ``square_root`` the recursion carries the upper Cholesky factor of
    each cost-to-go Hessian instead of the Hessian itself; the ``sqrt_reg_*``
    arguments set the jitter used to factor a semidefinite cost-to-go.

    Returns ``(result, BACKWARD_PASS_SUCCESS)``, or ``(None, k)`` where ``k``
    is the first knot point whose regularized Quu is not positive definite.
    """
    N = len(linearization) + 1
    state_regularization = reg_type == RegularizationType.STATE

    def factor(S_k):
        return _cost_to_go_factor(S_k, sqrt_reg_initial, sqrt_reg_increase_factor, sqrt_reg_max)

    K: list[Array] = [None] * (N - 1)
    d: list[Array] = [None] * (N - 1)
    Quu_reg: list[Array] = [None] * (N - 1)
    S: list[Array] = [None] * N
    s: list[Array] = [None] * N
    S[N - 1] = expansion.lxx_N
    s[N - 1] = expansion.lx_N
    if square_root:
        step = _sqrt_backward_step
        cost_to_go = factor(expansion.lxx_N)
    else:
        step = _backward_step
        cost_to_go = expansion.lxx_N
    dJ1 = 0.0
    dJ2 = 0.0

    for k in range(N - 2, -1, -1):
        K_k, d_k, S_k, s_k, Quu_k, dJ1_k, dJ2_k, success = step(
            linearization.A[k],
            linearization.B[k],
            expansion.lx[k],
            expansion.lu[k],
            expansion.lxx[k],
            expansion.luu[k],
            expansion.lux[k],
            cost_to_go,
            s[k + 1],
            rho,
            state_regularization,
        )
        if not success:
            return None, k

        K[k] = K_k
        d[k] = d_k
        S[k] = S_k
        s[k] = s_k
        Quu_reg[k] = Quu_k
        dJ1 += float(dJ1_k)
        dJ2 += float(dJ2_k)
        cost_to_go = factor(S_k) if square_root else S_k

    return BackwardPassResult(K, d, S, s, Quu_reg, dJ1, dJ2), BACKWARD_PASS_SUCCESS


def regularized_backward_pass(
    linearization: Linearization,
    expansion: CostExpansion,
    regularization: Regularization,
) -> tuple[BackwardPassResult, int]:
    """Retry the backward pass with growing regularization until it succeeds.

    Returns the result and the number of regularization increases it took.
    Raises NonPositiveDefiniteError when a pass fails with rho at its maximum.
    """
    increases = 0
    opts = regularization.opts
    while True:
        result, failed_index = backward_pass(
            linearization,
            expansion,
            regularization.rho,
            opts.bp_reg_type,
            square_root=opts.square_root,
            sqrt_reg_initial=opts.bp_reg_sqrt_initial,
            sqrt_reg_increase_factor=opts.bp_reg_sqrt_increase_factor,
            sqrt_reg_max=opts.bp_reg_max,
        )
        if result is not None:
            return result, increases
        if regularization.at_max:
            raise NonPositiveDefiniteError(
                f"Quu is not positive definite at knot point {failed_index} "
                f"with maximum regularization rho = {regularization.rho:.3g}",
                failed_index,
                regularization.rho,
            )
        regularization.increase()
        increases += 1
