"""Backward ODE solvers for the guiding statistics of one segment.

The guided proposal on [t0, T] is steered by

    p̃(t, x) = exp(-c(t) - ½ x'H(t)x + x'Hν(t))

where (H, Hν, c) solve, backwards from T, the system induced by a linear
auxiliary law dX = (B X + β) dt + σ̃ dW, ã = σ̃σ̃':

    dH/dt  = -B'H - HB + HãH
    dHν/dt = -B'Hν + HãHν + Hβ
    dc/dt  = β'Hν + ½ Hν'ãHν - ½ tr(ãH)

Two solver families share this target:

1. Riccati form: the system above, integrated directly. Accurate away from
   exact pins but stiff when the terminal H is huge (Σ ≈ 0).
2. LMμ form: the linear system

    dL/dt = -L B,   dM⁺/dt = -L ã L',   dμ/dt = -L β

   from L_T, M⁺_T = Σ, μ_T = 0, mapped back via H = L'ML, Hν = L'M(v - μ),
   c = ½(v - μ)'M(v - μ) + ½ log|2πM⁺| + offset. Well-posed for any Σ ≻ 0.

Both are integrated with classical RK4 on the segment's fine grid. The
Riccati form is only used where explicit RK4 is stable on it; otherwise the
segment falls back to the LMμ form (see stiffness_ratio).
"""

from __future__ import annotations

import logging
import math
from typing import NamedTuple

import jax
import jax.numpy as jnp
import jax.scipy.linalg as jla
import numpy as np

from bridge_mcmc.errors import IntegrationFailure

logger = logging.getLogger(__name__)

LOG_2PI = math.log(2.0 * math.pi)


class BackwardSeed(NamedTuple):
    """(H, Hν, c) at the left endpoint of a segment, seeding its predecessor."""

    H: jnp.ndarray  # (d, d)
    Hnu: jnp.ndarray  # (d,)
    c: jnp.ndarray  # ()


# =============================================================================
# Coefficients and the RK4 sweep
# =============================================================================


def auxiliary_coefficients(aux, tt) -> tuple[tuple, tuple]:
    """Evaluate (B, β, ã) of a linear law on the grid and at step midpoints."""
    tt = np.asarray(tt, dtype=np.float64)
    mids = 0.5 * (tt[:-1] + tt[1:])

    def _stack(times):
        if len(times) == 0:
            d = aux.dim
            return (jnp.zeros((0, d, d)), jnp.zeros((0, d)), jnp.zeros((0, d, d)))
        return (
            jnp.stack([aux.B(t) for t in times]),
            jnp.stack([aux.beta(t) for t in times]),
            jnp.stack([aux.a(t) for t in times]),
        )

    return _stack(tt), _stack(mids)


def _tree_step(y, h, k):
    return jax.tree_util.tree_map(lambda a, b: a - h * b, y, k)


def _rk4_backward(rhs, y_T, tt, coef, coef_mid):
    """Integrate dy/dt = rhs(coef, y) from tt[-1] down to tt[0].

    Returns the pytree y stacked over the grid, aligned with tt.
    """
    tt = jnp.asarray(tt)
    if tt.shape[0] == 1:
        return jax.tree_util.tree_map(lambda a: a[None], y_T)

    steps = jnp.diff(tt)
    right = jax.tree_util.tree_map(lambda a: a[1:], coef)
    left = jax.tree_util.tree_map(lambda a: a[:-1], coef)

    def step(y, xs):
        h, c_right, c_mid, c_left = xs
        k1 = rhs(c_right, y)
        k2 = rhs(c_mid, _tree_step(y, 0.5 * h, k1))
        k3 = rhs(c_mid, _tree_step(y, 0.5 * h, k2))
        k4 = rhs(c_left, _tree_step(y, h, k3))
        incr = jax.tree_util.tree_map(
            lambda a, b, c, d: (a + 2.0 * b + 2.0 * c + d) / 6.0, k1, k2, k3, k4
        )
        y_new = _tree_step(y, h, incr)
        return y_new, y_new

    _, ys = jax.lax.scan(step, y_T, (steps, right, coef_mid, left), reverse=True)
    return jax.tree_util.tree_map(lambda a, b: jnp.concatenate([a, b[None]]), ys, y_T)


# =============================================================================
# Riccati (H, Hν, c) family
# =============================================================================


def _riccati_rhs(coef, y):
    B, beta, a = coef
    H, Hnu, _ = y
    dH = -B.T @ H - H @ B + H @ a @ H
    dHnu = -B.T @ Hnu + H @ a @ Hnu + H @ beta
    dc = beta @ Hnu + 0.5 * Hnu @ a @ Hnu - 0.5 * jnp.trace(a @ H)
    return dH, dHnu, dc


def terminal_statistics(L, Sigma, v, seed: BackwardSeed | None = None) -> BackwardSeed:
    """(H, Hν, c) at the right endpoint: observation v ~ N(L x, Σ) plus the seed."""
    L = jnp.atleast_2d(jnp.asarray(L))
    Sigma = jnp.atleast_2d(jnp.asarray(Sigma))
    v = jnp.atleast_1d(jnp.asarray(v))
    k, d = L.shape

    Si_L = jnp.linalg.solve(Sigma, L)
    Si_v = jnp.linalg.solve(Sigma, v)
    _, logdet = jnp.linalg.slogdet(Sigma)
    H = L.T @ Si_L
    Hnu = L.T @ Si_v
    c = 0.5 * v @ Si_v + 0.5 * (k * LOG_2PI + logdet)
    if seed is not None:
        H = H + seed.H
        Hnu = Hnu + seed.Hnu
        c = c + seed.c
    return BackwardSeed(0.5 * (H + H.T), Hnu, c)


def solve_riccati(tt, coef, coef_mid, terminal: BackwardSeed):
    """Riccati-form sweep. Returns dense (H, Hν, c) aligned with tt."""
    H, Hnu, c = _rk4_backward(_riccati_rhs, tuple(terminal), tt, coef, coef_mid)
    return 0.5 * (H + jnp.swapaxes(H, -1, -2)), Hnu, c


# =============================================================================
# LMμ family
# =============================================================================


def _lmmu_rhs(coef, y):
    B, beta, a = coef
    L, _, _ = y
    return -L @ B, -L @ a @ L.T, -L @ beta


def _augment_with_seed(L, Sigma, v, seed: BackwardSeed | None):
    """Express the seed as unit-noise pseudo-observations R x ≈ v_seed.

    With H⁺ = R'R (eigen square root) and R'v_seed = Hν⁺ the seed's quadratic
    form is -½|Rx - v_seed|² up to a constant, which is returned as offset.
    """
    L = jnp.atleast_2d(jnp.asarray(L))
    Sigma = jnp.atleast_2d(jnp.asarray(Sigma))
    v = jnp.atleast_1d(jnp.asarray(v))
    if seed is None:
        return L, Sigma, v, jnp.asarray(0.0)

    d = L.shape[1]
    lam, U = jnp.linalg.eigh(0.5 * (seed.H + seed.H.T))
    tol = 1e-12 * jnp.maximum(1.0, jnp.max(jnp.abs(lam)))
    keep = lam > tol
    root = jnp.sqrt(jnp.where(keep, lam, 0.0))
    R = root[:, None] * U.T
    v_seed = jnp.where(keep, (U.T @ seed.Hnu) / jnp.where(keep, root, 1.0), 0.0)

    L_aug = jnp.concatenate([L, R])
    Sigma_aug = jla.block_diag(Sigma, jnp.eye(d))
    v_aug = jnp.concatenate([v, v_seed])
    offset = seed.c - 0.5 * v_seed @ v_seed - 0.5 * d * LOG_2PI
    return L_aug, Sigma_aug, v_aug, offset


def _lmmu_to_statistics(L, Mplus, mu, v, offset):
    r = v - mu
    ML = jnp.linalg.solve(Mplus, L)
    Mr = jnp.linalg.solve(Mplus, r)
    _, logdet = jnp.linalg.slogdet(Mplus)
    H = L.T @ ML
    Hnu = L.T @ Mr
    c = 0.5 * r @ Mr + 0.5 * (r.shape[0] * LOG_2PI + logdet) + offset
    return 0.5 * (H + H.T), Hnu, c


def solve_lmmu(tt, coef, coef_mid, L, Sigma, v, seed: BackwardSeed | None = None):
    """LMμ-form sweep. Returns dense (H, Hν, c) aligned with tt."""
    L_aug, Sigma_aug, v_aug, offset = _augment_with_seed(L, Sigma, v, seed)
    terminal = (L_aug, Sigma_aug, jnp.zeros(L_aug.shape[0]))
    Ls, Mpluses, mus = _rk4_backward(_lmmu_rhs, terminal, tt, coef, coef_mid)
    return jax.vmap(_lmmu_to_statistics, in_axes=(0, 0, 0, None, None))(
        Ls, Mpluses, mus, v_aug, offset
    )


# =============================================================================
# Segment solve and validation
# =============================================================================


def stiffness_ratio(H, a, steps) -> float:
    """Bound on h·‖2ãH‖ for an RK4 sweep of the Riccati form started at H.

    RK4 is stable for real negative h·λ down to about -2.8. The Jacobian of
    HãH is bounded by 2‖ã‖‖H‖, and H only shrinks in noisy directions going
    backwards, so the terminal value gives the worst case.
    """
    steps = np.asarray(steps, dtype=np.float64)
    if steps.shape[0] == 0:
        return 0.0
    a_norm = jnp.max(jnp.linalg.norm(a, ord=2, axis=(-2, -1)))
    return float(np.max(steps) * 2.0 * a_norm * jnp.linalg.norm(H, ord=2))


def solve_backward(
    aux,
    tt,
    L,
    Sigma,
    v,
    change_pt,
    seed: BackwardSeed | None = None,
    *,
    stiffness_limit: float = 1.0,
):
    """Dense (H, Hν, c) on one segment's grid.

    The change-point policy picks the grid index up to which the Riccati form
    is used; the LMμ form covers the remainder up to the right endpoint and
    hands its left-most value over as the Riccati terminal condition. When the
    Riccati part would start from a near-exact observation (H large relative
    to the grid spacing) the whole segment is solved in the LMμ form instead.

    Args:
        aux: linear auxiliary law providing B(t), beta(t) and a(t)
        tt: fine time grid of the segment, increasing
        L: k x d observation operator at the right endpoint
        Sigma: k x k observation noise covariance
        v: k-vector observed (or pinned) value
        change_pt: NoChangePt or SimpleChangePt
        seed: statistics at the left endpoint of the following segment,
            None for the last segment
        stiffness_limit: largest stiffness_ratio accepted for the Riccati form

    Returns:
        Tuple (H, Hν, c) with shapes (n, d, d), (n, d) and (n,), aligned with tt
    """
    tt = np.asarray(tt, dtype=np.float64)
    n = tt.shape[0]
    k = change_pt.switch_index(n)
    coef, coef_mid = auxiliary_coefficients(aux, tt)

    def _slice(tree, sl):
        return jax.tree_util.tree_map(lambda a: a[sl], tree)

    if k < n - 1:
        H_tail, Hnu_tail, c_tail = solve_lmmu(
            tt[k:], _slice(coef, slice(k, None)), _slice(coef_mid, slice(k, None)),
            L, Sigma, v, seed,
        )
        terminal = BackwardSeed(H_tail[0], Hnu_tail[0], c_tail[0])
    else:
        H_tail = Hnu_tail = c_tail = None
        terminal = terminal_statistics(L, Sigma, v, seed)

    if k > 0:
        ratio = stiffness_ratio(terminal.H, coef[2][: k + 1], np.diff(tt[: k + 1]))
        if ratio > stiffness_limit:
            logger.debug("Riccati form stiff (ratio %.3g), solving segment in LMμ form", ratio)
            return solve_lmmu(tt, coef, coef_mid, L, Sigma, v, seed)

    H, Hnu, c = solve_riccati(
        tt[: k + 1], _slice(coef, slice(None, k + 1)), _slice(coef_mid, slice(None, k)), terminal
    )
    if H_tail is not None:
        H = jnp.concatenate([H[:-1], H_tail])
        Hnu = jnp.concatenate([Hnu[:-1], Hnu_tail])
        c = jnp.concatenate([c[:-1], c_tail])
    return H, Hnu, c


def validate_statistics(H, Hnu, c, *, segment: int, check_psd: bool = True, psd_tol: float = 1e-8):
    """Raise IntegrationFailure unless the sweep is finite and H(t0) is PSD."""
    finite = bool(jnp.all(jnp.isfinite(H)) & jnp.all(jnp.isfinite(Hnu)) & jnp.all(jnp.isfinite(c)))
    if not finite:
        logger.warning("Backward recursion produced non-finite values on segment %d", segment)
        raise IntegrationFailure("Backward recursion produced non-finite values", segment=segment)
    if check_psd:
        eig = jnp.linalg.eigvalsh(H[0])
        scale = max(1.0, float(jnp.max(jnp.abs(eig))))
        if float(jnp.min(eig)) < -psd_tol * scale:
            logger.warning(
                "H(t0) not positive semi-definite on segment %d (min eigenvalue %.3e)",
                segment,
                float(jnp.min(eig)),
            )
            raise IntegrationFailure("H at the left endpoint is not positive semi-definite", segment=segment)
