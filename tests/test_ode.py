"""Tests for the backward recursion of the guiding statistics.

For a linear target with target == auxiliary the guiding function is exact:
p̃(t0, x0) is the density of the observations given X(t0) = x0. This gives a
closed form for both ODE families and for every way of splitting a segment
between them.

Test hierarchy:
1. Terminal condition
2. Riccati vs LMμ agreement (no seed, full-rank seed, singular seed)
3. Stiff terminal conditions
4. Exactness against Gaussian transition densities
5. Output validation
"""

import logging

import jax.numpy as jnp
import numpy as np
import pytest
from jax.scipy.stats import multivariate_normal

from bridge_mcmc.errors import IntegrationFailure
from bridge_mcmc.guiding import (
    BackwardSeed,
    NoChangePt,
    SimpleChangePt,
    log_guiding_density,
    solve_backward,
    solve_segment,
    terminal_statistics,
    time_change_grid,
)
from bridge_mcmc.guiding.ode import stiffness_ratio, validate_statistics
from bridge_mcmc.models import LinearDiffusion

LAW = LinearDiffusion([[-1.0, 0.5], [0.0, -0.8]], [0.3, -0.2], [0.7, 0.5])
FULL_L = jnp.eye(2)
PARTIAL_L = jnp.array([[1.0, 0.0]])
X0 = jnp.array([0.4, -0.6])

FAMILIES = {
    "riccati": NoChangePt(),
    "mixed": SimpleChangePt(10),
    "lmmu": SimpleChangePt(10_000),
}


def _grid(t0, T):
    return time_change_grid(t0, T, 0.01, time_change_on=False)


def _obs(L):
    k = L.shape[0]
    return 0.1 * jnp.eye(k), jnp.array([0.5, -0.3])[:k]


def _two_segments(L, change_pt):
    """Segments [0, 0.5] and [0.5, 1.2], each observed through L at its end."""
    Sigma, v1 = _obs(L)
    v2 = v1 + 0.2
    second = solve_segment(_grid(0.5, 1.2), LAW, LAW, L, Sigma, v2, change_pt, index=2)
    first = solve_segment(_grid(0.0, 0.5), LAW, LAW, L, Sigma, v1, change_pt, second.seed, index=1)
    return first, second


def _exact_two_segment_loglik(L, x0):
    """log p(v1, v2 | X(0) = x0) from exact transitions."""
    Sigma, v1 = _obs(L)
    v2 = v1 + 0.2
    m1, C1 = LAW.transition(0.5, x0)
    g, Q = LAW.transition(0.7, jnp.zeros(2))
    Phi = jnp.stack([LAW.transition(0.7, e)[0] - g for e in jnp.eye(2)], axis=1)
    m2 = Phi @ m1 + g
    C2 = Phi @ C1 @ Phi.T + Q
    C12 = C1 @ Phi.T
    mean = jnp.concatenate([L @ m1, L @ m2])
    cov = jnp.block([[L @ C1 @ L.T + Sigma, L @ C12 @ L.T], [L @ C12.T @ L.T, L @ C2 @ L.T + Sigma]])
    return multivariate_normal.logpdf(jnp.concatenate([v1, v2]), mean, cov)


# =============================================================================
# Terminal condition
# =============================================================================


class TestTerminalStatistics:
    def test_observation_only(self):
        Sigma = jnp.array([[0.5]])
        H, Hnu, c = terminal_statistics(PARTIAL_L, Sigma, jnp.array([2.0]))
        np.testing.assert_allclose(np.asarray(H), [[2.0, 0.0], [0.0, 0.0]])
        np.testing.assert_allclose(np.asarray(Hnu), [4.0, 0.0])
        np.testing.assert_allclose(float(c), 4.0 + 0.5 * (np.log(2 * np.pi) + np.log(0.5)))

    def test_seed_is_added(self):
        seed = BackwardSeed(jnp.eye(2), jnp.array([1.0, 1.0]), jnp.asarray(3.0))
        base = terminal_statistics(PARTIAL_L, jnp.array([[0.5]]), jnp.array([2.0]))
        seeded = terminal_statistics(PARTIAL_L, jnp.array([[0.5]]), jnp.array([2.0]), seed)
        np.testing.assert_allclose(np.asarray(seeded.H), np.asarray(base.H + jnp.eye(2)))
        np.testing.assert_allclose(float(seeded.c), float(base.c) + 3.0)

    def test_single_point_grid(self):
        Sigma, v = _obs(FULL_L)
        H, Hnu, c = solve_backward(LAW, np.array([1.0]), FULL_L, Sigma, v, NoChangePt())
        assert H.shape == (1, 2, 2)
        np.testing.assert_allclose(np.asarray(H[0]), 10.0 * np.eye(2))


# =============================================================================
# Family agreement
# =============================================================================


class TestFamilyAgreement:
    @pytest.mark.parametrize("L", [FULL_L, PARTIAL_L], ids=["full", "partial"])
    @pytest.mark.parametrize("change_pt", [FAMILIES["mixed"], FAMILIES["lmmu"]], ids=["mixed", "lmmu"])
    def test_without_seed(self, L, change_pt):
        Sigma, v = _obs(L)
        tt = _grid(0.0, 1.0)
        reference = solve_backward(LAW, tt, L, Sigma, v, NoChangePt())
        other = solve_backward(LAW, tt, L, Sigma, v, change_pt)
        for a, b in zip(reference, other):
            np.testing.assert_allclose(np.asarray(b), np.asarray(a), rtol=1e-5, atol=1e-8)

    @pytest.mark.parametrize("L", [FULL_L, PARTIAL_L], ids=["full_rank_seed", "singular_seed"])
    def test_with_seed(self, L):
        reference, _ = _two_segments(L, NoChangePt())
        other, _ = _two_segments(L, FAMILIES["lmmu"])
        for name in ("H", "Hnu", "c"):
            np.testing.assert_allclose(
                np.asarray(getattr(other, name)),
                np.asarray(getattr(reference, name)),
                rtol=1e-5,
                atol=1e-8,
                err_msg=name,
            )

    def test_output_aligned_with_grid(self):
        Sigma, v = _obs(FULL_L)
        tt = _grid(0.0, 1.0)
        H, Hnu, c = solve_backward(LAW, tt, FULL_L, Sigma, v, FAMILIES["mixed"])
        assert H.shape == (tt.shape[0], 2, 2)
        assert Hnu.shape == (tt.shape[0], 2)
        assert c.shape == (tt.shape[0],)
        np.testing.assert_allclose(np.asarray(H[-1]), 10.0 * np.eye(2), rtol=1e-12)

    def test_pinned_segment_stays_finite_in_lmmu_form(self):
        """An exact pin with Σ = 1e-7 I stays well-posed in the LMμ form."""
        tt = time_change_grid(0.0, 1.0, 0.02)
        H, Hnu, c = solve_backward(LAW, tt, FULL_L, 1e-7 * jnp.eye(2), jnp.array([0.5, -0.3]), SimpleChangePt(100))
        assert bool(jnp.all(jnp.isfinite(H)))
        np.testing.assert_allclose(np.asarray(H[-1]), 1e7 * np.eye(2), rtol=1e-9)


# =============================================================================
# Stiff terminal conditions
# =============================================================================


class TestStiffness:
    def test_stiffness_ratio(self):
        a = jnp.broadcast_to(jnp.diag(jnp.array([0.49, 0.25])), (3, 2, 2))
        assert stiffness_ratio(10.0 * jnp.eye(2), a, [0.1, 0.2]) == pytest.approx(1.96)

    def test_stiffness_ratio_without_steps(self):
        assert stiffness_ratio(1e10 * jnp.eye(2), jnp.zeros((1, 2, 2)), []) == 0.0

    def test_near_exact_observation_switches_to_lmmu(self, caplog):
        """Σ = 1e-10 I with NoChangePt is solved entirely in the LMμ form."""
        tt = _grid(0.0, 1.0)
        v = jnp.array([0.5, -0.3])
        with caplog.at_level(logging.DEBUG, logger="bridge_mcmc.guiding.ode"):
            H, Hnu, c = solve_backward(LAW, tt, FULL_L, 1e-10 * jnp.eye(2), v, NoChangePt())
        assert "LMμ form" in caplog.text

        lmmu = solve_backward(LAW, tt, FULL_L, 1e-10 * jnp.eye(2), v, FAMILIES["lmmu"])
        for a, b in zip(lmmu, (H, Hnu, c)):
            assert bool(jnp.all(jnp.isfinite(b)))
            np.testing.assert_allclose(np.asarray(b), np.asarray(a), rtol=1e-12)

    def test_riccati_form_diverges_without_fallback(self):
        tt = _grid(0.0, 1.0)
        H, _, _ = solve_backward(
            LAW, tt, FULL_L, 1e-10 * jnp.eye(2), jnp.array([0.5, -0.3]), NoChangePt(),
            stiffness_limit=float("inf"),
        )
        assert not bool(jnp.all(jnp.isfinite(H)))

    def test_moderate_noise_stays_in_riccati_form(self, caplog):
        Sigma, v = _obs(FULL_L)
        with caplog.at_level(logging.DEBUG, logger="bridge_mcmc.guiding.ode"):
            solve_backward(LAW, _grid(0.0, 1.0), FULL_L, Sigma, v, NoChangePt())
        assert "LMμ form" not in caplog.text


# =============================================================================
# Exactness
# =============================================================================


class TestExactness:
    @pytest.mark.parametrize("L", [FULL_L, PARTIAL_L], ids=["full", "partial"])
    @pytest.mark.parametrize("family", list(FAMILIES))
    def test_single_segment(self, L, family):
        Sigma, v = _obs(L)
        segment = solve_segment(_grid(0.0, 1.0), LAW, LAW, L, Sigma, v, FAMILIES[family], index=1)
        mean, cov = LAW.transition(1.0, X0)
        expected = multivariate_normal.logpdf(v, L @ mean, L @ cov @ L.T + Sigma)
        np.testing.assert_allclose(float(log_guiding_density(segment, X0)), float(expected), rtol=1e-6)

    @pytest.mark.parametrize("L", [FULL_L, PARTIAL_L], ids=["full_rank_seed", "singular_seed"])
    @pytest.mark.parametrize("family", list(FAMILIES))
    def test_seeded_segment(self, L, family):
        first, _ = _two_segments(L, FAMILIES[family])
        expected = _exact_two_segment_loglik(L, X0)
        np.testing.assert_allclose(float(log_guiding_density(first, X0)), float(expected), rtol=1e-6)


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    def test_non_finite_parameters(self):
        law = LinearDiffusion([[float("nan"), 0.0], [0.0, -1.0]], [0.0, 0.0], [1.0, 1.0])
        Sigma, v = _obs(FULL_L)
        with pytest.raises(IntegrationFailure) as exc:
            solve_segment(_grid(0.0, 1.0), law, law, FULL_L, Sigma, v, index=3)
        assert exc.value.segment == 3

    def test_negative_definite_H(self):
        H = -jnp.eye(2)[None]
        with pytest.raises(IntegrationFailure):
            validate_statistics(H, jnp.zeros((1, 2)), jnp.zeros(1), segment=1)

    def test_psd_check_can_be_disabled(self):
        H = -jnp.eye(2)[None]
        validate_statistics(H, jnp.zeros((1, 2)), jnp.zeros(1), segment=1, check_psd=False)

    def test_round_off_within_tolerance(self):
        H = jnp.array([[[1.0, 0.0], [0.0, -1e-12]]])
        validate_statistics(H, jnp.zeros((1, 2)), jnp.zeros(1), segment=1)
