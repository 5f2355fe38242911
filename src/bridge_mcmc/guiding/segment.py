"""Per-segment guiding statistics and the back-to-front recursion over segments.

Segment i (1-based) spans observation times t_{i-1} to t_i. Its statistics are
seeded by those of segment i + 1, so they are always rebuilt from the last
segment down to the first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Sequence

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from bridge_mcmc.config import GridConfig, SolverConfig
from bridge_mcmc.errors import ConfigurationError
from bridge_mcmc.guiding.change_points import NoChangePt, ODEChangePt
from bridge_mcmc.guiding.grid import time_change_grid
from bridge_mcmc.guiding.ode import BackwardSeed, solve_backward, validate_statistics
from bridge_mcmc.paths import SamplePath

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class GuidedSegment:
    """Guiding statistics of one segment, dense on its fine grid.

    L, Sigma, v describe the observation at the right endpoint
    (v ~ N(L x_T, Sigma)); H, Hnu, c are aligned with tt.
    """

    tt: np.ndarray
    target: Any
    aux: Any
    L: jnp.ndarray
    Sigma: jnp.ndarray
    v: jnp.ndarray
    change_pt: ODEChangePt
    H: jnp.ndarray
    Hnu: jnp.ndarray
    c: jnp.ndarray

    @property
    def seed(self) -> BackwardSeed:
        """Statistics at the left endpoint, handed to the previous segment."""
        return BackwardSeed(self.H[0], self.Hnu[0], self.c[0])

    @property
    def dim(self) -> int:
        return self.L.shape[1]


def _observation_arrays(L, Sigma, v):
    L = jnp.atleast_2d(jnp.asarray(L, dtype=float))
    Sigma = jnp.atleast_2d(jnp.asarray(Sigma, dtype=float))
    v = jnp.atleast_1d(jnp.asarray(v, dtype=float))
    return L, Sigma, v


def solve_segment(
    tt,
    target,
    aux,
    L,
    Sigma,
    v,
    change_pt: ODEChangePt = NoChangePt(),
    seed: BackwardSeed | None = None,
    *,
    index: int,
    solver: SolverConfig = SolverConfig(),
) -> GuidedSegment:
    """Run the backward sweep on one segment and validate its output.

    Args:
        tt: fine time grid of the segment
        target: law the guided proposal is simulated under
        aux: linear auxiliary law driving the backward recursion
        L, Sigma, v: observation v ~ N(L x_T, Sigma) at the right endpoint
        change_pt: where to switch from the Riccati to the LMμ form
        seed: statistics at the left endpoint of segment index + 1
        index: 1-based segment label, used in error messages
        solver: solver settings and validation tolerances

    Returns:
        GuidedSegment with dense (H, Hν, c) aligned with tt

    Raises:
        IntegrationFailure: non-finite output or H(t0) not PSD.
    """
    L, Sigma, v = _observation_arrays(L, Sigma, v)
    H, Hnu, c = solve_backward(
        aux, tt, L, Sigma, v, change_pt, seed, stiffness_limit=solver.stiffness_limit
    )
    validate_statistics(H, Hnu, c, segment=index, check_psd=solver.check_psd, psd_tol=solver.psd_tol)
    return GuidedSegment(
        tt=np.asarray(tt, dtype=np.float64),
        target=target,
        aux=aux,
        L=L,
        Sigma=Sigma,
        v=v,
        change_pt=change_pt,
        H=H,
        Hnu=Hnu,
        c=c,
    )


def build_guided_segments(
    obs_times: Sequence[float],
    observations: Sequence,
    target,
    auxiliaries: Sequence,
    Ls: Sequence,
    Sigmas: Sequence,
    change_pt: ODEChangePt = NoChangePt(),
    *,
    grid: GridConfig = GridConfig(),
    solver: SolverConfig = SolverConfig(),
) -> tuple[GuidedSegment, ...]:
    """Reference statistics for a path observed at obs_times.

    Segments are solved from the last to the first, each seeded by the
    statistics of its successor.

    Args:
        obs_times: m + 1 observation times, the first being the starting point
        observations: m observations; observations[i - 1] is taken at
            obs_times[i], the starting point is not part of it
        target: target law shared by all segments
        auxiliaries: one linear auxiliary law per segment
        Ls: per-segment observation operators
        Sigmas: per-segment observation noise covariances
        change_pt: change-point policy applied to every segment
        grid: fine grid spacing and time change
        solver: solver settings and validation tolerances

    Returns:
        Tuple of m GuidedSegment, segment 1 first

    Raises:
        ConfigurationError: sequence lengths do not match the observation times
        IntegrationFailure: a segment's recursion broke down
    """
    m = len(obs_times) - 1
    if m < 1:
        raise ConfigurationError("At least two observation times are needed")
    for name, seq in (("observations", observations), ("auxiliaries", auxiliaries), ("Ls", Ls), ("Sigmas", Sigmas)):
        if len(seq) != m:
            raise ConfigurationError(f"Expected {m} {name}, got {len(seq)}")

    segments: list[GuidedSegment | None] = [None] * m
    seed = None
    for i in range(m, 0, -1):
        tt = time_change_grid(obs_times[i - 1], obs_times[i], grid.dt, grid.time_change)
        segments[i - 1] = solve_segment(
            tt,
            target,
            auxiliaries[i - 1],
            Ls[i - 1],
            Sigmas[i - 1],
            observations[i - 1],
            change_pt,
            seed,
            index=i,
            solver=solver,
        )
        seed = segments[i - 1].seed
    logger.info("Built guiding statistics for %d segments", m)
    return tuple(segments)


def recompute_segments(
    segments: Sequence[GuidedSegment],
    Ls: Sequence,
    Sigmas: Sequence,
    vs: Sequence,
    change_pts: Sequence,
    theta,
    *,
    solver: SolverConfig = SolverConfig(),
) -> tuple[GuidedSegment, ...]:
    """Fold from segment m down to 1 with new observations and parameters.

    Grids are reused from segments; theta replaces the parameter vector of
    every target and auxiliary law.

    Args:
        segments: statistics of the previous sweep, providing grids and laws
        Ls: per-segment observation operators of the cover being solved
        Sigmas: per-segment noise covariances of the cover being solved
        vs: per-segment effective terminal values
        change_pts: per-segment change-point policies
        theta: parameter vector for target and auxiliary laws
        solver: solver settings and validation tolerances

    Returns:
        Tuple of freshly solved GuidedSegment, segment 1 first

    Raises:
        IntegrationFailure: a segment's recursion broke down; the segment
            attribute names it
    """
    m = len(segments)
    seed = None
    out: list[GuidedSegment | None] = [None] * m
    for i in range(m, 0, -1):
        old = segments[i - 1]
        out[i - 1] = solve_segment(
            old.tt,
            old.target.with_params(theta),
            old.aux.with_params(theta),
            Ls[i - 1],
            Sigmas[i - 1],
            vs[i - 1],
            change_pts[i - 1],
            seed,
            index=i,
            solver=solver,
        )
        seed = out[i - 1].seed
    return tuple(out)


def with_laws(segment: GuidedSegment, theta) -> GuidedSegment:
    """Same statistics, laws carrying theta. Does not recompute anything."""
    return replace(segment, target=segment.target.with_params(theta), aux=segment.aux.with_params(theta))


# =============================================================================
# Using the dense record
# =============================================================================


def guided_drift(segment: GuidedSegment, k: int, x) -> jnp.ndarray:
    """Drift of the guided proposal at grid index k: b + a (Hν - H x)."""
    t = segment.tt[k]
    r = segment.Hnu[k] - segment.H[k] @ x
    return segment.target.drift(t, x) + segment.target.a(t, x) @ r


def log_guiding_density(segment: GuidedSegment, x0) -> jnp.ndarray:
    """log p̃(t0, x0) = -c(t0) - ½ x0'H(t0)x0 + x0'Hν(t0)."""
    x0 = jnp.asarray(x0, dtype=float)
    return -segment.c[0] - 0.5 * x0 @ segment.H[0] @ x0 + x0 @ segment.Hnu[0]


def simulate_guided(key, segment: GuidedSegment, x0) -> SamplePath:
    """Euler-Maruyama draw of the guided proposal on the segment's grid.

    Args:
        key: JAX PRNG key
        segment: solved statistics and target law
        x0: starting state at segment.tt[0]

    Returns:
        SamplePath on segment.tt starting at x0
    """
    x0 = jnp.atleast_1d(jnp.asarray(x0, dtype=float))
    tt = jnp.asarray(segment.tt)
    steps = jnp.diff(tt)
    n_noise = segment.target.sigma(segment.tt[0], x0).shape[1]
    dW = random.normal(key, (steps.shape[0], n_noise)) * jnp.sqrt(steps)[:, None]
    target = segment.target

    def step(x, xs):
        t, h, H, Hnu, dw = xs
        b = target.drift(t, x) + target.a(t, x) @ (Hnu - H @ x)
        x_new = x + b * h + target.sigma(t, x) @ dw
        return x_new, x_new

    _, xs = jax.lax.scan(step, x0, (tt[:-1], steps, segment.H[:-1], segment.Hnu[:-1], dW))
    return SamplePath(tt, jnp.concatenate([x0[None], xs]))
