"""Shared fixtures for blocking and guiding tests.

- FitzHugh-Nagumo setting with five observations (four segments) of the
  first coordinate, the reference case for the chequered schedule
- placeholder reference statistics for construction-only tests
- path workspaces whose buffers are tagged by segment
- a schedule already advanced onto cover A, for acceptance bookkeeping
"""

from dataclasses import replace

import jax.numpy as jnp
import pytest

from bridge_mcmc.blocking import AcceptanceTracker, advance, build_schedule
from bridge_mcmc.config import GridConfig
from bridge_mcmc.guiding import (
    GuidedSegment,
    NoChangePt,
    SimpleChangePt,
    build_guided_segments,
    time_change_grid,
)
from bridge_mcmc.paths import PathWorkspace, SamplePath
from tests.helpers import (
    CHANGE_PT_BUFFER,
    EPSILON,
    KNOTS,
    OBS,
    OBS_NOISE,
    OBS_TIMES,
    THETA0,
    fhn_laws,
)

# ══════════════════════════════════════════════════════════════════════════════
# REFERENCE STATISTICS
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def placeholder_reference():
    """Factory for reference segments whose statistics are never solved.

    Construction of a schedule only reads L, Σ, v and the change point, so
    zero statistics are enough.
    """

    def _make(L=((1.0, 0.0),), Sigma=((1e-10,),), change_pt=NoChangePt(CHANGE_PT_BUFFER), Ls=None):
        target, auxiliaries = fhn_laws()
        segments = []
        for i, aux in enumerate(auxiliaries):
            tt = time_change_grid(OBS_TIMES[i], OBS_TIMES[i + 1], 0.02)
            L_i = jnp.atleast_2d(jnp.asarray(Ls[i] if Ls is not None else L, dtype=float))
            segments.append(
                GuidedSegment(
                    tt=tt,
                    target=target,
                    aux=aux,
                    L=L_i,
                    Sigma=jnp.atleast_2d(jnp.asarray(Sigma, dtype=float)),
                    v=jnp.atleast_1d(jnp.asarray(OBS[i + 1])),
                    change_pt=change_pt,
                    H=jnp.zeros((tt.shape[0], 2, 2)),
                    Hnu=jnp.zeros((tt.shape[0], 2)),
                    c=jnp.zeros(tt.shape[0]),
                )
            )
        return tuple(segments)

    return _make


@pytest.fixture(scope="session")
def fhn_reference():
    """Solved reference statistics for the FitzHugh-Nagumo setting.

    First coordinate observed through L = [1 0] with Σ = 1e-10 and no change
    point, so every segment starts from a near-exact observation.
    """
    target, auxiliaries = fhn_laws()
    m = len(auxiliaries)
    return build_guided_segments(
        OBS_TIMES,
        OBS[1:],
        target,
        auxiliaries,
        [jnp.array([[1.0, 0.0]])] * m,
        [jnp.array([[OBS_NOISE]])] * m,
        NoChangePt(CHANGE_PT_BUFFER),
        grid=GridConfig(dt=0.02),
    )


def _tagged_paths(reference, offset):
    """Constant paths at (obs_i, offset + i) on every segment's grid."""
    return [
        SamplePath(jnp.asarray(seg.tt), jnp.tile(jnp.array([OBS[i], offset + i]), (seg.tt.shape[0], 1)))
        for i, seg in enumerate(reference, start=1)
    ]


@pytest.fixture
def fhn_workspace(fhn_reference):
    """Current buffers tagged (obs, i), proposal buffers tagged (obs, 10 + i)."""
    return PathWorkspace(_tagged_paths(fhn_reference, 0.0), _tagged_paths(fhn_reference, 10.0))


# ══════════════════════════════════════════════════════════════════════════════
# SOLVED SCHEDULES
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture(scope="session")
def _cover_a_solved(fhn_reference):
    schedule = build_schedule(KNOTS, EPSILON, SimpleChangePt(CHANGE_PT_BUFFER), fhn_reference)
    path = _tagged_paths(fhn_reference, 0.0)
    return advance(advance(schedule, path, THETA0), path, THETA0)


@pytest.fixture
def advanced_schedule(_cover_a_solved):
    """Chequered schedule on knots [1, 2, 3], solved on cover A, counters at zero."""
    return replace(
        _cover_a_solved,
        tracker=AcceptanceTracker([len(blocks) for blocks in _cover_a_solved.blocks]),
    )
