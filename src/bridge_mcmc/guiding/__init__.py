"""Guiding statistics (H, Hν, c) for guided proposal bridges.

- change_points: which backward ODE family runs on which part of a segment
- grid: fine time grids on observation intervals
- ode: Riccati and LMμ backward solvers plus output validation
- segment: per-segment statistics, the back-to-front fold, guided sampling
"""

from bridge_mcmc.guiding.change_points import NoChangePt, ODEChangePt, SimpleChangePt
from bridge_mcmc.guiding.grid import time_change, time_change_grid
from bridge_mcmc.guiding.ode import BackwardSeed, solve_backward, terminal_statistics
from bridge_mcmc.guiding.segment import (
    GuidedSegment,
    build_guided_segments,
    guided_drift,
    log_guiding_density,
    recompute_segments,
    simulate_guided,
    solve_segment,
)

__all__ = [
    "NoChangePt",
    "ODEChangePt",
    "SimpleChangePt",
    "time_change",
    "time_change_grid",
    "BackwardSeed",
    "solve_backward",
    "terminal_statistics",
    "GuidedSegment",
    "build_guided_segments",
    "guided_drift",
    "log_guiding_density",
    "recompute_segments",
    "simulate_guided",
    "solve_segment",
]
