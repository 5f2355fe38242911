"""Fine time grids on observation intervals."""

import math

import numpy as np


def time_change(t0: float, T: float, s):
    """τ(s) = t0 + (s - t0)(2 - (s - t0)/(T - t0)), denser towards T."""
    s = np.asarray(s, dtype=np.float64)
    return t0 + (s - t0) * (2.0 - (s - t0) / (T - t0))


def time_change_grid(t0: float, T: float, dt: float, time_change_on: bool = True) -> np.ndarray:
    """Grid on [t0, T] with ceil((T - t0)/dt) + 1 points.

    Args:
        t0: left endpoint
        T: right endpoint, greater than t0
        dt: nominal spacing before the time change
        time_change_on: apply time_change to concentrate points near T

    Returns:
        Increasing float64 grid hitting both endpoints exactly
    """
    if not T > t0:
        raise ValueError(f"Interval end ({T}) must exceed its start ({t0})")
    n_points = int(math.ceil((T - t0) / dt)) + 1
    tt = np.linspace(t0, T, n_points)
    if time_change_on:
        tt = time_change(t0, T, tt)
    tt[0], tt[-1] = t0, T
    return tt
