"""Shared test helpers (non-fixtures).

Constants of the FitzHugh-Nagumo reference setting and law constructors,
importable directly into test modules. For fixtures, see conftest.py.
"""

import bridge_mcmc  # noqa: F401  (enables 64-bit JAX before any array is built)

from bridge_mcmc.models import FitzhughDiffusion, FitzhughDiffusionAux

OBS = [1.0, 1.2, 0.8, 1.3, 2.0]
OBS_TIMES = [0.0, 1.0, 1.5, 2.3, 4.0]
THETA0 = [10.0, -8.0, 25.0, 0.0, 3.0]
EPSILON = 1e-7
OBS_NOISE = 1e-10
KNOTS = [1, 2, 3]
CHANGE_PT_BUFFER = 100


def fhn_laws(theta=THETA0):
    """Target law and one auxiliary law per segment, anchored at the observations."""
    target = FitzhughDiffusion(theta)
    auxiliaries = [
        FitzhughDiffusionAux(theta, t0, T, u, v)
        for t0, T, u, v in zip(OBS_TIMES[:-1], OBS_TIMES[1:], OBS[:-1], OBS[1:])
    ]
    return target, auxiliaries
