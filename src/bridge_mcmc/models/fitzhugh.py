"""FitzHugh-Nagumo diffusion and its linearised auxiliary law.

State (Y, X), noise enters through X only (hypoelliptic):

    dY = (Y - Y³ - X + s) / ε dt
    dX = (γ Y - X + β) dt + σ dW

with θ = (ε, s, γ, β, σ). The auxiliary law on a segment [t0, T] whose end
observation of Y is v replaces Y³ by its tangent at v, Y³ ≈ 3v²Y - 2v³.
"""

from __future__ import annotations

import jax.numpy as jnp
import numpy as np

from bridge_mcmc.models.base import as_param_vector

N_PARAMS = 5


def _check(theta: np.ndarray) -> np.ndarray:
    if theta.shape[0] != N_PARAMS:
        raise ValueError(f"FitzHugh-Nagumo takes {N_PARAMS} parameters, got {theta.shape[0]}")
    return theta


class FitzhughDiffusion:
    """Target law."""

    dim = 2

    def __init__(self, theta):
        self._params = _check(as_param_vector(theta))

    @property
    def params(self) -> np.ndarray:
        return self._params

    def with_params(self, theta) -> FitzhughDiffusion:
        return FitzhughDiffusion(theta)

    def drift(self, t, x) -> jnp.ndarray:
        eps, s, gamma, beta, _ = (float(p) for p in self._params)
        y, v = x[0], x[1]
        return jnp.stack([(y - y**3 - v + s) / eps, gamma * y - v + beta])

    def sigma(self, t, x=None) -> jnp.ndarray:
        return jnp.array([[0.0], [float(self._params[4])]])

    def a(self, t, x=None) -> jnp.ndarray:
        return jnp.array([[0.0, 0.0], [0.0, float(self._params[4]) ** 2]])

    def __repr__(self):
        return f"FitzhughDiffusion(params={self._params.tolist()})"


class FitzhughDiffusionAux:
    """Auxiliary law on [t0, T], linearised around the end observation v."""

    dim = 2

    def __init__(self, theta, t0: float, T: float, u: float, v: float):
        self._params = _check(as_param_vector(theta))
        self.t0 = float(t0)
        self.T = float(T)
        self.u = float(u)
        self.v = float(v)

    @property
    def params(self) -> np.ndarray:
        return self._params

    def with_params(self, theta) -> FitzhughDiffusionAux:
        return FitzhughDiffusionAux(theta, self.t0, self.T, self.u, self.v)

    def B(self, t) -> jnp.ndarray:
        eps, _, gamma, _, _ = (float(p) for p in self._params)
        return jnp.array([[(1.0 - 3.0 * self.v**2) / eps, -1.0 / eps], [gamma, -1.0]])

    def beta(self, t) -> jnp.ndarray:
        eps, s, _, beta, _ = (float(p) for p in self._params)
        return jnp.array([(s + 2.0 * self.v**3) / eps, beta])

    def drift(self, t, x) -> jnp.ndarray:
        return self.B(t) @ x + self.beta(t)

    def sigma(self, t, x=None) -> jnp.ndarray:
        return jnp.array([[0.0], [float(self._params[4])]])

    def a(self, t, x=None) -> jnp.ndarray:
        return jnp.array([[0.0, 0.0], [0.0, float(self._params[4]) ** 2]])

    def __repr__(self):
        return (
            f"FitzhughDiffusionAux(params={self._params.tolist()}, "
            f"t0={self.t0}, T={self.T}, u={self.u}, v={self.v})"
        )
