"""Linear (Ornstein-Uhlenbeck type) diffusion.

    dX = (B X + β) dt + σ dW

Being linear, the same object serves as a target and as an auxiliary law;
with target == auxiliary the guided proposal is the exact bridge.
"""

from __future__ import annotations

import jax.numpy as jnp
import numpy as np

from bridge_mcmc.models.base import as_param_vector
from bridge_mcmc.models.discretization import transition_moments


class LinearDiffusion:
    """Time-homogeneous linear diffusion with θ = (vec B, β, vec σ)."""

    def __init__(self, B, beta, sigma):
        B = np.atleast_2d(np.asarray(B, dtype=np.float64))
        beta = np.asarray(beta, dtype=np.float64).reshape(-1)
        sigma = np.asarray(sigma, dtype=np.float64)
        if sigma.ndim == 1:
            sigma = np.diag(sigma)
        d = B.shape[0]
        if B.shape != (d, d) or beta.shape != (d,) or sigma.shape[0] != d:
            raise ValueError(
                f"Incompatible shapes: B {B.shape}, beta {beta.shape}, sigma {sigma.shape}"
            )
        self._B = B
        self._beta = beta
        self._sigma = sigma
        self._params = as_param_vector(np.concatenate([B.ravel(), beta, sigma.ravel()]))

    @property
    def params(self) -> np.ndarray:
        return self._params

    @property
    def dim(self) -> int:
        return self._B.shape[0]

    def with_params(self, theta) -> LinearDiffusion:
        theta = as_param_vector(theta)
        d, p = self._sigma.shape
        if theta.shape[0] != d * d + d + d * p:
            raise ValueError(f"Expected {d * d + d + d * p} parameters, got {theta.shape[0]}")
        B = theta[: d * d].reshape(d, d)
        beta = theta[d * d : d * d + d]
        sigma = theta[d * d + d :].reshape(d, p)
        return LinearDiffusion(B, beta, sigma)

    def B(self, t) -> jnp.ndarray:
        return jnp.asarray(self._B)

    def beta(self, t) -> jnp.ndarray:
        return jnp.asarray(self._beta)

    def drift(self, t, x) -> jnp.ndarray:
        return jnp.asarray(self._B) @ x + jnp.asarray(self._beta)

    def sigma(self, t, x=None) -> jnp.ndarray:
        return jnp.asarray(self._sigma)

    def a(self, t, x=None) -> jnp.ndarray:
        s = jnp.asarray(self._sigma)
        return s @ s.T

    def transition(self, dt: float, x) -> tuple[jnp.ndarray, jnp.ndarray]:
        """Exact mean and covariance of X_{t+dt} given X_t = x."""
        return transition_moments(self._B, self._beta, self.a(0.0), dt, x)

    def __repr__(self):
        return f"LinearDiffusion(dim={self.dim}, params={self._params.tolist()})"
