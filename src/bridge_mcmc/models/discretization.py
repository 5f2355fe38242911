"""Exact transition moments of a time-homogeneous linear diffusion.

For dX = (B X + β) dt + σ dW over a step dt:

    mean = exp(B dt) x + B^{-1} (exp(B dt) - I) β
    cov  = Q_inf - exp(B dt) Q_inf exp(B dt)'

where Q_inf solves the Lyapunov equation B Q + Q B' = -σσ'. Used to check
guiding statistics of linear auxiliary laws against closed forms.
"""

import jax.numpy as jnp
import jax.scipy.linalg as jla


def solve_lyapunov(A: jnp.ndarray, Q: jnp.ndarray) -> jnp.ndarray:
    """Solve AX + XA' = -Q via Kronecker vectorization.

    (I ⊗ A + A ⊗ I) vec(X) = vec(-Q). Fine for the small state dimensions here.
    """
    n = A.shape[0]
    I_n = jnp.eye(n)
    M = jnp.kron(I_n, A) + jnp.kron(A, I_n)
    X_vec = jla.solve(M, (-Q).reshape(-1))
    return X_vec.reshape(n, n)


def transition_moments(B, beta, a, dt: float, x) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Mean and covariance of X_{t+dt} given X_t = x. B must be stable."""
    B = jnp.asarray(B)
    n = B.shape[0]
    discrete_drift = jla.expm(B * dt)
    mean = discrete_drift @ jnp.asarray(x) + jla.solve(B, (discrete_drift - jnp.eye(n)) @ jnp.asarray(beta))
    Q_inf = solve_lyapunov(B, jnp.asarray(a))
    cov = Q_inf - discrete_drift @ Q_inf @ discrete_drift.T
    return mean, 0.5 * (cov + cov.T)
