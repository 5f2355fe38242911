"""Protocols for the diffusion laws consumed by the guiding recursion.

A target law only needs to be simulated forward; an auxiliary law must be
linear so the backward recursion for (H, Hν, c) has a closed ODE system:

    dX = (B(t) X + β(t)) dt + σ̃(t) dW,    ã(t) = σ̃(t) σ̃(t)'

Parameter vectors are float64 numpy arrays. Replacing them returns a new law
object; laws are never mutated in place.
"""

from typing import Protocol, runtime_checkable

import jax.numpy as jnp
import numpy as np


def as_param_vector(theta) -> np.ndarray:
    """Coerce a parameter sequence to a read-only float64 vector."""
    vec = np.array(theta, dtype=np.float64).reshape(-1)
    vec.setflags(write=False)
    return vec


@runtime_checkable
class DiffusionLaw(Protocol):
    """Law of an SDE dX = b(t, X) dt + σ(t, X) dW."""

    @property
    def params(self) -> np.ndarray: ...

    @property
    def dim(self) -> int: ...

    def with_params(self, theta) -> "DiffusionLaw":
        """Return a copy of the law with its parameter vector replaced."""
        ...

    def drift(self, t, x) -> jnp.ndarray: ...

    def sigma(self, t, x) -> jnp.ndarray: ...

    def a(self, t, x=None) -> jnp.ndarray: ...


@runtime_checkable
class LinearAuxiliaryLaw(DiffusionLaw, Protocol):
    """Linear law used to build guiding statistics on one segment."""

    def B(self, t) -> jnp.ndarray: ...

    def beta(self, t) -> jnp.ndarray: ...
