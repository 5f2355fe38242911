"""Diffusion laws: protocols and reference implementations."""

from bridge_mcmc.models.base import DiffusionLaw, LinearAuxiliaryLaw, as_param_vector
from bridge_mcmc.models.fitzhugh import FitzhughDiffusion, FitzhughDiffusionAux
from bridge_mcmc.models.linear import LinearDiffusion

__all__ = [
    "DiffusionLaw",
    "LinearAuxiliaryLaw",
    "as_param_vector",
    "FitzhughDiffusion",
    "FitzhughDiffusionAux",
    "LinearDiffusion",
]
