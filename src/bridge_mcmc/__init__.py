"""Blocked guided-proposal path imputation for partially observed diffusions."""

import jax

# Pins with Σ = εI, ε ~ 1e-7, need double precision in the backward recursion.
jax.config.update("jax_enable_x64", True)

from bridge_mcmc.blocking import (  # noqa: E402
    ChequeredBlocking,
    NoBlocking,
    advance,
    blocks_of,
    build_schedule,
    endpoint_targets,
    register_outcome,
    set_blocking,
)
from bridge_mcmc.config import BridgeConfig, load_config  # noqa: E402
from bridge_mcmc.errors import (  # noqa: E402
    ConfigurationError,
    IntegrationFailure,
    StateConsistencyError,
)
from bridge_mcmc.guiding import (  # noqa: E402
    GuidedSegment,
    NoChangePt,
    SimpleChangePt,
    build_guided_segments,
)
from bridge_mcmc.paths import PathWorkspace, SamplePath  # noqa: E402

__all__ = [
    "ChequeredBlocking",
    "NoBlocking",
    "advance",
    "blocks_of",
    "build_schedule",
    "endpoint_targets",
    "register_outcome",
    "set_blocking",
    "BridgeConfig",
    "load_config",
    "ConfigurationError",
    "IntegrationFailure",
    "StateConsistencyError",
    "GuidedSegment",
    "NoChangePt",
    "SimpleChangePt",
    "build_guided_segments",
    "PathWorkspace",
    "SamplePath",
]
