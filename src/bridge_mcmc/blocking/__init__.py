"""Block-updating schedules for path imputation.

The functional API below is what the outer MCMC loop calls; it works the same
for every schedule variant:

    schedule = set_blocking(config.blocking, reference)
    for sweep in ...:
        schedule = advance(schedule, workspace.current, theta)
        for b, block in enumerate(blocks_of(schedule)):
            ...propose on block, accept or reject...
            register_outcome(schedule, b, accepted)
"""

from __future__ import annotations

import logging
from typing import Sequence

from bridge_mcmc.blocking.base import (
    COVER_NAMES,
    AcceptanceTracker,
    BlockingSchedule,
)
from bridge_mcmc.blocking.chequered import (
    ChequeredBlocking,
    knots_to_blocks,
    split_knots,
    validate_knots,
)
from bridge_mcmc.blocking.no_blocking import NoBlocking
from bridge_mcmc.blocking.schemas import BlockAcceptance, BlockingDiagnostics, CoverDiagnostics
from bridge_mcmc.config import BlockingConfig, SolverConfig
from bridge_mcmc.guiding.segment import GuidedSegment

logger = logging.getLogger(__name__)


def build_schedule(
    knots: Sequence[int],
    epsilon: float,
    change_pt,
    reference: Sequence[GuidedSegment],
    *,
    solver: SolverConfig = SolverConfig(),
) -> ChequeredBlocking:
    """Chequered schedule from a knot list, noise floor and change-point template."""
    return ChequeredBlocking.build(knots, epsilon, change_pt, reference, solver=solver)


def set_blocking(
    config: BlockingConfig,
    reference: Sequence[GuidedSegment],
    *,
    solver: SolverConfig = SolverConfig(),
) -> BlockingSchedule:
    """Schedule variant named by the configuration.

    Args:
        config: blocking section of the configuration
        reference: reference statistics, e.g. from build_guided_segments
        solver: solver settings used when the schedule is advanced

    Returns:
        NoBlocking for scheme "none", otherwise a ChequeredBlocking

    Raises:
        ConfigurationError: knots do not fit the reference segments
    """
    if config.scheme == "none":
        logger.info("No blocking: the whole path is updated at once")
        return NoBlocking.build(reference)
    return build_schedule(
        config.knots, config.epsilon, config.change_point_template(), reference, solver=solver
    )


def advance(schedule: BlockingSchedule, path, theta) -> BlockingSchedule:
    return schedule.advance(path, theta)


def register_outcome(schedule: BlockingSchedule, block: int, accepted: bool) -> None:
    schedule.register_outcome(block, accepted)


def blocks_of(schedule: BlockingSchedule) -> tuple[tuple[int, ...], ...]:
    return schedule.blocks_of()


def endpoint_targets(schedule: BlockingSchedule, path, cover: int | None = None) -> tuple:
    return schedule.endpoint_targets(path, cover)


__all__ = [
    "COVER_NAMES",
    "AcceptanceTracker",
    "BlockingSchedule",
    "ChequeredBlocking",
    "NoBlocking",
    "BlockAcceptance",
    "BlockingDiagnostics",
    "CoverDiagnostics",
    "knots_to_blocks",
    "split_knots",
    "validate_knots",
    "build_schedule",
    "set_blocking",
    "advance",
    "register_outcome",
    "blocks_of",
    "endpoint_targets",
]
