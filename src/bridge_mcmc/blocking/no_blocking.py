"""Degenerate schedule: the whole path is one block and nothing is recomputed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from bridge_mcmc.blocking.base import COVER_NAMES, AcceptanceTracker, check_path_length
from bridge_mcmc.blocking.display import format_acceptance_table
from bridge_mcmc.blocking.schemas import BlockAcceptance, BlockingDiagnostics, CoverDiagnostics
from bridge_mcmc.errors import ConfigurationError
from bridge_mcmc.guiding.segment import GuidedSegment


@dataclass(frozen=True, eq=False)
class NoBlocking:
    """Identity schedule behind the same protocol as ChequeredBlocking."""

    segments: tuple[GuidedSegment, ...]
    tracker: AcceptanceTracker = field(default_factory=lambda: AcceptanceTracker([1]))
    idx: int = 0

    @classmethod
    def build(cls, reference: Sequence[GuidedSegment]) -> NoBlocking:
        reference = tuple(reference)
        if not reference:
            raise ConfigurationError("Cannot block a path without segments")
        return cls(segments=reference)

    @property
    def n_segments(self) -> int:
        return len(self.segments)

    @property
    def accepted(self):
        return self.tracker.accepted

    @property
    def proposed(self):
        return self.tracker.proposed

    def advance(self, path, theta) -> NoBlocking:
        return self

    def blocks_of(self) -> tuple[tuple[int, ...], ...]:
        return (tuple(range(1, self.n_segments + 1)),)

    def endpoint_targets(self, path, cover: int | None = None) -> tuple:
        check_path_length(path, self.n_segments)
        return tuple(seg.v for seg in self.segments)

    def register_outcome(self, block: int, accepted: bool) -> None:
        self.tracker.register(0, block, accepted)

    def describe(self) -> str:
        return "No blocking..."

    def format_acceptance_rates(self) -> str:
        return format_acceptance_table([self.tracker.rates(0)])

    def diagnostics(self) -> BlockingDiagnostics:
        rate = self.tracker.rates(0)[0]
        block = BlockAcceptance(
            block=0,
            segments=list(self.blocks_of()[0]),
            accepted=int(self.tracker.accepted[0][0]),
            proposed=int(self.tracker.proposed[0][0]),
            rate=None if np.isnan(rate) else float(rate),
        )
        return BlockingDiagnostics(
            scheme="none",
            active_cover=COVER_NAMES[0],
            covers=[CoverDiagnostics(cover=COVER_NAMES[0], blocks=[block])],
        )
