"""Blocking schedule protocol and acceptance bookkeeping.

A schedule answers, for one path-update sweep, which contiguous runs of
segments ("blocks") are proposed jointly and under which per-segment
observations (L, Σ, v) their guiding statistics were computed. The outer
loop only talks to this protocol, so NoBlocking and ChequeredBlocking are
interchangeable.

Conventions:
- segments and knots are 1-based labels (segment i ends at observation i)
- covers are 0 (A) and 1 (B)
- block indices are 0-based positions in blocks_of()
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

import numpy as np

from bridge_mcmc.errors import StateConsistencyError

COVER_NAMES = ("A", "B")


class AcceptanceTracker:
    """Per-cover, per-block accepted/proposed counters.

    Shared by every schedule derived from the same construction, so counts
    accumulate across sweeps. Diagnostic only.
    """

    def __init__(self, n_blocks: Sequence[int]):
        self.accepted = [np.zeros(n, dtype=np.int64) for n in n_blocks]
        self.proposed = [np.zeros(n, dtype=np.int64) for n in n_blocks]

    @property
    def n_covers(self) -> int:
        return len(self.accepted)

    def register(self, cover: int, block: int, accepted: bool) -> None:
        if not 0 <= cover < self.n_covers:
            raise StateConsistencyError(f"Cover {cover} out of range 0..{self.n_covers - 1}")
        n = self.proposed[cover].shape[0]
        if not 0 <= block < n:
            raise StateConsistencyError(
                f"Block index out of range 0..{n - 1} for cover {COVER_NAMES[cover]}", block=block
            )
        self.proposed[cover][block] += 1
        if accepted:
            self.accepted[cover][block] += 1

    def rates(self, cover: int) -> np.ndarray:
        """Acceptance ratio per block; nan where nothing was proposed."""
        proposed = self.proposed[cover]
        return np.where(proposed > 0, self.accepted[cover] / np.maximum(proposed, 1), np.nan)


@runtime_checkable
class BlockingSchedule(Protocol):
    """Capabilities the outer MCMC loop relies on."""

    idx: int

    @property
    def n_segments(self) -> int: ...

    def advance(self, path, theta) -> "BlockingSchedule":
        """Statistics for the next cover under path and theta; idx toggled."""
        ...

    def blocks_of(self) -> tuple[tuple[int, ...], ...]:
        """Blocks of the cover to be proposed on."""
        ...

    def endpoint_targets(self, path, cover: int | None = None) -> tuple:
        """Effective v per segment (pinned to path at knots)."""
        ...

    def register_outcome(self, block: int, accepted: bool) -> None: ...

    def describe(self) -> str: ...

    def format_acceptance_rates(self) -> str: ...

    def diagnostics(self): ...


def check_path_length(path, n_segments: int) -> None:
    if len(path) != n_segments:
        raise StateConsistencyError(
            f"Path has {len(path)} segment buffers but the schedule has {n_segments} segments"
        )
