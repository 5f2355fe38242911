"""Sampled paths and the caller-owned current/proposal buffers.

The outer loop owns both buffers per segment and decides which one is
canonical. Schedules read endpoint values from whichever buffer they are
handed and never swap or write path values themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

import jax.numpy as jnp

from bridge_mcmc.errors import StateConsistencyError


class SamplePath(NamedTuple):
    """Values yy[k] of a path at times tt[k] on one segment."""

    tt: jnp.ndarray  # (N,)
    yy: jnp.ndarray  # (N, d)

    @property
    def endpoint(self) -> jnp.ndarray:
        """Value at the segment's right endpoint."""
        return self.yy[-1]


def constant_path(tt, value) -> SamplePath:
    """Path sitting at `value` on every grid point of tt."""
    tt = jnp.asarray(tt)
    value = jnp.atleast_1d(jnp.asarray(value, dtype=float))
    return SamplePath(tt, jnp.broadcast_to(value, (tt.shape[0], value.shape[0])))


@dataclass
class PathWorkspace:
    """Current (accepted) and proposal buffers, one pair per segment."""

    current: list[SamplePath] = field(default_factory=list)
    proposal: list[SamplePath] = field(default_factory=list)

    def __post_init__(self):
        self.current = list(self.current)
        self.proposal = list(self.proposal)
        if len(self.current) != len(self.proposal):
            raise StateConsistencyError(
                f"{len(self.current)} current buffers but {len(self.proposal)} proposal buffers"
            )

    @classmethod
    def from_paths(cls, paths) -> PathWorkspace:
        """Start both buffers from the same initial path."""
        paths = list(paths)
        return cls(current=paths, proposal=list(paths))

    def __len__(self) -> int:
        return len(self.current)

    def swap(self, segment: int) -> None:
        """Exchange the two buffers of one segment (1-based)."""
        if not 1 <= segment <= len(self):
            raise StateConsistencyError(
                f"No buffers for segment index out of 1..{len(self)}", segment=segment
            )
        i = segment - 1
        self.current[i], self.proposal[i] = self.proposal[i], self.current[i]

    def swap_block(self, block) -> None:
        """Exchange buffers on every segment of an accepted block."""
        for segment in block:
            self.swap(segment)

    def swap_all(self) -> None:
        for segment in range(1, len(self) + 1):
            self.swap(segment)
