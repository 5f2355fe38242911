"""Chequerboard blocking: two interlaced covers of the path's segments.

Knots are split by position into A (1st, 3rd, ...) and B (2nd, 4th, ...).
Each subset carves 1..m into contiguous blocks ending at its knots, e.g.
knots [1, 2, 3] on m = 4 segments give

    A = [1, 3]  ->  blocks [1], [2, 3], [4]
    B = [2]     ->  blocks [1, 2], [3, 4]

so every block boundary of one cover lies strictly inside a block of the
other. On a knot segment the real observation is replaced by an exact pin
to the current path: L = I, Σ = εI and v = path endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Sequence

import jax.numpy as jnp
import numpy as np

from bridge_mcmc.blocking.base import (
    COVER_NAMES,
    AcceptanceTracker,
    check_path_length,
)
from bridge_mcmc.blocking.display import format_acceptance_table, format_block_pattern
from bridge_mcmc.blocking.schemas import BlockAcceptance, BlockingDiagnostics, CoverDiagnostics
from bridge_mcmc.config import SolverConfig, is_integer_knot
from bridge_mcmc.errors import ConfigurationError, StateConsistencyError
from bridge_mcmc.guiding.segment import GuidedSegment, recompute_segments

logger = logging.getLogger(__name__)


def split_knots(knots: Sequence[int]) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """Odd positions (1-based) go to cover A, even positions to cover B."""
    return tuple(knots[0::2]), tuple(knots[1::2])


def knots_to_blocks(knots: Sequence[int], n_segments: int) -> tuple[tuple[int, ...], ...]:
    """Contiguous segment ranges whose last elements are the knots."""
    bounds = [0, *knots, n_segments]
    return tuple(tuple(range(lo + 1, hi + 1)) for lo, hi in zip(bounds[:-1], bounds[1:]))


def validate_knots(knots: Sequence[int], n_segments: int) -> tuple[int, ...]:
    """Knots must be sorted, unique integers in 1..m-1."""
    out = []
    for k in knots:
        if not is_integer_knot(k):
            raise ConfigurationError(f"Knot {k!r} is not an integer")
        out.append(int(k))
    for a, b in zip(out[:-1], out[1:]):
        if b <= a:
            raise ConfigurationError(f"Knots must be strictly increasing, got {a} before {b}")
    for k in out:
        if not 1 <= k <= n_segments - 1:
            raise ConfigurationError(
                f"Knot {k} outside the interior observations 1..{n_segments - 1}"
            )
    return tuple(out)


def _check_dimensions(reference: Sequence[GuidedSegment]) -> int:
    d = reference[-1].L.shape[1]
    for i, seg in enumerate(reference, start=1):
        k, d_i = seg.L.shape
        if d_i != d:
            raise ConfigurationError(
                f"Observation operator acts on dimension {d_i}, expected {d}", segment=i
            )
        if seg.Sigma.shape != (k, k):
            raise ConfigurationError(
                f"Noise covariance has shape {seg.Sigma.shape}, expected {(k, k)}", segment=i
            )
    return d


@dataclass(frozen=True, eq=False)
class ChequeredBlocking:
    """Immutable chequered schedule; advance() returns a new instance.

    Ls, Sigmas and change_pts hold one tuple per cover. vs are the real
    observations, never overwritten. tracker is shared across advances.

    A freshly built schedule still carries the reference statistics, which
    belong to neither cover: advance() must be called before proposing, and
    register_outcome() refuses to count until it has been. From then on
    segments carry the statistics of the cover named by idx.
    """

    segments: tuple[GuidedSegment, ...]
    knots: tuple[tuple[int, ...], tuple[int, ...]]
    blocks: tuple[tuple[tuple[int, ...], ...], tuple[tuple[int, ...], ...]]
    Ls: tuple[tuple, tuple]
    Sigmas: tuple[tuple, tuple]
    change_pts: tuple[tuple, tuple]
    vs: tuple
    epsilon: float
    tracker: AcceptanceTracker
    idx: int = 0
    advanced: bool = False
    solver: SolverConfig = SolverConfig()

    @classmethod
    def build(
        cls,
        knots: Sequence[int],
        epsilon: float,
        change_pt,
        reference: Sequence[GuidedSegment],
        *,
        solver: SolverConfig = SolverConfig(),
    ) -> ChequeredBlocking:
        """Split knots into covers and derive per-cover overrides from reference.

        Args:
            knots: observation indices after which a block boundary falls,
                strictly increasing in 1..m-1
            epsilon: noise floor of the exact pins on knot segments
            change_pt: change-point policy assigned to knot segments
            reference: per-segment statistics; only L, Σ, the change point of
                non-knot segments and the observations v are read
            solver: solver settings used by advance()

        Returns:
            Schedule with idx on cover A, to be advanced before proposing

        Raises:
            ConfigurationError: malformed knots, non-positive epsilon, no
                segments or mismatched state dimensions
        """
        reference = tuple(reference)
        m = len(reference)
        if m == 0:
            raise ConfigurationError("Cannot block a path without segments")
        if not epsilon > 0:
            raise ConfigurationError(f"epsilon ({epsilon}) must be positive")
        knots = validate_knots(knots, m)
        d = _check_dimensions(reference)

        covers = split_knots(knots)
        pin_L = jnp.eye(d)
        pin_Sigma = epsilon * jnp.eye(d)

        def overrides(cover_knots):
            pinned = set(cover_knots)
            Ls = tuple(pin_L if k in pinned else p.L for k, p in enumerate(reference, start=1))
            Sigmas = tuple(pin_Sigma if k in pinned else p.Sigma for k, p in enumerate(reference, start=1))
            chps = tuple(change_pt if k in pinned else p.change_pt for k, p in enumerate(reference, start=1))
            return Ls, Sigmas, chps

        (LsA, SigmasA, chpA), (LsB, SigmasB, chpB) = overrides(covers[0]), overrides(covers[1])
        blocks = (knots_to_blocks(covers[0], m), knots_to_blocks(covers[1], m))
        schedule = cls(
            segments=reference,
            knots=covers,
            blocks=blocks,
            Ls=(LsA, LsB),
            Sigmas=(SigmasA, SigmasB),
            change_pts=(chpA, chpB),
            vs=tuple(p.v for p in reference),
            epsilon=float(epsilon),
            idx=0,
            tracker=AcceptanceTracker([len(blocks[0]), len(blocks[1])]),
            solver=solver,
        )
        logger.info(
            "Chequered blocking on %d segments: %d blocks in A, %d in B",
            m,
            len(blocks[0]),
            len(blocks[1]),
        )
        return schedule

    @property
    def n_segments(self) -> int:
        return len(self.segments)

    @property
    def accepted(self):
        return self.tracker.accepted

    @property
    def proposed(self):
        return self.tracker.proposed

    def endpoint_targets(self, path, cover: int | None = None) -> tuple:
        """v per segment for a cover: path endpoint at its knots, real data elsewhere."""
        check_path_length(path, self.n_segments)
        cover = self.idx if cover is None else cover
        pinned = set(self.knots[cover])
        return tuple(
            jnp.atleast_1d(path[k - 1].endpoint) if k in pinned else self.vs[k - 1]
            for k in range(1, self.n_segments + 1)
        )

    def advance(self, path, theta) -> ChequeredBlocking:
        """Recompute statistics for the other cover under path and theta.

        Args:
            path: current accepted path, one SamplePath per segment
            theta: parameter vector propagated into every target and
                auxiliary law

        Returns:
            New schedule with idx toggled and that cover's statistics

        Raises:
            StateConsistencyError: path sized inconsistently with the segments.
            IntegrationFailure: the backward recursion broke down; self stays valid.
        """
        check_path_length(path, self.n_segments)
        new_idx = 1 - self.idx
        vs = self.endpoint_targets(path, new_idx)
        segments = recompute_segments(
            self.segments,
            self.Ls[new_idx],
            self.Sigmas[new_idx],
            vs,
            self.change_pts[new_idx],
            theta,
            solver=self.solver,
        )
        logger.debug(
            "Recomputed guiding statistics for cover %s (%d blocks)",
            COVER_NAMES[new_idx],
            len(self.blocks[new_idx]),
        )
        return replace(self, segments=segments, idx=new_idx, advanced=True)

    def blocks_of(self) -> tuple[tuple[int, ...], ...]:
        return self.blocks[self.idx]

    def register_outcome(self, block: int, accepted: bool) -> None:
        """Count a proposal on block of the cover currently proposed on.

        Raises:
            StateConsistencyError: block out of range, or the schedule has not
                been advanced yet
        """
        if not self.advanced:
            raise StateConsistencyError(
                "No cover has been solved yet; call advance() before registering outcomes",
                block=block,
            )
        self.tracker.register(self.idx, block, accepted)

    def describe(self) -> str:
        return "\n".join(
            [
                "Chequered Blocking scheme",
                "-------------------------",
                "Format:",
                "block sizes in A: " + format_block_pattern(self.knots[0], self.n_segments),
                "block sizes in B: " + format_block_pattern(self.knots[1], self.n_segments),
            ]
        )

    def format_acceptance_rates(self) -> str:
        return format_acceptance_table([self.tracker.rates(0), self.tracker.rates(1)])

    def diagnostics(self) -> BlockingDiagnostics:
        covers = []
        for cover, name in enumerate(COVER_NAMES):
            rates = self.tracker.rates(cover)
            covers.append(
                CoverDiagnostics(
                    cover=name,
                    knots=list(self.knots[cover]),
                    blocks=[
                        BlockAcceptance(
                            block=b,
                            segments=list(block),
                            accepted=int(self.tracker.accepted[cover][b]),
                            proposed=int(self.tracker.proposed[cover][b]),
                            rate=None if np.isnan(rates[b]) else float(rates[b]),
                        )
                        for b, block in enumerate(self.blocks[cover])
                    ],
                )
            )
        return BlockingDiagnostics(
            scheme="chequered", active_cover=COVER_NAMES[self.idx], covers=covers
        )
