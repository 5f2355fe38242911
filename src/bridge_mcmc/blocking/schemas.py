"""Pydantic models for blocking diagnostics payloads.

Mirror the counters kept by AcceptanceTracker so chain reports can serialise
them alongside other sampler diagnostics.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class BlockAcceptance(BaseModel):
    """Counters of one block."""

    block: int
    segments: list[int]
    accepted: int = 0
    proposed: int = 0
    rate: float | None = None


class CoverDiagnostics(BaseModel):
    """All blocks of one cover."""

    cover: Literal["A", "B"]
    knots: list[int] = Field(default_factory=list)
    blocks: list[BlockAcceptance]


class BlockingDiagnostics(BaseModel):
    """Top-level blocking diagnostics container."""

    scheme: Literal["chequered", "none"]
    active_cover: Literal["A", "B"]
    covers: list[CoverDiagnostics]
