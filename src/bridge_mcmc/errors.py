"""Error taxonomy for schedule construction, backward recursion and bookkeeping.

- ConfigurationError: malformed knots or mismatched dimensions. Raised before
  sampling starts; the run cannot proceed.
- IntegrationFailure: the backward recursion produced a non-finite or
  non-positive-semi-definite statistic. The outer loop rejects the sweep and
  keeps the previous schedule and path.
- StateConsistencyError: a caller broke the contract (block index out of
  range, path buffers sized inconsistently with the segment count).
"""

from __future__ import annotations


class _IndexedError:
    """Mixin attaching the offending 1-based segment/block index to the message."""

    def __init__(self, message: str, *, segment: int | None = None, block: int | None = None):
        self.segment = segment
        self.block = block
        where = []
        if segment is not None:
            where.append(f"segment {segment}")
        if block is not None:
            where.append(f"block {block}")
        if where:
            message = f"{message} ({', '.join(where)})"
        super().__init__(message)


class ConfigurationError(_IndexedError, ValueError):
    """Malformed knot list, noise floor or per-segment dimensions."""


class IntegrationFailure(_IndexedError, ArithmeticError):
    """Backward recursion yielded a numerically invalid guiding statistic."""


class StateConsistencyError(_IndexedError, RuntimeError):
    """Programming-contract violation between the outer loop and a schedule."""
