"""Human-readable rendering of block patterns and acceptance ratios."""

from __future__ import annotations

from typing import Sequence

import numpy as np

SEPARATOR = "- - - - - - - - - - - - - -"


def format_block_pattern(knots: Sequence[int], n_segments: int, shown: int = 3) -> str:
    """Render `|k|----size----|k'|...` for one cover.

    Covers with many blocks show the first and last `shown` blocks only,
    joined by `   ...   `.

    Args:
        knots: knots of the cover, strictly increasing
        n_segments: number of segments m
        shown: blocks shown at each end of a long cover

    Returns:
        One line ending in `(number of blocks: n)`
    """
    M = len(knots)

    def knot(i: int) -> int:
        if 0 < i <= M:
            return knots[i - 1]
        return n_segments if i > 0 else 0

    def blocks(start: int, stop: int) -> str:
        return "".join(
            f"|{knot(i - 1)}|----{knot(i) - knot(i - 1)}----" for i in range(start, stop + 1)
        )

    if shown > M // 2:
        body = blocks(1, M + 1)
    else:
        body = blocks(1, shown) + f"|{knot(shown)}|   ...   " + blocks(M + 2 - shown, M + 1)
    return f"{body}|{n_segments}|  (number of blocks: {M + 1})"


def format_rates(rates: np.ndarray) -> str:
    """`b1: 0.500 | b2: nan | ` for one cover."""
    return "".join(f"b{i}: {rate:.3f} | " for i, rate in enumerate(rates, start=1))


def format_acceptance_table(per_cover_rates: Sequence[np.ndarray]) -> str:
    lines = ["Acceptance rates:", "----------------------"]
    for rates in per_cover_rates:
        lines.append(format_rates(rates))
        lines.append(SEPARATOR)
    return "\n".join(lines)
