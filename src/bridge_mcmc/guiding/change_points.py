"""Where on a segment's grid to switch between the two backward ODE families.

Near an exact pin (tiny Σ) the Riccati form for H is stiff, so the last
`buffer` grid steps before the right endpoint are solved in the LMμ form and
the remainder in the (H, Hν, c) form. Policies are immutable values compared
by value, so one template can be shared by every knot segment.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class NoChangePt:
    """Solve the whole segment in the (H, Hν, c) form.

    buffer is carried only so templates round-trip through configuration.
    """

    buffer: int = 0

    def switch_index(self, n_points: int) -> int:
        """Index of the last grid point solved in the (H, Hν, c) form."""
        return n_points - 1


@dataclass(frozen=True)
class SimpleChangePt:
    """Solve the last `buffer` steps in the LMμ form, the rest in (H, Hν, c) form."""

    buffer: int = 100

    def switch_index(self, n_points: int) -> int:
        return max(0, n_points - 1 - self.buffer)


ODEChangePt = NoChangePt | SimpleChangePt
