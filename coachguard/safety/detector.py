"""
Tripwire detection for manipulation attempts and boundary violations.

Both checks look at the raw prompt only; safety level, provider, and
trust have no influence on them.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .rules import BOUNDARY_TRIPWIRES, MANIPULATION_TRIPWIRES, Tripwire


def _first_match(prompt: str, tripwires: Sequence[Tripwire]) -> Optional[str]:
    for wire in tripwires:
        if wire.matches(prompt):
            return wire.name
    return None


class TripwireDetector:
    """Holds the manipulation and boundary tripwire lists."""

    def __init__(
        self,
        manipulation: Optional[Sequence[Tripwire]] = None,
        boundaries: Optional[Sequence[Tripwire]] = None,
    ):
        self.manipulation: List[Tripwire] = list(
            manipulation if manipulation is not None else MANIPULATION_TRIPWIRES
        )
        self.boundaries: List[Tripwire] = list(
            boundaries if boundaries is not None else BOUNDARY_TRIPWIRES
        )

    def detect_manipulation(self, prompt: str) -> bool:
        return _first_match(prompt, self.manipulation) is not None

    def detect_boundary_violation(self, prompt: str) -> bool:
        return _first_match(prompt, self.boundaries) is not None

    def matched_tripwires(self, prompt: str) -> List[str]:
        """Names of every tripwire that fires, manipulation first."""
        return [
            w.name for w in (*self.manipulation, *self.boundaries)
            if w.matches(prompt)
        ]
