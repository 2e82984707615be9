"""
Toppling alternation compliance.

Starting from a single source, cells whose coordinate sum is even and
cells whose coordinate sum is odd take turns toppling. The compliance
grid records, for each canonical position, whether the last step kept
to that alternation: a position complies when it toppled exactly when
it was its turn.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from .addressing import index_in_slice, slice_size


class Parity(Enum):
    """Parity of a coordinate sum."""
    EVEN = 0
    ODD = 1

    def flipped(self) -> "Parity":
        return Parity.ODD if self is Parity.EVEN else Parity.EVEN

    @classmethod
    def of(cls, position: Sequence[int]) -> "Parity":
        return cls(sum(position) % 2)

    @classmethod
    def for_step(cls, non_negative_source: bool, step: int) -> "Parity":
        """Positions allowed to topple while computing step `step` -> `step + 1`."""
        return cls.EVEN if non_negative_source == (step % 2 == 0) else cls.ODD


@dataclass(frozen=True)
class StepOutcome:
    """Result of one step."""
    changed: bool
    turn: Parity


class ComplianceGrid:
    """Per position compliance flags of one step, stored like the value slices."""

    def __init__(self, dimension: int, turn: Parity, slices: Optional[List[np.ndarray]] = None):
        self.dimension = dimension
        self.turn = turn
        self._slices: List[np.ndarray] = list(slices or [])

    @property
    def max_coordinate(self) -> int:
        return len(self._slices) - 1

    def record(self, position: Sequence[int], toppled: bool) -> None:
        x = position[0]
        while len(self._slices) <= x:
            self._slices.append(np.zeros(slice_size(len(self._slices), self.dimension), dtype=bool))
        its_turn = Parity.of(position) is self.turn
        self._slices[x][index_in_slice(position)] = toppled == its_turn

    def trim(self, max_coordinate: int) -> None:
        del self._slices[max_coordinate + 1:]

    def get(self, position: Sequence[int]) -> bool:
        if position[0] > self.max_coordinate:
            # nothing topples out there
            return Parity.of(position) is not self.turn
        return bool(self._slices[position[0]][index_in_slice(position)])

    def slices(self) -> List[np.ndarray]:
        return [s.copy() for s in self._slices]

    def all_compliant(self) -> bool:
        return all(bool(np.all(s)) for s in self._slices)
