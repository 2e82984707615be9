"""
Symmetry folding for the hypercubic symmetry group.

Sign flips on every axis and permutations of the axes map the grid onto
itself, so only canonical positions (absolute values sorted descending)
are stored. When a stored cell shares value with a neighbor, two numbers
correct for the omitted mirrored cells:

- symmetry count: how many of the cell's 2D real neighbors fold onto the
  same canonical neighbor (used in the share divisor)
- share multiplier: how many real neighbors of the destination fold onto
  the sending cell (weight of each share sent there)

Both are read off the runs of equal coordinates of the canonical position.
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from itertools import permutations, product
from math import factorial
from typing import List, Sequence, Set, Tuple

Position = Tuple[int, ...]


def canonical(position: Sequence[int]) -> Position:
    """Canonical representative: absolute values sorted in descending order."""
    return tuple(sorted((abs(c) for c in position), reverse=True))


def is_canonical(position: Sequence[int]) -> bool:
    if any(c < 0 for c in position):
        return False
    return all(position[i] >= position[i + 1] for i in range(len(position) - 1))


def coordinate_runs(position: Position) -> List[Tuple[int, int, int]]:
    """
    Runs of equal coordinates of a canonical position.

    Returns:
        List of (start, end, value) with inclusive indexes
    """
    runs = []
    start = 0
    for i in range(1, len(position) + 1):
        if i == len(position) or position[i] != position[start]:
            runs.append((start, i - 1, position[start]))
            start = i
    return runs


def symmetry_multiplicity(position: Position) -> int:
    """Number of grid positions equivalent to a canonical position."""
    count = factorial(len(position))
    for start, end, _ in coordinate_runs(position):
        count //= factorial(end - start + 1)
    return count << sum(1 for c in position if c != 0)


def equivalent_positions(position: Sequence[int]) -> Set[Position]:
    """Every position in the symmetry orbit of `position`."""
    absolute = [abs(c) for c in position]
    orbit = set()
    for permuted in set(permutations(absolute)):
        for signs in product((1, -1), repeat=len(permuted)):
            orbit.add(tuple(s * c for s, c in zip(signs, permuted)))
    return orbit


def von_neumann_neighbors(position: Sequence[int]) -> List[Position]:
    neighbors = []
    for axis in range(len(position)):
        for delta in (1, -1):
            neighbor = list(position)
            neighbor[axis] += delta
            neighbors.append(tuple(neighbor))
    return neighbors


@lru_cache(maxsize=1 << 16)
def fold_neighbors(position: Position) -> Tuple[Tuple[Position, int], ...]:
    """
    Canonical neighbors of a canonical position with their symmetry counts.

    Adding one to any coordinate of a run lands on the run's first index;
    subtracting one lands on its last index. In a zero run both signs
    fold together, doubling the count. The counts add up to 2D.
    """
    folded = []
    for start, end, value in coordinate_runs(position):
        length = end - start + 1
        greater = list(position)
        greater[start] += 1
        folded.append((tuple(greater), 2 * length if value == 0 else length))
        if value != 0:
            smaller = list(position)
            smaller[end] -= 1
            folded.append((tuple(smaller), length))
    return tuple(folded)


def share_multiplier(position: Position, neighbor: Position) -> int:
    """Number of real neighbors of `neighbor` that fold onto `position`."""
    for folded, count in fold_neighbors(neighbor):
        if folded == position:
            return count
    raise ValueError(f"{neighbor} is not a neighbor of {position}")


@dataclass(frozen=True)
class NeighborFold:
    """A canonical neighbor of a stored cell."""
    position: Position
    symmetry_count: int
    share_multiplier: int


@lru_cache(maxsize=1 << 16)
def neighbor_folding(position: Position) -> Tuple[NeighborFold, ...]:
    """Folded neighbors of a canonical position with both correction factors."""
    return tuple(
        NeighborFold(neighbor, count, share_multiplier(position, neighbor))
        for neighbor, count in fold_neighbors(position)
    )
