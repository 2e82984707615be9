"""
Closed-form addressing of the asymmetric section.

The section holds the canonical positions
    x[0] >= x[1] >= ... >= x[D-1] >= 0
packed slice by slice (one slice per x[0]) in lexicographic order of the
remaining coordinates. The address of a position is

    address(x) = sum_i C(x[i] + D - 1 - i, D - i)

which gives `x` in 1D and `(x*x - x)/2 + x + y` in 2D.
"""

from __future__ import annotations
from functools import lru_cache
from typing import Iterator, Sequence, Tuple

from scipy.special import comb


@lru_cache(maxsize=4096)
def slice_offset(x: int, dimension: int) -> int:
    """Address of the first position of slice `x` (number of positions with x[0] < x)."""
    return int(comb(x + dimension - 1, dimension, exact=True))


@lru_cache(maxsize=4096)
def slice_size(x: int, dimension: int) -> int:
    """Number of canonical positions with x[0] == x."""
    return int(comb(x + dimension - 1, dimension - 1, exact=True))


def section_size(max_coordinate: int, dimension: int) -> int:
    """Number of canonical positions with x[0] <= max_coordinate."""
    return slice_offset(max_coordinate + 1, dimension)


def address(position: Sequence[int]) -> int:
    """Address of a canonical position."""
    dimension = len(position)
    total = slice_offset(position[0], dimension)
    for i in range(1, dimension):
        total += int(comb(position[i] + dimension - 1 - i, dimension - i, exact=True))
    return total


def index_in_slice(position: Sequence[int]) -> int:
    """Offset of a canonical position inside its own slice."""
    return address(position) - slice_offset(position[0], len(position))


def iter_slice(x: int, dimension: int) -> Iterator[Tuple[int, ...]]:
    """Yield the canonical positions of slice `x` in address order."""
    for tail in _iter_tails(x, dimension - 1):
        yield (x,) + tail


def _iter_tails(bound: int, length: int) -> Iterator[Tuple[int, ...]]:
    if length == 0:
        yield ()
        return
    for head in range(bound + 1):
        for rest in _iter_tails(head, length - 1):
            yield (head,) + rest


def iter_section(max_coordinate: int, dimension: int) -> Iterator[Tuple[int, ...]]:
    """Yield every canonical position up to `max_coordinate` in address order."""
    for x in range(max_coordinate + 1):
        yield from iter_slice(x, dimension)
