"""
Topple engine for Aether cells.

A cell compares its value with its (folded) von Neumann neighbors and
shares the difference with the strictly smaller ones. Neighbors are
processed from the largest value to the smallest; equal values form one
tier with a combined divisor:

    share_count = 1 + sum(symmetry counts of relevant neighbors)
    for each tier (largest first):
        to_share = remaining - tier_value
        share, rem = to_share divided by share_count, truncated toward zero
        this tier and every smaller tier receive share * share_multiplier
        remaining = remaining - to_share + rem + share
    (after each neighbor share_count drops by its symmetry count)

Shares are summed per neighbor and scaled by the multiplier only at the
end, in exact Python arithmetic. A scaled delta may not fit the value type on its
own; only the final cell values written to the new grid are range-checked.

Two implementations:
- `topple`: generic, works for any ValueType
- `topple_cells`: fixed-width batch version backed by a numba kernel
"""

from __future__ import annotations
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, List, Sequence, Tuple

import numpy as np
from numba import jit

from .values import FixedWidthIntegerType, ValueType

Position = Tuple[int, ...]


@dataclass
class NeighborShare:
    """A relevant neighbor as seen by a toppling cell."""
    value: Any
    symmetry_count: int
    share_multiplier: int
    position: Position


@dataclass
class ToppleResult:
    """
    Outcome of toppling one cell.

    Attributes:
        kept: Value that stays in the cell
        deltas: (destination, amount) pairs, non-zero amounts only; amounts are
            exact Python numbers and may exceed the value type range
        toppled: Whether any non-zero share was handed out
    """
    kept: Any
    deltas: List[Tuple[Position, Any]] = field(default_factory=list)
    toppled: bool = False


def topple(value: Any, neighbors: Sequence[NeighborShare], values: ValueType) -> ToppleResult:
    """
    Topple a single cell.

    Args:
        value: Current value of the cell
        neighbors: All folded neighbors (smaller ones are selected here)
        values: Value arithmetic

    Returns:
        ToppleResult
    """
    relevant = [n for n in neighbors if values.compare(n.value, value) < 0]
    if not relevant:
        return ToppleResult(kept=value)

    relevant.sort(key=cmp_to_key(lambda a, b: values.compare(b.value, a.value)))
    share_count = 1 + sum(n.symmetry_count for n in relevant)
    shares = [values.zero] * len(relevant)
    remaining = value
    toppled = False

    for i, neighbor in enumerate(relevant):
        if i == 0 or not values.equals(neighbor.value, relevant[i - 1].value):
            to_share = values.subtract(remaining, neighbor.value)
            share, remainder = values.divide_with_remainder(to_share, share_count)
            if not values.equals(share, values.zero):
                toppled = True
                remaining = values.add(
                    values.add(values.subtract(remaining, to_share), remainder), share
                )
                for j in range(i, len(relevant)):
                    shares[j] = values.add(shares[j], share)
        share_count -= neighbor.symmetry_count

    deltas = [
        (n.position, total * n.share_multiplier)
        for n, total in zip(relevant, shares)
        if not values.equals(total, values.zero)
    ]
    return ToppleResult(kept=remaining, deltas=deltas, toppled=toppled)


# ===== Fixed-width kernel =====

@jit(nopython=True, cache=True)
def _topple_cells_kernel(cells, neighbor_values, symmetry_counts, neighbor_counts):
    """Batch topple over int64 arrays, one row per cell; shares are unscaled."""
    n = cells.shape[0]
    width = neighbor_values.shape[1]
    kept = np.empty(n, dtype=np.int64)
    shares = np.zeros((n, width), dtype=np.int64)
    toppled = np.zeros(n, dtype=np.bool_)
    relevant = np.empty(width, dtype=np.int64)
    relevant_values = np.empty(width, dtype=np.int64)

    for c in range(n):
        value = cells[c]
        m = 0
        share_count = 1
        for k in range(neighbor_counts[c]):
            if neighbor_values[c, k] < value:
                relevant[m] = k
                relevant_values[m] = neighbor_values[c, k]
                share_count += symmetry_counts[c, k]
                m += 1

        if m > 0:
            order = np.argsort(relevant_values[:m], kind="mergesort")[::-1]
            previous = value
            for i in range(m):
                k = relevant[order[i]]
                neighbor_value = neighbor_values[c, k]
                if i == 0 or neighbor_value != previous:
                    # remaining value always exceeds the tier value here
                    to_share = value - neighbor_value
                    share = to_share // share_count
                    remainder = to_share % share_count
                    if share != 0:
                        toppled[c] = True
                        value = value - to_share + remainder + share
                        for j in range(i, m):
                            kj = relevant[order[j]]
                            shares[c, kj] += share
                previous = neighbor_value
                share_count -= symmetry_counts[c, k]

        kept[c] = value

    return kept, shares, toppled


def topple_cells(
    cells: Sequence[Any],
    neighbors: Sequence[Sequence[NeighborShare]],
    values: FixedWidthIntegerType,
) -> List[ToppleResult]:
    """
    Topple a batch of fixed-width cells with the compiled kernel.

    Gives the same results as calling `topple` on every cell. Kept values
    are range-checked against the value type; deltas are scaled in Python
    integers.
    """
    n = len(cells)
    width = max((len(ns) for ns in neighbors), default=0) or 1
    cell_array = np.asarray([int(v) for v in cells], dtype=np.int64).reshape(n)
    neighbor_values = np.zeros((n, width), dtype=np.int64)
    symmetry_counts = np.zeros((n, width), dtype=np.int64)
    neighbor_counts = np.zeros(n, dtype=np.int64)

    for c, cell_neighbors in enumerate(neighbors):
        neighbor_counts[c] = len(cell_neighbors)
        for k, neighbor in enumerate(cell_neighbors):
            neighbor_values[c, k] = int(neighbor.value)
            symmetry_counts[c, k] = neighbor.symmetry_count

    kept, shares, toppled = _topple_cells_kernel(
        cell_array, neighbor_values, symmetry_counts, neighbor_counts
    )

    results = []
    for c, cell_neighbors in enumerate(neighbors):
        cell_deltas = [
            (neighbor.position, int(shares[c, k]) * neighbor.share_multiplier)
            for k, neighbor in enumerate(cell_neighbors)
            if shares[c, k] != 0
        ]
        results.append(ToppleResult(
            kept=values.check_range(int(kept[c])),
            deltas=cell_deltas,
            toppled=bool(toppled[c]),
        ))
    return results
