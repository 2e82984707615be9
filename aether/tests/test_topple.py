"""
Tests for the topple engine.
"""

import pytest
import numpy as np
from fractions import Fraction

from aether.core.topple import NeighborShare, topple, topple_cells
from aether.core.values import BIGINT, INT16, INT64, RATIONAL


def share(value, symmetry_count=1, share_multiplier=1, position=(0,)):
    return NeighborShare(value, symmetry_count, share_multiplier, position)


class TestTopple:
    """Tests for the generic topple rule."""

    def test_no_smaller_neighbors(self):
        """Test a cell without smaller neighbors keeps everything."""
        result = topple(5, [share(5, position=(1,)), share(7, position=(2,))], INT64)
        assert result.kept == 5
        assert result.deltas == []
        assert not result.toppled

    def test_single_source_1d(self):
        """Test the 1D origin with 4 hands one to each side."""
        result = topple(4, [share(0, symmetry_count=2, position=(1,))], INT64)
        assert result.kept == 2
        assert result.deltas == [((1,), 1)]
        assert result.toppled

    def test_tie_single_group(self):
        """Test equal neighbors share one divisor."""
        result = topple(10, [share(1, position=(1,)), share(1, position=(2,))], INT64)
        assert result.kept == 4
        assert dict(result.deltas) == {(1,): 3, (2,): 3}

    def test_tiers(self):
        """Test smaller tiers also receive the shares of larger tiers."""
        result = topple(10, [share(1, position=(2,)), share(4, position=(1,))], INT64)
        assert result.kept == 4
        assert dict(result.deltas) == {(1,): 2, (2,): 4}

    def test_zero_share(self):
        """Test a difference too small to share is not a topple."""
        result = topple(2, [share(1, position=(1,))], INT64)
        assert result.kept == 2
        assert result.deltas == []
        assert not result.toppled

    def test_multiplier_weights_share(self):
        """Test shares are scaled by the share multiplier."""
        result = topple(5, [share(0, symmetry_count=4, share_multiplier=1, position=(1, 0))], INT64)
        assert result.kept == 1
        assert result.deltas == [((1, 0), 1)]
        result = topple(9, [share(0, symmetry_count=2, share_multiplier=3, position=(1,))], INT64)
        assert result.deltas == [((1,), 9)]

    def test_negative_values(self):
        """Test truncating division with negative values."""
        result = topple(-1, [share(-7, symmetry_count=2, position=(1,))], INT64)
        assert result.kept == -5
        assert result.deltas == [((1,), 2)]

    def test_conserves_without_multipliers(self):
        """Test kept plus shares equals the value when every count is one."""
        rng = np.random.default_rng(7)
        for _ in range(200):
            value = int(rng.integers(-100, 100))
            neighbors = [share(int(v), position=(i,)) for i, v in enumerate(rng.integers(-100, 100, size=4))]
            result = topple(value, neighbors, BIGINT)
            assert result.kept + sum(amount for _, amount in result.deltas) == value

    def test_rational_exact(self):
        """Test rational values share exactly."""
        result = topple(Fraction(4), [share(Fraction(0), symmetry_count=2, position=(1,))], RATIONAL)
        assert result.kept == Fraction(4, 3)
        assert result.deltas == [((1,), Fraction(4, 3))]


class TestCompiledKernel:
    """Tests for the fixed-width batch kernel."""

    def test_matches_generic(self):
        """Test the kernel agrees with the generic rule on random cells."""
        rng = np.random.default_rng(42)
        cells, neighbors = [], []
        for c in range(300):
            count = int(rng.integers(1, 7))
            cells.append(int(rng.integers(-60, 60)))
            neighbors.append([
                share(
                    int(rng.integers(-60, 60)),
                    symmetry_count=int(rng.integers(1, 4)),
                    share_multiplier=int(rng.integers(1, 5)),
                    position=(c, k),
                )
                for k in range(count)
            ])

        compiled = topple_cells(cells, neighbors, INT64)
        for value, cell_neighbors, result in zip(cells, neighbors, compiled):
            expected = topple(value, cell_neighbors, INT64)
            assert result.kept == expected.kept
            assert result.toppled == expected.toppled
            assert dict(result.deltas) == dict(expected.deltas)

    def test_ties_in_kernel(self):
        """Test ties form one group in the kernel."""
        [result] = topple_cells([10], [[share(1, position=(1,)), share(1, position=(2,))]], INT64)
        assert result.kept == 4
        assert dict(result.deltas) == {(1,): 3, (2,): 3}

    def test_empty_batch(self):
        """Test an empty batch."""
        assert topple_cells([], [], INT64) == []

    def test_cell_without_neighbors(self):
        """Test cells with no neighbor rows."""
        [result] = topple_cells([3], [[]], INT64)
        assert result.kept == 3
        assert not result.toppled

    def test_scaled_share_beyond_value_range(self):
        """Test a scaled delta may exceed the value type while the kept value fits."""
        neighbors = [share(0, symmetry_count=1, share_multiplier=4, position=(1, 0))]
        [compiled] = topple_cells([30000], [neighbors], INT16)
        generic = topple(30000, neighbors, INT16)
        for result in (compiled, generic):
            assert result.kept == 15000
            assert result.deltas == [((1, 0), 60000)]
            assert result.toppled
