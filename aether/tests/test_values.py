"""
Tests for value types.
"""

import pytest
import numpy as np
from fractions import Fraction

from aether.core.values import (
    INT16, INT32, INT64, BIGINT, RATIONAL,
    get_value_type, min_single_source_value, max_neighboring_difference,
)


class TestIntegerArithmetic:
    """Tests for integer value types."""

    def test_truncating_division(self):
        """Test that the remainder keeps the dividend's sign."""
        assert INT64.divide_with_remainder(7, 3) == (2, 1)
        assert INT64.divide_with_remainder(-7, 3) == (-2, -1)
        assert BIGINT.divide_with_remainder(-6, 3) == (-2, 0)

    def test_division_identity(self):
        """Test q*n + r == a for a range of dividends."""
        for a in range(-20, 21):
            for n in range(1, 7):
                q, r = BIGINT.divide_with_remainder(a, n)
                assert q * n + r == a
                assert abs(r) < n

    def test_overflow_detected(self):
        """Test fixed-width results are range-checked."""
        with pytest.raises(OverflowError):
            INT16.add(32767, 1)
        with pytest.raises(OverflowError):
            INT32.subtract(-2**31, 1)
        with pytest.raises(OverflowError):
            INT64.scale(2**62, 2)

    def test_bigint_unbounded(self):
        """Test big integers do not overflow."""
        assert BIGINT.add(2**63, 2**63) == 2**64
        assert BIGINT.max_value is None
        assert BIGINT.min_initial_value(3) is None

    def test_coerce_numpy_scalars(self):
        """Test numpy scalars become Python ints."""
        value = INT64.coerce(np.int64(5))
        assert value == 5
        assert type(value) is int


class TestRational:
    """Tests for exact rational values."""

    def test_exact_division(self):
        """Test division leaves no remainder."""
        q, r = RATIONAL.divide_with_remainder(Fraction(1), 3)
        assert q == Fraction(1, 3)
        assert r == 0

    def test_parse_format(self):
        """Test text form."""
        assert RATIONAL.parse("3/4") == Fraction(3, 4)
        assert RATIONAL.format(Fraction(3, 4)) == "3/4"


class TestBounds:
    """Tests for single source bounds."""

    def test_int64_minimum_1d(self):
        """Test the 1D minimum is -max."""
        assert INT64.min_initial_value(1) == -9223372036854775807

    def test_int64_minimum_2d(self):
        """Test the 2D minimum."""
        assert INT64.min_initial_value(2) == -6148914691236517205

    def test_minimum_is_safe(self):
        """Test the minimum keeps neighboring differences in range."""
        for dimension in (2, 3, 4):
            low = min_single_source_value(dimension, 32767)
            assert max_neighboring_difference(dimension, low) <= 32767

    def test_small_max(self):
        """Test degenerate maxima."""
        assert min_single_source_value(3, 0) == 0
        assert min_single_source_value(3, 2) == -1

    def test_check_initial_value(self):
        """Test initial values outside the safe range are rejected."""
        assert INT64.check_initial_value(4, 1) == 4
        with pytest.raises(ValueError):
            INT64.check_initial_value(-6148914691236517206, 2)
        with pytest.raises(ValueError):
            INT16.check_initial_value(40000, 1)

    def test_invalid_dimension(self):
        """Test dimension must be positive."""
        with pytest.raises(ValueError):
            max_neighboring_difference(0, 5)


class TestStorage:
    """Tests for array hooks."""

    def test_new_array_fixed_width(self):
        """Test fixed-width arrays use the dtype."""
        array = INT32.new_array(4)
        assert array.dtype == np.int32
        assert np.all(array == 0)

    def test_bigint_encode_decode(self):
        """Test big integers survive the text encoding."""
        array = BIGINT.new_array(3)
        array[1] = 2**80
        array[2] = -7
        encoded = BIGINT.encode_array(array)
        assert encoded.dtype.kind == 'U'
        decoded = BIGINT.decode_array(encoded)
        assert list(decoded) == [0, 2**80, -7]

    def test_rational_decode(self):
        """Test rationals decode from text."""
        decoded = RATIONAL.decode_array(np.array(["1/3", "0", "-2"]))
        assert list(decoded) == [Fraction(1, 3), 0, -2]


class TestRegistry:
    """Tests for value type lookup."""

    def test_lookup(self):
        """Test names resolve to singletons."""
        assert get_value_type("int64") is INT64
        assert get_value_type(RATIONAL) is RATIONAL

    def test_unknown(self):
        """Test unknown names raise ValueError."""
        with pytest.raises(ValueError):
            get_value_type("float")
