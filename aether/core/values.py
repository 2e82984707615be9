"""
Value types for Aether grids.

The toppling rule only needs exact addition, subtraction, ordering and
division with remainder, so the same engine runs over:

- fixed-width signed integers (int16, int32, int64), stored in numpy arrays
- unbounded integers (Python int), stored in object arrays
- exact rationals (fractions.Fraction), stored in object arrays

Fixed-width types range-check the values a grid stores and refuse initial
values whose evolution could overflow (see `min_single_source_value`).
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from fractions import Fraction
from typing import Any, Dict, Iterable, Optional, Tuple
import numpy as np


# ===== Overflow bounds for single source configurations =====

def max_neighboring_difference(dimension: int, source_value: int) -> int:
    """
    Maximum value difference between neighbors over the whole evolution
    of a single source configuration.

    For a non-negative source it is the source value itself.
    """
    if dimension <= 0:
        raise ValueError("Grid dimension must be greater than zero.")
    if source_value < 0:
        if dimension > 1:
            return abs(source_value + (-source_value // 2) * (2 * dimension + 1))
        return -source_value
    return source_value


def min_single_source_value(dimension: int, max_allowed_value: int) -> int:
    """
    Smallest single source value whose evolution keeps every neighboring
    difference within `max_allowed_value`.

    Args:
        dimension: Grid dimension
        max_allowed_value: Largest representable value

    Returns:
        The minimum allowed (non-positive) source value
    """
    if max_allowed_value < 0:
        raise ValueError("Max allowed value cannot be less than zero.")
    if max_allowed_value == 0:
        return 0
    if dimension <= 0:
        raise ValueError("Grid dimension must be greater than zero.")
    if dimension == 1:
        return -max_allowed_value
    double_dimension_minus_one = 2 * dimension - 1
    if max_allowed_value < double_dimension_minus_one:
        return -1
    # the sequence of differences is not monotonic, the estimate can be off by one
    candidate = -(2 * max_allowed_value // double_dimension_minus_one)
    if max_neighboring_difference(dimension, candidate - 1) > max_allowed_value:
        return candidate
    return candidate - 1


# ===== Value types =====

class ValueType(ABC):
    """
    Arithmetic and storage contract of a grid value.

    Attributes:
        name: Registry name ("int64", "bigint", "rational", ...)
        dtype: numpy dtype used for grid slices
        fixed_width: Whether values have a fixed binary width
    """

    name: str = ""
    dtype: np.dtype = np.dtype(object)
    fixed_width: bool = False

    @property
    def zero(self) -> Any:
        return self.coerce(0)

    @abstractmethod
    def coerce(self, value: Any) -> Any:
        """Convert a raw value (including numpy scalars) to this type."""

    @abstractmethod
    def parse(self, text: str) -> Any:
        """Inverse of `format`."""

    def format(self, value: Any) -> str:
        return str(value)

    def add(self, a: Any, b: Any) -> Any:
        return a + b

    def subtract(self, a: Any, b: Any) -> Any:
        return a - b

    def scale(self, a: Any, factor: int) -> Any:
        return a * factor

    def compare(self, a: Any, b: Any) -> int:
        if a < b:
            return -1
        if a > b:
            return 1
        return 0

    def equals(self, a: Any, b: Any) -> bool:
        return a == b

    @abstractmethod
    def divide_with_remainder(self, a: Any, divisor: int) -> Tuple[Any, Any]:
        """Return (quotient, remainder) with quotient*divisor + remainder == a."""

    # ----- bounds -----

    @property
    def max_value(self) -> Optional[int]:
        return None

    def min_initial_value(self, dimension: int) -> Optional[int]:
        return None

    def max_initial_value(self, dimension: int) -> Optional[int]:
        return self.max_value

    def check_initial_value(self, value: Any, dimension: int) -> Any:
        """Coerce and validate a single source value, raising ValueError if unsafe."""
        value = self.coerce(value)
        low = self.min_initial_value(dimension)
        high = self.max_initial_value(dimension)
        if low is not None and value < low:
            raise ValueError(
                f"Initial value cannot be smaller than {low:,} for a {dimension}D grid "
                f"of {self.name} values. Use a greater initial value or a different value type."
            )
        if high is not None and value > high:
            raise ValueError(
                f"Initial value cannot be greater than {high:,} for {self.name} values."
            )
        return value

    # ----- storage -----

    def new_array(self, size: int) -> np.ndarray:
        """Create a zero-filled slice array."""
        if self.fixed_width:
            return np.zeros(size, dtype=self.dtype)
        array = np.empty(size, dtype=object)
        array.fill(self.zero)
        return array

    def encode_array(self, array: np.ndarray) -> np.ndarray:
        """Array representation safe for JSON/HDF5 persistence."""
        if self.fixed_width:
            return np.asarray(array, dtype=self.dtype)
        return np.array([self.format(v) for v in array], dtype=str)

    def decode_array(self, data: Iterable) -> np.ndarray:
        if self.fixed_width:
            return np.asarray(data, dtype=self.dtype)
        items = [self.parse(str(v)) for v in data]
        array = np.empty(len(items), dtype=object)
        array[:] = items
        return array

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class IntegerType(ValueType):
    """Integers with truncating division (remainder keeps the dividend's sign)."""

    def coerce(self, value: Any) -> int:
        if isinstance(value, Fraction):
            if value.denominator != 1:
                raise ValueError(f"{value} is not an integer")
            value = value.numerator
        return int(value)

    def parse(self, text: str) -> int:
        return int(text)

    def divide_with_remainder(self, a: int, divisor: int) -> Tuple[int, int]:
        quotient, remainder = divmod(abs(a), divisor)
        if a < 0:
            return -quotient, -remainder
        return quotient, remainder


class FixedWidthIntegerType(IntegerType):
    """Bounded signed integer backed by a numpy dtype."""

    fixed_width = True

    def __init__(self, name: str, dtype: Any):
        self.name = name
        self.dtype = np.dtype(dtype)
        info = np.iinfo(self.dtype)
        self._min = int(info.min)
        self._max = int(info.max)

    @property
    def max_value(self) -> int:
        return self._max

    @property
    def itemsize(self) -> int:
        return self.dtype.itemsize

    def check_range(self, value: int) -> int:
        if value < self._min or value > self._max:
            raise OverflowError(f"{value} does not fit in {self.name}")
        return value

    def add(self, a: int, b: int) -> int:
        return self.check_range(int(a) + int(b))

    def subtract(self, a: int, b: int) -> int:
        return self.check_range(int(a) - int(b))

    def scale(self, a: int, factor: int) -> int:
        return self.check_range(int(a) * factor)

    def min_initial_value(self, dimension: int) -> int:
        return min_single_source_value(dimension, self._max)


class BigIntegerType(IntegerType):
    name = "bigint"


class RationalType(ValueType):
    """Exact rationals: shares are exact, remainders are always zero."""

    name = "rational"

    def coerce(self, value: Any) -> Fraction:
        if isinstance(value, np.generic):
            value = value.item()
        return Fraction(value)

    def parse(self, text: str) -> Fraction:
        return Fraction(text)

    def divide_with_remainder(self, a: Fraction, divisor: int) -> Tuple[Fraction, Fraction]:
        return a / divisor, Fraction(0)


INT16 = FixedWidthIntegerType("int16", np.int16)
INT32 = FixedWidthIntegerType("int32", np.int32)
INT64 = FixedWidthIntegerType("int64", np.int64)
BIGINT = BigIntegerType()
RATIONAL = RationalType()

VALUE_TYPES: Dict[str, ValueType] = {
    vt.name: vt for vt in (INT16, INT32, INT64, BIGINT, RATIONAL)
}


def get_value_type(value_type: str | ValueType) -> ValueType:
    """Look up a value type by name (instances pass through)."""
    if isinstance(value_type, ValueType):
        return value_type
    try:
        return VALUE_TYPES[value_type]
    except KeyError:
        raise ValueError(
            f"Unknown value type: {value_type}. Expected one of {sorted(VALUE_TYPES)}"
        ) from None
