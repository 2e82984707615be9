"""
Asymmetric grid storage.

A grid holds the values of the canonical positions up to its
`max_coordinate`, one slice per first coordinate. Anything beyond reads
as zero. Grids are filled by the engine through `add_to_position` while
the previous grid is read slice by slice and released behind it.

Backends create, commit and persist grids; the in-memory one lives here,
the file-backed one in `aether.storage.file_grid`.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Sequence

import numpy as np

from .addressing import index_in_slice, slice_size
from .values import ValueType


class GridBackendKind(Enum):
    """Where grid values are kept."""
    MEMORY = "memory"   # numpy slices in RAM
    FILE = "file"       # one random-access file per step


class AsymmetricGrid(ABC):
    """Values of the canonical positions, stored slice by slice."""

    def __init__(self, dimension: int, values: ValueType):
        self.dimension = dimension
        self.values = values

    @property
    @abstractmethod
    def max_coordinate(self) -> int:
        """Largest allocated slice (-1 when empty)."""

    def _check_position(self, position: Sequence[int]) -> None:
        if len(position) != self.dimension:
            raise ValueError(
                f"Expected a position with {self.dimension} coordinates, got {tuple(position)}"
            )

    @abstractmethod
    def get(self, position: Sequence[int]) -> Any:
        """Value at a canonical position, zero beyond the allocated slices."""

    @abstractmethod
    def add_to_position(self, position: Sequence[int], amount: Any) -> None:
        """Add to the value at a canonical position inside the allocated slices."""

    @abstractmethod
    def ensure_slice(self, x: int) -> None:
        """Allocate zero-filled slices up to `x`."""

    @abstractmethod
    def release_slice(self, x: int) -> None:
        """Free slice `x` once nothing reads it anymore."""

    @abstractmethod
    def trim(self, max_coordinate: int) -> None:
        """Drop every slice beyond `max_coordinate`."""

    @abstractmethod
    def slice_values(self, x: int) -> np.ndarray:
        """Copy of slice `x` in address order."""

    def slice_has_nonzero(self, x: int) -> bool:
        if x > self.max_coordinate:
            return False
        zero = self.values.zero
        return any(not self.values.equals(v, zero) for v in self.slice_values(x))

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ArrayGrid(AsymmetricGrid):
    """In-memory grid: a growable list of numpy slices."""

    def __init__(self, dimension: int, values: ValueType, slices: Optional[List[np.ndarray]] = None):
        super().__init__(dimension, values)
        self._slices: List[Optional[np.ndarray]] = []
        for x, array in enumerate(slices or []):
            if len(array) != slice_size(x, dimension):
                raise ValueError(
                    f"Slice {x} holds {len(array)} values, expected {slice_size(x, dimension)}"
                )
            self._slices.append(array)

    @property
    def max_coordinate(self) -> int:
        return len(self._slices) - 1

    def _slice(self, x: int) -> np.ndarray:
        array = self._slices[x]
        if array is None:
            raise RuntimeError(f"Slice {x} has already been released")
        return array

    def get(self, position: Sequence[int]) -> Any:
        self._check_position(position)
        if position[0] > self.max_coordinate:
            return self.values.zero
        return self.values.coerce(self._slice(position[0])[index_in_slice(position)])

    def add_to_position(self, position: Sequence[int], amount: Any) -> None:
        self._check_position(position)
        array = self._slice(position[0])
        i = index_in_slice(position)
        array[i] = self.values.add(self.values.coerce(array[i]), amount)

    def ensure_slice(self, x: int) -> None:
        while len(self._slices) <= x:
            self._slices.append(self.values.new_array(slice_size(len(self._slices), self.dimension)))

    def release_slice(self, x: int) -> None:
        if 0 <= x < len(self._slices):
            self._slices[x] = None

    def trim(self, max_coordinate: int) -> None:
        del self._slices[max_coordinate + 1:]

    def slice_values(self, x: int) -> np.ndarray:
        return self._slice(x).copy()

    def slice_has_nonzero(self, x: int) -> bool:
        if x > self.max_coordinate:
            return False
        array = self._slice(x)
        if self.values.fixed_width:
            return bool(np.any(array))
        return super().slice_has_nonzero(x)

    def close(self) -> None:
        self._slices = []


class GridBackend(ABC):
    """Creates the grid of every step and moves grids in and out of checkpoints."""

    kind: GridBackendKind

    @abstractmethod
    def create(self, dimension: int, values: ValueType, step: int) -> AsymmetricGrid:
        """Empty grid that will hold the values of `step`."""

    def commit(self, old: Optional[AsymmetricGrid], new: AsymmetricGrid) -> None:
        """Make `new` the current grid and dispose of `old`."""
        if old is not None:
            old.close()

    def discard(self, grid: AsymmetricGrid) -> None:
        """Dispose of a grid whose step failed."""
        grid.close()

    @abstractmethod
    def export_grid(self, grid: AsymmetricGrid, folder: Path) -> Any:
        """Payload for the GRID tag of a checkpoint written to `folder`."""

    @abstractmethod
    def import_grid(
        self,
        payload: Any,
        folder: Path,
        dimension: int,
        values: ValueType,
        max_coordinate: int,
    ) -> AsymmetricGrid:
        """Rebuild a grid from a GRID tag payload."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class MemoryBackend(GridBackend):
    """Keeps every grid as numpy slices; checkpoints embed the slices."""

    kind = GridBackendKind.MEMORY

    def create(self, dimension: int, values: ValueType, step: int) -> ArrayGrid:
        return ArrayGrid(dimension, values)

    def export_grid(self, grid: AsymmetricGrid, folder: Path) -> List[np.ndarray]:
        return [
            grid.values.encode_array(grid.slice_values(x))
            for x in range(grid.max_coordinate + 1)
        ]

    def import_grid(
        self,
        payload: Any,
        folder: Path,
        dimension: int,
        values: ValueType,
        max_coordinate: int,
    ) -> ArrayGrid:
        if isinstance(payload, str) or len(payload) != max_coordinate + 1:
            raise ValueError(
                f"Grid payload does not match max coordinate {max_coordinate}"
            )
        return ArrayGrid(dimension, values, [values.decode_array(data) for data in payload])
