"""
Out-of-core grid storage.

Every step gets its own random-access file `step=<n>.data` inside a
temporary `grid*` folder. Values are fixed-width little-endian records
at `address * itemsize`, so any canonical position is one seek away.
"""

from __future__ import annotations
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import numpy as np

from aether.core.addressing import address, section_size, slice_offset, slice_size
from aether.core.grid import AsymmetricGrid, GridBackend, GridBackendKind
from aether.core.values import ValueType


logger = logging.getLogger(__name__)

# records written per chunk while zero-filling
ZERO_FILL_CHUNK = 1 << 16


def step_file_name(step: int) -> str:
    return f"step={step}.data"


class FileBackedGrid(AsymmetricGrid):
    """
    Grid stored in a single binary file.

    Args:
        path: File location
        dimension: Grid dimension
        values: Fixed-width value type
        is_backup: Open an existing file read-only (restored checkpoint)
        max_coordinate: Allocated slices of an existing file
    """

    def __init__(
        self,
        path: Union[str, Path],
        dimension: int,
        values: ValueType,
        is_backup: bool = False,
        max_coordinate: int = -1,
    ):
        if not values.fixed_width:
            raise ValueError(
                f"File-backed grids need a fixed-width value type, got {values.name}"
            )
        super().__init__(dimension, values)
        self.path = Path(path)
        self.is_backup = is_backup
        self._dtype = values.dtype.newbyteorder("<")
        self._itemsize = self._dtype.itemsize
        self._max_coordinate = -1

        if is_backup:
            expected = section_size(max_coordinate, dimension) * self._itemsize
            actual = self.path.stat().st_size
            if actual != expected:
                raise ValueError(
                    f"{self.path} holds {actual} bytes, expected {expected} "
                    f"for max coordinate {max_coordinate}"
                )
            self._file = open(self.path, "rb")
            self._max_coordinate = max_coordinate
        else:
            self._file = open(self.path, "w+b")
            logger.debug(f"Created grid file {self.path}")

    @property
    def max_coordinate(self) -> int:
        return self._max_coordinate

    @property
    def closed(self) -> bool:
        return self._file.closed

    def _read(self, offset: int, count: int) -> np.ndarray:
        self._file.seek(offset * self._itemsize)
        data = self._file.read(count * self._itemsize)
        if len(data) != count * self._itemsize:
            raise EOFError(f"Short read at record {offset} of {self.path}")
        return np.frombuffer(data, dtype=self._dtype)

    def _write(self, offset: int, array: np.ndarray) -> None:
        self._file.seek(offset * self._itemsize)
        self._file.write(np.asarray(array, dtype=self._dtype).tobytes())

    def get(self, position: Sequence[int]) -> Any:
        self._check_position(position)
        if position[0] > self._max_coordinate:
            return self.values.zero
        return self.values.coerce(self._read(address(position), 1)[0])

    def add_to_position(self, position: Sequence[int], amount: Any) -> None:
        self._check_position(position)
        if position[0] > self._max_coordinate:
            raise IndexError(f"{tuple(position)} lies beyond slice {self._max_coordinate}")
        i = address(position)
        current = self.values.coerce(self._read(i, 1)[0])
        self._write(i, np.array([self.values.add(current, amount)]))

    def ensure_slice(self, x: int) -> None:
        if self.is_backup:
            raise PermissionError(f"{self.path} is a read-only backup")
        start = section_size(self._max_coordinate, self.dimension)
        end = section_size(x, self.dimension)
        for offset in range(start, end, ZERO_FILL_CHUNK):
            count = min(ZERO_FILL_CHUNK, end - offset)
            self._write(offset, np.zeros(count, dtype=self._dtype))
        self._max_coordinate = max(self._max_coordinate, x)

    def release_slice(self, x: int) -> None:
        # data stays on disk until the file is deleted
        pass

    def trim(self, max_coordinate: int) -> None:
        if max_coordinate >= self._max_coordinate:
            return
        self._file.flush()
        self._file.truncate(section_size(max_coordinate, self.dimension) * self._itemsize)
        self._max_coordinate = max_coordinate

    def slice_values(self, x: int) -> np.ndarray:
        return self._read(slice_offset(x, self.dimension), slice_size(x, self.dimension)).astype(
            self.values.dtype
        )

    def slice_has_nonzero(self, x: int) -> bool:
        if x > self._max_coordinate:
            return False
        return bool(np.any(self.slice_values(x)))

    def flush(self) -> None:
        """Push buffered writes to disk."""
        if self.is_backup or self._file.closed:
            return
        self._file.flush()
        os.fsync(self._file.fileno())

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def delete(self) -> None:
        """Close and remove the file, unless it is a backup."""
        self.close()
        if not self.is_backup and self.path.exists():
            self.path.unlink()
            logger.debug(f"Deleted grid file {self.path}")


class FileBackend(GridBackend):
    """
    Backend writing one grid file per step.

    Args:
        grid_folder: Parent of the temporary `grid*` folder (system temp dir if None)
    """

    kind = GridBackendKind.FILE

    def __init__(self, grid_folder: Optional[Union[str, Path]] = None):
        if grid_folder is not None:
            grid_folder = Path(grid_folder)
            grid_folder.mkdir(parents=True, exist_ok=True)
        self.folder = Path(tempfile.mkdtemp(prefix="grid", dir=grid_folder))
        logger.debug(f"Grid folder {self.folder}")

    def create(self, dimension: int, values: ValueType, step: int) -> FileBackedGrid:
        return FileBackedGrid(self.folder / step_file_name(step), dimension, values)

    def commit(self, old: Optional[AsymmetricGrid], new: AsymmetricGrid) -> None:
        new.flush()
        if old is not None:
            old.delete()

    def discard(self, grid: AsymmetricGrid) -> None:
        grid.delete()

    def export_grid(self, grid: FileBackedGrid, folder: Path) -> str:
        grid_folder = Path(folder) / "grid"
        grid_folder.mkdir(parents=True, exist_ok=True)
        grid.flush()
        target = grid_folder / grid.path.name
        # a grid restored from this very checkpoint is already in place
        if not (target.exists() and target.resolve() == grid.path.resolve()):
            shutil.copyfile(grid.path, target)
        return grid.path.name

    def import_grid(
        self,
        payload: Any,
        folder: Path,
        dimension: int,
        values: ValueType,
        max_coordinate: int,
    ) -> FileBackedGrid:
        if not isinstance(payload, str):
            raise ValueError("Grid payload of a file-backed checkpoint must be a file name")
        path = Path(folder) / "grid" / payload
        if not path.exists():
            raise FileNotFoundError(f"Grid file not found: {path}")
        return FileBackedGrid(path, dimension, values, is_backup=True, max_coordinate=max_coordinate)

    def close(self) -> None:
        if self.folder.exists():
            shutil.rmtree(self.folder)
            logger.debug(f"Removed grid folder {self.folder}")
