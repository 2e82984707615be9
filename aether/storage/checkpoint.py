"""
Checkpoint bundles.

A checkpoint is a `ModelData` bundle of tagged values plus, for the
file backend, a copy of the current grid file. The tags form a closed
registry; every tag a model needs to be rebuilt is checked on restore
and a mismatch raises `IncompatibleCheckpointError`.

Layout of a checkpoint folder:
    checkpoint.json | checkpoint.json.gz | checkpoint.h5
    grid/step=<n>.data      (file backend only)
"""

from __future__ import annotations
import logging
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from aether.core.grid import GridBackendKind
from aether.core.values import ValueType, get_value_type
from .json_storage import JSONStorage
from .hdf5_storage import HDF5Storage


logger = logging.getLogger(__name__)

CHECKPOINT_NAME = "checkpoint"
HDF5_FILE = f"{CHECKPOINT_NAME}.h5"


class CheckpointFormat(Enum):
    """Container of the checkpoint bundle."""
    JSON = "json"
    HDF5 = "hdf5"


class IncompatibleCheckpointError(ValueError):
    """A checkpoint tag does not match the model being restored."""

    def __init__(self, key: "Key", expected: Any, found: Any):
        self.key = key
        self.expected = expected
        self.found = found
        super().__init__(
            f"Incompatible checkpoint: {key.name} is {found!r}, expected {expected!r}"
        )


# ===== Tag registry =====

class Key(IntEnum):
    MODEL = 0
    STEP = 1
    CONFIGURATION_CHANGED_FROM_PREVIOUS_STEP = 2
    GRID = 3
    GRID_TYPE = 4
    GRID_IMPLEMENTATION_TYPE = 5
    INITIAL_CONFIGURATION = 6
    INITIAL_CONFIGURATION_TYPE = 7
    INITIAL_CONFIGURATION_IMPLEMENTATION_TYPE = 8
    COORDINATE_BOUNDS = 9
    COORDINATE_BOUNDS_IMPLEMENTATION_TYPE = 10
    TOPPLING_ALTERNATION_COMPLIANCE = 11
    TOPPLING_ALTERNATION_COMPLIANCE_IMPLEMENTATION_TYPE = 12
    GRID_DIMENSION = 14


class ModelTag(IntEnum):
    AETHER = 0


class GridType(IntEnum):
    INFINITE_1D = 0
    INFINITE_SQUARE = 1
    REGULAR_INFINITE_3D = 2
    REGULAR_BOUNDED_1D = 3
    REGULAR_INFINITE_4D = 4
    REGULAR_INFINITE_5D = 5
    REGULAR_INFINITE_ND = 6     # dimension stored under GRID_DIMENSION


class GridImplementationType(IntEnum):
    """How the GRID and compliance payloads are represented."""
    ARRAY_OF_INT32 = 0
    ARRAY_OF_INT64 = 1
    ARRAY_OF_BIGINT = 2
    ARRAY_OF_BOOLEAN = 3
    ARRAY_OF_RATIONAL = 4
    ARRAY_OF_INT16 = 5
    FILE_OF_INT16 = 6
    FILE_OF_INT32 = 7
    FILE_OF_INT64 = 8


class InitialConfigurationType(IntEnum):
    SINGLE_SOURCE_AT_ORIGIN = 0


class InitialConfigurationImplementationType(IntEnum):
    INT32 = 0
    INT64 = 1
    BIGINT = 2
    BOOLEAN = 3
    INT16 = 4
    RATIONAL = 5


class CoordinateBoundsImplementationType(IntEnum):
    BOUNDS_REACHED_BOOLEAN = 0
    MAX_COORDINATE_INTEGER = 1


ENUM_TAGS = {
    Key.MODEL: ModelTag,
    Key.GRID_TYPE: GridType,
    Key.GRID_IMPLEMENTATION_TYPE: GridImplementationType,
    Key.INITIAL_CONFIGURATION_TYPE: InitialConfigurationType,
    Key.INITIAL_CONFIGURATION_IMPLEMENTATION_TYPE: InitialConfigurationImplementationType,
    Key.COORDINATE_BOUNDS_IMPLEMENTATION_TYPE: CoordinateBoundsImplementationType,
    Key.TOPPLING_ALTERNATION_COMPLIANCE_IMPLEMENTATION_TYPE: GridImplementationType,
}

INT_TAGS = (Key.STEP, Key.COORDINATE_BOUNDS, Key.GRID_DIMENSION)


def grid_type_for(dimension: int) -> GridType:
    return {
        1: GridType.INFINITE_1D,
        2: GridType.INFINITE_SQUARE,
        3: GridType.REGULAR_INFINITE_3D,
        4: GridType.REGULAR_INFINITE_4D,
        5: GridType.REGULAR_INFINITE_5D,
    }.get(dimension, GridType.REGULAR_INFINITE_ND)


def grid_implementation_type(kind: GridBackendKind, values: ValueType) -> GridImplementationType:
    prefix = "FILE_OF_" if kind is GridBackendKind.FILE else "ARRAY_OF_"
    try:
        return GridImplementationType[prefix + values.name.upper()]
    except KeyError:
        raise ValueError(f"No {kind.value} grid representation for {values.name} values") from None


def backend_kind_of(implementation: GridImplementationType) -> GridBackendKind:
    if implementation.name.startswith("FILE_OF_"):
        return GridBackendKind.FILE
    return GridBackendKind.MEMORY


def value_type_of(implementation: InitialConfigurationImplementationType) -> ValueType:
    return get_value_type(implementation.name.lower())


def initial_configuration_implementation_type(values: ValueType) -> InitialConfigurationImplementationType:
    try:
        return InitialConfigurationImplementationType[values.name.upper()]
    except KeyError:
        raise ValueError(f"No initial configuration representation for {values.name}") from None


# ===== Bundle =====

class ModelData:
    """Ordered bundle of tagged checkpoint values."""

    def __init__(self, items: Optional[List[Tuple[Key, Any]]] = None):
        self._data: Dict[Key, Any] = {}
        for key, value in items or []:
            self.put(key, value)

    def put(self, key: Key, value: Any) -> None:
        self._data[Key(key)] = value

    def get(self, key: Key, default: Any = None) -> Any:
        return self._data.get(key, default)

    def require(self, key: Key) -> Any:
        if key not in self._data:
            raise IncompatibleCheckpointError(key, "a value", None)
        return self._data[key]

    def contains(self, key: Key) -> bool:
        return key in self._data

    def items(self) -> Iterator[Tuple[Key, Any]]:
        return iter(list(self._data.items()))

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ModelData):
            return NotImplemented
        if list(self._data) != list(other._data):
            return False
        for key, value in self._data.items():
            theirs = other._data[key]
            if isinstance(value, list) or isinstance(theirs, list):
                if len(value) != len(theirs):
                    return False
                if not all(np.array_equal(a, b) for a, b in zip(value, theirs)):
                    return False
            elif value != theirs:
                return False
        return True

    def check(self, key: Key, expected: Any) -> None:
        """Raise IncompatibleCheckpointError unless the tag holds `expected`."""
        found = self.get(key)
        if found != expected:
            raise IncompatibleCheckpointError(key, expected, found)


def _decode(key: Key, value: Any) -> Any:
    if key in ENUM_TAGS:
        return ENUM_TAGS[key](int(value))
    if key in INT_TAGS:
        return int(value)
    if key is Key.CONFIGURATION_CHANGED_FROM_PREVIOUS_STEP:
        return bool(value)
    if key is Key.INITIAL_CONFIGURATION:
        return str(value)
    return value


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return int(value.value)
    return value


# ===== Containers =====

def write_checkpoint(
    data: ModelData,
    folder: Union[str, Path],
    fmt: Union[CheckpointFormat, str] = CheckpointFormat.JSON,
    compress: bool = False,
) -> Path:
    """
    Write a bundle into a checkpoint folder.

    Args:
        data: Bundle to write
        folder: Checkpoint folder (created if missing)
        fmt: JSON or HDF5 container
        compress: gzip the JSON file / the HDF5 datasets

    Returns:
        Path of the written bundle file
    """
    fmt = CheckpointFormat(fmt)
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    entries = [(key, _encode(value)) for key, value in data.items() if value is not None]

    if fmt is CheckpointFormat.HDF5:
        path = folder / HDF5_FILE
        HDF5Storage(path, mode='w').save_entries(
            [(key.name, value) for key, value in entries], compress=compress
        )
    else:
        path = JSONStorage(folder).save(
            {"tags": [[int(key), value] for key, value in entries]},
            CHECKPOINT_NAME,
            compress=compress,
        )
    logger.info(f"Wrote checkpoint {path} ({len(entries)} tags)")
    return path


def find_checkpoint(folder: Union[str, Path]) -> Tuple[Path, CheckpointFormat]:
    folder = Path(folder)
    if (folder / HDF5_FILE).is_file():
        return folder / HDF5_FILE, CheckpointFormat.HDF5
    if folder.is_dir():
        path = JSONStorage(folder).find(CHECKPOINT_NAME)
        if path is not None:
            return path, CheckpointFormat.JSON
    raise FileNotFoundError(f"No checkpoint found in {folder}")


def read_checkpoint(folder: Union[str, Path]) -> ModelData:
    """Read the bundle of a checkpoint folder, restoring tag types."""
    path, fmt = find_checkpoint(folder)
    if fmt is CheckpointFormat.HDF5:
        raw = [(Key[name], value) for name, value in HDF5Storage(path, mode='r').load_entries()]
    else:
        raw = [(Key(tag), value) for tag, value in JSONStorage(path.parent).load(path.name)["tags"]]
    data = ModelData([(key, _decode(key, value)) for key, value in raw])
    logger.info(f"Read checkpoint {path} ({len(data)} tags)")
    return data
