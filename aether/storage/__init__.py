"""
Storage module for the Aether automaton.

Provides:
- File-backed grids for out-of-core runs
- JSON/HDF5 persistence
- Checkpoint bundles
"""

from .file_grid import FileBackedGrid, FileBackend
from .json_storage import JSONStorage, NumpyEncoder
from .hdf5_storage import HDF5Storage
from .checkpoint import (
    CheckpointFormat,
    IncompatibleCheckpointError,
    Key,
    ModelData,
    read_checkpoint,
    write_checkpoint,
)

__all__ = [
    "FileBackedGrid",
    "FileBackend",
    "JSONStorage",
    "NumpyEncoder",
    "HDF5Storage",
    "CheckpointFormat",
    "IncompatibleCheckpointError",
    "Key",
    "ModelData",
    "read_checkpoint",
    "write_checkpoint",
]
