"""
HDF5 storage for checkpoint bundles.

A bundle is an ordered list of named entries. Inside the HDF5 group:
- scalars (int, bool, str) are attributes
- arrays are datasets (text arrays as variable-length strings)
- lists of arrays are subgroups with datasets "0", "1", ...
- the attribute `tag_order` keeps the entry order
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union
import numpy as np
from contextlib import contextmanager

try:
    import h5py
    HAS_H5PY = True
except ImportError:
    HAS_H5PY = False


ORDER_ATTR = 'tag_order'


class HDF5Storage:
    """
    HDF5-based storage for tagged bundles.

    Features:
    - Efficient storage of numpy arrays
    - Optional gzip compression of datasets
    - Order-preserving entries
    """

    def __init__(self, filepath: Union[str, Path], mode: str = 'a'):
        """
        Initialize HDF5 storage.

        Args:
            filepath: Path to HDF5 file
            mode: File mode ('r', 'r+', 'w', 'w-', 'a')
        """
        if not HAS_H5PY:
            raise ImportError("h5py is required for HDF5 storage. "
                              "Install with: pip install h5py")

        self.filepath = Path(filepath)
        if mode != 'r':
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
        self.mode = mode

    @contextmanager
    def open(self):
        """Context manager for file access."""
        f = h5py.File(self.filepath, self.mode)
        try:
            yield f
        finally:
            f.close()

    def save_entries(
        self,
        entries: List[Tuple[str, Any]],
        group: str = "checkpoint",
        compress: bool = False,
    ) -> None:
        """
        Save named entries into a group, replacing its previous content.

        Args:
            entries: (name, value) pairs; None values are skipped
            group: Group name in HDF5 file
            compress: gzip datasets
        """
        compression = 'gzip' if compress else None
        with self.open() as f:
            if group in f:
                del f[group]
            g = f.create_group(group)
            names = []
            for name, value in entries:
                if value is None:
                    continue
                names.append(name)
                if isinstance(value, np.ndarray):
                    _create_dataset(g, name, value, compression)
                elif isinstance(value, (list, tuple)):
                    sub = g.create_group(name)
                    for i, item in enumerate(value):
                        _create_dataset(sub, str(i), np.asarray(item), compression)
                    sub.attrs['length'] = len(value)
                else:
                    g.attrs[name] = value
            g.attrs[ORDER_ATTR] = np.array(names, dtype=h5py.string_dtype())

    def load_entries(self, group: str = "checkpoint") -> List[Tuple[str, Any]]:
        """
        Load the named entries of a group in their saved order.

        Args:
            group: Group name in HDF5 file

        Returns:
            List of (name, value) pairs
        """
        with h5py.File(self.filepath, 'r') as f:
            if group not in f:
                raise KeyError(f"No group {group!r} in {self.filepath}")
            g = f[group]
            entries = []
            for name in (str(n) for n in g.attrs[ORDER_ATTR]):
                if name in g.attrs:
                    entries.append((name, _python_scalar(g.attrs[name])))
                elif isinstance(g[name], h5py.Group):
                    sub = g[name]
                    entries.append((name, [
                        _read_dataset(sub[str(i)]) for i in range(int(sub.attrs['length']))
                    ]))
                else:
                    entries.append((name, _read_dataset(g[name])))
            return entries


def _create_dataset(g, name: str, data: np.ndarray, compression: Optional[str]) -> None:
    if data.dtype.kind in ('U', 'O'):
        data = np.array([str(v) for v in data], dtype=h5py.string_dtype())
    g.create_dataset(name, data=data, compression=compression)


def _read_dataset(ds) -> np.ndarray:
    if h5py.check_string_dtype(ds.dtype) is not None:
        return np.array(ds.asstr()[()], dtype=str)
    return ds[()]


def _python_scalar(value: Any) -> Any:
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return value
