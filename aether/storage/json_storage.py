"""
JSON storage for checkpoint bundles.
"""

from __future__ import annotations
import json
import gzip
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union
import numpy as np


JSON_EXTENSIONS = ('.json', '.json.gz')


class NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy arrays, numpy scalars, enums and paths."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return {
                '__numpy__': True,
                'dtype': obj.dtype.str,
                'shape': obj.shape,
                'data': obj.tolist(),
            }
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def numpy_decoder(dct):
    """JSON decoder hook for numpy arrays."""
    if '__numpy__' in dct:
        return np.array(dct['data'], dtype=dct['dtype']).reshape(dct['shape'])
    return dct


class JSONStorage:
    """
    JSON-based storage inside one folder.

    Supports:
    - Plain JSON files
    - Gzipped JSON files
    - Automatic numpy array handling
    """

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def save(self, data: Any, filename: str, compress: bool = False) -> Path:
        """
        Save data to a JSON file.

        Args:
            data: Data to save
            filename: Filename (without extension)
            compress: Use gzip compression

        Returns:
            Path to saved file
        """
        if compress:
            filepath = self.base_path / f"{filename}.json.gz"
            with gzip.open(filepath, 'wt', encoding='utf-8') as f:
                json.dump(data, f, cls=NumpyEncoder)
        else:
            filepath = self.base_path / f"{filename}.json"
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(data, f, cls=NumpyEncoder, indent=2)
        return filepath

    def find(self, filename: str) -> Optional[Path]:
        """Existing file for `filename`, trying the known extensions."""
        for ext in ('',) + JSON_EXTENSIONS:
            filepath = self.base_path / f"{filename}{ext}"
            if filepath.is_file():
                return filepath
        return None

    def exists(self, filename: str) -> bool:
        return self.find(filename) is not None

    def load(self, filename: str) -> Any:
        """
        Load data from a JSON file.

        Args:
            filename: Filename (with or without extension)

        Returns:
            Loaded data, numpy arrays restored
        """
        filepath = self.find(filename)
        if filepath is None:
            raise FileNotFoundError(f"No JSON file found for {self.base_path / filename}")

        if filepath.suffix == '.gz':
            with gzip.open(filepath, 'rt', encoding='utf-8') as f:
                return json.load(f, object_hook=numpy_decoder)
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f, object_hook=numpy_decoder)
