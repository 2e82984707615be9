"""
Configuration module for the Aether automaton.

Contains all configurable parameters of a run.
"""

from dataclasses import dataclass, field
from typing import List, Optional
from enum import Enum
import json
from pathlib import Path

from aether.core.grid import GridBackendKind
from aether.core.values import VALUE_TYPES, get_value_type
from aether.storage.checkpoint import CheckpointFormat


@dataclass
class CheckpointParams:
    """Checkpoint parameters."""
    format: CheckpointFormat = CheckpointFormat.JSON
    compress: bool = False
    base_path: Path = field(default_factory=lambda: Path("./backups"))

    # Periodic backups (0 = only at the end)
    interval: int = 0


@dataclass
class AetherConfig:
    """
    Main configuration container for an Aether run.

    Example:
        config = AetherConfig(
            dimension=3,
            initial_value="1000000",
            backend=GridBackendKind.FILE,
        )
        config.save("my_config.json")
    """
    # Model
    dimension: int = 1
    initial_value: str = "1000"     # text form, parsed by the value type
    value_type: str = "int64"

    # Grid storage
    backend: GridBackendKind = GridBackendKind.MEMORY
    grid_folder: Path = field(default_factory=lambda: Path("./grid"))

    # Extras
    track_compliance: bool = False
    use_numba: bool = True          # compiled kernel for fixed-width values

    # Run length (None = until the configuration stops changing)
    max_steps: Optional[int] = None

    checkpoint: CheckpointParams = field(default_factory=CheckpointParams)

    def save(self, path) -> None:
        """Save configuration to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self._to_dict()
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path) -> "AetherConfig":
        """Load configuration from JSON file."""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls._from_dict(data)

    def _to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        def convert(obj):
            if isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, Path):
                return str(obj)
            elif hasattr(obj, '__dataclass_fields__'):
                return {k: convert(v) for k, v in obj.__dict__.items()}
            elif isinstance(obj, (list, tuple)):
                return [convert(x) for x in obj]
            return obj

        return convert(self)

    @classmethod
    def _from_dict(cls, data: dict) -> "AetherConfig":
        """Reconstruct from dictionary."""
        data = dict(data)
        if 'backend' in data:
            data['backend'] = GridBackendKind(data['backend'])
        if 'grid_folder' in data:
            data['grid_folder'] = Path(data['grid_folder'])
        if 'initial_value' in data:
            data['initial_value'] = str(data['initial_value'])

        if 'checkpoint' in data:
            checkpoint = dict(data['checkpoint'])
            if 'format' in checkpoint:
                checkpoint['format'] = CheckpointFormat(checkpoint['format'])
            if 'base_path' in checkpoint:
                checkpoint['base_path'] = Path(checkpoint['base_path'])
            data['checkpoint'] = CheckpointParams(**checkpoint)

        return cls(**data)

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors that prevent a run."""
        issues = []

        if self.dimension < 1:
            issues.append("dimension must be at least 1")

        if self.value_type not in VALUE_TYPES:
            issues.append(f"value_type must be one of {sorted(VALUE_TYPES)}")
        else:
            values = get_value_type(self.value_type)
            try:
                values.check_initial_value(values.parse(self.initial_value), max(self.dimension, 1))
            except ValueError as e:
                issues.append(f"initial_value: {e}")
            if self.backend is GridBackendKind.FILE and not values.fixed_width:
                issues.append("the file backend needs a fixed-width value_type")

        if self.max_steps is not None and self.max_steps < 0:
            issues.append("max_steps must be non-negative")
        if self.checkpoint.interval < 0:
            issues.append("checkpoint interval must be non-negative")

        return issues


# Preset configurations
def minimal_config() -> AetherConfig:
    """Minimal configuration for quick testing."""
    return AetherConfig(
        dimension=1,
        initial_value="100",
        max_steps=100,
    )


def out_of_core_config() -> AetherConfig:
    """Large 3D run with file-backed grids and compressed HDF5 backups."""
    return AetherConfig(
        dimension=3,
        initial_value="1000000",
        value_type="int64",
        backend=GridBackendKind.FILE,
        checkpoint=CheckpointParams(
            format=CheckpointFormat.HDF5,
            compress=True,
            interval=1000,
        ),
    )
