"""
Aether Automaton

Simulator of the Aether cellular automaton: a conservative, value-sharing
automaton on an unbounded D-dimensional grid, seeded with a single source
value at the origin.

Main components:
- core: value types, symmetry folding, toppling rule, grids, engine
- storage: file-backed grids, JSON/HDF5 checkpoints
- config: dataclass configuration
"""

__version__ = "0.1.0"
__author__ = "Aether Team"

from .core import AetherModel, Parity, StepOutcome, get_value_type
from .storage import CheckpointFormat, IncompatibleCheckpointError
from .config import AetherConfig

__all__ = [
    "AetherModel",
    "Parity",
    "StepOutcome",
    "get_value_type",
    "CheckpointFormat",
    "IncompatibleCheckpointError",
    "AetherConfig",
]
