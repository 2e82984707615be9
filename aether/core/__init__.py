"""
Core module for the Aether automaton.

Contains:
- values: value types (fixed-width, big integer, rational)
- addressing: closed-form addresses of the asymmetric section
- symmetry: canonical positions and neighbor folding
- topple: the toppling rule (generic and compiled)
- grid: grid and backend interfaces, in-memory backend
- compliance: toppling alternation parity
- model: AetherModel engine
"""

from .values import (
    ValueType, FixedWidthIntegerType, BigIntegerType, RationalType,
    INT16, INT32, INT64, BIGINT, RATIONAL, VALUE_TYPES,
    get_value_type, min_single_source_value,
)
from .addressing import address, slice_size, section_size, iter_slice, iter_section
from .symmetry import (
    Position, NeighborFold, canonical, is_canonical, equivalent_positions,
    symmetry_multiplicity, fold_neighbors, share_multiplier, neighbor_folding,
)
from .topple import NeighborShare, ToppleResult, topple, topple_cells
from .grid import AsymmetricGrid, ArrayGrid, GridBackend, GridBackendKind, MemoryBackend
from .compliance import Parity, ComplianceGrid, StepOutcome
from .model import AetherModel, make_backend

__all__ = [
    # Values
    "ValueType",
    "FixedWidthIntegerType",
    "BigIntegerType",
    "RationalType",
    "INT16",
    "INT32",
    "INT64",
    "BIGINT",
    "RATIONAL",
    "VALUE_TYPES",
    "get_value_type",
    "min_single_source_value",
    # Addressing
    "address",
    "slice_size",
    "section_size",
    "iter_slice",
    "iter_section",
    # Symmetry
    "Position",
    "NeighborFold",
    "canonical",
    "is_canonical",
    "equivalent_positions",
    "symmetry_multiplicity",
    "fold_neighbors",
    "share_multiplier",
    "neighbor_folding",
    # Topple
    "NeighborShare",
    "ToppleResult",
    "topple",
    "topple_cells",
    # Grids
    "AsymmetricGrid",
    "ArrayGrid",
    "GridBackend",
    "GridBackendKind",
    "MemoryBackend",
    # Compliance
    "Parity",
    "ComplianceGrid",
    "StepOutcome",
    # Engine
    "AetherModel",
    "make_backend",
]
