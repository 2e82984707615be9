"""
Aether model engine.

Evolves a single source configuration on an infinite D-dimensional grid,
computing only the asymmetric section. Each step reads the previous grid
slice by slice, topples every cell and accumulates the results into a
freshly created grid; old slices are released right behind the sweep.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .addressing import index_in_slice, iter_slice
from .compliance import ComplianceGrid, Parity, StepOutcome
from .grid import AsymmetricGrid, GridBackend, GridBackendKind, MemoryBackend
from .symmetry import Position, canonical, is_canonical, neighbor_folding, symmetry_multiplicity
from .topple import NeighborShare, ToppleResult, topple, topple_cells
from .values import ValueType, get_value_type
from aether.storage.checkpoint import (
    CheckpointFormat,
    CoordinateBoundsImplementationType,
    GridImplementationType,
    InitialConfigurationType,
    Key,
    ModelData,
    ModelTag,
    backend_kind_of,
    grid_implementation_type,
    grid_type_for,
    initial_configuration_implementation_type,
    read_checkpoint,
    value_type_of,
    write_checkpoint,
)
from aether.storage.file_grid import FileBackend


logger = logging.getLogger(__name__)


def make_backend(
    backend: Union[GridBackend, GridBackendKind, str, None],
    grid_folder: Optional[Union[str, Path]] = None,
) -> GridBackend:
    """Backend instance from an instance, a kind or a kind name."""
    if isinstance(backend, GridBackend):
        return backend
    kind = GridBackendKind(backend) if backend is not None else GridBackendKind.MEMORY
    if kind is GridBackendKind.FILE:
        return FileBackend(grid_folder)
    return MemoryBackend()


class AetherModel:
    """
    The Aether cellular automaton with a single source at the origin.

    Example:
        with AetherModel(1000, dimension=2) as model:
            while model.next_step():
                pass
            print(model.step, model.max_coordinate)

    Args:
        initial_value: Value of the origin at step 0
        dimension: Grid dimension (>= 1)
        value_type: Name or instance of the value type
        backend: GridBackend, backend kind or None for memory
        track_compliance: Record toppling alternation compliance
        use_numba: Use the compiled kernel for fixed-width values
    """

    def __init__(
        self,
        initial_value: Any,
        dimension: int = 1,
        value_type: Union[str, ValueType] = "int64",
        backend: Union[GridBackend, GridBackendKind, str, None] = None,
        track_compliance: bool = False,
        use_numba: bool = True,
    ):
        self._setup(dimension, value_type, backend, track_compliance, use_numba)
        self._grid = None
        try:
            if isinstance(initial_value, str):
                initial_value = self._values.parse(initial_value)
            self._initial_value = self._values.check_initial_value(initial_value, dimension)
            self._grid = self._backend.create(dimension, self._values, 0)
            self._grid.ensure_slice(0)
            origin = (0,) * dimension
            if not self._values.equals(self._initial_value, self._values.zero):
                self._grid.add_to_position(origin, self._initial_value)
            self._backend.commit(None, self._grid)
        except Exception:
            if self._grid is not None:
                self._backend.discard(self._grid)
            self._backend.close()
            raise
        self._step = 0
        self._changed: Optional[bool] = None
        self._compliance: Optional[ComplianceGrid] = None
        self._turn: Optional[Parity] = None
        logger.debug(f"Created {self.subfolder_path} with {self._values.name} values")

    def _setup(self, dimension, value_type, backend, track_compliance, use_numba, grid_folder=None) -> None:
        if int(dimension) < 1:
            raise ValueError("Grid dimension must be greater than zero.")
        self._dimension = int(dimension)
        self._values = get_value_type(value_type)
        self._track_compliance = track_compliance
        self._use_kernel = use_numba and self._values.fixed_width
        self._backend = make_backend(backend, grid_folder)
        if self._backend.kind is GridBackendKind.FILE and not self._values.fixed_width:
            self._backend.close()
            raise ValueError(
                f"The file backend needs a fixed-width value type, got {self._values.name}"
            )

    @classmethod
    def from_config(cls, config) -> "AetherModel":
        """Build a model from an AetherConfig."""
        return cls(
            config.initial_value,
            dimension=config.dimension,
            value_type=config.value_type,
            backend=make_backend(config.backend, config.grid_folder),
            track_compliance=config.track_compliance,
            use_numba=config.use_numba,
        )

    # ===== Properties =====

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def values(self) -> ValueType:
        return self._values

    @property
    def initial_value(self) -> Any:
        return self._initial_value

    @property
    def step(self) -> int:
        return self._step

    @property
    def changed(self) -> Optional[bool]:
        """Whether the last step changed the grid (None at step 0)."""
        return self._changed

    @property
    def max_coordinate(self) -> int:
        return self._grid.max_coordinate

    @property
    def compliance_turn(self) -> Optional[Parity]:
        """Parity whose turn it was during the last step."""
        return self._turn

    @property
    def tracks_compliance(self) -> bool:
        return self._track_compliance

    @property
    def backend(self) -> GridBackend:
        return self._backend

    @property
    def subfolder_path(self) -> str:
        path = f"Aether/{self._dimension}D/{self._values.format(self._initial_value)}"
        if self._track_compliance:
            path += "/toppling_alternation_compliance"
        return path

    # ===== Evolution =====

    def next_step(self) -> bool:
        """
        Compute the next step.

        Returns:
            Whether any cell toppled
        """
        return self._evolve().changed

    def _evolve(self) -> StepOutcome:
        turn = Parity.for_step(self._non_negative_source, self._step)
        if self._turn is not None and turn is not self._turn.flipped():
            raise RuntimeError(f"Toppling turn did not alternate at step {self._step}")

        old = self._grid
        old_max = old.max_coordinate
        outer = old_max + 1
        new = self._backend.create(self._dimension, self._values, self._step + 1)
        compliance = ComplianceGrid(self._dimension, turn) if self._track_compliance else None
        changed = False
        window: Dict[int, np.ndarray] = {}
        # exact sums per new slice, written once no more shares can reach them
        pending: Dict[int, Dict[Position, Any]] = {}

        try:
            for x in range(outer + 1):
                new.ensure_slice(min(x + 1, outer))
                for s in (x - 1, x, x + 1):
                    if 0 <= s <= old_max and s not in window:
                        window[s] = old.slice_values(s)

                positions = list(iter_slice(x, self._dimension))
                results = self._topple_slice(positions, window, old_max)
                for position, result in zip(positions, results):
                    self._accumulate(pending, position, result.kept)
                    for destination, amount in result.deltas:
                        self._accumulate(pending, destination, amount)
                    changed = changed or result.toppled
                    if compliance is not None:
                        compliance.record(position, result.toppled)

                if x > 0:
                    self._flush(new, pending.pop(x - 1, {}))
                    old.release_slice(x - 1)
                    window.pop(x - 1, None)

            for x in sorted(pending):
                self._flush(new, pending.pop(x))

            if not new.slice_has_nonzero(outer):
                new.trim(old_max)
                if compliance is not None:
                    compliance.trim(old_max)
            self._backend.commit(old, new)
        except BaseException:
            self._backend.discard(new)
            raise

        self._grid = new
        self._step += 1
        self._changed = changed
        self._turn = turn
        self._compliance = compliance
        logger.debug(
            f"Step {self._step}: max coordinate {new.max_coordinate}, changed {changed}"
        )
        return StepOutcome(changed=changed, turn=turn)

    @staticmethod
    def _accumulate(pending: Dict[int, Dict[Position, Any]], position: Position, amount: Any) -> None:
        cells = pending.setdefault(position[0], {})
        cells[position] = cells.get(position, 0) + amount

    def _flush(self, grid: AsymmetricGrid, cells: Dict[Position, Any]) -> None:
        """Store final cell values; fixed-width types range-check them here."""
        zero = self._values.zero
        for position, total in cells.items():
            if not self._values.equals(total, zero):
                grid.add_to_position(position, total)

    @property
    def _non_negative_source(self) -> bool:
        return self._values.compare(self._initial_value, self._values.zero) >= 0

    def _read(self, window: Dict[int, np.ndarray], position: Position, old_max: int) -> Any:
        if position[0] > old_max:
            return self._values.zero
        return self._values.coerce(window[position[0]][index_in_slice(position)])

    def _topple_slice(
        self,
        positions: List[Position],
        window: Dict[int, np.ndarray],
        old_max: int,
    ) -> List[ToppleResult]:
        cells = [self._read(window, p, old_max) for p in positions]
        neighbors = [
            [
                NeighborShare(
                    value=self._read(window, fold.position, old_max),
                    symmetry_count=fold.symmetry_count,
                    share_multiplier=fold.share_multiplier,
                    position=fold.position,
                )
                for fold in neighbor_folding(p)
            ]
            for p in positions
        ]
        if self._use_kernel:
            return topple_cells(cells, neighbors, self._values)
        return [topple(v, ns, self._values) for v, ns in zip(cells, neighbors)]

    # ===== Queries =====

    def _check_arity(self, position: Sequence[int]) -> None:
        if len(position) != self._dimension:
            raise ValueError(
                f"Expected a position with {self._dimension} coordinates, got {tuple(position)}"
            )

    def get(self, position: Sequence[int]) -> Any:
        """Value at any grid position."""
        self._check_arity(position)
        return self.get_asymmetric(canonical(position))

    def get_asymmetric(self, position: Sequence[int]) -> Any:
        """Value at a canonical position (x[0] >= x[1] >= ... >= 0)."""
        self._check_arity(position)
        if not is_canonical(position):
            raise ValueError(f"{tuple(position)} is outside the asymmetric section")
        return self._grid.get(tuple(position))

    def compliance(self, position: Sequence[int]) -> Optional[bool]:
        """
        Whether a position kept to the toppling alternation in the last step.

        None before the first step or when compliance is not tracked.
        """
        self._check_arity(position)
        if self._compliance is None:
            return None
        return self._compliance.get(canonical(position))

    def iter_asymmetric(self) -> Iterator[Tuple[Position, Any]]:
        """Yield (position, value) for every stored canonical position."""
        for x in range(self._grid.max_coordinate + 1):
            slice_values = self._grid.slice_values(x)
            for position, value in zip(iter_slice(x, self._dimension), slice_values):
                yield position, self._values.coerce(value)

    def total_value(self) -> Any:
        """Sum of the values over the whole grid."""
        total = self._values.zero
        for position, value in self.iter_asymmetric():
            total = total + value * symmetry_multiplicity(position)
        return total

    # ===== Checkpoints =====

    def to_model_data(self, folder: Union[str, Path]) -> ModelData:
        """Bundle describing the current state; grid files are copied into `folder`."""
        values = self._values
        data = ModelData()
        data.put(Key.MODEL, ModelTag.AETHER)
        data.put(Key.STEP, self._step)
        if self._changed is not None:
            data.put(Key.CONFIGURATION_CHANGED_FROM_PREVIOUS_STEP, self._changed)
        data.put(Key.GRID_TYPE, grid_type_for(self._dimension))
        data.put(Key.GRID_DIMENSION, self._dimension)
        data.put(Key.GRID_IMPLEMENTATION_TYPE, grid_implementation_type(self._backend.kind, values))
        data.put(Key.GRID, self._backend.export_grid(self._grid, Path(folder)))
        data.put(Key.INITIAL_CONFIGURATION, values.format(self._initial_value))
        data.put(Key.INITIAL_CONFIGURATION_TYPE, InitialConfigurationType.SINGLE_SOURCE_AT_ORIGIN)
        data.put(
            Key.INITIAL_CONFIGURATION_IMPLEMENTATION_TYPE,
            initial_configuration_implementation_type(values),
        )
        data.put(Key.COORDINATE_BOUNDS, self._grid.max_coordinate)
        data.put(
            Key.COORDINATE_BOUNDS_IMPLEMENTATION_TYPE,
            CoordinateBoundsImplementationType.MAX_COORDINATE_INTEGER,
        )
        if self._compliance is not None:
            data.put(Key.TOPPLING_ALTERNATION_COMPLIANCE, self._compliance.slices())
            data.put(
                Key.TOPPLING_ALTERNATION_COMPLIANCE_IMPLEMENTATION_TYPE,
                GridImplementationType.ARRAY_OF_BOOLEAN,
            )
        return data

    def back_up(
        self,
        path: Union[str, Path],
        name: str,
        fmt: Union[CheckpointFormat, str, None] = None,
        compress: Optional[bool] = None,
    ) -> Path:
        """
        Write a checkpoint to `path/name`.

        Args:
            path: Parent folder
            name: Checkpoint folder name
            fmt: CheckpointFormat (JSON by default)
            compress: Compress the bundle (off by default)

        Returns:
            The checkpoint folder
        """
        folder = Path(path) / name
        folder.mkdir(parents=True, exist_ok=True)
        data = self.to_model_data(folder)
        write_checkpoint(
            data,
            folder,
            fmt=fmt if fmt is not None else CheckpointFormat.JSON,
            compress=bool(compress),
        )
        logger.info(f"Backed up step {self._step} of {self.subfolder_path} to {folder}")
        return folder

    @classmethod
    def from_checkpoint(
        cls,
        path: Union[str, Path],
        dimension: Optional[int] = None,
        value_type: Union[str, ValueType, None] = None,
        backend: Union[GridBackend, GridBackendKind, str, None] = None,
        track_compliance: bool = False,
        use_numba: bool = True,
        grid_folder: Optional[Union[str, Path]] = None,
    ) -> "AetherModel":
        """
        Restore a model from a checkpoint folder.

        Arguments left as None are taken from the checkpoint; given ones must
        match it, otherwise IncompatibleCheckpointError is raised. `grid_folder`
        is where a file backend created here keeps its step files.
        """
        folder = Path(path)
        data = read_checkpoint(folder)

        data.check(Key.MODEL, ModelTag.AETHER)
        data.check(Key.INITIAL_CONFIGURATION_TYPE, InitialConfigurationType.SINGLE_SOURCE_AT_ORIGIN)
        if dimension is None:
            dimension = data.require(Key.GRID_DIMENSION)
        if value_type is None:
            value_type = value_type_of(data.require(Key.INITIAL_CONFIGURATION_IMPLEMENTATION_TYPE))
        if backend is None:
            backend = backend_kind_of(data.require(Key.GRID_IMPLEMENTATION_TYPE))

        model = cls.__new__(cls)
        model._grid = None
        model._setup(dimension, value_type, backend, track_compliance, use_numba, grid_folder)
        try:
            model._restore(data, folder)
            logger.info(f"Restored step {model.step} of {model.subfolder_path} from {folder}")

            if track_compliance and model._compliance is None and model.step > 0:
                logger.info("Checkpoint has no compliance data, computing one more step")
                model.next_step()
        except Exception:
            model.close()
            raise
        return model

    def _restore(self, data: ModelData, folder: Path) -> None:
        values = self._values
        data.check(Key.GRID_DIMENSION, self._dimension)
        data.check(Key.GRID_TYPE, grid_type_for(self._dimension))
        data.check(
            Key.INITIAL_CONFIGURATION_IMPLEMENTATION_TYPE,
            initial_configuration_implementation_type(values),
        )
        data.check(Key.GRID_IMPLEMENTATION_TYPE, grid_implementation_type(self._backend.kind, values))
        data.check(
            Key.COORDINATE_BOUNDS_IMPLEMENTATION_TYPE,
            CoordinateBoundsImplementationType.MAX_COORDINATE_INTEGER,
        )

        self._initial_value = values.check_initial_value(
            values.parse(data.require(Key.INITIAL_CONFIGURATION)), self._dimension
        )
        self._step = data.require(Key.STEP)
        self._changed = data.get(Key.CONFIGURATION_CHANGED_FROM_PREVIOUS_STEP)
        max_coordinate = data.require(Key.COORDINATE_BOUNDS)
        self._grid = self._backend.import_grid(
            data.require(Key.GRID), folder, self._dimension, values, max_coordinate
        )

        self._turn = None
        self._compliance = None
        if self._step > 0:
            self._turn = Parity.for_step(self._non_negative_source, self._step - 1)
        if self._track_compliance and data.contains(Key.TOPPLING_ALTERNATION_COMPLIANCE):
            data.check(
                Key.TOPPLING_ALTERNATION_COMPLIANCE_IMPLEMENTATION_TYPE,
                GridImplementationType.ARRAY_OF_BOOLEAN,
            )
            slices = [np.asarray(s, dtype=bool) for s in data.get(Key.TOPPLING_ALTERNATION_COMPLIANCE)]
            self._compliance = ComplianceGrid(self._dimension, self._turn, slices)

    # ===== Lifecycle =====

    def close(self) -> None:
        """Release the grid and the backend (removes temporary grid files)."""
        grid = getattr(self, "_grid", None)
        if grid is not None:
            grid.close()
            self._grid = None
        self._backend.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return (
            f"AetherModel(initial_value={self._initial_value!r}, dimension={self._dimension}, "
            f"value_type={self._values.name!r}, step={self._step})"
        )
