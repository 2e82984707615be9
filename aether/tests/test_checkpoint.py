"""
Tests for checkpoints.
"""

import json
import pytest
import numpy as np
from fractions import Fraction

from aether.core import AetherModel
from aether.storage import FileBackedGrid, FileBackend, IncompatibleCheckpointError, Key, ModelData
from aether.storage.checkpoint import (
    CheckpointFormat, GridImplementationType, GridType, ModelTag,
    grid_type_for, read_checkpoint, write_checkpoint,
)


def assert_same_state(a, b):
    assert a.step == b.step
    assert a.changed == b.changed
    assert a.max_coordinate == b.max_coordinate
    assert list(a.iter_asymmetric()) == list(b.iter_asymmetric())


class TestModelData:
    """Tests for the tagged bundle."""

    def test_put_get(self):
        """Test basic access and insertion order."""
        data = ModelData()
        data.put(Key.STEP, 3)
        data.put(Key.MODEL, ModelTag.AETHER)
        assert data.contains(Key.STEP)
        assert not data.contains(Key.GRID)
        assert data.get(Key.STEP) == 3
        assert [key for key, _ in data.items()] == [Key.STEP, Key.MODEL]

    def test_check(self):
        """Test mismatches name the tag."""
        data = ModelData([(Key.GRID_DIMENSION, 2)])
        data.check(Key.GRID_DIMENSION, 2)
        with pytest.raises(IncompatibleCheckpointError, match="GRID_DIMENSION"):
            data.check(Key.GRID_DIMENSION, 3)

    def test_grid_types(self):
        """Test grid types per dimension."""
        assert grid_type_for(1) is GridType.INFINITE_1D
        assert grid_type_for(2) is GridType.INFINITE_SQUARE
        assert grid_type_for(5) is GridType.REGULAR_INFINITE_5D
        assert grid_type_for(7) is GridType.REGULAR_INFINITE_ND

    def test_json_types_restored(self, tmp_path):
        """Test enum and array tags decode to their types."""
        data = ModelData([
            (Key.MODEL, ModelTag.AETHER),
            (Key.STEP, 4),
            (Key.GRID, [np.array([1, 2], dtype=np.int64)]),
            (Key.GRID_IMPLEMENTATION_TYPE, GridImplementationType.ARRAY_OF_INT64),
        ])
        write_checkpoint(data, tmp_path)
        loaded = read_checkpoint(tmp_path)
        assert loaded == data
        assert loaded.get(Key.MODEL) is ModelTag.AETHER
        assert loaded.get(Key.GRID)[0].dtype == np.int64


class TestRoundTrip:
    """Tests for back up and restore."""

    @pytest.mark.parametrize("compress", [False, True])
    def test_json(self, tmp_path, compress):
        """Test a JSON checkpoint restores the same state and evolution."""
        with AetherModel(300, dimension=2) as model:
            for _ in range(7):
                model.next_step()
            folder = model.back_up(tmp_path, "ck", compress=compress)
            name = "checkpoint.json.gz" if compress else "checkpoint.json"
            assert (folder / name).is_file()

            with AetherModel.from_checkpoint(folder) as restored:
                assert_same_state(model, restored)
                for _ in range(5):
                    model.next_step()
                    restored.next_step()
                assert_same_state(model, restored)

    def test_hdf5(self, tmp_path):
        """Test an HDF5 checkpoint restores the same state."""
        pytest.importorskip("h5py")
        with AetherModel(500, dimension=3) as model:
            for _ in range(4):
                model.next_step()
            folder = model.back_up(tmp_path, "ck", fmt=CheckpointFormat.HDF5, compress=True)
            assert (folder / "checkpoint.h5").is_file()
            with AetherModel.from_checkpoint(folder) as restored:
                assert_same_state(model, restored)

    @pytest.mark.parametrize("value_type,initial_value", [
        ("bigint", 2**70),
        ("rational", Fraction(10, 3)),
    ])
    def test_unbounded_values(self, tmp_path, value_type, initial_value):
        """Test big integers and rationals survive the text encoding."""
        with AetherModel(initial_value, dimension=2, value_type=value_type) as model:
            for _ in range(4):
                model.next_step()
            folder = model.back_up(tmp_path, "ck")
            with AetherModel.from_checkpoint(folder) as restored:
                assert restored.values is model.values
                assert restored.initial_value == initial_value
                assert_same_state(model, restored)

    def test_hdf5_rational(self, tmp_path):
        """Test text arrays in HDF5."""
        pytest.importorskip("h5py")
        with AetherModel(Fraction(7, 2), dimension=2, value_type="rational") as model:
            for _ in range(3):
                model.next_step()
            folder = model.back_up(tmp_path, "ck", fmt="hdf5")
            with AetherModel.from_checkpoint(folder) as restored:
                assert_same_state(model, restored)

    def test_step_zero(self, tmp_path):
        """Test a checkpoint taken before any step."""
        with AetherModel(9, dimension=1) as model:
            folder = model.back_up(tmp_path, "ck")
            with AetherModel.from_checkpoint(folder) as restored:
                assert restored.step == 0
                assert restored.changed is None
                assert restored.get((0,)) == 9

    def test_file_backend(self, tmp_path):
        """Test file-backed checkpoints copy and reuse the grid file."""
        with AetherModel(400, dimension=2, backend=FileBackend(tmp_path / "grids")) as model:
            for _ in range(6):
                model.next_step()
            folder = model.back_up(tmp_path / "backups", "ck")
            backup_file = folder / "grid" / "step=6.data"
            assert backup_file.is_file()

            with AetherModel.from_checkpoint(folder, grid_folder=tmp_path / "grids") as restored:
                assert_same_state(model, restored)
                for _ in range(3):
                    model.next_step()
                    restored.next_step()
                assert_same_state(model, restored)
            assert backup_file.is_file()

    def test_back_up_into_restored_folder(self, tmp_path):
        """Test a restored file-backed model can back up over its own checkpoint."""
        with AetherModel(300, dimension=2, backend=FileBackend(tmp_path / "grids")) as model:
            for _ in range(3):
                model.next_step()
            folder = model.back_up(tmp_path / "backups", "3")

        backup_file = folder / "grid" / "step=3.data"
        contents = backup_file.read_bytes()
        with AetherModel.from_checkpoint(folder, grid_folder=tmp_path / "grids") as restored:
            assert restored.back_up(tmp_path / "backups", "3") == folder
            assert backup_file.read_bytes() == contents
            restored.next_step()
            restored.back_up(tmp_path / "backups", "3")
            assert (folder / "grid" / "step=4.data").is_file()

        with AetherModel.from_checkpoint(folder) as again:
            assert again.step == 4


class TestRestoreChecks:
    """Tests for incompatible and missing checkpoints."""

    @pytest.fixture
    def folder(self, tmp_path):
        with AetherModel(100, dimension=2) as model:
            for _ in range(3):
                model.next_step()
            return model.back_up(tmp_path, "ck")

    def test_value_type_mismatch(self, folder):
        """Test a different value type is refused."""
        with pytest.raises(IncompatibleCheckpointError):
            AetherModel.from_checkpoint(folder, value_type="int32")

    def test_dimension_mismatch(self, folder):
        """Test a different dimension is refused."""
        with pytest.raises(IncompatibleCheckpointError):
            AetherModel.from_checkpoint(folder, dimension=3)

    def test_backend_mismatch(self, folder):
        """Test a memory checkpoint cannot restore into a file backend."""
        with pytest.raises(IncompatibleCheckpointError):
            AetherModel.from_checkpoint(folder, backend="file")

    def test_incompatible_is_value_error(self, folder):
        """Test the error is a ValueError."""
        with pytest.raises(ValueError):
            AetherModel.from_checkpoint(folder, dimension=1)

    def test_missing(self, tmp_path):
        """Test a missing checkpoint."""
        with pytest.raises(FileNotFoundError):
            AetherModel.from_checkpoint(tmp_path / "nothing")


class TestComplianceRestore:
    """Tests for compliance data in checkpoints."""

    def test_saved_compliance(self, tmp_path):
        """Test compliance data is restored."""
        with AetherModel(50, dimension=1, track_compliance=True) as model:
            for _ in range(3):
                model.next_step()
            folder = model.back_up(tmp_path, "ck")
            with AetherModel.from_checkpoint(folder, track_compliance=True) as restored:
                assert restored.step == 3
                assert restored.compliance_turn is model.compliance_turn
                for x in range(-6, 7):
                    assert restored.compliance((x,)) == model.compliance((x,))

    def test_recomputed_compliance(self, tmp_path):
        """Test one more step is computed when compliance data is missing."""
        with AetherModel(50, dimension=1) as model:
            for _ in range(3):
                model.next_step()
            folder = model.back_up(tmp_path, "ck")
            with AetherModel.from_checkpoint(folder, track_compliance=True) as restored:
                assert restored.step == 4
                assert restored.compliance((0,)) is not None
                model.next_step()
                assert_same_state(model, restored)


class TestFailedRestore:
    """Tests for cleanup when a restore fails part way."""

    @pytest.fixture
    def closed_grids(self, monkeypatch):
        closed = []
        original_close = FileBackedGrid.close

        def recording_close(grid):
            closed.append(grid.path)
            original_close(grid)

        monkeypatch.setattr(FileBackedGrid, "close", recording_close)
        return closed

    def file_checkpoint(self, tmp_path, track_compliance):
        with AetherModel(300, dimension=2, backend=FileBackend(tmp_path / "grids"),
                         track_compliance=track_compliance) as model:
            for _ in range(3):
                model.next_step()
            return model.back_up(tmp_path / "backups", "ck")

    def test_incompatible_tag_after_grid_opened(self, tmp_path, closed_grids):
        """Test the opened backup grid is closed when a later tag is incompatible."""
        folder = self.file_checkpoint(tmp_path, track_compliance=True)
        path = folder / "checkpoint.json"
        data = json.loads(path.read_text())
        for entry in data["tags"]:
            if entry[0] == int(Key.TOPPLING_ALTERNATION_COMPLIANCE_IMPLEMENTATION_TYPE):
                entry[1] = int(GridImplementationType.ARRAY_OF_INT64)
        path.write_text(json.dumps(data))

        with pytest.raises(IncompatibleCheckpointError):
            AetherModel.from_checkpoint(folder, track_compliance=True, grid_folder=tmp_path / "restore")
        assert folder / "grid" / "step=3.data" in closed_grids
        assert list((tmp_path / "restore").iterdir()) == []
        assert (folder / "grid" / "step=3.data").is_file()

    def test_failed_compliance_step(self, tmp_path, closed_grids, monkeypatch):
        """Test the model is closed when the extra compliance step fails."""
        folder = self.file_checkpoint(tmp_path, track_compliance=False)

        def failing_evolve(model):
            raise RuntimeError("disk full")

        monkeypatch.setattr(AetherModel, "_evolve", failing_evolve)
        with pytest.raises(RuntimeError, match="disk full"):
            AetherModel.from_checkpoint(folder, track_compliance=True, grid_folder=tmp_path / "restore")
        assert folder / "grid" / "step=3.data" in closed_grids
        assert list((tmp_path / "restore").iterdir()) == []
