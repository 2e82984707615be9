"""
Tests for configuration.
"""

import pytest
from pathlib import Path

from aether.config import AetherConfig, CheckpointParams, minimal_config, out_of_core_config
from aether.core import AetherModel, GridBackendKind
from aether.storage import CheckpointFormat


class TestAetherConfig:
    """Tests for AetherConfig."""

    def test_defaults_valid(self):
        """Test the default configuration has no issues."""
        assert AetherConfig().validate() == []

    def test_presets_valid(self):
        """Test presets validate."""
        assert minimal_config().validate() == []
        assert out_of_core_config().validate() == []

    def test_save_load(self, tmp_path):
        """Test JSON round trip."""
        config = AetherConfig(
            dimension=3,
            initial_value="-12",
            backend=GridBackendKind.FILE,
            grid_folder=Path("some/grid"),
            track_compliance=True,
            checkpoint=CheckpointParams(format=CheckpointFormat.HDF5, compress=True, interval=10),
        )
        config.save(tmp_path / "config.json")
        loaded = AetherConfig.load(tmp_path / "config.json")
        assert loaded == config
        assert loaded.backend is GridBackendKind.FILE
        assert loaded.checkpoint.format is CheckpointFormat.HDF5

    def test_validate_issues(self):
        """Test invalid settings are reported."""
        assert AetherConfig(dimension=0).validate()
        assert AetherConfig(value_type="float").validate()
        assert AetherConfig(initial_value="abc").validate()
        assert AetherConfig(value_type="int16", initial_value="70000").validate()
        assert AetherConfig(value_type="bigint", backend=GridBackendKind.FILE).validate()

    def test_high_dimension_is_valid(self):
        """Test dimensions above 6 are accepted."""
        assert AetherConfig(dimension=7, initial_value="100").validate() == []

    def test_from_config(self, tmp_path):
        """Test building a model from a configuration."""
        config = AetherConfig(
            dimension=2,
            initial_value="40",
            backend=GridBackendKind.FILE,
            grid_folder=tmp_path,
        )
        with AetherModel.from_config(config) as model:
            model.next_step()
            assert model.dimension == 2
            assert model.backend.kind is GridBackendKind.FILE
            assert model.total_value() == 40
