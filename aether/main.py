"""
Aether Automaton - command line driver.

Main entry point for simulations.
"""

from __future__ import annotations
import argparse
import logging
from pathlib import Path
from typing import Optional

from aether.config import AetherConfig
from aether.core import AetherModel, GridBackendKind
from aether.storage import CheckpointFormat


logger = logging.getLogger(__name__)


def run_simulation(config: AetherConfig, restore: Optional[Path] = None) -> AetherModel:
    """
    Run a simulation until `config.max_steps` or until the grid stops changing.

    Args:
        config: Run configuration
        restore: Checkpoint folder to resume from

    Returns:
        The (closed) model after the last step
    """
    if restore is not None:
        model = AetherModel.from_checkpoint(
            restore,
            grid_folder=config.grid_folder,
            track_compliance=config.track_compliance,
            use_numba=config.use_numba,
        )
    else:
        model = AetherModel.from_config(config)

    params = config.checkpoint
    backup_path = Path(params.base_path) / model.subfolder_path

    with model:
        logger.info(f"Starting {model.subfolder_path} at step {model.step}")
        if model.dimension > 6:
            logger.warning(f"The asymmetric section of a {model.dimension}D grid grows very fast")
        logger.info(f"Value type: {model.values.name}, backend: {model.backend.kind.value}")

        while config.max_steps is None or model.step < config.max_steps:
            changed = model.next_step()

            if params.interval and model.step % params.interval == 0:
                model.back_up(backup_path, str(model.step), fmt=params.format, compress=params.compress)

            if model.step % 100 == 0:
                logger.info(f"Step {model.step} - max coordinate {model.max_coordinate}")

            if not changed and config.max_steps is None:
                logger.info(f"Configuration stopped changing at step {model.step}")
                break

        logger.info(f"Final step: {model.step}, max coordinate: {model.max_coordinate}")
        logger.info(f"Origin value: {model.get((0,) * model.dimension)}")
        if not (params.interval and model.step % params.interval == 0):
            model.back_up(backup_path, str(model.step), fmt=params.format, compress=params.compress)
        logger.info(f"Checkpoints saved to: {backup_path}")

    return model


def main():
    """Command-line interface for running simulations."""
    parser = argparse.ArgumentParser(description="Aether cellular automaton simulator")

    parser.add_argument('--config', type=str, default=None,
                        help='JSON configuration file (other options override it)')
    parser.add_argument('--dimension', type=int, default=None,
                        help='Grid dimension (default: 1)')
    parser.add_argument('--initial-value', type=str, default=None,
                        help='Single source value at the origin (default: 1000)')
    parser.add_argument('--value-type', type=str, default=None,
                        choices=['int16', 'int32', 'int64', 'bigint', 'rational'],
                        help='Value type (default: int64)')
    parser.add_argument('--backend', type=str, default=None,
                        choices=[kind.value for kind in GridBackendKind],
                        help='Grid storage (default: memory)')
    parser.add_argument('--grid-folder', type=str, default=None,
                        help='Folder for file-backed grids (default: ./grid)')
    parser.add_argument('--steps', type=int, default=None,
                        help='Number of steps (default: until stable)')
    parser.add_argument('--output', type=str, default=None,
                        help='Backup directory (default: ./backups)')
    parser.add_argument('--backup-interval', type=int, default=None,
                        help='Steps between backups (default: only at the end)')
    parser.add_argument('--format', type=str, default=None,
                        choices=[fmt.value for fmt in CheckpointFormat],
                        help='Checkpoint format (default: json)')
    parser.add_argument('--compress', action='store_true',
                        help='Compress checkpoints')
    parser.add_argument('--track-compliance', action='store_true',
                        help='Record toppling alternation compliance')
    parser.add_argument('--no-numba', action='store_true',
                        help='Disable the compiled toppling kernel')
    parser.add_argument('--restore', type=str, default=None,
                        help='Resume from a checkpoint folder')

    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    config = AetherConfig.load(args.config) if args.config else AetherConfig()
    if args.dimension is not None:
        config.dimension = args.dimension
    if args.initial_value is not None:
        config.initial_value = args.initial_value
    if args.value_type is not None:
        config.value_type = args.value_type
    if args.backend is not None:
        config.backend = GridBackendKind(args.backend)
    if args.grid_folder is not None:
        config.grid_folder = Path(args.grid_folder)
    if args.steps is not None:
        config.max_steps = args.steps
    if args.output is not None:
        config.checkpoint.base_path = Path(args.output)
    if args.backup_interval is not None:
        config.checkpoint.interval = args.backup_interval
    if args.format is not None:
        config.checkpoint.format = CheckpointFormat(args.format)
    if args.compress:
        config.checkpoint.compress = True
    if args.track_compliance:
        config.track_compliance = True
    if args.no_numba:
        config.use_numba = False

    issues = config.validate()
    if issues and args.restore is None:
        for issue in issues:
            logger.error(issue)
        raise SystemExit(2)

    run_simulation(config, restore=Path(args.restore) if args.restore else None)
    logger.info("Done!")


if __name__ == "__main__":
    main()
