"""Command-line interface."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from cpdimpm.config import SimulationConfig
from cpdimpm.fea.analysis import Model
from cpdimpm.fea.errors import MPMError
from cpdimpm.fea.solvers import Solver, SimulationState
from cpdimpm.io import IOManager
from cpdimpm.logging_config import setup_logging

logger = logging.getLogger("cpdimpm")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cpdimpm",
        description="Explicit CPDI2q MPM solver for elasto-plastic slumping in plane strain",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to a JSON configuration file")
    parser.add_argument("--output-dir", type=str, default="results", help="Directory for result files")
    parser.add_argument("--elements", type=int, default=None, help="Number of elements between the walls")
    parser.add_argument("--time", type=float, default=None, help="Simulated duration in seconds")
    parser.add_argument("--frames", action="store_true", help="Write a .vtu file every frame interval")
    parser.add_argument("--no-plot", action="store_true", help="Do not save the final plastic strain plot")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> SimulationConfig:
    config = SimulationConfig.load(args.config) if args.config else SimulationConfig()
    if args.elements is not None:
        config.mesh.n_elements = args.elements
        config.mesh.__post_init__()
    if args.time is not None:
        config.solver.total_time = args.time
        config.solver.__post_init__()
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    os.makedirs(args.output_dir, exist_ok=True)
    setup_logging(level=getattr(logging, args.log_level), log_file=os.path.join(args.output_dir, "run.log"))

    try:
        config = build_config(args)
        config.save(os.path.join(args.output_dir, "config.json"))

        model = Model.from_config(config)
        solver = Solver.from_config(model, config)

        def write_frame(model: Model, state: SimulationState) -> None:
            IOManager.write_particles_vtu(
                os.path.join(args.output_dir, f"particles_{state.iteration:07d}.vtu"), model
            )

        result = solver.solve(callback=write_frame if args.frames else None)

        IOManager.save_results(os.path.join(args.output_dir, "results.h5"), model, result, config)
        IOManager.write_particles_vtu(os.path.join(args.output_dir, "particles_final.vtu"), model)
        if not args.no_plot:
            model.plot_plastic_strain(
                title=f"$t={result.time - config.solver.elastic_time:.2f}$ (s)",
                filename=os.path.join(args.output_dir, "plastic_strain.png"),
                show=False,
            )

    except (MPMError, ValueError, OSError) as e:
        logger.exception(f"Run failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
