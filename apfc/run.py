"""
Command-line driver.

Usage:
    mpiexec -n 4 python -m apfc.run --config run.json --init nucleation
    mpiexec -n 4 python -m apfc.run --config run.json --restart 20000
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
from typing import List

from mpi4py import MPI

from .config import SimulationConfig
from .energy import FreeEnergy
from .fields import FieldStore
from .io import LogEntry
from .mechanics import RotationalEquilibrator
from .pfc import OverdampedEvolver
from .solver import AlternatingSolver


def build_solver(config: SimulationConfig, comm: MPI.Comm | None = None) -> AlternatingSolver:
    store = FieldStore(config.grid, comm)
    model = FreeEnergy(config.energy, store)
    evolver = OverdampedEvolver(store, model)
    equilibrator = RotationalEquilibrator(store, model, config.mechanical)
    return AlternatingSolver(store, model, evolver, equilibrator, config.solver, config.nucleation)


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Distributed amplitude phase-field-crystal run")
    parser.add_argument("--config", type=str, default=None, help="JSON configuration file")
    parser.add_argument("--init", type=str, choices=["circle", "seed", "nucleation"], default="circle",
                        help="Initial configuration for a fresh run")
    parser.add_argument("--restart", type=int, default=None, help="Resume from eta_<STEP>.bin")
    parser.add_argument("--output", type=str, default=None, help="Output directory")
    parser.add_argument("--steps", type=int, default=None, help="Total number of time steps")
    return parser.parse_args(argv)


def main(argv: List[str] | None = None) -> List[LogEntry]:
    args = parse_args(argv)
    comm = MPI.COMM_WORLD
    logging.basicConfig(
        level=logging.INFO,
        format=f"%(asctime)s [rank {comm.Get_rank()}] %(name)s %(levelname)s: %(message)s",
    )

    config = SimulationConfig.load(args.config) if args.config else SimulationConfig()
    overrides = {}
    if args.output is not None:
        overrides["output_dir"] = args.output
    if args.steps is not None:
        overrides["total_steps"] = args.steps
    if overrides:
        config.solver = dataclasses.replace(config.solver, **overrides)

    if comm.Get_rank() == 0:
        print(config.summary())

    solver = build_solver(config, comm)
    if args.restart is not None:
        solver.resume(args.restart)
    else:
        solver.initialize(args.init)
    return solver.run()


if __name__ == "__main__":
    main()
