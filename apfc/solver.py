"""
Run loop alternating overdamped dynamics and mechanical equilibration.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

import numpy as np

from .energy import FreeEnergy
from .fields import FieldStore
from .io import (
    INITIAL_CHECKPOINT,
    LogEntry,
    RunLog,
    VTKExporter,
    checkpoint_name,
    read_checkpoint,
    write_checkpoint,
)
from .mechanics import Equilibrator
from .parallel import ensure_directory, is_root
from .pfc import OverdampedEvolver
from .seeds import NucleationParameters
from .structure import CrystalBuilder


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolverConfig:
    steps_per_cycle: int = 100
    total_steps: int = 10000
    checkpoint_every: int = 1000
    checkpoint_every_coarse: int = 10000
    coarsen_after: float = 1.0e4  # simulated time after which snapshots thin out
    output_dir: str = "output"
    write_vtk: bool = True

    def __post_init__(self) -> None:
        if self.steps_per_cycle <= 0:
            raise ValueError("steps_per_cycle must be positive.")
        if self.checkpoint_every <= 0 or self.checkpoint_every_coarse <= 0:
            raise ValueError("Checkpoint intervals must be positive.")


class AlternatingSolver:
    def __init__(
        self,
        store: FieldStore,
        model: FreeEnergy,
        evolver: OverdampedEvolver,
        equilibrator: Equilibrator,
        config: SolverConfig | None = None,
        nucleation: NucleationParameters | None = None,
    ) -> None:
        self.store = store
        self.model = model
        self.evolver = evolver
        self.equilibrator = equilibrator
        self.config = config or SolverConfig()
        self.nucleation = nucleation or NucleationParameters()
        self.comm = store.comm
        self.dt = store.grid.dt
        self.output_dir = ensure_directory(self.comm, Path(self.config.output_dir))
        self.run_log = RunLog(self.output_dir / "run.log", self.comm)
        self.exporter = VTKExporter(store) if self.config.write_vtk else None
        self.timestep = 0

    @property
    def simtime(self) -> float:
        return self.timestep * self.dt

    def checkpoint_interval(self) -> int:
        if self.simtime < self.config.coarsen_after:
            return self.config.checkpoint_every
        return self.config.checkpoint_every_coarse

    def initialize(self, mode: str = "circle") -> None:
        CrystalBuilder(self.store).build(mode, self.nucleation)
        write_checkpoint(self.store, self.output_dir / INITIAL_CHECKPOINT)
        self.store.forward("eta")
        self.timestep = 0
        self.run_log.truncate(-1.0)
        logger.info("initialized '%s' configuration on grid %s", mode, self.store.grid.shape)

    def resume(self, timestep: int) -> None:
        read_checkpoint(self.store, self.output_dir / checkpoint_name(timestep))
        self.store.forward("eta")
        self.timestep = timestep
        kept = self.run_log.truncate(self.simtime, tolerance=0.5 * self.dt)
        if is_root(self.comm):
            logger.info("resumed at timestep %d (t=%.4f), %d log lines kept", timestep, self.simtime, len(kept))

    def snapshot(self) -> None:
        write_checkpoint(self.store, self.output_dir / checkpoint_name(self.timestep))
        if self.exporter is not None:
            self.exporter.write(self.output_dir / f"eta_{self.timestep}.vtk")

    def cycle(self, steps: int | None = None) -> LogEntry:
        steps = self.config.steps_per_cycle if steps is None else steps
        start = time.perf_counter()
        self.evolver.advance(steps)
        self.timestep += steps
        od_done = time.perf_counter()
        iterations = self.equilibrator.equilibrate()
        eq_done = time.perf_counter()
        energy = self.model.energy()
        entry = LogEntry(
            self.timestep,
            self.simtime,
            energy,
            od_done - start,
            iterations,
            eq_done - od_done,
            time.perf_counter() - start,
        )
        self.run_log.append(entry)
        if not np.isfinite(energy):
            logger.error("energy became %r at timestep %d", energy, self.timestep)
            raise FloatingPointError(f"Non-finite energy at timestep {self.timestep}")
        return entry

    def run(self) -> List[LogEntry]:
        entries = []
        while self.timestep < self.config.total_steps:
            previous = self.timestep
            entry = self.cycle(min(self.config.steps_per_cycle, self.config.total_steps - previous))
            entries.append(entry)
            if is_root(self.comm):
                logger.info(
                    "step %d t=%.3f E=%.10e od %.2fs eq %d it %.2fs",
                    entry.timestep,
                    entry.simtime,
                    entry.energy,
                    entry.od_seconds,
                    entry.eq_iterations,
                    entry.eq_seconds,
                )
            # snapshot whenever the cycle crossed a multiple of the interval
            interval = self.checkpoint_interval()
            if self.timestep // interval > previous // interval:
                self.snapshot()
        return entries


__all__ = ["SolverConfig", "AlternatingSolver"]
