"""
Aggregate run configuration with JSON persistence.

Example usage:
    config = SimulationConfig()
    config.save("run.json")
    config = SimulationConfig.load("run.json")
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path

from .energy import APFCParameters
from .mechanics import MechanicalConfig
from .operators import GridSpec
from .seeds import NucleationParameters
from .solver import SolverConfig


@dataclass
class SimulationConfig:
    grid: GridSpec = field(default_factory=GridSpec)
    energy: APFCParameters = field(default_factory=APFCParameters)
    nucleation: NucleationParameters = field(default_factory=NucleationParameters)
    mechanical: MechanicalConfig = field(default_factory=MechanicalConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)

    def to_dict(self) -> dict:
        return {
            "grid": asdict(self.grid),
            "energy": asdict(self.energy),
            "nucleation": asdict(self.nucleation),
            "mechanical": asdict(self.mechanical),
            "solver": asdict(self.solver),
        }

    def save(self, filepath: str | Path) -> None:
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "SimulationConfig":
        grid = dict(config_dict.get("grid", {}))
        for key in ("shape", "spacing"):
            if key in grid:
                grid[key] = tuple(grid[key])
        return cls(
            grid=GridSpec(**grid),
            energy=APFCParameters(**config_dict.get("energy", {})),
            nucleation=NucleationParameters(**config_dict.get("nucleation", {})),
            mechanical=MechanicalConfig(**config_dict.get("mechanical", {})),
            solver=SolverConfig(**config_dict.get("solver", {})),
        )

    @classmethod
    def load(cls, filepath: str | Path) -> "SimulationConfig":
        with open(filepath, "r") as f:
            return cls.from_dict(json.load(f))

    def summary(self) -> str:
        nx, ny = self.grid.shape
        dx, dy = self.grid.spacing
        e = self.energy
        s = self.solver
        lines = [
            "=" * 60,
            "APFC run configuration",
            "=" * 60,
            f"  grid {nx} x {ny}, spacing ({dx}, {dy}), dt = {self.grid.dt}",
            f"  bx = {e.bx}, bl = {e.bl}, tt = {e.tt}, vv = {e.vv}",
            f"  seeds: {self.nucleation.count}, max radius {self.nucleation.max_radius}, "
            f"max angle {self.nucleation.max_angle:.4f}",
            f"  {s.steps_per_cycle} steps per cycle, {s.total_steps} steps total",
            f"  snapshots every {s.checkpoint_every} steps, every {s.checkpoint_every_coarse} after t = {s.coarsen_after}",
            f"  output: {s.output_dir}",
            "=" * 60,
        ]
        return "\n".join(lines)


__all__ = ["SimulationConfig"]
